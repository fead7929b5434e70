from __future__ import annotations

import os
import subprocess

ACTOR_ENV = "TL_ACTOR"
FALLBACK_ACTOR = "unknown"


def _git_user_name() -> str:
    try:
        proc = subprocess.run(
            ["git", "config", "user.name"],
            capture_output=True,
            text=True,
            check=False,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired):
        return ""
    if proc.returncode != 0:
        return ""
    return proc.stdout.strip()


def resolve_actor() -> str:
    """TL_ACTOR, then ``git config user.name``, then ``unknown``."""
    actor = os.environ.get(ACTOR_ENV, "").strip()
    if actor:
        return actor
    return _git_user_name() or FALLBACK_ACTOR
