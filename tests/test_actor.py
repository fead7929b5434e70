from __future__ import annotations

import subprocess

import pytest

from tasklog import actor
from tasklog.actor import resolve_actor


def test_env_actor_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TL_ACTOR", "  robot-7 ")
    assert resolve_actor() == "robot-7"


def test_falls_back_to_git_user_name(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(argv, **kwargs):
        assert argv == ["git", "config", "user.name"]
        return subprocess.CompletedProcess(argv, 0, stdout="Ada Lovelace\n", stderr="")

    monkeypatch.setattr(actor.subprocess, "run", fake_run)
    assert resolve_actor() == "Ada Lovelace"


def test_unknown_when_git_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(argv, **kwargs):
        raise FileNotFoundError("git")

    monkeypatch.setattr(actor.subprocess, "run", fake_run)
    assert resolve_actor() == "unknown"


def test_unknown_when_git_has_no_name(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(argv, **kwargs):
        return subprocess.CompletedProcess(argv, 1, stdout="", stderr="")

    monkeypatch.setattr(actor.subprocess, "run", fake_run)
    assert resolve_actor() == "unknown"
