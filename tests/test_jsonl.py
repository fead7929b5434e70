from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from tasklog import jsonl
from tasklog.errors import CorruptionError
from tasklog.jsonl import append_jsonl, read_jsonl


def _parse(line: bytes) -> dict:
    return json.loads(line)


def _valid(line: bytes) -> bool:
    try:
        json.loads(line)
    except ValueError:
        return False
    return True


def test_read_missing_file_returns_empty(tmp_path: Path) -> None:
    assert read_jsonl(tmp_path / "nope.jsonl", _parse) == []


def test_read_skips_blank_lines(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    path.write_bytes(b'{"a":1}\n\n   \n{"a":2}\n')

    assert read_jsonl(path, _parse) == [{"a": 1}, {"a": 2}]


def test_truncated_final_record_is_dropped(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    path = tmp_path / "log.jsonl"
    path.write_bytes(b'{"a":1}\n{"a":2}\n{"a":')

    with caplog.at_level(logging.WARNING, logger="tasklog.jsonl"):
        rows = read_jsonl(path, _parse)

    assert rows == [{"a": 1}, {"a": 2}]
    assert "truncated final record" in caplog.text


def test_complete_final_record_without_separator_is_kept(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    path.write_bytes(b'{"a":1}\n{"a":2}')

    assert read_jsonl(path, _parse) == [{"a": 1}, {"a": 2}]


def test_malformed_final_record_with_separator_is_corruption(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    path.write_bytes(b'{"a":1}\n{"a":\n')

    with pytest.raises(CorruptionError):
        read_jsonl(path, _parse)


def test_malformed_middle_record_is_corruption(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    path.write_bytes(b'{"a":1}\nnot json\n{"a":3}')

    with pytest.raises(CorruptionError, match=":2:"):
        read_jsonl(path, _parse)


def test_oversized_record_is_corruption_even_at_tail(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(jsonl, "MAX_RECORD_BYTES", 16)
    path = tmp_path / "log.jsonl"
    path.write_bytes(b'{"a":1}\n{"padding":"' + b"x" * 64)

    with pytest.raises(CorruptionError, match="too long"):
        read_jsonl(path, _parse)


def test_append_writes_one_line_per_record(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    append_jsonl(path, [b'{"a":1}', b'{"a":2}'])
    append_jsonl(path, [b'{"a":3}'])

    assert path.read_bytes() == b'{"a":1}\n{"a":2}\n{"a":3}\n'


def test_append_terminates_valid_unterminated_tail(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    path.write_bytes(b'{"a":1}\n{"a":2}')

    append_jsonl(path, [b'{"a":3}'], tail_is_valid=_valid)

    assert path.read_bytes() == b'{"a":1}\n{"a":2}\n{"a":3}\n'


def test_append_cuts_partial_tail_before_writing(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    path = tmp_path / "log.jsonl"
    path.write_bytes(b'{"a":1}\n{"a":')

    with caplog.at_level(logging.WARNING, logger="tasklog.jsonl"):
        append_jsonl(path, [b'{"a":3}'], tail_is_valid=_valid)

    assert path.read_bytes() == b'{"a":1}\n{"a":3}\n'
    assert read_jsonl(path, _parse) == [{"a": 1}, {"a": 3}]
    assert "truncating partial record" in caplog.text


def test_append_cuts_partial_tail_in_single_record_file(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    path.write_bytes(b'{"a":')

    append_jsonl(path, [b'{"a":1}'], tail_is_valid=_valid)

    assert path.read_bytes() == b'{"a":1}\n'
