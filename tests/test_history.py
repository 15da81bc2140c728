"""
Unit tests for session history loading.
"""

import json

import pytest

from session_ledger.history.reader import load_history


class TestLoadHistory:
    """Test reading history files."""

    def test_json_array(self, tmp_path):
        """Verify a JSON array file is read in order."""
        path = tmp_path / "session.json"
        path.write_text(json.dumps([{"id": "a"}, {"id": "b"}]), encoding="utf-8")
        assert load_history(str(path)) == [{"id": "a"}, {"id": "b"}]

    def test_json_lines(self, tmp_path):
        """Verify JSON Lines are read and blank lines ignored."""
        path = tmp_path / "session.jsonl"
        path.write_text('{"id": "a"}\n\n{"id": "b"}\n', encoding="utf-8")
        assert load_history(str(path)) == [{"id": "a"}, {"id": "b"}]

    def test_empty_file(self, tmp_path):
        """Verify an empty file is an empty history."""
        path = tmp_path / "empty.jsonl"
        path.write_text("  \n", encoding="utf-8")
        assert load_history(str(path)) == []

    def test_missing_file(self, tmp_path):
        """Verify a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="History file not found"):
            load_history(str(tmp_path / "nope.json"))

    def test_invalid_json_array(self, tmp_path):
        """Verify a broken array raises ValueError."""
        path = tmp_path / "broken.json"
        path.write_text('[{"id": "a"},', encoding="utf-8")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_history(str(path))

    def test_invalid_json_line_reports_line(self, tmp_path):
        """Verify a broken line is reported with its number."""
        path = tmp_path / "broken.jsonl"
        path.write_text('{"id": "a"}\n{oops\n', encoding="utf-8")
        with pytest.raises(ValueError, match="line 2"):
            load_history(str(path))
