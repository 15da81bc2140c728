"""
Session history loading.

Reads the raw records of a session from a JSON array or JSON Lines file.
"""

import json
from pathlib import Path
from typing import Any, List


def load_history(path: str) -> List[Any]:
    """Load a session history file.

    A file whose first non-blank character is ``[`` is read as a JSON
    array; anything else is read as JSON Lines with blank lines ignored.

    Args:
        path: Path to the history file

    Returns:
        Raw records in file order

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the content is not valid JSON
    """
    history_path = Path(path)
    if not history_path.exists():
        raise FileNotFoundError(f"History file not found: {path}")

    content = history_path.read_text(encoding='utf-8')
    stripped = content.lstrip()
    if not stripped:
        return []

    if stripped.startswith('['):
        try:
            records = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in history file {path}: {e}")
        if not isinstance(records, list):
            raise ValueError(f"History file {path} must contain a JSON array")
        return records

    records = []
    for line_number, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON on line {line_number} of {path}: {e}")
    return records
