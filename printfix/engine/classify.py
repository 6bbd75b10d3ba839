"""
Output classifier — maps one line of command output to a log level.

Command bodies tag their own progress lines:

    [OK]     → success
    [WARN]   → warning
    [ERROR]  → error
    anything else (including [INFO], [VERBOSE], [EXCEPTION]) → info

The tag must sit at position zero once leading whitespace is removed.
Matching is literal and case-sensitive.
"""

from __future__ import annotations

from typing import Iterable

from printfix.models import Level, LogEntry

_PREFIXES: tuple[tuple[str, Level], ...] = (
    ("[OK]", "success"),
    ("[WARN]", "warning"),
    ("[ERROR]", "error"),
)


def classify(line: str) -> Level:
    """Return the level for a single output line. Never raises."""
    if not isinstance(line, str):
        return "info"
    text = line.lstrip()
    for prefix, level in _PREFIXES:
        if text.startswith(prefix):
            return level
    return "info"


def classify_lines(lines: Iterable[str]) -> list[LogEntry]:
    """Turn ordered output lines into log entries, preserving order."""
    return [LogEntry(classify(line), line) for line in lines]
