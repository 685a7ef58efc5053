"""
Bounded, indexed log buffer for run-process output.

Every appended line gets a sequence index that is never reused, even after
the line is evicted.  Pollers remember ``get_next_index()`` and pass it back
as ``from_index`` to receive each new line exactly once, as long as they
poll faster than the buffer evicts.
"""

from __future__ import annotations

from collections import deque
from datetime import UTC, datetime
from itertools import islice

from flutterbridge.core.constants import DEFAULT_LOG_PAGE_SIZE, DEFAULT_MAX_LOG_LINES
from flutterbridge.flutter.models import LogEntry


class LogBuffer:
    def __init__(self, max_lines: int = DEFAULT_MAX_LOG_LINES) -> None:
        if max_lines < 1:
            raise ValueError("max_lines must be at least 1")
        self._max_lines = max_lines
        self._entries: deque[LogEntry] = deque()
        self._next_index = 0

    @property
    def max_lines(self) -> int:
        return self._max_lines

    def append(self, line: str) -> LogEntry:
        entry = LogEntry(line=line, timestamp=datetime.now(UTC), index=self._next_index)
        self._next_index += 1
        self._entries.append(entry)
        if len(self._entries) > self._max_lines:
            self._entries.popleft()
        return entry

    def get_logs(
        self, from_index: int | None = None, limit: int = DEFAULT_LOG_PAGE_SIZE
    ) -> list[LogEntry]:
        """
        Return up to *limit* retained entries, oldest first.

        With *from_index*, only entries whose index is >= from_index.  A
        cursor past the newest entry yields an empty list.
        """
        if limit <= 0 or not self._entries:
            return []
        if from_index is None:
            return list(islice(self._entries, limit))

        # Retained indices are contiguous, so the start offset is arithmetic
        first = self._entries[0].index
        offset = max(0, from_index - first)
        if offset >= len(self._entries):
            return []
        return list(islice(self._entries, offset, offset + limit))

    def get_next_index(self) -> int:
        return self._next_index

    def get_total_lines(self) -> int:
        """Number of lines currently retained (not a lifetime total)."""
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._next_index = 0

    def get_recent_lines(self, count: int) -> list[str]:
        if count <= 0:
            return []
        start = max(0, len(self._entries) - count)
        return [entry.line for entry in islice(self._entries, start, None)]
