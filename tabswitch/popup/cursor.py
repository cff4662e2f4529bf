"""Keyboard selection within the current result list."""

from typing import Optional


class SelectionCursor:
    """
    Index of the highlighted result.

    ``clamp`` fixes the bound to the current result count; until the first
    clamp the bound is unknown and ``next`` simply counts up. A changed
    query sends the cursor back to the top.
    """

    def __init__(self):
        self.index = 0
        self._count: Optional[int] = None
        self._query = ""

    def clamp(self, result_count: int) -> int:
        self._count = max(0, result_count)
        self.index = max(0, min(self._count - 1, self.index))
        return self.index

    def next(self) -> int:
        if self._count is None:
            self.index += 1
        else:
            self.index = max(0, min(self._count - 1, self.index + 1))
        return self.index

    def prev(self) -> int:
        self.index = max(0, self.index - 1)
        return self.index

    def set_query(self, query: str) -> None:
        if query != self._query:
            self._query = query
            self.index = 0
