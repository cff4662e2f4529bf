"""Tab activation recency log with deferred deduplication."""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional

from loguru import logger


@dataclass(frozen=True)
class ActivationEvent:
    """A host report that a tab became active."""
    tab_id: int


class RecencyLog:
    """
    Newest-first record of tab activations.

    Recording is a constant-time prepend so it can run on every tab switch,
    including rapid bursts. Duplicate ids pile up until ``compact()`` removes
    them; readers of ``snapshot()`` must tolerate repeats.
    """

    def __init__(self):
        self._events: Deque[ActivationEvent] = deque()

    def __len__(self) -> int:
        return len(self._events)

    def record_activation(self, tab_id: int) -> None:
        self._events.appendleft(ActivationEvent(tab_id))

    def snapshot(self) -> List[int]:
        """Tab ids, most recent first, duplicates included."""
        return [event.tab_id for event in self._events]

    def compact(self) -> int:
        """
        Keep only the most recent activation of each tab.

        Returns:
            Number of entries removed
        """
        if len(self._events) <= 1:
            return 0

        seen = set()
        kept: Deque[ActivationEvent] = deque()
        for event in self._events:
            if event.tab_id in seen:
                continue
            seen.add(event.tab_id)
            kept.append(event)

        removed = len(self._events) - len(kept)
        self._events = kept
        return removed


class CompactionTask:
    """Owner-managed recurring compaction of a ``RecencyLog``."""

    def __init__(self, log: RecencyLog, interval: float = 1.0):
        if interval <= 0:
            raise ValueError("compaction interval must be positive")
        self.log = log
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> int:
        """Run one compaction now."""
        removed = self.log.compact()
        self.runs += 1
        if removed:
            logger.debug(f"Compacted recency log: removed {removed}, kept {len(self.log)}")
        return removed

    async def start(self) -> None:
        if self.running:
            logger.warning("Compaction task already running")
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Recency compaction every {self.interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.tick()
