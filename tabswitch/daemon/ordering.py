"""Most-recently-used ordering of the live tab set."""

from typing import Dict, List, Sequence

from ..models import TabSnapshot
from .directory import TabDirectory
from .recency import RecencyLog


def order_tabs(recency: Sequence[int], tabs: Sequence[TabSnapshot]) -> List[TabSnapshot]:
    """
    Order live tabs by recency, deduplicating the raw log on the fly.

    The first recency entry is the tab being switched away from and is
    skipped. Live tabs the log never placed follow in directory order, and
    ids that are no longer live are dropped.
    """
    by_id: Dict[int, TabSnapshot] = {}
    for tab in tabs:
        by_id.setdefault(tab.id, tab)
    placed = {tab_id: False for tab_id in by_id}

    ordered: List[TabSnapshot] = []
    for tab_id in recency[1:]:
        if placed.get(tab_id, True):
            continue
        placed[tab_id] = True
        ordered.append(by_id[tab_id])

    for tab in tabs:
        if not placed[tab.id]:
            placed[tab.id] = True
            ordered.append(tab)

    return ordered


class OrderingService:
    """Combines the recency log and a directory refresh into an ordered tab list."""

    def __init__(self, log: RecencyLog, directory: TabDirectory):
        self.log = log
        self.directory = directory

    async def ordered_tabs(self) -> List[TabSnapshot]:
        # Snapshot first; the directory await may let more activations in
        recency = self.log.snapshot()
        tabs = await self.directory.refresh()
        return order_tabs(recency, tabs)
