"""Live tab snapshots pulled from the host's tab provider."""

from typing import List, Protocol, Sequence

from ..models import TabSnapshot


class TabProvider(Protocol):
    """Host browser tab API, consumed as an opaque collaborator."""

    async def query_all_tabs(self) -> Sequence[TabSnapshot]:
        ...

    async def activate_tab(self, tab_id: int, window_id: int) -> None:
        ...

    async def close_tab(self, tab_id: int) -> None:
        ...


class TabDirectory:
    """Fresh view of the open tabs; every refresh re-queries the provider."""

    def __init__(self, provider: TabProvider):
        self.provider = provider

    async def refresh(self) -> List[TabSnapshot]:
        tabs = await self.provider.query_all_tabs()
        # Tabs with neither title nor URL are still loading or privileged
        return [t for t in tabs if t.title or t.url]
