"""Tab providers: the daemon's view of the host browser's tab API."""

import importlib
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from loguru import logger

from ..errors import ConfigError
from ..models import TabSnapshot
from .bus import Event, EventBus
from .directory import TabProvider


class InMemoryTabProvider:
    """
    Tab provider holding its tabs in process.

    Used when the host pushes its state into the daemon, and in tests.
    Activating a tab is reported through ``on_activated`` the same way a host
    notification would be; closing one publishes ``tab.closed`` on the bus.
    """

    def __init__(
        self,
        tabs: Iterable[Union[TabSnapshot, Dict[str, Any]]] = (),
        bus: Optional[EventBus] = None,
        on_activated: Optional[Callable[[int], None]] = None,
    ):
        self._tabs: Dict[int, TabSnapshot] = {}
        self._bus = bus
        self._on_activated = on_activated
        self.active: Dict[int, int] = {}
        for tab in tabs:
            self.add_tab(tab)

    def add_tab(self, tab: Union[TabSnapshot, Dict[str, Any]]) -> TabSnapshot:
        if not isinstance(tab, TabSnapshot):
            tab = TabSnapshot.from_wire(tab)
        self._tabs[tab.id] = tab
        return tab

    async def query_all_tabs(self) -> List[TabSnapshot]:
        return list(self._tabs.values())

    async def activate_tab(self, tab_id: int, window_id: int) -> None:
        if tab_id not in self._tabs:
            logger.debug(f"Ignoring activation of vanished tab {tab_id}")
            return
        self.active[window_id] = tab_id
        if self._on_activated is not None:
            self._on_activated(tab_id)

    async def close_tab(self, tab_id: int) -> None:
        tab = self._tabs.pop(tab_id, None)
        if tab is None:
            logger.debug(f"Ignoring close of vanished tab {tab_id}")
            return
        if self.active.get(tab.window_id) == tab_id:
            del self.active[tab.window_id]
        self._publish("tab.closed", {"tab_id": tab_id, "window_id": tab.window_id})

    def _publish(self, event_type: str, data: Dict[str, Any]) -> None:
        if self._bus is not None:
            self._bus.emit_nowait(Event(type=event_type, data=data, source="provider"))


def load_provider(factory_path: str, **kwargs: Any) -> TabProvider:
    """
    Build a provider from a ``module:attribute`` import path.

    Raises:
        ConfigError: if the path cannot be imported
    """
    module_name, _, attr = factory_path.partition(":")
    if not module_name or not attr:
        raise ConfigError(f"Provider factory must look like 'module:attribute': {factory_path!r}")
    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"Cannot load provider {factory_path!r}: {e}") from e

    logger.info(f"Using tab provider {factory_path}")
    return factory(**kwargs)
