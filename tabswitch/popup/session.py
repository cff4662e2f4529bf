"""A single switcher session: fetch, filter, select, act."""

import asyncio
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

import aiohttp
from loguru import logger

from ..channel import CorrelationChannel, Port, WebSocketPort, memory_port_pair
from ..errors import ChannelClosedError
from ..models import TabSnapshot
from .cursor import SelectionCursor
from .query import RankedResult, evaluate


class SwitcherSession:
    """
    State of one open switcher.

    Holds the tab list fetched from the daemon, the live query string, the
    ranked results and the selection cursor. Closing the session tears down
    its channel; any request still in flight is abandoned. When ``reader`` is
    the task delivering the channel's responses, a call made while the other
    end hangs up raises ``ChannelClosedError`` instead of waiting forever.
    """

    def __init__(
        self,
        channel: CorrelationChannel,
        min_score: float = 0.0,
        reader: Optional[asyncio.Task] = None,
    ):
        self.channel = channel
        self.reader = reader
        self.min_score = min_score
        self.tabs: List[TabSnapshot] = []
        self.query = ""
        self.results: List[RankedResult] = []
        self.cursor = SelectionCursor()

    async def open(self) -> List[RankedResult]:
        """Fetch the ordered tab list and show it unfiltered."""
        start = time.perf_counter()
        tabs = await self._call("listTabs")
        logger.debug(f"queryTabs {(time.perf_counter() - start) * 1000:.1f}ms ({len(tabs)} tabs)")
        self._set_tabs(tabs)
        return self.results

    def set_query(self, query: str) -> List[RankedResult]:
        self.query = query
        self.cursor.set_query(query)
        self._refresh()
        return self.results

    def select_next(self) -> Optional[RankedResult]:
        self.cursor.next()
        return self.selected()

    def select_prev(self) -> Optional[RankedResult]:
        self.cursor.prev()
        return self.selected()

    def selected(self) -> Optional[RankedResult]:
        if not self.results:
            return None
        return self.results[self.cursor.clamp(len(self.results))]

    async def activate_selected(self) -> Optional[TabSnapshot]:
        """Ask the daemon to focus the selected tab; returns it, or None when nothing matched."""
        result = self.selected()
        if result is None:
            return None
        tab = result.tab
        await self._call("activateTab", {"tabID": tab.id, "windowID": tab.window_id})
        return tab

    async def close_tab(self, tab_id: int) -> List[RankedResult]:
        tabs = await self._call("closeTab", {"tabID": tab_id})
        self._set_tabs(tabs)
        return self.results

    async def close(self) -> None:
        await self.channel.close()

    async def _call(self, method: str, args: Optional[Dict[str, Any]] = None) -> Any:
        future = await self.channel.send(method, args)
        if self.reader is None:
            return await future
        await asyncio.wait({future, self.reader}, return_when=asyncio.FIRST_COMPLETED)
        if not future.done():
            raise ChannelClosedError(f"{method}: channel closed before the response arrived")
        return future.result()

    def _set_tabs(self, wire_tabs: List[Dict[str, Any]]) -> None:
        self.tabs = [TabSnapshot.from_wire(t) for t in wire_tabs]
        self._refresh()

    def _refresh(self) -> None:
        self.results = evaluate(self.tabs, self.query, self.min_score)
        self.cursor.clamp(len(self.results))


@asynccontextmanager
async def _running_session(port: Port, min_score: float) -> AsyncIterator[SwitcherSession]:
    channel = CorrelationChannel(port)
    reader = asyncio.create_task(channel.run())
    session = SwitcherSession(channel, min_score, reader)
    try:
        yield session
    finally:
        await session.close()
        await asyncio.gather(reader, return_exceptions=True)


@asynccontextmanager
async def connect_session(
    socket_path: Union[str, Path],
    min_score: float = 0.0,
) -> AsyncIterator[SwitcherSession]:
    """Open a session against a daemon listening on a Unix socket."""
    connector = aiohttp.UnixConnector(path=str(socket_path))
    async with aiohttp.ClientSession(connector=connector) as http:
        ws = await http.ws_connect("http://localhost/port")
        async with _running_session(WebSocketPort(ws), min_score) as session:
            yield session


@asynccontextmanager
async def local_session(
    serve: Callable[[Port], Awaitable[None]],
    min_score: float = 0.0,
) -> AsyncIterator[SwitcherSession]:
    """Open a session against an in-process responder, e.g. ``daemon.serve_session``."""
    client_port, server_port = memory_port_pair()
    server = asyncio.create_task(serve(server_port))
    try:
        async with _running_session(client_port, min_score) as session:
            yield session
    finally:
        await asyncio.gather(server, return_exceptions=True)
