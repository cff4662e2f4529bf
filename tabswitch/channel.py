"""Request/response correlation over an asynchronous duplex message port.

A port carries JSON-like mappings in both directions with no ordering
guarantee between requests and responses. This module layers typed
request/response pairs on top of it:

- Envelopes are a tagged union (request, success, failure) validated once at
  the boundary by ``parse_envelope``.
- ``CorrelationChannel`` is the requesting side. Every request gets a fresh
  id and a ``PendingRequest`` entry that lives until the matching response
  arrives or the channel is torn down.
- ``RpcResponder`` is the answering side. It dispatches each request by
  method name in its own task, so responses may leave in any order.

Teardown abandons pending requests: their futures are never resolved or
rejected. Closing the channel is the only cancellation there is.
"""

import asyncio
import inspect
import itertools
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Protocol, Set, Tuple, Union

from aiohttp import WSMsgType
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, TypeAdapter, ValidationError

from .errors import ChannelClosedError, EnvelopeError, RemoteError, UnknownMethodError


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: StrictInt = Field(gt=0)


class RpcRequest(_Envelope):
    """``{rpc, id, args?}``"""
    rpc: StrictStr
    args: Optional[Dict[str, Any]] = None

    def to_message(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"rpc": self.rpc, "id": self.id}
        if self.args is not None:
            message["args"] = self.args
        return message


class RpcSuccess(_Envelope):
    """``{id, result}``"""
    result: Any

    def to_message(self) -> Dict[str, Any]:
        return {"id": self.id, "result": self.result}


class RpcFailure(_Envelope):
    """``{id, error}``"""
    error: StrictStr

    def to_message(self) -> Dict[str, Any]:
        return {"id": self.id, "error": self.error}


Envelope = Union[RpcRequest, RpcSuccess, RpcFailure]

_envelope_adapter: TypeAdapter = TypeAdapter(Envelope)


def parse_envelope(message: Any) -> Envelope:
    """Validate an inbound message into exactly one envelope type."""
    try:
        return _envelope_adapter.validate_python(message)
    except ValidationError as e:
        raise EnvelopeError(
            f"invalid envelope {message!r}: {e.error_count()} validation error(s)"
        ) from e


class Port(Protocol):
    """Duplex, message-oriented transport."""

    async def post(self, message: Dict[str, Any]) -> None:
        ...

    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        ...

    async def close(self) -> None:
        ...


_CLOSED = object()


class MemoryPort:
    """In-process port; one half of a pair created by ``memory_port_pair``."""

    def __init__(self):
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._peer: Optional["MemoryPort"] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def post(self, message: Dict[str, Any]) -> None:
        if self._closed or self._peer is None:
            raise ChannelClosedError("port is closed")
        self._peer._inbox.put_nowait(message)

    async def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        while True:
            message = await self._inbox.get()
            if message is _CLOSED:
                return
            yield message

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put_nowait(_CLOSED)
        # Disconnect is visible on both ends
        if self._peer is not None:
            await self._peer.close()


def memory_port_pair() -> Tuple[MemoryPort, MemoryPort]:
    """Create two connected in-process ports."""
    left, right = MemoryPort(), MemoryPort()
    left._peer = right
    right._peer = left
    return left, right


class WebSocketPort:
    """Port over an aiohttp WebSocket (client or server side) using JSON text frames."""

    def __init__(self, ws):
        self._ws = ws

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def post(self, message: Dict[str, Any]) -> None:
        if self._ws.closed:
            raise ChannelClosedError("websocket is closed")
        try:
            await self._ws.send_json(message)
        except ConnectionResetError as e:
            raise ChannelClosedError(str(e)) from e

    async def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        async for msg in self._ws:
            if msg.type == WSMsgType.TEXT:
                try:
                    yield msg.json()
                except ValueError:
                    logger.warning(f"Dropping non-JSON frame: {msg.data[:80]!r}")
            elif msg.type == WSMsgType.ERROR:
                logger.warning(f"WebSocket error: {self._ws.exception()}")
                return

    async def close(self) -> None:
        await self._ws.close()


@dataclass
class PendingRequest:
    """A request awaiting its response; owned by the channel until settled."""
    id: int
    method: str
    future: asyncio.Future
    sent_at: float = field(default_factory=time.perf_counter)


class CorrelationChannel:
    """
    Requesting side of the protocol.

    Ids start at 1 and are never reused for the lifetime of the channel.
    Responses are matched by id only; arrival order is irrelevant.
    """

    def __init__(self, port: Port):
        self._port = port
        self._ids = itertools.count(1)
        self._pending: Dict[int, PendingRequest] = {}
        self._closed = False
        self._stats = defaultdict(int)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_ids(self) -> List[int]:
        return sorted(self._pending)

    async def send(self, method: str, args: Optional[Dict[str, Any]] = None) -> asyncio.Future:
        """
        Post a request and return the future its response will settle.

        Raises:
            ChannelClosedError: if the channel was already torn down
        """
        if self._closed:
            raise ChannelClosedError(f"cannot send {method}: channel is closed")

        request = RpcRequest(rpc=method, id=next(self._ids), args=args)
        future = asyncio.get_running_loop().create_future()
        self._pending[request.id] = PendingRequest(request.id, method, future)

        try:
            await self._port.post(request.to_message())
        except Exception:
            self._pending.pop(request.id, None)
            raise

        self._stats["sent"] += 1
        return future

    async def call(self, method: str, args: Optional[Dict[str, Any]] = None) -> Any:
        """Send a request and wait for its result."""
        future = await self.send(method, args)
        return await future

    def deliver(self, message: Any) -> None:
        """Settle the pending request a response belongs to, if there still is one."""
        try:
            envelope = parse_envelope(message)
        except EnvelopeError as e:
            logger.warning(f"Dropping malformed message: {e}")
            self._stats["malformed"] += 1
            return

        if isinstance(envelope, RpcRequest):
            logger.warning(f"Dropping request {envelope.rpc!r} sent to a requester")
            self._stats["malformed"] += 1
            return

        pending = self._pending.pop(envelope.id, None)
        if pending is None:
            # Unknown, already settled, or raced with teardown
            logger.debug(f"Dropping response for unknown request id {envelope.id}")
            self._stats["dropped"] += 1
            return

        elapsed_ms = (time.perf_counter() - pending.sent_at) * 1000
        logger.debug(f"rpc:{pending.method}:{pending.id} {elapsed_ms:.1f}ms")

        if pending.future.done():
            return
        if isinstance(envelope, RpcFailure):
            pending.future.set_exception(RemoteError(envelope.error, envelope.id))
            self._stats["failed"] += 1
        else:
            pending.future.set_result(envelope.result)
            self._stats["resolved"] += 1

    async def run(self) -> None:
        """Deliver inbound messages until the port closes, then tear down."""
        try:
            async for message in self._port:
                self.deliver(message)
        finally:
            await self.close()

    async def close(self) -> None:
        """Tear down; pending requests are abandoned, not rejected."""
        if self._closed:
            return
        self._closed = True
        abandoned = len(self._pending)
        self._pending.clear()
        self._stats["abandoned"] += abandoned
        if abandoned:
            logger.debug(f"Channel closed with {abandoned} request(s) in flight")
        await self._port.close()

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)


Handler = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]
Observer = Callable[[str, float, Optional[BaseException]], None]


class RpcResponder:
    """
    Answering side of the protocol.

    Each inbound request is handled in its own task. Handler failures and
    unknown methods become failure responses and never end the session.
    """

    def __init__(self, handlers: Dict[str, Handler], observer: Optional[Observer] = None):
        self._handlers = dict(handlers)
        self._observer = observer

    @property
    def methods(self) -> List[str]:
        return sorted(self._handlers)

    async def handle(self, request: RpcRequest) -> Dict[str, Any]:
        """Run the handler for one request and build its response message."""
        handler = self._handlers.get(request.rpc)
        if handler is None:
            error = UnknownMethodError(request.rpc)
            logger.warning(f"{error} (id {request.id})")
            self._observe(request.rpc, 0.0, error)
            return RpcFailure(id=request.id, error=str(error)).to_message()

        start = time.perf_counter()
        try:
            result = handler(request.args or {})
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.error(f"rpc:{request.rpc}:{request.id} failed after {elapsed_ms:.1f}ms: {e}")
            self._observe(request.rpc, elapsed_ms, e)
            return RpcFailure(id=request.id, error=str(e)).to_message()

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"rpc:{request.rpc}:{request.id} {elapsed_ms:.1f}ms")
        self._observe(request.rpc, elapsed_ms, None)
        return RpcSuccess(id=request.id, result=result).to_message()

    async def serve(self, port: Port) -> None:
        """Answer requests from ``port`` until it closes."""
        tasks: Set[asyncio.Task] = set()

        async for message in port:
            try:
                envelope = parse_envelope(message)
            except EnvelopeError as e:
                logger.warning(f"Dropping malformed message: {e}")
                continue
            if not isinstance(envelope, RpcRequest):
                logger.warning(f"Dropping response (id {envelope.id}) sent to a responder")
                continue

            task = asyncio.create_task(self._respond(port, envelope))
            tasks.add(task)
            task.add_done_callback(tasks.discard)

        # In-flight handlers finish; their responses go nowhere
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _respond(self, port: Port, request: RpcRequest) -> None:
        response = await self.handle(request)
        try:
            await port.post(response)
        except ChannelClosedError:
            logger.debug(f"Response for {request.rpc}:{request.id} dropped, port closed")

    def _observe(self, method: str, elapsed_ms: float, error: Optional[BaseException]) -> None:
        if self._observer is not None:
            self._observer(method, elapsed_ms, error)
