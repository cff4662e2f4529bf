"""Main daemon process for tabswitch."""

import asyncio
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import psutil
from aiohttp import web
from loguru import logger
from pydantic import BaseModel, ConfigDict, StrictInt, ValidationError

from .. import __version__
from ..channel import Port, RpcResponder
from ..errors import ConfigError, DaemonRunningError
from .api import create_api_app
from .bus import Event, EventBus
from .config import Config
from .directory import TabDirectory, TabProvider
from .errors import ErrorLog
from .metrics import MetricsCollector
from .ordering import OrderingService
from .providers import load_provider
from .recency import CompactionTask, RecencyLog


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


class CloseTabArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")
    tabID: StrictInt


class ActivateTabArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")
    tabID: StrictInt
    windowID: StrictInt = 0


def _parse_args(model, method: str, args: Dict[str, Any]):
    try:
        return model(**args)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ValueError(f"invalid args for {method}: {fields}") from e


class SwitcherDaemon:
    """Owns the recency log and answers switcher sessions."""

    def __init__(self, config: Config, provider: Optional[TabProvider] = None):
        self.config = config
        self.start_time = datetime.utcnow()

        # Core services
        self.event_bus = EventBus()
        self.recency = RecencyLog()
        self.compaction = CompactionTask(self.recency, config.recency.compaction_interval)
        if provider is None:
            provider = load_provider(
                config.provider.factory,
                tabs=config.provider.tabs,
                bus=self.event_bus,
                on_activated=self.record_activation,
            )
        self.provider = provider
        self.directory = TabDirectory(provider)
        self.ordering = OrderingService(self.recency, self.directory)

        self.errors = ErrorLog()
        self.metrics = MetricsCollector()
        self.responder = RpcResponder(
            {
                "listTabs": self.rpc_list_tabs,
                "closeTab": self.rpc_close_tab,
                "activateTab": self.rpc_activate_tab,
            },
            observer=self._observe_rpc,
        )
        self.active_sessions = 0

        # HTTP API
        self.api_runner: Optional[web.AppRunner] = None
        self.api_site: Optional[web.BaseSite] = None

    async def start(self, serve_api: bool = True) -> None:
        """Start all daemon services."""
        logger.info("Starting tabswitch daemon...")

        await self.event_bus.start()
        self.event_bus.subscribe("*", self._count_event)
        await self.compaction.start()

        if serve_api:
            await self._start_api()

        logger.info("tabswitch daemon started")

    async def stop(self) -> None:
        """Stop all daemon services."""
        logger.info("Stopping tabswitch daemon...")

        if self.api_site:
            await self.api_site.stop()
            self.api_site = None
        if self.api_runner:
            await self.api_runner.cleanup()
            self.api_runner = None

        await self.compaction.stop()
        await self.event_bus.stop()

        logger.info("tabswitch daemon stopped")

    async def _start_api(self) -> None:
        socket_path = self.config.server.socket_path
        socket_path.parent.mkdir(parents=True, exist_ok=True)
        if socket_path.exists():
            if await _socket_in_use(socket_path):
                raise DaemonRunningError(f"Another daemon is listening on {socket_path}")
            # Left behind by a daemon that did not shut down cleanly
            socket_path.unlink()

        self.api_runner = web.AppRunner(create_api_app(self))
        await self.api_runner.setup()
        self.api_site = web.UnixSite(self.api_runner, str(socket_path))
        await self.api_site.start()

        logger.info(f"API listening on unix:{socket_path}")

    def record_activation(self, tab_id: int) -> None:
        """Host notification entry point; the log is written before anyone is told."""
        self.recency.record_activation(tab_id)
        self.event_bus.emit_nowait(Event(
            type="tab.activated",
            data={"tab_id": tab_id},
            source="host",
        ))

    def _count_event(self, event: Event) -> None:
        self.metrics.increment_counter(f"events.{event.type}")

    async def serve_session(self, port: Port) -> None:
        """Answer one switcher session until its port closes."""
        self.active_sessions += 1
        self.metrics.increment_counter("sessions")
        await self.event_bus.emit(Event(type="session.opened", data={}, source="daemon"))
        try:
            await self.responder.serve(port)
        finally:
            self.active_sessions -= 1
            await self.event_bus.emit(Event(type="session.closed", data={}, source="daemon"))

    async def rpc_list_tabs(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        tabs = await self.ordering.ordered_tabs()
        return [t.to_wire() for t in tabs]

    async def rpc_close_tab(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        parsed = _parse_args(CloseTabArgs, "closeTab", args)
        await self.provider.close_tab(parsed.tabID)
        return await self.rpc_list_tabs({})

    async def rpc_activate_tab(self, args: Dict[str, Any]) -> None:
        parsed = _parse_args(ActivateTabArgs, "activateTab", args)
        await self.provider.activate_tab(parsed.tabID, parsed.windowID)

    def _observe_rpc(self, method: str, elapsed_ms: float, error: Optional[BaseException]) -> None:
        # Method names come from the client
        name = method if method in self.responder.methods else "unknown"
        if error is None:
            self.metrics.record_latency(f"rpc.{name}", elapsed_ms)
            self.metrics.increment_counter(f"rpc.{name}.ok")
        else:
            self.metrics.increment_counter(f"rpc.{name}.error")
            self.errors.record("rpc", error, method=method)

    def get_status(self) -> Dict[str, Any]:
        """Get daemon status and statistics."""
        process = psutil.Process()
        uptime = (datetime.utcnow() - self.start_time).total_seconds()

        return {
            "status": "running",
            "version": __version__,
            "uptime": f"{uptime:.0f}s",
            "stats": {
                "recency_entries": len(self.recency),
                "compactions": self.compaction.runs,
                "active_sessions": self.active_sessions,
                "memory_mb": round(process.memory_info().rss / 1024 / 1024, 1),
                "bus": self.event_bus.get_stats(),
            },
            "metrics": self.metrics.get_all_metrics(),
            "errors": self.errors.summary(),
            "config": {
                "socket_path": str(self.config.server.socket_path),
                "compaction_interval": self.config.recency.compaction_interval,
                "provider": self.config.provider.factory,
            },
        }


async def _socket_in_use(socket_path: Path) -> bool:
    """True when something accepts connections on the socket file."""
    try:
        _, writer = await asyncio.open_unix_connection(str(socket_path))
    except OSError:
        return False
    writer.close()
    await writer.wait_closed()
    return True


def setup_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """Route loguru output to stderr and, optionally, a rotating file."""
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level)

    if log_dir is not None:
        log_dir = Path(log_dir).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "daemon.log",
            rotation="1 day",
            retention="7 days",
            level="DEBUG",
        )


async def main(config_path: Optional[str] = None) -> int:
    """Main entry point for the daemon."""
    try:
        config = Config.load(Path(config_path) if config_path else None)
    except ConfigError as e:
        setup_logging()
        logger.error(f"Configuration error: {e}")
        return 1

    setup_logging(config.logging.level, config.logging.log_dir)

    try:
        daemon = SwitcherDaemon(config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await daemon.start()
        await stop_event.wait()
        logger.info("Shutdown signal received")
    except DaemonRunningError as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        logger.exception(f"Daemon error: {e}")
        return 1
    finally:
        await daemon.stop()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
