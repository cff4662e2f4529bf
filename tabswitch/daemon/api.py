"""HTTP API for the tabswitch daemon."""

from aiohttp import web
from loguru import logger

from ..channel import WebSocketPort


def create_api_app(daemon) -> web.Application:
    """Create the aiohttp application with routes."""
    app = web.Application()
    app['daemon'] = daemon

    app.router.add_get('/port', handle_port)
    app.router.add_post('/activated', handle_activated)
    app.router.add_get('/status', handle_status)
    app.router.add_get('/health', handle_health)

    return app


async def handle_port(request: web.Request) -> web.WebSocketResponse:
    """One switcher session per WebSocket connection."""
    daemon = request.app['daemon']
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    logger.debug("Switcher session connected")
    await daemon.serve_session(WebSocketPort(ws))
    logger.debug("Switcher session disconnected")
    return ws


async def handle_activated(request: web.Request) -> web.Response:
    """Host feed for tab activation notifications."""
    daemon = request.app['daemon']

    try:
        data = await request.json()
    except ValueError:
        return web.json_response({'error': 'body must be JSON'}, status=400)

    tab_id = data.get('tabId') if isinstance(data, dict) else None
    if not isinstance(tab_id, int) or isinstance(tab_id, bool):
        return web.json_response({'error': 'tabId must be an integer'}, status=400)

    daemon.record_activation(tab_id)
    return web.json_response({'status': 'recorded', 'tabId': tab_id}, status=202)


async def handle_status(request: web.Request) -> web.Response:
    """Handle status requests."""
    daemon = request.app['daemon']
    return web.json_response(daemon.get_status())


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({'status': 'ok'})
