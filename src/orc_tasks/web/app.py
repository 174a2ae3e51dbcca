"""HTTP application: MCP gateway in front of the OAuth discovery stub."""

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from orc_tasks.config import Config, get_config
from orc_tasks.mcp.gateway import McpGateway
from orc_tasks.mcp.protocol import Dispatcher
from orc_tasks.mcp.registry import Catalogue
from orc_tasks.mcp.tools import build_catalogue
from orc_tasks.web import oauth


async def health(request: Request):
    return JSONResponse({"status": "ok"})


def create_app(config: Config | None = None, catalogue: Catalogue | None = None) -> Starlette:
    config = config or get_config()
    catalogue = catalogue or build_catalogue()
    dispatcher = Dispatcher(catalogue, config)

    routes = [Route("/up", health), *oauth.routes]
    app = Starlette(
        routes=routes,
        middleware=[Middleware(McpGateway, dispatcher=dispatcher, config=config)],
    )
    app.state.config = config
    return app


def run_server(config: Config | None = None, host: str | None = None, port: int | None = None):
    config = config or get_config()
    app = create_app(config)
    uvicorn.run(app, host=host or config.host, port=port or config.port, log_level=config.log_level.lower())
