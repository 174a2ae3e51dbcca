"""HTTP gateway for MCP JSON-RPC calls.

Mounted as ASGI middleware in front of the web app. Requests under the MCP
prefix are answered here; everything else passes through untouched.

Bearer tokens are only checked for presence. Nothing issued by the OAuth
endpoints is verified again.

A request that outlives the timeout gets a 500 and its worker thread is left
to finish. The thread's connection refuses to commit after that, so a
timed-out call leaves the ledger unchanged. A commit that lands between the
deadline and the flag being set can still persist.
"""

import json
import logging
import threading

import anyio
import anyio.to_thread
import mcp.types as types
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from orc_tasks.config import Config
from orc_tasks.core.context import current_working_dir
from orc_tasks.core.errors import AuthGateError
from orc_tasks.mcp.protocol import Dispatcher, error_response

logger = logging.getLogger(__name__)

AUTH_REQUIRED = -32001
WORKING_DIR_HEADER = "x-orc-working-dir"


class ReplyChannel:
    """Holds the first reply produced while dispatching one request."""

    def __init__(self):
        self._reply: dict | None = None
        self._closed = False

    @property
    def reply(self) -> dict | None:
        return self._reply

    def send(self, message: dict) -> None:
        if self._closed:
            logger.warning("Dropping reply sent after the request finished")
            return
        if self._reply is not None:
            logger.warning("Dropping extra reply for id=%s", message.get("id"))
            return
        self._reply = message

    def close(self) -> None:
        self._closed = True


class McpGateway:
    def __init__(self, app: ASGIApp, dispatcher: Dispatcher, config: Config):
        self.app = app
        self.dispatcher = dispatcher
        self.config = config
        self.prefix = "/" + config.mcp_prefix.strip("/")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        subpath = self._subpath(scope["path"]) if scope["type"] == "http" else None
        if subpath is None:
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        response = await self.handle(request, subpath)
        await response(scope, receive, send)

    def _subpath(self, path: str) -> str | None:
        if path == self.prefix:
            return ""
        if path.startswith(self.prefix + "/"):
            return path[len(self.prefix):].rstrip("/")
        return None

    async def handle(self, request: Request, subpath: str) -> Response:
        if subpath in ("", "/messages"):
            return await self.handle_messages(request)
        if subpath == "/sse":
            return self.handle_sse(request)
        return JSONResponse(
            error_response(None, types.METHOD_NOT_FOUND, "Endpoint not found"),
            status_code=404,
        )

    async def handle_messages(self, request: Request) -> Response:
        if request.method != "POST":
            return PlainTextResponse("Method not allowed", status_code=405, headers={"Allow": "POST"})

        try:
            self.authenticate(request)
        except AuthGateError as e:
            logger.info("Rejected MCP request from %s: %s", request.client, e.message)
            return JSONResponse(
                error_response(None, AUTH_REQUIRED, e.message),
                status_code=401,
                headers={"WWW-Authenticate": e.challenge},
            )

        body = await request.body()
        try:
            message = json.loads(body)
        except ValueError as e:
            logger.error("JSON parse error: %s", e)
            return JSONResponse(
                error_response(None, types.PARSE_ERROR, "Parse error"), status_code=400
            )

        working_dir = request.headers.get(WORKING_DIR_HEADER) or current_working_dir()
        channel = ReplyChannel()
        cancel_event = threading.Event()
        try:
            with anyio.fail_after(self.config.request_timeout):
                await anyio.to_thread.run_sync(
                    self.dispatcher.dispatch, message, working_dir, channel.send, cancel_event,
                    abandon_on_cancel=True,
                )
        except TimeoutError:
            cancel_event.set()
            logger.error("MCP request timed out after %ss", self.config.request_timeout)
            return self._internal_error(f"request timed out after {self.config.request_timeout:g}s")
        except Exception as e:
            logger.exception("Error processing MCP request")
            return self._internal_error(str(e))
        finally:
            channel.close()

        if channel.reply is None:
            return JSONResponse(
                error_response(None, types.INTERNAL_ERROR, "No response generated"),
                status_code=500,
            )
        return JSONResponse(channel.reply)

    def handle_sse(self, request: Request) -> Response:
        if request.method != "GET":
            return PlainTextResponse("Method not allowed", status_code=405, headers={"Allow": "GET"})

        async def probe():
            yield ": SSE endpoint available\n\n"

        return StreamingResponse(
            probe(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    def authenticate(self, request: Request) -> None:
        header = request.headers.get("authorization")
        scheme, _, token = (header or "").partition(" ")
        if header is None or scheme != "Bearer":
            raise AuthGateError(
                "Authorization required",
                f'Bearer realm="MCP", resource_metadata="{self.config.resource_metadata_url}"',
            )
        if not token.strip():
            raise AuthGateError("Invalid token", 'Bearer realm="MCP", error="invalid_token"')

    @staticmethod
    def _internal_error(detail: str) -> Response:
        return JSONResponse(
            error_response(None, types.INTERNAL_ERROR, f"Internal error: {detail}"),
            status_code=500,
        )
