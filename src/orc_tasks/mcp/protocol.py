"""MCP JSON-RPC dispatcher.

Turns one parsed JSON-RPC payload into replies passed to a ``send``
callback. A single request produces one reply, a notification produces none,
and a batch produces one per request it contains. Transports decide what to
do with them; the HTTP gateway keeps only the first.
"""

import logging
import threading
from collections.abc import Callable
from typing import Any

import mcp.types as types
import pydantic

from orc_tasks.config import Config
from orc_tasks.core.context import resolve_context
from orc_tasks.core.errors import ProtocolError, RequestCancelled
from orc_tasks.db.engine import get_db
from orc_tasks.mcp.registry import Catalogue, OperationContext
from orc_tasks.mcp.tools import SERVER_NAME, SERVER_VERSION

logger = logging.getLogger(__name__)

INSTRUCTIONS = (
    "ORC coordinates an orchestrator and implementer agents through a shared task "
    "ledger. Orchestrators create tasks in worktrees and watch global_status; "
    "implementers read get_my_tasks and report progress with update_task."
)


def error_response(request_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": request_id}


def _dump(model: pydantic.BaseModel) -> dict:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


class Dispatcher:
    """Routes JSON-RPC methods to the operation catalogue."""

    def __init__(self, catalogue: Catalogue, config: Config):
        self.catalogue = catalogue
        self.config = config

    def dispatch(
        self,
        message: Any,
        working_dir: str,
        send: Callable[[dict], None],
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Dispatch one payload. Once ``cancel_event`` is set, tool calls commit nothing."""
        if isinstance(message, list):
            if not message:
                send(error_response(None, types.INVALID_REQUEST, "Invalid Request"))
                return
            for item in message:
                self._dispatch_one(item, working_dir, send, cancel_event)
            return
        self._dispatch_one(message, working_dir, send, cancel_event)

    def _dispatch_one(
        self,
        message: Any,
        working_dir: str,
        send: Callable[[dict], None],
        cancel_event: threading.Event | None = None,
    ) -> None:
        if not isinstance(message, dict) or "method" not in message:
            request_id = message.get("id") if isinstance(message, dict) else None
            send(error_response(request_id, types.INVALID_REQUEST, "Invalid Request"))
            return

        if "id" not in message:
            logger.debug("Notification %s", message.get("method"))
            return

        try:
            request = types.JSONRPCRequest.model_validate(message)
        except pydantic.ValidationError:
            request_id = message.get("id")
            if not isinstance(request_id, (str, int)):
                request_id = None
            send(error_response(request_id, types.INVALID_REQUEST, "Invalid Request"))
            return

        logger.info("MCP request: method=%s id=%s", request.method, request.id)
        try:
            result = self._handle(request.method, request.params or {}, working_dir, cancel_event)
        except ProtocolError as e:
            logger.info("MCP request %s rejected: %s", request.id, e.message)
            send(error_response(request.id, e.code, e.message))
            return
        except RequestCancelled:
            logger.warning("MCP request %s timed out; its changes were rolled back", request.id)
            return
        send({"jsonrpc": "2.0", "id": request.id, "result": result})

    def _handle(
        self,
        method: str,
        params: dict,
        working_dir: str,
        cancel_event: threading.Event | None = None,
    ) -> dict:
        if method == "initialize":
            return _dump(types.InitializeResult(
                protocolVersion=types.LATEST_PROTOCOL_VERSION,
                capabilities=types.ServerCapabilities(tools=types.ToolsCapability(listChanged=False)),
                serverInfo=types.Implementation(name=SERVER_NAME, version=SERVER_VERSION),
                instructions=INSTRUCTIONS,
            ))
        if method == "ping":
            return {}
        if method == "tools/list":
            return _dump(types.ListToolsResult(tools=self.catalogue.tools()))
        if method == "tools/call":
            return self._call_tool(params, working_dir, cancel_event)
        raise ProtocolError(types.METHOD_NOT_FOUND, f"Method not found: {method}")

    def _call_tool(
        self,
        params: dict,
        working_dir: str,
        cancel_event: threading.Event | None = None,
    ) -> dict:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise ProtocolError(types.INVALID_PARAMS, "Tool name is required")

        with get_db(self.config.db_path, cancel_event) as db:
            agent = resolve_context(
                db,
                working_dir,
                orchestrator_marker=self.config.orchestrator_marker,
                worktrees_marker=self.config.worktrees_marker,
            )
            ctx = OperationContext(db=db, agent=agent, config=self.config)
            outcome = self.catalogue.invoke(name, params.get("arguments"), ctx)

        return _dump(types.CallToolResult(
            content=[types.TextContent(type="text", text=outcome.text)],
            isError=outcome.is_error,
        ))
