"""Error taxonomy shared by the ledger, the operation catalogue and the gateway."""

from mcp.types import INVALID_PARAMS


class OrcError(Exception):
    """Base class for expected, request-scoped failures."""


class ValidationError(OrcError):
    """Raised when a value is outside its enumeration or a required field is empty."""


class NotFound(OrcError):
    """Raised when a task, worktree or repository does not exist."""


class NoContext(OrcError):
    """Raised when the caller cannot be placed in any worktree."""


class AuthGateError(OrcError):
    """Raised by the gateway when the bearer credential is missing or empty."""

    def __init__(self, message: str, challenge: str):
        super().__init__(message)
        self.message = message
        self.challenge = challenge


class ProtocolError(OrcError):
    """A failure reported to the client as a JSON-RPC error object."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class ArgumentError(ProtocolError):
    """Raised when an operation payload does not match its argument schema."""

    def __init__(self, message: str):
        super().__init__(INVALID_PARAMS, message)


class RequestCancelled(OrcError):
    """Raised on commit when the request that opened the connection has timed out."""
