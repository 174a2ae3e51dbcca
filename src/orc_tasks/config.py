"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class Config:
    db_path: Path = field(default_factory=lambda: Path.home() / ".orc_tasks" / "orc.db")
    public_url: str = "http://localhost:6970"
    mcp_prefix: str = "/mcp"
    host: str = "127.0.0.1"
    port: int = 6970
    orchestrator_marker: str = "orc"
    worktrees_marker: str = "worktrees"
    request_timeout: float = 30.0
    token_expires_in: int = 3600
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if db := os.environ.get("ORC_DB_PATH"):
            config.db_path = Path(db)

        if url := os.environ.get("ORC_PUBLIC_URL"):
            config.public_url = url.rstrip("/")

        if prefix := os.environ.get("ORC_MCP_PREFIX"):
            config.mcp_prefix = "/" + prefix.strip("/")

        if host := os.environ.get("ORC_HOST"):
            config.host = host

        if port := os.environ.get("ORC_PORT"):
            config.port = int(port)

        if marker := os.environ.get("ORC_ORCHESTRATOR_MARKER"):
            config.orchestrator_marker = marker

        if marker := os.environ.get("ORC_WORKTREES_MARKER"):
            config.worktrees_marker = marker

        if timeout := os.environ.get("ORC_REQUEST_TIMEOUT"):
            config.request_timeout = float(timeout)

        if expires := os.environ.get("ORC_TOKEN_EXPIRES_IN"):
            config.token_expires_in = int(expires)

        if level := os.environ.get("ORC_LOG_LEVEL"):
            config.log_level = level.strip().upper()

        return config

    @property
    def resource_metadata_url(self) -> str:
        return f"{self.public_url}/.well-known/oauth-protected-resource"


def get_config() -> Config:
    return Config.from_env()
