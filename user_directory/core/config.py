"""
Configuration management for the user directory server.
"""
import os
import logging
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class ServerConfig:
    """Server configuration management."""

    def __init__(self):
        # Server settings
        self.debug_mode = _env_flag("DEBUG_MODE")
        self.port = int(os.getenv("MCP_SERVER_PORT", "3000"))
        self.host = os.getenv("MCP_SERVER_HOST", "127.0.0.1")  # Default to localhost
        self.name = os.getenv("MCP_SERVER_NAME", "user-directory")
        self.version = os.getenv("MCP_SERVER_VERSION", "1.0.0")
        self.reload_delay = float(os.getenv("MCP_RELOAD_DELAY", "1.0"))

        # HTTP surface
        self.sse_path = os.getenv("MCP_SSE_PATH", "/sse")
        self.message_path = os.getenv("MCP_MESSAGE_PATH", "/message")

        # Sampling round-trip bound, in seconds
        self.sampling_timeout = float(os.getenv("MCP_SAMPLING_TIMEOUT", "60"))

        # Store watcher follows debug mode unless set explicitly
        self.watch_store = _env_flag(
            "MCP_WATCH_STORE",
            "true" if self.debug_mode else "false"
        )

        # Paths
        self.users_file = self._resolve_path(
            os.getenv("MCP_USERS_FILE"),
            Path("data") / "users.json"
        )
        self.config_dir = self._resolve_path(
            os.getenv("MCP_CONFIG_DIR"),
            Path("config")
        )

    def _resolve_path(self, env_path: Optional[str], default: Path) -> Path:
        """Resolve a path from environment or default."""
        if env_path:
            return Path(env_path).resolve()
        return Path.cwd() / default

    def ensure_directories(self):
        """Ensure required directories exist."""
        self.users_file.parent.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def log_config(self):
        """Log the current configuration."""
        logger.info("Server Configuration:")
        logger.info(f"  Name: {self.name} v{self.version}")
        logger.info(f"  Host: {self.host}")
        logger.info(f"  Port: {self.port}")
        logger.info(f"  Debug Mode: {self.debug_mode}")
        logger.info(f"  Users File: {self.users_file}")
        logger.info(f"  Config Directory: {self.config_dir}")
        logger.info(f"  Sampling Timeout: {self.sampling_timeout}s")
        logger.info(f"  Watch Store: {self.watch_store}")

# Global configuration instance
config = ServerConfig()
