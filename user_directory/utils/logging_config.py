"""
Logging configuration for the user directory server.
"""
import logging
from typing import Optional
from user_directory.core.config import ServerConfig, config as default_config

# Per-request and per-event library loggers, held at WARNING outside debug mode
QUIET_LOGGERS = (
    "uvicorn.access",
    "mcp.server.lowlevel.server",
    "sse_starlette",
    "watchdog",
)

def configure_logging(server_config: Optional[ServerConfig] = None):
    """Configure logging based on server settings."""
    server_config = server_config or default_config
    root_logger = logging.getLogger()

    console_handler = logging.StreamHandler()
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)

    # Set log level based on debug mode
    log_level = logging.DEBUG if server_config.debug_mode else logging.INFO
    root_logger.setLevel(log_level)
    console_handler.setLevel(log_level)

    # Remove any existing handlers to avoid duplicate logs
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    library_level = logging.INFO if server_config.debug_mode else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logging.info(f"Logging configured with level: {logging.getLevelName(log_level)}")
    if server_config.debug_mode:
        logging.debug("Debug logging enabled")
    return log_level
