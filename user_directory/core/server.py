"""
MCP server exposing the user directory over SSE.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional
import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route
from mcp import types as mcp_types
from mcp.server.lowlevel import Server
from watchdog.observers import Observer
from user_directory.capabilities import CAPABILITY_MODULES
from user_directory.core.capability_registry import CapabilityRegistry
from user_directory.core.config import ServerConfig, config as default_config
from user_directory.core.errors import MalformedMessage, SessionNotFound
from user_directory.core.sessions import SessionRegistry, current_session_id
from user_directory.core.store import UserStore
from user_directory.handlers.watchdog import StoreFileHandler
from user_directory.utils.config_manager import ConfigManager

# Configure logging
logger = logging.getLogger(__name__)

class UserDirectoryServer:
    """MCP server for the user directory, one protocol session per SSE connection."""

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        store: Optional[UserStore] = None,
        config_manager: Optional[ConfigManager] = None,
    ):
        """Initialize the server."""
        self.config = config or default_config
        self.app = Server(self.config.name, version=self.config.version)
        self.store = store or UserStore(self.config.users_file)
        self.sessions = SessionRegistry(self.config.message_path)
        self.capabilities = CapabilityRegistry(
            self.app,
            self.store,
            config_manager or ConfigManager(self.config.config_dir),
            sampling_timeout=self.config.sampling_timeout,
        )
        self.observer: Optional[Observer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        self.capabilities.load_modules(CAPABILITY_MODULES)
        self._register_subscriptions()

    def initialization_options(self):
        options = self.app.create_initialization_options()
        # The lowlevel server always reports subscribe=False
        options.capabilities.resources = mcp_types.ResourcesCapability(subscribe=True, listChanged=False)
        return options

    def _register_subscriptions(self):
        @self.app.subscribe_resource()
        async def subscribe(uri) -> None:
            self.capabilities.find_resource(str(uri))
            self.sessions.subscribe(current_session_id.get(), str(uri))

        @self.app.unsubscribe_resource()
        async def unsubscribe(uri) -> None:
            self.sessions.unsubscribe(current_session_id.get(), str(uri))

    async def handle_sse(self, request: Request) -> Response:
        """Handle SSE connection."""
        logger.info("New SSE connection attempt")
        async with self.sessions.open_session(
            request.scope,
            request.receive,
            request._send
        ) as (session_id, read_stream, write_stream):
            logger.debug(f"Binding session {session_id} to the protocol engine")
            await self.app.run(
                read_stream,
                write_stream,
                self.initialization_options()
            )
        return Response()

    async def handle_message(self, request: Request) -> Response:
        """Handle a client message posted for a session."""
        session_id = request.query_params.get("sessionId")
        body = await request.body()
        try:
            await self.sessions.route_message(session_id, body)
        except SessionNotFound:
            logger.warning(f"Session not found: {session_id}")
            return PlainTextResponse("Session not found", status_code=404)
        except MalformedMessage:
            return PlainTextResponse("Could not parse message", status_code=400)
        return PlainTextResponse("Accepted", status_code=202)

    @asynccontextmanager
    async def lifespan(self, _app: Starlette):
        """Start and stop background services around the HTTP server."""
        self._loop = asyncio.get_running_loop()
        if self.config.watch_store:
            self.setup_watchdog()
        try:
            yield
        finally:
            self.cleanup_watchdog()
            self.sessions.close_all()
            self._loop = None

    def setup_routes(self):
        """Set up Starlette routes."""
        return Starlette(
            debug=self.config.debug_mode,
            routes=[
                Route(self.config.sse_path, endpoint=self.handle_sse, methods=["GET"]),
                Route(self.config.message_path, endpoint=self.handle_message, methods=["POST"]),
            ],
            lifespan=self.lifespan,
        )

    def setup_watchdog(self):
        """Watch the users file and notify sessions when it changes."""
        watch_dir = self.config.users_file.parent
        watch_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Setting up store watchdog for directory: {watch_dir}")

        self.observer = Observer()
        self.observer.schedule(
            StoreFileHandler(self, self.config.users_file, self.config.reload_delay),
            str(watch_dir),
            recursive=False
        )
        self.observer.daemon = True
        self.observer.start()
        logger.info("Store watchdog started")

    def cleanup_watchdog(self):
        """Stop the store watchdog."""
        if self.observer is None:
            return
        logger.info("Stopping store watchdog...")
        self.observer.stop()
        self.observer.join(timeout=2)
        if self.observer.is_alive():
            logger.warning("Store watchdog did not stop cleanly")
        self.observer = None

    async def notify_users_changed(self) -> int:
        """Send resources/updated to every session subscribed to a user resource."""
        reached = 0
        for uri in sorted(self.sessions.subscribed_uris()):
            notification = mcp_types.ServerNotification(
                mcp_types.ResourceUpdatedNotification(
                    method="notifications/resources/updated",
                    params=mcp_types.ResourceUpdatedNotificationParams(uri=uri),
                )
            )
            reached += await self.sessions.broadcast(notification, uri=uri)
        logger.info(f"Sent {reached} resource update notification(s) for the users store")
        return reached

    def schedule_users_changed(self):
        """Thread-safe entry point for the watchdog thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("Event loop not running, skipping store change notification")
            return None
        return asyncio.run_coroutine_threadsafe(self.notify_users_changed(), loop)

    def run(self):
        """Start the MCP server."""
        try:
            self.config.ensure_directories()
            self.config.log_config()
            logger.info(f"Starting {self.config.name}")
            logger.info(f"Loaded tools: {list(self.capabilities.tools)}")
            logger.info(f"Loaded resources: {list(self.capabilities.resources)}")
            logger.info(f"Loaded prompts: {list(self.capabilities.prompts)}")

            # Run the server using uvicorn
            server_config = uvicorn.Config(
                self.setup_routes(),
                host=self.config.host,
                port=self.config.port,
                log_level="debug" if self.config.debug_mode else "info",
                access_log=self.config.debug_mode,
            )
            server = uvicorn.Server(server_config)
            logger.info(f"MCP server listening on http://{self.config.host}:{self.config.port}")
            server.run()

        except KeyboardInterrupt:
            logger.info("Shutting down server...")
