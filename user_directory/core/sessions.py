"""
SSE session registry.

Each ``GET /sse`` opens a session: a pair of in-memory streams bound to one
run of the protocol engine, plus the SSE response that carries outbound
messages. Clients post inbound messages to ``POST /message?sessionId=<id>``
and the registry routes them to the matching session.
"""
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Union
from urllib.parse import quote
from uuid import uuid4

import anyio
from anyio.streams.memory import MemoryObjectSendStream
from mcp import types as mcp_types
from mcp.shared.message import SessionMessage
from pydantic import ValidationError
from sse_starlette import EventSourceResponse
from starlette.types import Receive, Scope, Send

from user_directory.core.errors import MalformedMessage, SessionNotFound

logger = logging.getLogger(__name__)

_INITIALIZED = "notifications/initialized"

# Id of the session whose protocol run is handling the current request
current_session_id: ContextVar[Optional[str]] = ContextVar("current_session_id", default=None)


@dataclass
class Session:
    """Server-side binding of one SSE connection."""
    session_id: str
    # inbound messages, read by the protocol engine
    inbound: MemoryObjectSendStream
    # outbound messages, written to the SSE stream
    outbound: MemoryObjectSendStream
    initialized: bool = False
    closed: bool = False
    # resource URIs the client asked to be told about
    subscriptions: Set[str] = field(default_factory=set)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.inbound.close()
        self.outbound.close()


class SessionRegistry:
    """Map of session id to live SSE connection, scoped to one server."""

    def __init__(self, message_path: str = "/message"):
        self.message_path = message_path
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def session_ids(self) -> List[str]:
        return list(self._sessions)

    def _new_session_id(self) -> str:
        session_id = uuid4().hex
        while session_id in self._sessions:
            session_id = uuid4().hex
        return session_id

    def register(self, inbound: MemoryObjectSendStream, outbound: MemoryObjectSendStream) -> Session:
        """Map a fresh session id to a pair of streams."""
        session = Session(self._new_session_id(), inbound, outbound)
        self._sessions[session.session_id] = session
        logger.info(f"Session opened: {session.session_id} ({len(self._sessions)} active)")
        return session

    def endpoint_for(self, session_id: str, root_path: str = "") -> str:
        """URI the client must post its messages to."""
        path = quote(root_path.rstrip("/") + self.message_path)
        return f"{path}?sessionId={session_id}"

    @asynccontextmanager
    async def open_session(self, scope: Scope, receive: Receive, send: Send):
        """
        Open an SSE session for an incoming ``GET /sse`` request.

        Yields ``(session_id, read_stream, write_stream)``; the streams are
        meant for ``Server.run``. While the context is open
        ``current_session_id`` holds the new id, so request handlers can find
        their session. The session is closed when the client disconnects or
        the context exits.
        """
        if scope["type"] != "http":
            raise ValueError("SSE sessions require an HTTP connection")

        read_stream_writer, read_stream = anyio.create_memory_object_stream[
            Union[SessionMessage, Exception]
        ](0)
        write_stream, write_stream_reader = anyio.create_memory_object_stream[SessionMessage](0)
        sse_stream_writer, sse_stream_reader = anyio.create_memory_object_stream[Dict[str, Any]](0)

        # The registry keeps its own handle on the outbound stream for broadcasts
        session = self.register(read_stream_writer, write_stream.clone())
        endpoint = self.endpoint_for(session.session_id, scope.get("root_path", ""))

        async def sse_writer():
            async with sse_stream_writer, write_stream_reader:
                await sse_stream_writer.send({"event": "endpoint", "data": endpoint})
                logger.debug(f"Sent endpoint event for session {session.session_id}: {endpoint}")
                async for session_message in write_stream_reader:
                    await sse_stream_writer.send({
                        "event": "message",
                        "data": session_message.message.model_dump_json(by_alias=True, exclude_none=True),
                    })

        async def response_wrapper(scope: Scope, receive: Receive, send: Send):
            try:
                await EventSourceResponse(
                    content=sse_stream_reader,
                    data_sender_callable=sse_writer,
                )(scope, receive, send)
            finally:
                logger.info(f"SSE connection closed: {session.session_id}")
                await write_stream_reader.aclose()
                self.close_session(session.session_id)

        async with anyio.create_task_group() as tg:
            tg.start_soon(response_wrapper, scope, receive, send)
            token = current_session_id.set(session.session_id)
            try:
                yield session.session_id, read_stream, write_stream
            finally:
                current_session_id.reset(token)
                self.close_session(session.session_id)

    def close_session(self, session_id: str) -> None:
        """Forget a session and close its streams. Closing twice is a no-op."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        session.close()
        logger.info(f"Session closed: {session_id} ({len(self._sessions)} active)")

    def close_all(self) -> None:
        for session_id in self.session_ids():
            self.close_session(session_id)

    async def route_message(self, session_id: Optional[str], body: Union[str, bytes]) -> None:
        """
        Deliver one posted JSON-RPC message to its session.

        Raises:
            SessionNotFound: no session is mapped to ``session_id``, or its
                connection is already gone
            MalformedMessage: ``body`` is not a JSON-RPC message
        """
        session = self.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        try:
            message = mcp_types.JSONRPCMessage.model_validate_json(body)
        except ValidationError as err:
            logger.warning(f"Could not parse message for session {session_id}: {err.error_count()} error(s)")
            await self._deliver(session, err)
            raise MalformedMessage(
                "Could not parse message", details={"session_id": session_id}
            ) from err

        if isinstance(message.root, mcp_types.JSONRPCNotification) and message.root.method == _INITIALIZED:
            session.initialized = True

        logger.debug(f"Routing message to session {session_id}: {message.root}")
        await self._deliver(session, SessionMessage(message))

    async def _deliver(self, session: Session, item: Union[SessionMessage, Exception]) -> None:
        try:
            await session.inbound.send(item)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            # Connection went away before its close event was handled
            self.close_session(session.session_id)
            raise SessionNotFound(session.session_id)

    def subscribe(self, session_id: Optional[str], uri: str) -> None:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        session.subscriptions.add(uri)
        logger.debug(f"Session {session_id} subscribed to {uri}")

    def unsubscribe(self, session_id: Optional[str], uri: str) -> None:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        session.subscriptions.discard(uri)
        logger.debug(f"Session {session_id} unsubscribed from {uri}")

    def subscribed_uris(self) -> Set[str]:
        """Every URI at least one open session is subscribed to."""
        uris = set()
        for session in self._sessions.values():
            uris.update(session.subscriptions)
        return uris

    async def broadcast(self, notification: mcp_types.ServerNotification, uri: Optional[str] = None) -> int:
        """
        Send a notification to every initialized session.

        With ``uri``, only sessions subscribed to that URI receive it.
        Returns the number of sessions reached.
        """
        jsonrpc_notification = mcp_types.JSONRPCNotification(
            jsonrpc="2.0",
            **notification.model_dump(by_alias=True, mode="json", exclude_none=True),
        )
        message = SessionMessage(mcp_types.JSONRPCMessage(jsonrpc_notification))

        reached = 0
        for session in list(self._sessions.values()):
            if not session.initialized:
                continue
            if uri is not None and uri not in session.subscriptions:
                continue
            try:
                await session.outbound.send(message)
                reached += 1
            except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                logger.debug(f"Dropping session {session.session_id} during broadcast")
                self.close_session(session.session_id)
        return reached
