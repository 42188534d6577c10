# =============================================================================
# RepairIQ - Phone Camera Relay
# =============================================================================
# Provides the PhoneRelay that brokers frames between a phone camera page and
# desktop scanner clients over WebSockets.  The relay forwards frames without
# inspecting them and synthesizes ``phone-disconnected`` events when a
# connection goes away.
#
# Connection lifecycle:
#   CONNECTING --handshake--> ACTIVE --close / malformed message--> CLOSED
#
# Each connection owns a bounded outbound queue drained by its own sender
# task.  Broadcast never waits on a slow peer: when a peer's queue is full
# the frame is dropped for that peer only.
# =============================================================================

import asyncio
import itertools
import json
import logging
from enum import Enum
from typing import Dict, Iterator, List, Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from shared.schemas import FrameMessage, PhoneDisconnectedMessage, PhoneFrameMessage

logger = logging.getLogger(__name__)

# Close code sent when the registry has no room for another connection.
CLOSE_TRY_AGAIN_LATER = 1013


class RelayError(Exception):
    """A relay connection sent something the relay cannot process."""


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class PhoneConnection:
    """
    One live WebSocket peer of the relay.

    Args:
        connection_id: Monotonic id, unique for the process lifetime.
        websocket:     The accepted (or about to be accepted) WebSocket.
        queue_size:    Maximum number of outbound messages held for this peer.
    """

    def __init__(self, connection_id: int, websocket: WebSocket, queue_size: int = 8):
        self.id = connection_id
        self.websocket = websocket
        self.state = ConnectionState.CONNECTING
        self._outbox: "asyncio.Queue[str]" = asyncio.Queue(maxsize=queue_size)
        self._sender: Optional[asyncio.Task] = None

    def activate(self) -> None:
        """Mark the handshake complete and start draining the outbox."""
        self.state = ConnectionState.ACTIVE
        self._sender = asyncio.create_task(self._drain())

    def offer(self, payload: str, priority: bool = False) -> bool:
        """
        Queue ``payload`` for delivery without waiting.

        Args:
            payload:  Serialized JSON message.
            priority: Make room by discarding the oldest queued message
                      instead of dropping ``payload`` when the queue is full.

        Returns:
            True if queued, False if dropped.
        """
        if self.state != ConnectionState.ACTIVE:
            return False
        if priority and self._outbox.full():
            self._outbox.get_nowait()
        try:
            self._outbox.put_nowait(payload)
        except asyncio.QueueFull:
            return False
        return True

    async def _drain(self) -> None:
        while True:
            payload = await self._outbox.get()
            try:
                await self.websocket.send_text(payload)
            except Exception:
                logger.debug("Send to connection %d failed; stopping sender", self.id, exc_info=True)
                return

    async def close(self, code: int = 1000) -> None:
        """Stop the sender and close the socket if it is still open."""
        self.state = ConnectionState.CLOSED
        if self._sender is not None:
            self._sender.cancel()
            self._sender = None
        if self.websocket.application_state != WebSocketState.CONNECTED:
            return
        if self.websocket.client_state != WebSocketState.CONNECTED:
            return
        try:
            await self.websocket.close(code=code)
        except RuntimeError:
            logger.debug("Connection %d already closed", self.id)


class ConnectionRegistry:
    """
    Mapping of connection id to live PhoneConnection.

    Ids come from a process-wide monotonic counter and are never reused, so
    a removed id can not be resurrected by a late message.

    Args:
        max_connections: Upper bound on simultaneously registered peers.
    """

    def __init__(self, max_connections: int = 32):
        self._max_connections = max_connections
        self._connections: Dict[int, PhoneConnection] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: int) -> bool:
        return connection_id in self._connections

    def __iter__(self) -> Iterator[PhoneConnection]:
        return iter(list(self._connections.values()))

    @property
    def is_full(self) -> bool:
        return len(self._connections) >= self._max_connections

    def register(self, websocket: WebSocket, queue_size: int = 8) -> PhoneConnection:
        """
        Assign a fresh id to ``websocket`` and store it.

        Raises:
            RelayError: If the registry is already at capacity.
        """
        if self.is_full:
            raise RelayError(f"Relay is full ({self._max_connections} connections)")
        connection = PhoneConnection(next(self._ids), websocket, queue_size)
        self._connections[connection.id] = connection
        return connection

    def remove(self, connection_id: int) -> Optional[PhoneConnection]:
        """Remove and return the connection, or None if it was not registered."""
        return self._connections.pop(connection_id, None)

    def peers_of(self, connection_id: int) -> List[PhoneConnection]:
        """All active connections except ``connection_id``."""
        return [
            connection
            for cid, connection in self._connections.items()
            if cid != connection_id and connection.state == ConnectionState.ACTIVE
        ]


class PhoneRelay:
    """
    WebSocket relay between phone camera pages and desktop scanners.

    The relay does not authenticate peers.  A ``token`` presented on the
    handshake is only matched against issued deep links so the issuer can
    retire it.

    Args:
        max_connections: Registry capacity.
        send_queue_size: Per-peer outbound queue length.
        link_issuer:     Optional PhoneLinkIssuer whose tokens are consumed
                         when a phone joins.
    """

    def __init__(self, max_connections: int = 32, send_queue_size: int = 8, link_issuer=None):
        self._registry = ConnectionRegistry(max_connections=max_connections)
        self._send_queue_size = send_queue_size
        self._link_issuer = link_issuer

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    async def handle(self, websocket: WebSocket, token: Optional[str] = None) -> None:
        """
        Serve one WebSocket connection until it closes.

        Args:
            websocket: Incoming, not yet accepted WebSocket.
            token:     Deep-link token from the handshake query string.
        """
        if self._registry.is_full:
            await websocket.accept()
            await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Relay is full")
            logger.warning("Rejected relay connection: registry full (%d)", len(self._registry))
            return

        connection = self._registry.register(websocket, self._send_queue_size)
        await websocket.accept()
        connection.activate()

        if token and self._link_issuer is not None:
            if self._link_issuer.consume(token):
                logger.info("Connection %d joined with phone link token", connection.id)
            else:
                logger.info("Connection %d presented an unknown or used link token", connection.id)

        logger.info("Relay connected: id=%d peers=%d", connection.id, len(self._registry))

        close_code = 1000
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                self._dispatch(connection, message.get("text"))
        except WebSocketDisconnect:
            logger.info("Relay disconnected: id=%d", connection.id)
        except RelayError as exc:
            close_code = 1003
            logger.warning("Relay error on connection %d: %s", connection.id, exc)
        except Exception:
            close_code = 1011
            logger.exception("Unexpected relay failure on connection %d", connection.id)
        finally:
            await self.disconnect(connection.id, code=close_code)

    def _dispatch(self, connection: PhoneConnection, raw: Optional[str]) -> None:
        """Parse one inbound text message and act on it."""
        if raw is None:
            raise RelayError("binary messages are not supported")
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise RelayError(f"invalid JSON: {exc}") from exc
        if not isinstance(message, dict) or "type" not in message:
            raise RelayError("message must be an object with a 'type' field")

        if message["type"] != "frame":
            logger.debug("Ignoring %r message from connection %d", message["type"], connection.id)
            return

        try:
            frame = FrameMessage(**message)
        except ValidationError as exc:
            raise RelayError(f"invalid frame message: {exc.errors()[0]['msg']}") from exc

        self.relay_frame(connection.id, frame.data)

    def relay_frame(self, sender_id: int, data: str) -> int:
        """
        Forward a frame from ``sender_id`` to every other active connection.

        Frames from ids that are no longer registered are dropped.

        Returns:
            Number of peers the frame was queued for.
        """
        if sender_id not in self._registry:
            logger.debug("Dropping frame from unregistered connection %d", sender_id)
            return 0

        payload = PhoneFrameMessage(id=sender_id, data=data).model_dump_json()
        delivered = 0
        for peer in self._registry.peers_of(sender_id):
            if peer.offer(payload):
                delivered += 1
            else:
                logger.debug("Dropped frame %d -> %d (outbox full)", sender_id, peer.id)
        return delivered

    async def disconnect(self, connection_id: int, code: int = 1000) -> bool:
        """
        Remove ``connection_id`` and notify the remaining peers once.

        Args:
            connection_id: Connection to tear down.
            code:          WebSocket close code if the socket is still open.

        Returns:
            True if the connection was registered, False if already removed.
        """
        connection = self._registry.remove(connection_id)
        if connection is None:
            return False
        await connection.close(code=code)

        notice = PhoneDisconnectedMessage(id=connection_id).model_dump_json()
        for peer in self._registry.peers_of(connection_id):
            peer.offer(notice, priority=True)
        logger.info("Relay removed id=%d, %d peers remain", connection_id, len(self._registry))
        return True

    async def shutdown(self) -> None:
        """Close every registered connection (server shutdown)."""
        for connection in self._registry:
            self._registry.remove(connection.id)
            await connection.close(code=1001)
        logger.info("Relay shut down.")
