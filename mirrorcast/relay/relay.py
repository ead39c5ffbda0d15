"""
Per-connection relay logic.

A connection moves through ``connecting -> active -> closed``. It is
registered in its room while still connecting (broadcasts skip it until the
upgrade is accepted) and ``relay_session`` guarantees it is deregistered
exactly once however the connection ends: peer close, protocol error, a
failed send from another connection's broadcast, or a local error.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator

from opentelemetry import trace
from prometheus_client import Counter
from starlette.websockets import WebSocket, WebSocketState

from mirrorcast.relay.messages import RawPayload, RelayMessage, Role, outbound_message
from mirrorcast.relay.rooms import RoomRegistry
from mirrorcast.utils import preview
from mirrorcast.utils.exception_logging import log_exception_with_details
from mirrorcast.vars import RELAY_SEND_TIMEOUT

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

MESSAGES_RECEIVED = Counter(
    "relay_messages_received_total", "Frames received from relay clients", ["role"]
)
DELIVERIES = Counter(
    "relay_deliveries_total", "Relay delivery attempts by outcome", ["outcome"]
)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class RelayConnection:
    """One WebSocket client with its fixed role and room."""

    def __init__(self, websocket: WebSocket, role: Role, room_id: str):
        self.websocket = websocket
        self.role = role
        self.room_id = room_id
        self.state = ConnectionState.CONNECTING

    def __repr__(self) -> str:
        return (
            f"RelayConnection(role={self.role.value}, room={self.room_id!r}, "
            f"state={self.state.value})"
        )

    @property
    def transport_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.ACTIVE and self.transport_open

    def activate(self) -> None:
        if self.state is ConnectionState.CONNECTING:
            self.state = ConnectionState.ACTIVE

    async def send(self, message: RelayMessage) -> None:
        await self.websocket.send(message.to_frame())

    async def close(self, registry: RoomRegistry, code: int = 1000) -> bool:
        """
        Move to ``closed`` and leave the room. Only the first call has any effect.

        Returns True if this call performed the transition.
        """
        if self.state is ConnectionState.CLOSED:
            return False
        self.state = ConnectionState.CLOSED
        registry.leave(self.room_id, self.role, self)

        if self.transport_open:
            try:
                await self.websocket.close(code=code)
            except Exception as e:
                logger.debug(f"[Relay] Close of {self!r} failed: {e!r}")
        return True


@dataclass
class RelayResult:
    recipients: int = 0
    delivered: int = 0
    skipped: int = 0
    dropped: int = 0
    failed: int = 0


async def _deliver(
    registry: RoomRegistry,
    recipient: RelayConnection,
    message: RelayMessage,
    send_timeout: float,
) -> str:
    """Send to one recipient and report the outcome; never raises."""
    try:
        await asyncio.wait_for(recipient.send(message), timeout=send_timeout)
        return "delivered"
    except asyncio.TimeoutError:
        logger.warning(
            f"[Relay] Dropped frame for {recipient!r}: not sent within {send_timeout}s"
        )
        return "dropped"
    except Exception as e:
        log_exception_with_details(
            logger,
            f"[Relay] Delivery to {recipient!r} failed, closing it.",
            e,
            level=logging.WARNING,
        )
        await recipient.close(registry, code=1011)
        return "failed"


async def relay_message(
    registry: RoomRegistry,
    sender: RelayConnection,
    raw: RawPayload,
    send_timeout: float = RELAY_SEND_TIMEOUT,
) -> RelayResult:
    """
    Fan one inbound frame out to the sender's peers.

    Controllers reach the viewers of their room with the frame unchanged;
    viewers reach the controllers wrapped in a ViewerEnvelope. Recipients whose
    transport is not open are skipped. All sends run concurrently and each is
    bounded by ``send_timeout``: a recipient that does not take the frame in
    time simply misses it. A recipient whose send fails is closed and removed
    from the room; delivery to the others continues.
    """
    target_role = Role.CONTROLLER if sender.role is Role.VIEWER else Role.VIEWER
    message = outbound_message(sender.role, raw)
    recipients = registry.recipients(sender.room_id, target_role)
    result = RelayResult(recipients=len(recipients))

    MESSAGES_RECEIVED.labels(role=sender.role.value).inc()

    with tracer.start_as_current_span("relay_message") as span:
        span.set_attribute("relay.room", sender.room_id)
        span.set_attribute("relay.sender_role", sender.role.value)
        span.set_attribute("relay.recipients", result.recipients)

        open_recipients = []
        for recipient in recipients:
            if recipient is sender:
                continue
            if not recipient.is_open:
                result.skipped += 1
                continue
            open_recipients.append(recipient)

        outcomes = await asyncio.gather(
            *(
                _deliver(registry, recipient, message, send_timeout)
                for recipient in open_recipients
            )
        )
        for outcome in outcomes:
            setattr(result, outcome, getattr(result, outcome) + 1)

        span.set_attribute("relay.delivered", result.delivered)

    DELIVERIES.labels(outcome="delivered").inc(result.delivered)
    DELIVERIES.labels(outcome="skipped").inc(result.skipped)
    DELIVERIES.labels(outcome="dropped").inc(result.dropped)
    DELIVERIES.labels(outcome="failed").inc(result.failed)
    logger.debug(
        f"[Relay] {sender.role.value} in room {sender.room_id} sent "
        f"{preview(raw.data)} -> {result.delivered}/{result.recipients} delivered"
    )
    return result


@asynccontextmanager
async def relay_session(
    registry: RoomRegistry, connection: RelayConnection
) -> AsyncIterator[RelayConnection]:
    """Register ``connection`` for the duration of the block, then close it."""
    registry.join(connection.room_id, connection.role, connection)
    try:
        yield connection
    finally:
        await connection.close(registry)
