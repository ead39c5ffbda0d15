import logging

from fastapi import APIRouter, Depends, WebSocket

from mirrorcast.relay.messages import RawPayload, Role
from mirrorcast.relay.relay import RelayConnection, relay_message, relay_session
from mirrorcast.relay.rooms import RoomRegistry
from mirrorcast.utils.exception_logging import log_exception_with_details

router = APIRouter()
logger = logging.getLogger("uvicorn.error")

DEFAULT_ROOM = "default"


def get_room_registry(websocket: WebSocket) -> RoomRegistry:
    return websocket.app.state.room_registry


@router.websocket("/{path:path}")
async def relay_endpoint(
    websocket: WebSocket,
    path: str,
    registry: RoomRegistry = Depends(get_room_registry),
):
    """
    Join the room named by ``?room=`` as the role named by ``?type=`` and relay
    every frame until the client goes away. The path is not significant.
    """
    role = Role.parse(websocket.query_params.get("type"))
    room_id = websocket.query_params.get("room") or DEFAULT_ROOM
    connection = RelayConnection(websocket, role, room_id)

    async with relay_session(registry, connection):
        try:
            await websocket.accept()
            connection.activate()

            while connection.is_open:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.debug(
                        f"[Relay] {connection!r} disconnected "
                        f"(code={message.get('code')})"
                    )
                    break
                await relay_message(registry, connection, RawPayload.from_message(message))
        except Exception as e:
            log_exception_with_details(
                logger, f"[Relay] Connection error for {connection!r}.", e, logging.WARNING
            )
