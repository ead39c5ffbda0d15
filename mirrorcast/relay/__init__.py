"""
Room relay over WebSocket.

Clients connect on any path with ``?type=controller|viewer&room=<id>``.
Frames from controllers are forwarded unchanged to the viewers of the same
room; frames from viewers reach the room's controllers wrapped as
``{"from": "viewer", "payload": "..."}``.

Example usage with JavaScript:
    const viewer = new WebSocket(`wss://${location.host}/?type=viewer&room=room1`);
    viewer.onmessage = (event) => console.log('command', event.data);

    const controller = new WebSocket(`wss://${location.host}/?type=controller&room=room1`);
    controller.onmessage = (event) => console.log('status', JSON.parse(event.data).payload);
    controller.onopen = () => controller.send(JSON.stringify({action: 'scroll', y: 400}));
"""

from .messages import RawPayload, Role, ViewerEnvelope
from .rooms import Room, RoomRegistry

__all__ = [
    "RawPayload",
    "Role",
    "Room",
    "RoomRegistry",
    "ViewerEnvelope",
]
