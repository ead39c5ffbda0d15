"""
Relay payloads.

Frames cross the relay in one of two shapes:

    RawPayload      controller -> viewers, forwarded byte for byte
    ViewerEnvelope  viewer -> controllers, serialized as
                    {"from": "viewer", "payload": "<original frame as text>"}

Both expose ``to_frame()`` which returns the Starlette send message for the
frame, so the relay never has to guess a payload's shape from the sender role.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Role a connection declares with the ``type`` query parameter."""

    CONTROLLER = "controller"
    VIEWER = "viewer"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Role":
        # Anything that is not explicitly a viewer is a controller
        return cls.VIEWER if value == cls.VIEWER.value else cls.CONTROLLER


@dataclass(frozen=True)
class RawPayload:
    """An inbound frame exactly as the sender produced it."""

    data: Union[str, bytes]

    @property
    def is_binary(self) -> bool:
        return isinstance(self.data, (bytes, bytearray))

    def as_text(self) -> str:
        if self.is_binary:
            return bytes(self.data).decode("utf-8", errors="replace")
        return self.data

    def to_frame(self) -> Dict[str, Any]:
        if self.is_binary:
            return {"type": "websocket.send", "bytes": bytes(self.data)}
        return {"type": "websocket.send", "text": self.data}

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "RawPayload":
        """Build a payload from a Starlette ``websocket.receive`` message."""
        text = message.get("text")
        if text is not None:
            return cls(text)
        return cls(message.get("bytes") or b"")


class ViewerEnvelope(BaseModel):
    """Status message from a viewer, wrapped for delivery to controllers."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    sender: Literal["viewer"] = Field(default="viewer", alias="from")
    payload: str

    @classmethod
    def wrap(cls, raw: RawPayload) -> "ViewerEnvelope":
        return cls(payload=raw.as_text())

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def to_frame(self) -> Dict[str, Any]:
        return {"type": "websocket.send", "text": self.to_json()}


RelayMessage = Union[RawPayload, ViewerEnvelope]


def outbound_message(role: Role, raw: RawPayload) -> RelayMessage:
    """The message peers of a ``role`` sender receive for ``raw``."""
    if role is Role.VIEWER:
        return ViewerEnvelope.wrap(raw)
    return raw
