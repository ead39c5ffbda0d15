import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Optional, Set, Tuple

from prometheus_client import Gauge

from mirrorcast.relay.messages import Role

logger = logging.getLogger("uvicorn.error")

ROOMS_OPEN = Gauge("relay_rooms_open", "Rooms with at least one connection")
CONNECTIONS_OPEN = Gauge(
    "relay_connections_open", "Connections registered in a room", ["role"]
)


@dataclass(eq=False)
class Room:
    """Membership of one room. Owned and mutated only by the RoomRegistry."""

    room_id: str
    controllers: Set[Hashable] = field(default_factory=set)
    viewers: Set[Hashable] = field(default_factory=set)

    def members(self, role: Role) -> Set[Hashable]:
        return self.viewers if role is Role.VIEWER else self.controllers

    @property
    def is_empty(self) -> bool:
        return not self.controllers and not self.viewers

    def info(self) -> Dict[str, Any]:
        return {
            "room_id": self.room_id,
            "controllers": len(self.controllers),
            "viewers": len(self.viewers),
        }


class RoomRegistry:
    """
    In-memory mapping from room id to Room.

    Rooms are created on the first join and removed as soon as their last
    member leaves, so a room is present iff it has members. Every read and
    write of the mapping or of a membership set happens under one lock, which
    is never held across an ``await`` or a network call. Readers get tuple
    snapshots so a join or leave during a broadcast cannot disturb it.
    """

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()

    def _ensure_room_locked(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id)
            self._rooms[room_id] = room
            ROOMS_OPEN.inc()
            logger.debug(f"[Rooms] Created room {room_id}")
        return room

    def ensure_room(self, room_id: str) -> Room:
        with self._lock:
            return self._ensure_room_locked(room_id)

    def join(self, room_id: str, role: Role, connection: Hashable) -> Room:
        """Add ``connection`` to the ``role`` set of the room, creating the room if needed."""
        with self._lock:
            room = self._ensure_room_locked(room_id)
            members = room.members(role)
            if connection not in members:
                members.add(connection)
                CONNECTIONS_OPEN.labels(role=role.value).inc()
            count = len(members)
        logger.info(
            f"[Rooms] {role.value.capitalize()} joined room {room_id} "
            f"({role.value}s={count})"
        )
        return room

    def leave(self, room_id: str, role: Role, connection: Hashable) -> bool:
        """
        Remove ``connection`` from its room.

        Returns True when this removed the room's last member and with it the
        room. Unknown rooms and connections are ignored.
        """
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                return False
            members = room.members(role)
            if connection not in members:
                return False
            members.discard(connection)
            CONNECTIONS_OPEN.labels(role=role.value).dec()
            count = len(members)
            removed = room.is_empty
            if removed:
                del self._rooms[room_id]
                ROOMS_OPEN.dec()

        logger.info(
            f"[Rooms] {role.value.capitalize()} left room {room_id} "
            f"({role.value}s={count})"
        )
        if removed:
            logger.debug(f"[Rooms] Removed empty room {room_id}")
        return removed

    def get(self, room_id: str) -> Optional[Room]:
        with self._lock:
            return self._rooms.get(room_id)

    def recipients(self, room_id: str, role: Role) -> Tuple[Hashable, ...]:
        """Snapshot of the ``role`` members of a room (empty if the room is gone)."""
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                return ()
            return tuple(room.members(role))

    def room_ids(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._rooms)

    def __contains__(self, room_id: str) -> bool:
        with self._lock:
            return room_id in self._rooms

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)
