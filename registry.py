import asyncio
import re
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from constants import MAX_MEMBERS, ROOM_CODE_PATTERN
from errors import AlreadyExists, InvalidCode
from logging_config import get_logger

logger = get_logger(__name__)

_CODE_RE = re.compile(ROOM_CODE_PATTERN)


class RoomStatus(str, Enum):
    WAITING = "waiting"
    CONFIGURING = "configuring"
    PLAYING = "playing"


def validate_code(code: Any) -> str:
    """Return the code unchanged if it is a well-formed room code, raise InvalidCode otherwise."""
    if not isinstance(code, str) or not _CODE_RE.match(code):
        raise InvalidCode(f"Room code must be {ROOM_CODE_PATTERN}, got {code!r}")
    return code


@dataclass
class Room:
    code: str
    created_at: float
    last_activity_at: float
    members: List[str] = field(default_factory=list)
    host_id: Optional[str] = None
    status: RoomStatus = RoomStatus.WAITING
    scores: Dict[str, float] = field(default_factory=dict)
    settings: Optional[Dict[str, Any]] = None

    @property
    def is_full(self) -> bool:
        return len(self.members) >= MAX_MEMBERS

    @property
    def is_empty(self) -> bool:
        return not self.members

    def peer_of(self, connection_id: str) -> Optional[str]:
        for member in self.members:
            if member != connection_id:
                return member
        return None

    def snapshot(self) -> dict:
        """Plain-data copy of the room, safe to hand out after the lock is released."""
        return {
            "roomCode": self.code,
            "status": self.status.value,
            "members": list(self.members),
            "hostId": self.host_id,
            "scores": dict(self.scores),
            "settings": dict(self.settings) if self.settings is not None else None,
            "createdAt": _isoformat(self.created_at),
            "lastActivityAt": _isoformat(self.last_activity_at),
            "isFull": self.is_full,
        }


def _isoformat(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class RoomRegistry:
    """Sole long-lived owner of Room state.

    Callers serialise "read, decide, mutate" on one room with ``async with registry.lock(code)``.
    Rooms are independent, so there is one lock per code and no global lock. The storage
    methods themselves never await, which keeps each of them atomic on the event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._rooms: Dict[str, Room] = {}
        self._locks: Dict[str, _LockEntry] = {}
        self.clock = clock
        logger.info("Initializing in-memory RoomRegistry")

    def now(self) -> float:
        return self.clock()

    @asynccontextmanager
    async def lock(self, code: str):
        validate_code(code)
        entry = self._locks.get(code)
        if entry is None:
            entry = self._locks[code] = _LockEntry()
        # Entries are refcounted so a lock is never dropped while someone waits on it
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[code]

    def create(self, code: str) -> Room:
        validate_code(code)
        if code in self._rooms:
            logger.debug(f"Room {code} already exists")
            raise AlreadyExists(f"Room {code} already exists", room_code=code)
        now = self.now()
        room = Room(code=code, created_at=now, last_activity_at=now)
        self._rooms[code] = room
        logger.debug(f"Room {code} stored (rooms: {len(self._rooms)})")
        return room

    def get(self, code: str) -> Optional[Room]:
        validate_code(code)
        return self._rooms.get(code)

    def delete(self, code: str) -> bool:
        validate_code(code)
        deleted = self._rooms.pop(code, None) is not None
        if deleted:
            logger.debug(f"Room {code} removed (rooms: {len(self._rooms)})")
        return deleted

    def touch(self, room: Room):
        room.last_activity_at = self.now()

    def codes(self) -> List[str]:
        return list(self._rooms)

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, code: str) -> bool:
        return code in self._rooms
