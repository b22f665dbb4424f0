from typing import Any, Dict, List, Optional, Set

from errors import NotAuthorized, NotFound, Full, RoomUnresolved
from events import (
    GAME_STARTED,
    PLAYER_DISCONNECTED,
    PLAYER_JOINED,
    PLAYER_LEFT,
    PROMOTED_TO_HOST,
    ROOM_CREATED,
    ROOM_LEFT,
    ROOM_READY,
    SETTINGS_UPDATED,
    Emit,
)
from logging_config import get_logger
from registry import Room, RoomRegistry, RoomStatus, validate_code
from schemas.messages import GameSettings, parse_payload

logger = get_logger(__name__)


class Membership:
    """Join/leave/disconnect handling and host election.

    Every public coroutine mutates the registry inside the room's lock and returns the
    notifications to send. Callers deliver them after the call returns, so nothing is
    sent before the state it describes is in place.
    """

    def __init__(self, registry: RoomRegistry):
        self.registry = registry
        # connection id -> codes of rooms it joined; pruned lazily against the registry
        self._rooms_by_connection: Dict[str, Set[str]] = {}

    def rooms_of(self, connection_id: str) -> List[str]:
        codes = self._rooms_by_connection.get(connection_id)
        if not codes:
            return []
        live = set()
        for code in codes:
            room = self.registry.get(code)
            if room is not None and connection_id in room.members:
                live.add(code)
        # The sweeper may have removed rooms behind our back
        if live != codes:
            if live:
                self._rooms_by_connection[connection_id] = live
            else:
                del self._rooms_by_connection[connection_id]
        return sorted(live)

    def current_room(self, connection_id: str) -> str:
        codes = self.rooms_of(connection_id)
        if len(codes) != 1:
            raise RoomUnresolved(
                f"Connection is in {len(codes)} rooms; pass roomCode explicitly"
                if codes else "Connection is not in any room; pass roomCode explicitly"
            )
        return codes[0]

    def resolve(self, room_code: Optional[Any], connection_id: str) -> str:
        if room_code is None:
            return self.current_room(connection_id)
        return validate_code(room_code)

    def _bind(self, connection_id: str, code: str):
        self._rooms_by_connection.setdefault(connection_id, set()).add(code)

    def _unbind(self, connection_id: str, code: str):
        codes = self._rooms_by_connection.get(connection_id)
        if codes is None:
            return
        codes.discard(code)
        if not codes:
            del self._rooms_by_connection[connection_id]

    async def create_room(self, code: Any, requester: str) -> List[Emit]:
        code = validate_code(code)
        async with self.registry.lock(code):
            room = self.registry.create(code)
            room.members.append(requester)
            room.host_id = requester
            room.scores[requester] = 0
            self._bind(requester, code)
            logger.info(f"Room {code} created by {requester}")
            return [Emit(requester, ROOM_CREATED, {"roomCode": code, "playerId": requester, "isHost": True})]

    async def join_room(self, code: Any, requester: str) -> List[Emit]:
        code = validate_code(code)
        async with self.registry.lock(code):
            room = self._get_room(code)
            if requester in room.members:
                logger.debug(f"{requester} re-joined room {code} it already belongs to")
                return [self._ready(room, requester)]
            if room.is_full:
                logger.warning(f"Join rejected: room {code} is full")
                raise Full(f"Room {code} is full", room_code=code)

            room.members.append(requester)
            room.scores[requester] = 0
            if room.host_id not in room.members:
                room.host_id = requester
            if len(room.members) == 2 and room.status == RoomStatus.WAITING:
                room.status = RoomStatus.CONFIGURING
            self.registry.touch(room)
            self._bind(requester, code)
            logger.info(f"{requester} joined room {code} ({len(room.members)} members, status {room.status.value})")

            emits = [
                Emit(member, PLAYER_JOINED, {"roomCode": code, "playerId": requester})
                for member in room.members if member != requester
            ]
            emits.extend(self._ready(room, member) for member in room.members)
            return emits

    async def leave_room(self, code: Any, requester: str) -> List[Emit]:
        code = self.resolve(code, requester)
        async with self.registry.lock(code):
            room = self._get_room(code)
            if requester not in room.members:
                raise NotAuthorized(f"Not a member of room {code}", room_code=code)
            emits = self._remove_member(room, requester, PLAYER_LEFT)
            logger.info(f"{requester} left room {code}")
        emits.append(Emit(requester, ROOM_LEFT, {"roomCode": code}))
        return emits

    async def disconnect(self, connection_id: str) -> List[Emit]:
        """Remove a dropped connection from every room it was in. Safe to call repeatedly."""
        # Entries are dropped per room as each removal commits, so a cancelled run can be retried
        codes = sorted(self._rooms_by_connection.get(connection_id, ()))
        emits: List[Emit] = []
        for code in codes:
            async with self.registry.lock(code):
                room = self.registry.get(code)
                if room is None or connection_id not in room.members:
                    self._unbind(connection_id, code)
                    continue
                emits.extend(self._remove_member(room, connection_id, PLAYER_DISCONNECTED))
                logger.info(f"{connection_id} disconnected from room {code}")
        return emits

    def _remove_member(self, room: Room, connection_id: str, departure_event: str) -> List[Emit]:
        was_host = room.host_id == connection_id
        room.members.remove(connection_id)
        room.scores.pop(connection_id, None)
        self._unbind(connection_id, room.code)
        self.registry.touch(room)

        if room.is_empty:
            self.registry.delete(room.code)
            logger.info(f"Room {room.code} deleted: last member left")
            return []

        emits = []
        if was_host:
            # Oldest remaining member takes over
            room.host_id = room.members[0]
            logger.info(f"{room.host_id} promoted to host of room {room.code}")
            emits.append(Emit(room.host_id, PROMOTED_TO_HOST, {"roomCode": room.code, "hostId": room.host_id}))

        if room.status == RoomStatus.CONFIGURING:
            room.status = RoomStatus.WAITING
            room.settings = None
        elif room.status == RoomStatus.PLAYING:
            logger.info(f"Game in room {room.code} abandoned by {connection_id}")

        for member in room.members:
            emits.append(Emit(member, departure_event, {
                "roomCode": room.code,
                "playerId": connection_id,
                "hostId": room.host_id,
                "status": room.status.value,
            }))
        return emits

    async def update_settings(self, code: Any, requester: str, settings: Any) -> List[Emit]:
        code = self.resolve(code, requester)
        async with self.registry.lock(code):
            room = self._get_room(code)
            self._require_host(room, requester)
            if room.status == RoomStatus.PLAYING:
                raise NotAuthorized(f"Game in room {code} has already started", room_code=code)
            room.settings = parse_payload(GameSettings, settings, code).model_dump()
            self.registry.touch(room)
            logger.info(f"Settings updated in room {code} by host {requester}")
            data = {"roomCode": code, "hostId": room.host_id, "settings": dict(room.settings)}
            return [Emit(member, SETTINGS_UPDATED, data) for member in room.members]

    async def start_game(self, code: Any, requester: str) -> List[Emit]:
        code = self.resolve(code, requester)
        async with self.registry.lock(code):
            room = self._get_room(code)
            self._require_host(room, requester)
            if room.status == RoomStatus.PLAYING:
                raise NotAuthorized(f"Game in room {code} has already started", room_code=code)
            if room.settings is None:
                raise NotAuthorized(f"Room {code} has no settings yet", room_code=code)
            if len(room.members) != 2:
                raise NotAuthorized(f"Room {code} needs two players to start", room_code=code)
            room.status = RoomStatus.PLAYING
            self.registry.touch(room)
            logger.info(f"Game started in room {code}")
            data = {
                "roomCode": code,
                "hostId": room.host_id,
                "settings": dict(room.settings),
                "scores": dict(room.scores),
            }
            return [Emit(member, GAME_STARTED, data) for member in room.members]

    def _get_room(self, code: str) -> Room:
        room = self.registry.get(code)
        if room is None:
            logger.warning(f"Room {code} not found")
            raise NotFound(f"Room {code} not found", room_code=code)
        return room

    def _require_host(self, room: Room, requester: str):
        if requester not in room.members:
            raise NotAuthorized(f"Not a member of room {room.code}", room_code=room.code)
        if requester != room.host_id:
            raise NotAuthorized(f"Only the host can configure room {room.code}", room_code=room.code)

    def _ready(self, room: Room, recipient: str) -> Emit:
        return Emit(recipient, ROOM_READY, {
            "roomCode": room.code,
            "playerId": recipient,
            "isHost": recipient == room.host_id,
            "peerId": room.peer_of(recipient),
            "hostId": room.host_id,
            "status": room.status.value,
            "scores": dict(room.scores),
        })
