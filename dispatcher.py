import asyncio
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from coercion import coerce_relay_args, coerce_room_arg, coerce_settings_args
from connections import ConnectionManager
from errors import AlreadyExists, InvalidPayload, RoomError
from events import (
    ACK,
    ANSWER,
    CREATE_ROOM,
    ERROR,
    ERROR_EVENTS,
    ICE_CANDIDATE,
    JOIN_ROOM,
    LEAVE_ROOM,
    OFFER,
    PING,
    PONG,
    ROOM_EXISTS,
    START_GAME,
    UPDATE_SCORE,
    UPDATE_SETTINGS,
    Emit,
)
from logging_config import get_logger
from membership import Membership
from relay import SignalingRelay

logger = get_logger(__name__)

HandlerResult = Tuple[List[Emit], Dict[str, Any]]


def frame_args(frame: dict) -> List[Any]:
    """Positional arguments of an inbound frame: ``args`` if given, else ``[data]``."""
    if "args" in frame:
        args = frame["args"]
        if not isinstance(args, list):
            raise InvalidPayload("args must be a list")
        return args
    if "data" in frame:
        return [frame["data"]]
    return []


class Dispatcher:
    """Routes inbound events to Membership or SignalingRelay and reports failures.

    This is the handler boundary: nothing raised by a handler escapes to the
    connection loop, and errors only ever go back to the connection that caused them.
    """

    def __init__(self, membership: Membership, relay: SignalingRelay, connections: ConnectionManager):
        self.membership = membership
        self.relay = relay
        self.connections = connections
        # in-flight disconnect cleanups, kept referenced until they finish
        self._cleanups = set()
        self._handlers = {
            CREATE_ROOM: self._create_room,
            JOIN_ROOM: self._join_room,
            LEAVE_ROOM: self._leave_room,
            UPDATE_SETTINGS: self._update_settings,
            START_GAME: self._start_game,
            OFFER: self._relay,
            ANSWER: self._relay,
            ICE_CANDIDATE: self._relay,
            UPDATE_SCORE: self._relay,
            PING: self._ping,
        }

    async def handle_frame(self, connection_id: str, raw: str):
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Non-JSON frame from connection {connection_id}")
            await self.connections.send(connection_id, ERROR, InvalidPayload("Frames must be JSON").to_dict())
            return
        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            await self.connections.send(connection_id, ERROR, InvalidPayload("Frames need an event name").to_dict())
            return

        ack = frame.get("ack")
        try:
            args = frame_args(frame)
        except InvalidPayload as e:
            await self._reply_error(connection_id, frame["event"], ack, e)
            return
        await self.dispatch(connection_id, frame["event"], args, ack)

    async def dispatch(self, connection_id: str, event: str, args: Sequence[Any], ack: Optional[Any] = None):
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(f"Unknown event {event!r} from connection {connection_id}")
            await self._reply_error(connection_id, event, ack, InvalidPayload(f"Unknown event {event!r}"))
            return

        logger.debug(f"Handling {event} from connection {connection_id}")
        try:
            emits, result = await handler(event, connection_id, args)
        except RoomError as e:
            logger.warning(f"{event} from {connection_id} failed: {e.kind}: {e.message}")
            await self._reply_error(connection_id, event, ack, e)
            return
        except Exception as e:
            logger.error(f"Error handling {event} from connection {connection_id}: {e}", exc_info=True)
            await self._reply_error(connection_id, event, ack, None)
            return

        await self.connections.deliver(emits)
        if ack is not None:
            await self.connections.send(connection_id, ACK, {"ack": ack, "ok": True, **result})

    async def disconnect(self, connection_id: str):
        try:
            emits = await self.membership.disconnect(connection_id)
        except Exception as e:
            logger.error(f"Error cleaning up connection {connection_id}: {e}", exc_info=True)
            return
        await self.connections.deliver(emits)

    async def release(self, connection_id: str):
        """Forget a closed connection and notify its peers.

        The room cleanup runs to completion even if the calling handler is cancelled.
        """
        self.connections.unregister(connection_id)
        cleanup = asyncio.ensure_future(self.disconnect(connection_id))
        self._cleanups.add(cleanup)
        cleanup.add_done_callback(self._cleanups.discard)
        try:
            await asyncio.shield(cleanup)
        except asyncio.CancelledError:
            logger.info(f"Handler for {connection_id} cancelled, room cleanup continues in the background")
            raise

    async def _reply_error(self, connection_id: str, event: str, ack: Optional[Any], error: Optional[RoomError]):
        if error is None:
            body = {"error": "InternalError", "message": "Internal server error", "roomCode": None}
        else:
            body = error.to_dict()
        if ack is not None:
            await self.connections.send(connection_id, ACK, {"ack": ack, "ok": False, **body})
            return
        if event == CREATE_ROOM and isinstance(error, AlreadyExists):
            reply_event = ROOM_EXISTS
        else:
            reply_event = ERROR_EVENTS.get(event, ERROR)
        await self.connections.send(connection_id, reply_event, body)

    async def _create_room(self, event: str, connection_id: str, args: Sequence[Any]) -> HandlerResult:
        code = coerce_room_arg(event, args)
        emits = await self.membership.create_room(code, connection_id)
        return emits, {"roomCode": code}

    async def _join_room(self, event: str, connection_id: str, args: Sequence[Any]) -> HandlerResult:
        code = coerce_room_arg(event, args)
        emits = await self.membership.join_room(code, connection_id)
        return emits, {"roomCode": code}

    async def _leave_room(self, event: str, connection_id: str, args: Sequence[Any]) -> HandlerResult:
        code = self.membership.resolve(coerce_room_arg(event, args), connection_id)
        emits = await self.membership.leave_room(code, connection_id)
        return emits, {"roomCode": code}

    async def _update_settings(self, event: str, connection_id: str, args: Sequence[Any]) -> HandlerResult:
        request = coerce_settings_args(args)
        code = self.membership.resolve(request.room_code, connection_id)
        emits = await self.membership.update_settings(code, connection_id, request.payload)
        return emits, {"roomCode": code}

    async def _start_game(self, event: str, connection_id: str, args: Sequence[Any]) -> HandlerResult:
        code = self.membership.resolve(coerce_room_arg(event, args), connection_id)
        emits = await self.membership.start_game(code, connection_id)
        return emits, {"roomCode": code}

    async def _relay(self, event: str, connection_id: str, args: Sequence[Any]) -> HandlerResult:
        request = coerce_relay_args(event, args)
        code, emits = await self.relay.forward(event, connection_id, request)
        return emits, {"roomCode": code, "delivered": bool(emits)}

    async def _ping(self, event: str, connection_id: str, args: Sequence[Any]) -> HandlerResult:
        return [Emit(connection_id, PONG, {"connectionId": connection_id})], {}
