"""Backward-compatible argument shapes for inbound events.

Every inbound event reaches the server as a list of positional arguments. The canonical
shape for relay events is a single object ``{"roomCode": "ABC123", "<payloadKey>": ...}``.
Older clients send one of:

* ``{"<payloadKey>": ...}``                  room inferred from the sender's membership
* ``{"type": "offer", "sdp": "..."}``        bare payload, room inferred
* ``{"roomId": "ABC123", "score": 5}``       ``roomId`` / ``room`` instead of ``roomCode``
* ``["ABC123", payload]``                    two positional arguments
* ``[5]``                                    bare score

All of them are normalised here and nowhere else.
"""
from collections.abc import Mapping
from typing import Any, NamedTuple, Optional, Sequence

from errors import InvalidPayload
from events import ANSWER, ICE_CANDIDATE, OFFER, UPDATE_SCORE

ROOM_KEYS = ("roomCode", "roomId", "room")

PAYLOAD_KEYS = {
    OFFER: "offer",
    ANSWER: "answer",
    ICE_CANDIDATE: "candidate",
    UPDATE_SCORE: "score",
}


class RelayRequest(NamedTuple):
    room_code: Optional[str]
    payload: Any


def _room_from(body: Mapping) -> Optional[str]:
    for key in ROOM_KEYS:
        if body.get(key) is not None:
            return body[key]
    return None


def _unwrap(event: str, value: Any) -> Any:
    """Strip a ``{"<payloadKey>": payload}`` wrapper if present."""
    key = PAYLOAD_KEYS[event]
    if not isinstance(value, Mapping) or key not in value:
        return value
    inner = value[key]
    # A bare ICE candidate also has a "candidate" key, but it holds the candidate string
    if event == UPDATE_SCORE or isinstance(inner, Mapping):
        return inner
    return value


def coerce_relay_args(event: str, args: Sequence[Any]) -> RelayRequest:
    if event not in PAYLOAD_KEYS:
        raise InvalidPayload(f"{event} is not a relay event")

    if len(args) == 2:
        room_code, payload = args
        if not isinstance(room_code, str):
            raise InvalidPayload(f"{event} positional form expects (roomCode, payload)")
        return RelayRequest(room_code, _unwrap(event, payload))

    if len(args) != 1:
        raise InvalidPayload(f"{event} expects one object or (roomCode, payload), got {len(args)} arguments")

    body = args[0]
    if isinstance(body, Mapping):
        room_code = _room_from(body)
        key = PAYLOAD_KEYS[event]
        if key in body:
            unwrapped = _unwrap(event, body)
            if unwrapped is not body:
                return RelayRequest(room_code, unwrapped)
        if event == UPDATE_SCORE:
            raise InvalidPayload("updateScore requires a score", room_code=room_code if isinstance(room_code, str) else None)
        payload = {k: v for k, v in body.items() if k not in ROOM_KEYS}
        return RelayRequest(room_code, payload)

    if event == UPDATE_SCORE and not isinstance(body, (str, list)):
        return RelayRequest(None, body)

    raise InvalidPayload(f"Unrecognised {event} payload shape")


def coerce_room_arg(event: str, args: Sequence[Any]) -> Optional[str]:
    """Room code for createRoom/joinRoom/leaveRoom/updateSettings/startGame, or None if omitted."""
    if not args:
        return None
    body = args[0]
    if isinstance(body, Mapping):
        return _room_from(body)
    if isinstance(body, str):
        return body
    raise InvalidPayload(f"{event} expects a room code or {{\"roomCode\": ...}}")


def coerce_settings_args(args: Sequence[Any]) -> RelayRequest:
    """``{"roomCode": ..., "settings": {...}}``, ``{"settings": {...}}``, ``[code, settings]`` or bare settings."""
    if len(args) == 2:
        room_code, settings = args
        if not isinstance(room_code, str):
            raise InvalidPayload("updateSettings positional form expects (roomCode, settings)")
        return RelayRequest(room_code, settings)
    if len(args) != 1 or not isinstance(args[0], Mapping):
        raise InvalidPayload("updateSettings expects a settings object")
    body = args[0]
    room_code = _room_from(body)
    if isinstance(body.get("settings"), Mapping):
        return RelayRequest(room_code, body["settings"])
    return RelayRequest(room_code, {k: v for k, v in body.items() if k not in ROOM_KEYS})
