from typing import Optional


class RoomError(Exception):
    """Recoverable failure reported back to the originating connection only."""

    kind = "RoomError"

    def __init__(self, message: str = "", room_code: Optional[str] = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.room_code = room_code

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message, "roomCode": self.room_code}


class InvalidCode(RoomError):
    kind = "InvalidCode"


class AlreadyExists(RoomError):
    kind = "AlreadyExists"


class NotFound(RoomError):
    kind = "NotFound"


class Full(RoomError):
    kind = "Full"


class NotAuthorized(RoomError):
    kind = "NotAuthorized"


class RoomUnresolved(RoomError):
    kind = "RoomUnresolved"


class InvalidPayload(RoomError):
    kind = "InvalidPayload"
