from pydantic import BaseModel
from typing import Any, Dict, List, Optional


class HealthResponse(BaseModel):
    status: str
    rooms: int
    connections: int
    sweptRooms: int


class RoomDetailsResponse(BaseModel):
    roomCode: str
    status: str
    members: List[str]
    hostId: Optional[str]
    scores: Dict[str, float]
    settings: Optional[Dict[str, Any]] = None
    createdAt: str
    lastActivityAt: str
    isFull: bool
