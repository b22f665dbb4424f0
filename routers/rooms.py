from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import HealthResponse, RoomDetailsResponse
from errors import InvalidCode
from registry import validate_code
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(tags=["rooms"])


@rooms_router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    state = request.app.state
    return HealthResponse(
        status="ok",
        rooms=len(state.registry),
        connections=len(state.connections),
        sweptRooms=state.sweeper.swept_total,
    )


@rooms_router.get("/rooms/{room_code}", response_model=RoomDetailsResponse)
async def get_room_details(room_code: str, request: Request):
    """
    Read-only view of a room.

    Returns:
    - roomCode, status, members (join order), hostId
    - scores per member and the host's settings, if any
    - createdAt / lastActivityAt as ISO timestamps
    - isFull: whether both seats are taken
    """
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room details request for {room_code} from {client_host}")

    try:
        validate_code(room_code)
    except InvalidCode as e:
        raise HTTPException(status_code=400, detail=e.message)

    registry = request.app.state.registry
    async with registry.lock(room_code):
        room = registry.get(room_code)
        if room is None:
            logger.warning(f"Room details failed: Room {room_code} not found")
            raise HTTPException(status_code=404, detail="Room not found")
        snapshot = room.snapshot()

    return RoomDetailsResponse(**snapshot)
