from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import uuid
from events import CONNECTED
from logging_config import get_logger

logger = get_logger(__name__)

signaling_router = APIRouter()


@signaling_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Signaling WebSocket.

    Frames are JSON objects ``{"event": name, "data": {...}}`` (or ``"args": [...]``
    for positional payloads), with an optional ``"ack"`` id to get a direct reply.
    """
    state = websocket.app.state
    connections = state.connections
    dispatcher = state.dispatcher

    await websocket.accept()
    connection_id = uuid.uuid4().hex
    connections.register(connection_id, websocket)
    logger.info(f"WebSocket connection {connection_id} accepted")

    try:
        await connections.send(connection_id, CONNECTED, {"connectionId": connection_id})
        message_count = 0
        while True:
            try:
                data = await websocket.receive_text()
            except WebSocketDisconnect:
                logger.info(f"WebSocket disconnected normally for connection {connection_id}")
                break
            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {connection_id}")
            await dispatcher.handle_frame(connection_id, data)
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        await dispatcher.release(connection_id)
        logger.info(f"Connection {connection_id} cleaned up")
