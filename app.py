from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from connections import ConnectionManager
from constants import ALLOWED_ORIGINS, LOG_FILE, LOG_LEVEL
from dispatcher import Dispatcher
from logging_config import get_logger, setup_logging
from membership import Membership
from registry import RoomRegistry
from relay import SignalingRelay
from routers.rooms import rooms_router
from routers.signaling import signaling_router
from sweeper import RoomSweeper

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(registry: Optional[RoomRegistry] = None, sweeper: Optional[RoomSweeper] = None) -> FastAPI:
    """Build the relay application with its own registry and background sweeper."""
    registry = registry if registry is not None else RoomRegistry()
    sweeper = sweeper if sweeper is not None else RoomSweeper(registry)
    membership = Membership(registry)
    relay = SignalingRelay(registry, membership)
    connections = ConnectionManager()
    dispatcher = Dispatcher(membership, relay, connections)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()

    app = FastAPI(title="duoroom", lifespan=lifespan)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=ALLOWED_ORIGINS != ["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.state.registry = registry
    app.state.membership = membership
    app.state.relay = relay
    app.state.connections = connections
    app.state.dispatcher = dispatcher
    app.state.sweeper = sweeper

    app.include_router(rooms_router)
    app.include_router(signaling_router)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
