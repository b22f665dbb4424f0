import pytest

from membership import Membership
from registry import RoomRegistry
from relay import SignalingRelay
from sweeper import RoomSweeper

ROOM = "ABC123"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def events_for(emits, connection_id):
    """(event, data) pairs addressed to one connection, in emit order."""
    return [(emit.event, emit.data) for emit in emits if emit.to == connection_id]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return RoomRegistry(clock=clock)


@pytest.fixture
def membership(registry):
    return Membership(registry)


@pytest.fixture
def relay(registry, membership):
    return SignalingRelay(registry, membership)


@pytest.fixture
def sweeper(registry):
    return RoomSweeper(registry, interval=3600, waiting_ttl=1800, empty_grace=60)


@pytest.fixture
async def paired_room(membership):
    await membership.create_room(ROOM, "X")
    await membership.join_room(ROOM, "Y")
    return ROOM
