import asyncio
import json

import pytest

from connections import ConnectionManager
from dispatcher import Dispatcher


class RecordingSocket:
    def __init__(self):
        self.frames = []

    async def send_text(self, text):
        self.frames.append(json.loads(text))


@pytest.fixture
def connections():
    return ConnectionManager()


@pytest.fixture
def dispatcher(membership, relay, connections):
    return Dispatcher(membership, relay, connections)


async def test_release_notifies_peer(dispatcher, connections, registry, paired_room):
    peer = RecordingSocket()
    connections.register("X", RecordingSocket())
    connections.register("Y", peer)

    await dispatcher.release("X")

    assert "X" not in connections
    assert [f["event"] for f in peer.frames] == ["promotedToHost", "playerDisconnected"]
    assert registry.get(paired_room).members == ["Y"]


async def test_release_finishes_cleanup_when_handler_is_cancelled(dispatcher, connections, registry, paired_room):
    peer = RecordingSocket()
    connections.register("X", RecordingSocket())
    connections.register("Y", peer)

    async with registry.lock(paired_room):
        handler = asyncio.create_task(dispatcher.release("X"))
        await asyncio.sleep(0)
        handler.cancel()
        with pytest.raises(asyncio.CancelledError):
            await handler

    for _ in range(100):
        if len(peer.frames) == 2:
            break
        await asyncio.sleep(0.01)

    assert [f["event"] for f in peer.frames] == ["promotedToHost", "playerDisconnected"]
    room = registry.get(paired_room)
    assert room.members == ["Y"]
    assert room.host_id == "Y"


async def test_release_of_unknown_connection_is_quiet(dispatcher, connections):
    await dispatcher.release("nobody")
    assert len(connections) == 0
