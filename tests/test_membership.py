import asyncio
import random

import pytest

from conftest import ROOM, events_for
from errors import AlreadyExists, Full, InvalidCode, InvalidPayload, NotAuthorized, NotFound, RoomError, RoomUnresolved
from registry import RoomStatus

SETTINGS = {"mode": "classic", "rounds": 3, "timeLimit": 60}


async def test_create_room_makes_requester_sole_host(membership, registry):
    emits = await membership.create_room(ROOM, "X")

    room = registry.get(ROOM)
    assert room.members == ["X"]
    assert room.host_id == "X"
    assert room.status == RoomStatus.WAITING
    assert room.scores == {"X": 0}
    assert events_for(emits, "X") == [("roomCreated", {"roomCode": ROOM, "playerId": "X", "isHost": True})]
    assert membership.current_room("X") == ROOM


async def test_create_existing_room_leaves_it_untouched(membership, registry):
    await membership.create_room(ROOM, "X")

    with pytest.raises(AlreadyExists):
        await membership.create_room(ROOM, "Y")

    assert registry.get(ROOM).members == ["X"]
    assert membership.rooms_of("Y") == []


async def test_create_room_rejects_malformed_code(membership, registry):
    with pytest.raises(InvalidCode):
        await membership.create_room("abc", "X")
    assert len(registry) == 0


async def test_second_join_moves_room_to_configuring_and_notifies_both(membership, registry):
    await membership.create_room(ROOM, "X")
    emits = await membership.join_room(ROOM, "Y")

    room = registry.get(ROOM)
    assert room.members == ["X", "Y"]
    assert room.scores == {"X": 0, "Y": 0}
    assert room.status == RoomStatus.CONFIGURING

    to_x = dict(events_for(emits, "X"))
    to_y = dict(events_for(emits, "Y"))
    assert to_x["playerJoined"] == {"roomCode": ROOM, "playerId": "Y"}
    assert to_x["roomReady"]["isHost"] is True
    assert to_x["roomReady"]["peerId"] == "Y"
    assert to_y["roomReady"]["isHost"] is False
    assert to_y["roomReady"]["peerId"] == "X"
    assert to_y["roomReady"]["hostId"] == "X"
    assert "playerJoined" not in to_y


async def test_join_missing_room_is_not_found_without_mutation(membership, registry):
    with pytest.raises(NotFound):
        await membership.join_room(ROOM, "Y")

    assert len(registry) == 0
    assert membership.rooms_of("Y") == []


async def test_join_full_room_is_rejected(membership, registry, paired_room):
    with pytest.raises(Full):
        await membership.join_room(paired_room, "Z")

    assert registry.get(paired_room).members == ["X", "Y"]
    assert set(registry.get(paired_room).scores) == {"X", "Y"}
    assert membership.rooms_of("Z") == []


async def test_rejoin_is_idempotent(membership, registry, paired_room):
    emits = await membership.join_room(paired_room, "Y")

    assert registry.get(paired_room).members == ["X", "Y"]
    assert [e.event for e in emits] == ["roomReady"]
    assert emits[0].to == "Y"


async def test_host_leaving_promotes_remaining_member_once(membership, registry, paired_room):
    emits = await membership.leave_room(paired_room, "X")

    room = registry.get(paired_room)
    assert room.members == ["Y"]
    assert room.host_id == "Y"
    assert room.scores == {"Y": 0}
    assert room.status == RoomStatus.WAITING

    to_y = events_for(emits, "Y")
    assert [event for event, _ in to_y] == ["promotedToHost", "playerLeft"]
    assert to_y[1][1] == {"roomCode": paired_room, "playerId": "X", "hostId": "Y", "status": "waiting"}
    assert events_for(emits, "X") == [("roomLeft", {"roomCode": paired_room})]
    assert membership.rooms_of("X") == []


async def test_guest_leaving_keeps_host(membership, registry, paired_room):
    emits = await membership.leave_room(paired_room, "Y")

    room = registry.get(paired_room)
    assert room.host_id == "X"
    assert [event for event, _ in events_for(emits, "X")] == ["playerLeft"]


async def test_leaving_configuring_room_clears_settings(membership, registry, paired_room):
    await membership.update_settings(paired_room, "X", SETTINGS)
    await membership.leave_room(paired_room, "Y")

    room = registry.get(paired_room)
    assert room.status == RoomStatus.WAITING
    assert room.settings is None


async def test_last_member_leaving_deletes_room(membership, registry):
    await membership.create_room(ROOM, "X")
    emits = await membership.leave_room(ROOM, "X")

    assert registry.get(ROOM) is None
    assert [e.event for e in emits] == ["roomLeft"]


async def test_leave_without_code_infers_current_room(membership, registry, paired_room):
    await membership.leave_room(None, "Y")
    assert registry.get(paired_room).members == ["X"]


async def test_leave_by_non_member_is_rejected(membership, paired_room):
    with pytest.raises(NotAuthorized):
        await membership.leave_room(paired_room, "Z")


async def test_leave_unknown_room_is_not_found(membership):
    with pytest.raises(NotFound):
        await membership.leave_room(ROOM, "X")


async def test_disconnect_is_idempotent(membership, registry, paired_room):
    first = await membership.disconnect("X")
    second = await membership.disconnect("X")

    assert [e.event for e in first] == ["promotedToHost", "playerDisconnected"]
    assert second == []
    assert registry.get(paired_room).members == ["Y"]


async def test_cancelled_disconnect_can_be_retried(membership, registry, paired_room):
    async with registry.lock(paired_room):
        pending = asyncio.create_task(membership.disconnect("X"))
        await asyncio.sleep(0)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

    room = registry.get(paired_room)
    assert room.members == ["X", "Y"]
    assert membership.rooms_of("X") == [paired_room]

    emits = await membership.disconnect("X")

    assert room.members == ["Y"]
    assert room.host_id == "Y"
    assert room.scores == {"Y": 0}
    assert [e.event for e in emits] == ["promotedToHost", "playerDisconnected"]
    assert membership.rooms_of("X") == []
    assert registry._locks == {}


async def test_disconnect_of_unknown_connection_does_nothing(membership):
    assert await membership.disconnect("nobody") == []


async def test_disconnect_leaves_every_room(membership, registry):
    await membership.create_room("AAAAAA", "X")
    await membership.create_room("BBBBBB", "X")
    await membership.join_room("BBBBBB", "Y")

    await membership.disconnect("X")

    assert registry.get("AAAAAA") is None
    assert registry.get("BBBBBB").members == ["Y"]
    assert registry.get("BBBBBB").host_id == "Y"


async def test_abandoned_game_stays_playing(membership, registry, paired_room):
    await membership.update_settings(paired_room, "X", SETTINGS)
    await membership.start_game(paired_room, "X")

    emits = await membership.disconnect("Y")

    room = registry.get(paired_room)
    assert room.status == RoomStatus.PLAYING
    assert room.members == ["X"]
    assert events_for(emits, "X")[0][1]["status"] == "playing"


async def test_settings_restricted_to_host(membership, paired_room):
    with pytest.raises(NotAuthorized):
        await membership.update_settings(paired_room, "Y", SETTINGS)
    with pytest.raises(NotAuthorized):
        await membership.update_settings(paired_room, "Z", SETTINGS)


@pytest.mark.parametrize("settings", [
    {"mode": "classic", "rounds": 3},
    {"mode": "", "rounds": 3, "timeLimit": 60},
    {"mode": "classic", "rounds": 0, "timeLimit": 60},
    "classic",
])
async def test_partial_settings_are_invalid(membership, registry, paired_room, settings):
    with pytest.raises(InvalidPayload):
        await membership.update_settings(paired_room, "X", settings)
    assert registry.get(paired_room).settings is None


async def test_settings_update_notifies_both_and_keeps_extra_fields(membership, registry, paired_room):
    emits = await membership.update_settings(paired_room, "X", dict(SETTINGS, theme="dark"))

    assert registry.get(paired_room).settings == dict(SETTINGS, theme="dark")
    assert {e.to for e in emits} == {"X", "Y"}
    assert all(e.event == "settingsUpdated" for e in emits)


async def test_start_game_requires_settings(membership, paired_room):
    with pytest.raises(NotAuthorized):
        await membership.start_game(paired_room, "X")


async def test_start_game_requires_two_players(membership):
    await membership.create_room(ROOM, "X")
    await membership.update_settings(ROOM, "X", SETTINGS)

    with pytest.raises(NotAuthorized):
        await membership.start_game(ROOM, "X")


async def test_start_game_moves_to_playing(membership, registry, paired_room):
    await membership.update_settings(paired_room, "X", SETTINGS)
    emits = await membership.start_game(paired_room, "X")

    assert registry.get(paired_room).status == RoomStatus.PLAYING
    assert {e.to for e in emits} == {"X", "Y"}
    assert emits[0].data["settings"] == SETTINGS

    with pytest.raises(NotAuthorized):
        await membership.update_settings(paired_room, "X", SETTINGS)
    with pytest.raises(NotAuthorized):
        await membership.start_game(paired_room, "X")


async def test_current_room_requires_exactly_one_room(membership):
    with pytest.raises(RoomUnresolved):
        membership.current_room("X")

    await membership.create_room("AAAAAA", "X")
    await membership.create_room("BBBBBB", "X")

    with pytest.raises(RoomUnresolved):
        membership.current_room("X")


async def test_rooms_of_drops_rooms_deleted_elsewhere(membership, registry):
    await membership.create_room(ROOM, "X")
    registry.delete(ROOM)

    assert membership.rooms_of("X") == []
    assert "X" not in membership._rooms_by_connection


async def test_invariants_hold_for_random_sequences(membership, registry):
    rng = random.Random(1234)
    people = ["A", "B", "C", "D"]
    promotions = 0

    for _ in range(500):
        who = rng.choice(people)
        op = rng.choice(["create", "join", "join", "leave", "disconnect"])
        room_before = registry.get(ROOM)
        host_before = room_before.host_id if room_before else None
        try:
            if op == "create":
                emits = await membership.create_room(ROOM, who)
            elif op == "join":
                emits = await membership.join_room(ROOM, who)
            elif op == "leave":
                emits = await membership.leave_room(ROOM, who)
            else:
                emits = await membership.disconnect(who)
        except RoomError:
            emits = []

        room = registry.get(ROOM)
        if room is None:
            continue
        assert 1 <= len(room.members) <= 2
        assert len(set(room.members)) == len(room.members)
        assert room.host_id in room.members
        assert set(room.scores) == set(room.members)
        promoted = [e for e in emits if e.event == "promotedToHost"]
        if host_before is not None and room.host_id != host_before:
            assert len(promoted) == 1
            assert promoted[0].to == room.host_id
            promotions += 1
        else:
            assert promoted == []

    assert promotions > 0
