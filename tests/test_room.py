import asyncio
import time

import pytest

from errors import RoomNotFound, UsernameTaken
from helpers import FailingConnection, FakeConnection, StalledConnection
from room import Room
from schemas.messages import chat_message, system_message


def run(coro):
    return asyncio.run(asyncio.wait_for(coro, timeout=5))


def test_join_announces_to_others_and_lists_users_to_newcomer() -> None:
    async def scenario():
        room = Room("abc")
        alice, bob = FakeConnection("alice"), FakeConnection("bob")

        room.add_member(alice, "alice")
        await room.drain()
        assert alice.messages()[0]["users"] == ["alice"]
        assert alice.contents() == ["Users in room: alice"]

        room.add_member(bob, "bob")
        await room.drain()
        assert bob.contents() == ["Users in room: alice, bob"]
        assert bob.messages()[0]["users"] == ["alice", "bob"]
        assert alice.contents()[-1] == "bob has joined the chat"
        assert all(m["type"] == "system" and "timestamp" in m for m in alice.messages() + bob.messages())

    run(scenario())


def test_duplicate_username_is_rejected_case_sensitively() -> None:
    async def scenario():
        room = Room("abc")
        first = FakeConnection()
        room.add_member(first, "bob")
        with pytest.raises(UsernameTaken):
            room.add_member(FakeConnection(), "bob")
        room.add_member(FakeConnection(), "Bob")
        await room.drain()
        assert room.list_usernames() == ["bob", "Bob"]
        assert room.get_participant(first).username == "bob"

    run(scenario())


def test_broadcast_skips_sender_closed_members_and_other_rooms() -> None:
    async def scenario():
        room, other = Room("one"), Room("two")
        alice, bob, carol, dave = (FakeConnection(n) for n in ("alice", "bob", "carol", "dave"))
        for conn in (alice, bob, carol):
            room.add_member(conn, conn.name)
        other.add_member(dave, "dave")
        await room.drain()
        await other.drain()
        for conn in (alice, bob, carol, dave):
            conn.sent.clear()

        carol.disconnect()
        assert room.broadcast(chat_message("hi", "alice"), exclude=alice) == 1
        await room.drain()

        assert alice.sent == []
        assert carol.sent == []
        assert dave.sent == []
        assert bob.messages() == [
            {"type": "chat", "content": "hi", "username": "alice", "timestamp": bob.messages()[0]["timestamp"]}
        ]

    run(scenario())


def test_messages_arrive_in_broadcast_order() -> None:
    async def scenario():
        room = Room("abc")
        alice, bob = FakeConnection(), FakeConnection()
        room.add_member(alice, "alice")
        room.add_member(bob, "bob")
        for i in range(20):
            room.broadcast(chat_message(str(i), "alice" if i % 2 else "bob"))
        await room.drain()
        assert bob.contents()[-20:] == [str(i) for i in range(20)]
        assert alice.contents()[-20:] == [str(i) for i in range(20)]

    run(scenario())


def test_stalled_member_does_not_hold_up_the_rest() -> None:
    async def scenario():
        room = Room("abc")
        slow, fast = StalledConnection("slow"), FakeConnection("fast")
        room.add_member(slow, "slow")
        room.add_member(fast, "fast")

        room.broadcast(system_message("ping"))
        await asyncio.wait_for(room.get_participant(fast).outbox.join(), timeout=1)
        assert fast.contents()[-1] == "ping"
        assert slow.sent == []

        slow.release.set()
        await room.drain()
        assert slow.contents()[-1] == "ping"

    run(scenario())


def test_delivery_failure_is_swallowed_per_recipient() -> None:
    async def scenario():
        room = Room("abc")
        broken, healthy = FailingConnection("broken"), FakeConnection("healthy")
        room.add_member(broken, "broken")
        room.add_member(healthy, "healthy")

        room.broadcast(system_message("one"))
        room.broadcast(system_message("two"))
        await room.drain()

        assert healthy.contents()[-2:] == ["one", "two"]
        assert room.list_usernames() == ["broken", "healthy"]

    run(scenario())


def test_remove_announces_once_and_is_idempotent() -> None:
    async def scenario():
        room = Room("abc")
        alice, bob = FakeConnection(), FakeConnection()
        room.add_member(alice, "alice")
        room.add_member(bob, "bob")

        removed = room.remove_member(bob)
        assert removed is not None and removed.username == "bob"
        assert room.remove_member(bob) is None
        await removed.stop()
        await room.drain()

        assert alice.contents().count("bob has left the chat") == 1
        assert room.list_usernames() == ["alice"]
        # The name is free again straight away
        room.add_member(FakeConnection(), "bob")

    run(scenario())


def test_removing_a_stranger_sends_nothing() -> None:
    async def scenario():
        room = Room("abc")
        alice = FakeConnection()
        room.add_member(alice, "alice")
        await room.drain()
        alice.sent.clear()

        assert room.remove_member(FakeConnection()) is None
        await room.drain()
        assert alice.sent == []

    run(scenario())


def test_members_are_keyed_by_identity() -> None:
    class AlwaysEqual(FakeConnection):
        def __eq__(self, other):
            return True

        def __hash__(self):
            return 1

    async def scenario():
        room = Room("abc")
        first, second = AlwaysEqual(), AlwaysEqual()
        room.add_member(first, "alice")
        assert room.get_participant(second) is None
        room.add_member(second, "bob")
        assert room.remove_member(second).username == "bob"
        assert room.list_usernames() == ["alice"]

    run(scenario())


def test_retired_room_refuses_admission() -> None:
    async def scenario():
        room = Room("abc")
        assert not room.retire_if_idle(ttl=60)
        assert room.retire_if_idle(ttl=60, now=time.monotonic() + 61)
        with pytest.raises(RoomNotFound):
            room.add_member(FakeConnection(), "alice")

    run(scenario())


def test_occupied_room_is_never_idle() -> None:
    async def scenario():
        room = Room("abc")
        room.add_member(FakeConnection(), "alice")
        assert not room.retire_if_idle(ttl=0, now=time.monotonic() + 1000)

    run(scenario())


def test_member_with_full_outbox_is_dropped_and_closed() -> None:
    async def scenario():
        room = Room("abc", outbox_size=10)
        slow, fast = StalledConnection("slow"), FakeConnection("fast")
        room.add_member(slow, "slow")
        room.add_member(fast, "fast")
        slow_member, fast_member = room.get_participant(slow), room.get_participant(fast)

        for i in range(100):
            room.broadcast(chat_message(str(i), "fast"))
            await asyncio.wait_for(fast_member.outbox.join(), timeout=1)
            assert slow_member.outbox.qsize() <= 10

        assert slow_member.dropped
        await slow_member.closing
        assert slow.closed_with == (1008, "Too slow")
        assert fast.contents()[-100:] == [str(i) for i in range(100)]

        assert room.broadcast(system_message("after")) == 1
        await room.drain()
        assert fast.contents()[-1] == "after"

        room.remove_member(slow)
        await room.drain()
        assert fast.contents()[-1] == "slow has left the chat"

    run(scenario())
