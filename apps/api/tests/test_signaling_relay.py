"""Tests for the in-memory room signaling relay."""
from __future__ import annotations

from collections import defaultdict

import pytest

from learnhub.schemas.signaling import ClientEvent
from learnhub.services.signaling import SignalingRelay

FIXED_TS = "2025-10-10T12:00:00.000Z"


class FakeTransport:
    """Group-based delivery that records what each connection receives."""

    def __init__(self) -> None:
        self.connected: set[str] = set()
        self.groups: dict[str, set[str]] = {}
        self.inbox: dict[str, list[tuple[str, object]]] = defaultdict(list)

    def connect(self, *sids: str) -> None:
        self.connected.update(sids)

    def drop(self, sid: str) -> None:
        self.connected.discard(sid)
        for members in self.groups.values():
            members.discard(sid)

    async def emit(self, event: str, data: object, to: str | None, skip_sid: str | None = None) -> None:
        if to is None:
            return
        recipients = set(self.groups.get(to, set()))
        if to in self.connected:
            recipients.add(to)
        recipients.discard(skip_sid)
        for sid in sorted(recipients):
            self.inbox[sid].append((event, data))

    async def enter_room(self, sid: str, room: str) -> None:
        self.groups.setdefault(room, set()).add(sid)

    async def leave_room(self, sid: str, room: str) -> None:
        self.groups.get(room, set()).discard(sid)

    def received(self, sid: str, event: str) -> list[object]:
        return [data for name, data in self.inbox[sid] if name == event]

    def clear(self) -> None:
        self.inbox.clear()


@pytest.fixture
def transport() -> FakeTransport:
    transport = FakeTransport()
    transport.connect("A", "B", "C", "D")
    return transport


@pytest.fixture
def relay(transport: FakeTransport) -> SignalingRelay:
    return SignalingRelay(transport, clock=lambda: FIXED_TS)


@pytest.mark.asyncio
async def test_two_party_session_walkthrough(relay, transport):
    await relay.handle("A", "join-room", "R1", "u1", "Alice")
    assert transport.received("A", "existing-users") == [[]]

    await relay.handle("B", "join-room", "R1", "u2", "Bob")
    assert transport.received("B", "existing-users") == [
        [{"socketId": "A", "userId": "u1", "userName": "Alice"}]
    ]
    assert transport.received("A", "user-joined") == [{"socketId": "B", "userId": "u2", "userName": "Bob"}]

    offer = {"type": "offer", "sdp": "v=0"}
    await relay.handle("B", "offer", {"target": "A", "offer": offer})
    assert transport.received("A", "offer") == [{"offer": offer, "sender": "B"}]

    await relay.handle("B", "disconnect")
    transport.drop("B")
    assert transport.received("A", "user-left") == [{"socketId": "B"}]
    assert list(relay.rooms.participants("R1")) == ["A"]


@pytest.mark.asyncio
async def test_existing_users_snapshot_lists_earlier_joiners_only(relay, transport):
    joiners = [("A", "u1", "Alice"), ("B", "u2", "Bob"), ("C", "u3", "Cara"), ("D", "u4", "Dev")]

    for index, (sid, user_id, user_name) in enumerate(joiners):
        await relay.handle(sid, ClientEvent.JOIN_ROOM, "room-1", user_id, user_name)
        snapshot = transport.received(sid, "existing-users")[-1]
        expected = [
            {"socketId": other_sid, "userId": other_id, "userName": other_name}
            for other_sid, other_id, other_name in joiners[:index]
        ]
        assert snapshot == expected


@pytest.mark.asyncio
async def test_presence_events_skip_sender_but_chat_reaches_everyone(relay, transport):
    await relay.handle("A", "join-room", "R1", "u1", "Alice")
    await relay.handle("B", "join-room", "R1", "u2", "Bob")
    transport.clear()

    await relay.handle("A", "start-screen-share", {"roomId": "R1"})
    await relay.handle("A", "stop-screen-share", {"roomId": "R1"})
    await relay.handle("A", "toggle-media", {"roomId": "R1", "video": False, "audio": True})
    await relay.handle("A", "chat-message", {"roomId": "R1", "message": "hello"})

    assert [event for event, _ in transport.inbox["A"]] == ["chat-message"]
    assert transport.received("B", "user-screen-sharing") == [
        {"socketId": "A", "isSharing": True},
        {"socketId": "A", "isSharing": False},
    ]
    assert transport.received("B", "user-media-toggle") == [{"socketId": "A", "video": False, "audio": True}]

    chat = {"message": "hello", "userName": "Alice", "userId": "u1", "timestamp": FIXED_TS}
    assert transport.received("A", "chat-message") == [chat]
    assert transport.received("B", "chat-message") == [chat]


@pytest.mark.asyncio
async def test_join_and_leave_are_not_echoed_to_the_actor(relay, transport):
    await relay.handle("A", "join-room", "R1", "u1", "Alice")
    await relay.handle("B", "join-room", "R1", "u2", "Bob")
    await relay.handle("B", "leave-room", "R1")

    assert transport.received("B", "user-joined") == []
    assert transport.received("B", "user-left") == []
    assert transport.received("A", "user-left") == [{"socketId": "B"}]


@pytest.mark.asyncio
@pytest.mark.parametrize("departure", ["leave-room", "disconnect"])
async def test_last_participant_out_removes_the_room(relay, transport, departure):
    await relay.handle("A", "join-room", "R1", "u1", "Alice")
    if departure == "leave-room":
        await relay.handle("A", "leave-room", "R1")
    else:
        await relay.handle("A", "disconnect")
        transport.drop("A")

    assert "R1" not in relay.rooms
    assert len(relay.rooms) == 0

    await relay.handle("B", "join-room", "R1", "u2", "Bob")
    assert transport.received("B", "existing-users") == [[]]


@pytest.mark.asyncio
async def test_disconnect_leaves_every_room(relay, transport):
    await relay.handle("A", "join-room", "R1", "u1", "Alice")
    await relay.handle("A", "join-room", "R2", "u1", "Alice")
    await relay.handle("B", "join-room", "R1", "u2", "Bob")
    await relay.handle("C", "join-room", "R2", "u3", "Cara")

    await relay.handle("A", "disconnect", "transport close")
    transport.drop("A")

    assert transport.received("B", "user-left") == [{"socketId": "A"}]
    assert transport.received("C", "user-left") == [{"socketId": "A"}]
    assert list(relay.rooms.participants("R1")) == ["B"]
    assert list(relay.rooms.participants("R2")) == ["C"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("event", "key"),
    [("offer", "offer"), ("answer", "answer"), ("ice-candidate", "candidate")],
)
async def test_negotiation_messages_go_only_to_their_target(relay, transport, event, key):
    for sid, name in (("A", "Alice"), ("B", "Bob"), ("C", "Cara")):
        await relay.handle(sid, "join-room", "R1", sid.lower(), name)
    transport.clear()

    payload = {"sdpMid": "0", "nested": {"opaque": [1, 2, 3]}}
    await relay.handle("B", event, {"target": "A", key: payload})

    delivered = transport.received("A", event)
    assert delivered == [{key: payload, "sender": "B"}]
    assert delivered[0][key] is payload
    assert transport.inbox["C"] == []
    assert transport.inbox["B"] == []


@pytest.mark.asyncio
async def test_signal_to_departed_target_is_dropped(relay, transport):
    transport.drop("A")

    await relay.handle("B", "offer", {"target": "A", "offer": {"sdp": "x"}})
    await relay.handle("B", "answer", {"answer": {"sdp": "no target"}})

    assert transport.inbox == {}


@pytest.mark.asyncio
async def test_new_message_reaches_current_conversation_subscribers_only(relay, transport):
    await relay.handle("A", "join-conversation", "c1")
    await relay.handle("B", "join-conversation", "c1")
    await relay.handle("C", "join-conversation", "c2")

    await relay.notify_new_message("c1", {"content": "first"})

    expected = {"message": {"content": "first"}, "conversationId": "c1"}
    assert transport.received("A", "new-message") == [expected]
    assert transport.received("B", "new-message") == [expected]
    assert transport.received("C", "new-message") == []
    assert transport.received("D", "new-message") == []

    await relay.handle("B", "leave-conversation", "c1")
    await relay.notify_new_message("c1", {"content": "second"})

    assert len(transport.received("A", "new-message")) == 2
    assert len(transport.received("B", "new-message")) == 1


@pytest.mark.asyncio
async def test_conversation_subscription_is_independent_of_rooms(relay, transport):
    await relay.handle("A", "join-conversation", "c1")

    assert len(relay.rooms) == 0
    assert transport.groups["conversation-c1"] == {"A"}


@pytest.mark.asyncio
async def test_leaving_an_unjoined_room_is_silent(relay, transport):
    await relay.handle("B", "join-room", "R1", "u2", "Bob")
    transport.clear()

    await relay.handle("A", "leave-room", "R1")
    await relay.handle("A", "leave-room", "missing-room")
    await relay.handle("A", "leave-room")

    assert transport.inbox == {}
    assert list(relay.rooms.participants("R1")) == ["B"]


@pytest.mark.asyncio
async def test_chat_from_non_participant_falls_back_to_connection_id(relay, transport):
    await relay.handle("B", "join-room", "R1", "u2", "Bob")
    await transport.enter_room("A", "R1")

    await relay.handle("A", "chat-message", {"roomId": "R1", "message": "hi"})

    assert transport.received("B", "chat-message") == [
        {"message": "hi", "userName": "Unknown", "userId": "A", "timestamp": FIXED_TS}
    ]


@pytest.mark.asyncio
async def test_rejoining_a_room_keeps_a_single_entry(relay, transport):
    await relay.handle("A", "join-room", "R1", "u1", "Alice")
    await relay.handle("A", "join-room", "R1", "u1", "Alice B.")

    participants = relay.rooms.participants("R1")
    assert list(participants) == ["A"]
    assert participants["A"].user_name == "Alice B."
    assert transport.received("A", "existing-users") == [[], []]


@pytest.mark.asyncio
async def test_blank_identifiers_are_accepted(relay, transport):
    await relay.handle("A", "join-room", "", "", "")
    await relay.handle("B", "join-room", "", None, None)

    assert transport.received("B", "existing-users") == [[{"socketId": "A", "userId": "", "userName": ""}]]


@pytest.mark.asyncio
async def test_join_room_accepts_object_payload(relay, transport):
    await relay.handle("A", "join-room", {"roomId": "R1", "userId": "u1", "userName": "Alice"})
    await relay.handle("B", "join-room", "R1", "u2", "Bob")

    assert transport.received("B", "existing-users") == [
        [{"socketId": "A", "userId": "u1", "userName": "Alice"}]
    ]


@pytest.mark.asyncio
async def test_unknown_and_malformed_events_do_not_raise(relay, transport):
    await relay.handle("A", "not-an-event", {"roomId": "R1"})
    await relay.handle("A", "toggle-media", "garbage")
    await relay.handle("A", "offer", None)

    assert transport.inbox == {}


@pytest.mark.asyncio
async def test_unhashable_room_and_target_ids_are_ignored(relay, transport):
    await relay.handle("B", "join-room", "R1", "u2", "Bob")
    transport.clear()

    await relay.handle("A", "join-room", ["R1"], "u1", "Alice")
    await relay.handle("A", "join-room", {"roomId": {"nested": "R1"}, "userId": "u1", "userName": "Alice"})
    await relay.handle("A", "leave-room", ["R1"])
    await relay.handle("A", "chat-message", {"roomId": ["R1"], "message": "hi"})
    await relay.handle("A", "start-screen-share", {"roomId": ["R1"]})
    await relay.handle("A", "toggle-media", {"roomId": {"id": "R1"}, "video": True, "audio": True})
    await relay.handle("A", "offer", {"target": ["B"], "offer": {"sdp": "x"}})

    assert transport.inbox == {}
    assert list(relay.rooms.participants("R1")) == ["B"]
    assert relay.rooms.rooms_of("A") == []


def test_chat_timestamp_is_iso_utc():
    relay = SignalingRelay(FakeTransport())

    stamp = relay._clock()

    assert stamp.endswith("Z")
    assert "T" in stamp
