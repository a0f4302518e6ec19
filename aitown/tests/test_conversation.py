########## Conversation State Machine Tests ##########
# Membership transitions, typing lock exclusivity, and end semantics.

from __future__ import annotations

import pytest

from aitown.core import config
from aitown.core.conversation import (
    accept_invite,
    finish_sending_message,
    leave_conversation,
    reject_invite,
    set_is_typing,
    start_conversation,
    tick_conversation,
)
from aitown.core.errors import InvalidTransition, LockConflict
from aitown.core.types import ParticipatingStatus, Pathfinding, Point
from aitown.core.world import World


def _pair(a_pos=(0.0, 0.0), b_pos=(5.0, 0.0)):
    world = World()
    alice = world.join(0.0, name="Alice", position=Point(x=a_pos[0], y=a_pos[1]))
    bob = world.join(0.0, name="Bob", position=Point(x=b_pos[0], y=b_pos[1]))
    return world, alice, bob


def _participating(world, alice, bob):
    conversation = start_conversation(world, 0.0, alice, bob)
    for member in conversation.participants.values():
        member.status = ParticipatingStatus(started=0.0)
    return conversation


def test_start_conversation_sets_initial_statuses() -> None:
    """Inviter walks over, invitee waits on the invite."""

    world, alice, bob = _pair()
    conversation = start_conversation(world, 2.0, alice, bob)
    assert conversation.creator == alice.id
    assert conversation.participants[alice.id].status.kind == "walkingOver"
    assert conversation.participants[bob.id].status.kind == "invited"
    assert conversation.participants[bob.id].invited == 2.0
    assert world.conversation_for_player(bob.id) is conversation


def test_start_conversation_rejects_busy_players() -> None:
    world, alice, bob = _pair()
    carol = world.join(0.0, name="Carol", position=Point(x=9, y=9))
    start_conversation(world, 0.0, alice, bob)
    with pytest.raises(InvalidTransition):
        start_conversation(world, 1.0, carol, bob)
    with pytest.raises(InvalidTransition):
        start_conversation(world, 1.0, carol, carol)


def test_accept_requires_pending_invite() -> None:
    world, alice, bob = _pair()
    conversation = start_conversation(world, 0.0, alice, bob)
    with pytest.raises(InvalidTransition):
        accept_invite(world, alice, conversation)
    accept_invite(world, bob, conversation)
    assert conversation.participants[bob.id].status.kind == "walkingOver"
    with pytest.raises(InvalidTransition):
        reject_invite(world, 1.0, bob, conversation)


def test_typing_lock_admits_one_writer() -> None:
    """A second player cannot take the lock until it is released."""

    # 1 Alice takes the lock and Bob is refused.                               # steps
    # 2 Alice's message releases it and Bob can type.                          # steps
    world, alice, bob = _pair()
    conversation = _participating(world, alice, bob)
    set_is_typing(1.0, conversation, alice, "uuid-a")
    with pytest.raises(LockConflict):
        set_is_typing(1.0, conversation, bob, "uuid-b")
    assert conversation.is_typing.player_id == alice.id
    finish_sending_message(world, 2.0, alice, conversation, 2.0, text="hello")
    assert conversation.is_typing is None
    set_is_typing(3.0, conversation, bob, "uuid-b")
    assert conversation.is_typing.player_id == bob.id


def test_finish_sending_message_records_history() -> None:
    world, alice, bob = _participating_world()
    conversation = world.conversation_for_player(alice.id)
    set_is_typing(1.0, conversation, alice, "uuid-a")
    finish_sending_message(world, 2.0, alice, conversation, 2.0, text="hi")
    assert conversation.num_messages == 1
    assert conversation.last_message.author == alice.id
    assert conversation.last_message.timestamp == 2.0
    assert conversation.messages[0].message_uuid == "uuid-a"
    assert conversation.messages[0].text == "hi"


def test_message_from_non_holder_keeps_lock() -> None:
    world, alice, bob = _participating_world()
    conversation = world.conversation_for_player(alice.id)
    set_is_typing(1.0, conversation, alice, "uuid-a")
    finish_sending_message(world, 2.0, bob, conversation, 2.0)
    assert conversation.is_typing.player_id == alice.id
    assert conversation.messages[0].message_uuid is None


def _participating_world():
    world, alice, bob = _pair()
    _participating(world, alice, bob)
    return world, alice, bob


def test_leave_is_idempotent_and_ends_for_both() -> None:
    """Leaving twice is a no-op the second time."""

    world, alice, bob = _pair()
    conversation = _participating(world, alice, bob)
    set_is_typing(1.0, conversation, alice, "uuid-a")
    assert leave_conversation(world, 5.0, alice, conversation) is True
    assert conversation.is_typing is None
    assert conversation.ended == 5.0
    assert conversation.participants[alice.id].status.kind == "left"
    assert conversation.participants[alice.id].status.ended == 5.0
    assert conversation.participants[bob.id].status.reason == "partner_left"
    assert conversation.id in world.archived_conversations
    assert conversation.id not in world.conversations
    before = conversation.model_dump()
    assert leave_conversation(world, 6.0, alice, conversation) is False
    assert conversation.model_dump() == before


def test_leave_queues_memories_for_participants() -> None:
    world, alice, bob = _pair()
    conversation = _participating(world, alice, bob)
    leave_conversation(world, 5.0, bob, conversation)
    for player in (alice, bob):
        agent = world.agent_for_player(player.id)
        assert agent.to_remember == conversation.id
        assert agent.last_conversation == 5.0


def test_reject_does_not_queue_memories() -> None:
    world, alice, bob = _pair()
    conversation = start_conversation(world, 0.0, alice, bob)
    reject_invite(world, 1.0, bob, conversation)
    assert conversation.participants[bob.id].status.reason == "rejected"
    assert world.agent_for_player(alice.id).to_remember is None
    assert world.conversation_for_player(alice.id) is None


def test_tick_conversation_starts_talking_when_close() -> None:
    """Two walkers within range start participating and stop moving."""

    world, alice, bob = _pair(b_pos=(1.0, 0.0))
    conversation = start_conversation(world, 0.0, alice, bob)
    accept_invite(world, bob, conversation)
    alice.pathfinding = Pathfinding(destination=Point(x=1, y=0), started=0.0)
    tick_conversation(world, 3.0, conversation)
    for member in conversation.participants.values():
        assert member.status.kind == "participating"
        assert member.status.started == 3.0
    assert alice.pathfinding is None


def test_tick_conversation_waits_for_invitee() -> None:
    world, alice, bob = _pair(b_pos=(1.0, 0.0))
    conversation = start_conversation(world, 0.0, alice, bob)
    tick_conversation(world, 3.0, conversation)
    assert conversation.participants[bob.id].status.kind == "invited"


def test_tick_conversation_releases_stale_typing_lock() -> None:
    world, alice, bob = _participating_world()
    conversation = world.conversation_for_player(alice.id)
    set_is_typing(1.0, conversation, alice, "uuid-a")
    tick_conversation(world, 1.0 + config.TYPING_TIMEOUT, conversation)
    assert conversation.is_typing is not None
    tick_conversation(world, 2.0 + config.TYPING_TIMEOUT, conversation)
    assert conversation.is_typing is None
    assert world.notes[-1]["type"] == "typing_timeout"
