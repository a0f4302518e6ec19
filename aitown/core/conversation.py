########## Conversation State Machine ##########
# Membership transitions, the typing lock, and per-tick conversation upkeep.

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from . import config
from .errors import InvalidTransition, LockConflict
from .geometry import distance
from .movement import stop_player
from .runlog import log_debug, log_run_event
from .types import (
    Conversation,
    ConversationMember,
    InvitedStatus,
    LastMessage,
    LeftStatus,
    MessageRecord,
    ParticipatingStatus,
    Player,
    TypingState,
    WalkingOverStatus,
)

if TYPE_CHECKING:
    from .world import World


def start_conversation(world: "World", now: float, player: Player, invitee: Player) -> Conversation:
    """Open a conversation: the inviter walks over, the invitee is invited."""

    if player.id == invitee.id:
        raise InvalidTransition(f"{player.id} can't invite themselves")
    for candidate in (player, invitee):
        if world.conversation_for_player(candidate.id) is not None:
            raise InvalidTransition(f"{candidate.id} is already in a conversation")
    conversation_id = world.allocate_id("conversations")
    conversation = Conversation(
        id=conversation_id,
        creator=player.id,
        created=now,
        participants={
            player.id: ConversationMember(player_id=player.id, invited=now, status=WalkingOverStatus()),
            invitee.id: ConversationMember(player_id=invitee.id, invited=now, status=InvitedStatus()),
        },
    )
    world.conversations[conversation_id] = conversation
    log_run_event(f"{player.id} invited {invitee.id} to {conversation_id}")
    return conversation


def _require_member(conversation: Conversation, player: Player) -> ConversationMember:
    member = conversation.member(player.id)
    if member is None:
        raise InvalidTransition(f"{player.id} is not in conversation {conversation.id}")
    return member


def accept_invite(world: "World", player: Player, conversation: Conversation) -> None:
    member = _require_member(conversation, player)
    if member.status.kind != "invited":
        raise InvalidTransition(f"{player.id} has no pending invite in {conversation.id}")
    member.status = WalkingOverStatus()
    log_run_event(f"{player.id} accepted invite to {conversation.id}")


def reject_invite(world: "World", now: float, player: Player, conversation: Conversation) -> None:
    """Decline the invite; the conversation ends for both sides."""

    member = _require_member(conversation, player)
    if member.status.kind != "invited":
        raise InvalidTransition(f"{player.id} has no pending invite in {conversation.id}")
    _stop(world, now, conversation, player.id, reason="rejected", remember=False)


def leave_conversation(
    world: "World",
    now: float,
    player: Player,
    conversation: Conversation,
    reason: str = "left",
) -> bool:
    """Mark the player as left and end the conversation.

    Returns False without touching anything when the player already left,
    which makes repeated calls harmless.
    """

    member = conversation.member(player.id)
    if member is None or member.status.kind == "left" or conversation.id not in world.conversations:
        log_debug(f"{player.id} already left {conversation.id}")
        return False
    _stop(world, now, conversation, player.id, reason=reason, remember=True)
    return True


def _stop(
    world: "World",
    now: float,
    conversation: Conversation,
    leaver_id: str,
    reason: str,
    remember: bool,
) -> None:
    """Close out every membership and archive the conversation."""

    # 1 Release the lock and mark the leaver, then the partner, as left.      # steps
    # 2 Queue memory consolidation for agents that actually talked.           # steps
    # 3 Move the conversation out of the active set.                          # steps
    if conversation.is_typing is not None and conversation.is_typing.player_id == leaver_id:
        conversation.is_typing = None
    for player_id, member in conversation.participants.items():
        was_participating = member.status.kind == "participating"
        if member.status.kind != "left":
            member.status = LeftStatus(
                ended=now,
                reason=reason if player_id == leaver_id else "partner_left",
            )
        agent = world.agent_for_player(player_id)
        if agent is not None and remember and was_participating:
            agent.to_remember = conversation.id
            agent.last_conversation = now
    conversation.is_typing = None
    conversation.ended = now
    world.conversations.pop(conversation.id, None)
    world.archived_conversations[conversation.id] = conversation
    log_run_event(f"{leaver_id} ended {conversation.id} ({reason})")


def set_is_typing(now: float, conversation: Conversation, player: Player, message_uuid: str) -> None:
    """Take the typing lock for ``player`` or fail if someone else holds it."""

    holder = conversation.is_typing
    if holder is not None and holder.player_id != player.id:
        raise LockConflict(conversation.id, holder.player_id, player.id)
    conversation.is_typing = TypingState(player_id=player.id, message_uuid=message_uuid, since=now)


def finish_sending_message(
    world: "World",
    now: float,
    player: Player,
    conversation: Conversation,
    timestamp: float,
    text: Optional[str] = None,
) -> None:
    """Record a delivered message and release the author's lock."""

    message_uuid = None
    if conversation.is_typing is not None and conversation.is_typing.player_id == player.id:
        message_uuid = conversation.is_typing.message_uuid
        conversation.is_typing = None
    conversation.messages.append(
        MessageRecord(author=player.id, timestamp=timestamp, message_uuid=message_uuid, text=text)
    )
    conversation.last_message = LastMessage(author=player.id, timestamp=timestamp)
    conversation.num_messages += 1


def tick_conversation(world: "World", now: float, conversation: Conversation) -> None:
    """Expire stale typing locks and start talking once both sides arrive."""

    if conversation.is_typing is not None and conversation.is_typing.since + config.TYPING_TIMEOUT < now:
        log_run_event(f"Releasing stale typing lock on {conversation.id} held by {conversation.is_typing.player_id}")
        world.note("typing_timeout", target_id=conversation.id, detail=conversation.is_typing.player_id)
        conversation.is_typing = None
    members = list(conversation.participants.values())
    if len(members) != 2:
        return
    if not all(member.status.kind == "walkingOver" for member in members):
        return
    first = world.player(members[0].player_id)
    second = world.player(members[1].player_id)
    if distance(first.position, second.position) >= config.CONVERSATION_DISTANCE:
        return
    log_run_event(f"{first.id} and {second.id} started talking in {conversation.id}")
    for member, player in ((members[0], first), (members[1], second)):
        member.status = ParticipatingStatus(started=now)
        stop_player(player)
