########## Agent Policy ##########
# Per-tick decision function: one cheap mutation or one delegated operation.

from __future__ import annotations

import random
from typing import TYPE_CHECKING, Optional

from . import config
from .conversation import accept_invite, leave_conversation, reject_invite, set_is_typing
from .errors import NotFound
from .geometry import distance, floor_tile, midpoint_tile
from .movement import move_player, stop_player
from .operations import new_token, start_operation, tick_operation
from .runlog import log_run_event
from .types import (
    Agent,
    Conversation,
    MessageType,
    OperationName,
    OperationRequest,
    Player,
)

if TYPE_CHECKING:
    from .world import World


def tick_agent(
    world: "World",
    now: float,
    agent: Agent,
    rng: Optional[random.Random] = None,
) -> Optional[OperationRequest]:
    """Run the decision policy for one agent and return any operation started.

    Branches are evaluated in order and the first applicable one returns:
    operation gate, idle dispatch, deferred memory consolidation, then the
    branch for the agent's conversation membership status.
    """

    rng = rng or random.Random()
    player = world.players.get(agent.player_id)
    if player is None:
        raise NotFound("player", agent.player_id)

    # 1 Wait on an in-flight operation unless it has timed out.               # steps
    if tick_operation(world, now, agent):
        return None

    conversation = world.conversation_for_player(player.id)
    member = conversation.member(player.id) if conversation else None

    # 2 Cut activities short once we are talking or walking somewhere.        # steps
    recently_attempted_invite = (
        agent.last_invite_attempt is not None
        and now < agent.last_invite_attempt + config.CONVERSATION_COOLDOWN
    )
    doing_activity = player.activity is not None and player.activity.until > now
    if doing_activity and (conversation is not None or player.pathfinding is not None):
        player.activity.until = now

    # 3 Idle agents (or wanderers who haven't tried inviting lately) ask     # steps
    #   the executor for something to do.
    if conversation is None and not doing_activity and (
        player.pathfinding is None or not recently_attempted_invite
    ):
        return start_operation(
            world,
            now,
            agent,
            OperationName.DECIDE_ACTIVITY,
            {
                "player": player.model_dump(),
                "agent": agent.model_dump(),
                "map": world.world_map.model_dump(),
            },
            rng=rng,
        )

    # 4 Consolidate the last conversation into memory; best effort.           # steps
    if agent.to_remember is not None:
        conversation_id = agent.to_remember
        log_run_event(f"Agent {agent.id} remembering conversation {conversation_id}")
        request = start_operation(
            world,
            now,
            agent,
            OperationName.REMEMBER_CONVERSATION,
            {"player_id": player.id, "conversation_id": conversation_id},
            rng=rng,
        )
        agent.to_remember = None
        return request

    if conversation is None or member is None:
        return None
    other = conversation.other_member(player.id)
    if other is None:
        return None
    other_player = world.players.get(other[0])
    if other_player is None:
        raise NotFound("player", other[0])

    kind = member.status.kind
    if kind == "invited":
        _answer_invite(world, now, player, other_player, conversation, rng)
        return None
    if kind == "walkingOver":
        _walk_over(world, now, player, other_player, conversation, member.invited)
        return None
    if kind == "participating":
        return _take_turn(world, now, agent, player, other_player, conversation, member.status.started, rng)
    return None


def _answer_invite(
    world: "World",
    now: float,
    player: Player,
    other_player: Player,
    conversation: Conversation,
    rng: random.Random,
) -> None:
    """Humans are always accepted; other agents only some of the time."""

    if other_player.human or rng.random() < config.INVITE_ACCEPT_PROBABILITY:
        log_run_event(f"Agent {player.id} accepting invite from {other_player.id}")
        accept_invite(world, player, conversation)
        # Stop so the next tick can path toward the partner.
        if player.pathfinding is not None:
            stop_player(player)
    else:
        log_run_event(f"Agent {player.id} rejecting invite from {other_player.id}")
        reject_invite(world, now, player, conversation)


def _walk_over(
    world: "World",
    now: float,
    player: Player,
    other_player: Player,
    conversation: Conversation,
    invited: float,
) -> None:
    if invited + config.INVITE_TIMEOUT < now:
        log_run_event(f"Giving up on invite to {other_player.id}")
        leave_conversation(world, now, player, conversation, reason="invite_timeout")
        return
    player_distance = distance(player.position, other_player.position)
    if player_distance < config.CONVERSATION_DISTANCE:
        return
    if player.pathfinding is not None:
        return
    # Meeting halfway keeps both sides from chasing each other.
    if player_distance < config.MIDPOINT_THRESHOLD:
        destination = floor_tile(other_player.position)
    else:
        destination = midpoint_tile(player.position, other_player.position)
    log_run_event(f"Agent {player.id} walking towards {other_player.id} at {destination.x},{destination.y}")
    move_player(world, now, player, destination)


def _take_turn(
    world: "World",
    now: float,
    agent: Agent,
    player: Player,
    other_player: Player,
    conversation: Conversation,
    started: float,
    rng: random.Random,
) -> Optional[OperationRequest]:
    """Turn-taking for a participating agent."""

    if conversation.is_typing is not None and conversation.is_typing.player_id != player.id:
        return None

    if conversation.last_message is None:
        is_initiator = conversation.creator == player.id
        awkward_deadline = started + config.AWKWARD_CONVERSATION_TIMEOUT
        if is_initiator or awkward_deadline < now:
            log_run_event(f"{player.id} initiating conversation with {other_player.id}.")
            return _speak(world, now, agent, player, other_player, conversation, MessageType.START, rng)
        return None

    too_long_deadline = started + config.MAX_CONVERSATION_DURATION
    if too_long_deadline < now or conversation.num_messages > config.MAX_CONVERSATION_MESSAGES:
        log_run_event(f"{player.id} leaving conversation with {other_player.id}.")
        return _speak(world, now, agent, player, other_player, conversation, MessageType.LEAVE, rng)

    last = conversation.last_message
    if last.author == player.id and now < last.timestamp + config.AWKWARD_CONVERSATION_TIMEOUT:
        return None
    if now < last.timestamp + config.MESSAGE_COOLDOWN:
        return None
    log_run_event(f"{player.id} continuing conversation with {other_player.id}.")
    return _speak(world, now, agent, player, other_player, conversation, MessageType.CONTINUE, rng)


def _speak(
    world: "World",
    now: float,
    agent: Agent,
    player: Player,
    other_player: Player,
    conversation: Conversation,
    message_type: MessageType,
    rng: random.Random,
) -> OperationRequest:
    """Grab the typing lock and ask the executor for the next line."""

    message_uuid = new_token(rng)
    set_is_typing(now, conversation, player, message_uuid)
    return start_operation(
        world,
        now,
        agent,
        OperationName.GENERATE_MESSAGE,
        {
            "player_id": player.id,
            "conversation_id": conversation.id,
            "other_player_id": other_player.id,
            "message_uuid": message_uuid,
            "type": message_type.value,
        },
        rng=rng,
    )
