########## Input Handlers ##########
# Operation completions and player inputs, applied by the single-writer loop.

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, Tuple, Type

from pydantic import BaseModel

from .conversation import (
    accept_invite,
    finish_sending_message,
    leave_conversation,
    reject_invite,
    set_is_typing,
    start_conversation,
)
from .errors import InvalidTransition, NotFound
from .movement import move_player
from .operations import complete_operation
from .runlog import log_debug
from .types import (
    ConversationInput,
    DecideActivityCompletion,
    FinishSendingMessageInput,
    GenerateMessageCompletion,
    InputName,
    JoinInput,
    MoveToInput,
    PlayerInput,
    RememberConversationCompletion,
    StartConversationInput,
    StartTypingInput,
)

if TYPE_CHECKING:
    from .world import World

InputHandler = Callable[["World", float, Any], Any]


########## Operation Completions ##########
# Each handler checks the echoed operation id first; a mismatch is a no-op.


def finish_remember_conversation(world: "World", now: float, args: RememberConversationCompletion) -> None:
    agent = world.agent(world.parse_id("agents", args.agent_id))
    if not complete_operation(world, agent, args.operation_id):
        return None
    agent.to_remember = None
    return None


def finish_do_something(world: "World", now: float, args: DecideActivityCompletion) -> None:
    """Apply whichever of invite, destination, and activity came back."""

    # 1 Drop stale completions before touching anything.                       # steps
    # 2 Invite first so the destination check sees the new conversation.      # steps
    agent = world.agent(world.parse_id("agents", args.agent_id))
    if not complete_operation(world, agent, args.operation_id):
        return None
    player = world.player(agent.player_id)
    if args.invitee is not None:
        invitee = world.player(world.parse_id("players", args.invitee))
        busy = world.conversation_for_player(invitee.id) or world.conversation_for_player(player.id)
        if busy is not None:
            log_debug(f"Agent {agent.id} skipped inviting {invitee.id}; someone is already talking")
            world.note("invite_skipped", agent_id=agent.id, target_id=invitee.id, detail=busy.id)
        else:
            start_conversation(world, now, player, invitee)
        # A skipped invite still counts as an attempt for the cooldown.
        agent.last_invite_attempt = now
    if args.destination is not None:
        move_player(world, now, player, args.destination)
    if args.activity is not None:
        player.activity = args.activity
    return None


def agent_finish_sending_message(world: "World", now: float, args: GenerateMessageCompletion) -> None:
    agent = world.agent(world.parse_id("agents", args.agent_id))
    player = world.player(agent.player_id)
    conversation = world.conversation(world.parse_id("conversations", args.conversation_id))
    if not complete_operation(world, agent, args.operation_id):
        return None
    finish_sending_message(world, now, player, conversation, args.timestamp, text=args.text)
    if args.leave_conversation:
        leave_conversation(world, now, player, conversation)
    return None


########## Player Inputs ##########
# The same surface a human client drives.


def handle_join(world: "World", now: float, args: JoinInput) -> str:
    player = world.join(
        now,
        name=args.name,
        description=args.description,
        character=args.character,
        human=args.human,
        position=args.position,
        identity=args.identity,
        plan=args.plan,
    )
    return player.id


def handle_leave(world: "World", now: float, args: PlayerInput) -> None:
    world.leave(now, world.parse_id("players", args.player_id))


def handle_move_to(world: "World", now: float, args: MoveToInput) -> None:
    player = world.player(world.parse_id("players", args.player_id))
    move_player(world, now, player, args.destination)


def handle_start_conversation(world: "World", now: float, args: StartConversationInput) -> str:
    player = world.player(world.parse_id("players", args.player_id))
    invitee = world.player(world.parse_id("players", args.invitee))
    return start_conversation(world, now, player, invitee).id


def _conversation_args(world: "World", args: Any):
    player = world.player(world.parse_id("players", args.player_id))
    conversation = world.conversation(world.parse_id("conversations", args.conversation_id))
    return player, conversation


def handle_accept_invite(world: "World", now: float, args: ConversationInput) -> None:
    player, conversation = _conversation_args(world, args)
    accept_invite(world, player, conversation)


def handle_reject_invite(world: "World", now: float, args: ConversationInput) -> None:
    player, conversation = _conversation_args(world, args)
    reject_invite(world, now, player, conversation)


def handle_leave_conversation(world: "World", now: float, args: ConversationInput) -> bool:
    player, conversation = _conversation_args(world, args)
    return leave_conversation(world, now, player, conversation)


def handle_start_typing(world: "World", now: float, args: StartTypingInput) -> None:
    player, conversation = _conversation_args(world, args)
    set_is_typing(now, conversation, player, args.message_uuid)


def handle_finish_sending_message(world: "World", now: float, args: FinishSendingMessageInput) -> None:
    player, conversation = _conversation_args(world, args)
    if conversation.member(player.id) is None:
        raise InvalidTransition(f"{player.id} is not in conversation {conversation.id}")
    finish_sending_message(world, now, player, conversation, args.timestamp, text=args.text)


########## Registry ##########
# Static dispatch table; the input name is decoded once at the boundary.

INPUT_HANDLERS: Dict[InputName, Tuple[Type[BaseModel], InputHandler]] = {
    InputName.FINISH_REMEMBER_CONVERSATION: (RememberConversationCompletion, finish_remember_conversation),
    InputName.FINISH_DO_SOMETHING: (DecideActivityCompletion, finish_do_something),
    InputName.AGENT_FINISH_SENDING_MESSAGE: (GenerateMessageCompletion, agent_finish_sending_message),
    InputName.JOIN: (JoinInput, handle_join),
    InputName.LEAVE: (PlayerInput, handle_leave),
    InputName.MOVE_TO: (MoveToInput, handle_move_to),
    InputName.START_CONVERSATION: (StartConversationInput, handle_start_conversation),
    InputName.ACCEPT_INVITE: (ConversationInput, handle_accept_invite),
    InputName.REJECT_INVITE: (ConversationInput, handle_reject_invite),
    InputName.LEAVE_CONVERSATION: (ConversationInput, handle_leave_conversation),
    InputName.START_TYPING: (StartTypingInput, handle_start_typing),
    InputName.FINISH_SENDING_MESSAGE: (FinishSendingMessageInput, handle_finish_sending_message),
}


def handle_input(world: "World", now: float, name: str, args: Dict[str, Any]) -> Any:
    """Decode an input by name, validate its payload, and apply it."""

    try:
        input_name = InputName(name)
    except ValueError:
        raise NotFound("input handler", name) from None
    model, handler = INPUT_HANDLERS[input_name]
    payload = model.model_validate(args)
    log_debug(f"applying input {input_name.value}")
    return handler(world, now, payload)
