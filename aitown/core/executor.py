########## Operation Executors ##########
# Carry scheduled operations out of the tick loop and feed completions back in.

from __future__ import annotations

import random
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from . import config
from .geometry import find_conversation_candidate
from .memory import MessageStore
from .runlog import log_debug, log_run_event
from .types import InputName, MessageType, OperationName, OperationRequest, Player, WorldMap

if TYPE_CHECKING:
    from .engine import SimulationEngine

Completion = Tuple[InputName, Dict[str, Any]]


class BaseOperationExecutor:
    """Receives operation requests once the engine has released its lock."""

    def schedule(self, request: OperationRequest) -> None:
        raise NotImplementedError


class QueuedOperationExecutor(BaseOperationExecutor):
    """Collects requests so a caller can inspect or run them later."""

    def __init__(self) -> None:
        self.pending: List[OperationRequest] = []

    def schedule(self, request: OperationRequest) -> None:
        self.pending.append(request)

    def drain(self) -> List[OperationRequest]:
        requests = list(self.pending)
        self.pending.clear()
        return requests


########## Stub Operations ##########
# Deterministic stand-ins for the language model: random activities, nearest
# invitee, canned lines, and summary memories.

CANNED_LINES: Dict[MessageType, List[str]] = {
    MessageType.START: ["Hi {partner}! How is your day going?", "Hey {partner}, nice to run into you."],
    MessageType.CONTINUE: ["That sounds interesting, {partner}.", "Tell me more about that.", "I was thinking the same."],
    MessageType.LEAVE: ["I should get going. Talk later, {partner}!", "Good chatting, see you around."],
}


def wander_destination(world_map: WorldMap, rng: random.Random) -> Dict[str, float]:
    """Random tile on the map, keeping off the outer edge when possible."""

    margin_x = 1 if world_map.width > 2 else 0
    margin_y = 1 if world_map.height > 2 else 0
    x = rng.randint(margin_x, world_map.width - 1 - margin_x)
    y = rng.randint(margin_y, world_map.height - 1 - margin_y)
    return {"x": float(x), "y": float(y)}


def decide_activity(
    engine: "SimulationEngine",
    request: OperationRequest,
    now: float,
    rng: random.Random,
) -> Completion:
    """Pick a wander destination, an activity, or someone to invite."""

    # 1 Idle players either wander (after an activity or chat) or start one.  # steps
    # 2 Players already walking may try to invite the nearest free player.    # steps
    player = Player.model_validate(request.args["player"])
    world_map = WorldMap.model_validate(request.args["map"])
    agent = request.args["agent"]
    completion: Dict[str, Any] = {"operation_id": request.operation_id, "agent_id": request.agent_id}

    last_conversation = agent.get("last_conversation")
    last_invite_attempt = agent.get("last_invite_attempt")
    just_left_conversation = last_conversation is not None and now < last_conversation + config.CONVERSATION_COOLDOWN
    recently_attempted_invite = (
        last_invite_attempt is not None and now < last_invite_attempt + config.CONVERSATION_COOLDOWN
    )
    recent_activity = player.activity is not None and now < player.activity.until + config.ACTIVITY_COOLDOWN

    if player.pathfinding is None:
        if recent_activity or just_left_conversation:
            completion["destination"] = wander_destination(world_map, rng)
        else:
            choice = rng.choice(config.ACTIVITIES)
            completion["activity"] = {
                "description": choice["description"],
                "emoji": choice.get("emoji"),
                "until": now + choice["duration"],
            }
        return InputName.FINISH_DO_SOMETHING, completion

    if not just_left_conversation and not recently_attempted_invite and rng.random() < config.INVITE_PROBABILITY:
        current = engine.world.players.get(player.id)
        invitee = find_conversation_candidate(engine.world, now, current) if current is not None else None
        if invitee is not None:
            completion["invitee"] = invitee
    return InputName.FINISH_DO_SOMETHING, completion


def agent_send_message(
    engine: "SimulationEngine",
    store: MessageStore,
    *,
    conversation_id: str,
    agent_id: str,
    player_id: str,
    text: str,
    message_uuid: Optional[str],
    leave_conversation: bool,
    operation_id: str,
    timestamp: float,
) -> None:
    """Persist a generated line, then report the completion to the engine."""

    store.record(conversation_id, player_id, text, timestamp, message_uuid=message_uuid)
    engine.submit_input(
        InputName.AGENT_FINISH_SENDING_MESSAGE,
        {
            "operation_id": operation_id,
            "agent_id": agent_id,
            "conversation_id": conversation_id,
            "timestamp": timestamp,
            "leave_conversation": leave_conversation,
            "text": text,
        },
    )


class StubOperationExecutor(QueuedOperationExecutor):
    """Runs queued operations in-process when ``flush`` is called."""

    def __init__(self, store: Optional[MessageStore] = None, seed: Optional[int] = None) -> None:
        super().__init__()
        self.store = store or MessageStore()
        self.random = random.Random(config.RANDOM_SEED if seed is None else seed)

    def flush(self, engine: "SimulationEngine", now: float) -> int:
        """Execute every pending request and submit its completion."""

        handled = 0
        for request in self.drain():
            self.run(engine, request, now)
            handled += 1
        return handled

    def run(self, engine: "SimulationEngine", request: OperationRequest, now: float) -> None:
        log_debug(f"stub executing {request.name.value} for {request.agent_id}")
        if request.name == OperationName.DECIDE_ACTIVITY:
            name, args = decide_activity(engine, request, now, self.random)
            engine.submit_input(name, args)
        elif request.name == OperationName.GENERATE_MESSAGE:
            message_type = MessageType(request.args["type"])
            agent_send_message(
                engine,
                self.store,
                conversation_id=request.args["conversation_id"],
                agent_id=request.agent_id,
                player_id=request.args["player_id"],
                text=self.compose_line(engine, request, message_type),
                message_uuid=request.args.get("message_uuid"),
                leave_conversation=message_type == MessageType.LEAVE,
                operation_id=request.operation_id,
                timestamp=now,
            )
        elif request.name == OperationName.REMEMBER_CONVERSATION:
            self.store.remember(request.args["player_id"], request.args["conversation_id"], now)
            engine.submit_input(
                InputName.FINISH_REMEMBER_CONVERSATION,
                {"operation_id": request.operation_id, "agent_id": request.agent_id},
            )

    def compose_line(self, engine: "SimulationEngine", request: OperationRequest, message_type: MessageType) -> str:
        """Pick a canned line addressed to the partner, avoiding an exact repeat."""

        partner_id = request.args.get("other_player_id", "")
        description = engine.world.player_descriptions.get(partner_id)
        partner = description.name if description is not None and description.name else partner_id
        said = {item.text for item in self.store.history(request.args["conversation_id"])}
        options = [line.format(partner=partner) for line in CANNED_LINES[message_type]]
        fresh = [line for line in options if line not in said]
        return self.random.choice(fresh or options)


########## Thread Pool ##########


class ThreadPoolOperationExecutor(BaseOperationExecutor):
    """Runs a handler per request on worker threads.

    The handler returns ``(input_name, args)`` or None. Failures are logged
    and dropped; the agent recovers through the operation timeout.
    """

    def __init__(
        self,
        handler: Callable[[OperationRequest], Optional[Completion]],
        submit: Callable[[InputName, Dict[str, Any]], None],
        max_workers: int = 4,
    ) -> None:
        self.handler = handler
        self.submit = submit
        self.pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="aitown-op")

    def schedule(self, request: OperationRequest) -> None:
        future = self.pool.submit(self.handler, request)
        future.add_done_callback(lambda done: self._on_done(request, done))

    def _on_done(self, request: OperationRequest, future: Future) -> None:
        error = future.exception()
        if error is not None:
            log_run_event(f"Operation {request.name.value} ({request.operation_id}) failed: {error!r}")
            return
        result = future.result()
        if result is None:
            return
        name, args = result
        self.submit(name, args)

    def shutdown(self, wait: bool = True) -> None:
        self.pool.shutdown(wait=wait)
