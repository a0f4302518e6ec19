########## Executor Tests ##########
# Stub decisions, the message delivery path, and the thread pool executor.

from __future__ import annotations

import random

from aitown.core import config
from aitown.core.engine import SimulationEngine
from aitown.core.executor import (
    QueuedOperationExecutor,
    StubOperationExecutor,
    ThreadPoolOperationExecutor,
    agent_send_message,
    decide_activity,
)
from aitown.core.memory import MessageStore
from aitown.core.operations import start_operation
from aitown.core.types import Activity, InputName, OperationName, OperationRequest, Pathfinding, Point
from aitown.core.world import World


def _engine():
    world = World()
    alice = world.join(0.0, name="Alice", position=Point(x=0, y=0))
    bob = world.join(0.0, name="Bob", position=Point(x=4, y=0))
    engine = SimulationEngine(world, executor=QueuedOperationExecutor(), rng=random.Random(4))
    return engine, alice, bob


def _decide_request(engine: SimulationEngine, player_id: str, now: float) -> OperationRequest:
    world = engine.world
    agent = world.agent_for_player(player_id)
    return start_operation(
        world,
        now,
        agent,
        OperationName.DECIDE_ACTIVITY,
        {
            "player": world.player(player_id).model_dump(),
            "agent": agent.model_dump(),
            "map": world.world_map.model_dump(),
        },
    )


def test_decide_activity_picks_an_activity_when_rested() -> None:
    engine, alice, _ = _engine()
    request = _decide_request(engine, alice.id, 10.0)
    name, args = decide_activity(engine, request, 10.0, random.Random(1))
    assert name == InputName.FINISH_DO_SOMETHING
    assert args["operation_id"] == request.operation_id
    assert args["activity"]["until"] > 10.0
    assert args["activity"]["description"] in {item["description"] for item in config.ACTIVITIES}
    assert "destination" not in args


def test_decide_activity_wanders_after_an_activity() -> None:
    """A player fresh off an activity wanders to a tile on the map."""

    engine, alice, _ = _engine()
    alice.activity = Activity(description="reading", until=9.0)
    request = _decide_request(engine, alice.id, 10.0)
    _, args = decide_activity(engine, request, 10.0, random.Random(1))
    destination = Point(**args["destination"])
    assert engine.world.world_map.contains(destination)
    assert "activity" not in args


def test_decide_activity_invites_nearest_while_walking(monkeypatch, always_yes) -> None:
    monkeypatch.setattr(config, "INVITE_PROBABILITY", 1.0)
    engine, alice, bob = _engine()
    alice.pathfinding = Pathfinding(destination=Point(x=9, y=9), started=0.0)
    request = _decide_request(engine, alice.id, 10.0)
    _, args = decide_activity(engine, request, 10.0, always_yes)
    assert args["invitee"] == bob.id


def test_decide_activity_holds_off_inviting_after_a_conversation(always_yes) -> None:
    engine, alice, _ = _engine()
    alice.pathfinding = Pathfinding(destination=Point(x=9, y=9), started=0.0)
    engine.world.agent_for_player(alice.id).last_conversation = 8.0
    request = _decide_request(engine, alice.id, 10.0)
    _, args = decide_activity(engine, request, 10.0, always_yes)
    assert "invitee" not in args


def test_agent_send_message_persists_then_submits() -> None:
    """The line is stored before the completion is queued."""

    engine, alice, _ = _engine()
    store = MessageStore()
    agent = engine.world.agent_for_player(alice.id)
    agent_send_message(
        engine,
        store,
        conversation_id="c:9",
        agent_id=agent.id,
        player_id=alice.id,
        text="Hello there",
        message_uuid="uuid-1",
        leave_conversation=False,
        operation_id="op-1",
        timestamp=3.0,
    )
    assert store.history("c:9")[0].text == "Hello there"
    name, args = engine.inputs.get_nowait()
    assert name == InputName.AGENT_FINISH_SENDING_MESSAGE.value
    assert args["operation_id"] == "op-1"
    assert args["text"] == "Hello there"


def test_stub_remember_stores_memory_and_completes() -> None:
    engine, alice, _ = _engine()
    stub = StubOperationExecutor(store=MessageStore(), seed=3)
    engine.executor = stub
    agent = engine.world.agent_for_player(alice.id)
    request = start_operation(
        engine.world,
        1.0,
        agent,
        OperationName.REMEMBER_CONVERSATION,
        {"player_id": alice.id, "conversation_id": "c:9"},
    )
    stub.schedule(request)
    assert stub.flush(engine, 2.0) == 1
    assert len(stub.store.memories(alice.id)) == 1
    engine.step(3.0)
    assert engine.results == [{"name": InputName.FINISH_REMEMBER_CONVERSATION.value, "value": None}]


def test_thread_pool_executor_submits_completions() -> None:
    """Handler results come back through the submit callback."""

    submitted = []

    def handler(request: OperationRequest):
        if request.args.get("boom"):
            raise RuntimeError("model unavailable")
        return InputName.FINISH_REMEMBER_CONVERSATION, {"operation_id": request.operation_id, "agent_id": request.agent_id}

    executor = ThreadPoolOperationExecutor(handler, lambda name, args: submitted.append((name, args)), max_workers=2)
    executor.schedule(OperationRequest(name=OperationName.REMEMBER_CONVERSATION, operation_id="ok", agent_id="a:1"))
    executor.schedule(
        OperationRequest(name=OperationName.REMEMBER_CONVERSATION, operation_id="bad", agent_id="a:1", args={"boom": True})
    )
    executor.shutdown(wait=True)
    assert submitted == [(InputName.FINISH_REMEMBER_CONVERSATION, {"operation_id": "ok", "agent_id": "a:1"})]
