########## Operation Tracker ##########
# Single-flight bookkeeping for the one long-running operation an agent may own.

from __future__ import annotations

import random
import uuid
from typing import TYPE_CHECKING, Any, Dict, Optional

from . import config
from .errors import ConflictError
from .runlog import log_debug, log_run_event
from .types import Agent, InProgressOperation, OperationName, OperationRequest

if TYPE_CHECKING:
    from .world import World

_DEFAULT_RANDOM = random.Random()


def new_token(rng: Optional[random.Random] = None) -> str:
    """Return a fresh uuid4-shaped token drawn from the given random source."""

    source = rng or _DEFAULT_RANDOM
    return str(uuid.UUID(int=source.getrandbits(128), version=4))


def start_operation(
    world: "World",
    now: float,
    agent: Agent,
    name: OperationName,
    args: Dict[str, Any],
    rng: Optional[random.Random] = None,
) -> OperationRequest:
    """Track a new operation on the agent and queue its request."""

    # 1 Refuse to start a second operation while one is pending.               # steps
    # 2 Mint the correlation token, queue the request, record the start.       # steps
    if agent.in_progress_operation is not None:
        raise ConflictError(
            f"Agent {agent.id} already has an operation: {agent.in_progress_operation.model_dump_json()}"
        )
    operation_id = new_token(rng)
    request = OperationRequest(
        name=name,
        operation_id=operation_id,
        agent_id=agent.id,
        args={"world_id": world.world_id, "agent_id": agent.id, **args},
    )
    world.schedule_operation(request)
    agent.in_progress_operation = InProgressOperation(
        name=name,
        operation_id=operation_id,
        started=now,
    )
    log_run_event(f"Agent {agent.id} starting operation {name.value} ({operation_id})")
    return request


def operation_timed_out(agent: Agent, now: float) -> bool:
    operation = agent.in_progress_operation
    if operation is None:
        return False
    return now - operation.started >= config.ACTION_TIMEOUT


def tick_operation(world: "World", now: float, agent: Agent) -> bool:
    """Return True while an operation still blocks the agent; clear it on timeout."""

    operation = agent.in_progress_operation
    if operation is None:
        return False
    if not operation_timed_out(agent, now):
        return True
    log_run_event(f"Timing out {operation.model_dump_json()} for agent {agent.id}")
    world.note("operation_timeout", agent_id=agent.id, detail=f"{operation.name.value}:{operation.operation_id}")
    agent.in_progress_operation = None
    return False


def complete_operation(world: "World", agent: Agent, operation_id: str) -> bool:
    """Clear the tracked operation if ``operation_id`` matches it.

    A mismatch means the completion is a duplicate or arrived after a
    timeout; the caller must then leave all state untouched.
    """

    operation = agent.in_progress_operation
    if operation is None or operation.operation_id != operation_id:
        log_debug(f"Agent {agent.id} isn't waiting on {operation_id}")
        world.note("stale_completion", agent_id=agent.id, detail=operation_id)
        return False
    agent.in_progress_operation = None
    return True
