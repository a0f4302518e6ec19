########## Simulation Engine ##########
# Single-writer tick loop: applies inputs, ticks conversations and agents,
# advances movement, then hands scheduled operations to the executor.

from __future__ import annotations

import queue
import random
import threading
from typing import Any, Dict, List, Optional, Tuple

from . import config
from .agent import tick_agent
from .conversation import tick_conversation
from .db import log_event
from .errors import AITownError
from .executor import BaseOperationExecutor, QueuedOperationExecutor
from .inputs import handle_input
from .movement import advance_movement
from .runlog import log_run_event
from .types import InputName, OperationRequest
from .world import World


class SimulationEngine:
    """Owns the world and serialises every write to it."""

    def __init__(
        self,
        world: World,
        executor: Optional[BaseOperationExecutor] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        # 1 Keep the world, its executor, and the shared random source.       # steps
        # 2 Inputs from any thread land in a queue drained inside step.       # steps
        self.world = world
        self.executor = executor or QueuedOperationExecutor()
        self.random = rng or random.Random(config.RANDOM_SEED)
        self.inputs: "queue.Queue[Tuple[str, Dict[str, Any]]]" = queue.Queue()
        self.lock = threading.Lock()
        self.current_tick: int = 0
        self.last_step: Optional[float] = None
        self.results: List[Dict[str, Any]] = []

    def submit_input(self, name: Any, args: Dict[str, Any]) -> None:
        """Queue an input; safe to call from any thread."""

        raw_name = name.value if isinstance(name, InputName) else str(name)
        self.inputs.put((raw_name, dict(args)))

    def step(self, now: float) -> List[OperationRequest]:
        """Run one tick at ``now`` and return the requests it scheduled."""

        with self.lock:
            self._apply_inputs(now)
            for conversation in list(self.world.conversations.values()):
                if conversation.id not in self.world.conversations:
                    continue
                try:
                    tick_conversation(self.world, now, conversation)
                except AITownError as error:
                    self._record_failure("conversation_tick_failed", None, conversation.id, error)
            for agent in list(self.world.agents.values()):
                if agent.id not in self.world.agents:
                    continue
                try:
                    tick_agent(self.world, now, agent, rng=self.random)
                except AITownError as error:
                    self._record_failure("agent_tick_failed", agent.id, agent.player_id, error)
            elapsed = 0.0 if self.last_step is None else now - self.last_step
            for player in self.world.players.values():
                advance_movement(player, elapsed)
            self._flush_notes()
            requests = self.world.drain_operations()
            self.last_step = now
            self.current_tick += 1

        # Collaborators run outside the lock so they can submit inputs freely.
        for request in requests:
            if config.EVENT_LOG_ENABLED:
                log_event(request.agent_id, None, "operation_scheduled", f"{request.name.value}:{request.operation_id}")
            self.executor.schedule(request)
        return requests

    def run(
        self,
        ticks: int,
        start: float = 0.0,
        interval: float = config.TICK_INTERVAL_SECONDS,
    ) -> float:
        """Step ``ticks`` times on a synthetic clock; return the final time.

        A stub executor with a ``flush`` method is drained after every step so
        its completions are applied on the following tick.
        """

        now = start
        for _ in range(min(ticks, config.MAX_TICKS_PER_RUN)):
            self.step(now)
            flush = getattr(self.executor, "flush", None)
            if callable(flush):
                flush(self, now)
            now += interval
        return now

    def _apply_inputs(self, now: float) -> None:
        # 1 FIFO drain; a failing input is recorded and the rest still apply.  # steps
        self.results = []
        while True:
            try:
                name, args = self.inputs.get_nowait()
            except queue.Empty:
                break
            try:
                value = handle_input(self.world, now, name, args)
            except (AITownError, ValueError) as error:
                self._record_failure("input_failed", args.get("agent_id"), name, error)
                continue
            self.results.append({"name": name, "value": value})

    def _record_failure(self, kind: str, agent_id: Optional[str], target_id: Optional[str], error: Exception) -> None:
        log_run_event(f"{kind}: {type(error).__name__}: {error}")
        if config.EVENT_LOG_ENABLED:
            log_event(agent_id, target_id, kind, f"{type(error).__name__}: {error}")

    def _flush_notes(self) -> None:
        notes = self.world.drain_notes()
        if not config.EVENT_LOG_ENABLED:
            return
        for note in notes:
            log_event(note["agent_id"], note["target_id"], note["type"], note["data"])
