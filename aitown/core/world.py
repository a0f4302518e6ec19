########## World Snapshot ##########
# In-memory container the tick loop owns: players, agents, and conversations.

from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from .errors import NotFound
from .ids import allocate_game_id, parse_game_id
from .runlog import log_run_event
from .types import (
    Agent,
    AgentDescription,
    Conversation,
    OperationRequest,
    Player,
    PlayerDescription,
    Point,
    WorldMap,
)


class World:
    """Mutable world snapshot; only the tick loop writes to it."""

    def __init__(self, world_id: str = "world", world_map: Optional[WorldMap] = None) -> None:
        self.world_id = world_id
        self.world_map = world_map or WorldMap()
        self.next_id: int = 0
        self.players: Dict[str, Player] = {}
        self.player_descriptions: Dict[str, PlayerDescription] = {}
        self.agents: Dict[str, Agent] = {}
        self.agent_descriptions: Dict[str, AgentDescription] = {}
        self.conversations: Dict[str, Conversation] = {}
        self.archived_conversations: Dict[str, Conversation] = {}
        self.scheduled_operations: List[OperationRequest] = []
        self.notes: List[Dict[str, Any]] = []

    ########## Ids ##########

    def allocate_id(self, table: str) -> str:
        """Hand out the next id for a table."""

        game_id = allocate_game_id(table, self.next_id)
        self.next_id += 1
        return game_id

    def parse_id(self, table: str, raw: str) -> str:
        return parse_game_id(table, raw, self.next_id)

    ########## Lookups ##########

    def player(self, player_id: str) -> Player:
        player = self.players.get(player_id)
        if player is None:
            raise NotFound("player", player_id)
        return player

    def agent(self, agent_id: str) -> Agent:
        agent = self.agents.get(agent_id)
        if agent is None:
            raise NotFound("agent", agent_id)
        return agent

    def conversation(self, conversation_id: str) -> Conversation:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise NotFound("conversation", conversation_id)
        return conversation

    def agent_for_player(self, player_id: str) -> Optional[Agent]:
        for agent in self.agents.values():
            if agent.player_id == player_id:
                return agent
        return None

    def conversation_for_player(self, player_id: str) -> Optional[Conversation]:
        """Return the active conversation the player belongs to, if any."""

        for conversation in self.conversations.values():
            if player_id in conversation.participants:
                return conversation
        return None

    def recent_partners(self, player_id: str, since: float) -> Set[str]:
        """Players this player finished a conversation with after ``since``."""

        partners: Set[str] = set()
        for conversation in self.archived_conversations.values():
            if player_id not in conversation.participants:
                continue
            if conversation.ended is None or conversation.ended < since:
                continue
            partners.update(pid for pid in conversation.participants if pid != player_id)
        return partners

    ########## Outboxes ##########
    # The core never talks to collaborators directly; it fills these lists and
    # the engine drains them after each tick.

    def schedule_operation(self, request: OperationRequest) -> None:
        self.scheduled_operations.append(request)

    def drain_operations(self) -> List[OperationRequest]:
        requests = list(self.scheduled_operations)
        self.scheduled_operations.clear()
        return requests

    def note(self, kind: str, agent_id: Optional[str] = None, target_id: Optional[str] = None, detail: str = "") -> None:
        """Record an observability note for the engine to persist."""

        self.notes.append({"type": kind, "agent_id": agent_id, "target_id": target_id, "data": detail})

    def drain_notes(self) -> List[Dict[str, Any]]:
        notes = list(self.notes)
        self.notes.clear()
        return notes

    ########## Membership Lifecycle ##########

    def join(
        self,
        now: float,
        name: str,
        description: str = "",
        character: str = "f1",
        human: bool = False,
        position: Optional[Point] = None,
        identity: Optional[str] = None,
        plan: Optional[str] = None,
    ) -> Player:
        """Create a player, plus an agent when the player is not human."""

        # 1 Allocate the player and its presentation row.                      # steps
        # 2 Attach an agent and its prompts for AI-controlled players.         # steps
        player_id = self.allocate_id("players")
        player = Player(
            id=player_id,
            name=name,
            position=position or Point(x=0, y=0),
            human=human,
        )
        self.players[player_id] = player
        self.player_descriptions[player_id] = PlayerDescription(
            player_id=player_id,
            name=name,
            description=description,
            character=character,
        )
        if not human:
            agent_id = self.allocate_id("agents")
            self.agents[agent_id] = Agent(id=agent_id, player_id=player_id)
            self.agent_descriptions[agent_id] = AgentDescription(
                agent_id=agent_id,
                identity=identity or description,
                plan=plan or "",
            )
        log_run_event(f"{name} ({player_id}) joined {self.world_id} at {now}")
        return player

    def leave(self, now: float, player_id: str) -> None:
        """Remove a player together with its agent and any conversation."""

        from .conversation import leave_conversation

        player = self.player(player_id)
        conversation = self.conversation_for_player(player_id)
        if conversation is not None:
            leave_conversation(self, now, player, conversation, reason="player_left_world")
        agent = self.agent_for_player(player_id)
        if agent is not None:
            self.agents.pop(agent.id, None)
            self.agent_descriptions.pop(agent.id, None)
        self.players.pop(player_id, None)
        self.player_descriptions.pop(player_id, None)
        log_run_event(f"{player.name or player_id} left {self.world_id} at {now}")

