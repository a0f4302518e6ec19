########## Core Types ##########
# Pydantic models and enums that describe players, agents, and conversations.

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

from . import config


class Point(BaseModel):
    """Tile coordinate on the world map."""

    x: float
    y: float


class WorldMap(BaseModel):
    """Bounds of the walkable map."""

    width: int = config.DEFAULT_MAP_WIDTH
    height: int = config.DEFAULT_MAP_HEIGHT

    def contains(self, point: Point) -> bool:
        """Return True when the point lies inside the map bounds."""

        return 0 <= point.x < self.width and 0 <= point.y < self.height


class Activity(BaseModel):
    """Something a player is busy with until a deadline."""

    description: str
    until: float
    emoji: Optional[str] = None


class Pathfinding(BaseModel):
    """Movement intent handed to the movement collaborator."""

    destination: Point
    started: float
    waypoint: Optional[Point] = None


class Player(BaseModel):
    """Movable entity in the world; agents drive the non-human ones."""

    id: str
    name: str = ""
    position: Point
    pathfinding: Optional[Pathfinding] = None
    activity: Optional[Activity] = None
    human: bool = False
    speed: float = config.PLAYER_SPEED


class PlayerDescription(BaseModel):
    """Presentation data kept beside a player."""

    player_id: str
    name: str
    description: str = ""
    character: str = "f1"


########## Operations ##########
# Named units of delegated work and their correlation data.


class OperationName(str, Enum):
    """Kinds of long-running work an agent may delegate."""

    DECIDE_ACTIVITY = "decide-activity"
    REMEMBER_CONVERSATION = "remember-conversation"
    GENERATE_MESSAGE = "generate-message"


class MessageType(str, Enum):
    """Tag carried by generate-message requests."""

    START = "start"
    CONTINUE = "continue"
    LEAVE = "leave"


class InProgressOperation(BaseModel):
    """The single operation an agent is currently waiting on."""

    name: OperationName
    operation_id: str
    started: float


class OperationRequest(BaseModel):
    """Request emitted by the core for the external executor."""

    name: OperationName
    operation_id: str
    agent_id: str
    args: Dict[str, Any] = Field(default_factory=dict)


class Agent(BaseModel):
    """Policy-driven controller of one non-human player."""

    id: str
    player_id: str
    to_remember: Optional[str] = None
    last_conversation: Optional[float] = None
    last_invite_attempt: Optional[float] = None
    in_progress_operation: Optional[InProgressOperation] = None


class AgentDescription(BaseModel):
    """Identity and plan prompts handed to the executor."""

    agent_id: str
    identity: str
    plan: str


########## Conversations ##########
# Membership statuses form a tagged union keyed by ``kind``.


class InvitedStatus(BaseModel):
    kind: Literal["invited"] = "invited"


class WalkingOverStatus(BaseModel):
    """Heading to the partner; the invite time lives on ``ConversationMember.invited``."""

    kind: Literal["walkingOver"] = "walkingOver"


class ParticipatingStatus(BaseModel):
    kind: Literal["participating"] = "participating"
    started: float


class LeftStatus(BaseModel):
    kind: Literal["left"] = "left"
    ended: float
    reason: str = "left"


MembershipStatus = Annotated[
    Union[InvitedStatus, WalkingOverStatus, ParticipatingStatus, LeftStatus],
    Field(discriminator="kind"),
]


class ConversationMember(BaseModel):
    """One player's position in a conversation's lifecycle."""

    player_id: str
    invited: float
    status: MembershipStatus = Field(default_factory=InvitedStatus)


class TypingState(BaseModel):
    """Exclusive right to author the next message."""

    player_id: str
    message_uuid: str
    since: float


class LastMessage(BaseModel):
    author: str
    timestamp: float


class MessageRecord(BaseModel):
    """Transcript entry appended when a message is delivered."""

    author: str
    timestamp: float
    message_uuid: Optional[str] = None
    text: Optional[str] = None


class Conversation(BaseModel):
    """Transient interaction between two players."""

    id: str
    creator: str
    created: float
    participants: Dict[str, ConversationMember] = Field(default_factory=dict)
    is_typing: Optional[TypingState] = None
    last_message: Optional[LastMessage] = None
    num_messages: int = 0
    messages: List[MessageRecord] = Field(default_factory=list)
    ended: Optional[float] = None

    def member(self, player_id: str) -> Optional[ConversationMember]:
        """Return the membership for a player when present."""

        return self.participants.get(player_id)

    def other_member(self, player_id: str) -> Optional[Tuple[str, ConversationMember]]:
        """Return the first participant that is not ``player_id``."""

        for other_id, member in self.participants.items():
            if other_id != player_id:
                return other_id, member
        return None


class ConversationMessage(BaseModel):
    """Persisted message row surfaced by the message store."""

    conversation_id: str
    author: str
    text: str
    message_uuid: Optional[str] = None
    timestamp: float


########## Inputs ##########
# Payloads routed through the single-writer input queue.


class InputName(str, Enum):
    """Every input the engine knows how to apply."""

    FINISH_REMEMBER_CONVERSATION = "finishRememberConversation"
    FINISH_DO_SOMETHING = "finishDoSomething"
    AGENT_FINISH_SENDING_MESSAGE = "agentFinishSendingMessage"
    JOIN = "join"
    LEAVE = "leave"
    MOVE_TO = "moveTo"
    START_CONVERSATION = "startConversation"
    ACCEPT_INVITE = "acceptInvite"
    REJECT_INVITE = "rejectInvite"
    LEAVE_CONVERSATION = "leaveConversation"
    START_TYPING = "startTyping"
    FINISH_SENDING_MESSAGE = "finishSendingMessage"


class RememberConversationCompletion(BaseModel):
    operation_id: str
    agent_id: str


class DecideActivityCompletion(BaseModel):
    """Outcome of decide-activity; every field is independently optional."""

    operation_id: str
    agent_id: str
    destination: Optional[Point] = None
    invitee: Optional[str] = None
    activity: Optional[Activity] = None


class GenerateMessageCompletion(BaseModel):
    operation_id: str
    agent_id: str
    conversation_id: str
    timestamp: float
    leave_conversation: bool = False
    text: Optional[str] = None


class JoinInput(BaseModel):
    name: str
    description: str = ""
    character: str = "f1"
    human: bool = False
    position: Optional[Point] = None
    identity: Optional[str] = None
    plan: Optional[str] = None


class PlayerInput(BaseModel):
    player_id: str


class MoveToInput(BaseModel):
    player_id: str
    destination: Optional[Point] = None


class StartConversationInput(BaseModel):
    player_id: str
    invitee: str


class ConversationInput(BaseModel):
    player_id: str
    conversation_id: str


class StartTypingInput(BaseModel):
    player_id: str
    conversation_id: str
    message_uuid: str


class FinishSendingMessageInput(BaseModel):
    player_id: str
    conversation_id: str
    timestamp: float
    text: Optional[str] = None
