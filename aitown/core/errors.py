########## Engine Errors ##########
# Exception taxonomy shared by the policy, state machine, and input handlers.

from __future__ import annotations


class AITownError(Exception):
    """Base class for every error raised by the agent engine."""


class InvariantViolation(AITownError):
    """The world snapshot is inconsistent; fatal for the enclosing step."""


class ConflictError(InvariantViolation):
    """An operation was started while another one is still in flight."""


class NotFound(InvariantViolation, KeyError):
    """A referenced agent, player, or conversation does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.message = f"Couldn't find {kind}: {identifier}"
        super().__init__(self.message)
        self.kind = kind
        self.identifier = identifier

    def __str__(self) -> str:
        return self.message


class InvalidTransition(AITownError):
    """A membership or movement change is not legal from the current state."""


class LockConflict(AITownError):
    """The conversation typing lock is held by someone else."""

    def __init__(self, conversation_id: str, holder_id: str, requester_id: str) -> None:
        super().__init__(
            f"Conversation {conversation_id} is locked by {holder_id}; {requester_id} cannot type"
        )
        self.conversation_id = conversation_id
        self.holder_id = holder_id
        self.requester_id = requester_id
