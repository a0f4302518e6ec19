########## Message Store ##########
# Conversation transcripts and per-player memories, backed by sqlite.

from __future__ import annotations

from typing import Dict, List, Optional

from . import config
from .db import insert_memory, insert_message, list_memories, list_messages
from .runlog import log_run_event
from .types import ConversationMessage


class MessageStore:
    """Persists delivered lines and turns finished conversations into memories."""

    def __init__(self, keep: int = config.MESSAGE_HISTORY_KEEP) -> None:
        self.keep = keep

    def record(
        self,
        conversation_id: str,
        author: str,
        text_line: str,
        timestamp: float,
        message_uuid: Optional[str] = None,
    ) -> ConversationMessage:
        """Persist one line and return it as a typed message."""

        insert_message(conversation_id, author, text_line, message_uuid, timestamp)
        return ConversationMessage(
            conversation_id=conversation_id,
            author=author,
            text=text_line,
            message_uuid=message_uuid,
            timestamp=timestamp,
        )

    def history(self, conversation_id: str) -> List[ConversationMessage]:
        rows = list_messages(conversation_id, self.keep)
        return [
            ConversationMessage(
                conversation_id=row["conversation_id"],
                author=row["author"],
                text=row["text"] or "",
                message_uuid=row["message_uuid"],
                timestamp=row["ts"],
            )
            for row in rows
        ]

    def summarize(self, player_id: str, conversation_id: str) -> str:
        """Build a short first-person summary of a conversation."""

        # 1 Split the tail of the transcript into our lines and theirs.        # steps
        items = self.history(conversation_id)
        tail = items[-config.CONVERSATION_SUMMARY_LENGTH - 1 :]
        partners = sorted({item.author for item in items if item.author != player_id})
        own_lines = [item.text for item in tail if item.author == player_id]
        partner_lines = [item.text for item in tail if item.author != player_id]
        if not items:
            return f"I was in conversation {conversation_id} but nothing was said."
        fragments: List[str] = [f"I talked with {', '.join(partners) or 'nobody'}."]
        if partner_lines:
            fragments.append(f"They said '{partner_lines[-1]}'")
        if own_lines:
            fragments.append(f"I said '{own_lines[-1]}'")
        return " ".join(fragments)

    def remember(self, player_id: str, conversation_id: str, timestamp: float) -> str:
        """Summarize a finished conversation and store it as a memory."""

        summary = self.summarize(player_id, conversation_id)
        insert_memory(player_id, conversation_id, summary, timestamp)
        log_run_event(f"{player_id} remembered {conversation_id}: {summary}")
        return summary

    def memories(self, player_id: str) -> List[Dict[str, object]]:
        return list_memories(player_id)
