########## Game Ids ##########
# Allocates and validates the short "<prefix>:<n>" ids used inside one world.

from __future__ import annotations

from typing import Dict

from .errors import InvariantViolation

ID_PREFIXES: Dict[str, str] = {
    "players": "p",
    "agents": "a",
    "conversations": "c",
}


def allocate_game_id(table: str, number: int) -> str:
    """Format an id for the table using the world's next counter value."""

    prefix = ID_PREFIXES.get(table)
    if prefix is None:
        raise InvariantViolation(f"Unknown id table: {table}")
    return f"{prefix}:{number}"


def parse_game_id(table: str, raw: str, next_id: int) -> str:
    """Validate that ``raw`` is a well formed, already allocated id for ``table``."""

    # 1 Split prefix and counter and compare against the table.                # steps
    # 2 Reject counters the world has not handed out yet.                      # steps
    prefix = ID_PREFIXES.get(table)
    if prefix is None:
        raise InvariantViolation(f"Unknown id table: {table}")
    head, sep, tail = str(raw).partition(":")
    if not sep or head != prefix or not tail.isdigit():
        raise InvariantViolation(f"Invalid {table} id: {raw!r}")
    if int(tail) >= next_id:
        raise InvariantViolation(f"Id {raw} is from the future (next id {next_id})")
    return f"{prefix}:{int(tail)}"
