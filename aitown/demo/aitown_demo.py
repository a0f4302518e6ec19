########## Demo Runner ##########
# Seeds a small town, ticks the engine with the stub executor, and exports logs.

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core import config
from ..core.db import fetch_events
from ..core.engine import SimulationEngine
from ..core.executor import StubOperationExecutor
from ..core.memory import MessageStore
from ..core.types import Conversation, Point
from ..core.world import World

SEED_DIR = Path(__file__).resolve().parent / "seeds"


def load_seed_characters() -> List[Dict[str, Any]]:
    """Load character seeds from JSON."""

    path = SEED_DIR / "characters.json"
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def build_demo_world(include_human: bool = False) -> World:
    """Create a world and join every seeded character."""

    # 1 Join each seed as an agent-controlled player.                          # steps
    # 2 Optionally add a human the caller can drive through inputs.            # steps
    world = World(world_id="demo")
    for seed in load_seed_characters():
        position = seed.get("position")
        world.join(
            0.0,
            name=seed["name"],
            description=seed.get("description", ""),
            character=seed.get("character", "f1"),
            position=Point(**position) if position else None,
            identity=seed.get("identity"),
            plan=seed.get("plan"),
        )
    if include_human:
        world.join(0.0, name="Visitor", description="A human visitor", human=True, position=Point(x=2, y=2))
    return world


def export_event_log(export_dir: Optional[Path] = None) -> Path:
    """Dump the sqlite event log to CSV for analysts."""

    # 1 Fetch events and write a simple CSV file.                               # steps
    export_dir = export_dir or Path(config.DEFAULT_EXPORT_DIR)
    export_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    file_path = export_dir / config.DEFAULT_EVENT_LOG_EXPORT.format(timestamp=timestamp)
    with file_path.open("w", encoding="utf-8") as handle:
        handle.write("agent_id,target_id,type,data,ts\n")
        for event in fetch_events():
            row = [
                event.get("agent_id") or "",
                event.get("target_id") or "",
                event.get("type") or "",
                event.get("data") or "",
                event.get("ts") or "",
            ]
            safe = [str(value).replace(",", ";") for value in row]
            handle.write(",".join(safe) + "\n")
    return file_path


def format_transcript(world: World, conversation: Conversation) -> List[str]:
    lines = [f"--- {conversation.id} ---"]
    for message in conversation.messages:
        description = world.player_descriptions.get(message.author)
        speaker = description.name if description is not None else message.author
        lines.append(f"[{message.timestamp:6.1f}] {speaker}: {message.text or ''}")
    return lines


def run_demo(ticks: int = 120, include_human: bool = False) -> SimulationEngine:
    """Run the seeded town for a number of ticks and return the engine."""

    world = build_demo_world(include_human=include_human)
    executor = StubOperationExecutor(store=MessageStore())
    engine = SimulationEngine(world, executor=executor)
    engine.run(ticks)
    export_event_log()
    return engine


def main() -> None:
    """Entry point when running the demo script directly."""

    # 1 Kick off a run and print every finished transcript.                    # steps
    engine = run_demo(120)
    world = engine.world
    conversations = list(world.archived_conversations.values()) + list(world.conversations.values())
    for conversation in conversations:
        print("\n".join(format_transcript(world, conversation)))
    print(f"Ran {engine.current_tick} ticks, {len(conversations)} conversations. Logs saved to {config.DEFAULT_EXPORT_DIR}.")


if __name__ == "__main__":
    main()
