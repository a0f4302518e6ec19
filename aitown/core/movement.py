########## Movement Intents ##########
# Issues and cancels movement; a straight-line stepper stands in for pathfinding.

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from .errors import InvalidTransition
from .geometry import distance, floor_tile
from .runlog import log_debug
from .types import Pathfinding, Player, Point

if TYPE_CHECKING:
    from .world import World


def move_player(world: "World", now: float, player: Player, destination: Optional[Point]) -> None:
    """Point the player at a destination tile, or stop them when None."""

    if destination is None:
        stop_player(player)
        return
    target = floor_tile(destination)
    if not world.world_map.contains(target):
        raise InvalidTransition(f"Destination {target.x},{target.y} is off the map")
    conversation = world.conversation_for_player(player.id)
    if conversation is not None:
        member = conversation.member(player.id)
        if member is not None and member.status.kind == "participating":
            raise InvalidTransition("Can't move when in a conversation. Leave the conversation first!")
    player.pathfinding = Pathfinding(destination=target, started=now)


def stop_player(player: Player) -> None:
    """Cancel any movement in progress."""

    player.pathfinding = None


def advance_movement(player: Player, elapsed: float) -> bool:
    """Step the player toward its destination; return True on arrival."""

    # 1 Move at most speed * elapsed along the straight line.                 # steps
    # 2 Snap to the destination and clear the intent once reached.            # steps
    if player.pathfinding is None or elapsed <= 0:
        return False
    target = player.pathfinding.waypoint or player.pathfinding.destination
    remaining = distance(player.position, target)
    step = player.speed * elapsed
    if remaining <= step:
        player.position = Point(x=target.x, y=target.y)
        if player.pathfinding.waypoint is not None:
            player.pathfinding.waypoint = None
            return False
        player.pathfinding = None
        log_debug(f"{player.id} arrived at {target.x},{target.y}")
        return True
    ratio = step / remaining
    player.position = Point(
        x=player.position.x + (target.x - player.position.x) * ratio,
        y=player.position.y + (target.y - player.position.y) * ratio,
    )
    return False
