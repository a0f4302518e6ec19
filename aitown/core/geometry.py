########## Geometry Helpers ##########
# Distances, midpoints, and the nearest conversation candidate lookup.

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Iterable, List, Optional, Tuple

from . import config
from .types import Player, Point

if TYPE_CHECKING:
    from .world import World


def distance(a: Point, b: Point) -> float:
    """Euclidean distance between two points."""

    return math.hypot(b.x - a.x, b.y - a.y)


def midpoint_tile(a: Point, b: Point) -> Point:
    """Tile halfway between two positions, floored onto the grid."""

    return Point(x=math.floor((a.x + b.x) / 2), y=math.floor((a.y + b.y) / 2))


def floor_tile(point: Point) -> Point:
    return Point(x=math.floor(point.x), y=math.floor(point.y))


def nearest(origin: Point, candidates: Iterable[Tuple[str, Point]]) -> Optional[str]:
    """Return the id closest to origin; exact ties keep input order."""

    ranked: List[Tuple[float, int, str]] = []
    for index, (candidate_id, position) in enumerate(candidates):
        ranked.append((distance(origin, position), index, candidate_id))
    if not ranked:
        return None
    ranked.sort()
    return ranked[0][2]


def find_conversation_candidate(world: "World", now: float, player: Player) -> Optional[str]:
    """Pick the nearest player that is free to talk to ``player``."""

    # 1 Skip ourselves, anyone already talking, and recent partners.          # steps
    # 2 Rank the rest by distance.                                             # steps
    recent_partners = world.recent_partners(player.id, now - config.PLAYER_CONVERSATION_COOLDOWN)
    candidates: List[Tuple[str, Point]] = []
    for other in world.players.values():
        if other.id == player.id:
            continue
        if world.conversation_for_player(other.id) is not None:
            continue
        if other.id in recent_partners:
            continue
        candidates.append((other.id, other.position))
    return nearest(player.position, candidates)
