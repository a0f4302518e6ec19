from __future__ import annotations
import os

########## Core Config ##########
# Houses runtime constants for the AI town agent engine.

########## Variable Controls ##########
# All tweakable knobs live here so you can tune the town without code changes.
# Every duration is in seconds of wall-clock time.

# Operation tracking
ACTION_TIMEOUT: float = 120.0  # in-flight operation is abandoned after this long

# Conversation pacing
INVITE_TIMEOUT: float = 60.0  # give up walking over after this long
AWKWARD_CONVERSATION_TIMEOUT: float = 60.0  # silence before the other side speaks up
MAX_CONVERSATION_DURATION: float = 10 * 60.0
MAX_CONVERSATION_MESSAGES: int = 8
MESSAGE_COOLDOWN: float = 2.0  # "reading time" after the last message
CONVERSATION_COOLDOWN: float = 15.0  # between invite attempts
PLAYER_CONVERSATION_COOLDOWN: float = 60.0  # before re-inviting the same partner
TYPING_TIMEOUT: float = 15.0  # stale typing locks are released after this long
INVITE_ACCEPT_PROBABILITY: float = 0.8

# Distances are in map tiles
CONVERSATION_DISTANCE: float = 1.3
MIDPOINT_THRESHOLD: float = 4.0
PLAYER_SPEED: float = 0.75  # tiles per second

# Activities the stub executor may hand out
ACTIVITY_COOLDOWN: float = 10.0
ACTIVITIES: list[dict] = [
    {"description": "reading a book", "emoji": "📖", "duration": 60.0},
    {"description": "daydreaming", "emoji": "🤔", "duration": 60.0},
    {"description": "gardening", "emoji": "🥕", "duration": 60.0},
]
INVITE_PROBABILITY: float = 0.7  # stub executor: chance to invite the nearest candidate

# Engine pacing
TICK_INTERVAL_SECONDS: float = 1.0
MAX_TICKS_PER_RUN: int = 300
DEFAULT_MAP_WIDTH: int = 40
DEFAULT_MAP_HEIGHT: int = 30

RANDOM_SEED: int = int(os.getenv("AITOWN_RANDOM_SEED", "202410"))

# Logging and debug
DEBUG_VERBOSE: bool = os.getenv("AITOWN_DEBUG_VERBOSE", "").lower() in {"1", "true", "yes"}
LOG_TEXT_ENABLED: bool = True  # toggle human-readable run log
LOG_TEXT_DIR: str = os.getenv("AITOWN_LOG_DIR", "logs")
LOG_TEXT_FILENAME: str = "aitown.log"
LOG_TEXT_MAX_LINES: int = 800
EVENT_LOG_ENABLED: bool = True  # engine writes structured events to sqlite

# Persistence used by the executor side and the event log
DB_FILE: str = os.getenv("AITOWN_DB_FILE", "aitown/runtime_data/town_state.sqlite")
DB_ECHO: bool = False
MESSAGE_HISTORY_KEEP: int = 50
CONVERSATION_SUMMARY_LENGTH: int = 2

DEFAULT_EXPORT_DIR: str = "aitown/demo/run_logs"
DEFAULT_EVENT_LOG_EXPORT: str = "events_{timestamp}.csv"
