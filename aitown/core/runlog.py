########## Text Logging ##########
# Lightweight, human-readable log lines for engine runs.

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from . import config


def log_run_event(message: str) -> None:
    """Append a single readable line to the run log file."""

    if not config.LOG_TEXT_ENABLED:  # fast skip when disabled               # intent
        return
    log_dir = Path(config.LOG_TEXT_DIR)
    if not log_dir.is_absolute():
        log_dir = Path(__file__).resolve().parents[2] / log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / config.LOG_TEXT_FILENAME
    timestamp = datetime.now(timezone.utc).isoformat()
    line = f"[{timestamp}] {message}"
    with log_path.open("a", encoding="utf-8") as handle:
        handle.write(line + "\n")
    _trim_log_file(log_path, config.LOG_TEXT_MAX_LINES)


def log_debug(message: str) -> None:
    """Log only when verbose debugging is switched on."""

    if config.DEBUG_VERBOSE:
        log_run_event(f"debug: {message}")


def _trim_log_file(log_path: Path, max_lines: int) -> None:
    """Keep the log file short and readable."""

    if max_lines <= 0 or not log_path.exists():
        return
    lines = log_path.read_text(encoding="utf-8").splitlines()
    if len(lines) <= max_lines:
        return
    trimmed = "\n".join(lines[-max_lines:]) + "\n"
    log_path.write_text(trimmed, encoding="utf-8")
