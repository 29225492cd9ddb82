"""Save and load arena worlds as JSON files."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from avatar_arena.sim.contracts import LogEntry, LogLevel, WorldSnapshot
from avatar_arena.sim.world_loader import dump_world, invalid_world, try_restore_world
from avatar_arena.sim.world_state import build_initial_world, now_ms

logger = logging.getLogger(__name__)

DEFAULT_WORLD_PATH = Path("arena_world.json")
MISSING_MESSAGE = "No saved state found, starting fresh."
UNREADABLE_MESSAGE = "Error loading state, resetting to default."


def save_world(path: Path, world: WorldSnapshot) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(dump_world(world), indent=2), encoding="utf-8")
    logger.info("Saved world to %s", path)
    return path


def load_world(path: Path, *, now: int | None = None) -> WorldSnapshot:
    """Load a saved world, falling back to a fresh one.

    A missing file logs an info entry. An unreadable or invalid file is
    deleted and logs an error or warning entry. Neither case raises.
    """
    timestamp = now_ms() if now is None else now
    try:
        data = _load_json(path)
    except FileNotFoundError:
        return _fresh(timestamp, MISSING_MESSAGE, LogLevel.INFO)
    except json.JSONDecodeError as exc:
        logger.error("Could not parse world file %s: %s", path, exc)
        remove_world(path)
        return _fresh(timestamp, UNREADABLE_MESSAGE, LogLevel.ERROR)
    except OSError as exc:
        logger.error("Could not read world file %s: %s", path, exc)
        return _fresh(timestamp, UNREADABLE_MESSAGE, LogLevel.ERROR)
    world = try_restore_world(data, now=timestamp)
    if world is None:
        remove_world(path)
        return invalid_world(timestamp)
    return world


def remove_world(path: Path) -> None:
    path.unlink(missing_ok=True)


def _load_json(path: Path) -> object:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Missing world file: {path}") from exc
    return json.loads(text)


def _fresh(timestamp: int, message: str, level: LogLevel) -> WorldSnapshot:
    world = build_initial_world(timestamp)
    entry = LogEntry(timestamp=timestamp, message=message, level=level)
    return world.model_copy(update={"logs": world.logs + (entry,)})
