"""Project worlds to plain data and rebuild them from it."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from pydantic import ValidationError

from avatar_arena.sim.contracts import (
    ArenaObject,
    AvatarSettings,
    AvatarState,
    Conversation,
    LogEntry,
    LogLevel,
    Obstacle,
    SimulationSettings,
    WorldSnapshot,
)
from avatar_arena.sim.world_state import (
    EYESIGHT_ANGLE,
    MIN_AVATARS,
    DEFAULT_SYSTEM_PROMPT,
    build_initial_world,
    bump_id_counter,
    default_settings,
    generate_color,
    generate_id,
    now_ms,
)

logger = logging.getLogger(__name__)

LOADED_MESSAGE = "Simulation loaded from previous state."
INVALID_MESSAGE = "Invalid state loaded or too few avatars, resetting to default."

_RUNTIME_AVATAR_FIELDS = {
    "current_action",
    "conversation_target",
    "thought",
    "last_action_time",
    "next_decision_time",
}


def dump_world(world: WorldSnapshot) -> dict[str, Any]:
    """Serializable projection of ``world`` without its runtime fields."""
    return {
        "avatars": [
            avatar.model_dump(mode="json", exclude=_RUNTIME_AVATAR_FIELDS)
            for avatar in world.avatars
        ],
        "objects": [obj.model_dump(mode="json") for obj in world.objects],
        "obstacles": [obstacle.model_dump(mode="json") for obstacle in world.obstacles],
        "conversations": [
            conversation.model_dump(mode="json")
            for conversation in world.conversations
            if conversation.active
        ],
        "simulation": world.simulation.model_dump(mode="json"),
    }


def restore_world(data: Any, *, now: int | None = None) -> WorldSnapshot:
    """Rebuild a paused world from ``dump_world`` output.

    Anything that does not look like a saved world yields a fresh default
    world whose log carries a warning.
    """
    timestamp = now_ms() if now is None else now
    world = try_restore_world(data, now=timestamp)
    if world is None:
        return invalid_world(timestamp)
    return world


def try_restore_world(data: Any, *, now: int) -> WorldSnapshot | None:
    """Like ``restore_world`` but returns None for unusable data."""
    try:
        return _restore(data, now)
    except (TypeError, ValueError, KeyError, AttributeError, ValidationError) as exc:
        logger.warning("Discarding saved world: %s", exc)
        return None


def invalid_world(timestamp: int) -> WorldSnapshot:
    fresh = build_initial_world(timestamp)
    entry = LogEntry(
        timestamp=timestamp, message=INVALID_MESSAGE, level=LogLevel.WARNING
    )
    logger.warning("[Sim] %s", INVALID_MESSAGE)
    return fresh.model_copy(update={"logs": fresh.logs + (entry,)})


def _restore(data: Any, timestamp: int) -> WorldSnapshot | None:
    if not isinstance(data, Mapping):
        return None
    raw_avatars = data.get("avatars")
    if not isinstance(raw_avatars, list) or len(raw_avatars) < MIN_AVATARS:
        return None

    bump_id_counter(_saved_ids(data))
    avatars = [_restore_avatar(raw, index) for index, raw in enumerate(raw_avatars)]
    objects = [
        ArenaObject.model_validate(
            {**raw, "id": raw.get("id") or generate_id("object"), "type": "object"}
        )
        for raw in data.get("objects") or []
    ]
    obstacles = [
        Obstacle.model_validate(
            {**raw, "id": raw.get("id") or generate_id("obstacle"), "type": "obstacle"}
        )
        for raw in data.get("obstacles") or []
    ]
    simulation = SimulationSettings.model_validate(
        {**SimulationSettings().model_dump(), **(data.get("simulation") or {})}
    )
    conversations = [
        Conversation.model_validate(raw) for raw in data.get("conversations") or []
    ]
    avatars, conversations = _relink_conversations(avatars, conversations, timestamp)

    return WorldSnapshot(
        avatars=tuple(avatars),
        objects=tuple(objects),
        obstacles=tuple(obstacles),
        conversations=tuple(conversations),
        simulation=simulation,
        running=False,
        logs=(LogEntry(timestamp=timestamp, message=LOADED_MESSAGE),),
    )


def _restore_avatar(raw: Mapping[str, Any], index: int) -> AvatarState:
    saved = dict(raw.get("settings") or {})
    eyesight = dict(saved.get("eyesight") or {})
    defaults = default_settings()
    values = {key: value for key, value in saved.items() if key in AvatarSettings.model_fields}
    values.update(
        api_key=saved.get("api_key") or "",
        system_prompt=saved.get("system_prompt") or DEFAULT_SYSTEM_PROMPT,
        eyesight={
            "radius": eyesight.get("radius", defaults.eyesight.radius),
            "angle": EYESIGHT_ANGLE,
        },
    )
    settings = default_settings(**values)
    fields = {
        key: value
        for key, value in raw.items()
        if key in AvatarState.model_fields and key not in _RUNTIME_AVATAR_FIELDS
    }
    fields.update(
        id=raw.get("id") or generate_id("avatar"),
        color=raw.get("color") or generate_color(index),
        settings=settings,
    )
    return AvatarState.model_validate(fields)


def _relink_conversations(
    avatars: list[AvatarState],
    conversations: list[Conversation],
    timestamp: int,
) -> tuple[list[AvatarState], list[Conversation]]:
    """Point partners of each surviving conversation back at each other.

    A conversation that cannot be linked (missing avatar, or either side
    already linked elsewhere) is ended instead.
    """
    by_id = {avatar.id: avatar for avatar in avatars}
    partner: dict[str, str] = {}
    kept: list[Conversation] = []
    for conversation in conversations:
        if not conversation.active:
            continue
        first, second = conversation.participants
        if (
            first == second
            or first not in by_id
            or second not in by_id
            or first in partner
            or second in partner
        ):
            logger.info("Ending conversation %s that cannot be resumed", conversation.id)
            kept.append(conversation.model_copy(update={"end_time": timestamp}))
            continue
        partner[first], partner[second] = second, first
        kept.append(conversation)

    linked = [
        avatar.model_copy(
            update={"conversation_target": partner[avatar.id], "current_action": "conversing"}
        )
        if avatar.id in partner
        else avatar
        for avatar in avatars
    ]
    return linked, kept


def _saved_ids(data: Mapping[str, Any]) -> list[str]:
    ids = []
    for key in ("avatars", "objects", "obstacles", "conversations"):
        for raw in data.get(key) or []:
            if isinstance(raw, Mapping) and isinstance(raw.get("id"), str):
                ids.append(raw["id"])
    return ids
