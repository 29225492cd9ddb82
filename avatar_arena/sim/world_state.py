"""Authoritative world store, defaults and invariants."""

from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Callable

from avatar_arena.llm.providers import default_model
from avatar_arena.sim.contracts import (
    ArenaObject,
    AvatarSettings,
    AvatarState,
    BoardSize,
    Eyesight,
    LogEntry,
    LogLevel,
    Obstacle,
    SimulationMode,
    SimulationSettings,
    Vector2,
    WorldSnapshot,
)

logger = logging.getLogger(__name__)

LOG_CAPACITY = 100
MIN_AVATARS = 2
MAX_AVATARS = 10
EYESIGHT_ANGLE = 180.0

DEFAULT_SYSTEM_PROMPT = """You are simulating a character in a virtual 2D top-down world.
Your Personality: curious explorer who likes meeting others.
Your Goal: explore the area and talk to the avatars you meet.

World Details:
- You perceive the world through a 180-degree semicircle in front of you.
- Coordinates are (x, y) with (0,0) at the top-left.
- Orientation is in degrees (0-359): 0 is right, 90 is down, 180 is left, 270 is up.
- You can see avatars, objects (with descriptions) and obstacles. Distances are provided.

Choose ONE action from the available actions, give its parameters and a brief thought.
If you are stuck, unsure or waiting, use think or idle.
"""

_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

_id_counter = itertools.count(int(time.time() * 1000))
_id_lock = threading.Lock()


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_id(prefix: str) -> str:
    with _id_lock:
        return f"{prefix}-{next(_id_counter)}"


def bump_id_counter(ids: list[str]) -> None:
    """Move the id counter past every numeric suffix in ``ids``."""
    global _id_counter
    suffixes = []
    for value in ids:
        tail = value.rsplit("-", 1)[-1]
        if tail.isdigit():
            suffixes.append(int(tail))
    if not suffixes:
        return
    with _id_lock:
        current = next(_id_counter)
        _id_counter = itertools.count(max(current, max(suffixes) + 1))


def generate_color(index: int) -> str:
    hue = (index * 137.508) % 360
    return f"hsl({hue:g}, 70%, 60%)"


def default_settings(**overrides) -> AvatarSettings:
    values = {
        "provider": "openai",
        "model": default_model("openai"),
        "api_key": "",
        "rate_limit": 1000,
        "eyesight": Eyesight(radius=100.0, angle=EYESIGHT_ANGLE),
        "system_prompt": DEFAULT_SYSTEM_PROMPT,
    }
    values.update(overrides)
    return AvatarSettings(**values)


def build_initial_world(now: int | None = None) -> WorldSnapshot:
    timestamp = now_ms() if now is None else now
    avatars = (
        AvatarState(
            id=generate_id("avatar"),
            position=Vector2(x=50, y=50),
            orientation=0,
            settings=default_settings(),
            color=generate_color(0),
        ),
        AvatarState(
            id=generate_id("avatar"),
            position=Vector2(x=450, y=450),
            orientation=180,
            settings=default_settings(
                provider="google",
                model=default_model("google"),
                rate_limit=1500,
            ),
            color=generate_color(1),
        ),
    )
    return WorldSnapshot(
        avatars=avatars,
        objects=(
            ArenaObject(
                id=generate_id("object"),
                position=Vector2(x=250, y=250),
                description="A curious glowing orb.",
            ),
        ),
        obstacles=(
            Obstacle(
                id=generate_id("obstacle"),
                position=Vector2(x=100, y=100),
                size=Vector2(x=10, y=150),
            ),
            Obstacle(
                id=generate_id("obstacle"),
                position=Vector2(x=300, y=300),
                size=Vector2(x=150, y=10),
            ),
        ),
        simulation=SimulationSettings(
            mode=SimulationMode.TIME_BASED,
            board_size=BoardSize(width=500, height=500),
            turn_duration=1000,
            time_scale=1.0,
        ),
        running=False,
        logs=(LogEntry(timestamp=timestamp, message="Simulation initialized."),),
    )


def append_log(
    world: WorldSnapshot,
    message: str,
    level: LogLevel = LogLevel.INFO,
    *,
    avatar_id: str | None = None,
    now: int | None = None,
) -> WorldSnapshot:
    entry = LogEntry(
        timestamp=now_ms() if now is None else now,
        message=message,
        level=level,
        avatar_id=avatar_id,
    )
    prefix = f"[{avatar_id}]" if avatar_id else "[Sim]"
    logger.log(_LEVELS[level], "%s %s", prefix, message)
    logs = (world.logs + (entry,))[-LOG_CAPACITY:]
    return world.model_copy(update={"logs": logs})


def replace_avatar(world: WorldSnapshot, avatar: AvatarState) -> WorldSnapshot:
    avatars = tuple(avatar if a.id == avatar.id else a for a in world.avatars)
    return world.model_copy(update={"avatars": avatars})


def release_conversations(
    world: WorldSnapshot, avatar_id: str, *, now: int
) -> tuple[WorldSnapshot, list[str]]:
    """End every active conversation of ``avatar_id`` and clear both sides.

    Returns the new world and the ids of the conversations that were ended.
    """
    ended: list[str] = []
    partners: set[str] = set()
    conversations = []
    for conversation in world.conversations:
        if conversation.active and avatar_id in conversation.participants:
            conversations.append(conversation.model_copy(update={"end_time": now}))
            ended.append(conversation.id)
            partners.add(conversation.partner_of(avatar_id))
        else:
            conversations.append(conversation)

    avatar = world.avatar(avatar_id)
    if avatar is not None and avatar.conversation_target:
        partners.add(avatar.conversation_target)

    cleared = {"conversation_target": None, "current_action": None}
    avatars = []
    for other in world.avatars:
        if other.id == avatar_id and other.conversation_target:
            other = other.model_copy(update=cleared)
        elif other.id in partners and other.conversation_target == avatar_id:
            other = other.model_copy(update=cleared)
        avatars.append(other)

    updated = world.model_copy(
        update={"avatars": tuple(avatars), "conversations": tuple(conversations)}
    )
    return updated, ended


class WorldStore:
    """Single-writer cell for the world snapshot.

    Readers get an immutable snapshot; writers hand in a transform that is
    applied to whatever snapshot is current when the lock is taken.
    """

    def __init__(self, world: WorldSnapshot | None = None) -> None:
        self._world = world or build_initial_world()
        self._lock = threading.RLock()
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def snapshot(self) -> WorldSnapshot:
        return self._world

    def apply(self, transform: Callable[[WorldSnapshot], WorldSnapshot]) -> WorldSnapshot:
        with self._lock:
            updated = transform(self._world)
            if updated is not self._world:
                self._world = updated
                self._version += 1
            return updated

    def log(
        self,
        message: str,
        level: LogLevel = LogLevel.INFO,
        *,
        avatar_id: str | None = None,
    ) -> WorldSnapshot:
        return self.apply(
            lambda world: append_log(world, message, level, avatar_id=avatar_id)
        )


def check_invariants(world: WorldSnapshot) -> list[str]:
    problems: list[str] = []
    if len(world.avatars) < MIN_AVATARS:
        problems.append(f"only {len(world.avatars)} avatars")

    active = [c for c in world.conversations if c.active]
    pairs = [frozenset(c.participants) for c in active]
    if len(pairs) != len(set(pairs)):
        problems.append("more than one active conversation for a pair")

    for conversation in active:
        first, second = conversation.participants
        a, b = world.avatar(first), world.avatar(second)
        if a is None or b is None:
            problems.append(f"{conversation.id} references a missing avatar")
            continue
        if a.conversation_target != second or b.conversation_target != first:
            problems.append(f"{conversation.id} partners do not point at each other")

    for avatar in world.avatars:
        target = avatar.conversation_target
        if target is None:
            continue
        partner = world.avatar(target)
        if partner is None or partner.conversation_target != avatar.id:
            problems.append(f"{avatar.id} partner {target} does not point back")
        matching = [c for c in active if c.involves(avatar.id, target)]
        if len(matching) != 1:
            problems.append(f"{avatar.id} has {len(matching)} conversations with {target}")
    return problems
