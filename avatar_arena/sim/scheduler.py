"""Decide which avatars act on a tick and fetch their decisions."""

from __future__ import annotations

import logging
from typing import Callable

from avatar_arena.llm.base import DecisionOracle, InteractionOracle
from avatar_arena.sim.contracts import (
    Decision,
    LogLevel,
    WorldSnapshot,
    coerce_decision,
    idle_decision,
)
from avatar_arena.sim.geometry import OcclusionMode
from avatar_arena.sim.perception import build_decision_request
from avatar_arena.sim.resolver import apply_decision
from avatar_arena.sim.world_state import WorldStore, now_ms

logger = logging.getLogger(__name__)

FALLBACK_PAUSE_MS = 1000


def due_avatar_ids(world: WorldSnapshot, now: int) -> list[str]:
    return [avatar.id for avatar in world.avatars if now >= avatar.next_decision_time]


def fallback_decision(exc: BaseException) -> Decision:
    return idle_decision(
        FALLBACK_PAUSE_MS, f"Error occurred during decision making: {exc}"
    )


async def request_decision(
    store: WorldStore,
    avatar_id: str,
    *,
    oracle: DecisionOracle,
    interaction_oracle: InteractionOracle | None = None,
    clock: Callable[[], int] = now_ms,
    occlusion: OcclusionMode = OcclusionMode.EXACT,
) -> WorldSnapshot:
    """Ask the oracle for one decision and resolve it.

    Oracle failures never escape: they are logged and replaced by a short
    idle so the avatar gets another chance a second later.
    """
    world = store.snapshot()
    avatar = world.avatar(avatar_id)
    if avatar is None:
        logger.debug("Avatar %s vanished before its decision was requested", avatar_id)
        return world

    request = build_decision_request(world, avatar, occlusion=occlusion)
    store.log(f"Requesting decision for {avatar_id}...", LogLevel.DEBUG, avatar_id=avatar_id)
    try:
        raw = await oracle.decide(request)
        decision = coerce_decision(raw)
    except Exception as exc:
        logger.debug("Decision oracle failed for %s", avatar_id, exc_info=True)
        store.log(
            f"Error getting decision for {avatar_id}: {exc}",
            LogLevel.ERROR,
            avatar_id=avatar_id,
        )
        decision = fallback_decision(exc)

    return await apply_decision(
        store,
        avatar_id,
        decision,
        interaction_oracle=interaction_oracle,
        clock=clock,
    )
