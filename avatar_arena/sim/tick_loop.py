"""Tick loop orchestration for the arena simulator."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable

from avatar_arena.llm.base import DecisionOracle, InteractionOracle
from avatar_arena.sim.commands import set_running
from avatar_arena.sim.contracts import (
    SimulationMode,
    SimulationSettings,
    TickPayload,
)
from avatar_arena.sim.geometry import OcclusionMode
from avatar_arena.sim.scheduler import due_avatar_ids, request_decision
from avatar_arena.sim.world_state import WorldStore, now_ms

logger = logging.getLogger(__name__)

TIME_BASED_TICK_MS = 50
MIN_TICK_MS = 10


def tick_delay(settings: SimulationSettings) -> float:
    """Seconds to wait before the next tick fires."""
    if settings.mode == SimulationMode.TURN_BASED:
        base = settings.turn_duration or 1000
    else:
        base = TIME_BASED_TICK_MS
    scale = settings.time_scale if settings.time_scale > 0 else 1.0
    return max(MIN_TICK_MS, base / scale) / 1000


class SimulationClock:
    """Drives ticks for one world store.

    At most one tick is in flight at a time, and the next one is only
    scheduled after every decision of the current tick has been applied.
    """

    def __init__(
        self,
        store: WorldStore,
        oracle: DecisionOracle,
        interaction_oracle: InteractionOracle | None = None,
        *,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        occlusion: OcclusionMode = OcclusionMode.EXACT,
    ) -> None:
        self.store = store
        self.oracle = oracle
        self.interaction_oracle = interaction_oracle
        self.occlusion = occlusion
        self.ticks = 0
        self._clock = clock
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._in_tick = False

    @property
    def running(self) -> bool:
        return self.store.snapshot().running

    def now(self) -> int:
        return self._clock()

    async def sleep_until_next_tick(self) -> None:
        await self._sleep(tick_delay(self.store.snapshot().simulation))

    async def tick(self) -> list[str]:
        """Request a decision from every due avatar and wait for all of them."""
        if self._in_tick:
            raise RuntimeError("tick already in progress")
        due = due_avatar_ids(self.store.snapshot(), self._clock())
        self._in_tick = True
        try:
            results = await asyncio.gather(
                *(
                    request_decision(
                        self.store,
                        avatar_id,
                        oracle=self.oracle,
                        interaction_oracle=self.interaction_oracle,
                        clock=self._clock,
                        occlusion=self.occlusion,
                    )
                    for avatar_id in due
                ),
                return_exceptions=True,
            )
        finally:
            self._in_tick = False
        for avatar_id, result in zip(due, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Decision for %s failed outside the oracle",
                    avatar_id,
                    exc_info=result,
                )
        self.ticks += 1
        return due

    async def run(self, ticks: int | None = None) -> int:
        """Tick until paused or ``ticks`` ticks have fired; returns the count."""
        fired = 0
        try:
            while ticks is None or fired < ticks:
                if not self.running:
                    break
                await self.sleep_until_next_tick()
                if not self.running:
                    break
                await self.tick()
                fired += 1
        finally:
            if not self.running:
                self.store.log("Simulation stopped/paused.")
        return fired

    def start(self) -> asyncio.Task:
        """Set the world running and make sure a loop task is alive.

        Must be called from inside a running event loop.
        """
        was_running = self.running
        self.store.apply(lambda world: set_running(world, True))
        if self._task is not None and not self._task.done():
            return self._task
        if not was_running:
            self.store.log("Simulation running...")
        self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    def pause(self) -> None:
        """Stop scheduling ticks.

        A pending firing is cancelled; a tick already in flight finishes and
        applies its decisions, then the loop exits.
        """
        if not self.running:
            return
        self.store.apply(lambda world: set_running(world, False))
        task = self._task
        if task is not None and not task.done() and not self._in_tick:
            task.cancel()
            self._task = None

    def toggle(self) -> None:
        if self.running:
            self.pause()
        else:
            self.start()

    async def wait(self) -> None:
        """Wait for the loop task, if any, to exit."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass


async def run_ticks(
    clock: SimulationClock,
    ticks: int | None,
    *,
    paced: bool = True,
) -> AsyncIterator[TickPayload]:
    """Fire ``ticks`` ticks back to back, yielding the world after each one."""
    step_count = 0
    while ticks is None or step_count < ticks:
        if paced:
            await clock.sleep_until_next_tick()
        decided = await clock.tick()
        step_count += 1
        yield TickPayload(
            tick=clock.ticks,
            timestamp=clock.now(),
            decided=decided,
            world=clock.store.snapshot(),
        )
