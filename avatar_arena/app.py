"""Application entry for running the arena simulation."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from avatar_arena.db.run_log import append_tick_payload, create_run_folder, write_header
from avatar_arena.db.world_file import load_world, save_world
from avatar_arena.llm.base import LLMConfig
from avatar_arena.llm.fake_llm import FakeLLM
from avatar_arena.llm.mlx_llm import MlxLLM
from avatar_arena.llm.remote_llm import RemoteLLM
from avatar_arena.render.viewer import render_tick
from avatar_arena.sim import commands
from avatar_arena.sim.contracts import SimulationMode
from avatar_arena.sim.geometry import OcclusionMode
from avatar_arena.sim.tick_loop import SimulationClock, run_ticks
from avatar_arena.sim.world_state import WorldStore, build_initial_world

logger = logging.getLogger(__name__)

DEFAULT_LLM_BACKEND = "fake"
DEFAULT_MLX_MODEL_ID = "mlx-community/Qwen3-3B-4bit"
DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_OCCLUSION = OcclusionMode.EXACT.value
DEFAULT_ORACLE_TIMEOUT = 30.0
DEFAULT_TICKS = 100


def configure_logging(level: str | None = None) -> None:
    name = (level or os.getenv("AVATAR_ARENA_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


def run_simulation(
    base_dir: Path,
    *,
    ticks: int | None = DEFAULT_TICKS,
    llm_backend: str | None = None,
    model_id: str | None = None,
    world_path: Path | None = None,
    save: bool = False,
    mode: str | None = None,
    speed: float | None = None,
    paced: bool = True,
    console: Console | None = None,
) -> Path:
    """Run ``ticks`` ticks headless, recording every tick to a run log."""
    run_dir, log_path = create_run_folder(base_dir)
    write_header(
        log_path,
        metadata={
            "run_id": run_dir.name,
            "created_at": run_dir.name,
            "ticks": ticks,
            "llm": _backend_name(llm_backend),
        },
    )
    world = load_world(world_path) if world_path else build_initial_world()
    store = WorldStore(world)
    changes = {}
    if mode:
        changes["mode"] = SimulationMode(mode)
    if speed is not None:
        changes["time_scale"] = speed
    if changes:
        store.apply(lambda w: commands.update_simulation_settings(w, **changes))

    oracle = _resolve_oracle(llm_backend, model_id)
    clock = SimulationClock(store, oracle, oracle, occlusion=_resolve_occlusion())
    store.apply(lambda w: commands.set_running(w, True))

    async def _drive() -> None:
        async for payload in run_ticks(clock, ticks, paced=paced):
            append_tick_payload(log_path, payload)
            if console is not None:
                console.print(render_tick(payload))

    try:
        asyncio.run(_drive())
    finally:
        store.apply(lambda w: commands.set_running(w, False))
        if save and world_path:
            save_world(world_path, store.snapshot())
    return run_dir


def _backend_name(llm_backend: str | None) -> str:
    return (llm_backend or os.getenv("AVATAR_ARENA_LLM") or DEFAULT_LLM_BACKEND).lower()


def _resolve_oracle(llm_backend: str | None, model_id: str | None):
    backend = _backend_name(llm_backend)
    model = model_id or os.getenv("AVATAR_ARENA_MODEL_ID")
    if backend == "remote":
        return RemoteLLM(
            config=LLMConfig(model_id=model or "", timeout_sec=_resolve_timeout())
        )
    if backend == "mlx":
        return MlxLLM(config=LLMConfig(model_id=model or DEFAULT_MLX_MODEL_ID))
    return FakeLLM()


def _resolve_timeout() -> float:
    try:
        return float(os.getenv("AVATAR_ARENA_ORACLE_TIMEOUT", DEFAULT_ORACLE_TIMEOUT))
    except ValueError:
        return DEFAULT_ORACLE_TIMEOUT


def _resolve_occlusion() -> OcclusionMode:
    value = (os.getenv("AVATAR_ARENA_OCCLUSION") or DEFAULT_OCCLUSION).lower()
    try:
        return OcclusionMode(value)
    except ValueError:
        logger.warning(
            "Unknown occlusion mode %r, using %s", value, DEFAULT_OCCLUSION
        )
        return OcclusionMode.EXACT
