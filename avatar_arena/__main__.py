"""Module entry point for `python -m avatar_arena`."""

from __future__ import annotations

import argparse
from pathlib import Path

from rich.console import Console

from avatar_arena.app import DEFAULT_TICKS, configure_logging, run_simulation
from avatar_arena.db.run_log import RUN_LOG_NAME, read_tick_payloads
from avatar_arena.render.viewer import render_tick
from avatar_arena.sim.contracts import SimulationMode

DEFAULT_REPLAY_DIR = Path("replay")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the avatar arena simulation.")
    parser.add_argument(
        "--ticks",
        type=int,
        default=DEFAULT_TICKS,
        help=f"Number of ticks to run (default {DEFAULT_TICKS}).",
    )
    parser.add_argument(
        "--llm",
        default=None,
        help="Oracle backend: fake, remote or mlx (default: $AVATAR_ARENA_LLM or fake).",
    )
    parser.add_argument(
        "--model-id",
        default=None,
        help="Model override for the remote or mlx backend.",
    )
    parser.add_argument(
        "--world",
        type=Path,
        default=None,
        help="Saved world JSON to start from.",
    )
    parser.add_argument(
        "--save",
        action="store_true",
        help="Write the world back to --world when the run ends.",
    )
    parser.add_argument(
        "--replay-dir",
        type=Path,
        default=DEFAULT_REPLAY_DIR,
        help="Base directory for run logs.",
    )
    parser.add_argument(
        "--replay",
        type=Path,
        default=None,
        help="Print a recorded run folder instead of simulating.",
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in SimulationMode],
        default=None,
        help="Simulation mode override.",
    )
    parser.add_argument(
        "--speed",
        type=float,
        default=None,
        help="Time scale multiplier.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not print the world after each tick.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: $AVATAR_ARENA_LOG_LEVEL or WARNING).",
    )
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    console = Console()
    if args.replay is not None:
        for payload in read_tick_payloads(args.replay / RUN_LOG_NAME):
            console.print(render_tick(payload))
        return

    if args.save and args.world is None:
        parser.error("--save requires --world")

    created_run = run_simulation(
        args.replay_dir,
        ticks=args.ticks,
        llm_backend=args.llm,
        model_id=args.model_id,
        world_path=args.world,
        save=args.save,
        mode=args.mode,
        speed=args.speed,
        console=None if args.quiet else console,
    )
    console.print(f"Run saved to {created_run}")


if __name__ == "__main__":
    main()
