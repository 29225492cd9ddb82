from pathlib import Path

from avatar_arena.__main__ import main
from avatar_arena.app import run_simulation
from avatar_arena.db.run_log import RUN_LOG_NAME, read_header, read_tick_payloads
from avatar_arena.db.world_file import load_world


def test_run_simulation_records_ticks(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("AVATAR_ARENA_OCCLUSION", raising=False)

    run_dir = run_simulation(tmp_path / "runs", ticks=2, llm_backend="fake", paced=False)

    log_path = run_dir / RUN_LOG_NAME
    payloads = list(read_tick_payloads(log_path))
    assert read_header(log_path)["llm"] == "fake"
    assert [p.tick for p in payloads] == [1, 2]
    assert len(payloads[0].decided) == 2
    assert all(p.world.running for p in payloads)


def test_run_simulation_saves_world(tmp_path: Path) -> None:
    world_path = tmp_path / "world.json"

    run_simulation(
        tmp_path / "runs",
        ticks=1,
        llm_backend="fake",
        world_path=world_path,
        save=True,
        mode="turn-based",
        paced=False,
    )

    saved = load_world(world_path)
    assert world_path.exists()
    assert saved.simulation.mode.value == "turn-based"
    assert not saved.running


def test_main_runs_quietly(tmp_path: Path, capsys) -> None:
    main(["--ticks", "1", "--replay-dir", str(tmp_path), "--quiet", "--llm", "fake"])

    assert "Run saved to" in capsys.readouterr().out
    assert len(list(tmp_path.iterdir())) == 1
