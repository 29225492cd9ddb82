import json
from pathlib import Path

import pytest

from avatar_arena.db.run_log import (
    RUN_LOG_NAME,
    SCHEMA_VERSION,
    append_tick_payload,
    create_run_folder,
    read_header,
    read_tick_payloads,
    write_header,
)
from avatar_arena.sim.contracts import TickPayload
from avatar_arena.sim.world_state import build_initial_world


def test_run_log_header_and_ticks(tmp_path: Path) -> None:
    run_dir, log_path = create_run_folder(tmp_path, timestamp="2026-01-31T15-50-00Z")
    write_header(log_path, metadata={"run_id": run_dir.name})
    append_tick_payload(log_path, _payload(1))

    with log_path.open("r", encoding="utf-8") as handle:
        records = [json.loads(line) for line in handle]

    assert log_path.name == RUN_LOG_NAME
    assert run_dir.name == "2026-01-31T15-50-00Z"
    assert records[0]["type"] == "header"
    assert records[0]["metadata"]["run_id"] == run_dir.name
    assert records[1]["type"] == "tick"
    assert records[1]["schema_version"] == SCHEMA_VERSION
    assert records[1]["payload"]["tick"] == 1


def test_reader_skips_header_and_restores_payloads(tmp_path: Path) -> None:
    run_dir, log_path = create_run_folder(tmp_path, timestamp="2026-01-31T15-51-00Z")
    write_header(log_path, metadata={"run_id": run_dir.name, "llm": "fake"})
    first, second = _payload(1), _payload(2)
    append_tick_payload(log_path, first)
    append_tick_payload(log_path, second)

    payloads = list(read_tick_payloads(log_path))

    assert read_header(log_path) == {"run_id": run_dir.name, "llm": "fake"}
    assert [p.tick for p in payloads] == [1, 2]
    assert payloads[1].world.avatars == second.world.avatars
    assert payloads[1].decided == second.decided


def test_reader_rejects_unknown_schema(tmp_path: Path) -> None:
    log_path = tmp_path / RUN_LOG_NAME
    record = {"type": "tick", "schema_version": SCHEMA_VERSION + 1, "payload": {}}
    log_path.write_text(json.dumps(record) + "\n", encoding="utf-8")

    with pytest.raises(ValueError):
        list(read_tick_payloads(log_path))


def _payload(tick: int) -> TickPayload:
    world = build_initial_world(now=1_000)
    return TickPayload(
        tick=tick,
        timestamp=1_000 + tick * 50,
        decided=[world.avatars[0].id],
        world=world,
    )
