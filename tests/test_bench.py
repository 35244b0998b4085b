from __future__ import annotations

from pathlib import Path

import pytest

from flower import RandomWalk, ScriptedSource, SensorState, SoilMoistureSensor
from flower_bench import (
    FakeWindow,
    StatsLogger,
    count_cycles,
    run_benchmark,
    run_ticks,
    summarize,
)


def test_run_ticks_traces_states_and_renders_each_tick() -> None:
    sensor = SoilMoistureSensor(ScriptedSource([0.0, -15.0, -7.0, -1.0]))
    window = FakeWindow(40, 120)

    states, moisture = run_ticks(sensor, 4, window)

    assert states == [
        SensorState.IDLE,
        SensorState.MONITORING,
        SensorState.ACTIVATING,
        SensorState.ADJUSTING,
    ]
    assert moisture == pytest.approx([50.0, 35.0, 28.0, 27.0])
    assert window.frames == 4


def test_count_cycles_counts_valve_openings() -> None:
    sensor = SoilMoistureSensor(RandomWalk(seed=11))
    states, _ = run_ticks(sensor, 600)

    openings = sum(
        1 for prev, cur in zip([SensorState.MONITORING] + states, states)
        if cur is SensorState.ACTIVATING and prev is not SensorState.ACTIVATING
    )
    assert count_cycles(states) == openings > 0


def test_summarize_reports_every_state() -> None:
    states = [SensorState.IDLE, SensorState.IDLE, SensorState.MONITORING,
              SensorState.ACTIVATING]
    report = summarize(states, [45.0, 41.0, 35.0, 28.0])

    assert "Idle" in report and " 50.0%" in report
    assert "Error" in report and "0.0%" in report
    assert "Watering cycles: 1" in report
    assert "37.2" in report  # mean moisture


def test_run_benchmark_prints_summary(capsys: pytest.CaptureFixture[str]) -> None:
    run_benchmark(200, seed=5)

    out = capsys.readouterr().out
    assert "Ticks: 200" in out
    assert "=== State distribution ===" in out
    assert "ms/tick" in out


def test_run_benchmark_writes_no_files_unless_asked(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    run_benchmark(50, seed=1)
    assert list(tmp_path.iterdir()) == []


def test_run_benchmark_logs_telemetry_on_request(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "run.csv"
    run_benchmark(120, seed=2, log_path=str(path))

    lines = path.read_text().splitlines()
    assert lines[0] == "tick,time_s,moisture,state,watering,event"
    assert len(lines) == 121
    assert [line.split(",")[0] for line in lines[1:4]] == ["1", "2", "3"]
    assert f"Telemetry saved to: {path}" in capsys.readouterr().out


def test_run_ticks_logs_transitions_as_events(tmp_path: Path) -> None:
    path = tmp_path / "stats.csv"
    logger = StatsLogger(path)
    logger.open()
    sensor = SoilMoistureSensor(ScriptedSource([0.0, 1.0, -25.0]))

    run_ticks(sensor, 3, logger=logger)
    logger.close()

    events = [line.split(",")[5] for line in path.read_text().splitlines()[1:]]
    assert events == [
        "Moisture optimal (50.0%); going idle",
        "",
        "Moisture low (26.0%); activating...",
    ]


# ── Stats logger ────────────────────────────────────────────────────────

def test_stats_logger_writes_header_and_rows(tmp_path: Path) -> None:
    path = tmp_path / "stats.csv"
    logger = StatsLogger(path)
    logger.open()
    logger.log(1, 42.5, SensorState.IDLE, False, event="going idle, finally")
    logger.log(2, 41.0, SensorState.IDLE, False)
    logger.close()

    lines = path.read_text().splitlines()
    assert lines[0] == "tick,time_s,moisture,state,watering,event"
    assert lines[1].split(",")[0] == "1"
    assert lines[1].split(",")[2:] == ["42.50", "Idle", "0", "going idle; finally"]
    assert lines[2].endswith(",41.00,Idle,0,")


def test_stats_logger_unwritable_path_is_silent(tmp_path: Path) -> None:
    logger = StatsLogger(tmp_path / "missing" / "stats.csv")
    logger.open()
    logger.log(1, 10.0, SensorState.ACTIVATING, True)
    logger.close()
