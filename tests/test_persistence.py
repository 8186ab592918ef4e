from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path

from recall_trainer.object_location import ObjectLocationConfig, build_object_location_session
from recall_trainer.persistence import SCHEMA_VERSION, record_session
from recall_trainer.results import session_result_from_engine


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def _finished_engine(seed: int):
    clock = FakeClock()
    engine = build_object_location_session(clock=clock, seed=seed, config=ObjectLocationConfig(rounds=2))
    engine.advance()
    for _ in range(2):
        rnd = engine.current_round
        assert rnd is not None
        engine.advance()
        for i, _spec in enumerate(rnd.trials):
            spec = engine.current_trial
            assert spec is not None
            clock.advance(1.25)
            slot = spec.correct_slot if i % 2 == 0 else (spec.correct_slot + 1) % rnd.grid_slots
            engine.select_slot(slot)
            engine.advance()
        engine.advance()
    return engine


def test_record_session_writes_session_rounds_metrics_and_events(tmp_path: Path) -> None:
    db = tmp_path / "results.sqlite3"
    engine = _finished_engine(seed=31)
    result = session_result_from_engine(engine, game_code="object_location", seed=31)

    session_id = record_session(db_path=db, result=result, app_version="test")
    assert session_id == 1

    conn = sqlite3.connect(db)
    try:
        assert conn.execute("PRAGMA user_version;").fetchone()[0] == SCHEMA_VERSION
        game_code, seed, fatigue = conn.execute(
            "SELECT game_code, rng_seed, ended_by_fatigue FROM session"
        ).fetchone()
        assert (game_code, seed, fatigue) == ("object_location", 31, 0)

        strategies = [r[0] for r in conn.execute("SELECT strategy FROM round ORDER BY round_index")]
        assert strategies == ["baseline", "confusable"]

        n_events = conn.execute("SELECT COUNT(*) FROM trial_event").fetchone()[0]
        assert n_events == len(engine.events())

        rts = {r[0] for r in conn.execute("SELECT rt_ms FROM trial_event")}
        assert rts == {1250}

        classes = {r[0] for r in conn.execute("SELECT classification FROM trial_event")}
        assert "correct" in classes
        assert classes <= {"correct", "confusable", "miss"}

        keys = {r[0] for r in conn.execute("SELECT DISTINCT key FROM metric")}
        assert keys == {"attempted", "correct", "accuracy", "confusable_errors", "mean_rt_ms", "median_rt_ms"}
    finally:
        conn.close()


def test_record_session_appends_to_existing_database(tmp_path: Path) -> None:
    db = tmp_path / "results.sqlite3"
    first = session_result_from_engine(_finished_engine(seed=1), game_code="object_location", seed=1)
    second = session_result_from_engine(_finished_engine(seed=2), game_code="object_location", seed=2)

    assert record_session(db_path=db, result=first, app_version="test") == 1
    assert record_session(db_path=db, result=second, app_version="test") == 2

    conn = sqlite3.connect(db)
    try:
        assert conn.execute("SELECT COUNT(*) FROM round").fetchone()[0] == 4
    finally:
        conn.close()
