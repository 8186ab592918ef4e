from __future__ import annotations

from pathlib import Path
import sqlite3
import time

from loguru import logger

from .results import RoundResult, SessionResult

SCHEMA_VERSION = 1


def open_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS session (
                id INTEGER PRIMARY KEY,
                game_code TEXT NOT NULL,
                app_version TEXT NOT NULL,
                rng_seed INTEGER NOT NULL,
                sessions_played_today INTEGER NOT NULL,
                ended_by_fatigue INTEGER NOT NULL,
                final_difficulty REAL NOT NULL,
                score INTEGER NOT NULL,
                completed_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS round (
                id INTEGER PRIMARY KEY,
                session_id INTEGER NOT NULL REFERENCES session(id) ON DELETE CASCADE,
                round_index INTEGER NOT NULL,
                strategy TEXT NOT NULL,
                difficulty_before REAL NOT NULL,
                difficulty_after REAL NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS metric (
                round_id INTEGER NOT NULL REFERENCES round(id) ON DELETE CASCADE,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (round_id, key)
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS trial_event (
                id INTEGER PRIMARY KEY,
                round_id INTEGER NOT NULL REFERENCES round(id) ON DELETE CASCADE,
                seq INTEGER NOT NULL,
                kind TEXT NOT NULL,
                prompt TEXT NOT NULL,
                target_id TEXT NOT NULL,
                expected_slot INTEGER NOT NULL,
                chosen_slot INTEGER NOT NULL,
                chosen_id TEXT,
                is_correct INTEGER NOT NULL,
                classification TEXT NOT NULL,
                presented_at_ms INTEGER NOT NULL,
                answered_at_ms INTEGER NOT NULL,
                rt_ms INTEGER NOT NULL
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_trial_event_round_seq ON trial_event(round_id, seq);")
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


def record_session(*, db_path: Path, result: SessionResult, app_version: str) -> int:
    """
    Telemetry for one finished session:
      session -> round -> metric + trial_event
    """
    conn = open_db(db_path)
    try:
        session_id = _insert_session(conn=conn, result=result, app_version=app_version)
    finally:
        conn.close()
    logger.debug("Recorded session {} ({} rounds) to {}", session_id, len(result.rounds), db_path)
    return session_id


def _insert_session(*, conn: sqlite3.Connection, result: SessionResult, app_version: str) -> int:
    with conn:
        cur = conn.execute(
            """
            INSERT INTO session(
                game_code, app_version, rng_seed, sessions_played_today,
                ended_by_fatigue, final_difficulty, score, completed_at_utc
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(result.game_code),
                app_version,
                int(result.seed),
                int(result.sessions_played_today),
                1 if result.ended_by_fatigue else 0,
                float(result.final_difficulty),
                int(result.score),
                _utc_now_iso(),
            ),
        )
        session_id = int(cur.lastrowid)
        for rnd in result.rounds:
            _insert_round(conn=conn, session_id=session_id, result=rnd)
    return session_id


def _insert_round(*, conn: sqlite3.Connection, session_id: int, result: RoundResult) -> None:
    cur = conn.execute(
        """
        INSERT INTO round(session_id, round_index, strategy, difficulty_before, difficulty_after)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            session_id,
            int(result.round_index),
            str(result.strategy),
            float(result.difficulty_before),
            float(result.difficulty_after),
        ),
    )
    round_id = int(cur.lastrowid)

    mean_rt = "" if result.mean_rt_ms is None else f"{result.mean_rt_ms:.3f}"
    median_rt = "" if result.median_rt_ms is None else f"{result.median_rt_ms:.3f}"
    metrics = {
        "attempted": str(result.attempted),
        "correct": str(result.correct),
        "accuracy": f"{result.accuracy:.6f}",
        "confusable_errors": str(result.confusable_errors),
        "mean_rt_ms": mean_rt,
        "median_rt_ms": median_rt,
    }
    for k, v in metrics.items():
        conn.execute("INSERT INTO metric(round_id, key, value) VALUES (?, ?, ?)", (round_id, k, v))

    for e in result.events:
        conn.execute(
            """
            INSERT INTO trial_event(
                round_id, seq, kind, prompt, target_id, expected_slot, chosen_slot, chosen_id,
                is_correct, classification, presented_at_ms, answered_at_ms, rt_ms
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                round_id,
                int(e.seq),
                str(e.kind.value),
                str(e.prompt),
                str(e.target_id),
                int(e.correct_slot),
                int(e.chosen_slot),
                e.chosen_id,
                1 if e.is_correct else 0,
                str(e.classification.value),
                int(round(e.presented_at_s * 1000.0)),
                int(round(e.answered_at_s * 1000.0)),
                int(round(e.response_time_s * 1000.0)),
            ),
        )
