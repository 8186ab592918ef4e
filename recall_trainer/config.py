from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .cognitive_core import clamp

APP_VERSION = "0.1.0"

STORE_PATH_ENV = "RECALL_TRAINER_STORE_PATH"
DB_PATH_ENV = "RECALL_TRAINER_DB_PATH"
LOG_LEVEL_ENV = "RECALL_TRAINER_LOG_LEVEL"
BIAS_ENV = "RECALL_TRAINER_BIAS"
ROUNDS_ENV = "RECALL_TRAINER_ROUNDS"

_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True, slots=True)
class TrainerConfig:
    store_path: Path
    db_path: Path
    log_level: str = "WARNING"
    external_bias: float = 0.0
    rounds: int = 5

    def __post_init__(self) -> None:
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        if not (-0.2 <= self.external_bias <= 0.2):
            raise ValueError("external_bias must be in [-0.2, 0.2]")
        if self.rounds < 1:
            raise ValueError("rounds must be >= 1")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "TrainerConfig":
        env = os.environ if environ is None else environ
        home = Path.home()

        store = env.get(STORE_PATH_ENV, "").strip()
        db = env.get(DB_PATH_ENV, "").strip()

        level = env.get(LOG_LEVEL_ENV, "WARNING").strip().upper()
        if level not in _LOG_LEVELS:
            level = "WARNING"

        try:
            bias = clamp(float(env.get(BIAS_ENV, "0") or 0.0), -0.2, 0.2)
        except ValueError:
            bias = 0.0

        try:
            rounds = max(1, int(env.get(ROUNDS_ENV, "5") or 5))
        except ValueError:
            rounds = 5

        return cls(
            store_path=Path(store).expanduser() if store else home / ".recall_trainer_session.json",
            db_path=Path(db).expanduser() if db else home / ".recall_trainer.sqlite3",
            log_level=level,
            external_bias=bias,
            rounds=rounds,
        )
