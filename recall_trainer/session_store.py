from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger


def _as_float(value: object, fallback: float) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback


def _as_int(value: object, fallback: int) -> int:
    try:
        return max(0, int(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback


@dataclass(frozen=True, slots=True)
class SessionRecord:
    """Aggregates that survive between sessions.

    Difficulty and the round counter are not stored; every session starts
    from the floor.
    """

    last_accuracy: float = 0.0
    last_average_response_time: float = 0.0
    sessions_played_today: int = 0
    last_session_date: str = ""
    total_sessions_ever_played: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_accuracy": float(self.last_accuracy),
            "last_average_response_time": float(self.last_average_response_time),
            "sessions_played_today": int(self.sessions_played_today),
            "last_session_date": str(self.last_session_date),
            "total_sessions_ever_played": int(self.total_sessions_ever_played),
        }

    @classmethod
    def from_dict(cls, data: object) -> "SessionRecord":
        if not isinstance(data, dict):
            return cls()
        return cls(
            last_accuracy=_as_float(data.get("last_accuracy"), 0.0),
            last_average_response_time=_as_float(data.get("last_average_response_time"), 0.0),
            sessions_played_today=_as_int(data.get("sessions_played_today"), 0),
            last_session_date=str(data.get("last_session_date") or ""),
            total_sessions_ever_played=_as_int(data.get("total_sessions_ever_played"), 0),
        )


def begin_session(record: SessionRecord, *, today: str) -> SessionRecord:
    """Same-day sessions accumulate; a new date starts the count at 1."""

    same_day = record.last_session_date == today
    return dataclasses.replace(
        record,
        sessions_played_today=(record.sessions_played_today + 1) if same_day else 1,
        last_session_date=today,
        total_sessions_ever_played=record.total_sessions_ever_played + 1,
    )


def finish_session(
    record: SessionRecord,
    *,
    last_accuracy: float,
    average_response_time: float | None,
) -> SessionRecord:
    return dataclasses.replace(
        record,
        last_accuracy=float(last_accuracy),
        last_average_response_time=0.0 if average_response_time is None else float(average_response_time),
    )


class SessionStore:
    _version = 1

    def __init__(self, path: Path) -> None:
        self._path = path
        self._record = SessionRecord()
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def record(self) -> SessionRecord:
        return self._record

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.debug("Ignoring unreadable session store {}: {}", self._path, exc)
            return
        if not isinstance(payload, dict):
            return
        self._record = SessionRecord.from_dict(payload.get("record"))

    def save(self) -> None:
        payload = {"version": self._version, "record": self._record.to_dict()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            logger.warning("Could not save session store {}: {}", self._path, exc)

    def start_session(self, *, today: str) -> SessionRecord:
        self._record = begin_session(self._record, today=today)
        self.save()
        return self._record

    def finish_session(self, *, last_accuracy: float, average_response_time: float | None) -> SessionRecord:
        self._record = finish_session(
            self._record,
            last_accuracy=last_accuracy,
            average_response_time=average_response_time,
        )
        self.save()
        return self._record
