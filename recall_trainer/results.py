from __future__ import annotations

from dataclasses import dataclass

from .cognitive_core import AnswerClass, TrialEvent, mean
from .round_engine import RoundEngine


@dataclass(frozen=True, slots=True)
class RoundResult:
    """Persistable summary + event log for one finished round."""

    game_code: str
    seed: int
    round_index: int
    strategy: str
    difficulty_before: float
    difficulty_after: float

    attempted: int
    correct: int
    accuracy: float
    confusable_errors: int
    mean_rt_ms: float | None
    median_rt_ms: float | None

    events: list[TrialEvent]


@dataclass(frozen=True, slots=True)
class SessionResult:
    game_code: str
    seed: int
    sessions_played_today: int
    ended_by_fatigue: bool
    final_difficulty: float
    score: int
    rounds: list[RoundResult]

    @property
    def last_accuracy(self) -> float:
        return 0.0 if not self.rounds else self.rounds[-1].accuracy

    @property
    def mean_response_time_s(self) -> float | None:
        return mean(e.response_time_s for r in self.rounds for e in r.events)


def _rt_stats_ms(events: list[TrialEvent]) -> tuple[float | None, float | None]:
    rts_ms = sorted(int(round(e.response_time_s * 1000.0)) for e in events)
    if not rts_ms:
        return None, None
    mean_ms = float(sum(rts_ms)) / float(len(rts_ms))
    mid = len(rts_ms) // 2
    if len(rts_ms) % 2 == 1:
        median_ms = float(rts_ms[mid])
    else:
        median_ms = float(rts_ms[mid - 1] + rts_ms[mid]) / 2.0
    return mean_ms, median_ms


def session_result_from_engine(engine: RoundEngine, *, game_code: str, seed: int) -> SessionResult:
    """Build a SessionResult from the rounds an engine has finished so far."""

    rounds: list[RoundResult] = []
    for s in engine.round_summaries():
        events = engine.round_events(s.round_index)
        mean_ms, median_ms = _rt_stats_ms(events)
        rounds.append(
            RoundResult(
                game_code=str(game_code),
                seed=int(seed),
                round_index=int(s.round_index),
                strategy=str(s.strategy),
                difficulty_before=float(s.difficulty_before),
                difficulty_after=float(s.difficulty_after),
                attempted=int(s.attempted),
                correct=int(s.correct),
                accuracy=float(s.accuracy),
                confusable_errors=sum(1 for e in events if e.classification is AnswerClass.CONFUSABLE),
                mean_rt_ms=mean_ms,
                median_rt_ms=median_ms,
                events=events,
            )
        )

    return SessionResult(
        game_code=str(game_code),
        seed=int(seed),
        sessions_played_today=int(engine.sessions_played_today),
        ended_by_fatigue=bool(engine.ended_by_fatigue),
        final_difficulty=float(engine.difficulty),
        score=int(engine.score),
        rounds=rounds,
    )
