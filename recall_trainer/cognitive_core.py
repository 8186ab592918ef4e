from __future__ import annotations

import math
import random
from collections.abc import Iterable, MutableSequence, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

T = TypeVar("T")


class Phase(str, Enum):
    INSTRUCTIONS = "instructions"
    STUDY = "study"
    QUIZ = "quiz"
    DONE = "done"
    RESULTS = "results"


class TrialKind(str, Enum):
    LOCATION = "location"
    DELAYED_RECALL = "delayed_recall"
    ODD_ONE_OUT = "odd_one_out"


class AnswerClass(str, Enum):
    CORRECT = "correct"
    CONFUSABLE = "confusable"
    MISS = "miss"


@dataclass(frozen=True, slots=True)
class TrialEvent:
    """A closed trial. Created once, on answer, and never modified."""

    round_index: int
    seq: int
    kind: TrialKind
    prompt: str
    target_id: str
    correct_slot: int
    chosen_slot: int
    chosen_id: str | None
    is_correct: bool
    classification: AnswerClass
    presented_at_s: float
    answered_at_s: float
    response_time_s: float


@dataclass(frozen=True, slots=True)
class RoundSummary:
    round_index: int
    attempted: int
    correct: int
    accuracy: float
    mean_response_time_s: float | None
    difficulty_before: float
    difficulty_after: float
    strategy: str = ""
    confusable_errors: int = 0


@dataclass(frozen=True, slots=True)
class SlotView:
    slot: int
    item_id: str
    label: str
    glyph: str


@dataclass(frozen=True, slots=True)
class Feedback:
    correct: bool
    classification: AnswerClass
    correct_item_id: str
    correct_label: str
    correct_slot: int
    chosen_slot: int


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """View model for the UI (pure data)."""

    title: str
    phase: Phase
    prompt: str
    input_hint: str
    round_index: int
    trial_number: int
    trial_count: int
    difficulty: float
    score: int
    grid_slots: int
    slots: tuple[SlotView, ...]
    accepting_input: bool
    paused: bool
    feedback: Feedback | None = None


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def random(self) -> float:
        return self._rng.random()

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def sample(self, population: Sequence[T], k: int) -> list[T]:
        return self._rng.sample(population, k)

    def shuffle(self, seq: MutableSequence[T]) -> None:
        self._rng.shuffle(seq)

    def uniform(self, a: float, b: float) -> float:
        return self._rng.uniform(a, b)


def lerp_int(a: int, b: int, t: float) -> int:
    """Linear interpolation in integer space (inclusive bounds)."""

    if t <= 0:
        return a
    if t >= 1:
        return b
    return int(round(a + (b - a) * t))


def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x <= lo else hi if x >= hi else float(x)


def clamp01(x: float) -> float:
    return 0.0 if x <= 0.0 else 1.0 if x >= 1.0 else float(x)


def mean(values: Iterable[float]) -> float | None:
    vals = [float(v) for v in values]
    if not vals:
        return None
    return math.fsum(vals) / len(vals)
