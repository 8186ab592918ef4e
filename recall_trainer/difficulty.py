from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from loguru import logger

from .cognitive_core import clamp, clamp01, mean


@dataclass(frozen=True, slots=True)
class DifficultyConfig:
    good_threshold: float = 0.60
    poor_threshold: float = 0.40
    streak_length: int = 2
    streak_step: float = 0.20
    latency_ceiling_s: float = 10.0
    latency_weight: float = 0.3
    frequency_high_sessions: int = 3
    frequency_high_bump: float = 0.05
    frequency_low_sessions: int = 2
    frequency_low_bump: float = 0.02
    use_frequency: bool = True
    bias_limit: float = 0.2

    def __post_init__(self) -> None:
        if not (0.0 <= self.poor_threshold <= self.good_threshold <= 1.0):
            raise ValueError("thresholds must satisfy 0 <= poor <= good <= 1")
        if self.streak_length < 1:
            raise ValueError("streak_length must be >= 1")
        if self.latency_ceiling_s <= 0.0:
            raise ValueError("latency_ceiling_s must be > 0")
        if self.bias_limit < 0.0:
            raise ValueError("bias_limit must be >= 0")


@dataclass(slots=True)
class DifficultyState:
    """Mutable difficulty state for one session.

    ``value`` starts at the floor every session; only the aggregates in the
    session store survive between sessions.
    """

    value: float = 0.0
    consecutive_good_rounds: int = 0
    consecutive_poor_rounds: int = 0
    accuracy_history: list[float] = field(default_factory=list)
    external_bias: float = 0.0
    response_latencies: list[float] = field(default_factory=list)


class DifficultyController:
    """Hand-tuned linear control rule over accuracy, latency and play frequency."""

    def __init__(
        self,
        *,
        config: DifficultyConfig | None = None,
        state: DifficultyState | None = None,
    ) -> None:
        self._cfg = config or DifficultyConfig()
        self._state = state or DifficultyState()
        self._state.external_bias = clamp(
            self._state.external_bias, -self._cfg.bias_limit, self._cfg.bias_limit
        )

    @property
    def config(self) -> DifficultyConfig:
        return self._cfg

    @property
    def state(self) -> DifficultyState:
        return self._state

    @property
    def value(self) -> float:
        return self._state.value

    def set_external_bias(self, bias: float) -> None:
        self._state.external_bias = clamp(float(bias), -self._cfg.bias_limit, self._cfg.bias_limit)

    def record_latency(self, response_time_s: float) -> None:
        self._state.response_latencies.append(max(0.0, float(response_time_s)))

    def reset(self) -> None:
        """Back to the floor, keeping the caregiver bias."""

        bias = self._state.external_bias
        self._state.value = 0.0
        self._state.consecutive_good_rounds = 0
        self._state.consecutive_poor_rounds = 0
        self._state.accuracy_history.clear()
        self._state.response_latencies.clear()
        self._state.external_bias = bias

    def streak_term(self, round_accuracy: float) -> float:
        s = self._state
        cfg = self._cfg
        if round_accuracy >= cfg.good_threshold:
            s.consecutive_good_rounds += 1
            s.consecutive_poor_rounds = 0
            if s.consecutive_good_rounds >= cfg.streak_length:
                s.consecutive_good_rounds = 0
                return cfg.streak_step
            return 0.0
        if round_accuracy < cfg.poor_threshold:
            s.consecutive_poor_rounds += 1
            s.consecutive_good_rounds = 0
            if s.consecutive_poor_rounds >= cfg.streak_length:
                s.consecutive_poor_rounds = 0
                return -cfg.streak_step
            return 0.0
        s.consecutive_good_rounds = 0
        s.consecutive_poor_rounds = 0
        return 0.0

    def latency_term(self, response_latencies: Sequence[float]) -> float:
        avg = mean(response_latencies)
        if avg is None:
            return 0.0
        normalized = clamp01(avg / self._cfg.latency_ceiling_s)
        return (1.0 - normalized) * self._cfg.latency_weight

    def frequency_term(self, sessions_played_today: int) -> float:
        cfg = self._cfg
        if not cfg.use_frequency:
            return 0.0
        if sessions_played_today >= cfg.frequency_high_sessions:
            return cfg.frequency_high_bump
        if sessions_played_today >= cfg.frequency_low_sessions:
            return cfg.frequency_low_bump
        return 0.0

    def advance(
        self,
        round_accuracy: float,
        response_latencies: Sequence[float] | None = None,
        sessions_played_today: int = 0,
    ) -> float:
        """Consume one finished round and return the next round's difficulty.

        ``response_latencies`` defaults to the samples gathered with
        ``record_latency`` since the previous call. The sample buffer is
        cleared either way.
        """

        s = self._state
        accuracy = clamp01(float(round_accuracy))
        latencies = list(s.response_latencies if response_latencies is None else response_latencies)

        s.accuracy_history.append(accuracy)
        streak = self.streak_term(accuracy)
        latency = self.latency_term(latencies)
        frequency = self.frequency_term(int(sessions_played_today))
        bias = clamp(s.external_bias, -self._cfg.bias_limit, self._cfg.bias_limit)

        before = s.value
        s.value = clamp01(before + streak + latency + frequency + bias)
        s.response_latencies.clear()

        logger.info(
            "Difficulty {:.3f} -> {:.3f} (acc={:.2f} streak={:+.2f} latency={:+.3f} freq={:+.2f} bias={:+.2f})",
            before,
            s.value,
            accuracy,
            streak,
            latency,
            frequency,
            bias,
        )
        return s.value
