from __future__ import annotations

import random

import pytest

from recall_trainer.difficulty import DifficultyConfig, DifficultyController, DifficultyState

# A mean latency at the ceiling contributes nothing, isolating the other terms.
SLOW = [10.0]


def test_two_good_rounds_raise_difficulty_by_one_step_and_reset_streak() -> None:
    c = DifficultyController()

    assert c.advance(0.8, SLOW, 0) == pytest.approx(0.0)
    assert c.state.consecutive_good_rounds == 1

    assert c.advance(0.6, SLOW, 0) == pytest.approx(0.2)
    assert c.state.consecutive_good_rounds == 0
    assert c.state.consecutive_poor_rounds == 0


def test_two_poor_rounds_lower_difficulty_by_one_step_and_reset_streak() -> None:
    c = DifficultyController(state=DifficultyState(value=0.5))

    assert c.advance(0.2, SLOW, 0) == pytest.approx(0.5)
    assert c.state.consecutive_poor_rounds == 1

    assert c.advance(0.39, SLOW, 0) == pytest.approx(0.3)
    assert c.state.consecutive_poor_rounds == 0


def test_middle_band_resets_both_streaks() -> None:
    c = DifficultyController()
    c.advance(0.9, SLOW, 0)
    c.advance(0.5, SLOW, 0)
    assert c.state.consecutive_good_rounds == 0
    assert c.state.consecutive_poor_rounds == 0

    # The earlier good round no longer counts toward the streak.
    assert c.advance(0.9, SLOW, 0) == pytest.approx(0.0)
    assert c.state.consecutive_good_rounds == 1


def test_poor_round_breaks_good_streak() -> None:
    c = DifficultyController()
    c.advance(1.0, SLOW, 0)
    c.advance(0.1, SLOW, 0)
    assert c.state.consecutive_good_rounds == 0
    assert c.state.consecutive_poor_rounds == 1
    assert c.value == pytest.approx(0.0)


@pytest.mark.parametrize(
    ("latencies", "expected"),
    [
        ([0.0], 0.3),
        ([5.0], 0.15),
        ([2.0, 8.0], 0.15),
        ([25.0], 0.0),
        ([], 0.0),
    ],
)
def test_latency_term(latencies: list[float], expected: float) -> None:
    c = DifficultyController()
    assert c.advance(0.5, latencies, 0) == pytest.approx(expected)


@pytest.mark.parametrize(("sessions", "expected"), [(0, 0.0), (1, 0.0), (2, 0.02), (3, 0.05), (7, 0.05)])
def test_frequency_term(sessions: int, expected: float) -> None:
    c = DifficultyController()
    assert c.advance(0.5, SLOW, sessions) == pytest.approx(expected)


def test_frequency_term_can_be_disabled() -> None:
    c = DifficultyController(config=DifficultyConfig(use_frequency=False))
    assert c.advance(0.5, SLOW, 5) == pytest.approx(0.0)


def test_external_bias_is_clamped_and_applied_every_round() -> None:
    c = DifficultyController(state=DifficultyState(external_bias=0.5))
    assert c.state.external_bias == pytest.approx(0.2)
    assert c.advance(0.5, SLOW, 0) == pytest.approx(0.2)
    assert c.advance(0.5, SLOW, 0) == pytest.approx(0.4)

    c.set_external_bias(-3.0)
    assert c.state.external_bias == pytest.approx(-0.2)
    assert c.advance(0.5, SLOW, 0) == pytest.approx(0.2)


def test_advance_uses_and_clears_recorded_latencies() -> None:
    c = DifficultyController()
    c.record_latency(1.0)
    c.record_latency(3.0)

    assert c.advance(0.5, sessions_played_today=0) == pytest.approx(0.24)
    assert c.state.response_latencies == []
    assert c.state.accuracy_history == [0.5]


def test_explicit_latencies_also_clear_buffer() -> None:
    c = DifficultyController()
    c.record_latency(0.0)
    c.advance(0.5, SLOW, 0)
    assert c.state.response_latencies == []


def test_difficulty_never_leaves_unit_interval() -> None:
    rng = random.Random(99)
    c = DifficultyController()
    for _ in range(500):
        if rng.random() < 0.1:
            c.set_external_bias(rng.uniform(-1.0, 1.0))
        latencies = [rng.uniform(0.0, 20.0) for _ in range(rng.randint(0, 6))]
        value = c.advance(rng.random(), latencies, rng.randint(0, 5))
        assert 0.0 <= value <= 1.0
        assert 0.0 <= c.value <= 1.0


def test_scenario_good_good_poor() -> None:
    c = DifficultyController()
    values = [c.advance(acc, SLOW, 1) for acc in (1.0, 1.0, 0.2)]

    assert values[0] == pytest.approx(0.0)
    assert values[1] == pytest.approx(0.2)
    # A single poor round does not drop difficulty.
    assert values[2] == pytest.approx(0.2)
    assert c.state.consecutive_poor_rounds == 1
    assert c.state.accuracy_history == [1.0, 1.0, 0.2]


def test_reset_returns_to_floor_but_keeps_bias() -> None:
    c = DifficultyController(state=DifficultyState(external_bias=0.1))
    c.advance(1.0, [0.0], 3)
    c.record_latency(2.0)
    assert c.value > 0.0

    c.reset()
    assert c.value == 0.0
    assert c.state.accuracy_history == []
    assert c.state.response_latencies == []
    assert c.state.consecutive_good_rounds == 0
    assert c.state.external_bias == pytest.approx(0.1)


def test_config_validation() -> None:
    with pytest.raises(ValueError):
        DifficultyConfig(good_threshold=0.3, poor_threshold=0.5)
    with pytest.raises(ValueError):
        DifficultyConfig(latency_ceiling_s=0.0)
    with pytest.raises(ValueError):
        DifficultyConfig(streak_length=0)
