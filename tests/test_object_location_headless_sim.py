from __future__ import annotations

from dataclasses import dataclass

import pytest

from recall_trainer.catalog import default_catalog
from recall_trainer.cognitive_core import Phase, TrialKind
from recall_trainer.object_location import ObjectLocationSelector, build_object_location_session
from recall_trainer.results import session_result_from_engine
from recall_trainer.selection import SelectionHistory


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def test_headless_scripted_run_follows_mirror_selector_and_adapts() -> None:
    seed = 5150
    clock = FakeClock()

    engine = build_object_location_session(clock=clock, seed=seed)
    mirror = ObjectLocationSelector(catalog=default_catalog(), seed=seed)
    mirror_history = SelectionHistory()

    engine.advance()
    sizes: list[int] = []
    while engine.phase is not Phase.RESULTS:
        assert engine.phase is Phase.STUDY
        rnd = engine.current_round
        assert rnd is not None
        expected = mirror.select_round(round_index=rnd.index, difficulty=engine.difficulty, history=mirror_history)
        assert rnd.placements == expected.placements
        assert rnd.trials == expected.trials
        sizes.append(len(rnd.items))

        engine.advance()
        for _ in rnd.trials:
            spec = engine.current_trial
            assert spec is not None
            clock.advance(2.0)
            assert engine.select_slot(spec.correct_slot) is True
            engine.advance()
        assert engine.phase is Phase.DONE
        engine.advance()

    summaries = engine.round_summaries()
    assert len(summaries) == 5
    assert sizes == [3, 4, 6, 8, 8]
    assert [s.difficulty_after for s in summaries] == pytest.approx([0.24, 0.68, 0.92, 1.0, 1.0])
    assert all(s.accuracy == 1.0 for s in summaries)
    assert engine.ended_by_fatigue is False

    delayed = [e for e in engine.events() if e.kind is TrialKind.DELAYED_RECALL]
    assert len(delayed) == 1
    assert delayed[0].round_index == 3

    result = session_result_from_engine(engine, game_code="object_location", seed=seed)
    assert result.score == sum(sizes) + 1
    assert result.last_accuracy == 1.0
    assert result.mean_response_time_s == pytest.approx(2.0)
    assert [r.strategy for r in result.rounds] == ["baseline", "confusable", "normal", "normal", "normal"]
    assert result.rounds[0].median_rt_ms == pytest.approx(2000.0)
