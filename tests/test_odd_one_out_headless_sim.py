from __future__ import annotations

from dataclasses import dataclass

import pytest

from recall_trainer.catalog import default_question_bank
from recall_trainer.cognitive_core import AnswerClass, Phase
from recall_trainer.odd_one_out import OddOneOutSelector, build_odd_one_out_session
from recall_trainer.results import session_result_from_engine
from recall_trainer.selection import SelectionHistory


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def test_headless_scripted_run_ignores_play_frequency() -> None:
    seed = 777
    clock = FakeClock()

    engine = build_odd_one_out_session(clock=clock, seed=seed, sessions_played_today=5)
    mirror = OddOneOutSelector(bank=default_question_bank(), seed=seed)
    mirror_history = SelectionHistory()

    engine.advance()
    while engine.phase is not Phase.RESULTS:
        assert engine.phase is Phase.QUIZ
        rnd = engine.current_round
        assert rnd is not None
        expected = mirror.select_round(round_index=rnd.index, difficulty=engine.difficulty, history=mirror_history)
        assert rnd.trials == expected.trials

        for _ in rnd.trials:
            spec = engine.current_trial
            assert spec is not None
            clock.advance(5.0)
            assert engine.select_slot(spec.correct_slot) is True
            engine.advance()
        assert engine.phase is Phase.DONE
        engine.advance()

    summaries = engine.round_summaries()
    assert [s.attempted for s in summaries] == [5, 5, 5, 5, 5]
    assert [s.difficulty_after for s in summaries] == pytest.approx([0.15, 0.5, 0.65, 1.0, 1.0])


def test_headless_wrong_answers_are_logged_with_classification() -> None:
    clock = FakeClock()
    engine = build_odd_one_out_session(clock=clock, seed=12)
    engine.advance()

    spec = engine.current_trial
    assert spec is not None
    wrong = next(p for p in spec.layout if p.slot != spec.correct_slot)
    clock.advance(3.0)
    assert engine.select_slot(wrong.slot) is True

    (event,) = engine.events()
    assert event.is_correct is False
    assert event.chosen_id == wrong.item.item_id
    assert event.target_id == spec.target.item_id
    assert event.classification in (AnswerClass.CONFUSABLE, AnswerClass.MISS)
    assert "odd one out was" in engine.snapshot().prompt

    result = session_result_from_engine(engine, game_code="odd_one_out", seed=12)
    assert result.rounds == []
    assert result.last_accuracy == 0.0
