from __future__ import annotations

import pytest

from recall_trainer.catalog import (
    Catalog,
    CatalogConfigurationError,
    Item,
    Question,
    QuestionBank,
    SemanticGroup,
    default_question_bank,
)
from recall_trainer.cognitive_core import TrialKind
from recall_trainer.odd_one_out import OddOneOutConfig, OddOneOutSelector
from recall_trainer.selection import RoundStrategy, SelectionHistory


def _bank(
    ids: tuple[str, ...],
    groups: dict[str, tuple[str, ...]],
    questions: list[Question],
) -> QuestionBank:
    cat = Catalog(
        items=[Item(item_id=i, label=i.upper(), glyph="") for i in ids],
        groups=[SemanticGroup(name=n, item_ids=m) for n, m in groups.items()],
    )
    return QuestionBank(catalog=cat, questions=questions)


@pytest.mark.parametrize("seed", [0, 1, 2, 99, 2024])
def test_odd_item_is_never_among_the_others(seed: int) -> None:
    bank = default_question_bank()
    sel = OddOneOutSelector(bank=bank, seed=seed)
    history = SelectionHistory()
    for idx, d in enumerate([0.0, 0.25, 0.5, 0.75, 1.0], start=1):
        rnd = sel.select_round(round_index=idx, difficulty=d, history=history)
        assert rnd.strategy is RoundStrategy.QUESTION_BANK
        assert rnd.placements == ()
        assert len(rnd.trials) == 5
        for t in rnd.trials:
            assert t.kind is TrialKind.ODD_ONE_OUT
            assert t.layout_visible is True
            ids = [p.item.item_id for p in t.layout]
            assert len(ids) == 4
            assert len(set(ids)) == 4
            assert ids.count(t.target.item_id) == 1
            assert t.item_at(t.correct_slot) == t.target
            assert sorted(p.slot for p in t.layout) == [0, 1, 2, 3]


def test_colliding_odd_item_is_replaced_from_an_unrelated_group() -> None:
    bank = _bank(
        ("a", "b", "c", "x", "y"),
        {"letters": ("a", "b", "c"), "ends": ("x", "y")},
        [Question("q1", 0.5, "letters", ("a", "b", "c"), "a")],
    )
    sel = OddOneOutSelector(bank=bank, seed=5)
    trial = sel.assemble_trial(bank.questions()[0], round_index=1)

    assert trial.target.item_id in {"x", "y"}
    others = {p.item.item_id for p in trial.layout} - {trial.target.item_id}
    assert others == {"a", "b", "c"}


@pytest.mark.parametrize("seed", list(range(40)))
def test_colliding_odd_item_is_replaced_even_when_related_items_are_sampled_down(seed: int) -> None:
    bank = _bank(
        ("a", "b", "c", "d", "x", "y"),
        {"letters": ("a", "b", "c", "d"), "ends": ("x", "y")},
        [Question("q1", 0.5, "letters", ("a", "b", "c", "d"), "d")],
    )
    sel = OddOneOutSelector(bank=bank, seed=seed)
    trial = sel.assemble_trial(bank.questions()[0], round_index=1)

    assert trial.target.item_id in {"x", "y"}
    others = {p.item.item_id for p in trial.layout} - {trial.target.item_id}
    assert len(others) == 3
    assert others <= {"a", "b", "c", "d"}


def test_colliding_odd_item_without_replacement_is_an_error() -> None:
    bank = _bank(
        ("a", "b", "c"),
        {"letters": ("a", "b", "c")},
        [Question("q1", 0.5, "letters", ("a", "b", "c"), "a")],
    )
    sel = OddOneOutSelector(bank=bank, seed=5)
    with pytest.raises(CatalogConfigurationError):
        sel.assemble_trial(bank.questions()[0], round_index=1)


def test_extra_related_items_are_sampled_down() -> None:
    bank = _bank(
        ("a", "b", "c", "d", "e", "z"),
        {"letters": ("a", "b", "c", "d", "e")},
        [Question("q1", 0.5, "letters", ("a", "b", "c", "d", "e"), "z")],
    )
    sel = OddOneOutSelector(bank=bank, seed=11)
    trial = sel.assemble_trial(bank.questions()[0], round_index=2)

    ids = {p.item.item_id for p in trial.layout}
    assert len(ids) == 4
    assert "z" in ids
    assert trial.target.item_id == "z"
    assert trial.source_round == 2
    assert trial.question_id == "q1"


def test_draws_stay_in_band_and_do_not_repeat_until_exhausted() -> None:
    bank = default_question_bank()
    in_band = {q.question_id for q in bank.in_band(0.0, 0.2)}
    assert len(in_band) == 7

    sel = OddOneOutSelector(bank=bank, seed=8)
    history = SelectionHistory()
    drawn = [sel.draw_question(0.0, history).question_id for _ in range(7)]

    assert set(drawn) == in_band
    assert history.used_question_ids == in_band

    again = sel.draw_question(0.0, history)
    assert again.question_id in in_band
    assert history.used_question_ids == {again.question_id}


def test_empty_band_falls_back_to_whole_bank() -> None:
    bank = _bank(
        ("a", "b", "c", "z"),
        {"letters": ("a", "b", "c")},
        [
            Question("hard1", 0.9, "letters", ("a", "b"), "z"),
            Question("hard2", 1.0, "letters", ("b", "c"), "z"),
        ],
    )
    sel = OddOneOutSelector(bank=bank, seed=1)
    q = sel.draw_question(0.0, SelectionHistory())
    assert q.question_id in {"hard1", "hard2"}


def test_round_items_are_the_union_of_trial_options() -> None:
    sel = OddOneOutSelector(bank=default_question_bank(), seed=31)
    rnd = sel.select_round(round_index=1, difficulty=0.0, history=SelectionHistory())

    union = {p.item.item_id for t in rnd.trials for p in t.layout}
    assert {i.item_id for i in rnd.items} == union
    assert len({t.question_id for t in rnd.trials}) == 5
    assert sel.desired_count(0.0) == sel.desired_count(1.0) == 4


def test_config_validation() -> None:
    with pytest.raises(ValueError):
        OddOneOutConfig(options_per_question=2)
    with pytest.raises(ValueError):
        OddOneOutConfig(questions_per_round=0)
    with pytest.raises(ValueError):
        OddOneOutConfig(band_half_width=-0.1)
