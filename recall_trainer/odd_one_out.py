from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from .catalog import (
    Catalog,
    CatalogConfigurationError,
    Item,
    Question,
    QuestionBank,
    default_question_bank,
)
from .clock import Clock
from .cognitive_core import SeededRng, TrialKind, clamp01
from .difficulty import DifficultyConfig, DifficultyController, DifficultyState
from .round_engine import RoundEngine
from .selection import (
    Round,
    RoundStrategy,
    SelectionHistory,
    TrialSpec,
    ensure_unique_items,
    place_items,
    replacement_item,
)


@dataclass(frozen=True, slots=True)
class OddOneOutConfig:
    options_per_question: int = 4
    questions_per_round: int = 5
    rounds: int = 5
    band_half_width: float = 0.2

    def __post_init__(self) -> None:
        if self.options_per_question < 3:
            raise ValueError("options_per_question must be >= 3")
        if self.questions_per_round < 1:
            raise ValueError("questions_per_round must be >= 1")
        if self.rounds < 1:
            raise ValueError("rounds must be >= 1")
        if self.band_half_width < 0.0:
            raise ValueError("band_half_width must be >= 0")


class OddOneOutSelector:
    """Draws categorization questions near the current difficulty.

    A question is not reused within a session until every question in the
    current difficulty band has been seen; then the exclusion set starts over.
    """

    def __init__(self, *, bank: QuestionBank, seed: int, config: OddOneOutConfig | None = None) -> None:
        self._bank = bank
        self._cfg = config or OddOneOutConfig()
        self._rng = SeededRng(seed)

    @property
    def has_study_phase(self) -> bool:
        return False

    @property
    def grid_slots(self) -> int:
        return self._cfg.options_per_question

    @property
    def catalog(self) -> Catalog:
        return self._bank.catalog

    @property
    def config(self) -> OddOneOutConfig:
        return self._cfg

    def desired_count(self, difficulty: float) -> int:
        _ = difficulty
        return self._cfg.options_per_question

    def select_round(self, *, round_index: int, difficulty: float, history: SelectionHistory) -> Round:
        if round_index < 1:
            raise ValueError("round_index must be >= 1")
        d = clamp01(difficulty)

        trials: list[TrialSpec] = []
        seen: dict[str, Item] = {}
        for _ in range(self._cfg.questions_per_round):
            question = self.draw_question(d, history)
            trial = self.assemble_trial(question, round_index=round_index)
            trials.append(trial)
            for p in trial.layout:
                seen.setdefault(p.item.item_id, p.item)

        return Round(
            index=round_index,
            strategy=RoundStrategy.QUESTION_BANK,
            difficulty=d,
            items=tuple(seen.values()),
            placements=(),
            trials=tuple(trials),
            grid_slots=self._cfg.options_per_question,
        )

    def draw_question(self, difficulty: float, history: SelectionHistory) -> Question:
        pool = self._bank.in_band(difficulty, self._cfg.band_half_width)
        if not pool:
            logger.debug("No questions within {:.2f} of {:.2f}; using whole bank", self._cfg.band_half_width, difficulty)
            pool = self._bank.questions()

        available = [q for q in pool if q.question_id not in history.used_question_ids]
        if not available:
            logger.info("Question pool at difficulty {:.2f} exhausted; allowing repeats", difficulty)
            history.used_question_ids.clear()
            available = list(pool)

        question = self._rng.choice(available)
        history.used_question_ids.add(question.question_id)
        return question

    def assemble_trial(self, question: Question, *, round_index: int) -> TrialSpec:
        catalog = self._bank.catalog
        related_ids = list(dict.fromkeys(question.related_ids))

        # Checked against every related item, before any are sampled away.
        odd = catalog.item(question.odd_id)
        if odd.item_id in set(related_ids):
            odd = self._replacement_odd(question, related_ids)

        if len(related_ids) > self._cfg.options_per_question - 1:
            related_ids = self._rng.sample(related_ids, self._cfg.options_per_question - 1)

        options = [catalog.item(i) for i in related_ids]
        options.append(odd)
        options = list(ensure_unique_items(self._rng, catalog, options))
        if odd.item_id in {o.item_id for o in options[:-1]}:
            raise CatalogConfigurationError(f"question {question.question_id!r} has no unique odd item")

        placements = place_items(self._rng, options, grid_slots=self._cfg.options_per_question)
        correct_slot = next(p.slot for p in placements if p.item.item_id == odd.item_id)
        return TrialSpec(
            kind=TrialKind.ODD_ONE_OUT,
            prompt=f"Which one is not in the group: {question.category}?",
            target=odd,
            correct_slot=correct_slot,
            layout=placements,
            layout_visible=True,
            source_round=round_index,
            question_id=question.question_id,
        )

    def _replacement_odd(self, question: Question, related_ids: list[str]) -> Item:
        catalog = self._bank.catalog
        related_groups: set[str] = set()
        for item_id in related_ids:
            related_groups |= catalog.groups_of(item_id)
        exclude = set(related_ids) | {question.odd_id}
        unrelated = [
            item
            for item in catalog.items()
            if item.item_id not in exclude and not (catalog.groups_of(item.item_id) & related_groups)
        ]
        if unrelated:
            sub = self._rng.choice(unrelated)
        else:
            sub = replacement_item(
                self._rng,
                catalog,
                exclude=exclude,
                reason=f"odd item of question {question.question_id!r}",
            )
        logger.warning(
            "Question {} odd item {} collides with related items; using {}",
            question.question_id,
            question.odd_id,
            sub.item_id,
        )
        return sub


def build_odd_one_out_session(
    *,
    clock: Clock,
    seed: int,
    sessions_played_today: int = 0,
    external_bias: float = 0.0,
    config: OddOneOutConfig | None = None,
    bank: QuestionBank | None = None,
    difficulty_config: DifficultyConfig | None = None,
) -> RoundEngine:
    cfg = config or OddOneOutConfig()

    instructions = [
        "Odd One Out",
        "",
        "Each question shows a few items. All but one belong together.",
        "Pick the item that does not belong.",
        "",
        "Click it or press its number.",
    ]

    controller = DifficultyController(
        config=difficulty_config or DifficultyConfig(use_frequency=False),
        state=DifficultyState(external_bias=external_bias),
    )
    return RoundEngine(
        title="Odd One Out",
        instructions=instructions,
        selector=OddOneOutSelector(bank=bank or default_question_bank(), seed=seed, config=cfg),
        clock=clock,
        controller=controller,
        sessions_played_today=sessions_played_today,
        max_rounds=cfg.rounds,
    )
