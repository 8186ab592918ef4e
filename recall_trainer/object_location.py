from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from .catalog import Catalog, CatalogConfigurationError, Item, SemanticGroup, default_catalog
from .clock import Clock
from .cognitive_core import SeededRng, TrialKind, clamp01, lerp_int
from .difficulty import DifficultyConfig, DifficultyController, DifficultyState
from .round_engine import RoundEngine
from .selection import (
    Placement,
    Round,
    RoundStrategy,
    SelectionHistory,
    TrialSpec,
    ensure_unique_items,
    place_items,
)


@dataclass(frozen=True, slots=True)
class ObjectLocationConfig:
    min_items: int = 3
    max_items: int = 8
    grid_cols: int = 4
    grid_rows: int = 3
    rounds: int = 5
    confusable_floor: int = 3
    delayed_recall_round: int = 3

    def __post_init__(self) -> None:
        if self.min_items < 1:
            raise ValueError("min_items must be >= 1")
        if self.max_items < self.min_items:
            raise ValueError("max_items must be >= min_items")
        if self.grid_cols < 1 or self.grid_rows < 1:
            raise ValueError("grid must have at least one row and column")
        if self.grid_slots < self.max_items:
            raise ValueError("grid must have room for max_items")
        if self.rounds < 1:
            raise ValueError("rounds must be >= 1")

    @property
    def grid_slots(self) -> int:
        return self.grid_cols * self.grid_rows


class ObjectLocationSelector:
    """Chooses which items to hide where.

    Round 1 spreads items across as many semantic groups as possible, round 2
    draws every item from one group so they are easy to confuse, and later
    rounds draw freely. Round 3 also re-asks an item from round 1.
    """

    def __init__(self, *, catalog: Catalog, seed: int, config: ObjectLocationConfig | None = None) -> None:
        self._catalog = catalog
        self._cfg = config or ObjectLocationConfig()
        self._rng = SeededRng(seed)

    @property
    def has_study_phase(self) -> bool:
        return True

    @property
    def grid_slots(self) -> int:
        return self._cfg.grid_slots

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def config(self) -> ObjectLocationConfig:
        return self._cfg

    def desired_count(self, difficulty: float) -> int:
        return lerp_int(self._cfg.min_items, self._cfg.max_items, clamp01(difficulty))

    def select_round(self, *, round_index: int, difficulty: float, history: SelectionHistory) -> Round:
        if round_index < 1:
            raise ValueError("round_index must be >= 1")
        count = self.desired_count(difficulty)

        group_name: str | None = None
        if round_index == 1:
            strategy = RoundStrategy.BASELINE
            items = self._baseline_items(count)
        elif round_index == 2:
            strategy = RoundStrategy.CONFUSABLE
            group, items = self._confusable_items(count)
            group_name = group.name
        else:
            strategy = RoundStrategy.NORMAL
            items = self._normal_items(count)

        items = ensure_unique_items(self._rng, self._catalog, items)
        placements = place_items(self._rng, items, grid_slots=self._cfg.grid_slots)

        order = list(placements)
        self._rng.shuffle(order)
        trials = [
            TrialSpec(
                kind=TrialKind.LOCATION,
                prompt=f"Where was the {p.item.label}?",
                target=p.item,
                correct_slot=p.slot,
                layout=placements,
                layout_visible=False,
                source_round=round_index,
                confusable_set=strategy is RoundStrategy.CONFUSABLE,
            )
            for p in order
        ]

        baseline = history.baseline_round
        if round_index == self._cfg.delayed_recall_round and baseline is not None:
            trials.insert(0, self._delayed_recall_trial(baseline))

        rnd = Round(
            index=round_index,
            strategy=strategy,
            difficulty=float(difficulty),
            items=items,
            placements=placements,
            trials=tuple(trials),
            grid_slots=self._cfg.grid_slots,
            group_name=group_name,
        )
        if strategy is RoundStrategy.BASELINE:
            history.baseline_round = rnd
        return rnd

    def _baseline_items(self, count: int) -> list[Item]:
        groups = list(self._catalog.groups())
        self._rng.shuffle(groups)

        chosen: list[Item] = []
        chosen_ids: set[str] = set()
        used_groups: set[str] = set()
        for group in groups:
            if len(chosen) >= count:
                break
            if group.name in used_groups:
                continue
            candidates = [
                item_id
                for item_id in group.item_ids
                if item_id not in chosen_ids and not (self._catalog.groups_of(item_id) & used_groups)
            ]
            if not candidates:
                continue
            item_id = self._rng.choice(candidates)
            chosen.append(self._catalog.item(item_id))
            chosen_ids.add(item_id)
            used_groups |= self._catalog.groups_of(item_id)

        missing = count - len(chosen)
        if missing > 0:
            rest = [item for item in self._catalog.items() if item.item_id not in chosen_ids]
            if len(rest) < missing:
                raise CatalogConfigurationError(
                    f"catalog has {len(self._catalog)} items, baseline round needs {count}"
                )
            chosen.extend(self._rng.sample(rest, missing))
        return chosen

    def _confusable_items(self, count: int) -> tuple[SemanticGroup, list[Item]]:
        groups = self._catalog.groups()
        if not groups:
            raise CatalogConfigurationError("confusable round needs at least one semantic group")

        exact = [g for g in groups if len(g) == count]
        larger = [g for g in groups if len(g) > count]
        if exact:
            group = self._rng.choice(exact)
        elif larger:
            group = self._rng.choice(larger)
        else:
            largest = max(len(g) for g in groups)
            group = self._rng.choice([g for g in groups if len(g) == largest])
            if largest < self._cfg.confusable_floor:
                raise CatalogConfigurationError(
                    f"largest semantic group {group.name!r} has {largest} items, "
                    f"confusable round needs at least {self._cfg.confusable_floor}"
                )
            logger.warning(
                "No group holds {} items; confusable round uses {!r} with {}",
                count,
                group.name,
                largest,
            )
            count = largest

        ids = self._rng.sample(group.item_ids, count)
        return group, [self._catalog.item(i) for i in ids]

    def _normal_items(self, count: int) -> list[Item]:
        pool = self._catalog.items()
        if len(pool) < count:
            raise CatalogConfigurationError(f"catalog has {len(pool)} items, round needs {count}")
        return self._rng.sample(pool, count)

    def _delayed_recall_trial(self, baseline: Round) -> TrialSpec:
        p: Placement = self._rng.choice(baseline.placements)
        return TrialSpec(
            kind=TrialKind.DELAYED_RECALL,
            prompt=f"Think back to round {baseline.index}: where was the {p.item.label}?",
            target=p.item,
            correct_slot=p.slot,
            layout=baseline.placements,
            layout_visible=False,
            source_round=baseline.index,
        )


def build_object_location_session(
    *,
    clock: Clock,
    seed: int,
    sessions_played_today: int = 0,
    external_bias: float = 0.0,
    config: ObjectLocationConfig | None = None,
    catalog: Catalog | None = None,
    difficulty_config: DifficultyConfig | None = None,
) -> RoundEngine:
    cfg = config or ObjectLocationConfig()

    instructions = [
        "Where Was It?",
        "",
        "A grid of everyday items is shown. Study where each one is,",
        "then press Enter to hide them.",
        "You will be asked where each item was. Click its slot",
        "or press the slot number.",
        "",
        "Rounds get harder as you do well and easier if you struggle.",
        "Some rounds use look-alike items, and one round asks about",
        "an item from the first round.",
    ]

    controller = DifficultyController(
        config=difficulty_config or DifficultyConfig(use_frequency=True),
        state=DifficultyState(external_bias=external_bias),
    )
    return RoundEngine(
        title="Where Was It?",
        instructions=instructions,
        selector=ObjectLocationSelector(catalog=catalog or default_catalog(), seed=seed, config=cfg),
        clock=clock,
        controller=controller,
        sessions_played_today=sessions_played_today,
        max_rounds=cfg.rounds,
    )
