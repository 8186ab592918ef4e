from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from loguru import logger

from .catalog import Catalog, CatalogConfigurationError, Item
from .cognitive_core import SeededRng, TrialKind


class RoundStrategy(str, Enum):
    BASELINE = "baseline"
    CONFUSABLE = "confusable"
    NORMAL = "normal"
    QUESTION_BANK = "question_bank"


@dataclass(frozen=True, slots=True)
class Placement:
    item: Item
    slot: int


@dataclass(frozen=True, slots=True)
class TrialSpec:
    kind: TrialKind
    prompt: str
    target: Item
    correct_slot: int
    # Items judged against when classifying a wrong answer: the study layout
    # the target was learned in, or the option layout on screen.
    layout: tuple[Placement, ...]
    layout_visible: bool
    source_round: int
    confusable_set: bool = False
    question_id: str | None = None

    def item_at(self, slot: int) -> Item | None:
        for p in self.layout:
            if p.slot == slot:
                return p.item
        return None

    def accepts(self, slot: int, grid_slots: int) -> bool:
        if self.layout_visible:
            return any(p.slot == slot for p in self.layout)
        return 0 <= slot < grid_slots


@dataclass(frozen=True, slots=True)
class Round:
    index: int
    strategy: RoundStrategy
    difficulty: float
    items: tuple[Item, ...]
    placements: tuple[Placement, ...]
    trials: tuple[TrialSpec, ...]
    grid_slots: int
    group_name: str | None = None

    @property
    def positions(self) -> dict[str, int]:
        return {p.item.item_id: p.slot for p in self.placements}

    def slot_of(self, item_id: str) -> int | None:
        return self.positions.get(item_id)


@dataclass(slots=True)
class SelectionHistory:
    """Selection-exclusion state carried across the rounds of one session."""

    baseline_round: Round | None = None
    used_question_ids: set[str] = field(default_factory=set)

    def clear(self) -> None:
        self.baseline_round = None
        self.used_question_ids.clear()


class ContentSelector(Protocol):
    """Produces a Round for a given position and difficulty."""

    @property
    def has_study_phase(self) -> bool: ...

    @property
    def grid_slots(self) -> int: ...

    @property
    def catalog(self) -> Catalog: ...

    def desired_count(self, difficulty: float) -> int: ...

    def select_round(self, *, round_index: int, difficulty: float, history: SelectionHistory) -> Round: ...


def place_items(rng: SeededRng, items: Sequence[Item], *, grid_slots: int) -> tuple[Placement, ...]:
    """Uniform random bijection from items onto distinct grid slots."""

    if len(items) > grid_slots:
        raise CatalogConfigurationError(f"{len(items)} items do not fit in {grid_slots} slots")
    slots = rng.sample(range(grid_slots), len(items))
    return tuple(Placement(item=item, slot=int(slot)) for item, slot in zip(items, slots, strict=True))


def replacement_item(
    rng: SeededRng,
    catalog: Catalog,
    *,
    exclude: set[str],
    reason: str,
) -> Item:
    candidates = [item for item in catalog.items() if item.item_id not in exclude]
    if not candidates:
        raise CatalogConfigurationError(f"no replacement item available ({reason})")
    return rng.choice(candidates)


def ensure_unique_items(rng: SeededRng, catalog: Catalog, items: Sequence[Item]) -> tuple[Item, ...]:
    """Replace repeated items with catalog items not yet present."""

    seen: set[str] = set()
    out: list[Item] = []
    for item in items:
        if item.item_id in seen:
            present = seen | {i.item_id for i in items}
            sub = replacement_item(rng, catalog, exclude=present, reason=f"duplicate {item.item_id!r}")
            logger.warning("Duplicate item {} replaced by {}", item.item_id, sub.item_id)
            item = sub
        seen.add(item.item_id)
        out.append(item)
    return tuple(out)
