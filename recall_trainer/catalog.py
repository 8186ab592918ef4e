"""Content catalog: items, semantic groups and the odd-one-out question bank.

Everything is validated when the catalog is built so that selectors can rely
on well-formed records. The one thing deliberately *not* rejected at load
time is an odd item that also appears among its question's related items;
the odd-one-out selector repairs that when it assembles a trial.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from loguru import logger


class CatalogConfigurationError(RuntimeError):
    """The catalog cannot satisfy a content request (authoring defect)."""


@dataclass(frozen=True, slots=True)
class Item:
    item_id: str
    label: str
    glyph: str


@dataclass(frozen=True, slots=True)
class SemanticGroup:
    name: str
    item_ids: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.item_ids)


@dataclass(frozen=True, slots=True)
class Question:
    question_id: str
    difficulty: float
    category: str
    related_ids: tuple[str, ...]
    odd_id: str


class Catalog:
    def __init__(self, *, items: Iterable[Item], groups: Iterable[SemanticGroup]) -> None:
        self._items: dict[str, Item] = {}
        for item in items:
            if item.item_id.strip() == "":
                raise CatalogConfigurationError("item id must be non-empty")
            if item.item_id in self._items:
                raise CatalogConfigurationError(f"duplicate item id {item.item_id!r}")
            self._items[item.item_id] = item
        if not self._items:
            raise CatalogConfigurationError("catalog has no items")

        self._groups: dict[str, SemanticGroup] = {}
        self._membership: dict[str, list[str]] = {item_id: [] for item_id in self._items}
        for group in groups:
            if group.name in self._groups:
                raise CatalogConfigurationError(f"duplicate group {group.name!r}")
            if not group.item_ids:
                raise CatalogConfigurationError(f"group {group.name!r} is empty")
            if len(set(group.item_ids)) != len(group.item_ids):
                raise CatalogConfigurationError(f"group {group.name!r} lists an item twice")
            for item_id in group.item_ids:
                if item_id not in self._items:
                    raise CatalogConfigurationError(
                        f"group {group.name!r} references unknown item {item_id!r}"
                    )
                self._membership[item_id].append(group.name)
            self._groups[group.name] = group

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def items(self) -> tuple[Item, ...]:
        return tuple(self._items.values())

    def item(self, item_id: str) -> Item:
        try:
            return self._items[item_id]
        except KeyError:
            raise CatalogConfigurationError(f"unknown item {item_id!r}") from None

    def groups(self) -> tuple[SemanticGroup, ...]:
        return tuple(self._groups.values())

    def group(self, name: str) -> SemanticGroup:
        return self._groups[name]

    def groups_of(self, item_id: str) -> frozenset[str]:
        return frozenset(self._membership.get(item_id, ()))

    def share_group(self, a: str, b: str) -> bool:
        if a == b:
            return False
        return bool(self.groups_of(a) & self.groups_of(b))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "Catalog":
        """Build from ``{"items": [{"id", "label", "glyph"}], "groups": {name: [ids]}}``."""

        raw_items = data.get("items")
        raw_groups = data.get("groups")
        if not isinstance(raw_items, list) or not isinstance(raw_groups, Mapping):
            raise CatalogConfigurationError("catalog needs an 'items' list and a 'groups' mapping")

        items: list[Item] = []
        for entry in raw_items:
            if not isinstance(entry, Mapping):
                raise CatalogConfigurationError(f"malformed item entry {entry!r}")
            item_id = str(entry.get("id", "")).strip()
            label = str(entry.get("label", "")).strip() or item_id
            items.append(Item(item_id=item_id, label=label, glyph=str(entry.get("glyph", ""))))

        groups: list[SemanticGroup] = []
        for name, members in raw_groups.items():
            if not isinstance(members, list):
                raise CatalogConfigurationError(f"group {name!r} must be a list of item ids")
            groups.append(SemanticGroup(name=str(name), item_ids=tuple(str(m) for m in members)))

        return cls(items=items, groups=groups)


class QuestionBank:
    def __init__(self, *, catalog: Catalog, questions: Iterable[Question]) -> None:
        self._catalog = catalog
        self._questions: list[Question] = []
        seen: set[str] = set()
        for q in questions:
            if q.question_id in seen:
                raise CatalogConfigurationError(f"duplicate question id {q.question_id!r}")
            if not (0.0 <= q.difficulty <= 1.0):
                raise CatalogConfigurationError(
                    f"question {q.question_id!r} difficulty {q.difficulty} outside [0, 1]"
                )
            if len(set(q.related_ids)) < 2:
                raise CatalogConfigurationError(
                    f"question {q.question_id!r} needs at least 2 distinct related items"
                )
            for item_id in (*q.related_ids, q.odd_id):
                if item_id not in catalog:
                    raise CatalogConfigurationError(
                        f"question {q.question_id!r} references unknown item {item_id!r}"
                    )
            if q.odd_id in q.related_ids:
                # Repaired at selection time.
                logger.debug("Question {} lists its odd item among the related items", q.question_id)
            seen.add(q.question_id)
            self._questions.append(q)
        if not self._questions:
            raise CatalogConfigurationError("question bank is empty")

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    def __len__(self) -> int:
        return len(self._questions)

    def questions(self) -> tuple[Question, ...]:
        return tuple(self._questions)

    def in_band(self, difficulty: float, half_width: float) -> tuple[Question, ...]:
        lo = difficulty - half_width
        hi = difficulty + half_width
        return tuple(q for q in self._questions if lo <= q.difficulty <= hi)

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, catalog: Catalog) -> "QuestionBank":
        raw = data.get("questions")
        if not isinstance(raw, list):
            raise CatalogConfigurationError("question bank needs a 'questions' list")
        questions: list[Question] = []
        for idx, entry in enumerate(raw):
            if not isinstance(entry, Mapping):
                raise CatalogConfigurationError(f"malformed question entry {entry!r}")
            related = entry.get("related")
            if not isinstance(related, list):
                raise CatalogConfigurationError(f"question {idx} needs a 'related' list")
            try:
                difficulty = float(entry.get("difficulty", 0.0))  # type: ignore[arg-type]
            except (TypeError, ValueError):
                raise CatalogConfigurationError(f"question {idx} has a non-numeric difficulty") from None
            questions.append(
                Question(
                    question_id=str(entry.get("id", f"q{idx:03d}")),
                    difficulty=difficulty,
                    category=str(entry.get("category", "")),
                    related_ids=tuple(str(r) for r in related),
                    odd_id=str(entry.get("odd", "")),
                )
            )
        return cls(catalog=catalog, questions=questions)


_DEFAULT_ITEMS: tuple[tuple[str, str, str], ...] = (
    ("apple", "Apple", "\U0001F34E"),
    ("banana", "Banana", "\U0001F34C"),
    ("orange", "Orange", "\U0001F34A"),
    ("grapes", "Grapes", "\U0001F347"),
    ("pear", "Pear", "\U0001F350"),
    ("cherry", "Cherry", "\U0001F352"),
    ("lemon", "Lemon", "\U0001F34B"),
    ("strawberry", "Strawberry", "\U0001F353"),
    ("tomato", "Tomato", "\U0001F345"),
    ("carrot", "Carrot", "\U0001F955"),
    ("broccoli", "Broccoli", "\U0001F966"),
    ("corn", "Corn", "\U0001F33D"),
    ("potato", "Potato", "\U0001F954"),
    ("pepper", "Pepper", "\U0001FAD1"),
    ("cow", "Cow", "\U0001F404"),
    ("pig", "Pig", "\U0001F416"),
    ("chicken", "Chicken", "\U0001F414"),
    ("sheep", "Sheep", "\U0001F411"),
    ("horse", "Horse", "\U0001F40E"),
    ("goat", "Goat", "\U0001F410"),
    ("dog", "Dog", "\U0001F415"),
    ("cat", "Cat", "\U0001F408"),
    ("rabbit", "Rabbit", "\U0001F407"),
    ("hamster", "Hamster", "\U0001F439"),
    ("fish", "Fish", "\U0001F41F"),
    ("parrot", "Parrot", "\U0001F99C"),
    ("cup", "Cup", "☕"),
    ("spoon", "Spoon", "\U0001F944"),
    ("fork", "Fork", "\U0001F374"),
    ("knife", "Knife", "\U0001F52A"),
    ("plate", "Plate", "\U0001F37D"),
    ("kettle", "Kettle", "\U0001FAD6"),
    ("shirt", "Shirt", "\U0001F455"),
    ("sock", "Sock", "\U0001F9E6"),
    ("hat", "Hat", "\U0001F3A9"),
    ("shoe", "Shoe", "\U0001F45F"),
    ("coat", "Coat", "\U0001F9E5"),
    ("scarf", "Scarf", "\U0001F9E3"),
    ("glove", "Glove", "\U0001F9E4"),
    ("hammer", "Hammer", "\U0001F528"),
    ("saw", "Saw", "\U0001FA9A"),
    ("wrench", "Wrench", "\U0001F527"),
    ("screwdriver", "Screwdriver", "\U0001FA9B"),
    ("car", "Car", "\U0001F697"),
    ("bus", "Bus", "\U0001F68C"),
    ("bicycle", "Bicycle", "\U0001F6B2"),
    ("train", "Train", "\U0001F686"),
    ("boat", "Boat", "⛵"),
    ("plane", "Plane", "✈"),
    ("guitar", "Guitar", "\U0001F3B8"),
    ("drum", "Drum", "\U0001F941"),
    ("piano", "Piano", "\U0001F3B9"),
    ("violin", "Violin", "\U0001F3BB"),
    ("trumpet", "Trumpet", "\U0001F3BA"),
)

_DEFAULT_GROUPS: dict[str, tuple[str, ...]] = {
    "fruit": ("apple", "banana", "orange", "grapes", "pear", "cherry", "lemon", "strawberry", "tomato"),
    "vegetables": ("carrot", "broccoli", "corn", "potato", "pepper", "tomato"),
    "farm_animals": ("cow", "pig", "chicken", "sheep", "horse", "goat"),
    "pets": ("dog", "cat", "rabbit", "hamster", "fish", "parrot"),
    "kitchen": ("cup", "spoon", "fork", "knife", "plate", "kettle"),
    "clothing": ("shirt", "sock", "hat", "shoe", "coat", "scarf", "glove"),
    "tools": ("hammer", "saw", "wrench", "screwdriver", "knife"),
    "vehicles": ("car", "bus", "bicycle", "train", "boat", "plane"),
    "instruments": ("guitar", "drum", "piano", "violin", "trumpet"),
}

# (difficulty, category, related, odd). Low difficulty pairs distant
# categories; high difficulty uses near neighbours and shared members.
_DEFAULT_QUESTIONS: tuple[tuple[float, str, tuple[str, ...], str], ...] = (
    (0.0, "fruit", ("apple", "banana", "pear"), "car"),
    (0.0, "pets", ("dog", "cat", "rabbit"), "piano"),
    (0.05, "clothing", ("shirt", "sock", "hat"), "cow"),
    (0.1, "vehicles", ("car", "bus", "train"), "grapes"),
    (0.1, "instruments", ("guitar", "drum", "violin"), "spoon"),
    (0.2, "kitchen", ("cup", "plate", "kettle"), "scarf"),
    (0.2, "farm animals", ("cow", "pig", "sheep"), "hammer"),
    (0.3, "tools", ("hammer", "saw", "wrench"), "lemon"),
    (0.3, "vegetables", ("carrot", "broccoli", "potato"), "bus"),
    (0.4, "fruit", ("orange", "cherry", "strawberry"), "coat"),
    (0.4, "clothing", ("coat", "scarf", "glove"), "fork"),
    (0.5, "pets", ("hamster", "fish", "parrot"), "goat"),
    (0.5, "farm animals", ("chicken", "horse", "goat"), "cat"),
    (0.55, "kitchen", ("spoon", "fork", "plate"), "wrench"),
    (0.6, "vehicles", ("bicycle", "boat", "plane"), "trumpet"),
    (0.6, "tools", ("saw", "screwdriver", "wrench"), "fork"),
    (0.7, "fruit", ("apple", "pear", "grapes"), "potato"),
    (0.7, "vegetables", ("corn", "pepper", "carrot"), "cherry"),
    (0.8, "instruments", ("piano", "trumpet", "drum"), "bus"),
    (0.8, "pets", ("dog", "rabbit", "parrot"), "sheep"),
    (0.9, "fruit", ("lemon", "orange", "banana"), "pepper"),
    (0.9, "vegetables", ("broccoli", "potato", "pepper"), "strawberry"),
    (1.0, "kitchen", ("cup", "kettle", "spoon"), "hammer"),
    (1.0, "clothing", ("hat", "shoe", "sock"), "kettle"),
)


def default_catalog() -> Catalog:
    return Catalog(
        items=(Item(item_id=i, label=label, glyph=glyph) for i, label, glyph in _DEFAULT_ITEMS),
        groups=(SemanticGroup(name=name, item_ids=ids) for name, ids in _DEFAULT_GROUPS.items()),
    )


def default_question_bank(catalog: Catalog | None = None) -> QuestionBank:
    cat = catalog or default_catalog()
    return QuestionBank(
        catalog=cat,
        questions=(
            Question(
                question_id=f"q{idx:03d}",
                difficulty=difficulty,
                category=category,
                related_ids=related,
                odd_id=odd,
            )
            for idx, (difficulty, category, related, odd) in enumerate(_DEFAULT_QUESTIONS)
        ),
    )
