from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from .catalog import Catalog
from .clock import Clock
from .cognitive_core import (
    AnswerClass,
    Feedback,
    Phase,
    RoundSummary,
    SessionSnapshot,
    SlotView,
    TrialEvent,
    TrialKind,
    mean,
)
from .difficulty import DifficultyController
from .selection import ContentSelector, Placement, Round, SelectionHistory, TrialSpec

FATIGUE_MIN_ROUNDS = 2
FATIGUE_DROP = 0.4
FATIGUE_FLOOR = 0.3


class _Stage(str, Enum):
    QUESTION = "question"
    FEEDBACK = "feedback"


@dataclass(frozen=True, slots=True)
class _OpenTrial:
    spec: TrialSpec
    seq: int
    presented_at_s: float


def is_fatigued(
    accuracy_history: Sequence[float],
    *,
    min_rounds: int = FATIGUE_MIN_ROUNDS,
    drop: float = FATIGUE_DROP,
    floor: float = FATIGUE_FLOOR,
) -> bool:
    """True when the latest round fell sharply below the earlier rounds' mean.

    Both a relative drop and an absolute floor are required, so a player who
    has scored near zero from the start is not flagged.
    """

    if len(accuracy_history) < max(2, min_rounds):
        return False
    current = float(accuracy_history[-1])
    prior_mean = mean(accuracy_history[:-1])
    assert prior_mean is not None
    return _strictly_below(current, prior_mean - drop) and _strictly_below(current, floor)


def _strictly_below(value: float, limit: float) -> bool:
    # Accuracies are ratios of small ints; 0.6 - 0.4 must equal 0.2 here.
    return value < limit and not math.isclose(value, limit, rel_tol=1e-9, abs_tol=1e-9)


def classify_answer(spec: TrialSpec, chosen_slot: int, catalog: Catalog) -> AnswerClass:
    if chosen_slot == spec.correct_slot:
        return AnswerClass.CORRECT
    if spec.confusable_set:
        return AnswerClass.CONFUSABLE
    picked = spec.item_at(chosen_slot)
    if picked is not None and catalog.share_group(picked.item_id, spec.target.item_id):
        return AnswerClass.CONFUSABLE
    return AnswerClass.MISS


class RoundEngine:
    """Drives a session through rounds: study -> quiz -> done, until the round
    cap or fatigue ends it.

    - Deterministic given the selector's seed; time comes from the injected Clock.
    - Input arrives via ``select_slot`` and ``advance``; anything arriving in the
      wrong phase, while paused, or for a slot outside the trial is ignored.
    - The difficulty controller runs exactly once per finished round.
    """

    def __init__(
        self,
        *,
        title: str,
        instructions: list[str],
        selector: ContentSelector,
        clock: Clock,
        controller: DifficultyController | None = None,
        sessions_played_today: int = 0,
        max_rounds: int = 5,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be >= 1")
        if sessions_played_today < 0:
            raise ValueError("sessions_played_today must be >= 0")

        self._title = title
        self._instructions = list(instructions)
        self._selector = selector
        self._clock = clock
        self._controller = controller or DifficultyController()
        self._sessions_today = int(sessions_played_today)
        self._max_rounds = int(max_rounds)

        self._history = SelectionHistory()
        self._phase: Phase = Phase.INSTRUCTIONS
        self._paused = False

        self._round: Round | None = None
        self._trial_index = 0
        self._open: _OpenTrial | None = None
        self._stage: _Stage | None = None
        self._feedback: Feedback | None = None

        self._events: list[TrialEvent] = []
        self._round_events: list[TrialEvent] = []
        self._summaries: list[RoundSummary] = []
        self._score = 0
        self._session_over = False
        self._ended_by_fatigue = False

    @property
    def title(self) -> str:
        return self._title

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def controller(self) -> DifficultyController:
        return self._controller

    @property
    def difficulty(self) -> float:
        return self._controller.value

    @property
    def score(self) -> int:
        return self._score

    @property
    def sessions_played_today(self) -> int:
        return self._sessions_today

    @property
    def max_rounds(self) -> int:
        return self._max_rounds

    @property
    def ended_by_fatigue(self) -> bool:
        return self._ended_by_fatigue

    @property
    def history(self) -> SelectionHistory:
        return self._history

    @property
    def current_round(self) -> Round | None:
        return self._round

    @property
    def current_trial(self) -> TrialSpec | None:
        return None if self._open is None else self._open.spec

    def accuracy_history(self) -> list[float]:
        return list(self._controller.state.accuracy_history)

    def events(self) -> list[TrialEvent]:
        return list(self._events)

    def round_events(self, round_index: int) -> list[TrialEvent]:
        return [e for e in self._events if e.round_index == round_index]

    def round_summaries(self) -> list[RoundSummary]:
        return list(self._summaries)

    def instructions(self) -> list[str]:
        return list(self._instructions)

    def can_exit(self) -> bool:
        return self._phase in (Phase.INSTRUCTIONS, Phase.DONE, Phase.RESULTS) or self._paused

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def start(self) -> None:
        if self._phase is not Phase.INSTRUCTIONS:
            return
        self._begin_round(1)

    def reset(self) -> None:
        """Discard the session in progress and restart at round 1 from the floor."""

        self._controller.reset()
        self._history.clear()
        self._events.clear()
        self._round_events.clear()
        self._summaries.clear()
        self._score = 0
        self._session_over = False
        self._ended_by_fatigue = False
        self._paused = False
        logger.info("Session reset")
        self._begin_round(1)

    def advance(self) -> bool:
        """Explicit advance signal. Returns True if it moved the session on."""

        if self._paused:
            return False
        if self._phase is Phase.INSTRUCTIONS:
            self.start()
            return True
        if self._phase is Phase.STUDY:
            self._phase = Phase.QUIZ
            self._pose_trial()
            return True
        if self._phase is Phase.QUIZ:
            if self._stage is not _Stage.FEEDBACK:
                return False
            assert self._round is not None
            self._trial_index += 1
            if self._trial_index < len(self._round.trials):
                self._pose_trial()
            else:
                self._finish_round()
            return True
        if self._phase is Phase.DONE:
            if self._session_over:
                self._phase = Phase.RESULTS
                self._round = None
            else:
                assert self._round is not None
                self._begin_round(self._round.index + 1)
            return True
        return False

    def select_slot(self, slot: int) -> bool:
        """Submit the user's slot choice. Returns True if accepted."""

        if self._paused or self._phase is not Phase.QUIZ or self._stage is not _Stage.QUESTION:
            return False
        assert self._open is not None
        assert self._round is not None
        spec = self._open.spec
        try:
            chosen = int(slot)
        except (TypeError, ValueError):
            return False
        if not spec.accepts(chosen, self._round.grid_slots):
            return False

        answered_at_s = self._clock.now()
        response_time_s = max(0.0, answered_at_s - self._open.presented_at_s)
        classification = classify_answer(spec, chosen, self._selector.catalog)
        is_correct = classification is AnswerClass.CORRECT
        picked = spec.item_at(chosen)

        event = TrialEvent(
            round_index=self._round.index,
            seq=self._open.seq,
            kind=spec.kind,
            prompt=spec.prompt,
            target_id=spec.target.item_id,
            correct_slot=spec.correct_slot,
            chosen_slot=chosen,
            chosen_id=None if picked is None else picked.item_id,
            is_correct=is_correct,
            classification=classification,
            presented_at_s=self._open.presented_at_s,
            answered_at_s=answered_at_s,
            response_time_s=response_time_s,
        )
        self._events.append(event)
        self._round_events.append(event)
        self._controller.record_latency(response_time_s)
        if is_correct:
            self._score += 1

        self._feedback = Feedback(
            correct=is_correct,
            classification=classification,
            correct_item_id=spec.target.item_id,
            correct_label=spec.target.label,
            correct_slot=spec.correct_slot,
            chosen_slot=chosen,
        )
        self._stage = _Stage.FEEDBACK
        logger.debug(
            "Round {} trial {} ({}): slot {} -> {} in {:.2f}s",
            self._round.index,
            self._trial_index + 1,
            spec.kind.value,
            chosen,
            classification.value,
            response_time_s,
        )
        return True

    def snapshot(self) -> SessionSnapshot:
        rnd = self._round
        trial_count = 0 if rnd is None else len(rnd.trials)
        trial_number = 0
        if self._phase is Phase.QUIZ:
            trial_number = self._trial_index + 1
        accepting = (
            not self._paused and self._phase is Phase.QUIZ and self._stage is _Stage.QUESTION
        )
        return SessionSnapshot(
            title=self._title,
            phase=self._phase,
            prompt=self._prompt_text(),
            input_hint=self._input_hint(),
            round_index=0 if rnd is None else rnd.index,
            trial_number=trial_number,
            trial_count=trial_count,
            difficulty=self._controller.value,
            score=self._score,
            grid_slots=self._selector.grid_slots if rnd is None else rnd.grid_slots,
            slots=self._visible_slots(),
            accepting_input=accepting,
            paused=self._paused,
            feedback=self._feedback if self._stage is _Stage.FEEDBACK else None,
        )

    def _begin_round(self, index: int) -> None:
        difficulty = self._controller.value
        self._round = self._selector.select_round(
            round_index=index,
            difficulty=difficulty,
            history=self._history,
        )
        self._trial_index = 0
        self._round_events = []
        self._open = None
        self._stage = None
        self._feedback = None
        logger.info(
            "Round {} ({}) at difficulty {:.2f}: {} items, {} trials",
            index,
            self._round.strategy.value,
            difficulty,
            len(self._round.items),
            len(self._round.trials),
        )
        if self._selector.has_study_phase:
            self._phase = Phase.STUDY
        else:
            self._phase = Phase.QUIZ
            self._pose_trial()

    def _pose_trial(self) -> None:
        assert self._round is not None
        spec = self._round.trials[self._trial_index]
        self._open = _OpenTrial(spec=spec, seq=len(self._events), presented_at_s=self._clock.now())
        self._stage = _Stage.QUESTION
        self._feedback = None

    def _finish_round(self) -> None:
        assert self._round is not None
        attempted = len(self._round_events)
        correct = sum(1 for e in self._round_events if e.is_correct)
        accuracy = 0.0 if attempted == 0 else correct / attempted
        mean_rt = mean(e.response_time_s for e in self._round_events)

        before = self._controller.value
        after = self._controller.advance(accuracy, sessions_played_today=self._sessions_today)
        self._summaries.append(
            RoundSummary(
                round_index=self._round.index,
                attempted=attempted,
                correct=correct,
                accuracy=accuracy,
                mean_response_time_s=mean_rt,
                difficulty_before=before,
                difficulty_after=after,
                strategy=self._round.strategy.value,
                confusable_errors=sum(
                    1 for e in self._round_events if e.classification is AnswerClass.CONFUSABLE
                ),
            )
        )

        if is_fatigued(self._controller.state.accuracy_history):
            self._ended_by_fatigue = True
            self._session_over = True
            logger.info("Fatigue detected after round {} (accuracy {:.2f})", self._round.index, accuracy)
        elif self._round.index >= self._max_rounds:
            self._session_over = True

        self._phase = Phase.DONE
        self._open = None
        self._stage = None
        self._feedback = None

    def _visible_slots(self) -> tuple[SlotView, ...]:
        rnd = self._round
        if rnd is None:
            return ()
        if self._phase is Phase.STUDY:
            return _slot_views(rnd.placements)
        if self._phase is not Phase.QUIZ or self._open is None:
            return ()
        spec = self._open.spec
        if spec.layout_visible:
            return _slot_views(spec.layout)
        if self._stage is _Stage.FEEDBACK:
            # Reveal where the target actually was.
            return _slot_views((Placement(item=spec.target, slot=spec.correct_slot),))
        return ()

    def _input_hint(self) -> str:
        if self._paused:
            return "Paused - press P to resume"
        if self._phase is Phase.QUIZ and self._stage is _Stage.QUESTION:
            return "Click a slot or press its number"
        if self._phase is Phase.RESULTS:
            return "Press Esc to return"
        return "Press Enter to continue"

    def _prompt_text(self) -> str:
        if self._phase is Phase.INSTRUCTIONS:
            return "\n".join([*self._instructions, "", "Press Enter to begin."])
        if self._phase is Phase.STUDY:
            return "Remember where each item is. Press Enter when ready."
        if self._phase is Phase.QUIZ:
            if self._stage is _Stage.FEEDBACK and self._feedback is not None:
                return _feedback_text(self._feedback, self.current_trial)
            spec = self.current_trial
            return "" if spec is None else spec.prompt
        if self._phase is Phase.DONE:
            s = self._summaries[-1]
            lines = [
                f"Round {s.round_index} complete",
                "",
                f"Correct:   {s.correct} / {s.attempted}",
                f"Accuracy:  {s.accuracy * 100.0:.0f}%",
            ]
            if self._ended_by_fatigue:
                lines += ["", "Let's take a break - that's enough for now."]
            elif self._session_over:
                lines += ["", "That was the last round."]
            return "\n".join(lines)

        lines = ["Session results", ""]
        for s in self._summaries:
            lines.append(f"Round {s.round_index}: {s.correct}/{s.attempted} ({s.accuracy * 100.0:.0f}%)")
        lines += [
            "",
            f"Score:       {self._score}",
            f"Difficulty:  {self._controller.value:.2f}",
        ]
        if self._ended_by_fatigue:
            lines.append("Ended early to avoid fatigue.")
        return "\n".join(lines)


def _slot_views(placements: Sequence[Placement]) -> tuple[SlotView, ...]:
    return tuple(
        SlotView(slot=p.slot, item_id=p.item.item_id, label=p.item.label, glyph=p.item.glyph)
        for p in sorted(placements, key=lambda p: p.slot)
    )


def _feedback_text(feedback: Feedback, spec: TrialSpec | None) -> str:
    if feedback.correct:
        return "Correct!"
    if spec is not None and spec.kind is TrialKind.ODD_ONE_OUT:
        return f"Not quite. The odd one out was the {feedback.correct_label}."
    where = f"The {feedback.correct_label} was in slot {feedback.correct_slot + 1}."
    if feedback.classification is AnswerClass.CONFUSABLE:
        return f"Close - that spot held a similar item. {where}"
    return where
