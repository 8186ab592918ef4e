"""Pygame UI shell for the Recall Trainer.

Two games are offered from the main menu:
- Where Was It? (object-location memory)
- Odd One Out (categorization)

Deterministic timing/scoring/RNG/state lives in recall_trainer/* (core modules);
this module only draws snapshots and relays input.
"""

from __future__ import annotations

import random
import sqlite3
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import pygame
from loguru import logger

from .clock import Calendar, RealClock, SystemCalendar
from .cognitive_core import AnswerClass, Phase, SessionSnapshot
from .config import APP_VERSION, TrainerConfig
from .object_location import ObjectLocationConfig, build_object_location_session
from .odd_one_out import OddOneOutConfig, build_odd_one_out_session
from .persistence import record_session
from .results import session_result_from_engine
from .round_engine import RoundEngine
from .session_store import SessionStore

WINDOW_SIZE = (960, 600)
TARGET_FPS = 60

_LOG_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {name}:{line} - {message}"

_DIGIT_KEYS: dict[int, int] = {
    pygame.K_1: 0,
    pygame.K_2: 1,
    pygame.K_3: 2,
    pygame.K_4: 3,
    pygame.K_5: 4,
    pygame.K_6: 5,
    pygame.K_7: 6,
    pygame.K_8: 7,
    pygame.K_9: 8,
    pygame.K_0: 9,
    pygame.K_MINUS: 10,
    pygame.K_EQUALS: 11,
}


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level, format=_LOG_FORMAT)


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # The root menu handles its own quit.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            # Closing the window still saves finished rounds.
            for screen in reversed(self._screens):
                if isinstance(screen, GameScreen):
                    screen.close()
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 48)
        self._item_font = pygame.font.Font(None, 34)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if self._items:
                self._items[self._selected].action()
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._is_root:
                self._app.quit()
            else:
                self._app.pop()

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill((18, 34, 40))

        title = self._title_font.render(self._title, True, (240, 244, 236))
        surface.blit(title, title.get_rect(midtop=(w // 2, max(24, h // 10))))

        row_h = 48
        y = max(110, h // 3)
        for idx, item in enumerate(self._items):
            row = pygame.Rect(w // 2 - 180, y, 360, row_h - 8)
            selected = idx == self._selected
            pygame.draw.rect(surface, (238, 214, 128) if selected else (34, 60, 70), row, border_radius=8)
            color = (20, 30, 34) if selected else (226, 232, 224)
            text = self._item_font.render(item.label, True, color)
            surface.blit(text, text.get_rect(center=row.center))
            y += row_h

        hint = self._hint_font.render("Up/Down: Choose  |  Enter: Select  |  Esc: Back", True, (160, 180, 176))
        surface.blit(hint, hint.get_rect(midbottom=(w // 2, h - 14)))


class GameScreen:
    """Draws a RoundEngine snapshot and relays clicks, digits and Enter."""

    def __init__(
        self,
        app: App,
        *,
        engine_factory: Callable[[], RoundEngine],
        on_finished: Callable[[RoundEngine], None] | None = None,
    ) -> None:
        self._app = app
        self._engine = engine_factory()
        self._on_finished = on_finished
        self._reported = False

        self._title_font = pygame.font.Font(None, 40)
        self._prompt_font = pygame.font.Font(None, 34)
        self._label_font = pygame.font.Font(None, 30)
        self._small_font = pygame.font.Font(None, 22)

        # Slot hitboxes, refreshed during render.
        self._slot_rects: dict[int, pygame.Rect] = {}

    @property
    def engine(self) -> RoundEngine:
        return self._engine

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            self._handle_key(event.key)
        elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            for slot, rect in self._slot_rects.items():
                if rect.collidepoint(event.pos):
                    self._engine.select_slot(slot)
                    break
        self._report_if_finished()

    def _handle_key(self, key: int) -> None:
        engine = self._engine
        if key == pygame.K_ESCAPE:
            if engine.can_exit():
                self._report(force=True)
                self._app.pop()
            return
        if key == pygame.K_p:
            if engine.paused:
                engine.resume()
            else:
                engine.pause()
            return
        if key == pygame.K_r and not engine.paused:
            engine.reset()
            self._reported = False
            return
        if key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            engine.advance()
            return
        slot = _DIGIT_KEYS.get(key)
        if slot is not None:
            engine.select_slot(slot)

    def close(self) -> None:
        self._report(force=True)

    def _report_if_finished(self) -> None:
        if self._engine.phase is Phase.RESULTS:
            self._report(force=False)

    def _report(self, *, force: bool) -> None:
        if self._reported or self._on_finished is None:
            return
        if not self._engine.round_summaries():
            return
        if force or self._engine.phase is Phase.RESULTS:
            self._reported = True
            self._on_finished(self._engine)

    def render(self, surface: pygame.Surface) -> None:
        snap = self._engine.snapshot()
        w, h = surface.get_size()
        surface.fill((16, 30, 36))

        header = f"{snap.title}"
        if snap.round_index:
            header += f"  -  Round {snap.round_index}"
        title = self._title_font.render(header, True, (240, 244, 236))
        surface.blit(title, (24, 18))

        stats = f"Score {snap.score}   Level {snap.difficulty:.2f}"
        if snap.trial_count and snap.trial_number:
            stats = f"Question {snap.trial_number}/{snap.trial_count}   " + stats
        stat_surf = self._small_font.render(stats, True, (180, 198, 194))
        surface.blit(stat_surf, stat_surf.get_rect(topright=(w - 24, 26)))

        self._slot_rects = {}
        if snap.phase in (Phase.STUDY, Phase.QUIZ):
            self._render_prompt(surface, snap.prompt, top=64)
            self._render_grid(surface, snap, top=130)
        else:
            self._render_prompt(surface, snap.prompt, top=90)

        if snap.paused:
            overlay = pygame.Surface((w, h), pygame.SRCALPHA)
            overlay.fill((0, 0, 0, 150))
            surface.blit(overlay, (0, 0))
            paused = self._title_font.render("PAUSED", True, (250, 250, 250))
            surface.blit(paused, paused.get_rect(center=(w // 2, h // 2)))

        hint = self._small_font.render(
            f"{snap.input_hint}  |  P: Pause  |  R: Restart", True, (160, 180, 176)
        )
        surface.blit(hint, hint.get_rect(midbottom=(w // 2, h - 12)))

    def _render_prompt(self, surface: pygame.Surface, prompt: str, *, top: int) -> None:
        w = surface.get_width()
        y = top
        for line in prompt.split("\n"):
            text = self._prompt_font.render(line, True, (230, 236, 226))
            surface.blit(text, text.get_rect(midtop=(w // 2, y)))
            y += text.get_height() + 6

    def _render_grid(self, surface: pygame.Surface, snap: SessionSnapshot, *, top: int) -> None:
        w, h = surface.get_size()
        n = max(1, snap.grid_slots)
        cols = 4 if n > 4 else n
        rows = (n + cols - 1) // cols

        area = pygame.Rect(40, top, w - 80, h - top - 50)
        gap = 12
        cell_w = (area.w - gap * (cols - 1)) // cols
        cell_h = min(120, (area.h - gap * (rows - 1)) // rows)

        by_slot = {v.slot: v for v in snap.slots}
        fb = snap.feedback
        for slot in range(n):
            r, c = divmod(slot, cols)
            rect = pygame.Rect(area.x + c * (cell_w + gap), area.y + r * (cell_h + gap), cell_w, cell_h)
            self._slot_rects[slot] = rect

            fill = (40, 66, 76)
            if fb is not None and slot == fb.correct_slot:
                fill = (54, 128, 74)
            elif fb is not None and slot == fb.chosen_slot:
                fill = (168, 128, 44) if fb.classification is AnswerClass.CONFUSABLE else (150, 56, 50)
            pygame.draw.rect(surface, fill, rect, border_radius=10)
            pygame.draw.rect(surface, (120, 150, 150), rect, 2, border_radius=10)

            num = self._small_font.render(str(slot + 1), True, (200, 214, 210))
            surface.blit(num, (rect.x + 8, rect.y + 6))

            view = by_slot.get(slot)
            if view is not None:
                label = self._label_font.render(view.label, True, (250, 250, 244))
                surface.blit(label, label.get_rect(center=rect.center))


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(*, max_frames: int | None = None, event_injector: Callable[[int], None] | None = None) -> int:
    config = TrainerConfig.from_env()
    configure_logging(config.log_level)

    pygame.init()
    pygame.display.set_caption("Recall Trainer")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    store = SessionStore(config.store_path)
    calendar: Calendar = SystemCalendar()
    real_clock = RealClock()

    def on_finished(game_code: str, seed: int) -> Callable[[RoundEngine], None]:
        def _finish(engine: RoundEngine) -> None:
            result = session_result_from_engine(engine, game_code=game_code, seed=seed)
            store.finish_session(
                last_accuracy=result.last_accuracy,
                average_response_time=result.mean_response_time_s,
            )
            try:
                record_session(db_path=config.db_path, result=result, app_version=APP_VERSION)
            except (sqlite3.Error, OSError) as exc:
                logger.warning("Could not record session telemetry: {}", exc)

        return _finish

    def open_object_location() -> None:
        seed = _new_seed()
        record = store.start_session(today=calendar.today())
        app.push(
            GameScreen(
                app,
                engine_factory=lambda: build_object_location_session(
                    clock=real_clock,
                    seed=seed,
                    sessions_played_today=record.sessions_played_today,
                    external_bias=config.external_bias,
                    config=ObjectLocationConfig(rounds=config.rounds),
                ),
                on_finished=on_finished("object_location", seed),
            )
        )

    def open_odd_one_out() -> None:
        seed = _new_seed()
        record = store.start_session(today=calendar.today())
        app.push(
            GameScreen(
                app,
                engine_factory=lambda: build_odd_one_out_session(
                    clock=real_clock,
                    seed=seed,
                    sessions_played_today=record.sessions_played_today,
                    external_bias=config.external_bias,
                    config=OddOneOutConfig(rounds=config.rounds),
                ),
                on_finished=on_finished("odd_one_out", seed),
            )
        )

    main_items = [
        MenuItem("Where Was It?", open_object_location),
        MenuItem("Odd One Out", open_odd_one_out),
        MenuItem("Quit", app.quit),
    ]
    app.push(MenuScreen(app, "Recall Trainer", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0
