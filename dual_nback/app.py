"""Pygame UI shell for the Dual N-Back Trainer.

Screens:
- Main menu (Play / Settings / History / Quit)
- Play: 3x3 grid + spoken letter, one response per paced turn
- Settings: N level, speed, session length, auditory stimulus set
- History: finished sessions, newest first, with CSV export

Sequence generation, scoring and persistence live in dual_nback/* (core
modules); this file only draws and forwards key presses.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Protocol

import pygame
from loguru import logger

from .clock import Clock, RealClock, TurnTimer
from .nback_core import Phase, UserResponse
from .results import SessionRecord, history_rows
from .sequences import GRID_SIZE, SequenceConfigError
from .service import NBackService
from .settings import (
    MAX_SESSION_LENGTH,
    MAX_SPEED_MS,
    MIN_SESSION_LENGTH,
    MIN_SPEED_MS,
    AuditoryStimulusSet,
    default_db_path,
    display_symbol,
)

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

POSITION_KEYS = (pygame.K_p, pygame.K_h, pygame.K_LEFTBRACKET, pygame.K_RIGHT)
AUDIO_KEYS = (pygame.K_a, pygame.K_l, pygame.K_RIGHTBRACKET, pygame.K_LEFT)

BG = (10, 10, 14)
TEXT_MAIN = (235, 235, 245)
TEXT_DIM = (150, 150, 165)
ACCENT = (80, 160, 255)
GOOD = (70, 200, 110)
BAD = (220, 80, 80)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def update(self) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class _LetterSpeaker:
    """Best-effort offline TTS via a short-lived subprocess per letter.

    Silent when no backend is installed, when DUAL_NBACK_DISABLE_TTS=1, or
    under the SDL dummy audio driver (headless runs).
    """

    _backends = ("say", "espeak-ng", "espeak")

    def __init__(self) -> None:
        self._backend: str | None = None
        self._proc: subprocess.Popen[bytes] | None = None

        if os.environ.get("DUAL_NBACK_DISABLE_TTS", "0") == "1":
            return
        if os.environ.get("SDL_AUDIODRIVER", "").strip().lower() == "dummy":
            return
        self._backend = next((b for b in self._backends if shutil.which(b)), None)
        if self._backend is None:
            logger.info("No offline TTS backend found; letters will be shown only")

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    def speak(self, text: str) -> None:
        if self._backend is None:
            return
        self.stop()
        spoken = display_symbol(text)
        cmd = [self._backend, spoken] if self._backend == "say" else [self._backend, "-s", "160", spoken]
        try:
            self._proc = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as exc:
            logger.warning(f"TTS backend {self._backend} failed, disabling speech: {exc}")
            self._backend = None
            self._proc = None

    def stop(self) -> None:
        proc = self._proc
        self._proc = None
        if proc is None or proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=0.2)
        except subprocess.TimeoutExpired:
            proc.kill()


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
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def update(self) -> None:
        if self._screens:
            self._screens[-1].update()

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
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)

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

    def update(self) -> None:
        return

    def render(self, surface: pygame.Surface) -> None:
        surface.fill(BG)
        surface.blit(self._title_font.render(self._title, True, TEXT_MAIN), (40, 40))
        y = 120
        for i, item in enumerate(self._items):
            color = ACCENT if i == self._selected else TEXT_DIM
            prefix = "> " if i == self._selected else "  "
            surface.blit(self._item_font.render(f"{prefix}{item.label}", True, color), (60, y))
            y += 44


class PlayScreen:
    """One paced dual N-back session.

    Presses during a turn are collected and submitted as a single response
    when the turn's interval elapses.
    """

    def __init__(self, app: App, *, service: NBackService, clock: Clock, speaker: _LetterSpeaker) -> None:
        self._app = app
        self._service = service
        self._speaker = speaker
        self._settings = service.load_user_settings()
        self._timer = TurnTimer(clock=clock, speed_ms=self._settings.with_clamped_speed().speed_ms)
        self._visual_pressed = False
        self._audio_pressed = False
        self._error: str | None = None
        self._record: SessionRecord | None = None

        self._big_font = pygame.font.Font(None, 96)
        self._small_font = pygame.font.Font(None, 26)

        try:
            service.start_game()
        except SequenceConfigError as exc:
            logger.warning(f"Cannot start session: {exc}")
            self._error = str(exc)
            return
        self._begin_turn()

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._speaker.stop()
            self._timer.stop()
            self._app.pop()
            return
        if not self._timer.running:
            return
        if event.key in POSITION_KEYS:
            self._visual_pressed = True
        elif event.key in AUDIO_KEYS:
            self._audio_pressed = True

    def update(self) -> None:
        if not self._timer.poll():
            return
        record = self._service.submit_user_input(
            UserResponse(visual_match=self._visual_pressed, audio_match=self._audio_pressed)
        )
        if record is not None:
            self._record = record
        if self._service.get_game_state().is_running:
            self._begin_turn()
        else:
            self._timer.stop()

    def _begin_turn(self) -> None:
        self._visual_pressed = False
        self._audio_pressed = False
        snap = self._service.get_game_state()
        if snap.current_stimulus is None:
            return
        self._speaker.speak(snap.current_stimulus.audio)
        if not self._timer.running:
            self._timer.start()

    def render(self, surface: pygame.Surface) -> None:
        surface.fill(BG)
        w, h = surface.get_size()
        if self._error is not None:
            surface.blit(self._small_font.render(self._error, True, BAD), (40, 40))
            surface.blit(self._small_font.render("Esc: back", True, TEXT_DIM), (40, 80))
            return

        snap = self._service.get_game_state()
        if snap.phase is Phase.FINISHED:
            self._render_results(surface)
            return

        header = f"{snap.n_level}-back   turn {snap.current_turn_index + 1}/{snap.session_length}"
        surface.blit(self._small_font.render(header, True, TEXT_MAIN), (20, 16))

        cell = min(w, h) // 5
        grid_w = cell * GRID_SIZE
        ox = (w - grid_w) // 2
        oy = (h - grid_w) // 2
        lit = None if snap.current_stimulus is None else snap.current_stimulus.visual
        for pos in range(GRID_SIZE * GRID_SIZE):
            r = pygame.Rect(ox + (pos % GRID_SIZE) * cell, oy + (pos // GRID_SIZE) * cell, cell - 6, cell - 6)
            pygame.draw.rect(surface, ACCENT if pos == lit else (40, 40, 52), r, border_radius=6)

        if snap.current_stimulus is not None:
            letter = self._big_font.render(display_symbol(snap.current_stimulus.audio), True, TEXT_MAIN)
            surface.blit(letter, (ox + grid_w + 40, oy + grid_w // 2 - letter.get_height() // 2))

        self._render_key_feedback(surface, oy + grid_w + 16, snap.is_visual_match, snap.is_audio_match)

    def _render_key_feedback(self, surface: pygame.Surface, y: int, visual_match: bool, audio_match: bool) -> None:
        for x, label, pressed, actual in (
            (40, "Position [P/H]", self._visual_pressed, visual_match),
            (320, "Audio [A/L]", self._audio_pressed, audio_match),
        ):
            color = TEXT_DIM if not pressed else GOOD if actual else BAD
            surface.blit(self._small_font.render(label, True, color), (x, y))

    def _render_results(self, surface: pygame.Surface) -> None:
        lines = ["Session complete"]
        if self._record is not None:
            v = self._record.visual_stats
            a = self._record.audio_stats
            lines += [
                f"Position accuracy: {v.composite_accuracy() * 100:.0f}%  (hits {v.hit_rate() * 100:.0f}%, false alarms {v.false_alarm_rate() * 100:.0f}%)",
                f"Audio accuracy: {a.composite_accuracy() * 100:.0f}%  (hits {a.hit_rate() * 100:.0f}%, false alarms {a.false_alarm_rate() * 100:.0f}%)",
            ]
        lines.append("Esc: back")
        y = 40
        for line in lines:
            surface.blit(self._small_font.render(line, True, TEXT_MAIN), (40, y))
            y += 36


class SettingsScreen:
    _rows = ("N level", "Speed (ms)", "Session length", "Auditory set", "Save", "Back")

    def __init__(self, app: App, *, service: NBackService) -> None:
        self._app = app
        self._service = service
        self._draft = service.load_user_settings()
        self._selected = 0
        self._font = pygame.font.Font(None, 32)
        self._status: str | None = None

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._app.pop()
        elif event.key in (pygame.K_UP, pygame.K_w):
            self._selected = (self._selected - 1) % len(self._rows)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._selected = (self._selected + 1) % len(self._rows)
        elif event.key == pygame.K_LEFT:
            self._adjust(-1)
        elif event.key == pygame.K_RIGHT:
            self._adjust(1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            label = self._rows[self._selected]
            if label == "Save":
                self._service.save_user_settings(self._draft)
                self._status = "Saved."
            elif label == "Back":
                self._app.pop()

    def _adjust(self, step: int) -> None:
        d = self._draft
        label = self._rows[self._selected]
        if label == "N level":
            self._draft = replace(d, n_level=max(1, min(d.session_length - 1, d.n_level + step)))
        elif label == "Speed (ms)":
            self._draft = replace(d, speed_ms=max(MIN_SPEED_MS, min(MAX_SPEED_MS, d.speed_ms + 250 * step)))
        elif label == "Session length":
            length = max(MIN_SESSION_LENGTH, min(MAX_SESSION_LENGTH, d.session_length + 5 * step))
            self._draft = replace(d, session_length=length, n_level=min(d.n_level, length - 1))
        elif label == "Auditory set":
            sets = list(AuditoryStimulusSet)
            i = (sets.index(d.auditory_stimulus_set) + step) % len(sets)
            self._draft = replace(d, auditory_stimulus_set=sets[i])
        self._status = None

    def update(self) -> None:
        return

    def render(self, surface: pygame.Surface) -> None:
        surface.fill(BG)
        d = self._draft
        values = {
            "N level": str(d.n_level),
            "Speed (ms)": str(d.speed_ms),
            "Session length": str(d.session_length),
            "Auditory set": d.auditory_stimulus_set.label,
        }
        y = 40
        for i, label in enumerate(self._rows):
            color = ACCENT if i == self._selected else TEXT_MAIN
            text = f"{label}: < {values[label]} >" if label in values else label
            surface.blit(self._font.render(text, True, color), (40, y))
            y += 44
        if self._status:
            surface.blit(self._font.render(self._status, True, GOOD), (40, y + 10))


class HistoryScreen:
    def __init__(self, app: App, *, service: NBackService, export_path: Path) -> None:
        self._app = app
        self._service = service
        self._export_path = export_path
        self._font = pygame.font.Font(None, 24)
        self._rows = history_rows(service.get_game_history())
        self._status: str | None = None
        self._status_ok = True

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._app.pop()
        elif event.key == pygame.K_e:
            self._export()

    @property
    def status(self) -> str | None:
        return self._status

    def _export(self) -> None:
        try:
            self._export_path.write_text(self._service.export_history_as_csv(), encoding="utf-8")
        except OSError as exc:
            logger.warning(f"CSV export to {self._export_path} failed: {exc}")
            self._status = f"Export failed: {exc}"
            self._status_ok = False
            return
        self._status = f"Exported to {self._export_path}"
        self._status_ok = True
        logger.info(self._status)

    def update(self) -> None:
        return

    def render(self, surface: pygame.Surface) -> None:
        surface.fill(BG)
        surface.blit(self._font.render("History (E: export CSV, Esc: back)", True, TEXT_MAIN), (20, 16))
        y = 50
        if not self._rows:
            surface.blit(self._font.render("No sessions yet.", True, TEXT_DIM), (20, y))
        for row in self._rows[:18]:
            text = (
                f"{row['date']}  N={row['n_level']}  len={row['session_length']}  "
                f"pos {row['visual_accuracy']:.0f}%  audio {row['audio_accuracy']:.0f}%"
            )
            surface.blit(self._font.render(text, True, TEXT_DIM), (20, y))
            y += 26
        if self._status:
            color = GOOD if self._status_ok else BAD
            surface.blit(self._font.render(self._status, True, color), (20, surface.get_height() - 30))


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    db_path: Path | None = None,
) -> int:
    pygame.init()

    pygame.display.set_caption("Dual N-Back Trainer")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    path = db_path if db_path is not None else default_db_path()
    service = NBackService(db_path=path)
    speaker = _LetterSpeaker()
    real_clock = RealClock()

    app = App(surface=surface, font=font)

    def open_play() -> None:
        app.push(PlayScreen(app, service=service, clock=real_clock, speaker=speaker))

    def open_settings() -> None:
        app.push(SettingsScreen(app, service=service))

    def open_history() -> None:
        app.push(HistoryScreen(app, service=service, export_path=path.with_name("nback_history.csv")))

    main_items = [
        MenuItem("Play", open_play),
        MenuItem("Settings", open_settings),
        MenuItem("History", open_history),
        MenuItem("Quit", app.quit),
    ]
    app.push(MenuScreen(app, "Dual N-Back", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.update()
            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        speaker.stop()
        service.close()
        pygame.quit()

    return 0
