"""Pygame UI shell for the N-Back trainer.

Menu -> Play (setup / playing / results) and Practice (auto-start 1-back).
Deterministic timing/scoring/stimulus state lives in nback_trainer/* (core
modules); this file only draws snapshots and forwards key presses.
"""

from __future__ import annotations

import logging
import math
from array import array
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import pygame

from .clock import Clock, RealClock
from .collaborators import Announcer, NotificationKind, Notifier, SessionStore
from .config import (
    MAX_STIMULUS_DURATION_MS,
    MAX_TRIALS,
    MIN_STIMULUS_DURATION_MS,
    MIN_TRIALS,
    STIMULUS_DURATION_STEP_MS,
    GameConfig,
    Preferences,
    default_store_path,
    make_config,
    practice_config,
    preferences_from_env,
)
from .adaptive import MAX_N_LEVEL, MIN_N_LEVEL
from .game import GameController, GamePhase, GameSnapshot
from .nback_core import GameMode, Modality
from .persistence import SqliteSessionStore
from .stimulus import AUDIO_LETTERS, SymbolSource

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

BG = (3, 9, 78)
PANEL_BG = (8, 18, 104)
BORDER = (226, 236, 255)
TEXT_MAIN = (238, 245, 255)
TEXT_MUTED = (186, 200, 224)
ACTIVE_BG = (244, 248, 255)
ACTIVE_TEXT = (14, 26, 74)
CELL_ON = (90, 170, 255)
CELL_OFF = (12, 26, 120)

TOAST_COLORS: dict[NotificationKind, tuple[int, int, int]] = {
    NotificationKind.SUCCESS: (70, 190, 110),
    NotificationKind.WARNING: (230, 180, 60),
    NotificationKind.ERROR: (220, 80, 80),
    NotificationKind.INFO: (120, 160, 230),
}

VISUAL_KEYS = (pygame.K_a,)
AUDIO_KEYS = (pygame.K_l,)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class ToneAnnouncer:
    """Plays one short tone per audio letter through pygame.mixer.

    Each of the 12 letters maps to its own semitone so letters stay
    distinguishable by ear. Silently disabled when no mixer is available.
    """

    _sample_rate = 22050
    _channels = 1
    _amp = 32767

    def __init__(self, letters: tuple[str, ...] = AUDIO_LETTERS) -> None:
        self._available = False
        self._sounds: dict[str, pygame.mixer.Sound] = {}
        try:
            if pygame.mixer.get_init() is None:
                pygame.mixer.init(frequency=self._sample_rate, size=-16, channels=1, buffer=512)
            # pygame.init() may already have opened the mixer in another format.
            mixer_freq, _size, channels = pygame.mixer.get_init()
            self._sample_rate = int(mixer_freq)
            self._channels = max(1, int(channels))
            for idx, letter in enumerate(letters):
                freq = 440.0 * (2.0 ** (idx / 12.0))
                pcm = self._render_tone_pcm(freq, 0.35, gain=0.40)
                self._sounds[letter] = pygame.mixer.Sound(buffer=pcm.tobytes())
            self._available = True
        except pygame.error:
            logger.warning("audio mixer unavailable; letters will not be played", exc_info=True)
            self._available = False

    def announce(self, symbol: str) -> None:
        if not self._available:
            return
        sound = self._sounds.get(symbol)
        if sound is not None:
            sound.play()

    def _render_tone_pcm(self, frequency_hz: float, duration_s: float, *, gain: float) -> array[int]:
        sample_count = max(1, int(self._sample_rate * duration_s))
        fade_n = max(1, int(self._sample_rate * 0.010))
        out = array("h")
        for idx in range(sample_count):
            envelope = min(1.0, idx / float(fade_n), (sample_count - idx - 1) / float(fade_n))
            phase = (2.0 * math.pi * frequency_hz * idx) / float(self._sample_rate)
            sample = math.sin(phase) * gain * max(0.0, envelope)
            value = int(max(-1.0, min(1.0, sample)) * self._amp)
            out.extend([value] * self._channels)
        return out


class ToastNotifier:
    """Short-lived on-screen messages for practice feedback."""

    _max_visible = 3

    def __init__(self, clock: Clock, *, lifetime_ms: float = 1500.0) -> None:
        self._clock = clock
        self._lifetime_ms = float(lifetime_ms)
        self._items: list[tuple[float, NotificationKind, str]] = []

    def notify(self, kind: NotificationKind, message: str) -> None:
        self._items.append((self._clock.now_ms() + self._lifetime_ms, kind, str(message)))
        del self._items[: max(0, len(self._items) - self._max_visible)]

    def visible(self) -> list[tuple[NotificationKind, str]]:
        now = self._clock.now_ms()
        self._items = [item for item in self._items if item[0] > now]
        return [(kind, msg) for _, kind, msg in self._items]


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
        # The root menu is never popped; it quits instead.
        if len(self._screens) > 1:
            screen = self._screens.pop()
            close = getattr(screen, "close", None)
            if callable(close):
                close()

    def quit(self) -> None:
        self._running = False
        for screen in self._screens:
            close = getattr(screen, "close", None)
            if callable(close):
                close()

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
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
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._selected = (self._selected - 1) % len(self._items)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._selected = (self._selected + 1) % len(self._items)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._items[self._selected].action()
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._is_root:
                self._app.quit()
            else:
                self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        surface.fill(BG)
        frame = _frame_rect(surface)
        pygame.draw.rect(surface, PANEL_BG, frame)
        pygame.draw.rect(surface, BORDER, frame, 2)

        title = self._title_font.render(self._title, True, TEXT_MAIN)
        surface.blit(title, title.get_rect(midtop=(frame.centerx, frame.y + 20)))

        row_h = 44
        y = frame.y + 90
        for idx, item in enumerate(self._items):
            row = pygame.Rect(frame.x + 60, y, frame.w - 120, row_h - 8)
            selected = idx == self._selected
            pygame.draw.rect(surface, ACTIVE_BG if selected else (9, 20, 106), row)
            text = self._item_font.render(item.label, True, ACTIVE_TEXT if selected else TEXT_MAIN)
            surface.blit(text, (row.x + 12, row.y + (row.h - text.get_height()) // 2))
            y += row_h

        foot = self._hint_font.render("Enter: Select  |  Esc: Back", True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


class NBackScreen:
    """Setup, playing and results views for one GameController."""

    _setup_rows = ("mode", "n_level", "trial_count", "stimulus_duration_ms", "audio_enabled", "start", "back")

    def __init__(
        self,
        app: App,
        *,
        controller_factory: Callable[[ToastNotifier, Callable[[], None]], GameController],
        clock: Clock,
    ) -> None:
        self._app = app
        self._toasts = ToastNotifier(clock)
        self._practice_runs = 0
        self._game = controller_factory(self._toasts, self._on_practice_complete)
        self._row = 0

        self._small_font = pygame.font.Font(None, 26)
        self._mid_font = pygame.font.Font(None, 40)
        self._big_font = pygame.font.Font(None, 96)

        self._game.enter()

    @property
    def game(self) -> GameController:
        return self._game

    def close(self) -> None:
        self._game.close()

    def _on_practice_complete(self) -> None:
        self._practice_runs += 1

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        phase = self._game.phase
        if phase is GamePhase.PLAYING:
            self._handle_playing_key(event.key)
        elif phase is GamePhase.RESULTS:
            self._handle_results_key(event.key)
        elif self._game.practice:
            if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
                self._app.pop()
            elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
                self._game.enter()
        else:
            self._handle_setup_key(event.key)

    def _handle_playing_key(self, key: int) -> None:
        if key in VISUAL_KEYS:
            self._game.respond(Modality.VISUAL)
        elif key in AUDIO_KEYS:
            self._game.respond(Modality.AUDIO)
        elif key == pygame.K_ESCAPE:
            self._game.pause()

    def _handle_results_key(self, key: int) -> None:
        if key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._game.reset()
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._app.pop()

    def _handle_setup_key(self, key: int) -> None:
        row = self._setup_rows[self._row]
        if key in (pygame.K_UP, pygame.K_w):
            self._row = (self._row - 1) % len(self._setup_rows)
        elif key in (pygame.K_DOWN, pygame.K_s):
            self._row = (self._row + 1) % len(self._setup_rows)
        elif key in (pygame.K_LEFT, pygame.K_RIGHT):
            self._adjust(row, -1 if key == pygame.K_LEFT else 1)
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if row == "start":
                self._game.start_game()
            elif row == "back":
                self._app.pop()
            else:
                self._adjust(row, 1)
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._app.pop()

    def _adjust(self, row: str, step: int) -> None:
        cfg = self._game.config
        if row == "mode":
            modes = list(GameMode)
            self._game.configure(mode=modes[(modes.index(cfg.mode) + step) % len(modes)])
        elif row == "n_level":
            self._game.configure(n_level=cfg.n_level + step)
        elif row == "trial_count":
            self._game.configure(trial_count=cfg.trial_count + 5 * step)
        elif row == "stimulus_duration_ms":
            self._game.configure(stimulus_duration_ms=cfg.stimulus_duration_ms + STIMULUS_DURATION_STEP_MS * step)
        elif row == "audio_enabled":
            self._game.configure(audio_enabled=not cfg.audio_enabled)

    def render(self, surface: pygame.Surface) -> None:
        self._game.update()
        snap = self._game.snapshot()

        surface.fill(BG)
        frame = _frame_rect(surface)
        pygame.draw.rect(surface, PANEL_BG, frame)
        pygame.draw.rect(surface, BORDER, frame, 2)

        if snap.phase is GamePhase.PLAYING:
            self._render_playing(surface, frame, snap)
        elif snap.phase is GamePhase.RESULTS:
            self._render_results(surface, frame, snap)
        else:
            self._render_setup(surface, frame, snap.config)

        self._render_toasts(surface, frame)

    def _render_setup(self, surface: pygame.Surface, frame: pygame.Rect, cfg: GameConfig) -> None:
        title = "Practice: 1-Back" if cfg.practice else "N-Back Setup"
        surface.blit(self._mid_font.render(title, True, TEXT_MAIN), (frame.x + 30, frame.y + 20))

        if cfg.practice:
            summary = self._game.last_summary
            if self._practice_runs and summary is not None:
                status = f"Practice runs completed: {self._practice_runs}  (last accuracy {summary.accuracy:.0f}%)"
            else:
                status = "Practice stopped."
            lines = [
                status,
                "",
                f"Press A when the square matches the one {cfg.n_level} step back.",
                "",
                "Enter: start practice   Esc: back to menu",
            ]
            y = frame.y + 90
            for line in lines:
                surface.blit(self._small_font.render(line, True, TEXT_MUTED), (frame.x + 30, y))
                y += 30
            return

        values = {
            "mode": f"Mode: {cfg.mode.label}",
            "n_level": f"N-Level: {cfg.n_level}  ({MIN_N_LEVEL}-{MAX_N_LEVEL})",
            "trial_count": f"Trials: {cfg.trial_count}  ({MIN_TRIALS}-{MAX_TRIALS})",
            "stimulus_duration_ms": (
                f"Stimulus: {cfg.stimulus_duration_ms} ms  "
                f"({MIN_STIMULUS_DURATION_MS}-{MAX_STIMULUS_DURATION_MS})"
            ),
            "audio_enabled": f"Audio: {'on' if cfg.audio_enabled else 'off'}",
            "start": "Start",
            "back": "Back",
        }
        y = frame.y + 80
        for idx, row in enumerate(self._setup_rows):
            rect = pygame.Rect(frame.x + 30, y, frame.w - 60, 34)
            selected = idx == self._row
            pygame.draw.rect(surface, ACTIVE_BG if selected else (9, 20, 106), rect)
            text = self._small_font.render(values[row], True, ACTIVE_TEXT if selected else TEXT_MAIN)
            surface.blit(text, (rect.x + 10, rect.y + (rect.h - text.get_height()) // 2))
            y += 42

        hint = "Up/Down: select  Left/Right: change  Enter: confirm"
        surface.blit(self._small_font.render(hint, True, TEXT_MUTED), (frame.x + 30, frame.bottom - 36))

    def _render_playing(self, surface: pygame.Surface, frame: pygame.Rect, snap: GameSnapshot) -> None:
        cfg = snap.config
        trial = snap.trial
        header = f"{cfg.n_level}-Back  |  {cfg.mode.label}"
        if trial is not None:
            header += f"  |  Trial {min(trial.trial_index + 1, trial.trial_count)}/{trial.trial_count}"
        surface.blit(self._small_font.render(header, True, TEXT_MUTED), (frame.x + 20, frame.y + 14))
        hint = f"Press when the current stimulus matches {cfg.n_level} steps back"
        surface.blit(self._small_font.render(hint, True, TEXT_MUTED), (frame.x + 20, frame.y + 40))

        cell = min(frame.h - 120, frame.w // 2) // 3
        grid = pygame.Rect(0, 0, cell * 3, cell * 3)
        grid.center = (frame.centerx - cell, frame.centery + 10)
        position = None if trial is None else trial.position
        for idx in range(9):
            r = pygame.Rect(grid.x + (idx % 3) * cell + 4, grid.y + (idx // 3) * cell + 4, cell - 8, cell - 8)
            lit = cfg.mode.is_active(Modality.VISUAL) and position == idx
            pygame.draw.rect(surface, CELL_ON if lit else CELL_OFF, r)
            pygame.draw.rect(surface, (62, 84, 152), r, 1)

        if cfg.mode.is_active(Modality.AUDIO):
            letter = "?" if trial is None or trial.letter is None else trial.letter
            text = self._big_font.render(letter, True, TEXT_MAIN)
            surface.blit(text, text.get_rect(center=(grid.right + int(cell * 1.4), grid.centery)))

        responded = frozenset() if trial is None else trial.responded
        y = frame.bottom - 40
        x = frame.x + 20
        for modality, key_name in ((Modality.VISUAL, "A"), (Modality.AUDIO, "L")):
            if not cfg.mode.is_active(modality):
                continue
            mark = "done" if modality in responded else "-"
            label = f"{key_name}: {modality.value} match [{mark}]"
            surface.blit(self._small_font.render(label, True, TEXT_MAIN), (x, y))
            x += 280
        surface.blit(self._small_font.render("Esc: pause", True, TEXT_MUTED), (frame.right - 130, y))

    def _render_results(self, surface: pygame.Surface, frame: pygame.Rect, snap: GameSnapshot) -> None:
        s = snap.summary
        surface.blit(self._mid_font.render("Results", True, TEXT_MAIN), (frame.x + 30, frame.y + 20))
        if s is None:
            return
        lines = [
            f"{s.n_level}-Back, {s.mode.label}, {s.trials} trials",
            f"Accuracy: {s.accuracy:.1f}%",
            f"Mean response time: {s.average_response_time_ms:.0f} ms",
        ]
        for m in s.mode.modalities:
            st = s.stats(m)
            lines.append(
                f"{m.value.title()}: {st.accuracy:.1f}%  hits {st.hits}  misses {st.misses}  "
                f"false alarms {st.false_alarms}  correct rejections {st.correct_rejections}"
            )
        if snap.advice is not None:
            lines.append("")
            lines.append(snap.advice.message)
        lines.append("")
        lines.append("Enter: back to setup   Esc: back to menu")

        y = frame.y + 80
        for line in lines:
            surface.blit(self._small_font.render(line, True, TEXT_MAIN), (frame.x + 30, y))
            y += 30

    def _render_toasts(self, surface: pygame.Surface, frame: pygame.Rect) -> None:
        y = frame.y + 14
        for kind, message in self._toasts.visible():
            text = self._small_font.render(message, True, ACTIVE_TEXT)
            box = text.get_rect(topright=(frame.right - 20, y)).inflate(16, 8)
            pygame.draw.rect(surface, TOAST_COLORS[kind], box)
            surface.blit(text, text.get_rect(center=box.center))
            y += box.h + 6


class ControllerFactory:
    """Builds one GameController per opened game screen.

    Each new Play controller starts from the previous one's configuration,
    so a level picked in setup or changed by adaptive difficulty survives a
    trip back to the menu.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        store: SessionStore,
        announcer: Announcer,
        preferences: Preferences,
        rng: SymbolSource | None = None,
        play_config: GameConfig | None = None,
    ) -> None:
        self._clock = clock
        self._store = store
        self._announcer = announcer
        self._preferences = preferences
        self._rng = rng
        self._play_config = play_config if play_config is not None else make_config()
        self._last_play: GameController | None = None

    def play(self, notifier: Notifier, _on_practice_complete: Callable[[], None]) -> GameController:
        if self._last_play is not None:
            self._play_config = self._last_play.config
        game = self._build(self._play_config, notifier)
        self._last_play = game
        return game

    def practice(self, notifier: Notifier, on_practice_complete: Callable[[], None]) -> GameController:
        return self._build(practice_config(), notifier, on_practice_complete=on_practice_complete)

    def _build(
        self,
        config: GameConfig,
        notifier: Notifier,
        *,
        on_practice_complete: Callable[[], None] | None = None,
    ) -> GameController:
        return GameController(
            config=config,
            clock=self._clock,
            store=self._store,
            announcer=self._announcer,
            notifier=notifier,
            preferences=self._preferences,
            rng=self._rng,
            on_practice_complete=on_practice_complete,
        )


def _frame_rect(surface: pygame.Surface) -> pygame.Rect:
    w, h = surface.get_size()
    margin = max(10, min(26, w // 34))
    return pygame.Rect(margin, margin, max(260, w - margin * 2), max(220, h - margin * 2))


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    store: SessionStore | None = None,
    preferences: Preferences | None = None,
) -> int:
    pygame.init()

    pygame.display.set_caption("N-Back Trainer")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    frame_clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    real_clock = RealClock()
    announcer = ToneAnnouncer()
    session_store = store if store is not None else SqliteSessionStore(default_store_path())
    prefs = preferences if preferences is not None else preferences_from_env()
    controllers = ControllerFactory(
        clock=real_clock,
        store=session_store,
        announcer=announcer,
        preferences=prefs,
    )

    def open_play() -> None:
        app.push(NBackScreen(app, clock=real_clock, controller_factory=controllers.play))

    def open_practice() -> None:
        app.push(NBackScreen(app, clock=real_clock, controller_factory=controllers.practice))

    main_items = [
        MenuItem("Play", open_play),
        MenuItem("Practice (1-Back)", open_practice),
        MenuItem("Quit", app.quit),
    ]
    app.push(MenuScreen(app, "N-Back Trainer", main_items, is_root=True))

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

            frame_clock.tick(TARGET_FPS)
    finally:
        app.quit()
        pygame.quit()

    return 0
