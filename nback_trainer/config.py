from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Protocol

from .adaptive import MAX_N_LEVEL, MIN_N_LEVEL
from .nback_core import GameMode, clamp_int
from .trial_engine import DEFAULT_STIMULUS_DURATION_MS

MIN_TRIALS = 10
MAX_TRIALS = 50
DEFAULT_TRIALS = 20
DEFAULT_N_LEVEL = 2

MIN_STIMULUS_DURATION_MS = 2000
MAX_STIMULUS_DURATION_MS = 4000
STIMULUS_DURATION_STEP_MS = 500

PRACTICE_MODE = GameMode.VISUAL
PRACTICE_N_LEVEL = 1
PRACTICE_TRIALS = 7

STORE_PATH_ENV = "NBACK_STORE_PATH"
ADAPTIVE_ENV = "NBACK_ADAPTIVE"
LOG_LEVEL_ENV = "NBACK_LOG_LEVEL"


@dataclass(frozen=True, slots=True)
class GameConfig:
    """Everything the Game Controller needs to run one session.

    Build instances with ``make_config`` or ``practice_config`` so values are
    clamped; the constructor itself stores what it is given.
    """

    mode: GameMode = GameMode.VISUAL
    n_level: int = DEFAULT_N_LEVEL
    trial_count: int = DEFAULT_TRIALS
    stimulus_duration_ms: int = DEFAULT_STIMULUS_DURATION_MS
    audio_enabled: bool = True
    practice: bool = False

    def with_changes(self, **changes: Any) -> "GameConfig":
        return _normalize(replace(self, **changes))


def _as_mode(value: object, fallback: GameMode) -> GameMode:
    try:
        return GameMode(value)
    except (TypeError, ValueError):
        return fallback


def _normalize(cfg: GameConfig) -> GameConfig:
    duration = clamp_int(
        cfg.stimulus_duration_ms,
        MIN_STIMULUS_DURATION_MS,
        MAX_STIMULUS_DURATION_MS,
        default=DEFAULT_STIMULUS_DURATION_MS,
    )
    if cfg.practice:
        return GameConfig(
            mode=PRACTICE_MODE,
            n_level=PRACTICE_N_LEVEL,
            trial_count=PRACTICE_TRIALS,
            stimulus_duration_ms=duration,
            audio_enabled=bool(cfg.audio_enabled),
            practice=True,
        )
    return GameConfig(
        mode=_as_mode(cfg.mode, GameMode.VISUAL),
        n_level=clamp_int(cfg.n_level, MIN_N_LEVEL, MAX_N_LEVEL, default=DEFAULT_N_LEVEL),
        trial_count=clamp_int(cfg.trial_count, MIN_TRIALS, MAX_TRIALS, default=DEFAULT_TRIALS),
        stimulus_duration_ms=duration,
        audio_enabled=bool(cfg.audio_enabled),
        practice=False,
    )


def make_config(
    *,
    mode: GameMode | str = GameMode.VISUAL,
    n_level: object = DEFAULT_N_LEVEL,
    trial_count: object = DEFAULT_TRIALS,
    stimulus_duration_ms: object = DEFAULT_STIMULUS_DURATION_MS,
    audio_enabled: bool = True,
) -> GameConfig:
    """Clamp every value into range; out-of-range input is never rejected."""

    return _normalize(
        GameConfig(
            mode=mode,  # type: ignore[arg-type]
            n_level=n_level,  # type: ignore[arg-type]
            trial_count=trial_count,  # type: ignore[arg-type]
            stimulus_duration_ms=stimulus_duration_ms,  # type: ignore[arg-type]
            audio_enabled=audio_enabled,
        )
    )


def practice_config(*, stimulus_duration_ms: object = DEFAULT_STIMULUS_DURATION_MS) -> GameConfig:
    return _normalize(GameConfig(stimulus_duration_ms=stimulus_duration_ms, practice=True))  # type: ignore[arg-type]


class Preferences(Protocol):
    """Read-only view of user preferences the Game Controller consults."""

    def adaptive_difficulty_enabled(self) -> bool: ...


@dataclass(frozen=True, slots=True)
class StaticPreferences:
    adaptive: bool = True

    def adaptive_difficulty_enabled(self) -> bool:
        return self.adaptive


def preferences_from_env() -> StaticPreferences:
    raw = os.environ.get(ADAPTIVE_ENV, "1").strip().lower()
    return StaticPreferences(adaptive=raw not in ("0", "false", "no", "off"))


def default_store_path() -> Path:
    explicit = os.environ.get(STORE_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".nback_trainer.sqlite3"
