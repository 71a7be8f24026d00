from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Sequence


class Modality(str, Enum):
    VISUAL = "visual"
    AUDIO = "audio"


class GameMode(str, Enum):
    VISUAL = "single-visual"
    AUDIO = "single-audio"
    DUAL = "dual"

    @property
    def modalities(self) -> tuple[Modality, ...]:
        if self is GameMode.VISUAL:
            return (Modality.VISUAL,)
        if self is GameMode.AUDIO:
            return (Modality.AUDIO,)
        return (Modality.VISUAL, Modality.AUDIO)

    def is_active(self, modality: Modality) -> bool:
        return modality in self.modalities

    @property
    def label(self) -> str:
        return {
            GameMode.VISUAL: "Visual only",
            GameMode.AUDIO: "Audio only",
            GameMode.DUAL: "Dual",
        }[self]


class ResponseClass(str, Enum):
    HIT = "hit"
    MISS = "miss"
    FALSE_ALARM = "false_alarm"
    CORRECT_REJECTION = "correct_rejection"


def classify(expected: bool, observed: bool) -> ResponseClass:
    """Signal-detection category for one modality decision."""

    if expected:
        return ResponseClass.HIT if observed else ResponseClass.MISS
    return ResponseClass.FALSE_ALARM if observed else ResponseClass.CORRECT_REJECTION


@dataclass(frozen=True, slots=True)
class Stimulus:
    """One generated visual/audio pair and its frozen n-back match flags."""

    trial_index: int
    position: int
    letter: str
    visual_match: bool
    audio_match: bool

    def is_match(self, modality: Modality) -> bool:
        return self.visual_match if modality is Modality.VISUAL else self.audio_match


@dataclass(frozen=True, slots=True)
class TrialOutcome:
    trial_index: int
    modality: Modality
    expected: bool
    observed: bool
    latency_ms: float

    @property
    def response_class(self) -> ResponseClass:
        return classify(self.expected, self.observed)

    @property
    def is_correct(self) -> bool:
        return self.expected == self.observed


@dataclass(frozen=True, slots=True)
class ModalityStats:
    modality: Modality
    accuracy: float
    actual_matches: int = 0
    hits: int = 0
    misses: int = 0
    false_alarms: int = 0
    correct_rejections: int = 0

    @property
    def classified(self) -> int:
        return self.hits + self.misses + self.false_alarms + self.correct_rejections


@dataclass(frozen=True, slots=True)
class SessionSummary:
    """Immutable end-of-session aggregate, the unit handed to persistence."""

    trials: int
    n_level: int
    mode: GameMode
    accuracy: float
    average_response_time_ms: float
    timestamp: str
    visual: ModalityStats
    audio: ModalityStats

    def stats(self, modality: Modality) -> ModalityStats:
        return self.visual if modality is Modality.VISUAL else self.audio

    @property
    def visual_accuracy(self) -> float:
        return self.visual.accuracy

    @property
    def audio_accuracy(self) -> float:
        return self.audio.accuracy


class SeededRng:
    """Thin wrapper around random.Random.

    ``seed=None`` draws from OS entropy; sessions are not meant to be
    reproducible, but tests and tools can still pin a seed.
    """

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed if seed is None else int(seed))

    def randrange(self, stop: int) -> int:
        return self._rng.randrange(int(stop))

    def choice(self, seq: Sequence[str]) -> str:
        return self._rng.choice(seq)


def clamp_int(value: object, lo: int, hi: int, *, default: int) -> int:
    """Coerce to int and clamp to [lo, hi]; unparseable values give ``default``."""

    try:
        v = int(round(float(value)))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        v = int(default)
    return lo if v < lo else hi if v > hi else v


def clamp_pct(x: float) -> float:
    if x != x:  # NaN
        return 0.0
    return 0.0 if x <= 0.0 else 100.0 if x >= 100.0 else float(x)
