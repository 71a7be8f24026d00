from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .adaptive import LevelAdvice, next_level
from .clock import Clock
from .collaborators import (
    Announcer,
    NotificationKind,
    Notifier,
    NullAnnouncer,
    NullNotifier,
    SessionStore,
    safe_announce,
    safe_notify,
)
from .config import GameConfig, Preferences, StaticPreferences
from .nback_core import Modality, SeededRng, SessionSummary, Stimulus, TrialOutcome
from .persistence import InMemorySessionStore
from .scoring import summarize
from .stimulus import StimulusGenerator, SymbolSource
from .trial_engine import (
    DUAL_GRACE_MS,
    INTER_TRIAL_INTERVAL_MS,
    TrialSnapshot,
    TrialStage,
    TrialStateMachine,
)

logger = logging.getLogger(__name__)


class GamePhase(str, Enum):
    SETUP = "setup"
    PLAYING = "playing"
    RESULTS = "results"


_EDGES: frozenset[tuple[GamePhase, GamePhase]] = frozenset(
    {
        (GamePhase.SETUP, GamePhase.PLAYING),
        (GamePhase.PLAYING, GamePhase.SETUP),
        (GamePhase.PLAYING, GamePhase.RESULTS),
        (GamePhase.RESULTS, GamePhase.SETUP),
    }
)

PRACTICE_COMPLETE_MESSAGE = "Practice Complete! Well done!"


@dataclass(frozen=True, slots=True)
class GameSnapshot:
    """View model for the presentation layer (pure data)."""

    phase: GamePhase
    config: GameConfig
    trial: TrialSnapshot | None
    summary: SessionSummary | None
    advice: LevelAdvice | None


class _EngineListener:
    def __init__(self, game: "GameController") -> None:
        self._game = game

    def on_stimulus(self, stimulus: Stimulus) -> None:
        self._game._handle_stimulus(stimulus)

    def on_response(self, stimulus: Stimulus, modality: Modality) -> None:
        self._game._handle_response(stimulus, modality)

    def on_timeout(self, stimulus: Stimulus, unanswered: tuple[Modality, ...]) -> None:
        self._game._handle_timeout(stimulus, unanswered)

    def on_trial_closed(self, outcomes: tuple[TrialOutcome, ...]) -> None:
        pass

    def on_complete(self) -> None:
        self._game.end_session()


class GameController:
    """Setup -> Playing -> Results lifecycle around one TrialStateMachine per game.

    The host loop calls ``update()`` every frame and routes key presses to
    ``respond()``. Session completion is only reachable through the
    PLAYING -> RESULTS edge (PLAYING -> SETUP in practice mode), so a
    second ``end_session()`` for the same game is a no-op.
    """

    def __init__(
        self,
        *,
        config: GameConfig,
        clock: Clock,
        store: SessionStore | None = None,
        announcer: Announcer | None = None,
        notifier: Notifier | None = None,
        preferences: Preferences | None = None,
        rng: SymbolSource | None = None,
        on_practice_complete: Callable[[], None] | None = None,
        inter_trial_ms: float = INTER_TRIAL_INTERVAL_MS,
        grace_ms: float = DUAL_GRACE_MS,
    ) -> None:
        # GameConfig's constructor stores raw values; clamp before any game uses them.
        self._config = config.with_changes()
        self._clock = clock
        self._store: SessionStore = store if store is not None else InMemorySessionStore()
        self._announcer: Announcer = announcer if announcer is not None else NullAnnouncer()
        self._notifier: Notifier = notifier if notifier is not None else NullNotifier()
        self._preferences: Preferences = preferences if preferences is not None else StaticPreferences()
        self._rng: SymbolSource = rng if rng is not None else SeededRng()
        self._on_practice_complete = on_practice_complete
        self._inter_trial_ms = float(inter_trial_ms)
        self._grace_ms = float(grace_ms)

        self._phase = GamePhase.SETUP
        self._engine: TrialStateMachine | None = None
        self._last_summary: SessionSummary | None = None
        self._last_advice: LevelAdvice | None = None

    @property
    def phase(self) -> GamePhase:
        return self._phase

    @property
    def config(self) -> GameConfig:
        return self._config

    @property
    def practice(self) -> bool:
        return self._config.practice

    @property
    def engine(self) -> TrialStateMachine | None:
        return self._engine

    @property
    def last_summary(self) -> SessionSummary | None:
        return self._last_summary

    @property
    def last_advice(self) -> LevelAdvice | None:
        return self._last_advice

    def load_history(self) -> list[SessionSummary]:
        try:
            return list(self._store.load_sessions())
        except Exception:
            logger.exception("session store failed to load; treating as empty")
            return []

    def configure(self, **changes: Any) -> bool:
        if self._phase is not GamePhase.SETUP:
            return False
        self._config = self._config.with_changes(**changes)
        return True

    def enter(self) -> None:
        """Called when the host shows this game. Practice starts at once."""

        if self.practice and self._phase is GamePhase.SETUP:
            self.start_game()

    def start_game(self) -> bool:
        if (self._phase, GamePhase.PLAYING) not in _EDGES:
            return False
        cfg = self._config
        engine = TrialStateMachine(
            clock=self._clock,
            mode=cfg.mode,
            n_level=cfg.n_level,
            trial_count=cfg.trial_count,
            stimulus_duration_ms=cfg.stimulus_duration_ms,
            generator=StimulusGenerator(rng=self._rng),
            listener=_EngineListener(self),
            inter_trial_ms=self._inter_trial_ms,
            grace_ms=self._grace_ms,
        )
        self._last_summary = None
        self._last_advice = None
        self._engine = engine
        self._transition(GamePhase.PLAYING)
        logger.info(
            "game started: mode=%s n=%d trials=%d duration=%dms practice=%s",
            cfg.mode.value,
            cfg.n_level,
            cfg.trial_count,
            cfg.stimulus_duration_ms,
            cfg.practice,
        )
        engine.start()
        return True

    def update(self) -> None:
        if self._phase is GamePhase.PLAYING and self._engine is not None:
            self._engine.update()

    def respond(self, modality: Modality) -> bool:
        if self._phase is not GamePhase.PLAYING or self._engine is None:
            return False
        if not self._config.mode.is_active(modality):
            return False
        return self._engine.respond(modality)

    def pause(self) -> bool:
        """Abandon the running game and return to setup; configuration is kept."""

        return self.reset()

    def reset(self) -> bool:
        if self._phase is GamePhase.SETUP:
            return False
        self._halt_engine()
        self._transition(GamePhase.SETUP)
        logger.info("returned to setup")
        return True

    def close(self) -> None:
        """Tear down: cancel every pending timer."""

        self._halt_engine()

    def end_session(self) -> SessionSummary | None:
        engine = self._engine
        if self._phase is not GamePhase.PLAYING or engine is None:
            return self._last_summary
        if engine.stage is not TrialStage.COMPLETE:
            return self._last_summary

        cfg = self._config
        summary = summarize(cfg.mode, cfg.n_level, engine.outcomes(), trial_count=cfg.trial_count)
        self._last_summary = summary

        if cfg.practice:
            self._engine = None
            self._transition(GamePhase.SETUP)
            logger.info("practice complete: accuracy=%.1f%%", summary.accuracy)
            safe_notify(self._notifier, NotificationKind.SUCCESS, PRACTICE_COMPLETE_MESSAGE)
            self._fire_practice_complete()
            return summary

        self._transition(GamePhase.RESULTS)
        logger.info("session complete: n=%d accuracy=%.1f%%", summary.n_level, summary.accuracy)

        if self._preferences.adaptive_difficulty_enabled():
            advice = next_level(cfg.n_level, summary.accuracy)
            self._last_advice = advice
            if advice.changed:
                self._config = cfg.with_changes(n_level=advice.new_n)
            logger.info("level advice: %s (%s)", advice.message, advice.change.value)

        self._persist(summary)
        return summary

    def snapshot(self) -> GameSnapshot:
        trial = None
        if self._phase is GamePhase.PLAYING and self._engine is not None:
            trial = self._engine.snapshot()
        return GameSnapshot(
            phase=self._phase,
            config=self._config,
            trial=trial,
            summary=self._last_summary,
            advice=self._last_advice,
        )

    def _transition(self, to: GamePhase) -> bool:
        if (self._phase, to) not in _EDGES:
            return False
        logger.debug("game phase %s -> %s", self._phase.value, to.value)
        self._phase = to
        return True

    def _halt_engine(self) -> None:
        if self._engine is not None:
            self._engine.halt()
            self._engine = None

    def _persist(self, summary: SessionSummary) -> None:
        try:
            ok = self._store.append_session(summary)
        except Exception:
            logger.exception("session store raised while saving; session kept in memory only")
            return
        if not ok:
            logger.error("session store rejected the session; session kept in memory only")

    def _fire_practice_complete(self) -> None:
        if self._on_practice_complete is None:
            return
        try:
            self._on_practice_complete()
        except Exception:
            logger.warning("practice-complete callback failed", exc_info=True)

    def _handle_stimulus(self, stimulus: Stimulus) -> None:
        cfg = self._config
        if cfg.audio_enabled and cfg.mode.is_active(Modality.AUDIO):
            safe_announce(self._announcer, stimulus.letter)

    def _handle_response(self, stimulus: Stimulus, modality: Modality) -> None:
        if not self.practice:
            return
        if stimulus.is_match(modality):
            safe_notify(self._notifier, NotificationKind.SUCCESS, "Correct Match!")
        else:
            safe_notify(self._notifier, NotificationKind.WARNING, "Oops! That wasn't a match (False Alarm).")

    def _handle_timeout(self, stimulus: Stimulus, unanswered: tuple[Modality, ...]) -> None:
        if not self.practice:
            return
        for modality in unanswered:
            if stimulus.is_match(modality):
                safe_notify(self._notifier, NotificationKind.ERROR, "Missed Match!")
            else:
                safe_notify(self._notifier, NotificationKind.INFO, "Correct: No match there.")
