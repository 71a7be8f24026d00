from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .clock import Clock
from .nback_core import GameMode, Modality, Stimulus, TrialOutcome
from .stimulus import StimulusGenerator
from .timers import TimerTable

logger = logging.getLogger(__name__)

DEFAULT_STIMULUS_DURATION_MS = 3000
INTER_TRIAL_INTERVAL_MS = 1000
DUAL_GRACE_MS = 750


class TrialStage(str, Enum):
    IDLE = "idle"
    PRESENTING = "presenting"
    AWAITING_RESPONSE = "awaiting_response"
    CLOSING = "closing"
    INTER_TRIAL = "inter_trial"
    COMPLETE = "complete"
    HALTED = "halted"


class _Timer(str, Enum):
    TRIAL_TIMEOUT = "trial_timeout"
    GRACE = "grace"
    NEXT_TRIAL = "next_trial"


class EngineEventKind(str, Enum):
    START = "start"
    TICK = "tick"
    RESPOND = "respond"
    HALT = "halt"


@dataclass(frozen=True, slots=True)
class EngineEvent:
    kind: EngineEventKind
    modality: Modality | None = None

    @classmethod
    def start(cls) -> "EngineEvent":
        return cls(EngineEventKind.START)

    @classmethod
    def tick(cls) -> "EngineEvent":
        return cls(EngineEventKind.TICK)

    @classmethod
    def respond(cls, modality: Modality) -> "EngineEvent":
        return cls(EngineEventKind.RESPOND, modality)

    @classmethod
    def halt(cls) -> "EngineEvent":
        return cls(EngineEventKind.HALT)


class TrialListener(Protocol):
    def on_stimulus(self, stimulus: Stimulus) -> None: ...
    def on_response(self, stimulus: Stimulus, modality: Modality) -> None: ...
    def on_timeout(self, stimulus: Stimulus, unanswered: tuple[Modality, ...]) -> None: ...
    def on_trial_closed(self, outcomes: tuple[TrialOutcome, ...]) -> None: ...
    def on_complete(self) -> None: ...


class _NullListener:
    def on_stimulus(self, stimulus: Stimulus) -> None:
        pass

    def on_response(self, stimulus: Stimulus, modality: Modality) -> None:
        pass

    def on_timeout(self, stimulus: Stimulus, unanswered: tuple[Modality, ...]) -> None:
        pass

    def on_trial_closed(self, outcomes: tuple[TrialOutcome, ...]) -> None:
        pass

    def on_complete(self) -> None:
        pass


@dataclass(frozen=True, slots=True)
class TrialSnapshot:
    """View model for the presentation layer (pure data)."""

    stage: TrialStage
    trial_index: int
    trial_count: int
    position: int | None
    letter: str | None
    awaiting_response: bool
    responded: frozenset[Modality]


class TrialStateMachine:
    """Per-trial timing and response state machine for one game.

    Every input goes through ``tick(event)``. Before an event is handled,
    all timers whose deadline has passed are fired in deadline order, each
    at its own deadline time, so a response and a trial timeout racing each
    other resolve by whichever was due first regardless of how coarsely the
    host polls.

    Stages per trial:
    PRESENTING -> AWAITING_RESPONSE -> (CLOSING) -> INTER_TRIAL | COMPLETE
    """

    def __init__(
        self,
        *,
        clock: Clock,
        mode: GameMode,
        n_level: int,
        trial_count: int,
        stimulus_duration_ms: float = DEFAULT_STIMULUS_DURATION_MS,
        generator: StimulusGenerator | None = None,
        listener: TrialListener | None = None,
        inter_trial_ms: float = INTER_TRIAL_INTERVAL_MS,
        grace_ms: float = DUAL_GRACE_MS,
    ) -> None:
        if n_level < 1:
            raise ValueError("n_level must be >= 1")
        if trial_count < 0:
            raise ValueError("trial_count must be >= 0")
        if stimulus_duration_ms <= 0:
            raise ValueError("stimulus_duration_ms must be > 0")
        if inter_trial_ms < 0 or grace_ms < 0:
            raise ValueError("inter_trial_ms and grace_ms must be >= 0")

        self._clock = clock
        self._mode = GameMode(mode)
        self._active = self._mode.modalities
        self._n_level = int(n_level)
        self._trial_count = int(trial_count)
        self._duration_ms = float(stimulus_duration_ms)
        self._inter_trial_ms = float(inter_trial_ms)
        self._grace_ms = float(grace_ms)

        self._gen = generator if generator is not None else StimulusGenerator()
        self._listener: TrialListener = listener if listener is not None else _NullListener()
        self._timers = TimerTable(clock)

        self._stage = TrialStage.IDLE
        self._current: Stimulus | None = None
        self._presented_at_ms: float | None = None
        self._latencies: dict[Modality, float] = {}
        self._trials_completed = 0
        self._outcomes: list[TrialOutcome] = []

    @property
    def stage(self) -> TrialStage:
        return self._stage

    @property
    def mode(self) -> GameMode:
        return self._mode

    @property
    def n_level(self) -> int:
        return self._n_level

    @property
    def trial_count(self) -> int:
        return self._trial_count

    @property
    def stimulus_duration_ms(self) -> float:
        return self._duration_ms

    @property
    def trials_completed(self) -> int:
        return self._trials_completed

    def outcomes(self) -> tuple[TrialOutcome, ...]:
        return tuple(self._outcomes)

    def responded(self, modality: Modality) -> bool:
        return modality in self._latencies

    def pending_timers(self) -> int:
        return len(self._timers)

    # Convenience wrappers around tick().
    def start(self) -> bool:
        return self.tick(EngineEvent.start())

    def update(self) -> bool:
        return self.tick(EngineEvent.tick())

    def respond(self, modality: Modality) -> bool:
        return self.tick(EngineEvent.respond(modality))

    def halt(self) -> bool:
        return self.tick(EngineEvent.halt())

    def tick(self, event: EngineEvent) -> bool:
        """Single entry point. Returns True if the event was accepted."""

        if event.kind is EngineEventKind.HALT:
            self._halt()
            return True
        if self._stage is TrialStage.HALTED:
            return False

        self._fire_due_timers()

        if event.kind is EngineEventKind.START:
            return self._start()
        if event.kind is EngineEventKind.RESPOND:
            if event.modality is None:
                raise ValueError("respond event requires a modality")
            return self._on_response(Modality(event.modality))
        return True

    def snapshot(self) -> TrialSnapshot:
        cur = self._current
        index = cur.trial_index if cur is not None else self._trials_completed
        return TrialSnapshot(
            stage=self._stage,
            trial_index=index,
            trial_count=self._trial_count,
            position=None if cur is None else cur.position,
            letter=None if cur is None else cur.letter,
            awaiting_response=self._stage is TrialStage.AWAITING_RESPONSE,
            responded=frozenset(self._latencies),
        )

    def _fire_due_timers(self) -> None:
        while True:
            handle = self._timers.pop_due()
            if handle is None:
                return
            at = handle.due_at_ms
            if handle.key is _Timer.TRIAL_TIMEOUT:
                self._on_timeout(at)
            elif handle.key is _Timer.GRACE:
                self._close_trial(at)
            elif handle.key is _Timer.NEXT_TRIAL:
                self._begin_trial(at)

    def _start(self) -> bool:
        if self._stage is not TrialStage.IDLE:
            return False
        self._gen.reset()
        self._outcomes.clear()
        self._trials_completed = 0
        if self._trial_count == 0:
            self._stage = TrialStage.COMPLETE
            self._listener.on_complete()
            return True
        self._begin_trial(self._clock.now_ms())
        return True

    def _begin_trial(self, at_ms: float) -> None:
        self._stage = TrialStage.PRESENTING
        stimulus = self._gen.generate(self._n_level)
        self._current = stimulus
        self._latencies = {}
        logger.debug(
            "trial %d: position=%d letter=%s visual_match=%s audio_match=%s",
            stimulus.trial_index,
            stimulus.position,
            stimulus.letter,
            stimulus.visual_match,
            stimulus.audio_match,
        )
        self._listener.on_stimulus(stimulus)

        self._presented_at_ms = float(at_ms)
        self._timers.schedule(_Timer.TRIAL_TIMEOUT, self._duration_ms, from_ms=at_ms)
        self._stage = TrialStage.AWAITING_RESPONSE

    def _on_response(self, modality: Modality) -> bool:
        if self._stage is not TrialStage.AWAITING_RESPONSE:
            return False
        if modality not in self._active:
            return False
        if modality in self._latencies:
            return False
        assert self._current is not None
        assert self._presented_at_ms is not None

        now = self._clock.now_ms()
        latency = min(self._duration_ms, max(0.0, now - self._presented_at_ms))
        self._latencies[modality] = latency
        self._listener.on_response(self._current, modality)

        if all(m in self._latencies for m in self._active):
            self._timers.cancel(_Timer.TRIAL_TIMEOUT)
            if len(self._active) > 1:
                self._stage = TrialStage.CLOSING
                self._timers.schedule(_Timer.GRACE, self._grace_ms, from_ms=now)
            else:
                self._close_trial(now)
        return True

    def _on_timeout(self, at_ms: float) -> None:
        if self._stage is not TrialStage.AWAITING_RESPONSE or self._current is None:
            return
        # Unanswered modalities close as "no response" with the full duration as latency.
        unanswered = tuple(m for m in self._active if m not in self._latencies)
        self._listener.on_timeout(self._current, unanswered)
        self._close_trial(at_ms)

    def _close_trial(self, at_ms: float) -> None:
        stimulus = self._current
        if stimulus is None:
            return
        self._stage = TrialStage.CLOSING
        self._timers.cancel(_Timer.TRIAL_TIMEOUT)
        self._timers.cancel(_Timer.GRACE)

        outcomes = tuple(
            TrialOutcome(
                trial_index=stimulus.trial_index,
                modality=m,
                expected=stimulus.is_match(m),
                observed=m in self._latencies,
                latency_ms=self._latencies.get(m, self._duration_ms),
            )
            for m in self._active
        )
        self._outcomes.extend(outcomes)
        self._trials_completed += 1
        self._current = None
        self._presented_at_ms = None
        self._latencies = {}
        logger.debug("trial %d closed", stimulus.trial_index)
        self._listener.on_trial_closed(outcomes)

        if self._trials_completed < self._trial_count:
            self._stage = TrialStage.INTER_TRIAL
            self._timers.schedule(_Timer.NEXT_TRIAL, self._inter_trial_ms, from_ms=at_ms)
            return

        self._stage = TrialStage.COMPLETE
        self._listener.on_complete()

    def _halt(self) -> None:
        self._timers.cancel_all()
        self._current = None
        self._presented_at_ms = None
        self._latencies = {}
        self._stage = TrialStage.HALTED
