from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import pytest

from nback_trainer.nback_core import GameMode, Modality, ResponseClass, Stimulus, TrialOutcome
from nback_trainer.stimulus import StimulusGenerator
from nback_trainer.trial_engine import EngineEvent, TrialStage, TrialStateMachine


@dataclass
class FakeClock:
    t: float = 0.0

    def now_ms(self) -> float:
        return self.t

    def advance(self, ms: float) -> None:
        self.t += float(ms)


class ScriptedRng:
    def __init__(self, positions: Sequence[int], letters: Sequence[str]) -> None:
        self._positions = list(positions)
        self._letters = list(letters)

    def randrange(self, stop: int) -> int:
        return self._positions.pop(0)

    def choice(self, seq: Sequence[str]) -> str:
        return self._letters.pop(0)


@dataclass
class RecordingListener:
    stimuli: list[Stimulus] = field(default_factory=list)
    responses: list[Modality] = field(default_factory=list)
    timeouts: list[tuple[Modality, ...]] = field(default_factory=list)
    closed: list[tuple[TrialOutcome, ...]] = field(default_factory=list)
    completed: int = 0

    def on_stimulus(self, stimulus: Stimulus) -> None:
        self.stimuli.append(stimulus)

    def on_response(self, stimulus: Stimulus, modality: Modality) -> None:
        self.responses.append(modality)

    def on_timeout(self, stimulus: Stimulus, unanswered: tuple[Modality, ...]) -> None:
        self.timeouts.append(unanswered)

    def on_trial_closed(self, outcomes: tuple[TrialOutcome, ...]) -> None:
        self.closed.append(outcomes)

    def on_complete(self) -> None:
        self.completed += 1


def _engine(
    clock: FakeClock,
    mode: GameMode,
    *,
    trials: int,
    n: int = 1,
    positions: Sequence[int] = (),
    letters: Sequence[str] = (),
    listener: RecordingListener | None = None,
) -> TrialStateMachine:
    positions = list(positions) or [0] * trials
    letters = list(letters) or ["A"] * trials
    return TrialStateMachine(
        clock=clock,
        mode=mode,
        n_level=n,
        trial_count=trials,
        stimulus_duration_ms=3000,
        generator=StimulusGenerator(rng=ScriptedRng(positions, letters)),
        listener=listener,
    )


def test_first_trial_is_presented_immediately() -> None:
    clock = FakeClock()
    listener = RecordingListener()
    engine = _engine(clock, GameMode.VISUAL, trials=2, listener=listener)

    assert engine.stage is TrialStage.IDLE
    assert engine.start() is True
    assert engine.stage is TrialStage.AWAITING_RESPONSE
    assert len(listener.stimuli) == 1
    assert engine.start() is False


def test_single_modality_closes_on_first_response() -> None:
    clock = FakeClock()
    listener = RecordingListener()
    engine = _engine(clock, GameMode.VISUAL, trials=2, positions=[3, 3], listener=listener)
    engine.start()

    clock.advance(3000)
    engine.update()
    assert listener.timeouts == [(Modality.VISUAL,)]
    assert engine.stage is TrialStage.INTER_TRIAL

    clock.advance(1000)
    engine.update()
    assert engine.stage is TrialStage.AWAITING_RESPONSE

    clock.advance(400)
    assert engine.respond(Modality.VISUAL) is True
    assert engine.stage is TrialStage.COMPLETE
    assert listener.completed == 1

    first, second = engine.outcomes()
    assert first.response_class is ResponseClass.CORRECT_REJECTION
    assert first.latency_ms == 3000.0
    assert second.response_class is ResponseClass.HIT
    assert second.latency_ms == 400.0
    assert engine.pending_timers() == 0


def test_dual_closes_only_after_both_responses_and_grace() -> None:
    clock = FakeClock()
    listener = RecordingListener()
    engine = _engine(clock, GameMode.DUAL, trials=1, listener=listener)
    engine.start()

    clock.advance(200)
    assert engine.respond(Modality.VISUAL) is True
    assert engine.stage is TrialStage.AWAITING_RESPONSE
    assert engine.respond(Modality.VISUAL) is False

    clock.advance(300)
    assert engine.respond(Modality.AUDIO) is True
    assert engine.stage is TrialStage.CLOSING
    assert listener.closed == []

    clock.advance(749)
    engine.update()
    assert listener.closed == []

    clock.advance(1)
    engine.update()
    assert engine.stage is TrialStage.COMPLETE
    latencies = {o.modality: o.latency_ms for o in engine.outcomes()}
    assert latencies == {Modality.VISUAL: 200.0, Modality.AUDIO: 500.0}


def test_dual_partial_response_times_out_with_full_latency() -> None:
    clock = FakeClock()
    listener = RecordingListener()
    engine = _engine(clock, GameMode.DUAL, trials=1, listener=listener)
    engine.start()

    clock.advance(100)
    engine.respond(Modality.AUDIO)
    clock.advance(5000)
    engine.update()

    assert listener.timeouts == [(Modality.VISUAL,)]
    by_m = {o.modality: o for o in engine.outcomes()}
    assert by_m[Modality.VISUAL].observed is False
    assert by_m[Modality.VISUAL].latency_ms == 3000.0
    assert by_m[Modality.AUDIO].observed is True
    assert by_m[Modality.AUDIO].latency_ms == 100.0


def test_late_response_loses_race_to_timeout() -> None:
    clock = FakeClock()
    engine = _engine(clock, GameMode.VISUAL, trials=2)
    engine.start()

    # Host polled late: the deadline passed before the key press is handled.
    clock.advance(3200)
    assert engine.respond(Modality.VISUAL) is False
    assert engine.stage is TrialStage.INTER_TRIAL
    assert engine.outcomes()[0].observed is False


def test_inactive_modality_is_rejected() -> None:
    clock = FakeClock()
    engine = _engine(clock, GameMode.AUDIO, trials=1)
    engine.start()
    assert engine.respond(Modality.VISUAL) is False
    assert engine.responded(Modality.VISUAL) is False


def test_halt_cancels_timers_and_rejects_further_events() -> None:
    clock = FakeClock()
    listener = RecordingListener()
    engine = _engine(clock, GameMode.VISUAL, trials=3, listener=listener)
    engine.start()
    assert engine.pending_timers() == 1

    assert engine.halt() is True
    assert engine.stage is TrialStage.HALTED
    assert engine.pending_timers() == 0

    clock.advance(10_000)
    assert engine.update() is False
    assert engine.tick(EngineEvent.respond(Modality.VISUAL)) is False
    assert listener.closed == []
    assert listener.completed == 0


def test_halt_during_dual_grace_cancels_the_close() -> None:
    clock = FakeClock()
    listener = RecordingListener()
    engine = _engine(clock, GameMode.DUAL, trials=2, listener=listener)
    engine.start()

    clock.advance(100)
    engine.respond(Modality.VISUAL)
    engine.respond(Modality.AUDIO)
    assert engine.stage is TrialStage.CLOSING
    assert engine.pending_timers() == 1

    engine.halt()
    assert engine.pending_timers() == 0

    clock.advance(10_000)
    engine.update()
    assert engine.outcomes() == ()
    assert listener.closed == []
    assert len(listener.stimuli) == 1
    assert listener.completed == 0


def test_halt_during_inter_trial_cancels_the_next_trial() -> None:
    clock = FakeClock()
    listener = RecordingListener()
    engine = _engine(clock, GameMode.VISUAL, trials=2, listener=listener)
    engine.start()

    clock.advance(3000)
    engine.update()
    assert engine.stage is TrialStage.INTER_TRIAL
    assert len(engine.outcomes()) == 1

    engine.halt()
    assert engine.pending_timers() == 0

    clock.advance(10_000)
    engine.update()
    assert len(engine.outcomes()) == 1
    assert len(listener.stimuli) == 1
    assert listener.completed == 0


def test_zero_trials_completes_at_once() -> None:
    clock = FakeClock()
    listener = RecordingListener()
    engine = _engine(clock, GameMode.DUAL, trials=0, listener=listener)
    engine.start()
    assert engine.stage is TrialStage.COMPLETE
    assert listener.completed == 1
    assert engine.outcomes() == ()


def test_constructor_validates_arguments() -> None:
    clock = FakeClock()
    with pytest.raises(ValueError):
        TrialStateMachine(clock=clock, mode=GameMode.VISUAL, n_level=0, trial_count=1)
    with pytest.raises(ValueError):
        TrialStateMachine(clock=clock, mode=GameMode.VISUAL, n_level=1, trial_count=-1)
    with pytest.raises(ValueError):
        TrialStateMachine(clock=clock, mode=GameMode.VISUAL, n_level=1, trial_count=1, stimulus_duration_ms=0)
