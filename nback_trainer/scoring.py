from __future__ import annotations

import time
from typing import Iterable

from .nback_core import (
    GameMode,
    Modality,
    ModalityStats,
    ResponseClass,
    SessionSummary,
    TrialOutcome,
    clamp_pct,
)


def utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def modality_stats(modality: Modality, outcomes: Iterable[TrialOutcome], *, trial_count: int) -> ModalityStats:
    """Signal-detection counts and equality-based accuracy for one modality.

    Accuracy counts a trial as correct when the response matched the
    expectation, i.e. (hits + correct rejections) / trial_count.
    """

    counts = {rc: 0 for rc in ResponseClass}
    actual = 0
    correct = 0
    for o in outcomes:
        if o.modality is not modality:
            continue
        counts[o.response_class] += 1
        if o.expected:
            actual += 1
        if o.is_correct:
            correct += 1

    accuracy = 0.0 if trial_count <= 0 else clamp_pct((correct / float(trial_count)) * 100.0)
    return ModalityStats(
        modality=modality,
        accuracy=accuracy,
        actual_matches=actual,
        hits=counts[ResponseClass.HIT],
        misses=counts[ResponseClass.MISS],
        false_alarms=counts[ResponseClass.FALSE_ALARM],
        correct_rejections=counts[ResponseClass.CORRECT_REJECTION],
    )


def summarize(
    mode: GameMode,
    n_level: int,
    outcomes: Iterable[TrialOutcome],
    *,
    trial_count: int | None = None,
    timestamp: str | None = None,
) -> SessionSummary:
    """Freeze a finished trial log into a SessionSummary.

    ``trial_count`` defaults to the number of distinct trials in the log.
    Modalities that were not active in ``mode`` report zero accuracy and
    zero counts. Zero-trial sessions report 0 for accuracy and latency.
    """

    mode = GameMode(mode)
    active = mode.modalities
    log = [o for o in outcomes if o.modality in active]
    if trial_count is None:
        trial_count = len({o.trial_index for o in log})
    trial_count = max(0, int(trial_count))

    per_modality: dict[Modality, ModalityStats] = {}
    for m in Modality:
        if m in active:
            per_modality[m] = modality_stats(m, log, trial_count=trial_count)
        else:
            per_modality[m] = ModalityStats(modality=m, accuracy=0.0)

    accs = [per_modality[m].accuracy for m in active]
    overall = clamp_pct(sum(accs) / len(accs)) if accs else 0.0

    latencies = [float(o.latency_ms) for o in log]
    mean_latency = 0.0 if not latencies else sum(latencies) / len(latencies)

    return SessionSummary(
        trials=trial_count,
        n_level=int(n_level),
        mode=mode,
        accuracy=overall,
        average_response_time_ms=mean_latency,
        timestamp=timestamp if timestamp is not None else utc_now_iso(),
        visual=per_modality[Modality.VISUAL],
        audio=per_modality[Modality.AUDIO],
    )
