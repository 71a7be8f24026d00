from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

MIN_N_LEVEL = 1
MAX_N_LEVEL = 8
RAISE_AT_ACCURACY = 80.0
LOWER_BELOW_ACCURACY = 60.0


class LevelChange(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    PLATEAU = "plateau"
    AT_CEILING = "at_ceiling"
    AT_FLOOR = "at_floor"


@dataclass(frozen=True, slots=True)
class LevelAdvice:
    previous_n: int
    new_n: int
    change: LevelChange
    message: str

    @property
    def changed(self) -> bool:
        return self.new_n != self.previous_n


def next_level(current_n: int, overall_accuracy: float) -> LevelAdvice:
    """Propose the next session's N from the last session's overall accuracy.

    Advisory only; callers decide whether to apply it.
    """

    n = int(current_n)
    acc = float(overall_accuracy)

    if acc >= RAISE_AT_ACCURACY and n < MAX_N_LEVEL:
        return LevelAdvice(n, n + 1, LevelChange.INCREASE, f"N-Level increased to {n + 1}!")
    if acc < LOWER_BELOW_ACCURACY and n > MIN_N_LEVEL:
        return LevelAdvice(n, n - 1, LevelChange.DECREASE, f"N-Level decreased to {n - 1}. Keep practicing!")
    if acc >= RAISE_AT_ACCURACY:
        return LevelAdvice(n, n, LevelChange.AT_CEILING, f"Max N-Level ({n}) and performing excellently!")
    if acc < LOWER_BELOW_ACCURACY:
        return LevelAdvice(n, n, LevelChange.AT_FLOOR, f"N-Level remains at {n}. Keep it up!")
    return LevelAdvice(n, n, LevelChange.PLATEAU, f"N-Level maintained at {n}. Good effort!")
