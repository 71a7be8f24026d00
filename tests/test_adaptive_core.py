from __future__ import annotations

import pytest

from nback_trainer.adaptive import LevelChange, next_level


@pytest.mark.parametrize(
    ("n", "accuracy", "expected_n", "change"),
    [
        (5, 85.0, 6, LevelChange.INCREASE),
        (5, 80.0, 6, LevelChange.INCREASE),
        (5, 50.0, 4, LevelChange.DECREASE),
        (5, 70.0, 5, LevelChange.PLATEAU),
        (5, 60.0, 5, LevelChange.PLATEAU),
        (8, 90.0, 8, LevelChange.AT_CEILING),
        (1, 10.0, 1, LevelChange.AT_FLOOR),
    ],
)
def test_next_level_thresholds(n: int, accuracy: float, expected_n: int, change: LevelChange) -> None:
    advice = next_level(n, accuracy)
    assert advice.previous_n == n
    assert advice.new_n == expected_n
    assert advice.change is change
    assert advice.changed is (expected_n != n)


def test_messages() -> None:
    assert next_level(2, 95.0).message == "N-Level increased to 3!"
    assert next_level(2, 10.0).message == "N-Level decreased to 1. Keep practicing!"
    assert next_level(8, 95.0).message == "Max N-Level (8) and performing excellently!"
    assert next_level(1, 10.0).message == "N-Level remains at 1. Keep it up!"
    assert next_level(3, 70.0).message == "N-Level maintained at 3. Good effort!"
