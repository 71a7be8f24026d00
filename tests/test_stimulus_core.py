from __future__ import annotations

from collections.abc import Sequence

import pytest

from nback_trainer.nback_core import Modality, SeededRng
from nback_trainer.stimulus import AUDIO_LETTERS, GRID_POSITIONS, StimulusGenerator, nback_match


class ScriptedRng:
    def __init__(self, positions: Sequence[int], letters: Sequence[str]) -> None:
        self._positions = list(positions)
        self._letters = list(letters)

    def randrange(self, stop: int) -> int:
        return self._positions.pop(0)

    def choice(self, seq: Sequence[str]) -> str:
        return self._letters.pop(0)


def test_nback_match_needs_full_history() -> None:
    assert nback_match([], 1, 3) is False
    assert nback_match([3], 2, 3) is False
    assert nback_match([3], 1, 3) is True
    assert nback_match([3, 5], 2, 3) is True
    assert nback_match([3, 5], 2, 5) is False


def test_generator_flags_are_computed_before_append() -> None:
    gen = StimulusGenerator(rng=ScriptedRng([4, 4, 0, 4], ["A", "B", "A", "B"]))

    s0 = gen.generate(2)
    s1 = gen.generate(2)
    s2 = gen.generate(2)
    s3 = gen.generate(2)

    assert [s.trial_index for s in (s0, s1, s2, s3)] == [0, 1, 2, 3]
    # First N stimuli never match.
    assert (s0.visual_match, s0.audio_match) == (False, False)
    assert (s1.visual_match, s1.audio_match) == (False, False)
    assert (s2.visual_match, s2.audio_match) == (False, True)
    assert (s3.visual_match, s3.audio_match) == (True, True)

    assert gen.visual_history == (4, 4, 0, 4)
    assert gen.audio_history == ("A", "B", "A", "B")
    assert gen.history(Modality.AUDIO) == gen.audio_history
    assert gen.match_log == (s0, s1, s2, s3)


def test_reset_clears_every_history() -> None:
    gen = StimulusGenerator(rng=ScriptedRng([1, 1], ["C", "C"]))
    gen.generate(1)
    gen.reset()

    s = gen.generate(1)
    assert s.trial_index == 0
    assert s.visual_match is False
    assert s.audio_match is False
    assert gen.visual_history == (1,)


def test_seeded_generator_stays_in_range_and_is_deterministic() -> None:
    g1 = StimulusGenerator(rng=SeededRng(123))
    g2 = StimulusGenerator(rng=SeededRng(123))

    seq1 = [g1.generate(2) for _ in range(40)]
    seq2 = [g2.generate(2) for _ in range(40)]

    assert seq1 == seq2
    assert all(0 <= s.position < GRID_POSITIONS for s in seq1)
    assert all(s.letter in AUDIO_LETTERS for s in seq1)
    assert len(AUDIO_LETTERS) == 12


def test_generator_rejects_empty_alphabet() -> None:
    with pytest.raises(ValueError):
        StimulusGenerator(letters=())
    with pytest.raises(ValueError):
        StimulusGenerator(grid_positions=0)
