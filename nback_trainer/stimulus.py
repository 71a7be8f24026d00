from __future__ import annotations

from typing import Protocol, Sequence

from .nback_core import Modality, SeededRng, Stimulus

GRID_POSITIONS = 9
AUDIO_LETTERS: tuple[str, ...] = ("A", "B", "C", "D", "E", "F", "G", "H", "I", "J", "K", "L")


class SymbolSource(Protocol):
    def randrange(self, stop: int) -> int: ...
    def choice(self, seq: Sequence[str]) -> str: ...


def nback_match(history: Sequence[object], n_level: int, symbol: object) -> bool:
    """True iff ``symbol`` equals the entry exactly ``n_level`` steps back.

    ``history`` must not yet contain ``symbol``.
    """

    if n_level < 1 or len(history) < n_level:
        return False
    return history[len(history) - n_level] == symbol


class StimulusGenerator:
    """Draws stimulus pairs and owns the per-modality histories for one game."""

    def __init__(
        self,
        *,
        rng: SymbolSource | None = None,
        letters: Sequence[str] = AUDIO_LETTERS,
        grid_positions: int = GRID_POSITIONS,
    ) -> None:
        if grid_positions <= 0:
            raise ValueError("grid_positions must be > 0")
        if not letters:
            raise ValueError("letters must not be empty")

        self._rng: SymbolSource = rng if rng is not None else SeededRng()
        self._letters = tuple(str(ch) for ch in letters)
        self._grid_positions = int(grid_positions)

        self._visual: list[int] = []
        self._audio: list[str] = []
        self._matches: list[Stimulus] = []

    @property
    def visual_history(self) -> tuple[int, ...]:
        return tuple(self._visual)

    @property
    def audio_history(self) -> tuple[str, ...]:
        return tuple(self._audio)

    @property
    def match_log(self) -> tuple[Stimulus, ...]:
        return tuple(self._matches)

    def history(self, modality: Modality) -> tuple[int | str, ...]:
        return self.visual_history if modality is Modality.VISUAL else self.audio_history

    def reset(self) -> None:
        self._visual.clear()
        self._audio.clear()
        self._matches.clear()

    def generate(self, n_level: int) -> Stimulus:
        position = int(self._rng.randrange(self._grid_positions))
        letter = str(self._rng.choice(self._letters))

        # Flags are computed against the histories as they stood before this draw.
        visual_match = nback_match(self._visual, n_level, position)
        audio_match = nback_match(self._audio, n_level, letter)

        stimulus = Stimulus(
            trial_index=len(self._matches),
            position=position,
            letter=letter,
            visual_match=visual_match,
            audio_match=audio_match,
        )
        self._visual.append(position)
        self._audio.append(letter)
        self._matches.append(stimulus)
        return stimulus
