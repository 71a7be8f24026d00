"""Smoke tests for the pygame UI.

These tests verify that the application's main loop can initialise and
execute a handful of frames without crashing when the SDL dummy video
driver is used. They do not attempt to check rendering correctness;
they ensure that the integration points between pygame and the game
controller do not raise exceptions in a headless environment.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

# Use the dummy drivers before importing pygame or the application
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")


def test_app_runs_headless(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Ensure the application can start and run a few frames headlessly."""
    monkeypatch.setenv("NBACK_STORE_PATH", str(tmp_path / "sessions.sqlite3"))

    # Import inside the test so that environment variables take effect
    from nback_trainer.app import run

    exit_code = run(max_frames=3)
    assert exit_code == 0


def test_tone_announcer_never_raises() -> None:
    import pygame

    from nback_trainer.app import ToneAnnouncer

    pygame.init()
    try:
        announcer = ToneAnnouncer()
        announcer.announce("A")
        announcer.announce("not-a-letter")
    finally:
        pygame.quit()


def test_play_config_carries_over_between_screens() -> None:
    from nback_trainer.app import ControllerFactory
    from nback_trainer.clock import RealClock
    from nback_trainer.collaborators import NullAnnouncer, NullNotifier
    from nback_trainer.config import StaticPreferences
    from nback_trainer.nback_core import GameMode
    from nback_trainer.persistence import InMemorySessionStore

    factory = ControllerFactory(
        clock=RealClock(),
        store=InMemorySessionStore(),
        announcer=NullAnnouncer(),
        preferences=StaticPreferences(),
    )

    first = factory.play(NullNotifier(), lambda: None)
    assert first.config.n_level == 2
    assert first.configure(n_level=5, mode=GameMode.DUAL) is True

    practice = factory.practice(NullNotifier(), lambda: None)
    assert practice.practice is True
    assert practice.config.n_level == 1

    second = factory.play(NullNotifier(), lambda: None)
    assert second.config.n_level == 5
    assert second.config.mode is GameMode.DUAL
    assert second.practice is False
