from __future__ import annotations

from pathlib import Path

import pytest

from nback_trainer.config import (
    ADAPTIVE_ENV,
    STORE_PATH_ENV,
    GameConfig,
    default_store_path,
    make_config,
    practice_config,
    preferences_from_env,
)
from nback_trainer.nback_core import GameMode


def test_make_config_clamps_out_of_range_values() -> None:
    cfg = make_config(mode="dual", n_level=12, trial_count=3, stimulus_duration_ms=9000)

    assert cfg.mode is GameMode.DUAL
    assert cfg.n_level == 8
    assert cfg.trial_count == 10
    assert cfg.stimulus_duration_ms == 4000


def test_make_config_falls_back_on_garbage() -> None:
    cfg = make_config(mode="nope", n_level="abc", trial_count=None, stimulus_duration_ms=float("nan"))

    assert cfg == GameConfig()


def test_with_changes_normalizes() -> None:
    cfg = make_config().with_changes(n_level=0, trial_count=99)
    assert cfg.n_level == 1
    assert cfg.trial_count == 50


def test_practice_config_is_fixed() -> None:
    cfg = practice_config()
    assert cfg.practice is True
    assert cfg.mode is GameMode.VISUAL
    assert cfg.n_level == 1
    assert cfg.trial_count == 7

    changed = cfg.with_changes(mode=GameMode.DUAL, n_level=5)
    assert changed == cfg


@pytest.mark.parametrize(("raw", "expected"), [("0", False), ("off", False), ("1", True), ("yes", True)])
def test_preferences_from_env(monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
    monkeypatch.setenv(ADAPTIVE_ENV, raw)
    assert preferences_from_env().adaptive_difficulty_enabled() is expected


def test_default_store_path_honours_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv(STORE_PATH_ENV, str(tmp_path / "s.db"))
    assert default_store_path() == tmp_path / "s.db"

    monkeypatch.delenv(STORE_PATH_ENV)
    assert default_store_path().name == ".nback_trainer.sqlite3"
