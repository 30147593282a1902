"""Tests for the command line entrypoint."""

from __future__ import annotations

from pathlib import Path

import pytest

import main as main_mod
from config import CONFIG_ENV, MODELS_DIR_ENV


@pytest.fixture(autouse=True)
def _isolated_dirs(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv(CONFIG_ENV, str(tmp_path / "config.json"))
    monkeypatch.setenv(MODELS_DIR_ENV, str(tmp_path / "models"))


def test_status_lists_both_models(capsys) -> None:  # noqa: ANN001
    assert main_mod.main(["status"]) == 0

    out = capsys.readouterr().out
    assert "Whisper small" in out
    assert "Punctuation model" in out
    assert out.count("Not downloaded") == 2
    assert "Auto-detect" in out


def test_transcribe_without_model_reports_error(capsys, tmp_path: Path) -> None:  # noqa: ANN001
    code = main_mod.main(["transcribe", str(tmp_path / "clip.wav")])

    assert code == 1
    assert "Model is not ready" in capsys.readouterr().err


def test_delete_is_safe_without_models(capsys) -> None:  # noqa: ANN001
    assert main_mod.main(["-q", "delete", "all"]) == 0
    assert capsys.readouterr().err == ""
