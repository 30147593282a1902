from __future__ import annotations

from pathlib import Path

import pytest

from config import MODELS_DIR_ENV, JsonConfigStore, default_models_dir


def test_config_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    assert store.get_language() == ""
    assert store.get_format_text_enabled() is True
    assert store.get_speech_model_size() == "small"

    store.set_language("de")
    store.set_format_text_enabled(False)
    store.set_speech_model_size("base")
    store.set_models_dir(tmp_path / "models")

    reloaded = JsonConfigStore(path=path)
    assert reloaded.get_language() == "de"
    assert reloaded.get_format_text_enabled() is False
    assert reloaded.get_speech_model_size() == "base"
    assert reloaded.get_models_dir() == tmp_path / "models"


def test_config_invalid_json_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_language() == ""
    assert store.get_models_dir() == default_models_dir()
    assert store.get_download_max_attempts() == 3
    assert store.get_download_initial_delay_s() == 2.0


def test_config_rejects_unsupported_values(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text('{"language": "xx", "speech_model_size": "huge", "download_max_attempts": "many"}', encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_language() == ""
    assert store.get_speech_model_size() == "small"
    assert store.get_download_max_attempts() == 3
    with pytest.raises(ValueError):
        store.set_language("klingon")


def test_models_dir_env_override(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setenv(MODELS_DIR_ENV, str(tmp_path / "elsewhere"))
    store = JsonConfigStore(path=tmp_path / "config.json")
    store.set_models_dir(tmp_path / "ignored")

    assert store.get_models_dir() == tmp_path / "elsewhere"
