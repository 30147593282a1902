"""Simple JSON-based config store."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_ENV = "OFFLINE_DICTATION_CONFIG"
MODELS_DIR_ENV = "OFFLINE_DICTATION_MODELS_DIR"

# ISO-639-1 codes accepted as a language hint; "" means auto-detect.
SUPPORTED_LANGUAGES = {
    "": "Auto-detect",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "nl": "Dutch",
    "ru": "Russian",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
    "ar": "Arabic",
}

SPEECH_MODEL_SIZES = ("tiny", "base", "small", "medium")


def default_config_path() -> Path:
    override = os.getenv(CONFIG_ENV, "")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "offline_dictation" / "config.json"


def default_models_dir() -> Path:
    return Path.home() / ".local" / "share" / "offline_dictation" / "models"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or default_config_path()
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def get_language(self) -> str:
        data = self._read_all()
        language = str(data.get("language", ""))
        if language not in SUPPORTED_LANGUAGES:
            logger.warning("Ignoring unsupported language %r in config", language)
            return ""
        return language

    def set_language(self, language: str) -> None:
        if language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"unsupported language: {language!r}")
        self._update(language=language)

    def get_models_dir(self) -> Path:
        override = os.getenv(MODELS_DIR_ENV, "")
        if override:
            return Path(override).expanduser()
        value = self._read_all().get("models_dir")
        return Path(str(value)).expanduser() if value else default_models_dir()

    def set_models_dir(self, path: Path) -> None:
        self._update(models_dir=str(path))

    def get_format_text_enabled(self) -> bool:
        return bool(self._read_all().get("format_text_enabled", True))

    def set_format_text_enabled(self, enabled: bool) -> None:
        self._update(format_text_enabled=bool(enabled))

    def get_speech_model_size(self) -> str:
        size = str(self._read_all().get("speech_model_size", "small"))
        return size if size in SPEECH_MODEL_SIZES else "small"

    def set_speech_model_size(self, size: str) -> None:
        if size not in SPEECH_MODEL_SIZES:
            raise ValueError(f"unsupported model size: {size!r}")
        self._update(speech_model_size=size)

    def get_compute_type(self) -> str:
        return str(self._read_all().get("compute_type", "int8"))

    def get_download_max_attempts(self) -> int:
        try:
            return max(1, int(self._read_all().get("download_max_attempts", 3)))
        except (TypeError, ValueError):
            return 3

    def get_download_initial_delay_s(self) -> float:
        try:
            return max(0.0, float(self._read_all().get("download_initial_delay_s", 2.0)))
        except (TypeError, ValueError):
            return 2.0

    def _update(self, **values: object) -> None:
        data = self._read_all()
        data.update(values)
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
