"""Protocol interfaces used by the pipeline components."""

from __future__ import annotations

from pathlib import Path
from queue import Queue
from typing import Callable, Optional, Protocol, Sequence

import numpy as np

from models import AudioFrame, PunctuationPrediction, TranscriptCandidate

ProgressCallback = Callable[[float], None]
CancelCheck = Callable[[], None]


class Downloader(Protocol):
    def fetch(
        self,
        url: str,
        destination: Path,
        on_progress: ProgressCallback,
        check_cancelled: CancelCheck,
    ) -> None: ...


class SpeechModel(Protocol):
    def transcribe(
        self, samples: np.ndarray, language: Optional[str]
    ) -> TranscriptCandidate: ...


class PunctuationModel(Protocol):
    max_length: int

    def count_tokens(self, text: str) -> int: ...

    def predict(self, words: Sequence[str]) -> list[PunctuationPrediction]: ...


class Recorder(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...


class ConfigStore(Protocol):
    def get_language(self) -> str: ...

    def set_language(self, language: str) -> None: ...

    def get_models_dir(self) -> Path: ...

    def get_format_text_enabled(self) -> bool: ...

    def get_speech_model_size(self) -> str: ...

    def get_compute_type(self) -> str: ...

    def get_download_max_attempts(self) -> int: ...

    def get_download_initial_delay_s(self) -> float: ...
