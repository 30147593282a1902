"""Core data models for the transcription pipeline."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum, IntEnum

import numpy as np

from errors import DownloadCancelled

TARGET_SAMPLE_RATE = 16000


class ModelStatus(str, Enum):
    NOT_DOWNLOADED = "not_downloaded"
    DOWNLOADING = "downloading"
    RETRYING = "retrying"
    DOWNLOADED = "downloaded"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class ModelState:
    status: ModelStatus
    progress: float = 0.0
    attempt: int = 0
    max_attempts: int = 0
    message: str = ""

    @classmethod
    def not_downloaded(cls) -> ModelState:
        return cls(ModelStatus.NOT_DOWNLOADED)

    @classmethod
    def downloading(cls, progress: float) -> ModelState:
        return cls(ModelStatus.DOWNLOADING, progress=progress)

    @classmethod
    def retrying(cls, attempt: int, max_attempts: int) -> ModelState:
        return cls(ModelStatus.RETRYING, attempt=attempt, max_attempts=max_attempts)

    @classmethod
    def downloaded(cls) -> ModelState:
        return cls(ModelStatus.DOWNLOADED)

    @classmethod
    def loading(cls) -> ModelState:
        return cls(ModelStatus.LOADING)

    @classmethod
    def ready(cls) -> ModelState:
        return cls(ModelStatus.READY)

    @classmethod
    def error(cls, message: str) -> ModelState:
        return cls(ModelStatus.ERROR, message=message)

    @property
    def is_ready(self) -> bool:
        return self.status == ModelStatus.READY

    @property
    def is_downloading(self) -> bool:
        return self.status in (ModelStatus.DOWNLOADING, ModelStatus.RETRYING)

    @property
    def is_downloaded(self) -> bool:
        return self.status in (ModelStatus.DOWNLOADED, ModelStatus.LOADING, ModelStatus.READY)

    @property
    def is_error(self) -> bool:
        return self.status == ModelStatus.ERROR


@dataclass(frozen=True)
class ArtifactFile:
    """One file of a model bundle and the smallest size accepted as complete."""

    name: str
    url: str
    min_size: int = 1


@dataclass(frozen=True)
class ModelSpec:
    key: str
    display_name: str
    directory_name: str
    files: tuple[ArtifactFile, ...]
    size_description: str = ""


class DownloadSession:
    """A single cancellable download of one model bundle."""

    def __init__(self, model_key: str, max_attempts: int) -> None:
        self.model_key = model_key
        self.max_attempts = max_attempts
        self.attempt = 0
        self.progress = 0.0
        self._cancel_event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        self._cancel_event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise DownloadCancelled(self.model_key)

    def wait(self, delay_s: float) -> None:
        """Sleep for ``delay_s`` unless cancelled first."""
        if self._cancel_event.wait(timeout=delay_s):
            raise DownloadCancelled(self.model_key)


@dataclass
class AudioSampleBuffer:
    samples: np.ndarray
    sample_rate: int = TARGET_SAMPLE_RATE

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_s(self) -> float:
        return len(self) / float(self.sample_rate)


@dataclass
class AudioFrame:
    samples: np.ndarray
    sample_rate: int = TARGET_SAMPLE_RATE
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class TranscriptCandidate:
    text: str
    language: str = ""


class PunctuationClass(IntEnum):
    NONE = 0
    ACRONYM = 1
    PERIOD = 2
    COMMA = 3
    QUESTION = 4

    @property
    def mark(self) -> str:
        return _PUNCTUATION_MARKS[self]

    @property
    def ends_sentence(self) -> bool:
        return self in (PunctuationClass.PERIOD, PunctuationClass.QUESTION)


_PUNCTUATION_MARKS = {
    PunctuationClass.NONE: "",
    PunctuationClass.ACRONYM: "",
    PunctuationClass.PERIOD: ".",
    PunctuationClass.COMMA: ",",
    PunctuationClass.QUESTION: "?",
}


class CaseClass(IntEnum):
    LOWER = 0
    UPPER = 1


@dataclass(frozen=True)
class PunctuationPrediction:
    punctuation: PunctuationClass = PunctuationClass.NONE
    case: CaseClass = CaseClass.LOWER


@dataclass
class ListItem:
    number: int
    start: int
    end: int
    content: str = ""


@dataclass
class StageResult:
    """Outcome of an optional formatting stage.

    ``applied`` is False when the stage fell back to returning its input;
    ``reason`` then says why.
    """

    text: str
    applied: bool
    reason: str = ""


@dataclass
class ModelStatusReport:
    key: str
    display_name: str
    state: ModelState
    progress: float
    size_description: str = ""
