"""Speech inference on a local faster-whisper model.

The model is owned by a :class:`ModelLifecycle`; the recognizer only borrows
it for the duration of one ``transcribe`` call.  Decoding is pinned to zero
temperature without fallback so identical audio gives identical text.
Without a language hint whisper detects the language itself, which costs an
extra pass over the first 30 seconds of audio.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

import numpy as np

from errors import InferenceFailed, LoadFailed
from models import AudioSampleBuffer, TranscriptCandidate

if TYPE_CHECKING:  # pragma: no cover
    from interfaces import SpeechModel
    from model_lifecycle import ModelLifecycle

try:
    from faster_whisper import WhisperModel
except Exception:  # pragma: no cover
    WhisperModel = None  # type: ignore

logger = logging.getLogger(__name__)


class WhisperSpeechModel:
    """Inference handle around a loaded ``faster_whisper.WhisperModel``."""

    def __init__(self, model: object, beam_size: int = 5) -> None:
        self._model = model
        self._beam_size = beam_size

    def transcribe(self, samples: np.ndarray, language: Optional[str]) -> TranscriptCandidate:
        segments, info = self._model.transcribe(  # type: ignore[attr-defined]
            samples,
            language=language or None,
            task="transcribe",
            beam_size=self._beam_size,
            temperature=0.0,
            condition_on_previous_text=False,
            compression_ratio_threshold=2.4,
            log_prob_threshold=-1.0,
            no_speech_threshold=0.6,
            suppress_blank=True,
            without_timestamps=True,
        )
        # Segments are generated lazily; joining drives the decoding.
        text = " ".join(segment.text.strip() for segment in segments).strip()
        detected = language or str(getattr(info, "language", "") or "")
        return TranscriptCandidate(text=text, language=detected)


def load_whisper_model(
    model_dir: Path,
    compute_type: str = "int8",
    device: str = "cpu",
    cpu_threads: int = 0,
) -> WhisperSpeechModel:
    if WhisperModel is None:
        raise LoadFailed("faster-whisper is not installed")
    model = WhisperModel(
        str(model_dir),
        device=device,
        compute_type=compute_type,
        cpu_threads=cpu_threads,
        local_files_only=True,
    )
    return WhisperSpeechModel(model)


class SpeechRecognizer:
    def __init__(self, manager: ModelLifecycle[SpeechModel]) -> None:
        self._manager = manager

    def is_ready(self) -> bool:
        return self._manager.is_ready()

    def transcribe(
        self,
        samples: Union[np.ndarray, AudioSampleBuffer],
        language_hint: Optional[str] = None,
    ) -> TranscriptCandidate:
        """Run the speech model on 16 kHz mono float32 samples.

        Raises :class:`ModelNotReady` if the speech model is not loaded and
        :class:`InferenceFailed` if the model raises.
        """
        if isinstance(samples, AudioSampleBuffer):
            samples = samples.samples
        started = time.monotonic()
        with self._manager.borrow() as model:
            try:
                candidate = model.transcribe(samples, language_hint or None)
            except Exception as exc:
                raise self._to_error(exc) from exc
        candidate.text = candidate.text.strip()
        logger.debug(
            "Transcribed %.2fs of audio in %.2fs (language=%s)",
            len(samples) / 16000.0,
            time.monotonic() - started,
            candidate.language or "auto",
        )
        return candidate

    def _to_error(self, exc: Exception) -> InferenceFailed:
        """Map a backend exception to the pipeline error."""
        message = str(exc) or exc.__class__.__name__
        if isinstance(exc, MemoryError):
            message = "out of memory while decoding"
        return InferenceFailed(message)
