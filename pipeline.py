"""Transcription orchestration: audio in, paste-ready text out."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional, Union

import numpy as np

from audio_converter import MIN_DURATION_S, AudioSource, convert_file, convert_samples
from errors import AudioConversionFailed, EmptyTranscription, InferenceFailed, LoadFailed, ModelNotReady
from hallucination_filter import clean, is_hallucination, rejection_reason
from list_formatter import ListFormatter
from model_lifecycle import ModelLifecycle
from models import TARGET_SAMPLE_RATE, AudioFrame, AudioSampleBuffer, ModelStatus, StageResult, TranscriptCandidate
from punctuation import PunctuationEngine
from recognizer import SpeechRecognizer

logger = logging.getLogger(__name__)

PartialCallback = Callable[[str], None]


class TranscriptionPipeline:
    """Runs convert -> transcribe -> filter -> punctuate -> list-format.

    The speech and punctuation managers are created by the caller and passed
    in; the pipeline never keeps model state between calls.  An empty string
    means no usable speech was found.
    """

    def __init__(
        self,
        speech_manager: ModelLifecycle,
        punctuation_manager: Optional[ModelLifecycle] = None,
        *,
        language: str = "",
        format_text: bool = True,
        min_duration_s: float = MIN_DURATION_S,
        partial_interval_s: float = 1.0,
        list_formatter: Optional[ListFormatter] = None,
    ) -> None:
        self._speech_manager = speech_manager
        self._recognizer = SpeechRecognizer(speech_manager)
        self._punctuation = (
            PunctuationEngine(punctuation_manager, enabled=format_text) if punctuation_manager is not None else None
        )
        self._list_formatter = list_formatter or ListFormatter()
        self.language = language
        self._min_duration_s = min_duration_s
        self._partial_interval_s = partial_interval_s

    @property
    def format_text(self) -> bool:
        return self._punctuation is not None and self._punctuation.enabled

    @format_text.setter
    def format_text(self, enabled: bool) -> None:
        if self._punctuation is not None:
            self._punctuation.enabled = enabled

    def is_ready(self) -> bool:
        return self._recognizer.is_ready()

    # ------------------------------------------------------------------
    # Model readiness
    # ------------------------------------------------------------------

    def ensure_speech_model_loaded(self, timeout_s: float = 60.0, poll_s: float = 0.5) -> None:
        deadline = time.monotonic() + timeout_s
        while True:
            status = self._speech_manager.state.status
            if status == ModelStatus.READY:
                return
            if status == ModelStatus.DOWNLOADED:
                self._speech_manager.load_model(wait=True)
                continue
            if status in (ModelStatus.NOT_DOWNLOADED, ModelStatus.ERROR):
                raise ModelNotReady(f"({status.value})")
            if time.monotonic() >= deadline:
                raise ModelNotReady(f"(still {status.value})")
            time.sleep(poll_s)

    def warm_up(self, wait: bool = False) -> None:
        """Load the speech model, then start (or with ``wait``, finish) the punctuation load."""
        self.ensure_speech_model_loaded()
        if self._punctuation is None or not self._punctuation.enabled:
            return
        try:
            self._punctuation.ensure_loaded(wait=wait)
        except LoadFailed as exc:
            logger.warning("Continuing without punctuation: %s", exc.reason)

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------

    def transcribe(self, source: AudioSource, language: Optional[str] = None) -> str:
        return self.transcribe_buffer(convert_file(source), language)

    def transcribe_samples(
        self, samples: np.ndarray, sample_rate: int = TARGET_SAMPLE_RATE, language: Optional[str] = None
    ) -> str:
        return self.transcribe_buffer(convert_samples(samples, sample_rate), language)

    def transcribe_buffer(self, buffer: AudioSampleBuffer, language: Optional[str] = None) -> str:
        if buffer.duration_s < self._min_duration_s:
            raise EmptyTranscription(f"({buffer.duration_s:.2f}s of audio)")
        self._require_ready()
        hint = self._language_hint(language)
        candidate = self._recognizer.transcribe(buffer, hint)
        return self._postprocess(candidate, hint or "")

    def transcribe_stream(
        self,
        frames: Iterable[Union[AudioFrame, np.ndarray]],
        on_partial: Optional[PartialCallback] = None,
        language: Optional[str] = None,
    ) -> str:
        """Transcribe audio as it arrives, reporting interim text.

        Every ``partial_interval_s`` of new audio the whole recording so far
        is transcribed again and, if it changed and is not a hallucination,
        passed to ``on_partial``.  Interim failures are ignored; the final
        pass over all audio goes through the full formatting chain.
        """
        self._require_ready()
        hint = self._language_hint(language)
        chunks: list[np.ndarray] = []
        pending = 0
        last_partial = ""
        interval = int(self._partial_interval_s * TARGET_SAMPLE_RATE)

        for frame in frames:
            try:
                if isinstance(frame, AudioFrame):
                    buffer = convert_samples(frame.samples, frame.sample_rate)
                else:
                    buffer = convert_samples(frame, TARGET_SAMPLE_RATE)
            except AudioConversionFailed as exc:
                logger.debug("Dropping unusable frame: %s", exc.reason)
                continue
            chunks.append(buffer.samples)
            pending += len(buffer)
            if on_partial is None or pending < interval:
                continue
            pending = 0
            try:
                candidate = self._recognizer.transcribe(np.concatenate(chunks), hint)
            except InferenceFailed as exc:
                logger.debug("Interim transcription failed: %s", exc.reason)
                continue
            text = candidate.text
            if text and text != last_partial and not is_hallucination(text, hint or ""):
                last_partial = text
                on_partial(text)

        if not chunks:
            raise EmptyTranscription("(no audio received)")
        return self.transcribe_buffer(AudioSampleBuffer(np.concatenate(chunks)), language)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require_ready(self) -> None:
        if not self._recognizer.is_ready():
            raise ModelNotReady(f"({self._speech_manager.spec.display_name})")

    def _language_hint(self, language: Optional[str]) -> Optional[str]:
        value = self.language if language is None else language
        return value or None

    def _postprocess(self, candidate: TranscriptCandidate, language: str) -> str:
        reason = rejection_reason(candidate.text, language)
        if reason is not None:
            logger.info("Discarded transcript as hallucination (%s)", reason)
            return ""
        text = clean(candidate.text)
        if not text:
            return ""

        punctuated = self._punctuate(text)
        if not punctuated.applied:
            logger.debug("Punctuation not applied: %s", punctuated.reason)
        text = clean(punctuated.text)

        return self._format_lists(text).text

    def _punctuate(self, text: str) -> StageResult:
        if self._punctuation is None:
            return StageResult(text, applied=False, reason="no punctuation model")
        return self._punctuation.try_format(text)

    def _format_lists(self, text: str) -> StageResult:
        try:
            return self._list_formatter.try_format(text)
        except Exception as exc:
            logger.warning("List formatting skipped: %s", exc)
            return StageResult(text, applied=False, reason=str(exc))
