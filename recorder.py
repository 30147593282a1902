"""Microphone recorder adapter."""

from __future__ import annotations

import logging
import threading
import time
from queue import Empty, Full, Queue
from typing import Any, Iterator, Optional

import numpy as np

from models import AudioFrame

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class SoundDeviceRecorder:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        device: Optional[int] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.device = device
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self.dropped_chunks = 0
        self._audio_queue: Queue[AudioFrame | None] | None = None

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._audio_queue = audio_queue
            self.dropped_chunks = 0
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                blocksize=blocksize,
                device=self.device,
                callback=self._on_audio,
            )
            self._stream.start()
            self._running = True

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                self._emit_sentinel_if_needed()
                return
            self._running = False
            if self._stream is not None:
                self._stream.stop()
                self._stream.close()
                self._stream = None
            if self.dropped_chunks:
                logger.warning("Dropped %d audio chunks, queue was full", self.dropped_chunks)
            self._emit_sentinel_if_needed()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or self._audio_queue is None:
            return
        if status:
            logger.debug("Input stream status: %s", status)
        # sounddevice reuses the buffer after the callback returns.
        samples = np.array(indata, dtype=np.float32, copy=True)
        frame = AudioFrame(
            samples=samples,
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            self._audio_queue.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1

    def _emit_sentinel_if_needed(self) -> None:
        if self._audio_queue is None:
            return
        try:
            self._audio_queue.put_nowait(None)
        except Full:
            # Make room for the sentinel; readers block on it.
            try:
                self._audio_queue.get_nowait()
            except Empty:
                pass
            self._audio_queue.put_nowait(None)


def iter_frames(
    audio_queue: Queue[AudioFrame | None], poll_s: float = 0.2, stop_event: Optional[threading.Event] = None
) -> Iterator[AudioFrame]:
    """Yield frames from ``audio_queue`` until the ``None`` sentinel."""
    while stop_event is None or not stop_event.is_set():
        try:
            frame = audio_queue.get(timeout=poll_s)
        except Empty:
            continue
        if frame is None:
            return
        yield frame
