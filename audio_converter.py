"""Normalise captured audio to mono 16 kHz float32 samples."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import BinaryIO, Union

import numpy as np
import soundfile as sf
import soxr

from errors import AudioConversionFailed, AudioFileNotFound
from models import TARGET_SAMPLE_RATE, AudioSampleBuffer

logger = logging.getLogger(__name__)

# Shorter recordings are reported as empty instead of being transcribed.
MIN_DURATION_S = 0.5

AudioSource = Union[str, Path, bytes, bytearray, BinaryIO]


def convert_file(source: AudioSource) -> AudioSampleBuffer:
    """Decode ``source`` and return mono 16 kHz float32 samples.

    ``source`` may be a path, raw container bytes or a binary stream. A mono
    16 kHz float file is returned exactly as stored.
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.is_file():
            raise AudioFileNotFound(str(path))
        handle: Union[str, BinaryIO] = str(path)
    elif isinstance(source, (bytes, bytearray)):
        handle = io.BytesIO(bytes(source))
    else:
        handle = source

    try:
        with sf.SoundFile(handle) as snd:
            sample_rate = snd.samplerate
            channels = snd.channels
            subtype = snd.subtype
            data = snd.read(dtype="float32", always_2d=True)
    except (RuntimeError, ValueError, TypeError) as exc:
        raise AudioConversionFailed(f"cannot read audio: {exc}") from exc

    if data.shape[0] == 0:
        raise AudioConversionFailed("audio contains no samples")

    if sample_rate == TARGET_SAMPLE_RATE and channels == 1 and subtype == "FLOAT":
        logger.debug("Audio already mono %d Hz float32, skipping conversion", TARGET_SAMPLE_RATE)
        return AudioSampleBuffer(np.ascontiguousarray(data[:, 0]))

    logger.debug("Converting audio: %d Hz, %d channel(s), %s", sample_rate, channels, subtype)
    return convert_samples(data, sample_rate)


def convert_samples(samples: np.ndarray, sample_rate: int) -> AudioSampleBuffer:
    """Convert an in-memory buffer (frames x channels or 1-D) to the target format."""
    arr = np.asarray(samples)
    if arr.size == 0:
        raise AudioConversionFailed("audio contains no samples")
    if sample_rate <= 0:
        raise AudioConversionFailed(f"invalid sample rate {sample_rate}")
    if arr.ndim > 2:
        raise AudioConversionFailed(f"unsupported buffer shape {arr.shape}")

    if arr.dtype == np.float32 and arr.ndim == 1 and sample_rate == TARGET_SAMPLE_RATE:
        return AudioSampleBuffer(np.ascontiguousarray(arr))

    mono = _to_float(arr)
    if mono.ndim == 2:
        mono = mono.mean(axis=1) if mono.shape[1] > 1 else mono[:, 0]

    if sample_rate != TARGET_SAMPLE_RATE:
        try:
            mono = soxr.resample(mono, sample_rate, TARGET_SAMPLE_RATE)
        except (RuntimeError, ValueError) as exc:
            raise AudioConversionFailed(f"resampling failed: {exc}") from exc

    out = np.ascontiguousarray(mono, dtype=np.float32)
    if out.size == 0:
        raise AudioConversionFailed("conversion produced no samples")
    return AudioSampleBuffer(out)


def _to_float(arr: np.ndarray) -> np.ndarray:
    if np.issubdtype(arr.dtype, np.floating):
        return arr.astype(np.float32, copy=False)
    if arr.dtype == np.uint8:
        return (arr.astype(np.float32) - 128.0) / 128.0
    if np.issubdtype(arr.dtype, np.integer):
        scale = float(np.iinfo(arr.dtype).max) + 1.0
        return arr.astype(np.float32) / scale
    raise AudioConversionFailed(f"unsupported sample type {arr.dtype}")
