"""The two model bundles the pipeline downloads, and their manager factories."""

from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import Optional

from downloader import HttpxDownloader
from interfaces import Downloader
from model_lifecycle import ModelLifecycle, StateCallback
from models import ArtifactFile, ModelSpec
from punctuation import OnnxPunctuationModel, load_punctuation_model
from recognizer import WhisperSpeechModel, load_whisper_model

SPEECH_MODEL_KEY = "speech"
PUNCTUATION_MODEL_KEY = "punctuation"

_HF = "https://huggingface.co"

# Smallest model.bin accepted per size, a little under the published file size.
_WHISPER_MIN_WEIGHTS = {
    "tiny": 70_000_000,
    "base": 130_000_000,
    "small": 450_000_000,
    "medium": 1_400_000_000,
}

_WHISPER_SIZE_DESCRIPTIONS = {
    "tiny": "~75 MB",
    "base": "~145 MB",
    "small": "~485 MB",
    "medium": "~1.5 GB",
}

PUNCTUATION_REPO = "1-800-BAD-CODE/punctuation_fullstop_truecase_english"
PUNCTUATION_ONNX_FILE = "punct_cap_seg_en.onnx"
PUNCTUATION_VOCAB_FILE = "spe_32k_lc_en.model"


def speech_model_spec(size: str = "small") -> ModelSpec:
    if size not in _WHISPER_MIN_WEIGHTS:
        raise ValueError(f"unknown whisper model size: {size!r}")
    base = f"{_HF}/Systran/faster-whisper-{size}/resolve/main"
    return ModelSpec(
        key=SPEECH_MODEL_KEY,
        display_name=f"Whisper {size}",
        directory_name=f"faster-whisper-{size}",
        files=(
            ArtifactFile("config.json", f"{base}/config.json", min_size=100),
            ArtifactFile("tokenizer.json", f"{base}/tokenizer.json", min_size=1_000_000),
            ArtifactFile("vocabulary.txt", f"{base}/vocabulary.txt", min_size=100_000),
            ArtifactFile("model.bin", f"{base}/model.bin", min_size=_WHISPER_MIN_WEIGHTS[size]),
        ),
        size_description=_WHISPER_SIZE_DESCRIPTIONS[size],
    )


def punctuation_model_spec() -> ModelSpec:
    base = f"{_HF}/{PUNCTUATION_REPO}/resolve/main"
    return ModelSpec(
        key=PUNCTUATION_MODEL_KEY,
        display_name="Punctuation model",
        directory_name="punctuation",
        files=(
            ArtifactFile(PUNCTUATION_VOCAB_FILE, f"{base}/{PUNCTUATION_VOCAB_FILE}", min_size=400_000),
            ArtifactFile(PUNCTUATION_ONNX_FILE, f"{base}/{PUNCTUATION_ONNX_FILE}", min_size=150_000_000),
        ),
        size_description="~200 MB",
    )


def create_speech_manager(
    models_dir: Path,
    *,
    size: str = "small",
    compute_type: str = "int8",
    downloader: Optional[Downloader] = None,
    max_attempts: int = 3,
    initial_delay_s: float = 2.0,
    on_state_change: Optional[StateCallback] = None,
) -> ModelLifecycle[WhisperSpeechModel]:
    return ModelLifecycle(
        speech_model_spec(size),
        models_dir,
        loader=partial(load_whisper_model, compute_type=compute_type),
        downloader=downloader or HttpxDownloader(),
        max_attempts=max_attempts,
        initial_delay_s=initial_delay_s,
        on_state_change=on_state_change,
    )


def create_punctuation_manager(
    models_dir: Path,
    *,
    downloader: Optional[Downloader] = None,
    max_attempts: int = 3,
    initial_delay_s: float = 2.0,
    on_state_change: Optional[StateCallback] = None,
) -> ModelLifecycle[OnnxPunctuationModel]:
    return ModelLifecycle(
        punctuation_model_spec(),
        models_dir,
        loader=partial(
            load_punctuation_model,
            onnx_file=PUNCTUATION_ONNX_FILE,
            vocab_file=PUNCTUATION_VOCAB_FILE,
        ),
        downloader=downloader or HttpxDownloader(),
        max_attempts=max_attempts,
        initial_delay_s=initial_delay_s,
        on_state_change=on_state_change,
    )
