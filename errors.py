"""Shared error codes, user-facing messages and pipeline exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from models import ModelState

MODEL_NOT_READY = "MODEL_NOT_READY"
MODEL_NOT_DOWNLOADED = "MODEL_NOT_DOWNLOADED"
DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
LOAD_FAILED = "LOAD_FAILED"
AUDIO_CONVERSION_FAILED = "AUDIO_CONVERSION_FAILED"
FILE_NOT_FOUND = "FILE_NOT_FOUND"
EMPTY_TRANSCRIPTION = "EMPTY_TRANSCRIPTION"
INVALID_MODEL_FILE = "INVALID_MODEL_FILE"
INFERENCE_FAILED = "INFERENCE_FAILED"
UNKNOWN_ERROR = "UNKNOWN_ERROR"

ERROR_MESSAGES = {
    MODEL_NOT_READY: "Model is not ready. Please download and load the model first.",
    MODEL_NOT_DOWNLOADED: "Model not downloaded. Please download the model first.",
    DOWNLOAD_FAILED: "Model download failed.",
    LOAD_FAILED: "Failed to load model.",
    AUDIO_CONVERSION_FAILED: "Failed to convert audio.",
    FILE_NOT_FOUND: "Audio file not found.",
    EMPTY_TRANSCRIPTION: "No speech detected in the recording.",
    INVALID_MODEL_FILE: "Invalid or corrupted model file.",
    INFERENCE_FAILED: "Transcription failed.",
    UNKNOWN_ERROR: "Something went wrong, please retry.",
}


class PipelineError(Exception):
    code = UNKNOWN_ERROR

    def __init__(self, reason: str = "") -> None:
        self.reason = reason
        message = ERROR_MESSAGES[self.code]
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)


class ModelNotReady(PipelineError):
    code = MODEL_NOT_READY


class ModelNotDownloaded(PipelineError):
    code = MODEL_NOT_DOWNLOADED


class DownloadFailed(PipelineError):
    code = DOWNLOAD_FAILED


class LoadFailed(PipelineError):
    code = LOAD_FAILED


class AudioConversionFailed(PipelineError):
    code = AUDIO_CONVERSION_FAILED


class AudioFileNotFound(PipelineError):
    code = FILE_NOT_FOUND


class EmptyTranscription(PipelineError):
    code = EMPTY_TRANSCRIPTION


class InvalidModelFile(PipelineError):
    code = INVALID_MODEL_FILE


class InferenceFailed(PipelineError):
    code = INFERENCE_FAILED


class DownloadCancelled(Exception):
    """Raised inside a download session when the user cancels it."""


def user_message(exc: BaseException) -> str:
    """Map any exception to text that can be shown to the user."""
    if isinstance(exc, PipelineError):
        return str(exc)
    return ERROR_MESSAGES[UNKNOWN_ERROR]


def describe_state(state: ModelState) -> str:
    status = state.status
    if status == "not_downloaded":
        return "Not downloaded"
    if status == "downloading":
        return f"Downloading… {int(round(state.progress * 100))}%"
    if status == "retrying":
        # Raw transport errors are not shown while retries remain.
        return f"Retrying download ({state.attempt}/{state.max_attempts})…"
    if status == "downloaded":
        return "Downloaded"
    if status == "loading":
        return "Loading…"
    if status == "ready":
        return "Ready"
    return f"Error: {state.message}" if state.message else "Error"
