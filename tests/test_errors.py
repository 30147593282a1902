from __future__ import annotations

from errors import (
    DOWNLOAD_FAILED,
    ERROR_MESSAGES,
    UNKNOWN_ERROR,
    DownloadFailed,
    ModelNotReady,
    describe_state,
    user_message,
)
from models import ModelState


def test_error_message_includes_reason() -> None:
    exc = DownloadFailed("HTTP 503")
    assert exc.code == DOWNLOAD_FAILED
    assert exc.reason == "HTTP 503"
    assert str(exc) == "Model download failed. HTTP 503"


def test_user_message() -> None:
    assert user_message(ModelNotReady()) == "Model is not ready. Please download and load the model first."
    assert user_message(ValueError("boom")) == ERROR_MESSAGES[UNKNOWN_ERROR]


def test_describe_state() -> None:
    assert describe_state(ModelState.not_downloaded()) == "Not downloaded"
    assert describe_state(ModelState.downloading(0.426)) == "Downloading… 43%"
    assert describe_state(ModelState.retrying(2, 3)) == "Retrying download (2/3)…"
    assert describe_state(ModelState.downloaded()) == "Downloaded"
    assert describe_state(ModelState.loading()) == "Loading…"
    assert describe_state(ModelState.ready()) == "Ready"
    assert describe_state(ModelState.error("disk full")) == "Error: disk full"
