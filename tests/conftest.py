"""Shared fakes for model lifecycle based tests."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional

from model_lifecycle import ModelLifecycle
from models import ArtifactFile, ModelSpec, ModelState

PAYLOAD = b"weights-" * 8


def make_spec(*names: str, min_size: int = 16) -> ModelSpec:
    names = names or ("model.bin",)
    return ModelSpec(
        key="test",
        display_name="Test model",
        directory_name="test-model",
        files=tuple(ArtifactFile(name, f"https://example.invalid/{name}", min_size=min_size) for name in names),
        size_description="~1 KB",
    )


class FakeDownloader:
    """Writes ``PAYLOAD`` to the destination; the first ``failures`` calls raise."""

    def __init__(self, failures: int = 0, payload: bytes = PAYLOAD) -> None:
        self.failures = failures
        self.payload = payload
        self.calls: list[str] = []

    def fetch(self, url: str, destination: Path, on_progress: Callable[[float], None], check_cancelled: Callable[[], None]) -> None:
        self.calls.append(url)
        check_cancelled()
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("connection reset")
        on_progress(0.5)
        destination.write_bytes(self.payload)
        on_progress(1.0)


class BlockingDownloader:
    """Leaves a partial file behind and spins until released or cancelled."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls: list[str] = []

    def fetch(self, url: str, destination: Path, on_progress: Callable[[float], None], check_cancelled: Callable[[], None]) -> None:
        self.calls.append(url)
        (destination.parent / f".{destination.name}.part").write_bytes(b"part")
        self.started.set()
        while not self.release.is_set():
            check_cancelled()
            time.sleep(0.01)
        destination.write_bytes(PAYLOAD)
        on_progress(1.0)


def make_manager(
    tmp_path: Path,
    handle: Any = None,
    *,
    downloaded: bool = True,
    loader: Optional[Callable[[Path], Any]] = None,
    downloader: Any = None,
    **kwargs: Any,
) -> ModelLifecycle:
    spec = make_spec()
    if downloaded:
        artifact_dir = tmp_path / spec.directory_name
        artifact_dir.mkdir(parents=True, exist_ok=True)
        for artifact in spec.files:
            (artifact_dir / artifact.name).write_bytes(PAYLOAD)
    return ModelLifecycle(
        spec,
        tmp_path,
        loader=loader or (lambda _path: handle),
        downloader=downloader or FakeDownloader(),
        **kwargs,
    )


def make_ready_manager(tmp_path: Path, handle: Any, **kwargs: Any) -> ModelLifecycle:
    manager = make_manager(tmp_path, handle, **kwargs)
    manager.load_model(wait=True)
    assert manager.state == ModelState.ready()
    return manager


def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
