"""Download / load / unload state machine shared by every local model."""

from __future__ import annotations

import logging
import shutil
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generic, Iterator, Optional, TypeVar

from errors import (
    DownloadCancelled,
    DownloadFailed,
    InvalidModelFile,
    LoadFailed,
    ModelNotDownloaded,
    ModelNotReady,
)
from interfaces import Downloader
from models import ArtifactFile, DownloadSession, ModelSpec, ModelState, ModelStatus, ModelStatusReport

logger = logging.getLogger(__name__)

H = TypeVar("H")

StateCallback = Callable[[ModelState, ModelState], None]


class ModelLifecycle(Generic[H]):
    """Owns one model's artefacts on disk and its in-memory inference handle.

    The handle is produced by ``loader(artifact_dir)`` and never leaves this
    object except through :meth:`borrow`, which holds the inference lock for
    the duration of the call so an unload cannot pull the handle out from
    under a running inference.
    """

    def __init__(
        self,
        spec: ModelSpec,
        models_dir: Path,
        loader: Callable[[Path], H],
        downloader: Downloader,
        *,
        max_attempts: int = 3,
        initial_delay_s: float = 2.0,
        unloader: Optional[Callable[[H], None]] = None,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self._spec = spec
        self._models_dir = Path(models_dir)
        self._loader = loader
        self._unloader = unloader
        self._downloader = downloader
        self._max_attempts = max(1, max_attempts)
        self._initial_delay_s = initial_delay_s
        self._on_state_change = on_state_change

        self._lock = threading.RLock()
        self._inference_lock = threading.Lock()
        self._state = ModelState.not_downloaded()
        self._progress = 0.0
        self._handle: Optional[H] = None
        self._session: Optional[DownloadSession] = None
        self._loading = False
        self._load_generation = 0

        self.check_existing()

    @property
    def spec(self) -> ModelSpec:
        return self._spec

    @property
    def key(self) -> str:
        return self._spec.key

    @property
    def artifact_dir(self) -> Path:
        return self._models_dir / self._spec.directory_name

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def is_model_downloaded(self) -> bool:
        return self._state.is_downloaded

    def is_ready(self) -> bool:
        return self._state.is_ready and self._handle is not None

    def status_report(self) -> ModelStatusReport:
        with self._lock:
            return ModelStatusReport(
                key=self._spec.key,
                display_name=self._spec.display_name,
                state=self._state,
                progress=self._progress,
                size_description=self._spec.size_description,
            )

    # ------------------------------------------------------------------
    # Disk state
    # ------------------------------------------------------------------

    def check_existing(self) -> ModelState:
        """Reconcile the state with what is on disk.

        A bundle with a missing or undersized file is a leftover of an
        interrupted download; it is removed and reported as not downloaded.
        """
        with self._lock:
            if self._session is not None or self._loading or self._handle is not None:
                return self._state
            if self._artifacts_complete():
                self._transition(ModelState.downloaded())
            else:
                if self.artifact_dir.exists():
                    logger.warning(
                        "Removing incomplete %s artefacts at %s", self._spec.display_name, self.artifact_dir
                    )
                    self._remove_artifacts()
                self._transition(ModelState.not_downloaded())
            return self._state

    def _artifact_path(self, artifact: ArtifactFile) -> Path:
        return self.artifact_dir / artifact.name

    def _artifact_complete(self, artifact: ArtifactFile) -> bool:
        path = self._artifact_path(artifact)
        return path.is_file() and path.stat().st_size >= artifact.min_size

    def _artifacts_complete(self) -> bool:
        return all(self._artifact_complete(artifact) for artifact in self._spec.files)

    def _remove_artifacts(self) -> None:
        if self.artifact_dir.exists():
            shutil.rmtree(self.artifact_dir, ignore_errors=True)

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    def download_model(self) -> None:
        """Download the bundle on the calling thread, retrying with backoff.

        Returns quietly when another download is active, when the model is
        already loaded, or when the download is cancelled. Raises
        :class:`DownloadFailed` once every attempt has failed.
        """
        with self._lock:
            active = self._session is not None and not self._session.cancelled
            if active or self._loading or self._state.is_downloading or self._state.is_ready:
                logger.debug("Download of %s already active or not needed", self._spec.key)
                return
            session = DownloadSession(self._spec.key, self._max_attempts)
            self._session = session

        try:
            self._run_download(session)
        except DownloadCancelled:
            self._finish_cancelled(session)
        finally:
            with self._lock:
                if self._session is session:
                    self._session = None

    def start_download(self) -> threading.Thread:
        thread = threading.Thread(target=self._download_in_background, daemon=True)
        thread.start()
        return thread

    def cancel_download(self) -> None:
        with self._lock:
            session = self._session
            if session is None:
                return
            session.cancel()
            self._progress = 0.0
            self._transition(ModelState.not_downloaded())

    def _download_in_background(self) -> None:
        try:
            self.download_model()
        except DownloadFailed as exc:
            logger.error("Background download of %s failed: %s", self._spec.key, exc.reason)

    def _run_download(self, session: DownloadSession) -> None:
        self.artifact_dir.mkdir(parents=True, exist_ok=True)
        last_error: Optional[Exception] = None

        for attempt in range(1, session.max_attempts + 1):
            session.raise_if_cancelled()
            session.attempt = attempt
            with self._lock:
                session.raise_if_cancelled()
                if attempt == 1:
                    session.progress = 0.0
                    self._progress = 0.0
                    self._transition(ModelState.downloading(0.0))
                else:
                    # Keep the last reported progress across retries.
                    self._transition(ModelState.retrying(attempt, session.max_attempts))

            try:
                self._download_files(session)
                with self._lock:
                    session.raise_if_cancelled()
                    self._progress = 1.0
                    self._transition(ModelState.downloaded())
                logger.info("Downloaded %s to %s", self._spec.display_name, self.artifact_dir)
                return
            except DownloadCancelled:
                raise
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Download of %s failed (attempt %d/%d): %s",
                    self._spec.key,
                    attempt,
                    session.max_attempts,
                    exc,
                )
                if attempt < session.max_attempts:
                    delay = self._initial_delay_s * (2 ** (attempt - 1))
                    with self._lock:
                        session.raise_if_cancelled()
                        self._transition(ModelState.retrying(attempt + 1, session.max_attempts))
                    session.wait(delay)

        message = str(last_error) if last_error else f"Download failed after {session.max_attempts} attempts"
        with self._lock:
            session.raise_if_cancelled()
            if self._session is session:
                self._remove_artifacts()
                self._transition(ModelState.error(message))
        raise DownloadFailed(message) from last_error

    def _download_files(self, session: DownloadSession) -> None:
        files = self._spec.files
        count = len(files)
        for index, artifact in enumerate(files):
            session.raise_if_cancelled()
            if self._artifact_complete(artifact):
                self._report_progress(session, (index + 1) / count)
                continue

            def on_progress(fraction: float, index: int = index) -> None:
                self._report_progress(session, (index + fraction) / count)

            destination = self._artifact_path(artifact)
            self._downloader.fetch(artifact.url, destination, on_progress, session.raise_if_cancelled)
            if not self._artifact_complete(artifact):
                destination.unlink(missing_ok=True)
                raise InvalidModelFile(f"{artifact.name} is smaller than {artifact.min_size} bytes")

    def _report_progress(self, session: DownloadSession, value: float) -> None:
        with self._lock:
            if session is not self._session or session.cancelled:
                return
            value = max(session.progress, min(max(value, 0.0), 1.0))
            session.progress = value
            self._progress = value
            if self._state.status == ModelStatus.DOWNLOADING:
                self._transition(ModelState.downloading(value))

    def _finish_cancelled(self, session: DownloadSession) -> None:
        with self._lock:
            # A newer session owns the directory once it has started.
            if self._session is session:
                self._remove_artifacts()
                self._progress = 0.0
                self._transition(ModelState.not_downloaded())
        logger.info("Download of %s cancelled", session.model_key)

    # ------------------------------------------------------------------
    # Load / unload
    # ------------------------------------------------------------------

    def load_model(self, wait: bool = True) -> None:
        """Load the downloaded bundle into memory on a worker thread.

        A call made while a load is already running is a no-op. With
        ``wait=False`` the caller returns immediately and observes the
        outcome through :attr:`state`.
        """
        with self._lock:
            if self._handle is not None and self._state.is_ready:
                return
            if self._loading:
                logger.debug("Load of %s already in progress", self._spec.key)
                return
            if self._state.status != ModelStatus.DOWNLOADED:
                raise ModelNotDownloaded(f"({self._spec.display_name})")
            self._loading = True
            generation = self._load_generation
            self._transition(ModelState.loading())

        outcome: dict[str, Exception] = {}
        thread = threading.Thread(target=self._load_worker, args=(generation, outcome), daemon=True)
        thread.start()
        if not wait:
            return
        thread.join()
        error = outcome.get("error")
        if error is not None:
            raise LoadFailed(str(error)) from error

    def _load_worker(self, generation: int, outcome: dict[str, Exception]) -> None:
        try:
            handle = self._loader(self.artifact_dir)
        except Exception as exc:
            logger.error("Failed to load %s: %s", self._spec.display_name, exc)
            with self._lock:
                if generation == self._load_generation:
                    self._loading = False
                    self._handle = None
                    self._transition(ModelState.error(f"Failed to load model: {exc}"))
                    outcome["error"] = exc
            return

        with self._lock:
            if generation != self._load_generation:
                logger.info("Discarding %s load superseded by unload", self._spec.key)
                stale = handle
            else:
                self._loading = False
                self._handle = handle
                self._transition(ModelState.ready())
                logger.info("%s ready", self._spec.display_name)
                return
        self._release(stale)

    def unload_model(self) -> None:
        with self._inference_lock:
            with self._lock:
                handle = self._handle
                self._handle = None
                was_active = self._loading or self._state.status in (ModelStatus.READY, ModelStatus.LOADING)
                if self._loading:
                    self._load_generation += 1
                    self._loading = False
                if was_active:
                    if self._artifacts_complete():
                        self._transition(ModelState.downloaded())
                    else:
                        self._transition(ModelState.not_downloaded())
        if handle is not None:
            self._release(handle)

    def delete_model(self) -> None:
        self.cancel_download()
        self.unload_model()
        with self._lock:
            self._remove_artifacts()
            self._progress = 0.0
            self._transition(ModelState.not_downloaded())
        logger.info("Deleted %s", self._spec.display_name)

    def _release(self, handle: H) -> None:
        if self._unloader is not None:
            self._unloader(handle)

    # ------------------------------------------------------------------
    # Inference access
    # ------------------------------------------------------------------

    @contextmanager
    def borrow(self) -> Iterator[H]:
        """Yield the inference handle while holding the inference lock."""
        with self._inference_lock:
            with self._lock:
                handle = self._handle
                if not self._state.is_ready or handle is None:
                    raise ModelNotReady(f"({self._spec.display_name})")
            yield handle

    def _transition(self, to_state: ModelState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if from_state.status != to_state.status:
            logger.debug("%s: %s -> %s", self._spec.key, from_state.status.value, to_state.status.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
