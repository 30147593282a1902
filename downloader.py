"""Streaming HTTP downloader for model artefacts."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from tempfile import NamedTemporaryFile

import httpx

from interfaces import CancelCheck, ProgressCallback

logger = logging.getLogger(__name__)


class HttpxDownloader:
    def __init__(
        self,
        *,
        chunk_size: int = 1 << 20,
        timeout_s: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._chunk_size = chunk_size
        self._timeout_s = timeout_s
        self._client = client

    def fetch(
        self,
        url: str,
        destination: Path,
        on_progress: ProgressCallback,
        check_cancelled: CancelCheck,
    ) -> None:
        """Download ``url`` and atomically move it into ``destination``.

        The body is streamed into a temporary file next to ``destination`` so
        an interrupted transfer never leaves a truncated artefact behind.
        ``check_cancelled`` is called between chunks and is expected to raise
        when the transfer should stop.
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        client = self._client or httpx.Client(follow_redirects=True, timeout=self._timeout_s)
        tmp_path: Path | None = None
        try:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                total = int(response.headers.get("Content-Length", 0) or 0)
                received = 0
                with NamedTemporaryFile(
                    dir=str(destination.parent), prefix=f".{destination.name}.", suffix=".part", delete=False
                ) as tmp_file:
                    tmp_path = Path(tmp_file.name)
                    for chunk in response.iter_bytes(self._chunk_size):
                        check_cancelled()
                        tmp_file.write(chunk)
                        received += len(chunk)
                        if total > 0:
                            on_progress(min(received / total, 1.0))
            check_cancelled()
            if tmp_path is None:
                raise RuntimeError("temporary download file was not created")
            os.replace(tmp_path, destination)
            tmp_path = None
            on_progress(1.0)
            logger.debug("Downloaded %s (%d bytes) to %s", url, received, destination)
        finally:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink(missing_ok=True)
            if self._client is None:
                client.close()
