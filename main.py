"""Application entrypoint and composition root."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from queue import Queue
from typing import Optional, Sequence

from config import SUPPORTED_LANGUAGES, JsonConfigStore
from errors import PipelineError, describe_state, user_message
from interfaces import ConfigStore, Recorder
from model_catalog import PUNCTUATION_MODEL_KEY, SPEECH_MODEL_KEY, create_punctuation_manager, create_speech_manager
from model_lifecycle import ModelLifecycle
from models import AudioFrame, ModelState
from pipeline import TranscriptionPipeline
from recorder import SoundDeviceRecorder, iter_frames

logger = logging.getLogger(__name__)


class App:
    def __init__(
        self,
        config_store: Optional[ConfigStore] = None,
        recorder: Optional[Recorder] = None,
        quiet: bool = False,
    ) -> None:
        self.config_store = config_store or JsonConfigStore()
        self.recorder = recorder or SoundDeviceRecorder()
        self._quiet = quiet
        self._last_printed: dict[str, tuple[str, int]] = {}
        models_dir = self.config_store.get_models_dir()
        retry = dict(
            max_attempts=self.config_store.get_download_max_attempts(),
            initial_delay_s=self.config_store.get_download_initial_delay_s(),
        )
        self.speech_manager = create_speech_manager(
            models_dir,
            size=self.config_store.get_speech_model_size(),
            compute_type=self.config_store.get_compute_type(),
            on_state_change=lambda old, new: self._on_state_change(SPEECH_MODEL_KEY, new),
            **retry,
        )
        self.punctuation_manager = create_punctuation_manager(
            models_dir,
            on_state_change=lambda old, new: self._on_state_change(PUNCTUATION_MODEL_KEY, new),
            **retry,
        )
        self.pipeline = TranscriptionPipeline(
            self.speech_manager,
            self.punctuation_manager,
            language=self.config_store.get_language(),
            format_text=self.config_store.get_format_text_enabled(),
        )

    def managers(self, which: str) -> list[ModelLifecycle]:
        if which == SPEECH_MODEL_KEY:
            return [self.speech_manager]
        if which == PUNCTUATION_MODEL_KEY:
            return [self.punctuation_manager]
        return [self.speech_manager, self.punctuation_manager]

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def status(self) -> int:
        for manager in self.managers("all"):
            report = manager.status_report()
            print(f"{report.display_name:<20} {describe_state(report.state):<32} {report.size_description}")
        language = self.pipeline.language
        print(f"{'Language':<20} {SUPPORTED_LANGUAGES.get(language, language)}")
        return 0

    def download(self, which: str) -> int:
        for manager in self.managers(which):
            try:
                manager.download_model()
            except KeyboardInterrupt:
                manager.cancel_download()
                raise
        return 0

    def delete(self, which: str) -> int:
        for manager in self.managers(which):
            manager.delete_model()
            self._print(f"{manager.spec.display_name}: deleted")
        return 0

    def transcribe(self, path: str, language: Optional[str]) -> int:
        self._prepare()
        text = self.pipeline.transcribe(path, language=language)
        return self._emit_result(text)

    def record(self, seconds: float, language: Optional[str]) -> int:
        self._prepare()
        audio_queue: Queue[AudioFrame | None] = Queue(maxsize=200)
        recorder = self.recorder
        recorder.start(audio_queue)
        timer = threading.Timer(seconds, recorder.stop)
        timer.daemon = True
        timer.start()
        self._print(f"Recording for {seconds:g}s…")
        try:
            text = self.pipeline.transcribe_stream(
                iter_frames(audio_queue),
                on_partial=lambda partial: self._print(f"… {partial}"),
                language=language,
            )
        finally:
            timer.cancel()
            recorder.stop()
        return self._emit_result(text)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prepare(self) -> None:
        self.pipeline.warm_up(wait=True)

    def _emit_result(self, text: str) -> int:
        if not text:
            self._print("(no speech detected)")
            return 0
        print(text)
        return 0

    def _on_state_change(self, key: str, state: ModelState) -> None:
        # Print status changes and every 10% of download progress.
        step = int(state.progress * 10)
        marker = (state.status.value, step)
        if self._last_printed.get(key) == marker:
            return
        self._last_printed[key] = marker
        self._print(f"{key}: {describe_state(state)}")

    def _print(self, message: str) -> None:
        if not self._quiet:
            print(message, file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="offline-dictation", description="Local speech-to-text pipeline")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="only print the transcript")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="show model state")

    which = [SPEECH_MODEL_KEY, PUNCTUATION_MODEL_KEY, "all"]
    download = sub.add_parser("download", help="download model bundles")
    download.add_argument("which", nargs="?", choices=which, default="all")
    delete = sub.add_parser("delete", help="delete downloaded model bundles")
    delete.add_argument("which", nargs="?", choices=which, default="all")

    languages = sorted(code for code in SUPPORTED_LANGUAGES if code)
    transcribe = sub.add_parser("transcribe", help="transcribe an audio file")
    transcribe.add_argument("path")
    transcribe.add_argument("--language", choices=languages, default=None)

    record = sub.add_parser("record", help="record from the microphone and transcribe")
    record.add_argument("--seconds", type=float, default=5.0)
    record.add_argument("--language", choices=languages, default=None)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = App(quiet=args.quiet)
    try:
        if args.command == "status":
            return app.status()
        if args.command == "download":
            return app.download(args.which)
        if args.command == "delete":
            return app.delete(args.which)
        if args.command == "transcribe":
            return app.transcribe(args.path, args.language)
        if args.command == "record":
            return app.record(args.seconds, args.language)
    except PipelineError as exc:
        print(user_message(exc), file=sys.stderr)
        return 1
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
