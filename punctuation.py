"""Punctuation and capitalisation restoration with an ONNX sequence labeller.

The model predicts, for every sub-word token, a punctuation class to append
after it and whether it starts with a capital letter.  Predictions are read
back per word: punctuation from the word's last token, case from its first.
Inputs longer than the model context are split on word boundaries and each
chunk is labelled on its own.

Formatting is an enhancement.  Whenever the model is missing, still loading
or fails, :meth:`PunctuationEngine.try_format` hands back the input together
with the reason it was not applied.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np

from errors import LoadFailed, ModelNotDownloaded
from models import CaseClass, ModelStatus, PunctuationClass, PunctuationPrediction, StageResult

if TYPE_CHECKING:  # pragma: no cover
    from interfaces import PunctuationModel
    from model_lifecycle import ModelLifecycle

try:
    import onnxruntime as ort
except Exception:  # pragma: no cover
    ort = None  # type: ignore

try:
    import sentencepiece as spm
except Exception:  # pragma: no cover
    spm = None  # type: ignore

logger = logging.getLogger(__name__)

MAX_LENGTH = 256
# Tokens kept free in every chunk for BOS/EOS and tokenisation drift.
CHUNK_MARGIN = 10

_TRAILING_PUNCT_RE = re.compile(r"^(.*?)([.,?!;:]*)$", re.DOTALL)


class OnnxPunctuationModel:
    """Inference handle: an ONNX Runtime session plus its SentencePiece vocab."""

    def __init__(self, session: object, tokenizer: object, max_length: int = MAX_LENGTH) -> None:
        self._session = session
        self._tokenizer = tokenizer
        self.max_length = max_length
        output_names = [o.name for o in session.get_outputs()]  # type: ignore[attr-defined]
        self._post_output = _pick(output_names, "post", "logits_post")
        self._case_output = _pick(output_names, "case", "logits_case")
        self._input_names = [i.name for i in session.get_inputs()]  # type: ignore[attr-defined]

    def count_tokens(self, text: str) -> int:
        return len(self._tokenizer.encode(text))  # type: ignore[attr-defined]

    def predict(self, words: Sequence[str]) -> list[PunctuationPrediction]:
        tok = self._tokenizer
        ids: list[int] = []
        spans: list[tuple[int, int]] = []
        bos, eos = tok.bos_id(), tok.eos_id()  # type: ignore[attr-defined]
        if bos >= 0:
            ids.append(bos)
        for word in words:
            pieces = tok.encode(word) or [tok.unk_id()]  # type: ignore[attr-defined]
            start = len(ids)
            ids.extend(pieces)
            spans.append((start, len(ids) - 1))
        if eos >= 0:
            ids.append(eos)

        input_ids = np.asarray([ids], dtype=np.int64)
        feeds = {}
        for name in self._input_names:
            feeds[name] = np.ones_like(input_ids) if "mask" in name else input_ids
        post_logits, case_logits = self._session.run(  # type: ignore[attr-defined]
            [self._post_output, self._case_output], feeds
        )

        post = np.asarray(post_logits)[0]
        case = np.asarray(case_logits)[0]
        if case.ndim == 3:
            # Per-character case logits: the first character decides.
            case = case[:, 0, :]
        post_ids = post.argmax(axis=-1)
        case_ids = case.argmax(axis=-1)

        predictions = []
        for first, last in spans:
            punct = int(post_ids[last])
            predictions.append(
                PunctuationPrediction(
                    punctuation=PunctuationClass(punct) if punct < len(PunctuationClass) else PunctuationClass.NONE,
                    case=CaseClass.UPPER if int(case_ids[first]) == 1 else CaseClass.LOWER,
                )
            )
        return predictions


def _pick(names: Sequence[str], needle: str, default: str) -> str:
    for name in names:
        if needle in name:
            return name
    return default


def load_punctuation_model(
    model_dir: Path,
    onnx_file: str,
    vocab_file: str,
    threads: int = 1,
) -> OnnxPunctuationModel:
    if ort is None:
        raise LoadFailed("onnxruntime is not installed")
    if spm is None:
        raise LoadFailed("sentencepiece is not installed")
    opts = ort.SessionOptions()
    if threads:
        opts.intra_op_num_threads = threads
        opts.inter_op_num_threads = threads
    opts.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
    session = ort.InferenceSession(
        str(Path(model_dir) / onnx_file),
        sess_options=opts,
        providers=["CPUExecutionProvider"],
    )
    tokenizer = spm.SentencePieceProcessor(model_file=str(Path(model_dir) / vocab_file))
    return OnnxPunctuationModel(session, tokenizer)


def split_trailing(word: str) -> tuple[str, str]:
    """Split ``"world."`` into ``("world", ".")``."""
    match = _TRAILING_PUNCT_RE.match(word)
    base, marks = match.group(1), match.group(2)  # type: ignore[union-attr]
    if not base:
        return word, ""
    return base, marks


def _capitalize(word: str) -> str:
    return word[:1].upper() + word[1:]


def _acronym(word: str) -> str:
    letters = [ch.upper() for ch in word if ch.isalnum()]
    if not letters:
        return word
    return ".".join(letters) + "."


def reconstruct(
    words: Sequence[str],
    predictions: Sequence[PunctuationPrediction],
    original_marks: Optional[Sequence[str]] = None,
) -> str:
    """Rebuild text from per-word predictions.

    The first word is always capitalised, as is every word after a period
    or question mark.  ``original_marks`` holds punctuation already present
    in the input; it is kept only where the model predicts nothing.
    """
    if len(words) != len(predictions):
        raise ValueError(f"got {len(predictions)} predictions for {len(words)} words")
    marks = list(original_marks) if original_marks is not None else [""] * len(words)

    out: list[str] = []
    capitalize_next = True
    for word, pred, original in zip(words, predictions, marks):
        if pred.punctuation == PunctuationClass.ACRONYM:
            out.append(_acronym(word))
            capitalize_next = False
            continue

        token = word
        if capitalize_next or pred.case == CaseClass.UPPER:
            token = _capitalize(token)
        mark = pred.punctuation.mark or original
        out.append(token + mark)
        capitalize_next = pred.punctuation.ends_sentence or (
            not pred.punctuation.mark and original[-1:] in (".", "?", "!")
        )
    return " ".join(out)


class PunctuationEngine:
    def __init__(self, manager: ModelLifecycle, enabled: bool = True) -> None:
        self._manager = manager
        self.enabled = enabled

    def is_ready(self) -> bool:
        return self._manager.is_ready()

    def ensure_loaded(self, wait: bool = False) -> None:
        """Load a downloaded model; other states are left alone.

        Runs in the background unless ``wait`` is set, in which case a load
        failure is raised as :class:`LoadFailed`.
        """
        if self._manager.state.status != ModelStatus.DOWNLOADED:
            return
        try:
            self._manager.load_model(wait=wait)
        except ModelNotDownloaded:
            logger.debug("Punctuation model disappeared before it could load")

    def format(self, text: str) -> str:
        return self.try_format(text).text

    def try_format(self, text: str) -> StageResult:
        if not text.strip():
            return StageResult(text, applied=False, reason="empty input")
        if not self.enabled:
            return StageResult(text, applied=False, reason="disabled")
        self.ensure_loaded()
        if not self._manager.is_ready():
            return StageResult(text, applied=False, reason="model not ready")
        try:
            with self._manager.borrow() as model:
                formatted = self._format_with(model, text)
        except Exception as exc:
            logger.warning("Punctuation skipped: %s", exc)
            return StageResult(text, applied=False, reason=str(exc))
        if not formatted.strip():
            return StageResult(text, applied=False, reason="empty output")
        return StageResult(formatted, applied=True)

    def split_chunks(self, model: PunctuationModel, words: Sequence[str]) -> list[list[str]]:
        # Words are encoded one at a time for inference, so count them that way too.
        counts = [max(1, model.count_tokens(word)) for word in words]
        budget = max(1, model.max_length - CHUNK_MARGIN)
        if sum(counts) <= budget:
            return [list(words)]
        chunks: list[list[str]] = []
        current: list[str] = []
        count = 0
        for word, n in zip(words, counts):
            if current and count + n > budget:
                chunks.append(current)
                current, count = [], 0
            current.append(word)
            count += n
        if current:
            chunks.append(current)
        logger.debug("Split %d words into %d chunks", len(words), len(chunks))
        return chunks

    def _format_with(self, model: PunctuationModel, text: str) -> str:
        words = text.lower().split()
        if not words:
            return text
        return " ".join(self._format_chunk(model, chunk) for chunk in self.split_chunks(model, words))

    def _format_chunk(self, model: PunctuationModel, words: Sequence[str]) -> str:
        split = [split_trailing(word) for word in words]
        bases = [base for base, _ in split]
        marks = [mark for _, mark in split]
        return reconstruct(bases, model.predict(bases), marks)
