"""Tests for punctuation reconstruction."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Sequence

import numpy as np
import pytest

from conftest import make_manager, make_ready_manager, wait_until
from models import CaseClass, PunctuationClass, PunctuationPrediction
from punctuation import OnnxPunctuationModel, PunctuationEngine, reconstruct, split_trailing

P = PunctuationClass


def _pred(punct: PunctuationClass = P.NONE, upper: bool = False) -> PunctuationPrediction:
    return PunctuationPrediction(punct, CaseClass.UPPER if upper else CaseClass.LOWER)


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class _FakePunctuationModel:
    """One token per word; punctuation looked up by word."""

    def __init__(self, rules: dict[str, PunctuationClass] | None = None, max_length: int = 256) -> None:
        self.rules = rules or {}
        self.max_length = max_length
        self.batches: list[list[str]] = []
        self.error: Exception | None = None

    def count_tokens(self, text: str) -> int:
        return len(text.split())

    def predict(self, words: Sequence[str]) -> list[PunctuationPrediction]:
        if self.error is not None:
            raise self.error
        self.batches.append(list(words))
        return [_pred(self.rules.get(word, P.NONE), upper=(word == "paris")) for word in words]


class _FakeTokenizer:
    vocab = {"hello": [10, 11], "world": [12]}

    def encode(self, text: str) -> list[int]:
        return [i for word in text.split() for i in self.vocab.get(word, [99])]

    def bos_id(self) -> int:
        return 1

    def eos_id(self) -> int:
        return 2

    def unk_id(self) -> int:
        return 0


class _FakeSession:
    def __init__(self, post: np.ndarray, case: np.ndarray) -> None:
        self._post = post
        self._case = case
        self.feeds: dict[str, np.ndarray] = {}

    def get_outputs(self) -> list[SimpleNamespace]:
        return [SimpleNamespace(name="pre_preds"), SimpleNamespace(name="post_preds"), SimpleNamespace(name="cap_case_preds")]

    def get_inputs(self) -> list[SimpleNamespace]:
        return [SimpleNamespace(name="input_ids")]

    def run(self, output_names: list[str], feeds: dict[str, np.ndarray]) -> list[np.ndarray]:
        assert output_names == ["post_preds", "cap_case_preds"]
        self.feeds = feeds
        return [self._post, self._case]


# ---------------------------------------------------------------
# reconstruct
# ---------------------------------------------------------------

def test_reconstruct_sentences() -> None:
    words = ["hello", "world", "how", "are", "you"]
    preds = [_pred(), _pred(P.PERIOD), _pred(), _pred(), _pred(P.QUESTION)]
    assert reconstruct(words, preds) == "Hello world. How are you?"


def test_reconstruct_acronym_and_proper_noun() -> None:
    words = ["we", "flew", "from", "usa", "to", "paris"]
    preds = [_pred(), _pred(), _pred(), _pred(P.ACRONYM), _pred(), _pred(P.PERIOD, upper=True)]
    assert reconstruct(words, preds) == "We flew from U.S.A. to Paris."


def test_reconstruct_keeps_original_mark_when_model_predicts_none() -> None:
    words = ["stop", "now", "please"]
    preds = [_pred(), _pred(), _pred()]
    assert reconstruct(words, preds, ["", "!", ""]) == "Stop now! Please"


def test_reconstruct_length_mismatch() -> None:
    with pytest.raises(ValueError):
        reconstruct(["a", "b"], [_pred()])


def test_split_trailing() -> None:
    assert split_trailing("world.") == ("world", ".")
    assert split_trailing("really?!") == ("really", "?!")
    assert split_trailing("plain") == ("plain", "")
    assert split_trailing("...") == ("...", "")


# ---------------------------------------------------------------
# OnnxPunctuationModel
# ---------------------------------------------------------------

def test_onnx_model_reads_punctuation_from_last_token_and_case_from_first() -> None:
    # ids: [bos, hello(10, 11), world(12), eos]
    post = np.zeros((1, 5, 5), dtype=np.float32)
    post[0, 1, P.COMMA] = 5.0  # inner sub-word of "hello" is ignored
    post[0, 3, P.PERIOD] = 5.0
    case = np.zeros((1, 5, 2), dtype=np.float32)
    case[0, 1, 1] = 5.0
    session = _FakeSession(post, case)

    model = OnnxPunctuationModel(session, _FakeTokenizer())
    predictions = model.predict(["hello", "world"])

    assert predictions == [
        PunctuationPrediction(P.NONE, CaseClass.UPPER),
        PunctuationPrediction(P.PERIOD, CaseClass.LOWER),
    ]
    assert session.feeds["input_ids"].tolist() == [[1, 10, 11, 12, 2]]
    assert model.count_tokens("hello world") == 3


def test_onnx_model_handles_per_character_case_logits() -> None:
    post = np.zeros((1, 4, 5), dtype=np.float32)
    case = np.zeros((1, 4, 8, 2), dtype=np.float32)
    case[0, 1, 0, 1] = 5.0
    case[0, 1, 1, 0] = 9.0  # later characters do not decide
    model = OnnxPunctuationModel(_FakeSession(post, case), _FakeTokenizer())

    predictions = model.predict(["world", "again"])

    assert predictions[0].case == CaseClass.UPPER
    assert predictions[1].case == CaseClass.LOWER


# ---------------------------------------------------------------
# PunctuationEngine
# ---------------------------------------------------------------

def test_engine_formats_text(tmp_path: Path) -> None:
    model = _FakePunctuationModel({"world": P.PERIOD, "you": P.QUESTION})
    engine = PunctuationEngine(make_ready_manager(tmp_path, model))

    result = engine.try_format("hello world how are you")

    assert result.applied
    assert result.text == "Hello world. How are you?"


def test_engine_does_not_double_punctuate(tmp_path: Path) -> None:
    model = _FakePunctuationModel({"world": P.PERIOD, "you": P.QUESTION})
    engine = PunctuationEngine(make_ready_manager(tmp_path, model))

    assert engine.format("Hello world. How are you?") == "Hello world. How are you?"
    assert model.batches == [["hello", "world", "how", "are", "you"]]


def test_engine_chunks_long_input_without_losing_words(tmp_path: Path) -> None:
    model = _FakePunctuationModel(max_length=20)
    engine = PunctuationEngine(make_ready_manager(tmp_path, model))
    words = [f"w{i}" for i in range(35)]

    result = engine.format(" ".join(words))

    assert len(model.batches) >= 2
    assert all(len(batch) <= 10 for batch in model.batches)
    assert [w for batch in model.batches for w in batch] == words
    assert result.lower().split() == words


def test_split_chunks_keeps_short_input_whole(tmp_path: Path) -> None:
    model = _FakePunctuationModel(max_length=20)
    engine = PunctuationEngine(make_manager(tmp_path))
    assert engine.split_chunks(model, ["a", "b", "c"]) == [["a", "b", "c"]]


def test_split_chunks_counts_tokens_per_word(tmp_path: Path) -> None:
    class _JoinedTextIsCheaper(_FakePunctuationModel):
        def count_tokens(self, text: str) -> int:
            return 1 if " " in text else 2

    model = _JoinedTextIsCheaper(max_length=20)
    engine = PunctuationEngine(make_manager(tmp_path))
    words = [f"w{i}" for i in range(8)]

    assert engine.split_chunks(model, words) == [words[:5], words[5:]]


def test_engine_passes_through_when_model_missing(tmp_path: Path) -> None:
    engine = PunctuationEngine(make_manager(tmp_path, downloaded=False))

    result = engine.try_format("hello world")

    assert result.text == "hello world"
    assert not result.applied
    assert result.reason == "model not ready"


def test_engine_passes_through_on_failure(tmp_path: Path) -> None:
    model = _FakePunctuationModel()
    model.error = RuntimeError("session crashed")
    engine = PunctuationEngine(make_ready_manager(tmp_path, model))

    result = engine.try_format("hello world")

    assert result.text == "hello world"
    assert not result.applied
    assert result.reason == "session crashed"


def test_engine_disabled(tmp_path: Path) -> None:
    model = _FakePunctuationModel()
    engine = PunctuationEngine(make_ready_manager(tmp_path, model), enabled=False)

    result = engine.try_format("hello world")

    assert result.reason == "disabled"
    assert model.batches == []


def test_ensure_loaded_starts_background_load(tmp_path: Path) -> None:
    manager = make_manager(tmp_path, _FakePunctuationModel())
    engine = PunctuationEngine(manager)

    engine.ensure_loaded()

    assert wait_until(engine.is_ready)


def test_ensure_loaded_can_wait(tmp_path: Path) -> None:
    manager = make_manager(tmp_path, _FakePunctuationModel())
    engine = PunctuationEngine(manager)

    engine.ensure_loaded(wait=True)

    assert engine.is_ready()
