"""Tests for the hallucination filter."""

from __future__ import annotations

import pytest

from hallucination_filter import clean, contains_cjk, is_hallucination, rejection_reason


@pytest.mark.parametrize("text", ["[music]", "(applause)", "[BLANK_AUDIO]", "  (Music playing)  "])
def test_bracketed_output_is_rejected(text: str) -> None:
    assert is_hallucination(text)
    assert rejection_reason(text) == "bracketed"


def test_whole_utterance_parenthetical_is_rejected() -> None:
    # Known limitation: a dictated parenthetical is indistinguishable from an audio tag.
    assert is_hallucination("(note to self)")


@pytest.mark.parametrize("text", ["Hello, how are you today?", "What is this?", "ok", "Thank you for the update."])
def test_real_speech_passes(text: str) -> None:
    assert not is_hallucination(text)
    assert rejection_reason(text) is None


def test_question_mark_spam() -> None:
    assert is_hallucination("??????")
    assert rejection_reason("? ? ? ? hi") == "question_marks"


def test_too_short() -> None:
    assert rejection_reason("a") == "too_short"
    assert rejection_reason("   ") == "too_short"


def test_repeated_characters() -> None:
    assert rejection_reason("soooooo good") == "repetition"


def test_bracket_followed_by_cjk() -> None:
    assert rejection_reason("(字幕) 你好") == "bracket_cjk"


def test_cjk_only_rejected_for_auto_or_english() -> None:
    assert contains_cjk("こんにちは")
    assert rejection_reason("こんにちは") == "unexpected_script"
    assert rejection_reason("こんにちは", "en") == "unexpected_script"
    assert not is_hallucination("こんにちは", "ja")


@pytest.mark.parametrize("text", ["thank you for watching", "Um", "Thanks", "subscribe"])
def test_stock_phrases(text: str) -> None:
    assert rejection_reason(text) == "stock_phrase"


def test_clean_strips_bracketed_fragments() -> None:
    assert clean("Hello [inaudible]  world (coughs)") == "Hello world"
    assert clean("  plain text ") == "plain text"
