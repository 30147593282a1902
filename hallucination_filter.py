"""Reject and clean the stock output whisper produces on silence or noise.

Checks run in a fixed order and the first match rejects the text. The
bracket check rejects every fully bracketed utterance, so a user dictating
only "(note to self)" also gets an empty result.
"""

from __future__ import annotations

import re

_CJK_CLASS = "\u4e00-\u9fff\u3040-\u309f\u30a0-\u30ff\uac00-\ud7af"
_CJK_RE = re.compile(f"[{_CJK_CLASS}]")
_BRACKET_THEN_CJK_RE = re.compile(
    f"(?:\\([^)]+\\)|\\[[^\\]]+\\])\\s*[{_CJK_CLASS}]"
)
_REPEATED_CHAR_RE = re.compile(r"(.)\1{3,}", re.DOTALL)
_BRACKETED_RE = re.compile(r"\[[^\]]*\]|\([^)]*\)")
_MULTISPACE_RE = re.compile(r"\s{2,}")

AUTO_OR_ENGLISH = ("", "en")

HALLUCINATION_PHRASES = frozenset(
    {
        # video outros
        "thank you for watching",
        "thanks for watching",
        "please subscribe",
        "subscribe",
        "like and subscribe",
        "see you next time",
        "see you in the next video",
        "bye",
        "goodbye",
        "bye bye",
        "thank you",
        "thanks",
        "...",
        "…",
        "you",
        # audio events
        "music",
        "music playing",
        "applause",
        "silence",
        "phone beeps",
        "phone beeping",
        "phone ringing",
        "phone rings",
        "beep",
        "beeps",
        "ding",
        "inaudible",
        "unintelligible",
        "blank audio",
        "blank_audio",
        "no audio",
        "static",
        "background noise",
        "coughing",
        "laughter",
        "laughing",
        "sighing",
        "sigh",
        "breathing",
        "clearing throat",
        # fillers
        "hmm",
        "hm",
        "uh",
        "um",
        "mhm",
        "mm",
        "mmm",
        "ah",
        "eh",
        "oh",
        # captioning artefacts
        "indistinct",
        "muffled",
        "foreign language",
        "speaking foreign language",
        "speaking in foreign language",
        "subtitles by",
        "captions by",
        "transcript by",
    }
)


def contains_cjk(text: str) -> bool:
    return _CJK_RE.search(text) is not None


def _is_wrapped(text: str) -> bool:
    return (text.startswith("[") and text.endswith("]")) or (
        text.startswith("(") and text.endswith(")")
    )


def _is_question_mark_spam(text: str) -> bool:
    letters = sum(1 for ch in text if ch.isalpha())
    marks = sum(1 for ch in text if ch in "?¿")
    return marks > 3 and marks > letters


def _normalize(text: str) -> str:
    for ch in "[]()":
        text = text.replace(ch, "")
    return text.lower().strip()


def rejection_reason(text: str, language: str = "") -> str | None:
    """Return the name of the first rule that rejects ``text``, if any."""
    trimmed = text.strip()
    if _is_wrapped(trimmed):
        return "bracketed"
    if len(trimmed) < 2:
        return "too_short"
    if _BRACKET_THEN_CJK_RE.search(trimmed):
        return "bracket_cjk"
    if _REPEATED_CHAR_RE.search(trimmed):
        return "repetition"
    if _is_question_mark_spam(trimmed):
        return "question_marks"
    if (language or "") in AUTO_OR_ENGLISH and contains_cjk(trimmed):
        return "unexpected_script"
    if _normalize(trimmed) in HALLUCINATION_PHRASES:
        return "stock_phrase"
    return None


def is_hallucination(text: str, language: str = "") -> bool:
    return rejection_reason(text, language) is not None


def clean(text: str) -> str:
    """Strip bracketed fragments such as ``[inaudible]`` and tidy whitespace."""
    cleaned = _BRACKETED_RE.sub("", text)
    cleaned = _MULTISPACE_RE.sub(" ", cleaned)
    return cleaned.strip()
