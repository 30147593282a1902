"""Turn spoken enumerations into numbered lists.

"first buy milk second call mom" becomes::

    1. Buy milk
    2. Call mom

Four detectors run from most to least specific: prefixed number words
("number one", "step two"), ordinals ("first"), ordinal adverbs ("firstly")
and bare number words ("one").  The first one that finds at least two items
in increasing order wins; items are renumbered from 1.
"""

from __future__ import annotations

import logging
import string
from dataclasses import dataclass
from typing import Optional

from models import ListItem, StageResult

logger = logging.getLogger(__name__)

ORDINALS = {
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "sixth": 6,
    "seventh": 7,
    "eighth": 8,
    "ninth": 9,
    "tenth": 10,
}

ORDINAL_ADVERBS = {
    "firstly": 1,
    "secondly": 2,
    "thirdly": 3,
    "fourthly": 4,
    "fifthly": 5,
}

NUMBER_WORDS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
}

LIST_PREFIXES = ("number", "item", "point", "step")

_CONTENT_PUNCT = ".,;:"


@dataclass
class _Token:
    text: str
    position: int

    @property
    def end(self) -> int:
        return self.position + len(self.text)

    @property
    def key(self) -> str:
        return self.text.lower().strip(string.punctuation)


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    start: Optional[int] = None
    for index, ch in enumerate(text):
        if ch.isspace():
            if start is not None:
                tokens.append(_Token(text[start:index], start))
                start = None
        elif start is None:
            start = index
    if start is not None:
        tokens.append(_Token(text[start:], start))
    return tokens


def _is_sequential(numbers: list[int]) -> bool:
    """Accept 1, 2, 3... or any strictly increasing run such as 1, 3, 5."""
    if len(numbers) < 2:
        return False
    return all(b > a for a, b in zip(numbers, numbers[1:]))


def _trim_content(content: str) -> str:
    content = content.strip().strip(_CONTENT_PUNCT).strip()
    return content[:1].upper() + content[1:]


class ListFormatter:
    def format(self, text: str) -> str:
        return self.try_format(text).text

    def try_format(self, text: str) -> StageResult:
        detectors = [(f"prefix:{prefix}", NUMBER_WORDS, prefix) for prefix in LIST_PREFIXES]
        detectors += [
            ("ordinal", ORDINALS, None),
            ("ordinal_adverb", ORDINAL_ADVERBS, None),
            ("number_word", NUMBER_WORDS, None),
        ]
        for name, indicators, prefix in detectors:
            formatted = self._detect(text, indicators, prefix)
            if formatted is not None:
                logger.debug("Formatted spoken list using %s indicators", name)
                return StageResult(formatted, applied=True)
        return StageResult(text, applied=False, reason="no list pattern")

    def _detect(self, text: str, indicators: dict[str, int], prefix: Optional[str]) -> Optional[str]:
        items = self._find_indicators(_tokenize(text), indicators, prefix)
        if len(items) < 2 or not _is_sequential([item.number for item in items]):
            return None
        items = self._extract_content(text, items)
        items = [item for item in items if item.content]
        if len(items) < 2:
            return None
        return self._render(text, items)

    def _find_indicators(
        self, tokens: list[_Token], indicators: dict[str, int], prefix: Optional[str]
    ) -> list[ListItem]:
        items: list[ListItem] = []
        i = 0
        while i < len(tokens):
            token = tokens[i]
            if prefix is not None:
                if token.key == prefix and i + 1 < len(tokens):
                    following = tokens[i + 1]
                    number = indicators.get(following.key)
                    if number is not None:
                        items.append(ListItem(number, token.position, following.end))
                        i += 2
                        continue
            else:
                number = indicators.get(token.key)
                if number is not None:
                    items.append(ListItem(number, token.position, token.end))
            i += 1
        return items

    def _extract_content(self, text: str, items: list[ListItem]) -> list[ListItem]:
        result = []
        for index, item in enumerate(items):
            end = items[index + 1].start if index + 1 < len(items) else len(text)
            content = _trim_content(text[item.end:end])
            result.append(ListItem(item.number, item.start, item.end, content))
        return result

    def _render(self, text: str, items: list[ListItem]) -> str:
        lead = text[: items[0].start].strip().strip(_CONTENT_PUNCT).strip()
        lines = "\n".join(f"{n}. {item.content}" for n, item in enumerate(items, start=1))
        return f"{lead}:\n{lines}" if lead else lines
