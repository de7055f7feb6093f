"""Manuscript word count against a target length."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from bs4 import BeautifulSoup

from .errors import DataNotFoundError
from .formatting import comma

_LOGGER = logging.getLogger("figurebuilder.wordcount")

# Runs of word characters; inner apostrophes, colons and decimal marks stay in one word.
_WORD_RE = re.compile(r"\w+(?:['’.,:]\w+)*")
_REMOVED_SELECTORS = ("figure", "table", ".display")
_INLINE_MATH_SELECTOR = ".inline"


@dataclass(frozen=True, slots=True)
class WordCountReport:
    total: int
    goal: int
    block_counts: tuple[int, ...] = ()

    @property
    def remaining(self) -> int:
        return self.goal - self.total

    def summary(self) -> str:
        if self.remaining >= 0:
            remainder = f"{comma(self.remaining)} words to go"
        else:
            remainder = f"{comma(-self.remaining)} words to cut"
        return f"{comma(self.total)} words in manuscript; {remainder}"


def clean_block_text(text: str) -> str:
    """Collapse hyphenated words, paths and bracketed citations into single tokens."""
    text = text.strip()
    text = text.replace("-", "DASH").replace("/", "SLASH")
    text = text.replace("[", "").replace("]", "")
    return text.replace("×", "")


def count_words(text: str) -> int:
    return len(_WORD_RE.findall(text))


def count_manuscript_words(path: Path, goal: int = 7500) -> WordCountReport:
    """Count words in the `<article>` body of a rendered manuscript.

    Figures, tables and display math are dropped; inline math counts as one
    word.
    """
    if not path.exists():
        raise DataNotFoundError("manuscript", path)
    soup = BeautifulSoup(path.read_text(encoding="utf-8"), "lxml")
    articles = soup.find_all("article")
    if not articles:
        _LOGGER.warning("No <article> element in %s; counting 0 words", path)

    counts: list[int] = []
    for article in articles:
        for selector in _REMOVED_SELECTORS:
            for node in article.select(selector):
                node.decompose()
        for node in article.select(_INLINE_MATH_SELECTOR):
            node.replace_with("MATH")
        for child in article.find_all(recursive=False):
            counts.append(count_words(clean_block_text(child.get_text())))

    report = WordCountReport(total=sum(counts), goal=goal, block_counts=tuple(counts))
    _LOGGER.debug("Counted %d blocks in %s", len(counts), path)
    return report
