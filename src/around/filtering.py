"""Content filtering utilities."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SpamLexicon:
    """Immutable set of case-sensitive banned tokens."""

    banned_words: frozenset[str]
    version: int = 1

    @classmethod
    def from_iterable(cls, words: Iterable[str], *, version: int = 1) -> "SpamLexicon":
        return cls(frozenset(word for word in words if word), version=version)

    def __len__(self) -> int:
        return len(self.banned_words)


def tokenize(message: str) -> list[str]:
    return message.split()


def is_spam(message: str, lexicon: SpamLexicon) -> bool:
    """Return True if any whitespace-delimited token is a banned word.

    Matching is exact: no case folding, punctuation stripping or substring
    search, so ``"fucking"`` does not match ``"fuck"``.
    """

    if not lexicon.banned_words:
        return False
    return any(token in lexicon.banned_words for token in tokenize(message))


def load_lexicon_file(path: str | Path) -> set[str]:
    """Read banned words from a file, one per line; ``#`` starts a comment."""

    words: set[str] = set()
    with open(path, "r", encoding="utf-8") as handle:
        for line in handle:
            word = line.split("#", 1)[0].strip()
            if word:
                words.add(word)
    return words


class LexiconRegistry:
    """Holds the process-wide lexicon and replaces it whole on reload."""

    def __init__(self, lexicon: SpamLexicon) -> None:
        self._lexicon = lexicon

    @classmethod
    def from_words(cls, words: Iterable[str]) -> "LexiconRegistry":
        return cls(SpamLexicon.from_iterable(words))

    def current(self) -> SpamLexicon:
        return self._lexicon

    def reload(self, words: Iterable[str]) -> SpamLexicon:
        lexicon = SpamLexicon.from_iterable(words, version=self._lexicon.version + 1)
        self._lexicon = lexicon
        LOGGER.info("Spam lexicon reloaded (version %s, %s words)", lexicon.version, len(lexicon))
        return lexicon

    def reload_from_file(self, path: str | Path) -> SpamLexicon:
        return self.reload(load_lexicon_file(path))
