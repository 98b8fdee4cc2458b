from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass
from typing import Callable, Iterator, Union

from langid_train.config import (
    BIGRAM_MASK,
    CODEPOINT_CLASS_BOUNDARIES,
    FEATURE_SEED,
    TRIGRAM_MASK,
    U32_MASK,
    UNICODE_CLASS_SEED_OFFSET,
    UNICODE_SEED_OFFSET,
)
from langid_train.features.hashing import murmurhash2

_SPACE = ord(" ")


def classify_codepoint(char: str) -> int:
    """Rank of the codepoint in the boundary table (insertion point when not an exact match)."""
    return bisect_left(CODEPOINT_CLASS_BOUNDARIES, ord(char))


@dataclass(frozen=True)
class AsciiNGram:
    packed: int

    def to_hash(self) -> int:
        return murmurhash2(self.packed, FEATURE_SEED)

    def decode(self) -> str:
        """Unpack the big-endian byte window, dropping zero padding."""
        raw = self.packed.to_bytes(4, byteorder="big").lstrip(b"\x00")
        return raw.decode("ascii")


@dataclass(frozen=True)
class Unicode:
    char: str

    def to_hash(self) -> int:
        # 128-codepoint blocks
        return murmurhash2(ord(self.char) // 128, FEATURE_SEED ^ UNICODE_SEED_OFFSET)


@dataclass(frozen=True)
class UnicodeClass:
    char: str

    def to_hash(self) -> int:
        return murmurhash2(classify_codepoint(self.char), FEATURE_SEED ^ UNICODE_CLASS_SEED_OFFSET)


Feature = Union[AsciiNGram, Unicode, UnicodeClass]


def iter_features(text: str) -> Iterator[Feature]:
    """Scan ``text`` once and yield its features in emission order.

    ASCII characters are lower-cased and shifted into a 32-bit register. Once
    enough ASCII history is available each character yields the bigram and
    trigram windows and then the whole register. Any non-alphanumeric ASCII
    character resets the register to a space so n-grams do not cross word
    boundaries. Non-ASCII characters yield one ``Unicode`` and one
    ``UnicodeClass`` feature and restart the history count without touching
    the register.
    """
    prev = _SPACE
    history = 1
    for char in text:
        if not char.isascii():
            yield Unicode(char)
            yield UnicodeClass(char)
            history = 0
            continue
        prev = ((prev << 8) | ord(char.lower())) & U32_MASK
        if history == 0:
            history = 1
        elif history == 1:
            yield AsciiNGram(prev & BIGRAM_MASK)
            history = 2
        elif history == 2:
            yield AsciiNGram(prev & BIGRAM_MASK)
            yield AsciiNGram(prev & TRIGRAM_MASK)
            history = 3
        else:
            yield AsciiNGram(prev & BIGRAM_MASK)
            yield AsciiNGram(prev & TRIGRAM_MASK)
            yield AsciiNGram(prev)
        if not char.isalnum():
            prev = _SPACE


def emit_features(text: str, listener: Callable[[Feature], None]) -> int:
    """Push every feature of ``text`` into ``listener``; returns how many were emitted."""
    count = 0
    for feature in iter_features(text):
        listener(feature)
        count += 1
    return count
