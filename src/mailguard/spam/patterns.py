"""Accent folding and blacklist pattern matching.

Blacklist entries are either plain substrings or two-part wildcard patterns
written as ``[left*right]``: the pattern matches when ``left`` occurs and
``right`` occurs somewhere after the end of the first ``left``.
Both the pattern and the text are folded with the same table before
matching, so ``Bítcóin`` in a subject is caught by a ``bitcoin`` entry.
"""

from typing import Iterable, Optional

_FOLD_SOURCE = (
    "àáâãäåāăą"
    "çćĉċč"
    "ďđ"
    "èéêëēĕėęě"
    "ĝğġģ"
    "ĥħ"
    "ìíîïĩīĭįı"
    "ĵ"
    "ķ"
    "ĺļľŀł"
    "ñńņňŉ"
    "òóôõöøōŏő"
    "ŕŗř"
    "śŝşšș"
    "ţťŧț"
    "ùúûüũūŭůűų"
    "ŵ"
    "ýÿŷ"
    "źżž"
)
_FOLD_TARGET = (
    "aaaaaaaaa"
    "ccccc"
    "dd"
    "eeeeeeeee"
    "gggg"
    "hh"
    "iiiiiiiii"
    "j"
    "k"
    "lllll"
    "nnnnn"
    "ooooooooo"
    "rrr"
    "sssss"
    "tttt"
    "uuuuuuuuuu"
    "w"
    "yyy"
    "zzz"
)

SEPARATORS = " \t-_."

_FOLD_TABLE = str.maketrans(_FOLD_SOURCE, _FOLD_TARGET, SEPARATORS)
_FOLD_TABLE.update({
    ord("ß"): "ss",
    ord("æ"): "ae",
    ord("œ"): "oe",
    ord("þ"): "th",
    ord("ð"): "d",
})


def fold(text: Optional[str]) -> str:
    """Lower-case, collapse diacritics and drop separators."""
    if not text:
        return ""
    return text.lower().translate(_FOLD_TABLE)


def is_wildcard(pattern: str) -> bool:
    return pattern.startswith("[")


def matches(pattern: str, text: str) -> bool:
    """Match an already-folded pattern against already-folded text.

    Malformed wildcard patterns and empty patterns never match.
    """
    if not pattern:
        return False

    if not is_wildcard(pattern):
        return pattern in text

    if len(pattern) < 2 or not pattern.endswith("]"):
        return False
    inner = pattern[1:-1]
    if inner.count("*") != 1:
        return False
    left, right = inner.split("*")
    if not left or not right:
        return False

    start = text.find(left)
    if start < 0:
        return False
    return text.find(right, start + len(left)) >= 0


def find_match(patterns: Iterable[str], *texts: str) -> Optional[str]:
    """Return the first pattern (as configured) matching any of the texts."""
    folded_texts = [fold(text) for text in texts if text]
    for pattern in patterns:
        folded = fold(pattern)
        for text in folded_texts:
            if matches(folded, text):
                return pattern
    return None
