"""Short code generation for administrative areas.

Codes are derived from the English area name, for example
"Boeng Keng Kang" -> "BKK" or "Tuol Svay Prey Ti Pir" -> "TS2". When the
derived code is already taken at the same level, a deterministic series
of fallbacks is tried until a free code is found.

``generate_code`` is a pure function: the same name and set of existing
codes always give the same result, and the result is never one of the
existing codes.
"""

from __future__ import annotations

import itertools
import re
import string
from collections.abc import Iterable, Set

VOWELS = frozenset("aeiou")
FILLER = "X"
CODE_LENGTH = 3

# Khmer ordinal suffixes used in commune names ("... Ti Muoy" = "... One")
ORDINAL_SUFFIXES: dict[str, str] = {
    "Ti Muoy": "1",
    "Ti Pir": "2",
    "Ti Bei": "3",
    "Ti Buon": "4",
    "Ti Pram": "5",
    "Ti Pram Muoy": "6",
    "Ti Pram Pir": "7",
    "Ti Pram Bei": "8",
    "Ti Pram Buon": "9",
    "Ti Dop": "10",
}

# Longest first so "Ti Pram Muoy" wins over "Ti Muoy"
_SORTED_SUFFIXES = sorted(ORDINAL_SUFFIXES, key=len, reverse=True)

_AREA_TYPE_SUFFIX = re.compile(r"\s+(province|district|commune|sangkat)$", re.IGNORECASE)
_NON_ALPHA = re.compile(r"[^a-zA-Z\s]")

_BASE36 = string.digits + string.ascii_uppercase

# Salted hash attempts before falling back to enumerating every code
_MAX_HASH_SALTS = 1000


def _is_vowel(char: str) -> bool:
    return char.lower() in VOWELS


def _split_ordinal(name: str) -> tuple[str, str]:
    """Split a trailing ordinal suffix off a name.

    Returns:
        Tuple of (name without suffix, numeral or "").
    """
    for suffix in _SORTED_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)].strip(), ORDINAL_SUFFIXES[suffix]
    return name, ""


def _clean(name: str) -> str:
    without_type = _AREA_TYPE_SUFFIX.sub("", name)
    return _NON_ALPHA.sub("", without_type).strip()


def _first_consonants(word: str, count: int) -> list[str]:
    """First letter of ``word`` followed by its next non-vowels, up to ``count`` letters."""
    letters = [word[0].upper()]
    for char in word[1:]:
        if len(letters) >= count:
            break
        if not _is_vowel(char):
            letters.append(char.upper())
    return letters


def _last_consonant(word: str) -> str:
    for char in reversed(word[1:]):
        if not _is_vowel(char):
            return char.upper()
    if len(word) > 1:
        return word[-1].upper()
    return FILLER


def generate_base_code(name: str) -> str:
    """Derive the preferred code for an area name, ignoring collisions."""
    base_name, numeral = _split_ordinal(name)
    clean_name = _clean(base_name)
    words = clean_name.split()

    if not words:
        return f"{FILLER * 2}{numeral}" if numeral else FILLER * CODE_LENGTH

    if numeral:
        if len(words) >= 2:
            return f"{words[0][0].upper()}{words[1][0].upper()}{numeral}"
        letters = _first_consonants(words[0], 2)
        return "".join(letters).ljust(2, FILLER) + numeral

    letters_only = "".join(words)
    if len(letters_only) <= CODE_LENGTH:
        return letters_only.upper().ljust(CODE_LENGTH, FILLER)

    if len(words) == 1:
        word = words[0]
        letters = _first_consonants(word, CODE_LENGTH)
        for char in word[1:]:
            if len(letters) >= CODE_LENGTH:
                break
            if _is_vowel(char):
                letters.append(char.upper())
        return "".join(letters).ljust(CODE_LENGTH, FILLER)

    if len(words) >= 3:
        return "".join(word[0].upper() for word in words[:3])

    first, second = words
    return f"{first[0].upper()}{second[0].upper()}{_last_consonant(second)}"


def name_hash(value: str) -> str:
    """Base-36 rendering of a 32-bit rolling string hash (``h * 31 + c``)."""
    h = 0
    for char in value:
        h = ((h << 5) - h + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    h = abs(h)
    if h == 0:
        return "0"
    digits = []
    while h:
        h, remainder = divmod(h, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def _pairwise_candidates(name: str) -> Iterable[str]:
    words = _NON_ALPHA.sub("", name).split()
    for i, first in enumerate(words):
        for j, second in enumerate(words):
            if i == j:
                continue
            second_letter = first[1] if len(first) > 1 else FILLER
            yield f"{first[0]}{second[0]}{second_letter}".upper()


def _hash_candidates(name: str) -> Iterable[str]:
    yield name_hash(name)[:CODE_LENGTH].ljust(CODE_LENGTH, FILLER)
    for salt in range(1, _MAX_HASH_SALTS + 1):
        yield name_hash(f"{name}#{salt}")[:CODE_LENGTH].ljust(CODE_LENGTH, FILLER)


def generate_code(name: str, existing_codes: Set[str]) -> str:
    """Generate a code for ``name`` that is not in ``existing_codes``.

    Tried in order: the base code, the base code with its last character
    replaced by 2-9, initials of every ordered pair of words, then a hash
    of the name. ``existing_codes`` is never modified.

    Args:
        name: English name of the area.
        existing_codes: Codes already assigned at the same level.

    Returns:
        A code not present in ``existing_codes``.

    Raises:
        ValueError: If every three-character code is already taken.
    """
    base = generate_base_code(name)
    if base not in existing_codes:
        return base

    for digit in range(2, 10):
        candidate = f"{base[:2]}{digit}"
        if candidate not in existing_codes:
            return candidate

    for candidate in _pairwise_candidates(name):
        if candidate not in existing_codes:
            return candidate

    for candidate in _hash_candidates(name):
        if candidate not in existing_codes:
            return candidate

    for letters in itertools.product(string.ascii_uppercase, repeat=CODE_LENGTH):
        candidate = "".join(letters)
        if candidate not in existing_codes:
            return candidate

    raise ValueError(f"No free code left for {name!r}")
