"""Tests for area code generation."""

from __future__ import annotations

import itertools
import string

import pytest

from paddysync.locations.codes import generate_base_code, generate_code, name_hash


class TestGenerateBaseCode:
    """Tests for generate_base_code."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Phnom Penh", "PPH"),
            ("Chamkar Mon", "CMN"),
            ("Boeng Keng Kang", "BKK"),
            ("Kandal", "KND"),
            ("Takeo", "TKA"),
            ("Ta", "TAX"),
            ("Bavet", "BVT"),
        ],
    )
    def test_plain_names(self, name: str, expected: str) -> None:
        assert generate_base_code(name) == expected

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Tuol Svay Prey Ti Muoy", "TS1"),
            ("Boeng Keng Kang Ti Pir", "BK2"),
            ("Boeng Keng Kang Ti Bei", "BK3"),
            ("Chbar Ampov Ti Pram Muoy", "CA6"),
            ("Chbar Ti Bei", "CH3"),
        ],
    )
    def test_ordinal_suffix(self, name: str, expected: str) -> None:
        """Khmer ordinal suffixes become a trailing digit."""
        assert generate_base_code(name) == expected

    def test_longest_ordinal_wins(self) -> None:
        """'Ti Pram Pir' (7) must not be read as 'Ti Pir' (2)."""
        assert generate_base_code("Phsar Thmei Ti Pram Pir") == "PT7"

    def test_area_type_suffix_ignored(self) -> None:
        assert generate_base_code("Takeo Province") == generate_base_code("Takeo")
        assert generate_base_code("Chamkar Mon District") == "CMN"

    def test_punctuation_ignored(self) -> None:
        assert generate_base_code("Tuol Kork-1") == generate_base_code("Tuol Kork")

    def test_empty_name(self) -> None:
        assert generate_base_code("") == "XXX"
        assert generate_base_code("123") == "XXX"

    def test_always_three_characters(self) -> None:
        for name in ("A", "Ab", "Prey Veng", "Kampong Cham", "Ou Ya Dav"):
            assert len(generate_base_code(name)) == 3


class TestNameHash:
    """Tests for name_hash."""

    def test_known_values(self) -> None:
        assert name_hash("") == "0"
        assert name_hash("a") == "2P"

    def test_deterministic_and_uppercase(self) -> None:
        value = name_hash("Boeng Keng Kang")
        assert value == name_hash("Boeng Keng Kang")
        assert value == value.upper()


class TestGenerateCode:
    """Tests for generate_code."""

    def test_base_code_when_free(self) -> None:
        assert generate_code("Boeng Keng Kang", set()) == "BKK"

    def test_numbered_fallback(self) -> None:
        assert generate_code("Boeng Keng Kang", {"BKK"}) == "BK2"
        assert generate_code("Boeng Keng Kang", {"BKK", "BK2", "BK3"}) == "BK4"

    def test_pairwise_fallback(self) -> None:
        """With every numbered variant taken, word pairs are tried."""
        taken = {"BKK"} | {f"BK{digit}" for digit in range(2, 10)}
        assert generate_code("Boeng Keng Kang", taken) == "BKO"

    def test_hash_fallback(self) -> None:
        taken = {"PPH"} | {f"PP{digit}" for digit in range(2, 10)}
        # Pairwise candidates of "Phnom Penh" are PPH and PPE
        taken.add("PPE")
        code = generate_code("Phnom Penh", taken)
        assert code not in taken
        assert code == name_hash("Phnom Penh")[:3].ljust(3, "X")

    def test_never_returns_existing_code(self) -> None:
        all_letter_codes = {
            "".join(letters) for letters in itertools.product(string.ascii_uppercase, repeat=3)
        }
        code = generate_code("Boeng Keng Kang", all_letter_codes)
        assert code not in all_letter_codes
        assert len(code) == 3

    def test_existing_codes_not_modified(self) -> None:
        taken = frozenset({"BKK"})
        generate_code("Boeng Keng Kang", taken)
        assert taken == {"BKK"}

    def test_deterministic(self) -> None:
        taken = {"BKK", "BK2"}
        assert generate_code("Boeng Keng Kang", taken) == generate_code("Boeng Keng Kang", taken)
