"""Unit tests for title cleaning, normalization and season detection."""

import pytest

from anime_admin.services.titles import (
    clean_title,
    detect_season_from_title,
    normalize_for_matching,
    normalize_title,
    roman_to_int,
)

SAMPLE_TITLES = [
    "  Show_Name  (2023) - ",
    "Frieren",
    "Oshi no Ko 2nd Season",
    "[Oshi No Ko] Season 2",
    "Re Zero II",
    "Title (2020) (2021)",
    "Attack on Titan Part II",
    "__Under__Scores__",
    "Kaguya-sama: Love Is War -Ultra Romantic-",
    "",
]


class TestCleanTitle:
    """Tests for clean_title()."""

    def test_trims_separators_and_year(self) -> None:
        assert clean_title("  Show_Name  (2023) - ") == "Show Name"

    def test_keeps_non_year_parenthetical(self) -> None:
        assert clean_title("Show (TV)") == "Show (TV)"

    def test_stacked_years_are_removed(self) -> None:
        assert clean_title("Title (2020) (2021)") == "Title"

    @pytest.mark.parametrize("title", SAMPLE_TITLES)
    def test_idempotent(self, title: str) -> None:
        once = clean_title(title)
        assert clean_title(once) == once


class TestNormalizeTitle:
    """Tests for normalize_title() and normalize_for_matching()."""

    @pytest.mark.parametrize(
        ("title", "expected"),
        [
            ("Oshi no Ko 2nd Season", "Oshi no Ko"),
            ("Title Season 2", "Title"),
            ("Title S2", "Title"),
            ("Attack on Titan Part 2", "Attack on Titan"),
            ("Attack on Titan Part II", "Attack on Titan"),
            ("Show Cour 2", "Show"),
            ("Re Zero II", "Re Zero"),
            ("Frieren (2023)", "Frieren"),
        ],
    )
    def test_strips_season_suffixes(self, title: str, expected: str) -> None:
        assert normalize_title(title) == expected

    def test_matching_key_ignores_punctuation_and_case(self) -> None:
        assert normalize_for_matching("[Oshi No Ko] Season 2") == "oshi no ko"
        assert normalize_for_matching("Oshi no Ko") == "oshi no ko"

    @pytest.mark.parametrize("title", SAMPLE_TITLES)
    def test_matching_key_is_stable(self, title: str) -> None:
        key = normalize_for_matching(title)
        assert normalize_for_matching(key) == key


class TestSeasonDetection:
    """Tests for detect_season_from_title()."""

    @pytest.mark.parametrize(
        ("title", "expected"),
        [
            ("Show Season 3", 3),
            ("Show S2", 2),
            ("Oshi no Ko 2nd Season", 2),
            ("Attack on Titan Part II", 2),
            ("Show Cour 2", 2),
            ("Re Zero III", 3),
            ("Frieren", None),
        ],
    )
    def test_detect(self, title: str, expected) -> None:
        assert detect_season_from_title(title) == expected

    def test_roman_to_int(self) -> None:
        assert roman_to_int("iv") == 4
        assert roman_to_int("XI") is None
