"""Unit tests for file utility helpers."""

from pathlib import Path

import pytest

from anime_admin.services.file_utils import (
    cleanup_path,
    format_size,
    is_video_file,
    parse_size,
    sanitize_filename,
)


class TestSizes:
    """Tests for parse_size() and format_size()."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("1.5 GiB", int(1.5 * 1024 ** 3)),
            ("700 MB", 700_000_000),
            ("700mb", 700_000_000),
            ("2 KiB", 2048),
            ("1TB", 1000 ** 4),
        ],
    )
    def test_parse(self, value: str, expected: int) -> None:
        assert parse_size(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "12", "1.5 XB", "GiB 1"])
    def test_parse_invalid(self, value: str) -> None:
        assert parse_size(value) is None

    def test_format(self) -> None:
        assert format_size(10) == "10 B"
        assert format_size(1536) == "1.50 KiB"
        assert format_size(3 * 1024 ** 3) == "3.00 GiB"


class TestPaths:
    """Tests for filename sanitizing and path cleanup."""

    def test_sanitize_filename(self) -> None:
        assert sanitize_filename('Re:Zero / Test?') == "Re Zero Test"

    def test_cleanup_empty_tokens(self) -> None:
        assert cleanup_path("Show [] - 01 ()") == "Show - 01"

    def test_cleanup_trailing_separator(self) -> None:
        assert cleanup_path("Show - S01E01 - ") == "Show - S01E01"

    def test_cleanup_leading_separator(self) -> None:
        assert cleanup_path(" - Show") == "Show"

    def test_is_video_file(self) -> None:
        assert is_video_file(Path("a.MKV"))
        assert not is_video_file(Path("a.txt"))
        assert not is_video_file(Path("a.mkv"), [".mp4"])
