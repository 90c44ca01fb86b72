"""Unit tests for the quality table and classification."""

import pytest

from anime_admin.services.parser import parse_filename
from anime_admin.services.quality import (
    QUALITIES,
    UNKNOWN_QUALITY,
    QualitySource,
    classify,
    classify_release,
    determine_quality_id,
    get_quality_by_id,
    get_quality_by_name,
    list_qualities,
    parse_quality_from_filename,
    resolution_to_int,
)


class TestQualityTable:
    """Tests for the static ranked table."""

    def test_ranks_are_strictly_ordered(self) -> None:
        ranks = [q.rank for q in QUALITIES]
        assert ranks == sorted(ranks, reverse=True)
        assert len(set(ranks)) == len(ranks)

    def test_unknown_excluded_from_listing(self) -> None:
        qualities = list_qualities()
        assert UNKNOWN_QUALITY not in qualities
        assert all(not q.is_unknown for q in qualities)

    def test_unknown_ranks_below_everything(self) -> None:
        assert all(q.is_better_than(UNKNOWN_QUALITY) for q in QUALITIES)

    def test_lookup_by_id(self) -> None:
        assert get_quality_by_id(3).name == "BluRay 1080p"
        assert get_quality_by_id(99) is UNKNOWN_QUALITY
        assert get_quality_by_id(None) is None
        assert get_quality_by_id(42) is None

    @pytest.mark.parametrize("name", ["BluRay 1080p", "bluray 1080p", "BD 1080p", "Blu-Ray  1080p"])
    def test_lookup_by_name_accepts_aliases(self, name: str) -> None:
        assert get_quality_by_name(name).id == 3

    def test_lookup_by_unknown_name(self) -> None:
        assert get_quality_by_name("VHS 240p") is None

    def test_meets_cutoff(self) -> None:
        web_1080 = get_quality_by_name("WEB 1080p")
        assert get_quality_by_name("BluRay 1080p").meets_cutoff(web_1080)
        assert web_1080.meets_cutoff(web_1080)
        assert not get_quality_by_name("WEB 720p").meets_cutoff(web_1080)


class TestClassify:
    """Tests for classify() and related helpers."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Show - 01 [BD 1080p].mkv", "BluRay 1080p"),
            ("Show - 01 [WEB-DL 720p].mkv", "WEB 720p"),
            ("Show HDTV 720p", "HDTV 720p"),
            ("Show 2160p BluRay", "BluRay 2160p"),
            ("[SubsPlease] Frieren - 01 [1080p].mkv", "WEB 1080p"),
            ("Show [480p]", "SDTV 480p"),
        ],
    )
    def test_classify(self, text: str, expected: str) -> None:
        assert classify(text).name == expected

    def test_unmatched_is_unknown(self) -> None:
        quality = classify("nothing useful here")
        assert quality is UNKNOWN_QUALITY
        assert quality.source == QualitySource.UNKNOWN

    def test_classify_release(self) -> None:
        release = parse_filename("Frieren - 05 (1080p BD) [Group].mkv")
        assert classify_release(release).name == "BluRay 1080p"
        assert determine_quality_id(release) == 3

    def test_filename_quality_assumes_1080p_web(self) -> None:
        assert parse_quality_from_filename("Show - 01.mkv").name == "WEB 1080p"

    def test_filename_quality_infers_source(self) -> None:
        assert parse_quality_from_filename("Show - 01 [720p] bdremux.mkv").name == "BluRay 720p"

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("1080p", 1080), ("4K", 2160), ("720i", 720), ("", 0), (None, 0), ("hd", 0)],
    )
    def test_resolution_to_int(self, value, expected: int) -> None:
        assert resolution_to_int(value) == expected
