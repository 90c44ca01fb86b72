"""Unit tests for release scoring and download decisions."""

import pytest

from anime_admin.errors import NotFoundError, ValidationError
from anime_admin.services.parser import Release
from anime_admin.services.quality import UNKNOWN_QUALITY, get_quality_by_name
from anime_admin.services.scoring import (
    QUALITY_WEIGHT,
    SEADEX_BONUS,
    DecisionReason,
    DownloadDecisionService,
    ExistingFile,
    QualityProfile,
    ReleaseRule,
    ReleaseScorer,
    RuleType,
    is_seadex_release,
)


def make_release(group: str = "SubsPlease", title: str = "Frieren") -> Release:
    return Release(
        original_filename=f"[{group}] {title} - 01 [1080p].mkv",
        title=title,
        episode_number=1.0,
        group=group,
        resolution="1080p",
    )


@pytest.fixture
def web_profile() -> QualityProfile:
    return QualityProfile(
        name="Web only",
        cutoff="WEB 1080p",
        allowed_qualities=["WEB 720p", "WEB 1080p"],
    )


@pytest.fixture
def tiered_profile() -> QualityProfile:
    return QualityProfile(
        name="Tiered",
        cutoff="WEB 1080p",
        allowed_qualities=["BluRay 1080p", "WEB 1080p", "WEB 720p"],
    )


@pytest.fixture
def scorer() -> ReleaseScorer:
    return ReleaseScorer()


class TestScoreGates:
    """Tests for the rejection gates of ReleaseScorer.score()."""

    def test_quality_not_in_profile(self, scorer, web_profile) -> None:
        """A quality outside allowed_qualities is rejected regardless of rank."""
        decision = scorer.score(
            make_release(), get_quality_by_name("BD 1080p"), web_profile, []
        )

        assert decision.accepted is False
        assert decision.reason == DecisionReason.QUALITY_NOT_ALLOWED

    def test_must_not_rejects_despite_score(self, scorer, web_profile) -> None:
        rules = [
            ReleaseRule(term="BadGroup", rule_type=RuleType.MUST_NOT),
            ReleaseRule(term="Frieren", score=10_000),
        ]
        decision = scorer.score(
            make_release(group="BadGroup"), get_quality_by_name("WEB 1080p"), web_profile, rules
        )

        assert decision.accepted is False
        assert decision.reason == DecisionReason.MUST_NOT_MATCHED
        assert decision.matched_rules == ("BadGroup",)

    def test_must_not_matches_case_insensitively(self, scorer, web_profile) -> None:
        rules = [ReleaseRule(term="badgroup", rule_type=RuleType.MUST_NOT)]
        decision = scorer.score(
            make_release(group="BadGroup"), get_quality_by_name("WEB 1080p"), web_profile, rules
        )
        assert decision.reason == DecisionReason.MUST_NOT_MATCHED

    def test_must_term_missing(self, scorer, web_profile) -> None:
        rules = [ReleaseRule(term="HEVC", rule_type=RuleType.MUST)]
        decision = scorer.score(make_release(), get_quality_by_name("WEB 1080p"), web_profile, rules)

        assert decision.accepted is False
        assert decision.reason == DecisionReason.MUST_MISSING

    def test_disabled_rules_are_ignored(self, scorer, web_profile) -> None:
        rules = [ReleaseRule(term="HEVC", rule_type=RuleType.MUST, enabled=False)]
        decision = scorer.score(make_release(), get_quality_by_name("WEB 1080p"), web_profile, rules)
        assert decision.accepted is True

    def test_size_out_of_range(self, scorer, web_profile) -> None:
        web_profile.min_size = 100
        web_profile.max_size = 1000
        quality = get_quality_by_name("WEB 1080p")

        assert scorer.score(make_release(), quality, web_profile, [], size=50).reason == (
            DecisionReason.SIZE_OUT_OF_RANGE
        )
        assert scorer.score(make_release(), quality, web_profile, [], size=5000).reason == (
            DecisionReason.SIZE_OUT_OF_RANGE
        )
        assert scorer.score(make_release(), quality, web_profile, [], size=500).accepted


class TestScoreValue:
    """Tests for the score of accepted releases."""

    def test_position_and_preferred_terms(self, scorer, web_profile) -> None:
        rules = [ReleaseRule(term="subsplease", score=10), ReleaseRule(term="nomatch", score=99)]
        decision = scorer.score(make_release(), get_quality_by_name("WEB 720p"), web_profile, rules)

        assert decision.accepted is True
        assert decision.reason == DecisionReason.ACCEPTED
        assert decision.score == 2 * QUALITY_WEIGHT + 10
        assert decision.matched_rules == ("subsplease",)

    def test_later_position_scores_lower(self, scorer, web_profile) -> None:
        first = scorer.score(make_release(), get_quality_by_name("WEB 720p"), web_profile, [])
        second = scorer.score(make_release(), get_quality_by_name("WEB 1080p"), web_profile, [])
        assert first.score > second.score

    def test_seadex_bonus(self, scorer, web_profile) -> None:
        quality = get_quality_by_name("WEB 1080p")
        plain = scorer.score(make_release(), quality, web_profile, [])
        seadex = scorer.score(make_release(), quality, web_profile, [], is_seadex=True)
        assert seadex.score == plain.score + SEADEX_BONUS

        web_profile.seadex_preferred = False
        assert scorer.score(make_release(), quality, web_profile, [], is_seadex=True).score == plain.score

    def test_to_dict(self, scorer, web_profile) -> None:
        data = scorer.score(make_release(), get_quality_by_name("WEB 1080p"), web_profile, []).to_dict()
        assert data["accepted"] is True
        assert data["reason"] == "accepted"
        assert data["quality"] == "WEB 1080p"
        assert data["is_upgrade"] is False


class TestUpgrades:
    """Tests for decide() against an existing file."""

    def test_existing_at_cutoff_stops_upgrades(self, scorer, tiered_profile) -> None:
        """A higher allowed quality does not replace a file already at the cutoff."""
        existing = ExistingFile(quality=get_quality_by_name("WEB 1080p"))
        decision = scorer.decide(
            make_release(), get_quality_by_name("BluRay 1080p"), tiered_profile, [], existing=existing
        )

        assert decision.accepted is False
        assert decision.reason == DecisionReason.ALREADY_AT_CUTOFF

    def test_upgrade_below_cutoff(self, scorer, tiered_profile) -> None:
        existing = ExistingFile(quality=get_quality_by_name("WEB 720p"))
        decision = scorer.decide(
            make_release(), get_quality_by_name("WEB 1080p"), tiered_profile, [], existing=existing
        )

        assert decision.accepted is True
        assert decision.reason == DecisionReason.UPGRADE
        assert decision.is_upgrade is True

    def test_candidate_above_cutoff_is_not_an_upgrade(self, scorer, tiered_profile) -> None:
        existing = ExistingFile(quality=get_quality_by_name("WEB 720p"))
        decision = scorer.decide(
            make_release(), get_quality_by_name("BluRay 1080p"), tiered_profile, [], existing=existing
        )
        assert decision.reason == DecisionReason.NO_UPGRADE_AVAILABLE

    def test_upgrades_disabled(self, scorer, tiered_profile) -> None:
        tiered_profile.upgrade_allowed = False
        existing = ExistingFile(quality=get_quality_by_name("WEB 720p"))
        decision = scorer.decide(
            make_release(), get_quality_by_name("WEB 1080p"), tiered_profile, [], existing=existing
        )
        assert decision.reason == DecisionReason.UPGRADES_DISABLED

    def test_seadex_replaces_non_seadex(self, scorer, tiered_profile) -> None:
        existing = ExistingFile(quality=get_quality_by_name("WEB 1080p"), is_seadex=False)
        decision = scorer.decide(
            make_release(), get_quality_by_name("WEB 1080p"), tiered_profile, [],
            existing=existing, is_seadex=True,
        )
        assert decision.reason == DecisionReason.UPGRADE_SEADEX

    def test_same_rank_with_better_preferred_score(self, scorer, tiered_profile) -> None:
        rules = [ReleaseRule(term="SubsPlease", score=50)]
        existing = ExistingFile(
            quality=get_quality_by_name("WEB 720p"), filename="[Other] Frieren - 01 [720p].mkv"
        )
        decision = scorer.decide(
            make_release(), get_quality_by_name("WEB 720p"), tiered_profile, rules, existing=existing
        )
        assert decision.reason == DecisionReason.UPGRADE_SCORE

    def test_same_rank_without_better_score(self, scorer, tiered_profile) -> None:
        existing = ExistingFile(quality=get_quality_by_name("WEB 720p"))
        decision = scorer.decide(
            make_release(), get_quality_by_name("WEB 720p"), tiered_profile, [], existing=existing
        )
        assert decision.reason == DecisionReason.NO_UPGRADE_AVAILABLE

    def test_existing_size_out_of_bounds(self, scorer, tiered_profile) -> None:
        tiered_profile.max_size = 1000
        existing = ExistingFile(quality=get_quality_by_name("WEB 720p"), file_size=5000)
        decision = scorer.decide(
            make_release(), get_quality_by_name("WEB 1080p"), tiered_profile, [], existing=existing
        )
        assert decision.reason == DecisionReason.SIZE_OUT_OF_RANGE

    def test_unknown_existing_quality_upgrades(self, scorer, tiered_profile) -> None:
        existing = ExistingFile(quality=UNKNOWN_QUALITY)
        decision = scorer.decide(
            make_release(), get_quality_by_name("WEB 720p"), tiered_profile, [], existing=existing
        )
        assert decision.reason == DecisionReason.UPGRADE


class TestQualityProfile:
    """Tests for QualityProfile validation."""

    def test_default_profile_is_valid(self) -> None:
        profile = QualityProfile.default()
        profile.validate()
        assert profile.cutoff_quality().name == "BluRay 1080p"

    def test_cutoff_must_be_allowed(self, web_profile) -> None:
        web_profile.cutoff = "BluRay 1080p"
        with pytest.raises(ValidationError):
            web_profile.validate()

    def test_unknown_quality_name(self, web_profile) -> None:
        web_profile.allowed_qualities.append("VHS 240p")
        with pytest.raises(ValidationError):
            web_profile.validate()

    def test_duplicate_quality(self, web_profile) -> None:
        web_profile.allowed_qualities.append("web 720p")
        with pytest.raises(ValidationError):
            web_profile.validate()

    def test_inverted_size_bounds(self, web_profile) -> None:
        web_profile.min_size = 10
        web_profile.max_size = 5
        with pytest.raises(ValidationError):
            web_profile.validate()

    def test_is_seadex_release(self) -> None:
        assert is_seadex_release("[Vodes] Frieren - 01.mkv", ["vodes", "LYS1TH3A"])
        assert not is_seadex_release("[SubsPlease] Frieren - 01.mkv", ["vodes"])


class TestDownloadDecisionService:
    """Tests for DownloadDecisionService against the store."""

    def test_rejects_non_positive_episode(self, store, stored_catalog) -> None:
        service = DownloadDecisionService(store)
        with pytest.raises(ValidationError):
            service.should_download(154587, 0, "[SubsPlease] Frieren - 00 [1080p].mkv")

    def test_unknown_anime(self, store) -> None:
        service = DownloadDecisionService(store)
        with pytest.raises(NotFoundError):
            service.should_download(1, 1, "[SubsPlease] Frieren - 01 [1080p].mkv")

    def test_uses_default_profile_and_rules(self, store, stored_catalog) -> None:
        store.ensure_default_profile()
        store.save_release_profile(
            "Blocklist", [ReleaseRule(term="BadGroup", rule_type=RuleType.MUST_NOT)]
        )
        service = DownloadDecisionService(store)

        good = service.should_download(154587, 1, "[SubsPlease] Frieren - 01 (WEB 1080p).mkv")
        bad = service.should_download(154587, 1, "[BadGroup] Frieren - 01 (WEB 1080p).mkv")

        assert good.accepted is True
        assert bad.reason == DecisionReason.MUST_NOT_MATCHED

    def test_existing_file_triggers_upgrade_check(self, store, stored_catalog) -> None:
        store.ensure_default_profile()
        store.mark_episode_downloaded(
            154587, 1, "/library/Frieren/ep01.mkv",
            quality_id=get_quality_by_name("BluRay 1080p").id,
        )
        service = DownloadDecisionService(store)

        decision = service.should_download(154587, 1, "[SubsPlease] Frieren - 01 (BD 2160p).mkv")

        assert decision.accepted is False
        assert decision.reason == DecisionReason.ALREADY_AT_CUTOFF
