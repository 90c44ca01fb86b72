"""Release scoring and download decisions.

A candidate release is checked against the anime's quality profile and the
applicable release-profile rules. Every outcome is a `Decision` value whose
`reason` names the gate that produced it.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from ..errors import NotFoundError, ValidationError
from .parser import Release, parse_filename
from .quality import (
    Quality, UNKNOWN_QUALITY, get_quality_by_id, get_quality_by_name, parse_quality_from_filename,
)

logger = logging.getLogger(__name__)

# Score contributed per step of position in allowed_qualities
QUALITY_WEIGHT = 1000

# Added when the profile prefers curated best releases and the release is one
SEADEX_BONUS = 500

DEFAULT_PROFILE_NAME = "Default"


class RuleType(str, Enum):
    PREFERRED = "preferred"
    MUST = "must"
    MUST_NOT = "must_not"


class DecisionReason(str, Enum):
    """Why a release was accepted or rejected."""

    ACCEPTED = "accepted"
    UPGRADE = "upgrade"
    UPGRADE_SEADEX = "upgrade_seadex"
    UPGRADE_SCORE = "upgrade_score"
    QUALITY_NOT_ALLOWED = "quality_not_allowed"
    MUST_NOT_MATCHED = "must_not_matched"
    MUST_MISSING = "must_missing"
    SIZE_OUT_OF_RANGE = "size_out_of_range"
    UPGRADES_DISABLED = "upgrades_disabled"
    ALREADY_AT_CUTOFF = "already_at_cutoff"
    NO_UPGRADE_AVAILABLE = "no_upgrade_available"


UPGRADE_REASONS = {DecisionReason.UPGRADE, DecisionReason.UPGRADE_SEADEX, DecisionReason.UPGRADE_SCORE}


@dataclass(frozen=True)
class Decision:
    """Outcome of scoring a release."""

    accepted: bool
    score: int
    reason: DecisionReason
    quality: Optional[Quality] = None
    matched_rules: tuple[str, ...] = ()
    detail: str = ""
    preferred_score: int = 0

    @property
    def is_upgrade(self) -> bool:
        return self.accepted and self.reason in UPGRADE_REASONS

    def to_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "score": self.score,
            "reason": self.reason.value,
            "is_upgrade": self.is_upgrade,
            "quality": self.quality.name if self.quality else None,
            "matched_rules": list(self.matched_rules),
            "detail": self.detail,
        }


def _reject(reason: DecisionReason, quality: Optional[Quality], detail: str,
            matched: tuple[str, ...] = ()) -> Decision:
    return Decision(accepted=False, score=0, reason=reason, quality=quality,
                    matched_rules=matched, detail=detail)


@dataclass(frozen=True)
class ReleaseRule:
    """A keyword rule from a release profile."""

    term: str
    score: int = 0
    rule_type: RuleType = RuleType.PREFERRED
    enabled: bool = True

    def matches(self, haystack: str) -> bool:
        """Case-insensitive substring test against lowercased text."""
        return bool(self.term) and self.term.lower() in haystack


@dataclass
class QualityProfile:
    """Which qualities are acceptable for an anime and when upgrading stops."""

    name: str
    cutoff: str
    allowed_qualities: list[str] = field(default_factory=list)
    upgrade_allowed: bool = True
    seadex_preferred: bool = True
    min_size: Optional[int] = None
    max_size: Optional[int] = None
    id: Optional[int] = None

    @classmethod
    def default(cls) -> "QualityProfile":
        """BluRay 1080p cutoff, everything from BluRay 2160p down to HDTV 720p allowed."""
        return cls(
            name=DEFAULT_PROFILE_NAME,
            cutoff="BluRay 1080p",
            allowed_qualities=[get_quality_by_id(i).name for i in range(1, 9)],
        )

    @classmethod
    def from_record(cls, record) -> "QualityProfile":
        """Build from a QualityProfileRecord row."""
        return cls(
            id=record.id,
            name=record.name,
            cutoff=record.cutoff,
            allowed_qualities=json.loads(record.allowed_qualities or "[]"),
            upgrade_allowed=record.upgrade_allowed,
            seadex_preferred=record.seadex_preferred,
            min_size=record.min_size,
            max_size=record.max_size,
        )

    def validate(self) -> None:
        """Raise ValidationError unless every name resolves and the cutoff is allowed."""
        if not self.name or not self.name.strip():
            raise ValidationError("Profile name is required")
        resolved = []
        for name in self.allowed_qualities:
            quality = get_quality_by_name(name)
            if quality is None or quality.is_unknown:
                raise ValidationError(f"Unknown quality: {name}")
            resolved.append(quality.id)
        if len(set(resolved)) != len(resolved):
            raise ValidationError("Duplicate quality in allowed_qualities")
        cutoff = get_quality_by_name(self.cutoff)
        if cutoff is None:
            raise ValidationError(f"Unknown cutoff quality: {self.cutoff}")
        if cutoff.id not in resolved:
            raise ValidationError(f"Cutoff {self.cutoff} is not an allowed quality")
        if self.min_size is not None and self.max_size is not None and self.min_size > self.max_size:
            raise ValidationError("min_size is larger than max_size")

    def allowed(self) -> list[Quality]:
        """Resolved allowed qualities in preference order."""
        qualities = []
        for name in self.allowed_qualities:
            quality = get_quality_by_name(name)
            if quality is not None:
                qualities.append(quality)
        return qualities

    def cutoff_quality(self) -> Quality:
        return get_quality_by_name(self.cutoff) or UNKNOWN_QUALITY

    def position(self, quality: Quality) -> Optional[int]:
        """Index in allowed_qualities, 0 being most preferred."""
        for index, allowed in enumerate(self.allowed()):
            if allowed.id == quality.id:
                return index
        return None

    def allows(self, quality: Quality) -> bool:
        return self.position(quality) is not None

    def size_in_range(self, size: Optional[int]) -> bool:
        if size is None:
            return True
        if self.min_size is not None and size < self.min_size:
            return False
        if self.max_size is not None and size > self.max_size:
            return False
        return True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cutoff": self.cutoff,
            "allowed_qualities": list(self.allowed_qualities),
            "upgrade_allowed": self.upgrade_allowed,
            "seadex_preferred": self.seadex_preferred,
            "min_size": self.min_size,
            "max_size": self.max_size,
        }


@dataclass
class ExistingFile:
    """What is already on disk for an episode."""

    quality: Quality
    is_seadex: bool = False
    file_size: Optional[int] = None
    filename: str = ""


def is_seadex_release(title: str, seadex_groups: Iterable[str]) -> bool:
    """True when the title mentions one of the curated best-release groups."""
    lowered = title.lower()
    return any(group and group.lower() in lowered for group in seadex_groups)


class ReleaseScorer:
    """Scores releases against a profile and decides on downloads and upgrades."""

    def __init__(self, quality_weight: int = QUALITY_WEIGHT, seadex_bonus: int = SEADEX_BONUS):
        self.quality_weight = quality_weight
        self.seadex_bonus = seadex_bonus

    @staticmethod
    def _haystack(release: Release) -> str:
        return " ".join([release.title, release.group or "", release.original_filename]).lower()

    @staticmethod
    def preferred_score(text: str, rules: Iterable[ReleaseRule]) -> tuple[int, tuple[str, ...]]:
        """Sum of matching preferred rule scores and the terms that matched."""
        haystack = text.lower()
        total = 0
        matched = []
        for rule in rules:
            if rule.enabled and rule.rule_type == RuleType.PREFERRED and rule.matches(haystack):
                total += rule.score
                matched.append(rule.term)
        return total, tuple(matched)

    def score(
        self,
        release: Release,
        quality: Quality,
        profile: QualityProfile,
        rules: Iterable[ReleaseRule],
        is_seadex: bool = False,
        size: Optional[int] = None,
    ) -> Decision:
        """Gate and score a release without regard to what is already downloaded."""
        rules = [r for r in rules if r.enabled]
        haystack = self._haystack(release)

        position = profile.position(quality)
        if position is None:
            return _reject(
                DecisionReason.QUALITY_NOT_ALLOWED, quality,
                f"{quality.name} is not allowed by profile {profile.name}",
            )

        for rule in rules:
            if rule.rule_type == RuleType.MUST_NOT and rule.matches(haystack):
                return _reject(
                    DecisionReason.MUST_NOT_MATCHED, quality,
                    f"Contains forbidden term: {rule.term}", (rule.term,),
                )

        for rule in rules:
            if rule.rule_type == RuleType.MUST and not rule.matches(haystack):
                return _reject(
                    DecisionReason.MUST_MISSING, quality,
                    f"Missing required term: {rule.term}", (rule.term,),
                )

        if not profile.size_in_range(size):
            return _reject(DecisionReason.SIZE_OUT_OF_RANGE, quality, f"Size {size} outside profile bounds")

        preferred, matched = self.preferred_score(haystack, rules)
        total = (len(profile.allowed()) - position) * self.quality_weight + preferred
        if profile.seadex_preferred and is_seadex:
            total += self.seadex_bonus

        logger.debug(f"Scored '{release.original_filename}': {quality.name}, score {total}")
        return Decision(
            accepted=True, score=total, reason=DecisionReason.ACCEPTED,
            quality=quality, matched_rules=matched, preferred_score=preferred,
        )

    def evaluate_upgrade(
        self,
        candidate: Decision,
        existing: ExistingFile,
        profile: QualityProfile,
        rules: Iterable[ReleaseRule] = (),
        is_seadex: bool = False,
    ) -> Decision:
        """Decide whether an accepted candidate should replace the existing file."""
        new_quality = candidate.quality or UNKNOWN_QUALITY

        def reject(reason: DecisionReason, detail: str) -> Decision:
            return Decision(
                accepted=False, score=candidate.score, reason=reason, quality=new_quality,
                matched_rules=candidate.matched_rules, detail=detail,
            )

        def upgrade(reason: DecisionReason, detail: str) -> Decision:
            return Decision(
                accepted=True, score=candidate.score, reason=reason, quality=new_quality,
                matched_rules=candidate.matched_rules, detail=detail,
            )

        if not profile.upgrade_allowed:
            return reject(DecisionReason.UPGRADES_DISABLED, "Upgrades are disabled for this profile")

        if profile.seadex_preferred and is_seadex and not existing.is_seadex:
            return upgrade(DecisionReason.UPGRADE_SEADEX, "SeaDex release replaces non-SeaDex file")

        cutoff = profile.cutoff_quality()
        if existing.quality.rank >= cutoff.rank:
            return reject(
                DecisionReason.ALREADY_AT_CUTOFF,
                f"{existing.quality.name} already meets cutoff {cutoff.name}",
            )

        if not profile.size_in_range(existing.file_size):
            return reject(DecisionReason.SIZE_OUT_OF_RANGE, "Existing file size outside profile bounds")

        if existing.quality.rank < new_quality.rank <= cutoff.rank:
            return upgrade(
                DecisionReason.UPGRADE,
                f"{new_quality.name} improves on {existing.quality.name}",
            )

        if new_quality.rank == existing.quality.rank:
            current_score, _ = self.preferred_score(existing.filename, rules)
            new_score = candidate.preferred_score
            if new_score > current_score:
                return upgrade(
                    DecisionReason.UPGRADE_SCORE,
                    f"Score upgrade (+{new_score} vs +{current_score})",
                )

        return reject(
            DecisionReason.NO_UPGRADE_AVAILABLE,
            f"{new_quality.name} is not an improvement over {existing.quality.name}",
        )

    def decide(
        self,
        release: Release,
        quality: Quality,
        profile: QualityProfile,
        rules: Iterable[ReleaseRule],
        existing: Optional[ExistingFile] = None,
        is_seadex: bool = False,
        size: Optional[int] = None,
    ) -> Decision:
        """Score a release and, when a file already exists, check it is an upgrade."""
        rules = list(rules)
        decision = self.score(release, quality, profile, rules, is_seadex=is_seadex, size=size)
        if not decision.accepted or existing is None:
            return decision
        return self.evaluate_upgrade(decision, existing, profile, rules, is_seadex=is_seadex)


class DownloadDecisionService:
    """Loads profile, rules and episode state from the store and runs the scorer."""

    def __init__(self, store, scorer: Optional[ReleaseScorer] = None):
        self.store = store
        self.scorer = scorer or ReleaseScorer()

    def get_profile_for_anime(self, anime_id: int) -> QualityProfile:
        anime = self.store.get_anime(anime_id)
        if anime is None:
            raise NotFoundError(f"Anime {anime_id} not found")
        if anime.quality_profile_id is not None:
            record = self.store.get_quality_profile(anime.quality_profile_id)
            if record is not None:
                return QualityProfile.from_record(record)
        record = self.store.get_quality_profile_by_name(DEFAULT_PROFILE_NAME)
        if record is not None:
            return QualityProfile.from_record(record)
        return QualityProfile.default()

    def should_download(
        self,
        anime_id: int,
        episode_number: int,
        release_title: str,
        is_seadex: bool = False,
        size: Optional[int] = None,
    ) -> Decision:
        """Decide whether a release should be grabbed for an episode."""
        if episode_number <= 0:
            raise ValidationError(f"Episode number must be positive, got {episode_number}")
        if not release_title or not release_title.strip():
            raise ValidationError("Release title is required")

        profile = self.get_profile_for_anime(anime_id)
        rules = self.store.get_release_rules_for_anime(anime_id)

        release = parse_filename(release_title) or Release(
            original_filename=release_title,
            title=release_title,
            episode_number=float(episode_number),
        )
        quality = parse_quality_from_filename(release_title)

        existing = None
        status = self.store.get_episode_status(anime_id, episode_number)
        if status is not None and status.file_path:
            existing = ExistingFile(
                quality=get_quality_by_id(status.quality_id) or UNKNOWN_QUALITY,
                is_seadex=status.is_seadex,
                file_size=status.file_size,
                filename=Path(status.file_path).name,
            )

        decision = self.scorer.decide(
            release, quality, profile, rules, existing=existing, is_seadex=is_seadex, size=size,
        )
        logger.info(
            f"Decision for anime {anime_id} ep {episode_number} '{release_title}': "
            f"{decision.reason.value} (score {decision.score})"
        )
        return decision
