"""API endpoints for quality profiles, release profiles and download decisions."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..errors import NotFoundError, ValidationError
from ..services.file_utils import parse_size
from ..services.quality import list_qualities
from ..services.scoring import (
    DownloadDecisionService, QualityProfile, ReleaseRule, RuleType,
)
from .deps import get_decision_service, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


class QualityProfileBody(BaseModel):
    name: str
    cutoff: str
    allowed_qualities: list[str]
    upgrade_allowed: bool = True
    seadex_preferred: bool = True
    min_size: Optional[str] = None
    max_size: Optional[str] = None


class ReleaseRuleBody(BaseModel):
    term: str
    score: int = 0
    rule_type: str = RuleType.PREFERRED.value


class ReleaseProfileBody(BaseModel):
    name: str
    enabled: bool = True
    is_global: bool = True
    anime_ids: list[int] = []
    rules: list[ReleaseRuleBody] = []


class DecisionRequest(BaseModel):
    anime_id: int
    episode_number: int
    release_title: str
    is_seadex: bool = False
    size: Optional[int] = None


def _size(value: Optional[str]) -> Optional[int]:
    """Accept '1.5 GiB' style sizes or plain byte counts."""
    if value is None or value == "":
        return None
    if value.strip().isdigit():
        return int(value)
    parsed = parse_size(value)
    if parsed is None:
        raise ValidationError(f"Invalid size: {value}")
    return parsed


def _to_profile(body: QualityProfileBody, profile_id: Optional[int] = None) -> QualityProfile:
    return QualityProfile(
        id=profile_id,
        name=body.name,
        cutoff=body.cutoff,
        allowed_qualities=body.allowed_qualities,
        upgrade_allowed=body.upgrade_allowed,
        seadex_preferred=body.seadex_preferred,
        min_size=_size(body.min_size),
        max_size=_size(body.max_size),
    )


@router.get("/qualities")
async def get_qualities():
    return [q.to_dict() for q in list_qualities()]


@router.get("/quality")
async def list_quality_profiles(store=Depends(get_store)):
    return [QualityProfile.from_record(r).to_dict() for r in store.list_quality_profiles()]


@router.post("/quality", status_code=201)
async def create_quality_profile(body: QualityProfileBody, store=Depends(get_store)):
    record = store.save_quality_profile(_to_profile(body))
    logger.info(f"Created quality profile {record.name}")
    return QualityProfile.from_record(record).to_dict()


@router.put("/quality/{profile_id}")
async def update_quality_profile(profile_id: int, body: QualityProfileBody, store=Depends(get_store)):
    record = store.save_quality_profile(_to_profile(body, profile_id))
    return QualityProfile.from_record(record).to_dict()


@router.delete("/quality/{profile_id}")
async def delete_quality_profile(profile_id: int, store=Depends(get_store)):
    if not store.delete_quality_profile(profile_id):
        raise NotFoundError(f"Quality profile {profile_id} not found")
    return {"deleted": profile_id}


@router.get("/release")
async def list_release_profiles(store=Depends(get_store)):
    return [
        {
            "id": p.id,
            "name": p.name,
            "enabled": p.enabled,
            "is_global": p.is_global,
            "anime_ids": [a.id for a in p.anime],
            "rules": [
                {"term": r.term, "score": r.score, "rule_type": r.rule_type} for r in p.rules
            ],
        }
        for p in store.list_release_profiles()
    ]


@router.post("/release", status_code=201)
async def save_release_profile(body: ReleaseProfileBody, store=Depends(get_store)):
    try:
        rules = [
            ReleaseRule(term=r.term, score=r.score, rule_type=RuleType(r.rule_type))
            for r in body.rules
        ]
    except ValueError as e:
        raise ValidationError(f"Invalid rule type: {e}") from e
    profile = store.save_release_profile(
        body.name, rules, enabled=body.enabled, is_global=body.is_global, anime_ids=body.anime_ids,
    )
    return {"id": profile.id, "name": profile.name, "rules": len(rules)}


@router.post("/decide")
async def decide(
    request: DecisionRequest, service: DownloadDecisionService = Depends(get_decision_service)
):
    """Whether a release should be downloaded for an episode, and why."""
    decision = service.should_download(
        request.anime_id,
        request.episode_number,
        request.release_title,
        is_seadex=request.is_seadex,
        size=request.size,
    )
    return decision.to_dict()
