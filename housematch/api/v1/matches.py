from typing import Annotated, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.encoders import jsonable_encoder

from housematch.api.deps import CurrentUserId, MatchServiceDep
from housematch.api.limiter import SWIPE_RATE_LIMIT, limiter
from housematch.api.responses import create_success_response
from housematch.models.match import Match, MatchActionEnum, MatchStatusEnum, MatchTypeEnum
from housematch.schemas.common import PaginationMeta, PaginationParams
from housematch.schemas.match import (
    CandidateResponse,
    ExpirationStatsResponse,
    ExtendRequest,
    MatchResponse,
    SwipeRequest,
    SwipeResponse,
)
from housematch.services.matching.selector import CandidateKind

router = APIRouter(prefix="/matches", tags=["Matches"])


def get_pagination_params(
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=20, ge=1, le=100, description="Items per page"),
) -> PaginationParams:
    """Dependency for pagination parameters."""
    return PaginationParams(page=page, page_size=page_size)


def serialize_match(match: Match) -> dict:
    return MatchResponse.model_validate(match).model_dump(mode="json")


@router.get("/candidates")
@limiter.limit(SWIPE_RATE_LIMIT)
async def get_candidates(
    request: Request,
    user_id: CurrentUserId,
    service: MatchServiceDep,
    limit: int = Query(default=10, ge=1, le=50),
    type: Literal["roommate", "housing", "both"] = Query(default="both"),
) -> dict:
    """Surface the next batch of candidates, creating pending matches for new ones."""
    candidates = await service.get_candidates(user_id, limit=limit, kind=CandidateKind(type))

    data = [
        CandidateResponse(
            match=MatchResponse.model_validate(c.match),
            target=jsonable_encoder(c.target),
            is_new=c.is_new,
            auto_liked=c.auto_liked,
            is_mutual_match=c.is_mutual_match,
        ).model_dump(mode="json")
        for c in candidates
    ]
    return create_success_response(data=data)


@router.post("/swipe")
@limiter.limit(SWIPE_RATE_LIMIT)
async def swipe(
    request: Request,
    body: SwipeRequest,
    user_id: CurrentUserId,
    service: MatchServiceDep,
) -> dict:
    result = await service.swipe(
        user_id,
        body.target_id,
        body.target_type,
        MatchActionEnum(body.action),
    )
    response = SwipeResponse(
        match=MatchResponse.model_validate(result.match),
        is_mutual_match=result.is_mutual_match,
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.get("")
async def list_matches(
    user_id: CurrentUserId,
    service: MatchServiceDep,
    pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
    status: Optional[MatchStatusEnum] = Query(default=None),
    type: Optional[MatchTypeEnum] = Query(default=None),
) -> dict:
    """
    List the user's matches, best first, with per-status counts.

    The summary always covers all of the user's matches regardless of the
    status and type filters.
    """
    history = await service.get_history(
        user_id,
        status=status,
        match_type=type,
        page=pagination.page,
        page_size=pagination.page_size,
    )

    pagination_meta = PaginationMeta.build(pagination.page, pagination.page_size, history.total)

    return create_success_response(
        data={
            "matches": [serialize_match(m) for m in history.matches],
            "summary": history.summary,
        },
        pagination=pagination_meta.model_dump(),
    )


@router.get("/expiring")
async def list_expiring(
    user_id: CurrentUserId,
    service: MatchServiceDep,
    hours: int = Query(default=24, ge=1, le=168),
) -> dict:
    matches = await service.get_expiring_soon(user_id, hours=hours)
    return create_success_response(data=[serialize_match(m) for m in matches])


@router.get("/stats")
async def expiration_stats(
    user_id: CurrentUserId,
    service: MatchServiceDep,
) -> dict:

    stats = await service.get_expiration_stats()
    return create_success_response(
        data=ExpirationStatsResponse.model_validate(stats).model_dump(mode="json")
    )


@router.get("/{match_id}")
async def get_match(
    match_id: UUID,
    user_id: CurrentUserId,
    service: MatchServiceDep,
) -> dict:
    match = await service.get_match(user_id, match_id)
    return create_success_response(data=serialize_match(match))


@router.post("/{match_id}/extend")
async def extend_match(
    match_id: UUID,
    body: ExtendRequest,
    user_id: CurrentUserId,
    service: MatchServiceDep,
) -> dict:
    match = await service.extend(user_id, match_id, body.days)
    return create_success_response(data=serialize_match(match))


@router.post("/{match_id}/block")
async def block_match(
    match_id: UUID,
    user_id: CurrentUserId,
    service: MatchServiceDep,
) -> dict:
    match = await service.block(user_id, match_id)
    return create_success_response(data=serialize_match(match))
