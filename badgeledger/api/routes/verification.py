"""Verification Routes — actor-facing submission, status and checkout for trust badges.

Invariants:
    - The caller can only act on their own case (actor_id from X-Actor-Id)
    - Status responses carry the public status, never internal review states
    - A missing case reads as status "not_started", not 404
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from badgeledger.api.deps import Caller, get_caller, get_services
from badgeledger.core.domain_types import ActorType, CaseStatus
from badgeledger.core.case_machine import public_status
from badgeledger.db.base import as_utc, utcnow
from badgeledger.infrastructure.database import get_db
from badgeledger.schemas.verification import CaseView, SubmitVerificationRequest
from badgeledger.services.container import Services
from badgeledger.services.verification_cases import get_badge

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/verification", tags=["verification"])


@router.post(
    "/{actor_type}/submit",
    response_model=CaseView,
    status_code=status.HTTP_201_CREATED,
)
async def submit_verification(
    actor_type: ActorType,
    body: SubmitVerificationRequest,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    """Submit documents; AI review runs before the response returns."""
    outcome = await services.cases.submit(
        db,
        caller.actor_id,
        actor_type,
        [d.model_dump(mode="json") for d in body.documents],
    )
    return CaseView.from_case(
        outcome.case, outcome.checkout.url if outcome.checkout else None,
    )


@router.get("/{actor_type}/status")
async def verification_status(
    actor_type: ActorType,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    case = await services.cases.latest_for_actor(db, caller.actor_id, actor_type)
    badge = await get_badge(db, caller.actor_id, actor_type)
    badge_expires = as_utc(badge.expires_at) if badge else None
    verified = bool(
        badge and badge.verified
        and (badge_expires is None or badge_expires > utcnow())
    )
    if case is None:
        return {
            "status": public_status(CaseStatus.NONE),
            "verified": False,
            "case": None,
        }
    view = CaseView.from_case(case)
    return {
        "status": view.status,
        "verified": verified,
        "case": view.model_dump(mode="json"),
    }


@router.post("/{actor_type}/checkout", response_model=CaseView)
async def resume_checkout(
    actor_type: ActorType,
    caller: Caller = Depends(get_caller),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    """Issue a new checkout link for a case waiting on payment."""
    outcome = await services.cases.resume_checkout(db, caller.actor_id, actor_type)
    return CaseView.from_case(
        outcome.case, outcome.checkout.url if outcome.checkout else None,
    )
