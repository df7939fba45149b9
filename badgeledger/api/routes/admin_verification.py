"""Admin Verification Routes — review queue and decisions.

Invariants:
    - Every route requires the admin role (403 otherwise)
    - Decisions go through VerificationCaseService.admin_decision; invalid
      transitions surface as 409, a reject without reason as 400
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from badgeledger.api.deps import Caller, get_services, require_admin
from badgeledger.core.domain_types import ActorType, CaseStatus
from badgeledger.infrastructure.database import get_db
from badgeledger.schemas.verification import AdminCaseView, AdminDecisionRequest
from badgeledger.services.container import Services

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/admin/verification", tags=["admin-verification"],
)


@router.get("/cases", response_model=list[AdminCaseView])
async def list_cases(
    status: CaseStatus | None = Query(None),
    actor_type: ActorType | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _admin: Caller = Depends(require_admin),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    cases = await services.cases.list_cases(
        db, status=status, actor_type=actor_type, limit=limit, offset=offset,
    )
    return [AdminCaseView.from_case(c) for c in cases]


@router.get("/cases/{case_id}", response_model=AdminCaseView)
async def get_case(
    case_id: UUID,
    _admin: Caller = Depends(require_admin),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    return AdminCaseView.from_case(await services.cases.get(db, case_id))


@router.post("/cases/{case_id}/decision")
async def decide_case(
    case_id: UUID,
    body: AdminDecisionRequest,
    admin: Caller = Depends(require_admin),
    services: Services = Depends(get_services),
    db: AsyncSession = Depends(get_db),
):
    """Approve, reject, revoke or reinstate a case."""
    outcome = await services.cases.admin_decision(
        db, case_id, body.action, admin.actor_id,
        notes=body.notes, reason=body.reason,
    )
    return {
        "case": AdminCaseView.from_case(outcome.case).model_dump(mode="json"),
        "checkout_url": outcome.checkout.url if outcome.checkout else None,
    }
