from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from src.school_backend.access.pipeline import AccessContext
from src.school_backend.domain.models.fees import Fee, FeeAlreadyPaid, FeeStatus, Payment
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.wiring import Repositories, get_repositories
from src.school_backend.security import ensure_student_access, forbid, require_access
from src.school_backend.services.audit.service import audit_service
from src.school_backend.services.fees.service import FeeStats, FinancialSummary, fee_service


router = APIRouter(prefix="/fees", tags=["fees"])

fee_read_access = require_access(
    Role.STUDENT, Role.PARENT, Role.ADMIN, Role.ACCOUNTANT, record_param="student_id"
)
payment_access = require_access(Role.STUDENT, Role.PARENT)
summary_access = require_access(Role.ADMIN, Role.ACCOUNTANT, provisioned=True)

PENDING_STATUSES = (FeeStatus.UNPAID, FeeStatus.PARTIAL)
RECENT_PAYMENTS_DAYS = 30
RECENT_PAYMENTS_LIMIT = 10


class FeesResponse(BaseModel):
    fees: List[Fee]


class PaymentRequest(BaseModel):
    fee_id: int
    amount: int = Field(..., gt=0)
    method: str = Field(..., min_length=1)
    reference: Optional[str] = None


class PaymentResponse(BaseModel):
    payment: Payment
    new_status: FeeStatus
    remaining_amount: int


class FeeSummaryResponse(BaseModel):
    financial: FinancialSummary
    recent_payments: List[Payment]
    stats: FeeStats


def _targets(context: AccessContext) -> List[str]:
    if context.requested_id is not None:
        return [context.requested_id]
    return sorted(context.scope)


@router.get("/history", response_model=FeesResponse)
def get_fee_history(
    student_id: Optional[str] = None,
    context: AccessContext = Depends(fee_read_access),
    repos: Repositories = Depends(get_repositories),
) -> FeesResponse:
    fees = repos.fees.list_fees(student_ids=_targets(context))
    fees.sort(key=lambda f: f.created_at, reverse=True)

    audit_service.log_event(
        action="list_fees",
        resource_type="fee",
        subject=context.profile_id,
        extra=context.audit_extra(count=len(fees)),
    )

    return FeesResponse(fees=fees)


@router.get("/pending", response_model=FeesResponse)
def get_pending_fees(
    student_id: Optional[str] = None,
    context: AccessContext = Depends(fee_read_access),
    repos: Repositories = Depends(get_repositories),
) -> FeesResponse:
    return FeesResponse(fees=repos.fees.list_fees(student_ids=_targets(context), statuses=PENDING_STATUSES))


@router.post("/payment", response_model=PaymentResponse)
def create_payment(
    payload: PaymentRequest,
    context: AccessContext = Depends(payment_access),
    repos: Repositories = Depends(get_repositories),
) -> PaymentResponse:
    fee = repos.fees.get_fee(payload.fee_id)
    if fee is None:
        raise forbid(context, "fee", "fee does not exist")
    ensure_student_access(context, fee.student_id)

    try:
        updated, payment = repos.fees.apply_payment(
            fee_id=fee.id,
            amount=payload.amount,
            method=payload.method,
            reference=payload.reference,
        )
    except KeyError:
        raise forbid(context, "fee", "fee removed before payment")
    except FeeAlreadyPaid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Fee is already paid")

    audit_service.log_event(
        action="record_payment",
        resource_type="fee",
        resource_id=str(fee.id),
        subject=context.profile_id,
        extra=context.audit_extra(status=updated.status.value),
    )

    return PaymentResponse(payment=payment, new_status=updated.status, remaining_amount=updated.remaining_amount)


@router.get("/summary", response_model=FeeSummaryResponse)
def get_fee_summary(
    context: AccessContext = Depends(summary_access),
    repos: Repositories = Depends(get_repositories),
) -> FeeSummaryResponse:
    fees = repos.fees.list_fees()
    since = datetime.now(timezone.utc) - timedelta(days=RECENT_PAYMENTS_DAYS)
    return FeeSummaryResponse(
        financial=fee_service.financial_summary(fees),
        recent_payments=repos.fees.recent_payments(since=since, limit=RECENT_PAYMENTS_LIMIT),
        stats=fee_service.stats(fees),
    )
