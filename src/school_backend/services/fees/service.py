from __future__ import annotations

from typing import Sequence

from pydantic import BaseModel

from src.school_backend.domain.models.fees import Fee, FeeStatus


class FeeStats(BaseModel):
    total: int
    paid: int
    unpaid: int
    partial: int
    overdue: int
    total_due: int


class FinancialSummary(BaseModel):
    total_collected: int
    total_pending: int
    total_overdue: int


class FeeService:
    def stats(self, fees: Sequence[Fee]) -> FeeStats:
        return FeeStats(
            total=len(fees),
            paid=sum(1 for f in fees if f.status == FeeStatus.PAID),
            unpaid=sum(1 for f in fees if f.status == FeeStatus.UNPAID),
            partial=sum(1 for f in fees if f.status == FeeStatus.PARTIAL),
            overdue=sum(1 for f in fees if f.status == FeeStatus.OVERDUE),
            total_due=sum(f.remaining_amount for f in fees),
        )

    def financial_summary(self, fees: Sequence[Fee]) -> FinancialSummary:
        return FinancialSummary(
            total_collected=sum(f.paid_amount for f in fees),
            total_pending=sum(f.remaining_amount for f in fees),
            total_overdue=sum(f.remaining_amount for f in fees if f.status == FeeStatus.OVERDUE),
        )


fee_service = FeeService()
