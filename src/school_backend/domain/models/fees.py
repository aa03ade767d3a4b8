from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field


class FeeStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class Payment(BaseModel):
    id: int
    fee_id: int
    # Amounts are integer minor currency units.
    amount: int
    method: str
    reference: Optional[str] = None
    date: datetime


class Fee(BaseModel):
    id: int
    student_id: str
    title: str
    total_amount: int
    paid_amount: int = 0
    due_date: date
    status: FeeStatus = FeeStatus.UNPAID
    created_at: datetime
    payments: List[Payment] = Field(default_factory=list)

    @computed_field
    @property
    def remaining_amount(self) -> int:
        return max(self.total_amount - self.paid_amount, 0)


class FeeAlreadyPaid(Exception):
    """A payment was attempted on a fee that is already fully paid."""
