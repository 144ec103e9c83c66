# File: app/schemas/consistency.py
from enum import Enum
from pydantic import BaseModel
from typing import List, Optional


class ViolationCode(str, Enum):
    MISSING_SESSION_REF = "missing_session_ref"
    MISSING_PAYMENT_REF = "missing_payment_ref"
    STATUS_PENDING_AFTER_PAYMENT = "status_pending_after_payment"
    MISSING_PAID_AT = "missing_paid_at"
    ACTIVE_WITHOUT_PAYMENT = "active_without_payment"
    BALANCE_OUT_OF_RANGE = "balance_out_of_range"


class Violation(BaseModel):
    code: ViolationCode
    message: str
    repairable: bool


class ConsistencyReport(BaseModel):
    voucher_id: str
    code: str
    is_consistent: bool
    issues: List[Violation] = []


class RepairAction(str, Enum):
    CONSISTENT = "consistent"
    FIXED = "fixed"
    FAILED = "failed"
    UNREPAIRABLE = "unrepairable"
    REPORTED = "reported"  # inconsistent, fix not requested


class RepairDetail(BaseModel):
    voucher_id: str
    code: str
    action: RepairAction
    issues: List[Violation] = []
    applied: List[str] = []
    error: Optional[str] = None


class RepairSummary(BaseModel):
    checked: int = 0
    inconsistent: int = 0
    fixed: int = 0
    failed: int = 0
    unrepairable: int = 0
    details: List[RepairDetail] = []

    @property
    def healthy(self) -> bool:
        return self.inconsistent == 0


class VoucherHealthResponse(BaseModel):
    status: str  # healthy | issues_found | repaired
    message: str
    summary: RepairSummary
    fix_available: Optional[str] = None
