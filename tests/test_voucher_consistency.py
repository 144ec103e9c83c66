"""
Consistency checks and the repair scan.
"""
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from app import crud
from app.core.exceptions import VoucherNotFound
from app.models.voucher import PaymentStatus, VoucherStatus
from app.schemas.consistency import RepairAction, ViolationCode
from app.schemas.voucher import VoucherSnapshot
from app.services.voucher_repair import VoucherRepairService
from app.services.voucher_validation import check_voucher, check_voucher_consistency

REPAIRED_AT = datetime(2026, 10, 19, 8, 0)


def codes(issues):
    return [issue.code for issue in issues]


@pytest.fixture
def repair():
    return VoucherRepairService(now=lambda: REPAIRED_AT)


class TestCheckVoucher:

    def test_consistent_paid_voucher(self, paid_voucher):
        assert check_voucher(VoucherSnapshot.model_validate(paid_voucher())) == []

    def test_consistent_pending_voucher(self, make_voucher):
        assert check_voucher(VoucherSnapshot.model_validate(make_voucher())) == []

    def test_violations_are_reported_in_order(self, paid_voucher):
        voucher = paid_voucher(
            external_session_ref=None,
            external_payment_ref=None,
            status=VoucherStatus.PENDING,
            paid_at=None,
            current_balance=Decimal("80.00"),
        )

        issues = check_voucher(VoucherSnapshot.model_validate(voucher))

        assert codes(issues) == [
            ViolationCode.MISSING_SESSION_REF,
            ViolationCode.MISSING_PAYMENT_REF,
            ViolationCode.STATUS_PENDING_AFTER_PAYMENT,
            ViolationCode.MISSING_PAID_AT,
            ViolationCode.BALANCE_OUT_OF_RANGE,
        ]
        assert [issue.repairable for issue in issues] == [False, False, True, True, False]

    def test_pending_status_and_missing_paid_at_are_distinct(self, paid_voucher):
        stuck = check_voucher(VoucherSnapshot.model_validate(paid_voucher(status=VoucherStatus.PENDING)))
        no_paid_at = check_voucher(VoucherSnapshot.model_validate(paid_voucher(paid_at=None)))

        assert codes(stuck) == [ViolationCode.STATUS_PENDING_AFTER_PAYMENT]
        assert codes(no_paid_at) == [ViolationCode.MISSING_PAID_AT]

    def test_active_without_payment(self, make_voucher):
        voucher = make_voucher(status=VoucherStatus.ACTIVE, payment_status=PaymentStatus.FAILED)

        issues = check_voucher(VoucherSnapshot.model_validate(voucher))

        assert codes(issues) == [ViolationCode.ACTIVE_WITHOUT_PAYMENT]
        assert issues[0].repairable is False

    def test_negative_balance(self, paid_voucher):
        voucher = paid_voucher(current_balance=Decimal("-1.00"))
        assert codes(check_voucher(VoucherSnapshot.model_validate(voucher))) == [ViolationCode.BALANCE_OUT_OF_RANGE]

    def test_redeemed_voucher_is_not_rechecked_for_payment(self, paid_voucher):
        voucher = paid_voucher(status=VoucherStatus.REDEEMED, current_balance=Decimal("0.00"))
        assert check_voucher(VoucherSnapshot.model_validate(voucher)) == []

    def test_consistency_report(self, db, paid_voucher):
        voucher = paid_voucher(status=VoucherStatus.PENDING)

        report = check_voucher_consistency(db, voucher.id)

        assert report.is_consistent is False
        assert report.code == voucher.code
        assert codes(report.issues) == [ViolationCode.STATUS_PENDING_AFTER_PAYMENT]

    def test_consistency_report_unknown_voucher(self, db):
        with pytest.raises(VoucherNotFound):
            check_voucher_consistency(db, "missing")


class TestVoucherRepairService:

    def test_pending_status_after_payment_is_activated(self, db, paid_voucher, repair, reload):
        voucher = paid_voucher(status=VoucherStatus.PENDING)

        summary = repair.scan(db, limit=50, fix=True)

        assert summary.checked == 1
        assert summary.inconsistent == 1
        assert summary.fixed == 1
        assert summary.details[0].applied == ["status=active"]
        assert reload(voucher.id).status == VoucherStatus.ACTIVE

        rescan = repair.scan(db, limit=50, fix=True)
        assert rescan.inconsistent == 0
        assert rescan.healthy

    def test_missing_paid_at_is_backfilled(self, db, paid_voucher, repair, reload):
        voucher = paid_voucher(paid_at=None, status=VoucherStatus.PENDING)

        detail = repair.repair_voucher(db, voucher.id)

        assert detail.action == RepairAction.FIXED
        assert detail.applied == ["status=active", "paid_at=now"]
        stored = reload(voucher.id)
        assert stored.paid_at == REPAIRED_AT
        assert stored.status == VoucherStatus.ACTIVE

    def test_missing_payment_ref_still_gets_status_and_paid_at_fixed(self, db, paid_voucher, repair, reload):
        voucher = paid_voucher(status=VoucherStatus.PENDING, external_payment_ref=None, paid_at=None)

        summary = repair.scan(db, limit=50, fix=True)

        assert summary.unrepairable == 1
        assert summary.fixed == 0
        detail = summary.details[0]
        assert detail.action == RepairAction.UNREPAIRABLE
        assert detail.applied == ["status=active", "paid_at=now"]
        assert ViolationCode.MISSING_PAYMENT_REF in codes(detail.issues)
        stored = reload(voucher.id)
        assert stored.status == VoucherStatus.ACTIVE
        assert stored.paid_at == REPAIRED_AT
        assert stored.external_payment_ref is None

    def test_missing_payment_ref_report_only_writes_nothing(self, db, paid_voucher, repair, reload):
        voucher = paid_voucher(status=VoucherStatus.PENDING, external_payment_ref=None)

        detail = repair.scan(db, limit=50, fix=False).details[0]

        assert detail.action == RepairAction.UNREPAIRABLE
        assert detail.applied == []
        assert reload(voucher.id).status == VoucherStatus.PENDING

    def test_missing_session_ref_is_unrepairable_and_untouched(self, db, paid_voucher, repair, reload):
        voucher = paid_voucher(external_session_ref=None, status=VoucherStatus.PENDING)

        summary = repair.scan(db, limit=50, fix=True)

        assert summary.unrepairable == 1
        assert summary.fixed == 0
        assert summary.details[0].action == RepairAction.UNREPAIRABLE
        stored = reload(voucher.id)
        assert stored.status == VoucherStatus.PENDING
        assert stored.external_session_ref is None

    def test_report_only_scan_writes_nothing(self, db, paid_voucher, repair, reload):
        voucher = paid_voucher(status=VoucherStatus.PENDING)

        summary = repair.scan(db, limit=50, fix=False)

        assert summary.inconsistent == 1
        assert summary.fixed == 0
        assert summary.details[0].action == RepairAction.REPORTED
        assert reload(voucher.id).status == VoucherStatus.PENDING

    def test_scan_is_bounded_by_limit(self, db, paid_voucher, repair):
        for _ in range(5):
            paid_voucher()

        assert repair.scan(db, limit=3).checked == 3

    def test_failure_on_one_voucher_does_not_stop_the_scan(self, db, paid_voucher, repair, reload, monkeypatch):
        first = paid_voucher(status=VoucherStatus.PENDING)
        second = paid_voucher(status=VoucherStatus.PENDING)
        original = crud.voucher.activate_paid

        def flaky(db, *, voucher_id):
            if voucher_id == first.id:
                raise OperationalError("UPDATE gift_vouchers", {}, Exception("disk I/O error"))
            return original(db, voucher_id=voucher_id)

        monkeypatch.setattr(crud.voucher, "activate_paid", flaky)

        summary = repair.scan(db, limit=50, fix=True)

        assert summary.checked == 2
        assert summary.failed == 1
        assert summary.fixed == 1
        failed = [d for d in summary.details if d.action == RepairAction.FAILED][0]
        assert failed.voucher_id == first.id
        assert "disk I/O error" in failed.error
        assert reload(first.id).status == VoucherStatus.PENDING
        assert reload(second.id).status == VoucherStatus.ACTIVE

    def test_single_unknown_voucher(self, db, repair):
        with pytest.raises(VoucherNotFound):
            repair.repair_voucher(db, "missing")
