# File: scripts/fix_voucher_consistency.py
"""
Check recent gift vouchers and repair what can be repaired.

Usage:
    python scripts/fix_voucher_consistency.py            # report only
    python scripts/fix_voucher_consistency.py --fix      # apply repairs
    python scripts/fix_voucher_consistency.py --fix 200  # last 200 vouchers
"""
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from app.core.config import settings
from app.db.database import SessionLocal
from app.schemas.consistency import RepairAction
from app.services.voucher_repair import VoucherRepairService


def main():
    args = sys.argv[1:]
    fix = "--fix" in args
    numbers = [a for a in args if a.isdigit()]
    limit = int(numbers[0]) if numbers else settings.REPAIR_SCAN_LIMIT

    print(f"🔍 Checking the {limit} most recent vouchers ({'repair' if fix else 'report only'})...")

    db = SessionLocal()
    try:
        summary = VoucherRepairService().scan(db, limit=limit, fix=fix)
    finally:
        db.close()

    for detail in summary.details:
        if detail.action == RepairAction.CONSISTENT:
            continue
        print(f"\n{detail.code} ({detail.voucher_id}): {detail.action.value}")
        for issue in detail.issues:
            marker = "🔧" if issue.repairable else "❌"
            print(f"   {marker} {issue.code.value}: {issue.message}")
        if detail.applied:
            print(f"   ✅ applied: {', '.join(detail.applied)}")
        if detail.error:
            print(f"   ⚠️  error: {detail.error}")

    print("\n" + "=" * 50)
    print(f"Checked:      {summary.checked}")
    print(f"Inconsistent: {summary.inconsistent}")
    print(f"Fixed:        {summary.fixed}")
    print(f"Failed:       {summary.failed}")
    print(f"Unrepairable: {summary.unrepairable}")

    if summary.inconsistent and not fix:
        print("\nRun again with --fix to apply automatic repairs")

    return 0 if summary.failed == 0 and summary.unrepairable == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
