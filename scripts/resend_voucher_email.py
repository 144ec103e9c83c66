# File: scripts/resend_voucher_email.py
"""
Run fulfillment for one voucher by code.

Only messages that have not been delivered yet are sent; a voucher whose
emails already went out is left alone.

Usage: python scripts/resend_voucher_email.py <voucher_code>
"""
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from app import crud
from app.api.deps import get_fulfillment_pipeline
from app.db.database import SessionLocal


def main():
    if len(sys.argv) != 2:
        print("Usage: python scripts/resend_voucher_email.py <voucher_code>")
        print("Example: python scripts/resend_voucher_email.py GV-AB12-CD34")
        return 1

    code = sys.argv[1].strip().upper()

    db = SessionLocal()
    try:
        voucher = crud.voucher.get_by_code(db, code=code)
        if voucher is None:
            print(f"❌ Voucher {code} not found")
            return 1
        voucher_id = voucher.id
        print(f"📦 Voucher {code}: payment={voucher.payment_status.value}, status={voucher.status.value}")
    finally:
        db.close()

    report = get_fulfillment_pipeline().run(voucher_id)

    for outcome in (report.purchaser, report.recipient):
        line = f"   {outcome.party.value}: {outcome.status.value}"
        if outcome.recipient:
            line += f" ({outcome.recipient})"
        if outcome.stage:
            line += f" at {outcome.stage.value}: {outcome.error}"
        print(line)

    if report.ok:
        print("✅ Done")
        return 0
    print("⚠️  Some deliveries failed, run again later")
    return 1


if __name__ == "__main__":
    sys.exit(main())
