"""Receipt reconciliation for operators.

- Repairs payments whose receipt exists but whose issued flag was lost
- Lists issuance attempts left UNCERTAIN or FAILED
- Releases a claim once the fiscal cabinet has been checked by hand

Usage:
    python scripts/reconcile_receipts.py [--company ID]
    python scripts/reconcile_receipts.py --release PAYMENT_ID
"""

import argparse
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.errors import PaymentNotFound
from core.models.records import IssuanceState
from core.services import get_services


def main():
    parser = argparse.ArgumentParser(description="Reconcile fiscal receipts")
    parser.add_argument("--company", type=int, help="Limit repair to one company")
    parser.add_argument("--release", type=int, metavar="PAYMENT_ID", help="Release an issuance claim")
    args = parser.parse_args()

    services = get_services()

    if args.release is not None:
        try:
            released = services.issuance.release_claim(args.release)
        except PaymentNotFound as e:
            print(f"ERROR: {e.message}")
            sys.exit(1)
        print(f"Claim for payment {args.release} {'released' if released else 'not found'}")
        return

    repaired = services.issuance.reconcile_orphans(args.company)
    print(f"Repaired {len(repaired)} payment(s)")
    for receipt in repaired:
        print(f"  payment {receipt.payment_id} -> receipt {receipt.id} ({receipt.external_receipt_id})")

    for state in (IssuanceState.UNCERTAIN, IssuanceState.FAILED):
        attempts = services.store.list_attempts(state)
        if not attempts:
            continue
        print(f"\n{state.value} attempts:")
        for attempt in attempts:
            print(f"  payment {attempt.payment_id} at {attempt.updated_at}: {attempt.error_message}")
    print("\nCheck UNCERTAIN payments in the fiscal cabinet, then run with --release PAYMENT_ID")


if __name__ == "__main__":
    main()
