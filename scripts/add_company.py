"""Register a tenant with encrypted credentials.

Usage:
    python scripts/add_company.py --name "ТОВ Приклад" --tax-id 12345678 \
        --merchant-id 123 --bank-token TOKEN \
        --license-key KEY --cashier-login LOGIN --cashier-pin PIN
"""

import argparse
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.errors import PersistenceConflict
from core.security.vault import CredentialVault
from storage.db import PaymentStore


def main():
    parser = argparse.ArgumentParser(description="Register a company")
    parser.add_argument("--name", required=True)
    parser.add_argument("--tax-id", required=True)
    parser.add_argument("--merchant-id")
    parser.add_argument("--bank-token")
    parser.add_argument("--license-key")
    parser.add_argument("--cashier-login")
    parser.add_argument("--cashier-pin")
    args = parser.parse_args()

    settings = get_settings()
    vault = CredentialVault(settings.encryption_key)
    store = PaymentStore(settings.db_path)
    store.init_db()

    def encrypt(value):
        return vault.encrypt(value) if value else None

    try:
        company = store.add_company(
            name=args.name,
            tax_id=args.tax_id,
            bank_merchant_id=args.merchant_id,
            bank_token_encrypted=encrypt(args.bank_token),
            fiscal_license_key_encrypted=encrypt(args.license_key),
            fiscal_cashier_login=args.cashier_login,
            fiscal_cashier_pin_encrypted=encrypt(args.cashier_pin),
        )
    except PersistenceConflict as e:
        print(f"ERROR: {e.message}")
        sys.exit(1)

    print(f"Company {company.id} registered: {company.name}")
    missing = company.missing_bank_credentials() + company.missing_fiscal_credentials()
    if missing:
        print(f"  Not configured yet: {', '.join(missing)}")


if __name__ == "__main__":
    main()
