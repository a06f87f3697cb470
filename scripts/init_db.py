"""Create the payment database tables.

Usage:
    python scripts/init_db.py [--db PATH]
"""

import argparse
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from storage.db import PaymentStore


def main():
    parser = argparse.ArgumentParser(description="Initialize the payment database")
    parser.add_argument("--db", type=Path, default=None, help="Database path (default: PAYMENTS_DB_PATH)")
    args = parser.parse_args()

    db_path = args.db or get_settings().db_path
    PaymentStore(db_path).init_db()
    print(f"Database ready: {db_path}")


if __name__ == "__main__":
    main()
