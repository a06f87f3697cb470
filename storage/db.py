"""Payment store.

SQLite persistence for tenants, payments, receipts and issuance claims:
- Schema initialization
- Payment insert with per-tenant de-duplication (UNIQUE(company_id, external_id))
- Per-payment issuance claims taken under BEGIN IMMEDIATE
- Atomic receipt commit (receipt + payment flag + claim release)

Each call opens its own connection, so a store can be shared between
asyncio tasks and threads.
"""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from core.errors import AlreadyIssued, PersistenceConflict
from core.models.records import Company, IssuanceAttempt, IssuanceState, Payment, Receipt
from core.observability.logging import get_logger

logger = get_logger(__name__)

# Default database path (repo root)
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "payments.db"

# Claim states that block a new attempt
BLOCKING_STATES = (IssuanceState.IN_PROGRESS.value, IssuanceState.UNCERTAIN.value)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Row Mapping
# =============================================================================

def _row_to_company(row: sqlite3.Row) -> Company:
    return Company(
        id=row["id"],
        name=row["name"],
        tax_id=row["tax_id"],
        bank_merchant_id=row["bank_merchant_id"],
        bank_token_encrypted=row["bank_token_encrypted"],
        fiscal_license_key_encrypted=row["fiscal_license_key_encrypted"],
        fiscal_cashier_login=row["fiscal_cashier_login"],
        fiscal_cashier_pin_encrypted=row["fiscal_cashier_pin_encrypted"],
        created_at=row["created_at"],
    )


def _row_to_payment(row: sqlite3.Row) -> Payment:
    return Payment(
        id=row["id"],
        company_id=row["company_id"],
        external_id=row["external_id"],
        amount=row["amount"],
        currency=row["currency"],
        description=row["description"],
        sender_account=row["sender_account"],
        sender_name=row["sender_name"],
        sender_tax_id=row["sender_tax_id"],
        document_number=row["document_number"],
        payment_date=row["payment_date"],
        receipt_issued=bool(row["receipt_issued"]),
        is_target=bool(row["is_target"]),
        receipt_id=row["receipt_id"],
        created_at=row["created_at"],
    )


def _row_to_receipt(row: sqlite3.Row) -> Receipt:
    return Receipt(
        id=row["id"],
        company_id=row["company_id"],
        payment_id=row["payment_id"],
        external_receipt_id=row["external_receipt_id"],
        fiscal_code=row["fiscal_code"],
        amount=row["amount"],
        receipt_url=row["receipt_url"],
        pdf_url=row["pdf_url"],
        status=row["status"],
        issued_at=row["issued_at"],
    )


def _row_to_attempt(row: sqlite3.Row) -> IssuanceAttempt:
    return IssuanceAttempt(
        payment_id=row["payment_id"],
        state=IssuanceState(row["state"]),
        error_message=row["error_message"],
        updated_at=row["updated_at"],
    )


class PaymentStore:
    """SQLite-backed store for companies, payments and receipts.

    Usage:
        store = PaymentStore(settings.db_path)
        store.init_db()
        payment = store.insert_payment(payment)  # None if already stored
    """

    def __init__(self, db_path: Union[str, Path] = DEFAULT_DB_PATH, timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; multi-statement writes open their own transaction
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    # =========================================================================
    # Schema
    # =========================================================================

    def init_db(self) -> None:
        """Create tables and indexes if they don't exist."""
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS companies (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    tax_id TEXT NOT NULL UNIQUE,
                    bank_merchant_id TEXT,
                    bank_token_encrypted TEXT,
                    fiscal_license_key_encrypted TEXT,
                    fiscal_cashier_login TEXT,
                    fiscal_cashier_pin_encrypted TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS payments (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    company_id INTEGER NOT NULL,
                    external_id TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    currency TEXT NOT NULL DEFAULT 'UAH',
                    description TEXT,
                    sender_account TEXT,
                    sender_name TEXT,
                    sender_tax_id TEXT,
                    document_number TEXT,
                    payment_date TEXT NOT NULL,
                    receipt_issued INTEGER NOT NULL DEFAULT 0,
                    is_target INTEGER NOT NULL DEFAULT 0,
                    receipt_id INTEGER,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (company_id) REFERENCES companies(id),
                    UNIQUE(company_id, external_id)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_payments_pending
                ON payments(company_id, is_target, receipt_issued)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS receipts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    company_id INTEGER NOT NULL,
                    payment_id INTEGER NOT NULL UNIQUE,
                    external_receipt_id TEXT NOT NULL,
                    fiscal_code TEXT,
                    amount TEXT NOT NULL,
                    receipt_url TEXT,
                    pdf_url TEXT,
                    status TEXT NOT NULL,
                    issued_at TEXT NOT NULL,
                    FOREIGN KEY (company_id) REFERENCES companies(id),
                    FOREIGN KEY (payment_id) REFERENCES payments(id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS issuance_attempts (
                    payment_id INTEGER PRIMARY KEY,
                    state TEXT NOT NULL CHECK(state IN ('IN_PROGRESS', 'FAILED', 'UNCERTAIN')),
                    error_message TEXT,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (payment_id) REFERENCES payments(id)
                )
            """)
        finally:
            conn.close()

    # =========================================================================
    # Companies
    # =========================================================================

    def add_company(
        self,
        name: str,
        tax_id: str,
        bank_merchant_id: Optional[str] = None,
        bank_token_encrypted: Optional[str] = None,
        fiscal_license_key_encrypted: Optional[str] = None,
        fiscal_cashier_login: Optional[str] = None,
        fiscal_cashier_pin_encrypted: Optional[str] = None,
    ) -> Company:
        """Insert a tenant. Secrets must already be encrypted.

        Raises:
            PersistenceConflict: tax_id already registered
        """
        conn = self._connect()
        try:
            cursor = conn.execute(
                """
                INSERT INTO companies (
                    name, tax_id, bank_merchant_id, bank_token_encrypted,
                    fiscal_license_key_encrypted, fiscal_cashier_login,
                    fiscal_cashier_pin_encrypted, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    name,
                    tax_id,
                    bank_merchant_id,
                    bank_token_encrypted,
                    fiscal_license_key_encrypted,
                    fiscal_cashier_login,
                    fiscal_cashier_pin_encrypted,
                    _utcnow(),
                ),
            )
            company_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise PersistenceConflict(f"Company with tax id {tax_id} already exists") from e
        finally:
            conn.close()

        return self.get_company(company_id)

    def get_company(self, company_id: int) -> Optional[Company]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM companies WHERE id = ?", (company_id,)).fetchone()
        finally:
            conn.close()
        return _row_to_company(row) if row else None

    def list_companies(self) -> List[Company]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT * FROM companies ORDER BY id").fetchall()
        finally:
            conn.close()
        return [_row_to_company(row) for row in rows]

    # =========================================================================
    # Payments
    # =========================================================================

    def find_payment_by_external_id(self, company_id: int, external_id: str) -> Optional[Payment]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM payments WHERE company_id = ? AND external_id = ?",
                (company_id, external_id),
            ).fetchone()
        finally:
            conn.close()
        return _row_to_payment(row) if row else None

    def insert_payment(self, payment: Payment) -> Optional[Payment]:
        """Insert a new payment.

        Returns:
            The stored payment with its id, or None if the tenant already
            has a payment with the same external_id
        """
        created_at = _utcnow()
        conn = self._connect()
        try:
            cursor = conn.execute(
                """
                INSERT INTO payments (
                    company_id, external_id, amount, currency, description,
                    sender_account, sender_name, sender_tax_id, document_number,
                    payment_date, receipt_issued, is_target, receipt_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, NULL, ?)
                ON CONFLICT(company_id, external_id) DO NOTHING
                """,
                (
                    payment.company_id,
                    payment.external_id,
                    str(payment.amount),
                    payment.currency,
                    payment.description,
                    payment.sender_account,
                    payment.sender_name,
                    payment.sender_tax_id,
                    payment.document_number,
                    payment.payment_date.isoformat(),
                    1 if payment.is_target else 0,
                    created_at,
                ),
            )
            if cursor.rowcount == 0:
                return None
            payment_id = cursor.lastrowid
        finally:
            conn.close()

        return payment.model_copy(update={
            "id": payment_id,
            "receipt_issued": False,
            "receipt_id": None,
            "created_at": datetime.fromisoformat(created_at),
        })

    def get_payment(self, payment_id: int) -> Optional[Payment]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM payments WHERE id = ?", (payment_id,)).fetchone()
        finally:
            conn.close()
        return _row_to_payment(row) if row else None

    def list_pending_payments(self, company_id: Optional[int] = None) -> List[Payment]:
        """Target payments without a receipt, oldest first."""
        query = "SELECT * FROM payments WHERE is_target = 1 AND receipt_issued = 0"
        params: tuple = ()
        if company_id is not None:
            query += " AND company_id = ?"
            params = (company_id,)
        query += " ORDER BY payment_date, id"

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_payment(row) for row in rows]

    def mark_payment_issued(self, payment_id: int, receipt_id: int) -> None:
        """Set the issued flag for a payment whose receipt is already stored."""
        conn = self._connect()
        try:
            conn.execute(
                "UPDATE payments SET receipt_issued = 1, receipt_id = ? WHERE id = ?",
                (receipt_id, payment_id),
            )
        finally:
            conn.close()

    # =========================================================================
    # Receipts
    # =========================================================================

    def get_receipt(self, receipt_id: int) -> Optional[Receipt]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM receipts WHERE id = ?", (receipt_id,)).fetchone()
        finally:
            conn.close()
        return _row_to_receipt(row) if row else None

    def get_receipt_for_payment(self, payment_id: int) -> Optional[Receipt]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM receipts WHERE payment_id = ?", (payment_id,)
            ).fetchone()
        finally:
            conn.close()
        return _row_to_receipt(row) if row else None

    def find_orphan_receipts(self, company_id: Optional[int] = None) -> List[Receipt]:
        """Receipts whose payment is not flagged as issued."""
        query = """
            SELECT r.* FROM receipts r
            JOIN payments p ON p.id = r.payment_id
            WHERE p.receipt_issued = 0
        """
        params: tuple = ()
        if company_id is not None:
            query += " AND r.company_id = ?"
            params = (company_id,)
        query += " ORDER BY r.id"

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_receipt(row) for row in rows]

    def commit_receipt(self, receipt: Receipt) -> Receipt:
        """Store a receipt, flag its payment and clear the claim atomically.

        Raises:
            PersistenceConflict: A receipt already exists for the payment
        """
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO receipts (
                        company_id, payment_id, external_receipt_id, fiscal_code,
                        amount, receipt_url, pdf_url, status, issued_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        receipt.company_id,
                        receipt.payment_id,
                        receipt.external_receipt_id,
                        receipt.fiscal_code,
                        str(receipt.amount),
                        receipt.receipt_url,
                        receipt.pdf_url,
                        receipt.status,
                        receipt.issued_at.isoformat(),
                    ),
                )
                receipt_id = cursor.lastrowid
                conn.execute(
                    "UPDATE payments SET receipt_issued = 1, receipt_id = ? WHERE id = ?",
                    (receipt_id, receipt.payment_id),
                )
                conn.execute(
                    "DELETE FROM issuance_attempts WHERE payment_id = ?",
                    (receipt.payment_id,),
                )
                conn.execute("COMMIT")
            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                raise PersistenceConflict(
                    f"Receipt for payment {receipt.payment_id} already stored"
                ) from e
            except Exception:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

        return receipt.model_copy(update={"id": receipt_id})

    # =========================================================================
    # Issuance Claims
    # =========================================================================

    def get_attempt(self, payment_id: int) -> Optional[IssuanceAttempt]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM issuance_attempts WHERE payment_id = ?", (payment_id,)
            ).fetchone()
        finally:
            conn.close()
        return _row_to_attempt(row) if row else None

    def list_attempts(self, state: Optional[IssuanceState] = None) -> List[IssuanceAttempt]:
        query = "SELECT * FROM issuance_attempts"
        params: tuple = ()
        if state is not None:
            query += " WHERE state = ?"
            params = (state.value,)
        query += " ORDER BY updated_at"

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_attempt(row) for row in rows]

    def claim_issuance(self, payment_id: int) -> None:
        """Take the exclusive issuance claim for a payment.

        A FAILED claim is taken over; IN_PROGRESS and UNCERTAIN block.

        Raises:
            AlreadyIssued: A receipt was committed for the payment
            PersistenceConflict: Another attempt holds the claim or its
                outcome is unknown
        """
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                receipt = conn.execute(
                    "SELECT id FROM receipts WHERE payment_id = ?", (payment_id,)
                ).fetchone()
                if receipt is not None:
                    raise AlreadyIssued(
                        f"Receipt already issued for payment {payment_id}",
                        payment_id=payment_id,
                        receipt_id=receipt["id"],
                    )

                row = conn.execute(
                    "SELECT state FROM issuance_attempts WHERE payment_id = ?", (payment_id,)
                ).fetchone()
                if row is not None and row["state"] in BLOCKING_STATES:
                    raise PersistenceConflict(
                        f"Issuance for payment {payment_id} is {row['state']}"
                    )

                conn.execute(
                    """
                    INSERT INTO issuance_attempts (payment_id, state, error_message, updated_at)
                    VALUES (?, ?, NULL, ?)
                    ON CONFLICT(payment_id) DO UPDATE SET
                        state = excluded.state,
                        error_message = NULL,
                        updated_at = excluded.updated_at
                    """,
                    (payment_id, IssuanceState.IN_PROGRESS.value, _utcnow()),
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

    def _set_attempt_state(self, payment_id: int, state: IssuanceState, message: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                UPDATE issuance_attempts
                SET state = ?, error_message = ?, updated_at = ?
                WHERE payment_id = ?
                """,
                (state.value, message[:500], _utcnow(), payment_id),
            )
        finally:
            conn.close()

    def mark_attempt_failed(self, payment_id: int, message: str) -> None:
        """Record a definitive failure; the payment may be retried."""
        self._set_attempt_state(payment_id, IssuanceState.FAILED, message)

    def mark_attempt_uncertain(self, payment_id: int, message: str) -> None:
        """Record an unknown outcome; blocks retries until released."""
        self._set_attempt_state(payment_id, IssuanceState.UNCERTAIN, message)
        logger.warning(
            f"Issuance outcome unknown for payment {payment_id}",
            extra_fields={"payment_id": payment_id},
        )

    def release_claim(self, payment_id: int) -> bool:
        """Drop the claim row. Returns True if one existed."""
        conn = self._connect()
        try:
            cursor = conn.execute(
                "DELETE FROM issuance_attempts WHERE payment_id = ?", (payment_id,)
            )
            return cursor.rowcount > 0
        finally:
            conn.close()
