"""Process-wide configuration.

Settings are loaded once at startup from environment variables (and the
repo-level ``.env`` file when present) and passed explicitly into the
components that need them. Nothing below reads the environment after
``Settings.from_env()`` returns.
"""

import json
import os
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

REPO_ROOT = Path(__file__).resolve().parents[1]
ENV_PATH = REPO_ROOT / ".env"

# Fourth group of a UA IBAN (balance-account prefix) that marks a payment as
# not requiring a receipt: current accounts and transit/settlement accounts.
DEFAULT_NON_TARGET_PATTERNS: Tuple[str, ...] = ("2600", "2902", "2909", "2920")

# Courier/logistics cash-on-delivery settlement account
DEFAULT_EXCLUDED_SENDER_ACCOUNT = "UA753052990000026501050017312"

DEFAULT_PRODUCT_TITLE = "Перехідник HDMI-VGA"
DEFAULT_RECEIPT_FOOTER = "Дякуємо за співпрацю!"


class Settings(BaseModel):
    """Immutable application settings."""

    model_config = ConfigDict(frozen=True)

    encryption_key: str = Field(default="", description="Base64 32-byte AES key")
    db_path: Path = Field(default=REPO_ROOT / "payments.db")

    privatbank_base_url: str = "https://acp.privatbank.ua/api"
    checkbox_base_url: str = "https://api.checkbox.ua/api/v1"
    checkbox_receipt_view_url: str = "https://check.checkbox.ua"
    checkbox_client_name: str = "payment-receipts"
    checkbox_client_version: str = "1.0.0"
    http_timeout_seconds: int = 30

    default_currency: str = "UAH"
    non_target_patterns: Tuple[str, ...] = DEFAULT_NON_TARGET_PATTERNS
    excluded_sender_account: Optional[str] = DEFAULT_EXCLUDED_SENDER_ACCOUNT

    default_product_title: str = DEFAULT_PRODUCT_TITLE
    product_titles: Dict[str, str] = Field(
        default_factory=dict,
        description="Company tax id -> fixed receipt line title",
    )
    receipt_header_template: str = "Платіж від: {sender_name}"
    receipt_footer: str = DEFAULT_RECEIPT_FOOTER

    ingestion_lookback_days: int = 30

    temporal_task_queue: str = "payments-default"
    temporal_fiscal_task_queue: str = "payments-fiscal"

    @field_validator("non_target_patterns")
    @classmethod
    def _check_patterns(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        for pattern in value:
            if len(pattern) != 4:
                raise ValueError(f"Non-target pattern must be 4 characters: {pattern!r}")
        return tuple(value)

    @classmethod
    def from_env(cls, env_path: Optional[Path] = ENV_PATH) -> "Settings":
        """Build settings from environment variables.

        Args:
            env_path: Optional ``.env`` file loaded first (existing variables win)

        Returns:
            Settings instance
        """
        if env_path is not None and env_path.exists():
            load_dotenv(env_path)

        data: Dict[str, object] = {}

        env_map = {
            "CREDENTIALS_ENCRYPTION_KEY": "encryption_key",
            "PAYMENTS_DB_PATH": "db_path",
            "PRIVATBANK_BASE_URL": "privatbank_base_url",
            "CHECKBOX_BASE_URL": "checkbox_base_url",
            "CHECKBOX_RECEIPT_VIEW_URL": "checkbox_receipt_view_url",
            "CHECKBOX_CLIENT_NAME": "checkbox_client_name",
            "CHECKBOX_CLIENT_VERSION": "checkbox_client_version",
            "HTTP_TIMEOUT_SECONDS": "http_timeout_seconds",
            "DEFAULT_CURRENCY": "default_currency",
            "DEFAULT_PRODUCT_TITLE": "default_product_title",
            "RECEIPT_FOOTER": "receipt_footer",
            "INGESTION_LOOKBACK_DAYS": "ingestion_lookback_days",
            "TEMPORAL_TASK_QUEUE": "temporal_task_queue",
            "TEMPORAL_FISCAL_TASK_QUEUE": "temporal_fiscal_task_queue",
        }
        for env_name, field_name in env_map.items():
            value = os.getenv(env_name)
            if value:
                data[field_name] = value

        patterns = os.getenv("NON_TARGET_PATTERNS")
        if patterns:
            data["non_target_patterns"] = tuple(
                p.strip() for p in patterns.split(",") if p.strip()
            )

        # Empty string disables the exclusion
        excluded = os.getenv("EXCLUDED_SENDER_ACCOUNT")
        if excluded is not None:
            data["excluded_sender_account"] = excluded.strip() or None

        titles = os.getenv("PRODUCT_TITLES_JSON")
        if titles:
            try:
                data["product_titles"] = json.loads(titles)
            except json.JSONDecodeError as e:
                raise ValueError(f"PRODUCT_TITLES_JSON is not valid JSON: {e}")

        return cls(**data)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings (loaded on first call)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
