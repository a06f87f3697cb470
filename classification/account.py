"""Target-account classification.

A payment needs a fiscal receipt ("target") unless its sender account shows
it came from a current or transit account. The marker is the 4-character
balance-account group that follows the first 15 characters of a UA IBAN:

    UA843052990000026001031613189
                   ^^^^ characters 15-18 (0-indexed) = "2600"
"""

from typing import Iterable, Optional

from core.config import DEFAULT_EXCLUDED_SENDER_ACCOUNT, DEFAULT_NON_TARGET_PATTERNS, Settings

# Window of the sender account holding the balance-account group
PATTERN_OFFSET = 15
PATTERN_LENGTH = 4
MIN_ACCOUNT_LENGTH = PATTERN_OFFSET + PATTERN_LENGTH


class AccountClassifier:
    """Decides whether a sender account marks a payment as target.

    Pattern table and excluded account are fixed at construction.
    """

    def __init__(
        self,
        non_target_patterns: Iterable[str] = DEFAULT_NON_TARGET_PATTERNS,
        excluded_account: Optional[str] = DEFAULT_EXCLUDED_SENDER_ACCOUNT,
    ):
        self.non_target_patterns = frozenset(non_target_patterns)
        self.excluded_account = excluded_account or None

    @classmethod
    def from_settings(cls, settings: Settings) -> "AccountClassifier":
        return cls(
            non_target_patterns=settings.non_target_patterns,
            excluded_account=settings.excluded_sender_account,
        )

    @staticmethod
    def pattern_window(account: Optional[str]) -> Optional[str]:
        """The 4 characters at PATTERN_OFFSET, or None for short accounts."""
        if not account or len(account) < MIN_ACCOUNT_LENGTH:
            return None
        return account[PATTERN_OFFSET:PATTERN_OFFSET + PATTERN_LENGTH]

    def is_target(self, account: Optional[str]) -> bool:
        """True if a payment from ``account`` requires a receipt.

        Unclear accounts (missing or too short) are never target.
        """
        window = self.pattern_window(account)
        if window is None:
            return False
        if self.excluded_account and account == self.excluded_account:
            return False
        return window not in self.non_target_patterns

    def describe(self, account: Optional[str]) -> str:
        """Short label for logs."""
        if self.is_target(account):
            return "target"
        window = self.pattern_window(account)
        if window is None:
            return "non-target (account missing or short)"
        if self.excluded_account and account == self.excluded_account:
            return "non-target (excluded account)"
        return f"non-target (pattern {window})"
