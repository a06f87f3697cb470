"""Classification - target-account detection and receipt product titles."""

from classification.account import (
    AccountClassifier,
    PATTERN_OFFSET,
    PATTERN_LENGTH,
    MIN_ACCOUNT_LENGTH,
)
from classification.product_title import ProductTitleResolver

__all__ = [
    "AccountClassifier",
    "PATTERN_OFFSET",
    "PATTERN_LENGTH",
    "MIN_ACCOUNT_LENGTH",
    "ProductTitleResolver",
]
