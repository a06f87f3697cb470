"""Security module - encryption of tenant credentials."""

from core.security.vault import (
    CredentialVault,
    generate_key,
)

__all__ = [
    "CredentialVault",
    "generate_key",
]
