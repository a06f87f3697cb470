"""PrivatBank Connector Package.

Implements BankTransactionSource for the PrivatBank business statement API.
"""

from connectors.privatbank.pb_client import PrivatBankClient
from connectors.privatbank.pb_models import PBTransaction, PBStatementPage

__all__ = [
    "PrivatBankClient",
    "PBTransaction",
    "PBStatementPage",
]
