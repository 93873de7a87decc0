"""Wallet session interface.

A session is owned by the caller and passed into each ``execute()`` call.
The engine never holds a global session.

Signing flow:
1. Engine builds an UnsignedTransaction
2. Session freezes it, asks the user to sign, submits it
3. Session returns a WalletReceipt with the ledger transaction ID
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from deraswap.swap.transactions import UnsignedTransaction

logger = logging.getLogger(__name__)


class WalletRejectedError(Exception):
    """The user declined to sign in the wallet."""


@dataclass
class WalletReceipt:
    """Result of a signed and submitted transaction.

    Attributes:
        transaction_id: Ledger transaction ID (payer@seconds.nanos)
        status: Receipt status code if the wallet waited for one
    """

    transaction_id: str
    status: Optional[str] = None


class WalletSession(ABC):
    """A connected wallet able to sign and submit transactions."""

    @property
    @abstractmethod
    def account_id(self) -> str:
        """Connected account ID."""
        pass

    @abstractmethod
    async def sign_and_execute(self, transaction: UnsignedTransaction) -> WalletReceipt:
        """Freeze, sign and submit a transaction.

        Freezing happens without the signer attached, so native value set on
        the transaction may be dropped. Not for payable calls.

        Raises:
            WalletRejectedError: If the user declines
        """
        pass

    @abstractmethod
    async def execute_with_signer(self, transaction: UnsignedTransaction) -> WalletReceipt:
        """Freeze with the signer attached, then sign and submit.

        Required for transactions that carry a native payable amount.

        Raises:
            WalletRejectedError: If the user declines
        """
        pass

    async def execute(self, transaction: UnsignedTransaction) -> WalletReceipt:
        """Submit through the signing path the transaction requires."""
        if transaction.requires_signer_freeze:
            return await self.execute_with_signer(transaction)
        return await self.sign_and_execute(transaction)
