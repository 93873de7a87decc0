"""Simulated wallet session for dry-run mode and tests."""

import hashlib
import logging
from typing import Optional

from deraswap.swap.transactions import UnsignedTransaction
from deraswap.wallet.session import WalletReceipt, WalletRejectedError, WalletSession

logger = logging.getLogger(__name__)


class DryRunWalletSession(WalletSession):
    """Wallet session that signs nothing and submits nothing.

    Every transaction is recorded and "succeeds" with the transaction's own
    ID. Set ``reject_kinds`` to simulate the user declining.
    """

    def __init__(self, account_id: str, reject_kinds: Optional[set[str]] = None):
        self._account_id = account_id
        self.reject_kinds = reject_kinds or set()
        self.submitted: list[UnsignedTransaction] = []
        self.signer_frozen: list[str] = []

    @property
    def account_id(self) -> str:
        return self._account_id

    def _submit(self, transaction: UnsignedTransaction) -> WalletReceipt:
        if transaction.kind.value in self.reject_kinds:
            logger.info(f"[DRY RUN] User rejected {transaction.kind.value}")
            raise WalletRejectedError("User rejected the transaction")

        self.submitted.append(transaction)
        digest = hashlib.sha256(transaction.content_bytes()).hexdigest()[:12]
        logger.info(
            f"[DRY RUN] Submitted {transaction.kind.value} {transaction.transaction_id} "
            f"(content {digest})"
        )
        return WalletReceipt(transaction_id=transaction.transaction_id, status="SUCCESS")

    async def sign_and_execute(self, transaction: UnsignedTransaction) -> WalletReceipt:
        if transaction.requires_signer_freeze:
            raise ValueError(
                "Transaction carries a native payable amount and must use execute_with_signer"
            )
        return self._submit(transaction)

    async def execute_with_signer(self, transaction: UnsignedTransaction) -> WalletReceipt:
        self.signer_frozen.append(transaction.transaction_id)
        return self._submit(transaction)
