"""Token association and allowance preconditions.

Before the router call can succeed:
- the destination token must be associated with the user's account
- the source token must carry an allowance for the router contract
- every token in the path must be associated with the router and each
  adapter contract, since they hold tokens in transit

The native token needs neither. Checks read the mirror node and report
"not satisfied" on any read failure.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from deraswap.errors import MirrorNodeError, PreconditionError, SwapError
from deraswap.errors import is_already_satisfied, parse_ledger_error
from deraswap.mirror.client import MirrorNodeClient
from deraswap.swap.transactions import (
    TransactionKind,
    UnsignedTransaction,
    generate_transaction_id,
)
from deraswap.utils.cache import TTLCache
from deraswap.utils.ids import NATIVE_TOKEN_ID
from deraswap.wallet.session import WalletReceipt, WalletRejectedError, WalletSession

logger = logging.getLogger(__name__)

ALLOWANCE_BUFFER_BPS = 100  # 1%
RECEIPT_SUCCESS = "SUCCESS"


def required_allowance(amount: int, buffer_bps: int = ALLOWANCE_BUFFER_BPS) -> int:
    """Input amount plus the safety buffer (1% by default)."""
    return amount + amount * buffer_bps // 10000


def _is_native(token_id: str) -> bool:
    return token_id.upper() == NATIVE_TOKEN_ID


@dataclass
class AssociationStatus:
    token_id: str
    account_id: str
    satisfied: bool


@dataclass
class AllowanceStatus:
    token_id: str
    owner_id: str
    spender_id: str
    satisfied: bool
    current: int
    required: int


@dataclass
class AssociationReport:
    """Result of the batched participant association check.

    Attributes:
        associated: Tokens associated with every participant
        from_cache: Tokens skipped because they were already confirmed
        submitted: Association transactions sent, per participant
        failed: Tokens that could not be associated, with the reason
    """

    associated: set[str] = field(default_factory=set)
    from_cache: set[str] = field(default_factory=set)
    submitted: dict[str, list[str]] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class PreconditionManager:
    """Checks and produces association/allowance transactions."""

    def __init__(
        self,
        mirror: MirrorNodeClient,
        participants: Sequence[str],
        association_cache: Optional[TTLCache[str, bool]] = None,
        participant_signer: Optional[WalletSession] = None,
        buffer_bps: int = ALLOWANCE_BUFFER_BPS,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the manager.

        Args:
            mirror: Mirror node client for account state
            participants: Contract IDs that hold tokens mid-swap (router, adapters)
            association_cache: Tokens confirmed associated with every participant
            participant_signer: Session allowed to associate tokens to participants
            buffer_bps: Allowance buffer in basis points
            clock: Time source for transaction IDs
        """
        self.mirror = mirror
        self.participants = list(participants)
        self.association_cache: TTLCache[str, bool] = association_cache or TTLCache(
            maxsize=1024, ttl=3600
        )
        self.participant_signer = participant_signer
        self.buffer_bps = buffer_bps
        self._clock = clock

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def check_association(self, token_id: str, account_id: str) -> AssociationStatus:
        """Whether an account can receive a token."""
        if _is_native(token_id):
            return AssociationStatus(token_id, account_id, satisfied=True)

        try:
            tokens = await self.mirror.get_account_tokens(account_id, token_id=token_id)
            satisfied = any(t.token_id == token_id for t in tokens)
        except MirrorNodeError as e:
            logger.warning(f"Association check failed for {token_id} on {account_id}, assuming not associated: {e}")
            satisfied = False

        logger.info(f"Association {token_id} on {account_id}: {satisfied}")
        return AssociationStatus(token_id, account_id, satisfied)

    async def check_allowance(
        self, token_id: str, owner_id: str, spender_id: str, amount: int
    ) -> AllowanceStatus:
        """Whether the spender may move ``amount`` (plus buffer) of the owner's token."""
        required = required_allowance(amount, self.buffer_bps)
        if _is_native(token_id):
            return AllowanceStatus(token_id, owner_id, spender_id, True, required, required)

        try:
            allowances = await self.mirror.get_token_allowances(owner_id, spender_id=spender_id)
        except MirrorNodeError as e:
            logger.warning(f"Allowance check failed for {token_id}, assuming none: {e}")
            return AllowanceStatus(token_id, owner_id, spender_id, False, 0, required)

        current = 0
        for allowance in allowances:
            if allowance.token_id == token_id and allowance.spender == spender_id:
                current = allowance.amount
                break

        satisfied = current >= required
        logger.info(
            f"Allowance {token_id} {owner_id} -> {spender_id}: "
            f"current={current} required={required} ok={satisfied}"
        )
        return AllowanceStatus(token_id, owner_id, spender_id, satisfied, current, required)

    # ------------------------------------------------------------------
    # Transaction construction
    # ------------------------------------------------------------------

    def build_association_tx(
        self, token_id: str, account_id: str, payer_id: Optional[str] = None
    ) -> UnsignedTransaction:
        payer_id = payer_id or account_id
        return UnsignedTransaction(
            kind=TransactionKind.TOKEN_ASSOCIATE,
            transaction_id=generate_transaction_id(payer_id, self._clock),
            payer_account_id=payer_id,
            account_id=account_id,
            token_ids=[token_id],
            description=f"Associate token {token_id} with {account_id}",
        )

    def build_allowance_tx(
        self, token_id: str, owner_id: str, spender_id: str, amount: int
    ) -> UnsignedTransaction:
        """Approve the spender for ``amount`` plus the buffer."""
        approved = required_allowance(amount, self.buffer_bps)
        return UnsignedTransaction(
            kind=TransactionKind.ALLOWANCE_APPROVE,
            transaction_id=generate_transaction_id(owner_id, self._clock),
            payer_account_id=owner_id,
            account_id=owner_id,
            token_id=token_id,
            spender=spender_id,
            amount=approved,
            description=f"Allow {spender_id} to spend {approved} of {token_id}",
            warnings=["This approves token spending. Review carefully."],
        )

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_precondition(
        self, transaction: UnsignedTransaction, signer: WalletSession
    ) -> Optional[WalletReceipt]:
        """Sign and submit a precondition transaction.

        A failure whose only defect is "already associated/satisfied" counts
        as success and returns None.

        Raises:
            PreconditionError: On any other rejection or failure
        """
        token_id = transaction.token_id or (transaction.token_ids[0] if transaction.token_ids else None)

        try:
            receipt = await signer.execute(transaction)
        except WalletRejectedError as e:
            if is_already_satisfied(e):
                logger.info(f"{transaction.kind.value} for {token_id} already satisfied")
                return None
            raise PreconditionError(
                "Transaction rejected in wallet",
                suggestion="Approve the request in your wallet to continue.",
                token_id=token_id,
                rejected_by_user=True,
            ) from e
        except SwapError:
            raise
        except Exception as e:
            if is_already_satisfied(e):
                logger.info(f"{transaction.kind.value} for {token_id} already satisfied")
                return None
            parsed = parse_ledger_error(e)
            logger.error(f"{transaction.kind.value} for {token_id} failed: {parsed.technical_message}")
            raise PreconditionError(parsed.user_message, parsed.suggestion, token_id=token_id) from e

        if receipt.status and receipt.status != RECEIPT_SUCCESS:
            if is_already_satisfied(receipt.status):
                logger.info(f"{transaction.kind.value} for {token_id} already satisfied")
                return receipt
            parsed = parse_ledger_error(receipt.status)
            raise PreconditionError(parsed.user_message, parsed.suggestion, token_id=token_id)

        logger.info(f"{transaction.kind.value} confirmed: {receipt.transaction_id}")
        return receipt

    # ------------------------------------------------------------------
    # Route participants
    # ------------------------------------------------------------------

    async def _participant_token_ids(self, participant: str) -> set[str]:
        try:
            return await self.mirror.get_account_token_ids(participant)
        except MirrorNodeError as e:
            logger.warning(f"Could not read associations for {participant}, assuming none: {e}")
            return set()

    async def ensure_route_participants_associated(
        self, token_ids: Sequence[str]
    ) -> AssociationReport:
        """Make sure the router and every adapter can hold each token.

        Tokens already confirmed for all participants are served from the
        cache and not re-checked.
        """
        report = AssociationReport()
        pending: list[str] = []
        for token_id in dict.fromkeys(token_ids):
            if _is_native(token_id):
                continue
            if self.association_cache.get(token_id):
                report.from_cache.add(token_id)
                report.associated.add(token_id)
            else:
                pending.append(token_id)

        if not pending:
            logger.debug(f"All {len(report.from_cache)} route token(s) cached as associated")
            return report

        logger.info(
            f"Checking {len(pending)} token(s) against {len(self.participants)} participant(s)"
        )
        held = await asyncio.gather(*(self._participant_token_ids(p) for p in self.participants))
        holdings = dict(zip(self.participants, held))

        for token_id in pending:
            complete = True
            for participant in self.participants:
                if token_id in holdings[participant]:
                    continue

                if self.participant_signer is None:
                    report.failed[token_id] = f"{participant} is not associated and no signer is configured"
                    complete = False
                    continue

                transaction = self.build_association_tx(
                    token_id, participant, payer_id=self.participant_signer.account_id
                )
                try:
                    await self.submit_precondition(transaction, self.participant_signer)
                except PreconditionError as e:
                    report.failed[token_id] = f"{participant}: {e.message}"
                    complete = False
                    continue
                report.submitted.setdefault(participant, []).append(token_id)

            if complete:
                self.association_cache.set(token_id, True)
                report.associated.add(token_id)

        if report.failed:
            logger.warning(f"Participant association incomplete: {report.failed}")
        return report
