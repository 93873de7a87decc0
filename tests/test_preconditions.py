"""Tests for association and allowance preconditions."""

import pytest

from deraswap.errors import ErrorKind, PreconditionError
from deraswap.mirror.client import TokenAllowance
from deraswap.preconditions.manager import PreconditionManager, required_allowance
from deraswap.swap.transactions import TransactionKind
from deraswap.wallet.dry_run import DryRunWalletSession
from deraswap.wallet.session import WalletReceipt, WalletSession

from conftest import (
    ADAPTER_ID,
    ROUTER_ID,
    SAUCE_ID,
    USDC_ID,
    USER_ACCOUNT,
    FakeMirror,
    fixed_clock,
)

OPERATOR_ACCOUNT = "0.0.2002"


class ScriptedSession(WalletSession):
    """Wallet session that fails or returns a fixed receipt status."""

    def __init__(self, error=None, status="SUCCESS"):
        self.error = error
        self.status = status

    @property
    def account_id(self) -> str:
        return USER_ACCOUNT

    async def sign_and_execute(self, transaction):
        if self.error is not None:
            raise self.error
        return WalletReceipt(transaction.transaction_id, self.status)

    async def execute_with_signer(self, transaction):
        return await self.sign_and_execute(transaction)


def _manager(mirror, signer=None):
    return PreconditionManager(
        mirror,
        participants=[ROUTER_ID, ADAPTER_ID],
        participant_signer=signer,
        clock=fixed_clock,
    )


def _allowance(amount, spender=ROUTER_ID):
    return TokenAllowance(
        owner=USER_ACCOUNT, spender=spender, token_id=USDC_ID, amount=amount, amount_granted=amount
    )


class TestAssociation:
    """Destination association check."""

    @pytest.mark.asyncio
    async def test_native_needs_no_association(self):
        """Test the native token is always satisfied without a mirror read."""
        mirror = FakeMirror()

        status = await _manager(mirror).check_association("HBAR", USER_ACCOUNT)

        assert status.satisfied
        assert mirror.token_reads == []

    @pytest.mark.asyncio
    async def test_associated(self):
        """Test a held token is satisfied."""
        mirror = FakeMirror(holdings={USER_ACCOUNT: {SAUCE_ID}})

        assert (await _manager(mirror).check_association(SAUCE_ID, USER_ACCOUNT)).satisfied
        assert not (await _manager(mirror).check_association(USDC_ID, USER_ACCOUNT)).satisfied

    @pytest.mark.asyncio
    async def test_read_failure_is_not_satisfied(self):
        """Test a mirror node error reports not associated."""
        mirror = FakeMirror(holdings={USER_ACCOUNT: {SAUCE_ID}}, fail_reads=True)

        status = await _manager(mirror).check_association(SAUCE_ID, USER_ACCOUNT)

        assert not status.satisfied

    def test_build_association_tx(self):
        """Test the association transaction targets the account and token."""
        tx = _manager(FakeMirror()).build_association_tx(SAUCE_ID, USER_ACCOUNT)

        assert tx.kind == TransactionKind.TOKEN_ASSOCIATE
        assert tx.account_id == USER_ACCOUNT
        assert tx.payer_account_id == USER_ACCOUNT
        assert tx.token_ids == [SAUCE_ID]
        assert tx.transaction_id == f"{USER_ACCOUNT}@1700000000.000000000"


class TestAllowance:
    """Source allowance check with the 1% buffer."""

    def test_required_allowance(self):
        assert required_allowance(1000) == 1010
        assert required_allowance(99) == 99
        assert required_allowance(1000, buffer_bps=0) == 1000

    @pytest.mark.asyncio
    async def test_buffer_applied(self):
        """Test an allowance covering the amount but not the buffer is insufficient."""
        mirror = FakeMirror(allowances=[_allowance(1005)])

        status = await _manager(mirror).check_allowance(USDC_ID, USER_ACCOUNT, ROUTER_ID, 1000)

        assert not status.satisfied
        assert status.current == 1005
        assert status.required == 1010

    @pytest.mark.asyncio
    async def test_sufficient(self):
        """Test an allowance at the buffered amount is sufficient."""
        mirror = FakeMirror(allowances=[_allowance(1010)])

        status = await _manager(mirror).check_allowance(USDC_ID, USER_ACCOUNT, ROUTER_ID, 1000)

        assert status.satisfied

    @pytest.mark.asyncio
    async def test_other_spender_ignored(self):
        """Test an allowance for another spender does not count."""
        mirror = FakeMirror(allowances=[_allowance(10**12, spender="0.0.7777")])

        status = await _manager(mirror).check_allowance(USDC_ID, USER_ACCOUNT, ROUTER_ID, 1000)

        assert not status.satisfied
        assert status.current == 0

    @pytest.mark.asyncio
    async def test_read_failure_is_not_satisfied(self):
        """Test a mirror node error reports no allowance."""
        mirror = FakeMirror(allowances=[_allowance(10**12)], fail_reads=True)

        status = await _manager(mirror).check_allowance(USDC_ID, USER_ACCOUNT, ROUTER_ID, 1000)

        assert not status.satisfied
        assert status.current == 0

    @pytest.mark.asyncio
    async def test_native_needs_no_allowance(self):
        """Test native input is always satisfied."""
        status = await _manager(FakeMirror(fail_reads=True)).check_allowance(
            "HBAR", USER_ACCOUNT, ROUTER_ID, 1000
        )

        assert status.satisfied

    def test_build_allowance_tx_includes_buffer(self):
        """Test the approval covers the amount plus 1%."""
        tx = _manager(FakeMirror()).build_allowance_tx(USDC_ID, USER_ACCOUNT, ROUTER_ID, 1000)

        assert tx.kind == TransactionKind.ALLOWANCE_APPROVE
        assert tx.amount == 1010
        assert tx.spender == ROUTER_ID
        assert tx.token_id == USDC_ID
        assert tx.warnings


class TestSubmitPrecondition:
    """Submission outcomes."""

    @pytest.mark.asyncio
    async def test_success(self):
        manager = _manager(FakeMirror())
        tx = manager.build_association_tx(SAUCE_ID, USER_ACCOUNT)

        receipt = await manager.submit_precondition(tx, DryRunWalletSession(USER_ACCOUNT))

        assert receipt.status == "SUCCESS"

    @pytest.mark.asyncio
    async def test_user_rejection(self):
        """Test a declined request is a precondition error flagged as the user's choice."""
        manager = _manager(FakeMirror())
        tx = manager.build_association_tx(SAUCE_ID, USER_ACCOUNT)
        session = DryRunWalletSession(USER_ACCOUNT, reject_kinds={"token_associate"})

        with pytest.raises(PreconditionError) as exc_info:
            await manager.submit_precondition(tx, session)

        assert exc_info.value.rejected_by_user
        assert exc_info.value.kind == ErrorKind.PRECONDITION
        assert exc_info.value.token_id == SAUCE_ID

    @pytest.mark.asyncio
    async def test_already_associated_error_is_success(self):
        """Test an 'already associated' failure counts as done."""
        manager = _manager(FakeMirror())
        tx = manager.build_association_tx(SAUCE_ID, USER_ACCOUNT)
        session = ScriptedSession(
            error=RuntimeError("Error: TOKEN_ALREADY_ASSOCIATED_TO_ACCOUNT")
        )

        assert await manager.submit_precondition(tx, session) is None

    @pytest.mark.asyncio
    async def test_already_associated_receipt_is_success(self):
        """Test an 'already associated' receipt status counts as done."""
        manager = _manager(FakeMirror())
        tx = manager.build_association_tx(SAUCE_ID, USER_ACCOUNT)

        receipt = await manager.submit_precondition(
            tx, ScriptedSession(status="TOKEN_ALREADY_ASSOCIATED_TO_ACCOUNT")
        )

        assert receipt.status == "TOKEN_ALREADY_ASSOCIATED_TO_ACCOUNT"

    @pytest.mark.asyncio
    async def test_other_failure(self):
        """Test other failures become precondition errors with a user message."""
        manager = _manager(FakeMirror())
        tx = manager.build_association_tx(SAUCE_ID, USER_ACCOUNT)
        session = ScriptedSession(error=RuntimeError("INSUFFICIENT_PAYER_BALANCE"))

        with pytest.raises(PreconditionError) as exc_info:
            await manager.submit_precondition(tx, session)

        assert exc_info.value.message == "Insufficient HBAR balance"
        assert not exc_info.value.rejected_by_user

    @pytest.mark.asyncio
    async def test_failed_receipt_status(self):
        """Test a non-SUCCESS receipt is a precondition error."""
        manager = _manager(FakeMirror())
        tx = manager.build_allowance_tx(USDC_ID, USER_ACCOUNT, ROUTER_ID, 1000)

        with pytest.raises(PreconditionError):
            await manager.submit_precondition(tx, ScriptedSession(status="INVALID_TOKEN_ID"))


class TestRouteParticipants:
    """Batched association of router and adapter contracts."""

    @pytest.mark.asyncio
    async def test_missing_pairs_are_associated(self):
        """Test only the missing participant/token pairs are submitted."""
        mirror = FakeMirror(holdings={ROUTER_ID: {USDC_ID}})
        signer = DryRunWalletSession(OPERATOR_ACCOUNT)

        report = await _manager(mirror, signer).ensure_route_participants_associated(
            [USDC_ID, SAUCE_ID]
        )

        assert report.ok
        assert report.associated == {USDC_ID, SAUCE_ID}
        assert report.submitted == {ROUTER_ID: [SAUCE_ID], ADAPTER_ID: [USDC_ID, SAUCE_ID]}
        assert [tx.account_id for tx in signer.submitted] == [ADAPTER_ID, ROUTER_ID, ADAPTER_ID]
        assert all(tx.payer_account_id == OPERATOR_ACCOUNT for tx in signer.submitted)

    @pytest.mark.asyncio
    async def test_idempotent_via_cache(self):
        """Test a second call is served from the cache with no new submissions."""
        mirror = FakeMirror(holdings={ROUTER_ID: {USDC_ID}})
        signer = DryRunWalletSession(OPERATOR_ACCOUNT)
        manager = _manager(mirror, signer)

        first = await manager.ensure_route_participants_associated([USDC_ID, SAUCE_ID])
        reads = len(mirror.token_reads)
        second = await manager.ensure_route_participants_associated([SAUCE_ID, USDC_ID, SAUCE_ID])

        assert second.associated == first.associated
        assert second.from_cache == {USDC_ID, SAUCE_ID}
        assert second.submitted == {}
        assert len(signer.submitted) == 3
        assert len(mirror.token_reads) == reads

    @pytest.mark.asyncio
    async def test_already_associated_needs_nothing(self):
        """Test fully associated participants get no transactions."""
        held = {USDC_ID, SAUCE_ID}
        mirror = FakeMirror(holdings={ROUTER_ID: held, ADAPTER_ID: held})
        signer = DryRunWalletSession(OPERATOR_ACCOUNT)

        report = await _manager(mirror, signer).ensure_route_participants_associated(
            ["HBAR", USDC_ID, SAUCE_ID]
        )

        assert report.associated == held
        assert signer.submitted == []

    @pytest.mark.asyncio
    async def test_no_signer_reports_failure(self):
        """Test missing associations fail without a participant signer and are not cached."""
        mirror = FakeMirror(holdings={ROUTER_ID: {USDC_ID, SAUCE_ID}})
        manager = _manager(mirror)

        report = await manager.ensure_route_participants_associated([USDC_ID, SAUCE_ID])

        assert not report.ok
        assert set(report.failed) == {USDC_ID, SAUCE_ID}
        assert report.associated == set()
        assert USDC_ID not in manager.association_cache

    @pytest.mark.asyncio
    async def test_read_failure_assumes_not_associated(self):
        """Test unreadable participants get association requests."""
        mirror = FakeMirror(fail_reads=True)
        signer = DryRunWalletSession(OPERATOR_ACCOUNT)

        report = await _manager(mirror, signer).ensure_route_participants_associated([SAUCE_ID])

        assert report.ok
        assert len(signer.submitted) == 2
