"""Swap orchestrator.

Sequences one swap attempt:
1. Validate parameters and re-check the chosen route
2. Ensure the router and adapters can hold every token in the path
3. Destination association, then source allowance (each requested only if missing)
4. Build the router call
5. Hand it to the caller's wallet session
6. Monitor until success, failure or unknown

State moves only through ``apply_event``. Subscribers receive every
``StateChanged`` effect through the listener passed to ``execute()``.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from deraswap.errors import (
    ErrorKind,
    MonitoringTimeoutError,
    NetworkError,
    OnChainFailureError,
    PreconditionError,
    SignatureRejectedError,
    SwapError,
    SwapValidationError,
    parse_ledger_error,
)
from deraswap.preconditions.manager import PreconditionManager
from deraswap.routing.models import Route, SwapSettings, Token
from deraswap.routing.path import extract_route_token_ids
from deraswap.routing.validator import RouteValidator
from deraswap.swap.builder import TransactionBuilder, validate_swap_params
from deraswap.swap.monitor import TransactionMonitor, transaction_explorer_url
from deraswap.swap.state import (
    Event,
    ExecutionState,
    Failed,
    ProgressReported,
    StateChanged,
    StepEntered,
    Succeeded,
    SwapStep,
    TransactionSubmitted,
    apply_event,
)
from deraswap.swap.transactions import UnsignedTransaction
from deraswap.wallet.session import WalletReceipt, WalletRejectedError, WalletSession

logger = logging.getLogger(__name__)

Listener = Callable[[StateChanged], Any]

# Steps after which a discard no longer stops the attempt
_DISCARDABLE = frozenset(
    {
        SwapStep.VALIDATING,
        SwapStep.ENSURING_PRECONDITIONS_FOR_ROUTE_PARTICIPANTS,
        SwapStep.CHECKING_DESTINATION_ASSOCIATION,
        SwapStep.REQUESTING_DESTINATION_ASSOCIATION,
        SwapStep.CHECKING_SOURCE_ALLOWANCE,
        SwapStep.REQUESTING_SOURCE_ALLOWANCE,
        SwapStep.BUILDING_TRANSACTION,
        SwapStep.AWAITING_SIGNATURE,
    }
)

_STATUS_BY_KIND = {
    ErrorKind.ON_CHAIN_FAILURE: "failed",
    ErrorKind.MONITORING_TIMEOUT: "unknown",
}


@dataclass
class SwapRequest:
    """Everything needed for one swap attempt."""

    route: Optional[Route]
    from_token: Token
    to_token: Token
    input_amount: int  # smallest units
    settings: Optional[SwapSettings]


@dataclass
class SwapOutcome:
    """Terminal result of ``execute()``."""

    success: bool
    status: str  # success, failed, unknown, error, discarded
    state: ExecutionState
    transaction_id: Optional[str] = None
    explorer_url: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    suggestion: Optional[str] = None
    warnings: list[str] = field(default_factory=list)


class SwapAttempt:
    """Caller-held handle on one in-flight attempt.

    ``discard()`` abandons the attempt if the swap transaction has not been
    handed to the wallet yet. After that it has no effect.
    """

    def __init__(self):
        self.state = ExecutionState()
        self._discarded = False

    @property
    def discarded(self) -> bool:
        return self._discarded

    def discard(self) -> None:
        self._discarded = True


class _Discarded(Exception):
    pass


class _ListenerFailed(Exception):
    def __init__(self, error: Exception):
        super().__init__(str(error))
        self.error = error


class SwapOrchestrator:
    """Runs swap attempts against a caller-supplied wallet session."""

    def __init__(
        self,
        validator: RouteValidator,
        preconditions: PreconditionManager,
        builder: TransactionBuilder,
        monitor: TransactionMonitor,
        router_contract_id: str,
        wrapped_native_id: str = "0.0.1456986",
        settle_delay: float = 2.0,
        explorer_network: str = "mainnet",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.validator = validator
        self.preconditions = preconditions
        self.builder = builder
        self.monitor = monitor
        self.router_contract_id = router_contract_id
        self.wrapped_native_id = wrapped_native_id
        self.settle_delay = settle_delay
        self.explorer_network = explorer_network
        self._sleep = sleep
        self._clock = clock

    # ------------------------------------------------------------------
    # State plumbing
    # ------------------------------------------------------------------

    async def _apply(
        self, attempt: SwapAttempt, event: Event, listener: Optional[Listener]
    ) -> None:
        new_state, effects = apply_event(attempt.state, event)
        attempt.state = new_state
        if listener is None:
            return
        for effect in effects:
            try:
                result = listener(effect)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                raise _ListenerFailed(e) from e

    async def _enter(self, attempt: SwapAttempt, step: SwapStep, listener: Optional[Listener]) -> None:
        if attempt.discarded and step in _DISCARDABLE:
            raise _Discarded()
        logger.info(f"Swap step: {step.value}")
        await self._apply(attempt, StepEntered(step), listener)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _validate(self, request: SwapRequest, session: WalletSession) -> None:
        if request.route is None:
            raise SwapValidationError("No route selected")
        if request.settings is None:
            raise SwapValidationError("Swap settings are missing")
        if not session.account_id:
            raise SwapValidationError("Wallet is not connected")

        validate_swap_params(
            request.route, request.input_amount, request.settings, now=self._clock()
        )

        validator = self.validator.for_settings(request.settings)
        floor = validator.check_execution_floor(
            request.route, request.from_token, request.to_token
        )
        if not floor.valid:
            raise SwapValidationError(
                floor.reason or "Route failed validation",
                suggestion="Refresh the quote and pick another route.",
            )

        # A relaxed route was already accepted under auto mode
        if request.route.relaxed and request.settings.auto:
            return

        result = validator.validate_route(request.route, request.from_token, request.to_token)
        if not result.valid:
            raise SwapValidationError(
                result.reason or "Route failed validation",
                suggestion="Refresh the quote and pick another route.",
            )

    def _route_token_ids(self, request: SwapRequest) -> list[str]:
        token_ids = extract_route_token_ids(request.route, self.wrapped_native_id)
        for token in (request.from_token, request.to_token):
            if not token.is_native and token.token_id not in token_ids:
                token_ids.append(token.token_id)
        return token_ids

    async def _ensure_participants(self, request: SwapRequest) -> None:
        report = await self.preconditions.ensure_route_participants_associated(
            self._route_token_ids(request)
        )
        if not report.ok:
            raise PreconditionError(
                "Failed to ensure the router and adapters support these tokens",
                suggestion="Please try again.",
                token_id=next(iter(report.failed)),
            )

    async def _submit_swap(
        self, session: WalletSession, transaction: UnsignedTransaction
    ) -> WalletReceipt:
        try:
            if transaction.requires_signer_freeze:
                return await session.execute_with_signer(transaction)
            return await session.sign_and_execute(transaction)
        except WalletRejectedError as e:
            raise SignatureRejectedError(
                "Transaction rejected in wallet",
                suggestion="You cancelled the swap. Start a new swap to try again.",
            ) from e
        except SwapError:
            raise
        except Exception as e:
            parsed = parse_ledger_error(e)
            logger.error(f"Wallet submission failed: {parsed.technical_message}")
            if parsed.user_message == "Transaction rejected in wallet":
                raise SignatureRejectedError(parsed.user_message, parsed.suggestion) from e
            raise NetworkError(parsed.user_message, parsed.suggestion) from e

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def execute(
        self,
        request: SwapRequest,
        session: WalletSession,
        listener: Optional[Listener] = None,
        attempt: Optional[SwapAttempt] = None,
    ) -> SwapOutcome:
        """Run one swap attempt to a terminal outcome.

        Args:
            request: Route, tokens, amount and settings
            session: Caller-owned wallet session
            listener: Receives every StateChanged effect (sync or async)
            attempt: Handle the caller can use to discard before broadcast

        Returns:
            SwapOutcome. Swap errors never escape; they end in the error
            state with their ErrorKind preserved.

        Raises:
            Exception: Whatever the listener itself raised
        """
        try:
            return await self._run(request, session, listener, attempt or SwapAttempt())
        except _ListenerFailed as e:
            raise e.error from None

    async def _run(
        self,
        request: SwapRequest,
        session: WalletSession,
        listener: Optional[Listener],
        attempt: SwapAttempt,
    ) -> SwapOutcome:
        warnings: list[str] = []

        try:
            await self._enter(attempt, SwapStep.VALIDATING, listener)
            self._validate(request, session)
            route = request.route
            settings = request.settings
            account_id = session.account_id
            warnings.extend(route.warnings)

            await self._enter(
                attempt, SwapStep.ENSURING_PRECONDITIONS_FOR_ROUTE_PARTICIPANTS, listener
            )
            await self._ensure_participants(request)

            await self._enter(attempt, SwapStep.CHECKING_DESTINATION_ASSOCIATION, listener)
            association = await self.preconditions.check_association(
                request.to_token.token_id, account_id
            )
            if not association.satisfied:
                await self._enter(attempt, SwapStep.REQUESTING_DESTINATION_ASSOCIATION, listener)
                transaction = self.preconditions.build_association_tx(
                    request.to_token.token_id, account_id
                )
                await self.preconditions.submit_precondition(transaction, session)
                await self._sleep(self.settle_delay)

            await self._enter(attempt, SwapStep.CHECKING_SOURCE_ALLOWANCE, listener)
            allowance = await self.preconditions.check_allowance(
                request.from_token.token_id,
                account_id,
                self.router_contract_id,
                request.input_amount,
            )
            if not allowance.satisfied:
                await self._enter(attempt, SwapStep.REQUESTING_SOURCE_ALLOWANCE, listener)
                transaction = self.preconditions.build_allowance_tx(
                    request.from_token.token_id,
                    account_id,
                    self.router_contract_id,
                    request.input_amount,
                )
                await self.preconditions.submit_precondition(transaction, session)
                await self._sleep(self.settle_delay)

            await self._enter(attempt, SwapStep.BUILDING_TRANSACTION, listener)
            swap_tx = self.builder.build_swap_transaction(
                route,
                request.from_token,
                request.to_token,
                request.input_amount,
                settings,
                account_id,
            )
            warnings.extend(w for w in swap_tx.warnings if w not in warnings)

            await self._enter(attempt, SwapStep.AWAITING_SIGNATURE, listener)
            receipt = await self._submit_swap(session, swap_tx)

            await self._enter(attempt, SwapStep.BROADCASTING, listener)
            if receipt.status and receipt.status != "SUCCESS":
                raise OnChainFailureError(
                    f"Transaction failed with status: {receipt.status}", result_code=receipt.status
                )

            explorer_url = transaction_explorer_url(receipt.transaction_id, self.explorer_network)
            await self._apply(
                attempt, TransactionSubmitted(receipt.transaction_id, explorer_url), listener
            )

            async def report_progress(current: int, maximum: int) -> None:
                await self._apply(attempt, ProgressReported(current, maximum), listener)

            status = await self.monitor.monitor(receipt.transaction_id, on_progress=report_progress)

            if status.status == "failed":
                raise OnChainFailureError(
                    status.error_message or "Transaction failed", result_code=status.result
                )
            if status.status != "success":
                raise MonitoringTimeoutError(
                    "Transaction status unknown", transaction_id=receipt.transaction_id
                )

            await self._apply(attempt, Succeeded(), listener)
            logger.info(f"Swap succeeded: {receipt.transaction_id}")
            return SwapOutcome(
                success=True,
                status="success",
                state=attempt.state,
                transaction_id=receipt.transaction_id,
                explorer_url=explorer_url,
                warnings=warnings,
            )

        except _Discarded:
            logger.info(f"Swap attempt discarded at {attempt.state.step.value}")
            return SwapOutcome(
                success=False,
                status="discarded",
                state=attempt.state,
                warnings=warnings,
            )

        except _ListenerFailed:
            raise

        except SwapError as e:
            return await self._fail(attempt, e.message, e.kind, e.suggestion, listener, warnings)

        except Exception as e:
            logger.exception(f"Unexpected error during swap at {attempt.state.step.value}")
            parsed = parse_ledger_error(e)
            kind = ErrorKind.MONITORING_TIMEOUT if attempt.state.broadcast else ErrorKind.NETWORK
            return await self._fail(
                attempt, parsed.user_message, kind, parsed.suggestion, listener, warnings
            )

    async def _fail(
        self,
        attempt: SwapAttempt,
        message: str,
        kind: ErrorKind,
        suggestion: Optional[str],
        listener: Optional[Listener],
        warnings: list[str],
    ) -> SwapOutcome:
        logger.error(f"Swap failed at {attempt.state.step.value} ({kind.value}): {message}")
        if not attempt.state.is_terminal and attempt.state.step != SwapStep.IDLE:
            await self._apply(attempt, Failed(message, kind, suggestion), listener)

        state = attempt.state
        return SwapOutcome(
            success=False,
            status=_STATUS_BY_KIND.get(kind, "error"),
            state=state,
            transaction_id=state.transaction_id,
            explorer_url=state.explorer_url,
            error=message,
            error_kind=kind,
            suggestion=suggestion,
            warnings=warnings,
        )
