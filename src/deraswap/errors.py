"""Swap error taxonomy and ledger error parsing.

Every failure that can end a swap attempt belongs to exactly one ErrorKind.
Components raise the typed exceptions below; the orchestrator is the only
place that turns one into a terminal error state.
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Which stage of the pipeline produced an error."""

    VALIDATION = "validation"
    PRECONDITION = "precondition"
    SIGNATURE_REJECTED = "signature_rejected"
    NETWORK = "network"
    ON_CHAIN_FAILURE = "on_chain_failure"
    MONITORING_TIMEOUT = "monitoring_timeout"


class SwapError(Exception):
    """Base class for all swap engine errors."""

    kind: ErrorKind = ErrorKind.NETWORK

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        kind: Optional[ErrorKind] = None,
    ):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        if kind is not None:
            self.kind = kind

    @property
    def retryable(self) -> bool:
        """Whether a fresh attempt with the same inputs can succeed."""
        return self.kind in (ErrorKind.PRECONDITION, ErrorKind.NETWORK)


class SwapValidationError(SwapError):
    """Local parameter or route check failed. No side effects happened."""

    kind = ErrorKind.VALIDATION

    @property
    def retryable(self) -> bool:
        return True


class PreconditionError(SwapError):
    """An association or allowance step could not be completed."""

    kind = ErrorKind.PRECONDITION

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        token_id: Optional[str] = None,
        rejected_by_user: bool = False,
    ):
        super().__init__(message, suggestion)
        self.token_id = token_id
        self.rejected_by_user = rejected_by_user


class SignatureRejectedError(SwapError):
    """The user declined the swap transaction in the wallet."""

    kind = ErrorKind.SIGNATURE_REJECTED


class NetworkError(SwapError):
    """Transport or indexer failure after internal retries."""

    kind = ErrorKind.NETWORK


class QuoteServiceError(NetworkError):
    """Quote service request failed."""


class MirrorNodeError(NetworkError):
    """Mirror node request failed with something other than not-found."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class OnChainFailureError(SwapError):
    """Transaction reached consensus with a non-SUCCESS result."""

    kind = ErrorKind.ON_CHAIN_FAILURE

    def __init__(self, message: str, result_code: Optional[str] = None):
        super().__init__(
            message,
            suggestion="The transaction was finalized on the ledger. Review it in the explorer.",
        )
        self.result_code = result_code


class MonitoringTimeoutError(SwapError):
    """The indexer never reported the transaction. Outcome is unknown, not failed."""

    kind = ErrorKind.MONITORING_TIMEOUT

    def __init__(self, message: str, transaction_id: Optional[str] = None):
        super().__init__(
            message,
            suggestion="Status unknown. Check the explorer; the swap may still complete.",
        )
        self.transaction_id = transaction_id


@dataclass
class ParsedError:
    """User-facing view of a ledger or wallet error."""

    user_message: str
    technical_message: str
    suggestion: Optional[str] = None


_PREFIXES = (
    "Error executing transaction or query:",
    "Error:",
    "Transaction error:",
    "Query error:",
)

_ALREADY_SATISFIED_MARKERS = (
    "token_already_associated",
    "already associated",
    "already_associated",
    "already satisfied",
)

# (markers, user message, suggestion), checked in order
_KNOWN_ERRORS: list[tuple[tuple[str, ...], str, str]] = [
    (
        ("insufficient_payer_balance", "insufficient payer balance", "insufficient balance"),
        "Insufficient HBAR balance",
        "You need at least ~0.05 HBAR to associate a token. Please add HBAR to your wallet.",
    ),
    (
        ("insufficient_tx_fee", "insufficient transaction fee"),
        "Transaction fee is insufficient",
        "The transaction fee is lower than the minimum required by the network.",
    ),
    (
        ("token_already_associated", "already associated"),
        "This token is already associated with your account",
        "You can proceed with the swap directly.",
    ),
    (
        ("invalid_signature", "signature", "rejected"),
        "Transaction rejected in wallet",
        "You cancelled the transaction signature in your wallet.",
    ),
    (
        ("transaction_expired", "expired"),
        "Transaction has expired",
        "Please try again. The transaction took too long to be signed.",
    ),
    (
        ("invalid_account", "account not found"),
        "Invalid or not found account",
        "Verify that your wallet is properly connected.",
    ),
    (
        ("invalid_token", "token not found"),
        "Token not found",
        "The token you are trying to use does not exist or is not available on this network.",
    ),
    (
        ("max_entities",),
        "Token association limit reached",
        "You have reached the maximum number of tokens associated with your account.",
    ),
    (
        ("insufficient gas", "out of gas", "insufficient_gas"),
        "Insufficient gas for transaction",
        "The transaction requires more gas than specified.",
    ),
    (
        ("network", "timeout", "connection"),
        "Network connection error",
        "Check your internet connection and try again.",
    ),
    (
        ("approval",),
        "Token approval failed",
        "There was a problem approving the token spending.",
    ),
    (
        ("association",),
        "Token association failed",
        "There was a problem associating the token to your account.",
    ),
]


def _extract_message(error: object) -> str:
    """Pull the most relevant message out of a wallet/SDK error."""
    text = str(error) or type(error).__name__

    for attr in ("tx_error", "query_error"):
        nested = getattr(error, attr, None)
        if isinstance(nested, dict) and nested.get("message"):
            return str(nested["message"])

    for prefix in _PREFIXES:
        if text.startswith(prefix):
            text = text[len(prefix):].strip()
            break

    if "txError" in text or "queryError" in text:
        match = re.search(r"\{[\s\S]*\}", text)
        if match:
            try:
                payload = json.loads(match.group(0))
                nested = payload.get("txError") or payload.get("queryError") or {}
                if nested.get("message"):
                    text = nested["message"]
            except (ValueError, AttributeError):
                message_match = re.search(r'"message"\s*:\s*"([^"]+)"', text)
                if message_match:
                    text = message_match.group(1)

    if "\n at " in text:
        text = text.split("\n at ")[0].strip()

    if "{" in text and not text.strip().endswith("}"):
        before_json = text[: text.index("{")].strip()
        if before_json:
            text = before_json

    if len(text) > 500:
        text = text[:500] + "..."

    return text


def parse_ledger_error(error: object) -> ParsedError:
    """Map a wallet or ledger error to a user-facing message."""
    if isinstance(error, SwapError) and error.suggestion:
        return ParsedError(error.message, error.message, error.suggestion)

    message = _extract_message(error)
    lowered = message.lower()

    for markers, user_message, suggestion in _KNOWN_ERRORS:
        if any(marker in lowered for marker in markers):
            return ParsedError(user_message, message, suggestion)

    return ParsedError(
        user_message="Transaction error",
        technical_message=message,
        suggestion="Please review the error details and try again.",
    )


def is_already_satisfied(error: object) -> bool:
    """Check if an error only says the precondition already holds."""
    lowered = _extract_message(error).lower()
    return any(marker in lowered for marker in _ALREADY_SATISFIED_MARKERS)
