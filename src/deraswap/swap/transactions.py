"""Unsigned transaction model handed to the wallet session.

The engine never signs. It prepares transaction content and the wallet
session freezes, signs and submits it.
"""

import time
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field


class TransactionKind(str, Enum):
    CONTRACT_CALL = "contract_call"
    TOKEN_ASSOCIATE = "token_associate"
    ALLOWANCE_APPROVE = "allowance_approve"


def generate_transaction_id(payer_account_id: str, clock: Callable[[], float] = time.time) -> str:
    """Ledger transaction ID: ``<payer>@<valid-start seconds>.<nanos>``."""
    now = clock()
    seconds = int(now)
    nanos = int(round((now - seconds) * 1_000_000_000)) % 1_000_000_000
    return f"{payer_account_id}@{seconds}.{nanos:09d}"


class UnsignedTransaction(BaseModel):
    """An unsigned ledger transaction for the wallet to freeze and sign."""

    kind: TransactionKind = Field(..., description="Transaction body type")
    transaction_id: str = Field(..., description="Per-transaction ID (payer@seconds.nanos)")
    payer_account_id: str = Field(..., description="Account paying the fee and signing")
    node_account_ids: list[str] = Field(
        default_factory=list, description="Target consensus nodes (wallet picks if empty)"
    )

    # Contract call
    contract_id: Optional[str] = Field(None, description="Contract entity ID")
    function_name: Optional[str] = Field(None, description="Called function name")
    function_parameters: Optional[str] = Field(
        None, description="ABI-encoded call data including selector (hex)"
    )
    gas: Optional[int] = Field(None, description="Gas limit")
    payable_amount: int = Field(default=0, description="Native value attached, in tinybars")

    # Token association / allowance
    account_id: Optional[str] = Field(None, description="Account receiving the association")
    token_ids: list[str] = Field(default_factory=list, description="Tokens to associate")
    token_id: Optional[str] = Field(None, description="Token for an allowance")
    spender: Optional[str] = Field(None, description="Allowance spender entity ID")
    amount: Optional[int] = Field(None, description="Allowance amount in smallest units")

    requires_signer_freeze: bool = Field(
        default=False,
        description="Must be frozen with the signer attached (native value would be dropped otherwise)",
    )
    description: Optional[str] = Field(None, description="Human-readable description")
    warnings: list[str] = Field(default_factory=list, description="Any warnings")

    def content_bytes(self) -> bytes:
        """Canonical content, excluding the transaction ID."""
        return self.model_dump_json(exclude={"transaction_id"}).encode()
