"""Pytest configuration and fixtures."""

import os
from decimal import Decimal
from typing import Optional, Sequence

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ["DRY_RUN"] = "true"

from deraswap.config import Settings
from deraswap.errors import MirrorNodeError
from deraswap.mirror.client import AccountToken, MirrorTransaction, TokenAllowance
from deraswap.routing.aggregators import Aggregator
from deraswap.routing.models import Route, SwapSettings, Token
from deraswap.routing.validator import RouteValidationConfig
from deraswap.utils.ids import entity_id_to_solidity_address

NOW = 1_700_000_000.0
USER_ACCOUNT = "0.0.1001"
ROUTER_ID = "0.0.4817907"
ADAPTER_ID = "0.0.10087392"
WHBAR_ID = "0.0.1456986"
USDC_ID = "0.0.456858"
SAUCE_ID = "0.0.731861"


def addr(entity_id: str) -> str:
    return entity_id_to_solidity_address(entity_id)


def fixed_clock() -> float:
    return NOW


def make_route(
    tokens: Sequence[str],
    aggregator: str = "SaucerSwapV2",
    amount_to: int = 1_000_000,
    amount_from: int = 100_000_000,
    gas: int = 200_000,
    impact: Decimal = Decimal("0"),
    tx_type: str = "SWAP",
    encoded_paths: tuple[str, ...] = (),
) -> Route:
    """Single-leg route through the given token addresses."""
    return Route(
        transaction_type=tx_type,
        aggregator_ids=(aggregator,),
        amount_from=(amount_from,),
        amount_to=(amount_to,),
        token_paths=(tuple(t.lower() for t in tokens),),
        gas_estimate=gas,
        price_impact=impact,
        encoded_paths=encoded_paths,
    )


class FakeMirror:
    """In-memory stand-in for MirrorNodeClient.

    ``transactions`` is consumed one entry per get_transaction call; an entry
    may be None (not indexed), a result code string, or an exception.
    """

    def __init__(
        self,
        holdings: Optional[dict[str, set[str]]] = None,
        allowances: Optional[list[TokenAllowance]] = None,
        transactions: Optional[list] = None,
        default_result: Optional[str] = "SUCCESS",
        fail_reads: bool = False,
    ):
        self.holdings = holdings or {}
        self.allowances = allowances or []
        self.transactions = list(transactions or [])
        self.default_result = default_result
        self.fail_reads = fail_reads
        self.token_reads: list[str] = []
        self.transaction_reads: list[str] = []

    def _check(self):
        if self.fail_reads:
            raise MirrorNodeError("Mirror node returned 503", status_code=503)

    async def get_account_tokens(self, account_id, token_id=None):
        self._check()
        self.token_reads.append(account_id)
        held = self.holdings.get(account_id, set())
        return [AccountToken(token_id=t) for t in held if token_id is None or t == token_id]

    async def get_account_token_ids(self, account_id):
        self._check()
        self.token_reads.append(account_id)
        return set(self.holdings.get(account_id, set()))

    async def get_token_allowances(self, owner_id, spender_id=None):
        self._check()
        return [
            a
            for a in self.allowances
            if a.owner == owner_id and (spender_id is None or a.spender == spender_id)
        ]

    async def get_transaction(self, transaction_id):
        self.transaction_reads.append(transaction_id)
        entry = self.transactions.pop(0) if self.transactions else self.default_result
        if isinstance(entry, Exception):
            raise entry
        if entry is None:
            return None
        return MirrorTransaction(
            transaction_id=transaction_id,
            result=entry,
            consensus_timestamp="1700000005.000000001",
        )

    async def token_exists(self, token_id):
        return True


class SleepRecorder:
    """Async sleep replacement that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, dry_run=True)


@pytest.fixture
def hbar() -> Token:
    return Token("HBAR", "HBAR", 8, price_usd=Decimal("0.29"))


@pytest.fixture
def usdc() -> Token:
    return Token(USDC_ID, "USDC", 6, price_usd=Decimal("1"))


@pytest.fixture
def sauce() -> Token:
    return Token(SAUCE_ID, "SAUCE", 6, price_usd=Decimal("0.05"))


@pytest.fixture
def swap_settings() -> SwapSettings:
    return SwapSettings(slippage_tolerance=Decimal("1"), deadline=int(NOW) + 300)


@pytest.fixture
def validation_config() -> RouteValidationConfig:
    return RouteValidationConfig(
        trusted_aggregators=frozenset(
            {Aggregator.SAUCERSWAP_V1, Aggregator.SAUCERSWAP_V2, Aggregator.ETASWAP}
        ),
    )


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()
