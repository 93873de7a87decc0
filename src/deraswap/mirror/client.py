"""Mirror node REST client.

The mirror node is an eventually-consistent, read-only view of the ledger.
It lags consensus by a few seconds, so a missing record means "not yet
indexed" as often as "does not exist".

API docs: https://docs.hedera.com/hedera/sdks-and-apis/rest-api
"""

import logging
from typing import Optional, Protocol, TypeVar

import httpx
from pydantic import BaseModel, Field, ValidationError

from deraswap.errors import MirrorNodeError
from deraswap.utils.ids import normalize_transaction_id

logger = logging.getLogger(__name__)

MAINNET_MIRROR_URL = "https://mainnet.mirrornode.hedera.com"
TESTNET_MIRROR_URL = "https://testnet.mirrornode.hedera.com"
MAX_PAGES = 20

ModelT = TypeVar("ModelT", bound=BaseModel)


class TokenCatalog(Protocol):
    """Anything that can tell whether a token exists."""

    async def token_exists(self, token_id: str) -> bool: ...


class AccountToken(BaseModel):
    """A token relationship (association) on an account."""

    token_id: str
    balance: int = 0
    automatic_association: bool = False


class TokenAllowance(BaseModel):
    """A fungible token allowance granted by an owner to a spender."""

    owner: str
    spender: str
    token_id: str
    amount: int = Field(default=0, description="Remaining allowance")
    amount_granted: int = Field(default=0, description="Originally granted amount")


class MirrorTransaction(BaseModel):
    """A transaction record as reported by the mirror node."""

    transaction_id: str
    result: str
    consensus_timestamp: Optional[str] = None
    name: Optional[str] = None
    charged_tx_fee: Optional[int] = None

    @property
    def is_success(self) -> bool:
        return self.result == "SUCCESS"


def _parse(model: type[ModelT], item: object) -> ModelT:
    """Validate one record. A malformed record is a failed query, not a crash."""
    try:
        return model.model_validate(item)
    except ValidationError as e:
        raise MirrorNodeError(
            f"Malformed {model.__name__} from mirror node: {e.error_count()} error(s)"
        ) from e


class MirrorNodeClient:
    """Async client for the mirror node REST API."""

    def __init__(
        self,
        base_url: str = MAINNET_MIRROR_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """Initialize the client.

        Args:
            base_url: Mirror node base URL (without /api/v1)
            http_client: Shared client (a fresh one per request if None)
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self._http = http_client
        self.timeout = timeout

    async def _get(self, path: str, params: Optional[dict] = None) -> Optional[dict]:
        """GET a JSON document. Returns None on 404.

        Raises:
            MirrorNodeError: On transport failure or any other non-2xx status
        """
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        try:
            if self._http is not None:
                response = await self._http.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            raise MirrorNodeError(f"Mirror node request failed: {type(e).__name__}: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise MirrorNodeError(
                f"Mirror node returned {response.status_code} for {path}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MirrorNodeError(f"Invalid JSON from mirror node: {e}") from e
        if not isinstance(data, dict):
            raise MirrorNodeError(f"Unexpected mirror node payload for {path}")
        return data

    async def _get_paginated(self, path: str, key: str, params: Optional[dict] = None) -> list[dict]:
        items: list[dict] = []
        next_path: Optional[str] = path
        pages = 0
        while next_path and pages < MAX_PAGES:
            data = await self._get(next_path, params if pages == 0 else None)
            if data is None:
                break
            items.extend(data.get(key) or [])
            next_path = (data.get("links") or {}).get("next")
            pages += 1
        return items

    async def get_account_tokens(
        self, account_id: str, token_id: Optional[str] = None
    ) -> list[AccountToken]:
        """Token relationships of an account, optionally filtered to one token."""
        params = {"limit": 100}
        if token_id:
            params["token.id"] = token_id
        items = await self._get_paginated(f"/api/v1/accounts/{account_id}/tokens", "tokens", params)
        return [_parse(AccountToken, item) for item in items]

    async def get_account_token_ids(self, account_id: str) -> set[str]:
        """IDs of every token associated with an account."""
        return {token.token_id for token in await self.get_account_tokens(account_id)}

    async def get_token_allowances(
        self, owner_id: str, spender_id: Optional[str] = None
    ) -> list[TokenAllowance]:
        """Fungible token allowances granted by an account."""
        params = {"limit": 100}
        if spender_id:
            params["spender.id"] = spender_id
        items = await self._get_paginated(
            f"/api/v1/accounts/{owner_id}/allowances/tokens", "allowances", params
        )
        return [_parse(TokenAllowance, item) for item in items]

    async def get_transaction(self, transaction_id: str) -> Optional[MirrorTransaction]:
        """Look up a transaction. None if not (yet) indexed."""
        normalized = normalize_transaction_id(transaction_id)
        data = await self._get(f"/api/v1/transactions/{normalized}")
        if not data:
            return None

        transactions = data.get("transactions") or []
        if not transactions:
            return None

        # Scheduled/child records share the ID; the parent comes first
        return _parse(MirrorTransaction, transactions[0])

    async def token_exists(self, token_id: str) -> bool:
        data = await self._get(f"/api/v1/tokens/{token_id}")
        exists = data is not None
        if not exists:
            logger.info(f"Token {token_id} not found on mirror node")
        return exists
