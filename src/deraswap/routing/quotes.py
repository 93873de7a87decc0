"""Route quote service client.

Fetches candidate routes for a token pair. The service is trusted for data
only; every returned route still goes through RouteValidator.
"""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from deraswap.errors import QuoteServiceError
from deraswap.routing.models import Route, Token
from deraswap.utils.amounts import format_amount
from deraswap.utils.ids import entity_id_to_solidity_address

logger = logging.getLogger(__name__)

ETASWAP_API_URL = "https://api.etaswap.com/v1"


def estimate_price_impact(
    route: Route, from_token: Token, to_token: Token, amount_in: int
) -> Optional[Decimal]:
    """USD-value difference between output and input, in percent.

    Negative means the user receives less value than they put in. Split
    routes compare the summed output of all legs. Returns None when either
    USD price is unknown.
    """
    if not from_token.price_usd or not to_token.price_usd or amount_in <= 0:
        return None

    usd_in = Decimal(amount_in) / Decimal(10**from_token.decimals) * from_token.price_usd
    usd_out = Decimal(route.total_output) / Decimal(10**to_token.decimals) * to_token.price_usd
    if usd_in == 0:
        return None
    return ((usd_out - usd_in) / usd_in * 100).quantize(Decimal("0.01"))


class QuoteClient:
    """Client for the route quote API (``GET /rates``)."""

    def __init__(
        self,
        base_url: str = ETASWAP_API_URL,
        wrapped_native_id: str = "0.0.1456986",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """Initialize the quote client.

        Args:
            base_url: Quote API base URL
            wrapped_native_id: Token ID the service uses in place of the native token
            http_client: Shared client (a fresh one per request if None)
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.wrapped_native_id = wrapped_native_id
        self._http = http_client
        self.timeout = timeout

    def _token_address(self, token: Token) -> str:
        if token.is_native:
            return entity_id_to_solidity_address(self.wrapped_native_id)
        return token.solidity_address

    async def _get(self, path: str, params: dict) -> httpx.Response:
        url = f"{self.base_url}{path}"
        if self._http is not None:
            return await self._http.get(url, params=params)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url, params=params)

    async def get_routes(self, from_token: Token, to_token: Token, amount: int) -> list[Route]:
        """Fetch and parse candidate routes.

        Args:
            from_token: Source token
            to_token: Destination token
            amount: Input amount in smallest units

        Returns:
            Routes annotated with formatted output and price impact

        Raises:
            QuoteServiceError: On transport failure or a non-2xx response
        """
        params = {
            "tokenFrom": self._token_address(from_token),
            "tokenTo": self._token_address(to_token),
            "amount": str(amount),
            "isReverse": "false",
        }
        logger.info(f"Requesting routes: {amount} {from_token.symbol} -> {to_token.symbol}")

        try:
            response = await self._get("/rates", params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Quote API error: {e.response.status_code} {e.response.text[:200]}")
            raise QuoteServiceError(
                f"Quote service returned {e.response.status_code}",
                suggestion="Try again in a few seconds.",
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Quote API request failed: {type(e).__name__}: {e}")
            raise QuoteServiceError(f"Quote service unavailable: {e}") from e

        if not isinstance(payload, list):
            logger.warning(f"Unexpected quote payload type: {type(payload).__name__}")
            return []

        routes = []
        for item in payload:
            try:
                route = Route.from_quote(item)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed route: {e}")
                continue

            impact = estimate_price_impact(route, from_token, to_token, amount)
            routes.append(
                route.annotate(
                    output_formatted=format_amount(route.total_output, to_token.decimals),
                    price_impact=impact,
                )
            )

        logger.info(f"Got {len(routes)} route(s) for {from_token.symbol} -> {to_token.symbol}")
        return routes
