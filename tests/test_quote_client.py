"""Tests for the route quote client."""

from decimal import Decimal

import httpx
import pytest

from deraswap.errors import ErrorKind, QuoteServiceError
from deraswap.routing.models import Token
from deraswap.routing.path import encode_packed_path
from deraswap.routing.quotes import QuoteClient, estimate_price_impact

from conftest import SAUCE_ID, USDC_ID, WHBAR_ID, addr, make_route

BASE_URL = "https://quotes.test/v1"

SPLIT_ROUTE = {
    "transactionType": "SPLIT_SWAP",
    "aggregatorId": ["SaucerSwapV2", "SaucerSwapV1"],
    "amountFrom": ["60000000", "40000000"],
    "amountTo": ["1000000000", "960000000"],
    "path": [encode_packed_path([addr(USDC_ID), addr(SAUCE_ID)], [3000]), ""],
    "route": [
        [addr(USDC_ID).upper(), addr(SAUCE_ID)],
        [addr(USDC_ID), addr(WHBAR_ID), addr(SAUCE_ID)],
    ],
    "gasEstimate": 450000,
    "priceImpact": "0.4",
}

SIMPLE_ROUTE = {
    "transactionType": "SWAP",
    "aggregatorId": "SaucerSwapV2",
    "amountFrom": "100000000",
    "amountTo": "1950000000",
    "path": "0x",
    "route": [addr(USDC_ID), addr(SAUCE_ID)],
    "gasEstimate": 250000,
}


def _client(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return QuoteClient(BASE_URL, wrapped_native_id=WHBAR_ID, http_client=http)


class TestGetRoutes:
    """GET /rates."""

    @pytest.mark.asyncio
    async def test_request_params(self, hbar, sauce):
        """Test the native token is quoted as wrapped native."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        await _client(handler).get_routes(hbar, sauce, 500_000_000)

        assert seen[0].url.path == "/v1/rates"
        assert dict(seen[0].url.params) == {
            "tokenFrom": addr(WHBAR_ID),
            "tokenTo": addr(SAUCE_ID),
            "amount": "500000000",
            "isReverse": "false",
        }

    @pytest.mark.asyncio
    async def test_split_route_parsed(self, usdc, sauce):
        """Test split fields stay per-leg and outputs are summed."""
        client = _client(lambda request: httpx.Response(200, json=[SPLIT_ROUTE]))

        (route,) = await client.get_routes(usdc, sauce, 100_000_000)

        assert route.is_split
        assert route.aggregator_ids == ("SaucerSwapV2", "SaucerSwapV1")
        assert route.amount_to == (1_000_000_000, 960_000_000)
        assert route.total_output == 1_960_000_000
        assert route.token_paths[0][0] == addr(USDC_ID)
        assert route.hop_count == 2
        assert len(route.encoded_paths) == 2
        assert route.encoded_paths[1] == ""
        assert route.output_formatted == "1960"
        # 1960 SAUCE at $0.05 = $98 for $100 in
        assert route.price_impact == Decimal("-2.00")

    @pytest.mark.asyncio
    async def test_impact_from_payload_without_prices(self, usdc, sauce):
        """Test the service's impact is kept when USD prices are unknown."""
        unpriced = Token(USDC_ID, "USDC", 6)
        client = _client(lambda request: httpx.Response(200, json=[SPLIT_ROUTE, SIMPLE_ROUTE]))

        routes = await client.get_routes(unpriced, sauce, 100_000_000)

        assert routes[0].price_impact == Decimal("0.4")
        assert routes[1].price_impact == Decimal("0")
        assert routes[1].aggregator_ids == ("SaucerSwapV2",)
        assert routes[1].encoded_paths == ()

    @pytest.mark.asyncio
    async def test_non_list_payload(self, usdc, sauce):
        """Test an unexpected payload shape yields no routes."""
        client = _client(lambda request: httpx.Response(200, json={"error": "nope"}))

        assert await client.get_routes(usdc, sauce, 100) == []

    @pytest.mark.asyncio
    async def test_http_error(self, usdc, sauce):
        """Test error statuses raise a retryable network error."""
        client = _client(lambda request: httpx.Response(502, text="bad gateway"))

        with pytest.raises(QuoteServiceError) as exc_info:
            await client.get_routes(usdc, sauce, 100)

        assert exc_info.value.kind == ErrorKind.NETWORK
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_transport_error(self, usdc, sauce):
        """Test connection failures raise QuoteServiceError."""

        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(QuoteServiceError):
            await _client(handler).get_routes(usdc, sauce, 100)


class TestPriceImpact:
    """USD-based impact estimate."""

    def test_favorable_is_positive(self, usdc, sauce):
        route = make_route([addr(USDC_ID), addr(SAUCE_ID)], amount_to=2_100_000_000)

        assert estimate_price_impact(route, usdc, sauce, 100_000_000) == Decimal("5.00")

    def test_unknown_price(self, usdc, sauce):
        unpriced = Token(SAUCE_ID, "SAUCE", 6)
        route = make_route([addr(USDC_ID), addr(SAUCE_ID)])

        assert estimate_price_impact(route, usdc, unpriced, 100_000_000) is None
