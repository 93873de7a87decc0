"""Route validation.

Routes come from an untrusted quote service. Every safety property is
re-derived here before a route can be shown or executed:

1. No token in the path is block-listed (checked first, in every mode)
2. Every aggregator is on the allow-list
3. Supplied paths decode and agree with the declared token list
4. Hop count within limit, counted on the path the router will execute
5. First/last token of every executed leg match the requested pair
6. Positive output, plausible gas, known transaction type
7. Price impact within limits (a warning instead of a rejection in auto mode)
8. Every token in the path exists in the token catalog
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from deraswap.routing.aggregators import (
    Aggregator,
    resolve_aggregator,
    resolve_aggregators,
    route_family,
)
from deraswap.routing.models import Route, SwapSettings, Token, TransactionType
from deraswap.routing.path import decode_supplied_path, route_leg_tokens
from deraswap.utils.cache import TTLCache
from deraswap.utils.ids import (
    ZERO_ADDRESS,
    entity_id_to_solidity_address,
    solidity_address_to_entity_id,
    to_address,
)

if TYPE_CHECKING:
    from deraswap.config import Settings
    from deraswap.mirror.client import TokenCatalog

logger = logging.getLogger(__name__)

MAX_GAS_ESTIMATE = 10_000_000
RELAXED_WARNING = "Accepted under relaxed validation (auto mode). Review the route before swapping."


class RejectionReason(str, Enum):
    """Why a route was rejected."""

    BLOCKED_TOKEN = "blocked_token"
    UNTRUSTED_AGGREGATOR = "untrusted_aggregator"
    MALFORMED_PATH = "malformed_path"
    PATH_MISMATCH = "path_mismatch"
    TOO_MANY_HOPS = "too_many_hops"
    ENDPOINT_MISMATCH = "endpoint_mismatch"
    NON_POSITIVE_OUTPUT = "non_positive_output"
    INVALID_GAS_ESTIMATE = "invalid_gas_estimate"
    UNKNOWN_TRANSACTION_TYPE = "unknown_transaction_type"
    PRICE_IMPACT_TOO_HIGH = "price_impact_too_high"
    EXCEEDS_SLIPPAGE = "exceeds_slippage"
    TOKEN_NOT_FOUND = "token_not_found"


@dataclass(frozen=True)
class RouteValidationConfig:
    """Limits applied to every candidate route.

    Token sets hold normalized 0x addresses.
    """

    trusted_aggregators: frozenset[Aggregator]
    blocked_tokens: frozenset[str] = frozenset()
    trusted_tokens: frozenset[str] = frozenset()
    max_hops: int = 3
    max_price_impact: Decimal = Decimal("20")
    user_slippage_tolerance: Optional[Decimal] = None
    auto: bool = False
    max_gas_estimate: int = MAX_GAS_ESTIMATE
    wrapped_native_address: str = entity_id_to_solidity_address("0.0.1456986")

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        slippage: Optional[Decimal] = None,
        auto: bool = False,
    ) -> "RouteValidationConfig":
        """Resolve string-typed settings into a validation config."""
        return cls(
            trusted_aggregators=resolve_aggregators(settings.trusted_aggregator_ids),
            blocked_tokens=frozenset(to_address(t) for t in settings.blocked_token_ids),
            trusted_tokens=frozenset(to_address(t) for t in settings.trusted_token_ids),
            max_hops=settings.max_hops,
            max_price_impact=settings.max_price_impact,
            user_slippage_tolerance=slippage,
            auto=auto,
            wrapped_native_address=entity_id_to_solidity_address(
                settings.wrapped_native_token_id
            ),
        )

    def with_swap_settings(self, swap_settings: SwapSettings) -> "RouteValidationConfig":
        return replace(
            self,
            user_slippage_tolerance=swap_settings.slippage_tolerance,
            auto=swap_settings.auto,
        )


@dataclass
class RouteValidationResult:
    """Outcome of validating one route."""

    valid: bool
    reason: Optional[str] = None
    rejection: Optional[RejectionReason] = None
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def reject(cls, rejection: RejectionReason, reason: str) -> "RouteValidationResult":
        return cls(valid=False, reason=reason, rejection=rejection)


class RouteValidator:
    """Filters candidate routes down to the ones safe to execute."""

    def __init__(
        self,
        config: RouteValidationConfig,
        catalog: Optional["TokenCatalog"] = None,
        existence_cache: Optional[TTLCache[str, bool]] = None,
    ):
        """Initialize the validator.

        Args:
            config: Validation limits
            catalog: Token catalog used for the existence check (None skips it)
            existence_cache: Shared per-address existence results
        """
        self.config = config
        self.catalog = catalog
        self.existence_cache: TTLCache[str, bool] = existence_cache or TTLCache(maxsize=4096)

    def for_settings(self, swap_settings: SwapSettings) -> "RouteValidator":
        """Validator for one swap's settings, sharing the catalog and cache."""
        return RouteValidator(
            self.config.with_swap_settings(swap_settings),
            catalog=self.catalog,
            existence_cache=self.existence_cache,
        )

    # ------------------------------------------------------------------
    # Synchronous checks
    # ------------------------------------------------------------------

    def check_blocklist(self, route: Route) -> RouteValidationResult:
        """Block-list check alone. Applies in every mode."""
        for address in self._route_addresses(route):
            if to_address(address) in self.config.blocked_tokens:
                return RouteValidationResult.reject(
                    RejectionReason.BLOCKED_TOKEN, f"Blocked token in path: {address}"
                )
        return RouteValidationResult(valid=True)

    def validate_route(
        self, route: Route, from_token: Token, to_token: Token
    ) -> RouteValidationResult:
        """Run every local check against one route."""
        config = self.config

        blocked = self.check_blocklist(route)
        if not blocked.valid:
            return blocked

        if not route.aggregator_ids:
            return RouteValidationResult.reject(
                RejectionReason.UNTRUSTED_AGGREGATOR, "Route has no aggregator"
            )
        for aggregator_id in route.aggregator_ids:
            aggregator = resolve_aggregator(aggregator_id)
            if aggregator is None or aggregator not in config.trusted_aggregators:
                return RouteValidationResult.reject(
                    RejectionReason.UNTRUSTED_AGGREGATOR,
                    f"Untrusted aggregator: {aggregator_id}",
                )

        paths = self._check_supplied_paths(route)
        if not paths.valid:
            return paths

        legs = route_leg_tokens(route)
        hop_count = max((len(leg) - 1 for leg in legs), default=0)
        if hop_count > config.max_hops:
            return RouteValidationResult.reject(
                RejectionReason.TOO_MANY_HOPS,
                f"Too many hops: {hop_count} (max: {config.max_hops})",
            )

        endpoints = self._check_endpoints(legs, from_token, to_token)
        if not endpoints.valid:
            return endpoints

        if route.total_output <= 0:
            return RouteValidationResult.reject(
                RejectionReason.NON_POSITIVE_OUTPUT, "Invalid output amount: must be positive"
            )

        if route.gas_estimate <= 0:
            return RouteValidationResult.reject(
                RejectionReason.INVALID_GAS_ESTIMATE, "Invalid gas estimate: must be positive"
            )
        if route.gas_estimate > config.max_gas_estimate:
            return RouteValidationResult.reject(
                RejectionReason.INVALID_GAS_ESTIMATE, "Suspicious gas estimate: too high"
            )

        if TransactionType.parse(route.transaction_type) is None:
            return RouteValidationResult.reject(
                RejectionReason.UNKNOWN_TRANSACTION_TYPE,
                f"Unknown transaction type: {route.transaction_type}",
            )

        return self._check_price_impact(route)

    def _check_price_impact(self, route: Route) -> RouteValidationResult:
        # Negative impact is unfavorable (user receives less than quoted)
        config = self.config
        impact = route.price_impact
        magnitude = abs(impact)
        problem: Optional[tuple[RejectionReason, str]] = None

        if magnitude > config.max_price_impact:
            problem = (
                RejectionReason.PRICE_IMPACT_TOO_HIGH,
                f"Price impact too high: {magnitude:.2f}% (max: {config.max_price_impact}%)",
            )
        elif (
            config.user_slippage_tolerance is not None
            and impact < 0
            and magnitude > config.user_slippage_tolerance
        ):
            problem = (
                RejectionReason.EXCEEDS_SLIPPAGE,
                f"Price impact ({magnitude:.2f}%) exceeds your slippage tolerance "
                f"({config.user_slippage_tolerance}%)",
            )

        if problem is None:
            return RouteValidationResult(valid=True)
        if config.auto:
            return RouteValidationResult(valid=True, warnings=[problem[1]])
        return RouteValidationResult.reject(*problem)

    def check_execution_floor(
        self, route: Route, from_token: Token, to_token: Token
    ) -> RouteValidationResult:
        """Checks no mode relaxes: block-list, path integrity and endpoints.

        A relaxed auto-mode route must still execute exactly the declared
        tokens between the requested pair.
        """
        blocked = self.check_blocklist(route)
        if not blocked.valid:
            return blocked
        paths = self._check_supplied_paths(route)
        if not paths.valid:
            return paths
        return self._check_endpoints(route_leg_tokens(route), from_token, to_token)

    def _check_endpoints(
        self, legs: list[tuple[str, ...]], from_token: Token, to_token: Token
    ) -> RouteValidationResult:
        if not legs:
            return RouteValidationResult.reject(
                RejectionReason.ENDPOINT_MISMATCH, "Route has no token path"
            )
        for leg in legs:
            if not self._matches(leg[0], from_token):
                return RouteValidationResult.reject(
                    RejectionReason.ENDPOINT_MISMATCH, "Route does not start with fromToken"
                )
            if not self._matches(leg[-1], to_token):
                return RouteValidationResult.reject(
                    RejectionReason.ENDPOINT_MISMATCH, "Route does not end with toToken"
                )
        return RouteValidationResult(valid=True)

    def _check_supplied_paths(self, route: Route) -> RouteValidationResult:
        """Each supplied path must decode and carry the declared tokens, in order."""
        family = route_family(route.aggregator_ids)
        for index, encoded in enumerate(route.encoded_paths):
            if not encoded:
                continue
            try:
                executed = decode_supplied_path(encoded, family)
            except ValueError as e:
                return RouteValidationResult.reject(
                    RejectionReason.MALFORMED_PATH, f"Malformed route path: {e}"
                )
            declared = route.token_paths[index] if index < len(route.token_paths) else ()
            if declared and [self._canonical(a) for a in declared] != [
                self._canonical(a) for a in executed
            ]:
                return RouteValidationResult.reject(
                    RejectionReason.PATH_MISMATCH,
                    "Route path does not match the declared token route",
                )
        return RouteValidationResult(valid=True)

    def _canonical(self, address: str) -> str:
        # The zero address is how quotes spell wrapped native in a declared route
        address = to_address(address)
        return self.config.wrapped_native_address if address == ZERO_ADDRESS else address

    def _route_addresses(self, route: Route) -> list[str]:
        """Declared and executed token addresses, de-duplicated in order."""
        addresses = list(route.all_token_addresses)
        family = route_family(route.aggregator_ids)
        for encoded in route.encoded_paths:
            if not encoded:
                continue
            try:
                decoded = decode_supplied_path(encoded, family)
            except ValueError:
                # Rejected as malformed by validate_route
                continue
            addresses.extend(a for a in decoded if a not in addresses)
        return addresses

    def _matches(self, address: str, token: Token) -> bool:
        address = to_address(address)
        if address == token.solidity_address:
            return True
        return token.is_native and address in (ZERO_ADDRESS, self.config.wrapped_native_address)

    # ------------------------------------------------------------------
    # Token existence
    # ------------------------------------------------------------------

    async def token_exists(self, address: str) -> bool:
        """Catalog lookup for one address, cached for the process lifetime."""
        address = to_address(address)
        if address == ZERO_ADDRESS or address in self.config.trusted_tokens:
            return True
        if address == self.config.wrapped_native_address:
            return True

        cached = self.existence_cache.get(address)
        if cached is not None:
            return cached

        if self.catalog is None:
            return True

        token_id = solidity_address_to_entity_id(address)
        try:
            exists = await self.catalog.token_exists(token_id)
        except Exception as e:
            # Not cached: a later lookup may succeed
            logger.warning(f"Token lookup failed for {token_id}: {type(e).__name__}: {e}")
            return False

        self.existence_cache.set(address, exists)
        return exists

    async def find_missing_tokens(self, route: Route) -> list[str]:
        addresses = self._route_addresses(route)
        results = await asyncio.gather(*(self.token_exists(a) for a in addresses))
        return [address for address, exists in zip(addresses, results) if not exists]

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    async def filter_routes(
        self, routes: list[Route], from_token: Token, to_token: Token
    ) -> list[Route]:
        """Return the routes safe to execute, best output first.

        In auto mode, when nothing passes but some routes cleared the
        execution floor, the best of those is returned flagged as relaxed.
        Routes that fail the floor are never returned.
        """
        accepted: list[Route] = []
        fallback_candidates: list[Route] = []

        for index, route in enumerate(routes, start=1):
            floor = self.check_execution_floor(route, from_token, to_token)
            if not floor.valid:
                logger.warning(f"Route #{index} rejected: {floor.reason} {route.describe()}")
                continue

            fallback_candidates.append(route)
            result = self.validate_route(route, from_token, to_token)

            if not result.valid:
                logger.warning(f"Route #{index} rejected: {result.reason} {route.describe()}")
                continue

            missing = await self.find_missing_tokens(route)
            if missing:
                logger.warning(
                    f"Route #{index} rejected: {RejectionReason.TOKEN_NOT_FOUND.value} "
                    f"{missing} {route.describe()}"
                )
                continue

            for warning in result.warnings:
                route = route.annotate(warning=warning)
            logger.info(f"Route #{index} valid: {route.describe()}")
            accepted.append(route)

        if accepted:
            return sorted(accepted, key=lambda r: r.total_output, reverse=True)

        if self.config.auto and fallback_candidates:
            for route in sorted(fallback_candidates, key=lambda r: r.total_output, reverse=True):
                if await self.find_missing_tokens(route):
                    continue
                logger.warning(f"No route passed validation, using relaxed fallback: {route.describe()}")
                return [route.annotate(relaxed=True, warning=RELAXED_WARNING)]

        logger.warning(
            f"No valid routes for {from_token.symbol} -> {to_token.symbol} "
            f"({len(routes)} candidate(s))"
        )
        return []
