"""Known aggregators and the hop-path encoding each one expects.

Aggregator IDs arrive from the quote service as strings. They are resolved to
the closed ``Aggregator`` type once, when configuration is loaded, so call
sites branch on ``RouterFamily`` rather than comparing strings.
"""

import logging
from enum import Enum
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class RouterFamily(str, Enum):
    """How an aggregator's adapter expects the hop path to be encoded."""

    V1_ADDRESS_LIST = "v1_address_list"  # abi-encoded address[], no fee tiers
    V2_PACKED_PATH = "v2_packed_path"  # 20-byte token + 3-byte fee, repeated


class Aggregator(str, Enum):
    """Aggregator integrations the router contract can dispatch to."""

    SAUCERSWAP = "SaucerSwap"
    SAUCERSWAP_V1 = "SaucerSwapV1"
    SAUCERSWAP_V1_V2 = "SaucerSwapV1_v2"
    SAUCERSWAP_V2 = "SaucerSwapV2"
    SAUCERSWAP_V2_V5 = "SaucerSwapV2_V5"
    SAUCERSWAP_V2_V8 = "SaucerSwapV2_V8"
    SAUCERSWAP_V2_V9 = "SaucerSwapV2_V9"
    SAUCERSWAP_V2_V10 = "SaucerSwapV2_V10"
    SAUCERSWAP_V2_V12 = "SaucerSwapV2_V12"
    SAUCERSWAP_V2_EXACT = "SaucerSwapV2_EXACT"
    SAUCERSWAP_V2_EXACT2 = "SaucerSwapV2_EXACT2"
    PANGOLIN = "Pangolin"
    HELISWAP = "HeliSwap"
    ETASWAP = "ETASwap"

    @property
    def family(self) -> RouterFamily:
        if self.value.startswith("SaucerSwapV1") or self in (
            Aggregator.PANGOLIN,
            Aggregator.HELISWAP,
        ):
            return RouterFamily.V1_ADDRESS_LIST
        return RouterFamily.V2_PACKED_PATH


_BY_ID = {member.value.lower(): member for member in Aggregator}


def resolve_aggregator(aggregator_id: str) -> Optional[Aggregator]:
    """Look up an aggregator by ID (case-insensitive). Unknown IDs give None."""
    return _BY_ID.get(aggregator_id.strip().lower())


def resolve_aggregators(aggregator_ids: Iterable[str]) -> frozenset[Aggregator]:
    """Resolve a configured allow-list, skipping IDs that are not known."""
    resolved = set()
    for aggregator_id in aggregator_ids:
        aggregator = resolve_aggregator(aggregator_id)
        if aggregator is None:
            logger.warning(f"Ignoring unknown aggregator in allow-list: {aggregator_id}")
            continue
        resolved.add(aggregator)
    return frozenset(resolved)


def route_family(aggregator_ids: Iterable[str]) -> RouterFamily:
    """Family of a route. V1 only when every leg is a V1 aggregator."""
    families = [
        agg.family
        for agg in (resolve_aggregator(a) for a in aggregator_ids)
        if agg is not None
    ]
    if families and all(f == RouterFamily.V1_ADDRESS_LIST for f in families):
        return RouterFamily.V1_ADDRESS_LIST
    return RouterFamily.V2_PACKED_PATH
