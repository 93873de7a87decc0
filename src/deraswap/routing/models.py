"""Route, token and settings data model."""

import time
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from deraswap.utils.ids import NATIVE_TOKEN_ID, ZERO_ADDRESS, to_address


class TransactionType(str, Enum):
    """Route shapes the router contract knows how to execute."""

    SWAP = "SWAP"
    SPLIT_SWAP = "SPLIT_SWAP"
    INDIRECT_SWAP = "INDIRECT_SWAP"

    @classmethod
    def parse(cls, value: str) -> Optional["TransactionType"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class Token:
    """Read-only token reference data from the token catalog."""

    token_id: str  # "0.0.456858" or "HBAR"
    symbol: str
    decimals: int
    price_usd: Optional[Decimal] = None
    is_fee_on_transfer: bool = False
    address: Optional[str] = None  # explicit EVM address, if the catalog has one

    @property
    def is_native(self) -> bool:
        return self.token_id.upper() == NATIVE_TOKEN_ID

    @property
    def solidity_address(self) -> str:
        """Fixed-width contract address. The native token maps to the zero address."""
        if self.address:
            return to_address(self.address)
        if self.is_native:
            return ZERO_ADDRESS
        return to_address(self.token_id)


@dataclass(frozen=True)
class Hop:
    """One token-to-token leg of a path."""

    token_in: str
    token_out: str
    fee: Optional[int] = None  # fee tier in hundredths of a bip (3000 = 0.3%)


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _leg_paths(value: Any) -> tuple[str, ...]:
    # Positions stay aligned with the legs; an empty entry means no path for that leg
    paths = tuple("" if not p or str(p).lower() == "0x" else str(p) for p in _as_list(value))
    return paths if any(paths) else ()


@dataclass(frozen=True)
class Route:
    """One candidate execution path from the quote service.

    Split-capable fields (aggregator_ids, amount_from, amount_to, token_paths,
    encoded_paths) hold one entry per leg. A plain swap has a single leg.
    """

    transaction_type: str
    aggregator_ids: tuple[str, ...]
    amount_from: tuple[int, ...]
    amount_to: tuple[int, ...]
    token_paths: tuple[tuple[str, ...], ...]
    gas_estimate: int
    price_impact: Decimal = Decimal("0")
    encoded_paths: tuple[str, ...] = ()
    output_formatted: Optional[str] = None
    relaxed: bool = False
    warnings: tuple[str, ...] = ()

    @classmethod
    def from_quote(cls, payload: dict) -> "Route":
        """Parse one route object as returned by the quote service."""
        raw_route = _as_list(payload.get("route"))
        if raw_route and isinstance(raw_route[0], (list, tuple)):
            token_paths = tuple(tuple(str(a).lower() for a in leg) for leg in raw_route)
        elif raw_route:
            token_paths = (tuple(str(a).lower() for a in raw_route),)
        else:
            token_paths = ()

        price_impact = payload.get("priceImpact")
        return cls(
            transaction_type=str(payload.get("transactionType", "")),
            aggregator_ids=tuple(str(a) for a in _as_list(payload.get("aggregatorId"))),
            amount_from=tuple(int(a) for a in _as_list(payload.get("amountFrom"))),
            amount_to=tuple(int(a) for a in _as_list(payload.get("amountTo"))),
            token_paths=token_paths,
            gas_estimate=int(payload.get("gasEstimate") or 0),
            price_impact=Decimal(str(price_impact)) if price_impact is not None else Decimal("0"),
            encoded_paths=_leg_paths(payload.get("path")),
            output_formatted=payload.get("outputAmountFormatted"),
        )

    @property
    def is_split(self) -> bool:
        return len(self.amount_to) > 1 or len(self.aggregator_ids) > 1

    @property
    def total_input(self) -> int:
        return sum(self.amount_from)

    @property
    def total_output(self) -> int:
        """Sum of all leg outputs."""
        return sum(self.amount_to)

    @property
    def hop_count(self) -> int:
        """Hops in the longest leg, counted on the packed path when one decodes."""
        return max((len(leg) for leg in self.hops), default=0)

    @property
    def hops(self) -> tuple[tuple[Hop, ...], ...]:
        """Per-leg hops, decoded from the packed path when one was supplied."""
        from deraswap.routing.path import decode_packed_path

        legs = []
        for index in range(max(len(self.encoded_paths), len(self.token_paths))):
            encoded = self.encoded_paths[index] if index < len(self.encoded_paths) else ""
            if encoded:
                try:
                    legs.append(tuple(decode_packed_path(encoded)))
                    continue
                except ValueError:
                    # V1 address lists are not packed; count the declared tokens
                    pass
            declared = self.token_paths[index] if index < len(self.token_paths) else ()
            legs.append(tuple(Hop(declared[i], declared[i + 1]) for i in range(len(declared) - 1)))
        return tuple(legs)

    @property
    def leg_token_addresses(self) -> tuple[tuple[str, ...], ...]:
        """Ordered token addresses for each leg."""
        if self.token_paths:
            return self.token_paths
        legs = []
        for leg in self.hops:
            if leg:
                legs.append((leg[0].token_in,) + tuple(h.token_out for h in leg))
        return tuple(legs)

    @property
    def all_token_addresses(self) -> list[str]:
        """Every token address touched by any leg, de-duplicated in order."""
        seen: list[str] = []
        for leg in self.leg_token_addresses:
            for address in leg:
                if address not in seen:
                    seen.append(address)
        for leg in self.hops:
            for hop in leg:
                for address in (hop.token_in, hop.token_out):
                    if address not in seen:
                        seen.append(address)
        return seen

    def annotate(
        self,
        output_formatted: Optional[str] = None,
        price_impact: Optional[Decimal] = None,
        warning: Optional[str] = None,
        relaxed: Optional[bool] = None,
    ) -> "Route":
        """Return a copy with display fields filled in."""
        changes: dict[str, Any] = {}
        if output_formatted is not None:
            changes["output_formatted"] = output_formatted
        if price_impact is not None:
            changes["price_impact"] = price_impact
        if warning:
            changes["warnings"] = self.warnings + (warning,)
        if relaxed is not None:
            changes["relaxed"] = relaxed
        return replace(self, **changes)

    def describe(self) -> dict:
        """Summary suitable for logging."""
        return {
            "aggregators": list(self.aggregator_ids),
            "type": self.transaction_type,
            "output": str(self.total_output),
            "price_impact": f"{self.price_impact:.2f}%",
            "gas": self.gas_estimate,
            "hops": self.hop_count,
        }


@dataclass(frozen=True)
class SwapSettings:
    """User-chosen settings, fixed for the duration of one execution."""

    slippage_tolerance: Decimal  # percent, 0.5 = 0.5%
    deadline: int  # unix seconds
    auto: bool = False

    @classmethod
    def default(cls, now: Optional[float] = None) -> "SwapSettings":
        """0.5% slippage, deadline five minutes from now."""
        now = time.time() if now is None else now
        return cls(slippage_tolerance=Decimal("0.5"), deadline=int(now) + 300)

