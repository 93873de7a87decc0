"""Slippage tolerance checks and recommendations."""

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from deraswap.routing.models import Route

MAX_SLIPPAGE = Decimal("50")
HIGH_SLIPPAGE_WARNING = Decimal("5")
MIN_AUTO_SLIPPAGE = Decimal("0.5")
MAX_AUTO_SLIPPAGE = Decimal("15")
AUTO_SLIPPAGE_BUFFER = Decimal("0.5")


def validate_slippage(slippage: Decimal) -> tuple[bool, Optional[str]]:
    """Check a slippage tolerance (percent).

    Returns:
        (is_valid, message). A valid but unusually high value still carries a
        warning message.
    """
    if slippage < 0:
        return False, "Slippage cannot be negative"
    if slippage > MAX_SLIPPAGE:
        return False, f"Slippage cannot exceed {MAX_SLIPPAGE}%"
    if slippage > HIGH_SLIPPAGE_WARNING:
        return True, f"High slippage ({slippage}%). You may receive significantly less tokens."
    return True, None


def recommended_slippage(price_impact: Decimal) -> Decimal:
    """Suggest a tolerance based on the route's price impact."""
    impact = abs(price_impact)
    if impact < Decimal("0.1"):
        return Decimal("0.5")
    if impact < 1:
        return Decimal("1")
    if impact < 3:
        return Decimal("2")
    if impact < 5:
        return Decimal("3")
    return Decimal("5")


def auto_slippage(route: "Route") -> Decimal:
    """|price impact| + 0.5, clamped to [0.5, 15]."""
    value = abs(route.price_impact) + AUTO_SLIPPAGE_BUFFER
    return max(MIN_AUTO_SLIPPAGE, min(value, MAX_AUTO_SLIPPAGE))
