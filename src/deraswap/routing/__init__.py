"""Route model, validation and quote fetching.

- models: Token, Route, SwapSettings
- aggregators: known aggregators and their hop-path encoding
- path: packed path codec
- validator: RouteValidator
- quotes: quote service client
"""

from deraswap.routing.aggregators import Aggregator, RouterFamily, resolve_aggregator
from deraswap.routing.models import Hop, Route, SwapSettings, Token, TransactionType
from deraswap.routing.path import (
    DEFAULT_FEE_TIER,
    decode_packed_path,
    encode_packed_path,
    extract_route_token_ids,
    extract_tokens_from_path,
    single_hop_path,
)
from deraswap.routing.quotes import QuoteClient
from deraswap.routing.validator import (
    RejectionReason,
    RouteValidationConfig,
    RouteValidationResult,
    RouteValidator,
)

__all__ = [
    # Models
    "Hop",
    "Route",
    "SwapSettings",
    "Token",
    "TransactionType",
    # Aggregators
    "Aggregator",
    "RouterFamily",
    "resolve_aggregator",
    # Path
    "DEFAULT_FEE_TIER",
    "decode_packed_path",
    "encode_packed_path",
    "extract_route_token_ids",
    "extract_tokens_from_path",
    "single_hop_path",
    # Validation
    "RejectionReason",
    "RouteValidationConfig",
    "RouteValidationResult",
    "RouteValidator",
    # Quotes
    "QuoteClient",
]
