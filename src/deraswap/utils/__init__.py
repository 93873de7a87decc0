"""Utility modules for the swap engine."""

from deraswap.utils.amounts import format_amount, parse_amount
from deraswap.utils.cache import TTLCache
from deraswap.utils.ids import (
    NATIVE_TOKEN_ID,
    ZERO_ADDRESS,
    entity_id_to_solidity_address,
    normalize_transaction_id,
    solidity_address_to_entity_id,
    to_address,
)
from deraswap.utils.slippage import auto_slippage, recommended_slippage, validate_slippage

__all__ = [
    "NATIVE_TOKEN_ID",
    "TTLCache",
    "ZERO_ADDRESS",
    "auto_slippage",
    "entity_id_to_solidity_address",
    "format_amount",
    "normalize_transaction_id",
    "parse_amount",
    "recommended_slippage",
    "solidity_address_to_entity_id",
    "to_address",
    "validate_slippage",
]
