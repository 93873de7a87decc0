"""Hop path encoding.

Packed paths concatenate a 20-byte token address and a 3-byte fee tier per
hop, ending with the final token address:

    token0 | fee0 | token1 | fee1 | token2
"""

import logging
from typing import Optional, Sequence

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_abi.packed import encode_packed
from eth_utils import to_bytes, to_hex

from deraswap.routing.aggregators import RouterFamily, route_family
from deraswap.routing.models import Hop, Route
from deraswap.utils.ids import (
    ZERO_ADDRESS,
    entity_id_to_solidity_address,
    normalize_address,
    solidity_address_to_entity_id,
)

logger = logging.getLogger(__name__)

DEFAULT_FEE_TIER = 3000  # 0.3%
ADDRESS_BYTES = 20
FEE_BYTES = 3
MAX_FEE_TIER = 2**24 - 1


def encode_packed_path(tokens: Sequence[str], fees: Sequence[int]) -> str:
    """Encode tokens and fee tiers as a packed path hex string.

    Args:
        tokens: Token addresses in hop order (at least two)
        fees: One fee tier per hop, len(tokens) - 1 entries

    Returns:
        0x-prefixed hex string
    """
    if len(tokens) < 2:
        raise ValueError("A path needs at least two tokens")
    if len(fees) != len(tokens) - 1:
        raise ValueError(f"Expected {len(tokens) - 1} fee tiers, got {len(fees)}")

    types: list[str] = []
    values: list = []
    for i, token in enumerate(tokens):
        types.append("address")
        values.append(to_bytes(hexstr=normalize_address(token)))
        if i < len(fees):
            if not 0 <= fees[i] <= MAX_FEE_TIER:
                raise ValueError(f"Fee tier out of range: {fees[i]}")
            types.append("uint24")
            values.append(fees[i])

    return to_hex(encode_packed(types, values))


def decode_packed_path(path_hex: str) -> list[Hop]:
    """Decode a packed path into hops.

    Raises:
        ValueError: If the length does not fit the address/fee layout
    """
    raw = to_bytes(hexstr=path_hex)
    step = ADDRESS_BYTES + FEE_BYTES
    if len(raw) < step + ADDRESS_BYTES or (len(raw) - ADDRESS_BYTES) % step != 0:
        raise ValueError(f"Malformed packed path ({len(raw)} bytes)")

    hops = []
    for i in range((len(raw) - ADDRESS_BYTES) // step):
        offset = i * step
        token_in = to_hex(raw[offset : offset + ADDRESS_BYTES])
        fee = int.from_bytes(raw[offset + ADDRESS_BYTES : offset + step], "big")
        token_out = to_hex(raw[offset + step : offset + step + ADDRESS_BYTES])
        hops.append(Hop(token_in, token_out, fee))
    return hops


def extract_tokens_from_path(path_hex: str) -> list[str]:
    """Every token address in a packed path, in order."""
    hops = decode_packed_path(path_hex)
    return [hops[0].token_in] + [hop.token_out for hop in hops]


def single_hop_path(token_in: str, token_out: str, fee: int = DEFAULT_FEE_TIER) -> str:
    """Fallback path used when the quote did not supply one."""
    return encode_packed_path([token_in, token_out], [fee])


def decode_address_list(path_hex: str) -> list[str]:
    """Decode an ABI ``address[]`` path as V1 routers receive it.

    Raises:
        ValueError: If the bytes are not an address array
    """
    try:
        (addresses,) = decode(["address[]"], to_bytes(hexstr=path_hex))
    except DecodingError as e:
        raise ValueError(f"Malformed address list path: {e}") from e
    if len(addresses) < 2:
        raise ValueError("A path needs at least two tokens")
    return [normalize_address(a) for a in addresses]


def route_leg_tokens(route: Route) -> list[tuple[str, ...]]:
    """Token sequence each leg executes, in order.

    A supplied path is what the router receives, so it takes precedence
    over the declared token list. Legs with neither are left out.

    Raises:
        ValueError: If a supplied path cannot be decoded for the route's family
    """
    family = route_family(route.aggregator_ids)
    legs: list[tuple[str, ...]] = []
    for index in range(max(len(route.encoded_paths), len(route.token_paths))):
        encoded = route.encoded_paths[index] if index < len(route.encoded_paths) else ""
        if encoded:
            legs.append(tuple(decode_supplied_path(encoded, family)))
        elif index < len(route.token_paths) and route.token_paths[index]:
            legs.append(tuple(normalize_address(a) for a in route.token_paths[index]))
    return legs


def decode_supplied_path(path_hex: str, family: RouterFamily) -> list[str]:
    """Token addresses of a quote-supplied path, decoded the way the router reads it."""
    if family == RouterFamily.V1_ADDRESS_LIST:
        return decode_address_list(path_hex)
    return [normalize_address(a) for a in extract_tokens_from_path(path_hex)]


def extract_route_token_ids(route: Route, wrapped_native_id: str) -> list[str]:
    """Ledger IDs of every token a route touches, intermediates included.

    V1 routes read the plain address list, with the zero address standing in
    for wrapped native. V2 routes decode the packed path.
    """
    wrapped_address = entity_id_to_solidity_address(wrapped_native_id)
    addresses: list[str] = []

    if route_family(route.aggregator_ids) == RouterFamily.V1_ADDRESS_LIST and route.token_paths:
        for leg in route.token_paths:
            addresses.extend(wrapped_address if a == ZERO_ADDRESS else a for a in leg)
    elif route.encoded_paths:
        for encoded in route.encoded_paths:
            try:
                addresses.extend(extract_tokens_from_path(encoded))
            except ValueError as e:
                logger.warning(f"Could not decode route path {encoded}: {e}")
    else:
        for leg in route.token_paths:
            addresses.extend(leg)

    token_ids: list[str] = []
    for address in addresses:
        token_id = _address_to_token_id(address)
        if token_id and token_id not in token_ids:
            token_ids.append(token_id)
    return token_ids


def _address_to_token_id(address: str) -> Optional[str]:
    address = normalize_address(address)
    if address == ZERO_ADDRESS:
        return None
    try:
        return solidity_address_to_entity_id(address)
    except ValueError:
        logger.warning(f"Skipping non-address path entry: {address}")
        return None
