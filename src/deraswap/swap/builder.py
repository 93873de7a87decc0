"""Swap transaction builder.

Turns a validated route into one unsigned call to the router contract:

    swap(string aggregatorId, bytes path, uint256 amountFrom,
         uint256 amountTo, uint256 deadline, bool isTokenFromHBAR,
         bool feeOnTransfer) payable

``amountTo`` is the slippage-adjusted minimum. The builder never signs.
"""

import logging
import time
from decimal import Decimal, ROUND_FLOOR
from typing import Callable, Optional

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, to_bytes, to_checksum_address, to_hex

from deraswap.errors import SwapValidationError
from deraswap.routing.aggregators import RouterFamily, route_family
from deraswap.routing.models import Route, SwapSettings, Token
from deraswap.routing.path import DEFAULT_FEE_TIER, encode_packed_path, single_hop_path
from deraswap.swap.transactions import (
    TransactionKind,
    UnsignedTransaction,
    generate_transaction_id,
)
from deraswap.utils.ids import ZERO_ADDRESS, entity_id_to_solidity_address, to_address
from deraswap.utils.slippage import HIGH_SLIPPAGE_WARNING, MAX_SLIPPAGE

logger = logging.getLogger(__name__)

SWAP_FUNCTION = "swap"
SWAP_SIGNATURE = "swap(string,bytes,uint256,uint256,uint256,bool,bool)"
SWAP_SELECTOR = function_signature_to_4byte_selector(SWAP_SIGNATURE)
GAS_BUFFER_NUMERATOR = 3  # estimate * 1.5
GAS_BUFFER_DENOMINATOR = 2


def slippage_basis_points(slippage_pct: Decimal) -> int:
    """Percent to basis points, floored (0.5% -> 50)."""
    return int((Decimal(slippage_pct) * 100).to_integral_value(rounding=ROUND_FLOOR))


def calculate_minimum_received(expected_output: int, slippage_pct: Decimal) -> int:
    """Minimum acceptable output: ``output - floor(output * bps / 10000)``.

    Example: 100 at 1% -> 99.
    """
    bps = slippage_basis_points(slippage_pct)
    return expected_output - (expected_output * bps) // 10000


def validate_swap_params(
    route: Route,
    input_amount: int,
    settings: SwapSettings,
    now: Optional[float] = None,
) -> None:
    """Sanity checks run before any network or wallet interaction.

    Raises:
        SwapValidationError: On the first failing check
    """
    now = time.time() if now is None else now

    if input_amount <= 0:
        raise SwapValidationError("Input amount must be positive")

    if settings.deadline <= int(now):
        raise SwapValidationError(
            "Deadline must be in the future",
            suggestion="Refresh the quote and try again.",
        )

    if settings.slippage_tolerance < 0 or settings.slippage_tolerance > MAX_SLIPPAGE:
        raise SwapValidationError(f"Slippage tolerance must be between 0% and {MAX_SLIPPAGE}%")

    if route.total_output <= 0:
        raise SwapValidationError("Invalid output amount from route")


class TransactionBuilder:
    """Builds unsigned swap calls to the router contract.

    Same inputs always produce the same transaction content. Only the
    transaction ID varies between calls.
    """

    def __init__(
        self,
        router_contract_id: str,
        wrapped_native_id: str = "0.0.1456986",
        clock: Callable[[], float] = time.time,
    ):
        self.router_contract_id = router_contract_id
        self.wrapped_native_id = wrapped_native_id
        self.wrapped_native_address = entity_id_to_solidity_address(wrapped_native_id)
        self._clock = clock

    def resolve_address(self, token: Token) -> str:
        """Contract address for a token. The native token uses wrapped native."""
        if token.is_native:
            return self.wrapped_native_address
        return token.solidity_address

    def encode_path(self, route: Route, from_token: Token, to_token: Token) -> bytes:
        """Path argument for the router call.

        A single leg is passed as-is. Split routes ABI-encode their legs as
        ``bytes[]``, one entry per aggregator.
        """
        family = route_family(route.aggregator_ids)
        leg_count = max(len(route.encoded_paths), len(route.token_paths), 1)

        legs = [self._encode_leg(route, i, family, from_token, to_token) for i in range(leg_count)]
        if leg_count == 1:
            return legs[0]
        return encode(["bytes[]"], [legs])

    def _encode_leg(
        self,
        route: Route,
        index: int,
        family: RouterFamily,
        from_token: Token,
        to_token: Token,
    ) -> bytes:
        if index < len(route.encoded_paths) and route.encoded_paths[index]:
            return to_bytes(hexstr=route.encoded_paths[index])

        declared = route.token_paths[index] if index < len(route.token_paths) else ()
        addresses = [
            self.wrapped_native_address if to_address(a) == ZERO_ADDRESS else to_address(a)
            for a in declared
        ]
        if family == RouterFamily.V1_ADDRESS_LIST and addresses:
            return encode(["address[]"], [[to_checksum_address(a) for a in addresses]])
        if len(addresses) > 2:
            logger.debug(f"No path supplied, packing declared route with fee tier {DEFAULT_FEE_TIER}")
            return to_bytes(
                hexstr=encode_packed_path(addresses, [DEFAULT_FEE_TIER] * (len(addresses) - 1))
            )

        logger.debug(f"No path supplied, using single hop with fee tier {DEFAULT_FEE_TIER}")
        return to_bytes(
            hexstr=single_hop_path(self.resolve_address(from_token), self.resolve_address(to_token))
        )

    def build_swap_transaction(
        self,
        route: Route,
        from_token: Token,
        to_token: Token,
        input_amount: int,
        settings: SwapSettings,
        payer_account_id: str,
    ) -> UnsignedTransaction:
        """Build the unsigned router call.

        Args:
            route: Validated route
            from_token: Source token
            to_token: Destination token
            input_amount: Input in smallest units (tinybars for the native token)
            settings: Slippage and deadline for this attempt
            payer_account_id: Account that signs and pays

        Returns:
            UnsignedTransaction for the wallet session
        """
        validate_swap_params(route, input_amount, settings, now=self._clock())

        expected_output = route.total_output
        minimum_output = calculate_minimum_received(expected_output, settings.slippage_tolerance)
        aggregator_id = ",".join(route.aggregator_ids)
        is_native_input = from_token.is_native
        path = self.encode_path(route, from_token, to_token)

        call_data = SWAP_SELECTOR + encode(
            ["string", "bytes", "uint256", "uint256", "uint256", "bool", "bool"],
            [
                aggregator_id,
                path,
                input_amount,
                minimum_output,
                settings.deadline,
                is_native_input,
                from_token.is_fee_on_transfer,
            ],
        )
        gas = route.gas_estimate * GAS_BUFFER_NUMERATOR // GAS_BUFFER_DENOMINATOR

        logger.info(
            f"Built swap: {input_amount} {from_token.symbol} -> min {minimum_output} "
            f"{to_token.symbol} via {aggregator_id} (gas: {gas})"
        )

        warnings = list(route.warnings)
        if settings.slippage_tolerance > HIGH_SLIPPAGE_WARNING:
            warnings.append(f"High slippage tolerance ({settings.slippage_tolerance}%)")

        return UnsignedTransaction(
            kind=TransactionKind.CONTRACT_CALL,
            transaction_id=generate_transaction_id(payer_account_id, self._clock),
            payer_account_id=payer_account_id,
            contract_id=self.router_contract_id,
            function_name=SWAP_FUNCTION,
            function_parameters=to_hex(call_data),
            gas=gas,
            payable_amount=input_amount if is_native_input else 0,
            requires_signer_freeze=is_native_input,
            description=f"Swap {from_token.symbol} for {to_token.symbol}",
            warnings=warnings,
        )
