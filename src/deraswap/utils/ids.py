"""Conversions between Hedera entity IDs, EVM addresses and transaction IDs."""

import re

NATIVE_TOKEN_ID = "HBAR"
ZERO_ADDRESS = "0x" + "0" * 40

_ENTITY_ID_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")
_EVM_ADDRESS_RE = re.compile(r"^(0x)?[0-9a-fA-F]{40}$")
_TX_ID_AT_RE = re.compile(r"^(\d+\.\d+\.\d+)@(\d+)\.(\d+)$")


def is_entity_id(value: str) -> bool:
    return bool(_ENTITY_ID_RE.match(value))


def is_evm_address(value: str) -> bool:
    return bool(_EVM_ADDRESS_RE.match(value))


def entity_id_to_solidity_address(entity_id: str) -> str:
    """Convert ``shard.realm.num`` to its long-zero 20-byte address.

    Example: ``0.0.1456986`` -> ``0x0000000000000000000000000000000000163b5a``
    """
    match = _ENTITY_ID_RE.match(entity_id)
    if not match:
        raise ValueError(f"Invalid Hedera entity ID: {entity_id}")

    shard, realm, num = (int(part) for part in match.groups())
    return f"0x{shard:08x}{realm:016x}{num:016x}"


def solidity_address_to_entity_id(address: str) -> str:
    """Convert a long-zero 20-byte address back to ``shard.realm.num``."""
    if not is_evm_address(address):
        raise ValueError(f"Invalid EVM address: {address}")

    clean = address.lower().removeprefix("0x")
    shard = int(clean[:8], 16)
    realm = int(clean[8:24], 16)
    num = int(clean[24:], 16)
    return f"{shard}.{realm}.{num}"


def normalize_address(address: str) -> str:
    """Lowercase, 0x-prefixed form used for comparisons."""
    clean = address.strip().lower()
    return clean if clean.startswith("0x") else f"0x{clean}"


def to_address(token: str) -> str:
    """Accept an entity ID or an EVM address and return the normalized address."""
    if is_entity_id(token):
        return entity_id_to_solidity_address(token)
    return normalize_address(token)


def normalize_transaction_id(transaction_id: str) -> str:
    """Convert ``0.0.1234@1700000000.123`` to the mirror node form ``0.0.1234-1700000000-123``."""
    match = _TX_ID_AT_RE.match(transaction_id.strip())
    if match:
        account, seconds, nanos = match.groups()
        return f"{account}-{seconds}-{nanos}"
    return transaction_id.strip()
