"""Wallet session interface and the dry-run session."""

from deraswap.wallet.dry_run import DryRunWalletSession
from deraswap.wallet.session import WalletReceipt, WalletRejectedError, WalletSession

__all__ = [
    "DryRunWalletSession",
    "WalletReceipt",
    "WalletRejectedError",
    "WalletSession",
]
