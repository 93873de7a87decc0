"""Mirror node client."""

from deraswap.mirror.client import (
    AccountToken,
    MirrorNodeClient,
    MirrorTransaction,
    TokenAllowance,
    TokenCatalog,
)

__all__ = [
    "AccountToken",
    "MirrorNodeClient",
    "MirrorTransaction",
    "TokenAllowance",
    "TokenCatalog",
]
