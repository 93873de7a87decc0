"""Association and allowance preconditions."""

from deraswap.preconditions.manager import (
    AllowanceStatus,
    AssociationReport,
    AssociationStatus,
    PreconditionManager,
    required_allowance,
)

__all__ = [
    "AllowanceStatus",
    "AssociationReport",
    "AssociationStatus",
    "PreconditionManager",
    "required_allowance",
]
