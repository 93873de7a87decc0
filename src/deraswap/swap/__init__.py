"""Swap transaction building, state machine and monitoring.

The orchestrator lives in ``deraswap.swap.orchestrator``.
"""

from deraswap.swap.builder import TransactionBuilder, calculate_minimum_received
from deraswap.swap.monitor import MonitorConfig, TransactionMonitor, TransactionStatus
from deraswap.swap.state import ExecutionState, StateChanged, SwapStep, apply_event
from deraswap.swap.transactions import TransactionKind, UnsignedTransaction

__all__ = [
    "ExecutionState",
    "MonitorConfig",
    "StateChanged",
    "SwapStep",
    "TransactionBuilder",
    "TransactionKind",
    "TransactionMonitor",
    "TransactionStatus",
    "UnsignedTransaction",
    "apply_event",
    "calculate_minimum_received",
]
