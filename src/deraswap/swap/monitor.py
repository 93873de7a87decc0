"""Transaction monitor.

Polls the mirror node until a submitted transaction shows up with a final
result. The mirror node lags consensus, so the first query waits a fixed
initial delay, and "not found" is retried with exponential backoff.

Verdicts:
- success: found with result SUCCESS
- failed: found with any other result (never retried)
- unknown: never found within the attempt cap. The transaction may still
  finalize; this is not a failure.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from deraswap.errors import MirrorNodeError
from deraswap.mirror.client import MirrorNodeClient

logger = logging.getLogger(__name__)

HASHSCAN_URL = "https://hashscan.io"

ProgressCallback = Callable[[int, int], Any]


@dataclass(frozen=True)
class MonitorConfig:
    """Polling schedule, in seconds."""

    initial_delay: float = 4.0
    initial_interval: float = 2.0
    multiplier: float = 1.4
    max_interval: float = 8.0
    max_attempts: int = 12


@dataclass
class TransactionStatus:
    """Monitoring verdict."""

    transaction_id: str
    status: str  # "success", "failed" or "unknown"
    consensus_timestamp: Optional[str] = None
    result: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int = 0

    @property
    def success(self) -> bool:
        return self.status == "success"


def backoff_interval(attempt: int, config: MonitorConfig) -> float:
    """Wait after the given 0-indexed attempt."""
    return min(config.initial_interval * config.multiplier**attempt, config.max_interval)


def backoff_intervals(config: MonitorConfig) -> list[float]:
    """Every wait between attempts (one fewer than the attempt cap)."""
    return [backoff_interval(i, config) for i in range(max(config.max_attempts - 1, 0))]


def transaction_explorer_url(transaction_id: str, network: str = "mainnet") -> str:
    """HashScan link for a transaction."""
    network = "mainnet" if network.lower() == "mainnet" else "testnet"
    return f"{HASHSCAN_URL}/{network}/transaction/{transaction_id}"


class TransactionMonitor:
    """Turns a transaction ID into a success/failed/unknown verdict."""

    def __init__(
        self,
        mirror: MirrorNodeClient,
        config: Optional[MonitorConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.mirror = mirror
        self.config = config or MonitorConfig()
        self._sleep = sleep

    async def get_transaction_status(self, transaction_id: str) -> Optional[TransactionStatus]:
        """Single mirror node query. None if not yet indexed.

        Raises:
            MirrorNodeError: If the query itself failed
        """
        record = await self.mirror.get_transaction(transaction_id)
        if record is None:
            return None

        success = record.is_success
        return TransactionStatus(
            transaction_id=transaction_id,
            status="success" if success else "failed",
            consensus_timestamp=record.consensus_timestamp,
            result=record.result,
            error_message=None if success else f"Transaction failed with status: {record.result}",
        )

    async def monitor(
        self, transaction_id: str, on_progress: Optional[ProgressCallback] = None
    ) -> TransactionStatus:
        """Poll until the transaction is found or the attempt cap is hit."""
        config = self.config
        logger.info(f"Monitoring transaction {transaction_id}")
        logger.debug(f"Waiting {config.initial_delay}s for the mirror node to index")
        await self._sleep(config.initial_delay)

        for attempt in range(config.max_attempts):
            is_last = attempt == config.max_attempts - 1

            if on_progress is not None:
                outcome = on_progress(attempt + 1, config.max_attempts)
                if inspect.isawaitable(outcome):
                    await outcome

            try:
                status = await self.get_transaction_status(transaction_id)
            except MirrorNodeError as e:
                logger.warning(f"Attempt {attempt + 1}/{config.max_attempts} failed: {e}")
                if is_last:
                    return TransactionStatus(
                        transaction_id=transaction_id,
                        status="unknown",
                        error_message=str(e),
                        attempts=attempt + 1,
                    )
                await self._sleep(backoff_interval(attempt, config))
                continue

            if status is not None:
                status.attempts = attempt + 1
                logger.info(
                    f"Transaction {transaction_id} confirmed: {status.result} "
                    f"(attempt {attempt + 1})"
                )
                return status

            if not is_last:
                delay = backoff_interval(attempt, config)
                logger.debug(
                    f"Not indexed yet, waiting {delay:.2f}s "
                    f"(attempt {attempt + 1}/{config.max_attempts})"
                )
                await self._sleep(delay)

        logger.warning(f"Max polling attempts reached for {transaction_id}, status unknown")
        return TransactionStatus(
            transaction_id=transaction_id,
            status="unknown",
            error_message="Transaction not confirmed yet. Check the explorer for its status.",
            attempts=config.max_attempts,
        )
