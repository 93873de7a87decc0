"""Factory functions wiring the swap engine from settings."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from deraswap.config import Settings, get_settings
from deraswap.mirror.client import MirrorNodeClient
from deraswap.preconditions.manager import PreconditionManager
from deraswap.routing.quotes import QuoteClient
from deraswap.routing.validator import RouteValidationConfig, RouteValidator
from deraswap.swap.builder import TransactionBuilder
from deraswap.swap.monitor import MonitorConfig, TransactionMonitor
from deraswap.swap.orchestrator import SwapOrchestrator
from deraswap.utils.cache import TTLCache
from deraswap.wallet.dry_run import DryRunWalletSession
from deraswap.wallet.session import WalletSession

logger = logging.getLogger(__name__)


def create_mirror_client(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> MirrorNodeClient:
    settings = settings or get_settings()
    return MirrorNodeClient(
        settings.mirror_node_url, http_client=http_client, timeout=settings.http_timeout
    )


def create_quote_client(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> QuoteClient:
    settings = settings or get_settings()
    return QuoteClient(
        settings.quote_api_url,
        wrapped_native_id=settings.wrapped_native_token_id,
        http_client=http_client,
        timeout=settings.http_timeout,
    )


def create_validator(
    settings: Optional[Settings] = None,
    catalog: Optional[MirrorNodeClient] = None,
) -> RouteValidator:
    """Route validator with the configured allow/block lists.

    Aggregator IDs are resolved here, once.
    """
    settings = settings or get_settings()
    config = RouteValidationConfig.from_settings(settings)
    logger.info(
        f"Route validator: {len(config.trusted_aggregators)} trusted aggregator(s), "
        f"{len(config.blocked_tokens)} blocked token(s), max hops {config.max_hops}"
    )
    return RouteValidator(config, catalog=catalog)


def create_orchestrator(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    participant_signer: Optional[WalletSession] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> SwapOrchestrator:
    """Build a fully wired orchestrator.

    Args:
        settings: Settings (cached settings if None)
        http_client: Shared HTTP client for the mirror node
        participant_signer: Session allowed to associate tokens to the
            router and adapter contracts
        sleep: Async sleep used for settle and polling delays
    """
    settings = settings or get_settings()
    mirror = create_mirror_client(settings, http_client)

    preconditions = PreconditionManager(
        mirror,
        participants=[settings.router_contract_id, *settings.adapter_ids],
        association_cache=TTLCache(
            maxsize=settings.association_cache_size, ttl=settings.association_cache_ttl
        ),
        participant_signer=participant_signer,
    )
    monitor = TransactionMonitor(
        mirror,
        MonitorConfig(
            initial_delay=settings.monitor_initial_delay,
            initial_interval=settings.monitor_initial_interval,
            multiplier=settings.monitor_backoff_multiplier,
            max_interval=settings.monitor_max_interval,
            max_attempts=settings.monitor_max_attempts,
        ),
        sleep=sleep,
    )
    builder = TransactionBuilder(settings.router_contract_id, settings.wrapped_native_token_id)

    logger.info(f"Swap engine ready: {settings.get_safe_dict()}")
    return SwapOrchestrator(
        validator=create_validator(settings, catalog=mirror),
        preconditions=preconditions,
        builder=builder,
        monitor=monitor,
        router_contract_id=settings.router_contract_id,
        wrapped_native_id=settings.wrapped_native_token_id,
        settle_delay=settings.precondition_settle_seconds,
        explorer_network=settings.hedera_network,
        sleep=sleep,
    )


def create_wallet_session(
    account_id: str,
    live_session: Optional[WalletSession] = None,
    settings: Optional[Settings] = None,
) -> WalletSession:
    """Return the session to execute with.

    In dry-run mode a simulated session is always used.
    """
    settings = settings or get_settings()
    if settings.dry_run:
        logger.info(f"[DRY RUN] Using simulated wallet session for {account_id}")
        return DryRunWalletSession(account_id)
    if live_session is None:
        raise ValueError("dry_run is disabled and no wallet session was supplied")
    return live_session
