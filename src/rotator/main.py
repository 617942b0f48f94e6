"""Entry point for the DEX rotation agent.

Wires all components together and runs the scheduler until SIGINT/SIGTERM.

Component wiring order (in _build_components):
1. Token registry (from TOKENS_FILE)
2. RateLimiter (shared by every outbound call)
3. DexToolsPriceFeed (price and momentum signals)
4. Balance provider and executor (PaperWallet, or Web3BalanceProvider and
   UniswapV3Executor in live mode)
5. TradeJournal (trade history file)
6. Strategy policy (from STRATEGY_ settings)
7. StrategyEngine
8. Scheduler
"""

import asyncio
import signal
from typing import Any

from web3 import Web3

from rotator.config import AppSettings, load_token_registry
from rotator.exceptions import ConfigurationError
from rotator.execution.paper_executor import PaperWallet
from rotator.execution.uniswap_executor import UniswapV3Executor
from rotator.journal import TradeJournal
from rotator.logging import get_logger, setup_logging
from rotator.market_data import DexToolsPriceFeed
from rotator.rate_limiter import RateLimiter
from rotator.scheduler import Scheduler
from rotator.strategy import StrategyEngine, build_policy
from rotator.wallet.balances import Web3BalanceProvider

_PAPER_WALLET_ADDRESS = "paper"


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build the dependency graph from settings.

    Raises:
        ConfigurationError: If the registry is invalid, or live mode lacks
            an RPC endpoint or signing key.
    """
    logger = get_logger("rotator.main")
    base_symbol = settings.strategy.base_symbol

    registry = load_token_registry(settings.tokens_file, base_symbol)
    rate_limiter = RateLimiter(settings.trading.min_call_interval_seconds)
    price_feed = DexToolsPriceFeed(settings.price_feed, registry, rate_limiter)

    if not settings.price_feed.api_key.get_secret_value():
        logger.warning("no_price_feed_api_key", note="Requests may be rejected upstream")

    if settings.trading.mode == "live":
        rpc_url = settings.chain.rpc_url.get_secret_value()
        private_key = settings.wallet.secret.get_secret_value()
        if not rpc_url:
            raise ConfigurationError("Live mode requires CHAIN_RPC_URL")
        if not private_key:
            raise ConfigurationError("Live mode requires WALLET_SECRET")

        w3 = Web3(Web3.HTTPProvider(rpc_url))
        executor = UniswapV3Executor(
            w3, settings.chain, registry, private_key, rate_limiter
        )
        balances = Web3BalanceProvider(w3, registry, rate_limiter)
        wallet_address = executor.wallet_address
        if settings.wallet.address and settings.wallet.address.lower() != wallet_address.lower():
            raise ConfigurationError(
                f"WALLET_ADDRESS {settings.wallet.address} does not match the signing key"
            )
    else:
        paper_wallet = PaperWallet(
            registry,
            price_feed,
            fee_rate=settings.trading.paper_fee_rate,
            slippage_tolerance=settings.chain.slippage_tolerance,
        )
        paper_wallet.set_balance(base_symbol, settings.trading.paper_initial_base_balance)
        executor = paper_wallet
        balances = paper_wallet
        wallet_address = settings.wallet.address or _PAPER_WALLET_ADDRESS

    journal = TradeJournal(settings.journal.path, base_symbol)
    policy = build_policy(settings.strategy)
    engine = StrategyEngine(
        price_feed=price_feed,
        balances=balances,
        journal=journal,
        executor=executor,
        policy=policy,
        settings=settings.strategy,
        wallet_address=wallet_address,
    )
    scheduler = Scheduler(engine, settings.scheduler)

    logger.info(
        "components_built",
        mode=settings.trading.mode,
        tokens=list(registry),
        policy=policy.name,
        wallet=wallet_address,
        journal=str(journal.path),
    )

    return {
        "registry": registry,
        "rate_limiter": rate_limiter,
        "price_feed": price_feed,
        "balances": balances,
        "executor": executor,
        "journal": journal,
        "policy": policy,
        "engine": engine,
        "scheduler": scheduler,
    }


def _setup_signal_handlers(scheduler: Scheduler) -> None:
    """Stop the scheduler gracefully on SIGINT/SIGTERM.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("rotator.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(scheduler.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


async def run() -> None:
    """Run the rotation agent until signalled to stop."""
    settings = AppSettings()

    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("rotator.main")

    components = _build_components(settings)
    _setup_signal_handlers(components["scheduler"])

    logger.info(
        "starting_rotation_agent",
        mode=settings.trading.mode,
        base=settings.strategy.base_symbol,
        cadence=settings.scheduler.cadence,
    )

    try:
        await components["scheduler"].start()
    finally:
        await components["price_feed"].close()
        logger.info("rotation_agent_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
