"""Configuration system using pydantic-settings with environment variable loading."""

import json
from decimal import Decimal
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, TypeAdapter, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from rotator.exceptions import ConfigurationError
from rotator.models import TokenConfig


class WalletSettings(BaseSettings):
    """Wallet identity and signing credentials."""

    model_config = SettingsConfigDict(env_prefix="WALLET_")

    address: str = ""
    secret: SecretStr = SecretStr("")


class ChainSettings(BaseSettings):
    """RPC endpoint and Uniswap V3 contract addresses (Base mainnet defaults)."""

    model_config = SettingsConfigDict(env_prefix="CHAIN_")

    rpc_url: SecretStr = SecretStr("")
    swap_router_address: str = "0x2626664c2603336E57B271c5C0b26F421741e481"  # SwapRouter02
    factory_address: str = "0x33128a8fC17869897dcE68Ed026d694621f6FDfD"
    fee_tiers: list[int] = [100, 500, 3000, 10000]
    slippage_tolerance: Decimal = Decimal("0.07")  # 7% below the pool-implied output
    gas_limit: int = 10_000_000
    receipt_timeout_seconds: float = 180.0


class PriceFeedSettings(BaseSettings):
    """DEXTools price feed connection."""

    model_config = SettingsConfigDict(env_prefix="PRICE_FEED_")

    api_key: SecretStr = SecretStr("")
    base_url: str = "https://public-api.dextools.io/trial/v2"
    chain_id: str = "base"
    request_timeout_seconds: float = 10.0


class TradingSettings(BaseSettings):
    """Execution mode and rate limiting."""

    model_config = SettingsConfigDict(env_prefix="TRADING_")

    mode: Literal["paper", "live"] = "paper"
    min_call_interval_seconds: float = 1.0  # spacing between external calls
    paper_initial_base_balance: Decimal = Decimal("1")
    paper_fee_rate: Decimal = Decimal("0.003")  # 0.3% pool fee simulation


class StrategySettings(BaseSettings):
    """Rotation strategy policy and its constants.

    Thresholds are percentages (Decimal("5") means 5%).
    """

    model_config = SettingsConfigDict(env_prefix="STRATEGY_")

    base_symbol: str = "WETH"
    policy: Literal["trailing", "loser_rotation"] = "trailing"

    # Dust thresholds in token-native units
    base_dust_threshold: Decimal = Decimal("0.001")
    token_dust_threshold: Decimal = Decimal("1")

    # Entry predicate over the base asset
    entry_predicate: Literal["all_positive", "momentum", "any_above"] = "all_positive"
    entry_timeframes: list[str] = ["5m", "1h", "6h", "24h"]
    null_counts_as_positive: bool = False
    momentum_1h_threshold: Decimal = Decimal("0.5")
    momentum_5m_threshold: Decimal = Decimal("0.1")
    any_above_threshold: Decimal = Decimal("1")
    any_above_timeframes: list[str] = ["1h", "6h"]

    # Candidate ranking
    ranking: Literal["highest_gain", "lowest_variation"] = "highest_gain"
    gain_timeframes: list[str] = ["1h", "6h"]
    gain_cap: Decimal = Decimal("30")  # skip tokens already up more than this
    variation_timeframes: list[str] = ["6h", "24h"]
    variation_cap: Decimal = Decimal("15")

    # Exit rules
    exit_momentum_1h_threshold: Decimal = Decimal("-1")
    exit_momentum_5m_threshold: Decimal = Decimal("-2")
    trailing_stop_pct: Decimal = Decimal("5")
    hard_stop_pct: Decimal = Decimal("5")


class SchedulerSettings(BaseSettings):
    """Cycle cadence and retry budget."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_")

    cadence: Literal["fixed", "adaptive"] = "adaptive"
    interval_seconds: float = 600.0  # fixed cadence
    hold_interval_seconds: float = 300.0  # adaptive: after HOLD or a failed cycle
    rotation_interval_seconds: float = 1200.0  # adaptive: after an executed rotation
    max_attempts: int = Field(default=3, ge=1)
    retry_delay_seconds: float = 15.0


class JournalSettings(BaseSettings):
    """Trade history file location."""

    model_config = SettingsConfigDict(env_prefix="JOURNAL_")

    path: str = "trades.json"


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    tokens_file: str = "tokens.json"
    wallet: WalletSettings = WalletSettings()
    chain: ChainSettings = ChainSettings()
    price_feed: PriceFeedSettings = PriceFeedSettings()
    trading: TradingSettings = TradingSettings()
    strategy: StrategySettings = StrategySettings()
    scheduler: SchedulerSettings = SchedulerSettings()
    journal: JournalSettings = JournalSettings()


_REGISTRY_ADAPTER = TypeAdapter(dict[str, TokenConfig])


def load_token_registry(path: str | Path, base_symbol: str) -> dict[str, TokenConfig]:
    """Load the symbol -> token registry from a JSON file.

    The file maps each symbol to ``{"address", "decimals", "name"}``; the
    symbol is filled in from the key. Registry order is preserved and is the
    order candidates and holdings are evaluated in.

    Raises:
        ConfigurationError: If the file is missing or malformed, or does not
            contain the base symbol.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        entries = {symbol: {"symbol": symbol, **entry} for symbol, entry in raw.items()}
        registry = _REGISTRY_ADAPTER.validate_python(entries)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Token registry not found: {path}") from e
    except (json.JSONDecodeError, AttributeError, TypeError, ValidationError) as e:
        raise ConfigurationError(f"Token registry {path} is malformed: {e}") from e

    if base_symbol not in registry:
        raise ConfigurationError(
            f"Base symbol {base_symbol} is not in the token registry {path}"
        )
    return registry
