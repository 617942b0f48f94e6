"""Abstract swap executor interface.

Defines the contract for swap execution. Both PaperWallet and
UniswapV3Executor implement this ABC, so the strategy engine is identical
regardless of trading mode.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from rotator.models import TradeContext, TradeRecord


class TradeExecutor(ABC):
    """Abstract base class for swap executors.

    The strategy engine depends ONLY on this interface. The concrete
    executor (paper or live) is injected at startup based on
    TradingSettings.mode.
    """

    @abstractmethod
    async def execute_swap(
        self,
        token_in: str,
        token_out: str,
        amount_in_raw: int,
        context: TradeContext,
        api_price: Decimal,
    ) -> TradeRecord:
        """Swap amount_in_raw of token_in into token_out and wait for it.

        Args:
            token_in: Symbol being sold.
            token_out: Symbol being bought.
            amount_in_raw: Amount to sell in the smallest unit.
            context: Decision-time signals, stored on the returned record.
            api_price: Feed price of the traded token at decision time.

        Returns:
            The TradeRecord describing the confirmed swap.

        Raises:
            PoolNotFoundError: If no pool exists for the pair.
            InsufficientLiquidityError: If the pool holds no liquidity.
            MinimumOutputError: If the minimum output cannot be computed.
            ExecutionRevertedError: If the transaction fails on-chain.
            SwapTimeoutError: If confirmation does not arrive in time.
        """
        ...
