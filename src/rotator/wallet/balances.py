"""Wallet balance providers.

BalanceProvider is the boundary the strategy engine reads holdings through.
Web3BalanceProvider reads ERC-20 balanceOf for every registry token, one
gated call per token, and reports zero balances too.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from web3 import Web3

from rotator.exceptions import BalanceUnavailableError
from rotator.execution.abi import ERC20_ABI
from rotator.logging import get_logger
from rotator.models import TokenBalance, TokenConfig
from rotator.rate_limiter import RateLimiter

logger = get_logger(__name__)


def format_units(raw: int, decimals: int) -> Decimal:
    """Convert a raw integer amount to token units."""
    return Decimal(raw) / (Decimal(10) ** decimals)


def parse_units(amount: Decimal, decimals: int) -> int:
    """Convert token units to a raw integer amount, truncating dust."""
    return int(amount * (Decimal(10) ** decimals))


class BalanceProvider(ABC):
    """Abstract source of wallet balances."""

    @abstractmethod
    async def get_balances(self, wallet_address: str) -> list[TokenBalance]:
        """Return one TokenBalance per configured token, including zeros.

        Raises:
            BalanceUnavailableError: If any balance cannot be read.
        """
        ...


class Web3BalanceProvider(BalanceProvider):
    """Reads ERC-20 balances over JSON-RPC.

    Args:
        w3: Connected Web3 instance.
        registry: Token registry (symbol -> TokenConfig).
        rate_limiter: Shared gate for outbound calls.
    """

    def __init__(
        self,
        w3: Web3,
        registry: dict[str, TokenConfig],
        rate_limiter: RateLimiter,
    ) -> None:
        self._w3 = w3
        self._registry = registry
        self._rate_limiter = rate_limiter

    async def get_balances(self, wallet_address: str) -> list[TokenBalance]:
        owner = Web3.to_checksum_address(wallet_address)
        balances: list[TokenBalance] = []

        for symbol, token in self._registry.items():
            contract = self._w3.eth.contract(
                address=Web3.to_checksum_address(token.address), abi=ERC20_ABI
            )
            try:
                raw = await self._rate_limiter.call(
                    contract.functions.balanceOf(owner).call
                )
            except Exception as e:
                raise BalanceUnavailableError(
                    f"balanceOf({symbol}) failed: {e}"
                ) from e

            balance = TokenBalance(
                symbol=symbol,
                raw_balance=int(raw),
                formatted_balance=format_units(int(raw), token.decimals),
                address=token.address,
            )
            logger.debug(
                "token_balance",
                symbol=symbol,
                raw=balance.raw_balance,
                formatted=str(balance.formatted_balance),
            )
            balances.append(balance)

        return balances
