"""Tests for unit conversion and Web3BalanceProvider."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from rotator.exceptions import BalanceUnavailableError
from rotator.rate_limiter import RateLimiter
from rotator.wallet.balances import Web3BalanceProvider, format_units, parse_units

WALLET = "0x19e7e376e7c213b7e7e7e46cc70a5dd086daff2a"


class TestUnits:
    @pytest.mark.parametrize(
        ("raw", "decimals", "expected"),
        [
            (10**18, 18, Decimal("1")),
            (1_500_000, 6, Decimal("1.5")),
            (1, 8, Decimal("0.00000001")),
            (0, 18, Decimal("0")),
        ],
    )
    def test_format_units(self, raw: int, decimals: int, expected: Decimal) -> None:
        assert format_units(raw, decimals) == expected

    def test_parse_units_truncates_below_smallest_unit(self) -> None:
        assert parse_units(Decimal("1.2345678"), 6) == 1_234_567
        assert parse_units(Decimal("2"), 18) == 2 * 10**18


class TestWeb3BalanceProvider:
    @pytest.mark.asyncio
    async def test_one_balance_per_registry_token(self, registry) -> None:
        w3 = MagicMock()
        w3.eth.contract.return_value.functions.balanceOf.return_value.call.side_effect = [
            2 * 10**18,
            0,
            5 * 10**17,
        ]
        provider = Web3BalanceProvider(w3, registry, RateLimiter(min_interval=0))

        balances = await provider.get_balances(WALLET)

        assert [b.symbol for b in balances] == ["WETH", "X", "Y"]
        assert [b.formatted_balance for b in balances] == [
            Decimal("2"),
            Decimal("0"),
            Decimal("0.5"),
        ]
        assert balances[0].address == registry["WETH"].address

    @pytest.mark.asyncio
    async def test_read_failure_is_balance_unavailable(self, registry) -> None:
        w3 = MagicMock()
        w3.eth.contract.return_value.functions.balanceOf.return_value.call.side_effect = (
            ConnectionError("rpc down")
        )
        provider = Web3BalanceProvider(w3, registry, RateLimiter(min_interval=0))

        with pytest.raises(BalanceUnavailableError):
            await provider.get_balances(WALLET)
