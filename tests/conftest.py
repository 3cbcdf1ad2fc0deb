"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from stonelend.config import (
    AppConfig,
    ChainConfig,
    IndexerConfig,
    MarketConfig,
    PythConfig,
    TransactionsConfig,
)
from stonelend.models import BroadcastResult, Market, Position, PriceQuote


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now_ms: int = 1_700_000_000_000) -> None:
        self.now = now_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        lcd_endpoints=("https://lcd1.example.com", "https://lcd2.example.com"),
        timeout_ms=5_000,
    )


@pytest.fixture()
def sample_pyth_config() -> PythConfig:
    return PythConfig(
        hermes_url="https://hermes.example.com",
        contract_address="neutron1pyth",
        mode="live",
        feeds={"uatom": "aaa111", "ustone": "bbb222"},
        update_fee_denom="untrn",
        update_fee_amount="1",
        freshness_budget_ms=15_000,
        timeout_ms=1_000,
    )


@pytest.fixture()
def sample_market_config() -> MarketConfig:
    return MarketConfig(
        address="neutron1market",
        collateral_denom="uatom",
        debt_denom="ustone",
        liquidation_threshold=Decimal("0.80"),
        loan_to_value=Decimal("0.75"),
        market_id="1",
    )


@pytest.fixture()
def sample_app_config(
    sample_chain_config: ChainConfig,
    sample_pyth_config: PythConfig,
    sample_market_config: MarketConfig,
) -> AppConfig:
    return AppConfig(
        chain=sample_chain_config,
        indexer=IndexerConfig(graphql_url="https://indexer.example.com/graphql"),
        pyth=sample_pyth_config,
        transactions=TransactionsConfig(broadcast_timeout_ms=1_000, timeout_grace_ms=60_000),
        markets={"atom-stone": sample_market_config},
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_market() -> Market:
    return Market(
        address="neutron1market",
        collateral_denom="uatom",
        debt_denom="ustone",
        liquidation_threshold=Decimal("0.80"),
        loan_to_value=Decimal("0.75"),
        market_id="1",
    )


@pytest.fixture()
def sample_position() -> Position:
    # 1,000 ATOM collateral, 7,000 STONE debt (6 decimals).
    return Position(
        collateral_amount="1000000000",
        supply_amount="0",
        debt_amount="7000000000",
    )


@pytest.fixture()
def sample_prices(clock: FakeClock) -> dict[str, PriceQuote]:
    publish = clock.now // 1000
    return {
        "uatom": PriceQuote("uatom", Decimal("10"), Decimal("0.01"), publish, "aaa111"),
        "ustone": PriceQuote("ustone", Decimal("1"), Decimal("0.001"), publish, "bbb222"),
    }


@pytest.fixture()
def mock_signer() -> MagicMock:
    signer = MagicMock()
    signer.supports_multi_instruction = True
    signer.execute = AsyncMock(return_value=BroadcastResult(tx_hash="HASH1", height=10))
    signer.execute_multiple = AsyncMock(return_value=BroadcastResult(tx_hash="HASH2", height=11))
    return signer


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    chain:
      lcd_endpoints: ["https://lcd.example.com"]
      timeout_ms: 8000
    indexer:
      graphql_url: "https://indexer.example.com/graphql"
    pyth:
      mode: live
      contract_address: neutron1pyth
      feeds:
        uatom: "0xAAA111"
        ufoo: "ccc333"
    transactions:
      display_limit: 10
    markets:
      atom-stone:
        address: neutron1market
        market_id: "1"
        collateral_denom: uatom
        debt_denom: ustone
        liquidation_threshold: 0.80
        loan_to_value: 0.75
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
