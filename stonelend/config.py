"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PYTH_MODES = ("mock", "live")

# Official Pyth mainnet feed IDs, keyed by chain denom.
DEFAULT_PYTH_FEEDS: dict[str, str] = {
    "uatom": "b00b60f88b03a6a625a8d1c048c3f66653edf217439983d037e7222c4e612819",
    "uosmo": "586fcf70c50932d555abec091e531b9a6eb32fae96c1f5f3c8085e3a11c50d54",
    "ubtc": "e62df6c8b4a85fe1f67ebb44feb416bcaed98b9c1f842210219059bd1e8adcbe",
    "ueth": "c96458d393fe9deb7a7d63a0ac41e2898a67a7750dbd1666734e73ca62885c10",
    "usol": "ef0d8b6da4fd10e5626b7a6cc5b568ea55500dc6f006a7d515b6a6228e38e6d4",
    # STONE has no feed of its own yet; AKT/USD stands in for it.
    "ustone": "4ea5bb4d2f5900cc2e97ba534240950740b4d3b89fe712a94a7304fd2fd92702",
    "untrn": "3112c03a79fdbbdb9f39fb70d275a33a3801a1b3bc4b32a8fc76567df0a6dde7",
    "uusdc": "eaa020c61cc479712813461ce153894a96a6c00b21ed0cfc2798d1f9a9e9c94a",
}

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    lcd_endpoints: tuple[str, ...] = ()
    timeout_ms: int = 10_000
    # Whether the signer can put several execute messages in one transaction.
    supports_multi_instruction: bool = True


@dataclass(frozen=True)
class IndexerConfig:
    graphql_url: str = ""
    timeout_ms: int = 10_000


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network"
    contract_address: str = ""
    mode: str = "mock"
    feeds: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PYTH_FEEDS))
    update_fee_denom: str = "untrn"
    update_fee_amount: str = "1"
    freshness_budget_ms: int = 15_000
    timeout_ms: int = 5_000


@dataclass(frozen=True)
class RiskConfig:
    dust_threshold: int = 100
    decimals: int = 6


@dataclass(frozen=True)
class TransactionsConfig:
    broadcast_timeout_ms: int = 60_000
    max_local_entries: int = 50
    display_limit: int = 20
    # How long a timed-out broadcast may wait for the indexer before it is failed.
    timeout_grace_ms: int = 300_000


@dataclass(frozen=True)
class MarketConfig:
    address: str = ""
    collateral_denom: str = ""
    debt_denom: str = ""
    liquidation_threshold: Decimal = Decimal("0.85")
    loan_to_value: Decimal = Decimal("0.80")
    market_id: str = ""


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    indexer: IndexerConfig = field(default_factory=IndexerConfig)
    pyth: PythConfig = field(default_factory=PythConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    transactions: TransactionsConfig = field(default_factory=TransactionsConfig)
    markets: dict[str, MarketConfig] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _as_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        lcd_endpoints=tuple(raw.get("lcd_endpoints", [])),
        timeout_ms=int(raw.get("timeout_ms", 10_000)),
        supports_multi_instruction=_as_bool(raw.get("supports_multi_instruction"), True),
    )


def _build_indexer(raw: dict[str, Any]) -> IndexerConfig:
    return IndexerConfig(
        graphql_url=raw.get("graphql_url", ""),
        timeout_ms=int(raw.get("timeout_ms", 10_000)),
    )


def _build_pyth(raw: dict[str, Any]) -> PythConfig:
    feeds = dict(DEFAULT_PYTH_FEEDS)
    for denom, feed_id in (raw.get("feeds") or {}).items():
        feeds[denom] = str(feed_id).removeprefix("0x")
    return PythConfig(
        hermes_url=raw.get("hermes_url", PythConfig.hermes_url),
        contract_address=raw.get("contract_address", ""),
        mode=raw.get("mode", "mock") or "mock",
        feeds=feeds,
        update_fee_denom=raw.get("update_fee_denom", "untrn"),
        update_fee_amount=str(raw.get("update_fee_amount", "1")),
        freshness_budget_ms=int(raw.get("freshness_budget_ms", 15_000)),
        timeout_ms=int(raw.get("timeout_ms", 5_000)),
    )


def _build_risk(raw: dict[str, Any]) -> RiskConfig:
    return RiskConfig(
        dust_threshold=int(raw.get("dust_threshold", 100)),
        decimals=int(raw.get("decimals", 6)),
    )


def _build_transactions(raw: dict[str, Any]) -> TransactionsConfig:
    return TransactionsConfig(
        broadcast_timeout_ms=int(raw.get("broadcast_timeout_ms", 60_000)),
        max_local_entries=int(raw.get("max_local_entries", 50)),
        display_limit=int(raw.get("display_limit", 20)),
        timeout_grace_ms=int(raw.get("timeout_grace_ms", 300_000)),
    )


def _build_markets(raw: dict[str, Any]) -> dict[str, MarketConfig]:
    markets: dict[str, MarketConfig] = {}
    for name, cfg in raw.items():
        markets[name] = MarketConfig(
            address=cfg.get("address", ""),
            collateral_denom=cfg.get("collateral_denom", ""),
            debt_denom=cfg.get("debt_denom", ""),
            liquidation_threshold=Decimal(str(cfg.get("liquidation_threshold", "0.85"))),
            loan_to_value=Decimal(str(cfg.get("loan_to_value", "0.80"))),
            market_id=str(cfg.get("market_id", "")),
        )
    return markets


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        chain=_build_chain(raw.get("chain", {})),
        indexer=_build_indexer(raw.get("indexer", {})),
        pyth=_build_pyth(raw.get("pyth", {})),
        risk=_build_risk(raw.get("risk", {})),
        transactions=_build_transactions(raw.get("transactions", {})),
        markets=_build_markets(raw.get("markets", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.markets:
        raise ValueError("At least one market must be configured")

    for name, market in cfg.markets.items():
        if not market.address:
            raise ValueError(f"Market '{name}' has no address")
        if not market.collateral_denom or not market.debt_denom:
            raise ValueError(f"Market '{name}' needs both a collateral and a debt denom")
        if market.collateral_denom == market.debt_denom:
            raise ValueError(f"Market '{name}' uses the same denom on both sides")
        for label, ratio in (
            ("liquidation_threshold", market.liquidation_threshold),
            ("loan_to_value", market.loan_to_value),
        ):
            if not Decimal(0) < ratio <= Decimal(1):
                raise ValueError(f"Market '{name}' {label} must be in (0, 1]")
        if market.loan_to_value > market.liquidation_threshold:
            raise ValueError(
                f"Market '{name}' loan_to_value exceeds its liquidation_threshold"
            )

    if cfg.pyth.mode not in PYTH_MODES:
        raise ValueError(f"Unknown pyth mode '{cfg.pyth.mode}'")
    if cfg.pyth.mode == "live" and not cfg.pyth.contract_address:
        raise ValueError("Live pyth mode requires a contract_address")
    if cfg.pyth.freshness_budget_ms <= 0:
        raise ValueError("pyth.freshness_budget_ms must be positive")

    for label, value in (
        ("chain.timeout_ms", cfg.chain.timeout_ms),
        ("indexer.timeout_ms", cfg.indexer.timeout_ms),
        ("pyth.timeout_ms", cfg.pyth.timeout_ms),
        ("transactions.broadcast_timeout_ms", cfg.transactions.broadcast_timeout_ms),
    ):
        if value <= 0:
            raise ValueError(f"{label} must be positive")
