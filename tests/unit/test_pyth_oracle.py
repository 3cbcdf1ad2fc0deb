"""Unit tests for Pyth oracle — response parsing and error handling."""
from __future__ import annotations

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from stonelend.config import PythConfig
from stonelend.errors import StaleOrMissingPrice
from stonelend.oracles.pyth import PythOracle, parse_quote


@pytest.fixture()
def oracle() -> PythOracle:
    return PythOracle(
        PythConfig(
            hermes_url="https://hermes.example.com/",
            feeds={"uatom": "aaa111", "ustone": "0xbbb222"},
            timeout_ms=1_000,
        )
    )


def _hermes_payload(feed_id: str, price: str, expo: int = -8, binary: bool = True) -> dict:
    data = {
        "parsed": [
            {
                "id": feed_id,
                "price": {
                    "price": price,
                    "conf": "1000000",
                    "expo": expo,
                    "publish_time": 1_700_000_000,
                },
            }
        ]
    }
    if binary:
        data["binary"] = {"encoding": "base64", "data": ["UE5BVQ=="]}
    return data


def _mock_session(responses: dict[str, object]) -> AsyncMock:
    """Session whose ``get`` picks a response (or exception) by feed id in the URL."""

    def _get(url: str, **kwargs):
        for feed_id, result in responses.items():
            if feed_id in url:
                if isinstance(result, Exception):
                    raise result
                return result
        raise AssertionError(f"unexpected url {url}")

    session = AsyncMock()
    session.get = MagicMock(side_effect=_get)
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)
    return session


def _response(data: dict | None = None, status: int = 200) -> AsyncMock:
    response = AsyncMock()
    response.status = status
    response.json = AsyncMock(return_value=data or {})
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


class TestParseQuote:
    def test_applies_exponent(self) -> None:
        quote = parse_quote(
            {"id": "0xAAA", "price": {"price": "1050000000", "conf": "500000", "expo": -8,
                                      "publish_time": 5}},
            "uatom",
        )
        assert quote.price == Decimal("10.5")
        assert quote.confidence == Decimal("0.005")
        assert quote.publish_time == 5
        assert quote.feed_id == "aaa"


class TestFetchQuotes:
    @pytest.mark.asyncio
    async def test_parses_each_denom(self, oracle: PythOracle) -> None:
        session = _mock_session({
            "aaa111": _response(_hermes_payload("aaa111", "1000000000")),
            "bbb222": _response(_hermes_payload("bbb222", "100000000")),
        })

        with patch("stonelend.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("stonelend.oracles.pyth.aiohttp.TCPConnector"):
                quotes = await oracle.fetch_quotes(["uatom", "ustone"])

        assert quotes["uatom"].price == Decimal(10)
        assert quotes["ustone"].price == Decimal(1)
        assert session.get.call_count == 2
        url = session.get.call_args_list[0].args[0]
        assert url.startswith("https://hermes.example.com/v2/updates/price/latest?ids[]=")

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_others(self, oracle: PythOracle) -> None:
        session = _mock_session({
            "aaa111": _response(status=500),
            "bbb222": _response(_hermes_payload("bbb222", "100000000")),
        })

        with patch("stonelend.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("stonelend.oracles.pyth.aiohttp.TCPConnector"):
                quotes = await oracle.fetch_quotes(["uatom", "ustone"])

        assert set(quotes) == {"ustone"}

    @pytest.mark.asyncio
    async def test_malformed_entry_does_not_abort_others(self, oracle: PythOracle) -> None:
        session = _mock_session({
            "aaa111": _response(_hermes_payload("aaa111", "1000000000")),
            "bbb222": _response(_hermes_payload("bbb222", "not-a-number")),
        })

        with patch("stonelend.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("stonelend.oracles.pyth.aiohttp.TCPConnector"):
                quotes = await oracle.fetch_quotes(["uatom", "ustone"])

        assert set(quotes) == {"uatom"}
        assert quotes["uatom"].price == Decimal("10")

    @pytest.mark.asyncio
    async def test_malformed_entry_is_stale_or_missing(self, oracle: PythOracle) -> None:
        session = _mock_session({"bbb222": _response(_hermes_payload("bbb222", "1e+x"))})

        with patch("stonelend.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("stonelend.oracles.pyth.aiohttp.TCPConnector"):
                with pytest.raises(StaleOrMissingPrice, match="malformed"):
                    await oracle.fetch_quote("ustone")

    @pytest.mark.asyncio
    async def test_network_error_and_unknown_denom(self, oracle: PythOracle) -> None:
        session = _mock_session({"aaa111": ConnectionError("boom")})

        with patch("stonelend.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("stonelend.oracles.pyth.aiohttp.TCPConnector"):
                quotes = await oracle.fetch_quotes(["uatom", "uosmo"])

        assert quotes == {}

    @pytest.mark.asyncio
    async def test_duplicates_fetched_once(self, oracle: PythOracle) -> None:
        session = _mock_session({"aaa111": _response(_hermes_payload("aaa111", "1000000000"))})

        with patch("stonelend.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("stonelend.oracles.pyth.aiohttp.TCPConnector"):
                await oracle.fetch_quotes(["uatom", "uatom"])

        assert session.get.call_count == 1


class TestFetchUpdate:
    @pytest.mark.asyncio
    async def test_returns_binary_and_quote(self, oracle: PythOracle) -> None:
        session = _mock_session({"bbb222": _response(_hermes_payload("bbb222", "100000000"))})

        with patch("stonelend.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("stonelend.oracles.pyth.aiohttp.TCPConnector"):
                update = await oracle.fetch_update("ustone")

        assert update.feed_id == "bbb222"
        assert update.data == ("UE5BVQ==",)
        assert update.quote is not None and update.quote.price == Decimal(1)

    @pytest.mark.asyncio
    async def test_empty_binary_raises(self, oracle: PythOracle) -> None:
        payload = _hermes_payload("aaa111", "1000000000", binary=False)
        session = _mock_session({"aaa111": _response(payload)})

        with patch("stonelend.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("stonelend.oracles.pyth.aiohttp.TCPConnector"):
                with pytest.raises(StaleOrMissingPrice, match="uatom"):
                    await oracle.fetch_update("uatom")

    @pytest.mark.asyncio
    async def test_timeout_raises(self, oracle: PythOracle) -> None:
        session = _mock_session({"aaa111": asyncio.TimeoutError()})

        with patch("stonelend.oracles.pyth.aiohttp.ClientSession", return_value=session):
            with patch("stonelend.oracles.pyth.aiohttp.TCPConnector"):
                with pytest.raises(StaleOrMissingPrice, match="timed out"):
                    await oracle.fetch_update("uatom")

    @pytest.mark.asyncio
    async def test_no_feed_configured(self, oracle: PythOracle) -> None:
        with pytest.raises(StaleOrMissingPrice, match="no price feed"):
            await oracle.fetch_update("uosmo")
