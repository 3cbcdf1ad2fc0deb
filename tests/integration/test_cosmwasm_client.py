"""Integration tests for the CosmWasm LCD client — endpoint fallback and parsing."""
from __future__ import annotations

import base64
import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from stonelend.chains.cosmwasm.client import CosmWasmClient, encode_query
from stonelend.config import ChainConfig
from stonelend.errors import ChainQueryError


@pytest.fixture()
def client() -> CosmWasmClient:
    return CosmWasmClient(
        ChainConfig(
            lcd_endpoints=(
                "https://lcd1.example.com/",
                "https://lcd2.example.com",
                "https://lcd3.example.com",
            ),
            timeout_ms=5_000,
        )
    )


def _response(data: dict, status: int = 200) -> AsyncMock:
    response = AsyncMock()
    response.status = status
    response.json = AsyncMock(return_value=data)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


def _mock_session(get: MagicMock) -> AsyncMock:
    session = AsyncMock()
    session.get = get
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)
    return session


class TestEncodeQuery:
    def test_round_trips_json(self) -> None:
        encoded = encode_query({"user_position": {"user": "neutron1me"}})
        assert json.loads(base64.urlsafe_b64decode(encoded)) == {
            "user_position": {"user": "neutron1me"}
        }


class TestQuerySmart:
    @pytest.mark.asyncio
    async def test_successful_query(self, client: CosmWasmClient) -> None:
        get = MagicMock(return_value=_response({"data": {"ok": True}}))

        with patch("stonelend.chains.cosmwasm.client.aiohttp.ClientSession",
                   return_value=_mock_session(get)):
            with patch("stonelend.chains.cosmwasm.client.aiohttp.TCPConnector"):
                result = await client.query_smart("neutron1market", {"config": {}})

        assert result == {"ok": True}
        url = get.call_args.args[0]
        assert url.startswith(
            "https://lcd1.example.com/cosmwasm/wasm/v1/contract/neutron1market/smart/"
        )

    @pytest.mark.asyncio
    async def test_fallback_to_next_endpoint(self, client: CosmWasmClient) -> None:
        get = MagicMock(side_effect=[
            ConnectionError("refused"),
            _response({"data": {"ok": True}}),
        ])

        with patch("stonelend.chains.cosmwasm.client.aiohttp.ClientSession",
                   return_value=_mock_session(get)):
            with patch("stonelend.chains.cosmwasm.client.aiohttp.TCPConnector"):
                result = await client.query_smart("neutron1market", {"config": {}})

        assert result == {"ok": True}
        assert client.current_index == 1
        assert get.call_args.args[0].startswith("https://lcd2.example.com/")

    @pytest.mark.asyncio
    async def test_http_error_falls_through(self, client: CosmWasmClient) -> None:
        get = MagicMock(return_value=_response({"code": 2, "message": "not found"}, status=500))

        with patch("stonelend.chains.cosmwasm.client.aiohttp.ClientSession",
                   return_value=_mock_session(get)):
            with patch("stonelend.chains.cosmwasm.client.aiohttp.TCPConnector"):
                with pytest.raises(ChainQueryError, match="All LCD endpoints failed"):
                    await client.query_smart("neutron1market", {"config": {}})

        assert get.call_count == 3

    @pytest.mark.asyncio
    async def test_no_endpoints(self) -> None:
        with pytest.raises(ChainQueryError, match="No LCD endpoints"):
            await CosmWasmClient(ChainConfig()).query_smart("x", {})


class TestReads:
    @pytest.mark.asyncio
    async def test_get_user_position(self, client: CosmWasmClient) -> None:
        client.query_smart = AsyncMock(return_value={
            "collateral_amount": "1000000000",
            "supply_amount": "0",
            "debt_amount": "7000000000",
        })

        position = await client.get_user_position("neutron1market", "neutron1me")

        assert position.collateral_amount == "1000000000"
        assert position.debt_amount == "7000000000"
        client.query_smart.assert_awaited_once_with(
            "neutron1market", {"user_position": {"user": "neutron1me"}}
        )

    @pytest.mark.asyncio
    async def test_get_market(self, client: CosmWasmClient) -> None:
        client.query_smart = AsyncMock(side_effect=[
            {"collateral_denom": "uatom", "debt_denom": "ustone"},
            {"liquidation_threshold": "0.85", "loan_to_value": "0.8"},
            {"total_supply": "5000", "total_debt": "2500", "utilization": "0.5"},
        ])

        market = await client.get_market("neutron1market")

        assert market.collateral_denom == "uatom"
        assert market.liquidation_threshold == Decimal("0.85")
        assert market.loan_to_value == Decimal("0.8")
        assert market.total_borrowed == "2500"
        assert market.utilization == Decimal("0.5")
