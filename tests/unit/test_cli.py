from __future__ import annotations

import functools
import json
from typing import Any, Callable, Dict, List

import httpx
import pytest
from typer.testing import CliRunner

import onchain_credit_score.cli.app as cli_app
import onchain_credit_score.collectors.pipeline as pipeline_module
from onchain_credit_score.adapters.http_client import CachingHttpClient
from onchain_credit_score.cli.app import app
from onchain_credit_score.config.settings import AppSettings


runner = CliRunner()

ADDRESS = "0x742d35cc6634c0532925a3b8d4c9db96c4b4d8b6"

DEBANK_RESULTS: Dict[str, Any] = {
    "/v1/user/used_chain_list": [{"id": "eth"}, {"id": "arb"}],
    "/v1/user/all_token_list": [
        {"id": f"0x{index:040x}", "chain": "eth", "price": 1.0, "amount": 1000.0} for index in range(10)
    ],
    "/v1/user/token_list": [{"id": "eth", "chain": "eth", "price": 2500.0, "amount": 1.5}],
    "/v1/user/all_complex_protocol_list": [{"id": f"protocol-{index}"} for index in range(4)],
    "/v1/user/all_nft_list": [],
}


def _route_http(
    monkeypatch: pytest.MonkeyPatch,
    handler: Callable[[httpx.Request], httpx.Response],
    **overrides: Any,
) -> List[httpx.Request]:
    calls: List[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    values = {"HTTP_RETRIES": 0, "LOG_LEVEL": "WARNING"}
    values.update(overrides)
    settings = AppSettings(**values)
    monkeypatch.setattr(cli_app, "get_settings", lambda: settings)
    monkeypatch.setattr(
        pipeline_module,
        "CachingHttpClient",
        functools.partial(CachingHttpClient, transport=httpx.MockTransport(recording)),
    )
    return calls


def _debank_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path in DEBANK_RESULTS:
        return httpx.Response(200, json=DEBANK_RESULTS[request.url.path])
    return httpx.Response(404)


def test_interpret_command_prints_level() -> None:
    result = runner.invoke(app, ["interpret", "705"])
    assert result.exit_code == 0
    assert "Level: Very Good" in result.output
    assert "Recommendations" in result.output


def test_interpret_rejects_out_of_range_score() -> None:
    result = runner.invoke(app, ["interpret", "900"])
    assert result.exit_code != 0


def test_chains_command_lists_supported_chains() -> None:
    result = runner.invoke(app, ["chains"])
    assert result.exit_code == 0
    assert "ETHEREUM" in result.output
    assert "42161" in result.output


def test_score_with_invalid_address_exits_with_code_2() -> None:
    result = runner.invoke(app, ["score", "not-an-address", "--no-etherscan", "--no-debank"])
    assert result.exit_code == 2


def test_score_json_outputs_camel_case_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _route_http(monkeypatch, _debank_handler)

    result = runner.invoke(app, ["score", ADDRESS, "--no-etherscan", "--debank", "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    # 0.20*20 + 0.25*10 + 0.15*20 = 9.5
    assert payload["creditScore"]["overall"] == 10
    assert payload["creditScore"]["creditScore"] == 355
    assert payload["interpretation"]["level"] == "Poor"
    assert payload["dataUsed"]["etherscan"] is False
    assert payload["dataUsed"]["tokenCount"] == 10
    assert payload["dataUsed"]["chainCount"] == 2
    assert all(request.url.host == "pro-openapi.debank.com" for request in calls)
    assert len(calls) == 4


def test_score_prints_summary_without_json(monkeypatch: pytest.MonkeyPatch) -> None:
    _route_http(monkeypatch, _debank_handler)

    result = runner.invoke(app, ["score", ADDRESS, "--no-etherscan"])

    assert result.exit_code == 0, result.output
    assert "Credit score: 355 (overall 10/100)" in result.output
    assert "Level: Poor" in result.output


def test_score_exits_with_code_1_when_every_slice_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _route_http(monkeypatch, lambda request: httpx.Response(502))

    result = runner.invoke(app, ["score", ADDRESS, "--etherscan", "--no-debank"])

    assert result.exit_code == 1
    assert len(calls) == 3


def test_lookup_prints_provider_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _route_http(monkeypatch, _debank_handler)

    result = runner.invoke(app, ["lookup", "debank", "tokens", ADDRESS, "--type", "list", "--chain-id", "eth"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["type"] == "list"
    assert payload["chainId"] == "eth"
    assert payload["tokens"] == DEBANK_RESULTS["/v1/user/token_list"]
    assert calls[0].url.params["chain_id"] == "eth"


def test_lookup_without_required_chain_id_exits_with_code_2(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _route_http(monkeypatch, _debank_handler)

    result = runner.invoke(app, ["lookup", "debank", "tokens", ADDRESS, "--type", "list"])

    assert result.exit_code == 2
    assert calls == []


def test_lookup_with_invalid_settings_exits_with_code_2(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _route_http(monkeypatch, _debank_handler, HTTP_TIMEOUT_SECONDS=0)

    result = runner.invoke(app, ["lookup", "debank", "nfts", ADDRESS])

    assert result.exit_code == 2
    assert calls == []
