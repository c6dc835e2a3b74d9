from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import typer

from ..adapters.etherscan import SupportedChain
from ..collectors.pipeline import CreditScorePipeline
from ..collectors.scorer import MAX_CREDIT_SCORE, MIN_CREDIT_SCORE, interpret_score
from ..config.settings import AppSettings, get_settings
from ..core.errors import AdapterError, ConfigurationError, DataUnavailableError, MissingParameterError
from ..core.logging import configure_logging
from ..core.types import Interpretation, ScoreRequest, ScoreResponse, SelectedApis
from ..services.provider_queries import ProviderQueryService, QueryOptions

app = typer.Typer(help="On-chain Credit Score CLI")


def _exit_with_error(error: Exception, code: int) -> None:
    """輸出錯誤訊息並以指定代碼結束程式。"""

    typer.echo(f"[ERROR] {error}", err=True)
    raise typer.Exit(code=code)


def _load_settings() -> AppSettings:
    settings = get_settings()
    configure_logging(settings.log_level)
    return settings


@app.command("score")
def command_score(
    address: str = typer.Argument(..., help="要評分的錢包地址"),
    etherscan: Optional[bool] = typer.Option(None, "--etherscan/--no-etherscan", help="是否使用 Etherscan 資料"),
    debank: Optional[bool] = typer.Option(None, "--debank/--no-debank", help="是否使用 DeBank 資料"),
    as_json: bool = typer.Option(False, "--json", help="以 JSON 輸出完整結果"),
) -> None:
    """計算錢包的鏈上信用分數。"""

    settings = _load_settings()
    selected = SelectedApis(
        etherscan=settings.feature_etherscan if etherscan is None else etherscan,
        debank=settings.feature_debank if debank is None else debank,
    )

    async def _run() -> ScoreResponse:
        async with CreditScorePipeline(settings=settings) as pipeline:
            return await pipeline.calculate(ScoreRequest(address=address, selected_apis=selected))

    try:
        response = asyncio.run(_run())
    except (MissingParameterError, ConfigurationError) as error:
        _exit_with_error(error, code=2)
    except DataUnavailableError as error:
        _exit_with_error(error, code=1)

    if as_json:
        typer.echo(json.dumps(response.to_payload(), indent=2))
        return
    _print_result(response)


@app.command("interpret")
def command_interpret(
    score: int = typer.Argument(..., min=MIN_CREDIT_SCORE, max=MAX_CREDIT_SCORE, help="300-850 的信用分數"),
) -> None:
    """顯示指定分數的等級說明。"""

    _print_interpretation(interpret_score(score))


@app.command("lookup")
def command_lookup(
    provider: str = typer.Argument(..., help="etherscan 或 debank"),
    resource: str = typer.Argument(..., help="查詢資源，例如 transactions、tokens、protocols"),
    address: str = typer.Argument(..., help="錢包地址"),
    query_type: Optional[str] = typer.Option(None, "--type", help="查詢類型"),
    chain_id: Optional[str] = typer.Option(None, "--chain-id"),
    protocol_id: Optional[str] = typer.Option(None, "--protocol-id"),
    token_id: Optional[str] = typer.Option(None, "--token-id"),
    contract_address: Optional[str] = typer.Option(None, "--contract-address"),
    page: int = typer.Option(1, "--page", min=1),
    offset: Optional[int] = typer.Option(None, "--offset", min=1),
    sort: str = typer.Option("asc", "--sort"),
    start_time: Optional[int] = typer.Option(None, "--start-time"),
    end_time: Optional[int] = typer.Option(None, "--end-time"),
) -> None:
    """直接查詢單一提供者資料並輸出 JSON。"""

    settings = _load_settings()
    options = QueryOptions(
        type=query_type,
        chain_id=chain_id,
        protocol_id=protocol_id,
        token_id=token_id,
        contract_address=contract_address,
        page=page,
        offset=offset,
        sort=sort,
        start_time=start_time,
        end_time=end_time,
    )

    async def _run() -> dict[str, Any]:
        async with CreditScorePipeline(settings=settings) as pipeline:
            service = ProviderQueryService(pipeline.etherscan, pipeline.debank)
            return await service.run(provider, resource, address, options)

    try:
        payload = asyncio.run(_run())
    except (MissingParameterError, ConfigurationError) as error:
        _exit_with_error(error, code=2)
    except AdapterError as error:
        _exit_with_error(error, code=1)
    typer.echo(json.dumps(payload, indent=2, default=str))


@app.command("chains")
def command_chains() -> None:
    """列出支援的 Etherscan 鏈 ID。"""

    for chain in SupportedChain:
        typer.echo(f"{chain.value:>12}  {chain.name}")


def _print_result(response: ScoreResponse) -> None:
    """輸出評分摘要。"""

    score = response.credit_score
    typer.echo("=== Credit Score ===")
    typer.echo(f"Address: {response.address}")
    typer.echo(f"Credit score: {score.credit_score} (overall {score.overall}/100)")
    typer.echo("--- Breakdown ---")
    for name, value in score.breakdown.model_dump().items():
        typer.echo(f"{name}: {value}")
    typer.echo("--- Factors ---")
    for name, value in score.factors.model_dump().items():
        typer.echo(f"{name}: {value}")
    if response.data_used.failed_slices:
        typer.echo(f"Failed slices: {', '.join(response.data_used.failed_slices)}")
    _print_interpretation(response.interpretation)


def _print_interpretation(interpretation: Interpretation) -> None:
    typer.echo(f"Level: {interpretation.level.value}")
    typer.echo(interpretation.description)
    typer.echo("--- Characteristics ---")
    for item in interpretation.characteristics:
        typer.echo(f"- {item}")
    typer.echo("--- Recommendations ---")
    for item in interpretation.recommendations:
        typer.echo(f"- {item}")
