"""
Command-line interface for the Smart News pipeline.

Uses Typer to expose one-off runs, per-site runs, the daily scheduler and
the operator trigger. Supports loading .env files for API keys.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .config import AppConfig, get_trigger_key, load_config
from .core.types import PipelineResult
from .llm.tracing import flush
from .pipeline.scheduler import DailyScheduler
from .pipeline.trigger import TriggerRequest, handle_trigger, make_scheduled_job
from .runner import Pipeline, build_pipeline

try:
    from dotenv import load_dotenv
except Exception:  # noqa: BLE001
    load_dotenv = None

app = typer.Typer(add_completion=False)
console = Console()

ConfigOption = typer.Option(None, "--config", "-c", exists=True, help="Path to YAML config file.")
LogLevelOption = typer.Option(None, "--log-level", help="Logging level.")
LogFileOption = typer.Option(None, "--log-file/--no-log-file", help="Enable or disable file logging.")
ApiKeyOption = typer.Option(
    None,
    "--api-key",
    envvar="GEMINI_API_KEY",
    help="Override model API key (or set GEMINI_API_KEY / .env).",
)


def _load(
    config: Path | None,
    log_level: str | None = None,
    log_file: bool | None = None,
    api_key: str | None = None,
) -> AppConfig:
    if load_dotenv is not None:
        load_dotenv()
    cfg = load_config(str(config) if config else None)
    if log_level:
        cfg.logging.level = log_level
    if log_file is not None:
        cfg.logging.file = log_file
    if api_key:
        cfg.provider.api_key = api_key
    return cfg


def _print_result(result: PipelineResult, output: Path | None = None) -> None:
    table = Table(title="Pipeline run")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Processed", str(result.total_processed))
    table.add_row("Successful", str(result.successful))
    table.add_row("Failed", str(result.failed))
    table.add_row("Errors", str(len(result.errors)))
    table.add_row("Duration", f"{result.duration_ms} ms")
    console.print(table)

    for error in result.errors[:10]:
        console.print(f"[yellow]{error.kind.value}[/yellow] {error.message}")

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        payload = {"result": result.to_dict(), "documents": [doc.to_dict() for doc in result.documents]}
        output.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        console.print(f"Documents written: {output}")


async def _run_and_close(pipeline: Pipeline, sites: list[str] | None, max_documents: int | None) -> PipelineResult:
    try:
        if sites:
            return await pipeline.orchestrator.run_for_sites(sites, max_documents=max_documents)
        return await pipeline.orchestrator.run_once(max_documents=max_documents)
    finally:
        await pipeline.aclose()


@app.command()
def run(
    config: Path | None = ConfigOption,
    max_documents: int | None = typer.Option(None, "--max-documents", "-n", help="Cap on discovered URLs."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write enriched documents as JSON."),
    log_level: str | None = LogLevelOption,
    log_file: bool | None = LogFileOption,
    api_key: str | None = ApiKeyOption,
):
    """Run the full pipeline once over every configured site."""
    cfg = _load(config, log_level, log_file, api_key)
    pipeline = build_pipeline(cfg)
    result = asyncio.run(_run_and_close(pipeline, None, max_documents))
    _print_result(result, output)
    flush()
    if not result.ok:
        raise typer.Exit(code=1)


@app.command("run-sites")
def run_sites(
    sites: list[str] = typer.Argument(..., help="Names of configured sites to process."),
    config: Path | None = ConfigOption,
    max_documents: int | None = typer.Option(None, "--max-documents", "-n", help="Cap on URLs per site."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write enriched documents as JSON."),
    log_level: str | None = LogLevelOption,
    log_file: bool | None = LogFileOption,
    api_key: str | None = ApiKeyOption,
):
    """Run the pipeline for the named sites only."""
    cfg = _load(config, log_level, log_file, api_key)
    pipeline = build_pipeline(cfg)
    result = asyncio.run(_run_and_close(pipeline, sites, max_documents))
    _print_result(result, output)
    flush()
    if not result.ok:
        raise typer.Exit(code=1)


@app.command()
def trigger(
    mode: str = typer.Option("full", "--mode", "-m", help="Run mode: full, test or websites."),
    website: list[str] = typer.Option([], "--website", "-w", help="Site name for websites mode (repeatable)."),
    trigger_key: str | None = typer.Option(
        None, "--trigger-key", envvar="SCRAPING_API_KEY", help="Key checked by the trigger handler."
    ),
    config: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
    api_key: str | None = ApiKeyOption,
):
    """Start a run through the operator trigger and print its response."""
    cfg = _load(config, log_level, None, api_key)
    pipeline = build_pipeline(cfg)
    request = TriggerRequest(mode=mode, websites=list(website) or None, api_key=trigger_key)

    async def _trigger():
        try:
            return await handle_trigger(
                request,
                pipeline.orchestrator,
                get_trigger_key(cfg.trigger),
                model_available=pipeline.model_available,
                test_max_documents=cfg.trigger.test_max_documents,
            )
        finally:
            await pipeline.aclose()

    response = asyncio.run(_trigger())
    console.print_json(json.dumps(response.to_dict(), ensure_ascii=False, default=str))
    flush()
    if not response.success:
        raise typer.Exit(code=1)


@app.command()
def schedule(
    at: str | None = typer.Option(None, "--time", "-t", help="Daily run time, HH:MM."),
    timezone_name: str | None = typer.Option(None, "--timezone", help="IANA timezone of the run time."),
    run_now: bool = typer.Option(False, "--run-now", help="Also run once immediately."),
    config: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
    log_file: bool | None = LogFileOption,
    api_key: str | None = ApiKeyOption,
):
    """Run the pipeline every day at the configured time until interrupted."""
    cfg = _load(config, log_level, log_file, api_key)
    if at:
        cfg.scheduler.time = at
    if timezone_name:
        cfg.scheduler.timezone = timezone_name
    pipeline = build_pipeline(cfg)
    job = make_scheduled_job(pipeline.orchestrator, get_trigger_key(cfg.trigger))
    scheduler = DailyScheduler(job, cfg.scheduler, tracker=pipeline.tracker, logger=pipeline.logger)

    async def _serve() -> None:
        scheduler.start()
        console.print(f"Next run in {scheduler.format_time_until_next_run()} ({cfg.scheduler.time} {cfg.scheduler.timezone})")
        try:
            if run_now:
                await scheduler.trigger_now()
            await asyncio.Event().wait()
        finally:
            scheduler.stop()
            await pipeline.aclose()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        console.print("Scheduler stopped")
    finally:
        flush()


@app.command()
def sites(config: Path | None = ConfigOption):
    """List the configured news sites."""
    cfg = _load(config)
    table = Table(title="Configured sites")
    table.add_column("Name")
    table.add_column("Base URL")
    table.add_column("Listing paths")
    for site in cfg.sites:
        table.add_row(site.name, site.base_url, ", ".join(site.listing_paths))
    console.print(table)


if __name__ == "__main__":
    app()
