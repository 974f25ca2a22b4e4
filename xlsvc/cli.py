"""CLI entry point for xlsvc."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click

from xlsvc import __version__
from xlsvc.client.api import ApiClient
from xlsvc.client.errors import ApiError
from xlsvc.config.settings import ClientConfig, api_base, load_config
from xlsvc.models.rules import DEFAULT_FILTER_RULES, FilterRule
from xlsvc.processor.matcher import find_matching_completed_job
from xlsvc.runner.orchestrator import run_job
from xlsvc.utils.logging import configure_logging, get_logger
from xlsvc.utils.result import ExitCode

DEFAULT_CONFIG = "./config"


class Context:
    """CLI context for sharing state between commands."""

    def __init__(self, config: ClientConfig) -> None:
        self.config = config
        self.logger = get_logger("cli")


pass_context = click.make_pass_decorator(Context)


def output_json(data: dict) -> None:
    """Output JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def make_client(config: ClientConfig) -> ApiClient:
    """Build the API client used by single-request commands."""
    return ApiClient.from_config(config)


def parse_rules(values: tuple[str, ...]) -> list[FilterRule]:
    """Parse --rule values, falling back to the default F/G/H/I rules."""
    if not values:
        return list(DEFAULT_FILTER_RULES)
    try:
        return [FilterRule.parse(value) for value in values]
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--rule") from e


@click.group()
@click.option(
    "--config",
    "config_dir",
    type=click.Path(exists=False, path_type=Path),
    default=DEFAULT_CONFIG,
    help="Path to config directory",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warn", "error"], case_sensitive=False),
    default=None,
    help="Logging level (overrides config)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "text"], case_sensitive=False),
    default=None,
    help="Log format (overrides config)",
)
@click.option(
    "--dev",
    is_flag=True,
    default=False,
    help="Use the local development API",
)
@click.version_option(version=__version__)
@click.pass_context
def cli(
    ctx: click.Context,
    config_dir: Path,
    log_level: Optional[str],
    log_format: Optional[str],
    dev: bool,
) -> None:
    """
    xlsvc - run spreadsheet-cleaning jobs on the processing service.

    Submits filter-rule jobs for uploaded files, follows them until they
    finish, and inspects their history. Set XLSVC_TOKEN to authenticate.
    """
    result = load_config(config_dir)
    if result.is_err():
        click.echo(str(result.unwrap_err()), err=True)
        sys.exit(ExitCode.CONFIG_ERROR)
    config = result.unwrap()

    if dev:
        config.api.base_url = api_base(dev=True)

    configure_logging(
        level=log_level or config.logging.level,
        format_type=log_format or config.logging.format,
    )

    ctx.obj = Context(config=config)


@cli.command()
@click.argument("file_id")
@click.option(
    "--rule",
    "rules",
    multiple=True,
    help="Filter rule COLUMN=VALUE (can be repeated; default F,G,H,I = 0)",
)
@click.option(
    "--force",
    is_flag=True,
    default=False,
    help="Submit even if a completed job already used these rules",
)
@pass_context
def process(ctx: Context, file_id: str, rules: tuple[str, ...], force: bool) -> None:
    """Submit a processing job and wait for it to finish."""
    filter_rules = parse_rules(rules)

    ctx.logger.info(
        "process_started",
        file_id=file_id,
        rules=[str(rule) for rule in filter_rules],
        force=force,
    )

    outcome = asyncio.run(run_job(ctx.config, file_id, filter_rules, force=force))

    if outcome.redundant_with is not None:
        output_json({
            "status": "skipped",
            "message": (
                f"Job {outcome.redundant_with.job_id} already completed with "
                "these filter rules; use --force to run again"
            ),
            **outcome.to_dict(),
        })
        sys.exit(ExitCode.JOB_REDUNDANT)

    for line in outcome.log:
        click.echo(line, err=True)

    output_json({
        "status": "success" if outcome.success else "failed",
        **outcome.to_dict(),
    })

    if not outcome.submitted:
        sys.exit(ExitCode.SUBMISSION_FAILED)
    if not outcome.success:
        sys.exit(ExitCode.JOB_FAILED)


@cli.command()
@click.argument("job_id")
@pass_context
def status(ctx: Context, job_id: str) -> None:
    """Show the current status of a job."""

    async def fetch() -> dict:
        async with make_client(ctx.config) as client:
            response = await client.get_job_status(job_id)
        return {
            "job_id": job_id,
            "status": response.status.value,
            "result_artifacts": (
                response.result_artifacts.to_dict() if response.result_artifacts else None
            ),
            "error": response.error,
        }

    try:
        output_json(asyncio.run(fetch()))
    except ApiError as e:
        ctx.logger.error("status_failed", job_id=job_id, error=str(e))
        output_json({"status": "error", "message": str(e)})
        sys.exit(ExitCode.GENERAL_ERROR)


@cli.command()
@click.argument("file_id")
@click.option(
    "--rule",
    "rules",
    multiple=True,
    help="Mark the completed job matching these rules (default F,G,H,I = 0)",
)
@pass_context
def history(ctx: Context, file_id: str, rules: tuple[str, ...]) -> None:
    """List a file's processing history."""
    filter_rules = parse_rules(rules)

    async def fetch() -> list:
        async with make_client(ctx.config) as client:
            return await client.get_history(file_id)

    try:
        records = asyncio.run(fetch())
    except ApiError as e:
        ctx.logger.error("history_failed", file_id=file_id, error=str(e))
        output_json({"status": "error", "message": str(e)})
        sys.exit(ExitCode.GENERAL_ERROR)

    match = find_matching_completed_job(filter_rules, records)
    output_json({
        "status": "success",
        "file_id": file_id,
        "history": [record.to_dict() for record in records],
        "matching_job_id": match.job_id if match else None,
    })


@cli.command()
@click.argument("file_id")
@pass_context
def generated(ctx: Context, file_id: str) -> None:
    """List macros, instructions, reports and processed files made for a file."""

    async def fetch() -> dict:
        async with make_client(ctx.config) as client:
            return await client.get_generated_files(file_id)

    try:
        groups = asyncio.run(fetch())
    except ApiError as e:
        ctx.logger.error("generated_failed", file_id=file_id, error=str(e))
        output_json({"status": "error", "message": str(e)})
        sys.exit(ExitCode.GENERAL_ERROR)

    output_json({"status": "success", "file_id": file_id, **groups})


@cli.command()
@click.argument("file_id")
@click.argument("destination", type=click.Path(dir_okay=False, path_type=Path))
@pass_context
def download(ctx: Context, file_id: str, destination: Path) -> None:
    """Download a processed file or report."""

    async def fetch() -> Path:
        async with make_client(ctx.config) as client:
            return await client.download(file_id, destination)

    try:
        path = asyncio.run(fetch())
    except ApiError as e:
        ctx.logger.error("download_failed", file_id=file_id, error=str(e))
        output_json({"status": "error", "message": str(e)})
        sys.exit(ExitCode.GENERAL_ERROR)

    output_json({"status": "success", "path": str(path)})


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except Exception as e:
        logger = get_logger("cli")
        logger.error("cli_error", error=str(e))
        sys.exit(ExitCode.GENERAL_ERROR)


if __name__ == "__main__":
    main()
