"""CLI entry point for the hive-queen governance bot."""

import asyncio
import sys

import click
import structlog

from hive_queen.commands.parser import parse_command
from hive_queen.config.settings import AppSettings, load_app_settings
from hive_queen.engine.jobs import JOBS, GitHubAppSource
from hive_queen.engine.reconciliation import BatchResult, ReconciliationRunner
from hive_queen.exceptions import ConfigurationError, HiveQueenError, ReconciliationError
from hive_queen.providers.github_app import GitHubApp
from hive_queen.providers.llm import OpenAICompatibleGenerator
from hive_queen.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


@click.group()
@click.option("--log-level", default="INFO", help="Logging level")
@click.option("--console", is_flag=True, help="Human-readable logs instead of JSON lines")
@click.pass_context
def cli(ctx: click.Context, log_level: str, console: bool) -> None:
    """hive-queen: label-driven governance for GitHub repositories."""
    configure_logging(log_level.upper(), json_output=not console)
    ctx.obj = {}


def _load_settings(require_webhook_secret: bool = False) -> AppSettings:
    try:
        return load_app_settings(require_webhook_secret=require_webhook_secret)
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)


@cli.command()
@click.argument("job", type=click.Choice(sorted(JOBS)))
def reconcile(job: str) -> None:
    """Run a scheduled reconciliation JOB over every installation repository."""
    settings = _load_settings()
    try:
        result = asyncio.run(_run_job(settings, job))
    except ReconciliationError as e:
        for failure in e.failures:
            click.echo(f"  {failure.repo_full_name} {failure.unit_id}: {failure.error}", err=True)
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    except HiveQueenError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("reconcile_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)

    skipped = sum(1 for s in result.summaries if s.skipped)
    click.echo(
        f"{job}: {len(result.summaries)} repositories ({skipped} skipped), "
        f"{result.processed} units processed, 0 failed"
    )


async def _run_job(settings: AppSettings, job_name: str) -> BatchResult:
    app = GitHubApp(settings)
    generator = OpenAICompatibleGenerator(settings.llm) if settings.llm.enabled else None
    try:
        runner = ReconciliationRunner(GitHubAppSource(app, settings, generator))
        return await runner.run(JOBS[job_name]())
    finally:
        if generator is not None:
            await generator.close()
        app.close()


@cli.command("parse-command")
@click.argument("text")
def parse_command_cmd(text: str) -> None:
    """Show the command a comment TEXT would trigger, if any."""
    command = parse_command(text)
    if command is None:
        click.echo("No command")
        return
    click.echo(f"verb: {command.verb}")
    if command.free_text is not None:
        click.echo(f"free text: {command.free_text}")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind")  # nosec B104
@click.option("--port", default=8000, type=int, help="Port to listen on")
def serve(host: str, port: int) -> None:
    """Run the webhook server."""
    import uvicorn

    from hive_queen.webhook_server import build_dispatcher, create_app

    settings = _load_settings(require_webhook_secret=True)
    generator = OpenAICompatibleGenerator(settings.llm) if settings.llm.enabled else None
    source = GitHubAppSource(GitHubApp(settings), settings, generator)

    log.info("webhook_server_starting", host=host, port=port)
    uvicorn.run(create_app(settings, build_dispatcher(source)), host=host, port=port)


if __name__ == "__main__":
    cli()
