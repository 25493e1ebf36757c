"""CLI commands for the dataset pipeline."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from ..core.config import Settings, settings
from ..core.errors import ConfigurationError
from ..pipelines.orchestrator import PipelineOrchestrator
from ..pipelines.results import PipelineRunResult, StageResult, StageStatus
from ..pipelines.schedule import resolve_schedule

_STATUS_ICONS = {
    StageStatus.SUCCESS: "✅",
    StageStatus.FAILED: "❌",
    StageStatus.SKIPPED: "⏭️ ",
}


def _build_options(**overrides: Any) -> Settings:
    """Copy the global settings with the options given on the command line."""
    update = {k: v for k, v in overrides.items() if v is not None and v is not False}
    return settings.model_copy(update=update)


def directory_options(f):
    """Options for the working and archive directories."""
    decorators = [
        click.option("--raw-data-dir", help="Raw dataset directory"),
        click.option("--normalized-data-dir", help="Normalized dataset directory"),
        click.option("--download-dir", help="Download staging directory"),
        click.option("--archived-dir", help="Archive root directory"),
    ]
    for decorator in reversed(decorators):
        f = decorator(f)
    return f


def schedule_options(f):
    """Options selecting the scrape window and budget."""
    decorators = [
        click.option("--daily", is_flag=True, help="Scrape the current day"),
        click.option("--start-date", help="First day of the scrape window"),
        click.option("--end-date", help="Last day of the scrape window"),
        click.option("--requests-per-day", type=int, help="Crawl request budget per day"),
        click.option("--request-depths-per-day", type=int, help="Crawl depth budget per day"),
    ]
    for decorator in reversed(decorators):
        f = decorator(f)
    return f


def _echo_stage(result: StageResult) -> None:
    icon = _STATUS_ICONS[result.status]
    line = f"   {icon} {result.stage.value}: {result.status.value}"
    if result.error:
        line += f" ({result.error_type}: {result.error})"
    elif result.status == StageStatus.SKIPPED:
        line += f" ({result.details.get('reason', 'unknown')})"
    click.echo(line)


def _echo_run(results: PipelineRunResult) -> None:
    for stage_result in results.stages:
        _echo_stage(stage_result)


@click.group()
@click.option("--log-level", help="Logging level (defaults to LOG_LEVEL)")
def pipeline(log_level: Optional[str]):
    """Dataset pipeline commands for scraping, processing and archiving."""
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )


@pipeline.command()
@directory_options
@click.option("--skip-archive-download", is_flag=True, help="Do not archive the download directory")
@click.option(
    "--continue-on-failure",
    "continue_on_stage_failure",
    is_flag=True,
    help="Keep running later stages after a stage fails",
)
def run(**kwargs):
    """Run the complete pipeline: acquire + normalize + load + archive."""
    click.echo("🚀 Starting dataset pipeline...")
    options = _build_options(**kwargs)

    async def run_pipeline():
        orchestrator = PipelineOrchestrator(options)
        results = await orchestrator.run_full_pipeline()

        if results.success:
            click.echo("✅ Pipeline completed!")
        else:
            click.echo("⚠️  Pipeline finished with failures")
        _echo_run(results)
        return results

    asyncio.run(run_pipeline())


@pipeline.command()
@click.option("--raw-data-dir", help="Raw dataset directory")
@click.option("--endpoint", "get_dataset_endpoint", help="Dataset URL")
@click.option("--data-file", help="Filename for the downloaded dataset")
def acquire(**kwargs):
    """Download the dataset into the raw data directory."""
    click.echo("📥 Downloading dataset...")
    options = _build_options(**kwargs)
    _echo_stage(asyncio.run(PipelineOrchestrator(options).acquire()))


@pipeline.command()
@directory_options
def normalize(**kwargs):
    """Run the normalizer over the raw data directory."""
    click.echo("🧹 Normalizing dataset...")
    options = _build_options(**kwargs)
    _echo_stage(asyncio.run(PipelineOrchestrator(options).normalize()))


@pipeline.command()
@directory_options
def load(**kwargs):
    """Run the loader over the normalized data directory."""
    click.echo("📤 Loading dataset...")
    options = _build_options(**kwargs)
    _echo_stage(asyncio.run(PipelineOrchestrator(options).load()))


@pipeline.command()
@directory_options
@click.option("--skip-archive-download", is_flag=True, help="Do not archive the download directory")
def archive(**kwargs):
    """Move processed data into today's dated archive."""
    click.echo("🗄️  Archiving processed data...")
    options = _build_options(**kwargs)
    result = asyncio.run(PipelineOrchestrator(options).archive())
    _echo_stage(result)
    if result.details.get("destination"):
        click.echo(f"   Archive: {result.details['destination']}")


@pipeline.command()
@schedule_options
@click.option("--dry-run", is_flag=True, help="Submit the task as a test run")
@click.option("--config-file", "task_config_file", help="JSON file with the task INPUT template")
@click.option("--endpoint", "run_task_endpoint", help="Task trigger URL")
def scrape(**kwargs):
    """Submit the remote scrape task for the configured window."""
    click.echo("🔍 Triggering scrape task...")
    options = _build_options(**kwargs)
    result = asyncio.run(PipelineOrchestrator(options).trigger_scrape())
    _echo_stage(result)

    task_input = result.details.get("task_input")
    if task_input:
        click.echo(f"   Window: {task_input['startDate']} - {task_input['endDate']}")
        click.echo(f"   Max requests per crawl: {task_input['maxRequestsPerCrawl']}")
        click.echo(f"   Max request depth: {task_input['maxRequestDepth']}")


@pipeline.command()
@schedule_options
def schedule(**kwargs):
    """Show the schedule fields a scrape would submit, without submitting."""
    options = _build_options(**kwargs)
    try:
        payload = resolve_schedule(options)
    except ConfigurationError as e:
        click.echo(f"❌ {e}")
        return

    fields: Dict[str, Any] = payload.to_task_fields()
    fields["numOfDays"] = payload.num_of_days
    click.echo(json.dumps(fields, indent=2))


@pipeline.command()
@directory_options
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
def status(as_json: bool, **kwargs):
    """Show working directories and archived days."""
    options = _build_options(**kwargs)
    status_info = PipelineOrchestrator(options).get_pipeline_status()

    if as_json:
        click.echo(json.dumps(status_info, indent=2))
        return

    console = Console()
    table = Table(title="Working directories", show_lines=False)
    table.add_column("Directory", no_wrap=True)
    table.add_column("Path")
    table.add_column("Entries", justify="right")

    for name, info in status_info["directories"].items():
        entries = str(info["entries"]) if info["exists"] else "[yellow]missing[/yellow]"
        table.add_row(name, info["path"], entries)

    console.print(table)
    console.print(f"Archive root: {status_info['archived_dir']}")
    console.print(f"Today's archive: {status_info['today_destination']}")

    archived_days = status_info["archived_days"]
    if not archived_days:
        console.print("[yellow]No archived days found.[/yellow]")
        return

    console.print(f"Archived days: {len(archived_days)}")
    for day in archived_days[-5:]:
        console.print(f"   • {day}")
