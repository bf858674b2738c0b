"""Main CLI entry point using Typer."""

import logging
import sys
import uuid
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..aws.credentials import validate_credentials
from ..cleanup.executor import CleanupExecutor
from ..cleanup.orchestrator import Orchestrator
from ..cleanup.reporter import ReportRenderer
from ..cleanup.tiers import tier_of
from ..errors import ConfigurationError
from ..models.report import ExecutionMode, RunReport
from ..models.resource import ResourceType
from ..scanners.registry import SCANNER_REGISTRY
from ..utils.logging import setup_logging
from .config import build_client_context, load_config, validate_region

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 1
EXIT_ALL_TASKS_FAILED = 2
EXIT_INTERRUPTED = 130

# Create Typer app
app = typer.Typer(
    name="nuker",
    help="AWS Nuker - Policy-driven cleanup of idle and non-compliant AWS resources",
    add_completion=False,
)

# Create Rich console for output
console = Console()

# Global options set by the callback
state = {"profile": None, "verbosity": 0}


@app.callback()
def main(
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="AWS profile name"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase log verbosity (-v, -vv, -vvv)"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
):
    """AWS Nuker - Policy-driven cleanup of idle and non-compliant AWS resources."""
    state["profile"] = profile
    state["verbosity"] = verbose

    setup_logging(verbosity=verbose)

    # Disable colors if requested
    if no_color:
        console.no_color = True


@app.command()
def version():
    """Show version information."""
    import boto3

    from .. import __version__

    console.print(f"aws-nuker version {__version__}")
    console.print(f"Python {sys.version.split()[0]}")
    console.print(f"boto3 {boto3.__version__}")


def parse_resource_types(values: Optional[List[str]], option: str) -> List[ResourceType]:
    """Convert ``--target``/``--exclude`` values, exiting on unknown types."""
    types = []
    for value in values or []:
        try:
            types.append(ResourceType.from_value(value))
        except ValueError:
            valid = ", ".join(t.value for t in ResourceType)
            console.print(f"✗ Unknown resource type for {option}: {value}", style="bold red")
            console.print(f"Valid types: {valid}")
            raise typer.Exit(code=EXIT_CONFIG_ERROR)
    return types


@app.command("resource-types")
def resource_types():
    """List supported resource types with their deletion tier and capabilities."""
    table = Table(title="Supported Resource Types")
    table.add_column("Type", style="cyan", no_wrap=True)
    table.add_column("Tier", justify="right")
    table.add_column("Idle Metrics")
    table.add_column("Type Rules")
    table.add_column("Stop", justify="center")

    for resource_type in sorted(SCANNER_REGISTRY, key=lambda t: (tier_of(t), t.value)):
        scanner_class = SCANNER_REGISTRY[resource_type]
        rules = ", ".join(rule.kind.value for rule in scanner_class.supported_rules) or "-"
        table.add_row(
            resource_type.value,
            str(tier_of(resource_type)),
            scanner_class.metric_namespace or "-",
            rules,
            "✓" if scanner_class.can_stop else "-",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def run(
    config_file: str = typer.Option(..., "--config", "-c", help="Path to the YAML policy configuration"),
    regions: Optional[List[str]] = typer.Option(
        None, "--region", "-r", help="Region to clean (repeatable, overrides the configuration)"
    ),
    targets: Optional[List[str]] = typer.Option(
        None, "--target", "-t", help="Only process this resource type (repeatable)"
    ),
    excludes: Optional[List[str]] = typer.Option(
        None, "--exclude", "-e", help="Never process this resource type (repeatable)"
    ),
    no_dry_run: bool = typer.Option(False, "--no-dry-run", help="Actually delete the matched resources"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip the confirmation prompt of --no-dry-run"),
    max_workers: Optional[int] = typer.Option(
        None, "--max-workers", min=1, help="Concurrent scan and deletion workers"
    ),
    report_file: Optional[str] = typer.Option(
        None, "--report-file", help="Export the run report (.json for JSON, YAML otherwise)"
    ),
):
    """Scan, evaluate and (optionally) delete resources matching the configured policies.

    Runs in dry-run mode unless --no-dry-run is given.
    """
    try:
        if targets and excludes:
            console.print("✗ --target and --exclude cannot be used together", style="bold red")
            raise typer.Exit(code=EXIT_CONFIG_ERROR)

        target_types = parse_resource_types(targets, "--target")
        exclude_types = parse_resource_types(excludes, "--exclude")

        try:
            config = load_config(config_file)
            run_regions = [validate_region(r) for r in regions] if regions else list(config.regions)
        except ConfigurationError as e:
            console.print(f"✗ Configuration error: {e}", style="bold red")
            raise typer.Exit(code=EXIT_CONFIG_ERROR)

        if not run_regions:
            console.print("✗ No regions selected. Use --region or set 'regions' in the configuration", style="bold red")
            raise typer.Exit(code=EXIT_CONFIG_ERROR)

        if max_workers:
            config.max_workers = max_workers

        mode = ExecutionMode.APPLY if no_dry_run else ExecutionMode.DRY_RUN

        # Validate credentials
        try:
            console.print("🔐 Validating AWS credentials...")
            identity = validate_credentials(state["profile"])
            console.print(f"✓ Authenticated for account: {identity.get('Account')}\n", style="green")
        except ConfigurationError as e:
            console.print(f"✗ Error: {e}", style="bold red")
            raise typer.Exit(code=EXIT_CONFIG_ERROR)

        if mode is ExecutionMode.APPLY and not force:
            console.print(
                "⚠️  Resources matching the policies will be permanently deleted or stopped.", style="bold yellow"
            )
            console.print(f"   Regions: {', '.join(run_regions)}", style="yellow")
            if not typer.confirm("Continue?", default=False):
                console.print("Cancelled.")
                raise typer.Exit(code=EXIT_CONFIG_ERROR)
            force = True

        context = build_client_context(config, state["profile"])
        report = RunReport(run_id=str(uuid.uuid4()), mode=mode, regions=run_regions)

        console.print(f"🔍 Scanning {', '.join(run_regions)} ({mode.value})...")
        orchestrator = Orchestrator(context, max_workers=config.max_workers)
        try:
            orchestrator.run(config.policies, run_regions, report, target_types, exclude_types)

            executor = CleanupExecutor(context, config.policies, max_workers=config.max_workers)
            executor.execute(report, mode, force=force)
        except KeyboardInterrupt:
            orchestrator.cancel()
            report.cancelled = True
            report.finish()
            console.print("\n✗ Interrupted, no further resources will be processed", style="bold red")
            ReportRenderer(console).render(report)
            raise typer.Exit(code=EXIT_INTERRUPTED)

        report.finish()
        renderer = ReportRenderer(console)
        renderer.render(report)

        if report_file:
            path = renderer.export(report, report_file)
            console.print(f"✓ Report written to {path}", style="green")

        if report.is_total_failure:
            console.print("✗ Every scan task failed", style="bold red")
            raise typer.Exit(code=EXIT_ALL_TASKS_FAILED)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"✗ Error during run: {e}", style="bold red")
        logger.exception("Error in run command")
        raise typer.Exit(code=EXIT_ALL_TASKS_FAILED)


def cli_main():
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    cli_main()
