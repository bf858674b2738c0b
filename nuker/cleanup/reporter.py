"""Run report rendering (Rich tables) and export (YAML, JSON)."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console
from rich.table import Table

from ..models.candidate import CleanupCandidate
from ..models.report import OutcomeStatus, RunReport

_STATUS_STYLES = {
    OutcomeStatus.WOULD_DELETE: "yellow",
    OutcomeStatus.WOULD_STOP: "yellow",
    OutcomeStatus.DELETED: "green",
    OutcomeStatus.STOPPED: "green",
    OutcomeStatus.ALREADY_GONE: "green",
    OutcomeStatus.SKIPPED_WHITELISTED: "cyan",
    OutcomeStatus.SKIPPED_STOPPED: "cyan",
    OutcomeStatus.SKIPPED_BLOCKED: "magenta",
    OutcomeStatus.FAILED: "red",
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ReportRenderer:
    """Render and export a run report."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def outcome_label(self, report: RunReport, candidate: CleanupCandidate) -> str:
        outcome = report.outcome_for(candidate)
        if outcome is not None:
            return outcome.label
        if candidate.whitelisted:
            return "skipped (whitelisted)"
        return "not executed"

    def build_tables(self, report: RunReport) -> List[Table]:
        """One table per region, rows grouped by type."""
        tables = []
        for region, by_type in report.grouped().items():
            table = Table(title=f"Cleanup candidates - {region}")
            table.add_column("Type", style="bold")
            table.add_column("Resource")
            table.add_column("Matched Rules")
            table.add_column("Whitelisted")
            table.add_column("Outcome")

            for resource_type, candidates in by_type.items():
                for candidate in candidates:
                    outcome = report.outcome_for(candidate)
                    label = self.outcome_label(report, candidate)
                    if outcome is not None:
                        style = _STATUS_STYLES[outcome.status]
                        label = f"[{style}]{label}[/{style}]"

                    resource = candidate.resource
                    display = resource.id if resource.name == resource.id else f"{resource.id} ({resource.name})"
                    table.add_row(
                        resource_type,
                        display,
                        ", ".join(sorted(k.value for k in candidate.matched_rule_kinds)),
                        "yes" if candidate.whitelisted else "no",
                        label,
                    )
            tables.append(table)
        return tables

    def render(self, report: RunReport) -> None:
        """Print the report to the console."""
        if not report.candidates:
            self.console.print("[green]No cleanup candidates found.[/green]")
        for table in self.build_tables(report):
            self.console.print(table)

        if report.scan_failures:
            failures = Table(title="Scan failures")
            failures.add_column("Region")
            failures.add_column("Type")
            failures.add_column("Error")
            for failure in sorted(report.scan_failures, key=lambda f: (f.region, f.resource_type)):
                failures.add_row(failure.region, failure.resource_type, failure.error_code or failure.message)
            self.console.print(failures)

        for defect in report.defects:
            self.console.print(
                f"[red]Evaluation defect[/red] {defect.region}/{defect.resource_type}/{defect.resource_id}: "
                f"{defect.message}"
            )

        self.render_summary(report)

    def render_summary(self, report: RunReport) -> None:
        counts = report.count_by_status()
        parts = [f"{len(report.candidates)} candidates"]
        for status, count in counts.items():
            if count:
                parts.append(f"{count} {status.value}")
        if report.scan_failures:
            parts.append(f"{len(report.scan_failures)} scan failures")
        header = f"[bold]Run {report.run_id}[/bold] ({report.mode.value}, {report.status.value})"
        self.console.print(f"\n{header}: {', '.join(parts)}")

    def to_dict(self, report: RunReport) -> Dict[str, Any]:
        """Structured form of the report, grouped by region then type."""
        regions: Dict[str, Any] = {}
        for region, by_type in report.grouped().items():
            regions[region] = {}
            for resource_type, candidates in by_type.items():
                entries = []
                for candidate in candidates:
                    entry = candidate.to_dict()
                    outcome = report.outcome_for(candidate)
                    entry["outcome"] = self.outcome_label(report, candidate)
                    if outcome is not None:
                        entry["outcome_status"] = outcome.status.value
                        entry["error_code"] = outcome.error_code
                        entry["tier"] = outcome.tier
                    entries.append(entry)
                regions[region][resource_type] = entries

        return {
            "metadata": {
                "version": "1.0",
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
            "run": {
                "run_id": report.run_id,
                "mode": report.mode.value,
                "status": report.status.value,
                "regions": list(report.regions),
                "started_at": _iso(report.started_at),
                "completed_at": _iso(report.completed_at),
                "tasks_total": report.tasks_total,
                "cancelled": report.cancelled,
                "candidates": len(report.candidates),
                "outcomes": {status.value: count for status, count in report.count_by_status().items()},
            },
            "candidates": regions,
            "scan_failures": [
                {
                    "region": f.region,
                    "resource_type": f.resource_type,
                    "error_code": f.error_code,
                    "message": f.message,
                }
                for f in report.scan_failures
            ],
            "defects": [
                {
                    "region": d.region,
                    "resource_type": d.resource_type,
                    "resource_id": d.resource_id,
                    "message": d.message,
                }
                for d in report.defects
            ],
        }

    def export(self, report: RunReport, filepath: str) -> Path:
        """Write the report to a file; ``.json`` gives JSON, anything else YAML."""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.to_dict(report)

        with open(path, "w", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                json.dump(data, f, indent=2, default=str)
            else:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        return path
