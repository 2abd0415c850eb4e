"""Render an Analysis for the terminal and as a markdown report."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from rigsmith.analysis.model import SERVICE_CATEGORIES
from rigsmith.classify import is_secret_key
from rigsmith.generators.base import slugify

if TYPE_CHECKING:
    from pathlib import Path

    from rich.console import Console

    from rigsmith.analysis.model import Analysis

logger = logging.getLogger(__name__)

REPORTS_DIR = "infra-reports"

_CATEGORY_TITLES = {
    "database": "Databases",
    "cache": "Caching",
    "queue": "Message Queues",
    "storage": "Storage",
}

_TOOLING = (
    ("Docker", "has_container_build"),
    ("Kubernetes", "has_orchestration"),
    ("Terraform", "has_provisioning_code"),
    ("CI/CD", "has_ci"),
)


def render_analysis(analysis: Analysis, console: Console) -> None:
    """Print the analysis with rich panels and tables."""
    from rich.panel import Panel
    from rich.table import Table

    console.print(
        Panel(
            f"Type: [cyan]{analysis.project_type or 'Not detected'}[/]\n"
            f"Tech stack: [cyan]{', '.join(analysis.tech_stack) or 'Not detected'}[/]\n"
            f"Package manager: [cyan]{analysis.package_manager or 'Not detected'}[/]\n"
            f"Dependencies: [bold]{len(analysis.dependencies)}[/]",
            title=f"Project: {analysis.project_name}",
            border_style="blue",
        )
    )

    if analysis.services:
        services = Table(title="Detected services", box=None, padding=(0, 1))
        services.add_column("category", style="cyan")
        services.add_column("type")
        services.add_column("evidence", style="dim")
        for service in analysis.services:
            services.add_row(service.category, service.type, service.evidence_source)
        console.print(services)
        console.print()

    if analysis.endpoints:
        ports = Table(title="Ports", box=None, padding=(0, 1))
        ports.add_column("port", justify="right", style="cyan")
        ports.add_column("container", justify="right")
        ports.add_column("process")
        ports.add_column("source", style="dim")
        for endpoint in analysis.endpoints:
            ports.add_row(
                str(endpoint.port),
                str(endpoint.container_port or ""),
                endpoint.process or "",
                endpoint.source,
            )
        console.print(ports)
        console.print()

    if analysis.env_keys:
        sensitive = sum(1 for key in analysis.env_keys if is_secret_key(key))
        console.print(
            f"  Environment: [bold]{len(analysis.env_keys)}[/] keys "
            f"({sensitive} sensitive, values never read)"
        )
        console.print()

    tooling = Table(title="Existing infrastructure", show_header=False, box=None, padding=(0, 1))
    tooling.add_column("tool", style="cyan")
    tooling.add_column("status")
    for label, attr in _TOOLING:
        present = getattr(analysis, attr)
        tooling.add_row(label, "[green]yes[/]" if present else "[red]no[/]")
    console.print(tooling)
    console.print()

    infra = analysis.infrastructure
    if infra is not None:
        console.print(
            Panel(
                f"Provider: [cyan]{infra.provider}[/]\n"
                f"Resources: [bold]{infra.resource_count}[/] "
                f"({', '.join(infra.resource_types)})\n"
                f"Estimated monthly cost: [green]${infra.estimated_monthly_cost:,.2f}[/]",
                title="Cloud resources",
                border_style="cyan",
            )
        )
        if infra.failed_categories:
            console.print(
                f"  [yellow]Unavailable categories: {', '.join(infra.failed_categories)}[/]"
            )
        console.print()

    if analysis.recommendations:
        console.print("[bold yellow]Recommendations[/]")
        for index, item in enumerate(analysis.recommendations, 1):
            console.print(f"  {index}. {item}")
        console.print()

    if analysis.suggestions:
        console.print("[bold blue]Suggested next steps[/]")
        for suggestion in analysis.suggestions:
            console.print(f"  [blue]{suggestion.command}[/]  {suggestion.description}")


def render_markdown(analysis: Analysis, generated_at: str | None = None) -> str:
    """Markdown version of the analysis, suitable for committing."""
    stamp = generated_at or datetime.now(timezone.utc).isoformat(timespec="seconds")
    lines = [
        "# Infrastructure Analysis Report",
        "",
        f"**Generated:** {stamp}",
        f"**Project:** {analysis.project_name}",
        "",
        "## Project Overview",
        "",
        f"- **Type:** {analysis.project_type or 'Not detected'}",
        f"- **Technology Stack:** {', '.join(analysis.tech_stack) or 'Not detected'}",
        f"- **Package Manager:** {analysis.package_manager or 'Not detected'}",
        f"- **Dependencies:** {len(analysis.dependencies)} packages",
        "",
    ]

    if analysis.services:
        lines += ["## Detected Services", ""]
        for category in SERVICE_CATEGORIES:
            found = [s for s in analysis.services if s.category == category]
            if not found:
                continue
            lines.append(f"### {_CATEGORY_TITLES[category]}")
            lines += [f"- {s.type} (via `{s.evidence_source}`)" for s in found]
            lines.append("")

    if analysis.endpoints:
        lines += [
            "## Ports",
            "",
            "| Port | Container Port | Process | Source |",
            "|------|----------------|---------|--------|",
        ]
        for e in analysis.endpoints:
            lines.append(
                f"| {e.port} | {e.container_port or e.port} | {e.process or 'N/A'} | {e.source} |"
            )
        lines.append("")

    if analysis.env_keys:
        lines += ["## Environment Configuration", ""]
        for key in analysis.env_keys:
            marker = " (sensitive)" if is_secret_key(key) else ""
            lines.append(f"- `{key}`{marker}")
        lines.append("")

    lines += ["## Infrastructure Status", "", "| Component | Status |", "|-----------|--------|"]
    for label, attr in _TOOLING:
        lines.append(f"| {label} | {'Configured' if getattr(analysis, attr) else 'Not found'} |")
    lines.append("")
    if analysis.infra_files:
        lines.append("Existing files: " + ", ".join(f"`{f}`" for f in analysis.infra_files))
        lines.append("")

    infra = analysis.infrastructure
    if infra is not None:
        lines += [
            "## Cloud Resources",
            "",
            f"- **Provider:** {infra.provider}",
            f"- **Total Resources:** {infra.resource_count}",
            f"- **Resource Types:** {', '.join(infra.resource_types)}",
            f"- **Estimated Monthly Cost:** ${infra.estimated_monthly_cost:,.2f}",
            "",
        ]

    if analysis.recommendations:
        lines += ["## Recommendations", ""]
        lines += [f"{i}. {item}" for i, item in enumerate(analysis.recommendations, 1)]
        lines.append("")

    if analysis.suggestions:
        lines += ["## Next Steps", ""]
        lines += [f"- `{s.command}`: {s.description}" for s in analysis.suggestions]
        lines.append("")

    lines += ["---", "*Generated by rigsmith*"]
    return "\n".join(lines) + "\n"


def save_report(analysis: Analysis, base_dir: Path, generated_at: str | None = None) -> Path:
    """Write the markdown report to ``infra-reports/<project>-analysis.md``."""
    reports = base_dir / REPORTS_DIR
    reports.mkdir(parents=True, exist_ok=True)
    path = reports / f"{slugify(analysis.project_name)}-analysis.md"
    path.write_text(render_markdown(analysis, generated_at), encoding="utf-8")
    logger.info("Saved analysis report to %s", path)
    return path
