#!/usr/bin/env python3
"""
run.py – CLI entry-point: publish a saved test report to TestRail.

A report is written by the pytest plugin (``--testrail-save report.json``) and
published here, outside the test process.

Usage:
    python run.py report.json
    python run.py report.json --mode create_cases
    python run.py report.json --dry-run
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from config import RunMode, Settings
from models import PublishRequest, PublishSummary, TestSection
from publisher import send_report, suite_cases
from testrail_client import TestRailClient

console = Console()

# ── Logging ─────────────────────────────────────────────────────────────

def _configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, markup=False)],
    )


# ── Pretty output helpers ──────────────────────────────────────────────

def _add_section(parent: Tree, section: TestSection) -> None:
    branch = parent.add(f"[bold]{escape(section.name)}[/]")
    for child in section.sections:
        _add_section(branch, child)
    for case in section.cases:
        failed = sum(1 for s in case.steps if not s.passed)
        mark = "[red]✗[/]" if failed else "[green]✓[/]"
        branch.add(f"{mark} {escape(case.title)}  [dim]({len(case.steps)} steps)[/]")


def _show_report(request: PublishRequest) -> None:
    root = Tree("[bold cyan]Collected tests[/]")
    for suite in request.suites:
        branch = root.add(f"[bold magenta]{escape(suite.name)}[/]")
        for section in suite.sections:
            _add_section(branch, section)
    console.print(root)


def _show_results(summary: PublishSummary) -> None:
    table = Table(title="TestRail Sync", show_lines=True)
    table.add_column("Suite", style="bold")
    table.add_column("Id", width=6, justify="right")
    table.add_column("Cases", width=6, justify="right")
    table.add_column("Run", width=8)

    runs = {run.suite_id: run for run in summary.runs}
    for rs in summary.suites:
        run = runs.get(rs.suite.id)
        table.add_row(
            rs.suite.name,
            str(rs.suite.id),
            str(sum(1 for _ in suite_cases(rs))),
            f"#{run.id}" if run else "-",
        )
    console.print(table)


# ── Core orchestration ─────────────────────────────────────────────────

def load_report(path: Path, mode: Optional[str] = None) -> PublishRequest:
    """Read a saved report; connection settings come from the environment."""
    request = PublishRequest.from_dict(json.loads(path.read_text(encoding="utf-8")))
    request.options = request.options.merged(
        domain=Settings.TESTRAIL_DOMAIN or None,
        username=Settings.TESTRAIL_USERNAME or None,
        api_token=Settings.TESTRAIL_API_TOKEN or None,
        project_id=Settings.TESTRAIL_PROJECT_ID or None,
        mode=RunMode.parse(mode) if mode else None,
    )
    return request


def run(
    path: Path,
    mode: Optional[str] = None,
    dry_run: bool = False,
    client: Optional[TestRailClient] = None,
) -> Optional[PublishSummary]:
    """Load → Show → Reconcile + Publish."""
    # ── Phase 1: Load ───────────────────────────────────────────────
    console.rule("[bold blue]Phase 1 · Load Report")
    request = load_report(path, mode)
    _show_report(request)

    if dry_run:
        console.print("\n[yellow bold]DRY RUN[/] – nothing sent to TestRail.")
        return None

    if request.options.mode is RunMode.DO_NOTHING:
        console.print("[dim]Mode 'do_nothing' – nothing to do.[/]")
        return None

    missing = request.options.missing()
    if missing:
        raise ValueError(f"Missing TestRail settings: {', '.join(missing)}")

    # ── Phase 2: Sync ───────────────────────────────────────────────
    console.rule(f"[bold blue]Phase 2 · Sync ({request.options.mode.value})")
    summary = send_report(request, client)
    _show_results(summary)
    return summary


# ── CLI ─────────────────────────────────────────────────────────────────

def main() -> None:
    parser = argparse.ArgumentParser(
        prog="testrail-sync",
        description="Publish a saved pytest report to TestRail.",
    )
    parser.add_argument("report", type=Path, help="JSON file written by --testrail-save.")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in RunMode if m is not RunMode.DO_NOTHING],
        default=None,
        help="Override the mode stored in the report.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Show the collected tree but do NOT contact TestRail.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug-level logging.",
    )
    args = parser.parse_args()

    _configure_logging(args.verbose)

    console.print(
        Panel(
            "[bold white]testrail-sync[/]  –  pytest results → TestRail",
            border_style="bright_magenta",
        )
    )

    if not args.dry_run:
        Settings.validate()

    try:
        run(args.report, mode=args.mode, dry_run=args.dry_run)
    except KeyboardInterrupt:
        console.print("\n[red]Aborted by user.[/]")
        sys.exit(130)
    except Exception as exc:
        console.print(f"\n[red bold]Error:[/] {exc}")
        logging.getLogger("testrail-sync").debug("Traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
