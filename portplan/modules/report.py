# portplan/modules/report.py
"""Console rendering (rich) and JSON reports for plans and summaries."""

from __future__ import annotations
import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from portplan.modules.engine import Outcome, Summary, format_elapsed
from portplan.modules.graph import ResolutionError
from portplan.modules.identity import PackageSpec
from portplan.modules.plan import BuildReason, InstallPlan

OUTCOME_STYLES = {
    Outcome.SUCCEEDED: "green",
    Outcome.FAILED: "red",
    Outcome.SKIPPED: "yellow",
}

REASON_LABELS = {
    BuildReason.NOT_INSTALLED: "build + install",
    BuildReason.DEPENDENCY_CHANGED: "build + install (dependency)",
    BuildReason.VERSION_MISMATCH: "rebuild",
    BuildReason.EXPLICIT_REBUILD: "rebuild (requested)",
}


def make_console(no_color: bool = False, quiet: bool = False) -> Console:
    if no_color:
        return Console(color_system=None, force_terminal=False, markup=False, quiet=quiet)
    return Console(quiet=quiet)


def print_spec_group(console: Console, title: str, specs: Iterable[PackageSpec], style: str):
    specs = list(specs)
    if not specs:
        return
    console.print(title, style=style)
    for spec in specs:
        console.print(f"    {spec}", highlight=False)
    console.print()


def print_resolution_error(console: Console, error: ResolutionError):
    print_spec_group(console, "The following packages are not installed:", error.not_installed, "red")
    print_spec_group(console, "The following packages do not have a valid portfile:", error.no_portfile, "red")
    for problem in error.has_dependents:
        print_spec_group(console, f"{problem.spec} is required by the following installed packages:",
                         problem.dependents, "red")
    if error.has_dependents:
        console.print("Remove them as well, or pass --force to remove anyway.", style="yellow")
    for cycle in error.cycles:
        console.print(Panel(" -> ".join(str(s) for s in cycle.specs), title="dependency cycle", style="red"))


def print_plan(console: Console, plan: InstallPlan,
               satisfied_title: str = "The following packages are already installed:"):
    print_spec_group(console, satisfied_title,
                     [a.spec for a in plan.satisfied()], "green")
    if not plan.has_work():
        return
    table = Table(title="Install plan", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Package", style="bold")
    table.add_column("Action")
    table.add_column("Version")
    step = 0
    for action in plan.removes():
        step += 1
        table.add_row(str(step), str(action.spec), "remove", action.version)
    for action in plan.builds():
        step += 1
        table.add_row(str(step), str(action.spec), REASON_LABELS[action.reason], action.version)
    console.print(table)


def print_summary(console: Console, summary: Summary):
    table = Table(title="Summary")
    table.add_column("Package", style="bold")
    table.add_column("Action")
    table.add_column("Result")
    table.add_column("Elapsed", justify="right")
    for r in summary.results:
        table.add_row(str(r.spec), r.kind, Text(r.describe(), style=OUTCOME_STYLES[r.outcome]),
                      format_elapsed(r.elapsed))
    console.print(table)


def summary_report(plan: InstallPlan, summary: Summary) -> Dict[str, Any]:
    report = {"generated_at": datetime.now(timezone.utc).isoformat()}
    report.update(plan.to_dict())
    report["summary"] = summary.to_dict()
    return report


def write_report(path: str, report: Dict[str, Any]) -> str:
    path = os.path.abspath(path)
    dirp = os.path.dirname(path)
    if dirp:
        os.makedirs(dirp, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(report, fh, indent=2, ensure_ascii=False)
    return path

