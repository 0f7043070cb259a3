# portplan/modules/manager.py
"""
Shared flow of the plan commands (install, upgrade, remove):

  command-line specs -> PackageGraph requests -> resolve() -> InstallPlan
  -> build options applied -> plan printed -> (dry-run stop | ExecutionEngine)
  -> summary printed -> exit code

Only this layer turns errors into exit codes; everything below raises or
returns structured results.
"""

from __future__ import annotations
from typing import Iterable, List, Optional

from rich.console import Console

from portplan.modules import logger as _logger
from portplan.modules import report
from portplan.modules.catalog import PortCatalog
from portplan.modules.engine import ExecutionEngine, FailurePolicy, RunInterrupted, Summary, format_elapsed
from portplan.modules.graph import PackageGraph, ResolutionError
from portplan.modules.identity import InvalidSpecError, PackageSpec
from portplan.modules.plan import BuildOptions, InstallPlan
from portplan.modules.registry import InstalledRegistry

LOG = _logger.Logger("manager")

EXIT_OK = 0
EXIT_FAIL = 1
EXIT_ERROR = 2


class PlanManager:
    name = "plan"
    satisfied_title = "The following packages are already installed:"
    dry_run_exit_code = EXIT_OK

    def __init__(self,
                 catalog: PortCatalog,
                 registry: InstalledRegistry,
                 builder=None,
                 console: Optional[Console] = None,
                 default_triplet: str = "x64-linux",
                 build_options: Optional[BuildOptions] = None):
        self.catalog = catalog
        self.registry = registry
        self.builder = builder
        self.console = console or report.make_console()
        self.default_triplet = default_triplet
        self.build_options = build_options or BuildOptions()
        self.last_summary: Optional[Summary] = None

    def parse_specs(self, args: Iterable[str]) -> List[PackageSpec]:
        return [PackageSpec.parse(arg, self.default_triplet) for arg in args]

    def new_graph(self) -> PackageGraph:
        # frozen view: the plan is computed against the registry as it is now
        return PackageGraph(self.catalog, self.registry.snapshot())

    def seed(self, graph: PackageGraph, specs: List[PackageSpec]):
        """Queue the command's requests on ``graph``. Subclasses must override this."""
        raise NotImplementedError(f"{type(self).__name__} does not implement seed()")

    def plan(self, specs: List[PackageSpec]) -> InstallPlan:
        graph = self.new_graph()
        self.seed(graph, specs)
        graph.validate()
        plan = graph.resolve()
        plan.apply_build_options(self.build_options)
        return plan

    def run(self, args: Iterable[str], execute: bool = False, keep_going: bool = False,
            report_path: Optional[str] = None) -> int:
        try:
            specs = self.parse_specs(args)
            plan = self.plan(specs)
        except InvalidSpecError as e:
            self.console.print(f"Error: {e}", style="red")
            return EXIT_FAIL
        except ResolutionError as e:
            LOG.error(f"{self.name}: resolution failed: {e}")
            report.print_resolution_error(self.console, e)
            return EXIT_FAIL
        return self.execute_plan(plan, execute=execute, keep_going=keep_going, report_path=report_path)

    def execute_plan(self, plan: InstallPlan, execute: bool = False, keep_going: bool = False,
                     report_path: Optional[str] = None) -> int:
        report.print_plan(self.console, plan, satisfied_title=self.satisfied_title)
        if not plan.has_work():
            return EXIT_OK
        if not execute:
            self.console.print(
                "If you are sure you want to apply the above plan, run this command with the --execute option.",
                style="yellow")
            return self.dry_run_exit_code
        if self.builder is None:
            self.console.print("Error: no builder configured", style="red")
            return EXIT_ERROR

        engine = ExecutionEngine(self.builder)
        try:
            summary = engine.run(plan, FailurePolicy.from_keep_going(keep_going))
        except RunInterrupted as e:
            self.last_summary = e.summary
            report.print_summary(self.console, e.summary)
            if report_path:
                report.write_report(report_path, report.summary_report(plan, e.summary))
            raise
        self.last_summary = summary

        self.console.print(f"\nTotal elapsed time: {format_elapsed(summary.total_elapsed)}\n")
        if keep_going or summary.failed:
            report.print_summary(self.console, summary)
        if report_path:
            written = report.write_report(report_path, report.summary_report(plan, summary))
            LOG.info(f"Wrote report to {written}")
        return EXIT_FAIL if summary.failed else EXIT_OK
