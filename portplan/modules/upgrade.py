# portplan/modules/upgrade.py
"""
upgrade.py - rebuild installed packages whose portfile version changed.

Behaviors:
 - With explicit specs, each must be installed and have a portfile; every
   problem is reported together and nothing is built if any is found.
 - Without specs, every outdated package is upgraded.
 - Versions are compared for equality only: an installed version that is
   newer than the portfile is rebuilt too.
 - Dry-run by default; a dry-run with pending work exits with failure so
   scripts notice that nothing was applied.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional

from portplan.modules import logger as _logger
from portplan.modules.catalog import PortCatalog
from portplan.modules.graph import PackageGraph
from portplan.modules.identity import PackageSpec
from portplan.modules.manager import EXIT_FAIL, EXIT_OK, PlanManager
from portplan.modules.plan import BuildOptions
from portplan.modules.registry import RegistrySnapshot

LOG = _logger.Logger("upgrade")

UPGRADE_BUILD_OPTIONS = BuildOptions(
    use_head_version=False,
    allow_downloads=True,
    clean_build_tree_after=False,
)


@dataclass(frozen=True)
class OutdatedPackage:
    spec: PackageSpec
    installed: str
    available: str


def find_outdated_packages(catalog: PortCatalog, snapshot: RegistrySnapshot) -> List[OutdatedPackage]:
    """Installed packages whose portfile declares a different version, in spec order."""
    outdated = []
    for record in snapshot.installed():
        meta = catalog.lookup(record.spec.name)
        if meta is None:
            LOG.debug(f"No portfile for installed package {record.spec}")
            continue
        if meta.version != record.version:
            outdated.append(OutdatedPackage(record.spec, record.version, meta.version))
    return outdated


class UpgradeManager(PlanManager):
    name = "upgrade"
    satisfied_title = "The following packages are up-to-date:"
    dry_run_exit_code = EXIT_FAIL

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("build_options", UPGRADE_BUILD_OPTIONS)
        super().__init__(*args, **kwargs)

    def seed(self, graph: PackageGraph, specs: List[PackageSpec]):
        if specs:
            for spec in specs:
                graph.request_upgrade(spec)
            return
        for outdated in find_outdated_packages(self.catalog, graph.snapshot):
            graph.request_upgrade(outdated.spec)

    def run(self, args: Iterable[str], execute: bool = False, keep_going: bool = False,
            report_path: Optional[str] = None) -> int:
        args = list(args)
        if not args and not find_outdated_packages(self.catalog, self.registry.snapshot()):
            self.console.print("All installed packages are up-to-date with the local portfiles.", style="green")
            return EXIT_OK
        return super().run(args, execute=execute, keep_going=keep_going, report_path=report_path)
