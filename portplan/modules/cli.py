# portplan/modules/cli.py
"""
Central CLI for portplan.

- Uses rich for colored output and tables.
- Dry-run by default (use --execute, alias --no-dry-run, to apply).
- --keep-going continues past failed builds, skipping only their dependents.

Usage examples:
  portplan install zlib libpng:x64-linux
  portplan install zlib --execute --keep-going
  portplan upgrade --execute            # every outdated package
  portplan upgrade openssl --report upgrade.json --execute
  portplan remove libpng --execute
  portplan remove zlib --force --execute  # even if libpng still needs it
  portplan outdated
"""

from __future__ import annotations
import argparse
import os
import sys
import traceback
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from portplan.modules import logger as _logger
from portplan.modules.build import RecipeBuilder
from portplan.modules.catalog import PortCatalog
from portplan.modules.config import PortplanConfig, config as default_config
from portplan.modules.install import InstallManager
from portplan.modules.manager import EXIT_ERROR, EXIT_OK
from portplan.modules.plan import BuildOptions
from portplan.modules.registry import InstalledRegistry
from portplan.modules.remove import Remover
from portplan.modules.report import make_console
from portplan.modules.upgrade import UpgradeManager, find_outdated_packages

LOG = _logger.Logger("cli")


class CLI:
    def __init__(self, console: Console, conf: PortplanConfig, args: argparse.Namespace):
        self.console = console
        self.conf = conf
        recipes_dir = args.recipes or conf.getpath("portplan", "recipes_dir")
        installed_db = args.installed_db or conf.getpath("portplan", "installed_db")
        self.triplet = args.triplet or conf.get("portplan", "default_triplet")
        self.catalog = PortCatalog.from_directory(recipes_dir)
        self.registry = InstalledRegistry(installed_db)
        self.builder = RecipeBuilder(self.catalog, self.registry,
                                     buildtrees_dir=conf.getpath("portplan", "buildtrees_dir"))
        LOG.debug(f"recipes={recipes_dir} installed_db={installed_db} triplet={self.triplet}")

    def _manager(self, cls, **kwargs):
        return cls(self.catalog, self.registry, builder=self.builder, console=self.console,
                   default_triplet=self.triplet, **kwargs)

    # -----------------------
    # install / upgrade / remove
    # -----------------------
    def cmd_install(self, args: argparse.Namespace) -> int:
        options = BuildOptions(
            use_head_version=args.head,
            allow_downloads=not args.no_downloads,
            clean_build_tree_after=args.clean_after_build,
        )
        mgr = self._manager(InstallManager, build_options=options, rebuild=args.rebuild)
        return mgr.run(args.packages, execute=args.execute, keep_going=args.keep_going, report_path=args.report)

    def cmd_upgrade(self, args: argparse.Namespace) -> int:
        mgr = self._manager(UpgradeManager)
        return mgr.run(args.packages, execute=args.execute, keep_going=args.keep_going, report_path=args.report)

    def cmd_remove(self, args: argparse.Namespace) -> int:
        mgr = self._manager(Remover, force=args.force)
        return mgr.run(args.packages, execute=args.execute, keep_going=args.keep_going, report_path=args.report)

    # -----------------------
    # outdated
    # -----------------------
    def cmd_outdated(self, args: argparse.Namespace) -> int:
        outdated = find_outdated_packages(self.catalog, self.registry.snapshot())
        if not outdated:
            self.console.print("All installed packages are up-to-date with the local portfiles.", style="green")
            return EXIT_OK
        table = Table(title="Outdated packages")
        table.add_column("Package", style="bold")
        table.add_column("Installed")
        table.add_column("Portfile")
        for o in outdated:
            table.add_row(str(o.spec), o.installed, o.available)
        self.console.print(table)
        return EXIT_OK


def _add_plan_options(p: argparse.ArgumentParser):
    p.add_argument("--execute", "--no-dry-run", dest="execute", action="store_true",
                   help="Actually apply the plan (default is dry-run)")
    p.add_argument("--keep-going", action="store_true", help="Continue with independent packages on failure")
    p.add_argument("--report", help="Write a JSON report of the run to this file")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="portplan", description="Resolve and build source ports in dependency order")
    ap.add_argument("--conf", help="Path to portplan.conf")
    ap.add_argument("--recipes", help="Override recipes directory")
    ap.add_argument("--installed-db", help="Override installed_db path")
    ap.add_argument("--triplet", help="Default triplet for specs without one")
    ap.add_argument("--no-color", action="store_true", help="Disable colored output")
    ap.add_argument("--quiet", action="store_true", help="Suppress console output")
    ap.add_argument("--verbose", "-v", action="store_true", help="Show debug log messages")
    sub = ap.add_subparsers(dest="command")
    sub.required = True

    p = sub.add_parser("install", aliases=["i"], help="Build and install packages")
    p.add_argument("packages", nargs="+", help="name[:triplet]")
    _add_plan_options(p)
    p.add_argument("--rebuild", action="store_true", help="Rebuild even if already installed")
    p.add_argument("--head", action="store_true", help="Build the latest upstream sources")
    p.add_argument("--no-downloads", action="store_true", help="Do not download sources")
    p.add_argument("--clean-after-build", action="store_true", help="Remove build trees after each build")
    p.set_defaults(handler="cmd_install")

    p = sub.add_parser("upgrade", aliases=["up"], help="Rebuild packages whose portfile version changed")
    p.add_argument("packages", nargs="*", help="name[:triplet] (default: every outdated package)")
    _add_plan_options(p)
    p.set_defaults(handler="cmd_upgrade")

    p = sub.add_parser("remove", aliases=["rm"], help="Remove installed packages")
    p.add_argument("packages", nargs="+", help="name[:triplet]")
    _add_plan_options(p)
    p.add_argument("--force", action="store_true",
                   help="Remove even if other installed packages depend on it")
    p.set_defaults(handler="cmd_remove")

    p = sub.add_parser("outdated", help="List installed packages with a different portfile version")
    p.set_defaults(handler="cmd_outdated")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console = make_console(no_color=args.no_color, quiet=args.quiet)
    _logger.Logger.configure(level="debug" if args.verbose else None, to_console=False if args.quiet else None)
    conf = default_config
    if args.conf:
        if not os.path.isfile(args.conf):
            console.print(f"Error: configuration file not found: {args.conf}", style="red")
            return EXIT_ERROR
        conf = PortplanConfig(locations=[args.conf], required=True)
    try:
        cli = CLI(console, conf, args)
        return getattr(cli, args.handler)(args)
    except KeyboardInterrupt:
        console.print("Interrupted", style="yellow")
        return 130
    except Exception as e:
        LOG.error(f"{args.command} failed: {e}")
        LOG.debug(traceback.format_exc())
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
