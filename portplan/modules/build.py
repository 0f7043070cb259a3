# portplan/modules/build.py
"""
Default "build one action" operation used by the execution engine.

For each port the recipe's ``build`` commands run through the shell inside
``<buildtrees_dir>/<name>/<triplet>``, with the port described by
environment variables:

  PORTPLAN_NAME, PORTPLAN_VERSION, PORTPLAN_TRIPLET, PORTPLAN_PORT_DIR,
  PORTPLAN_BUILDTREE, PORTPLAN_USE_HEAD, PORTPLAN_ALLOW_DOWNLOADS

The package is marked half-installed before its commands run and recorded as
installed only when all of them succeed, so an interrupted build leaves a
visible trace in installed_db.
"""

from __future__ import annotations
import os
import shutil
import subprocess
from typing import Dict, Optional

from portplan.modules import logger as _logger
from portplan.modules.catalog import PortCatalog, PortMetadata
from portplan.modules.engine import BuildError
from portplan.modules.identity import PackageSpec
from portplan.modules.plan import BuildOptions
from portplan.modules.registry import InstalledRegistry

LOG = _logger.Logger("build")


class RecipeBuilder:
    def __init__(self,
                 catalog: PortCatalog,
                 registry: InstalledRegistry,
                 buildtrees_dir: str = "buildtrees",
                 timeout: Optional[float] = None):
        self.catalog = catalog
        self.registry = registry
        self.buildtrees_dir = os.path.abspath(buildtrees_dir)
        self.timeout = timeout

    def buildtree_for(self, spec: PackageSpec) -> str:
        return os.path.join(self.buildtrees_dir, spec.name, spec.triplet)

    def _environment(self, spec: PackageSpec, meta: PortMetadata, options: BuildOptions) -> Dict[str, str]:
        env = os.environ.copy()
        env.update({
            "PORTPLAN_NAME": spec.name,
            "PORTPLAN_VERSION": meta.version,
            "PORTPLAN_TRIPLET": spec.triplet,
            "PORTPLAN_PORT_DIR": meta.port_dir or "",
            "PORTPLAN_BUILDTREE": self.buildtree_for(spec),
            "PORTPLAN_USE_HEAD": "1" if options.use_head_version else "0",
            "PORTPLAN_ALLOW_DOWNLOADS": "1" if options.allow_downloads else "0",
        })
        return env

    def build(self, spec: PackageSpec, options: BuildOptions):
        meta = self.catalog.lookup(spec.name)
        if meta is None:
            raise BuildError(f"No portfile for {spec}")
        workdir = self.buildtree_for(spec)
        os.makedirs(workdir, exist_ok=True)
        env = self._environment(spec, meta, options)

        self.registry.mark_half_installed(spec, meta.version)
        for cmd in meta.build_commands:
            LOG.info(f"[{spec}] {cmd}")
            try:
                subprocess.run(cmd, shell=True, check=True, cwd=workdir, env=env, timeout=self.timeout)
            except subprocess.CalledProcessError as e:
                raise BuildError(f"'{cmd}' exited with status {e.returncode}") from e
            except subprocess.TimeoutExpired as e:
                raise BuildError(f"'{cmd}' timed out after {e.timeout}s") from e
            except OSError as e:
                raise BuildError(f"'{cmd}' could not be started: {e}") from e

        self.registry.record_install(spec, meta.version, meta.features, meta.dependencies)
        if options.clean_build_tree_after:
            shutil.rmtree(workdir, ignore_errors=True)
            LOG.debug(f"Removed build tree {workdir}")

    def remove(self, spec: PackageSpec):
        if not self.registry.remove(spec):
            raise BuildError(f"{spec} is not installed")
        shutil.rmtree(self.buildtree_for(spec), ignore_errors=True)
