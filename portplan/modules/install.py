# portplan/modules/install.py
"""Install command: build and install the requested ports plus any missing dependencies."""

from __future__ import annotations
from typing import List

from portplan.modules.graph import PackageGraph
from portplan.modules.identity import PackageSpec
from portplan.modules.manager import PlanManager


class InstallManager(PlanManager):
    name = "install"

    def __init__(self, *args, rebuild: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.rebuild = rebuild

    def seed(self, graph: PackageGraph, specs: List[PackageSpec]):
        for spec in specs:
            if self.rebuild:
                graph.request_rebuild(spec)
            else:
                graph.request_install(spec)
