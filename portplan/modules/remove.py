# portplan/modules/remove.py
"""Remove command: drop installed packages, dependents first."""

from __future__ import annotations
from typing import List

from portplan.modules.graph import PackageGraph
from portplan.modules.identity import PackageSpec
from portplan.modules.manager import PlanManager


class Remover(PlanManager):
    name = "remove"

    def __init__(self, *args, force: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.force = force

    def seed(self, graph: PackageGraph, specs: List[PackageSpec]):
        for spec in specs:
            graph.request_remove(spec, force=self.force)
