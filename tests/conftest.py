"""Shared fixtures: in-memory catalogs, registry snapshots and a recording builder."""

import pytest

from portplan.modules.catalog import PortCatalog, PortMetadata
from portplan.modules.engine import BuildError
from portplan.modules.identity import PackageSpec
from portplan.modules.registry import InstallState, InstalledRecord, InstalledRegistry, RegistrySnapshot

TRIPLET = "x64-linux"


def _spec(name, triplet=TRIPLET):
    return PackageSpec(name, triplet)


def _catalog(ports):
    """ports: {name: (version, [dependency names])}"""
    return PortCatalog({
        name: PortMetadata(name, version, tuple(deps))
        for name, (version, deps) in ports.items()
    })


def _records(installed):
    """installed: {name: version} or {name: (version, state)} or {name: (version, state, depends)}"""
    records = []
    for name, value in installed.items():
        if isinstance(value, tuple):
            version, state = value[0], value[1]
            depends = tuple(value[2]) if len(value) > 2 else ()
        else:
            version, state, depends = value, InstallState.INSTALLED, ()
        records.append(InstalledRecord(_spec(name), version, depends=depends, state=state))
    return records


class FakeBuilder:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []
        self.options = []
        self.removed = []

    def build(self, spec, options):
        self.calls.append(spec)
        self.options.append(options)
        if spec.name in self.failing:
            raise BuildError(f"build of {spec.name} failed")

    def remove(self, spec):
        self.removed.append(spec)
        if spec.name in self.failing:
            raise BuildError(f"removal of {spec.name} failed")


@pytest.fixture
def spec():
    return _spec


@pytest.fixture
def make_catalog():
    return _catalog


@pytest.fixture
def make_snapshot():
    return lambda installed: RegistrySnapshot(_records(installed))


@pytest.fixture
def make_registry():
    return lambda installed: InstalledRegistry({str(r.spec): r.to_dict() for r in _records(installed)})


@pytest.fixture
def builder_factory():
    return FakeBuilder
