# portplan/modules/registry.py
"""
Installed package registry.

Format of installed_db (JSON):
{
  "<name>:<triplet>": {
      "name": "<name>",
      "triplet": "<triplet>",
      "version": "1.0",
      "features": ["core"],
      "depends": ["dep1", "dep2"],
      "state": "installed" | "half-installed",
      "updated_at": "2025-09-19T..."
  },
  ...
}

``InstalledRegistry`` is the live handle the builder writes to while a plan
runs. Planning only ever sees a ``RegistrySnapshot`` taken before execution.
"""

from __future__ import annotations
import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple, Union

from portplan.modules import logger as _logger
from portplan.modules.identity import InvalidSpecError, PackageSpec

LOG = _logger.Logger("registry")


def now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _names(value: Any) -> Tuple[str, ...]:
    """A single name or a list of names, stripped, without empties."""
    if not value:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValueError(f"expected a list of names, got {type(value).__name__}")
    return tuple(str(v).strip() for v in value if str(v).strip())


class InstallState(Enum):
    INSTALLED = "installed"
    NOT_PRESENT = "not-present"
    HALF_INSTALLED = "half-installed"


@dataclass(frozen=True)
class InstalledRecord:
    spec: PackageSpec
    version: str
    features: Tuple[str, ...] = ()
    depends: Tuple[str, ...] = ()
    state: InstallState = InstallState.INSTALLED

    @property
    def is_installed(self) -> bool:
        return self.state is InstallState.INSTALLED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.spec.name,
            "triplet": self.spec.triplet,
            "version": self.version,
            "features": list(self.features),
            "depends": list(self.depends),
            "state": self.state.value,
        }

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any]) -> "InstalledRecord":
        name, _, triplet = key.partition(":")
        spec = PackageSpec(data.get("name", name), data.get("triplet", triplet))
        return cls(
            spec=spec,
            version=str(data.get("version", "")),
            features=_names(data.get("features")),
            depends=_names(data.get("depends")),
            state=InstallState(data.get("state", InstallState.INSTALLED.value)),
        )


class RegistrySnapshot:
    """Immutable, point-in-time view of the installed packages."""

    def __init__(self, records: Iterable[InstalledRecord] = ()):
        self._records = MappingProxyType({r.spec: r for r in records})

    def lookup(self, spec: PackageSpec) -> Optional[InstalledRecord]:
        return self._records.get(spec)

    def installed(self) -> Iterator[InstalledRecord]:
        """Fully installed records only, in spec order."""
        return (r for r in self if r.is_installed)

    def __iter__(self) -> Iterator[InstalledRecord]:
        return iter(sorted(self._records.values(), key=lambda r: r.spec))

    def __len__(self) -> int:
        return len(self._records)


class InstalledRegistry:
    def __init__(self, installed_db: Union[str, Dict[str, Any], None] = None):
        """
        installed_db: path to the JSON database, or an already loaded dict
        (kept in memory only).
        """
        self.db_path: Optional[str] = None
        self._records: Dict[PackageSpec, InstalledRecord] = {}
        if isinstance(installed_db, dict):
            raw = installed_db
        elif installed_db:
            self.db_path = os.path.abspath(installed_db)
            raw = self._read(self.db_path)
        else:
            raw = {}
        for key, data in raw.items():
            try:
                record = InstalledRecord.from_dict(key, data)
            except (InvalidSpecError, ValueError, AttributeError) as e:
                LOG.warning(f"Ignoring malformed installed_db entry {key!r}: {e}")
                continue
            self._records[record.spec] = record

    @staticmethod
    def _read(path: str) -> Dict[str, Any]:
        if not os.path.exists(path):
            return {}
        with open(path, "r", encoding="utf-8") as fh:
            try:
                data = json.load(fh)
            except ValueError as e:
                LOG.error(f"Failed to read installed_db {path}: {e}")
                return {}
        if not isinstance(data, dict):
            LOG.error(f"installed_db {path} is not a JSON object")
            return {}
        return data

    def lookup(self, spec: PackageSpec) -> Optional[InstalledRecord]:
        return self._records.get(spec)

    def records(self) -> Iterator[InstalledRecord]:
        return iter(sorted(self._records.values(), key=lambda r: r.spec))

    def snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(self._records.values())

    # -------------------------
    # Mutation (execution time only)
    # -------------------------
    def record_install(self, spec: PackageSpec, version: str, features=(), depends=()):
        self._records[spec] = InstalledRecord(spec, version, tuple(features), tuple(depends))
        self.save()

    def mark_half_installed(self, spec: PackageSpec, version: str):
        current = self._records.get(spec)
        self._records[spec] = InstalledRecord(
            spec,
            version,
            current.features if current else (),
            current.depends if current else (),
            InstallState.HALF_INSTALLED,
        )
        self.save()

    def remove(self, spec: PackageSpec) -> bool:
        removed = self._records.pop(spec, None) is not None
        if removed:
            self.save()
        return removed

    def save(self):
        if not self.db_path:
            return
        dirp = os.path.dirname(self.db_path)
        if dirp:
            os.makedirs(dirp, exist_ok=True)
        stamp = now_iso()
        data = {}
        for record in self.records():
            entry = record.to_dict()
            entry["updated_at"] = stamp
            data[str(record.spec)] = entry
        tmp = self.db_path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
        os.replace(tmp, self.db_path)
        LOG.debug(f"installed_db saved to {self.db_path}")
