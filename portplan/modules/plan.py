# portplan/modules/plan.py
"""Install plans: the ordered, deduplicated actions produced by resolution."""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Tuple, Union

from portplan.modules.identity import PackageSpec


class BuildReason(Enum):
    NOT_INSTALLED = "not-installed"
    VERSION_MISMATCH = "version-mismatch"
    DEPENDENCY_CHANGED = "dependency-changed"
    EXPLICIT_REBUILD = "explicit-rebuild"


@dataclass(frozen=True)
class BuildOptions:
    use_head_version: bool = False
    allow_downloads: bool = True
    clean_build_tree_after: bool = False


@dataclass(frozen=True)
class BuildAction:
    spec: PackageSpec
    reason: BuildReason
    version: str
    depends: Tuple[PackageSpec, ...] = ()
    build_options: BuildOptions = field(default_factory=BuildOptions)


@dataclass(frozen=True)
class AlreadySatisfied:
    spec: PackageSpec
    version: str


@dataclass(frozen=True)
class RemoveAction:
    spec: PackageSpec
    version: str


Action = Union[BuildAction, AlreadySatisfied, RemoveAction]


def action_kind(action: Action) -> str:
    if isinstance(action, BuildAction):
        return "build"
    if isinstance(action, RemoveAction):
        return "remove"
    if isinstance(action, AlreadySatisfied):
        return "satisfied"
    raise TypeError(f"Unknown plan action: {action!r}")


class InstallPlan:
    def __init__(self, actions: Iterable[Action] = ()):
        self._actions: List[Action] = list(actions)
        self._index: Dict[PackageSpec, int] = {}
        for i, action in enumerate(self._actions):
            action_kind(action)
            if action.spec in self._index:
                raise ValueError(f"Duplicate action for {action.spec} in install plan")
            self._index[action.spec] = i

    def __iter__(self) -> Iterator[Action]:
        return iter(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, spec: PackageSpec) -> bool:
        return spec in self._index

    def __eq__(self, other) -> bool:
        return isinstance(other, InstallPlan) and self._actions == other._actions

    def __repr__(self) -> str:
        return f"InstallPlan({self._actions!r})"

    def contains(self, spec: PackageSpec) -> bool:
        return spec in self._index

    def is_empty(self) -> bool:
        return not self._actions

    def has_work(self) -> bool:
        """True when at least one action will actually be executed."""
        return any(not isinstance(a, AlreadySatisfied) for a in self._actions)

    def index(self, spec: PackageSpec) -> int:
        return self._index[spec]

    def get(self, spec: PackageSpec):
        i = self._index.get(spec)
        return None if i is None else self._actions[i]

    def builds(self) -> List[BuildAction]:
        return [a for a in self._actions if isinstance(a, BuildAction)]

    def removes(self) -> List[RemoveAction]:
        return [a for a in self._actions if isinstance(a, RemoveAction)]

    def satisfied(self) -> List[AlreadySatisfied]:
        return [a for a in self._actions if isinstance(a, AlreadySatisfied)]

    def apply_build_options(self, options: BuildOptions) -> None:
        """Overwrite the options of every build action, keeping order and membership."""
        self._actions = [
            replace(a, build_options=options) if isinstance(a, BuildAction) else a
            for a in self._actions
        ]

    def to_dict(self) -> Dict[str, Any]:
        entries = []
        for action in self._actions:
            entry = {"package": str(action.spec), "action": action_kind(action), "version": action.version}
            if isinstance(action, BuildAction):
                entry["reason"] = action.reason.value
                entry["depends"] = [str(d) for d in action.depends]
            entries.append(entry)
        return {"actions": entries}
