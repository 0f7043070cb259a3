# portplan/modules/engine.py
"""
Execution engine - runs an install plan one action at a time, in plan order.

Failure policies:
 - fail-fast: the first failure aborts the run; everything after it is
   skipped (upstream-abort) without being attempted.
 - keep-going: a failure skips only the actions that transitively depend on
   the failed one (dependency-failed); independent work continues.

The plan is authoritative for the whole run: the builder mutates the live
registry as it goes, but nothing is re-resolved mid-run.
"""

from __future__ import annotations
import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from portplan.modules import logger as _logger
from portplan.modules.identity import PackageSpec
from portplan.modules.plan import (
    AlreadySatisfied,
    BuildAction,
    InstallPlan,
    RemoveAction,
    action_kind,
)

LOG = _logger.Logger("engine")


class BuildError(Exception):
    pass


class RunInterrupted(KeyboardInterrupt):
    """Ctrl-C during a run; ``summary`` holds what happened up to that point."""

    def __init__(self, summary: "Summary"):
        self.summary = summary
        super().__init__("interrupted")


class _ActionInterrupted(Exception):
    def __init__(self, result: "ActionResult"):
        self.result = result
        super().__init__(result.detail)


class FailurePolicy(Enum):
    FAIL_FAST = "fail-fast"
    KEEP_GOING = "keep-going"

    @classmethod
    def from_keep_going(cls, keep_going: bool) -> "FailurePolicy":
        return cls.KEEP_GOING if keep_going else cls.FAIL_FAST


class Outcome(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class SkipReason(Enum):
    UPSTREAM_ABORT = "upstream-abort"
    DEPENDENCY_FAILED = "dependency-failed"


def format_elapsed(seconds: float) -> str:
    if seconds < 1e-3:
        return f"{seconds * 1e6:.0f} us"
    if seconds < 1:
        return f"{seconds * 1e3:.3f} ms"
    if seconds < 60:
        return f"{seconds:.3f} s"
    if seconds < 3600:
        return f"{seconds / 60:.3f} min"
    return f"{seconds / 3600:.3f} h"


@dataclass(frozen=True)
class ActionResult:
    spec: PackageSpec
    kind: str
    outcome: Outcome
    elapsed: float = 0.0
    detail: Optional[str] = None
    skip_reason: Optional[SkipReason] = None

    def describe(self) -> str:
        if self.outcome is Outcome.FAILED:
            return f"FAILED: {self.detail}" if self.detail else "FAILED"
        if self.outcome is Outcome.SKIPPED:
            return f"SKIPPED ({self.skip_reason.value})"
        return "SUCCEEDED"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package": str(self.spec),
            "action": self.kind,
            "outcome": self.outcome.value,
            "elapsed": self.elapsed,
            "detail": self.detail,
            "skip_reason": self.skip_reason.value if self.skip_reason else None,
        }


@dataclass
class Summary:
    results: List[ActionResult] = field(default_factory=list)
    total_elapsed: float = 0.0

    @property
    def failed(self) -> bool:
        return any(
            r.outcome is Outcome.FAILED or r.skip_reason is SkipReason.DEPENDENCY_FAILED
            for r in self.results
        )

    def result_for(self, spec: PackageSpec) -> Optional[ActionResult]:
        for r in self.results:
            if r.spec == spec:
                return r
        return None

    def with_outcome(self, outcome: Outcome) -> List[ActionResult]:
        return [r for r in self.results if r.outcome is outcome]

    def counts(self) -> Dict[str, int]:
        counts = {o.value: 0 for o in Outcome}
        for r in self.results:
            counts[r.outcome.value] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failed": self.failed,
            "total_elapsed": self.total_elapsed,
            "counts": self.counts(),
            "results": [r.to_dict() for r in self.results],
        }


class ExecutionEngine:
    def __init__(self, builder, clock: Callable[[], float] = time.perf_counter):
        """
        builder: the external operation performing one action. It must provide
        ``build(spec, build_options)`` and may provide ``remove(spec)``; both
        signal failure by raising (BuildError preferably).
        """
        self.builder = builder
        self.clock = clock

    def run(self, plan: InstallPlan, policy: FailurePolicy = FailurePolicy.FAIL_FAST) -> Summary:
        """
        Execute every Build/Remove action of ``plan``. A KeyboardInterrupt from
        the builder marks that action failed and the rest skipped, then
        surfaces as RunInterrupted carrying the complete Summary.
        """
        started = self.clock()
        summary = Summary()
        dependents = self._dependents_map(plan)
        doomed: Set[PackageSpec] = set()
        aborted = False
        interrupted = False

        for action in plan:
            if isinstance(action, AlreadySatisfied):
                continue
            kind = action_kind(action)
            if aborted:
                summary.results.append(ActionResult(
                    action.spec, kind, Outcome.SKIPPED, skip_reason=SkipReason.UPSTREAM_ABORT))
                continue
            if action.spec in doomed:
                LOG.warning(f"Skipping {action.spec}: a dependency failed")
                summary.results.append(ActionResult(
                    action.spec, kind, Outcome.SKIPPED, skip_reason=SkipReason.DEPENDENCY_FAILED))
                continue

            try:
                result = self._perform(action)
            except _ActionInterrupted as e:
                result = e.result
                interrupted = aborted = True
            summary.results.append(result)
            if interrupted:
                continue
            if result.outcome is not Outcome.FAILED:
                continue
            if policy is FailurePolicy.FAIL_FAST:
                LOG.error(f"{action.spec} failed, aborting remaining actions")
                aborted = True
            else:
                doomed |= self._reachable(action.spec, dependents)

        summary.total_elapsed = self.clock() - started
        LOG.info(f"Plan finished in {format_elapsed(summary.total_elapsed)}: {summary.counts()}")
        if interrupted:
            raise RunInterrupted(summary)
        return summary

    def _perform(self, action) -> ActionResult:
        kind = action_kind(action)
        LOG.info(f"Starting {kind} of {action.spec}")
        started = self.clock()
        try:
            if isinstance(action, BuildAction):
                self.builder.build(action.spec, action.build_options)
            elif isinstance(action, RemoveAction):
                remove = getattr(self.builder, "remove", None)
                if remove is None:
                    raise BuildError("builder does not support removal")
                remove(action.spec)
            else:
                raise TypeError(f"Cannot execute plan action: {action!r}")
        except BuildError as e:
            elapsed = self.clock() - started
            LOG.error(f"{kind} of {action.spec} failed: {e}")
            return ActionResult(action.spec, kind, Outcome.FAILED, elapsed, detail=str(e) or type(e).__name__)
        except Exception as e:
            elapsed = self.clock() - started
            LOG.error(f"Unexpected error during {kind} of {action.spec}: {e}")
            LOG.debug(traceback.format_exc())
            return ActionResult(action.spec, kind, Outcome.FAILED, elapsed, detail=f"{type(e).__name__}: {e}")
        except KeyboardInterrupt:
            elapsed = self.clock() - started
            LOG.error(f"{kind} of {action.spec} interrupted")
            raise _ActionInterrupted(ActionResult(action.spec, kind, Outcome.FAILED, elapsed, detail="interrupted"))
        elapsed = self.clock() - started
        LOG.success(f"{kind} of {action.spec} succeeded in {format_elapsed(elapsed)}")
        return ActionResult(action.spec, kind, Outcome.SUCCEEDED, elapsed)

    @staticmethod
    def _dependents_map(plan: InstallPlan) -> Dict[PackageSpec, List[PackageSpec]]:
        dependents: Dict[PackageSpec, List[PackageSpec]] = {}
        for action in plan.builds():
            for dep in action.depends:
                if dep in plan:
                    dependents.setdefault(dep, []).append(action.spec)
        return dependents

    @staticmethod
    def _reachable(failed: PackageSpec, dependents: Dict[PackageSpec, List[PackageSpec]]) -> Set[PackageSpec]:
        """Everything that transitively depends on ``failed``."""
        seen: Set[PackageSpec] = set()
        queue = list(dependents.get(failed, ()))
        while queue:
            spec = queue.pop()
            if spec in seen:
                continue
            seen.add(spec)
            queue.extend(dependents.get(spec, ()))
        return seen
