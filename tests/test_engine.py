"""Tests for ExecutionEngine failure policies and summaries."""

import itertools

import pytest

from portplan.modules.engine import (
    ExecutionEngine,
    FailurePolicy,
    Outcome,
    RunInterrupted,
    SkipReason,
    Summary,
    ActionResult,
    format_elapsed,
)
from portplan.modules.graph import PackageGraph
from portplan.modules.plan import AlreadySatisfied, BuildAction, BuildReason, InstallPlan


@pytest.fixture
def chain_plan(make_catalog, make_snapshot, spec):
    """a <- b <- c: c depends on b depends on a."""
    catalog = make_catalog({"a": ("1", []), "b": ("1", ["a"]), "c": ("1", ["b"])})
    graph = PackageGraph(catalog, make_snapshot({}))
    graph.request_install(spec("c"))
    return graph.resolve()


def outcomes(summary):
    return {r.spec.name: (r.outcome, r.skip_reason) for r in summary.results}


class TestKeepGoing:
    def test_failure_skips_dependents_only(self, chain_plan, builder_factory):
        builder = builder_factory(failing={"b"})
        summary = ExecutionEngine(builder).run(chain_plan, FailurePolicy.KEEP_GOING)
        assert outcomes(summary) == {
            "a": (Outcome.SUCCEEDED, None),
            "b": (Outcome.FAILED, None),
            "c": (Outcome.SKIPPED, SkipReason.DEPENDENCY_FAILED),
        }
        assert [s.name for s in builder.calls] == ["a", "b"]
        assert summary.failed

    def test_independent_work_continues(self, make_catalog, make_snapshot, spec, builder_factory):
        catalog = make_catalog({
            "base": ("1", []),
            "left": ("1", ["base"]),
            "right": ("1", []),
            "top": ("1", ["left", "right"]),
            "solo": ("1", []),
        })
        graph = PackageGraph(catalog, make_snapshot({}))
        graph.request_install(spec("top"))
        graph.request_install(spec("solo"))
        plan = graph.resolve()

        builder = builder_factory(failing={"base"})
        summary = ExecutionEngine(builder).run(plan, FailurePolicy.KEEP_GOING)
        result = outcomes(summary)
        assert result["base"] == (Outcome.FAILED, None)
        assert result["left"] == (Outcome.SKIPPED, SkipReason.DEPENDENCY_FAILED)
        assert result["top"] == (Outcome.SKIPPED, SkipReason.DEPENDENCY_FAILED)
        assert result["right"] == (Outcome.SUCCEEDED, None)
        assert result["solo"] == (Outcome.SUCCEEDED, None)
        assert sorted(s.name for s in builder.calls) == ["base", "right", "solo"]

    def test_everything_succeeds(self, chain_plan, builder_factory):
        summary = ExecutionEngine(builder_factory()).run(chain_plan, FailurePolicy.KEEP_GOING)
        assert not summary.failed
        assert summary.counts() == {"succeeded": 3, "failed": 0, "skipped": 0}


class TestFailFast:
    def test_first_failure_aborts(self, chain_plan, builder_factory):
        builder = builder_factory(failing={"a"})
        summary = ExecutionEngine(builder).run(chain_plan, FailurePolicy.FAIL_FAST)
        assert outcomes(summary) == {
            "a": (Outcome.FAILED, None),
            "b": (Outcome.SKIPPED, SkipReason.UPSTREAM_ABORT),
            "c": (Outcome.SKIPPED, SkipReason.UPSTREAM_ABORT),
        }
        assert [s.name for s in builder.calls] == ["a"]
        assert summary.failed

    def test_independent_actions_are_also_aborted(self, make_catalog, make_snapshot, spec, builder_factory):
        catalog = make_catalog({"a": ("1", []), "z": ("1", [])})
        graph = PackageGraph(catalog, make_snapshot({}))
        graph.request_install(spec("a"))
        graph.request_install(spec("z"))
        builder = builder_factory(failing={"a"})
        summary = ExecutionEngine(builder).run(graph.resolve())
        assert outcomes(summary)["z"] == (Outcome.SKIPPED, SkipReason.UPSTREAM_ABORT)
        assert [s.name for s in builder.calls] == ["a"]


class TestRun:
    def test_already_satisfied_is_not_executed(self, spec, builder_factory):
        plan = InstallPlan([
            AlreadySatisfied(spec("zlib"), "1"),
            BuildAction(spec("png"), BuildReason.NOT_INSTALLED, "1", (spec("zlib"),)),
        ])
        builder = builder_factory()
        summary = ExecutionEngine(builder).run(plan)
        assert [r.spec for r in summary.results] == [spec("png")]
        assert builder.calls == [spec("png")]

    def test_build_options_are_passed_through(self, chain_plan, builder_factory):
        from portplan.modules.plan import BuildOptions

        options = BuildOptions(use_head_version=True, allow_downloads=False, clean_build_tree_after=True)
        chain_plan.apply_build_options(options)
        builder = builder_factory()
        ExecutionEngine(builder).run(chain_plan)
        assert builder.options == [options] * 3

    def test_unexpected_exception_is_a_failure(self, chain_plan):
        class Exploding:
            def build(self, spec, options):
                raise RuntimeError("disk full")

        summary = ExecutionEngine(Exploding()).run(chain_plan, FailurePolicy.KEEP_GOING)
        first = summary.results[0]
        assert first.outcome is Outcome.FAILED
        assert "disk full" in first.detail

    def test_elapsed_time_uses_clock(self, chain_plan, builder_factory):
        ticks = itertools.count()
        summary = ExecutionEngine(builder_factory(), clock=lambda: float(next(ticks))).run(chain_plan)
        assert [r.elapsed for r in summary.results] == [1.0, 1.0, 1.0]
        assert summary.total_elapsed == 7.0

    def test_removals_use_builder_remove(self, make_catalog, make_snapshot, spec, builder_factory):
        graph = PackageGraph(make_catalog({}), make_snapshot({"zlib": "1"}))
        graph.request_remove(spec("zlib"))
        builder = builder_factory()
        summary = ExecutionEngine(builder).run(graph.resolve())
        assert builder.removed == [spec("zlib")]
        assert summary.results[0].kind == "remove"

    def test_builder_without_remove_fails_the_action(self, make_catalog, make_snapshot, spec):
        class BuildOnly:
            def build(self, spec, options):
                pass

        graph = PackageGraph(make_catalog({}), make_snapshot({"zlib": "1"}))
        graph.request_remove(spec("zlib"))
        summary = ExecutionEngine(BuildOnly()).run(graph.resolve())
        assert summary.results[0].outcome is Outcome.FAILED

    def test_interrupt_still_yields_a_summary(self, chain_plan, spec):
        class Interrupting:
            def __init__(self):
                self.calls = []

            def build(self, spec, options):
                self.calls.append(spec.name)
                if spec.name == "b":
                    raise KeyboardInterrupt

        builder = Interrupting()
        with pytest.raises(RunInterrupted) as exc:
            ExecutionEngine(builder).run(chain_plan, FailurePolicy.KEEP_GOING)
        assert isinstance(exc.value, KeyboardInterrupt)
        summary = exc.value.summary
        assert outcomes(summary) == {
            "a": (Outcome.SUCCEEDED, None),
            "b": (Outcome.FAILED, None),
            "c": (Outcome.SKIPPED, SkipReason.UPSTREAM_ABORT),
        }
        assert summary.result_for(spec("b")).detail == "interrupted"
        assert summary.failed
        assert builder.calls == ["a", "b"]


class TestSummary:
    def test_upstream_abort_alone_does_not_mark_failure(self, spec):
        summary = Summary([ActionResult(spec("a"), "build", Outcome.SKIPPED,
                                        skip_reason=SkipReason.UPSTREAM_ABORT)])
        assert not summary.failed

    def test_to_dict(self, spec):
        summary = Summary([ActionResult(spec("a"), "build", Outcome.FAILED, 2.5, detail="boom")], 3.0)
        data = summary.to_dict()
        assert data["failed"] is True
        assert data["results"][0] == {
            "package": "a:x64-linux",
            "action": "build",
            "outcome": "failed",
            "elapsed": 2.5,
            "detail": "boom",
            "skip_reason": None,
        }

    @pytest.mark.parametrize("seconds,expected", [
        (0.0000005, "0 us"),
        (0.25, "250.000 ms"),
        (1.5, "1.500 s"),
        (90, "1.500 min"),
        (5400, "1.500 h"),
    ])
    def test_format_elapsed(self, seconds, expected):
        assert format_elapsed(seconds) == expected


def test_policy_from_flag():
    assert FailurePolicy.from_keep_going(True) is FailurePolicy.KEEP_GOING
    assert FailurePolicy.from_keep_going(False) is FailurePolicy.FAIL_FAST
