"""Tests for buildgate.inspect: registry, selection, dispatch, and teardown."""

from __future__ import annotations

import pytest

from helpers import make_build, make_ctx, make_file, make_package

from buildgate.config import RunConfig
from buildgate.inspect.context import BuildContext
from buildgate.inspect.dispatcher import inspect_builds, run_inspections
from buildgate.inspect.registry import (
    ALL_INSPECTIONS,
    REGISTRY,
    Inspection,
    InspectionMode,
    InspectionSpec,
    get_inspection,
    inspection_names,
    select_inspections,
    selected_specs,
)
from buildgate.model.build import Build, Side
from buildgate.policy.loader import parse_policy
from buildgate.policy.rules import PolicyStore
from buildgate.results.ledger import Severity, Verb, WaiverAuth
from buildgate.results.verdict import Outcome


def _busy_pair() -> tuple[Build, Build]:
    """Builds that produce findings in several inspections."""
    before = make_build(
        Side.BEFORE,
        [
            make_package(
                "demo",
                [
                    make_file("/usr/bin/demo", size=100),
                    make_file("/usr/lib64/libdemo.so.1", checksum="lib1"),
                    make_file("/etc/demo.conf", owner="root"),
                ],
                header={"license": "GPL-2.0-only", "vendor": "Example Corp"},
            )
        ],
    )
    after = make_build(
        Side.AFTER,
        [
            make_package(
                "demo",
                [
                    make_file("/usr/bin/demo", size=100),
                    make_file("/usr/share/demo/debug/trace", checksum="t"),
                    make_file("/etc/demo.conf", owner="demo"),
                ],
                header={"license": "MIT", "vendor": "Example Corp"},
            )
        ],
    )
    return before, after


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_registration_order(self) -> None:
        assert inspection_names() == (
            "emptypayload",
            "metadata",
            "license",
            "addedfiles",
            "removedfiles",
            "movedfiles",
            "filesize",
            "permissions",
            "ownership",
            "capabilities",
            "politics",
            "pathmigration",
        )

    def test_every_flag_registered_once(self) -> None:
        flags = [spec.flag for spec in REGISTRY]
        assert len(set(flags)) == len(flags) == len(Inspection)

    def test_diff_mode_inspections(self) -> None:
        diff = [s.name for s in REGISTRY if s.mode is InspectionMode.DIFF]
        assert diff == ["addedfiles", "removedfiles", "movedfiles", "filesize"]

    def test_get_inspection(self) -> None:
        assert get_inspection("License").flag is Inspection.LICENSE
        with pytest.raises(ValueError, match="unknown inspection 'elf'"):
            get_inspection("elf")


class TestSelection:
    def test_default_selects_everything(self) -> None:
        assert select_inspections() == ALL_INSPECTIONS
        assert len(selected_specs(ALL_INSPECTIONS)) == len(REGISTRY)

    def test_include_keeps_registration_order(self) -> None:
        selected = select_inspections(["politics", "license"])
        assert [s.name for s in selected_specs(selected)] == ["license", "politics"]

    def test_exclude(self) -> None:
        selected = select_inspections(exclude=["politics", "filesize"])
        names = [s.name for s in selected_specs(selected)]
        assert "politics" not in names
        assert "filesize" not in names
        assert len(names) == len(REGISTRY) - 2

    def test_unknown_name(self) -> None:
        with pytest.raises(ValueError):
            select_inspections(["license", "bogus"])


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestRunInspections:
    def test_clean_build_passes_with_only_ok_results(self, clean_pair: tuple[Build, Build]) -> None:
        before, after = clean_pair
        run = inspect_builds(before, after, PolicyStore(), RunConfig())

        assert run.ran == list(inspection_names())
        assert run.skipped == []
        assert all(run.passed.values())
        assert [r.severity for r in run.results.reportable()] == [Severity.OK] * len(REGISTRY)
        assert run.outcome(Severity.VERIFY) is Outcome.PASS

    def test_single_build_skips_diff_inspections(self, clean_pair: tuple[Build, Build]) -> None:
        _before, after = clean_pair
        run = inspect_builds(None, after, PolicyStore(), RunConfig())

        assert run.skipped == ["addedfiles", "removedfiles", "movedfiles", "filesize"]
        assert "license" in run.ran
        diagnostics = [r for r in run.results if r.header == "addedfiles"]
        assert len(diagnostics) == 1
        [diag] = diagnostics
        assert diag.severity is Severity.INFO
        assert diag.verb is Verb.FAILED
        assert diag.waiverauth is WaiverAuth.NOT_WAIVABLE
        assert run.outcome(Severity.VERIFY) is Outcome.PASS

    def test_fault_is_contained(
        self, clean_pair: tuple[Build, Build], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def explode(self: PolicyStore, path: str) -> None:
            msg = "policy lookup exploded"
            raise RuntimeError(msg)

        monkeypatch.setattr(PolicyStore, "classify_path", explode)
        before, after = clean_pair
        run = inspect_builds(before, after, PolicyStore(), RunConfig())

        assert run.passed["politics"] is False
        assert run.ran == list(inspection_names())
        [failure] = run.results.for_header("politics")
        assert failure.severity is Severity.BAD
        assert failure.verb is Verb.FAILED
        assert "policy lookup exploded" in (failure.msg or "")
        assert run.passed["pathmigration"] is True

    def test_memory_error_is_not_contained(self, clean_pair: tuple[Build, Build]) -> None:
        def hungry(ctx: object) -> bool:
            raise MemoryError

        spec = InspectionSpec(
            Inspection.METADATA, "metadata", InspectionMode.SINGLE, hungry, "test"
        )
        before, after = clean_pair
        with pytest.raises(MemoryError):
            spec.run(make_ctx(before, after))

    def test_parallel_run_matches_sequential(self) -> None:
        policy = parse_policy({"version": 1, "politics": [{"pattern": "*/debug/*", "allowed": False}]})

        def report(jobs: int) -> list[tuple[str, Severity, str | None]]:
            before, after = _busy_pair()
            run = inspect_builds(before, after, policy, RunConfig(jobs=jobs))
            return [(r.header, r.severity, r.msg) for r in run.results.in_registration_order()]

        sequential = report(1)
        assert sequential == report(4)
        headers = [h for h, _s, _m in sequential]
        assert headers == sorted(headers, key=list(inspection_names()).index)

    def test_worst_and_outcome(self) -> None:
        policy = parse_policy({"version": 1, "politics": [{"pattern": "*/debug/*", "allowed": False}]})
        before, after = _busy_pair()
        run = inspect_builds(before, after, policy, RunConfig())

        assert run.worst is Severity.BAD
        assert run.outcome(Severity.BAD) is Outcome.FAIL
        assert run.passed["politics"] is False
        assert run.passed["license"] is False
        assert run.passed["ownership"] is False
        assert run.passed["removedfiles"] is False

    def test_run_inspections_with_explicit_selection(self, clean_pair: tuple[Build, Build]) -> None:
        before, after = clean_pair
        with BuildContext.open(before, after) as build:
            run = run_inspections(
                select_inspections(["license", "addedfiles"]), build, PolicyStore(), RunConfig()
            )
        assert run.ran == ["license", "addedfiles"]
        origins = {r.header: r.origin for r in run.results}
        assert origins == {"license": 2, "addedfiles": 3}


class TestBuildContext:
    def test_close_releases_model_and_headers(self, clean_pair: tuple[Build, Build]) -> None:
        before, after = clean_pair
        build = BuildContext.open(before, after)
        build.headers.get(after.packages[0].header_key)
        assert len(build.headers) == 1

        build.close()
        assert len(build.headers) == 0
        with pytest.raises(RuntimeError, match="closed"):
            _ = build.model
