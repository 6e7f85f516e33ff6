"""End-to-end pipeline tests against in-memory registry, mirror and Actions doubles."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from mirrorgate.context import RunContext
from mirrorgate.engines.cache_gate.gate import CacheGate
from mirrorgate.engines.cache_gate.models import GateResult, GateState
from mirrorgate.engines.compatibility.checker import CompatibilityChecker
from mirrorgate.engines.compliance.licenses import LicensePolicy
from mirrorgate.engines.compliance.walker import ComplianceWalker
from mirrorgate.engines.manifest.updater import ManifestUpdater
from mirrorgate.engines.version_resolver.resolver import VersionResolver
from mirrorgate.exceptions import LicenseViolation, MirrorGateError, ResolutionFailed
from mirrorgate.models import OutcomeKind, PackageRequest
from mirrorgate.pipeline import Pipeline


@pytest.fixture
def manifest(tmp_path) -> ManifestUpdater:
    path = tmp_path / "package.json"
    path.write_text(json.dumps({"name": "app", "dependencies": {}}, indent=2) + "\n")
    return ManifestUpdater(path, "acme")


@pytest.fixture
def build(registry, mirror, gate_config):
    def _build(github, *, manifest=None, runtime_version=None) -> Pipeline:
        resolver = VersionResolver(registry)
        return Pipeline(
            resolver,
            CompatibilityChecker(),
            ComplianceWalker(resolver, LicensePolicy()),
            CacheGate(mirror, github, gate_config),
            runtime_version=runtime_version,
            manifest=manifest,
        )

    return _build


def pinned(manifest: ManifestUpdater) -> dict:
    return json.loads(manifest.path.read_text())["dependencies"]


class TestScenarios:
    @pytest.mark.asyncio
    async def test_present_in_mirror(self, registry, mirror, make_github, build, manifest):
        registry.publish("pkg", "1.3.0", license="MIT")
        mirror.present.add(("@acme/pkg", "1.3.0"))
        github = make_github()

        [report] = await build(github, manifest=manifest).evaluate_all(
            [PackageRequest("pkg", "1.3.0")]
        )

        assert report.outcome.kind is OutcomeKind.PRESENT
        assert str(report.resolved) == "pkg@1.3.0"
        assert github.dispatches == []
        assert not report.dispatched
        assert pinned(manifest) == {"pkg": "1.3.0"}

    @pytest.mark.asyncio
    async def test_transitive_license_violation(
        self, registry, mirror, make_github, build, manifest
    ):
        registry.publish("pkg", "2.0.0", dependencies={"sub": "^4.0.0"})
        registry.publish("sub", "4.0.0", license="GPL-3.0")
        github = make_github()

        [report] = await build(github, manifest=manifest).evaluate_all(
            [PackageRequest("pkg", "2.0.0")]
        )

        assert report.outcome.kind is OutcomeKind.FAILED
        assert isinstance(report.outcome.error, LicenseViolation)
        assert report.outcome.error.node.key == ("sub", "4.0.0")
        assert "sub@4.0.0" in report.outcome.reason
        assert github.dispatches == []
        assert mirror.calls == []
        assert pinned(manifest) == {}

    @pytest.mark.asyncio
    async def test_absent_then_cached(self, registry, mirror, make_github, build, manifest):
        registry.publish("pkg", "1.0.0", tag_latest=False)
        registry.publish("pkg", "1.4.1")
        github = make_github()

        [report] = await build(github, manifest=manifest).evaluate_all(
            [PackageRequest("pkg", "latest")]
        )

        assert report.outcome.kind is OutcomeKind.SUCCEEDED
        assert report.outcome.run_url.endswith("/runs/1001")
        assert len(github.dispatches) == 1
        assert github.dispatches[0]["inputs"]["package_version"] == "latest"
        assert report.dispatched
        assert pinned(manifest) == {"pkg": "1.4.1"}

    @pytest.mark.asyncio
    async def test_poll_deadline(self, registry, mirror, make_github, build, manifest):
        registry.publish("pkg", "1.4.1")
        github = make_github(statuses=[("in_progress", None)])

        [report] = await build(github, manifest=manifest).evaluate_all(
            [PackageRequest("pkg", "latest")]
        )

        assert report.outcome.kind is OutcomeKind.TIMED_OUT
        assert not report.outcome.installable
        assert len(github.dispatches) == 1
        assert pinned(manifest) == {}


class TestBatch:
    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, registry, mirror, make_github, build, manifest):
        registry.publish("good", "1.0.0")
        registry.publish("bad", "1.0.0", license="AGPL-3.0")
        mirror.present.add(("@acme/good", "1.0.0"))

        reports = await build(make_github(), manifest=manifest).evaluate_all(
            [
                PackageRequest("good", "^1.0.0"),
                PackageRequest("ghost", "latest"),
                PackageRequest("bad", "latest"),
            ]
        )

        kinds = {r.request.name: r.outcome.kind for r in reports}
        assert kinds == {
            "good": OutcomeKind.PRESENT,
            "ghost": OutcomeKind.FAILED,
            "bad": OutcomeKind.FAILED,
        }
        ghost = next(r for r in reports if r.request.name == "ghost")
        assert isinstance(ghost.outcome.error, ResolutionFailed)
        assert ghost.resolved is None
        assert pinned(manifest) == {"good": "1.0.0"}

    @pytest.mark.asyncio
    async def test_repeated_name_evaluated_once(
        self, registry, mirror, make_github, build, manifest
    ):
        registry.publish("pkg", "1.4.1")
        registry.publish("other", "1.0.0")
        mirror.present.add(("@acme/other", "1.0.0"))
        github = make_github()

        reports = await build(github, manifest=manifest).evaluate_all(
            [PackageRequest("pkg"), PackageRequest("other"), PackageRequest("pkg", "^1.4.0")]
        )

        assert [str(r.request) for r in reports] == ["pkg@^1.4.0", "other@latest"]
        assert len(github.dispatches) == 1
        assert github.dispatches[0]["inputs"]["package_version"] == "^1.4.0"
        assert pinned(manifest) == {"pkg": "1.4.1", "other": "1.0.0"}

    @pytest.mark.asyncio
    async def test_unexpected_error_scoped_to_package(self, registry, mirror, make_github, build):
        registry.publish("fine", "1.0.0")
        mirror.present.add(("@acme/fine", "1.0.0"))
        fetch = registry.get_packument

        async def flaky(name):
            if name == "boom":
                raise RuntimeError("kaboom")
            return await fetch(name)

        registry.get_packument = flaky

        reports = await build(make_github()).evaluate_all(
            [PackageRequest("boom", "latest"), PackageRequest("fine", "latest")]
        )

        assert reports[0].outcome.kind is OutcomeKind.FAILED
        assert isinstance(reports[0].outcome.error, MirrorGateError)
        assert "kaboom" in reports[0].outcome.reason
        assert reports[1].outcome.kind is OutcomeKind.PRESENT

    @pytest.mark.asyncio
    async def test_common_dependency_fetched_once(self, registry, mirror, make_github, build):
        registry.publish("one", "1.0.0", dependencies={"common": "^2.0.0"})
        registry.publish("two", "1.0.0", dependencies={"common": "2.x"})
        registry.publish("common", "2.1.0")
        mirror.present.update({("@acme/one", "1.0.0"), ("@acme/two", "1.0.0")})

        reports = await build(make_github()).evaluate_all(
            [PackageRequest("one"), PackageRequest("two")], RunContext(max_concurrency=2)
        )

        assert all(r.outcome.kind is OutcomeKind.PRESENT for r in reports)
        assert registry.calls.count("common") == 1

    @pytest.mark.asyncio
    async def test_dry_run_leaves_manifest(self, registry, mirror, make_github, build, manifest):
        registry.publish("pkg", "1.0.0")
        mirror.present.add(("@acme/pkg", "1.0.0"))

        await build(make_github(), manifest=manifest).evaluate_all(
            [PackageRequest("pkg")], write_manifest=False
        )

        assert pinned(manifest) == {}

    @pytest.mark.asyncio
    async def test_malformed_document_fails_package(self, registry, mirror, make_github, build):
        registry.publish("pkg", "1.0.0", dependencies="garbage")

        [report] = await build(make_github()).evaluate_all([PackageRequest("pkg")])

        assert report.outcome.kind is OutcomeKind.FAILED
        assert "malformed version document" in report.outcome.reason

    @pytest.mark.asyncio
    async def test_gate_without_outcome_fails_package(self, registry, manifest):
        registry.publish("pkg", "1.0.0")
        gate = MagicMock()
        gate.run = AsyncMock(return_value=GateResult(history=[GateState.NOT_CHECKED]))
        resolver = VersionResolver(registry)
        pipeline = Pipeline(
            resolver,
            CompatibilityChecker(),
            ComplianceWalker(resolver, LicensePolicy()),
            gate,
            manifest=manifest,
        )

        [report] = await pipeline.evaluate_all([PackageRequest("pkg")])

        assert report.outcome.kind is OutcomeKind.FAILED
        assert "without an outcome" in report.outcome.reason
        assert pinned(manifest) == {}


class TestEngines:
    @pytest.mark.asyncio
    async def test_incompatible_runtime_is_advisory(self, registry, mirror, make_github, build):
        registry.publish("pkg", "1.0.0", engines={"node": ">=18"})
        mirror.present.add(("@acme/pkg", "1.0.0"))

        [report] = await build(make_github(), runtime_version="16.20.0").evaluate_all(
            [PackageRequest("pkg")]
        )

        assert report.outcome.kind is OutcomeKind.PRESENT
        assert any("engines.node '>=18'" in w for w in report.warnings)

    @pytest.mark.asyncio
    async def test_compatible_runtime_no_warning(self, registry, mirror, make_github, build):
        registry.publish("pkg", "1.0.0", engines={"node": ">=18"})
        mirror.present.add(("@acme/pkg", "1.0.0"))

        [report] = await build(make_github(), runtime_version="20.11.0").evaluate_all(
            [PackageRequest("pkg")]
        )

        assert report.warnings == []

    @pytest.mark.asyncio
    async def test_report_as_dict(self, registry, mirror, make_github, build):
        registry.publish("pkg", "1.0.0")
        mirror.present.add(("@acme/pkg", "1.0.0"))

        [report] = await build(make_github()).evaluate_all([PackageRequest("pkg")])

        assert report.as_dict() == {
            "package": "pkg",
            "spec": "latest",
            "version": "1.0.0",
            "outcome": "present",
            "reason": None,
            "run_url": None,
            "warnings": [],
            "dispatched": False,
        }
