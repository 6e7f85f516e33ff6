"""Pipeline — per-package resolve → compatibility → compliance → cache gate.

Packages in a batch are evaluated as independent tasks under a bounded
semaphore; a failure is scoped to its own package and never aborts the
batch.  Manifest writes happen once, after every package has an outcome,
and only for Present/Succeeded packages.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from mirrorgate.context import RunContext
from mirrorgate.engines.cache_gate.gate import CacheGate
from mirrorgate.engines.cache_gate.models import GateState
from mirrorgate.engines.compatibility.checker import CompatibilityChecker
from mirrorgate.engines.compliance.walker import ComplianceWalker
from mirrorgate.engines.manifest.updater import ManifestUpdater
from mirrorgate.engines.version_resolver.resolver import VersionResolver
from mirrorgate.exceptions import EngineIncompatible, MirrorGateError, ResolutionFailed
from mirrorgate.models import Outcome, PackageRequest, ResolvedVersion

log = structlog.get_logger("mirrorgate.pipeline")


@dataclass
class PackageReport:
    """Everything the caller needs to act on one request."""

    request: PackageRequest
    outcome: Outcome
    resolved: ResolvedVersion | None = None
    warnings: list[str] = field(default_factory=list)
    gate_history: list[GateState] = field(default_factory=list)
    evaluated: int = 0  # vertices evaluated by the compliance walk
    dispatched: bool = False

    def as_dict(self) -> dict:
        return {
            "package": self.request.name,
            "spec": self.request.version_spec,
            "version": str(self.resolved.version) if self.resolved else None,
            "outcome": self.outcome.kind.value,
            "reason": self.outcome.reason,
            "run_url": self.outcome.run_url,
            "warnings": list(self.warnings),
            "dispatched": self.dispatched,
        }


class Pipeline:
    """Orchestration layer over the four engines."""

    def __init__(
        self,
        resolver: VersionResolver,
        checker: CompatibilityChecker,
        walker: ComplianceWalker,
        gate: CacheGate,
        *,
        runtime_version: str | None = None,
        manifest: ManifestUpdater | None = None,
    ) -> None:
        self._resolver = resolver
        self._checker = checker
        self._walker = walker
        self._gate = gate
        self._runtime_version = runtime_version
        self._manifest = manifest

    async def evaluate(self, request: PackageRequest, ctx: RunContext) -> PackageReport:
        """Evaluate one request to its Outcome. Never raises for per-package failures."""
        async with ctx.semaphore:
            log.info("pipeline.start", request=str(request))
            try:
                resolved = await self._resolver.resolve(
                    request.name, request.version_spec, ctx
                )
            except ResolutionFailed as exc:
                log.error("pipeline.resolution_failed", request=str(request), error=str(exc))
                return PackageReport(request, Outcome.failed(exc))

            report = PackageReport(request, Outcome.present(), resolved=resolved)
            version = str(resolved.version)

            try:
                await self._check_engines(report, ctx)
                walk = await self._walker.check_compliance(request.name, version, ctx)
            except MirrorGateError as exc:
                log.error("pipeline.compliance_error", package=str(resolved), error=str(exc))
                report.outcome = Outcome.failed(exc)
                return report
            report.evaluated = walk.evaluated
            if walk.violation is not None:
                report.outcome = Outcome.failed(walk.violation)
                return report

            gate = await self._gate.run(request, resolved)
            if gate.outcome is None:
                raise MirrorGateError(f"cache gate ended without an outcome for {resolved}")
            report.outcome = gate.outcome
            report.gate_history = list(gate.history)
            report.dispatched = gate.dispatched
            report.warnings.extend(gate.warnings)
            log.info(
                "pipeline.done",
                package=str(resolved),
                outcome=report.outcome.kind.value,
                run_url=report.outcome.run_url,
            )
            return report

    async def _check_engines(self, report: PackageReport, ctx: RunContext) -> None:
        if self._runtime_version is None or report.resolved is None:
            return
        resolved = report.resolved
        node = await self._resolver.node(resolved.name, str(resolved.version), ctx)
        constraint = node.engines.get("node")
        if not constraint:
            return
        result = self._checker.check(self._runtime_version, constraint)
        report.warnings.extend(result.warnings)
        if not result.compatible:
            advisory = EngineIncompatible(
                node.name, node.version, constraint, self._runtime_version
            )
            log.warning("pipeline.engine_incompatible", package=str(node), constraint=constraint)
            report.warnings.append(str(advisory))

    async def evaluate_all(
        self,
        requests: list[PackageRequest],
        ctx: RunContext | None = None,
        *,
        write_manifest: bool = True,
    ) -> list[PackageReport]:
        """Evaluate every request concurrently and persist installable results.

        A name requested more than once is evaluated once, with the last
        spec given for it.
        """
        ctx = ctx or RunContext()
        requests = _unique_by_name(requests)

        async def _run_one(request: PackageRequest) -> PackageReport:
            try:
                return await self.evaluate(request, ctx)
            except Exception as exc:
                log.exception("pipeline.failed", request=str(request))
                error = exc if isinstance(exc, MirrorGateError) else MirrorGateError(
                    f"{type(exc).__name__}: {exc}"
                )
                return PackageReport(request, Outcome.failed(error))

        reports = list(await asyncio.gather(*(_run_one(r) for r in requests)))

        if write_manifest and self._manifest is not None:
            entries = {
                r.request.name: str(r.resolved.version)
                for r in reports
                if r.outcome.installable and r.resolved is not None
            }
            if entries:
                self._manifest.apply(entries)
        return reports


def _unique_by_name(requests: list[PackageRequest]) -> list[PackageRequest]:
    chosen: dict[str, PackageRequest] = {}
    for request in requests:
        previous = chosen.get(request.name)
        if previous is not None and previous != request:
            log.warning(
                "pipeline.duplicate_request",
                package=request.name,
                dropped=previous.version_spec,
                kept=request.version_spec,
            )
        chosen[request.name] = request
    return list(chosen.values())
