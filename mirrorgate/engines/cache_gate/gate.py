"""CacheGate — mirror presence check, workflow dispatch, and bounded polling.

Flow for one package::

    NOT_CHECKED ─► PRESENT
         └──────► ABSENT ─► TRIGGERING ─► POLLING ─► SUCCEEDED | FAILED | TIMED_OUT

The dispatch is fire-and-forget: GitHub returns no run id, so the run is
attributed afterwards by listing recent runs of the workflow.  Attribution
prefers a run whose title names the package (workflows that set
``run-name`` from their inputs), then the newest run created after the
dispatch that no other package in this process has claimed.  Concurrent
dispatches from other processes can still be mis-attributed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Protocol

import httpx
import structlog

from mirrorgate.core.github import GitHubClient
from mirrorgate.core.http import RateLimitError
from mirrorgate.engines.cache_gate.models import (
    GateConfig,
    GateResult,
    GateState,
    GateStateMachine,
)
from mirrorgate.exceptions import CacheCheckFailed, DispatchFailed, PollFailed, PollTimeout
from mirrorgate.models import Outcome, PackageRequest, ResolvedVersion
from mirrorgate.schemas.github import WorkflowRun

log = structlog.get_logger("mirrorgate.engine")

_BACKOFF_FACTOR = 1.5

_API_ERRORS = (httpx.HTTPError, RateLimitError)


class MirrorSource(Protocol):
    async def has_version(self, name: str, version: str) -> bool: ...


def mirror_name(scope: str, name: str) -> str:
    """``axios`` → ``@scope/axios``; ``@types/node`` → ``@scope/node``."""
    return f"@{scope.lstrip('@')}/{name.rsplit('/', 1)[-1]}"


def select_run(
    runs: list[WorkflowRun],
    dispatched_at: datetime,
    *,
    request: PackageRequest | None = None,
    claimed: set[int] | frozenset[int] = frozenset(),
    clock_skew: float = 10.0,
) -> WorkflowRun | None:
    """Pick the run most likely created by our dispatch, or None."""
    threshold = dispatched_at - timedelta(seconds=clock_skew)
    candidates = [r for r in runs if r.id not in claimed and r.created_at >= threshold]
    if not candidates:
        return None
    if request is not None:
        token = str(request)
        titled = [r for r in candidates if r.display_title and token in r.display_title]
        if titled:
            candidates = titled
    return max(candidates, key=lambda r: r.created_at)


class CacheGate:
    """Decide whether a resolved package is in the mirror, or get it there."""

    def __init__(self, mirror: MirrorSource, github: GitHubClient, config: GateConfig) -> None:
        self._mirror = mirror
        self._github = github
        self._config = config
        self._claimed: set[int] = set()
        self._claim_lock = asyncio.Lock()

    async def run(self, request: PackageRequest, resolved: ResolvedVersion) -> GateResult:
        """Drive one package to a terminal state.

        *request* is what gets dispatched, so the workflow performs its own
        resolution; *resolved* is what gets looked up in the mirror.
        """
        machine = GateStateMachine()
        result = GateResult(history=machine.history)
        package = str(resolved)

        if await self._is_present(resolved, result):
            machine.advance(GateState.PRESENT)
            log.info("gate.present", package=package)
            result.outcome = Outcome.present()
            return result
        machine.advance(GateState.ABSENT)

        machine.advance(GateState.TRIGGERING)
        dispatched_at = datetime.now(timezone.utc)
        try:
            await self._github.dispatch_workflow(
                self._config.owner,
                self._config.repo,
                self._config.workflow,
                ref=self._config.ref,
                inputs={
                    "package_name": request.name,
                    "package_version": request.version_spec,
                },
            )
        except _API_ERRORS as exc:
            error = DispatchFailed(
                f"could not dispatch {self._config.workflow} for {request}: {exc}"
            )
            machine.advance(GateState.FAILED)
            log.error("gate.dispatch_failed", package=package, error=str(exc))
            result.outcome = Outcome.failed(error)
            return result
        result.dispatched = True
        log.info("gate.dispatched", package=package, request=str(request))

        try:
            run = await asyncio.wait_for(
                self._await_completion(machine, request, dispatched_at, result),
                timeout=self._config.deadline,
            )
        except asyncio.TimeoutError:
            run_url = result.run.url if result.run else None
            error = PollTimeout(self._config.deadline, run_url)
            machine.advance(GateState.TIMED_OUT)
            log.warning("gate.timed_out", package=package, run_url=run_url)
            result.outcome = Outcome.timed_out(error, run_url)
            return result

        if run.is_success:
            machine.advance(GateState.SUCCEEDED)
            log.info("gate.succeeded", package=package, run_url=run.url)
            result.outcome = Outcome.succeeded(run.url)
        else:
            error = PollFailed(run.conclusion, run.url)
            machine.advance(GateState.FAILED)
            log.error(
                "gate.run_failed", package=package, conclusion=run.conclusion, run_url=run.url
            )
            result.outcome = Outcome.failed(error, run.url)
        return result

    async def _is_present(self, resolved: ResolvedVersion, result: GateResult) -> bool:
        name = mirror_name(self._config.scope, resolved.name)
        try:
            return await self._mirror.has_version(name, str(resolved.version))
        except _API_ERRORS as exc:
            warning = CacheCheckFailed(
                f"mirror lookup of {name}@{resolved.version} failed: {exc}"
            )
            log.warning("gate.cache_check_failed", package=str(resolved), error=str(exc))
            result.warnings.append(str(warning))
            return False

    async def _await_completion(
        self,
        machine: GateStateMachine,
        request: PackageRequest,
        dispatched_at: datetime,
        result: GateResult,
    ) -> WorkflowRun:
        """Locate our run, then poll it until completed. Bounded by the caller."""
        cfg = self._config
        await asyncio.sleep(cfg.dispatch_grace)

        run = await self._locate_run(request, dispatched_at)
        while run is None:
            await asyncio.sleep(cfg.poll_interval)
            run = await self._locate_run(request, dispatched_at)
        result.run = run
        machine.advance(GateState.POLLING)
        log.info("gate.run_located", request=str(request), run_id=run.id, run_url=run.url)

        delay = cfg.poll_interval
        while not run.is_completed:
            await asyncio.sleep(delay)
            delay = min(delay * _BACKOFF_FACTOR, cfg.poll_max_interval)
            try:
                run = await self._github.get_run(cfg.owner, cfg.repo, run.id)
            except _API_ERRORS as exc:
                log.warning("gate.poll_error", run_id=run.id, error=str(exc))
                continue
            result.run = run
            log.debug("gate.poll", run_id=run.id, status=run.status, conclusion=run.conclusion)
        return run

    async def _locate_run(
        self, request: PackageRequest, dispatched_at: datetime
    ) -> WorkflowRun | None:
        cfg = self._config
        try:
            runs = await self._github.list_workflow_runs(cfg.owner, cfg.repo, cfg.workflow)
        except _API_ERRORS as exc:
            log.warning("gate.list_runs_failed", error=str(exc))
            return None
        async with self._claim_lock:
            run = select_run(
                runs,
                dispatched_at,
                request=request,
                claimed=self._claimed,
                clock_skew=cfg.clock_skew,
            )
            if run is not None:
                self._claimed.add(run.id)
        return run
