"""Shared pytest fixtures — in-memory registry, mirror and GitHub doubles.

Nothing here touches the network.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from mirrorgate.engines.cache_gate.models import GateConfig
from mirrorgate.exceptions import PackageNotFound
from mirrorgate.schemas.github import WorkflowRun


class FakeRegistry:
    """Public registry double keyed by package name."""

    def __init__(self) -> None:
        self.packuments: dict[str, dict] = {}
        self.calls: list[str] = []

    def publish(
        self,
        name: str,
        version: str,
        *,
        license: str | None = "MIT",
        dependencies: dict | list | None = None,
        engines: dict | None = None,
        tag_latest: bool = True,
    ) -> None:
        doc = self.packuments.setdefault(name, {"name": name, "dist-tags": {}, "versions": {}})
        entry: dict = {"name": name, "version": version}
        if license is not None:
            entry["license"] = license
        if dependencies is not None:
            entry["dependencies"] = dependencies
        if engines is not None:
            entry["engines"] = engines
        doc["versions"][version] = entry
        if tag_latest:
            doc["dist-tags"]["latest"] = version

    async def get_packument(self, name: str) -> dict:
        self.calls.append(name)
        if name not in self.packuments:
            raise PackageNotFound(name)
        return self.packuments[name]


class FakeMirror:
    """Private mirror double; presence is a set of (name, version)."""

    def __init__(self, present: set[tuple[str, str]] | None = None) -> None:
        self.present = present or set()
        self.calls: list[tuple[str, str]] = []
        self.error: Exception | None = None

    async def has_version(self, name: str, version: str) -> bool:
        self.calls.append((name, version))
        if self.error is not None:
            raise self.error
        return (name, version) in self.present


class FakeGitHub:
    """Actions API double.

    *statuses* is the sequence of (status, conclusion) pairs the dispatched
    run reports on successive polls; the last pair repeats forever.
    """

    def __init__(
        self,
        statuses: list[tuple[str, str | None]] | None = None,
        *,
        run_appears: bool = True,
    ) -> None:
        self.statuses = statuses or [("in_progress", None), ("completed", "success")]
        self.run_appears = run_appears
        self.dispatches: list[dict] = []
        self.polls = 0
        self.dispatch_error: Exception | None = None
        self._runs: list[WorkflowRun] = []

    def _run(self, run_id: int) -> WorkflowRun:
        status, conclusion = self.statuses[min(self.polls, len(self.statuses) - 1)]
        created = next(r.created_at for r in self._runs if r.id == run_id)
        return WorkflowRun(
            id=run_id,
            status=status,
            conclusion=conclusion,
            created_at=created,
            url=f"https://github.com/acme/mirror/actions/runs/{run_id}",
        )

    async def dispatch_workflow(self, owner, repo, workflow, *, ref, inputs) -> None:
        if self.dispatch_error is not None:
            raise self.dispatch_error
        self.dispatches.append(
            {"owner": owner, "repo": repo, "workflow": workflow, "ref": ref, "inputs": inputs}
        )
        if self.run_appears:
            run_id = 1000 + len(self.dispatches)
            self._runs.append(
                WorkflowRun(
                    id=run_id,
                    status="queued",
                    created_at=datetime.now(timezone.utc),
                    url=f"https://github.com/acme/mirror/actions/runs/{run_id}",
                )
            )

    async def list_workflow_runs(self, owner, repo, workflow, **kwargs) -> list[WorkflowRun]:
        old = WorkflowRun(
            id=1,
            status="completed",
            conclusion="success",
            created_at=datetime.now(timezone.utc) - timedelta(days=1),
        )
        return sorted(self._runs + [old], key=lambda r: r.created_at, reverse=True)

    async def get_run(self, owner, repo, run_id) -> WorkflowRun:
        run = self._run(run_id)
        self.polls += 1
        return run


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def mirror() -> FakeMirror:
    return FakeMirror()


@pytest.fixture
def make_github():
    def _make(*args, **kwargs) -> FakeGitHub:
        return FakeGitHub(*args, **kwargs)

    return _make


@pytest.fixture
def gate_config() -> GateConfig:
    """Tight timings so polling scenarios finish in well under a second."""
    return GateConfig(
        owner="acme",
        repo="mirror",
        scope="acme",
        poll_interval=0.01,
        poll_max_interval=0.02,
        deadline=0.5,
        dispatch_grace=0.0,
    )


@pytest.fixture
def http_error() -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://npm.pkg.github.com/@acme%2Fpkg")
    response = httpx.Response(500, request=request)
    return httpx.HTTPStatusError("500", request=request, response=response)
