"""RunContext — memoization scope owned by one invocation (single or batch)."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from mirrorgate.models import DependencyNode, ResolvedVersion

_DEFAULT_CONCURRENCY = 4


class RunContext:
    """Shared state for every package evaluated in one invocation.

    Holds packument fetches, resolutions and fetched dependency nodes so
    that common transitive dependencies are fetched once per batch.  All of
    it is guarded by one lock because packages are evaluated concurrently.
    Nothing here outlives the invocation.
    """

    def __init__(self, max_concurrency: int = _DEFAULT_CONCURRENCY) -> None:
        self.lock = asyncio.Lock()
        self.semaphore = asyncio.Semaphore(max_concurrency)
        self.resolutions: dict[tuple[str, str], ResolvedVersion] = {}
        self.nodes: dict[tuple[str, str], DependencyNode] = {}
        self._packuments: dict[str, asyncio.Task[dict[str, Any]]] = {}

    async def packument(
        self,
        name: str,
        fetch: Callable[[str], Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        """Return the packument for *name*, fetching it at most once.

        Concurrent callers for the same name await the same fetch.  A failed
        fetch is forgotten so that a later caller may try again.
        """
        async with self.lock:
            task = self._packuments.get(name)
            if task is None:
                task = asyncio.ensure_future(fetch(name))
                self._packuments[name] = task
        try:
            return await asyncio.shield(task)
        except Exception:
            async with self.lock:
                if self._packuments.get(name) is task:
                    del self._packuments[name]
            raise

    @property
    def fetched_packages(self) -> list[str]:
        return sorted(self._packuments)

    async def remember_resolution(self, resolved: ResolvedVersion) -> ResolvedVersion:
        async with self.lock:
            return self.resolutions.setdefault((resolved.name, resolved.spec), resolved)

    async def remember_node(self, node: DependencyNode) -> DependencyNode:
        async with self.lock:
            return self.nodes.setdefault(node.key, node)
