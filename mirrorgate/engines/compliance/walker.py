"""ComplianceWalker — license check over the full transitive dependency graph."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from mirrorgate.context import RunContext
from mirrorgate.engines.compliance.licenses import LicensePolicy
from mirrorgate.engines.version_resolver.resolver import VersionResolver
from mirrorgate.exceptions import LicenseViolation

log = structlog.get_logger("mirrorgate.engine")

VertexKey = tuple[str, str]


class VisitedSet:
    """(name, version) keys seen by one walk. Membership only grows."""

    def __init__(self) -> None:
        self._keys: set[VertexKey] = set()

    def add(self, key: VertexKey) -> None:
        self._keys.add(key)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self):
        return iter(self._keys)


@dataclass
class WalkReport:
    """Result of one compliance walk."""

    root: VertexKey
    evaluated: int = 0
    violation: LicenseViolation | None = None
    visited: VisitedSet = field(default_factory=VisitedSet)

    @property
    def accepted(self) -> bool:
        return self.violation is None

    def raise_for_violation(self) -> None:
        if self.violation is not None:
            raise self.violation


class ComplianceWalker:
    """Depth-first, cycle-safe license walk.

    Stack entries carry the declared spec; each one is resolved to an exact
    version when popped, immediately before its vertex is evaluated, so
    resolution and evaluation follow the same depth-first order.  The walk
    stops at the first vertex whose license the policy rejects.
    """

    def __init__(self, resolver: VersionResolver, policy: LicensePolicy) -> None:
        self._resolver = resolver
        self._policy = policy

    async def check_compliance(
        self,
        name: str,
        version: str,
        ctx: RunContext | None = None,
        *,
        visited: VisitedSet | None = None,
    ) -> WalkReport:
        """Walk *name*@*version* and everything it depends on.

        Raises :class:`ResolutionFailed` if a transitive spec cannot be
        resolved; a license problem is reported in the returned
        :class:`WalkReport` rather than raised.
        """
        ctx = ctx or RunContext()
        report = WalkReport(root=(name, version))
        if visited is not None:
            report.visited = visited
        parents: dict[VertexKey, VertexKey] = {}
        # (name, spec, parent); the root's spec is already an exact version
        stack: list[tuple[str, str, VertexKey | None]] = [(name, version, None)]

        while stack:
            dep_name, spec, parent = stack.pop()
            if parent is None:
                key = (dep_name, spec)
            else:
                resolved = await self._resolver.resolve(
                    dep_name, spec, ctx, parent=f"{parent[0]}@{parent[1]}"
                )
                key = (dep_name, str(resolved.version))
            if key in report.visited:
                continue
            if parent is not None:
                parents.setdefault(key, parent)
            node = await self._resolver.node(key[0], key[1], ctx)
            report.visited.add(key)
            report.evaluated += 1

            if not self._policy.allows(node.license):
                report.violation = LicenseViolation(node, _path_to(key, parents))
                log.warning(
                    "walker.violation",
                    root=f"{name}@{version}",
                    package=str(node),
                    license=node.license,
                    evaluated=report.evaluated,
                )
                return report

            # Reversed so the first declared dependency is explored first.
            stack.extend((dep.name, dep.spec, key) for dep in reversed(node.dependencies))

        log.info("walker.accepted", root=f"{name}@{version}", evaluated=report.evaluated)
        return report


def _path_to(key: VertexKey, parents: dict[VertexKey, VertexKey]) -> tuple[str, ...]:
    path = [key]
    seen = {key}
    while path[-1] in parents and parents[path[-1]] not in seen:
        path.append(parents[path[-1]])
        seen.add(path[-1])
    return tuple(f"{n}@{v}" for n, v in reversed(path))
