"""VersionResolver — turn (name, spec) into one concrete version.

Resolution always asks the public registry, never the private mirror, so
ranges resolve against the full real-world version set.
"""

from __future__ import annotations

import enum
import re
from typing import Any, Protocol

import structlog
from pydantic import ValidationError

from mirrorgate.context import RunContext
from mirrorgate.core.semver import Version, parse_range
from mirrorgate.exceptions import (
    InvalidConstraint,
    PackageNotFound,
    RegistryError,
    ResolutionFailed,
)
from mirrorgate.models import DependencyNode, ResolvedVersion
from mirrorgate.schemas.registry import VersionManifest

log = structlog.get_logger("mirrorgate.engine")

_TAG_RE = re.compile(r"^[A-Za-z][A-Za-z0-9._-]*$")


class SpecKind(str, enum.Enum):
    EXACT = "exact"
    RANGE = "range"
    TAG = "tag"


class PackumentSource(Protocol):
    async def get_packument(self, name: str) -> dict[str, Any]: ...


def classify_spec(spec: str) -> SpecKind:
    """Decide how *spec* should be resolved.

    Raises :class:`InvalidConstraint` for specifiers we do not resolve
    (``npm:`` aliases, git and file URLs, garbage).
    """
    if Version.coerce(spec) is not None:
        return SpecKind.EXACT
    try:
        parse_range(spec)
    except InvalidConstraint:
        if _TAG_RE.match(spec):
            return SpecKind.TAG
        raise
    return SpecKind.RANGE


class VersionResolver:
    """Resolve specs against a registry, memoizing through a :class:`RunContext`."""

    def __init__(self, registry: PackumentSource) -> None:
        self._registry = registry

    async def _packument(
        self, name: str, spec: str, ctx: RunContext, parent: str | None = None
    ) -> dict[str, Any]:
        try:
            return await ctx.packument(name, self._registry.get_packument)
        except PackageNotFound as exc:
            raise ResolutionFailed(
                name, spec, "package not found in public registry", parent=parent
            ) from exc

    async def resolve(
        self,
        name: str,
        spec: str,
        ctx: RunContext | None = None,
        *,
        parent: str | None = None,
    ) -> ResolvedVersion:
        """Resolve *spec* for *name* to a concrete version.

        Raises :class:`ResolutionFailed` (with the original *spec*) when the
        registry has nothing satisfying it.
        """
        ctx = ctx or RunContext()
        spec = spec.strip()
        cached = ctx.resolutions.get((name, spec))
        if cached is not None:
            return cached

        try:
            kind = classify_spec(spec)
        except InvalidConstraint as exc:
            raise ResolutionFailed(
                name, spec, "unsupported version specifier", parent=parent
            ) from exc

        packument = await self._packument(name, spec, ctx, parent)
        versions = packument.get("versions") or {}
        dist_tags = packument.get("dist-tags") or {}

        chosen: Version | None
        if kind is SpecKind.TAG:
            tagged = dist_tags.get(spec)
            chosen = Version.coerce(tagged) if isinstance(tagged, str) else None
            if chosen is None:
                raise ResolutionFailed(name, spec, f"no dist-tag {spec!r}", parent=parent)
        elif kind is SpecKind.EXACT:
            chosen = Version.parse(spec)
            if str(chosen) not in versions:
                raise ResolutionFailed(name, spec, "version not published", parent=parent)
        else:
            chosen = self._pick_from_range(spec, versions, dist_tags)
            if chosen is None:
                raise ResolutionFailed(
                    name, spec, "no published version satisfies range", parent=parent
                )

        resolved = await ctx.remember_resolution(ResolvedVersion(name, spec, chosen))
        log.debug("resolver.resolved", package=name, spec=spec, version=str(resolved.version))
        return resolved

    @staticmethod
    def _pick_from_range(
        spec: str, versions: dict[str, Any], dist_tags: dict[str, Any]
    ) -> Version | None:
        rng = parse_range(spec)
        # The registry's "latest" wins whenever it satisfies the range.
        latest = dist_tags.get("latest")
        latest_version = Version.coerce(latest) if isinstance(latest, str) else None
        if latest_version is not None and str(latest_version) in versions:
            if rng.test(latest_version):
                return latest_version
        candidates = [v for v in (Version.coerce(k) for k in versions) if v is not None]
        return rng.max_satisfying(candidates)

    async def node(
        self, name: str, version: str, ctx: RunContext | None = None
    ) -> DependencyNode:
        """Fetch the dependency-graph vertex for an exact *version*."""
        ctx = ctx or RunContext()
        cached = ctx.nodes.get((name, version))
        if cached is not None:
            return cached

        packument = await self._packument(name, version, ctx)
        doc = (packument.get("versions") or {}).get(version)
        if doc is None:
            raise ResolutionFailed(name, version, "version not published")
        try:
            manifest = VersionManifest.model_validate(doc)
        except ValidationError as exc:
            raise RegistryError(
                f"malformed version document for {name}@{version}: {exc}"
            ) from exc

        node = DependencyNode(
            name=name,
            version=version,
            license=manifest.license,
            dependencies=tuple(manifest.dependencies),
            engines=manifest.engines,
        )
        return await ctx.remember_node(node)

    async def exists_publicly(self, name: str, version: str) -> bool:
        """True if *name*@*version* is still published on the public registry."""
        try:
            packument = await self._registry.get_packument(name)
        except PackageNotFound:
            return False
        return version in (packument.get("versions") or {})
