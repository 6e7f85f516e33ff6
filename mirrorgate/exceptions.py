"""Custom exceptions for mirrorgate.

Every per-package failure carries enough context for the caller to act on
it: the offending package and license, the version specifier that could not be resolved,
or a link to the failed workflow run.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mirrorgate.models import DependencyNode


class MirrorGateError(Exception):
    """Base exception for all mirrorgate errors."""


class ConfigError(MirrorGateError):
    """Raised when a required setting is missing or malformed."""


class InvalidConstraint(MirrorGateError, ValueError):
    """Raised when a version or range expression cannot be parsed."""

    def __init__(self, text: str, reason: str = "unparseable") -> None:
        self.text = text
        self.reason = reason
        super().__init__(f"invalid version constraint {text!r}: {reason}")


class InvalidLicenseExpression(MirrorGateError, ValueError):
    """Raised when a license field is not a well-formed SPDX expression."""

    def __init__(self, text: str, reason: str) -> None:
        self.text = text
        self.reason = reason
        super().__init__(f"invalid license expression {text!r}: {reason}")


class RegistryError(MirrorGateError):
    """Raised when a registry payload has a shape we cannot normalize."""


class PackageNotFound(RegistryError):
    """Raised when the registry has no document for a package."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"package {name!r} not found in registry")


class ResolutionFailed(MirrorGateError):
    """No concrete version satisfies *spec* for *name*."""

    def __init__(self, name: str, spec: str, reason: str, *, parent: str | None = None) -> None:
        self.name = name
        self.spec = spec
        self.reason = reason
        self.parent = parent
        where = f" (required by {parent})" if parent else ""
        super().__init__(f"cannot resolve {name}@{spec}{where}: {reason}")


class LicenseViolation(MirrorGateError):
    """A vertex in the dependency graph declares a license outside the allow-list."""

    def __init__(self, node: DependencyNode, path: tuple[str, ...] = ()) -> None:
        self.node = node
        self.license = node.license
        self.path = path
        declared = node.license if node.license is not None else "no license declared"
        via = f" via {' > '.join(path)}" if len(path) > 1 else ""
        super().__init__(f"{node.name}@{node.version} is licensed {declared!r}{via}")


class EngineIncompatible(MirrorGateError):
    """Advisory: the declared runtime constraint excludes the current runtime."""

    def __init__(self, name: str, version: str, constraint: str, current: str) -> None:
        self.name = name
        self.version = version
        self.constraint = constraint
        self.current = current
        super().__init__(
            f"{name}@{version} declares engines.node {constraint!r}, running {current}"
        )


class CacheCheckFailed(MirrorGateError):
    """The private mirror could not be queried."""


class DispatchFailed(MirrorGateError):
    """The caching workflow could not be dispatched."""


class PollTimeout(MirrorGateError):
    """The deadline elapsed before the workflow run completed."""

    def __init__(self, deadline: float, run_url: str | None = None) -> None:
        self.deadline = deadline
        self.run_url = run_url
        target = run_url or "workflow run not yet located"
        super().__init__(f"no terminal run state within {deadline:g}s ({target})")


class PollFailed(MirrorGateError):
    """The caching workflow run completed without success."""

    def __init__(self, conclusion: str | None, run_url: str | None) -> None:
        self.conclusion = conclusion
        self.run_url = run_url
        super().__init__(f"caching run concluded {conclusion!r}: {run_url}")


class InvalidTransition(MirrorGateError):
    """Raised when the cache gate is asked to move backwards or sideways."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"illegal cache gate transition {current} -> {target}")
