"""Domain models shared by the engines.

These are pure data structures with no network or filesystem access.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from mirrorgate.core.semver import Version

if TYPE_CHECKING:
    from mirrorgate.exceptions import MirrorGateError
    from mirrorgate.schemas.registry import DependencySpec

DEFAULT_SPEC = "latest"


@dataclass(frozen=True)
class PackageRequest:
    """A package as the caller asked for it, not yet resolved."""

    name: str
    version_spec: str = DEFAULT_SPEC

    @classmethod
    def parse(cls, token: str) -> PackageRequest:
        """Split a ``name[@spec]`` token.

        Scoped names keep their leading ``@``: ``@types/node@20`` is
        ``("@types/node", "20")``.
        """
        token = token.strip()
        if not token:
            raise ValueError("empty package token")
        at = token.rfind("@")
        if at > 0:
            name, spec = token[:at], token[at + 1 :]
        else:
            name, spec = token, ""
        if not name or name == "@" or name.endswith("/"):
            raise ValueError(f"invalid package token {token!r}")
        return cls(name=name, version_spec=spec.strip() or DEFAULT_SPEC)

    @property
    def base_name(self) -> str:
        """The name without any ``@scope/`` prefix."""
        return self.name.rsplit("/", 1)[-1]

    def __str__(self) -> str:
        return f"{self.name}@{self.version_spec}"


@dataclass(frozen=True)
class ResolvedVersion:
    """One concrete version chosen for a (name, spec) pair."""

    name: str
    spec: str
    version: Version

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass(frozen=True)
class DependencyNode:
    """One vertex of the transitive dependency graph."""

    name: str
    version: str
    license: str | None
    dependencies: tuple[DependencySpec, ...] = ()
    engines: dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.version)

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


class OutcomeKind(str, enum.Enum):
    PRESENT = "present"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class Outcome:
    """Final verdict for one package request."""

    kind: OutcomeKind
    reason: str | None = None
    run_url: str | None = None
    error: MirrorGateError | None = field(default=None, compare=False)

    @classmethod
    def present(cls) -> Outcome:
        return cls(OutcomeKind.PRESENT)

    @classmethod
    def succeeded(cls, run_url: str | None = None) -> Outcome:
        return cls(OutcomeKind.SUCCEEDED, run_url=run_url)

    @classmethod
    def failed(cls, error: MirrorGateError, run_url: str | None = None) -> Outcome:
        return cls(OutcomeKind.FAILED, reason=str(error), run_url=run_url, error=error)

    @classmethod
    def timed_out(cls, error: MirrorGateError, run_url: str | None = None) -> Outcome:
        return cls(OutcomeKind.TIMED_OUT, reason=str(error), run_url=run_url, error=error)

    @property
    def installable(self) -> bool:
        return self.kind in (OutcomeKind.PRESENT, OutcomeKind.SUCCEEDED)
