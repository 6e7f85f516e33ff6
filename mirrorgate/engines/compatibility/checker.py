"""CompatibilityChecker — evaluate a declared runtime constraint.

The result is advisory: callers warn on incompatibility and carry on.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from mirrorgate.core.semver import Version, parse_constraint

log = structlog.get_logger("mirrorgate.engine")


@dataclass
class CompatibilityResult:
    compatible: bool
    constraint: str
    current: str
    warnings: list[str] = field(default_factory=list)


def _coerce_current(current: str) -> Version | None:
    version = Version.coerce(current)
    if version is not None:
        return version
    # "v20", "20.11": zero-filled the same way constraint targets are
    rng = parse_constraint(current)
    if rng.warnings or len(rng.alternatives) != 1:
        return None
    comparators = rng.alternatives[0].comparators
    if len(comparators) != 1 or comparators[0].op != "=":
        return None
    return comparators[0].version


class CompatibilityChecker:
    """Check ``engines`` constraints against the runtime version in use."""

    def check(self, current: str, constraint: str) -> CompatibilityResult:
        result = CompatibilityResult(compatible=True, constraint=constraint, current=current)
        version = _coerce_current(current)
        if version is None:
            result.warnings.append(f"cannot read current runtime version {current!r}")
            log.warning("compat.bad_runtime_version", current=current)
            return result

        rng = parse_constraint(constraint)
        for warning in rng.warnings:
            log.warning("compat.unparseable", constraint=constraint, detail=warning)
        result.warnings.extend(rng.warnings)
        result.compatible = rng.test(version, include_prerelease=True)
        return result

    def is_compatible(self, current: str, constraint: str) -> bool:
        return self.check(current, constraint).compatible
