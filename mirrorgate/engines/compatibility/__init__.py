"""Compatibility engine — runtime-version constraint evaluation."""

from mirrorgate.engines.compatibility.checker import CompatibilityChecker, CompatibilityResult

__all__ = ["CompatibilityChecker", "CompatibilityResult"]
