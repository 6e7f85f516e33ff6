"""Version resolver engine — resolve package specs against the public registry."""

from mirrorgate.engines.version_resolver.resolver import SpecKind, VersionResolver, classify_spec

__all__ = ["SpecKind", "VersionResolver", "classify_spec"]
