"""Manifest engine — persist resolved versions into package.json."""

from mirrorgate.engines.manifest.updater import DEPENDENCY_SECTIONS, ManifestUpdater

__all__ = ["DEPENDENCY_SECTIONS", "ManifestUpdater"]
