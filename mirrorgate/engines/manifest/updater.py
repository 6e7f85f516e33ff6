"""ManifestUpdater — field-level edits of ``package.json`` dependency entries."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from pathlib import Path

import structlog

from mirrorgate.models import PackageRequest

log = structlog.get_logger("mirrorgate.manifest")

DEPENDENCY_SECTIONS = ("dependencies", "devDependencies")

_INDENT_RE = re.compile(r"^\{\s*?\n([ \t]+)\S", re.MULTILINE)

# Specs the registry resolver cannot handle: aliases, git, file and URL specs.
_NON_REGISTRY_SPEC_RE = re.compile(r"^(npm:|file:|link:|workspace:|git[+:]|https?:|github:)|/")


def _detect_indent(text: str) -> int | str:
    m = _INDENT_RE.match(text)
    if not m:
        return 2
    indent = m.group(1)
    return indent if "\t" in indent else len(indent)


class ManifestUpdater:
    """Read requests from, and write resolved versions into, a package manifest.

    Writes touch only the dependency entries being set; key order,
    indentation and the trailing newline of the file are preserved.
    """

    def __init__(self, path: Path | str, scope: str) -> None:
        self.path = Path(path)
        self.scope = scope.lstrip("@")

    def _load(self) -> tuple[dict, str]:
        text = self.path.read_text(encoding="utf-8")
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return data, text

    def read_requests(self) -> list[PackageRequest]:
        """Batch mode: one request per registry dependency in the manifest.

        Entries already pointing at the private scope, and entries whose spec
        is not a registry spec (git, file, alias), are skipped.
        """
        data, _ = self._load()
        requests: list[PackageRequest] = []
        seen: set[str] = set()
        for section in DEPENDENCY_SECTIONS:
            deps = data.get(section) or {}
            if not isinstance(deps, dict):
                log.warning("manifest.bad_section", section=section, path=str(self.path))
                continue
            for name, spec in deps.items():
                if name in seen:
                    continue
                if name.startswith(f"@{self.scope}/"):
                    continue
                if not isinstance(spec, str) or _NON_REGISTRY_SPEC_RE.search(spec.strip()):
                    log.info("manifest.skip_non_registry", package=name, spec=spec)
                    continue
                seen.add(name)
                requests.append(PackageRequest(name=name, version_spec=spec.strip() or "latest"))
        return requests

    def apply(self, entries: Mapping[str, str]) -> bool:
        """Pin each ``name → version`` entry. Returns True if the file changed.

        The entry is updated in whichever section already lists the name
        (``dependencies`` if none does).  Any ``@<scope>/<basename>`` alias
        for the same package is removed from every section.
        """
        if not entries:
            return False
        data, original = self._load()

        for name, version in entries.items():
            base = name.rsplit("/", 1)[-1]
            alias = f"@{self.scope}/{base}"
            target = next(
                (s for s in DEPENDENCY_SECTIONS if name in (data.get(s) or {})),
                "dependencies",
            )
            for section in DEPENDENCY_SECTIONS:
                deps = data.get(section)
                if isinstance(deps, dict) and alias != name and alias in deps:
                    del deps[alias]
                    log.info("manifest.alias_removed", alias=alias, section=section)
            section_deps = data.get(target)
            if not isinstance(section_deps, dict):
                section_deps = data[target] = {}
            section_deps[name] = version

        if data == json.loads(original):
            return False
        indent = _detect_indent(original)
        rendered = json.dumps(data, indent=indent, ensure_ascii=False)
        if original.endswith("\n"):
            rendered += "\n"
        self.path.write_text(rendered, encoding="utf-8")
        log.info("manifest.updated", path=str(self.path), packages=sorted(entries))
        return True
