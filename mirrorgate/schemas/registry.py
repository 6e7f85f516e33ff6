"""npm registry payload schemas.

Version documents come in several historical shapes.  Everything is folded
here into one canonical form so the engines never branch on runtime type:

* ``license`` — string, ``{"type": ...}`` object, or legacy ``licenses``
  list → a single string or ``None``.
* ``dependencies`` — ``{name: spec}`` object, or a list of
  ``{name, version|spec}`` objects / ``"name@spec"`` strings → ordered
  list of :class:`DependencySpec`.
* ``engines`` — ``{runtime: constraint}`` object, or legacy
  ``["node >= 0.8"]`` list → ``{runtime: constraint}``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class DependencySpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    spec: str = "*"

    def __str__(self) -> str:
        return f"{self.name}@{self.spec}"


def _license_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        return _license_text(value.get("type"))
    return None


def _dependency_from_item(item: Any) -> DependencySpec:
    if isinstance(item, str):
        at = item.rfind("@")
        if at > 0:
            return DependencySpec(name=item[:at], spec=item[at + 1 :].strip() or "*")
        return DependencySpec(name=item)
    if isinstance(item, dict) and isinstance(item.get("name"), str):
        spec = item.get("version", item.get("spec")) or "*"
        if not isinstance(spec, str):
            raise ValueError(f"dependency {item['name']!r} has non-string spec {spec!r}")
        return DependencySpec(name=item["name"], spec=spec.strip() or "*")
    raise ValueError(f"unrecognized dependency entry {item!r}")


class VersionManifest(BaseModel):
    """One entry of a packument's ``versions`` map."""

    model_config = ConfigDict(extra="ignore")

    name: str
    version: str
    license: str | None = None
    dependencies: list[DependencySpec] = Field(default_factory=list)
    engines: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_licenses(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("license"):
            return data
        legacy = data.get("licenses")
        if isinstance(legacy, list):
            names = [n for n in (_license_text(x) for x in legacy) if n]
            if len(names) == 1:
                return {**data, "license": names[0]}
            if names:
                return {**data, "license": "(" + " OR ".join(names) + ")"}
        elif legacy is not None:
            return {**data, "license": legacy}
        return data

    @field_validator("license", mode="before")
    @classmethod
    def _normalize_license(cls, value: Any) -> str | None:
        return _license_text(value)

    @field_validator("dependencies", mode="before")
    @classmethod
    def _normalize_dependencies(cls, value: Any) -> list[DependencySpec]:
        if value is None:
            return []
        if isinstance(value, dict):
            deps = []
            for name, spec in value.items():
                if spec is None:
                    spec = "*"
                if not isinstance(spec, str):
                    raise ValueError(f"dependency {name!r} has non-string spec {spec!r}")
                deps.append(DependencySpec(name=name, spec=spec.strip() or "*"))
            return deps
        if isinstance(value, list):
            return [_dependency_from_item(item) for item in value]
        raise ValueError(f"unrecognized dependencies shape: {type(value).__name__}")

    @field_validator("engines", mode="before")
    @classmethod
    def _normalize_engines(cls, value: Any) -> dict[str, str]:
        # engines is advisory, so odd shapes are dropped rather than rejected
        if isinstance(value, dict):
            return {str(k): v.strip() for k, v in value.items() if isinstance(v, str)}
        if isinstance(value, list):
            engines: dict[str, str] = {}
            for entry in value:
                if isinstance(entry, str) and entry.strip():
                    runtime, _, constraint = entry.strip().partition(" ")
                    engines[runtime] = constraint.strip() or "*"
            return engines
        return {}
