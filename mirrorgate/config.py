"""Runtime settings, read from environment variables and an optional ``.env`` file."""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

import structlog
from dotenv import load_dotenv

from mirrorgate.core.github import parse_repo_url
from mirrorgate.core.registry import GITHUB_PACKAGES_REGISTRY, PUBLIC_REGISTRY
from mirrorgate.engines.compliance.licenses import DEFAULT_ALLOWED_LICENSES, MissingLicensePolicy
from mirrorgate.exceptions import ConfigError

log = structlog.get_logger("mirrorgate.config")


@dataclass(frozen=True)
class Settings:
    github_token: str | None = None
    repo: str | None = None  # "owner/repo" hosting the caching workflow
    scope: str | None = None  # private npm scope; defaults to the repo owner
    workflow: str = "publish-to-ghp.yml"
    ref: str = "main"
    public_registry: str = PUBLIC_REGISTRY
    mirror_registry: str = GITHUB_PACKAGES_REGISTRY
    allowed_licenses: tuple[str, ...] = DEFAULT_ALLOWED_LICENSES
    missing_license: MissingLicensePolicy = MissingLicensePolicy.DENY
    poll_interval: float = 5.0
    poll_max_interval: float = 20.0
    poll_deadline: float = 60.0
    dispatch_grace: float = 3.0
    max_concurrency: int = 4
    node_version: str | None = None

    @property
    def owner_repo(self) -> tuple[str, str]:
        if not self.repo:
            raise ConfigError("MIRRORGATE_REPO is not set (expected 'owner/repo')")
        try:
            return parse_repo_url(self.repo)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

    @property
    def mirror_scope(self) -> str:
        if self.scope:
            return self.scope.lstrip("@")
        return self.owner_repo[0]


def _env_float(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


def _env_int(key: str, default: int) -> int:
    value = _env_float(key, default)
    if value < 1 or value != int(value):
        raise ConfigError(f"{key} must be a positive integer, got {value!r}")
    return int(value)


def _env_licenses(key: str) -> tuple[str, ...]:
    raw = os.environ.get(key)
    if not raw:
        return DEFAULT_ALLOWED_LICENSES
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_missing_policy(key: str) -> MissingLicensePolicy:
    raw = os.environ.get(key, MissingLicensePolicy.DENY.value).strip().lower()
    try:
        return MissingLicensePolicy(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be 'deny' or 'allow', got {raw!r}") from exc


def detect_node_version() -> str | None:
    """Return the local ``node --version`` (without the ``v``), or None."""
    node = shutil.which("node")
    if node is None:
        return None
    try:
        proc = subprocess.run(
            [node, "--version"], check=True, capture_output=True, text=True, timeout=10
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError):
        log.warning("config.node_version_unavailable", node=node)
        return None
    return proc.stdout.strip().lstrip("v") or None


def load_settings(env_file: Path | str | None = None) -> Settings:
    """Build :class:`Settings` from the environment.

    Values already in the environment win over those in *env_file* (or a
    ``.env`` in the working directory when *env_file* is None).
    """
    load_dotenv(env_file)
    node_version = os.environ.get("MIRRORGATE_NODE_VERSION") or detect_node_version()
    return Settings(
        github_token=os.environ.get("GITHUB_TOKEN") or None,
        repo=os.environ.get("MIRRORGATE_REPO") or None,
        scope=os.environ.get("MIRRORGATE_SCOPE") or None,
        workflow=os.environ.get("MIRRORGATE_WORKFLOW", "publish-to-ghp.yml"),
        ref=os.environ.get("MIRRORGATE_REF", "main"),
        public_registry=os.environ.get("MIRRORGATE_PUBLIC_REGISTRY", PUBLIC_REGISTRY),
        mirror_registry=os.environ.get("MIRRORGATE_MIRROR_REGISTRY", GITHUB_PACKAGES_REGISTRY),
        allowed_licenses=_env_licenses("MIRRORGATE_ALLOWED_LICENSES"),
        missing_license=_env_missing_policy("MIRRORGATE_MISSING_LICENSE"),
        poll_interval=_env_float("MIRRORGATE_POLL_INTERVAL", 5.0),
        poll_max_interval=_env_float("MIRRORGATE_POLL_MAX_INTERVAL", 20.0),
        poll_deadline=_env_float("MIRRORGATE_POLL_DEADLINE", 60.0),
        dispatch_grace=_env_float("MIRRORGATE_DISPATCH_GRACE", 3.0),
        max_concurrency=_env_int("MIRRORGATE_MAX_CONCURRENCY", 4),
        node_version=node_version,
    )
