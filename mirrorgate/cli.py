"""CLI entry point: mirrorgate.

Usage:
    mirrorgate axios@^1.6 lodash          # evaluate the given packages
    mirrorgate                            # batch mode: every dependency in package.json
    mirrorgate --dry-run --json left-pad  # no manifest writes, JSON report on stdout
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click

from mirrorgate.config import Settings, load_settings
from mirrorgate.context import RunContext
from mirrorgate.core.github import GitHubClient
from mirrorgate.core.logging import setup_logging
from mirrorgate.core.registry import RegistryClient
from mirrorgate.engines.cache_gate.gate import CacheGate
from mirrorgate.engines.cache_gate.models import GateConfig
from mirrorgate.engines.compatibility.checker import CompatibilityChecker
from mirrorgate.engines.compliance.licenses import LicensePolicy
from mirrorgate.engines.compliance.walker import ComplianceWalker
from mirrorgate.engines.manifest.updater import ManifestUpdater
from mirrorgate.engines.version_resolver.resolver import VersionResolver
from mirrorgate.exceptions import ConfigError
from mirrorgate.models import OutcomeKind, PackageRequest
from mirrorgate.pipeline import PackageReport, Pipeline

_STATUS_ICON = {
    OutcomeKind.PRESENT: "=",
    OutcomeKind.SUCCEEDED: "+",
    OutcomeKind.FAILED: "!",
    OutcomeKind.TIMED_OUT: "~",
}


def _parse_tokens(tokens: tuple[str, ...]) -> list[PackageRequest]:
    requests = []
    for token in tokens:
        try:
            requests.append(PackageRequest.parse(token))
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="PACKAGES") from exc
    return requests


async def _run(
    settings: Settings,
    requests: list[PackageRequest],
    manifest: ManifestUpdater | None,
    write_manifest: bool,
) -> list[PackageReport]:
    owner, repo = settings.owner_repo
    gate_config = GateConfig(
        owner=owner,
        repo=repo,
        scope=settings.mirror_scope,
        workflow=settings.workflow,
        ref=settings.ref,
        poll_interval=settings.poll_interval,
        poll_max_interval=settings.poll_max_interval,
        deadline=settings.poll_deadline,
        dispatch_grace=settings.dispatch_grace,
    )
    async with (
        RegistryClient(settings.public_registry) as public,
        RegistryClient(settings.mirror_registry, token=settings.github_token) as mirror,
        GitHubClient(settings.github_token) as github,
    ):
        resolver = VersionResolver(public)
        policy = LicensePolicy(settings.allowed_licenses, settings.missing_license)
        pipeline = Pipeline(
            resolver,
            CompatibilityChecker(),
            ComplianceWalker(resolver, policy),
            CacheGate(mirror, github, gate_config),
            runtime_version=settings.node_version,
            manifest=manifest,
        )
        ctx = RunContext(settings.max_concurrency)
        return await pipeline.evaluate_all(requests, ctx, write_manifest=write_manifest)


def _print_reports(reports: list[PackageReport], as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps([r.as_dict() for r in reports], indent=2))
        return
    for r in reports:
        icon = _STATUS_ICON.get(r.outcome.kind, "?")
        version = f" -> {r.resolved.version}" if r.resolved else ""
        click.echo(f"[{icon}] {r.request}{version}: {r.outcome.kind.value}")
        if r.outcome.reason:
            click.echo(f"      {r.outcome.reason}")
        if r.outcome.run_url:
            click.echo(f"      run: {r.outcome.run_url}")
        for warning in r.warnings:
            click.echo(f"      warning: {warning}")


@click.command()
@click.argument("packages", nargs=-1)
@click.option(
    "--manifest",
    "manifest_path",
    default="package.json",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Manifest read in batch mode and updated with resolved versions",
)
@click.option("--dry-run", is_flag=True, help="Evaluate only; never write the manifest")
@click.option("--json", "as_json", is_flag=True, help="Print reports as JSON")
@click.option("--env-file", default=None, type=click.Path(dir_okay=False), help=".env to load")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(
    packages: tuple[str, ...],
    manifest_path: str,
    dry_run: bool,
    as_json: bool,
    env_file: str | None,
    verbose: bool,
) -> None:
    """Mirror npm PACKAGES (name[@spec]) into the private registry, gated by policy."""
    setup_logging("DEBUG" if verbose else None)
    try:
        settings = load_settings(env_file)
        scope = settings.mirror_scope
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    path = Path(manifest_path)
    manifest = ManifestUpdater(path, scope) if path.is_file() else None

    if packages:
        requests = _parse_tokens(packages)
    elif manifest is not None:
        requests = manifest.read_requests()
    else:
        click.echo(f"Error: no packages given and {path} not found", err=True)
        sys.exit(2)

    if not requests:
        click.echo("Nothing to do.")
        return

    reports = asyncio.run(_run(settings, requests, manifest, write_manifest=not dry_run))
    _print_reports(reports, as_json)

    if not all(r.outcome.installable for r in reports):
        sys.exit(1)
