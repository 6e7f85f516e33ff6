"""GitHub Actions API client and repo-slug helpers."""

from __future__ import annotations

import os
from typing import Any

import httpx

from mirrorgate.core.http import ApiClient
from mirrorgate.schemas.github import WorkflowRun

GITHUB_API = "https://api.github.com"


class GitHubClient(ApiClient):
    """Thin async wrapper around the GitHub Actions REST endpoints we need."""

    log_prefix = "github"

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str = GITHUB_API,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        resolved_token = token or os.environ.get("GITHUB_TOKEN")
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if resolved_token:
            headers["Authorization"] = f"token {resolved_token}"
        super().__init__(base_url, headers, timeout=30.0, transport=transport)

    async def dispatch_workflow(
        self,
        owner: str,
        repo: str,
        workflow: str,
        *,
        ref: str,
        inputs: dict[str, str],
    ) -> None:
        """POST a ``workflow_dispatch`` event. GitHub answers 204 with no body."""
        await self.post_json(
            f"/repos/{owner}/{repo}/actions/workflows/{workflow}/dispatches",
            {"ref": ref, "inputs": inputs},
        )

    async def list_workflow_runs(
        self,
        owner: str,
        repo: str,
        workflow: str,
        *,
        event: str = "workflow_dispatch",
        per_page: int = 10,
    ) -> list[WorkflowRun]:
        """Most recent runs of *workflow*, newest first."""
        params: dict[str, Any] = {"event": event, "per_page": per_page}
        data = await self.get_json(
            f"/repos/{owner}/{repo}/actions/workflows/{workflow}/runs", params
        )
        runs = [WorkflowRun.model_validate(item) for item in data.get("workflow_runs", [])]
        runs.sort(key=lambda r: r.created_at, reverse=True)
        return runs

    async def get_run(self, owner: str, repo: str, run_id: int) -> WorkflowRun:
        data = await self.get_json(f"/repos/{owner}/{repo}/actions/runs/{run_id}")
        return WorkflowRun.model_validate(data)


def parse_repo_url(repo_url: str) -> tuple[str, str]:
    """Extract (owner, repo) from an ``owner/repo`` slug or a GitHub URL.

    Raises ValueError if the value cannot be parsed.
    """
    result = _extract_owner_repo(repo_url)
    if result is None:
        raise ValueError(f"cannot parse GitHub repo: {repo_url!r}")
    owner, repo = result.split("/", 1)
    return owner, repo


def _extract_owner_repo(repo_url: str) -> str | None:
    """Extract 'owner/repo' from a GitHub slug or URL.

    Handles:
      - owner/repo
      - https://github.com/owner/repo
      - https://github.com/owner/repo.git
      - git@github.com:owner/repo.git
    """
    repo_url = repo_url.strip().rstrip("/")
    if repo_url.endswith(".git"):
        repo_url = repo_url[:-4]

    # SSH format: git@github.com:owner/repo
    if repo_url.startswith("git@"):
        colon_idx = repo_url.find(":")
        if colon_idx == -1:
            return None
        repo_url = repo_url[colon_idx + 1 :]

    parts = repo_url.split("/")
    if len(parts) >= 2 and parts[-2] and parts[-1]:
        return f"{parts[-2]}/{parts[-1]}"
    return None
