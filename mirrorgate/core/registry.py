"""Read-only npm registry client, used for the public registry and the private mirror."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from mirrorgate.core.http import ApiClient
from mirrorgate.exceptions import PackageNotFound

PUBLIC_REGISTRY = "https://registry.npmjs.org"
GITHUB_PACKAGES_REGISTRY = "https://npm.pkg.github.com"


def encode_name(name: str) -> str:
    """Path-encode a package name: ``@scope/pkg`` → ``@scope%2Fpkg``."""
    return quote(name, safe="@")


class RegistryClient(ApiClient):
    """Read-only access to an npm-compatible registry."""

    log_prefix = "registry"

    def __init__(
        self,
        base_url: str = PUBLIC_REGISTRY,
        token: str | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        super().__init__(base_url, headers, timeout=timeout, transport=transport)

    async def get_packument(self, name: str) -> dict[str, Any]:
        """Fetch the full package document (``dist-tags`` + ``versions``).

        Raises :class:`PackageNotFound` on 404.
        """
        try:
            return await self.get_json(f"/{encode_name(name)}")
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise PackageNotFound(name) from exc
            raise

    async def has_version(self, name: str, version: str) -> bool:
        """True if the registry serves *name* at exactly *version*.

        Only a 404 counts as "absent"; any other failure propagates so the
        caller can tell "not there" apart from "could not ask".
        """
        try:
            packument = await self.get_packument(name)
        except PackageNotFound:
            return False
        versions = packument.get("versions")
        return isinstance(versions, dict) and version in versions
