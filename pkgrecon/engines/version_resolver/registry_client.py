"""Async npm registry client with caching, retries and conservative fallbacks."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

import httpx
import structlog

from pkgrecon.core.config import DEFAULT_REGISTRY_URL
from pkgrecon.engines.version_resolver.models import PackageMetadata, VersionDetail

log = structlog.get_logger("pkgrecon.engine")

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds


class RegistryError(Exception):
    """Raised when the registry cannot be reached after all retries."""


@runtime_checkable
class Registry(Protocol):
    """What the resolver needs from a package registry.

    Implementations degrade to "exists"/"valid" on failure and only report
    non-existence when the registry says so.
    """

    async def package_exists(self, name: str) -> bool: ...

    async def get_package_metadata(self, name: str) -> PackageMetadata | None: ...

    async def version_exists(self, name: str, version: str) -> bool: ...

    async def latest_version(self, name: str) -> str | None: ...


@dataclass
class RegistryCache:
    """In-process memo of registry answers, shareable across runs."""

    existence: dict[str, bool] = field(default_factory=dict)
    metadata: dict[str, PackageMetadata] = field(default_factory=dict)
    versions: dict[tuple[str, str], bool] = field(default_factory=dict)
    latest: dict[str, str] = field(default_factory=dict)


def parse_package_metadata(name: str, data: dict[str, Any]) -> PackageMetadata:
    """Typed view of a registry packument (``GET /<name>``)."""
    versions: dict[str, VersionDetail] = {}
    for version, info in (data.get("versions") or {}).items():
        peers = (info or {}).get("peerDependencies") or {}
        versions[version] = VersionDetail(
            peer_dependencies={str(k): str(v) for k, v in peers.items()}
        )
    dist_tags = {str(k): str(v) for k, v in (data.get("dist-tags") or {}).items()}
    return PackageMetadata(name=name, versions=versions, dist_tags=dist_tags)


class NpmRegistryClient:
    """Thin async wrapper around the npm registry HTTP API."""

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        *,
        cache: RegistryCache | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cache = cache or RegistryCache()
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> NpmRegistryClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def package_exists(self, name: str) -> bool:
        if name in self.cache.metadata:
            return True
        cached = self.cache.existence.get(name)
        if cached is not None:
            return cached
        return (await self._fetch_packument(name))[0]

    async def get_package_metadata(self, name: str) -> PackageMetadata | None:
        if name in self.cache.metadata:
            return self.cache.metadata[name]
        if self.cache.existence.get(name) is False:
            return None
        return (await self._fetch_packument(name))[1]

    async def version_exists(self, name: str, version: str) -> bool:
        key = (name, version)
        if key in self.cache.versions:
            return self.cache.versions[key]
        meta = self.cache.metadata.get(name)
        if meta is not None and version in meta.versions:
            return True
        try:
            resp = await self._request_with_retry("HEAD", f"/{_encode(name)}/{quote(version, safe='')}")
        except RegistryError as exc:
            log.warning("registry.version_check_failed", package=name, version=version, error=str(exc))
            return True
        if resp.status_code == 404:
            self.cache.versions[key] = False
            return False
        if resp.is_success:
            self.cache.versions[key] = True
            return True
        return True

    async def latest_version(self, name: str) -> str | None:
        if name in self.cache.latest:
            return self.cache.latest[name]
        try:
            resp = await self._request_with_retry("GET", f"/{_encode(name)}/latest")
        except RegistryError as exc:
            log.warning("registry.latest_failed", package=name, error=str(exc))
            return None
        if not resp.is_success:
            return None
        try:
            version = resp.json().get("version")
        except (ValueError, AttributeError):
            return None
        if version:
            self.cache.latest[name] = str(version)
        return version or None

    # ── internal ───────────────────────────────────────────────────────────

    async def _fetch_packument(self, name: str) -> tuple[bool, PackageMetadata | None]:
        """One request answers both existence and metadata."""
        try:
            resp = await self._request_with_retry("GET", f"/{_encode(name)}")
        except RegistryError as exc:
            log.warning("registry.packument_failed", package=name, error=str(exc))
            return True, None

        if resp.status_code == 404:
            self.cache.existence[name] = False
            return False, None
        if not resp.is_success:
            return True, None

        try:
            meta = parse_package_metadata(name, resp.json())
        except (ValueError, AttributeError) as exc:
            log.warning("registry.packument_malformed", package=name, error=str(exc))
            return True, None

        self.cache.metadata[name] = meta
        self.cache.existence[name] = True
        return True, meta

    async def _request_with_retry(self, method: str, url: str) -> httpx.Response:
        """Request with exponential backoff on 5xx, 429 and transport errors."""
        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.request(method, url)
                if resp.status_code < 500 and resp.status_code != 429:
                    return resp
                log.warning(
                    "registry.server_error",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = RegistryError(f"{method} {url} -> {resp.status_code}")
            except httpx.TimeoutException as exc:
                log.warning("registry.timeout", url=url, attempt=attempt + 1, max_retries=_MAX_RETRIES)
                last_exc = exc
            except httpx.TransportError as exc:
                log.warning("registry.transport_error", url=url, error=str(exc), attempt=attempt + 1)
                last_exc = exc

            if attempt < _MAX_RETRIES - 1:
                await asyncio.sleep(_RETRY_BASE_DELAY * (2**attempt))

        raise RegistryError(str(last_exc)) from last_exc


def _encode(name: str) -> str:
    """Registry path segment: ``@scope/pkg`` -> ``@scope%2Fpkg``."""
    return quote(name, safe="@")
