"""Test doubles for pkgrecon — in-memory registry and fingerprinter.

Usage::

    from pkgrecon.testing import FakeRegistry, FakeFingerprinter

    registry = FakeRegistry({"react": ["18.2.0", "18.3.1"]})
    registry = FakeRegistry({"react-dom": metadata}, latest={"react-dom": "18.3.1"})
    fingerprinter = FakeFingerprinter({"lodash": VersionResult("4.17.21", "high", "fingerprint")})
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from pkgrecon.engines.version_resolver.fingerprint import FingerprintOptions
from pkgrecon.engines.version_resolver.models import (
    PackageMetadata,
    SourceFile,
    VersionDetail,
    VersionResult,
)


class FakeRegistry:
    """Registry answering from a dict; implements the ``Registry`` protocol.

    Parameters
    ----------
    packages:
        name -> PackageMetadata, or name -> list of published versions.
        Every listed name exists.
    latest:
        name -> version returned by ``latest_version``. Defaults to the
        ``latest`` dist-tag, then the last listed version.
    fail:
        When ``True`` every call raises ``RuntimeError``.
    """

    def __init__(
        self,
        packages: Mapping[str, PackageMetadata | Iterable[str]] | None = None,
        *,
        latest: Mapping[str, str | None] | None = None,
        fail: bool = False,
    ) -> None:
        self.packages: dict[str, PackageMetadata] = {}
        for name, value in (packages or {}).items():
            if isinstance(value, PackageMetadata):
                self.packages[name] = value
            else:
                self.packages[name] = PackageMetadata(
                    name=name, versions={v: VersionDetail() for v in value}
                )
        self._latest = dict(latest or {})
        self.fail = fail
        self.calls: list[tuple[str, ...]] = []

    async def __aenter__(self) -> FakeRegistry:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    def _record(self, *call: str) -> None:
        self.calls.append(call)
        if self.fail:
            raise RuntimeError(f"registry unavailable: {call[0]}")

    async def package_exists(self, name: str) -> bool:
        self._record("package_exists", name)
        return name in self.packages

    async def get_package_metadata(self, name: str) -> PackageMetadata | None:
        self._record("get_package_metadata", name)
        return self.packages.get(name)

    async def version_exists(self, name: str, version: str) -> bool:
        self._record("version_exists", name, version)
        meta = self.packages.get(name)
        return meta is not None and version in meta.versions

    async def latest_version(self, name: str) -> str | None:
        self._record("latest_version", name)
        if name in self._latest:
            return self._latest[name]
        meta = self.packages.get(name)
        if meta is None or not meta.versions:
            return None
        return meta.dist_tags.get("latest") or list(meta.versions)[-1]

    def calls_to(self, method: str) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[0] == method]


class FakeFingerprinter:
    """Returns canned results per package name and records what it was asked."""

    def __init__(self, results: Mapping[str, VersionResult] | None = None) -> None:
        self.results = dict(results or {})
        self.calls: list[tuple[str, list[str], FingerprintOptions]] = []

    async def match(
        self,
        name: str,
        candidate_files: Sequence[SourceFile],
        options: FingerprintOptions,
    ) -> VersionResult | None:
        self.calls.append((name, [f.path for f in candidate_files], options))
        return self.results.get(name)
