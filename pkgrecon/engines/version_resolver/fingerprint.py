"""Fingerprint tier driver. Similarity itself is delegated to a ``Fingerprinter``."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import structlog

from pkgrecon.engines.version_resolver.concurrency import run_bounded
from pkgrecon.engines.version_resolver.models import (
    ProgressEvent,
    SourceFile,
    VendorBundle,
    VersionResult,
)
from pkgrecon.engines.version_resolver.paths import get_package_files

log = structlog.get_logger("pkgrecon.engine")


@dataclass(frozen=True)
class FingerprintOptions:
    min_similarity: float = 0.7
    max_versions_to_check: int = 0  # 0 = all
    include_prereleases: bool = False


@runtime_checkable
class Fingerprinter(Protocol):
    """Compares recovered files against every published version of *name*."""

    async def match(
        self,
        name: str,
        candidate_files: Sequence[SourceFile],
        options: FingerprintOptions,
    ) -> VersionResult | None: ...


async def _safe_match(
    fingerprinter: Fingerprinter,
    name: str,
    files: Sequence[SourceFile],
    options: FingerprintOptions,
) -> VersionResult | None:
    try:
        return await fingerprinter.match(name, files, options)
    except Exception as exc:
        log.warning("fingerprint.failed", package=name, error=str(exc))
        return None


async def fingerprint_packages(
    pending: Sequence[str],
    files: list[SourceFile],
    fingerprinter: Fingerprinter,
    options: FingerprintOptions,
    *,
    concurrency: int = 5,
    on_progress: Callable[[ProgressEvent], None] | None = None,
) -> dict[str, VersionResult]:
    """Fingerprint every pending package that has recovered files."""
    by_package = {name: get_package_files(files, name) for name in pending}
    work = [name for name, pkg_files in by_package.items() if pkg_files]
    results: dict[str, VersionResult] = {}

    def _collect(name: str, res: VersionResult | None, completed: int, total: int) -> None:
        if res is not None:
            results[name] = res
        if on_progress is not None:
            on_progress(ProgressEvent("fingerprint", completed, total, name))

    await run_bounded(
        work,
        lambda name: _safe_match(fingerprinter, name, by_package[name], options),
        concurrency,
        _collect,
    )
    return results


def _bundle_candidates(pending: Sequence[str], bundle: VendorBundle) -> list[str]:
    """Packages to try for *bundle*, most likely first.

    The inferred package leads, then pending packages whose name the
    filename carries, then every other pending package.
    """
    preferred: list[str] = []
    if bundle.inferred_package and bundle.inferred_package in pending:
        preferred.append(bundle.inferred_package)
    as_file = SourceFile(path=f"/{bundle.filename}", content="")
    preferred.extend(
        name for name in pending if name not in preferred and get_package_files([as_file], name)
    )
    return preferred + [name for name in pending if name not in preferred]


async def fingerprint_vendor_bundles(
    pending: Sequence[str],
    bundles: Sequence[VendorBundle],
    fingerprinter: Fingerprinter,
    options: FingerprintOptions,
    *,
    concurrency: int = 2,
    on_progress: Callable[[ProgressEvent], None] | None = None,
) -> dict[str, VersionResult]:
    """Minified chunks without a source mapping, at a lower threshold.

    Each bundle is tried against its candidate packages in order and claims
    the first one that matches. When several bundles claim the same package,
    the earliest bundle wins regardless of which finished first. Results are
    tagged ``fingerprint-minified``.
    """
    indexed = list(enumerate(bundles))
    matches: dict[int, tuple[str, VersionResult]] = {}

    async def _one(item: tuple[int, VendorBundle]) -> tuple[str, VersionResult] | None:
        _, bundle = item
        as_file = SourceFile(path=bundle.filename, content=bundle.content)
        for name in _bundle_candidates(pending, bundle):
            res = await _safe_match(fingerprinter, name, [as_file], options)
            if res is not None:
                return name, res
        return None

    def _collect(
        item: tuple[int, VendorBundle],
        match: tuple[str, VersionResult] | None,
        completed: int,
        total: int,
    ) -> None:
        index, bundle = item
        label = bundle.filename
        if match is not None:
            matches[index] = match
            label = f"{bundle.filename} -> {match[0]}"
        if on_progress is not None:
            on_progress(ProgressEvent("vendor-bundle", completed, total, label))

    await run_bounded(indexed, _one, concurrency, _collect)

    results: dict[str, VersionResult] = {}
    for index in sorted(matches):
        name, res = matches[index]
        if name not in results:
            results[name] = dataclasses.replace(res, source="fingerprint-minified")
    return results
