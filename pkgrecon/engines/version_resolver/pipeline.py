"""Version detection orchestrator.

Tiers run strictly in order, each one only seeing packages that are still
unresolved and not private. A tier never writes records itself: it returns
name -> :class:`VersionResult` and :func:`resolve_first_match` applies the
results, so an earlier tier's answer is never overwritten. The validator
runs once after all tiers.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from pkgrecon.core.config import ResolverOptions
from pkgrecon.engines.version_resolver.aliases import apply_aliases, detect_import_aliases
from pkgrecon.engines.version_resolver.cache import ResultCache, cache_key
from pkgrecon.engines.version_resolver.classifier import classify_dependencies
from pkgrecon.engines.version_resolver.concurrency import run_bounded
from pkgrecon.engines.version_resolver.detectors import (
    detect_versions,
    extract_versions_from_banners,
    extract_versions_from_bundle_manifest,
    extract_versions_from_manifests,
    load_bundle_manifest,
    match_banner_versions,
)
from pkgrecon.engines.version_resolver.fingerprint import (
    Fingerprinter,
    FingerprintOptions,
    fingerprint_packages,
    fingerprint_vendor_bundles,
)
from pkgrecon.engines.version_resolver.imports import (
    ImportExtractor,
    collect_dependencies,
    regex_import_extractor,
)
from pkgrecon.engines.version_resolver.models import (
    DependencyRecord,
    KnownVersion,
    ProgressEvent,
    ResolutionResult,
    SourceFile,
    VendorBundle,
    VersionResult,
    VersionStats,
)
from pkgrecon.engines.version_resolver.peer_inference import infer_peer_dependency_versions
from pkgrecon.engines.version_resolver.registry_client import Registry
from pkgrecon.engines.version_resolver.validator import validate_versions
from pkgrecon.engines.version_resolver.workspace import detect_workspace_roots

log = structlog.get_logger("pkgrecon.engine")

ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class TierContext:
    """Read-only inputs shared by every tier of one run."""

    files: list[SourceFile]
    records: Mapping[str, DependencyRecord]
    registry: Registry
    options: ResolverOptions
    fingerprinter: Fingerprinter | None = None
    vendor_bundles: Sequence[VendorBundle] = ()
    bundle_manifest: list[dict[str, Any]] = field(default_factory=list)
    on_progress: ProgressCallback | None = None

    def known_versions(self) -> dict[str, KnownVersion]:
        return {
            name: KnownVersion(name, rec.version, rec.confidence or "low")
            for name, rec in self.records.items()
            if rec.version is not None and not rec.is_private
        }


TierRun = Callable[[TierContext, list[str]], Awaitable[Mapping[str, VersionResult]]]


@dataclass(frozen=True)
class Tier:
    name: str
    run: TierRun


def pending_names(records: Mapping[str, DependencyRecord]) -> list[str]:
    return [n for n, r in records.items() if r.version is None and not r.is_private]


async def resolve_first_match(
    records: MutableMapping[str, DependencyRecord],
    tiers: Iterable[Tier],
    ctx: TierContext,
) -> dict[str, int]:
    """Run *tiers* in order; the first tier to answer for a package wins.

    Stops early once nothing is pending. Returns resolved counts per tier.
    """
    resolved: dict[str, int] = {}
    for tier in tiers:
        pending = pending_names(records)
        if not pending:
            log.debug("resolver.all_resolved", next_tier=tier.name)
            break
        results = await tier.run(ctx, pending)
        count = 0
        for name in pending:
            res = results.get(name)
            rec = records[name]
            if res is None or rec.version is not None:
                continue
            rec.apply(res)
            count += 1
        resolved[tier.name] = count
        log.info("resolver.tier_done", tier=tier.name, resolved=count, pending=len(pending) - count)
    return resolved


# ── tiers ────────────────────────────────────────────────────────────────


async def unified_tier(ctx: TierContext, pending: list[str]) -> Mapping[str, VersionResult]:
    return detect_versions(pending, ctx.files)


async def package_manifest_tier(
    ctx: TierContext, pending: list[str]
) -> Mapping[str, VersionResult]:
    versions = extract_versions_from_manifests(ctx.files)
    return {
        name: VersionResult(versions[name], "exact", "package-manifest")
        for name in pending
        if name in versions
    }


async def banner_tier(ctx: TierContext, pending: list[str]) -> Mapping[str, VersionResult]:
    return match_banner_versions(pending, extract_versions_from_banners(ctx.files))


async def fingerprint_tier(ctx: TierContext, pending: list[str]) -> Mapping[str, VersionResult]:
    if ctx.fingerprinter is None:
        return {}
    opts = ctx.options
    results = dict(
        await fingerprint_packages(
            pending,
            ctx.files,
            ctx.fingerprinter,
            FingerprintOptions(
                min_similarity=opts.min_similarity,
                max_versions_to_check=opts.max_versions_to_check,
                include_prereleases=opts.include_prereleases,
            ),
            concurrency=opts.fingerprint_concurrency,
            on_progress=ctx.on_progress,
        )
    )
    remaining = [n for n in pending if n not in results]
    if remaining and ctx.vendor_bundles:
        minified = await fingerprint_vendor_bundles(
            remaining,
            ctx.vendor_bundles,
            ctx.fingerprinter,
            FingerprintOptions(
                min_similarity=opts.min_similarity_minified,
                max_versions_to_check=opts.max_versions_to_check,
                include_prereleases=opts.include_prereleases,
            ),
            concurrency=opts.fingerprint_concurrency,
            on_progress=ctx.on_progress,
        )
        results.update(minified)
    return results


async def peer_dependency_tier(
    ctx: TierContext, pending: list[str]
) -> Mapping[str, VersionResult]:
    inferred = await infer_peer_dependency_versions(
        pending,
        ctx.known_versions(),
        ctx.registry,
        concurrency=ctx.options.concurrency,
        on_progress=ctx.on_progress,
    )
    return {name: res.as_version_result() for name, res in inferred.items()}


async def bundle_manifest_tier(
    ctx: TierContext, pending: list[str]
) -> Mapping[str, VersionResult]:
    versions = extract_versions_from_bundle_manifest(ctx.bundle_manifest)
    return {
        name: VersionResult(versions[name], "high", "sourcemap-path")
        for name in pending
        if name in versions
    }


async def registry_latest_tier(
    ctx: TierContext, pending: list[str]
) -> Mapping[str, VersionResult]:
    results: dict[str, VersionResult] = {}

    async def _latest(name: str) -> str | None:
        try:
            return await ctx.registry.latest_version(name)
        except Exception as exc:
            log.warning("resolver.latest_failed", package=name, error=str(exc))
            return None

    def _collect(name: str, latest: str | None, completed: int, total: int) -> None:
        if latest:
            results[name] = VersionResult(latest, "unverified", "registry-latest")
        if ctx.on_progress is not None:
            ctx.on_progress(ProgressEvent("latest", completed, total, name))

    await run_bounded(pending, _latest, ctx.options.concurrency, _collect)
    return results


def build_tiers(options: ResolverOptions, *, fingerprinting: bool = False) -> list[Tier]:
    """The ordered tier list for *options*; disabled tiers are left out."""
    tiers = [
        Tier("unified", unified_tier),
        Tier("package-manifest", package_manifest_tier),
    ]
    if options.enable_banner_detection:
        tiers.append(Tier("banner", banner_tier))
    if options.use_fingerprinting and fingerprinting:
        tiers.append(Tier("fingerprint", fingerprint_tier))
    tiers.append(Tier("peer-dep", peer_dependency_tier))
    tiers.append(Tier("bundle-manifest", bundle_manifest_tier))
    if options.fetch_latest:
        tiers.append(Tier("registry-latest", registry_latest_tier))
    return tiers


# ── orchestrator ─────────────────────────────────────────────────────────


class DependencyResolver:
    """Classify imported packages and resolve their versions for one tree."""

    def __init__(
        self,
        registry: Registry,
        *,
        options: ResolverOptions | None = None,
        fingerprinter: Fingerprinter | None = None,
        extractor: ImportExtractor = regex_import_extractor,
        cache: ResultCache | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.registry = registry
        self.options = options or ResolverOptions()
        self.fingerprinter = fingerprinter
        self.extractor = extractor
        self.cache = cache
        self.on_progress = on_progress

    async def resolve(
        self,
        files: Iterable[SourceFile],
        *,
        manifest_path: Path | None = None,
        vendor_bundles: Sequence[VendorBundle] = (),
        label: str = "",
    ) -> ResolutionResult:
        files = list(files)
        key: str | None = None
        if self.cache is not None:
            key = cache_key(label, files, self.options)
            cached = self._load_cached(self.cache, key)
            if cached is not None:
                log.info("resolver.cache_hit", label=label, dependencies=len(cached.dependencies))
                return cached

        errors: list[str] = []
        records = collect_dependencies(files, self.extractor, errors)
        log.info("resolver.collected", files=len(files), dependencies=len(records))

        roots = detect_workspace_roots(files)
        classification = await classify_dependencies(
            list(records),
            files,
            self.registry,
            concurrency=self.options.concurrency,
            workspace_roots=roots,
            on_progress=self.on_progress,
        )
        for name in classification.internal:
            if name in records:
                records[name].is_private = True

        alias_map = detect_import_aliases(files, self.extractor)
        await apply_aliases(records, alias_map, classification, self.registry, files)
        alias_map.aliases = {a: t for a, t in alias_map.aliases.items() if a not in records}
        alias_map.evidence = {a: e for a, e in alias_map.evidence.items() if a in alias_map.aliases}

        ctx = TierContext(
            files=files,
            records=records,
            registry=self.registry,
            options=self.options,
            fingerprinter=self.fingerprinter,
            vendor_bundles=vendor_bundles,
            bundle_manifest=load_bundle_manifest(manifest_path) if manifest_path else [],
            on_progress=self.on_progress,
        )
        tiers = build_tiers(self.options, fingerprinting=self.fingerprinter is not None)
        await resolve_first_match(records, tiers, ctx)
        await validate_versions(
            records,
            self.registry,
            concurrency=self.options.concurrency,
            on_progress=self.on_progress,
        )

        result = ResolutionResult(
            dependencies=records,
            stats=VersionStats.from_records(list(records.values())),
            aliases=alias_map,
            classification=classification,
            workspace_roots=roots,
            errors=errors,
        )
        log.info(
            "resolver.done",
            total=result.stats.total_dependencies,
            with_version=result.stats.with_version,
            private=result.stats.private_packages,
        )
        if self.cache is not None and key is not None:
            self.cache.set(key, result.to_dict())
        return result

    @staticmethod
    def _load_cached(cache: ResultCache, key: str) -> ResolutionResult | None:
        payload = cache.get(key)
        if payload is None:
            return None
        try:
            return ResolutionResult.from_dict(payload)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            log.warning("resolver.cache_malformed", key=key, error=str(exc))
            return None
