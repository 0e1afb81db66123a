"""Peer-dependency inference — guess unknown versions from known ones.

Two strategies share the range matcher:

* forward (:func:`infer_from_peer_requirements`): prefer versions of the
  unknown package whose peer range on a known package is the most specific
  one that the known version satisfies;
* reverse (:func:`infer_from_known_peers`): keep versions whose peer ranges
  are never contradicted by a known version, scored by the share of peers
  that are known and satisfied.

Forward results always win over reverse results for the same package.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence

import structlog

from pkgrecon.engines.version_resolver.concurrency import run_bounded
from pkgrecon.engines.version_resolver.models import (
    Confidence,
    KnownVersion,
    PackageMetadata,
    PeerCandidate,
    PeerDepResult,
    ProgressEvent,
)
from pkgrecon.engines.version_resolver.registry_client import Registry
from pkgrecon.engines.version_resolver.semver import (
    confidence_for_range,
    natural_key,
    range_specificity,
    satisfies,
)

log = structlog.get_logger("pkgrecon.engine")

TOP_CANDIDATES = 5


def _reverse_confidence(match_count: int) -> Confidence:
    if match_count == 1:
        return "high"
    if match_count <= 3:
        return "medium"
    return "low"


def peer_candidates(
    metadata: PackageMetadata, known: Mapping[str, KnownVersion]
) -> list[PeerCandidate]:
    """Every (version, known peer) pair whose range the known version satisfies."""
    out: list[PeerCandidate] = []
    for version, detail in metadata.versions.items():
        for peer_name, peer_range in detail.peer_dependencies.items():
            k = known.get(peer_name)
            if k is None or not satisfies(k.version, peer_range):
                continue
            out.append(
                PeerCandidate(
                    version=version,
                    matched_peer_name=peer_name,
                    peer_range=peer_range,
                    specificity_score=range_specificity(peer_range),
                )
            )
    return out


def forward_inference(
    metadata: PackageMetadata, known: Mapping[str, KnownVersion]
) -> PeerDepResult | None:
    """Forward inference for one package, given its registry metadata."""
    best: dict[str, PeerCandidate] = {}
    for cand in peer_candidates(metadata, known):
        current = best.get(cand.version)
        if current is None or cand.specificity_score > current.specificity_score:
            best[cand.version] = cand
    if not best:
        return None

    ranked = sorted(
        best.values(),
        key=lambda c: (c.specificity_score, natural_key(c.version)),
        reverse=True,
    )
    winner = ranked[0]
    tied = sum(1 for c in ranked if c.specificity_score == winner.specificity_score)
    return PeerDepResult(
        version=winner.version,
        confidence=confidence_for_range(winner.peer_range, tied),
        inferred_from_peer_name=winner.matched_peer_name,
        peer_range=winner.peer_range,
        top_candidate_versions=[c.version for c in ranked[:TOP_CANDIDATES]],
    )


def reverse_inference(
    metadata: PackageMetadata, known: Mapping[str, KnownVersion]
) -> PeerDepResult | None:
    """Reverse inference for one package, given its registry metadata."""
    scored: list[tuple[float, str]] = []
    for version, detail in metadata.versions.items():
        peers = detail.peer_dependencies
        matched = 0
        contradicted = False
        for peer_name, peer_range in peers.items():
            k = known.get(peer_name)
            if k is None:
                continue
            if not satisfies(k.version, peer_range):
                contradicted = True
                break
            matched += 1
        if contradicted or matched == 0:
            continue
        scored.append((matched / max(len(peers), 1), version))

    if not scored:
        return None

    scored.sort(key=lambda s: (s[0], natural_key(s[1])), reverse=True)
    best_version = scored[0][1]

    inferred_from = ""
    peer_range = ""
    for peer_name, rng in metadata.versions[best_version].peer_dependencies.items():
        if peer_name in known:
            inferred_from, peer_range = peer_name, rng
            break

    return PeerDepResult(
        version=best_version,
        confidence=_reverse_confidence(len(scored)),
        inferred_from_peer_name=inferred_from,
        peer_range=peer_range,
        top_candidate_versions=[v for _, v in scored[:TOP_CANDIDATES]],
    )


async def _fetch_metadata(
    names: Sequence[str],
    registry: Registry,
    concurrency: int,
) -> dict[str, PackageMetadata]:
    async def _one(name: str) -> PackageMetadata | None:
        try:
            return await registry.get_package_metadata(name)
        except Exception as exc:
            log.warning("peer_dep.metadata_failed", package=name, error=str(exc))
            return None

    fetched = await run_bounded(names, _one, concurrency)
    return {name: meta for name, meta in fetched if meta is not None}


async def infer_from_peer_requirements(
    unknown: Sequence[str],
    known: Mapping[str, KnownVersion],
    registry: Registry,
    *,
    concurrency: int = 10,
) -> dict[str, PeerDepResult]:
    """Forward strategy over many packages."""
    metadata = await _fetch_metadata(unknown, registry, concurrency)
    results: dict[str, PeerDepResult] = {}
    for name in unknown:
        meta = metadata.get(name)
        if meta is None:
            continue
        res = forward_inference(meta, known)
        if res is not None:
            results[name] = res
    return results


async def infer_from_known_peers(
    unknown: Sequence[str],
    known: Mapping[str, KnownVersion],
    registry: Registry,
    *,
    concurrency: int = 10,
) -> dict[str, PeerDepResult]:
    """Reverse strategy over many packages."""
    metadata = await _fetch_metadata(unknown, registry, concurrency)
    results: dict[str, PeerDepResult] = {}
    for name in unknown:
        meta = metadata.get(name)
        if meta is None:
            continue
        res = reverse_inference(meta, known)
        if res is not None:
            results[name] = res
    return results


async def infer_peer_dependency_versions(
    unknown: Sequence[str],
    known: Mapping[str, KnownVersion],
    registry: Registry,
    *,
    concurrency: int = 10,
    on_progress: Callable[[ProgressEvent], None] | None = None,
) -> dict[str, PeerDepResult]:
    """Forward over all unknown packages, then reverse over what is left."""
    unknown = [n for n in dict.fromkeys(unknown) if n not in known]
    if not unknown or not known:
        return {}

    combined = await infer_from_peer_requirements(unknown, known, registry, concurrency=concurrency)
    remaining = [n for n in unknown if n not in combined]
    if remaining:
        reverse = await infer_from_known_peers(remaining, known, registry, concurrency=concurrency)
        for name, res in reverse.items():
            combined.setdefault(name, res)

    if on_progress is not None:
        for i, name in enumerate(unknown, start=1):
            on_progress(ProgressEvent("peer-dep", i, len(unknown), name))

    log.info("peer_dep.done", unknown=len(unknown), inferred=len(combined))
    return combined
