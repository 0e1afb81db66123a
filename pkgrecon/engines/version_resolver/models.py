"""Data models for the version resolver engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

Confidence = Literal["exact", "high", "medium", "low", "unverified"]

VersionSource = Literal[
    "package-manifest",
    "banner",
    "lockfile-path",
    "version-constant",
    "sourcemap-path",
    "fingerprint",
    "fingerprint-minified",
    "custom-build",
    "peer-dep",
    "registry-latest",
]

ClassificationReason = Literal[
    "workspace",
    "private-registry",
    "registry",
    "unknown-internal",
    "unknown-external",
]

SourceLocation = Literal["outside-dependency-tree", "inside-dependency-tree", "no-source"]

# Strongest first.
CONFIDENCE_LEVELS: tuple[Confidence, ...] = ("exact", "high", "medium", "low", "unverified")

VERSION_SOURCES: tuple[VersionSource, ...] = (
    "package-manifest",
    "banner",
    "lockfile-path",
    "version-constant",
    "sourcemap-path",
    "fingerprint",
    "fingerprint-minified",
    "custom-build",
    "peer-dep",
    "registry-latest",
)


@dataclass(frozen=True)
class SourceFile:
    """One file of the recovered tree (path relative to the tree root)."""

    path: str
    content: str = ""


@dataclass
class VendorBundle:
    """A minified vendor chunk that never had a source mapping."""

    filename: str
    content: str
    url: str | None = None
    inferred_package: str | None = None


@dataclass(frozen=True)
class VersionResult:
    """A version guess produced by one resolution strategy."""

    version: str
    confidence: Confidence
    source: VersionSource


@dataclass
class DependencyRecord:
    """A single imported package name and what we know about its version.

    Only the orchestrator's tiers and the validator mutate ``version``,
    ``confidence`` and ``source``.
    """

    name: str
    version: str | None = None
    confidence: Confidence | None = None
    source: VersionSource | None = None
    is_private: bool = False
    imported_from: list[str] = field(default_factory=list)

    def apply(self, result: VersionResult) -> None:
        self.version = result.version
        self.confidence = result.confidence
        self.source = result.source

    def clear_version(self) -> None:
        self.version = None
        self.confidence = None
        self.source = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "confidence": self.confidence,
            "source": self.source,
            "is_private": self.is_private,
            "imported_from": list(self.imported_from),
        }

    @classmethod
    def from_dict(cls, data: dict) -> DependencyRecord:
        return cls(
            name=data["name"],
            version=data.get("version"),
            confidence=data.get("confidence"),
            source=data.get("source"),
            is_private=bool(data.get("is_private", False)),
            imported_from=list(data.get("imported_from", [])),
        )


@dataclass(frozen=True)
class KnownVersion:
    """Read-only view of a resolved, non-private record."""

    name: str
    version: str
    confidence: Confidence


@dataclass(frozen=True)
class PeerCandidate:
    version: str
    matched_peer_name: str
    peer_range: str
    specificity_score: int


@dataclass(frozen=True)
class PeerDepResult:
    version: str
    confidence: Confidence
    inferred_from_peer_name: str
    peer_range: str
    top_candidate_versions: list[str]
    source: VersionSource = "peer-dep"

    def as_version_result(self) -> VersionResult:
        return VersionResult(version=self.version, confidence=self.confidence, source=self.source)


@dataclass(frozen=True)
class VersionDetail:
    """Per-version registry metadata we care about."""

    peer_dependencies: dict[str, str] = field(default_factory=dict)


@dataclass
class PackageMetadata:
    """All published versions of one package, in registry order."""

    name: str
    versions: dict[str, VersionDetail] = field(default_factory=dict)
    dist_tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ClassificationDetail:
    reason: ClassificationReason
    source_location: SourceLocation


@dataclass
class DependencyClassification:
    """Partition of imported names into internal and external."""

    external: set[str] = field(default_factory=set)
    internal: set[str] = field(default_factory=set)
    details: dict[str, ClassificationDetail] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "external": sorted(self.external),
            "internal": sorted(self.internal),
            "details": {
                name: {"reason": d.reason, "source_location": d.source_location}
                for name, d in sorted(self.details.items())
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> DependencyClassification:
        return cls(
            external=set(data.get("external", [])),
            internal=set(data.get("internal", [])),
            details={
                name: ClassificationDetail(
                    reason=d["reason"], source_location=d["source_location"]
                )
                for name, d in data.get("details", {}).items()
            },
        )


@dataclass(frozen=True)
class AliasEvidence:
    importing_file: str
    resolved_path: str


@dataclass
class AliasMap:
    """Import aliases (``foo``) of differently-named published packages (``@scope/foo``)."""

    aliases: dict[str, str] = field(default_factory=dict)
    evidence: dict[str, list[AliasEvidence]] = field(default_factory=dict)

    def evidence_to_dict(self) -> dict:
        return {
            alias: [
                {"importing_file": e.importing_file, "resolved_path": e.resolved_path}
                for e in items
            ]
            for alias, items in sorted(self.evidence.items())
        }

    @classmethod
    def from_dict(cls, aliases: dict, evidence: dict) -> AliasMap:
        return cls(
            aliases=dict(aliases),
            evidence={
                alias: [AliasEvidence(e["importing_file"], e["resolved_path"]) for e in items]
                for alias, items in evidence.items()
            },
        )


@dataclass
class VersionStats:
    total_dependencies: int = 0
    with_version: int = 0
    without_version: int = 0
    private_packages: int = 0
    by_source: dict[str, int] = field(default_factory=lambda: {s: 0 for s in VERSION_SOURCES})
    by_confidence: dict[str, int] = field(
        default_factory=lambda: {c: 0 for c in CONFIDENCE_LEVELS}
    )

    @classmethod
    def from_records(cls, records: list[DependencyRecord]) -> VersionStats:
        stats = cls(total_dependencies=len(records))
        for rec in records:
            if rec.is_private:
                stats.private_packages += 1
            if rec.version is None:
                continue
            stats.with_version += 1
            if rec.source is not None:
                stats.by_source[rec.source] += 1
            if rec.confidence is not None:
                stats.by_confidence[rec.confidence] += 1
        stats.without_version = (
            stats.total_dependencies - stats.with_version - stats.private_packages
        )
        return stats

    def to_dict(self) -> dict:
        return {
            "total_dependencies": self.total_dependencies,
            "with_version": self.with_version,
            "without_version": self.without_version,
            "private_packages": self.private_packages,
            "by_source": dict(self.by_source),
            "by_confidence": dict(self.by_confidence),
        }


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted by an aggregator after one item's result is final."""

    stage: str
    completed: int
    total: int
    item: str


@dataclass
class ResolutionResult:
    """Everything one orchestrator run produces."""

    dependencies: dict[str, DependencyRecord]
    stats: VersionStats
    aliases: AliasMap = field(default_factory=AliasMap)
    classification: DependencyClassification = field(default_factory=DependencyClassification)
    workspace_roots: dict[str, str] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    cached: bool = False

    def to_dict(self) -> dict:
        return {
            "dependencies": [self.dependencies[n].to_dict() for n in sorted(self.dependencies)],
            "stats": self.stats.to_dict(),
            "aliases": dict(sorted(self.aliases.aliases.items())),
            "alias_evidence": self.aliases.evidence_to_dict(),
            "classification": self.classification.to_dict(),
            "workspace_roots": dict(sorted(self.workspace_roots.items())),
            "errors": list(self.errors),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ResolutionResult:
        records = [DependencyRecord.from_dict(d) for d in data["dependencies"]]
        stats_data = data["stats"]
        stats = VersionStats(
            total_dependencies=int(stats_data["total_dependencies"]),
            with_version=int(stats_data["with_version"]),
            without_version=int(stats_data["without_version"]),
            private_packages=int(stats_data["private_packages"]),
            by_source=dict(stats_data["by_source"]),
            by_confidence=dict(stats_data["by_confidence"]),
        )
        return cls(
            dependencies={r.name: r for r in records},
            stats=stats,
            aliases=AliasMap.from_dict(data.get("aliases", {}), data.get("alias_evidence", {})),
            classification=DependencyClassification.from_dict(data.get("classification", {})),
            workspace_roots=dict(data.get("workspace_roots", {})),
            errors=list(data.get("errors", [])),
            cached=True,
        )
