"""Text and path based version detection over recovered files.

Each detector returns a :class:`VersionResult` (or a name -> version map)
and never touches dependency records; the orchestrator applies results.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import structlog

from pkgrecon.engines.version_resolver.models import SourceFile, VersionResult
from pkgrecon.engines.version_resolver.paths import get_package_files, unscoped_name

log = structlog.get_logger("pkgrecon.engine")

_V = r"\d+\.\d+\.\d+"

LOCKFILE_PATH_PATTERNS = [
    # pnpm: node_modules/.pnpm/react@18.2.0/node_modules/react/index.js
    re.compile(rf"node_modules/\.pnpm/(@?[^@/]+(?:@[^@/]+)?)@({_V}[^/]*)/"),
    # yarn berry: node_modules/.yarn/cache/lodash-npm-4.17.21-abc123.zip/...
    re.compile(rf"node_modules/\.yarn/cache/([^-]+(?:-[^-]+)*)-npm-({_V}[^-]*)-"),
    # version directory: node_modules/lodash/4.17.21/...
    re.compile(rf"node_modules/(@?[^/]+(?:/[^/]+)?)/({_V}[^/]*)/"),
    # webpack://app/node_modules/pkg@1.2.3/...
    re.compile(rf"webpack://[^/]*/node_modules/(@?[^@/]+(?:/[^@/]+)?)@({_V}[^/]*)/"),
]

SOURCEMAP_VERSION_PATTERNS = [
    re.compile(rf"node_modules/(@?[^@/]+(?:/[^@/]+)?)@({_V}[^/]*)/"),
    re.compile(rf"node_modules/(@?[^/]+(?:/[^/]+)?)/v?({_V}[^/]*)/"),
]

_CAPTURE = rf"({_V}(?:-[\w.]+)?)"

VERSION_CONSTANT_PATTERNS = [
    re.compile(rf"""\bVERSION\s*=\s*['"]{_CAPTURE}['"]"""),
    re.compile(rf"""\bversion\s*=\s*['"]{_CAPTURE}['"]"""),
    re.compile(rf"""\bversion\s*:\s*['"]{_CAPTURE}['"]"""),
    re.compile(rf"""__VERSION__\s*=\s*['"]{_CAPTURE}['"]"""),
    re.compile(rf"""exports\.version\s*=\s*['"]{_CAPTURE}['"]"""),
    re.compile(rf"""module\.exports\.version\s*=\s*['"]{_CAPTURE}['"]"""),
    re.compile(rf"""this\.version\s*=\s*['"]{_CAPTURE}['"]"""),
    re.compile(rf"""\w+\.VERSION\s*=\s*['"]{_CAPTURE}['"]""", re.IGNORECASE),
    re.compile(rf"""["']version["']\s*:\s*["']{_CAPTURE}['"]"""),
]

BANNER_PATTERNS = [
    re.compile(rf"@license\s+(\S+)\s+v?{_CAPTURE}", re.IGNORECASE),
    re.compile(rf"/\*!\s*(\S+)\s+v?{_CAPTURE}", re.IGNORECASE),
    re.compile(rf"\*\s+(\w+(?:-\w+)*)\s+v{_CAPTURE}", re.IGNORECASE),
]

_HEADER_VERSION_PATTERNS = [
    re.compile(rf"@version\s+v?{_CAPTURE}", re.IGNORECASE),
    re.compile(rf"\*\s+v?{_CAPTURE}\s"),
    re.compile(rf"""version\s*[:=]\s*['"]v?{_CAPTURE}['"]""", re.IGNORECASE),
]

_DEPENDENCY_MANIFEST_RE = re.compile(r"node_modules/(@[^/]+/[^/]+|[^/]+)/package\.json$")
_BUNDLE_PATH_VERSION_RE = re.compile(rf"node_modules/(@[^/]+/[^@/]+|[^@/]+)(?:@({_V}[^/]*))?")

_URL_STRIP_RES = [
    re.compile(r"""https?://[^\s'"<>]+"""),
    re.compile(r"[?&][\w-]+=[\w.-]+"),
    re.compile(r"""data:[^;]+;[^\s'"]+"""),
    re.compile(r"""\[[\w.]+=['"][^'"]*['"]\]"""),
    re.compile(r"@param\s+\{[^}]*\}\s+\[[^\]]*\]"),
]

CONSTANT_HEAD_CHARS = 5000
CONSTANT_TAIL_CHARS = 1000
HEADER_CHARS = 2000
BANNER_CHARS = 1000


def strip_url_content(content: str) -> str:
    """Drop URLs, query strings, data URIs and JSDoc defaults before matching."""
    for pattern in _URL_STRIP_RES:
        content = pattern.sub("", content)
    return content


def is_valid_version_context(content: str, index: int) -> bool:
    """Reject matches that sit inside a URL or a JSDoc parameter default."""
    before = content[max(0, index - 100) : index]
    around = content[max(0, index - 100) : index + 100]
    if re.search(r"https?://\S*$", before):
        return False
    if re.search(r"[?&][\w-]*=?\s*$", before):
        return False
    if "://" in before and re.search(r"/[\w.-]+/[\w.-]+$", before):
        return False
    if re.search(r"\[[\w.]*version", before) or "[options." in before:
        return False
    if re.search(r"@param\s+\{", around):
        return False
    return True


def _search_clean(pattern: re.Pattern[str], text: str) -> re.Match[str] | None:
    """Match against URL-stripped text, validated against the original."""
    match = pattern.search(strip_url_content(text))
    if match is None:
        return None
    original = pattern.search(text)
    if original is not None and not is_valid_version_context(text, original.start()):
        return None
    return match


def _names_match(detected: str, package_name: str) -> bool:
    d = detected.lstrip("@").lower()
    p = package_name.lstrip("@").lower()
    return d == p or d.endswith("/" + p) or p.endswith("/" + d)


# ── per-file detectors ───────────────────────────────────────────────────


def detect_version_from_lockfile_path(path: str, package_name: str) -> VersionResult | None:
    for pattern in LOCKFILE_PATH_PATTERNS:
        m = pattern.search(path)
        if m and _names_match(m.group(1), package_name):
            return VersionResult(m.group(2), "exact", "lockfile-path")
    return None


def detect_version_from_sourcemap_path(path: str, package_name: str) -> VersionResult | None:
    for pattern in SOURCEMAP_VERSION_PATTERNS:
        m = pattern.search(path)
        if m and m.group(1).lower() == package_name.lower():
            return VersionResult(m.group(2), "high", "sourcemap-path")
    return None


def detect_version_from_constants(content: str) -> VersionResult | None:
    text = content[:CONSTANT_HEAD_CHARS] + content[-CONSTANT_TAIL_CHARS:]
    for pattern in VERSION_CONSTANT_PATTERNS:
        m = _search_clean(pattern, text)
        if m:
            return VersionResult(m.group(1), "medium", "version-constant")
    return None


def detect_custom_build(package_name: str, package_files: list[SourceFile]) -> VersionResult | None:
    """``name-1.2.3/`` build directories, then version comments in file headers."""
    base = re.escape(unscoped_name(package_name))
    in_path = re.compile(rf"{base}-({_V}[^/\\]*)", re.IGNORECASE)
    for f in package_files:
        m = in_path.search(f.path)
        if m:
            return VersionResult(m.group(1), "high", "custom-build")

    header_patterns = _HEADER_VERSION_PATTERNS + [
        re.compile(rf"{base}\s+v?{_CAPTURE}", re.IGNORECASE)
    ]
    for f in package_files:
        header = f.content[:HEADER_CHARS]
        for pattern in header_patterns:
            m = _search_clean(pattern, header)
            if m:
                return VersionResult(m.group(1), "medium", "custom-build")
    return None


def detect_version(package_name: str, package_files: list[SourceFile]) -> VersionResult | None:
    """Strongest path/text signal for one package's files.

    Order: lockfile-style path (exact), sourcemap path (high), custom build
    directory or header (high/medium), version constant (medium).
    """
    for f in package_files:
        res = detect_version_from_lockfile_path(f.path, package_name)
        if res:
            return res
    for f in package_files:
        res = detect_version_from_sourcemap_path(f.path, package_name)
        if res:
            return res
    res = detect_custom_build(package_name, package_files)
    if res:
        return res
    for f in package_files:
        # Recovered manifests belong to the manifest tier.
        if f.path.endswith(".json"):
            continue
        res = detect_version_from_constants(f.content)
        if res:
            return res
    return None


def detect_versions(package_names: Iterable[str], files: list[SourceFile]) -> dict[str, VersionResult]:
    """Unified fast detector over many packages."""
    results: dict[str, VersionResult] = {}
    for name in package_names:
        res = detect_version(name, get_package_files(files, name))
        if res is not None:
            results[name] = res
    return results


# ── recovered manifests ──────────────────────────────────────────────────


def extract_versions_from_manifests(files: Iterable[SourceFile]) -> dict[str, str]:
    """``node_modules/<pkg>/package.json`` files recovered verbatim.

    The ``name`` inside the file is authoritative; unparsable files are skipped.
    """
    versions: dict[str, str] = {}
    for f in files:
        if not _DEPENDENCY_MANIFEST_RE.search(f.path):
            continue
        try:
            data = json.loads(f.content)
        except ValueError:
            log.debug("detectors.manifest_unparsable", path=f.path)
            continue
        if not isinstance(data, dict):
            continue
        name, version = data.get("name"), data.get("version")
        if isinstance(name, str) and isinstance(version, str) and name and version:
            versions[name] = version
    return versions


# ── banners ──────────────────────────────────────────────────────────────


def extract_versions_from_banners(files: Iterable[SourceFile]) -> dict[str, str]:
    """Banner name -> version from the first lines of every file."""
    versions: dict[str, str] = {}
    for f in files:
        header = f.content[:BANNER_CHARS]
        for pattern in BANNER_PATTERNS:
            for m in pattern.finditer(header):
                versions.setdefault(m.group(1).lower(), m.group(2))
    return versions


def match_banner_versions(
    pending: Iterable[str], banner_versions: Mapping[str, str]
) -> dict[str, VersionResult]:
    """Attribute banner versions to pending dependency names.

    Direct name match first, then a scoped package whose unscoped part
    equals or contains the banner name.
    """
    pending = list(pending)
    results: dict[str, VersionResult] = {}
    for banner_name, version in banner_versions.items():
        for name in pending:
            if name in results:
                continue
            lowered = name.lower()
            if lowered == banner_name:
                results[name] = VersionResult(version, "high", "banner")
                break
            if name.startswith("@") and "/" in name:
                unscoped = unscoped_name(lowered)
                if unscoped == banner_name or banner_name in unscoped:
                    results[name] = VersionResult(version, "medium", "banner")
                    break
    return results


# ── extraction manifest ──────────────────────────────────────────────────


def extract_versions_from_bundle_manifest(bundles: Iterable[Mapping[str, Any]]) -> dict[str, str]:
    """First ``node_modules/<pkg>@<version>`` tag per package across all bundles."""
    versions: dict[str, str] = {}
    for bundle in bundles:
        for path in bundle.get("files") or []:
            if not isinstance(path, str):
                continue
            m = _BUNDLE_PATH_VERSION_RE.search(path)
            if m and m.group(2) and m.group(1) not in versions:
                versions[m.group(1)] = m.group(2)
    return versions


def load_bundle_manifest(path: Path) -> list[dict[str, Any]]:
    """Bundles listed in an extraction manifest; malformed input yields []."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        log.warning("detectors.bundle_manifest_unreadable", path=str(path), error=str(exc))
        return []
    bundles = data.get("bundles") if isinstance(data, dict) else None
    if not isinstance(bundles, list):
        log.warning("detectors.bundle_manifest_malformed", path=str(path))
        return []
    return [b for b in bundles if isinstance(b, dict)]
