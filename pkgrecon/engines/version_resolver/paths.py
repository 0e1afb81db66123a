"""Where third-party code lives in a recovered tree."""

from __future__ import annotations

import re
from collections.abc import Iterable

from pkgrecon.engines.version_resolver.models import SourceFile

DEPENDENCY_DIR = "node_modules"

# Stops before an "@<version>" suffix; skips store dirs such as ".pnpm".
_DEPENDENCY_PACKAGE_RE = re.compile(r"node_modules/(@[^/@]+/[^/@]+|[^/@.][^/@]*)")
_SCOPE_PREFIX_RE = re.compile(r"^@[^/]+/")

# Directory names that never name a package on their own.
GENERIC_DIR_NAMES = frozenset({"src", "lib", "dist", "build", "node_modules"})


def in_dependency_tree(path: str) -> bool:
    """True if *path* sits under a third-party dependency directory."""
    return f"{DEPENDENCY_DIR}/" in path


def dependency_packages_in_path(path: str) -> list[str]:
    """Every ``node_modules/<pkg>`` package named along *path*, outermost first."""
    return [m.group(1) for m in _DEPENDENCY_PACKAGE_RE.finditer(path)]


def dependency_package_from_path(path: str) -> str | None:
    """The package that owns *path*: the innermost ``node_modules/<pkg>``."""
    found = dependency_packages_in_path(path)
    return found[-1] if found else None


def dependency_packages(files: Iterable[SourceFile]) -> dict[str, list[str]]:
    """Map each package found under a dependency directory to its file paths.

    Nested packages count too. Paths keep tree order.
    """
    packages: dict[str, list[str]] = {}
    for f in files:
        for pkg in dict.fromkeys(dependency_packages_in_path(f.path)):
            packages.setdefault(pkg, []).append(f.path)
    return packages


def unscoped_name(package_name: str) -> str:
    """``@scope/name`` -> ``name``; unscoped names pass through."""
    return _SCOPE_PREFIX_RE.sub("", package_name)


def _vendor_patterns(package_name: str) -> list[re.Pattern[str]]:
    base = re.escape(unscoped_name(package_name).lower())
    return [
        # Hashed vendor chunk: "lodash-Abc123.js", "react-dom-AbC1d2.mjs"
        re.compile(rf"[/\\]{base}-[a-zA-Z0-9]{{4,}}\.(m?js)$", re.IGNORECASE),
        # Versioned directory: "package-1.2.3/"
        re.compile(rf"[/\\]{base}-\d+\.\d+\.\d+[^/\\]*[/\\]", re.IGNORECASE),
        # Package directory with a build output dir
        re.compile(rf"[/\\]{base}[/\\](?:src|lib|dist|es|esm)[/\\]", re.IGNORECASE),
    ]


def get_package_files(files: Iterable[SourceFile], package_name: str) -> list[SourceFile]:
    """Files that belong to *package_name*.

    Either under ``node_modules/<package_name>/`` or matching a vendor-chunk
    pattern derived from the package's base name.
    """
    normalized = package_name.lower()
    patterns = _vendor_patterns(package_name)
    matched: list[SourceFile] = []
    for f in files:
        if in_dependency_tree(f.path.lower()):
            pkg = dependency_package_from_path(f.path)
            if pkg and pkg.lower() == normalized:
                matched.append(f)
                continue
        if any(p.search(f.path) for p in patterns):
            matched.append(f)
    return matched
