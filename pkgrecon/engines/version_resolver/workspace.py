"""Workspace root detection — which imported names live in the recovered tree.

Purely heuristic. A false positive only costs a missed version lookup
(the name is treated as internal), so the detector errs in that direction.

Signals, strongest first; a weaker signal never overrides a stronger one:

1. ``<dir>/package.json``                      -> ``basename(dir)``
2. ``.../<name>/src/index.<ext>``               -> ``<name>``
3. ``.../<name>/index.<ext>``                   -> ``<name>``
4. ``.../<name>/src/...`` with a single root    -> ``<name>``
5. ``.../<name>/<sub>/index.<ext>``, single root -> ``<name>``
6. parent of a detected root, when the parent looks like a package itself
"""

from __future__ import annotations

import re
from collections.abc import Iterable

import structlog

from pkgrecon.engines.version_resolver.models import SourceFile
from pkgrecon.engines.version_resolver.paths import GENERIC_DIR_NAMES, in_dependency_tree

log = structlog.get_logger("pkgrecon.engine")

MANIFEST_FILENAME = "package.json"

_EXT = r"(?:[tj]sx?|mjs|cjs)"
_SRC_INDEX_RE = re.compile(rf"^(?:(.*)/)?([^/]+)/src/index\.{_EXT}$")
_DIRECT_INDEX_RE = re.compile(rf"^(?:(.*)/)?([^/]+)/index\.{_EXT}$")
_SRC_TREE_RE = re.compile(r"^(?:(.*)/)?([^/]+)/src/.+$")
_SUBDIR_INDEX_RE = re.compile(rf"^(?:(.*)/)?([^/]+)/([^/]+)/index\.{_EXT}$")


def _join(parent: str | None, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def _parent(path: str) -> tuple[str, str] | None:
    """(parent_name, parent_path) of a root path, or None at the top level."""
    parts = path.split("/")
    if len(parts) < 2:
        return None
    return parts[-2], "/".join(parts[:-1])


def detect_workspace_roots(files: Iterable[SourceFile]) -> dict[str, str]:
    """Map plausible workspace package names to their root directory."""
    paths = [f.path for f in files if not in_dependency_tree(f.path)]
    roots: dict[str, str] = {}

    # Pass 1: explicit manifests.
    for path in paths:
        parts = path.split("/")
        if parts[-1] != MANIFEST_FILENAME or len(parts) < 2:
            continue
        roots.setdefault(parts[-2], "/".join(parts[:-1]))

    # Pass 2: entry files, src/index before direct index.
    for path in paths:
        m = _SRC_INDEX_RE.match(path)
        if m:
            roots.setdefault(m.group(2), _join(m.group(1), m.group(2)))
    for path in paths:
        m = _DIRECT_INDEX_RE.match(path)
        if m and m.group(2) != "src":
            roots.setdefault(m.group(2), _join(m.group(1), m.group(2)))

    # Pass 3: src/ trees with exactly one candidate root.
    candidates: dict[str, set[str]] = {}
    for path in paths:
        m = _SRC_TREE_RE.match(path)
        if m and m.group(2) not in roots:
            candidates.setdefault(m.group(2), set()).add(_join(m.group(1), m.group(2)))
    _adopt_unambiguous(roots, candidates)

    # Pass 4: subdirectory index files (shared-ui/auth/index.ts -> shared-ui).
    for path in paths:
        m = _SUBDIR_INDEX_RE.match(path)
        if not m:
            continue
        name, sub = m.group(2), m.group(3)
        if sub == "src" or name in roots or name in GENERIC_DIR_NAMES:
            continue
        candidates.setdefault(name, set()).add(_join(m.group(1), name))
    _adopt_unambiguous(roots, candidates)

    _promote_parents(roots)

    log.debug("workspace.detected", count=len(roots))
    return roots


def _adopt_unambiguous(roots: dict[str, str], candidates: dict[str, set[str]]) -> None:
    for name, dirs in candidates.items():
        if len(dirs) == 1 and name not in roots:
            roots[name] = next(iter(dirs))


def _promote_parents(roots: dict[str, str]) -> None:
    """Nested workspace packages whose own entry files were tree-shaken away.

    ``navigation/site-kit/r1s`` detected -> ``site-kit`` at
    ``navigation/site-kit`` when the parent name has a hyphen or the parent
    holds another detected child.
    """
    detected = list(roots.items())
    children_by_parent: dict[str, set[str]] = {}
    for name, path in detected:
        parent = _parent(path)
        if parent:
            children_by_parent.setdefault(parent[1], set()).add(name)

    for name, path in detected:
        parent = _parent(path)
        if parent is None:
            continue
        parent_name, parent_path = parent
        if parent_name in GENERIC_DIR_NAMES or parent_name in roots:
            continue
        has_sibling = len(children_by_parent.get(parent_path, set()) - {name}) >= 1
        if has_sibling or "-" in parent_name:
            roots[parent_name] = parent_path
