"""Dependency classification — internal (workspace/private) vs. published."""

from __future__ import annotations

from collections.abc import Callable, Iterable

import structlog

from pkgrecon.engines.version_resolver.concurrency import run_bounded
from pkgrecon.engines.version_resolver.models import (
    ClassificationDetail,
    DependencyClassification,
    ProgressEvent,
    SourceFile,
)
from pkgrecon.engines.version_resolver.paths import dependency_packages
from pkgrecon.engines.version_resolver.registry_client import Registry
from pkgrecon.engines.version_resolver.workspace import detect_workspace_roots

log = structlog.get_logger("pkgrecon.engine")


async def check_exists(registry: Registry, name: str) -> bool | None:
    """Registry existence, or None when the registry itself blew up."""
    try:
        return await registry.package_exists(name)
    except Exception as exc:
        log.warning("classifier.registry_failed", package=name, error=str(exc))
        return None


def detail_for(exists: bool | None, in_dependency_tree: bool) -> ClassificationDetail:
    location = "inside-dependency-tree" if in_dependency_tree else "no-source"
    if exists is None:
        return ClassificationDetail(reason="unknown-external", source_location=location)
    if exists:
        return ClassificationDetail(reason="registry", source_location=location)
    return ClassificationDetail(
        reason="private-registry" if in_dependency_tree else "unknown-internal",
        source_location=location,
    )


async def classify_dependencies(
    imported_names: Iterable[str],
    files: list[SourceFile],
    registry: Registry,
    *,
    concurrency: int = 10,
    workspace_roots: dict[str, str] | None = None,
    on_progress: Callable[[ProgressEvent], None] | None = None,
) -> DependencyClassification:
    """Label every imported name internal or external.

    1. Workspace root in the recovered tree -> internal (``workspace``).
    2. Otherwise ask the registry (bounded concurrency, cached):
       exists -> external; missing -> internal, ``private-registry`` when
       the name was recovered under a dependency directory, else
       ``unknown-internal``. Registry failures lean external.
    """
    names = list(dict.fromkeys(imported_names))
    roots = workspace_roots if workspace_roots is not None else detect_workspace_roots(files)
    in_tree = set(dependency_packages(files))
    result = DependencyClassification()

    needs_check: list[str] = []
    for name in names:
        if name in roots:
            result.internal.add(name)
            result.details[name] = ClassificationDetail(
                reason="workspace", source_location="outside-dependency-tree"
            )
        else:
            needs_check.append(name)

    def _record(name: str, exists: bool | None, completed: int, total: int) -> None:
        detail = detail_for(exists, name in in_tree)
        if exists is False:
            result.internal.add(name)
        else:
            result.external.add(name)
        result.details[name] = detail
        if on_progress is not None:
            on_progress(ProgressEvent("classify", completed, total, name))

    await run_bounded(
        needs_check,
        lambda name: check_exists(registry, name),
        concurrency,
        _record,
    )

    log.info(
        "classifier.done",
        external=len(result.external),
        internal=len(result.internal),
        workspace=len(names) - len(needs_check),
    )
    return result
