"""Alias resolver — bare imports that are rewritten scoped packages.

A bundler alias such as ``foo -> @scope/foo`` leaves ``import 'foo'`` in
application code while the recovered dependency tree only holds
``node_modules/@scope/foo``. Detection pairs the two; application renames
the record so the published name gets resolved and validated.
"""

from __future__ import annotations

from collections.abc import Iterable, MutableMapping

import structlog

from pkgrecon.engines.version_resolver.classifier import check_exists, detail_for
from pkgrecon.engines.version_resolver.imports import (
    ImportExtractor,
    bare_package_name,
    is_analyzable,
    regex_import_extractor,
)
from pkgrecon.engines.version_resolver.models import (
    AliasEvidence,
    AliasMap,
    DependencyClassification,
    DependencyRecord,
    SourceFile,
)
from pkgrecon.engines.version_resolver.paths import (
    dependency_packages,
    in_dependency_tree,
    unscoped_name,
)
from pkgrecon.engines.version_resolver.registry_client import Registry

log = structlog.get_logger("pkgrecon.engine")


def detect_import_aliases(
    files: Iterable[SourceFile],
    extractor: ImportExtractor = regex_import_extractor,
) -> AliasMap:
    files = list(files)
    recovered = dependency_packages(files)

    # unscoped suffix -> first scoped package carrying it
    scoped_by_suffix: dict[str, str] = {}
    for pkg in recovered:
        if pkg.startswith("@"):
            scoped_by_suffix.setdefault(unscoped_name(pkg), pkg)

    result = AliasMap()
    if not scoped_by_suffix:
        return result

    for f in files:
        if in_dependency_tree(f.path) or not f.content or not is_analyzable(f.path):
            continue
        try:
            specifiers = extractor(f.content, f.path)
        except Exception as exc:
            log.debug("aliases.extract_failed", path=f.path, error=str(exc))
            continue
        for spec in specifiers:
            name = bare_package_name(spec)
            if name is None or name in recovered:
                continue
            target = scoped_by_suffix.get(name)
            if target is None:
                continue
            result.aliases.setdefault(name, target)
            evidence = AliasEvidence(importing_file=f.path, resolved_path=recovered[target][0])
            bucket = result.evidence.setdefault(name, [])
            if evidence not in bucket:
                bucket.append(evidence)

    if result.aliases:
        log.info("aliases.detected", count=len(result.aliases))
    return result


async def apply_aliases(
    records: MutableMapping[str, DependencyRecord],
    alias_map: AliasMap,
    classification: DependencyClassification,
    registry: Registry,
    files: Iterable[SourceFile] = (),
) -> None:
    """Rename alias-keyed records to the published name, in place.

    An existing record for the target absorbs the alias's importers.
    Targets not yet classified are checked against the registry. Names
    that are workspace roots stay as they are.
    """
    in_tree = set(dependency_packages(files))
    for alias, target in alias_map.aliases.items():
        detail = classification.details.get(alias)
        if detail is not None and detail.reason == "workspace":
            continue
        rec = records.pop(alias, None)
        if rec is None:
            continue

        existing = records.get(target)
        if existing is not None:
            for path in rec.imported_from:
                if path not in existing.imported_from:
                    existing.imported_from.append(path)
        else:
            rec.name = target
            records[target] = rec

        classification.internal.discard(alias)
        classification.external.discard(alias)
        classification.details.pop(alias, None)

        if target not in classification.internal and target not in classification.external:
            exists = await check_exists(registry, target)
            classification.details[target] = detail_for(exists, target in in_tree)
            if exists is False:
                classification.internal.add(target)
            else:
                classification.external.add(target)

        records[target].is_private = target in classification.internal
        log.debug("aliases.applied", alias=alias, target=target)
