"""Closing pass: every resolved version must exist on the registry."""

from __future__ import annotations

from collections.abc import Callable, Mapping

import structlog

from pkgrecon.engines.version_resolver.concurrency import run_bounded
from pkgrecon.engines.version_resolver.models import (
    DependencyRecord,
    ProgressEvent,
    VersionResult,
)
from pkgrecon.engines.version_resolver.registry_client import Registry

log = structlog.get_logger("pkgrecon.engine")


async def _version_valid(registry: Registry, name: str, version: str) -> bool:
    try:
        return await registry.version_exists(name, version)
    except Exception as exc:
        log.warning("validator.check_failed", package=name, error=str(exc))
        return True


async def _latest(registry: Registry, name: str) -> str | None:
    try:
        return await registry.latest_version(name)
    except Exception as exc:
        log.warning("validator.latest_failed", package=name, error=str(exc))
        return None


async def validate_versions(
    records: Mapping[str, DependencyRecord],
    registry: Registry,
    *,
    concurrency: int = 10,
    on_progress: Callable[[ProgressEvent], None] | None = None,
) -> dict[str, int]:
    """Confirm every resolved ``name@version`` exists on the registry.

    Invalid versions are replaced by the registry's latest
    (``unverified``/``registry-latest``) or cleared when no latest is
    available. Private records are skipped. Returns counters.
    """
    to_check = [
        name for name, rec in records.items() if rec.version is not None and not rec.is_private
    ]
    invalid: list[str] = []

    def _on_checked(name: str, valid: bool, completed: int, total: int) -> None:
        if not valid:
            invalid.append(name)
        if on_progress is not None:
            on_progress(ProgressEvent("validate", completed, total, name))

    await run_bounded(
        to_check,
        lambda name: _version_valid(registry, name, records[name].version or ""),
        concurrency,
        _on_checked,
    )

    counts = {"checked": len(to_check), "invalid": len(invalid), "replaced": 0, "cleared": 0}

    def _on_latest(name: str, latest: str | None, completed: int, total: int) -> None:
        rec = records[name]
        if latest:
            log.info(
                "validator.replaced", package=name, invalid_version=rec.version, latest=latest
            )
            rec.apply(VersionResult(latest, "unverified", "registry-latest"))
            counts["replaced"] += 1
        else:
            log.info("validator.cleared", package=name, invalid_version=rec.version)
            rec.clear_version()
            counts["cleared"] += 1

    await run_bounded(invalid, lambda name: _latest(registry, name), concurrency, _on_latest)

    log.info("validator.done", **counts)
    return counts
