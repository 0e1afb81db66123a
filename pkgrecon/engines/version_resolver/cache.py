"""Whole-run result cache."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from pkgrecon.core.config import ResolverOptions
from pkgrecon.engines.version_resolver.models import SourceFile


@runtime_checkable
class ResultCache(Protocol):
    def get(self, key: str) -> dict[str, Any] | None: ...

    def set(self, key: str, value: dict[str, Any]) -> None: ...


class MemoryResultCache:
    """Process-local cache; values are the serialized ``ResolutionResult``."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}

    def get(self, key: str) -> dict[str, Any] | None:
        return self._data.get(key)

    def set(self, key: str, value: dict[str, Any]) -> None:
        self._data[key] = value

    def __len__(self) -> int:
        return len(self._data)


def _md5(text: str) -> str:
    return hashlib.md5(text.encode()).hexdigest()


def compute_extraction_hash(files: Iterable[SourceFile]) -> str:
    """Cheap content identity: sorted ``path:len(content)`` pairs."""
    return _md5("\n".join(sorted(f"{f.path}:{len(f.content)}" for f in files)))


def compute_label_hash(label: str) -> str:
    return _md5(label)


def cache_key(label: str, files: Iterable[SourceFile], options: ResolverOptions) -> str:
    return ":".join(
        (compute_label_hash(label), compute_extraction_hash(files), options.options_hash())
    )
