"""Resolver options — dataclass defaults, overridable from the environment."""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_number(key: str, default: float, kind: type) -> float:
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"{key} must be {kind.__name__}, got {raw!r}") from None


def _env_int(key: str, default: int) -> int:
    return int(_env_number(key, default, int))


def _env_float(key: str, default: float) -> float:
    return float(_env_number(key, default, float))


@dataclass(frozen=True)
class ResolverOptions:
    """Knobs for one resolution run."""

    use_fingerprinting: bool = False
    include_prereleases: bool = False
    # Registry "latest" as a last resort; always tagged unverified.
    fetch_latest: bool = False
    # Banner attribution across nested dependency trees is unreliable.
    enable_banner_detection: bool = False
    max_versions_to_check: int = 0  # 0 = all versions
    concurrency: int = 10
    fingerprint_concurrency: int = 5
    min_similarity: float = 0.7
    min_similarity_minified: float = 0.6
    registry_url: str = DEFAULT_REGISTRY_URL

    @classmethod
    def from_env(cls, **overrides: object) -> ResolverOptions:
        """Build options from ``PKGRECON_*`` env vars; *overrides* win."""
        values: dict[str, object] = {
            "use_fingerprinting": _env_bool("PKGRECON_FINGERPRINT", False),
            "include_prereleases": _env_bool("PKGRECON_INCLUDE_PRERELEASES", False),
            "fetch_latest": _env_bool("PKGRECON_FETCH_LATEST", False),
            "enable_banner_detection": _env_bool("PKGRECON_BANNERS", False),
            "max_versions_to_check": _env_int("PKGRECON_MAX_VERSIONS", 0),
            "concurrency": _env_int("PKGRECON_CONCURRENCY", 10),
            "fingerprint_concurrency": _env_int("PKGRECON_FINGERPRINT_CONCURRENCY", 5),
            "min_similarity": _env_float("PKGRECON_MIN_SIMILARITY", 0.7),
            "min_similarity_minified": _env_float("PKGRECON_MIN_SIMILARITY_MINIFIED", 0.6),
            "registry_url": os.environ.get("PKGRECON_REGISTRY_URL", DEFAULT_REGISTRY_URL),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]

    def options_hash(self) -> str:
        """MD5 over the options that change the resolved record set."""
        data = json.dumps(
            {
                "use_fingerprinting": self.use_fingerprinting,
                "include_prereleases": self.include_prereleases,
                "fetch_latest": self.fetch_latest,
                "enable_banner_detection": self.enable_banner_detection,
            },
            sort_keys=True,
        )
        return hashlib.md5(data.encode()).hexdigest()
