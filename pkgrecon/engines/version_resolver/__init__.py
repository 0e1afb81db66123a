"""Version resolver engine — classify imported packages and pin their versions."""

from pkgrecon.engines.version_resolver.cache import MemoryResultCache, ResultCache
from pkgrecon.engines.version_resolver.fingerprint import Fingerprinter, FingerprintOptions
from pkgrecon.engines.version_resolver.models import (
    DependencyRecord,
    ResolutionResult,
    SourceFile,
    VendorBundle,
    VersionResult,
    VersionStats,
)
from pkgrecon.engines.version_resolver.pipeline import DependencyResolver
from pkgrecon.engines.version_resolver.registry_client import (
    NpmRegistryClient,
    Registry,
    RegistryError,
)

__all__ = [
    "DependencyRecord",
    "DependencyResolver",
    "Fingerprinter",
    "FingerprintOptions",
    "MemoryResultCache",
    "NpmRegistryClient",
    "Registry",
    "RegistryError",
    "ResolutionResult",
    "ResultCache",
    "SourceFile",
    "VendorBundle",
    "VersionResult",
    "VersionStats",
]
