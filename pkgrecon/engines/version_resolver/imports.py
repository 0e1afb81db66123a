"""Turn recovered files into one dependency record per imported package."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from pathlib import PurePosixPath

import structlog

from pkgrecon.engines.version_resolver.models import DependencyRecord, SourceFile

log = structlog.get_logger("pkgrecon.engine")

# (file_content, file_path) -> import specifiers
ImportExtractor = Callable[[str, str], list[str]]

ANALYZABLE_EXTENSIONS = frozenset({".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs"})

NODE_BUILTINS = frozenset(
    {
        "assert",
        "async_hooks",
        "buffer",
        "child_process",
        "cluster",
        "console",
        "constants",
        "crypto",
        "dgram",
        "diagnostics_channel",
        "dns",
        "domain",
        "events",
        "fs",
        "http",
        "http2",
        "https",
        "inspector",
        "module",
        "net",
        "os",
        "path",
        "perf_hooks",
        "process",
        "punycode",
        "querystring",
        "readline",
        "repl",
        "stream",
        "string_decoder",
        "sys",
        "timers",
        "tls",
        "trace_events",
        "tty",
        "url",
        "util",
        "v8",
        "vm",
        "wasi",
        "worker_threads",
        "zlib",
    }
)

_SPECIFIER_RES = [
    # import x from 'y' / import {a} from "y" / export * from 'y'
    re.compile(r"""\b(?:import|export)\s[^'";]*?\bfrom\s*['"]([^'"]+)['"]"""),
    # import 'side-effect'
    re.compile(r"""\bimport\s*['"]([^'"]+)['"]"""),
    # import('lazy')
    re.compile(r"""\bimport\s*\(\s*['"]([^'"]+)['"]\s*\)"""),
    # require('cjs')
    re.compile(r"""\brequire\s*\(\s*['"]([^'"]+)['"]\s*\)"""),
]

_VALID_NAME_RE = re.compile(r"^(?:@[a-z0-9][\w.~-]*/)?[a-z0-9][\w.~-]*$", re.IGNORECASE)


def regex_import_extractor(content: str, file_path: str) -> list[str]:
    """Best-effort specifier extraction for when no AST extractor is supplied."""
    found: list[str] = []
    seen: set[str] = set()
    for pattern in _SPECIFIER_RES:
        for m in pattern.finditer(content):
            spec = m.group(1)
            if spec not in seen:
                seen.add(spec)
                found.append(spec)
    return found


def package_name(specifier: str) -> str:
    """``@scope/pkg/sub`` -> ``@scope/pkg``; ``pkg/sub`` -> ``pkg``."""
    parts = specifier.split("/")
    if specifier.startswith("@"):
        return "/".join(parts[:2])
    return parts[0]


def is_builtin_module(name: str) -> bool:
    if name.startswith("node:"):
        return True
    return name.split("/", 1)[0] in NODE_BUILTINS


def bare_package_name(specifier: str) -> str | None:
    """Package name for a bare specifier, or None for anything else.

    Relative paths, absolute paths, URLs, protocol specifiers, path aliases
    (``@/``, ``~/``) and builtins are not packages.
    """
    spec = specifier.strip()
    if not spec or spec.startswith((".", "/", "~", "#")):
        return None
    if spec.startswith("@/") or spec == "@":
        return None
    if ":" in spec:
        return None
    if is_builtin_module(spec):
        return None
    name = package_name(spec)
    if not _VALID_NAME_RE.match(name):
        return None
    return name


def is_analyzable(path: str) -> bool:
    return PurePosixPath(path).suffix.lower() in ANALYZABLE_EXTENSIONS


def collect_dependencies(
    files: Iterable[SourceFile],
    extractor: ImportExtractor = regex_import_extractor,
    errors: list[str] | None = None,
) -> dict[str, DependencyRecord]:
    """One record per imported package name, in first-observed order."""
    records: dict[str, DependencyRecord] = {}
    for f in files:
        if not f.content or not is_analyzable(f.path):
            continue
        try:
            specifiers = extractor(f.content, f.path)
        except Exception as exc:
            log.warning("imports.extract_failed", path=f.path, error=str(exc))
            if errors is not None:
                errors.append(f"Failed to analyze {f.path}: {exc}")
            continue

        for spec in specifiers:
            name = bare_package_name(spec)
            if name is None:
                continue
            rec = records.get(name)
            if rec is None:
                records[name] = DependencyRecord(name=name, imported_from=[f.path])
            elif f.path not in rec.imported_from:
                rec.imported_from.append(f.path)
    return records
