"""CLI entry point: pkgrecon.

Subcommands:
    pkgrecon resolve ./recovered                      # table of resolved dependencies
    pkgrecon resolve ./recovered --json               # records + stats as JSON
    pkgrecon resolve ./recovered --manifest m.json    # use extraction manifest tags
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click
import structlog

from pkgrecon.core.config import ResolverOptions
from pkgrecon.core.logging import setup_logging
from pkgrecon.engines.version_resolver import (
    DependencyResolver,
    NpmRegistryClient,
    ResolutionResult,
    SourceFile,
)

log = structlog.get_logger("pkgrecon.cli")


def load_tree(root: Path) -> list[SourceFile]:
    """Every UTF-8 text file under *root*, keyed by its posix path relative to *root*."""
    files: list[SourceFile] = []
    for path in sorted(p for p in root.rglob("*") if p.is_file()):
        try:
            content = path.read_text(encoding="utf-8")
        except (UnicodeDecodeError, OSError):
            log.debug("cli.skip_file", path=str(path))
            continue
        files.append(SourceFile(path=path.relative_to(root).as_posix(), content=content))
    return files


async def _run(
    files: list[SourceFile],
    options: ResolverOptions,
    manifest: Path | None,
    label: str,
) -> ResolutionResult:
    async with NpmRegistryClient(options.registry_url) as registry:
        resolver = DependencyResolver(registry, options=options)
        return await resolver.resolve(files, manifest_path=manifest, label=label)


def _print_table(result: ResolutionResult) -> None:
    records = [result.dependencies[n] for n in sorted(result.dependencies)]
    resolved = [r for r in records if r.version is not None]
    private = [r for r in records if r.is_private]
    unresolved = [r for r in records if r.version is None and not r.is_private]

    click.echo(f"Resolved ({len(resolved)}):")
    for r in resolved:
        click.echo(f"  {r.name}@{r.version}  [{r.confidence}, {r.source}]")
    if unresolved:
        click.echo(f"\nUnresolved ({len(unresolved)}):")
        for r in unresolved:
            click.echo(f"  {r.name}")
    if private:
        click.echo(f"\nInternal ({len(private)}):")
        for r in private:
            root = result.workspace_roots.get(r.name)
            click.echo(f"  {r.name}" + (f"  -> {root}" if root else ""))
    if result.aliases.aliases:
        click.echo("\nAliases:")
        for alias, target in sorted(result.aliases.aliases.items()):
            click.echo(f"  {alias} -> {target}")

    stats = result.stats
    click.echo(
        f"\nTotal: {stats.total_dependencies}  with version: {stats.with_version}  "
        f"without: {stats.without_version}  private: {stats.private_packages}"
    )
    for error in result.errors:
        click.echo(f"warning: {error}", err=True)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """pkgrecon: recover dependency versions from reconstructed bundle sources."""
    setup_logging("DEBUG" if verbose else None)


@main.command("resolve")
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--manifest",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Extraction manifest with per-bundle file lists",
)
@click.option("--fetch-latest", is_flag=True, help="Fall back to registry latest")
@click.option("--banners", is_flag=True, help="Enable license banner detection")
@click.option("--include-prereleases", is_flag=True, help="Consider prereleases")
@click.option("--concurrency", type=int, default=None, help="Max concurrent registry requests")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def resolve(
    directory: Path,
    manifest: Path | None,
    fetch_latest: bool,
    banners: bool,
    include_prereleases: bool,
    concurrency: int | None,
    as_json: bool,
) -> None:
    """Classify and version every package imported under DIRECTORY."""
    try:
        options = ResolverOptions.from_env(
            fetch_latest=fetch_latest or None,
            enable_banner_detection=banners or None,
            include_prereleases=include_prereleases or None,
            concurrency=concurrency,
        )
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    files = load_tree(directory)
    if not files:
        click.echo(f"No readable files under {directory}", err=True)
        sys.exit(1)

    try:
        result = asyncio.run(_run(files, options, manifest, label=str(directory)))
    except Exception as exc:
        log.exception("cli.resolve_failed", directory=str(directory))
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_table(result)
