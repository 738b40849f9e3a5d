"""
artindex CLI.

Commands operate on the contexts declared in the configuration file.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
import structlog

from artindex.config import load_config
from artindex.errors import ArtIndexError
from artindex.indexer import ArtifactIndexer
from artindex.search import (
    FlatSearchRequest,
    GroupedSearchRequest,
    SearchType,
)


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _format_hit(info) -> str:
    line = f"{info}  [{info.context_id}]"
    if info.sha1:
        line += f"  sha1={info.sha1}"
    return line


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--project",
    "-p",
    type=click.Path(exists=True, path_type=Path),
    default=Path.cwd(),
    help="Project root used for configuration discovery",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging",
)
@click.pass_context
def cli(ctx: click.Context, config: Path | None, project: Path, verbose: bool) -> None:
    """artindex - Maven repository artifact indexer."""
    ctx.ensure_object(dict)

    try:
        loaded = load_config(config_path=config, project_root=project)
    except (OSError, ValueError) as e:
        _fail(f"Cannot load configuration: {e}")

    # Configure logging
    log_level = logging.DEBUG if verbose else getattr(logging, loaded.log_level)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
    )

    ctx.obj["config"] = loaded


@cli.command()
@click.pass_context
def contexts(ctx: click.Context) -> None:
    """List configured indexing contexts."""
    config = ctx.obj["config"]

    try:
        with ArtifactIndexer.from_config(config) as indexer:
            descriptions = indexer.describe()
            if not descriptions:
                click.echo("No indexing contexts configured")
                return
            for description in descriptions:
                kind = "merged" if description["merged"] else "plain"
                click.echo(f"{description['id']} ({kind})")
                click.echo(f"  repository_id: {description['repository_id']}")
                if description["merged"]:
                    click.echo(f"  members: {', '.join(description['members'])}")
                else:
                    click.echo(f"  repository: {description['repository']}")
                click.echo(f"  searchable: {description['searchable']}")
                click.echo(f"  size: {description['size']}")
                click.echo(f"  timestamp: {description['timestamp']}")
    except ArtIndexError as e:
        _fail(str(e))


@cli.command()
@click.argument("context_ids", nargs=-1)
@click.option("--update", "-u", is_flag=True, help="Incremental scan over the current index")
@click.option("--from-path", type=str, help="Only scan this path under the repository")
@click.pass_context
def scan(
    ctx: click.Context,
    context_ids: tuple[str, ...],
    update: bool,
    from_path: str | None,
) -> None:
    """Rescan contexts (all scannable contexts if none are given)."""
    config = ctx.obj["config"]

    try:
        with ArtifactIndexer.from_config(config) as indexer:
            registered = indexer.get_indexing_contexts()
            if context_ids:
                targets = [indexer.get_indexing_context(i) for i in context_ids]
            else:
                targets = [
                    registered[key]
                    for key in sorted(registered)
                    if not registered[key].is_merged
                ]

            for context in targets:
                result = indexer.scan(context, update=update, from_path=from_path)
                if result is None:
                    click.echo(f"{context.id}: no repository, skipped")
                    continue
                click.echo(
                    f"{context.id}: {result.discovered} artifacts indexed, "
                    f"{result.skipped} files skipped"
                )
                if result.exceptions:
                    click.echo(f"{context.id}: {len(result.exceptions)} errors", err=True)
    except ArtIndexError as e:
        _fail(str(e))


@cli.command()
@click.argument("field")
@click.argument("text")
@click.option("--exact", "-e", is_flag=True, help="Exact match instead of prefix match")
@click.option("--context", "context_ids", multiple=True, help="Search only these contexts")
@click.option("--grouped", "-g", is_flag=True, help="Group hits by group:artifact")
@click.option("--limit", "-n", type=int, default=20, help="Number of results")
@click.pass_context
def search(
    ctx: click.Context,
    field: str,
    text: str,
    exact: bool,
    context_ids: tuple[str, ...],
    grouped: bool,
    limit: int,
) -> None:
    """Search artifacts by FIELD (g, a, v, c, e, p, sha1, ...)."""
    config = ctx.obj["config"]

    try:
        with ArtifactIndexer.from_config(config) as indexer:
            search_type = SearchType.EXACT if exact else SearchType.SCORED
            query = indexer.construct_query(field, text, search_type)
            targets = [indexer.get_indexing_context(i) for i in context_ids]

            if grouped:
                grouped_response = indexer.search_grouped(
                    GroupedSearchRequest(query=query, contexts=targets)
                )
                click.echo(f"{grouped_response.total_hits} hits", err=True)
                for key, group in grouped_response.results.items():
                    click.echo(key)
                    for info in group.artifact_infos:
                        click.echo(f"  {_format_hit(info)}")
                return

            response = indexer.search_flat(
                FlatSearchRequest(query=query, contexts=targets, count=limit)
            )
            click.echo(f"{response.total_hits} hits", err=True)
            for info in response.results:
                click.echo(_format_hit(info))
    except ArtIndexError as e:
        _fail(str(e))


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def identify(ctx: click.Context, file: Path) -> None:
    """Identify a local FILE by its SHA-1."""
    config = ctx.obj["config"]

    try:
        with ArtifactIndexer.from_config(config) as indexer:
            hits = indexer.identify_file(file)
            if not hits:
                click.echo(f"{file}: not found")
                sys.exit(1)
            for info in hits:
                click.echo(_format_hit(info))
    except ArtIndexError as e:
        _fail(str(e))


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
