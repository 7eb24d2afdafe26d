import os
from pathlib import Path
from typing import Annotated, NoReturn

import typer

from codebase_kb.config import Settings, settings
from codebase_kb.core.chunk_identity import classify_chunk_id, plan_chunk_id_migration
from codebase_kb.core.errors import KnowledgeBaseError
from codebase_kb.core.graph import SymbolGraph
from codebase_kb.core.models import ChunkIdFormat
from codebase_kb.core.ports import IRepositoryState
from codebase_kb.infrastructure.exclusion.rules import ExclusionRuleSet
from codebase_kb.infrastructure.storage.reader import KnowledgeBaseReader
from codebase_kb.infrastructure.vcs.git import GitRepositoryState, StaticRepositoryState
from codebase_kb.logger import configure_logger
from codebase_kb.services.graph import SymbolGraphBuilder
from codebase_kb.services.indexing import IndexingService

app = typer.Typer(
    help="codebase-kb: Repository Knowledge Base Indexer",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    if value:
        from codebase_kb import __version__

        typer.echo(f"codebase-kb version: {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config_file: Annotated[
        str, typer.Option("--config-file", "-c", help="Path to config.yaml file.")
    ] = "config.yaml",
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show the version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """codebase-kb: Deterministic knowledge base snapshots of a source repository."""
    from codebase_kb.config import load_settings

    os.environ["KB_CONFIG_FILE"] = config_file

    # Update the process-wide settings singleton in place
    new_settings = load_settings(config_file)
    for field in Settings.model_fields:
        setattr(settings, field, getattr(new_settings, field))

    configure_logger(settings.log_level, settings.log_serialize)


def _fail(error: Exception) -> NoReturn:
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(code=1) from error


def _load_graph(snapshot_dir: str) -> SymbolGraph:
    try:
        reader = KnowledgeBaseReader(snapshot_dir)
        return SymbolGraphBuilder(settings.graph).build_from_snapshot(reader)
    except KnowledgeBaseError as e:
        _fail(e)


def _require_file(graph: SymbolGraph, path: str) -> None:
    if not graph.has_file(path):
        _fail(ValueError(f"'{path}' is not a node of the symbol graph"))


@app.command()
def scan(
    path: Annotated[str, typer.Argument(help="Repository root to scan.")],
) -> None:
    """Scans a repository and prints manifest statistics without writing a snapshot."""
    # Scanning alone never consults the repository state
    service = IndexingService(settings, GitRepositoryState())
    scanner = service.build_scanner(service.build_rules(path))
    try:
        result = scanner.scan(path)
    except KnowledgeBaseError as e:
        _fail(e)

    stats = result.stats
    typer.echo(f"Files:     {stats.total_files}")
    typer.echo(f"Lines:     {stats.total_lines}")
    typer.echo(f"Bytes:     {stats.total_bytes}")
    typer.echo(f"Binary:    {stats.binary_count}")
    typer.echo(f"Excluded:  {stats.excluded_count}")
    typer.echo(f"Skipped:   {stats.skipped_count}")
    typer.echo(f"Rules:     {result.rules_version}")

    for summary in scanner.by_top_level_directory(result.files)[:10]:
        typer.echo(f"  {summary.directory:<30} {summary.file_count:>6} files")


@app.command()
def index(
    path: Annotated[str, typer.Argument(help="Repository root to index.")],
    project_id: Annotated[
        str | None, typer.Option("--project", "-p", help="Project identifier for the snapshot.")
    ] = None,
    kb_path: Annotated[
        str | None, typer.Option("--kb-path", "-o", help="Knowledge base output directory.")
    ] = None,
    static_revision: Annotated[
        str | None,
        typer.Option(
            "--static-revision",
            help="Record this revision instead of asking git (for non-git trees).",
        ),
    ] = None,
) -> None:
    """Builds a full knowledge base snapshot and prints its validation summary."""
    if kb_path is not None:
        settings.kb_path = kb_path

    repository_state: IRepositoryState = (
        StaticRepositoryState(static_revision) if static_revision else GitRepositoryState()
    )
    service = IndexingService(settings, repository_state)

    try:
        result = service.index(path, project_id=project_id)
    except KnowledgeBaseError as e:
        _fail(e)

    validation = result.validation
    graph_stats = result.graph.stats()
    typer.echo(f"Snapshot:  {validation.output_path}")
    typer.echo(f"Files:     {validation.files_index_entries}")
    typer.echo(f"Chunks:    {validation.chunks_count}")
    typer.echo(f"Coverage:  {validation.coverage_percent}%")
    typer.echo(f"Graph:     {graph_stats.node_count} nodes, {graph_stats.edge_count} edges")
    typer.echo(f"Valid:     {validation.is_valid}")

    if not validation.is_valid:
        raise typer.Exit(code=1)


@app.command()
def validate(
    snapshot_dir: Annotated[str, typer.Argument(help="Snapshot directory to validate.")],
) -> None:
    """Cross-checks the chunk IDs of a snapshot's files index against its chunk store."""
    try:
        summary = KnowledgeBaseReader(snapshot_dir).validate()
    except KnowledgeBaseError as e:
        _fail(e)

    typer.echo(summary.model_dump_json(indent=2))
    if not summary.is_valid:
        raise typer.Exit(code=1)


@app.command()
def neighbors(
    snapshot_dir: Annotated[str, typer.Argument(help="Snapshot directory.")],
    file: Annotated[str, typer.Argument(help="Repository-relative path of the file.")],
    depth: Annotated[int, typer.Option("--depth", "-d", help="Maximum hop count.")] = 1,
) -> None:
    """Lists files related to FILE within --depth hops, in either direction."""
    graph = _load_graph(snapshot_dir)
    _require_file(graph, file)

    depth = max(1, min(depth, settings.graph.max_depth))
    related = graph.neighborhood(file, depth)
    if not related:
        typer.echo("No related files found.")
        return

    for r in related:
        typer.echo(f"{r.depth}  {r.weight:.2f}  {r.relationship:<14} {r.path}")


@app.command()
def path(
    snapshot_dir: Annotated[str, typer.Argument(help="Snapshot directory.")],
    source: Annotated[str, typer.Argument(help="Start file.")],
    target: Annotated[str, typer.Argument(help="End file.")],
) -> None:
    """Prints the shortest chain of related files between two files."""
    graph = _load_graph(snapshot_dir)
    hops = graph.shortest_path(source, target)
    if hops is None:
        typer.echo(f"No path between {source} and {target}.")
        raise typer.Exit(code=1)

    typer.echo(" -> ".join(hops))


@app.command()
def cluster(
    snapshot_dir: Annotated[str, typer.Argument(help="Snapshot directory.")],
    file: Annotated[str, typer.Argument(help="Repository-relative path of the file.")],
    max_size: Annotated[
        int, typer.Option("--max-size", "-n", help="Maximum number of cluster members.")
    ] = 20,
) -> None:
    """Lists the files most strongly related to FILE."""
    graph = _load_graph(snapshot_dir)
    _require_file(graph, file)

    for member in graph.cluster(file, max_size):
        typer.echo(f"{member.cluster_score:.3f}  {member.path}")


@app.command()
def symbol(
    snapshot_dir: Annotated[str, typer.Argument(help="Snapshot directory.")],
    name: Annotated[str, typer.Argument(help="Symbol name to look up.")],
) -> None:
    """Shows where a symbol is declared and which files use it."""
    graph = _load_graph(snapshot_dir)

    typer.echo("Declared in:")
    for declared in graph.find_by_symbol(name) or ["(none)"]:
        typer.echo(f"  {declared}")

    typer.echo("Used in:")
    for used in graph.find_symbol_usages(name) or ["(none)"]:
        typer.echo(f"  {used}")


@app.command("chunk-ids")
def chunk_ids(
    snapshot_dir: Annotated[str, typer.Argument(help="Snapshot directory.")],
) -> None:
    """Audits the chunk ID formats of a snapshot and reports required migrations."""
    try:
        chunks = list(KnowledgeBaseReader(snapshot_dir).iter_chunks())
    except KnowledgeBaseError as e:
        _fail(e)

    counts = dict.fromkeys(ChunkIdFormat, 0)
    for chunk in chunks:
        counts[classify_chunk_id(chunk.chunk_id)] += 1

    for id_format, count in counts.items():
        typer.echo(f"{id_format.value:<14} {count}")

    plan = plan_chunk_id_migration(
        (c.chunk_id, c.path, c.file_content_hash, c.start_line, c.end_line) for c in chunks
    )
    typer.echo(
        f"Migrations needed: {len(plan.migrations)} "
        f"(unchanged {plan.unchanged}, skipped {plan.skipped})"
    )
    for migration in plan.migrations[:20]:
        typer.echo(f"  {migration.old_chunk_id} -> {migration.new_chunk_id}")


@app.command()
def rules(
    path: Annotated[
        str, typer.Argument(help="Repository root, for project overrides.")
    ] = ".",
) -> None:
    """Prints the active exclusion rules and their version hash."""
    rule_set = ExclusionRuleSet.from_config(settings.exclusions, Path(path))
    active = rule_set.active_rules()

    for kind in ("directories", "files", "extensions", "patterns", "binary_extensions"):
        typer.echo(f"{kind}:")
        for rule in active[kind]:
            typer.echo(f"  {rule}")
    typer.echo(f"version: {active['version']}")


if __name__ == "__main__":
    app()
