from pathlib import Path
from typing import Annotated, NoReturn, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from typer import Argument, Exit, Option, Typer

from .config import AppConfig, load_config, resolve_db_path
from .embeddings import EmbeddingProvider
from .indexing import IndexingPipeline, SemanticChunker, parse_front_matter
from .logging_config import configure_logging
from .models import ScoredCandidate
from .search import HybridQueryEngine
from .storage import DuckDBStorage

app = Typer(help="Semantic chunking and hybrid search over documentation folders.")
console = Console()

DbPathOption = Annotated[
    Optional[str],
    Option("--db-path", help="DuckDB index path (default: $DOC_RETRIEVER_DB_PATH)."),
]
ConfigOption = Annotated[
    Optional[str],
    Option("--config", "-c", help="JSON config file (default: ./config.json)."),
]
FolderOption = Annotated[
    Optional[str],
    Option("--folder", "-f", help="Indexed folder (default: docsFolder from config)."),
]


@app.callback()
def main(
    verbose: Annotated[
        bool, Option("--verbose", "-v", help="Enable debug logging.")
    ] = False,
) -> None:
    configure_logging(verbose)


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]{message}[/]")
    raise Exit(code=1)


def _load_config(config_path: Optional[str]) -> AppConfig:
    try:
        return load_config(config_path)
    except ValueError as exc:
        _fail(str(exc))
        raise


def _resolve_folder(folder: Optional[str], config: AppConfig) -> str:
    resolved = folder or config.docs_folder
    if resolved is None:
        _fail("No folder given. Pass --folder or set docsFolder in the config.")
    return str(resolved)


def _open_corpus(folder: str, db_path: Optional[str]) -> tuple[DuckDBStorage, str]:
    storage = DuckDBStorage(resolve_db_path(db_path))
    corpus_id = storage.get_corpus_id(folder)
    if corpus_id is None:
        storage.close()
        _fail(f"Folder {folder} is not indexed yet. Run `index` first.")
    return storage, str(corpus_id)


def _make_embedding_provider() -> EmbeddingProvider:
    try:
        return EmbeddingProvider()
    except ValueError as exc:
        _fail(str(exc))
        raise


@app.command()
def index(
    folder: Annotated[Optional[str], Argument(help="Folder of documents to index.")] = None,
    db_path: DbPathOption = None,
    config_path: ConfigOption = None,
    force: Annotated[
        bool, Option("--force", help="Re-index documents even when unchanged.")
    ] = False,
    category: Annotated[
        Optional[str],
        Option("--category", help="Only index one top-level directory."),
    ] = None,
) -> None:
    """Chunk, embed and store every document in a folder."""
    config = _load_config(config_path)
    target = _resolve_folder(folder, config)
    provider = _make_embedding_provider()

    storage = DuckDBStorage(resolve_db_path(db_path))
    try:
        pipeline = IndexingPipeline(
            storage,
            provider,
            chunker=SemanticChunker(config.chunker),
        )
        try:
            result = pipeline.index_folder(target, force=force, category=category)
        except ValueError as exc:
            _fail(str(exc))
    finally:
        storage.close()

    content = (
        f"**Indexed:** {result.indexed_files}\n\n"
        f"**Unchanged:** {result.skipped_files}\n\n"
        f"**Failed:** {result.failed_files}\n\n"
        f"**Deleted:** {result.deleted_files}\n\n"
        f"**Chunks written:** {result.chunks_written}\n\n"
        f"**Active documents:** {result.active_documents}"
    )
    border = "bold green" if result.failed_files == 0 else "bold yellow"
    console.print(
        Panel(Markdown(content), title="Index Complete", title_align="left", border_style=border)
    )


@app.command()
def search(
    query: Annotated[str, Argument(help="Natural-language search query.")],
    folder: FolderOption = None,
    limit: Annotated[int, Option("--limit", "-n", help="Results to return (1-20).")] = 10,
    group: Annotated[
        Optional[str],
        Option("--group", help="Cut results at a relevance cliff: tight or loose."),
    ] = None,
    db_path: DbPathOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Search an indexed folder with hybrid ranking."""
    if group is not None and group not in ("tight", "loose"):
        _fail(f"Invalid --group {group!r}: expected tight or loose.")

    config = _load_config(config_path)
    target = _resolve_folder(folder, config)
    provider = _make_embedding_provider()

    storage, corpus_id = _open_corpus(target, db_path)
    try:
        engine = HybridQueryEngine(storage, provider, config.hybrid_search)
        try:
            results = engine.search(
                corpus_id=corpus_id,
                query=query,
                limit=limit,
                grouping=group,  # type: ignore[arg-type]
            )
        except ValueError as exc:
            _fail(str(exc))
    finally:
        storage.close()

    console.print(
        f"[bold]Query:[/] {query}\n[bold]Results:[/] {len(results)} "
        f"chunk{'s' if len(results) != 1 else ''} found"
    )
    for rank, candidate in enumerate(results, start=1):
        console.print(_result_panel(rank, candidate))


def _result_panel(rank: int, candidate: ScoredCandidate) -> Panel:
    lines = [
        f"**File:** `{candidate.file_path}`",
        f"**Category:** {candidate.category}",
        f"**Relevance Score:** {candidate.distance:.4f} (lower is better)",
    ]
    if candidate.headers:
        lines.append(f"**Section:** {' > '.join(candidate.headers)}")
    lines.append("")
    lines.append(f"```\n{candidate.text}\n```")
    return Panel(
        Markdown("\n\n".join(lines)),
        title=f"Result {rank}",
        title_align="left",
        border_style="bold cyan",
    )


@app.command()
def docs(
    folder: FolderOption = None,
    db_path: DbPathOption = None,
    config_path: ConfigOption = None,
) -> None:
    """List indexed documents with their chunk counts."""
    config = _load_config(config_path)
    storage, corpus_id = _open_corpus(_resolve_folder(folder, config), db_path)
    try:
        documents = storage.list_documents(corpus_id=corpus_id)
    finally:
        storage.close()

    table = Table(title="Indexed documents")
    table.add_column("File")
    table.add_column("Category")
    table.add_column("Title")
    table.add_column("Description")
    table.add_column("Chunks", justify="right")
    for document in documents:
        table.add_row(
            document["relative_path"],
            document["category"],
            document["title"] or "",
            document["description"] or "",
            str(document["chunk_count"]),
        )
    console.print(table)


def _document_path(root: Path, path: str) -> str:
    """Relative path of an existing document under *root*; ``.md`` is optional."""
    candidates = [path] if Path(path).suffix else [path, f"{path}.md"]
    for candidate in candidates:
        full_path = (root / candidate).resolve()
        if not full_path.is_relative_to(root):
            _fail(f"Path {path} is outside {root}.")
        if full_path.is_file():
            return full_path.relative_to(root).as_posix()
    _fail(f"Document {path} not found under {root}.")


@app.command()
def read(
    path: Annotated[str, Argument(help="Document path relative to the folder.")],
    folder: FolderOption = None,
    db_path: DbPathOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Print a document without its front matter."""
    config = _load_config(config_path)
    root = Path(_resolve_folder(folder, config)).resolve()
    relative_path = _document_path(root, path)

    storage = DuckDBStorage(resolve_db_path(db_path))
    try:
        corpus_id = storage.get_corpus_id(str(root))
        document = (
            storage.get_document(corpus_id=corpus_id, relative_path=relative_path)
            if corpus_id is not None
            else None
        )
    finally:
        storage.close()

    if document is None:
        try:
            raw = (root / relative_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            _fail(f"Failed to read {relative_path}: {exc}")
        front_matter = parse_front_matter(raw)
        document = {
            "title": front_matter.title,
            "description": front_matter.description,
            "content": front_matter.body,
        }

    header = f"[bold]File:[/] {relative_path}"
    if document["title"]:
        header += f"\n[bold]Title:[/] {document['title']}"
    if document["description"]:
        header += f"\n[bold]Description:[/] {document['description']}"
    console.print(header)
    console.print(document["content"], markup=False, highlight=False)


@app.command()
def stats(
    folder: FolderOption = None,
    db_path: DbPathOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Show document and chunk counts for an indexed folder."""
    config = _load_config(config_path)
    storage, corpus_id = _open_corpus(_resolve_folder(folder, config), db_path)
    try:
        summary = storage.get_stats(corpus_id=corpus_id)
    finally:
        storage.close()

    table = Table(title="Index statistics")
    table.add_column("Category")
    table.add_column("Chunks", justify="right")
    for category, count in summary["categories"].items():
        table.add_row(category, str(count))
    console.print(
        f"[bold]Documents:[/] {summary['doc_count']}  "
        f"[bold]Chunks:[/] {summary['chunk_count']}"
    )
    console.print(table)
