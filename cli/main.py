"""mailsift CLI - entry-point for all pipeline operations.

Usage:
    python cli/main.py --help

Commands:
    analyze   run the full pipeline over one stored document
    links     list the link candidates found in a document file
    chunk     show how a document file would be chunked
    fetch     retrieve one URL with a retrieval strategy
    db        result database operations
    serve     run the HTTP API
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from mailsift.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import json
from typing import Optional

import typer

from mailsift.analysis.chunker import chunk_text
from mailsift.analysis.llm import LLMClassifier
from mailsift.config import AnalysisConfig, RetrievalStrategy, Settings
from mailsift.db import SQLiteResultStore, get_connection, init_db
from mailsift.documents import FileDocumentSource, load_document_file
from mailsift.errors import FatalInputError
from mailsift.log_setup import setup_logging
from mailsift.pipeline import PipelineContext, ProgressEvent, run_analysis
from mailsift.retrieval import HttpWebClient, RetrievalContext, create_retriever
from mailsift.scraper.links import extract_links

app = typer.Typer(
    name="mailsift",
    help="Criteria-driven email analysis with link following.",
    no_args_is_help=True,
)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG | INFO | WARNING | ERROR."),
) -> None:
    setup_logging(log_level)


def _load_file(path: Path):
    try:
        return load_document_file(path)
    except FatalInputError as exc:
        typer.echo(f"[error] {exc}", err=True)
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Result database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    settings = Settings()
    conn = get_connection(settings.db_path)
    init_db(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path}")


@db_app.command("results")
def db_results(
    document: Optional[str] = typer.Option(None, "--document", help="Filter by document id."),
    matched_only: bool = typer.Option(False, "--matched-only", help="Only runs that matched."),
    limit: int = typer.Option(20, help="Maximum rows to show."),
) -> None:
    """List stored analysis results, newest first."""
    settings = Settings()
    conn = get_connection(settings.db_path)
    init_db(conn)
    try:
        results = SQLiteResultStore(conn).list_results(
            document_id=document, matched_only=matched_only, limit=limit
        )
    finally:
        conn.close()

    if not results:
        typer.echo("[db results] No results found.")
        return
    for r in results:
        mark = "MATCH" if r.result.matched_overall else "-----"
        typer.echo(
            f"  {r.run_id}  [{mark}]  {r.document_id!r}  "
            f"confidence={r.result.overall_confidence:.2f}  sources={len(r.result.by_source)}"
        )


# ---------------------------------------------------------------------------
# Inspection commands
# ---------------------------------------------------------------------------
@app.command("links")
def links(
    file: Path = typer.Option(..., "--file", help="Document file (.eml, .html, .txt)."),
    base_url: Optional[str] = typer.Option(None, help="Base URL for relative links."),
) -> None:
    """List the link candidates found in a document file."""
    document = _load_file(file)
    candidates = extract_links(document.markup, base_url=base_url)
    typer.echo(f"[links] {len(candidates)} candidate(s) in {file.name}")
    for i, c in enumerate(candidates, start=1):
        cta = " [CTA]" if c.is_cta else ""
        typer.echo(f"  {i:>3}. {c.anchor_text or '(no text)'!r}{cta} → {c.url}")


@app.command("chunk")
def chunk(
    file: Path = typer.Option(..., "--file", help="Document file (.eml, .html, .txt)."),
    size: int = typer.Option(3000, help="Target chunk size in characters."),
    min_size: int = typer.Option(500, help="Minimum size of every non-final chunk."),
) -> None:
    """Show how a document file would be chunked."""
    document = _load_file(file)
    try:
        pieces = chunk_text(document.plaintext, size, min_size)
    except ValueError as exc:
        typer.echo(f"[chunk] {exc}", err=True)
        raise typer.Exit(1)
    typer.echo(f"[chunk] {len(document.plaintext)} chars → {len(pieces)} chunk(s)")
    for i, piece in enumerate(pieces):
        preview = " ".join(piece[:70].split())
        typer.echo(f"  #{i:<3} {len(piece):>6} chars  {preview}…")


@app.command("fetch")
def fetch(
    url: str = typer.Option(..., help="URL to retrieve."),
    strategy: RetrievalStrategy = typer.Option(RetrievalStrategy.DIRECT_FETCH, help="Retrieval strategy."),
    anchor: str = typer.Option("", help="Anchor text (used as the search query by discovery)."),
) -> None:
    """Retrieve one URL and print the extracted text."""
    settings = Settings()
    retriever = create_retriever(strategy, HttpWebClient(settings), settings)
    typer.echo(f"[fetch] Retrieving {url!r} via {strategy.value} …")
    content = retriever.retrieve(url, RetrievalContext(anchor_text=anchor))
    if not content.success:
        typer.echo(f"[fetch] Failed: {content.error}", err=True)
        raise typer.Exit(1)

    typer.echo(f"[fetch] Canonical : {content.canonical_url}")
    typer.echo(f"[fetch] Title     : {content.title or '(none)'}")
    typer.echo(f"[fetch] Chars     : {len(content.text)}")
    typer.echo("")
    typer.echo(content.text)


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------
@app.command("analyze")
def analyze(
    document: str = typer.Option(..., "--document", help="Document id (file name in --documents)."),
    criteria: str = typer.Option(..., "--criteria", help="What a matching email looks like."),
    fields: str = typer.Option(..., "--fields", help="Fields to extract."),
    documents: Optional[Path] = typer.Option(None, "--documents", help="Document directory."),
    boost: Optional[str] = typer.Option(None, "--boost", help="Regex for anchor texts to prefer."),
    follow_links: bool = typer.Option(True, "--follow-links/--no-follow-links"),
    strategy: RetrievalStrategy = typer.Option(RetrievalStrategy.DIRECT_FETCH, help="Retrieval strategy."),
    guidance: Optional[str] = typer.Option(None, "--guidance", help="Extra link-selection guidance."),
    max_links: Optional[int] = typer.Option(None, "--max-links", min=1, help="Follow at most N links."),
    intent: Optional[str] = typer.Option(None, "--intent", help="Why you need the data."),
    examples: Optional[str] = typer.Option(None, "--examples", help="Example of the expected extracted output."),
    feedback: Optional[str] = typer.Option(None, "--feedback", help="Mistakes earlier runs made."),
    as_json: bool = typer.Option(False, "--json", help="Print the full run outcome as JSON."),
    save: bool = typer.Option(True, "--save/--no-save", help="Store the result in the database."),
) -> None:
    """Run the analysis pipeline over one stored document."""
    settings = Settings()
    config = AnalysisConfig(
        match_criteria=criteria,
        extraction_fields=fields,
        boost_pattern=boost,
        follow_links=follow_links,
        retrieval_strategy=strategy,
        link_guidance=guidance,
        max_links=max_links,
        user_intent=intent,
        extraction_examples=examples,
        analysis_feedback=feedback,
    )

    conn = None
    store = None
    if save:
        conn = get_connection(settings.db_path)
        init_db(conn)
        store = SQLiteResultStore(conn)

    def _echo_progress(event: ProgressEvent) -> None:
        if not as_json:
            typer.echo(f"[{event.state.value}] {event.message}")

    context = PipelineContext(
        settings=settings,
        documents=FileDocumentSource(documents or settings.documents_dir),
        classifier=LLMClassifier(settings),
        web=HttpWebClient(settings),
        store=store,
        on_progress=_echo_progress,
    )

    try:
        outcome = run_analysis(document, config, context)
    finally:
        if conn is not None:
            conn.close()

    if as_json:
        typer.echo(json.dumps(outcome.to_dict(), indent=2, ensure_ascii=False))
    elif outcome.result is not None:
        result = outcome.result
        typer.echo("\n" + "=" * 72)
        typer.echo(f"Matched    : {'yes' if result.matched_overall else 'no'}")
        typer.echo(f"Confidence : {result.overall_confidence:.2f}")
        typer.echo(f"Fields     : {json.dumps(result.merged_fields, ensure_ascii=False)}")
        for b in result.by_source:
            typer.echo(f"  - {b.source}: {b.matched_chunks} matched chunk(s), confidence {b.confidence:.2f}")
        for d in outcome.diagnostics:
            typer.echo(f"  ! {d.stage}/{d.kind}: {d.subject} {d.message}".rstrip())
        typer.echo("=" * 72)

    if not outcome.succeeded:
        typer.echo(f"[analyze] Run failed: {outcome.failure_reason}", err=True)
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# API server
# ---------------------------------------------------------------------------
@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8000, help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes."),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("mailsift.api.app:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
