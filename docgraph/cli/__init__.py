"""
Command-Line Interface

CLI commands for DocGraph operations.

Commands:
    docgraph ingest     - Ingest documents into a knowledge base
    docgraph reprocess  - Re-run ingestion for an existing document
    docgraph ask        - Ask a question
    docgraph info       - Display knowledge base information

Usage:
    # Ingest a markdown file
    docgraph ingest handbook.md --kb ./my_kb --classification internal

    # Ingest a directory with fixed-size chunking
    docgraph ingest ./docs --kb ./my_kb --strategy fixed

    # Ask, streaming the answer, as a member of the finance group
    docgraph ask "Who approves purchase orders?" --kb ./my_kb --stream --group finance

    # Show stats
    docgraph info --kb ./my_kb
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

__all__ = ["main", "app"]

SUPPORTED_SUFFIXES = {".md", ".markdown", ".txt", ".png", ".jpg", ".jpeg"}

app = typer.Typer(
    name="docgraph",
    help="Document knowledge graph with security-aware retrieval",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def _configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    for noisy in ("httpx", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _query_options(top_k: int | None, roles: list[str], groups: list[str], department: str | None):
    from docgraph.types import QueryOptions, UserContext

    user = None
    if roles or groups or department:
        user = UserContext(roles=roles, groups=groups, department=department)
    values = {"user": user}
    if top_k is not None:
        values["top_k"] = top_k
    return QueryOptions(**values)


@app.command()
def ingest(
    path: Path = typer.Argument(
        ...,
        help="File or directory to ingest",
        exists=True,
    ),
    kb: Path = typer.Option(
        Path("./kb"),
        "--kb", "-k",
        help="Knowledge base directory",
    ),
    strategy: Optional[str] = typer.Option(
        None,
        "--strategy", "-s",
        help="Chunking strategy (semantic or fixed)",
    ),
    classification: Optional[str] = typer.Option(
        None,
        "--classification", "-c",
        help="Document classification (public, internal, confidential, restricted)",
    ),
    group: list[str] = typer.Option(
        [],
        "--group", "-g",
        help="Group allowed to read the document (repeatable)",
    ),
    department: Optional[str] = typer.Option(
        None,
        "--department",
        help="Owning department",
    ),
    costs: bool = typer.Option(False, "--costs", help="Show estimated provider usage and cost"),
) -> None:
    """Ingest documents into a knowledge base."""

    async def _run() -> None:
        from docgraph.api import DocGraph

        files = (
            sorted(p for p in path.rglob("*") if p.suffix.lower() in SUPPORTED_SUFFIXES)
            if path.is_dir()
            else [path]
        )
        if not files:
            console.print(f"[yellow]No supported files found in {path}[/]")
            return

        options = {"chunking": {"strategy": strategy}} if strategy else {}
        totals = {"chunks": 0, "entities": 0, "relationships": 0}
        failures: list[tuple[Path, str]] = []

        async with DocGraph(kb) as dg:
            collector = dg.cost_collector() if costs else None
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                console=console,
            ) as progress:
                task = progress.add_task("Ingesting...", total=len(files))
                for file_path in files:
                    progress.update(task, description=f"Ingesting {file_path.name}")
                    try:
                        result = await dg.ingest_file(
                            file_path,
                            classification=classification,
                            allowed_groups=group,
                            department=department,
                            collector=collector,
                            **options,
                        )
                    except Exception as e:
                        failures.append((file_path, str(e)))
                    else:
                        totals["chunks"] += result.stats.chunks_indexed
                        totals["entities"] += result.stats.entities_resolved
                        totals["relationships"] += result.stats.relationships_extracted
                    progress.advance(task)

        console.print()
        console.print(Panel(
            f"[green]Ingested {len(files) - len(failures)} of {len(files)} files[/]\n\n"
            f"  Chunks: {totals['chunks']}\n"
            f"  Entities: {totals['entities']}\n"
            f"  Relationships: {totals['relationships']}",
            title="Ingestion Complete",
        ))
        if collector is not None:
            _print_costs(collector)
        if failures:
            console.print("[red]Failures:[/]")
            for file_path, error in failures:
                console.print(f"  - {file_path.name}: {error}")
            raise typer.Exit(code=1)

    asyncio.run(_run())


@app.command()
def reprocess(
    document_id: str = typer.Argument(..., help="Document to re-ingest"),
    kb: Path = typer.Option(
        Path("./kb"),
        "--kb", "-k",
        help="Knowledge base directory",
        exists=True,
    ),
) -> None:
    """Clear a document's chunks and edges, then ingest it again."""

    async def _run() -> None:
        from docgraph.api import DocGraph
        from docgraph.errors import DocumentNotFoundError

        async with DocGraph(kb, create=False) as dg:
            try:
                result = await dg.reprocess(document_id)
            except DocumentNotFoundError:
                console.print(f"[red]Document not found: {document_id}[/]")
                raise typer.Exit(code=1)

        console.print(Panel(
            f"[green]Reprocessed {result.document_id}[/]\n\n"
            f"  Chunks: {result.stats.chunks_indexed}\n"
            f"  Entities: {result.stats.entities_resolved}\n"
            f"  Duration: {result.stats.processing_time_ms}ms",
            title="Reprocess Complete",
        ))

    asyncio.run(_run())


@app.command()
def ask(
    question: str = typer.Argument(
        ...,
        help="Question to ask the knowledge base",
    ),
    kb: Path = typer.Option(
        Path("./kb"),
        "--kb", "-k",
        help="Knowledge base directory",
        exists=True,
    ),
    stream: bool = typer.Option(
        False,
        "--stream/--no-stream",
        help="Print the answer as it is generated",
    ),
    top_k: Optional[int] = typer.Option(
        None,
        "--top-k",
        help="Search results to retrieve",
    ),
    role: list[str] = typer.Option([], "--role", "-r", help="Caller role (repeatable)"),
    group: list[str] = typer.Option([], "--group", "-g", help="Caller group (repeatable)"),
    department: Optional[str] = typer.Option(None, "--department", help="Caller department"),
    costs: bool = typer.Option(False, "--costs", help="Show estimated provider usage and cost"),
) -> None:
    """Ask the knowledge base a question."""

    async def _run() -> None:
        from docgraph.api import DocGraph

        options = _query_options(top_k, role, group, department)

        async with DocGraph(kb, create=False) as dg:
            if stream:
                await _print_stream(await dg.stream(question, options))
                return

            collector = dg.cost_collector() if costs else None
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                task = progress.add_task("Thinking...")
                response = await dg.ask(question, options, collector=collector)
                progress.update(task, completed=True)

        console.print()
        console.print(Panel(
            Markdown(response.answer),
            title="Answer",
            border_style="red" if response.metadata.error else "green",
        ))

        if response.citations:
            console.print()
            table = Table(title="Sources")
            table.add_column("#", justify="right", style="dim")
            table.add_column("Document", style="cyan")
            table.add_column("Section", style="dim")
            table.add_column("Score", justify="right")
            for i, citation in enumerate(response.citations, 1):
                table.add_row(
                    str(i),
                    citation.document_name,
                    citation.section_title or "",
                    f"{citation.score:.2f}",
                )
            console.print(table)

        console.print(f"\n[dim]Query time: {response.response_time_ms}ms[/]")
        if collector is not None:
            _print_costs(collector)

    asyncio.run(_run())


def _print_costs(collector) -> None:
    report = collector.summary()
    table = Table(title=f"Estimated Usage (pricing {report.pricing_version})")
    table.add_column("Stage", style="cyan")
    table.add_column("Calls", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost (USD)", justify="right", style="green")
    for stage in report.breakdown.by_stage:
        table.add_row(
            stage.stage,
            str(stage.calls),
            str(stage.total_tokens),
            f"{stage.estimated_cost_usd:.6f}",
        )
    table.add_row(
        "total",
        str(report.breakdown.total_calls),
        str(report.breakdown.total_tokens),
        f"{report.breakdown.total_estimated_cost_usd:.6f}",
        style="bold",
    )
    console.print(table)
    for warning in report.warnings:
        console.print(f"[yellow]{warning}[/]")


async def _print_stream(stream) -> None:
    async for event in stream:
        if event.event == "thinking":
            console.print(f"[dim]{event.data['content']}[/]")
        elif event.event == "content":
            console.print(event.data["text"], end="", markup=False, highlight=False)
        elif event.event == "content_replace":
            console.print("\n\n[yellow]Redacted answer:[/]")
            console.print(event.data["text"], markup=False, highlight=False)
        elif event.event == "metadata" and "response_time_ms" in event.data:
            console.print(f"\n\n[dim]Query time: {event.data['response_time_ms']}ms[/]")
        elif event.event == "error":
            console.print(f"\n[red]Error: {event.data['message']}[/]")
            raise typer.Exit(code=1)


@app.command()
def info(
    kb: Path = typer.Option(
        Path("./kb"),
        "--kb", "-k",
        help="Knowledge base directory",
        exists=True,
    ),
) -> None:
    """Display knowledge base information."""

    async def _run() -> None:
        from docgraph.api import DocGraph

        async with DocGraph(kb, create=False) as dg:
            stats = await dg.stats()

        table = Table(title=f"Knowledge Base: {kb}")
        table.add_column("Metric", style="cyan")
        table.add_column("Count", justify="right", style="green")

        table.add_row("Documents", str(stats["documents"]))
        for status, count in sorted(stats["documents_by_status"].items()):
            table.add_row(f"  {status}", str(count))
        table.add_row("Chunks", str(stats["chunks"]))
        table.add_row("Vertices", str(stats["vertices"]))
        table.add_row("Edges", str(stats["edges"]))
        table.add_row("Indexed entities", str(stats["indexed_entities"]))

        console.print(table)

    asyncio.run(_run())


def main() -> None:
    """Entry point for the CLI."""
    app()
