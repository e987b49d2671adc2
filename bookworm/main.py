"""
bookworm - CLI Entry Point
---------------------------
Exposes Typer commands for querying and maintaining the news index.

Usage:
    bookworm query short "Who rules Spinesreach?"          # JSON response
    bookworm query dense "..." --rerank --limit 5 --no-json
    bookworm query summary "..." --catchup                   # ingest new posts first
    bookworm catchup short                                   # ingestion only
    bookworm catchup short --reconcile                       # full-range scan
    bookworm sections                                        # archive sections
"""
from __future__ import annotations

import asyncio
from typing import Optional

import httpx
import openai
import typer
from loguru import logger
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from rich import box
from rich.console import Console
from rich.table import Table

from bookworm.collection.archive_client import ArchiveClient
from bookworm.config import DEFAULT_CONFIG_PATH, Settings, load_settings
from bookworm.policy import CollectionType
from bookworm.serving.pipeline import BookwormPipeline
from bookworm.utils.helpers import dumps_json
from bookworm.utils.logger import setup_logger

app = typer.Typer(
    name="bookworm",
    help="Retrieval-augmented question answering over the news archive",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

_BOUNDARY_ERRORS = (
    httpx.HTTPError,
    openai.OpenAIError,
    UnexpectedResponse,
    ResponseHandlingException,
)


# --- Helpers ------------------------------------------------------------------

def _init(config: str, verbose: bool) -> Settings:
    settings = load_settings(config)
    setup_logger(settings.logging, verbose=verbose)
    return settings


def _run(coro) -> object:
    """Run a coroutine, turning boundary and policy errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except _BOUNDARY_ERRORS as exc:
        logger.error(f"[CLI] Service call failed: {exc}")
        err_console.print(f"[red]Service call failed:[/red] {exc}")
        raise typer.Exit(1)
    except ValueError as exc:
        err_console.print(f"[red]Invalid request:[/red] {exc}")
        raise typer.Exit(1)


# --- Commands -----------------------------------------------------------------

@app.command()
def query(
    collection: CollectionType = typer.Argument(..., help="Collection to search"),
    text: str = typer.Argument(..., help="The question to answer"),
    catchup: bool = typer.Option(False, "--catchup", "-c", help="Ingest new posts before searching"),
    no_entities: bool = typer.Option(
        False, "--no-entities", "-x", help="Skip proper-noun extraction and filtering"
    ),
    rerank: bool = typer.Option(False, "--rerank", "-r", help="Rerank candidates with Jina"),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-l", min=1, help="Passages to use (default: collection limit)"
    ),
    no_json: bool = typer.Option(False, "--no-json", "-a", help="Print only the answer"),
    no_context: bool = typer.Option(False, "--no-context", help="Omit context from the response"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    config: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Path to config YAML"),
) -> None:
    """Answer a question from the indexed news posts."""
    settings = _init(config, verbose)

    async def _query():
        pipeline = BookwormPipeline.from_settings(settings)
        try:
            return await pipeline.query(
                text,
                collection.to_collection(),
                limit=limit,
                use_entities=not no_entities,
                rerank=rerank,
                include_context=not no_context,
                catchup=catchup,
            )
        finally:
            await pipeline.aclose()

    response = _run(_query())
    if no_json:
        console.print(response.answer, markup=False, highlight=False)
    else:
        console.print_json(dumps_json(response.model_dump()))


@app.command()
def catchup(
    collection: CollectionType = typer.Argument(..., help="Collection to bring up to date"),
    reconcile: bool = typer.Option(
        False, "--reconcile", help="Scan the whole range instead of stopping at the first indexed post"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    config: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Path to config YAML"),
) -> None:
    """Index archive posts newer than the newest indexed one."""
    settings = _init(config, verbose)

    async def _catchup():
        pipeline = BookwormPipeline.from_settings(settings)
        try:
            return await pipeline.ingestor.catch_up_sections(collection.to_collection(), full=reconcile)
        finally:
            await pipeline.aclose()

    added = _run(_catchup())
    console.print(f"[green][OK][/green] {added} new post(s) indexed")


@app.command()
def sections(
    config: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Path to config YAML"),
) -> None:
    """List the archive's news sections and their post counts."""
    settings = _init(config, verbose=False)

    async def _sections():
        archive = ArchiveClient(settings.archive)
        try:
            return await archive.list_sections()
        finally:
            await archive.aclose()

    entries = _run(_sections())
    table = Table("Section", "Name", "Posts", box=box.SIMPLE, header_style="bold dim")
    for entry in entries:
        table.add_row(entry.section, entry.name, str(entry.total))
    console.print(table)


# --- Entry Point --------------------------------------------------------------

if __name__ == "__main__":
    app()
