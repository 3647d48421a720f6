"""Standalone CLI for ingesting PDFs and querying the knowledge store.

Usage::

    python -m studyrag.cli ingest --file lecture3.pdf --type lecture \\
        --name "Lecture 3" --course ml-101

    python -m studyrag.cli ingest --file midterm.pdf --type exam --has-answers

    python -m studyrag.cli query "backpropagation chain rule" --course ml-101

    python -m studyrag.cli stats
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

from studyrag.config.settings import Settings
from studyrag.models.events import EventName, ProgressEvent
from studyrag.models.items import DocType
from studyrag.models.pipeline import IngestionRequest, IngestionStage
from studyrag.pipeline.cancellation import CancellationToken


def _build_components(app_settings: Settings) -> dict[str, Any]:
    # Deferred: importing main configures logging and builds the web app.
    from studyrag.main import build_components

    return build_components(app_settings)


def _print_event(_session_id: str, event: ProgressEvent) -> None:
    data = event.data
    if event.name == EventName.STATUS:
        print(f"[{data.get('stage')}] {data.get('message', '')}")
    elif event.name == EventName.PROGRESS:
        total = data.get("total", 0)
        if total:
            print(f"  embedded {data.get('current', 0)}/{total}")
    elif event.name == EventName.BATCH_SAVED:
        print(f"  saved batch {data.get('batchIndex')} ({len(data.get('chunkIds', []))} chunks)")
    elif event.name == EventName.LOG:
        prefix = "warning: " if data.get("level") == "warning" else ""
        print(f"  {prefix}{data.get('message', '')}")
    elif event.name == EventName.DOCUMENT_CREATED:
        print(f"Document: {data.get('documentId')}")
    elif event.name == EventName.ERROR:
        print(f"Error [{data.get('code')}]: {data.get('message')}", file=sys.stderr)


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_ingest(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Ingest one local PDF and print progress as it happens."""
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    await components["store"].initialize()
    request = IngestionRequest(
        doc_type=DocType(args.type),
        has_answers=args.has_answers,
        filename=args.name or path.name,
        course_id=args.course,
    )
    session_id = f"cli-{path.stem}"
    tracker = components["progress_tracker"]
    tracker.register_listener(session_id, _print_event)
    try:
        state = await components["orchestrator"].ingest(
            request,
            path.read_bytes(),
            token=CancellationToken(),
            session_id=session_id,
        )
    finally:
        tracker.unregister_listener(session_id, _print_event)

    print()
    print(f"Result: {state.stage.value}")
    print(f"  Document:   {state.document_id}")
    print(f"  Persisted:  {state.items_persisted} chunks in {state.batches_flushed} batches")
    if state.warnings:
        print(f"  Warnings:   {len(state.warnings)}")
    return 1 if state.stage == IngestionStage.ERROR else 0


async def _handle_query(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Print the retrieval context for a query."""
    await components["store"].initialize()
    search_filter = {"course_id": args.course} if args.course else None
    context = await components["retrieval"].retrieve_context(
        args.text, filter=search_filter, match_count=args.count
    )
    if not context:
        print("No matching content.")
        return 0
    print(context)
    return 0


async def _handle_stats(components: dict[str, Any]) -> int:
    """List documents with their status and chunk counts."""
    store = components["store"]
    await store.initialize()
    documents = await store.list_documents()

    print("Knowledge Store")
    print("=" * 40)
    print(f"  Documents: {len(documents)}")
    total_chunks = 0
    for document in documents:
        chunks = await store.get_chunks(document.id)
        total_chunks += len(chunks)
        print(
            f"  - {document.name} [{document.doc_type.value}] "
            f"{document.status.value}: {len(chunks)} chunks"
        )
    print(f"  Chunks:    {total_chunks}")
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the StudyRAG CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m studyrag.cli",
        description="Ingest study documents and query the StudyRAG knowledge store.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    ingest_parser = subparsers.add_parser("ingest", help="Ingest a PDF file")
    ingest_parser.add_argument("--file", required=True, help="Path to the PDF file")
    ingest_parser.add_argument(
        "--type",
        default=DocType.LECTURE.value,
        choices=[t.value for t in DocType],
        help="Document type (default: lecture)",
    )
    ingest_parser.add_argument("--name", default=None, help="Display name (default: file name)")
    ingest_parser.add_argument("--course", default=None, help="Course ID for scoping")
    ingest_parser.add_argument(
        "--has-answers",
        action="store_true",
        help="The document contains reference answers (exam/assignment)",
    )

    query_parser = subparsers.add_parser("query", help="Print retrieval context for a query")
    query_parser.add_argument("text", help="Query text")
    query_parser.add_argument("--course", default=None, help="Restrict to one course")
    query_parser.add_argument("--count", type=int, default=None, help="Number of chunks")

    subparsers.add_parser("stats", help="List stored documents")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse arguments, build components, dispatch."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    components = _build_components(Settings())

    if args.command == "ingest":
        exit_code = asyncio.run(_handle_ingest(args, components))
    elif args.command == "query":
        exit_code = asyncio.run(_handle_query(args, components))
    elif args.command == "stats":
        exit_code = asyncio.run(_handle_stats(components))
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
