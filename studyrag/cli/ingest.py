"""Operator CLI for studyrag workspaces.

Usage::

    python -m studyrag.cli ingest --workspace ws1 --file notes.pdf

    python -m studyrag.cli search --workspace ws1 --query "who is the author"

    python -m studyrag.cli delete --workspace ws1 --document-id 3f9c... --yes

    python -m studyrag.cli stats --workspace ws1

    python -m studyrag.cli status --document-id 3f9c...

    python -m studyrag.cli status --stuck --workspace ws1

``stats``, ``delete`` and ``status`` only open the vector index or the
status database; ``ingest`` and ``search`` build the full service
container, including an embedding provider connection check.
"""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import sys
from pathlib import Path

from studyrag.config.settings import Settings
from studyrag.main import CoreServices, build_services
from studyrag.models.document import Document, DocumentStatus
from studyrag.providers.status_store.sqlite_status_store import SQLiteDocumentStatusStore
from studyrag.providers.vector_index.chromadb_provider import ChromaDBProvider
from studyrag.services.retrieval.context_builder import build_context_block
from studyrag.services.retrieval.expansion import PRESETS, get_policy
from studyrag.utils.errors import StudyRAGError
from studyrag.utils.logging import configure_logging


def _default_document_id(workspace_id: str, file_path: str) -> str:
    """Stable id per (workspace, file) so re-ingesting a file replaces it."""
    resolved = str(Path(file_path).resolve())
    return hashlib.sha256(f"{workspace_id}:{resolved}".encode()).hexdigest()[:16]


def _build_vector_index(app_settings: Settings) -> ChromaDBProvider:
    return ChromaDBProvider(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_prefix=app_settings.chromadb_collection_prefix,
        host=app_settings.chromadb_host,
        port=app_settings.chromadb_port,
    )


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_ingest(args: argparse.Namespace, services: CoreServices) -> int:
    """Ingest one file and wait for it to reach a terminal status."""
    document = Document(
        document_id=args.document_id or _default_document_id(args.workspace, args.file),
        workspace_id=args.workspace,
        file_path=args.file,
        declared_type=args.type or "",
        file_name=Path(args.file).name,
    )
    print(f"Ingesting {document.file_name} into workspace '{document.workspace_id}'")
    print(f"  Document ID: {document.document_id}")

    result = await services.ingestion.ingest(document)

    print(f"\nIngestion {result.status.value}:")
    print(f"  Outcome:         {result.outcome.value}")
    print(f"  Text length:     {result.text_length}")
    print(f"  Passages stored: {result.passages_stored}")
    print(f"  Batches stored:  {result.batches_stored}")
    print(f"  Deadline:        {result.timeout_seconds:.0f}s")
    print(f"  Time:            {result.ingestion_time:.2f}s")
    if result.status == DocumentStatus.ERROR:
        print(f"  Failed stage:    {result.error_stage.value if result.error_stage else '-'}")
        print(f"  Error:           {result.error_message}")
        return 1
    return 0


async def _handle_search(args: argparse.Namespace, services: CoreServices) -> int:
    """Run a retrieval and print the ranked passages."""
    policy = services.retrieval.policy if args.policy == "chat" else get_policy(args.policy)
    passages = await services.retrieval.retrieve(
        args.query,
        args.workspace,
        limit=args.limit,
        policy=policy,
        document_id=args.document_id,
    )

    if not passages:
        print("No passages found.")
        return 0

    if args.context:
        print(build_context_block(passages))
        return 0

    print(f"Top {len(passages)} passages for: {args.query}")
    print("=" * 60)
    for rank, passage in enumerate(passages, start=1):
        preview = " ".join(passage.text.split())[:160]
        print(f"{rank:>2}. [{passage.score:.3f}] {passage.metadata.get('source', '')} "
              f"#{passage.metadata.get('ordinal', '?')} (via '{passage.matched_query}')")
        print(f"    {preview}")
    return 0


async def _handle_delete(args: argparse.Namespace, app_settings: Settings) -> int:
    """Delete every passage of one document from a workspace."""
    vector_index = _build_vector_index(app_settings)

    if not args.yes:
        confirm = input(
            f"  Delete all passages of document '{args.document_id}' "
            f"in workspace '{args.workspace}'? [y/N] "
        ).strip().lower()
        if confirm not in ("y", "yes"):
            print("  Aborted.")
            return 0

    deleted = await vector_index.delete_by_filter(
        args.workspace, {"document_id": args.document_id}
    )
    print(f"\n  Deleted {deleted} passages.")
    return 0


async def _handle_stats(args: argparse.Namespace, app_settings: Settings) -> int:
    """Display namespace statistics."""
    vector_index = _build_vector_index(app_settings)
    if not vector_index.is_available():
        print("Vector index not available.")
        return 1

    stats = await vector_index.describe_stats(args.workspace)
    print(f"Workspace '{stats.namespace}'")
    print("=" * 40)
    print(f"  Collection:  {vector_index.collection_name(stats.namespace)}")
    print(f"  Passages:    {stats.count}")
    print(f"  Dimension:   {stats.dimension or '-'}")
    return 0


async def _handle_status(args: argparse.Namespace, app_settings: Settings) -> int:
    """Print a document's recorded lifecycle status, or every stuck document."""
    store = SQLiteDocumentStatusStore(app_settings.status_db_path)
    await store.initialize()
    if args.stuck:
        return await _print_stuck(store, args.workspace)

    record = await store.get_status(args.document_id)
    if record is None:
        print(f"Unknown document '{args.document_id}'.")
        return 1

    print(f"Document '{record.document_id}' (workspace '{record.workspace_id}')")
    print(f"  Status:   {record.status.value}")
    if record.error_stage is not None:
        print(f"  Stage:    {record.error_stage.value}")
        print(f"  Error:    {record.error_message}")
    if record.updated_at is not None:
        print(f"  Updated:  {record.updated_at.isoformat()}")
    return 0


async def _print_stuck(store: SQLiteDocumentStatusStore, workspace_id: str | None) -> int:
    # A process that died mid-ingestion leaves its documents in processing.
    records = await store.list_by_status(DocumentStatus.PROCESSING, workspace_id=workspace_id)
    if not records:
        print("No documents in processing.")
        return 0

    print(f"{len(records)} document(s) in processing:")
    for record in records:
        updated = record.updated_at.isoformat() if record.updated_at else "-"
        print(f"  {record.document_id}  (workspace '{record.workspace_id}', since {updated})")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the studyrag CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m studyrag.cli",
        description="Ingest documents into and search studyrag workspaces.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- ingest --
    ingest_parser = subparsers.add_parser("ingest", help="Ingest a PDF, DOCX or TXT file")
    ingest_parser.add_argument("--workspace", required=True, help="Workspace ID (namespace)")
    ingest_parser.add_argument("--file", required=True, help="Path to the document")
    ingest_parser.add_argument(
        "--document-id",
        dest="document_id",
        default=None,
        help="Document ID (default: derived from workspace and file path)",
    )
    ingest_parser.add_argument(
        "--type",
        default=None,
        help="Declared type: pdf, docx, txt or a MIME type (default: file extension)",
    )

    # -- search --
    search_parser = subparsers.add_parser("search", help="Retrieve passages for a query")
    search_parser.add_argument("--workspace", required=True, help="Workspace ID (namespace)")
    search_parser.add_argument("--query", required=True, help="Question or topic")
    search_parser.add_argument("--limit", type=int, default=None, help="Maximum passages")
    search_parser.add_argument(
        "--policy",
        choices=sorted(PRESETS),
        default="chat",
        help="Expansion preset (default: chat)",
    )
    search_parser.add_argument(
        "--document-id", dest="document_id", default=None, help="Search one document only"
    )
    search_parser.add_argument(
        "--context",
        action="store_true",
        help="Print the prompt context block instead of a ranked listing",
    )

    # -- delete --
    delete_parser = subparsers.add_parser("delete", help="Delete a document's passages")
    delete_parser.add_argument("--workspace", required=True, help="Workspace ID (namespace)")
    delete_parser.add_argument("--document-id", dest="document_id", required=True)
    delete_parser.add_argument(
        "--yes", "-y", action="store_true", help="Skip confirmation prompt"
    )

    # -- stats --
    stats_parser = subparsers.add_parser("stats", help="Show workspace index statistics")
    stats_parser.add_argument("--workspace", required=True, help="Workspace ID (namespace)")

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show a document's status")
    status_target = status_parser.add_mutually_exclusive_group(required=True)
    status_target.add_argument("--document-id", dest="document_id")
    status_target.add_argument(
        "--stuck",
        action="store_true",
        help="List documents still in processing, e.g. after a crash",
    )
    status_parser.add_argument(
        "--workspace", default=None, help="Limit --stuck to one workspace"
    )

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    if args.command == "stats":
        return await _handle_stats(args, app_settings)
    if args.command == "delete":
        return await _handle_delete(args, app_settings)
    if args.command == "status":
        return await _handle_status(args, app_settings)

    services = await build_services(app_settings)
    print(f"Embedding: {services.embedding_provider.get_provider_name()} | "
          f"Index: {services.vector_index.get_provider_name()}")
    print()
    if args.command == "ingest":
        return await _handle_ingest(args, services)
    return await _handle_search(args, services)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses the subcommand, loads :class:`Settings` from the environment /
    ``.env`` file, configures logging, and dispatches to the handler.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )

    try:
        exit_code = asyncio.run(_run(args, app_settings))
    except StudyRAGError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
