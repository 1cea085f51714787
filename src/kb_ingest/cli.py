"""Command-line entry point.

Examples
--------
    kb-ingest ingest --folder-id handbook docs/*.md manual.pdf
    kb-ingest reindex 3f2c9e...
    kb-ingest stats
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from collections.abc import Sequence
from pathlib import Path

from kb_ingest.config import Settings, settings as default_settings
from kb_ingest.exceptions import KnowledgeBaseError
from kb_ingest.ingestion.embedder import Embedder, get_embedder
from kb_ingest.ingestion.pipeline import IngestionPipeline
from kb_ingest.ingestion.reindexer import Reindexer
from kb_ingest.models import RawFile
from kb_ingest.store.base import DocumentStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kb-ingest", description="Knowledge-base ingestion")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Ingest local files into a folder")
    ingest.add_argument("--folder-id", required=True, help="Target folder identifier")
    ingest.add_argument("paths", nargs="+", type=Path, help="Files to ingest")

    reindex = sub.add_parser("reindex", help="Rebuild chunks and embeddings of a document")
    reindex.add_argument("document_id")

    sub.add_parser("stats", help="Print knowledge-base statistics")
    return parser


def read_raw_file(path: Path) -> RawFile:
    data = path.read_bytes()
    content_type, _ = mimetypes.guess_type(path.name)
    return RawFile(name=path.name, data=data, size=len(data), content_type=content_type)


def build_store(config: Settings) -> DocumentStore:
    from kb_ingest.store.sql import SQLDocumentStore

    return SQLDocumentStore.from_url(config.database_url, echo=config.database_echo)


async def run(
    args: argparse.Namespace,
    store: DocumentStore,
    embedder: Embedder | None = None,
    config: Settings | None = None,
) -> int:
    """Execute the parsed command; return the process exit code."""
    config = config or default_settings
    await store.initialize()
    try:
        if args.command == "stats":
            print((await store.get_stats()).model_dump_json(indent=2))
            return 0

        embedder = embedder or get_embedder(config)
        if args.command == "ingest":
            files = [read_raw_file(p) for p in args.paths]
            pipeline = IngestionPipeline(store, embedder, config=config)
            result = await pipeline.ingest(files, args.folder_id)
            print(result.model_dump_json(indent=2, exclude={"succeeded": {"__all__": {"embedding", "content"}}}))
            return 1 if result.failed_count else 0

        document = await Reindexer(store, embedder, config=config).reindex(args.document_id)
        print(document.model_dump_json(indent=2, exclude={"embedding", "content"}))
        return 0
    finally:
        await store.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=default_settings.log_level)
    try:
        return asyncio.run(run(args, build_store(default_settings)))
    except (KnowledgeBaseError, OSError) as exc:
        logger.error("%s", exc)
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
