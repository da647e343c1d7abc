"""
Command-line ingestion.

Usage:
    warehouse-ingest catalog data/catalog.xlsx
    warehouse-ingest inbound data/inbound.csv
    warehouse-ingest --list
    warehouse-ingest --delete <upload-id>
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

import structlog

from warehouse_analytics.analytics.filters import parse_batch_id
from warehouse_analytics.config import configure_logging, get_settings
from warehouse_analytics.database.connection import close_database, get_session_factory, init_database
from warehouse_analytics.database.models import BatchStatus, SourceKind
from warehouse_analytics.errors import WarehouseAnalyticsError
from warehouse_analytics.ingestion.batch_loader import BatchIngestor
from warehouse_analytics.serving.cache import build_report_cache, close_redis

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="warehouse-ingest",
        description="Load warehouse source files into the analytics database",
    )
    parser.add_argument("kind", nargs="?", choices=[kind.value for kind in SourceKind], help="Source kind")
    parser.add_argument("path", nargs="?", help="CSV or XLSX file to ingest")
    parser.add_argument("--list", action="store_true", help="List upload batches")
    parser.add_argument("--delete", metavar="UPLOAD_ID", help="Delete an upload batch")
    return parser


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    await init_database()
    cache = await build_report_cache(settings)
    ingestor = BatchIngestor(
        get_session_factory(),
        cache=cache,
        chunk_size=settings.ingestion.row_chunk_size,
        catalog_chunk_size=settings.ingestion.catalog_chunk_size,
        max_rows=settings.ingestion.max_rows,
    )

    try:
        if args.list:
            kind = SourceKind(args.kind) if args.kind else None
            for batch in await ingestor.list_batches(kind):
                print(json.dumps(batch.model_dump(mode="json", by_alias=True)))
            return 0

        if args.delete:
            await ingestor.delete_batch(parse_batch_id(args.delete))
            print(json.dumps({"status": "deleted", "uploadId": args.delete}))
            return 0

        result = await ingestor.ingest_file(SourceKind(args.kind), args.path)
        print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
        return 0 if result.status == BatchStatus.PROCESSED else 1
    finally:
        await close_database()
        await close_redis()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.list and not args.delete and not (args.kind and args.path):
        parser.error("kind and path are required unless --list or --delete is given")

    configure_logging()
    try:
        return asyncio.run(run(args))
    except WarehouseAnalyticsError as e:
        logger.error("Command failed", error=str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
