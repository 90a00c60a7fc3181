"""Replay queued search index writes, or rebuild the whole index."""
import asyncio
import argparse
import logging
import time

from app.database import async_session
from app.reindex_queue import reindex_queue
from app.search import search_index
from app.services import reindex_service


async def run(full: bool, limit: int, batch_size: int) -> None:
    await search_index.connect()
    await reindex_queue.connect()
    start = time.perf_counter()
    try:
        async with async_session() as session:
            if full:
                count = await reindex_service.reindex_all(session, search_index, batch_size=batch_size)
                print(f"Reindexed {count} post(s)")
            else:
                summary = await reindex_service.drain_queue(session, search_index, limit=limit)
                print(
                    f"Applied {summary['applied']}, failed {summary['failed']}, "
                    f"remaining {summary['remaining']}"
                )
    finally:
        await search_index.disconnect()
        await reindex_queue.disconnect()
    print(f"Done in {time.perf_counter() - start:.1f}s")


def main():
    parser = argparse.ArgumentParser(description="Reconcile the post search index with the database")
    parser.add_argument("--all", action="store_true", dest="full", help="Rebuild the index from every post")
    parser.add_argument("--limit", type=int, default=500, help="Max queued entries to replay")
    parser.add_argument("--batch-size", type=int, default=500, help="Posts per batch with --all")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run(args.full, args.limit, args.batch_size))


if __name__ == "__main__":
    main()
