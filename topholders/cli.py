#!/usr/bin/env python3
"""
Top holders sync CLI

    top-holders sync <pool_id> [--full] [--from-block N] [--to-block N]
    top-holders sync-all
    top-holders show <pool_id>
"""

import argparse
import asyncio
import json
import logging
import sys

from web3 import Web3

from .config import load_config
from .errors import TopHoldersError
from .sync import TopHoldersSync


def print_snapshot(snapshot, limit=10):
    meta = snapshot.metadata
    print("\n=== Top Holders Summary ===")
    print(f"Pool: {meta.pool_id} ({meta.chain_id})")
    print(f"Token: {Web3.to_checksum_address(snapshot.token_address)}")
    print(f"Blocks: {meta.from_block:,} to {meta.to_block:,}")
    print(f"Transfers Processed: {meta.transfers_processed:,} ({meta.pages_fetched} pages)")
    if not meta.complete:
        print("WARNING: pagination stopped early, data may be incomplete")
    if snapshot.total_supply is not None:
        print(f"Total Supply: {snapshot.total_supply:,}")
    print(f"Processing Time: {meta.processing_time_ms:,}ms")

    print(f"\nTop {min(limit, len(snapshot.holders))} Holders:")
    for i, holder in enumerate(snapshot.holders[:limit]):
        print(f"  {i+1}. {Web3.to_checksum_address(holder.address)}: {holder.balance:,} ({holder.percentage_of_supply}%)")


def build_parser():
    parser = argparse.ArgumentParser(prog="top-holders", description="Rebuild top token holders from Transfer events")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="sync one pool")
    sync.add_argument("pool_id")
    sync.add_argument("--full", action="store_true", help="ignore the stored snapshot and rebuild")
    sync.add_argument("--from-block", type=int)
    sync.add_argument("--to-block", type=int)

    sub.add_parser("sync-all", help="sync every pool in the registry")

    show = sub.add_parser("show", help="print the stored snapshot for a pool")
    show.add_argument("pool_id")
    show.add_argument("--json", action="store_true", help="dump raw snapshot JSON")
    return parser


async def run(args, config):
    async with TopHoldersSync(config) as service:
        if args.command == "sync":
            snapshot = await service.sync_top_holders(
                args.pool_id, full=args.full, from_block=args.from_block, to_block=args.to_block)
            print_snapshot(snapshot)
            return 0

        if args.command == "sync-all":
            summary = await service.sync_all_pools()
            print(f"\nSynced: {len(summary['synced'])}  Failed: {len(summary['failed'])}  "
                  f"Skipped: {len(summary['skipped'])}")
            for pool_id, error in summary["failed"].items():
                print(f"  {pool_id}: {error}")
            return 1 if summary["failed"] else 0

        pool = service.resolve_pool(args.pool_id)
        snapshot = service.store.load(pool.chain, pool.id)
        if snapshot is None:
            print(f"No snapshot stored for pool {pool.id}")
            return 1
        if args.json:
            data = snapshot.to_dict()
            data.pop("ledger", None)
            print(json.dumps(data, indent=2))
        else:
            print_snapshot(snapshot, limit=len(snapshot.holders))
        return 0


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = load_config()
    try:
        return asyncio.run(run(args, config))
    except TopHoldersError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
