"""Auction registrar indexer.

Usage:
  python -m auction_indexer --config config.json run
  python -m auction_indexer --config config.json backfill --from-block 3605331
  python -m auction_indexer --config config.json name 0x<label hash>
  python -m auction_indexer --config config.json deed 0x<deed address>
  python -m auction_indexer --config config.json account 0x<address>
  python -m auction_indexer --config config.json stats
"""

import argparse
import asyncio
import sys
from typing import Any, Dict, List, Optional

from . import util
from .codec import MalformedHexError, to_hex
from .config import load_config
from .entities import Account, AuctionedName, Deed, entity_to_dict
from .indexer import RegistrarIndexer
from .stats import StatsAggregator
from .store import EntityStore


def _lookup(store: EntityStore, kind: str, key: str) -> Optional[Dict[str, Any]]:
    entity = store.load(kind, key)
    return entity_to_dict(entity) if entity is not None else None


def query(store: EntityStore, command: str, key: Optional[str] = None) -> Any:
    if command == "name":
        return _lookup(store, AuctionedName.kind, to_hex(key))
    if command == "deed":
        return _lookup(store, Deed.kind, key.lower())
    if command == "account":
        account = _lookup(store, Account.kind, key.lower())
        if account is None:
            return None
        account["deeds"] = store.deeds_of(key.lower())
        return account
    if command == "stats":
        stats = entity_to_dict(StatsAggregator(store).load())
        stats["owned_deed_value"] = store.owned_deed_value()
        return stats
    raise ValueError(f"Unknown query {command}")


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Auction registrar event indexer")
    parser.add_argument("--config", default=None, help="Path to config JSON")
    parser.add_argument("--verbose", action="store_true", help="Log skipped events")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Catch up, then follow new blocks")

    backfill_parser = sub.add_parser("backfill", help="Apply a block range")
    backfill_parser.add_argument("--from-block", type=int, required=True)
    backfill_parser.add_argument("--to-block", type=int, default=None)

    for name, arg in (("name", "hash"), ("deed", "address"), ("account", "address")):
        query_parser = sub.add_parser(name, help=f"Show a stored {name}")
        query_parser.add_argument(arg)
    sub.add_parser("stats", help="Show aggregate stats")

    args = parser.parse_args(argv)
    util.VERBOSE = args.verbose
    cfg = load_config(args.config)

    if args.command == "run":
        indexer = RegistrarIndexer(cfg)
        asyncio.run(indexer.start())
        return

    if args.command == "backfill":
        async def _run_backfill() -> None:
            indexer = RegistrarIndexer(cfg)
            to_block = args.to_block if args.to_block is not None else indexer.target_block()
            await indexer.backfill_range(args.from_block, to_block)

        asyncio.run(_run_backfill())
        return

    store = EntityStore(cfg["db_path"])
    try:
        key = getattr(args, "hash", None) or getattr(args, "address", None)
        result = query(store, args.command, key)
    except MalformedHexError as exc:
        util.log_message(f"Invalid {args.command} argument {key}: {exc}")
        sys.exit(1)
    finally:
        store.close()
    if result is None:
        util.log_message(f"{args.command} {key} not found")
        sys.exit(1)
    print(util.json_dumps(result))


if __name__ == "__main__":
    main()
