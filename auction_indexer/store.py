"""sqlite3 entity store.

One table per entity kind, keyed by `id`. Wei amounts overflow sqlite's
64-bit INTEGER so they are kept as decimal TEXT and converted on load.
"""

import sqlite3
from contextlib import contextmanager
from dataclasses import fields
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .entities import ENTITY_TYPES, AuctionedName, NameState

BIG_INT_FIELDS = {"value", "second_bid", "accum_value", "current_value"}

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS account (
        id TEXT PRIMARY KEY
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS auctioned_name (
        id TEXT PRIMARY KEY,
        state TEXT NOT NULL,
        registration_date INTEGER,
        bid_count INTEGER NOT NULL DEFAULT 0,
        domain TEXT,
        release_date INTEGER,
        deed TEXT,
        second_bid TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS deed (
        id TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        owner TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stats (
        id TEXT PRIMARY KEY,
        num_of_deeds INTEGER NOT NULL,
        num_auctioned INTEGER NOT NULL,
        num_finalised INTEGER NOT NULL,
        num_released INTEGER NOT NULL,
        num_transferred INTEGER NOT NULL,
        num_closed INTEGER NOT NULL,
        num_forbidden INTEGER NOT NULL,
        accum_value TEXT NOT NULL,
        current_value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS processed_events (
        transaction_hash TEXT NOT NULL,
        log_index INTEGER NOT NULL,
        block_number INTEGER,
        event_name TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (transaction_hash, log_index)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_state (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        last_processed_block INTEGER NOT NULL,
        last_processed_timestamp INTEGER,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_deed_owner ON deed(owner)",
    "CREATE INDEX IF NOT EXISTS idx_processed_block ON processed_events(block_number)",
]


class EntityStore:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        # Autocommit mode; transaction() issues BEGIN/COMMIT itself.
        self.conn = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._depth = 0
        self.init_db()

    def init_db(self) -> None:
        cur = self.conn.cursor()
        for statement in SCHEMA:
            cur.execute(statement)

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit everything written inside the block at once, or nothing.

        Nested calls join the outermost transaction.
        """
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        self.conn.execute("BEGIN")
        self._depth = 1
        try:
            yield
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        else:
            self.conn.execute("COMMIT")
        finally:
            self._depth = 0

    def load(self, kind: str, key: str) -> Optional[Any]:
        entity_cls = ENTITY_TYPES[kind]
        row = self.conn.execute(f"SELECT * FROM {kind} WHERE id = ?", (key,)).fetchone()
        if row is None:
            return None
        values = {}
        for field in fields(entity_cls):
            raw = row[field.name]
            if raw is not None and field.name in BIG_INT_FIELDS:
                raw = int(raw)
            values[field.name] = raw
        if entity_cls is AuctionedName:
            values["state"] = NameState(values["state"])
        return entity_cls(**values)

    def save(self, entity: Any) -> None:
        names, params = self._columns(entity)
        placeholders = ", ".join("?" for _ in names)
        self.conn.execute(
            f"INSERT OR REPLACE INTO {entity.kind} ({', '.join(names)}) VALUES ({placeholders})",
            params,
        )

    @staticmethod
    def _columns(entity: Any) -> Tuple[List[str], List[Any]]:
        names = []
        params = []
        for field in fields(entity):
            value = getattr(entity, field.name)
            if value is not None and field.name in BIG_INT_FIELDS:
                value = str(value)
            elif isinstance(value, NameState):
                value = value.value
            names.append(field.name)
            params.append(value)
        return names, params

    def mark_processed(self, event_id: Tuple[str, int], block_number: Optional[int], event_name: str) -> bool:
        """Record an applied event; False if it was already recorded."""
        tx_hash, log_index = event_id
        cur = self.conn.execute(
            """
            INSERT OR IGNORE INTO processed_events (transaction_hash, log_index, block_number, event_name)
            VALUES (?, ?, ?, ?)
            """,
            (tx_hash, log_index, block_number, event_name),
        )
        return cur.rowcount == 1

    def is_processed(self, event_id: Tuple[str, int]) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM processed_events WHERE transaction_hash = ? AND log_index = ?",
            event_id,
        ).fetchone()
        return row is not None

    def get_sync_state(self) -> Tuple[Optional[int], Optional[int]]:
        row = self.conn.execute(
            "SELECT last_processed_block, last_processed_timestamp FROM sync_state WHERE id = 1"
        ).fetchone()
        if row is None:
            return None, None
        return int(row["last_processed_block"]), row["last_processed_timestamp"]

    def update_sync_state(self, block_number: int, block_timestamp: Optional[int]) -> None:
        self.conn.execute(
            """
            INSERT INTO sync_state (id, last_processed_block, last_processed_timestamp)
            VALUES (1, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                last_processed_block = excluded.last_processed_block,
                last_processed_timestamp = excluded.last_processed_timestamp,
                updated_at = CURRENT_TIMESTAMP
            """,
            (block_number, block_timestamp),
        )

    def owned_deed_value(self) -> int:
        """Sum of deed values whose owner is set; what stats.current_value should equal."""
        rows = self.conn.execute("SELECT value FROM deed WHERE owner IS NOT NULL").fetchall()
        return sum(int(row["value"]) for row in rows)

    def deeds_of(self, owner: str) -> List[Dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT id, value, owner FROM deed WHERE owner = ? ORDER BY id", (owner,)
        ).fetchall()
        return [{"id": row["id"], "value": int(row["value"]), "owner": row["owner"]} for row in rows]
