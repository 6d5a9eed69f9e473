from dataclasses import fields
from typing import Optional

from .entities import STATS_KEY, StatsEntity
from .store import EntityStore

STATS_FIELDS = frozenset(f.name for f in fields(StatsEntity)) - {"id"}


class StatsAggregator:
    """Owns the single StatsEntity row.

    Callers pass signed deltas; nothing here reconciles against deeds.
    """

    def __init__(self, store: EntityStore):
        self.store = store

    def load(self) -> StatsEntity:
        stats: Optional[StatsEntity] = self.store.load(StatsEntity.kind, STATS_KEY)
        if stats is None:
            stats = StatsEntity()
        return stats

    def add(self, field: str, amount: int) -> StatsEntity:
        if field not in STATS_FIELDS:
            raise AttributeError(f"Unknown stats field: {field}")
        stats = self.load()
        setattr(stats, field, getattr(stats, field) + amount)
        self.store.save(stats)
        return stats

    def subtract(self, field: str, amount: int) -> StatsEntity:
        return self.add(field, -amount)

    def increment(self, field: str) -> StatsEntity:
        return self.add(field, 1)

    def decrement(self, field: str) -> StatsEntity:
        return self.add(field, -1)
