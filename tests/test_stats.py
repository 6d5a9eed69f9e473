import pytest

from auction_indexer.entities import STATS_KEY, StatsEntity


def test_load_initialises_zeroed_record_without_saving(stats, store):
    record = stats.load()
    assert record == StatsEntity()
    assert store.load(StatsEntity.kind, STATS_KEY) is None


def test_updates_persist_after_each_call(stats, store):
    stats.increment("num_auctioned")
    stats.increment("num_auctioned")
    stats.add("accum_value", 50)
    stats.subtract("current_value", 20)
    stats.decrement("num_of_deeds")

    persisted = store.load(StatsEntity.kind, STATS_KEY)
    assert persisted.num_auctioned == 2
    assert persisted.accum_value == 50
    # no cross-checks: callers own the sign of each delta
    assert persisted.current_value == -20
    assert persisted.num_of_deeds == -1


def test_unknown_field_rejected(stats):
    with pytest.raises(AttributeError):
        stats.increment("num_bogus")
    with pytest.raises(AttributeError):
        stats.add("id", 1)
