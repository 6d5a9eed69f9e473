"""
Shared fixtures for projector, store and indexer tests.

Everything runs against an in-memory sqlite store and a fake contract
gateway; no node is contacted.
"""

from typing import Dict, List, Optional

import pytest
from web3 import Web3

from auction_indexer.codec import to_hex
from auction_indexer.events import BlockContext
from auction_indexer.projector import AuctionProjector
from auction_indexer.stats import StatsAggregator
from auction_indexer.store import EntityStore

REGISTRAR = "0x6090a6e47849629b7245dfa1ca21d94cd15878ef"
LABEL_FOO = to_hex(Web3.keccak(text="foo"))
LABEL_BAR = to_hex(Web3.keccak(text="bar"))
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
CAROL = "0x" + "c0" * 20
DEED_1 = "0x" + "d1" * 20
DEED_2 = "0x" + "d2" * 20


class FakeGateway:
    """Hands out queued deed addresses per label hash, recording each call."""

    def __init__(self, deeds: Optional[Dict[str, List[str]]] = None):
        self.deeds = {key: list(value) for key, value in (deeds or {}).items()}
        self.calls = []

    def deed_address(self, registrar_address: str, label_hash: str, block_number: Optional[int] = None) -> str:
        self.calls.append((registrar_address, label_hash, block_number))
        return self.deeds[label_hash].pop(0)


def ctx(n: int, address: str = REGISTRAR, timestamp: Optional[int] = None, log_index: int = 0) -> BlockContext:
    """Block context for the n-th event of a test; every n gets its own transaction."""
    return BlockContext(
        address=address,
        block_number=n,
        block_timestamp=timestamp if timestamp is not None else 1_500_000_000 + n,
        transaction_hash="0x" + format(n, "064x"),
        log_index=log_index,
    )


@pytest.fixture
def store():
    store = EntityStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def gateway():
    return FakeGateway({LABEL_FOO: [DEED_1, DEED_2], LABEL_BAR: ["0x" + "e1" * 20]})


@pytest.fixture
def stats(store):
    return StatsAggregator(store)


@pytest.fixture
def projector(store, gateway, stats):
    return AuctionProjector(store, gateway, stats)
