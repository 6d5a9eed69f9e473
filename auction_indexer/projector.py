"""Projects registrar and deed events onto the entity store.

Handlers run one at a time in chain order. `apply` wraps each event in a
single store transaction together with its processed-event ledger row, so an
event either lands completely (entities, stats, ledger) or not at all, and a
replayed event id is rejected before any handler runs.
"""

from typing import Any, Callable, Dict, Optional

from .codec import domain_hash
from .entities import Account, AuctionedName, BidStatus, Deed, NameState
from .events import (
    AuctionStarted,
    BidRevealed,
    DeedClosed,
    DeedOwnerChanged,
    HashInvalidated,
    HashRegistered,
    HashReleased,
    NewBid,
)
from .stats import StatsAggregator
from .store import EntityStore
from .util import debug, log_message


class ProjectionError(RuntimeError):
    pass


class MissingEntityError(ProjectionError):
    def __init__(self, kind: str, key: Optional[str], event_name: str):
        super().__init__(f"{event_name}: {kind} {key!r} not found")
        self.kind = kind
        self.key = key
        self.event_name = event_name


class AuctionProjector:
    def __init__(self, store: EntityStore, gateway: Any, stats: Optional[StatsAggregator] = None):
        self.store = store
        self.gateway = gateway
        self.stats = stats or StatsAggregator(store)
        self._handlers: Dict[type, Callable[[Any], None]] = {
            AuctionStarted: self.on_auction_started,
            NewBid: self.on_new_bid,
            BidRevealed: self.on_bid_revealed,
            HashRegistered: self.on_hash_registered,
            HashReleased: self.on_hash_released,
            HashInvalidated: self.on_hash_invalidated,
            DeedOwnerChanged: self.on_deed_transferred,
            DeedClosed: self.on_deed_closed,
        }

    def apply(self, event: Any) -> bool:
        """Apply one event atomically. Returns False if its id was already applied."""
        handler = self._handlers.get(type(event))
        if handler is None:
            raise ProjectionError(f"No handler for {type(event).__name__}")
        event_name = type(event).__name__
        event_id = event.context.event_id
        try:
            with self.store.transaction():
                if event_id is not None and not self.store.mark_processed(
                    event_id, event.context.block_number, event_name
                ):
                    log_message(f"WARN: {event_name} {event_id[0]}:{event_id[1]} already applied, skipping")
                    return False
                handler(event)
        except ProjectionError as exc:
            log_message(f"ERROR: {event_name} at block {event.context.block_number} "
                        f"(tx {event.context.transaction_hash}, log {event.context.log_index}): {exc}")
            raise
        return True

    def _load_name(self, key: str, event_name: str) -> AuctionedName:
        name = self.store.load(AuctionedName.kind, key)
        if name is None:
            raise MissingEntityError(AuctionedName.kind, key, event_name)
        return name

    def on_auction_started(self, event: AuctionStarted) -> None:
        name = AuctionedName(
            id=event.hash,
            state=NameState.AUCTION,
            registration_date=event.registration_date,
            bid_count=0,
        )
        self.store.save(name)
        self.stats.increment("num_auctioned")

    def on_new_bid(self, event: NewBid) -> None:
        # Sealed bids carry no label hash; nothing to project until reveal.
        debug(f"NewBid from {event.bidder} ignored")

    def on_bid_revealed(self, event: BidRevealed) -> None:
        status = BidStatus(event.status)
        if status is BidStatus.CANCELLED:
            return

        name = self._load_name(event.hash, "BidRevealed")
        if status in (BidStatus.INVALID, BidStatus.LATE):
            pass
        elif status is BidStatus.LOW:
            name.bid_count += 1
        elif status is BidStatus.RUNNER_UP:
            name.second_bid = event.value
            name.bid_count += 1
        elif status is BidStatus.WINNING:
            self.store.save(Account(id=event.owner))

            deed_address = self.gateway.deed_address(
                event.context.address, event.hash, event.context.block_number
            )
            if name.deed is not None:
                old_deed = self.store.load(Deed.kind, name.deed)
                if old_deed is None:
                    raise MissingEntityError(Deed.kind, name.deed, "BidRevealed")
                name.second_bid = old_deed.value

            self.store.save(Deed(id=deed_address, value=event.value, owner=event.owner))
            name.deed = deed_address
            name.bid_count += 1

            self.stats.increment("num_of_deeds")
            self.stats.add("accum_value", event.value)
            self.stats.add("current_value", event.value)
        self.store.save(name)

    def on_hash_registered(self, event: HashRegistered) -> None:
        name = self._load_name(event.hash, "HashRegistered")
        name.registration_date = event.registration_date
        name.domain = domain_hash(event.hash)
        name.state = NameState.FINALIZED
        self.store.save(name)

        deed = self.store.load(Deed.kind, name.deed) if name.deed is not None else None
        if deed is None:
            raise MissingEntityError(Deed.kind, name.deed, "HashRegistered")
        diff = deed.value - event.value
        deed.value = event.value
        self.store.save(deed)

        self.stats.increment("num_finalised")
        self.stats.subtract("current_value", diff)

    def on_hash_released(self, event: HashReleased) -> None:
        # Starts from a fresh record: bid_count, deed and second_bid are dropped.
        name = AuctionedName(
            id=event.hash,
            state=NameState.RELEASED,
            release_date=event.context.block_timestamp,
        )
        self.store.save(name)
        self.stats.increment("num_released")

    def on_hash_invalidated(self, event: HashInvalidated) -> None:
        name = AuctionedName(id=event.hash, state=NameState.FORBIDDEN)
        self.store.save(name)
        self.stats.increment("num_forbidden")

    def on_deed_transferred(self, event: DeedOwnerChanged) -> None:
        deed = self.store.load(Deed.kind, event.context.address)
        if deed is None:
            debug(f"OwnerChanged on unknown deed {event.context.address}")
            return
        deed.owner = event.new_owner
        self.store.save(deed)
        self.stats.increment("num_transferred")

    def on_deed_closed(self, event: DeedClosed) -> None:
        deed = self.store.load(Deed.kind, event.context.address)
        if deed is None:
            debug(f"DeedClosed on unknown deed {event.context.address}")
            return
        self.stats.decrement("num_of_deeds")
        self.stats.subtract("current_value", deed.value)
        self.stats.increment("num_closed")
        deed.owner = None
        deed.value = 0
        self.store.save(deed)
