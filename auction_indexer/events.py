"""Registrar and deed events: ABIs, typed records and log decoding."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from hexbytes import HexBytes
from web3 import Web3
from web3._utils.events import get_event_data

from .codec import to_hex
from .entities import BidStatus
from .util import debug


def _event(name: str, *inputs: Tuple[str, str, bool]) -> Dict[str, Any]:
    return {
        "anonymous": False,
        "name": name,
        "type": "event",
        "inputs": [{"name": n, "type": t, "indexed": indexed} for n, t, indexed in inputs],
    }


REGISTRAR_ABI: List[Dict[str, Any]] = [
    _event("AuctionStarted", ("hash", "bytes32", True), ("registrationDate", "uint256", False)),
    _event(
        "NewBid",
        ("hash", "bytes32", True),
        ("bidder", "address", True),
        ("deposit", "uint256", False),
    ),
    _event(
        "BidRevealed",
        ("hash", "bytes32", True),
        ("owner", "address", True),
        ("value", "uint256", False),
        ("status", "uint8", False),
    ),
    _event(
        "HashRegistered",
        ("hash", "bytes32", True),
        ("owner", "address", True),
        ("value", "uint256", False),
        ("registrationDate", "uint256", False),
    ),
    _event("HashReleased", ("hash", "bytes32", True), ("value", "uint256", False)),
    _event(
        "HashInvalidated",
        ("hash", "bytes32", True),
        ("name", "string", True),
        ("value", "uint256", False),
        ("registrationDate", "uint256", False),
    ),
    {
        "constant": True,
        "name": "entries",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "_hash", "type": "bytes32"}],
        "outputs": [
            {"name": "", "type": "uint8"},
            {"name": "", "type": "address"},
            {"name": "", "type": "uint256"},
            {"name": "", "type": "uint256"},
            {"name": "", "type": "uint256"},
        ],
    },
]

DEED_ABI: List[Dict[str, Any]] = [
    _event("OwnerChanged", ("newOwner", "address", False)),
    _event("DeedClosed"),
]


def event_topic(event_abi: Dict[str, Any]) -> str:
    types = ",".join(item["type"] for item in event_abi.get("inputs", []))
    return to_hex(Web3.keccak(text=f"{event_abi['name']}({types})"))


@dataclass
class BlockContext:
    address: str = ""
    block_number: Optional[int] = None
    block_timestamp: Optional[int] = None
    transaction_hash: Optional[str] = None
    log_index: Optional[int] = None

    @property
    def event_id(self) -> Optional[Tuple[str, int]]:
        if self.transaction_hash is None or self.log_index is None:
            return None
        return self.transaction_hash, self.log_index


@dataclass
class AuctionStarted:
    hash: str
    registration_date: int
    context: BlockContext = field(default_factory=BlockContext)


@dataclass
class NewBid:
    hash: str
    bidder: str
    deposit: int
    context: BlockContext = field(default_factory=BlockContext)


@dataclass
class BidRevealed:
    hash: str
    owner: str
    value: int
    status: BidStatus
    context: BlockContext = field(default_factory=BlockContext)


@dataclass
class HashRegistered:
    hash: str
    owner: str
    value: int
    registration_date: int
    context: BlockContext = field(default_factory=BlockContext)


@dataclass
class HashReleased:
    hash: str
    value: int = 0
    context: BlockContext = field(default_factory=BlockContext)


@dataclass
class HashInvalidated:
    hash: str
    name: Optional[str] = None
    value: int = 0
    registration_date: Optional[int] = None
    context: BlockContext = field(default_factory=BlockContext)


@dataclass
class DeedOwnerChanged:
    new_owner: str
    context: BlockContext = field(default_factory=BlockContext)


@dataclass
class DeedClosed:
    context: BlockContext = field(default_factory=BlockContext)


def _addr(value: Any) -> str:
    return str(value).lower()


# event name -> (args, context) -> typed event
EVENT_BUILDERS: Dict[str, Callable[[Dict[str, Any], BlockContext], Any]] = {
    "AuctionStarted": lambda a, ctx: AuctionStarted(to_hex(a["hash"]), int(a["registrationDate"]), ctx),
    "NewBid": lambda a, ctx: NewBid(to_hex(a["hash"]), _addr(a["bidder"]), int(a["deposit"]), ctx),
    "BidRevealed": lambda a, ctx: BidRevealed(
        to_hex(a["hash"]), _addr(a["owner"]), int(a["value"]), BidStatus(a["status"]), ctx
    ),
    "HashRegistered": lambda a, ctx: HashRegistered(
        to_hex(a["hash"]), _addr(a["owner"]), int(a["value"]), int(a["registrationDate"]), ctx
    ),
    "HashReleased": lambda a, ctx: HashReleased(to_hex(a["hash"]), int(a["value"]), ctx),
    "HashInvalidated": lambda a, ctx: HashInvalidated(
        to_hex(a["hash"]), to_hex(a["name"]), int(a["value"]), int(a["registrationDate"]), ctx
    ),
    "OwnerChanged": lambda a, ctx: DeedOwnerChanged(_addr(a["newOwner"]), ctx),
    "DeedClosed": lambda a, ctx: DeedClosed(ctx),
}


class EventDecoder:
    """Turns raw logs into typed events using web3's ABI codec."""

    def __init__(self, abi_codec: Any, registrar_abi: Optional[List[Dict[str, Any]]] = None,
                 deed_abi: Optional[List[Dict[str, Any]]] = None):
        self.abi_codec = abi_codec
        self.registrar_topics = self._topic_map(registrar_abi or REGISTRAR_ABI)
        self.deed_topics = self._topic_map(deed_abi or DEED_ABI)

    @staticmethod
    def _topic_map(abi: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        topic_map: Dict[str, Dict[str, Any]] = {}
        for item in abi:
            if not isinstance(item, dict) or item.get("type") != "event" or item.get("anonymous"):
                continue
            if item.get("name") not in EVENT_BUILDERS:
                continue
            topic_map[event_topic(item)] = item
        return topic_map

    def decode(self, log: Dict[str, Any], registrar_address: str,
               block_timestamp: Optional[int] = None) -> Optional[Any]:
        """Returns None for logs that are not registrar or deed events."""
        topics = log.get("topics") or []
        if not topics:
            return None
        topic0 = to_hex(HexBytes(topics[0]))
        address = _addr(log.get("address"))
        from_registrar = address == registrar_address.lower()
        if from_registrar:
            event_abi = self.registrar_topics.get(topic0)
        else:
            event_abi = self.deed_topics.get(topic0)
        if event_abi is None:
            return None

        try:
            event_data = get_event_data(self.abi_codec, event_abi, log)
        except Exception as exc:
            if from_registrar:
                raise
            # Deed logs are fetched by topic alone; other contracts share these signatures.
            debug(f"Skipping undecodable {event_abi['name']} log from {address}: {exc}")
            return None
        tx_hash = log.get("transactionHash")
        ctx = BlockContext(
            address=address,
            block_number=log.get("blockNumber"),
            block_timestamp=block_timestamp,
            transaction_hash=to_hex(HexBytes(tx_hash)) if tx_hash is not None else None,
            log_index=log.get("logIndex"),
        )
        return EVENT_BUILDERS[event_abi["name"]](dict(event_data["args"]), ctx)

    @property
    def deed_topic_list(self) -> List[str]:
        return sorted(self.deed_topics.keys())
