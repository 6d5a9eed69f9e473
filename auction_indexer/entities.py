from dataclasses import asdict, dataclass
from enum import Enum, IntEnum
from typing import Any, Dict, Optional

STATS_KEY = ""


class NameState(str, Enum):
    AUCTION = "AUCTION"
    FINALIZED = "FINALIZED"
    RELEASED = "RELEASED"
    FORBIDDEN = "FORBIDDEN"


class BidStatus(IntEnum):
    """Outcome code carried by BidRevealed."""

    INVALID = 0
    LATE = 1
    WINNING = 2
    RUNNER_UP = 3
    LOW = 4
    # The hash field of a cancelled bid is the sealed bid, not a label hash.
    CANCELLED = 5


@dataclass
class Account:
    id: str

    kind = "account"


@dataclass
class AuctionedName:
    id: str
    state: NameState = NameState.AUCTION
    registration_date: Optional[int] = None
    bid_count: int = 0
    domain: Optional[str] = None
    release_date: Optional[int] = None
    deed: Optional[str] = None
    second_bid: Optional[int] = None

    kind = "auctioned_name"


@dataclass
class Deed:
    id: str
    value: int = 0
    owner: Optional[str] = None

    kind = "deed"


@dataclass
class StatsEntity:
    id: str = STATS_KEY
    num_of_deeds: int = 0
    num_auctioned: int = 0
    num_finalised: int = 0
    num_released: int = 0
    num_transferred: int = 0
    num_closed: int = 0
    num_forbidden: int = 0
    accum_value: int = 0
    current_value: int = 0

    kind = "stats"


ENTITY_TYPES = {cls.kind: cls for cls in (Account, AuctionedName, Deed, StatsEntity)}


def entity_to_dict(entity: Any) -> Dict[str, Any]:
    out = asdict(entity)
    if isinstance(entity, AuctionedName):
        out["state"] = entity.state.value
    return out
