"""Projects the .eth auction registrar's events into a sqlite entity store."""

from .projector import AuctionProjector, MissingEntityError, ProjectionError
from .stats import StatsAggregator
from .store import EntityStore

__version__ = "0.1.0"
