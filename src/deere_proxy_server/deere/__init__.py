"""John Deere Operations Center API access."""

from .client import DEERE_MEDIA_TYPE, DeereClient
from .harvest import HarvestAggregator

__all__ = ["DEERE_MEDIA_TYPE", "DeereClient", "HarvestAggregator"]
