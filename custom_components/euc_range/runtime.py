"""EUC Range runtime data structures."""

from __future__ import annotations

from dataclasses import dataclass

from .config import RangeConfig
from .coordinator import RangeCoordinator
from .storage import RangeStorage


@dataclass
class EucRangeRuntimeData:
    """Runtime data for an EUC Range integration entry."""

    coordinator: RangeCoordinator
    storage: RangeStorage
    config: RangeConfig
