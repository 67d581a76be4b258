"""
Result value objects returned by the query engine.

All are request-scoped and immutable. ``to_dict`` produces the JSON shape
served by the API.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ScalarCounts:
    """Raw counts for a site, range and filter set."""
    views: int = 0
    visitors: int = 0
    bounces: int = 0
    
    def to_dict(self) -> Dict[str, int]:
        return {"views": self.views, "visitors": self.visitors, "bounces": self.bounces}


@dataclass(frozen=True)
class EarliestEvents:
    """All-time earliest timestamps for a site (UTC, ``None`` when absent)."""
    earliest_event: Optional[datetime] = None
    earliest_bounce: Optional[datetime] = None


@dataclass(frozen=True)
class DerivedStats:
    """Stats endpoint payload."""
    views: int
    visitors: int
    bounce_rate: Optional[float]
    has_sufficient_bounce_data: bool
    
    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "views": self.views,
            "visitors": self.visitors,
            "hasSufficientBounceData": self.has_sufficient_bounce_data,
        }
        # An absent rate is omitted rather than reported as zero
        if self.bounce_rate is not None:
            data["bounceRate"] = self.bounce_rate
        return data


@dataclass(frozen=True)
class TimeSeriesPoint:
    """One bucket of a time series."""
    bucket_start: datetime
    label: str
    views: int = 0
    visitors: int = 0
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucket": self.label,
            "bucketStart": self.bucket_start.isoformat(),
            "views": self.views,
            "visitors": self.visitors,
        }


@dataclass(frozen=True)
class BreakdownRow:
    """One row of a top-N breakdown. ``label`` is ``None`` for unknown values."""
    label: Optional[str]
    count: int
    
    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "count": self.count}
