"""
Result Shaper

Normalizes raw grouped rows into canonical breakdown rows and materializes
gap-free time series.

Breakdown order is count descending, then label ascending by code point
(not locale-aware). Unknown labels compare as the empty string, so they sort
ahead of real labels with the same count, matching the store's ordering of
``''``. The sort is stable so repeated calls at different offsets page
through one consistent ordering.
"""

from typing import Any, Iterable, List, Mapping, Optional, Tuple

from src.analytics.results import BreakdownRow, TimeSeriesPoint
from src.analytics.time_range import TimeRange

# Sentinel for empty/missing labels; serialized as JSON null so it can never
# collide with a real value.
UNKNOWN_LABEL = None


def normalize_label(value: Any) -> Optional[str]:
    """Map ``None`` and ``""`` to UNKNOWN_LABEL, everything else to ``str``."""
    if value is None:
        return UNKNOWN_LABEL
    text = value if isinstance(value, str) else str(value)
    return text if text != "" else UNKNOWN_LABEL


def breakdown_sort_key(row: BreakdownRow) -> Tuple[int, str]:
    return (-row.count, row.label if row.label is not None else "")


def shape_breakdown(rows: Iterable[Tuple[Any, Any]]) -> List[BreakdownRow]:
    """
    Convert raw ``(label, count)`` rows into ordered BreakdownRows.
    
    Counts are coerced to ``int`` (stores return sums as floats or decimals).
    """
    shaped = [
        BreakdownRow(label=normalize_label(label), count=int(count or 0))
        for label, count in rows
    ]
    shaped.sort(key=breakdown_sort_key)
    return shaped


def fill_time_series(
    time_range: TimeRange,
    counts_by_bucket: Mapping[int, Tuple[Any, Any]],
) -> List[TimeSeriesPoint]:
    """
    Produce one point per bucket of ``time_range``.
    
    Args:
        time_range: Range whose buckets define the series
        counts_by_bucket: ``bucket index -> (views, visitors)``; missing
            indexes become zero points
    """
    points = []
    for index, bucket_start in enumerate(time_range.bucket_starts()):
        views, visitors = counts_by_bucket.get(index, (0, 0))
        points.append(
            TimeSeriesPoint(
                bucket_start=bucket_start,
                label=time_range.bucket_label(bucket_start),
                views=int(views or 0),
                visitors=int(visitors or 0),
            )
        )
    return points
