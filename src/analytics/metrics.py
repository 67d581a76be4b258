"""
Derived Metrics Calculator

Bounce rate and the gate that decides whether a bounce rate may be shown at
all. Bounce tracking started later than pageview tracking on some sites; a
range that reaches back before the first recorded bounce would report a
misleadingly low rate, so such ranges are flagged as insufficient.
"""

from datetime import UTC, datetime
from typing import Optional

from src.analytics.results import DerivedStats, EarliestEvents, ScalarCounts


def bounce_rate(counts: ScalarCounts) -> Optional[float]:
    """
    Bounces per visitor, or ``None`` when there are no visitors.
    
    ``None`` means "no meaningful rate" and is distinct from a true 0.0.
    """
    if counts.visitors > 0:
        return counts.bounces / counts.visitors
    return None


def _as_utc(moment: datetime) -> datetime:
    # The store returns naive UTC timestamps
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def has_sufficient_bounce_data(
    earliest_event: Optional[datetime],
    earliest_bounce: Optional[datetime],
    range_start: datetime,
) -> bool:
    """
    True iff both timestamps exist and bounce tracking covers the range.
    
    Bounce data is sufficient when the first bounce coincides with the first
    event (bounces were recorded from day one) or precedes the range start.
    """
    if earliest_event is None or earliest_bounce is None:
        return False
    
    event = _as_utc(earliest_event)
    bounce = _as_utc(earliest_bounce)
    # TODO: exact equality breaks if the store rounds the two minimums differently; confirm a tolerance with product first
    return event == bounce or bounce < _as_utc(range_start)


def derive_stats(
    counts: ScalarCounts,
    earliest: EarliestEvents,
    range_start: datetime,
) -> DerivedStats:
    """Combine ranged counts with the all-time bounce gate."""
    return DerivedStats(
        views=counts.views,
        visitors=counts.visitors,
        bounce_rate=bounce_rate(counts),
        has_sufficient_bounce_data=has_sufficient_bounce_data(
            earliest.earliest_event,
            earliest.earliest_bounce,
            range_start,
        ),
    )
