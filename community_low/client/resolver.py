"""Merges a page-observed price with the remote lowest price."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

SOURCE_OFFICIAL = "official"
SOURCE_COMMUNITY = "community"


@dataclass(frozen=True)
class Resolution:
    """Effective lowest price for display and whether to report the observation."""

    effective_lowest: Optional[Decimal]
    should_report: bool
    source: Optional[str] = None


def resolve(
    observed: Optional[Decimal],
    community_low: Optional[Decimal],
    official_low: Optional[Decimal] = None,
) -> Resolution:
    """
    Resolve the effective lowest price.

    The effective lowest is the smaller of the official and community
    values. An observation is report-worthy only if it could improve the
    authoritative record: there is nothing to compare against yet, or it is
    strictly lower than the effective lowest.

    Args:
        observed: Price seen on the page (None if scraping found none)
        community_low: Authoritative community lowest, if any
        official_low: Lowest from an official source, if any

    Returns:
        Resolution
    """
    effective = official_low
    source = SOURCE_OFFICIAL if official_low is not None else None
    if community_low is not None and (effective is None or community_low < effective):
        effective = community_low
        source = SOURCE_COMMUNITY

    if observed is None:
        should_report = False
    elif effective is None:
        should_report = True
    else:
        should_report = observed < effective

    return Resolution(effective_lowest=effective, should_report=should_report, source=source)
