"""
Turn raw listing query-string values into an IssueQuery.

Malformed paging values fall back to defaults instead of failing the
request. A malformed proximity filter is rejected.
"""

import logging
import math
from typing import Optional

from civic_pulse.core.errors import ValidationFailure
from civic_pulse.core.settings import settings
from civic_pulse.services.storage.base import GeoFilter, IssueQuery
from civic_pulse.utils.timeutils import parse_timestamp

logger = logging.getLogger(__name__)


def parse_positive_int(value, default: int) -> int:
    """int(value) when it is a whole number >= 1, otherwise default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 1 else default


def parse_page(value) -> int:
    return parse_positive_int(value, 1)


def parse_limit(value) -> int:
    return min(parse_positive_int(value, settings.DEFAULT_PAGE_SIZE), settings.MAX_PAGE_SIZE)


def parse_radius(value) -> float:
    try:
        radius = float(str(value).strip())
    except (TypeError, ValueError):
        return float(settings.DEFAULT_SEARCH_RADIUS_METERS)
    if not math.isfinite(radius) or radius <= 0:
        return float(settings.DEFAULT_SEARCH_RADIUS_METERS)
    return radius


def parse_location_filter(value: Optional[str]) -> Optional[GeoFilter]:
    """
    Parse "lng,lat[,radius]" into a GeoFilter.

    Missing or invalid radius defaults to DEFAULT_SEARCH_RADIUS_METERS.
    Raises ValidationFailure when longitude/latitude are unusable.
    """
    if value is None or not str(value).strip():
        return None

    parts = [part.strip() for part in str(value).split(",")]
    if len(parts) < 2:
        raise ValidationFailure("Location filter must be 'lng,lat[,radius]'")

    try:
        longitude = float(parts[0])
        latitude = float(parts[1])
    except ValueError:
        raise ValidationFailure("Location filter must be 'lng,lat[,radius]'")

    if not (math.isfinite(longitude) and math.isfinite(latitude)):
        raise ValidationFailure("Location filter coordinates must be finite numbers")
    if not (-180 <= longitude <= 180 and -90 <= latitude <= 90):
        raise ValidationFailure("Location filter coordinates out of range")

    radius = parse_radius(parts[2]) if len(parts) > 2 else float(settings.DEFAULT_SEARCH_RADIUS_METERS)
    return GeoFilter(longitude=longitude, latitude=latitude, radius_meters=radius)


def _parse_date(value: Optional[str], name: str):
    if value is None or not str(value).strip():
        return None
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValidationFailure(f"Invalid {name}: expected an ISO-8601 date")
    return parsed


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def build_issue_query(
    page=None,
    limit=None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    official: Optional[str] = None,
    department: Optional[str] = None,
    reported_by: Optional[str] = None,
    search: Optional[str] = None,
    location: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    include_duplicates: bool = False,
) -> IssueQuery:
    query = IssueQuery(
        status=_clean(status),
        category=_clean(category),
        priority=_clean(priority),
        official=_clean(official),
        department=_clean(department),
        reported_by=_clean(reported_by),
        search=_clean(search),
        date_from=_parse_date(date_from, "date_from"),
        date_to=_parse_date(date_to, "date_to"),
        near=parse_location_filter(location),
        include_duplicates=include_duplicates,
        sort_by=_clean(sort_by) or "created_at",
        sort_order="asc" if (_clean(sort_order) or "").lower() == "asc" else "desc",
        page=parse_page(page),
        limit=parse_limit(limit),
    )
    logger.debug(f"Parsed issue query: {query}")
    return query
