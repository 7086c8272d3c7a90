"""
Normalize the location shapes clients send into one IssueLocation.

Accepted inputs:
- {"coordinates": [lng, lat], "address": ..., "city": ...}
- the same object JSON-encoded as a string (multipart form clients)
- {"lat"/"latitude": ..., "lng"/"lon"/"longitude": ...} instead of coordinates
- legacy top-level latitude/longitude fields next to an address string

Anything without usable coordinates is rejected with ValidationFailure.
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from civic_pulse.core.errors import ValidationFailure
from civic_pulse.models.issue import IssueLocation
from civic_pulse.utils.geo import is_valid_coordinates

logger = logging.getLogger(__name__)

LATITUDE_KEYS = ("latitude", "lat")
LONGITUDE_KEYS = ("longitude", "lng", "lon")
ADDRESS_FIELDS = ("address", "city", "state", "pincode")


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _first_present(data: Mapping, keys) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _coordinates_from(data: Mapping) -> Optional[list]:
    raw = data.get("coordinates")
    if raw is not None:
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                raw = raw.split(",")
        if isinstance(raw, (list, tuple)) and len(raw) == 2:
            return [_to_float(raw[0]), _to_float(raw[1])]
        return None

    lat = _to_float(_first_present(data, LATITUDE_KEYS))
    lng = _to_float(_first_present(data, LONGITUDE_KEYS))
    if lat is None or lng is None:
        return None
    return [lng, lat]


def parse_location(raw: Any, extra_fields: Optional[Mapping] = None) -> IssueLocation:
    """
    Parse a raw location payload into an IssueLocation.

    Args:
        raw: location value from the request body (object, JSON string or plain address)
        extra_fields: other top-level body fields, searched for legacy latitude/longitude

    Raises:
        ValidationFailure: if the payload is malformed or coordinates are missing/invalid
    """
    extra_fields = extra_fields or {}
    data: Dict[str, Any] = {}

    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("{"):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                logger.info(f"Location parse error. Raw value: {text[:200]}")
                raise ValidationFailure("Invalid location format")
            if not isinstance(decoded, dict):
                raise ValidationFailure("Invalid location format")
            data = decoded
        elif text:
            # Plain address string; coordinates must come from sibling fields
            data = {"address": text}
    elif isinstance(raw, Mapping):
        data = dict(raw)
    elif raw is not None:
        raise ValidationFailure("Invalid location format")

    coordinates = _coordinates_from(data)
    if coordinates is None:
        coordinates = _coordinates_from(extra_fields)

    if coordinates is None or not is_valid_coordinates(coordinates):
        raise ValidationFailure("Location coordinates required")

    fields = {key: data.get(key) for key in ADDRESS_FIELDS if data.get(key) is not None}
    for key in ("city", "state", "pincode"):
        if key in fields:
            fields[key] = str(fields[key])
    if not fields.get("address"):
        logger.info("Location has no address; storing coordinates only")

    try:
        return IssueLocation(coordinates=coordinates, **fields)
    except ValidationError as e:
        raise ValidationFailure(f"Invalid location: {e.errors()[0].get('msg')}")
