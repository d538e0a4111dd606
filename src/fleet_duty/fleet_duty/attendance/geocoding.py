from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional, Protocol

from .model import Location

logger = logging.getLogger(__name__)


class ReverseGeocoder(Protocol):
    def resolve(self, latitude: float, longitude: float) -> Optional[str]:
        raise NotImplementedError


def enrich_location(geocoder: Optional[ReverseGeocoder], location: Optional[Location]) -> Optional[Location]:
    """Fill ``place_name`` when missing; lookup failures leave it empty."""
    if location is None or geocoder is None or location.place_name:
        return location
    try:
        place_name = geocoder.resolve(location.latitude, location.longitude)
    except Exception as e:
        logger.warning("Reverse geocoding failed for (%s, %s): %s", location.latitude, location.longitude, e)
        return location
    return replace(location, place_name=place_name) if place_name else location
