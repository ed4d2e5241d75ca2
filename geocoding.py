"""
geocoding.py
Turns map clicks and typed addresses into reference points
"""

import logging
from typing import Optional

from geopy.exc import GeopyError
from geopy.geocoders import GoogleV3

from models import LookupResult, ReferencePoint

logger = logging.getLogger(__name__)


class GeocodingService:
    """Thin wrapper over a geopy geocoder"""

    def __init__(self, api_key: Optional[str] = None, geocoder=None,
                 language: str = 'ja', timeout: int = 10):
        if geocoder is None and api_key:
            geocoder = GoogleV3(api_key=api_key, timeout=timeout)
        self.geocoder = geocoder
        self.language = language

    @property
    def available(self) -> bool:
        return self.geocoder is not None

    def reverse(self, lat: float, lng: float) -> LookupResult[ReferencePoint]:
        """Reference point for a map click, with the nearest street address"""
        if not self.available:
            # The click itself is still usable without an address
            return LookupResult.success(ReferencePoint(lat=lat, lng=lng))

        try:
            location = self.geocoder.reverse((lat, lng), exactly_one=True, language=self.language)
        except GeopyError as e:
            logger.error(f"Reverse geocoding failed for {lat},{lng}: {e}")
            return LookupResult.failure(str(e))

        address = location.address if location else None
        return LookupResult.success(ReferencePoint(lat=lat, lng=lng, address=address))

    def geocode(self, query: str) -> LookupResult[ReferencePoint]:
        if not self.available:
            return LookupResult.failure("geocoding is not configured")

        try:
            location = self.geocoder.geocode(query, exactly_one=True, language=self.language)
        except GeopyError as e:
            logger.error(f"Geocoding failed for '{query}': {e}")
            return LookupResult.failure(str(e))

        if location is None:
            return LookupResult.failure(f"no location found for '{query}'")

        return LookupResult.success(ReferencePoint(
            lat=location.latitude, lng=location.longitude,
            address=location.address, name=query, source='place_search'
        ))
