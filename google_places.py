"""
google_places.py
Google Places API integration for venue lookup and place search
"""

import requests
import logging
import time
from typing import Callable, Dict, List, Optional
from urllib.parse import quote
from fuzzywuzzy import fuzz

from models import Coordinate, LookupResult, PlaceInfo, QuotaUsage, ReferencePoint
from quota import PlacesQuotaCounter

logger = logging.getLogger(__name__)

DETAIL_FIELDS = ['name', 'website', 'url', 'international_phone_number', 'place_id']
NEARBY_RADIUS_METERS = 50
ESTIMATED_COST_PER_LOOKUP = 0.02  # USD


def google_maps_url(address: Optional[str], coordinate: Coordinate) -> str:
    """Free Google Maps link for a location"""
    label = quote(address or '選択した場所')
    lat, lng = coordinate.lat, coordinate.lng
    return (f"https://www.google.com/maps/place/{label}/@{lat},{lng},17z"
            f"/data=!3m1!4b1!4m5!3m4!1s0x0:0x0!8m2!3d{lat}!4d{lng}")


class GooglePlacesService:
    """Handles Google Places API integration"""

    def __init__(self, api_key: str, session: Optional[requests.Session] = None,
                 min_interval: float = 0.1):
        self.api_key = api_key
        self.base_url = "https://maps.googleapis.com/maps/api/place"
        self.session = session or requests.Session()
        self.min_interval = min_interval
        self.request_count = 0
        self.last_request_time = 0

    def _request(self, endpoint: str, params: Dict) -> LookupResult[Dict]:
        """Call a Places endpoint and check the API status"""
        if not self.api_key:
            logger.warning("No Google Places API key provided")
            return LookupResult.failure("Google Places API key is not configured")

        self._handle_rate_limiting()
        params = dict(params, key=self.api_key)

        try:
            response = self.session.get(f"{self.base_url}/{endpoint}/json", params=params, timeout=10)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Google Places {endpoint} request error: {e}")
            return LookupResult.failure(str(e))
        except ValueError as e:
            logger.error(f"Google Places {endpoint} returned invalid JSON: {e}")
            return LookupResult.failure("invalid response from Google Places")
        finally:
            self.request_count += 1
            self.last_request_time = time.time()

        status = data.get('status', 'OK')
        if status not in ('OK', 'ZERO_RESULTS'):
            message = data.get('error_message', status)
            logger.error(f"Google Places {endpoint} error: {message}")
            return LookupResult.failure(message)

        return LookupResult.success(data)

    def nearby_search(self, lat: float, lng: float, radius: int = NEARBY_RADIUS_METERS,
                      place_type: str = 'establishment') -> LookupResult[List[Dict]]:
        result = self._request('nearbysearch', {
            'location': f'{lat},{lng}',
            'radius': radius,
            'type': place_type
        })
        if not result.ok:
            return LookupResult.failure(result.error)
        return LookupResult.success(result.data.get('results', []))

    def get_place_details(self, place_id: str,
                          fields: Optional[List[str]] = None) -> LookupResult[Dict]:
        """Get detailed information about a place"""
        result = self._request('details', {
            'place_id': place_id,
            'fields': ','.join(fields or DETAIL_FIELDS)
        })
        if not result.ok:
            return LookupResult.failure(result.error)
        details = result.data.get('result')
        if not details:
            return LookupResult.failure(f"no details for place {place_id}")
        return LookupResult.success(details)

    def text_search(self, query: str, location: Optional[Coordinate] = None,
                    radius: int = 50000) -> LookupResult[List[Dict]]:
        params = {'query': query}
        if location is not None:
            params['location'] = f'{location.lat},{location.lng}'
            params['radius'] = radius
        result = self._request('textsearch', params)
        if not result.ok:
            return LookupResult.failure(result.error)
        return LookupResult.success(result.data.get('results', []))

    def find_best_match(self, query: str, results: List[Dict],
                        min_score: int = 40) -> Optional[Dict]:
        """Result whose name is most similar to the query"""
        best_score = 0
        best_match = None

        for result in results:
            score = fuzz.partial_ratio(query.lower(), result.get('name', '').lower())
            if score > best_score and score >= min_score:
                best_score = score
                best_match = result

        if best_match:
            logger.info(f"Found match for '{query}': '{best_match['name']}' (score: {best_score})")
        return best_match

    def _handle_rate_limiting(self):
        """Keep a minimum interval between requests"""
        if self.last_request_time > 0:
            time_since_last = time.time() - self.last_request_time
            if time_since_last < self.min_interval:
                time.sleep(self.min_interval - time_since_last)

        if self.request_count % 50 == 0 and self.request_count > 0:
            logger.info(f"Google Places API requests made: {self.request_count}")

    def get_api_usage_stats(self) -> Dict:
        return {
            'total_requests': self.request_count,
            'last_request_time': self.last_request_time
        }


def place_to_reference_point(place: Dict) -> Optional[ReferencePoint]:
    location = place.get('geometry', {}).get('location', {})
    if location.get('lat') is None or location.get('lng') is None:
        return None
    return ReferencePoint(
        lat=location['lat'], lng=location['lng'],
        address=place.get('formatted_address') or place.get('vicinity'),
        name=place.get('name'), source='place_search'
    )


class PlacesLookupService:
    """Quota-gated, cached venue detail lookup.

    ``confirm`` is asked before any unit of the monthly quota is spent; a
    declined or exhausted quota still yields a free Google Maps link.
    """

    def __init__(self, places: Optional[GooglePlacesService], quota: PlacesQuotaCounter,
                 confirm: Optional[Callable[[QuotaUsage], bool]] = None):
        self.places = places
        self.quota = quota
        self.confirm = confirm or (lambda usage: False)
        self._cache: Dict[str, PlaceInfo] = {}

    @staticmethod
    def _cache_key(coordinate: Coordinate) -> str:
        return f"{coordinate.lat},{coordinate.lng}"

    def get_place_info(self, address: Optional[str],
                       coordinate: Coordinate) -> LookupResult[PlaceInfo]:
        cache_key = self._cache_key(coordinate)
        if cache_key in self._cache:
            logger.debug(f"Place info for {cache_key} served from cache")
            return LookupResult.success(self._cache[cache_key])

        decision = self.quota.check_and_maybe_consume(consume=False)
        if not decision.allowed or self.places is None or not self.confirm(decision.usage):
            basic_info = PlaceInfo(google_url=google_maps_url(address, coordinate))
            # Cached so the same spot is not asked about again
            self._cache[cache_key] = basic_info
            return LookupResult.success(basic_info)

        if not self.quota.check_and_maybe_consume(consume=True).allowed:
            return LookupResult.failure("monthly Places API limit reached")

        nearby = self.places.nearby_search(coordinate.lat, coordinate.lng)
        if not nearby.ok:
            return LookupResult.failure(nearby.error)
        if not nearby.data:
            return LookupResult.failure("no establishment found near this location")

        place_id = nearby.data[0].get('place_id')
        details = self.places.get_place_details(place_id)
        if not details.ok:
            return LookupResult.failure(details.error)

        d = details.data
        info = PlaceInfo(
            place_id=d.get('place_id') or None,
            place_name=d.get('name') or None,
            website=d.get('website') or None,
            google_url=d.get('url') or None,
            phone=d.get('international_phone_number') or None
        )
        self._cache[cache_key] = info
        return LookupResult.success(info)

    def search_reference_point(self, query: str,
                               near: Optional[Coordinate] = None) -> LookupResult[ReferencePoint]:
        """Resolve a free-text place search to a reference point"""
        if self.places is None:
            return LookupResult.failure("Google Places API key is not configured")

        results = self.places.text_search(query, location=near)
        if not results.ok:
            return LookupResult.failure(results.error)
        if not results.data:
            return LookupResult.failure(f"no places found for '{query}'")

        best = self.places.find_best_match(query, results.data) or results.data[0]
        point = place_to_reference_point(best)
        if point is None:
            return LookupResult.failure(f"place '{best.get('name')}' has no location")
        return LookupResult.success(point)

    def cache_stats(self) -> Dict:
        return {
            'cached_places': len(self._cache),
            'estimated_monthly_cost': round(len(self._cache) * ESTIMATED_COST_PER_LOOKUP, 2)
        }
