"""
main_system.py
Main system orchestrator for My Road
"""

import logging
import uuid
from typing import Callable, List, Optional

from models import (
    Coordinate, Experience, ExperienceComment, ExperiencePhoto, FilterCriteria,
    LookupResult, PlaceInfo, QuotaUsage, RankedPage, ReferencePoint, Route
)
from database import DatabaseManager
from data_processor import ExperienceImporter
from geocoding import GeocodingService
from google_places import GooglePlacesService, PlacesLookupService
from quota import JsonFileQuotaStore, PlacesQuotaCounter, QuotaStore
from ranking import ExperienceBrowser
from routes import RouteBuilder
from storage import PhotoStorage
from config import config

logger = logging.getLogger(__name__)


class MyRoadSystem:
    """Main system orchestrator"""

    def __init__(self, db_path: str = None, google_api_key: Optional[str] = None,
                 photo_dir: str = None, quota_store: Optional[QuotaStore] = None,
                 confirm_lookup: Optional[Callable[[QuotaUsage], bool]] = None,
                 places_service: Optional[GooglePlacesService] = None,
                 geocoder=None):
        if db_path is None:
            db_path = config.default_db_path
        if google_api_key is None:
            google_api_key = config.get_google_api_key()
        if quota_store is None:
            quota_store = JsonFileQuotaStore(config.quota_file)

        self.db_manager = DatabaseManager(db_path)
        self.storage = PhotoStorage(photo_dir or config.photo_dir, config.photo_base_url)
        self.quota = PlacesQuotaCounter(quota_store, limit=config.places_monthly_limit)

        if places_service is None and google_api_key:
            places_service = GooglePlacesService(google_api_key, min_interval=config.rate_limit_delay)
        self.google_service = places_service
        self.places_lookup = PlacesLookupService(self.google_service, self.quota, confirm_lookup)
        self.geocoding = GeocodingService(google_api_key, geocoder=geocoder)

        self.importer = ExperienceImporter(self.db_manager)
        self.browser = ExperienceBrowser(page_size=config.page_size)

        logger.info("My Road system initialized")
        if self.google_service:
            logger.info("Google Places API integration enabled")
        else:
            logger.warning("No Google API key available - place details will fall back to map links")

    # Experiences

    def post_experience(self, latitude: float, longitude: float, category: str, rating: int,
                        age_group: str, gender: str, time_of_day: str,
                        address: Optional[str] = None, user_id: Optional[str] = None,
                        place: Optional[PlaceInfo] = None) -> Experience:
        experience = Experience(
            id=str(uuid.uuid4()), latitude=latitude, longitude=longitude,
            category=category, rating=rating, age_group=age_group, gender=gender,
            time_of_day=time_of_day, address=address, user_id=user_id, place=place
        )
        self.db_manager.save_experience(experience)
        self.refresh_experiences()
        return experience

    def refresh_experiences(self) -> List[Experience]:
        """Reload the ranked view from the database"""
        experiences = self.db_manager.get_all_experiences()
        self.browser.set_experiences(experiences)
        return experiences

    def list_experiences(self, criteria: Optional[FilterCriteria] = None,
                         reference_point: Optional[ReferencePoint] = None,
                         page: int = 1) -> RankedPage:
        if not self.browser.is_loaded:
            self.refresh_experiences()
        if criteria is not None:
            self.browser.set_criteria(criteria)
        self.browser.set_reference_point(reference_point)
        return self.browser.go_to_page(page)

    def get_experience(self, experience_id: str) -> Optional[Experience]:
        return self.db_manager.get_experience(experience_id)

    def import_experiences(self, csv_path: str, user_id: Optional[str] = None) -> dict:
        validation = self.importer.validate_csv_format(csv_path)
        if not validation['valid']:
            error = validation.get('error') or f"missing columns: {validation['missing_required_columns']}"
            return {"success": False, "error": f"Invalid CSV format: {error}"}

        experiences = self.importer.import_from_csv(csv_path, user_id)
        self.refresh_experiences()
        return {
            "success": True,
            "imported_count": len(experiences),
            "skipped_count": validation['total_rows'] - len(experiences)
        }

    # Reference points

    def reference_point_from_click(self, lat: float, lng: float) -> LookupResult[ReferencePoint]:
        return self.geocoding.reverse(lat, lng)

    def search_place(self, query: str) -> LookupResult[ReferencePoint]:
        result = self.places_lookup.search_reference_point(query)
        if result.ok or not self.geocoding.available:
            return result
        logger.info(f"Place search failed ({result.error}), falling back to geocoding")
        return self.geocoding.geocode(query)

    def lookup_place_info(self, address: Optional[str], lat: float,
                          lng: float) -> LookupResult[PlaceInfo]:
        return self.places_lookup.get_place_info(address, Coordinate(lat, lng))

    # Comments

    def add_comment(self, experience_id: str, user_id: str, content: str,
                    rating: Optional[int] = None,
                    parent_comment_id: Optional[str] = None) -> ExperienceComment:
        if self.db_manager.get_experience(experience_id) is None:
            raise LookupError(f"experience {experience_id} not found")
        return self.db_manager.create_comment(experience_id, user_id, content, rating, parent_comment_id)

    def get_comments(self, experience_id: str) -> List[ExperienceComment]:
        return self.db_manager.get_experience_comments(experience_id)

    # Photos

    def upload_photo(self, experience_id: str, user_id: str, filename: str, data: bytes,
                     caption: Optional[str] = None,
                     is_primary: bool = False) -> ExperiencePhoto:
        if self.db_manager.get_experience(experience_id) is None:
            raise LookupError(f"experience {experience_id} not found")

        url = self.storage.upload(experience_id, user_id, filename, data)
        photo = self.db_manager.create_photo(
            experience_id, user_id, url, caption=caption, file_size=len(data),
            mime_type=self.storage.guess_mime_type(filename), is_primary=False
        )
        if is_primary:
            self.db_manager.set_primary_photo(experience_id, photo.id)
            photo.is_primary = True
        return photo

    def delete_photo(self, photo_id: str) -> bool:
        photo = self.db_manager.get_photo(photo_id)
        if photo is None:
            return False
        self.storage.delete(photo.photo_url)
        return self.db_manager.delete_photo(photo_id)

    # Routes

    def route_builder(self, search_location: Optional[ReferencePoint] = None) -> RouteBuilder:
        return RouteBuilder(self.db_manager.get_all_experiences(), search_location)

    def save_route(self, route: Route) -> Route:
        return self.db_manager.save_route(route)

    def get_routes(self) -> List[Route]:
        return self.db_manager.get_routes()

    # Stats

    def get_system_stats(self) -> dict:
        stats = self.db_manager.get_stats()
        usage = self.quota.usage()
        stats['places_api_usage'] = {
            'month': usage.month,
            'count': usage.count,
            'limit': usage.limit,
            'remaining': usage.remaining,
            'next_reset': self.quota.next_reset_date().isoformat()
        }
        stats['place_cache'] = self.places_lookup.cache_stats()
        if self.google_service:
            stats['google_api_usage'] = self.google_service.get_api_usage_stats()
        return stats
