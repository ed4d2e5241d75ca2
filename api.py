"""
api.py
API interface for My Road
"""

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from main_system import MyRoadSystem
from models import FilterCriteria, ReferencePoint, ValidationError
from distance_utils import format_distance
from routes import format_duration

logger = logging.getLogger(__name__)


def _experience_to_dict(experience) -> Dict[str, Any]:
    data = asdict(experience)
    data['created_at'] = experience.created_at.isoformat()
    return data


def _comment_to_dict(comment) -> Dict[str, Any]:
    return {
        'id': comment.id,
        'experience_id': comment.experience_id,
        'user_id': comment.user_id,
        'parent_comment_id': comment.parent_comment_id,
        'content': comment.content,
        'rating': comment.rating,
        'is_edited': comment.is_edited,
        'created_at': comment.created_at.isoformat(),
        'replies': [_comment_to_dict(r) for r in comment.replies]
    }


def _route_to_dict(route) -> Dict[str, Any]:
    return {
        'id': route.id,
        'title': route.title,
        'description': route.description,
        'age_group': route.age_group,
        'gender': route.gender,
        'overall_rating': route.overall_rating,
        'total_duration': route.total_duration,
        'total_duration_text': format_duration(route.total_duration),
        'created_at': route.created_at.isoformat(),
        'steps': [{
            'step_order': s.step_order,
            'experience_id': s.experience_id,
            'category': s.experience.category if s.experience else None,
            'address': s.experience.address if s.experience else None,
            'duration_minutes': s.duration_minutes,
            'travel_time_to_next': s.travel_time_to_next,
            'notes': s.notes
        } for s in route.steps]
    }


class MyRoadAPI:
    """Simple API wrapper for the My Road system"""

    def __init__(self, db_path: str = None, google_api_key: Optional[str] = None, **kwargs):
        self.system = MyRoadSystem(db_path, google_api_key, **kwargs)
        logger.info("My Road API initialized")

    def post_experience(self, **fields) -> Dict[str, Any]:
        try:
            experience = self.system.post_experience(**fields)
            return {"success": True, "experience": _experience_to_dict(experience)}
        except ValidationError as e:
            logger.warning(f"Rejected experience: {e}")
            return {"success": False, "error": str(e)}
        except Exception as e:
            error_msg = f"Error posting experience: {str(e)}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}

    def list_experiences(self, criteria: Optional[FilterCriteria] = None,
                         latitude: Optional[float] = None, longitude: Optional[float] = None,
                         page: int = 1) -> Dict[str, Any]:
        """Ranked page of experiences, optionally around a point"""
        try:
            reference_point = None
            if latitude is not None and longitude is not None:
                reference_point = ReferencePoint(lat=latitude, lng=longitude)

            result = self.system.list_experiences(criteria, reference_point, page)
            items = []
            for ranked in result.items:
                item = _experience_to_dict(ranked.experience)
                item['distance_km'] = ranked.distance_km
                item['distance_text'] = (format_distance(ranked.distance_km)
                                         if ranked.distance_km is not None else None)
                items.append(item)

            return {
                "success": True,
                "experiences": items,
                "page": result.page,
                "total_pages": result.total_pages,
                "total_count": result.total_count,
                "has_data": self.system.db_manager.count_experiences() > 0
            }
        except Exception as e:
            error_msg = f"Error listing experiences: {str(e)}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}

    def get_experience_detail(self, experience_id: str) -> Dict[str, Any]:
        try:
            experience = self.system.get_experience(experience_id)
            if experience is None:
                return {"success": False, "error": "Experience not found"}

            photos = self.system.db_manager.get_experience_photos(experience_id)
            comments = self.system.get_comments(experience_id)
            return {
                "success": True,
                "experience": _experience_to_dict(experience),
                "photos": [asdict(p) for p in photos],
                "comments": [_comment_to_dict(c) for c in comments],
                "comments_count": self.system.db_manager.count_comments(experience_id)
            }
        except Exception as e:
            error_msg = f"Error loading experience: {str(e)}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}

    def add_comment(self, experience_id: str, user_id: str, content: str,
                    rating: Optional[int] = None,
                    parent_comment_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            comment = self.system.add_comment(experience_id, user_id, content, rating, parent_comment_id)
            return {"success": True, "comment": _comment_to_dict(comment)}
        except (ValidationError, LookupError) as e:
            return {"success": False, "error": str(e)}
        except Exception as e:
            error_msg = f"Error posting comment: {str(e)}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}

    def upload_photo(self, experience_id: str, user_id: str, filename: str, data: bytes,
                     caption: Optional[str] = None, is_primary: bool = False) -> Dict[str, Any]:
        try:
            photo = self.system.upload_photo(experience_id, user_id, filename, data, caption, is_primary)
            return {"success": True, "photo": asdict(photo)}
        except (ValueError, LookupError) as e:
            return {"success": False, "error": str(e)}
        except Exception as e:
            error_msg = f"Error uploading photo: {str(e)}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}

    def create_route(self, experience_ids: List[str], title: str, age_group: str,
                     gender: str, overall_rating: float = 5, description: str = '',
                     durations: Optional[List[int]] = None,
                     travel_times: Optional[List[int]] = None) -> Dict[str, Any]:
        """Create a route visiting the given experiences in order"""
        try:
            builder = self.system.route_builder()
            by_id = {c.experience.id: c.experience for c in builder.candidates}
            missing = [i for i in experience_ids if i not in by_id]
            if missing:
                return {"success": False, "error": f"Unknown experiences: {', '.join(missing)}"}

            for experience_id in experience_ids:
                builder.toggle(by_id[experience_id])
            for index, minutes in enumerate(durations or []):
                builder.update_step(index, duration_minutes=minutes)
            for index, minutes in enumerate(travel_times or []):
                if index < len(builder.steps) - 1:
                    builder.update_step(index, travel_time_to_next=minutes)

            route = builder.build(title, age_group, gender, overall_rating, description)
            self.system.save_route(route)
            return {"success": True, "route": _route_to_dict(route)}
        except ValidationError as e:
            return {"success": False, "error": str(e)}
        except Exception as e:
            error_msg = f"Error creating route: {str(e)}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}

    def get_routes(self) -> Dict[str, Any]:
        try:
            routes = self.system.get_routes()
            return {"success": True, "routes": [_route_to_dict(r) for r in routes], "count": len(routes)}
        except Exception as e:
            error_msg = f"Error loading routes: {str(e)}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}

    def lookup_place(self, latitude: float, longitude: float,
                     address: Optional[str] = None) -> Dict[str, Any]:
        result = self.system.lookup_place_info(address, latitude, longitude)
        if not result.ok:
            return {"success": False, "error": result.error}
        return {"success": True, "place": asdict(result.data)}

    def search_place(self, query: str) -> Dict[str, Any]:
        result = self.system.search_place(query)
        if not result.ok:
            return {"success": False, "error": result.error}
        return {"success": True, "reference_point": asdict(result.data)}

    def import_csv(self, csv_path: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            return self.system.import_experiences(csv_path, user_id)
        except Exception as e:
            error_msg = f"Error importing CSV: {str(e)}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}

    def get_system_stats(self) -> Dict[str, Any]:
        try:
            return {"success": True, "stats": self.system.get_system_stats()}
        except Exception as e:
            error_msg = f"Error getting system stats: {str(e)}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}
