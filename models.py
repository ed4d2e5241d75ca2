"""
models.py
Core data models for the My Road experience map
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar
from datetime import datetime

CATEGORIES = [
    '居酒屋', 'カフェ', 'レストラン', 'ラーメン', '銭湯', 'サウナ',
    '公園', '美術館', 'ショッピング', 'その他'
]
AGE_GROUPS = ['10代', '20代', '30代', '40代', '50代', '60代以上']
GENDERS = ['男性', '女性', 'その他']
TIME_OF_DAY = ['朝', '昼', '夜', '深夜']

SORT_KEYS = ['rating', 'distance', 'created_at', 'age_group', 'gender']
SORT_ORDERS = ['asc', 'desc']

MIN_RATING = 1
MAX_RATING = 5
MAX_COMMENT_LENGTH = 1000

T = TypeVar('T')


def to_local_naive(value: datetime) -> datetime:
    """Offset-aware timestamps become naive local time, matching ``datetime.now()``"""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class ValidationError(ValueError):
    """Raised when a record violates the data model invariants"""


@dataclass(frozen=True)
class Coordinate:
    """WGS84 latitude/longitude pair in degrees"""
    lat: float
    lng: float


@dataclass(frozen=True)
class ReferencePoint:
    """Transient point that experiences are ranked against (never persisted)"""
    lat: float
    lng: float
    address: Optional[str] = None
    name: Optional[str] = None
    source: str = 'map_click'  # map_click | place_search

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lng)


@dataclass
class PlaceInfo:
    """Venue metadata resolved through the places service"""
    place_id: Optional[str] = None
    place_name: Optional[str] = None
    website: Optional[str] = None
    google_url: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class Experience:
    """A user-submitted venue visit"""
    id: str
    latitude: float
    longitude: float
    category: str
    rating: int
    age_group: str
    gender: str
    time_of_day: str
    address: Optional[str] = None
    user_id: Optional[str] = None  # anonymous posting is allowed
    place: Optional[PlaceInfo] = None
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        self.created_at = to_local_naive(self.created_at)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def validate(self) -> None:
        errors = []
        if (isinstance(self.rating, bool) or not isinstance(self.rating, int)
                or not MIN_RATING <= self.rating <= MAX_RATING):
            errors.append(f"rating must be an integer between {MIN_RATING} and {MAX_RATING}")
        if not -90 <= self.latitude <= 90:
            errors.append("latitude must be within [-90, 90]")
        if not -180 <= self.longitude <= 180:
            errors.append("longitude must be within [-180, 180]")
        if self.category not in CATEGORIES:
            errors.append(f"unknown category: {self.category}")
        if self.age_group not in AGE_GROUPS:
            errors.append(f"unknown age group: {self.age_group}")
        if self.gender not in GENDERS:
            errors.append(f"unknown gender: {self.gender}")
        if self.time_of_day not in TIME_OF_DAY:
            errors.append(f"unknown time of day: {self.time_of_day}")
        if errors:
            raise ValidationError("; ".join(errors))


@dataclass
class FilterCriteria:
    """Filter and sort options applied by the ranking pipeline.

    Empty lists impose no restriction. ``max_distance`` is in kilometres and
    only has an effect when a reference point is present.
    """
    categories: List[str] = field(default_factory=list)
    age_groups: List[str] = field(default_factory=list)
    genders: List[str] = field(default_factory=list)
    time_of_day: List[str] = field(default_factory=list)
    min_rating: int = MIN_RATING
    max_distance: Optional[float] = None
    sort_by: str = 'created_at'
    sort_order: str = 'desc'

    def __post_init__(self):
        if self.sort_by not in SORT_KEYS:
            raise ValidationError(f"unknown sort key: {self.sort_by}")
        if self.sort_order not in SORT_ORDERS:
            raise ValidationError(f"unknown sort order: {self.sort_order}")

    def active_filter_count(self) -> int:
        """Number of active restrictions, as shown on the filter badge"""
        count = (len(self.categories) + len(self.age_groups)
                 + len(self.genders) + len(self.time_of_day))
        if self.min_rating > MIN_RATING:
            count += 1
        if self.max_distance and self.max_distance < 50:
            count += 1
        return count

    @classmethod
    def cleared(cls, has_reference_point: bool = False) -> 'FilterCriteria':
        return cls(max_distance=5 if has_reference_point else None)


@dataclass
class RankedExperience:
    """An experience with its distance from the current reference point"""
    experience: Experience
    distance_km: Optional[float] = None


@dataclass
class RankedPage:
    """One page of ranking pipeline output"""
    items: List[RankedExperience]
    page: int
    total_pages: int
    total_count: int
    page_size: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


@dataclass
class ExperiencePhoto:
    """Photo attached to an experience"""
    id: str
    experience_id: str
    user_id: str
    photo_url: str
    photo_thumbnail_url: Optional[str] = None
    caption: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    is_primary: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class ExperienceComment:
    """Threaded comment on an experience"""
    id: str
    experience_id: str
    user_id: str
    content: str
    parent_comment_id: Optional[str] = None
    rating: Optional[int] = None
    is_edited: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    replies: List['ExperienceComment'] = field(default_factory=list)
    experience_summary: Dict[str, Any] = field(default_factory=dict)  # category, address

    def validate(self) -> None:
        content = (self.content or '').strip()
        if not content:
            raise ValidationError("comment content is required")
        if len(content) > MAX_COMMENT_LENGTH:
            raise ValidationError(f"comment content exceeds {MAX_COMMENT_LENGTH} characters")
        if self.rating is not None and not MIN_RATING <= self.rating <= MAX_RATING:
            raise ValidationError(f"comment rating must be between {MIN_RATING} and {MAX_RATING}")


@dataclass
class RouteStep:
    """A single stop in a route"""
    experience_id: str
    step_order: int
    duration_minutes: int = 60
    travel_time_to_next: int = 15
    notes: str = ''
    id: Optional[str] = None
    experience: Optional[Experience] = None


@dataclass
class Route:
    """Ordered sequence of experience stops"""
    id: str
    title: str
    age_group: str
    gender: str
    overall_rating: float
    steps: List[RouteStep] = field(default_factory=list)
    description: str = ''
    user_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def total_duration(self) -> int:
        return sum(s.duration_minutes + s.travel_time_to_next for s in self.steps)

    def validate(self) -> None:
        if not self.title or not self.title.strip():
            raise ValidationError("route title is required")
        if len(self.steps) < 2:
            raise ValidationError("a route needs at least two experiences")
        if self.age_group not in AGE_GROUPS:
            raise ValidationError(f"unknown age group: {self.age_group}")
        if self.gender not in GENDERS:
            raise ValidationError(f"unknown gender: {self.gender}")
        if not MIN_RATING <= self.overall_rating <= MAX_RATING or (self.overall_rating * 2) % 1:
            raise ValidationError("overall rating must be between 1 and 5 in steps of 0.5")
        for step in self.steps:
            if step.duration_minutes < 1:
                raise ValidationError("stop duration must be at least one minute")
            if step.travel_time_to_next < 0:
                raise ValidationError("travel time cannot be negative")


@dataclass
class QuotaUsage:
    """Monthly usage of the external detail lookup budget"""
    month: str
    count: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)

    @property
    def percentage(self) -> int:
        if self.limit <= 0:
            return 100
        return round(self.count / self.limit * 100)


@dataclass
class LookupResult(Generic[T]):
    """Outcome of a call to an external service: data on success, reason on failure"""
    ok: bool
    data: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, data: T) -> 'LookupResult[T]':
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, reason: str) -> 'LookupResult[T]':
        return cls(ok=False, error=reason)
