"""
ranking.py
Filter, sort and paginate experiences around an optional reference point
"""

import copy
import logging
import math
from typing import List, Optional

from models import Experience, FilterCriteria, RankedExperience, RankedPage
from distance_utils import distance_to

logger = logging.getLogger(__name__)

PAGE_SIZE = 10

_SORT_FIELDS = {
    'rating': lambda r: r.experience.rating,
    'created_at': lambda r: r.experience.created_at,
    'age_group': lambda r: r.experience.age_group,
    'gender': lambda r: r.experience.gender,
    'distance': lambda r: r.distance_km,
}


def _matches_attributes(experience: Experience, criteria: FilterCriteria) -> bool:
    if criteria.categories and experience.category not in criteria.categories:
        return False
    if criteria.age_groups and experience.age_group not in criteria.age_groups:
        return False
    if criteria.genders and experience.gender not in criteria.genders:
        return False
    if criteria.time_of_day and experience.time_of_day not in criteria.time_of_day:
        return False
    return True


def filter_experiences(experiences: List[Experience], criteria: FilterCriteria,
                       reference_point=None) -> List[RankedExperience]:
    """Apply attribute, rating and distance filters, keeping source order"""
    survivors = [e for e in experiences
                 if _matches_attributes(e, criteria) and e.rating >= criteria.min_rating]

    if reference_point is None:
        return [RankedExperience(experience=e) for e in survivors]

    ranked = [RankedExperience(experience=e, distance_km=distance_to(e, reference_point))
              for e in survivors]
    if criteria.max_distance:
        ranked = [r for r in ranked if r.distance_km <= criteria.max_distance]
    return ranked


def sort_ranked(ranked: List[RankedExperience], criteria: FilterCriteria,
                reference_point=None) -> List[RankedExperience]:
    """Stable sort by the selected key; ties keep their incoming order"""
    if criteria.sort_by == 'distance' and reference_point is None:
        logger.debug("Distance sort requested without a reference point; order unchanged")
        return list(ranked)

    return sorted(ranked, key=_SORT_FIELDS[criteria.sort_by],
                  reverse=criteria.sort_order == 'desc')


def paginate(ranked: List[RankedExperience], page: int = 1,
             page_size: int = PAGE_SIZE) -> RankedPage:
    """Slice one page out of a ranked list. Out-of-range pages are clamped."""
    total_count = len(ranked)
    total_pages = math.ceil(total_count / page_size)
    page = min(max(page, 1), max(total_pages, 1))

    start = (page - 1) * page_size
    return RankedPage(
        items=ranked[start:start + page_size],
        page=page,
        total_pages=total_pages,
        total_count=total_count,
        page_size=page_size
    )


def rank_experiences(experiences: List[Experience], criteria: FilterCriteria,
                     reference_point=None) -> List[RankedExperience]:
    """Filtered and sorted experiences, without pagination"""
    filtered = filter_experiences(experiences, criteria, reference_point)
    return sort_ranked(filtered, criteria, reference_point)


def rank_page(experiences: List[Experience], criteria: FilterCriteria,
              reference_point=None, page: int = 1,
              page_size: int = PAGE_SIZE) -> RankedPage:
    return paginate(rank_experiences(experiences, criteria, reference_point), page, page_size)


class ExperienceBrowser:
    """Ranked, paginated view over a list of experiences.

    Shared by the experience list, the route builder and map popups. The
    current page goes back to 1 whenever the source list, the criteria or the
    reference point change.
    """

    def __init__(self, criteria: Optional[FilterCriteria] = None,
                 page_size: int = PAGE_SIZE):
        self.page_size = page_size
        self._experiences: Optional[List[Experience]] = None
        self._criteria = copy.deepcopy(criteria) if criteria else FilterCriteria()
        self._reference_point = None
        self._page = 1
        self._ranked: List[RankedExperience] = []

    @property
    def is_loaded(self) -> bool:
        """False until a source list has been supplied"""
        return self._experiences is not None

    @property
    def criteria(self) -> FilterCriteria:
        return copy.deepcopy(self._criteria)

    @property
    def reference_point(self):
        return self._reference_point

    @property
    def page(self) -> int:
        return self._page

    def set_experiences(self, experiences: List[Experience]):
        self._experiences = list(experiences)
        self._refresh()

    def set_criteria(self, criteria: FilterCriteria):
        if criteria != self._criteria:
            self._criteria = copy.deepcopy(criteria)
            self._refresh()

    def set_reference_point(self, reference_point):
        if reference_point != self._reference_point:
            self._reference_point = reference_point
            self._refresh()

    def clear_reference_point(self):
        self.set_reference_point(None)

    def _refresh(self):
        self._ranked = rank_experiences(self._experiences or [], self._criteria,
                                        self._reference_point)
        self._page = 1

    def all_ranked(self) -> List[RankedExperience]:
        return list(self._ranked)

    def current_page(self) -> RankedPage:
        return paginate(self._ranked, self._page, self.page_size)

    def go_to_page(self, page: int) -> RankedPage:
        result = paginate(self._ranked, page, self.page_size)
        self._page = result.page
        return result

    def next_page(self) -> RankedPage:
        return self.go_to_page(self._page + 1)

    def previous_page(self) -> RankedPage:
        return self.go_to_page(self._page - 1)
