"""
routes.py
Assembling multi-stop routes from experiences
"""

import logging
import uuid
from typing import List, Optional

from models import Experience, RankedExperience, Route, RouteStep, ValidationError
from distance_utils import sort_by_distance

logger = logging.getLogger(__name__)

DEFAULT_STAY_MINUTES = 60
DEFAULT_TRAVEL_MINUTES = 15


def format_duration(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}時間{mins}分" if mins else f"{hours}時間"
    return f"{mins}分"


class RouteBuilder:
    """Selection and ordering of stops for a new route"""

    def __init__(self, experiences: List[Experience], search_location=None):
        self.search_location = search_location
        self.candidates: List[RankedExperience] = sort_by_distance(experiences, search_location)
        self.selected: List[Experience] = []
        self.steps: List[RouteStep] = []

    def is_selected(self, experience_id: str) -> bool:
        return any(e.id == experience_id for e in self.selected)

    def toggle(self, experience: Experience) -> bool:
        """Select or deselect an experience; returns True when now selected"""
        if self.is_selected(experience.id):
            self.selected = [e for e in self.selected if e.id != experience.id]
            self._sync_steps()
            return False

        self.selected.append(experience)
        self._sync_steps()
        return True

    def move(self, from_index: int, to_index: int):
        if not (0 <= from_index < len(self.selected)) or not (0 <= to_index < len(self.selected)):
            return
        experience = self.selected.pop(from_index)
        self.selected.insert(to_index, experience)
        self._sync_steps()

    def _sync_steps(self):
        """Rebuild step data with defaults, keeping edits made to kept stops"""
        previous = {s.experience_id: s for s in self.steps}
        previous_last = len(self.steps)
        last = len(self.selected) - 1
        steps = []

        for index, experience in enumerate(self.selected):
            old = previous.get(experience.id)
            if index == last:
                travel = 0
            elif old is None or old.step_order == previous_last:
                # the old last stop only had the forced 0
                travel = DEFAULT_TRAVEL_MINUTES
            else:
                travel = old.travel_time_to_next
            steps.append(RouteStep(
                experience_id=experience.id,
                step_order=index + 1,
                duration_minutes=old.duration_minutes if old else DEFAULT_STAY_MINUTES,
                travel_time_to_next=travel,
                notes=old.notes if old else '',
                experience=experience
            ))
        self.steps = steps

    def update_step(self, index: int, duration_minutes: Optional[int] = None,
                    travel_time_to_next: Optional[int] = None, notes: Optional[str] = None):
        step = self.steps[index]
        if duration_minutes is not None:
            step.duration_minutes = duration_minutes
        if travel_time_to_next is not None:
            step.travel_time_to_next = travel_time_to_next
        if notes is not None:
            step.notes = notes

    def total_duration(self) -> int:
        return sum(s.duration_minutes + s.travel_time_to_next for s in self.steps)

    def build(self, title: str, age_group: str, gender: str, overall_rating: float = 5,
              description: str = '', user_id: Optional[str] = None) -> Route:
        if len(self.selected) < 2:
            raise ValidationError("a route needs at least two experiences")

        route = Route(
            id=str(uuid.uuid4()),
            title=title.strip(),
            description=description,
            age_group=age_group,
            gender=gender,
            overall_rating=overall_rating,
            user_id=user_id,
            steps=list(self.steps)
        )
        route.validate()
        logger.info(f"Built route '{route.title}' with {len(route.steps)} stops "
                    f"({format_duration(route.total_duration)})")
        return route
