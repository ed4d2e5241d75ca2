from datetime import datetime, timedelta

import pytest

from models import Experience


@pytest.fixture
def make_experience():
    """Factory for experiences; later calls get older timestamps by default"""
    base = datetime(2024, 6, 1, 12, 0, 0)
    counter = {'n': 0}

    def _make(id=None, category='カフェ', rating=3, age_group='20代', gender='女性',
              time_of_day='夜', latitude=35.0, longitude=139.0, created_at=None, **kwargs):
        counter['n'] += 1
        return Experience(
            id=id or f"exp-{counter['n']}",
            latitude=latitude,
            longitude=longitude,
            category=category,
            rating=rating,
            age_group=age_group,
            gender=gender,
            time_of_day=time_of_day,
            created_at=created_at or base - timedelta(hours=counter['n']),
            **kwargs
        )

    return _make
