"""
quota.py
Monthly usage budget for paid place detail lookups
"""

import json
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Dict, Optional

from models import QuotaUsage

logger = logging.getLogger(__name__)

STORAGE_KEY = 'places_api_usage'
MAX_FREE_REQUESTS = 100  # free monthly allowance
WARNING_RATIO = 0.8


class QuotaStore:
    """Key/value persistence for quota records"""

    def load(self, key: str) -> Optional[dict]:
        raise NotImplementedError

    def save(self, key: str, record: dict) -> None:
        raise NotImplementedError


class InMemoryQuotaStore(QuotaStore):
    """Process-local store, used for tests and throwaway sessions"""

    def __init__(self):
        self._records: Dict[str, dict] = {}

    def load(self, key: str) -> Optional[dict]:
        record = self._records.get(key)
        return dict(record) if record is not None else None

    def save(self, key: str, record: dict) -> None:
        self._records[key] = dict(record)


class JsonFileQuotaStore(QuotaStore):
    """Quota records kept in a single JSON file.

    Not safe with several concurrent writers: the file is read and rewritten
    as a whole on every save.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"unexpected quota file layout in {self.path}")
        return data

    def load(self, key: str) -> Optional[dict]:
        return self._read_all().get(key)

    def save(self, key: str, record: dict) -> None:
        try:
            data = self._read_all()
        except (OSError, ValueError) as e:
            logger.warning(f"Overwriting unreadable quota file {self.path}: {e}")
            data = {}
        data[key] = record
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)


@dataclass
class QuotaDecision:
    allowed: bool
    usage: QuotaUsage


def month_key(day: date) -> str:
    """YYYY-MM for the given day"""
    return f"{day.year}-{day.month:02d}"


class PlacesQuotaCounter:
    """Gates how many detail lookups may be made per calendar month"""

    def __init__(self, store: QuotaStore, limit: int = MAX_FREE_REQUESTS,
                 today: Callable[[], date] = date.today, key: str = STORAGE_KEY):
        self.store = store
        self.limit = limit
        self.today = today
        self.key = key

    def _fresh(self, month: str) -> QuotaUsage:
        return QuotaUsage(month=month, count=0, limit=self.limit)

    def _save(self, usage: QuotaUsage):
        self.store.save(self.key, {
            'month': usage.month,
            'count': usage.count,
            'limit': usage.limit
        })

    def _load(self) -> QuotaUsage:
        """Current month's usage; stale or unreadable records start fresh"""
        current_month = month_key(self.today())

        try:
            record = self.store.load(self.key)
            if record:
                usage = QuotaUsage(month=str(record['month']),
                                   count=int(record['count']),
                                   limit=int(record.get('limit', self.limit)))
                if usage.month == current_month:
                    return usage
                logger.info(f"Places quota rolled over from {usage.month} to {current_month}")
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Could not read Places quota record, starting fresh: {e}")

        usage = self._fresh(current_month)
        self._save(usage)
        return usage

    def usage(self) -> QuotaUsage:
        return self._load()

    def can_use(self) -> bool:
        usage = self._load()
        return usage.count < usage.limit

    def check_and_maybe_consume(self, consume: bool = True) -> QuotaDecision:
        """Report whether a lookup is allowed, spending one unit when ``consume`` is set"""
        usage = self._load()

        if usage.count >= usage.limit:
            logger.warning(f"Places API monthly limit reached: {usage.count}/{usage.limit} ({usage.month})")
            return QuotaDecision(allowed=False, usage=usage)

        if consume:
            usage.count += 1
            self._save(usage)
            logger.info(f"Places API usage: {usage.count}/{usage.limit} ({usage.month})")

        return QuotaDecision(allowed=True, usage=usage)

    def log_usage(self) -> QuotaUsage:
        usage = self._load()
        logger.info(f"Places API usage for {usage.month}: {usage.count}/{usage.limit} "
                    f"({usage.percentage}%, {usage.remaining} remaining)")
        if usage.count >= usage.limit * WARNING_RATIO:
            logger.warning("Places API usage is above 80% of the monthly allowance")
        return usage

    def next_reset_date(self) -> date:
        today = self.today()
        if today.month == 12:
            return date(today.year + 1, 1, 1)
        return date(today.year, today.month + 1, 1)
