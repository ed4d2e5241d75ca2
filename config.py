"""
config.py
Configuration management for My Road
"""

import os
import logging
from typing import Optional
from pathlib import Path

logger = logging.getLogger(__name__)

API_KEY_VARIABLES = ('GOOGLE_MAPS_API_KEY', 'GOOGLE_PLACES_API_KEY', 'GOOGLE_API_KEY')


class Config:
    """Configuration management for the system"""

    def __init__(self, env_file: str = '.env'):
        self.env_file = Path(env_file)
        self._env_values = self._load_env_file()

        self.google_api_key = self._get_google_api_key()
        self.default_db_path = self._get('MYROAD_DB_PATH', 'myroad.db')
        self.photo_dir = self._get('MYROAD_PHOTO_DIR', 'photos')
        self.photo_base_url = self._get('MYROAD_PHOTO_BASE_URL', '')
        self.quota_file = self._get('MYROAD_QUOTA_FILE', 'myroad_usage.json')
        self.places_monthly_limit = int(self._get('MYROAD_PLACES_MONTHLY_LIMIT', '100'))
        self.rate_limit_delay = 0.1  # seconds between API requests
        self.page_size = 10

    def _get(self, name: str, default: str) -> str:
        return os.getenv(name) or self._env_values.get(name) or default

    def _get_google_api_key(self) -> Optional[str]:
        """Get Google API key from environment or .env file"""
        for name in API_KEY_VARIABLES:
            api_key = os.getenv(name)
            if api_key:
                logger.info(f"Google API key loaded from {name} environment variable")
                return api_key

        for name in API_KEY_VARIABLES:
            api_key = self._env_values.get(name)
            if api_key:
                logger.info("Google API key loaded from .env file")
                return api_key

        logger.warning("No Google Maps API key found")
        logger.info("Set GOOGLE_MAPS_API_KEY to enable place lookups and geocoding")
        return None

    def _load_env_file(self) -> dict:
        """Parse KEY=value lines from the .env file"""
        values = {}
        if not self.env_file.exists():
            return values

        try:
            with open(self.env_file, 'r', encoding='utf-8') as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith('#') or '=' not in line:
                        continue
                    key, value = line.split('=', 1)
                    value = value.strip()
                    # Remove quotes if present
                    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                        value = value[1:-1]
                    if value:
                        values[key.strip()] = value
        except OSError as e:
            logger.warning(f"Error reading .env file: {e}")

        return values

    def set_google_api_key(self, api_key: str) -> None:
        """Manually set Google API key"""
        self.google_api_key = api_key
        logger.info("Google API key set manually")

    def has_google_api_key(self) -> bool:
        """Check if Google API key is available"""
        return self.google_api_key is not None

    def get_google_api_key(self) -> Optional[str]:
        """Get the Google API key"""
        return self.google_api_key


# Global configuration instance
config = Config()
