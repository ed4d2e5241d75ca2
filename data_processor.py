"""
data_processor.py
CSV import and export of experiences
"""

import pandas as pd
import hashlib
import logging
from datetime import datetime
from typing import List, Optional

from models import Experience, ValidationError, to_local_naive
from database import DatabaseManager

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ['latitude', 'longitude', 'category', 'rating', 'age_group']
OPTIONAL_COLUMNS = ['address', 'gender', 'time_of_day', 'created_at', 'user_id']
EXPORT_COLUMNS = ['id'] + REQUIRED_COLUMNS + OPTIONAL_COLUMNS


class DataProcessor:
    """Handles data cleaning and standardization"""

    @staticmethod
    def clean_text(value) -> str:
        if value is None or (isinstance(value, float) and pd.isna(value)):
            return ""
        text = str(value).strip()
        if text.lower() == 'nan':
            return ""
        return ' '.join(text.split())

    @staticmethod
    def parse_star_rating(rating_input) -> Optional[int]:
        """Convert star emoji rating or numeric value to an integer rating"""
        if rating_input is None or (isinstance(rating_input, float) and pd.isna(rating_input)):
            return None

        if isinstance(rating_input, (int, float)):
            return int(round(rating_input))

        rating_str = str(rating_input).strip()
        if not rating_str or rating_str == '-':
            return None

        star_count = rating_str.count('⭐') + rating_str.count('★')
        if star_count > 0:
            return star_count

        try:
            return int(round(float(rating_str)))
        except ValueError:
            return None

    @staticmethod
    def parse_coordinate(value) -> Optional[float]:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        return None if pd.isna(number) else number

    @staticmethod
    def parse_timestamp(value) -> Optional[datetime]:
        text = DataProcessor.clean_text(value)
        if not text:
            return None
        try:
            return to_local_naive(pd.Timestamp(text).to_pydatetime())
        except ValueError:
            return None


class ExperienceImporter:
    """Handles importing experience data from CSV files"""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.data_processor = DataProcessor()

    def import_from_csv(self, csv_path: str, user_id: Optional[str] = None) -> List[Experience]:
        """Import experiences from a CSV file, skipping rows that fail validation"""
        df = pd.read_csv(csv_path)
        df.columns = df.columns.str.strip()
        logger.info(f"Loaded {len(df)} rows from CSV")

        experiences = []
        for index, row in df.iterrows():
            try:
                experience = self._row_to_experience(row, user_id)
                self.db_manager.save_experience(experience)
                experiences.append(experience)
            except ValidationError as e:
                logger.warning(f"Skipping row {index + 2}: {e}")

        logger.info(f"Successfully imported {len(experiences)} experiences")
        return experiences

    def _row_to_experience(self, row: pd.Series, user_id: Optional[str]) -> Experience:
        """Convert CSV row to Experience object"""
        clean = self.data_processor.clean_text

        latitude = self.data_processor.parse_coordinate(row.get('latitude'))
        longitude = self.data_processor.parse_coordinate(row.get('longitude'))
        rating = self.data_processor.parse_star_rating(row.get('rating'))
        if latitude is None or longitude is None:
            raise ValidationError("latitude and longitude are required")
        if rating is None:
            raise ValidationError("rating is required")

        category = clean(row.get('category'))
        created_at = self.data_processor.parse_timestamp(row.get('created_at')) or datetime.now()

        # Stable id so re-importing the same file does not duplicate rows
        experience_id = clean(row.get('id')) or hashlib.md5(
            f"{latitude}_{longitude}_{category}_{created_at.isoformat()}".encode()
        ).hexdigest()

        return Experience(
            id=experience_id,
            latitude=latitude,
            longitude=longitude,
            category=category,
            rating=rating,
            age_group=clean(row.get('age_group')),
            gender=clean(row.get('gender')) or 'その他',
            time_of_day=clean(row.get('time_of_day')) or '昼',
            address=clean(row.get('address')) or None,
            user_id=clean(row.get('user_id')) or user_id,
            created_at=created_at
        )

    def validate_csv_format(self, csv_path: str) -> dict:
        """Validate CSV format and return analysis"""
        try:
            df = pd.read_csv(csv_path)
        except (OSError, ValueError) as e:
            return {'valid': False, 'error': str(e)}

        df.columns = df.columns.str.strip()
        missing_required = [col for col in REQUIRED_COLUMNS if col not in df.columns]
        available_optional = [col for col in OPTIONAL_COLUMNS if col in df.columns]

        return {
            'valid': len(missing_required) == 0,
            'total_rows': len(df),
            'columns': list(df.columns),
            'missing_required_columns': missing_required,
            'available_optional_columns': available_optional,
            'sample_data': df.head(3).to_dict('records') if len(df) > 0 else []
        }

    @staticmethod
    def export_to_csv(experiences: List[Experience], csv_path: str) -> int:
        rows = [{
            'id': e.id,
            'latitude': e.latitude,
            'longitude': e.longitude,
            'category': e.category,
            'rating': e.rating,
            'address': e.address or '',
            'age_group': e.age_group,
            'gender': e.gender,
            'time_of_day': e.time_of_day,
            'created_at': e.created_at.isoformat(),
            'user_id': e.user_id or ''
        } for e in experiences]

        pd.DataFrame(rows, columns=EXPORT_COLUMNS).to_csv(csv_path, index=False)
        logger.info(f"Exported {len(rows)} experiences to {csv_path}")
        return len(rows)
