"""
database.py
Database management for My Road experiences, photos, comments and routes
"""

import sqlite3
import logging
import time
import uuid
from typing import List, Optional
from datetime import datetime

from models import (
    Experience, ExperienceComment, ExperiencePhoto, PlaceInfo, Route, RouteStep,
    ValidationError, to_local_naive
)

logger = logging.getLogger(__name__)

EXPERIENCE_COLUMNS = '''
    id, user_id, latitude, longitude, address, category, rating, age_group,
    gender, time_of_day, place_id, place_name, website, google_url, phone, created_at
'''


def _new_id() -> str:
    return str(uuid.uuid4())


def _parse_timestamp(value) -> datetime:
    return to_local_naive(datetime.fromisoformat(value)) if value else datetime.now()


class DatabaseManager:
    """Handles all database operations"""

    def __init__(self, db_path: str = "myroad.db"):
        self.db_path = db_path
        self.init_database()

    def get_connection(self, timeout: float = 30.0, retries: int = 3):
        """Get a database connection with timeout and retry logic"""
        for attempt in range(retries):
            try:
                conn = sqlite3.connect(self.db_path, timeout=timeout)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys=ON")
                # Enable WAL mode for better concurrent access
                conn.execute("PRAGMA journal_mode=WAL")
                return conn
            except sqlite3.OperationalError as e:
                if "database is locked" in str(e) and attempt < retries - 1:
                    wait_time = (attempt + 1) * 0.5  # 0.5s, 1s, 1.5s
                    logger.warning(f"Database locked, retrying in {wait_time}s (attempt {attempt + 1}/{retries})")
                    time.sleep(wait_time)
                    continue
                if "database is locked" in str(e):
                    raise sqlite3.OperationalError(
                        "Database is locked. Close any other program holding the database file, then try again."
                    ) from e
                raise

        raise sqlite3.OperationalError("Failed to connect to database after all retries")

    def init_database(self):
        """Initialize database with required tables"""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS experiences (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    latitude REAL NOT NULL,
                    longitude REAL NOT NULL,
                    address TEXT,
                    category TEXT NOT NULL,
                    rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                    age_group TEXT NOT NULL,
                    gender TEXT NOT NULL,
                    time_of_day TEXT NOT NULL,
                    place_id TEXT,
                    place_name TEXT,
                    website TEXT,
                    google_url TEXT,
                    phone TEXT,
                    created_at TIMESTAMP NOT NULL
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS experience_photos (
                    id TEXT PRIMARY KEY,
                    experience_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    photo_url TEXT NOT NULL,
                    photo_thumbnail_url TEXT,
                    caption TEXT,
                    file_size INTEGER,
                    mime_type TEXT,
                    is_primary BOOLEAN DEFAULT 0,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    FOREIGN KEY (experience_id) REFERENCES experiences (id) ON DELETE CASCADE
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS experience_comments (
                    id TEXT PRIMARY KEY,
                    experience_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    parent_comment_id TEXT,
                    content TEXT NOT NULL,
                    rating INTEGER,
                    is_edited BOOLEAN DEFAULT 0,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    FOREIGN KEY (experience_id) REFERENCES experiences (id) ON DELETE CASCADE,
                    FOREIGN KEY (parent_comment_id) REFERENCES experience_comments (id) ON DELETE CASCADE
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS routes (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    title TEXT NOT NULL,
                    description TEXT,
                    total_duration INTEGER,
                    age_group TEXT,
                    gender TEXT,
                    overall_rating REAL,
                    created_at TIMESTAMP NOT NULL
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS route_steps (
                    id TEXT PRIMARY KEY,
                    route_id TEXT NOT NULL,
                    experience_id TEXT NOT NULL,
                    step_order INTEGER NOT NULL,
                    duration_minutes INTEGER,
                    travel_time_to_next INTEGER,
                    notes TEXT,
                    FOREIGN KEY (route_id) REFERENCES routes (id) ON DELETE CASCADE,
                    FOREIGN KEY (experience_id) REFERENCES experiences (id)
                )
            ''')

            conn.commit()
            logger.info("Database initialized successfully")

    # Experiences

    def save_experience(self, experience: Experience) -> Experience:
        """Validate and store an experience"""
        experience.validate()
        place = experience.place or PlaceInfo()

        with self.get_connection() as conn:
            conn.execute(f'''
                INSERT OR REPLACE INTO experiences ({EXPERIENCE_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                experience.id, experience.user_id, experience.latitude, experience.longitude,
                experience.address, experience.category, experience.rating,
                experience.age_group, experience.gender, experience.time_of_day,
                place.place_id, place.place_name, place.website, place.google_url,
                place.phone, experience.created_at.isoformat()
            ))
            conn.commit()

        logger.info(f"Saved experience {experience.id} ({experience.category})")
        return experience

    def get_experience(self, experience_id: str) -> Optional[Experience]:
        with self.get_connection() as conn:
            row = conn.execute(
                f'SELECT {EXPERIENCE_COLUMNS} FROM experiences WHERE id = ?', (experience_id,)
            ).fetchone()
            return self._row_to_experience(row) if row else None

    def get_all_experiences(self) -> List[Experience]:
        """All experiences, newest first"""
        with self.get_connection() as conn:
            rows = conn.execute(f'''
                SELECT {EXPERIENCE_COLUMNS} FROM experiences
                ORDER BY created_at DESC, rowid DESC
            ''').fetchall()
            return [self._row_to_experience(row) for row in rows]

    def count_experiences(self) -> int:
        with self.get_connection() as conn:
            return conn.execute('SELECT COUNT(*) FROM experiences').fetchone()[0]

    def get_available_categories(self) -> List[str]:
        with self.get_connection() as conn:
            rows = conn.execute('SELECT DISTINCT category FROM experiences ORDER BY category').fetchall()
            return [row[0] for row in rows]

    def _row_to_experience(self, row) -> Experience:
        """Convert database row to Experience object"""
        place = None
        if any(row[k] for k in ('place_id', 'place_name', 'website', 'google_url', 'phone')):
            place = PlaceInfo(
                place_id=row['place_id'], place_name=row['place_name'],
                website=row['website'], google_url=row['google_url'], phone=row['phone']
            )

        return Experience(
            id=row['id'], user_id=row['user_id'],
            latitude=row['latitude'], longitude=row['longitude'],
            address=row['address'], category=row['category'], rating=row['rating'],
            age_group=row['age_group'], gender=row['gender'],
            time_of_day=row['time_of_day'], place=place,
            created_at=_parse_timestamp(row['created_at'])
        )

    # Photos

    def create_photo(self, experience_id: str, user_id: str, photo_url: str,
                     photo_thumbnail_url: str = None, caption: str = None,
                     file_size: int = None, mime_type: str = None,
                     is_primary: bool = False) -> ExperiencePhoto:
        now = datetime.now()
        photo = ExperiencePhoto(
            id=_new_id(), experience_id=experience_id, user_id=user_id,
            photo_url=photo_url, photo_thumbnail_url=photo_thumbnail_url,
            caption=caption, file_size=file_size, mime_type=mime_type,
            is_primary=is_primary, created_at=now, updated_at=now
        )

        with self.get_connection() as conn:
            conn.execute('''
                INSERT INTO experience_photos
                (id, experience_id, user_id, photo_url, photo_thumbnail_url, caption,
                 file_size, mime_type, is_primary, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                photo.id, photo.experience_id, photo.user_id, photo.photo_url,
                photo.photo_thumbnail_url, photo.caption, photo.file_size,
                photo.mime_type, photo.is_primary, now.isoformat(), now.isoformat()
            ))
            conn.commit()

        return photo

    def get_experience_photos(self, experience_id: str) -> List[ExperiencePhoto]:
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT * FROM experience_photos WHERE experience_id = ?
                ORDER BY created_at DESC, rowid DESC
            ''', (experience_id,)).fetchall()
            return [self._row_to_photo(row) for row in rows]

    def get_photo(self, photo_id: str) -> Optional[ExperiencePhoto]:
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM experience_photos WHERE id = ?', (photo_id,)).fetchone()
            return self._row_to_photo(row) if row else None

    def update_photo(self, photo_id: str, caption: str = None,
                     is_primary: bool = None) -> Optional[ExperiencePhoto]:
        """Update caption and/or primary flag; None leaves a field unchanged"""
        updates, params = [], []
        if caption is not None:
            updates.append('caption = ?')
            params.append(caption)
        if is_primary is not None:
            updates.append('is_primary = ?')
            params.append(is_primary)
        updates.append('updated_at = ?')
        params.append(datetime.now().isoformat())
        params.append(photo_id)

        with self.get_connection() as conn:
            conn.execute(f"UPDATE experience_photos SET {', '.join(updates)} WHERE id = ?", params)
            conn.commit()

        return self.get_photo(photo_id)

    def delete_photo(self, photo_id: str) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM experience_photos WHERE id = ?', (photo_id,))
            conn.commit()
            return cursor.rowcount > 0

    def set_primary_photo(self, experience_id: str, photo_id: str) -> bool:
        """Make one photo primary and clear the flag on its siblings"""
        with self.get_connection() as conn:
            conn.execute('UPDATE experience_photos SET is_primary = 0 WHERE experience_id = ?',
                         (experience_id,))
            cursor = conn.execute('''
                UPDATE experience_photos SET is_primary = 1, updated_at = ?
                WHERE id = ? AND experience_id = ?
            ''', (datetime.now().isoformat(), photo_id, experience_id))
            if cursor.rowcount == 0:
                conn.rollback()
                return False
            conn.commit()
            return True

    def get_user_photos(self, user_id: str, limit: int = 20) -> List[ExperiencePhoto]:
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT * FROM experience_photos WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC LIMIT ?
            ''', (user_id, limit)).fetchall()
            return [self._row_to_photo(row) for row in rows]

    def _row_to_photo(self, row) -> ExperiencePhoto:
        return ExperiencePhoto(
            id=row['id'], experience_id=row['experience_id'], user_id=row['user_id'],
            photo_url=row['photo_url'], photo_thumbnail_url=row['photo_thumbnail_url'],
            caption=row['caption'], file_size=row['file_size'], mime_type=row['mime_type'],
            is_primary=bool(row['is_primary']),
            created_at=_parse_timestamp(row['created_at']),
            updated_at=_parse_timestamp(row['updated_at'])
        )

    # Comments

    def create_comment(self, experience_id: str, user_id: str, content: str,
                       rating: int = None, parent_comment_id: str = None) -> ExperienceComment:
        now = datetime.now()
        comment = ExperienceComment(
            id=_new_id(), experience_id=experience_id, user_id=user_id,
            content=(content or '').strip(), rating=rating,
            parent_comment_id=parent_comment_id, created_at=now, updated_at=now
        )
        comment.validate()

        if parent_comment_id:
            parent = self.get_comment(parent_comment_id)
            if parent is None or parent.experience_id != experience_id:
                raise ValidationError("reply must target a comment on the same experience")

        with self.get_connection() as conn:
            conn.execute('''
                INSERT INTO experience_comments
                (id, experience_id, user_id, parent_comment_id, content, rating,
                 is_edited, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?)
            ''', (
                comment.id, experience_id, user_id, parent_comment_id,
                comment.content, rating, now.isoformat(), now.isoformat()
            ))
            conn.commit()

        return comment

    def get_comment(self, comment_id: str) -> Optional[ExperienceComment]:
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM experience_comments WHERE id = ?', (comment_id,)).fetchone()
            return self._row_to_comment(row) if row else None

    def get_experience_comments(self, experience_id: str) -> List[ExperienceComment]:
        """Top-level comments newest first, each carrying its replies oldest first"""
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT * FROM experience_comments
                WHERE experience_id = ? AND parent_comment_id IS NULL
                ORDER BY created_at DESC, rowid DESC
            ''', (experience_id,)).fetchall()
            comments = [self._row_to_comment(row) for row in rows]

        for comment in comments:
            comment.replies = self.get_comment_replies(comment.id)
        return comments

    def get_comment_replies(self, parent_comment_id: str) -> List[ExperienceComment]:
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT * FROM experience_comments WHERE parent_comment_id = ?
                ORDER BY created_at ASC, rowid ASC
            ''', (parent_comment_id,)).fetchall()
            return [self._row_to_comment(row) for row in rows]

    def update_comment(self, comment_id: str, content: str = None,
                       rating: int = None) -> Optional[ExperienceComment]:
        comment = self.get_comment(comment_id)
        if comment is None:
            return None

        if content is not None:
            comment.content = content.strip()
        if rating is not None:
            comment.rating = rating
        comment.validate()
        comment.is_edited = True
        comment.updated_at = datetime.now()

        with self.get_connection() as conn:
            conn.execute('''
                UPDATE experience_comments
                SET content = ?, rating = ?, is_edited = 1, updated_at = ?
                WHERE id = ?
            ''', (comment.content, comment.rating, comment.updated_at.isoformat(), comment_id))
            conn.commit()

        return comment

    def delete_comment(self, comment_id: str) -> bool:
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM experience_comments WHERE id = ?', (comment_id,))
            conn.commit()
            return cursor.rowcount > 0

    def count_comments(self, experience_id: str) -> int:
        with self.get_connection() as conn:
            return conn.execute(
                'SELECT COUNT(*) FROM experience_comments WHERE experience_id = ?', (experience_id,)
            ).fetchone()[0]

    def get_user_comments(self, user_id: str, limit: int = 20) -> List[ExperienceComment]:
        """A user's top-level comments with the category and address of each experience"""
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT c.*, e.category AS experience_category, e.address AS experience_address
                FROM experience_comments c
                JOIN experiences e ON c.experience_id = e.id
                WHERE c.user_id = ? AND c.parent_comment_id IS NULL
                ORDER BY c.created_at DESC, c.rowid DESC
                LIMIT ?
            ''', (user_id, limit)).fetchall()

        comments = []
        for row in rows:
            comment = self._row_to_comment(row)
            comment.experience_summary = {
                'category': row['experience_category'],
                'address': row['experience_address']
            }
            comments.append(comment)
        return comments

    def _row_to_comment(self, row) -> ExperienceComment:
        return ExperienceComment(
            id=row['id'], experience_id=row['experience_id'], user_id=row['user_id'],
            parent_comment_id=row['parent_comment_id'], content=row['content'],
            rating=row['rating'], is_edited=bool(row['is_edited']),
            created_at=_parse_timestamp(row['created_at']),
            updated_at=_parse_timestamp(row['updated_at'])
        )

    # Routes

    def save_route(self, route: Route) -> Route:
        """Insert a route and its steps in one transaction"""
        route.validate()

        with self.get_connection() as conn:
            conn.execute('''
                INSERT INTO routes
                (id, user_id, title, description, total_duration, age_group, gender,
                 overall_rating, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                route.id, route.user_id, route.title, route.description,
                route.total_duration, route.age_group, route.gender,
                route.overall_rating, route.created_at.isoformat()
            ))
            for step in route.steps:
                step.id = step.id or _new_id()
                conn.execute('''
                    INSERT INTO route_steps
                    (id, route_id, experience_id, step_order, duration_minutes,
                     travel_time_to_next, notes)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                ''', (
                    step.id, route.id, step.experience_id, step.step_order,
                    step.duration_minutes, step.travel_time_to_next, step.notes
                ))
            conn.commit()

        logger.info(f"Saved route {route.id} with {len(route.steps)} steps")
        return route

    def get_route(self, route_id: str) -> Optional[Route]:
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM routes WHERE id = ?', (route_id,)).fetchone()
            if not row:
                return None
            return self._row_to_route(conn, row)

    def get_routes(self) -> List[Route]:
        """All routes newest first, steps in order with their experiences attached"""
        with self.get_connection() as conn:
            rows = conn.execute('SELECT * FROM routes ORDER BY created_at DESC, rowid DESC').fetchall()
            return [self._row_to_route(conn, row) for row in rows]

    def _row_to_route(self, conn, row) -> Route:
        step_rows = conn.execute(f'''
            SELECT s.id AS step_id, s.experience_id AS step_experience_id, s.step_order,
                   s.duration_minutes, s.travel_time_to_next, s.notes,
                   {', '.join('e.' + c.strip() for c in EXPERIENCE_COLUMNS.split(','))}
            FROM route_steps s
            JOIN experiences e ON s.experience_id = e.id
            WHERE s.route_id = ?
            ORDER BY s.step_order
        ''', (row['id'],)).fetchall()

        steps = [
            RouteStep(
                id=s['step_id'], experience_id=s['step_experience_id'],
                step_order=s['step_order'], duration_minutes=s['duration_minutes'],
                travel_time_to_next=s['travel_time_to_next'], notes=s['notes'] or '',
                experience=self._row_to_experience(s)
            )
            for s in step_rows
        ]

        return Route(
            id=row['id'], user_id=row['user_id'], title=row['title'],
            description=row['description'] or '', age_group=row['age_group'],
            gender=row['gender'], overall_rating=row['overall_rating'],
            steps=steps, created_at=_parse_timestamp(row['created_at'])
        )

    def get_stats(self) -> dict:
        with self.get_connection() as conn:
            def count(table):
                return conn.execute(f'SELECT COUNT(*) FROM {table}').fetchone()[0]

            return {
                'total_experiences': count('experiences'),
                'total_photos': count('experience_photos'),
                'total_comments': count('experience_comments'),
                'total_routes': count('routes'),
                'categories_covered': len(self.get_available_categories())
            }
