"""
User repository for database operations
"""

import logging
from datetime import date, datetime

from ..connection import DatabaseConnection
from ..models import User, UserProfile
from ....utils import utc_now

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user-related database operations"""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    def get_or_create_user(
        self,
        telegram_id: int,
        first_name: str | None,
        last_name: str | None = None,
        username: str | None = None,
        now: datetime | None = None,
    ) -> User:
        """
        Get a user by Telegram ID, registering them on first contact

        Concurrent first contacts are safe: the insert is ignored when the
        Telegram ID is already taken and the row is read back either way.
        """
        now = now or utc_now()
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO users (
                    telegram_id, first_name, last_name, username,
                    created_at, updated_at, last_seen_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (telegram_id, first_name, last_name, username, now, now, now),
            )
            if cursor.rowcount == 0:
                conn.execute(
                    """
                    UPDATE users
                    SET first_name = COALESCE(?, first_name),
                        last_name = COALESCE(?, last_name),
                        username = COALESCE(?, username),
                        last_seen_at = ?
                    WHERE telegram_id = ?
                    """,
                    (first_name, last_name, username, now, telegram_id),
                )
            else:
                logger.info(f"Registered new user with Telegram ID {telegram_id}")
            conn.commit()

            row = conn.execute(
                "SELECT * FROM users WHERE telegram_id = ?", (telegram_id,)
            ).fetchone()
            return dict(row)

    def get_user_by_telegram_id(self, telegram_id: int) -> User | None:
        """Get user by Telegram ID"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM users WHERE telegram_id = ?",
                (telegram_id,)
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_user_by_id(self, user_id: int) -> User | None:
        """Get user by internal ID"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def update_display_name(
        self, user_id: int, name: str, max_changes: int, now: datetime | None = None
    ) -> int | None:
        """
        Set a user's display name if they have changes left

        Returns:
            Changes remaining after this one, or None if the limit was reached
        """
        now = now or utc_now()
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE users
                SET display_name = ?, name_change_count = name_change_count + 1, updated_at = ?
                WHERE id = ? AND name_change_count < ?
                """,
                (name, now, user_id, max_changes),
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None

            row = conn.execute(
                "SELECT name_change_count FROM users WHERE id = ?", (user_id,)
            ).fetchone()
            return max(0, max_changes - row["name_change_count"])

    def get_user_profile(self, user_id: int, today: date) -> UserProfile | None:
        """Get XP, streak and activity counts for a user"""
        with self.db_connection.get_connection() as conn:
            user = conn.execute(
                "SELECT xp_total, streak_count FROM users WHERE id = ?", (user_id,)
            ).fetchone()
            if not user:
                return None

            words = conn.execute(
                """
                SELECT
                    COUNT(*) AS words_seen,
                    SUM(CASE WHEN ignored = 0 AND next_review_date <= ? THEN 1 ELSE 0 END) AS words_due,
                    SUM(CASE WHEN ignored = 1 THEN 1 ELSE 0 END) AS words_ignored
                FROM review_states
                WHERE user_id = ?
                """,
                (today, user_id),
            ).fetchone()

            duels = conn.execute(
                """
                SELECT
                    COUNT(*) AS duels_played,
                    SUM(CASE WHEN winner_user_id = ? THEN 1 ELSE 0 END) AS duels_won
                FROM duel_matches
                WHERE status = 'completed' AND (player1_id = ? OR player2_id = ?)
                """,
                (user_id, user_id, user_id),
            ).fetchone()

            return {
                "xp_total": user["xp_total"],
                "streak_count": user["streak_count"],
                "words_seen": words["words_seen"] or 0,
                "words_due": words["words_due"] or 0,
                "words_ignored": words["words_ignored"] or 0,
                "duels_played": duels["duels_played"] or 0,
                "duels_won": duels["duels_won"] or 0,
            }
