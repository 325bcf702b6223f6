"""
Progress repository for per-user spaced repetition state
"""

import logging
from datetime import date, datetime

from ..connection import DatabaseConnection, Statement
from ..models import ReviewState, Word
from ....spaced_repetition import ReviewUpdate
from ....utils import utc_now

logger = logging.getLogger(__name__)


class ProgressRepository:
    """Repository for review states of catalog words"""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    def get_review_state(self, user_id: int, word_id: int) -> ReviewState | None:
        """Get the review state of a word for a user"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM review_states WHERE user_id = ? AND word_id = ?",
                (user_id, word_id),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def pick_word_for_review(self, user_id: int, today: date) -> Word | None:
        """
        Pick the next word to review

        Priority: due words (earliest date first, then catalog order), then
        words never seen, then any other word the user has state for.
        Ignored and inactive words are never picked.

        Returns:
            The word, or None if nothing is left to review
        """
        with self.db_connection.get_connection() as conn:
            # Due words
            row = conn.execute(
                """
                SELECT w.* FROM review_states rs
                JOIN words w ON w.id = rs.word_id
                WHERE rs.user_id = ? AND rs.ignored = 0 AND w.is_active = 1
                  AND rs.next_review_date <= ?
                ORDER BY rs.next_review_date, w.order_index, w.id
                LIMIT 1
                """,
                (user_id, today),
            ).fetchone()
            if row:
                return dict(row)

            # Words the user has never seen
            row = conn.execute(
                """
                SELECT w.* FROM words w
                WHERE w.is_active = 1
                  AND NOT EXISTS (
                      SELECT 1 FROM review_states rs
                      WHERE rs.word_id = w.id AND rs.user_id = ?
                  )
                ORDER BY w.order_index, w.id
                LIMIT 1
                """,
                (user_id,),
            ).fetchone()
            if row:
                return dict(row)

            # Nothing due and nothing new: keep drilling known words
            row = conn.execute(
                """
                SELECT w.* FROM review_states rs
                JOIN words w ON w.id = rs.word_id
                WHERE rs.user_id = ? AND rs.ignored = 0 AND w.is_active = 1
                ORDER BY rs.next_review_date, w.order_index, w.id
                LIMIT 1
                """,
                (user_id,),
            ).fetchone()
            return dict(row) if row else None

    def ensure_review_state(
        self,
        user_id: int,
        word_id: int,
        today: date,
        default_ease: float = 2.5,
        now: datetime | None = None,
    ) -> None:
        """Create a default review state if the user has none for the word"""
        now = now or utc_now()
        with self.db_connection.get_connection() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO review_states (
                    user_id, word_id, interval_days, repetitions, ease_factor,
                    next_review_date, ignored, correct_streak, question_stage,
                    created_at, updated_at
                )
                VALUES (?, ?, 1, 0, ?, ?, 0, 0, 1, ?, ?)
                """,
                (user_id, word_id, default_ease, today, now, now),
            )
            conn.commit()

    def ignore_word(
        self,
        user_id: int,
        word_id: int,
        today: date,
        default_ease: float = 2.5,
        now: datetime | None = None,
    ) -> None:
        """Exclude a word from the user's reviews"""
        now = now or utc_now()
        with self.db_connection.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO review_states (
                    user_id, word_id, interval_days, repetitions, ease_factor,
                    next_review_date, ignored, correct_streak, question_stage,
                    created_at, updated_at
                )
                VALUES (?, ?, 1, 0, ?, ?, 1, 0, 1, ?, ?)
                ON CONFLICT(user_id, word_id) DO UPDATE SET
                    ignored = 1,
                    updated_at = excluded.updated_at
                """,
                (user_id, word_id, default_ease, today, now, now),
            )
            conn.commit()
        logger.info(f"User {user_id} ignored word {word_id}")

    def review_update_statement(
        self, user_id: int, word_id: int, update: ReviewUpdate, now: datetime
    ) -> Statement:
        """Statement writing the new review state of a word"""
        return Statement(
            """
            INSERT INTO review_states (
                user_id, word_id, interval_days, repetitions, ease_factor,
                next_review_date, last_reviewed_at, ignored, correct_streak,
                question_stage, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?)
            ON CONFLICT(user_id, word_id) DO UPDATE SET
                interval_days = excluded.interval_days,
                repetitions = excluded.repetitions,
                ease_factor = excluded.ease_factor,
                next_review_date = excluded.next_review_date,
                last_reviewed_at = excluded.last_reviewed_at,
                correct_streak = excluded.correct_streak,
                question_stage = excluded.question_stage,
                updated_at = excluded.updated_at
            """,
            (
                user_id,
                word_id,
                update.interval_days,
                update.repetitions,
                update.ease_factor,
                update.next_review_date,
                update.last_reviewed_at,
                update.correct_streak,
                update.question_stage,
                now,
                now,
            ),
        )
