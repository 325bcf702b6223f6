"""
Duel repository for matches, allocated questions and answers
"""

import logging
from datetime import datetime
from typing import Any

from ....exceptions import ConditionFailedError
from ..connection import DatabaseConnection, Statement
from ..models import DuelMatch, DuelQuestion

logger = logging.getLogger(__name__)

STATUS_WAITING = "waiting"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_EXPIRED = "expired"


class DuelRepository:
    """Repository for duel-related database operations"""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    # Matches

    def get_match(self, match_id: int) -> DuelMatch | None:
        """Get match by ID"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute("SELECT * FROM duel_matches WHERE id = ?", (match_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_active_match_for_user(self, user_id: int) -> DuelMatch | None:
        """Get a waiting or in-progress match the user plays in"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM duel_matches
                WHERE status IN ('waiting', 'in_progress')
                  AND (player1_id = ? OR player2_id = ?)
                ORDER BY id
                LIMIT 1
                """,
                (user_id, user_id),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def create_match_if_idle(
        self, user_id: int, difficulty: str, now: datetime
    ) -> int | None:
        """
        Create a waiting match owned by the user unless they already play one

        Returns:
            The new match ID, or None if the user has an active match
        """
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO duel_matches (difficulty, status, player1_id, created_at)
                SELECT ?, 'waiting', ?, ?
                WHERE NOT EXISTS (
                    SELECT 1 FROM duel_matches
                    WHERE status IN ('waiting', 'in_progress')
                      AND (player1_id = ? OR player2_id = ?)
                )
                """,
                (difficulty, user_id, now, user_id, user_id),
            )
            conn.commit()
            return cursor.lastrowid if cursor.rowcount > 0 else None

    def find_waiting_match(self, difficulty: str, user_id: int) -> DuelMatch | None:
        """Get the oldest waiting match of a difficulty opened by someone else"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM duel_matches
                WHERE status = 'waiting' AND difficulty = ?
                  AND player2_id IS NULL AND player1_id != ?
                ORDER BY created_at, id
                LIMIT 1
                """,
                (difficulty, user_id),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def join_match(self, match_id: int, user_id: int, now: datetime) -> bool:
        """
        Take the second seat of a waiting match

        Returns:
            True if this call won the seat
        """
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE duel_matches
                SET player2_id = ?, status = 'in_progress', started_at = ?
                WHERE id = ? AND player2_id IS NULL AND status = 'waiting'
                """,
                (user_id, now, match_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def discard_waiting_match(self, match_id: int) -> bool:
        """
        Delete a match nobody joined, with its questions and answers

        Returns:
            False if the match was joined meanwhile; nothing is deleted then
        """
        try:
            self.db_connection.batch(
                [
                    Statement(
                        """
                        DELETE FROM duel_matches
                        WHERE id = ? AND status = 'waiting' AND player2_id IS NULL
                        """,
                        (match_id,),
                        guard=True,
                    ),
                    Statement("DELETE FROM duel_answers WHERE duel_id = ?", (match_id,)),
                    Statement("DELETE FROM duel_questions WHERE duel_id = ?", (match_id,)),
                ]
            )
        except ConditionFailedError:
            return False
        return True

    def expire_match(self, match_id: int) -> bool:
        """
        Move an in-progress match to expired

        Returns:
            True if this call performed the transition
        """
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE duel_matches SET status = 'expired' WHERE id = ? AND status = 'in_progress'",
                (match_id,),
            )
            conn.commit()
            return cursor.rowcount > 0

    def complete_match(
        self,
        match_id: int,
        player1_correct: int,
        player2_correct: int,
        winner_user_id: int | None,
        is_draw: bool,
        now: datetime,
    ) -> bool:
        """
        Move a match to completed with its outcome

        Returns:
            True if this call performed the transition
        """
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE duel_matches
                SET status = 'completed', player1_correct = ?, player2_correct = ?,
                    winner_user_id = ?, is_draw = ?, completed_at = ?
                WHERE id = ? AND status NOT IN ('completed', 'expired')
                """,
                (
                    player1_correct,
                    player2_correct,
                    winner_user_id,
                    1 if is_draw else 0,
                    now,
                    match_id,
                ),
            )
            conn.commit()
            return cursor.rowcount > 0

    # Questions

    def count_questions(self, duel_id: int) -> int:
        """Number of questions allocated to a match"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT COUNT(*) AS cnt FROM duel_questions WHERE duel_id = ?", (duel_id,)
            )
            return cursor.fetchone()["cnt"]

    def add_question(
        self, duel_id: int, question_index: int, word_id: int, word_question_id: int
    ) -> bool:
        """Allocate a question slot; an already taken slot is left as is"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO duel_questions (duel_id, question_index, word_id, word_question_id)
                VALUES (?, ?, ?, ?)
                """,
                (duel_id, question_index, word_id, word_question_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def get_duel_question(self, duel_question_id: int) -> dict[str, Any] | None:
        """Get an allocated question joined with its catalog question"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT dq.id AS duel_question_id, dq.duel_id, dq.question_index,
                       dq.word_id, dq.word_question_id,
                       wq.question_text, wq.option_a, wq.option_b, wq.option_c, wq.option_d,
                       wq.correct_option, wq.explanation_text, wq.question_style
                FROM duel_questions dq
                JOIN word_questions wq ON wq.id = dq.word_question_id
                WHERE dq.id = ?
                """,
                (duel_question_id,),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_duel_question_by_index(
        self, duel_id: int, question_index: int
    ) -> dict[str, Any] | None:
        """Get the allocated question at a 1-based position"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT id FROM duel_questions WHERE duel_id = ? AND question_index = ?",
                (duel_id, question_index),
            )
            row = cursor.fetchone()
        return self.get_duel_question(row["id"]) if row else None

    def get_questions(self, duel_id: int) -> list[DuelQuestion]:
        """Get the allocated questions of a match in order"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM duel_questions WHERE duel_id = ? ORDER BY question_index",
                (duel_id,),
            )
            return [dict(row) for row in cursor.fetchall()]

    # Answers

    def has_answered(self, duel_question_id: int, user_id: int) -> bool:
        """Check if the user already answered a duel question"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT 1 FROM duel_answers WHERE duel_question_id = ? AND user_id = ?",
                (duel_question_id, user_id),
            )
            return cursor.fetchone() is not None

    def add_answer_if_absent(
        self,
        duel_id: int,
        duel_question_id: int,
        user_id: int,
        chosen_option: str,
        is_correct: bool,
        now: datetime,
    ) -> bool:
        """
        Record an answer unless one exists for (duel question, user)

        Returns:
            True if the answer was recorded
        """
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO duel_answers (
                    duel_id, duel_question_id, user_id, chosen_option, is_correct, answered_at
                )
                SELECT ?, ?, ?, ?, ?, ?
                WHERE NOT EXISTS (
                    SELECT 1 FROM duel_answers WHERE duel_question_id = ? AND user_id = ?
                )
                """,
                (
                    duel_id, duel_question_id, user_id, chosen_option,
                    1 if is_correct else 0, now,
                    duel_question_id, user_id,
                ),
            )
            conn.commit()
            return cursor.rowcount > 0

    def count_answers(self, duel_id: int, user_id: int) -> int:
        """Number of questions a player answered in a match"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT COUNT(*) AS cnt FROM duel_answers WHERE duel_id = ? AND user_id = ?",
                (duel_id, user_id),
            )
            return cursor.fetchone()["cnt"]

    def count_correct(self, duel_id: int, user_id: int) -> int:
        """Number of correct answers of a player in a match"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT COUNT(*) AS cnt FROM duel_answers
                WHERE duel_id = ? AND user_id = ? AND is_correct = 1
                """,
                (duel_id, user_id),
            )
            return cursor.fetchone()["cnt"]

    # Maintenance

    def cleanup_statements(
        self, expire_started_before: datetime, purge_created_before: datetime
    ) -> list[Statement]:
        """
        Statements for the stale match sweep

        In-progress matches started before the expiry cutoff are expired;
        waiting matches without a second player created before the purge
        cutoff are deleted together with their answers and questions.
        """
        stale_waiting = """
            SELECT id FROM duel_matches
            WHERE status = 'waiting' AND player2_id IS NULL AND created_at < ?
        """
        return [
            Statement(
                """
                UPDATE duel_matches SET status = 'expired'
                WHERE status = 'in_progress' AND started_at < ?
                """,
                (expire_started_before,),
            ),
            Statement(
                f"DELETE FROM duel_answers WHERE duel_id IN ({stale_waiting})",  # noqa: S608
                (purge_created_before,),
            ),
            Statement(
                f"DELETE FROM duel_questions WHERE duel_id IN ({stale_waiting})",  # noqa: S608
                (purge_created_before,),
            ),
            Statement(
                """
                DELETE FROM duel_matches
                WHERE status = 'waiting' AND player2_id IS NULL AND created_at < ?
                """,
                (purge_created_before,),
            ),
        ]
