"""
History repository for shown and answered questions
"""

import logging
from datetime import datetime

from ..connection import DatabaseConnection, Statement
from ..models import QuestionHistory

logger = logging.getLogger(__name__)

CONTEXT_REVIEW = "review"
CONTEXT_DUEL = "duel"


class HistoryRepository:
    """Repository for the per-user question history"""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    def record_shown(
        self, user_id: int, word_id: int, question_id: int, context: str, now: datetime
    ) -> bool:
        """
        Record that a question was delivered to a user

        Re-showing an answered question clears its answer so it can be
        answered again; repeating the delivery of an unanswered one is a no-op.

        Returns:
            True if a record was inserted or reset
        """
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO question_history (
                    user_id, word_id, question_id, context, shown_at, is_correct, answered_at
                )
                VALUES (?, ?, ?, ?, ?, NULL, NULL)
                ON CONFLICT(user_id, question_id, context) DO UPDATE SET
                    shown_at = excluded.shown_at,
                    is_correct = NULL,
                    answered_at = NULL
                WHERE question_history.answered_at IS NOT NULL
                """,
                (user_id, word_id, question_id, context, now),
            )
            conn.commit()
            return cursor.rowcount > 0

    def get_record(
        self, user_id: int, question_id: int, context: str
    ) -> QuestionHistory | None:
        """Get the history record of a question for a user"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM question_history
                WHERE user_id = ? AND question_id = ? AND context = ?
                """,
                (user_id, question_id, context),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def answered_statement(
        self,
        user_id: int,
        question_id: int,
        context: str,
        is_correct: bool,
        now: datetime,
    ) -> Statement:
        """Guard statement marking a shown, unanswered question as answered"""
        return Statement(
            """
            UPDATE question_history
            SET is_correct = ?, answered_at = ?
            WHERE user_id = ? AND question_id = ? AND context = ? AND answered_at IS NULL
            """,
            (1 if is_correct else 0, now, user_id, question_id, context),
            guard=True,
        )
