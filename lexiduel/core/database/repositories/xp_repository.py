"""
XP repository for the ledger, streaks and leaderboards
"""

import logging
from datetime import date, datetime
from typing import Any

from ..connection import DatabaseConnection, Statement
from ..models import XpLedgerEntry

logger = logging.getLogger(__name__)

ACTIVITY_REVIEW = "review_question"
ACTIVITY_DUEL = "duel_match"


class XpRepository:
    """Repository for XP ledger entries and derived totals"""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    def award_statements(
        self,
        user_id: int,
        activity_type: str,
        ref_id: int | None,
        xp_delta: int,
        meta_json: str | None,
        now: datetime,
    ) -> list[Statement]:
        """Ledger insert and total increment for an unconditional award"""
        return [
            Statement(
                """
                INSERT INTO xp_ledger (user_id, activity_type, ref_id, xp_delta, meta_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, activity_type, ref_id, xp_delta, meta_json, now),
            ),
            self._increment_total_statement(user_id, xp_delta),
        ]

    def award_once_statements(
        self,
        user_id: int,
        activity_type: str,
        ref_id: int,
        xp_delta: int,
        meta_json: str | None,
        now: datetime,
    ) -> list[Statement]:
        """
        Ledger insert and total increment for an award keyed on
        (activity_type, ref_id, user_id)

        The insert is a guard: if an entry with the same key exists the batch
        fails and the total is left untouched.
        """
        return [
            Statement(
                """
                INSERT INTO xp_ledger (user_id, activity_type, ref_id, xp_delta, meta_json, created_at)
                SELECT ?, ?, ?, ?, ?, ?
                WHERE NOT EXISTS (
                    SELECT 1 FROM xp_ledger
                    WHERE activity_type = ? AND ref_id = ? AND user_id = ?
                )
                """,
                (
                    user_id, activity_type, ref_id, xp_delta, meta_json, now,
                    activity_type, ref_id, user_id,
                ),
                guard=True,
            ),
            self._increment_total_statement(user_id, xp_delta),
        ]

    def _increment_total_statement(self, user_id: int, xp_delta: int) -> Statement:
        return Statement(
            "UPDATE users SET xp_total = xp_total + ? WHERE id = ?",
            (xp_delta, user_id),
        )

    def has_entry(self, user_id: int, activity_type: str, ref_id: int) -> bool:
        """
        Check if a ledger entry exists for an activity

        For inspection only; once-only awards check existence inside their
        guarded insert (see ``award_once_statements``).
        """
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT 1 FROM xp_ledger
                WHERE activity_type = ? AND ref_id = ? AND user_id = ?
                """,
                (activity_type, ref_id, user_id),
            )
            return cursor.fetchone() is not None

    def get_entries(self, user_id: int) -> list[XpLedgerEntry]:
        """Get all ledger entries of a user, oldest first"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM xp_ledger WHERE user_id = ? ORDER BY id", (user_id,)
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_ledger_total(self, user_id: int) -> int:
        """Sum of all ledger deltas of a user"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT COALESCE(SUM(xp_delta), 0) AS total FROM xp_ledger WHERE user_id = ?",
                (user_id,),
            )
            return cursor.fetchone()["total"]

    def sum_xp_between(self, user_id: int, start: datetime, end: datetime) -> int:
        """Sum of a user's ledger deltas created in [start, end)"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT COALESCE(SUM(xp_delta), 0) AS total
                FROM xp_ledger
                WHERE user_id = ? AND created_at >= ? AND created_at < ?
                """,
                (user_id, start, end),
            )
            return cursor.fetchone()["total"]

    def get_streak(self, user_id: int) -> dict[str, Any] | None:
        """Get the stored streak of a user"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT streak_count, last_streak_date FROM users WHERE id = ?",
                (user_id,),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def update_streak(
        self,
        user_id: int,
        streak_count: int,
        streak_date: date,
        previous_date: date | None,
        now: datetime,
    ) -> bool:
        """
        Store a new streak if the last streak date is still the one read

        Returns:
            True if the streak was written
        """
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE users
                SET streak_count = ?, last_streak_date = ?, updated_at = ?
                WHERE id = ? AND last_streak_date IS ?
                """,
                (streak_count, streak_date, now, user_id, previous_date),
            )
            conn.commit()
            return cursor.rowcount > 0

    def get_all_time_leaderboard(self, limit: int = 10) -> list[dict[str, Any]]:
        """Top users by total XP"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT id AS user_id, telegram_id, display_name, username, first_name,
                       xp_total AS xp
                FROM users
                WHERE xp_total > 0
                ORDER BY xp_total DESC, id
                LIMIT ?
                """,
                (limit,),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_leaderboard_since(self, since: datetime, limit: int = 10) -> list[dict[str, Any]]:
        """Top users by XP earned since a point in time"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT u.id AS user_id, u.telegram_id, u.display_name, u.username, u.first_name,
                       SUM(l.xp_delta) AS xp
                FROM xp_ledger l
                JOIN users u ON u.id = l.user_id
                WHERE l.created_at >= ?
                GROUP BY u.id
                HAVING SUM(l.xp_delta) > 0
                ORDER BY xp DESC, u.id
                LIMIT ?
                """,
                (since, limit),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_all_time_rank(self, user_id: int) -> dict[str, Any] | None:
        """Rank and total XP of a user, None without XP"""
        with self.db_connection.get_connection() as conn:
            row = conn.execute("SELECT xp_total FROM users WHERE id = ?", (user_id,)).fetchone()
            if not row or row["xp_total"] <= 0:
                return None

            xp = row["xp_total"]
            cursor = conn.execute(
                "SELECT COUNT(*) + 1 AS rank FROM users WHERE xp_total > ?", (xp,)
            )
            return {"rank": cursor.fetchone()["rank"], "xp": xp}

    def get_rank_since(self, user_id: int, since: datetime) -> dict[str, Any] | None:
        """Rank and XP earned since a point in time, None without XP"""
        with self.db_connection.get_connection() as conn:
            row = conn.execute(
                """
                SELECT COALESCE(SUM(xp_delta), 0) AS xp
                FROM xp_ledger
                WHERE user_id = ? AND created_at >= ?
                """,
                (user_id, since),
            ).fetchone()
            xp = row["xp"]
            if xp <= 0:
                return None

            cursor = conn.execute(
                """
                SELECT COUNT(*) + 1 AS rank
                FROM (
                    SELECT user_id, SUM(xp_delta) AS xp
                    FROM xp_ledger
                    WHERE created_at >= ?
                    GROUP BY user_id
                ) t
                WHERE t.xp > ?
                """,
                (since, xp),
            )
            return {"rank": cursor.fetchone()["rank"], "xp": xp}
