"""
XP awards, daily streaks and leaderboards
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from .config import get_settings
from .core.database.connection import Statement
from .core.database.database_manager import DatabaseManager
from .core.database.repositories.xp_repository import ACTIVITY_DUEL, ACTIVITY_REVIEW
from .exceptions import ConditionFailedError
from .utils import format_json_safely, local_day, local_day_bounds, utc_now

logger = logging.getLogger(__name__)

STREAK_STARTED = "started"
STREAK_EXTENDED = "extended"
STREAK_UNCHANGED = "unchanged"

DUEL_WIN = "win"
DUEL_DRAW = "draw"
DUEL_LOSE = "lose"


@dataclass
class StreakResult:
    """Outcome of a streak check"""

    status: str
    streak_count: int
    day_xp: int


class XpLedger:
    """Records XP in the ledger and keeps totals and streaks in step"""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.settings = get_settings()

    def review_xp(self, level: int | None) -> int:
        """XP for a correct review answer on a word of the given level"""
        by_level = self.settings.review_xp_by_level
        return by_level.get(level, by_level[1])

    def duel_xp(self, correct_count: int, result: str) -> int:
        """XP for a finished duel"""
        bonus = {
            DUEL_WIN: self.settings.duel_win_bonus,
            DUEL_DRAW: self.settings.duel_draw_bonus,
            DUEL_LOSE: self.settings.duel_lose_bonus,
        }[result]
        return correct_count * self.settings.duel_question_xp + bonus

    def review_award_statements(
        self, user_id: int, question_id: int, word_id: int, level: int | None, now: datetime
    ) -> list[Statement]:
        """Statements awarding XP for a correct review answer"""
        return self.db_manager.xp_repo.award_statements(
            user_id,
            ACTIVITY_REVIEW,
            question_id,
            self.review_xp(level),
            format_json_safely({"word_id": word_id, "level": level}),
            now,
        )

    def settle_duel_player(
        self, match_id: int, user_id: int, correct_count: int, result: str, now: datetime
    ) -> int | None:
        """
        Award a player's duel XP once

        Returns:
            XP awarded, or None if the player was already settled
        """
        xp = self.duel_xp(correct_count, result)
        statements = self.db_manager.xp_repo.award_once_statements(
            user_id,
            ACTIVITY_DUEL,
            match_id,
            xp,
            format_json_safely({"correct": correct_count, "result": result}),
            now,
        )
        try:
            self.db_manager.batch(statements)
        except ConditionFailedError:
            logger.debug(f"User {user_id} already settled for duel {match_id}")
            return None

        logger.info(f"Settled duel {match_id} for user {user_id}: {result}, +{xp} XP")
        return xp

    def update_streak(self, user_id: int, now: datetime | None = None) -> StreakResult:
        """
        Advance the daily streak once today's XP reaches the threshold

        The write only lands if the last streak date is unchanged since it
        was read, so concurrent awards advance the streak at most once.
        """
        now = now or utc_now()
        offset = self.settings.streak_utc_offset_minutes
        today = local_day(now, offset)
        start, end = local_day_bounds(today, offset)

        day_xp = self.db_manager.xp_repo.sum_xp_between(user_id, start, end)
        current = self.db_manager.xp_repo.get_streak(user_id) or {
            "streak_count": 0,
            "last_streak_date": None,
        }
        streak_count = current["streak_count"] or 0
        last_date = current["last_streak_date"]

        if day_xp < self.settings.streak_daily_xp_threshold or last_date == today:
            return StreakResult(STREAK_UNCHANGED, streak_count, day_xp)

        if last_date == today - timedelta(days=1):
            status, new_count = STREAK_EXTENDED, streak_count + 1
        else:
            status, new_count = STREAK_STARTED, 1

        if not self.db_manager.xp_repo.update_streak(user_id, new_count, today, last_date, now):
            stored = self.db_manager.xp_repo.get_streak(user_id) or {}
            return StreakResult(STREAK_UNCHANGED, stored.get("streak_count") or 0, day_xp)

        logger.info(f"Streak {status} for user {user_id}: {new_count} days")
        return StreakResult(status, new_count, day_xp)

    def current_streak(self, user_id: int, now: datetime | None = None) -> int:
        """Streak to display: zero once a local day has been missed"""
        now = now or utc_now()
        stored = self.db_manager.xp_repo.get_streak(user_id)
        if not stored or not stored["last_streak_date"]:
            return 0

        today = local_day(now, self.settings.streak_utc_offset_minutes)
        if stored["last_streak_date"] in (today, today - timedelta(days=1)):
            return stored["streak_count"] or 0
        return 0

    def leaderboard(self, period: str = "all", limit: int = 10, now: datetime | None = None):
        """
        Top users by XP

        Args:
            period: "all", "week" (last 7 days) or "month" (last 30 days)
            limit: Number of rows
        """
        since = self._period_start(period, now)
        if since is None:
            return self.db_manager.xp_repo.get_all_time_leaderboard(limit)
        return self.db_manager.xp_repo.get_leaderboard_since(since, limit)

    def user_rank(self, user_id: int, period: str = "all", now: datetime | None = None):
        """Rank and XP of one user for a leaderboard period, None without XP"""
        since = self._period_start(period, now)
        if since is None:
            return self.db_manager.xp_repo.get_all_time_rank(user_id)
        return self.db_manager.xp_repo.get_rank_since(user_id, since)

    def _period_start(self, period: str, now: datetime | None) -> datetime | None:
        if period == "all":
            return None
        days = {"week": 7, "month": 30}.get(period)
        if days is None:
            raise ValueError(f"Unknown leaderboard period: {period}")
        return (now or utc_now()) - timedelta(days=days)
