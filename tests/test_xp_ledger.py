"""
Unit tests for XP awards, streaks and leaderboards
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from lexiduel.core.database.repositories.xp_repository import ACTIVITY_REVIEW
from lexiduel.xp_ledger import (
    DUEL_DRAW,
    DUEL_LOSE,
    DUEL_WIN,
    STREAK_EXTENDED,
    STREAK_STARTED,
    STREAK_UNCHANGED,
)

NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


def award(temp_db, user_id, xp, now):
    temp_db.batch(temp_db.xp_repo.award_statements(user_id, ACTIVITY_REVIEW, None, xp, None, now))


class TestXpAmounts:
    """Test XP rules"""

    def test_review_xp_by_level(self, ledger):
        assert [ledger.review_xp(level) for level in (1, 2, 3, 4)] == [5, 8, 12, 16]
        assert ledger.review_xp(None) == 5

    def test_duel_xp(self, ledger):
        assert ledger.duel_xp(5, DUEL_WIN) == 80
        assert ledger.duel_xp(3, DUEL_LOSE) == 30
        assert ledger.duel_xp(4, DUEL_DRAW) == 50
        assert ledger.duel_xp(0, DUEL_LOSE) == 0


class TestSettlement:
    """Test once-only duel awards"""

    def test_settle_once(self, temp_db, ledger, add_user):
        user = add_user(1)

        assert ledger.settle_duel_player(42, user["id"], 5, DUEL_WIN, NOW) == 80
        assert ledger.settle_duel_player(42, user["id"], 5, DUEL_WIN, NOW) is None

        assert temp_db.get_user_by_id(user["id"])["xp_total"] == 80
        assert len(temp_db.xp_repo.get_entries(user["id"])) == 1

    def test_ledger_matches_total(self, temp_db, ledger, add_user):
        user = add_user(1)
        award(temp_db, user["id"], 12, NOW)
        ledger.settle_duel_player(7, user["id"], 2, DUEL_LOSE, NOW)
        ledger.settle_duel_player(8, user["id"], 3, DUEL_DRAW, NOW)

        total = temp_db.get_user_by_id(user["id"])["xp_total"]
        assert total == 12 + 20 + 40
        assert temp_db.xp_repo.get_ledger_total(user["id"]) == total


class TestStreaks:
    """Test daily streak tracking"""

    def test_below_threshold(self, temp_db, ledger, add_user):
        user = add_user(1)
        award(temp_db, user["id"], 29, NOW)

        result = ledger.update_streak(user["id"], NOW)

        assert result.status == STREAK_UNCHANGED
        assert result.day_xp == 29
        assert result.streak_count == 0

    def test_start_extend_and_reset(self, temp_db, ledger, add_user):
        user = add_user(1)

        award(temp_db, user["id"], 30, NOW)
        started = ledger.update_streak(user["id"], NOW)
        assert (started.status, started.streak_count) == (STREAK_STARTED, 1)

        # Further XP on the same day does not advance the streak again
        award(temp_db, user["id"], 30, NOW)
        assert ledger.update_streak(user["id"], NOW).status == STREAK_UNCHANGED

        next_day = NOW + timedelta(days=1)
        award(temp_db, user["id"], 30, next_day)
        extended = ledger.update_streak(user["id"], next_day)
        assert (extended.status, extended.streak_count) == (STREAK_EXTENDED, 2)

        after_gap = NOW + timedelta(days=3)
        award(temp_db, user["id"], 30, after_gap)
        restarted = ledger.update_streak(user["id"], after_gap)
        assert (restarted.status, restarted.streak_count) == (STREAK_STARTED, 1)

        stored = temp_db.xp_repo.get_streak(user["id"])
        assert stored["last_streak_date"] == date(2026, 10, 21)

    def test_local_day_boundary(self, temp_db, ledger, add_user):
        """XP earned after 20:30 UTC counts for the next local day"""
        user = add_user(1)
        late = datetime(2026, 10, 18, 21, 0, tzinfo=timezone.utc)
        award(temp_db, user["id"], 20, NOW)
        award(temp_db, user["id"], 20, late)

        result = ledger.update_streak(user["id"], late)

        assert result.day_xp == 20
        assert result.status == STREAK_UNCHANGED

    def test_stale_streak_write_is_rejected(self, temp_db, add_user):
        user = add_user(1)
        repo = temp_db.xp_repo

        assert repo.update_streak(user["id"], 1, date(2026, 10, 18), None, NOW)
        assert not repo.update_streak(user["id"], 1, date(2026, 10, 18), None, NOW)
        assert repo.get_streak(user["id"])["streak_count"] == 1

    def test_current_streak(self, temp_db, ledger, add_user):
        user = add_user(1)
        assert ledger.current_streak(user["id"], NOW) == 0

        award(temp_db, user["id"], 30, NOW)
        ledger.update_streak(user["id"], NOW)

        assert ledger.current_streak(user["id"], NOW) == 1
        assert ledger.current_streak(user["id"], NOW + timedelta(days=1)) == 1
        assert ledger.current_streak(user["id"], NOW + timedelta(days=2)) == 0


class TestLeaderboard:
    """Test leaderboard queries"""

    def test_all_time(self, temp_db, ledger, add_user):
        alice = add_user(1, "Alice")
        bob = add_user(2, "Bob")
        add_user(3, "Carol")
        award(temp_db, alice["id"], 10, NOW)
        award(temp_db, bob["id"], 25, NOW)

        rows = ledger.leaderboard("all", now=NOW)

        assert [row["user_id"] for row in rows] == [bob["id"], alice["id"]]
        assert rows[0]["xp"] == 25
        assert rows[0]["first_name"] == "Bob"

    def test_week_only_counts_recent_xp(self, temp_db, ledger, add_user):
        alice = add_user(1, "Alice")
        bob = add_user(2, "Bob")
        award(temp_db, alice["id"], 100, NOW - timedelta(days=10))
        award(temp_db, alice["id"], 5, NOW - timedelta(days=1))
        award(temp_db, bob["id"], 20, NOW - timedelta(days=2))

        week = ledger.leaderboard("week", now=NOW)
        assert [(row["user_id"], row["xp"]) for row in week] == [(bob["id"], 20), (alice["id"], 5)]

        month = ledger.leaderboard("month", now=NOW)
        assert month[0]["user_id"] == alice["id"]
        assert month[0]["xp"] == 105

    def test_limit(self, temp_db, ledger, add_user):
        for telegram_id in range(1, 6):
            user = add_user(telegram_id)
            award(temp_db, user["id"], telegram_id, NOW)

        assert len(ledger.leaderboard("all", limit=3)) == 3

    def test_unknown_period(self, ledger):
        with pytest.raises(ValueError):
            ledger.leaderboard("year")

    def test_user_rank_all_time(self, temp_db, ledger, add_user):
        alice = add_user(1, "Alice")
        bob = add_user(2, "Bob")
        carol = add_user(3, "Carol")
        award(temp_db, alice["id"], 10, NOW)
        award(temp_db, bob["id"], 25, NOW)

        assert ledger.user_rank(bob["id"], "all", now=NOW) == {"rank": 1, "xp": 25}
        assert ledger.user_rank(alice["id"], "all", now=NOW) == {"rank": 2, "xp": 10}
        assert ledger.user_rank(carol["id"], "all", now=NOW) is None

    def test_user_rank_for_period(self, temp_db, ledger, add_user):
        alice = add_user(1, "Alice")
        bob = add_user(2, "Bob")
        award(temp_db, alice["id"], 100, NOW - timedelta(days=10))
        award(temp_db, alice["id"], 5, NOW - timedelta(days=1))
        award(temp_db, bob["id"], 20, NOW - timedelta(days=2))

        assert ledger.user_rank(alice["id"], "week", now=NOW) == {"rank": 2, "xp": 5}
        assert ledger.user_rank(alice["id"], "month", now=NOW) == {"rank": 1, "xp": 105}
        assert ledger.user_rank(bob["id"], "month", now=NOW) == {"rank": 2, "xp": 20}

    def test_user_rank_ties_share_position(self, temp_db, ledger, add_user):
        alice = add_user(1, "Alice")
        bob = add_user(2, "Bob")
        award(temp_db, alice["id"], 15, NOW)
        award(temp_db, bob["id"], 15, NOW)

        assert ledger.user_rank(bob["id"], "week", now=NOW)["rank"] == 1

    def test_user_rank_unknown_period(self, ledger):
        with pytest.raises(ValueError):
            ledger.user_rank(1, "year")
