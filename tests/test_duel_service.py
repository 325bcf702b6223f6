"""
Unit tests for the duel lifecycle
"""

import asyncio
import random
import threading
from datetime import datetime, timedelta, timezone

import pytest

from lexiduel.core.database.repositories.duel_repository import (
    STATUS_COMPLETED,
    STATUS_EXPIRED,
    STATUS_IN_PROGRESS,
    STATUS_WAITING,
)
from lexiduel.core.database.repositories.xp_repository import ACTIVITY_DUEL
from lexiduel.duel_service import DuelService
from lexiduel.exceptions import (
    ActiveDuelError,
    AlreadyAnsweredError,
    DuelExpiredError,
    DuelUnavailableError,
    NotFoundError,
    NotParticipantError,
)
from lexiduel.question_generator import MockQuestionGenerator
from lexiduel.question_selector import QuestionSelector
from lexiduel.xp_ledger import DUEL_DRAW, DUEL_LOSE, DUEL_WIN, STREAK_STARTED, STREAK_UNCHANGED

NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


def count_rows(temp_db, table):
    with temp_db.db_connection.get_connection() as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]  # noqa: S608


def pick_option(question, correct):
    if correct:
        return question["correct_option"]
    return next(letter for letter in "ABCD" if letter != question["correct_option"])


def play(service, temp_db, user_id, match_id, correct_count, now=NOW):
    """Answer every question of a match, the first ``correct_count`` correctly"""
    result = None
    total = temp_db.duel_repo.count_questions(match_id)
    for index in range(1, total + 1):
        question = temp_db.duel_repo.get_duel_question_by_index(match_id, index)
        option = pick_option(question, index <= correct_count)
        result = service.answer(user_id, match_id, question["duel_question_id"], option, now)
    return result


def answer_directly(temp_db, user_id, match_id, correct_count, now=NOW):
    """Store answers without finalizing, the first ``correct_count`` correct"""
    for index in range(1, temp_db.duel_repo.count_questions(match_id) + 1):
        question = temp_db.duel_repo.get_duel_question_by_index(match_id, index)
        option = pick_option(question, index <= correct_count)
        temp_db.duel_repo.add_answer_if_absent(
            match_id, question["duel_question_id"], user_id, option,
            option == question["correct_option"], now,
        )


class JoiningGenerator(MockQuestionGenerator):
    """Generator that lets an opponent join the open match and produces nothing"""

    def __init__(self, duel_repo, joiner_id):
        super().__init__()
        self.duel_repo = duel_repo
        self.joiner_id = joiner_id
        self.joined = False

    async def generate_questions(self, word, style, count):
        self.requests.append((word["english"], style, count))
        if not self.joined:
            match = self.duel_repo.find_waiting_match("easy", self.joiner_id)
            self.joined = self.duel_repo.join_match(match["id"], self.joiner_id, NOW)
        return []


class TestDuelService:
    """Test DuelService with the mock generator"""

    @pytest.fixture
    def duel_service(self, temp_db, selector, ledger):
        return DuelService(temp_db, selector, ledger)

    @pytest.fixture
    def catalog(self, add_word):
        return [
            add_word("brave", level=1),
            add_word("calm", level=1),
            add_word("eager", level=2),
            add_word("ubiquitous", level=4),
        ]

    @pytest.fixture
    def players(self, add_user):
        return add_user(1, "Alice"), add_user(2, "Bob"), add_user(3, "Carol")

    @pytest.mark.asyncio
    async def test_open_and_join(self, temp_db, duel_service, catalog, players):
        alice, bob, _ = players

        opened = await duel_service.start_duel(alice["id"], "easy", NOW)
        assert not opened.joined
        assert opened.match["status"] == STATUS_WAITING
        assert opened.total_questions == 5
        assert opened.first_question["question_index"] == 1

        joined = await duel_service.start_duel(bob["id"], "easy", NOW)
        assert joined.joined
        assert joined.match["id"] == opened.match["id"]
        assert joined.match["status"] == STATUS_IN_PROGRESS
        assert joined.match["player2_id"] == bob["id"]
        assert joined.first_question["duel_question_id"] == opened.first_question["duel_question_id"]

    @pytest.mark.asyncio
    async def test_easy_duel_uses_low_levels(self, temp_db, duel_service, catalog, players):
        alice = players[0]
        opened = await duel_service.start_duel(alice["id"], "easy", NOW)

        levels = {
            temp_db.get_word_by_id(q["word_id"])["level"]
            for q in temp_db.duel_repo.get_questions(opened.match["id"])
        }
        assert levels <= {1, 2}

    @pytest.mark.asyncio
    async def test_difficulties_do_not_mix(self, duel_service, catalog, players):
        alice, bob, _ = players
        await duel_service.start_duel(alice["id"], "easy", NOW)

        result = await duel_service.start_duel(bob["id"], "hard", NOW)
        assert not result.joined

    @pytest.mark.asyncio
    async def test_second_request_rejected(self, temp_db, duel_service, catalog, players):
        alice = players[0]
        opened = await duel_service.start_duel(alice["id"], "easy", NOW)

        with pytest.raises(ActiveDuelError) as exc_info:
            await duel_service.start_duel(alice["id"], "hard", NOW)

        assert exc_info.value.match_id == opened.match["id"]
        assert count_rows(temp_db, "duel_matches") == 1

    @pytest.mark.asyncio
    async def test_unknown_difficulty(self, duel_service, players):
        with pytest.raises(ValueError):
            await duel_service.start_duel(players[0]["id"], "medium", NOW)

    @pytest.mark.asyncio
    async def test_no_questions_available(self, temp_db, duel_service, add_word, players):
        alice = players[0]
        add_word("ubiquitous", level=4)

        with pytest.raises(DuelUnavailableError):
            await duel_service.start_duel(alice["id"], "easy", NOW)

        assert count_rows(temp_db, "duel_matches") == 0
        assert temp_db.duel_repo.get_active_match_for_user(alice["id"]) is None

    @pytest.mark.asyncio
    async def test_joined_during_allocation_without_questions(self, temp_db, ledger, add_word, players):
        """A match joined while its opener allocates is kept and expired, not deleted"""
        alice, bob, _ = players
        add_word("brave", level=1)
        generator = JoiningGenerator(temp_db.duel_repo, bob["id"])
        service = DuelService(temp_db, QuestionSelector(temp_db, generator, rng=random.Random(42)), ledger)

        with pytest.raises(DuelUnavailableError):
            await service.start_duel(alice["id"], "easy", NOW)

        assert generator.joined
        assert count_rows(temp_db, "duel_matches") == 1
        with temp_db.db_connection.get_connection() as conn:
            match = dict(conn.execute("SELECT * FROM duel_matches").fetchone())
        assert match["player2_id"] == bob["id"]
        assert match["status"] == STATUS_EXPIRED
        assert temp_db.duel_repo.get_active_match_for_user(alice["id"]) is None
        assert temp_db.duel_repo.get_active_match_for_user(bob["id"]) is None

    @pytest.mark.asyncio
    async def test_join_without_questions_expires_match(self, temp_db, duel_service, add_word, players):
        alice, bob, _ = players
        add_word("ubiquitous", level=4)
        match_id = temp_db.duel_repo.create_match_if_idle(alice["id"], "easy", NOW)

        with pytest.raises(DuelUnavailableError):
            await duel_service.start_duel(bob["id"], "easy", NOW)

        match = temp_db.duel_repo.get_match(match_id)
        assert match["status"] == STATUS_EXPIRED
        assert match["player2_id"] == bob["id"]
        assert temp_db.duel_repo.get_active_match_for_user(alice["id"]) is None
        assert temp_db.duel_repo.get_active_match_for_user(bob["id"]) is None

    def test_discard_only_removes_unjoined_match(self, temp_db, players):
        alice, bob, carol = players
        duel_repo = temp_db.duel_repo
        joined_id = duel_repo.create_match_if_idle(alice["id"], "easy", NOW)
        duel_repo.join_match(joined_id, bob["id"], NOW)
        waiting_id = duel_repo.create_match_if_idle(carol["id"], "easy", NOW)

        assert not duel_repo.discard_waiting_match(joined_id)
        assert duel_repo.get_match(joined_id)["status"] == STATUS_IN_PROGRESS

        assert duel_repo.discard_waiting_match(waiting_id)
        assert duel_repo.get_match(waiting_id) is None

    @pytest.mark.asyncio
    async def test_winner_and_xp(self, temp_db, duel_service, ledger, catalog, players):
        """5/5 against 3/5: the winner gets 80 XP, the loser 30 XP"""
        alice, bob, _ = players
        opened = await duel_service.start_duel(alice["id"], "easy", NOW)
        await duel_service.start_duel(bob["id"], "easy", NOW)
        match_id = opened.match["id"]

        alice_last = play(duel_service, temp_db, alice["id"], match_id, 5)
        assert alice_last.waiting_for_opponent

        bob_last = play(duel_service, temp_db, bob["id"], match_id, 3)
        outcome = bob_last.outcome
        assert outcome.winner_user_id == alice["id"]
        assert not outcome.is_draw
        assert (outcome.player1_correct, outcome.player2_correct) == (5, 3)

        settlements = {s.user_id: s for s in bob_last.settlements}
        assert settlements[alice["id"]].xp_awarded == 80
        assert settlements[alice["id"]].result == DUEL_WIN
        assert settlements[bob["id"]].xp_awarded == 30
        assert settlements[bob["id"]].result == DUEL_LOSE

        assert temp_db.get_user_by_id(alice["id"])["xp_total"] == 80
        assert temp_db.get_user_by_id(bob["id"])["xp_total"] == 30
        assert temp_db.duel_repo.get_match(match_id)["status"] == STATUS_COMPLETED
        assert temp_db.xp_repo.has_entry(alice["id"], ACTIVITY_DUEL, match_id)

        profile = temp_db.user_repo.get_user_profile(alice["id"], NOW.date())
        assert profile["duels_played"] == 1
        assert profile["duels_won"] == 1

    @pytest.mark.asyncio
    async def test_draw(self, temp_db, duel_service, catalog, players):
        alice, bob, _ = players
        opened = await duel_service.start_duel(alice["id"], "easy", NOW)
        await duel_service.start_duel(bob["id"], "easy", NOW)
        match_id = opened.match["id"]

        play(duel_service, temp_db, alice["id"], match_id, 4)
        last = play(duel_service, temp_db, bob["id"], match_id, 4)

        assert last.outcome.is_draw
        assert last.outcome.winner_user_id is None
        assert {s.result for s in last.settlements} == {DUEL_DRAW}
        assert {s.xp_awarded for s in last.settlements} == {50}

    @pytest.mark.asyncio
    async def test_zero_xp_loss_is_recorded(self, temp_db, duel_service, catalog, players):
        alice, bob, _ = players
        opened = await duel_service.start_duel(alice["id"], "easy", NOW)
        await duel_service.start_duel(bob["id"], "easy", NOW)
        match_id = opened.match["id"]

        play(duel_service, temp_db, alice["id"], match_id, 1)
        play(duel_service, temp_db, bob["id"], match_id, 0)

        entries = temp_db.xp_repo.get_entries(bob["id"])
        assert len(entries) == 1
        assert entries[0]["xp_delta"] == 0

    @pytest.mark.asyncio
    async def test_settlement_reports_streak(self, temp_db, duel_service, catalog, players):
        """Duel XP crossing the daily threshold starts the streak"""
        alice, bob, _ = players
        opened = await duel_service.start_duel(alice["id"], "easy", NOW)
        await duel_service.start_duel(bob["id"], "easy", NOW)
        match_id = opened.match["id"]

        play(duel_service, temp_db, alice["id"], match_id, 5)
        last = play(duel_service, temp_db, bob["id"], match_id, 2)

        settlements = {s.user_id: s for s in last.settlements}
        assert settlements[alice["id"]].streak.status == STREAK_STARTED
        assert settlements[alice["id"]].streak.streak_count == 1
        # 20 XP stays below the daily threshold
        assert settlements[bob["id"]].xp_awarded == 20
        assert settlements[bob["id"]].streak.status == STREAK_UNCHANGED
        assert temp_db.xp_repo.get_streak(alice["id"])["streak_count"] == 1

    @pytest.mark.asyncio
    async def test_finalize_and_settle_are_idempotent(self, temp_db, duel_service, catalog, players):
        alice, bob, _ = players
        opened = await duel_service.start_duel(alice["id"], "easy", NOW)
        await duel_service.start_duel(bob["id"], "easy", NOW)
        match_id = opened.match["id"]
        play(duel_service, temp_db, alice["id"], match_id, 5)
        first = play(duel_service, temp_db, bob["id"], match_id, 3).outcome

        again = duel_service.finalize(match_id, NOW + timedelta(minutes=5))
        assert again == first
        assert duel_service.settle(again, NOW) == []

        assert temp_db.get_user_by_id(alice["id"])["xp_total"] == 80
        assert len(temp_db.xp_repo.get_entries(alice["id"])) == 1

    @pytest.mark.asyncio
    async def test_concurrent_finalize_and_settle(self, temp_db, duel_service, catalog, players):
        """Both final answers racing to finish the match settle each player once"""
        alice, bob, _ = players
        opened = await duel_service.start_duel(alice["id"], "easy", NOW)
        await duel_service.start_duel(bob["id"], "easy", NOW)
        match_id = opened.match["id"]
        answer_directly(temp_db, alice["id"], match_id, 5)
        answer_directly(temp_db, bob["id"], match_id, 3)

        barrier = threading.Barrier(2)
        outcomes = []
        settlements = []
        errors = []

        def finish():
            try:
                barrier.wait()
                outcome = duel_service.finalize(match_id, NOW)
                outcomes.append(outcome)
                settlements.extend(duel_service.settle(outcome, NOW))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=finish) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(outcomes) == 2
        assert outcomes[0] == outcomes[1]
        assert sorted((s.user_id, s.xp_awarded) for s in settlements) == [
            (alice["id"], 80),
            (bob["id"], 30),
        ]
        for user in (alice, bob):
            entries = temp_db.xp_repo.get_entries(user["id"])
            assert [e["activity_type"] for e in entries] == [ACTIVITY_DUEL]
            stored_total = temp_db.get_user_by_id(user["id"])["xp_total"]
            assert stored_total == temp_db.xp_repo.get_ledger_total(user["id"])

    @pytest.mark.asyncio
    async def test_answering_before_opponent_joins(self, temp_db, duel_service, catalog, players):
        alice, bob, _ = players
        opened = await duel_service.start_duel(alice["id"], "easy", NOW)
        match_id = opened.match["id"]

        last = play(duel_service, temp_db, alice["id"], match_id, 2)
        assert last.waiting_for_opponent
        assert duel_service.finalize(match_id, NOW) is None

        joined = await duel_service.start_duel(bob["id"], "easy", NOW)
        assert joined.first_question["question_index"] == 1
        outcome = play(duel_service, temp_db, bob["id"], match_id, 5).outcome
        assert outcome.winner_user_id == bob["id"]

    @pytest.mark.asyncio
    async def test_answer_advances_questions(self, temp_db, duel_service, catalog, players):
        alice = players[0]
        opened = await duel_service.start_duel(alice["id"], "easy", NOW)
        question = opened.first_question

        result = duel_service.answer(
            alice["id"], opened.match["id"], question["duel_question_id"], question["correct_option"], NOW
        )

        assert result.is_correct
        assert result.answered == 1
        assert result.total == 5
        assert result.next_question["question_index"] == 2

    @pytest.mark.asyncio
    async def test_answer_errors(self, temp_db, duel_service, catalog, players):
        alice, bob, carol = players
        opened = await duel_service.start_duel(alice["id"], "easy", NOW)
        await duel_service.start_duel(bob["id"], "easy", NOW)
        match_id = opened.match["id"]
        question = opened.first_question
        dq_id = question["duel_question_id"]

        with pytest.raises(NotParticipantError):
            duel_service.answer(carol["id"], match_id, dq_id, "A", NOW)

        duel_service.answer(alice["id"], match_id, dq_id, "A", NOW)
        with pytest.raises(AlreadyAnsweredError):
            duel_service.answer(alice["id"], match_id, dq_id, "B", NOW)
        assert temp_db.duel_repo.count_answers(match_id, alice["id"]) == 1

        with pytest.raises(NotFoundError):
            duel_service.answer(alice["id"], match_id + 100, dq_id, "A", NOW)
        with pytest.raises(NotFoundError):
            duel_service.answer(alice["id"], match_id, dq_id + 1000, "A", NOW)

    @pytest.mark.asyncio
    async def test_question_of_other_match_rejected(self, temp_db, duel_service, catalog, players):
        alice, bob, carol = players
        first = await duel_service.start_duel(alice["id"], "easy", NOW)
        second = await duel_service.start_duel(carol["id"], "hard", NOW)

        with pytest.raises(NotFoundError):
            duel_service.answer(
                alice["id"], first.match["id"], second.first_question["duel_question_id"], "A", NOW
            )

    @pytest.mark.asyncio
    async def test_concurrent_join(self, temp_db, duel_service, catalog, players):
        """Two users racing for one waiting match: exactly one gets the seat"""
        alice, bob, carol = players
        opened = await duel_service.start_duel(alice["id"], "easy", NOW)
        barrier = threading.Barrier(2)
        results = {}
        errors = []

        def request(user_id):
            try:
                barrier.wait()
                results[user_id] = asyncio.run(duel_service.start_duel(user_id, "easy", NOW))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=request, args=(user["id"],)) for user in (bob, carol)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        joined = [user_id for user_id, result in results.items() if result.joined]
        assert len(joined) == 1
        match = temp_db.duel_repo.get_match(opened.match["id"])
        assert match["player2_id"] == joined[0]
        assert count_rows(temp_db, "duel_matches") == 2

    @pytest.mark.asyncio
    async def test_cleanup(self, temp_db, duel_service, catalog, players):
        alice, bob, carol = players
        running = await duel_service.start_duel(alice["id"], "easy", NOW)
        await duel_service.start_duel(bob["id"], "easy", NOW)
        abandoned = await duel_service.start_duel(carol["id"], "hard", NOW)
        running_id = running.match["id"]
        abandoned_id = abandoned.match["id"]

        # Nothing is stale yet
        assert duel_service.cleanup(NOW + timedelta(hours=1)).expired == 0

        result = duel_service.cleanup(NOW + timedelta(hours=73))

        assert result.expired == 1
        assert result.purged == 1
        assert temp_db.duel_repo.get_match(running_id)["status"] == STATUS_EXPIRED
        assert temp_db.duel_repo.get_match(abandoned_id) is None
        assert temp_db.duel_repo.get_questions(abandoned_id) == []

        question = running.first_question
        with pytest.raises(DuelExpiredError):
            duel_service.answer(alice["id"], running_id, question["duel_question_id"], "A", NOW)

        # Expired and purged matches no longer block new duels
        assert not (await duel_service.start_duel(carol["id"], "hard", NOW)).joined
