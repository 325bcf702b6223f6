"""
Duel matchmaking, answering, finalization and settlement
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .config import get_settings
from .core.database.database_manager import DatabaseManager
from .core.database.repositories.duel_repository import (
    STATUS_COMPLETED,
    STATUS_EXPIRED,
)
from .exceptions import (
    ActiveDuelError,
    AlreadyAnsweredError,
    DuelExpiredError,
    DuelUnavailableError,
    InternalError,
    NotFoundError,
    NotParticipantError,
)
from .question_selector import QuestionSelector
from .utils import utc_now
from .xp_ledger import DUEL_DRAW, DUEL_LOSE, DUEL_WIN, StreakResult, XpLedger

logger = logging.getLogger(__name__)

DIFFICULTY_LEVELS = {
    "easy": (1, 2),
    "hard": (1, 4),
}

# Word draws per slot before allocation gives up
ALLOCATION_ATTEMPTS_PER_SLOT = 4


@dataclass
class DuelOutcome:
    """Stored result of a completed match"""

    match_id: int
    player1_id: int
    player2_id: int
    player1_correct: int
    player2_correct: int
    winner_user_id: int | None
    is_draw: bool

    def result_for(self, user_id: int) -> str:
        """Win, draw or lose from a player's point of view"""
        if self.is_draw:
            return DUEL_DRAW
        return DUEL_WIN if self.winner_user_id == user_id else DUEL_LOSE

    def correct_for(self, user_id: int) -> int:
        """Correct answers of a player"""
        return self.player1_correct if user_id == self.player1_id else self.player2_correct


@dataclass
class Settlement:
    """XP newly awarded to a player for a match"""

    user_id: int
    result: str
    correct_count: int
    xp_awarded: int
    streak: StreakResult | None = None


@dataclass
class DuelStartResult:
    """Outcome of a duel request"""

    match: dict[str, Any]
    joined: bool
    first_question: dict[str, Any] | None
    total_questions: int


@dataclass
class DuelAnswerResult:
    """Outcome of a duel answer"""

    match_id: int
    question: dict[str, Any]
    chosen_option: str
    is_correct: bool
    answered: int
    total: int
    next_question: dict[str, Any] | None = None
    outcome: DuelOutcome | None = None
    settlements: list[Settlement] = field(default_factory=list)

    @property
    def waiting_for_opponent(self) -> bool:
        """All questions answered but the match is not decided yet"""
        return self.next_question is None and self.outcome is None


@dataclass
class CleanupResult:
    """Rows touched by a stale match sweep"""

    expired: int
    purged: int


class DuelService:
    """Runs the duel lifecycle on top of conditional writes"""

    def __init__(self, db_manager: DatabaseManager, selector: QuestionSelector, ledger: XpLedger):
        self.db_manager = db_manager
        self.selector = selector
        self.ledger = ledger
        self.settings = get_settings()

    async def start_duel(
        self, user_id: int, difficulty: str, now: datetime | None = None
    ) -> DuelStartResult:
        """
        Join the oldest compatible waiting match or open a new one

        Raises:
            ActiveDuelError: the user already plays a waiting or in-progress match
            DuelUnavailableError: no questions could be allocated; a joined match
                left without questions is expired
        """
        if difficulty not in DIFFICULTY_LEVELS:
            raise ValueError(f"Unknown duel difficulty: {difficulty}")
        now = now or utc_now()
        duel_repo = self.db_manager.duel_repo

        active = duel_repo.get_active_match_for_user(user_id)
        if active:
            raise ActiveDuelError(active["id"])

        for _ in range(self.settings.duel_pairing_max_attempts):
            candidate = duel_repo.find_waiting_match(difficulty, user_id)
            if candidate is None:
                break
            if duel_repo.join_match(candidate["id"], user_id, now):
                logger.info(f"User {user_id} joined duel {candidate['id']} ({difficulty})")
                allocated = await self.allocate_questions(candidate["id"], difficulty)
                if allocated == 0:
                    self._expire_empty_match(candidate["id"])
                    raise DuelUnavailableError(f"No questions for {difficulty} duel")
                return self._match_result(candidate["id"], user_id, joined=True)
            logger.debug(f"Lost race for duel {candidate['id']}, searching again")

        match_id = duel_repo.create_match_if_idle(user_id, difficulty, now)
        if match_id is None:
            active = duel_repo.get_active_match_for_user(user_id)
            raise ActiveDuelError(active["id"] if active else None)

        logger.info(f"User {user_id} opened duel {match_id} ({difficulty})")
        allocated = await self.allocate_questions(match_id, difficulty)
        if allocated == 0:
            if duel_repo.discard_waiting_match(match_id):
                raise DuelUnavailableError(f"No questions for {difficulty} duel")
            # Joined while allocating; the joiner may have filled the slots
            logger.info(f"Duel {match_id} was joined during allocation")
            if duel_repo.count_questions(match_id) == 0:
                self._expire_empty_match(match_id)
                raise DuelUnavailableError(f"No questions for {difficulty} duel")

        return self._match_result(match_id, user_id, joined=False)

    def _expire_empty_match(self, match_id: int) -> None:
        if self.db_manager.duel_repo.expire_match(match_id):
            logger.warning(f"Duel {match_id} expired: no questions could be allocated")

    def _match_result(self, match_id: int, user_id: int, joined: bool) -> DuelStartResult:
        match = self.db_manager.duel_repo.get_match(match_id)
        if match is None:
            raise InternalError(f"Duel {match_id} missing after start")
        if match["status"] == STATUS_EXPIRED:
            raise DuelUnavailableError(f"Duel {match_id} expired during allocation")
        return self._start_result(match, user_id, joined)

    def _start_result(self, match: dict[str, Any], user_id: int, joined: bool) -> DuelStartResult:
        answered = self.db_manager.duel_repo.count_answers(match["id"], user_id)
        total = self.db_manager.duel_repo.count_questions(match["id"])
        return DuelStartResult(
            match=match,
            joined=joined,
            first_question=self.next_question_for(match["id"], answered, total),
            total_questions=total,
        )

    async def allocate_questions(self, match_id: int, difficulty: str) -> int:
        """
        Fill the match's question slots if they are not filled yet

        Words are drawn at random from the difficulty's level range; a word
        without a usable question is skipped without using up a slot.

        Returns:
            Number of allocated questions
        """
        duel_repo = self.db_manager.duel_repo
        total = self.settings.duel_question_count
        allocated = duel_repo.count_questions(match_id)
        if allocated > 0:
            return allocated

        min_level, max_level = DIFFICULTY_LEVELS[difficulty]
        index = 1
        for _ in range(total * ALLOCATION_ATTEMPTS_PER_SLOT):
            if index > total:
                break
            word = self.db_manager.word_repo.get_random_word_in_levels(min_level, max_level)
            if word is None:
                break
            question = await self.selector.acquire_duel_question(word)
            if question is None:
                continue
            duel_repo.add_question(match_id, index, word["id"], question["id"])
            index += 1

        allocated = duel_repo.count_questions(match_id)
        logger.info(f"Allocated {allocated} questions for duel {match_id}")
        return allocated

    def next_question_for(self, match_id: int, answered: int, total: int) -> dict[str, Any] | None:
        """Question a player should see after answering ``answered`` of ``total``"""
        if answered >= total:
            return None
        return self.db_manager.duel_repo.get_duel_question_by_index(match_id, answered + 1)

    def answer(
        self,
        user_id: int,
        match_id: int,
        duel_question_id: int,
        chosen_option: str,
        now: datetime | None = None,
    ) -> DuelAnswerResult:
        """
        Record a duel answer and advance the match

        Raises:
            NotFoundError: unknown match or question, or question of another match
            DuelExpiredError: the match has expired
            NotParticipantError: the user does not play in the match
            AlreadyAnsweredError: the question was already answered by the user
        """
        now = now or utc_now()
        chosen_option = chosen_option.upper()
        duel_repo = self.db_manager.duel_repo

        match = duel_repo.get_match(match_id)
        if match is None:
            raise NotFoundError(f"Duel {match_id} not found")
        question = duel_repo.get_duel_question(duel_question_id)
        if question is None or question["duel_id"] != match_id:
            raise NotFoundError(f"Duel question {duel_question_id} not found in duel {match_id}")
        if match["status"] == STATUS_EXPIRED:
            raise DuelExpiredError(f"Duel {match_id} expired")
        if user_id not in (match["player1_id"], match["player2_id"]):
            raise NotParticipantError(f"User {user_id} is not in duel {match_id}")

        if duel_repo.has_answered(duel_question_id, user_id):
            raise AlreadyAnsweredError(f"Duel question {duel_question_id} already answered")

        is_correct = chosen_option == question["correct_option"]
        if not duel_repo.add_answer_if_absent(
            match_id, duel_question_id, user_id, chosen_option, is_correct, now
        ):
            raise AlreadyAnsweredError(f"Duel question {duel_question_id} already answered")

        answered = duel_repo.count_answers(match_id, user_id)
        total = duel_repo.count_questions(match_id)
        result = DuelAnswerResult(
            match_id=match_id,
            question=question,
            chosen_option=chosen_option,
            is_correct=is_correct,
            answered=answered,
            total=total,
        )

        if answered < total:
            result.next_question = self.next_question_for(match_id, answered, total)
            return result

        outcome = self.finalize(match_id, now)
        if outcome is not None:
            result.outcome = outcome
            result.settlements = self.settle(outcome, now)
        return result

    def finalize(self, match_id: int, now: datetime | None = None) -> DuelOutcome | None:
        """
        Complete the match once both players answered every question

        Only one caller performs the transition; every caller gets the
        stored outcome.

        Returns:
            The outcome, or None while the match is still waiting for answers
        """
        now = now or utc_now()
        duel_repo = self.db_manager.duel_repo

        match = duel_repo.get_match(match_id)
        if match is None:
            raise NotFoundError(f"Duel {match_id} not found")
        if match["status"] == STATUS_COMPLETED:
            return self._stored_outcome(match)
        if match["status"] == STATUS_EXPIRED:
            raise DuelExpiredError(f"Duel {match_id} expired")

        player1, player2 = match["player1_id"], match["player2_id"]
        if player2 is None:
            return None
        total = duel_repo.count_questions(match_id)
        if total == 0:
            return None
        if duel_repo.count_answers(match_id, player1) < total:
            return None
        if duel_repo.count_answers(match_id, player2) < total:
            return None

        correct1 = duel_repo.count_correct(match_id, player1)
        correct2 = duel_repo.count_correct(match_id, player2)
        is_draw = correct1 == correct2
        winner = None if is_draw else (player1 if correct1 > correct2 else player2)

        if duel_repo.complete_match(match_id, correct1, correct2, winner, is_draw, now):
            logger.info(
                f"Duel {match_id} completed: {correct1}-{correct2}, "
                f"{'draw' if is_draw else f'winner {winner}'}"
            )

        stored = duel_repo.get_match(match_id)
        if stored is None:
            raise InternalError(f"Duel {match_id} missing after completion")
        if stored["status"] == STATUS_EXPIRED:
            raise DuelExpiredError(f"Duel {match_id} expired")
        return self._stored_outcome(stored)

    def _stored_outcome(self, match: dict[str, Any]) -> DuelOutcome:
        return DuelOutcome(
            match_id=match["id"],
            player1_id=match["player1_id"],
            player2_id=match["player2_id"],
            player1_correct=match["player1_correct"],
            player2_correct=match["player2_correct"],
            winner_user_id=match["winner_user_id"],
            is_draw=bool(match["is_draw"]),
        )

    def settle(self, outcome: DuelOutcome, now: datetime | None = None) -> list[Settlement]:
        """
        Award duel XP to both players, each at most once

        Returns:
            Settlements for players settled by this call
        """
        now = now or utc_now()
        settlements = []
        for user_id in (outcome.player1_id, outcome.player2_id):
            result = outcome.result_for(user_id)
            correct = outcome.correct_for(user_id)
            xp = self.ledger.settle_duel_player(outcome.match_id, user_id, correct, result, now)
            if xp is None:
                continue
            streak = self.ledger.update_streak(user_id, now)
            settlements.append(Settlement(user_id, result, correct, xp, streak))
        return settlements

    def cleanup(self, now: datetime | None = None) -> CleanupResult:
        """Expire stalled matches and purge matches nobody joined"""
        now = now or utc_now()
        statements = self.db_manager.duel_repo.cleanup_statements(
            now - timedelta(hours=self.settings.duel_in_progress_expiry_hours),
            now - timedelta(hours=self.settings.duel_waiting_purge_hours),
        )
        rowcounts = self.db_manager.batch(statements)
        result = CleanupResult(expired=rowcounts[0], purged=rowcounts[-1])
        if result.expired or result.purged:
            logger.info(f"Duel cleanup: expired {result.expired}, purged {result.purged}")
        return result
