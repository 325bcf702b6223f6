"""
Review flow: picking the next word, serving its question and recording answers
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .config import get_settings
from .core.database.database_manager import DatabaseManager
from .core.database.repositories.history_repository import CONTEXT_REVIEW
from .exceptions import AlreadyAnsweredError, ConditionFailedError, NotFoundError
from .question_selector import QuestionSelector
from .spaced_repetition import ReviewUpdate, get_srs_system
from .utils import utc_now
from .xp_ledger import StreakResult, XpLedger

logger = logging.getLogger(__name__)


@dataclass
class ReviewItem:
    """A question served for review"""

    word: dict[str, Any]
    question: dict[str, Any]
    stage: int


@dataclass
class ReviewAnswerResult:
    """Outcome of a review answer"""

    question: dict[str, Any]
    chosen_option: str
    is_correct: bool
    update: ReviewUpdate
    xp_awarded: int
    streak: StreakResult | None


class ReviewService:
    """Coordinates spaced repetition reviews"""

    def __init__(self, db_manager: DatabaseManager, selector: QuestionSelector, ledger: XpLedger):
        self.db_manager = db_manager
        self.selector = selector
        self.ledger = ledger
        self.srs = get_srs_system()
        self.settings = get_settings()

    async def next_review(self, user_id: int, now: datetime | None = None) -> ReviewItem | None:
        """
        Get the next question to review and record it as shown

        Returns:
            ReviewItem, or None if there is nothing to review (empty catalog,
            everything ignored, or no question could be obtained)
        """
        now = now or utc_now()
        today = now.date()

        word = self.db_manager.progress_repo.pick_word_for_review(user_id, today)
        if word is None:
            logger.info(f"No words to review for user {user_id}")
            return None

        await self.selector.ensure_stock(word)

        state = self.db_manager.progress_repo.get_review_state(user_id, word["id"])
        stage = state["question_stage"] if state else 1

        question = self.selector.select_review_question(user_id, word["id"], stage)
        if question is None:
            logger.warning(f"No questions available for word {word['id']}")
            return None

        self.db_manager.progress_repo.ensure_review_state(
            user_id, word["id"], today, self.settings.default_easiness_factor, now
        )
        self.db_manager.history_repo.record_shown(
            user_id, word["id"], question["id"], CONTEXT_REVIEW, now
        )
        return ReviewItem(word=word, question=question, stage=stage)

    def answer(
        self, user_id: int, question_id: int, chosen_option: str, now: datetime | None = None
    ) -> ReviewAnswerResult:
        """
        Record a review answer

        The history guard, state update and XP award are applied in one
        batch, so a repeated answer changes nothing.

        Raises:
            NotFoundError: unknown question, or the question was never shown
            AlreadyAnsweredError: the question was already answered
        """
        now = now or utc_now()
        chosen_option = chosen_option.upper()

        question = self.db_manager.word_repo.get_question_by_id(question_id)
        if question is None:
            raise NotFoundError(f"Question {question_id} not found")
        word = self.db_manager.word_repo.get_word_by_id(question["word_id"])
        if word is None:
            raise NotFoundError(f"Word {question['word_id']} not found")

        is_correct = chosen_option == question["correct_option"]
        state = self.db_manager.progress_repo.get_review_state(user_id, word["id"])
        update = self.srs.record_answer(state, is_correct, now)

        statements = [
            self.db_manager.history_repo.answered_statement(
                user_id, question_id, CONTEXT_REVIEW, is_correct, now
            ),
            self.db_manager.progress_repo.review_update_statement(user_id, word["id"], update, now),
        ]
        xp_awarded = 0
        if is_correct:
            xp_awarded = self.ledger.review_xp(word["level"])
            statements.extend(
                self.ledger.review_award_statements(user_id, question_id, word["id"], word["level"], now)
            )

        try:
            self.db_manager.batch(statements)
        except ConditionFailedError:
            record = self.db_manager.history_repo.get_record(user_id, question_id, CONTEXT_REVIEW)
            if record is None:
                raise NotFoundError(f"Question {question_id} was not shown to user {user_id}") from None
            raise AlreadyAnsweredError(f"Question {question_id} already answered") from None

        streak = self.ledger.update_streak(user_id, now) if xp_awarded else None

        logger.info(
            f"User {user_id} answered question {question_id}: correct={is_correct}, "
            f"+{xp_awarded} XP, next review {update.next_review_date}"
        )
        return ReviewAnswerResult(
            question=question,
            chosen_option=chosen_option,
            is_correct=is_correct,
            update=update,
            xp_awarded=xp_awarded,
            streak=streak,
        )

    def ignore_word(self, user_id: int, word_id: int, now: datetime | None = None) -> None:
        """Stop reviewing a word"""
        now = now or utc_now()
        if self.db_manager.word_repo.get_word_by_id(word_id) is None:
            raise NotFoundError(f"Word {word_id} not found")
        self.db_manager.progress_repo.ignore_word(
            user_id, word_id, now.date(), self.settings.default_easiness_factor, now
        )
