"""
Spaced Repetition System implementation using a binarized SuperMemo 2 algorithm
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

from .config import get_settings

logger = logging.getLogger(__name__)

QUALITY_CORRECT = 5
QUALITY_INCORRECT = 2


@dataclass
class ReviewUpdate:
    """New spaced repetition state of a word after an answer"""

    interval_days: int
    repetitions: int
    ease_factor: float
    next_review_date: date
    correct_streak: int
    question_stage: int
    last_reviewed_at: datetime


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up"""
    return math.floor(value + 0.5)


class SpacedRepetitionSystem:
    """SuperMemo 2 scheduling with answer quality reduced to correct/incorrect"""

    def __init__(self):
        settings = get_settings()
        self.default_easiness = settings.default_easiness_factor
        self.min_easiness = settings.min_easiness_factor
        self.max_stage = settings.max_question_stage

    def default_state(self, today: date) -> dict[str, Any]:
        """State of a word the user has never answered"""
        return {
            "interval_days": 1,
            "repetitions": 0,
            "ease_factor": self.default_easiness,
            "next_review_date": today,
            "correct_streak": 0,
            "question_stage": 1,
        }

    def calculate_easiness(self, quality: int, easiness_factor: float) -> float:
        """Apply the SM-2 ease adjustment, clamped to the configured minimum"""
        penalty = 5 - quality
        new_easiness = easiness_factor + (0.1 - penalty * (0.08 + penalty * 0.02))
        return max(self.min_easiness, new_easiness)

    def calculate_interval(
        self, quality: int, repetitions: int, interval_days: int, easiness_factor: float
    ) -> tuple[int, int]:
        """
        Calculate the next interval and repetition count

        Args:
            quality: Answer quality (0-5)
            repetitions: Consecutive successful repetitions so far
            interval_days: Current interval in days
            easiness_factor: Ease factor before this answer

        Returns:
            Tuple of (new interval, new repetitions)
        """
        if quality < 3:
            return 1, 0

        if repetitions == 0:
            new_interval = 1
        elif repetitions == 1:
            new_interval = 6
        else:
            new_interval = max(1, round_half_up(interval_days * easiness_factor))

        return new_interval, repetitions + 1

    def record_answer(
        self,
        state: dict[str, Any] | None,
        is_correct: bool,
        now: datetime | None = None,
    ) -> ReviewUpdate:
        """
        Calculate the new state of a word after an answer

        Args:
            state: Current review state (None for a word never answered)
            is_correct: Whether the answer was correct
            now: Time of the answer (defaults to current UTC time)

        Returns:
            ReviewUpdate with the new parameters
        """
        if now is None:
            now = datetime.now(timezone.utc)
        if state is None:
            state = self.default_state(now.date())

        quality = QUALITY_CORRECT if is_correct else QUALITY_INCORRECT
        repetitions = state.get("repetitions") or 0
        interval_days = state.get("interval_days") or 1
        easiness = state.get("ease_factor") or self.default_easiness

        new_interval, new_repetitions = self.calculate_interval(
            quality, repetitions, interval_days, easiness
        )
        new_easiness = self.calculate_easiness(quality, easiness)

        if is_correct:
            correct_streak = (state.get("correct_streak") or 0) + 1
            question_stage = min((state.get("question_stage") or 1) + 1, self.max_stage)
        else:
            correct_streak = 0
            question_stage = 1

        result = ReviewUpdate(
            interval_days=new_interval,
            repetitions=new_repetitions,
            ease_factor=new_easiness,
            next_review_date=(now + timedelta(days=new_interval)).date(),
            correct_streak=correct_streak,
            question_stage=question_stage,
            last_reviewed_at=now,
        )

        logger.debug(
            f"Review result: correct={is_correct}, interval={result.interval_days}, "
            f"ef={result.ease_factor:.2f}, stage={result.question_stage}, "
            f"next={result.next_review_date}"
        )

        return result


# Global instance
_srs_system = None


def get_srs_system() -> SpacedRepetitionSystem:
    """Get global SRS system instance"""
    global _srs_system
    if _srs_system is None:
        _srs_system = SpacedRepetitionSystem()
    return _srs_system
