"""
Question stock management and selection for reviews and duels
"""

import asyncio
import logging
import random
from enum import Enum
from typing import Any

from .core.database.database_manager import DatabaseManager
from .core.database.repositories.history_repository import CONTEXT_REVIEW

logger = logging.getLogger(__name__)


class QuestionStyle(str, Enum):
    """Kinds of multiple-choice questions asked about a word"""

    MEANING = "meaning"
    DEFINITION = "definition"
    WORD_FROM_DEFINITION = "word_from_definition"
    SYNONYM = "synonym"
    ANTONYM = "antonym"
    REVERSE = "reverse"


# Style a review prefers at each question stage; later stages take any style
STAGE_STYLE = {
    1: QuestionStyle.MEANING,
    2: QuestionStyle.DEFINITION,
    3: QuestionStyle.WORD_FROM_DEFINITION,
}

BASE_TARGET_STOCK = {
    QuestionStyle.MEANING: 3,
    QuestionStyle.DEFINITION: 3,
    QuestionStyle.WORD_FROM_DEFINITION: 4,
}
RELATION_TARGET_STOCK = 2


def preferred_style(stage: int) -> QuestionStyle | None:
    """Style preferred for a question stage, None when any style will do"""
    return STAGE_STYLE.get(stage)


def target_stock(word: dict[str, Any]) -> dict[QuestionStyle, int]:
    """Number of questions each style should have in stock for a word"""
    targets = dict(BASE_TARGET_STOCK)
    if (word.get("synonyms") or "").strip():
        targets[QuestionStyle.SYNONYM] = RELATION_TARGET_STOCK
    if (word.get("antonyms") or "").strip():
        targets[QuestionStyle.ANTONYM] = RELATION_TARGET_STOCK
    return targets


def compute_deficits(word: dict[str, Any], stocked: dict[str, int]) -> dict[QuestionStyle, int]:
    """
    Missing question count per style

    Args:
        word: Catalog word
        stocked: Existing question count keyed by style value

    Returns:
        Styles below target with the number of questions missing
    """
    deficits = {}
    for style, target in target_stock(word).items():
        missing = target - stocked.get(style.value, 0)
        if missing > 0:
            deficits[style] = missing
    return deficits


class QuestionSelector:
    """Keeps word question stock filled and picks questions to show"""

    def __init__(self, db_manager: DatabaseManager, generator, rng: random.Random | None = None):
        self.db_manager = db_manager
        self.generator = generator
        self.rng = rng or random.Random()

    async def ensure_stock(self, word: dict[str, Any]) -> int:
        """
        Generate questions for every style below its target stock

        Requests run concurrently; a failed or timed out request only
        leaves its style short until the next call.

        Returns:
            Number of questions added
        """
        stocked = self.db_manager.word_repo.count_questions_by_style(word["id"])
        deficits = compute_deficits(word, stocked)
        if not deficits:
            return 0

        styles = list(deficits)
        results = await asyncio.gather(
            *(
                self.generator.generate_questions(word, style.value, deficits[style])
                for style in styles
            ),
            return_exceptions=True,
        )

        added = 0
        for style, result in zip(styles, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(f"Question generation failed for word {word['id']} ({style.value}): {result}")
                continue
            inserted = self.db_manager.word_repo.insert_generated_questions(
                word["id"], style.value, result[: deficits[style]], rng=self.rng
            )
            added += len(inserted)

        return added

    def select_review_question(
        self, user_id: int, word_id: int, stage: int
    ) -> dict[str, Any] | None:
        """
        Pick a question of a word for review

        Unseen questions of the stage's style come first, then any unseen
        question, then any question at all.
        """
        word_repo = self.db_manager.word_repo
        style = preferred_style(stage)

        if style is not None:
            candidates = word_repo.get_unseen_questions(user_id, word_id, CONTEXT_REVIEW, style.value)
            if candidates:
                return self.rng.choice(candidates)

        candidates = word_repo.get_unseen_questions(user_id, word_id, CONTEXT_REVIEW)
        if candidates:
            return self.rng.choice(candidates)

        candidates = word_repo.get_questions_for_word(word_id)
        if candidates:
            return self.rng.choice(candidates)

        return None

    async def acquire_duel_question(self, word: dict[str, Any]) -> dict[str, Any] | None:
        """Get any question of a word, generating a meaning question if it has none"""
        question = self.db_manager.word_repo.get_random_question(word["id"])
        if question:
            return question

        try:
            generated = await self.generator.generate_questions(word, QuestionStyle.MEANING.value, 1)
        except Exception as e:
            logger.error(f"Question generation failed for word {word['id']}: {e}")
            return None

        inserted = self.db_manager.word_repo.insert_generated_questions(
            word["id"], QuestionStyle.MEANING.value, generated[:1], rng=self.rng
        )
        if not inserted:
            return None
        return self.db_manager.word_repo.get_question_by_id(inserted[0])
