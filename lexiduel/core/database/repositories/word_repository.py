"""
Word repository for the vocabulary catalog and its multiple-choice questions
"""

import logging
import random
from datetime import datetime
from typing import Any

from ..connection import DatabaseConnection
from ..models import Word, WordQuestion
from ....utils import OPTION_LETTERS, utc_now

logger = logging.getLogger(__name__)


def prepare_question_options(
    options: list[str], correct_index: int, rng: random.Random | None = None
) -> tuple[list[str], str]:
    """
    Normalize generated options to four shuffled choices

    Args:
        options: Options as generated (any length)
        correct_index: Position of the correct option in ``options``
        rng: Random source for shuffling

    Returns:
        Tuple of (four options in display order, letter of the correct one)
    """
    rng = rng or random
    normalized = [str(option) for option in options[:4]]
    while len(normalized) < 4:
        normalized.append("")

    if not isinstance(correct_index, int) or not 0 <= correct_index < 4:
        correct_index = 0

    order = list(range(4))
    rng.shuffle(order)
    shuffled = [normalized[i] for i in order]
    correct_letter = OPTION_LETTERS[order.index(correct_index)]
    return shuffled, correct_letter


class WordRepository:
    """Repository for catalog words and their questions"""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    def create_word(self, word_data: dict[str, Any], now: datetime | None = None) -> int:
        """Create a new catalog word and return its ID"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO words (
                    english, native, level, lesson_name, synonyms, antonyms,
                    order_index, is_active, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    word_data["english"],
                    word_data["native"],
                    word_data.get("level", 1),
                    word_data.get("lesson_name"),
                    word_data.get("synonyms"),
                    word_data.get("antonyms"),
                    word_data.get("order_index", 0),
                    1 if word_data.get("is_active", True) else 0,
                    now or utc_now(),
                ),
            )
            conn.commit()
            return cursor.lastrowid

    def get_word_by_id(self, word_id: int) -> Word | None:
        """Get word by ID"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute("SELECT * FROM words WHERE id = ?", (word_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_word_by_english(self, english: str) -> Word | None:
        """Get word by its English text"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM words WHERE english = ? ORDER BY id LIMIT 1", (english,)
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_all_words(self, active_only: bool = False) -> list[Word]:
        """Get catalog words in catalog order"""
        query = "SELECT * FROM words"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY order_index, id"

        with self.db_connection.get_connection() as conn:
            return [dict(row) for row in conn.execute(query).fetchall()]

    def get_random_word_in_levels(self, min_level: int, max_level: int) -> Word | None:
        """Get a random active word with a level in the given range"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM words
                WHERE is_active = 1 AND level BETWEEN ? AND ?
                ORDER BY RANDOM()
                LIMIT 1
                """,
                (min_level, max_level),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    # Questions

    def count_questions_by_style(self, word_id: int) -> dict[str, int]:
        """Count stocked questions of a word per style"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT question_style, COUNT(*) AS cnt
                FROM word_questions
                WHERE word_id = ?
                GROUP BY question_style
                """,
                (word_id,),
            )
            return {row["question_style"]: row["cnt"] for row in cursor.fetchall()}

    def insert_generated_questions(
        self,
        word_id: int,
        style: str,
        questions: list[dict[str, Any]],
        now: datetime | None = None,
        rng: random.Random | None = None,
    ) -> list[int]:
        """
        Append generated questions to a word's stock

        Questions with an empty prompt are dropped. Options are normalized to
        four and shuffled, with the correct letter following the shuffle.

        Returns:
            IDs of the inserted questions
        """
        now = now or utc_now()
        inserted_ids = []

        with self.db_connection.get_connection() as conn:
            for question in questions:
                prompt = str(question.get("question") or "").strip()
                if not prompt:
                    logger.debug(f"Dropping generated {style} question without prompt for word {word_id}")
                    continue

                options, correct_letter = prepare_question_options(
                    list(question.get("options") or []),
                    question.get("correct_index", 0),
                    rng,
                )
                cursor = conn.execute(
                    """
                    INSERT INTO word_questions (
                        word_id, question_text, option_a, option_b, option_c, option_d,
                        correct_option, explanation_text, question_style, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        word_id,
                        prompt,
                        *options,
                        correct_letter,
                        question.get("explanation"),
                        style,
                        now,
                    ),
                )
                inserted_ids.append(cursor.lastrowid)

            conn.commit()

        if inserted_ids:
            logger.info(f"Stored {len(inserted_ids)} {style} questions for word {word_id}")
        return inserted_ids

    def get_question_by_id(self, question_id: int) -> WordQuestion | None:
        """Get question by ID"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM word_questions WHERE id = ?", (question_id,)
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_questions_for_word(self, word_id: int) -> list[WordQuestion]:
        """Get all questions of a word"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM word_questions WHERE word_id = ? ORDER BY id", (word_id,)
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_unseen_questions(
        self, user_id: int, word_id: int, context: str, style: str | None = None
    ) -> list[WordQuestion]:
        """Get questions of a word the user has no history for in a context"""
        query = """
            SELECT wq.* FROM word_questions wq
            WHERE wq.word_id = ?
              AND NOT EXISTS (
                  SELECT 1 FROM question_history qh
                  WHERE qh.question_id = wq.id AND qh.user_id = ? AND qh.context = ?
              )
        """
        params: list[Any] = [word_id, user_id, context]
        if style is not None:
            query += " AND wq.question_style = ?"
            params.append(style)
        query += " ORDER BY wq.id"

        with self.db_connection.get_connection() as conn:
            return [dict(row) for row in conn.execute(query, params).fetchall()]

    def get_random_question(self, word_id: int) -> WordQuestion | None:
        """Get a random question of a word, any style"""
        with self.db_connection.get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM word_questions
                WHERE word_id = ?
                ORDER BY RANDOM()
                LIMIT 1
                """,
                (word_id,),
            )
            row = cursor.fetchone()
            return dict(row) if row else None
