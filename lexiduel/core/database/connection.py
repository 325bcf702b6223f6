"""
Database connection manager for the vocabulary duel bot
"""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

from ...config import get_database_path
from ...exceptions import ConditionFailedError

logger = logging.getLogger(__name__)


@dataclass
class Statement:
    """A single SQL statement for an atomic batch"""

    sql: str
    params: tuple[Any, ...] | list[Any] = field(default_factory=tuple)
    # When set, the whole batch is rolled back if this statement changes no rows
    guard: bool = False


def _adapt_date(val: date) -> str:
    return val.isoformat()


def _adapt_datetime(val: datetime) -> str:
    # Fixed width keeps stored timestamps comparable as strings
    return val.isoformat(timespec="microseconds")


def _convert_date(val: bytes) -> date:
    try:
        return date.fromisoformat(val.decode())
    except ValueError:
        date_str = val.decode()
        for fmt in ["%Y-%m-%d", "%Y-%m-%d %H:%M:%S"]:
            try:
                return datetime.strptime(date_str, fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Invalid date format: {date_str}") from None


def _convert_datetime(val: bytes) -> datetime:
    try:
        return datetime.fromisoformat(val.decode())
    except ValueError:
        datetime_str = val.decode()
        for fmt in [
            "%Y-%m-%d %H:%M:%S",
            "%Y-%m-%d %H:%M:%S.%f",
            "%Y-%m-%d",
        ]:
            try:
                return datetime.strptime(datetime_str, fmt)
            except ValueError:
                continue
        raise ValueError(f"Invalid datetime format: {datetime_str}") from None


sqlite3.register_adapter(date, _adapt_date)
sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("date", _convert_date)
sqlite3.register_converter("datetime", _convert_datetime)
sqlite3.register_converter("timestamp", _convert_datetime)


class DatabaseConnection:
    """Manages SQLite database connections, schema and atomic batches"""

    def __init__(self, db_path: str | None = None):
        self.db_path = db_path or get_database_path()
        self._ensure_database_directory()
        self._init_connection_settings()

    def _ensure_database_directory(self) -> None:
        """Ensure the database directory exists"""
        db_dir = Path(self.db_path).parent
        db_dir.mkdir(parents=True, exist_ok=True)

    def _init_connection_settings(self) -> None:
        """Initialize database connection settings"""
        with self.get_connection() as conn:
            # WAL lets readers proceed while a batch holds the write lock
            conn.execute("PRAGMA journal_mode=WAL")

    @contextmanager
    def get_connection(self):
        """Get database connection with proper cleanup"""
        conn = None
        try:
            conn = sqlite3.connect(
                self.db_path,
                detect_types=sqlite3.PARSE_DECLTYPES,
                timeout=30,
            )
            conn.row_factory = sqlite3.Row  # Enable dict-like access
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute("PRAGMA busy_timeout=30000")

            yield conn
        except Exception as e:
            if conn:
                conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            if conn:
                conn.close()

    def batch(self, statements: list[Statement]) -> list[int]:
        """
        Run statements atomically in a single write transaction

        Args:
            statements: Statements to execute in order

        Returns:
            Affected row count for every statement

        Raises:
            ConditionFailedError: a guard statement affected no rows; nothing
                from the batch is applied
        """
        if not statements:
            return []

        with self.get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            rowcounts = []
            for index, statement in enumerate(statements):
                cursor = conn.execute(statement.sql, statement.params)
                if statement.guard and cursor.rowcount == 0:
                    conn.rollback()
                    logger.info(f"Batch rolled back: guard statement {index} matched no rows")
                    raise ConditionFailedError(index)
                rowcounts.append(cursor.rowcount)
            conn.commit()
            return rowcounts

    def init_database(self) -> None:
        """Initialize database tables"""
        with self.get_connection() as conn:
            self._create_tables(conn)
            self._run_migrations(conn)
            self._create_indexes(conn)
            conn.commit()

    def _create_tables(self, conn: sqlite3.Connection) -> None:
        """Create database tables"""
        tables = [
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                telegram_id INTEGER UNIQUE NOT NULL,
                first_name TEXT,
                last_name TEXT,
                username TEXT,
                display_name TEXT,
                name_change_count INTEGER NOT NULL DEFAULT 0,
                xp_total INTEGER NOT NULL DEFAULT 0,
                streak_count INTEGER NOT NULL DEFAULT 0,
                last_streak_date DATE,
                created_at TIMESTAMP,
                updated_at TIMESTAMP,
                last_seen_at TIMESTAMP
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS words (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                english TEXT NOT NULL,
                native TEXT NOT NULL,
                level INTEGER NOT NULL DEFAULT 1,
                lesson_name TEXT,
                synonyms TEXT,
                antonyms TEXT,
                order_index INTEGER NOT NULL DEFAULT 0,
                is_active BOOLEAN NOT NULL DEFAULT 1,
                created_at TIMESTAMP
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS word_questions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                word_id INTEGER NOT NULL,
                question_text TEXT NOT NULL,
                option_a TEXT NOT NULL,
                option_b TEXT NOT NULL,
                option_c TEXT NOT NULL,
                option_d TEXT NOT NULL,
                correct_option TEXT NOT NULL,
                explanation_text TEXT,
                question_style TEXT NOT NULL,
                created_at TIMESTAMP,
                FOREIGN KEY (word_id) REFERENCES words(id) ON DELETE CASCADE
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS review_states (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                word_id INTEGER NOT NULL,
                interval_days INTEGER NOT NULL DEFAULT 1,
                repetitions INTEGER NOT NULL DEFAULT 0,
                ease_factor REAL NOT NULL DEFAULT 2.5,
                next_review_date DATE NOT NULL,
                last_reviewed_at TIMESTAMP,
                ignored INTEGER NOT NULL DEFAULT 0,
                correct_streak INTEGER NOT NULL DEFAULT 0,
                question_stage INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP,
                updated_at TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY (word_id) REFERENCES words(id) ON DELETE CASCADE,
                UNIQUE(user_id, word_id)
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS question_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                word_id INTEGER NOT NULL,
                question_id INTEGER NOT NULL,
                context TEXT NOT NULL,
                shown_at TIMESTAMP NOT NULL,
                is_correct INTEGER,
                answered_at TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY (question_id) REFERENCES word_questions(id) ON DELETE CASCADE
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS duel_matches (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                difficulty TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'waiting',
                player1_id INTEGER NOT NULL,
                player2_id INTEGER,
                winner_user_id INTEGER,
                is_draw INTEGER NOT NULL DEFAULT 0,
                player1_correct INTEGER NOT NULL DEFAULT 0,
                player2_correct INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL,
                started_at TIMESTAMP,
                completed_at TIMESTAMP
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS duel_questions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                duel_id INTEGER NOT NULL,
                question_index INTEGER NOT NULL,
                word_id INTEGER NOT NULL,
                word_question_id INTEGER NOT NULL,
                UNIQUE(duel_id, question_index)
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS duel_answers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                duel_id INTEGER NOT NULL,
                duel_question_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                chosen_option TEXT NOT NULL,
                is_correct INTEGER NOT NULL,
                answered_at TIMESTAMP NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS xp_ledger (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                activity_type TEXT NOT NULL,
                ref_id INTEGER,
                xp_delta INTEGER NOT NULL,
                meta_json TEXT,
                created_at TIMESTAMP NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
            """,
        ]

        for table_sql in tables:
            conn.execute(table_sql)

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        """Create database indexes"""
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_words_order ON words(is_active, order_index, id)",
            "CREATE INDEX IF NOT EXISTS idx_words_level ON words(level)",
            (
                "CREATE INDEX IF NOT EXISTS idx_word_questions_word_style "
                "ON word_questions(word_id, question_style)"
            ),
            (
                "CREATE INDEX IF NOT EXISTS idx_review_states_due "
                "ON review_states(user_id, ignored, next_review_date)"
            ),
            (
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_question_history_unique "
                "ON question_history(user_id, question_id, context)"
            ),
            (
                "CREATE INDEX IF NOT EXISTS idx_duel_matches_waiting "
                "ON duel_matches(status, difficulty, created_at)"
            ),
            (
                "CREATE INDEX IF NOT EXISTS idx_duel_answers_player "
                "ON duel_answers(duel_id, user_id)"
            ),
            (
                "CREATE INDEX IF NOT EXISTS idx_duel_answers_question "
                "ON duel_answers(duel_question_id, user_id)"
            ),
            (
                "CREATE INDEX IF NOT EXISTS idx_xp_ledger_user_created "
                "ON xp_ledger(user_id, created_at)"
            ),
            (
                "CREATE INDEX IF NOT EXISTS idx_xp_ledger_activity "
                "ON xp_ledger(activity_type, ref_id, user_id)"
            ),
        ]

        for index_sql in indexes:
            try:
                conn.execute(index_sql)
            except sqlite3.OperationalError as e:
                logger.warning(f"Failed to create index: {index_sql}, error: {e}")

    def _run_migrations(self, conn: sqlite3.Connection) -> None:
        """Run database migrations for schema updates"""
        cursor = conn.execute("PRAGMA table_info(users)")
        user_columns = {row[1] for row in cursor.fetchall()}

        # Databases created before streaks were tracked
        if "streak_count" not in user_columns:
            logger.info("Adding missing streak columns to users table")
            conn.execute(
                "ALTER TABLE users ADD COLUMN streak_count INTEGER NOT NULL DEFAULT 0"
            )
            conn.execute("ALTER TABLE users ADD COLUMN last_streak_date DATE")

        if "name_change_count" not in user_columns:
            logger.info("Adding missing name_change_count column to users table")
            conn.execute(
                "ALTER TABLE users ADD COLUMN name_change_count INTEGER NOT NULL DEFAULT 0"
            )

        cursor = conn.execute("PRAGMA table_info(review_states)")
        state_columns = {row[1] for row in cursor.fetchall()}

        if "question_stage" not in state_columns:
            logger.info("Adding missing question_stage columns to review_states table")
            conn.execute(
                "ALTER TABLE review_states ADD COLUMN correct_streak INTEGER NOT NULL DEFAULT 0"
            )
            conn.execute(
                "ALTER TABLE review_states ADD COLUMN question_stage INTEGER NOT NULL DEFAULT 1"
            )
