"""
Unified database manager that coordinates all repositories
"""

import logging
from datetime import datetime

from .connection import DatabaseConnection, Statement
from .models import User, Word
from .repositories.duel_repository import DuelRepository
from .repositories.history_repository import HistoryRepository
from .repositories.progress_repository import ProgressRepository
from .repositories.user_repository import UserRepository
from .repositories.word_repository import WordRepository
from .repositories.xp_repository import XpRepository

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Unified database manager that coordinates all repositories"""

    def __init__(self, db_path: str | None = None):
        self.db_connection = DatabaseConnection(db_path)
        self.user_repo = UserRepository(self.db_connection)
        self.word_repo = WordRepository(self.db_connection)
        self.progress_repo = ProgressRepository(self.db_connection)
        self.history_repo = HistoryRepository(self.db_connection)
        self.duel_repo = DuelRepository(self.db_connection)
        self.xp_repo = XpRepository(self.db_connection)

    def init_database(self) -> None:
        """Initialize database tables and indexes"""
        self.db_connection.init_database()

    def batch(self, statements: list[Statement]) -> list[int]:
        """Run statements atomically"""
        return self.db_connection.batch(statements)

    # User methods
    def get_or_create_user(
        self,
        telegram_id: int,
        first_name: str | None,
        last_name: str | None = None,
        username: str | None = None,
        now: datetime | None = None,
    ) -> User:
        """Get a user by Telegram ID, registering them on first contact"""
        return self.user_repo.get_or_create_user(
            telegram_id, first_name, last_name, username, now
        )

    def get_user_by_id(self, user_id: int) -> User | None:
        """Get user by internal ID"""
        return self.user_repo.get_user_by_id(user_id)

    # Word methods
    def get_word_by_id(self, word_id: int) -> Word | None:
        """Get word by ID"""
        return self.word_repo.get_word_by_id(word_id)


# Global database manager instance
_db_manager: DatabaseManager | None = None


def get_db_manager(db_path: str | None = None) -> DatabaseManager:
    """Get global database manager instance"""
    global _db_manager
    if _db_manager is None or (db_path and _db_manager.db_connection.db_path != db_path):
        _db_manager = DatabaseManager(db_path)
    return _db_manager
