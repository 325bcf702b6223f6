"""
Shared fixtures for the vocabulary duel bot tests
"""

import os
import random
import tempfile

import pytest

from lexiduel.config import get_settings
from lexiduel.core.database.database_manager import DatabaseManager
from lexiduel.question_generator import MockQuestionGenerator
from lexiduel.question_selector import QuestionSelector
from lexiduel.xp_ledger import XpLedger


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Run every test with default settings and the mock generator"""
    monkeypatch.setenv("USE_MOCK_GENERATOR", "true")
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "test-token")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def temp_db():
    """Create temporary database for testing"""
    temp_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    temp_file.close()

    db_manager = DatabaseManager(temp_file.name)
    db_manager.init_database()

    yield db_manager

    # Cleanup, including WAL side files
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(temp_file.name + suffix):
            os.unlink(temp_file.name + suffix)


@pytest.fixture
def add_word(temp_db):
    """Factory creating catalog words"""
    counter = {"order": 0}

    def _add_word(english, native=None, level=1, **extra):
        counter["order"] += 1
        word_data = {
            "english": english,
            "native": native or f"{english}-native",
            "level": level,
            "order_index": counter["order"],
        }
        word_data.update(extra)
        word_id = temp_db.word_repo.create_word(word_data)
        return temp_db.get_word_by_id(word_id)

    return _add_word


@pytest.fixture
def add_user(temp_db):
    """Factory registering users by Telegram ID"""

    def _add_user(telegram_id, first_name=None, username=None):
        return temp_db.get_or_create_user(
            telegram_id, first_name or f"User{telegram_id}", username=username
        )

    return _add_user


@pytest.fixture
def mock_generator():
    """Deterministic question generator"""
    return MockQuestionGenerator()


@pytest.fixture
def selector(temp_db, mock_generator):
    """Question selector with a seeded random source"""
    return QuestionSelector(temp_db, mock_generator, rng=random.Random(42))


@pytest.fixture
def ledger(temp_db):
    """XP ledger on the temporary database"""
    return XpLedger(temp_db)
