"""
Database models for the vocabulary duel bot
"""

from datetime import date, datetime
from typing import TypedDict


class User(TypedDict):
    """User model"""
    id: int
    telegram_id: int
    first_name: str | None
    last_name: str | None
    username: str | None
    display_name: str | None
    name_change_count: int
    xp_total: int
    streak_count: int
    last_streak_date: date | None
    created_at: datetime
    updated_at: datetime
    last_seen_at: datetime | None


class Word(TypedDict):
    """Catalog word model"""
    id: int
    english: str
    native: str
    level: int
    lesson_name: str | None
    synonyms: str | None
    antonyms: str | None
    order_index: int
    is_active: bool
    created_at: datetime | None


class WordQuestion(TypedDict):
    """Multiple-choice question model"""
    id: int
    word_id: int
    question_text: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_option: str
    explanation_text: str | None
    question_style: str
    created_at: datetime | None


class ReviewState(TypedDict):
    """Per-user spaced repetition state of a word"""
    id: int
    user_id: int
    word_id: int
    interval_days: int
    repetitions: int
    ease_factor: float
    next_review_date: date
    last_reviewed_at: datetime | None
    ignored: int
    correct_streak: int
    question_stage: int
    created_at: datetime | None
    updated_at: datetime | None


class QuestionHistory(TypedDict):
    """Shown/answered record of a question"""
    id: int
    user_id: int
    word_id: int
    question_id: int
    context: str
    shown_at: datetime
    is_correct: int | None
    answered_at: datetime | None


class DuelMatch(TypedDict):
    """Duel match model"""
    id: int
    difficulty: str
    status: str
    player1_id: int
    player2_id: int | None
    winner_user_id: int | None
    is_draw: int
    player1_correct: int
    player2_correct: int
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None


class DuelQuestion(TypedDict):
    """Question slot allocated to a duel"""
    id: int
    duel_id: int
    question_index: int
    word_id: int
    word_question_id: int


class DuelAnswer(TypedDict):
    """Answer of a player to a duel question"""
    id: int
    duel_id: int
    duel_question_id: int
    user_id: int
    chosen_option: str
    is_correct: int
    answered_at: datetime


class XpLedgerEntry(TypedDict):
    """Append-only XP ledger entry"""
    id: int
    user_id: int
    activity_type: str
    ref_id: int | None
    xp_delta: int
    meta_json: str | None
    created_at: datetime


class UserProfile(TypedDict):
    """Profile summary shown to a user"""
    xp_total: int
    streak_count: int
    words_seen: int
    words_due: int
    words_ignored: int
    duels_played: int
    duels_won: int


class LeaderboardEntry(TypedDict):
    """Leaderboard row"""
    user_id: int
    display_name: str
    xp: int
