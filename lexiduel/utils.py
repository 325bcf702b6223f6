"""
Utility functions for the vocabulary duel bot
"""

import html
import inspect
import json
import logging
import time
from datetime import date, datetime, timedelta, timezone
from functools import wraps
from typing import Any

logger = logging.getLogger(__name__)

OPTION_LETTERS = ("A", "B", "C", "D")

# Compact keys keep callback data under Telegram's 64 byte limit
CALLBACK_KEY_MAPPINGS = {
    "question_id": "q",
    "option": "o",
    "word_id": "w",
    "duel_id": "d",
    "duel_question_id": "dq",
}


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def local_day(now: datetime, offset_minutes: int) -> date:
    """Calendar day at a fixed offset from UTC"""
    return (now.astimezone(timezone.utc) + timedelta(minutes=offset_minutes)).date()


def local_day_bounds(day: date, offset_minutes: int) -> tuple[datetime, datetime]:
    """UTC start (inclusive) and end (exclusive) of a local calendar day"""
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc) - timedelta(
        minutes=offset_minutes
    )
    return start, start + timedelta(days=1)


def extract_json_safely(json_str: str) -> dict[str, Any]:
    """Safely extract a JSON object from string"""
    if not json_str:
        return {}

    try:
        data = json.loads(json_str)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Failed to parse JSON: {json_str}")
        return {}

    return data if isinstance(data, dict) else {}


def format_json_safely(data: Any) -> str:
    """Safely format data as compact JSON string"""
    try:
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError):
        logger.warning(f"Failed to serialize to JSON: {data}")
        return "{}"


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ``` or ```json fence from model output"""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


def create_inline_keyboard_data(action: str, **kwargs) -> str:
    """Create callback data for inline keyboard with compact format"""
    compact_data = {"a": action}
    for key, value in kwargs.items():
        compact_data[CALLBACK_KEY_MAPPINGS.get(key, key)] = value

    result = format_json_safely(compact_data)
    if len(result.encode("utf-8")) > 64:
        raise ValueError(f"Callback data too long: {result}")
    return result


def parse_inline_keyboard_data(callback_data: str) -> dict[str, Any]:
    """Parse compact callback data into named fields"""
    raw_data = extract_json_safely(callback_data)

    reverse_mappings = {v: k for k, v in CALLBACK_KEY_MAPPINGS.items()}
    reverse_mappings["a"] = "action"

    return {reverse_mappings.get(key, key): value for key, value in raw_data.items()}


def option_index(letter: str) -> int:
    """Position of an option letter (A-D)"""
    return OPTION_LETTERS.index(letter.upper())


def question_options(question: dict[str, Any]) -> list[str]:
    """Options of a stored question in letter order"""
    return [question[f"option_{letter.lower()}"] for letter in OPTION_LETTERS]


def format_question(question: dict[str, Any], header: str = "") -> str:
    """Format a multiple-choice question for display in Telegram (HTML)"""
    lines = []
    if header:
        lines.append(header)
    lines.append(f"<b>{html.escape(question['question_text'])}</b>")
    lines.append("")
    for letter, option in zip(OPTION_LETTERS, question_options(question), strict=True):
        lines.append(f"{letter}) {html.escape(option)}")
    return "\n".join(lines)


def format_answer_feedback(question: dict[str, Any], chosen_option: str, is_correct: bool) -> str:
    """Format the result of an answer"""
    correct_letter = question["correct_option"]
    correct_text = question_options(question)[option_index(correct_letter)]

    if is_correct:
        result = "✅ Correct!"
    else:
        result = (
            f"❌ Wrong ({chosen_option}). "
            f"Correct answer: {correct_letter}) {html.escape(correct_text)}"
        )

    explanation = question.get("explanation_text")
    if explanation:
        result += f"\n\n💡 {html.escape(explanation)}"
    return result


def display_name(user: dict[str, Any]) -> str:
    """Name to show for a user on leaderboards"""
    for key in ("display_name", "username", "first_name"):
        value = user.get(key)
        if value:
            return value
    return f"User {user.get('telegram_id') or user.get('id')}"


class Timer:
    """Simple timer for measuring duration"""

    def __init__(self):
        self.start_time = None
        self.end_time = None

    def start(self):
        """Start the timer"""
        self.start_time = time.time()
        self.end_time = None

    def stop(self):
        """Stop the timer"""
        if self.start_time is not None:
            self.end_time = time.time()

    def elapsed(self) -> float | None:
        """Get elapsed time in seconds"""
        if self.start_time is None:
            return None

        end = self.end_time or time.time()
        return end - self.start_time

    def elapsed_ms(self) -> int | None:
        """Get elapsed time in milliseconds"""
        elapsed = self.elapsed()
        return int(elapsed * 1000) if elapsed is not None else None


def log_execution_time(func):
    """Decorator to log function execution time"""

    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        timer = Timer()
        timer.start()
        try:
            result = await func(*args, **kwargs)
            timer.stop()
            logger.debug(f"{func.__name__} executed in {timer.elapsed():.3f}s")
            return result
        except Exception as e:
            timer.stop()
            logger.error(f"{func.__name__} failed after {timer.elapsed():.3f}s: {e}")
            raise

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        timer = Timer()
        timer.start()
        try:
            result = func(*args, **kwargs)
            timer.stop()
            logger.debug(f"{func.__name__} executed in {timer.elapsed():.3f}s")
            return result
        except Exception as e:
            timer.stop()
            logger.error(f"{func.__name__} failed after {timer.elapsed():.3f}s: {e}")
            raise

    if inspect.iscoroutinefunction(func):
        return async_wrapper
    else:
        return sync_wrapper
