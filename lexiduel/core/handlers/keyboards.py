"""
Inline keyboards for review and duel questions
"""

from typing import Any

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from ...utils import OPTION_LETTERS, create_inline_keyboard_data

ACTION_REVIEW_ANSWER = "ra"
ACTION_IGNORE_WORD = "ig"
ACTION_DUEL_ANSWER = "da"


def review_keyboard(question: dict[str, Any]) -> InlineKeyboardMarkup:
    """Answer buttons for a review question plus an ignore button"""
    answer_buttons = [
        InlineKeyboardButton(
            letter,
            callback_data=create_inline_keyboard_data(
                ACTION_REVIEW_ANSWER, question_id=question["id"], option=letter
            ),
        )
        for letter in OPTION_LETTERS
    ]
    ignore_button = InlineKeyboardButton(
        "🙈 I know this word",
        callback_data=create_inline_keyboard_data(
            ACTION_IGNORE_WORD, word_id=question["word_id"]
        ),
    )
    return InlineKeyboardMarkup([answer_buttons, [ignore_button]])


def duel_keyboard(duel_question: dict[str, Any]) -> InlineKeyboardMarkup:
    """Answer buttons for a duel question"""
    answer_buttons = [
        InlineKeyboardButton(
            letter,
            callback_data=create_inline_keyboard_data(
                ACTION_DUEL_ANSWER,
                duel_id=duel_question["duel_id"],
                duel_question_id=duel_question["duel_question_id"],
                option=letter,
            ),
        )
        for letter in OPTION_LETTERS
    ]
    return InlineKeyboardMarkup([answer_buttons])
