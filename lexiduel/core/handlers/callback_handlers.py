"""
Callback query handlers for answer and ignore buttons
"""

import logging

from telegram import Update
from telegram.ext import ContextTypes

from ...database import DatabaseManager
from ...duel_service import DuelService
from ...exceptions import LexiduelError
from ...review_service import ReviewService
from ...utils import format_answer_feedback, format_question, parse_inline_keyboard_data
from ...xp_ledger import STREAK_UNCHANGED
from .command_handlers import GENERIC_ERROR_MESSAGE, CommandHandlers
from .keyboards import ACTION_DUEL_ANSWER, ACTION_IGNORE_WORD, ACTION_REVIEW_ANSWER

logger = logging.getLogger(__name__)


class CallbackHandlers:
    """Handles inline keyboard callbacks"""

    def __init__(
        self,
        db_manager: DatabaseManager,
        review_service: ReviewService,
        duel_service: DuelService,
        command_handlers: CommandHandlers,
        safe_edit_callback,
        send_message_callback,
    ):
        self.db_manager = db_manager
        self.review_service = review_service
        self.duel_service = duel_service
        self.command_handlers = command_handlers
        self._safe_edit = safe_edit_callback
        self._send_message = send_message_callback

    async def handle_callback_query(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ):
        """Handle callback queries from inline keyboards"""
        if not update.callback_query or not update.effective_user:
            return

        query = update.callback_query
        data = parse_inline_keyboard_data(query.data or "")
        action = data.get("action")

        handlers = {
            ACTION_REVIEW_ANSWER: self._handle_review_answer,
            ACTION_IGNORE_WORD: self._handle_ignore_word,
            ACTION_DUEL_ANSWER: self._handle_duel_answer,
        }
        handler = handlers.get(action)
        if handler is None:
            logger.warning(f"Unhandled callback query: {query.data}")
            await query.answer()
            return

        tg_user = update.effective_user
        try:
            user = self.db_manager.get_or_create_user(
                telegram_id=tg_user.id,
                first_name=tg_user.first_name,
                last_name=tg_user.last_name,
                username=tg_user.username,
            )
            await handler(query, user, data)
        except LexiduelError as e:
            logger.info(f"Callback {action} rejected for user {tg_user.id}: {e.message}")
            await query.answer(e.user_message, show_alert=False)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed callback data {query.data}: {e}")
            await query.answer()
        except Exception as e:
            logger.error(f"Error handling callback {action}: {e}")
            await query.answer(GENERIC_ERROR_MESSAGE)

    async def _handle_review_answer(self, query, user: dict, data: dict):
        result = self.review_service.answer(
            user["id"], int(data["question_id"]), str(data["option"])
        )
        await query.answer()

        feedback = format_answer_feedback(result.question, result.chosen_option, result.is_correct)
        if result.xp_awarded:
            feedback += f"\n⭐ +{result.xp_awarded} XP"
        if result.streak and result.streak.status != STREAK_UNCHANGED:
            feedback += f"\n🔥 Streak: {result.streak.streak_count} day(s)"

        await self._safe_edit(
            query,
            f"{format_question(result.question)}\n\n{feedback}",
            parse_mode="HTML",
        )
        await self.command_handlers.send_next_review(query.message.chat_id, user["id"])

    async def _handle_ignore_word(self, query, user: dict, data: dict):
        self.review_service.ignore_word(user["id"], int(data["word_id"]))
        await query.answer("🙈 This word will not be shown again.")
        await self._safe_edit(query, "🙈 Word skipped. It will not be shown again.")
        await self.command_handlers.send_next_review(query.message.chat_id, user["id"])

    async def _handle_duel_answer(self, query, user: dict, data: dict):
        result = self.duel_service.answer(
            user["id"],
            int(data["duel_id"]),
            int(data["duel_question_id"]),
            str(data["option"]),
        )
        await query.answer()

        feedback = format_answer_feedback(result.question, result.chosen_option, result.is_correct)
        await self._safe_edit(
            query,
            f"{format_question(result.question)}\n\n{feedback}",
            parse_mode="HTML",
        )

        chat_id = query.message.chat_id
        if result.next_question is not None:
            await self.command_handlers.send_duel_question(
                chat_id, result.next_question, result.total
            )
        elif result.outcome is not None:
            await self.command_handlers.notify_settlements(result.outcome, result.settlements)
            if all(s.user_id != user["id"] for s in result.settlements):
                await self._send_message(chat_id, "🏁 This duel is already finished.")
        else:
            await self._send_message(
                chat_id,
                "⏳ All answers in! Waiting for your opponent to finish.",
            )
