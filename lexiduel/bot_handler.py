"""
Telegram bot handler wiring commands, callbacks and maintenance together
"""

import logging

from telegram import BotCommand, Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
)

from .config import get_settings
from .core.database.database_manager import get_db_manager
from .core.handlers.callback_handlers import CallbackHandlers
from .core.handlers.command_handlers import CommandHandlers
from .core.scheduler.maintenance_scheduler import MaintenanceScheduler
from .duel_service import DuelService
from .question_generator import get_question_generator
from .question_selector import QuestionSelector
from .review_service import ReviewService
from .xp_ledger import XpLedger

logger = logging.getLogger(__name__)


class BotHandler:
    """Main Telegram bot handler"""

    def __init__(self, settings=None, db_manager=None, generator=None):
        self.settings = settings or get_settings()
        self.db_manager = db_manager or get_db_manager()
        self.generator = generator or get_question_generator(self.settings.use_mock_generator)

        self.selector = QuestionSelector(self.db_manager, self.generator)
        self.xp_ledger = XpLedger(self.db_manager)
        self.review_service = ReviewService(self.db_manager, self.selector, self.xp_ledger)
        self.duel_service = DuelService(self.db_manager, self.selector, self.xp_ledger)
        self.maintenance_scheduler = MaintenanceScheduler(
            self.duel_service.cleanup,
            interval_minutes=self.settings.cleanup_interval_minutes,
        )

        self.application = None

        self.command_handlers = CommandHandlers(
            db_manager=self.db_manager,
            review_service=self.review_service,
            duel_service=self.duel_service,
            xp_ledger=self.xp_ledger,
            safe_reply_callback=self._safe_reply,
            send_message_callback=self._send_message,
        )

        self.callback_handlers = CallbackHandlers(
            db_manager=self.db_manager,
            review_service=self.review_service,
            duel_service=self.duel_service,
            command_handlers=self.command_handlers,
            safe_edit_callback=self._safe_edit,
            send_message_callback=self._send_message,
        )

    def run(self):
        """Run the bot (blocking until stopped)"""
        logger.info("Starting vocabulary duel bot...")

        # Initialize database
        self.db_manager.init_database()

        # Create application
        self.application = (
            Application.builder()
            .token(self.settings.telegram_bot_token)
            .read_timeout(30)
            .write_timeout(30)
            .connect_timeout(30)
            .pool_timeout(30)
            .post_init(self._post_init)
            .post_shutdown(self._post_shutdown)
            .build()
        )

        # Add handlers
        self._add_handlers()

        # Start polling
        logger.info("Bot started successfully!")
        self.application.run_polling(
            poll_interval=self.settings.polling_interval,
            timeout=10,
            bootstrap_retries=3,
        )

    def _add_handlers(self):
        """Add command and callback handlers"""
        app = self.application
        commands = self.command_handlers

        app.add_handler(CommandHandler("start", commands.start_command))
        app.add_handler(CommandHandler("help", commands.help_command))
        app.add_handler(CommandHandler("review", commands.review_command))
        app.add_handler(CommandHandler("duel_easy", commands.duel_easy_command))
        app.add_handler(CommandHandler("duel_hard", commands.duel_hard_command))
        app.add_handler(CommandHandler("profile", commands.profile_command))
        app.add_handler(CommandHandler("leaderboard", commands.leaderboard_command))
        app.add_handler(CommandHandler("setname", commands.setname_command))

        app.add_handler(CallbackQueryHandler(self.callback_handlers.handle_callback_query))

        # Error handler
        app.add_error_handler(self.error_handler)

    async def _post_init(self, application):
        await self.setup_bot_menu(application)
        await self.maintenance_scheduler.start()

    async def _post_shutdown(self, application):
        await self.maintenance_scheduler.stop()

    async def setup_bot_menu(self, application):
        """Setup bot menu with commands for better UX"""
        commands = [
            BotCommand("review", "📚 Review the next word"),
            BotCommand("duel_easy", "⚔️ Start an easy duel"),
            BotCommand("duel_hard", "🔥 Start a hard duel"),
            BotCommand("profile", "📊 XP, streak and progress"),
            BotCommand("leaderboard", "🏆 Top learners"),
            BotCommand("setname", "✏️ Change your display name"),
            BotCommand("help", "❓ Command reference"),
        ]

        try:
            await application.bot.set_my_commands(commands)
            logger.info("Bot menu commands set successfully")
        except TelegramError as e:
            logger.error(f"Failed to set bot menu commands: {e}")

    async def _safe_reply(self, update_or_message, text: str, **kwargs):
        """Safely send a reply message"""
        try:
            if hasattr(update_or_message, "message") and update_or_message.message:
                # It's an Update object
                return await update_or_message.message.reply_text(text, **kwargs)
            # It's a Message object
            return await update_or_message.reply_text(text, **kwargs)
        except TelegramError as e:
            logger.error(f"Error sending reply: {e}")
            logger.debug(f"Failed text: {text[:100]}...")
            return None

    async def _safe_edit(self, query, text: str, **kwargs):
        """Safely edit a message"""
        try:
            return await query.edit_message_text(text, **kwargs)
        except TelegramError as e:
            logger.error(f"Error editing message: {e}")
            return None

    async def _send_message(self, chat_id: int, text: str, **kwargs):
        """Safely send a message to a chat"""
        try:
            return await self.application.bot.send_message(chat_id=chat_id, text=text, **kwargs)
        except TelegramError as e:
            logger.error(f"Error sending message to {chat_id}: {e}")
            return None

    async def error_handler(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        """Handle errors"""
        logger.error(f"Update {update} caused error {context.error}")
        if isinstance(update, Update) and update.effective_message:
            await self._safe_reply(
                update.effective_message, "❌ Something went wrong. Please try again later."
            )
