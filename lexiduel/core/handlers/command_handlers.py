"""
Command handlers for the vocabulary duel bot
"""

import html
import logging
from typing import Any

from telegram import Update
from telegram.ext import ContextTypes

from ...database import DatabaseManager
from ...duel_service import DuelService, Settlement
from ...exceptions import LexiduelError, NameChangeLimitError
from ...review_service import ReviewService
from ...utils import display_name, format_question, local_day, utc_now
from ...xp_ledger import DUEL_DRAW, DUEL_WIN, STREAK_UNCHANGED, XpLedger
from .keyboards import duel_keyboard, review_keyboard

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "❌ Something went wrong. Please try again later."

LEADERBOARD_TITLES = {
    "all": "🏆 All-time leaderboard",
    "week": "📅 Weekly leaderboard",
    "month": "🗓 Monthly leaderboard",
}


class CommandHandlers:
    """Handles all bot commands"""

    def __init__(
        self,
        db_manager: DatabaseManager,
        review_service: ReviewService,
        duel_service: DuelService,
        xp_ledger: XpLedger,
        safe_reply_callback,
        send_message_callback,
    ):
        self.db_manager = db_manager
        self.review_service = review_service
        self.duel_service = duel_service
        self.xp_ledger = xp_ledger
        self._safe_reply = safe_reply_callback
        self._send_message = send_message_callback

    def _get_user(self, update: Update) -> dict[str, Any]:
        tg_user = update.effective_user
        return self.db_manager.get_or_create_user(
            telegram_id=tg_user.id,
            first_name=tg_user.first_name,
            last_name=tg_user.last_name,
            username=tg_user.username,
        )

    async def start_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /start command"""
        if not update.effective_user:
            return

        self._get_user(update)
        name = html.escape(update.effective_user.first_name or "there")

        welcome_message = f"""🎉 Hi, {name}!

Welcome to the vocabulary duel bot.

📚 <b>Review</b> words with spaced repetition: /review
⚔️ <b>Duel</b> another learner: /duel_easy or /duel_hard
📊 Track your XP and streak: /profile
🏆 See who is on top: /leaderboard
✏️ Pick a display name: /setname

Need more details? /help"""

        await self._safe_reply(update, welcome_message, parse_mode="HTML")

    async def help_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /help command"""
        if not update.effective_user:
            return

        help_message = """📖 <b>Commands</b>

/review - Next word to review
/duel_easy - Duel with words of level 1-2
/duel_hard - Duel with words of level 1-4
/profile - XP, streak and progress
/leaderboard [week|month] - Top learners
/setname name - Change your display name (3 times at most)

🎯 <b>Reviews:</b> each correct answer spaces the word further out and
earns XP by word level. A wrong answer brings the word back tomorrow.

⚔️ <b>Duels:</b> both players answer the same 5 questions. Every correct
answer is worth 10 XP, a win adds 30 and a draw adds 10.

🔥 <b>Streak:</b> earn 30 XP in a day to keep your streak going."""

        await self._safe_reply(update, help_message, parse_mode="HTML")

    async def review_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /review command"""
        if not update.effective_user:
            return

        try:
            user = self._get_user(update)
            await self.send_next_review(update.effective_chat.id, user["id"])
        except LexiduelError as e:
            await self._safe_reply(update, e.user_message)
        except Exception as e:
            logger.error(f"Error in review command: {e}")
            await self._safe_reply(update, GENERIC_ERROR_MESSAGE)

    async def send_next_review(self, chat_id: int, user_id: int):
        """Send the next review question to a chat"""
        item = await self.review_service.next_review(user_id)
        if item is None:
            await self._send_message(
                chat_id,
                "🎉 Nothing to review right now. Come back later!",
            )
            return

        header = f"📚 <i>Level {item.word['level']}</i>"
        await self._send_message(
            chat_id,
            format_question(item.question, header),
            parse_mode="HTML",
            reply_markup=review_keyboard(item.question),
        )

    async def duel_easy_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /duel_easy command"""
        await self._start_duel(update, "easy")

    async def duel_hard_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /duel_hard command"""
        await self._start_duel(update, "hard")

    async def _start_duel(self, update: Update, difficulty: str):
        if not update.effective_user:
            return

        try:
            user = self._get_user(update)
            result = await self.duel_service.start_duel(user["id"], difficulty)
        except LexiduelError as e:
            await self._safe_reply(update, e.user_message)
            return
        except Exception as e:
            logger.error(f"Error starting {difficulty} duel: {e}")
            await self._safe_reply(update, GENERIC_ERROR_MESSAGE)
            return

        match = result.match
        if result.joined:
            await self._safe_reply(
                update, f"⚔️ Opponent found! The {difficulty} duel has started."
            )
            opponent = self.db_manager.get_user_by_id(match["player1_id"])
            if opponent:
                await self._send_message(
                    opponent["telegram_id"],
                    f"⚔️ {display_name(user)} joined your duel!",
                )
        else:
            await self._safe_reply(
                update,
                f"⚔️ A {difficulty} duel has started. Answer {result.total_questions} "
                "questions; results are compared once an opponent joins.",
            )

        await self.send_duel_question(
            update.effective_chat.id, result.first_question, result.total_questions
        )

    async def send_duel_question(
        self, chat_id: int, duel_question: dict[str, Any] | None, total: int
    ):
        """Send a duel question to a chat"""
        if duel_question is None:
            await self._send_message(
                chat_id, "✅ You have answered all questions of this duel."
            )
            return

        header = f"⚔️ <i>Question {duel_question['question_index']}/{total}</i>"
        await self._send_message(
            chat_id,
            format_question(duel_question, header),
            parse_mode="HTML",
            reply_markup=duel_keyboard(duel_question),
        )

    async def notify_settlements(self, outcome, settlements: list[Settlement]):
        """Tell newly settled players how their duel ended"""
        for settlement in settlements:
            user = self.db_manager.get_user_by_id(settlement.user_id)
            if not user:
                continue

            opponent_correct = (
                outcome.player2_correct
                if settlement.user_id == outcome.player1_id
                else outcome.player1_correct
            )
            if settlement.result == DUEL_WIN:
                headline = "🏆 You won the duel!"
            elif settlement.result == DUEL_DRAW:
                headline = "🤝 The duel ended in a draw."
            else:
                headline = "😔 You lost the duel."

            text = (
                f"{headline}\n\nScore: {settlement.correct_count} - {opponent_correct}\n"
                f"⭐ +{settlement.xp_awarded} XP"
            )
            if settlement.streak and settlement.streak.status != STREAK_UNCHANGED:
                text += f"\n🔥 Streak: {settlement.streak.streak_count} day(s)"
            await self._send_message(user["telegram_id"], text)

    async def profile_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /profile command"""
        if not update.effective_user:
            return

        try:
            user = self._get_user(update)
            settings = self.xp_ledger.settings
            now = utc_now()
            profile = self.db_manager.user_repo.get_user_profile(user["id"], now.date())
            streak = self.xp_ledger.current_streak(user["id"], now)
            today = local_day(now, settings.streak_utc_offset_minutes)
        except Exception as e:
            logger.error(f"Error loading profile: {e}")
            await self._safe_reply(update, GENERIC_ERROR_MESSAGE)
            return

        profile_message = f"""📊 <b>{html.escape(display_name(user))}</b>

⭐ XP: <b>{profile['xp_total']}</b>
🔥 Streak: <b>{streak}</b> day(s) (as of {today.isoformat()})

📚 Words seen: {profile['words_seen']}
🔄 Due now: {profile['words_due']}
🙈 Ignored: {profile['words_ignored']}

⚔️ Duels played: {profile['duels_played']}
🏆 Duels won: {profile['duels_won']}"""

        await self._safe_reply(update, profile_message, parse_mode="HTML")

    async def leaderboard_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /leaderboard command"""
        if not update.effective_user:
            return

        args = context.args if context and context.args else []
        period = args[0].lower() if args else "all"
        if period not in LEADERBOARD_TITLES:
            await self._safe_reply(update, "Usage: /leaderboard [week|month]")
            return

        try:
            user = self._get_user(update)
            now = utc_now()
            rows = self.xp_ledger.leaderboard(period, now=now)
            my_rank = self.xp_ledger.user_rank(user["id"], period, now=now)
        except Exception as e:
            logger.error(f"Error loading leaderboard: {e}")
            await self._safe_reply(update, GENERIC_ERROR_MESSAGE)
            return

        lines = [f"<b>{LEADERBOARD_TITLES[period]}</b>", ""]
        if not rows:
            lines.append("No XP earned yet. Be the first!")
        medals = {1: "🥇", 2: "🥈", 3: "🥉"}
        for position, row in enumerate(rows, start=1):
            marker = medals.get(position, f"{position}.")
            me = " (you)" if row["user_id"] == user["id"] else ""
            lines.append(f"{marker} {html.escape(display_name(row))}{me} - {row['xp']} XP")

        lines.append("")
        if my_rank is None:
            lines.append("👤 You have no XP in this period yet.")
        else:
            lines.append(f"👤 Your rank: <b>{my_rank['rank']}</b> with {my_rank['xp']} XP")

        await self._safe_reply(update, "\n".join(lines), parse_mode="HTML")

    async def setname_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /setname command"""
        if not update.effective_user:
            return

        settings = self.xp_ledger.settings
        new_name = " ".join(context.args).strip() if context and context.args else ""
        if not new_name:
            await self._safe_reply(
                update,
                "Write the new name after the command, e.g. <code>/setname Alex</code>",
                parse_mode="HTML",
            )
            return
        if len(new_name) > settings.display_name_max_length:
            await self._safe_reply(
                update,
                f"❗ That name is too long. Use at most {settings.display_name_max_length} characters.",
            )
            return

        try:
            user = self._get_user(update)
            remaining = self.db_manager.user_repo.update_display_name(
                user["id"], new_name, settings.display_name_max_changes
            )
            if remaining is None:
                raise NameChangeLimitError(f"User {user['id']} has no name changes left")
        except LexiduelError as e:
            await self._safe_reply(update, e.user_message)
            return
        except Exception as e:
            logger.error(f"Error changing display name: {e}")
            await self._safe_reply(update, GENERIC_ERROR_MESSAGE)
            return

        logger.info(f"User {user['id']} changed display name, {remaining} change(s) left")
        await self._safe_reply(
            update,
            f"✅ Your display name is now <b>{html.escape(new_name)}</b>.\n"
            f"Changes left: {remaining} of {settings.display_name_max_changes}",
            parse_mode="HTML",
        )
