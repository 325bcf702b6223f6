"""
Domain exceptions for the vocabulary duel bot
"""


class LexiduelError(Exception):
    """Base exception for user actions that cannot be completed"""

    user_message = "❌ Something went wrong. Please try again later."

    def __init__(self, message: str | None = None, user_message: str | None = None):
        self.message = message or self.__class__.__name__
        if user_message is not None:
            self.user_message = user_message
        super().__init__(self.message)


class NotFoundError(LexiduelError):
    """Raised when a referenced word, question, match or duel question is missing"""

    user_message = "❌ Not found. It may have been removed."


class AlreadyAnsweredError(LexiduelError):
    """Raised when the same answer is delivered twice"""

    user_message = "✅ You have already answered this question."


class NotParticipantError(LexiduelError):
    """Raised when a user answers in a duel they do not play in"""

    user_message = "⛔ This duel is not yours."


class ActiveDuelError(LexiduelError):
    """Raised when a user requests a duel while already in one"""

    user_message = "⚔️ You already have an active duel. Finish it first!"

    def __init__(self, match_id: int | None = None, message: str | None = None):
        self.match_id = match_id
        super().__init__(message or f"User already in active duel {match_id}")


class DuelUnavailableError(LexiduelError):
    """Raised when no questions could be allocated for a new duel"""

    user_message = "❗ Not enough questions for a duel at this level yet."


class DuelExpiredError(LexiduelError):
    """Raised when acting on an expired duel"""

    user_message = "⌛ This duel has expired."


class NameChangeLimitError(LexiduelError):
    """Raised when a user has used up their display name changes"""

    user_message = "⛔ You cannot change your display name any more."


class ConditionFailedError(LexiduelError):
    """Raised when a guarded statement in an atomic batch affects no rows"""

    def __init__(self, statement_index: int, message: str | None = None):
        self.statement_index = statement_index
        super().__init__(
            message or f"Guard statement {statement_index} affected no rows"
        )


class InternalError(LexiduelError):
    """Raised when a row expected to exist after a successful write is missing"""
