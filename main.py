#!/usr/bin/env python3
"""
Vocabulary duel Telegram bot
Main application entry point
"""

import logging

from lexiduel.bot_handler import BotHandler
from lexiduel.config import get_settings


def main():
    """Main application entry point"""
    # Load configuration
    settings = get_settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # Keep HTTP client noise out of the bot log
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Starting vocabulary duel bot...")

    bot_handler = BotHandler(settings)

    try:
        bot_handler.run()
        logger.info("Bot stopped gracefully")
    except KeyboardInterrupt:
        logger.info("Shutdown requested, stopping bot...")
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        raise


if __name__ == "__main__":
    main()
