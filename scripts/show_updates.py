#!/usr/bin/env python3
"""
Show the updates currently waiting for the test bot.

Handy when filling in `.env`: add the bot to the test supergroup, send it a
message, then run this script to read the chat id and your username.
Updates are only peeked at, not confirmed.

Usage:
    uv run python scripts/show_updates.py

Environment:
    TELEGRAM_BOT_TOKEN: Required. The test bot's API token from BotFather.
"""

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from src.core.api import BotApiClient  # noqa: E402
from src.core.errors import ApiRequestError, TransportError  # noqa: E402
from src.core.models import Event  # noqa: E402

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)


async def show_updates(token: str) -> None:
    client = BotApiClient(token, base_url=os.getenv("TELEGRAM_API_BASE_URL"))
    me = await client.get_me()
    logger.info(f"Bot: @{me.username} ({me.id})")

    updates = await client.get_updates()
    if not updates:
        logger.info("No pending updates. Send the bot a message in the test chat first.")
        return

    for update in updates:
        event = Event.from_update(update)
        chat = update.effective_chat
        chat_text = f"chat={chat.id} ({chat.type})" if chat else "chat=-"
        logger.info(f"#{event.sequence_id} {event.kind} from {event.originator} {chat_text}")


def main():
    token = os.getenv("TELEGRAM_BOT_TOKEN")
    if not token:
        logger.error("TELEGRAM_BOT_TOKEN not set!")
        sys.exit(1)

    try:
        asyncio.run(show_updates(token))
    except (ApiRequestError, TransportError) as e:
        logger.error(f"Could not fetch updates: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
