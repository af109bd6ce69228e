"""
Message Utilities
Helper functions for chat message sanitizing and splitting
"""

import logging
import re

from models.session import SessionRevoked

logger = logging.getLogger("mc-session-bot")

MAX_MESSAGE_LENGTH = 256  # Minecraft chat packet limit

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def sanitize_chat_message(text) -> str:
    """Strip control characters and surrounding whitespace"""
    if not isinstance(text, str):
        text = str(text)
    return _CONTROL_CHARS.sub("", text).strip()


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list:
    """
    Split a long message into chunks that fit within the chat limit.

    Args:
        text: The text to split
        max_length: Maximum length of each chunk (default: 256)

    Returns:
        List of message chunks
    """
    if len(text) <= max_length:
        return [text]

    chunks = []
    remaining = text

    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break

        # Prefer breaking between words
        split_pos = remaining.rfind(' ', 0, max_length)
        if split_pos <= 0:
            split_pos = max_length

        chunks.append(remaining[:split_pos].rstrip())
        remaining = remaining[split_pos:].lstrip()

    return chunks


async def send_message(handle, text: str) -> bool:
    """
    Send a chat message through a session handle, splitting if necessary.

    Args:
        handle: SessionHandle of the connected session
        text: The message text

    Returns:
        True if all chunks were sent, False if the session is gone or nothing was sent
    """
    if handle is None:
        logger.debug(f"No session bound, dropping message: {text}")
        return False

    text = sanitize_chat_message(text)
    if not text:
        return False

    for chunk in split_message(text):
        try:
            await handle.send_chat(chunk)
        except SessionRevoked:
            logger.debug(f"Session gone, dropping message: {chunk}")
            return False

    logger.info(f"Bot: {text}")
    return True
