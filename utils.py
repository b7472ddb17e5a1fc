"""
Utility functions for the Stock Order Bot
Includes text sanitization, rate limiting, and reply helpers
"""
import re
import time
import logging
from functools import wraps
from typing import Optional, Dict, Sequence

from config import Config
from validators import normalize_text

logger = logging.getLogger(__name__)

# Rate limiting storage: {user_id: [timestamp1, timestamp2, ...]}
rate_limit_store: Dict[str, list] = {}


def sanitize_text(text: str, max_length: int = 500) -> str:
    """
    Sanitize user input to prevent injection attacks and excessive length

    Args:
        text: Raw user input
        max_length: Maximum allowed length

    Returns:
        Sanitized text with dangerous characters removed
    """
    if not text:
        return ""

    # Remove any null bytes
    text = text.replace('\0', '')

    # Remove excessive whitespace
    text = re.sub(r'\s+', ' ', text).strip()

    # Truncate if too long
    if len(text) > max_length:
        text = text[:max_length]

    return text


def format_phone_number(phone: str) -> str:
    """
    Format phone number for display

    Args:
        phone: Phone number (may include 'whatsapp:' prefix)

    Returns:
        Cleaned phone number without prefix
    """
    return phone.replace("whatsapp:", "").strip()


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    Decorator to rate limit function calls per user

    Args:
        max_requests: Maximum requests allowed in window
        window_seconds: Time window in seconds

    Usage:
        @rate_limit(max_requests=10, window_seconds=60)
        def my_function(user_id, ...):
            pass

    Returns:
        Decorator function that returns (is_allowed: bool, retry_after or result)
    """
    def decorator(func):
        @wraps(func)
        def wrapper(user_id: str, *args, **kwargs):
            current_time = time.time()

            # Remove timestamps outside the current window
            history = [
                ts for ts in rate_limit_store.get(user_id, [])
                if current_time - ts < window_seconds
            ]
            rate_limit_store[user_id] = history

            # Check if limit exceeded
            if len(history) >= max_requests:
                retry_after = int(window_seconds - (current_time - history[0]))
                logger.warning(f"Rate limit exceeded for {user_id}. Retry after {retry_after}s")
                return False, retry_after

            history.append(current_time)
            return True, func(user_id, *args, **kwargs)

        return wrapper
    return decorator


def parse_yes_no(text: str) -> Optional[bool]:
    """
    Parse user input as a yes/no response

    Args:
        text: User input

    Returns:
        True for yes, False for no, None for anything else
    """
    text = normalize_text(text)

    if text == Config.KEYWORD_YES:
        return True
    elif text == Config.KEYWORD_NO:
        return False
    else:
        return None


def format_choices(items: Sequence[str]) -> str:
    """Join menu items the way replies list them, e.g. 'キャベツ／プリン／カレー'"""
    return "／".join(items)
