"""
Inbound message events for the Stock Order Bot
"""
import secrets
from dataclasses import dataclass
from typing import Mapping

from utils import sanitize_text


@dataclass(frozen=True)
class MessageEvent:
    """One inbound chat message"""
    user_id: str
    text: str
    reply_token: str
    is_text: bool = True


def event_from_twilio(values: Mapping[str, str]) -> MessageEvent:
    """
    Build an event from a Twilio webhook form

    Args:
        values: Webhook form values (From, Body, MessageSid, NumMedia)

    Returns:
        MessageEvent; media-only messages are marked as non-text
    """
    text = sanitize_text(values.get("Body", ""))
    reply_token = values.get("MessageSid") or secrets.token_hex(8)
    return MessageEvent(
        user_id=values.get("From", ""),
        text=text,
        reply_token=reply_token,
        is_text=bool(text)
    )
