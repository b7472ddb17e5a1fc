"""
Reply channel for the Stock Order Bot
Each inbound message gets at most one reply, keyed by its reply token
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Set

from twilio.twiml.messaging_response import MessagingResponse

logger = logging.getLogger(__name__)


class ReplyChannel(ABC):
    """Abstract one-shot reply sender"""

    @abstractmethod
    def reply(self, token: str, text: str) -> None:
        """Send the reply for a message"""
        pass


class TwimlReplyChannel(ReplyChannel):
    """Collects replies as TwiML to be returned from the webhook"""

    def __init__(self):
        self._responses: Dict[str, MessagingResponse] = {}
        self._used: Set[str] = set()

    def reply(self, token: str, text: str) -> None:
        if token in self._used:
            logger.warning(f"Reply token {token} already used, dropping reply")
            return
        self._used.add(token)

        resp = MessagingResponse()
        resp.message(text)
        self._responses[token] = resp

    def render(self, token: str) -> str:
        """TwiML for the token, empty when nothing was replied"""
        resp = self._responses.pop(token, None)
        if resp is None:
            resp = MessagingResponse()
        return str(resp)
