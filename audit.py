"""
Audit log for the Stock Order Bot
Records every incoming text; failures are logged and never block a turn
"""
import logging

from sheet_store import ConversationStore

logger = logging.getLogger(__name__)

FORMULA_PREFIXES = ("=", "+", "-", "@")


def _literal(text: str) -> str:
    """Keep user text from being evaluated as a formula by the sheet"""
    if text and text.startswith(FORMULA_PREFIXES):
        return "'" + text
    return text


class AuditLog:
    """Best-effort writer for the audit table"""

    def __init__(self, store: ConversationStore, table: str):
        self.store = store
        self.table = table

    def record(self, user_id: str, timestamp: str, state: str, text: str) -> bool:
        """
        Append one (userId, timestamp, state, text) row

        Returns:
            True if written, False if the write failed
        """
        try:
            self.store.append_rows(self.table, [[user_id, timestamp, state, _literal(text)]])
            return True
        except Exception as e:
            logger.error(f"⚠️ Failed to write audit log: {e}")
            return False
