"""
State management for the Stock Order Bot
Stores each user's dialogue position in the sheet, Redis or memory
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import Optional, Dict
from datetime import timedelta

from sheet_store import ConversationStore

logger = logging.getLogger(__name__)


class StateManager(ABC):
    """Abstract base class for state management"""

    @abstractmethod
    def get_state(self, user_id: str) -> Optional[Dict]:
        """Get user state"""
        pass

    @abstractmethod
    def set_state(self, user_id: str, state: Dict) -> None:
        """Set user state"""
        pass

    @abstractmethod
    def delete_state(self, user_id: str) -> None:
        """Delete user state"""
        pass


class SheetStateManager(StateManager):
    """State table backed management: one row of (userId, state, flowDate) per user"""

    def __init__(self, store: ConversationStore, table: str):
        """
        Initialize sheet state manager

        Args:
            store: Table store holding the state table
            table: Name of the state table
        """
        self.store = store
        self.table = table

    def _find_row(self, user_id: str):
        rows = self.store.read_rows(self.table)
        for index, row in enumerate(rows, start=1):
            if row and row[0] == user_id:
                return index, row
        return None, None

    def get_state(self, user_id: str) -> Optional[Dict]:
        """Get user state from the state table"""
        _, row = self._find_row(user_id)
        if row is None:
            return None
        return {
            "state": row[1] if len(row) > 1 else "",
            "business_date": row[2] if len(row) > 2 else ""
        }

    def set_state(self, user_id: str, state: Dict) -> None:
        """Upsert user state in the state table"""
        values = [state.get("state", ""), state.get("business_date", "")]
        index, _ = self._find_row(user_id)
        if index is None:
            self.store.append_rows(self.table, [[user_id] + values])
        else:
            self.store.overwrite_range(self.table, index, 2, values)

    def delete_state(self, user_id: str) -> None:
        """Blank out the user's state, keeping the row in place"""
        index, _ = self._find_row(user_id)
        if index is not None:
            self.store.overwrite_range(self.table, index, 2, ["", ""])


class RedisStateManager(StateManager):
    """Redis-backed state management"""

    def __init__(self, redis_url: str, expiration_hours: int = 72):
        """
        Initialize Redis state manager

        Args:
            redis_url: Redis connection URL
            expiration_hours: Hours before state expires
        """
        try:
            import redis
            self.redis_client = redis.from_url(redis_url, decode_responses=True)
            self.expiration = timedelta(hours=expiration_hours)

            # Test connection
            self.redis_client.ping()
            logger.info(f"✅ Redis connected: {redis_url}")
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis: {e}")
            raise

    def _state_key(self, user_id: str) -> str:
        """Generate Redis key for user state"""
        return f"state:{user_id}"

    def get_state(self, user_id: str) -> Optional[Dict]:
        """Get user state from Redis"""
        data = self.redis_client.get(self._state_key(user_id))
        if data:
            return json.loads(data)
        return None

    def set_state(self, user_id: str, state: Dict) -> None:
        """Set user state in Redis with expiration"""
        self.redis_client.setex(self._state_key(user_id), self.expiration, json.dumps(state))

    def delete_state(self, user_id: str) -> None:
        """Delete user state from Redis"""
        self.redis_client.delete(self._state_key(user_id))


class InMemoryStateManager(StateManager):
    """In-memory state management (fallback for development)"""

    def __init__(self):
        """Initialize in-memory storage"""
        self.states: Dict[str, Dict] = {}
        logger.warning("⚠️  Using in-memory state storage - data will be lost on restart!")

    def get_state(self, user_id: str) -> Optional[Dict]:
        """Get user state from memory"""
        state = self.states.get(user_id)
        return dict(state) if state is not None else None

    def set_state(self, user_id: str, state: Dict) -> None:
        """Set user state in memory"""
        self.states[user_id] = dict(state)

    def delete_state(self, user_id: str) -> None:
        """Delete user state from memory"""
        self.states.pop(user_id, None)


def create_state_manager(store: ConversationStore = None, table: str = None,
                         redis_enabled: bool = False, redis_url: str = None,
                         expiration_hours: int = 72) -> StateManager:
    """
    Factory function to create appropriate state manager

    Args:
        store: Table store for the sheet-backed manager
        table: State table name
        redis_enabled: Whether to use Redis
        redis_url: Redis connection URL
        expiration_hours: Hours before state expires

    Returns:
        StateManager instance (Redis, sheet or in-memory)
    """
    if redis_enabled and redis_url:
        try:
            return RedisStateManager(redis_url, expiration_hours)
        except Exception as e:
            logger.warning(f"Failed to initialize Redis, falling back: {e}")

    if store is not None and table:
        return SheetStateManager(store, table)

    return InMemoryStateManager()
