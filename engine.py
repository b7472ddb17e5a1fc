"""
Conversation engine for the Stock Order Bot
Runs one chat turn: load state and snapshots, decide, apply effects, reply
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from audit import AuditLog
from business_date import business_date, local_timestamp
from conversation import (
    GENERIC_ERROR, ArchiveLedgerDay, ClearScratch, CommitLedger, ConversationState,
    Effect, RecordScratch, UpdateLedgerCell, parse_state, transition
)
from events import MessageEvent
from ledger import Ledger, LedgerRow, format_summary
from replies import ReplyChannel
from scratch import ScratchPad
from state_manager import StateManager
from user_locks import LockRegistry, UserLockRegistry

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConversationEngine:
    """Applies the state machine to incoming messages"""

    def __init__(self, state_manager: StateManager, scratch: ScratchPad, ledger: Ledger,
                 audit: Optional[AuditLog] = None, locks: Optional[LockRegistry] = None,
                 notifier=None, clock: Callable[[], datetime] = utc_now):
        """
        Initialize the engine

        Args:
            state_manager: Per-user state storage
            scratch: Scratch pad for in-progress forms
            ledger: Order ledger
            audit: Audit log, skipped when None
            locks: Per-user lock registry (process-local by default)
            notifier: Admin notifier for committed orders
            clock: Returns the current aware datetime
        """
        self.state_manager = state_manager
        self.scratch = scratch
        self.ledger = ledger
        self.audit = audit
        self.locks = locks or UserLockRegistry()
        self.notifier = notifier
        self.clock = clock

    def handle_event(self, event: MessageEvent, reply_channel: ReplyChannel) -> Optional[str]:
        """
        Process one inbound event and send exactly one reply for text messages

        Returns:
            The reply sent, or None for ignored events
        """
        if not event.is_text:
            logger.debug(f"Ignoring non-text message from {event.user_id}")
            return None

        reply = self.handle_text(event.user_id, event.text)
        reply_channel.reply(event.reply_token, reply)
        return reply

    def handle_text(self, user_id: str, text: str) -> str:
        """Run one turn for the user and return the reply text"""
        try:
            with self.locks.hold(user_id):
                return self._run_turn(user_id, text)
        except Exception as e:
            logger.error(f"Error processing message from {user_id}: {e}", exc_info=True)
            return GENERIC_ERROR

    def _run_turn(self, user_id: str, text: str) -> str:
        now = self.clock()
        today = business_date(now)

        record = self.state_manager.get_state(user_id)
        stored = record or {}
        state = parse_state(stored.get("state"))

        # A running flow keeps the date it was started on
        if state is ConversationState.IDLE or not stored.get("business_date"):
            flow_date = today
        else:
            flow_date = stored["business_date"]

        if self.audit is not None:
            self.audit.record(user_id, local_timestamp(now), state.value, text)

        # Other users rewrite these tables concurrently
        with self._table(self.scratch.table):
            scratch = self.scratch.entries(user_id, flow_date)
        with self._table(self.ledger.table):
            ledger_rows = self.ledger.rows_for(flow_date, user_id)

        result = transition(state, text, user_id, flow_date, scratch, ledger_rows)
        logger.info(f"{user_id}: {state.value} -> {result.state.value}")

        try:
            committed = self._apply(result.effects, user_id, flow_date, now)
        except Exception as e:
            logger.error(f"Failed to apply turn for {user_id} in {state.value}: {e}", exc_info=True)
            return result.failure_reply or GENERIC_ERROR

        reply = result.reply
        if result.summarize:
            summary = format_summary(committed)
            reply = reply.replace("{summary}", summary)
            if self.notifier is not None:
                self.notifier.send_commit_notification(user_id, flow_date, summary)

        new_record = {"state": result.state.value, "business_date": result.business_date}
        if record is None or new_record != {
            "state": stored.get("state", ""),
            "business_date": stored.get("business_date", "")
        }:
            self.state_manager.set_state(user_id, new_record)

        return reply

    def _table(self, table: str):
        """Lock shared by every user touching a table"""
        return self.locks.hold(f"table:{table}")

    def _apply(self, effects: Sequence[Effect], user_id: str, flow_date: str,
               now: datetime) -> List[LedgerRow]:
        """Apply effects in order; the first failure aborts the rest"""
        committed: List[LedgerRow] = []

        for effect in effects:
            if isinstance(effect, ClearScratch):
                with self._table(self.scratch.table):
                    self.scratch.clear_user(user_id)
            elif isinstance(effect, RecordScratch):
                with self._table(self.scratch.table):
                    self.scratch.upsert(user_id, flow_date, effect.product, effect.quantity)
            elif isinstance(effect, CommitLedger):
                with self._table(self.ledger.table):
                    committed = self.ledger.commit(flow_date, user_id, effect.quantities)
                logger.info(f"✅ Committed {len(committed)} ledger rows for {user_id} on {flow_date}")
            elif isinstance(effect, ArchiveLedgerDay):
                with self._table(self.ledger.table):
                    self.ledger.archive_day(flow_date, user_id, local_timestamp(now))
            elif isinstance(effect, UpdateLedgerCell):
                with self._table(self.ledger.table):
                    self.ledger.update_cell(effect.row, effect.column, effect.value)
                logger.info(f"✅ Corrected ledger row {effect.row.row_number} for {user_id}")
            else:
                raise TypeError(f"Unknown effect: {effect!r}")

        return committed
