"""
Scratch pad for in-progress forms
Keeps one working entry per (user, business date, product) in the scratch table
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from sheet_store import ConversationStore

logger = logging.getLogger(__name__)

Number = Union[int, float]

STATUS_PENDING = "pending"
STATUS_FILLED = "filled"


@dataclass(frozen=True)
class ScratchEntry:
    """One product's working value"""
    user_id: str
    business_date: str
    product: str
    quantity: Optional[Number] = None
    status: str = STATUS_PENDING

    @property
    def filled(self) -> bool:
        return self.status == STATUS_FILLED and self.quantity is not None


def _to_number(text: str) -> Optional[Number]:
    if text is None or text == "":
        return None
    try:
        value = float(text)
    except ValueError:
        logger.warning(f"Ignoring non-numeric scratch quantity: {text!r}")
        return None
    return int(value) if value.is_integer() else value


def _from_row(row: List[str]) -> Optional[ScratchEntry]:
    padded = list(row) + [""] * (5 - len(row))
    user_id, date, product, quantity, status = padded[:5]
    if not user_id or not product:
        return None
    value = _to_number(quantity)
    if not status:
        # Rows written without a status column count as filled once a value is present
        status = STATUS_FILLED if value is not None else STATUS_PENDING
    return ScratchEntry(user_id, date, product, value, status)


class ScratchPad:
    """Upsert map over the append-only scratch table"""

    def __init__(self, store: ConversationStore, table: str):
        self.store = store
        self.table = table

    def entries(self, user_id: str, business_date: str) -> Dict[str, ScratchEntry]:
        """
        Active entries for a user on a business date

        Rows for other dates are ignored. When a product appears more than
        once the row written last wins.
        """
        result: Dict[str, ScratchEntry] = {}
        for row in self.store.read_rows(self.table):
            entry = _from_row(row)
            if entry and entry.user_id == user_id and entry.business_date == business_date:
                result[entry.product] = entry
        return result

    def upsert(self, user_id: str, business_date: str, product: str,
               quantity: Optional[Number] = None) -> ScratchEntry:
        """Record a product for the user, filling its quantity when given"""
        status = STATUS_FILLED if quantity is not None else STATUS_PENDING
        entry = ScratchEntry(user_id, business_date, product, quantity, status)
        value = "" if quantity is None else quantity

        position = None
        for index, row in enumerate(self.store.read_rows(self.table), start=1):
            existing = _from_row(row)
            if (existing and existing.user_id == user_id
                    and existing.business_date == business_date
                    and existing.product == product):
                position = index

        if position is None:
            self.store.append_rows(self.table, [[user_id, business_date, product, value, status]])
        else:
            self.store.overwrite_range(self.table, position, 4, [value, status])
        return entry

    def clear_user(self, user_id: str) -> int:
        """Remove every scratch row of the user, returning how many were removed"""
        rows = self.store.read_rows(self.table)
        remaining = [row for row in rows if not row or row[0] != user_id]
        removed = len(rows) - len(remaining)
        if removed:
            self.store.overwrite_rows(self.table, remaining)
        return removed

    def sweep_stale(self, business_date: str) -> int:
        """Drop rows left behind by abandoned flows on other dates"""
        rows = self.store.read_rows(self.table)
        remaining = [row for row in rows if len(row) > 1 and row[1] == business_date]
        removed = len(rows) - len(remaining)
        if removed:
            self.store.overwrite_rows(self.table, remaining)
            logger.info(f"Swept {removed} stale scratch rows")
        return removed
