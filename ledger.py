"""
Order ledger for the Stock Order Bot
Writes committed rows whose derived columns are computed by the spreadsheet
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from config import Config
from sheet_store import ConversationStore

logger = logging.getLogger(__name__)

Number = Union[int, float]

# 1-based ledger columns: date, weekday, product, remaining, order, recordedBy, delivery weekday
COLUMN_DATE = 1
COLUMN_WEEKDAY = 2
COLUMN_PRODUCT = 3
COLUMN_REMAINING = 4
COLUMN_ORDER = 5
COLUMN_RECORDED_BY = 6
COLUMN_DELIVERY = 7
LEDGER_WIDTH = 7


@dataclass(frozen=True)
class LedgerRow:
    """A ledger row together with its sheet position"""
    row_number: int
    date: str
    weekday: str
    product: str
    remaining: str
    order: str
    recorded_by: str
    delivery_weekday: str

    @classmethod
    def from_values(cls, row_number: int, values: Sequence[str]) -> "LedgerRow":
        padded = list(values) + [""] * (LEDGER_WIDTH - len(values))
        return cls(row_number, *padded[:LEDGER_WIDTH])

    def values(self) -> List[str]:
        return [
            self.date, self.weekday, self.product, self.remaining,
            self.order, self.recorded_by, self.delivery_weekday
        ]

    @property
    def complete(self) -> bool:
        return bool(self.remaining or self.order)

    @property
    def order_display(self) -> str:
        """Order quantity for replies; '-' until the sheet has computed it"""
        if not self.order or self.order.startswith("="):
            return "-"
        return self.order


def weekday_formula(row: int) -> str:
    return f'=IF(A{row}="","",TEXT(A{row},"ddd"))'


def order_formula(row: int) -> str:
    return Config.ORDER_FORMULA_TEMPLATE.format(row=row)


def delivery_formula(row: int, product: str) -> str:
    return f'=IF(F{row}="","",TEXT($A{row}+{Config.lead_days(product)},"ddd"))'


def format_summary(rows: Iterable[LedgerRow]) -> str:
    """One line per product, e.g. 'キャベツ：12個'"""
    return "\n".join(f"{row.product}：{row.order_display}個" for row in rows)


class Ledger:
    """Committed order rows in the ledger table"""

    def __init__(self, store: ConversationStore, table: str, backup_table: str = None):
        self.store = store
        self.table = table
        self.backup_table = backup_table

    def all_rows(self) -> List[LedgerRow]:
        return [
            LedgerRow.from_values(index, values)
            for index, values in enumerate(self.store.read_rows(self.table), start=1)
        ]

    def rows_for(self, business_date: str, user_id: Optional[str] = None) -> List[LedgerRow]:
        """Rows for a business date, optionally restricted to one user"""
        return [
            row for row in self.all_rows()
            if row.date == business_date and (user_id is None or row.recorded_by == user_id)
        ]

    def find(self, business_date: str, product: str, user_id: str) -> Optional[LedgerRow]:
        """Locate the (date, product, user) row"""
        for row in self.rows_for(business_date, user_id):
            if row.product == product:
                return row
        return None

    def commit(self, business_date: str, user_id: str,
               quantities: Sequence[Tuple[str, Number]]) -> List[LedgerRow]:
        """
        Write one ledger row per product and read the results back

        A product that already has a row for this date and user is rewritten
        in place, so retrying after a partial failure does not duplicate rows.

        Args:
            business_date: Date the flow was started on
            user_id: User recording the stock
            quantities: (product, remaining quantity) pairs in catalog order

        Returns:
            The written rows as computed by the spreadsheet
        """
        existing = self.all_rows()
        next_row = len(existing) + 1
        written: List[int] = []

        for product, quantity in quantities:
            match = next(
                (row for row in existing
                 if row.date == business_date and row.product == product
                 and row.recorded_by == user_id),
                None
            )
            if match is not None:
                row_number = match.row_number
            else:
                row_number = next_row
                next_row += 1

            self.store.overwrite_range(self.table, row_number, COLUMN_DATE, [
                business_date,
                weekday_formula(row_number),
                product,
                quantity,
                order_formula(row_number),
                user_id,
                delivery_formula(row_number, product),
            ])
            written.append(row_number)
            logger.debug(f"Ledger row {row_number} written for {product}")

        rows = {row.row_number: row for row in self.all_rows()}
        return [rows[number] for number in written if number in rows]

    def update_cell(self, row: LedgerRow, column: int, value: Number) -> None:
        """Overwrite the remaining or order quantity of an existing row"""
        if column not in (COLUMN_REMAINING, COLUMN_ORDER):
            raise ValueError(f"Column {column} is not user editable")
        self.store.overwrite_range(self.table, row.row_number, column, [value])

    def archive_day(self, business_date: str, user_id: str, archived_at: str) -> int:
        """
        Copy the user's rows for a date to the backup table and blank them

        Rows are blanked in place; every other row keeps its position.
        """
        rows = self.rows_for(business_date, user_id)
        if not rows:
            return 0
        if self.backup_table:
            self.store.append_rows(self.backup_table, [row.values() + [archived_at] for row in rows])
        for row in rows:
            self.store.overwrite_range(self.table, row.row_number, COLUMN_DATE, [""] * LEDGER_WIDTH)
        logger.info(f"Archived {len(rows)} ledger rows for {business_date}")
        return len(rows)
