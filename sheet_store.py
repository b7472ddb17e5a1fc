"""
Spreadsheet storage for the Stock Order Bot
Provides row-oriented table access with Google Sheets and in-memory fallback
"""
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive"
]

Row = List[str]


class StoreError(Exception):
    """Raised when the underlying store cannot complete an operation"""


def _cell(value: Any) -> str:
    """Render a value the way the sheet hands it back"""
    if value is None:
        return ""
    return str(value)


class ConversationStore(ABC):
    """Abstract row-oriented table store"""

    @abstractmethod
    def read_rows(self, table: str) -> List[Row]:
        """Read every row of a table, in order"""
        pass

    @abstractmethod
    def append_rows(self, table: str, rows: Sequence[Sequence[Any]]) -> None:
        """Append rows after the last non-empty row"""
        pass

    @abstractmethod
    def overwrite_rows(self, table: str, rows: Sequence[Sequence[Any]]) -> None:
        """Replace the whole table content with rows"""
        pass

    @abstractmethod
    def overwrite_range(self, table: str, row_index: int, start_column: int,
                        values: Sequence[Any]) -> None:
        """Overwrite cells of one row (1-based row and column)"""
        pass

    @abstractmethod
    def clear(self, table: str) -> None:
        """Remove every row of a table"""
        pass


class GoogleSheetStore(ConversationStore):
    """Google Sheets backed store, one worksheet per table"""

    def __init__(self, spreadsheet):
        """
        Initialize the store

        Args:
            spreadsheet: gspread Spreadsheet to read and write
        """
        self.spreadsheet = spreadsheet
        self._worksheets: Dict[str, Any] = {}

    @classmethod
    def connect(cls, sheet_key: str, creds_info: Optional[Dict] = None,
                creds_file: Optional[str] = None) -> "GoogleSheetStore":
        """
        Authorize with a service account and open the spreadsheet

        Args:
            sheet_key: Spreadsheet key from its URL
            creds_info: Parsed service account JSON
            creds_file: Path to a service account key file

        Returns:
            Connected GoogleSheetStore
        """
        import gspread
        from google.oauth2.service_account import Credentials

        if creds_info:
            creds = Credentials.from_service_account_info(creds_info, scopes=SCOPES)
        else:
            creds = Credentials.from_service_account_file(creds_file, scopes=SCOPES)

        client = gspread.authorize(creds)
        spreadsheet = client.open_by_key(sheet_key)
        logger.info(f"✅ Google Sheets connected: {spreadsheet.title}")
        return cls(spreadsheet)

    def _worksheet(self, table: str):
        if table not in self._worksheets:
            self._worksheets[table] = self.spreadsheet.worksheet(table)
        return self._worksheets[table]

    def read_rows(self, table: str) -> List[Row]:
        try:
            return self._worksheet(table).get_all_values()
        except Exception as e:
            raise StoreError(f"Failed to read {table}: {e}") from e

    def append_rows(self, table: str, rows: Sequence[Sequence[Any]]) -> None:
        if not rows:
            return
        try:
            self._worksheet(table).append_rows(
                [list(row) for row in rows],
                value_input_option="USER_ENTERED"
            )
        except Exception as e:
            raise StoreError(f"Failed to append to {table}: {e}") from e

    def overwrite_rows(self, table: str, rows: Sequence[Sequence[Any]]) -> None:
        try:
            worksheet = self._worksheet(table)
            worksheet.clear()
            if rows:
                worksheet.update(
                    range_name="A1",
                    values=[list(row) for row in rows],
                    value_input_option="USER_ENTERED"
                )
        except Exception as e:
            raise StoreError(f"Failed to overwrite {table}: {e}") from e

    def overwrite_range(self, table: str, row_index: int, start_column: int,
                        values: Sequence[Any]) -> None:
        from gspread.utils import rowcol_to_a1

        start = rowcol_to_a1(row_index, start_column)
        end = rowcol_to_a1(row_index, start_column + len(values) - 1)
        try:
            self._worksheet(table).update(
                range_name=f"{start}:{end}",
                values=[list(values)],
                value_input_option="USER_ENTERED"
            )
        except Exception as e:
            raise StoreError(f"Failed to update {table}!{start}:{end}: {e}") from e

    def clear(self, table: str) -> None:
        try:
            self._worksheet(table).clear()
        except Exception as e:
            raise StoreError(f"Failed to clear {table}: {e}") from e


class InMemorySheetStore(ConversationStore):
    """In-memory store (fallback for development and tests)"""

    def __init__(self, tables: Optional[Dict[str, List[Row]]] = None):
        """Initialize in-memory tables, optionally pre-filled"""
        self.tables: Dict[str, List[Row]] = {}
        self._lock = threading.Lock()
        for name, rows in (tables or {}).items():
            self.tables[name] = [[_cell(v) for v in row] for row in rows]

    def read_rows(self, table: str) -> List[Row]:
        with self._lock:
            return [list(row) for row in self.tables.get(table, [])]

    def append_rows(self, table: str, rows: Sequence[Sequence[Any]]) -> None:
        with self._lock:
            target = self.tables.setdefault(table, [])
            # Sheets appends after the last row that has any content
            while target and not any(target[-1]):
                target.pop()
            target.extend([_cell(v) for v in row] for row in rows)

    def overwrite_rows(self, table: str, rows: Sequence[Sequence[Any]]) -> None:
        with self._lock:
            self.tables[table] = [[_cell(v) for v in row] for row in rows]

    def overwrite_range(self, table: str, row_index: int, start_column: int,
                        values: Sequence[Any]) -> None:
        if row_index < 1 or start_column < 1:
            raise StoreError(f"Invalid position {row_index}:{start_column} in {table}")
        with self._lock:
            target = self.tables.setdefault(table, [])
            while len(target) < row_index:
                target.append([])
            row = target[row_index - 1]
            end = start_column - 1 + len(values)
            while len(row) < end:
                row.append("")
            for offset, value in enumerate(values):
                row[start_column - 1 + offset] = _cell(value)

    def clear(self, table: str) -> None:
        with self._lock:
            self.tables[table] = []


def create_sheet_store(sheet_key: str = None, creds_json: str = None,
                       creds_file: str = None) -> ConversationStore:
    """
    Factory function to create the appropriate store

    Args:
        sheet_key: Spreadsheet key
        creds_json: Service account JSON (environment variable contents)
        creds_file: Path to a service account key file

    Returns:
        ConversationStore instance (Google Sheets or in-memory)
    """
    if sheet_key:
        try:
            creds_info = json.loads(creds_json) if creds_json else None
            return GoogleSheetStore.connect(sheet_key, creds_info=creds_info, creds_file=creds_file)
        except Exception as e:
            logger.error(f"Failed to connect to Google Sheets: {e}")

    logger.warning("⚠️  Using in-memory sheet storage - data will be lost on restart!")
    return InMemorySheetStore()
