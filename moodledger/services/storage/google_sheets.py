"""
Google Sheets Remote Store

DESIGN DECISION: Google Sheets is used as the remote backend because:
1. Users can view (and back up) their ledger directly in Sheets
2. No database setup required
3. Data follows the user across devices through one spreadsheet

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions across rows (the ledger tolerates this: it is
  state-replicating and every sync ends with a full re-fetch)
- Limited query capabilities (we filter by user in Python)

One worksheet per resource. Every row carries the owning user_id, so
several users can share a spreadsheet without seeing each other's data.
Ids for inserted rows are generated here, which makes this adapter the
"server" from the ledger's point of view.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from moodledger.config import get_settings
from moodledger.services.storage.interface import (
    ConnectionError,
    RemoteLedgerStore,
    RemoteResource,
    Row,
    StorageError,
)


# Column mappings per resource
TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "type",
    "amount",
    "category",
    "description",
    "occurred_at",
    "currency",
    "account_id",
    "emotion",
    "transfer_group_id",
    "is_transfer",
]

ACCOUNT_COLUMNS = [
    "id",
    "user_id",
    "name",
    "type",
    "currency",
    "opening_balance",
    "credit_limit",
    "archived",
    "created_at",
]

SETTINGS_COLUMNS = [
    "user_id",
    "currency",
    "language",
    "theme",
    "updated_at",
]

RESOURCE_COLUMNS = {
    RemoteResource.TRANSACTIONS: TRANSACTION_COLUMNS,
    RemoteResource.ACCOUNTS: ACCOUNT_COLUMNS,
}

BOOLEAN_COLUMNS = {"is_transfer", "archived"}


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_resource_sheet(self, resource: RemoteResource) -> gspread.Worksheet:
        """Get or create the worksheet for a record set."""
        resource = RemoteResource(resource)
        if resource == RemoteResource.TRANSACTIONS:
            title = self._settings.transactions_sheet_name
        else:
            title = self._settings.accounts_sheet_name
        return self._get_or_create_sheet(title, RESOURCE_COLUMNS[resource])

    def get_settings_sheet(self) -> gspread.Worksheet:
        """Get or create the per-user settings worksheet."""
        return self._get_or_create_sheet(
            self._settings.settings_sheet_name,
            SETTINGS_COLUMNS,
        )


def record_to_cells(record: Row, columns: list[str]) -> list[str]:
    """Convert a row dict to spreadsheet cells in column order."""
    cells = []
    for column in columns:
        value = record.get(column)
        cells.append("" if value is None else str(value))
    return cells


def cells_to_record(cells: list[str], columns: list[str]) -> Row:
    """Convert spreadsheet cells back to a row dict. Empty cells become None."""
    record: Row = {}
    for index, column in enumerate(columns):
        value = cells[index] if index < len(cells) else ""
        if value == "":
            record[column] = False if column in BOOLEAN_COLUMNS else None
        elif column in BOOLEAN_COLUMNS:
            record[column] = value.strip().lower() == "true"
        else:
            record[column] = value
    return record


class GoogleSheetsRemoteStore(RemoteLedgerStore):
    """
    Google Sheets implementation of the remote ledger store.

    Records are stored one per row; the first column is the id.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upsert_by_id_or_insert(
        self,
        resource: RemoteResource,
        user_id: str,
        rows: list[Row],
    ) -> list[Row]:
        """
        Update the user's rows with a known id in place, append the rest.

        A row whose id belongs to another user is appended under a
        fresh id; the other user's row is left untouched.
        """
        if not rows:
            return []
        columns = RESOURCE_COLUMNS[RemoteResource(resource)]
        try:
            sheet = self._client.get_resource_sheet(resource)
            all_rows = sheet.get_all_values()
            # Row 1 is the header; only the user's own rows can be updated
            positions = {
                row[0]: idx
                for idx, row in enumerate(all_rows[1:], start=2)
                if row and row[0]
                and cells_to_record(row, columns).get("user_id") == user_id
            }
            taken = {row[0] for row in all_rows[1:] if row and row[0]}

            stored = []
            to_append = []
            for row in rows:
                record = dict(row)
                record["user_id"] = user_id
                if not record.get("id") or (
                    str(record["id"]) in taken and str(record["id"]) not in positions
                ):
                    # Ids owned by another user are inserted under a fresh id
                    record["id"] = str(uuid4())
                cells = record_to_cells(record, columns)
                position = positions.get(str(record["id"]))
                if position is not None:
                    sheet.update(range_name=f"A{position}", values=[cells])
                else:
                    to_append.append(cells)
                stored.append(cells_to_record(cells, columns))

            if to_append:
                sheet.append_rows(to_append, value_input_option="RAW")
            return stored
        except Exception as e:
            raise StorageError(f"Failed to write {resource}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def delete_by_ids(
        self,
        resource: RemoteResource,
        user_id: str,
        ids: list[str],
    ) -> list[Row]:
        """Delete the user's rows with these ids."""
        if not ids:
            return []
        columns = RESOURCE_COLUMNS[RemoteResource(resource)]
        wanted = {str(row_id) for row_id in ids}
        try:
            sheet = self._client.get_resource_sheet(resource)
            all_rows = sheet.get_all_values()

            matches = []
            for idx, row in enumerate(all_rows[1:], start=2):
                if not row or row[0] not in wanted:
                    continue
                record = cells_to_record(row, columns)
                if record.get("user_id") == user_id:
                    matches.append((idx, record))

            # Delete bottom-up so earlier row numbers stay valid
            for idx, _ in sorted(matches, key=lambda m: m[0], reverse=True):
                sheet.delete_rows(idx)
            return [record for _, record in matches]
        except Exception as e:
            raise StorageError(f"Failed to delete {resource}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def fetch_all(
        self,
        resource: RemoteResource,
        user_id: str,
    ) -> list[Row]:
        """Fetch every row owned by the user."""
        resource = RemoteResource(resource)
        columns = RESOURCE_COLUMNS[resource]
        try:
            sheet = self._client.get_resource_sheet(resource)
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to fetch {resource}: {e}")

        records = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            record = cells_to_record(row, columns)
            if record.get("user_id") == user_id:
                records.append(record)

        if resource == RemoteResource.TRANSACTIONS:
            records.sort(key=lambda r: r.get("occurred_at") or "", reverse=True)
        return records

    async def get_settings(self, user_id: str) -> Optional[Row]:
        """Get the user's settings row."""
        try:
            sheet = self._client.get_settings_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read settings: {e}")

        for row in all_rows:
            if row and row[0] == user_id:
                return cells_to_record(row, SETTINGS_COLUMNS)
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upsert_settings(self, user_id: str, patch: Row) -> Row:
        """Merge a patch into the user's settings row."""
        try:
            sheet = self._client.get_settings_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == user_id:
                    record = cells_to_record(row, SETTINGS_COLUMNS)
                    record.update(patch)
                    record["user_id"] = user_id
                    record["updated_at"] = datetime.now(timezone.utc).isoformat()
                    sheet.update(
                        range_name=f"A{idx}",
                        values=[record_to_cells(record, SETTINGS_COLUMNS)],
                    )
                    return record

            record = {"user_id": user_id, **patch}
            record["updated_at"] = datetime.now(timezone.utc).isoformat()
            sheet.append_row(
                record_to_cells(record, SETTINGS_COLUMNS),
                value_input_option="RAW",
            )
            return record
        except Exception as e:
            raise StorageError(f"Failed to write settings: {e}")
