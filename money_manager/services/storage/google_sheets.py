"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the initial storage backend because:
1. Non-technical users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No multi-request transactions, so every commit is rewritten in
  ONE values update request: the sheet either gets the new state or
  keeps the old one
- Limited query capabilities (we filter in Python)

Layout: one worksheet, one row per document:
    collection | doc_id | document (JSON)

The implementation follows the abstract interface, so we can swap
to a hosted document database later without changing ledger logic.
"""

import json
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from money_manager.config import GoogleSheetsSettings, get_settings
from money_manager.services.storage.interface import (
    BatchTooLargeError,
    ConnectionError,
    Document,
    DocumentStoreInterface,
    StorageError,
    WriteOperation,
    apply_operations,
)

logger = structlog.get_logger(__name__)

DOCUMENT_COLUMNS = [
    "collection",
    "doc_id",
    "document_json",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for the connection.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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

    def get_documents_sheet(self) -> gspread.Worksheet:
        """Get or create the Documents worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.documents_sheet_name)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=self._settings.documents_sheet_name,
                rows=5000,
                cols=len(DOCUMENT_COLUMNS),
            )
            sheet.append_row(DOCUMENT_COLUMNS)
        return sheet


class GoogleSheetsDocumentStore(DocumentStoreInterface):
    """
    Google Sheets implementation of the document store.

    Reads load the whole sheet (personal-scale data). Commits apply the
    batch to the loaded state in memory and write the full table back in
    a single update, padding with blank rows where documents were removed.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        max_batch_operations: int = 500,
        worksheet: Optional[gspread.Worksheet] = None,
    ):
        self._client = client
        self._worksheet = worksheet
        self.max_batch_operations = max_batch_operations

    def _sheet(self) -> gspread.Worksheet:
        if self._worksheet is None:
            client = self._client or GoogleSheetsClient()
            self._worksheet = client.get_documents_sheet()
        return self._worksheet

    def _load(self) -> tuple[dict[str, dict[str, Document]], int]:
        """Read every document. Returns (collections, data row count)."""
        try:
            rows = self._sheet().get_all_values()[1:]  # Skip header
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read documents: {e}")

        collections: dict[str, dict[str, Document]] = {}
        for row in rows:
            if len(row) < 3 or not row[0] or not row[1]:
                continue  # Blank padding rows
            try:
                doc = json.loads(row[2])
            except json.JSONDecodeError:
                logger.warning("skipping_malformed_row", collection=row[0], doc_id=row[1])
                continue
            collections.setdefault(row[0], {})[row[1]] = doc
        return collections, len(rows)

    @staticmethod
    def _to_rows(collections: dict[str, dict[str, Document]]) -> list[list[str]]:
        rows = []
        for collection in sorted(collections):
            for doc_id, doc in sorted(collections[collection].items()):
                rows.append([collection, doc_id, json.dumps(doc, sort_keys=True)])
        return rows

    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        collections, _ = self._load()
        return collections.get(collection, {}).get(doc_id)

    async def list_documents(self, collection: str) -> dict[str, Document]:
        collections, _ = self._load()
        return collections.get(collection, {})

    async def commit(self, operations: list[WriteOperation]) -> None:
        """Apply a batch and write the whole table in one request."""
        if len(operations) > self.max_batch_operations:
            raise BatchTooLargeError(len(operations), self.max_batch_operations)

        collections, previous_row_count = self._load()
        # Raises NotFoundError before anything is written
        new_state = apply_operations(collections, operations)

        rows = [DOCUMENT_COLUMNS] + self._to_rows(new_state)
        blank = ["", "", ""]
        rows += [blank] * max(0, previous_row_count + 1 - len(rows))

        try:
            self._sheet().update(range_name="A1", values=rows, value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to commit batch of {len(operations)} operations: {e}")

        logger.debug("sheet_batch_committed", operations=len(operations), rows=len(rows) - 1)
