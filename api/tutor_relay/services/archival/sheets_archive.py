"""Google Sheets archive of finalized question/answer pairs.

Every approved answer is appended as one row so the sheet can later be
exported as training data:

    timestamp | student name | question | AI answer | final answer
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build

from tutor_relay.core.config import Settings
from tutor_relay.models.question import ArchivalError

logger = logging.getLogger(__name__)

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
DEFAULT_COLUMNS = ["timestamp", "accountName", "question", "answer", "editedAnswer"]


class GoogleSheetsArchive:
    """Appends approved answers to a spreadsheet.

    The Sheets client is created on first use. The google-api-python-client
    is synchronous, so calls run in a worker thread.
    """

    def __init__(self, settings: Settings, service: Optional[Any] = None) -> None:
        self.settings = settings
        self.spreadsheet_id = settings.GOOGLE_SHEETS_SPREADSHEET_ID
        self.sheet_name = settings.GOOGLE_SHEETS_SHEET_NAME
        self._service = service
        self._init_lock = asyncio.Lock()

    @property
    def range(self) -> str:
        return f"{self.sheet_name}!A:E"

    @property
    def is_initialized(self) -> bool:
        return self._service is not None

    def _build_service(self) -> Any:
        credentials = service_account.Credentials.from_service_account_file(
            self.settings.GOOGLE_CREDENTIALS_FILE, scopes=SHEETS_SCOPES
        )
        return build("sheets", "v4", credentials=credentials, cache_discovery=False)

    async def _get_service(self) -> Any:
        if self._service is not None:
            return self._service

        async with self._init_lock:
            if self._service is not None:
                return self._service
            try:
                self._service = await asyncio.to_thread(self._build_service)
                logger.info("Google Sheets archive initialized")
            except Exception as e:
                logger.error(f"Error initializing Google Sheets: {e}")
                raise ArchivalError(f"Failed to initialize Google Sheets: {e}") from e
            return self._service

    async def append_record(
        self,
        requester_name: str,
        question: str,
        answer: str,
        edited_answer: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Append one finalized pair. The last column holds the edit if present.

        Raises:
            ArchivalError: If the client cannot be created or the append fails
        """
        service = await self._get_service()
        row = [
            datetime.now(timezone.utc).isoformat(),
            requester_name,
            question,
            answer,
            edited_answer or answer,
        ]

        def _append() -> Dict[str, Any]:
            return (
                service.spreadsheets()
                .values()
                .append(
                    spreadsheetId=self.spreadsheet_id,
                    range=self.range,
                    valueInputOption="RAW",
                    insertDataOption="INSERT_ROWS",
                    body={"values": [row]},
                )
                .execute()
            )

        try:
            result = await asyncio.to_thread(_append)
        except Exception as e:
            logger.error(f"Error saving to Google Sheets: {e}")
            raise ArchivalError(f"Failed to save to Google Sheets: {e}") from e

        updated_range = (result or {}).get("updates", {}).get("updatedRange")
        logger.info(f"Record saved to Google Sheets: {updated_range}")
        return result

    async def list_records(self) -> List[Dict[str, str]]:
        """Read archived rows back as dicts keyed by column name.

        A first row equal to DEFAULT_COLUMNS is treated as a header and
        skipped; otherwise every row is a record.

        Raises:
            ArchivalError: If the sheet cannot be read
        """
        service = await self._get_service()

        def _get() -> Dict[str, Any]:
            return (
                service.spreadsheets()
                .values()
                .get(spreadsheetId=self.spreadsheet_id, range=self.range)
                .execute()
            )

        try:
            result = await asyncio.to_thread(_get)
        except Exception as e:
            logger.error(f"Error getting records from Google Sheets: {e}")
            raise ArchivalError(f"Failed to get records from Google Sheets: {e}") from e

        rows = (result or {}).get("values", [])
        if rows and [cell.strip() for cell in rows[0]] == DEFAULT_COLUMNS:
            rows = rows[1:]
        return [
            {
                column: (row[i] if i < len(row) else "")
                for i, column in enumerate(DEFAULT_COLUMNS)
            }
            for row in rows
        ]
