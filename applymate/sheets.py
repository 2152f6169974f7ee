"""Google Sheets record store for job applications."""

import logging
from pathlib import Path
from typing import Optional, Protocol

from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from .config import Config
from .models import FIELD_HEADERS, SHEET_HEADERS, JobApplication, SheetRow

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
CONFIG_DIR = Path(__file__).parent.parent / "config"


def column_letter(index: int) -> str:
    """A1 column letters for a 0-based column index (0 -> A, 26 -> AA)."""
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


LAST_COLUMN = column_letter(len(SHEET_HEADERS) - 1)


class RecordStore(Protocol):
    """Tabular record store the tool set operates on.

    Rows are ordered and addressed by 1-based row number, header included.
    A row number is only valid until the next delete.
    """

    def append(self, job: JobApplication) -> None: ...

    def read_all(self) -> list[SheetRow]: ...

    def update_cell(self, row: int, field: str, value: str) -> None: ...

    def batch_update_cells(self, updates: list[tuple[int, str, str]]) -> None: ...

    def delete_row(self, row: int) -> None: ...


def column_for(field: str, headers: list[str] = SHEET_HEADERS) -> str:
    """Column letter holding a JobApplication field, located by header name."""
    try:
        header = FIELD_HEADERS[field]
    except KeyError:
        raise ValueError(f"Unknown field: {field}") from None
    if header not in headers:
        raise ValueError(f"Sheet has no '{header}' column")
    return column_letter(headers.index(header))


def get_credentials(config: Config):
    """Get service account credentials, or fall back to the OAuth user flow."""
    if config.service_account_file:
        key_path = Path(config.service_account_file)
        if not key_path.exists():
            raise FileNotFoundError(f"Service account file not found: {key_path}")
        return service_account.Credentials.from_service_account_file(str(key_path), scopes=SCOPES)

    token_path = CONFIG_DIR / "sheets_token.json"
    credentials_path = CONFIG_DIR / "credentials.json"

    creds = None

    if token_path.exists():
        creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)

    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            logger.info("Refreshing expired Sheets credentials")
            creds.refresh(Request())
        else:
            if not credentials_path.exists():
                raise FileNotFoundError(
                    f"Credentials file not found: {credentials_path}. "
                    "Download credentials.json from Google Cloud Console "
                    "or set service_account_file in config.yaml."
                )
            logger.info("Starting OAuth flow for Sheets")
            flow = InstalledAppFlow.from_client_secrets_file(
                str(credentials_path), SCOPES
            )
            creds = flow.run_local_server(port=0)

        with open(token_path, "w") as token:
            token.write(creds.to_json())
            logger.info(f"Saved Sheets credentials to {token_path}")

    return creds


class SheetsRecordStore:
    """RecordStore backed by one tab of a Google spreadsheet.

    Every call is a blocking HTTP request; callers on the event loop run
    them in a worker thread. A fresh API client is built per call because
    the underlying HTTP transport is not thread-safe.
    """

    def __init__(self, config: Config):
        self.spreadsheet_id = config.spreadsheet_id
        self.sheet_name = config.sheet_name
        self.sheet_gid = config.sheet_gid
        self._config = config
        self._creds = None
        self._header_row: Optional[list[str]] = None

    def _service(self):
        if self._creds is None:
            self._creds = get_credentials(self._config)
        elif not self._creds.valid and getattr(self._creds, "refresh_token", None):
            self._creds.refresh(Request())
        return build("sheets", "v4", credentials=self._creds, cache_discovery=False)

    def _range(self, suffix: str) -> str:
        return f"{self.sheet_name}!{suffix}"

    def ensure_headers(self, service) -> list[str]:
        """Return the sheet's header row, writing the default one to an empty sheet."""
        if self._header_row is not None:
            return self._header_row

        result = (
            service.spreadsheets()
            .values()
            .get(spreadsheetId=self.spreadsheet_id, range=self._range("1:1"))
            .execute()
        )

        existing = result.get("values", [[]])[0] if result.get("values") else []

        if not existing:
            service.spreadsheets().values().update(
                spreadsheetId=self.spreadsheet_id,
                range=self._range(f"A1:{LAST_COLUMN}1"),
                valueInputOption="RAW",
                body={"values": [SHEET_HEADERS]},
            ).execute()
            logger.info("Added headers to spreadsheet")
            existing = list(SHEET_HEADERS)
        elif existing != SHEET_HEADERS:
            logger.warning(f"Non-default header row in {self.sheet_name}, mapping columns by name: {existing}")

        self._header_row = existing
        return existing

    def append(self, job: JobApplication) -> None:
        """Append a job application row to the spreadsheet."""
        service = self._service()
        headers = self.ensure_headers(service)

        service.spreadsheets().values().append(
            spreadsheetId=self.spreadsheet_id,
            range=self._range(f"A:{column_letter(len(headers) - 1)}"),
            valueInputOption="USER_ENTERED",
            insertDataOption="INSERT_ROWS",
            body={"values": [job.to_row(headers)]},
        ).execute()

        logger.info(f"Appended row to spreadsheet: {job.position} - {job.company}")

    def read_all(self) -> list[SheetRow]:
        """Read every job row below the header row."""
        service = self._service()
        result = (
            service.spreadsheets()
            .values()
            .get(spreadsheetId=self.spreadsheet_id, range=self.sheet_name)
            .execute()
        )

        values = result.get("values", [])
        if values:
            self._header_row = values[0]
        if len(values) < 2:
            return []

        headers = values[0]
        rows = []
        for index, raw in enumerate(values[1:]):
            if not any(cell.strip() for cell in raw):
                continue
            rows.append(SheetRow(row=index + 2, job=JobApplication.from_row(headers, raw)))

        logger.debug(f"Read {len(rows)} rows from {self.sheet_name}")
        return rows

    def update_cell(self, row: int, field: str, value: str) -> None:
        """Overwrite a single cell of a job row."""
        service = self._service()
        column = column_for(field, self.ensure_headers(service))
        service.spreadsheets().values().update(
            spreadsheetId=self.spreadsheet_id,
            range=self._range(f"{column}{row}"),
            valueInputOption="USER_ENTERED",
            body={"values": [[value]]},
        ).execute()
        logger.info(f"Updated {field} of row {row}")

    def batch_update_cells(self, updates: list[tuple[int, str, str]]) -> None:
        """Send several cell updates as a single request."""
        if not updates:
            return

        service = self._service()
        headers = self.ensure_headers(service)
        data = [
            {"range": self._range(f"{column_for(field, headers)}{row}"), "values": [[value]]}
            for row, field, value in updates
        ]
        service.spreadsheets().values().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={"valueInputOption": "USER_ENTERED", "data": data},
        ).execute()
        logger.info(f"Batch updated {len(updates)} cells")

    def delete_row(self, row: int) -> None:
        """Remove a row, shifting every row below it up by one."""
        service = self._service()
        service.spreadsheets().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={
                "requests": [
                    {
                        "deleteDimension": {
                            "range": {
                                "sheetId": self.sheet_gid,
                                "dimension": "ROWS",
                                "startIndex": row - 1,
                                "endIndex": row,
                            }
                        }
                    }
                ]
            },
        ).execute()
        logger.info(f"Deleted row {row} from {self.sheet_name}")

