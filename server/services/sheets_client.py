"""
Google Sheets v4 client used by every sheet-backed endpoint.

Wraps `spreadsheets.values` get / batchGet / append / update and hides the
service-account credential lookup.
"""

import json
import logging
import os
from typing import Dict, List, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build

from config import Config
from services.secret_manager import resolve_secret

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"


class SheetsNotInitialized(RuntimeError):
    """Raised when a sheet call is attempted without a working client."""


def load_service_account_info() -> Optional[Dict[str, str]]:
    """
    Find service account credentials.

    Order: GOOGLE_CREDENTIALS (full JSON), the discrete GOOGLE_* variables,
    GOOGLE_CREDENTIALS_SECRET in Secret Manager, then the credentials file.
    """
    raw = os.getenv("GOOGLE_CREDENTIALS")
    if raw:
        return json.loads(raw)

    client_email = os.getenv("GOOGLE_CLIENT_EMAIL")
    private_key = os.getenv("GOOGLE_PRIVATE_KEY")
    if client_email and private_key:
        return {
            "type": "service_account",
            "project_id": os.getenv("GOOGLE_PROJECT_ID", ""),
            "private_key_id": os.getenv("GOOGLE_PRIVATE_KEY_ID", ""),
            # Env files store the PEM with escaped newlines
            "private_key": private_key.replace("\\n", "\n"),
            "client_email": client_email,
            "client_id": os.getenv("GOOGLE_CLIENT_ID", ""),
            "token_uri": TOKEN_URI,
        }

    secret = resolve_secret("GOOGLE_CREDENTIALS", Config.GOOGLE_CREDENTIALS_SECRET)
    if secret:
        return json.loads(secret)

    if Config.GOOGLE_CREDENTIALS_FILE and os.path.exists(Config.GOOGLE_CREDENTIALS_FILE):
        with open(Config.GOOGLE_CREDENTIALS_FILE, "r") as f:
            return json.load(f)

    return None


class SheetsClient:
    def __init__(self, spreadsheet_id: str, service=None):
        self.spreadsheet_id = spreadsheet_id
        self.service = service

    @classmethod
    def from_environment(cls, spreadsheet_id: str = Config.SPREADSHEET_ID) -> "SheetsClient":
        """Build a client from whatever credentials are configured."""
        info = load_service_account_info()
        if info is None:
            raise SheetsNotInitialized(
                "No Google service account credentials found "
                "(set GOOGLE_CREDENTIALS or provide credentials.json)"
            )
        credentials = service_account.Credentials.from_service_account_info(
            info, scopes=Config.sheets_scopes()
        )
        service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        logger.info("Google Sheets API initialized for %s", info.get("client_email", "unknown"))
        return cls(spreadsheet_id, service)

    @property
    def initialized(self) -> bool:
        return self.service is not None

    def _values(self):
        if self.service is None:
            raise SheetsNotInitialized("Google Sheets not initialized")
        return self.service.spreadsheets().values()

    def get_values(self, sheet: str, columns: str) -> List[List[str]]:
        response = self._values().get(
            spreadsheetId=self.spreadsheet_id,
            range=Config.sheet_range(sheet, columns),
        ).execute()
        return response.get("values", [])

    def get_range(self, a1_range: str) -> List[List[str]]:
        response = self._values().get(
            spreadsheetId=self.spreadsheet_id,
            range=a1_range,
        ).execute()
        return response.get("values", [])

    def batch_get(self, ranges: List[str]) -> List[List[List[str]]]:
        """Fetch several A1 ranges in one round trip, in request order."""
        response = self._values().batchGet(
            spreadsheetId=self.spreadsheet_id,
            ranges=ranges,
        ).execute()
        return [vr.get("values", []) for vr in response.get("valueRanges", [])]

    def append_row(self, sheet: str, columns: str, row: List[str]) -> Dict:
        return self._values().append(
            spreadsheetId=self.spreadsheet_id,
            range=Config.sheet_range(sheet, columns),
            valueInputOption="USER_ENTERED",
            insertDataOption="INSERT_ROWS",
            body={"values": [row]},
        ).execute()

    def update_row(self, a1_range: str, row: List[str]) -> Dict:
        return self._values().update(
            spreadsheetId=self.spreadsheet_id,
            range=a1_range,
            valueInputOption="USER_ENTERED",
            body={"values": [row]},
        ).execute()


def init_sheets_client() -> SheetsClient:
    """Create the shared client; on failure return an uninitialized one."""
    try:
        return SheetsClient.from_environment()
    except Exception as e:
        logger.error(f"Failed to initialize Google Sheets API: {e}")
        logger.info("Make sure the service account JSON is configured and the sheet is shared with it")
        return SheetsClient(Config.SPREADSHEET_ID)
