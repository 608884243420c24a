"""
Google Sheets API v4 adapter.

GoogleSheetsApi is the narrow surface SheetTransport depends on. Tests
substitute an in-memory object with the same four methods.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from google.oauth2 import service_account
from googleapiclient.discovery import build

from ..logic.config_manager import LedgerConfig
from ..logic.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
TOKEN_URI = "https://oauth2.googleapis.com/token"


class GoogleSheetsApi:
    """
    One spreadsheet, reached through a googleapiclient Resource.

    Args:
        service: Resource returned by build("sheets", "v4", ...)
        spreadsheet_id: Target spreadsheet
    """

    def __init__(self, service: Any, spreadsheet_id: str):
        self.service = service
        self.spreadsheet_id = spreadsheet_id

    def values_get(self, range_name: str) -> Dict[str, Any]:
        return self.service.spreadsheets().values().get(
            spreadsheetId=self.spreadsheet_id,
            range=range_name,
        ).execute()

    def values_batch_update(self, data: List[Dict[str, Any]], value_input_option: str = "USER_ENTERED") -> Dict[str, Any]:
        return self.service.spreadsheets().values().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={"valueInputOption": value_input_option, "data": data},
        ).execute()

    def batch_update(self, requests: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self.service.spreadsheets().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={"requests": requests},
        ).execute()

    def get_spreadsheet(self) -> Dict[str, Any]:
        return self.service.spreadsheets().get(
            spreadsheetId=self.spreadsheet_id,
            fields="sheets.properties(sheetId,title)",
        ).execute()


def build_sheets_api(config: LedgerConfig) -> GoogleSheetsApi:
    """
    Build an authenticated client from service-account settings.

    Raises:
        ConfigurationError: credentials or spreadsheet id missing, or the
            private key cannot be parsed
    """
    config.require_credentials()
    try:
        credentials = service_account.Credentials.from_service_account_info(
            {
                "type": "service_account",
                "client_email": config.service_account_email,
                "private_key": config.private_key,
                "token_uri": TOKEN_URI,
            },
            scopes=SCOPES,
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid service account credentials: {e}") from e

    service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
    logger.info(f"Sheets client ready for spreadsheet {config.spreadsheet_id[:8]}...")
    return GoogleSheetsApi(service, config.spreadsheet_id)
