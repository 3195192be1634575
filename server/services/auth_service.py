"""
Demo login for the dashboard.

Accounts come from an optional "Users" sheet (email, password, name, role,
active). Two demo accounts are always accepted. There are no sessions or
tokens; the frontend keeps the returned user in local storage.
"""

import logging
from typing import Any, Dict, List, Optional

from config import Config
from services.row_mapper import map_users
from services.sheets_client import SheetsClient

logger = logging.getLogger(__name__)

DEMO_ACCOUNTS = {
    "demo@defyinsurance.com": {
        "password": "demo123",
        "user": {
            "id": "demo-user",
            "email": "demo@defyinsurance.com",
            "name": "Demo User",
            "role": "admin",
            "active": True,
        },
    },
    "admin@defyinsurance.com": {
        "password": "admin123",
        "user": {
            "id": "admin-user",
            "email": "admin@defyinsurance.com",
            "name": "Administrator",
            "role": "admin",
            "active": True,
        },
    },
}


def find_sheet_user(users: List[Dict[str, Any]], email: str, password: str) -> Optional[Dict[str, Any]]:
    """First active user whose email matches (case-insensitive) and password matches exactly."""
    for user in users:
        if (
            user["email"].lower() == email.lower()
            and user["password"] == password
            and user["active"]
        ):
            return {k: v for k, v in user.items() if k != "password"}
    return None


def authenticate(sheets: SheetsClient, email: str, password: str) -> Optional[Dict[str, Any]]:
    """Return the public user record for valid credentials, else None."""
    if sheets.initialized:
        try:
            rows = sheets.get_values(Config.USERS_SHEET, Config.USERS_COLUMNS)
            if len(rows) > 1:
                user = find_sheet_user(map_users(rows), email, password)
                if user:
                    return user
        except Exception as e:
            logger.info(f"Users sheet unavailable, using demo accounts: {e}")

    account = DEMO_ACCOUNTS.get(email.lower())
    if account and account["password"] == password:
        return dict(account["user"])
    return None
