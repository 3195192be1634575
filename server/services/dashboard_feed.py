"""
Overview figures for the insurance dashboard, read from a Google Sheet
published as CSV ("File > Share > Publish to web").

The sheet layout is free-form, so columns are assigned to metrics by name
heuristics. Anything the sheet does not provide falls back to the demo
figures below.
"""

import copy
import csv
import io
import logging
import re
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import requests
from cachetools import TTLCache
from cachetools.keys import hashkey

from config import Config
from services.input_validator import InputValidator

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 10
MAX_TRANSACTIONS = 10
MAX_REDIRECTS = 5

DEFAULT_DATA: Dict[str, Any] = {
    "premiums": 847500,
    "activePolicies": 2847,
    "claimsRatio": 23,
    "newLeads": 156,
    "monthlyPerformance": [
        {"month": "Jan", "value": 125000},
        {"month": "Feb", "value": 142000},
        {"month": "Mar", "value": 138000},
        {"month": "Apr", "value": 165000},
        {"month": "May", "value": 152000},
        {"month": "Jun", "value": 178000},
        {"month": "Jul", "value": 195000},
        {"month": "Aug", "value": 188000},
        {"month": "Sep", "value": 210000},
        {"month": "Oct", "value": 225000},
        {"month": "Nov", "value": 245000},
        {"month": "Dec", "value": 268000},
    ],
    "policyDistribution": [
        {"name": "Auto", "value": 1250},
        {"name": "Home", "value": 820},
        {"name": "Life", "value": 485},
        {"name": "Health", "value": 292},
    ],
    "recentTransactions": [
        {"id": "1", "client": "Sarah Johnson", "type": "Auto Insurance", "amount": 2400, "status": "Active"},
        {"id": "2", "client": "Michael Chen", "type": "Home Insurance", "amount": 3500, "status": "Active"},
        {"id": "3", "client": "Emily Davis", "type": "Life Insurance", "amount": 1800, "status": "Pending"},
        {"id": "4", "client": "James Wilson", "type": "Auto Insurance", "amount": 2100, "status": "Active"},
        {"id": "5", "client": "Maria Garcia", "type": "Health Insurance", "amount": 4200, "status": "Processing"},
        {"id": "6", "client": "Robert Taylor", "type": "Home Insurance", "amount": 2800, "status": "Active"},
    ],
}

# One entry per published-sheet URL, refreshed at the dashboard polling interval
dashboard_cache = TTLCache(maxsize=32, ttl=Config.DASHBOARD_REFRESH_SECONDS)
# TTLCache is not thread-safe and requests run in worker threads
dashboard_cache_lock = threading.Lock()


def _to_float(value: str) -> Optional[float]:
    match = re.match(r"^-?(\d+\.?\d*|\.\d+)", re.sub(r"[^0-9.-]", "", value or ""))
    return float(match.group(0)) if match else None


def _to_int(value: str) -> Optional[int]:
    digits = re.sub(r"[^0-9]", "", value or "")
    return int(digits) if digits else None


def demo_data() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_DATA)


def transform_sheet_data(rows: List[Dict[str, str]]) -> Dict[str, Any]:
    """Map header-keyed CSV rows onto the dashboard overview structure."""
    if not rows:
        return demo_data()

    premiums = 0.0
    active_policies = 0
    claims_ratio = 0.0
    new_leads = 0
    monthly_performance = []
    policy_distribution = []
    recent_transactions = []

    for index, row in enumerate(rows):
        row = {k: (v or "") for k, v in row.items() if k is not None}

        # Zero or unparsable cells keep whatever an earlier row set
        for key, value in row.items():
            lower_key = key.lower()
            if "premium" in lower_key and "total" in lower_key:
                premiums = _to_float(value) or premiums
            if "active" in lower_key and "polic" in lower_key:
                active_policies = _to_int(value) or active_policies
            if "claim" in lower_key and "ratio" in lower_key:
                claims_ratio = _to_float(value) or claims_ratio
            if "lead" in lower_key or "new" in lower_key:
                new_leads = _to_int(value) or new_leads

        if row.get("Month") and row.get("Value"):
            monthly_performance.append({
                "month": row["Month"],
                "value": _to_float(row["Value"]) or 0,
            })

        if row.get("PolicyType") and row.get("Count"):
            policy_distribution.append({
                "name": row["PolicyType"],
                "value": _to_int(row["Count"]) or 0,
            })

        client = row.get("Client") or row.get("ClientName") or row.get("Name")
        if client:
            recent_transactions.append({
                "id": str(index + 1),
                "client": client,
                "type": row.get("Type") or row.get("PolicyType") or row.get("InsuranceType") or "General",
                "amount": _to_float(row.get("Amount") or row.get("Premium") or "0") or 0,
                "status": row.get("Status") or "Active",
            })

    defaults = demo_data()
    return {
        "premiums": premiums or defaults["premiums"],
        "activePolicies": active_policies or defaults["activePolicies"],
        "claimsRatio": claims_ratio or defaults["claimsRatio"],
        "newLeads": new_leads or defaults["newLeads"],
        "monthlyPerformance": monthly_performance or defaults["monthlyPerformance"],
        "policyDistribution": policy_distribution or defaults["policyDistribution"],
        "recentTransactions": recent_transactions[:MAX_TRANSACTIONS] or defaults["recentTransactions"],
    }


def parse_csv(text: str) -> List[Dict[str, str]]:
    """Header-row CSV to dicts, skipping blank lines."""
    reader = csv.DictReader(io.StringIO(text))
    return [
        row for row in reader
        if any((value or "").strip() for value in row.values() if isinstance(value, str))
    ]


def fetch_csv(sheet_url: str) -> requests.Response:
    """
    GET the CSV, following redirects by hand.

    Published sheets redirect to googleusercontent.com, so redirects are
    allowed, but every hop must point at a public address.
    """
    url = sheet_url
    for _ in range(MAX_REDIRECTS + 1):
        response = requests.get(url, timeout=FETCH_TIMEOUT_SECONDS, allow_redirects=False)
        if not response.is_redirect:
            response.raise_for_status()
            return response
        url = urljoin(url, response.headers["location"])
        if not InputValidator.is_public_url(url):
            raise requests.exceptions.InvalidURL(f"Redirect to blocked address: {url}")
    raise requests.TooManyRedirects(f"Exceeded {MAX_REDIRECTS} redirects")


def fetch_dashboard_data(sheet_url: str) -> Dict[str, Any]:
    """
    Fetch and transform the published CSV.

    Never raises: failures return demo figures with an error message, so the
    overview keeps rendering while the sheet is unreachable.
    """
    result: Dict[str, Any] = {"error": None, "source": "sheet"}
    if not sheet_url:
        result.update(demo_data())
        result["source"] = "demo"
    else:
        try:
            response = fetch_csv(sheet_url)
            result.update(transform_sheet_data(parse_csv(response.text)))
        except requests.RequestException as e:
            logger.warning(f"Dashboard CSV fetch failed for {sheet_url}: {e}")
            result.update(demo_data())
            result.update({"error": str(e) or "Failed to fetch data", "source": "demo"})
        except csv.Error as e:
            logger.warning(f"Dashboard CSV parse failed for {sheet_url}: {e}")
            result.update(demo_data())
            result.update({"error": "Failed to parse spreadsheet data", "source": "demo"})

    result["lastUpdated"] = datetime.now(timezone.utc).isoformat()
    result["refreshInterval"] = Config.DASHBOARD_REFRESH_SECONDS
    return result


def get_cached_dashboard_data(sheet_url: str) -> Dict[str, Any]:
    key = hashkey("dashboard", sheet_url)
    with dashboard_cache_lock:
        cached = dashboard_cache.get(key)
    if cached is not None:
        return cached

    data = fetch_dashboard_data(sheet_url)
    # Keep failures out of the cache so the next poll retries immediately
    if not data["error"]:
        with dashboard_cache_lock:
            dashboard_cache[key] = data
    return data
