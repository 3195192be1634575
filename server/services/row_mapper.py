"""
Convert spreadsheet value ranges (2-D lists of cell strings) into the JSON
objects the dashboard renders.

Row 0 of every range is the header row. Cells past the end of a short row
are treated as empty, and empty cells take the field default.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from dateutil import parser as date_parser

DAYS_OF_WEEK = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]

METRICS_COLUMNS = [
    "status", "campaign", "message", "audience", "agent",
    "acceptanceRate", "replies", "replyPercent", "defyLead", "target",
    "algoType", "weekEnd", "location", "queue", "totalInvited",
    "totalAccepted", "netNewConnects", "startingConnects", "endingConnections",
    "totalMessaged", "totalActions",
]

_ORDINAL_SUFFIX = re.compile(r"(\d+)(st|nd|rd|th)\b", re.IGNORECASE)
_DEFAULT_A = datetime(2000, 1, 1)
_DEFAULT_B = datetime(2001, 2, 2)


def _cell(row: Sequence[str], index: int, default: Any = "") -> Any:
    if index < len(row) and row[index] not in (None, ""):
        return row[index]
    return default


def _header_key(header: str) -> str:
    return re.sub(r"\s+", "_", header.lower())


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a sheet date cell into an aware datetime, or None.

    Accepts ISO 8601, RFC 2822 and "January 9th 2026, 2:00:28 pm" style
    values. Naive results are taken as UTC. A cell must name a year, month
    and day; "March" or "5" alone is not a date.
    """
    if not value or not str(value).strip():
        return None
    cleaned = _ORDINAL_SUFFIX.sub(r"\1", str(value).strip())
    try:
        parsed = date_parser.parse(cleaned, default=_DEFAULT_A)
        # dateutil fills missing fields from the default
        if parsed.date() != date_parser.parse(cleaned, default=_DEFAULT_B).date():
            return None
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def determine_status(publish_date: Optional[str], now: Optional[datetime] = None) -> str:
    """Classify a content item as draft, published or scheduled."""
    parsed = parse_date(publish_date)
    if parsed is None:
        return "draft"
    now = now or datetime.now(timezone.utc)
    return "published" if parsed <= now else "scheduled"


def rows_to_objects(headers: Sequence[str], rows: List[Sequence[str]]) -> List[Dict[str, str]]:
    """Key each row by its normalized header name ("Publish Date" -> publish_date)."""
    keys = [_header_key(h) for h in headers]
    objects = []
    for index, row in enumerate(rows):
        obj = {"id": f"row-{index}"}
        for i, key in enumerate(keys):
            obj[key] = _cell(row, i)
        objects.append(obj)
    return objects


def map_articles(rows: List[Sequence[str]], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Positional article mapping (columns A..F)."""
    articles = []
    for index, row in enumerate(rows[1:]):
        publish_date = _cell(row, 5)
        articles.append({
            "id": f"article-{index}",
            "date": _cell(row, 0),
            "title": _cell(row, 1),
            "articleLink": _cell(row, 2),
            "linkedinPost": _cell(row, 3),
            "twitterPost": _cell(row, 4),
            "publishDate": publish_date,
            "status": determine_status(publish_date, now),
        })
    return articles


def map_articles_by_header(rows: List[Sequence[str]], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Header-keyed article mapping; tolerates column reordering."""
    if not rows:
        return []
    articles = []
    for index, obj in enumerate(rows_to_objects(rows[0], rows[1:])):
        publish_date = obj.get("publish_date", "")
        articles.append({
            "id": f"article-{index}",
            "date": obj.get("date", ""),
            "title": obj.get("title", ""),
            # The live sheet spells this header "Artical Link"
            "articleLink": obj.get("artical_link") or obj.get("article_link", ""),
            "linkedinPost": obj.get("linkedin_post", ""),
            "twitterPost": obj.get("twitter_post", ""),
            "publishDate": publish_date,
            "status": determine_status(publish_date, now),
        })
    return articles


def map_schedule(rows: List[Sequence[str]]) -> List[Dict[str, str]]:
    schedule = []
    for index, row in enumerate(rows[1:]):
        entry = {"id": f"schedule-{index}", "agentName": _cell(row, 0)}
        for offset, day in enumerate(DAYS_OF_WEEK, start=1):
            entry[day] = _cell(row, offset)
        schedule.append(entry)
    return schedule


def map_stories(rows: List[Sequence[str]]) -> List[Dict[str, Any]]:
    stories = []
    for index, row in enumerate(rows[1:]):
        completed_on = _cell(row, 3, None)
        stories.append({
            "id": f"story-{index}",
            "date": _cell(row, 0),
            "twitterCaption": _cell(row, 1),
            "linkedinCaption": _cell(row, 2),
            "completedOn": completed_on,
            "status": "completed" if completed_on else "pending",
        })
    return stories


def map_users(rows: List[Sequence[str]]) -> List[Dict[str, Any]]:
    users = []
    for index, row in enumerate(rows[1:]):
        active = _cell(row, 4)
        users.append({
            "id": f"user-{index}",
            "email": _cell(row, 0),
            "password": _cell(row, 1),
            "name": _cell(row, 2),
            "role": _cell(row, 3, "viewer"),
            "active": active.lower() == "true" or active == "1",
        })
    return users


def map_metrics(rows: List[Sequence[str]]) -> List[Dict[str, Any]]:
    metrics = []
    for index, row in enumerate(rows[1:]):
        # rowIndex is the 1-based sheet row, header included
        entry = {"id": f"metric-{index}", "rowIndex": index + 2}
        for col, field in enumerate(METRICS_COLUMNS):
            entry[field] = _cell(row, col)
        metrics.append(entry)
    return metrics


def calculate_stats(
    articles: List[Dict[str, Any]],
    stories: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """Headline counts shown on the content overview."""
    now = now or datetime.now(timezone.utc)
    scheduled = published = 0
    for article in articles:
        parsed = parse_date(article.get("publishDate"))
        if parsed is None:
            continue
        if parsed > now:
            scheduled += 1
        else:
            published += 1

    return {
        "totalArticles": len(articles),
        "scheduledPosts": scheduled,
        "publishedPosts": published,
        "totalSuccessStories": len(stories),
        "completedStories": sum(1 for s in stories if s.get("status") == "completed"),
        "pendingStories": sum(1 for s in stories if s.get("status") == "pending"),
    }
