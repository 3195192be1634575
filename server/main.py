# server/main.py

import asyncio
import csv
import io
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Config
from services.ai_chat import ChatProxy, ChatUpstreamError
from services.auth_service import authenticate
from services.dashboard_feed import get_cached_dashboard_data
from services.input_validator import InputValidator
from services.metrics_utils import summarize_metrics
from services.rate_limiter import limiter
from services.row_mapper import (
    METRICS_COLUMNS,
    calculate_stats,
    map_articles,
    map_articles_by_header,
    map_metrics,
    map_schedule,
    map_stories,
)
from services.sheets_client import init_sheets_client

# Configure logging
logging.basicConfig(
    level=Config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
STATIC_DIR = os.path.join(BASE_DIR, "static")

# Initialize FastAPI app
app = FastAPI(
    title="Defy Insurance Content Dashboard API",
    description="Google Sheets backed articles, posting schedule, success stories and outreach metrics",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """The dashboard expects {"error": message} bodies on failure."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response

# Mount static files
app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

# Initialize external clients
sheets_client = init_sheets_client()
chat_proxy = ChatProxy.from_environment()


# Pydantic Models
class ChatRequest(BaseModel):
    """Chat transcript in OpenAI message format."""
    messages: Optional[Any] = None
    temperature: float = 0.7
    max_tokens: int = 2000


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class MetricsAddRequest(BaseModel):
    data: Optional[Dict[str, Any]] = None
    userRole: Optional[str] = None


class MetricsUpdateRequest(BaseModel):
    rowIndex: Optional[int] = None
    changes: Optional[Dict[str, Any]] = None
    userRole: Optional[str] = None


# Helpers

def require_sheets(detail: str = "Google Sheets not initialized"):
    if not sheets_client.initialized:
        raise HTTPException(status_code=503, detail=detail)


def content_ranges() -> List[str]:
    return [
        Config.sheet_range(Config.NEWS_SHEET, Config.NEWS_COLUMNS),
        Config.sheet_range(Config.SCHEDULE_SHEET, Config.SCHEDULE_COLUMNS),
        Config.sheet_range(Config.SUCCESS_SHEET, Config.SUCCESS_COLUMNS),
    ]


async def load_all_content() -> Dict[str, Any]:
    """Fetch news, schedule and stories in one batchGet and map them."""
    article_rows, schedule_rows, story_rows = await asyncio.to_thread(
        sheets_client.batch_get, content_ranges()
    )
    return {
        "articles": map_articles(article_rows),
        "schedule": map_schedule(schedule_rows),
        "stories": map_stories(story_rows),
        "lastUpdated": datetime.now(timezone.utc).isoformat(),
    }


async def load_metrics() -> List[Dict[str, Any]]:
    rows = await asyncio.to_thread(
        sheets_client.get_values, Config.METRICS_SHEET, Config.METRICS_COLUMNS
    )
    return map_metrics(rows)


def to_csv(records: List[Dict[str, Any]]) -> str:
    """Serialize records with the first record's keys as header."""
    if not records:
        return ""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(records[0].keys()), extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for record in records:
        writer.writerow({k: ("" if v is None else v) for k, v in record.items()})
    return buffer.getvalue()


# Routes

@app.get("/")
async def root():
    """Serve the dashboard single-page shell."""
    return FileResponse(os.path.join(STATIC_DIR, "index.html"))


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "sheetsInitialized": sheets_client.initialized,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


# ============================================================================
# CONTENT ENDPOINTS - News articles, posting schedule, success stories
# ============================================================================

@app.get("/api/articles")
async def get_articles():
    """News articles keyed by the sheet's header row."""
    require_sheets()
    try:
        rows = await asyncio.to_thread(
            sheets_client.get_values, Config.NEWS_SHEET, Config.NEWS_COLUMNS
        )
        return map_articles_by_header(rows)
    except Exception as e:
        logger.error(f"Error fetching articles: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/schedule")
async def get_schedule():
    require_sheets()
    try:
        rows = await asyncio.to_thread(
            sheets_client.get_values, Config.SCHEDULE_SHEET, Config.SCHEDULE_COLUMNS
        )
        return map_schedule(rows)
    except Exception as e:
        logger.error(f"Error fetching schedule: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/stories")
async def get_stories():
    require_sheets()
    try:
        rows = await asyncio.to_thread(
            sheets_client.get_values, Config.SUCCESS_SHEET, Config.SUCCESS_COLUMNS
        )
        return map_stories(rows)
    except Exception as e:
        logger.error(f"Error fetching stories: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/all")
async def get_all_content():
    """
    Articles, schedule and stories in a single response.

    This is what the dashboard polls; one batchGet keeps it to a single
    Sheets API call.
    """
    require_sheets("Google Sheets not initialized. Check server credentials.")
    try:
        return await load_all_content()
    except Exception as e:
        logger.error(f"Error fetching all data: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# Older frontend builds call /api/sheets
app.add_api_route("/api/sheets", get_all_content, methods=["GET"])


@app.get("/api/stats")
async def get_content_stats():
    """Headline counts for the content overview cards."""
    require_sheets("Google Sheets not initialized. Check server credentials.")
    try:
        content = await load_all_content()
        stats = calculate_stats(content["articles"], content["stories"])
        stats["lastUpdated"] = content["lastUpdated"]
        return stats
    except Exception as e:
        logger.error(f"Error computing content stats: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/dashboard")
async def get_dashboard(url: Optional[str] = None):
    """
    Overview figures from a published CSV export.

    Args:
        url: CSV export URL; defaults to DASHBOARD_CSV_URL. Demo figures
            are returned when neither is set or the fetch fails.
    """
    sheet_url = url or Config.DASHBOARD_CSV_URL
    if url:
        await asyncio.to_thread(InputValidator.validate_url, url)
    return await asyncio.to_thread(get_cached_dashboard_data, sheet_url)


# ============================================================================
# WEEK METRICS - LinkedIn outreach metrics (read/append/update)
# ============================================================================

@app.get("/api/metrics")
async def get_metrics():
    require_sheets()
    try:
        return await load_metrics()
    except Exception as e:
        logger.error(f"Error fetching metrics: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/metrics/summary")
async def get_metrics_summary(forecast_weeks: int = 4):
    """Per-agent performance, totals and acceptance-rate trend."""
    require_sheets()
    try:
        rows = await load_metrics()
        return summarize_metrics(rows, forecast_weeks=max(0, min(forecast_weeks, 12)))
    except Exception as e:
        logger.error(f"Error summarizing metrics: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/metrics/add")
async def add_metrics(body: MetricsAddRequest):
    if body.data is None:
        raise HTTPException(status_code=400, detail="data is required")

    InputValidator.check_field_permissions(list(body.data.keys()), body.userRole, "add data for")
    require_sheets()

    new_row = [body.data.get(col) or "" for col in METRICS_COLUMNS]
    try:
        await asyncio.to_thread(
            sheets_client.append_row, Config.METRICS_SHEET, Config.METRICS_COLUMNS, new_row
        )
    except Exception as e:
        logger.error(f"Error adding metrics: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"Metrics row appended by role={body.userRole}")
    return {"success": True, "message": "Row added successfully"}


@app.post("/api/metrics/update")
async def update_metrics(body: MetricsUpdateRequest):
    if not body.rowIndex or not body.changes:
        raise HTTPException(status_code=400, detail="rowIndex and changes are required")
    if body.rowIndex < 2:
        raise HTTPException(status_code=400, detail="rowIndex must point at a data row (2 or greater)")

    InputValidator.check_field_permissions(list(body.changes.keys()), body.userRole, "edit")
    require_sheets()

    row_range = f"'{Config.METRICS_SHEET}'!A{body.rowIndex}:U{body.rowIndex}"
    try:
        current = await asyncio.to_thread(sheets_client.get_range, row_range)
        current_row = list(current[0]) if current else []
        current_row += [""] * (len(METRICS_COLUMNS) - len(current_row))

        for key, value in body.changes.items():
            if key in METRICS_COLUMNS:
                current_row[METRICS_COLUMNS.index(key)] = value

        await asyncio.to_thread(sheets_client.update_row, row_range, current_row)
    except Exception as e:
        logger.error(f"Error updating metrics: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"Metrics row {body.rowIndex} updated by role={body.userRole}")
    return {"success": True, "message": "Metrics updated successfully"}


# ============================================================================
# EXPORT - CSV downloads of dashboard tables
# ============================================================================

@app.get("/api/export/{dataset}.csv")
async def export_csv(dataset: str):
    if dataset not in ("articles", "schedule", "stories", "metrics"):
        raise HTTPException(status_code=404, detail=f"Unknown dataset '{dataset}'")
    require_sheets()

    try:
        if dataset == "metrics":
            records = await load_metrics()
        else:
            records = (await load_all_content())[dataset]
    except Exception as e:
        logger.error(f"Error exporting {dataset}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    filename = f"{dataset}_{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.csv"
    return Response(
        content=to_csv(records),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


# ============================================================================
# AI CHAT + AUTH
# ============================================================================

@app.post("/api/ai/chat")
@limiter.limit(Config.AI_CHAT_RATE_LIMIT)
async def ai_chat(body: ChatRequest, request: Request):
    """Proxy a chat transcript to the completion API."""
    messages, suspicion_score = InputValidator.validate_chat_messages(body.messages)
    if suspicion_score:
        logger.warning(
            f"Chat request from {request.client.host if request.client else 'unknown'} "
            f"has suspicion score {suspicion_score}"
        )

    try:
        return await asyncio.to_thread(
            chat_proxy.complete, messages, body.temperature, body.max_tokens
        )
    except ChatUpstreamError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"AI Chat error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.post("/api/auth/login")
@limiter.limit(Config.LOGIN_RATE_LIMIT)
async def login(body: LoginRequest, request: Request):
    email, password = InputValidator.validate_login(body.email, body.password)

    try:
        user = await asyncio.to_thread(authenticate, sheets_client, email, password)
    except Exception as e:
        logger.error(f"Login error: {e}")
        raise HTTPException(status_code=500, detail="Login failed. Please try again.")

    if not user:
        logger.info(f"Failed login for {email}")
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return {"user": user}


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", "3001"))
    uvicorn.run(app, host="0.0.0.0", port=port)
