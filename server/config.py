# server/config.py

import os


class Config:
    """Application configuration read from environment variables."""

    # Spreadsheet backing the dashboard
    SPREADSHEET_ID = os.getenv('SPREADSHEET_ID', '1TFtKMMAhevtYMTZb1dmx1Xmd9UjJnMyx4abZx9YIUwE')

    # Sheet (tab) names
    NEWS_SHEET = os.getenv('NEWS_SHEET', 'insurance_news_log')
    SCHEDULE_SHEET = os.getenv('SCHEDULE_SHEET', 'Post Scheduling')
    SUCCESS_SHEET = os.getenv('SUCCESS_SHEET', 'customer success post defy insurance')
    METRICS_SHEET = os.getenv('METRICS_SHEET', 'Defy insurnace week metrics')
    USERS_SHEET = os.getenv('USERS_SHEET', 'Users')

    # Column spans per sheet
    NEWS_COLUMNS = 'A:F'
    SCHEDULE_COLUMNS = 'A:H'
    SUCCESS_COLUMNS = 'A:D'
    METRICS_COLUMNS = 'A:U'
    USERS_COLUMNS = 'A:E'

    # Service account credentials
    GOOGLE_CREDENTIALS_FILE = os.getenv(
        'GOOGLE_CREDENTIALS_FILE',
        os.path.join(os.path.dirname(os.path.abspath(__file__)), 'credentials.json')
    )
    GOOGLE_CREDENTIALS_SECRET = os.getenv('GOOGLE_CREDENTIALS_SECRET')
    SHEETS_WRITE_ENABLED = os.getenv('SHEETS_WRITE_ENABLED', 'true').lower() == 'true'

    # Chat completion proxy
    OPENAI_BASE_URL = os.getenv('OPENAI_BASE_URL', 'https://api.openai.com/v1')
    OPENAI_API_KEY_SECRET = os.getenv('OPENAI_API_KEY_SECRET')
    AI_PRIMARY_MODEL = os.getenv('AI_PRIMARY_MODEL', 'chickytutor')
    AI_FALLBACK_MODEL = os.getenv('AI_FALLBACK_MODEL', 'gpt-4o-mini')
    POLLINATIONS_URL = os.getenv('POLLINATIONS_URL', 'https://text.pollinations.ai/openai')
    AI_TIMEOUT_SECONDS = float(os.getenv('AI_TIMEOUT_SECONDS', '60'))

    # Published CSV export polled by the dashboard overview
    DASHBOARD_CSV_URL = os.getenv('DASHBOARD_CSV_URL', '')
    DASHBOARD_REFRESH_SECONDS = int(os.getenv('DASHBOARD_REFRESH_SECONDS', '30'))

    # Rate limits (slowapi syntax)
    AI_CHAT_RATE_LIMIT = os.getenv('AI_CHAT_RATE_LIMIT', '20/minute')
    LOGIN_RATE_LIMIT = os.getenv('LOGIN_RATE_LIMIT', '10/minute')
    RATE_LIMIT_ENABLED = os.getenv('RATE_LIMIT_ENABLED', 'true').lower() == 'true'

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    DEFAULT_CORS_ORIGINS = (
        'http://localhost:5173,http://localhost:5174,http://localhost:5175,'
        'http://localhost:5176,http://127.0.0.1:5173'
    )

    @classmethod
    def cors_origins(cls) -> list:
        """Allowed browser origins, comma-separated in CORS_ORIGINS."""
        raw = os.getenv('CORS_ORIGINS', cls.DEFAULT_CORS_ORIGINS)
        return [origin.strip() for origin in raw.split(',') if origin.strip()]

    @classmethod
    def sheets_scopes(cls) -> list:
        if cls.SHEETS_WRITE_ENABLED:
            return ['https://www.googleapis.com/auth/spreadsheets']
        return ['https://www.googleapis.com/auth/spreadsheets.readonly']

    @classmethod
    def sheet_range(cls, sheet: str, columns: str) -> str:
        """A1 range for a whole column span of a tab, e.g. 'Users'!A:E."""
        return f"'{sheet}'!{columns}"
