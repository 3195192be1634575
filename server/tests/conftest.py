import os
import sys

# Add parent directory to path so tests can import main, config and services
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Keep tests off real credentials and rate limits
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("GOOGLE_CREDENTIALS", None)
os.environ["GOOGLE_CREDENTIALS_FILE"] = os.path.join(os.path.dirname(__file__), "no-credentials.json")
