import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[2] / ".env")

QUERY_API_BASE_URL = os.getenv("QUERY_API_BASE_URL", "https://ualr-chatbot-backend.onrender.com")
QUERY_MODEL = os.getenv("QUERY_MODEL", "gemini-2.0-flash-lite")
QUERY_TOP_K = int(os.getenv("QUERY_TOP_K", "3"))
QUERY_TIMEOUT_SECONDS = float(os.getenv("QUERY_TIMEOUT_SECONDS", "60"))
HEALTH_TIMEOUT_SECONDS = float(os.getenv("HEALTH_TIMEOUT_SECONDS", "10"))

DB_TIMEOUT_SECONDS = float(os.getenv("DB_TIMEOUT_SECONDS", "10"))

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))

FEEDBACK_FORWARD_ENABLED = os.getenv("FEEDBACK_FORWARD_ENABLED", "") == "1"
WAKE_UP_ON_STARTUP = os.getenv("WAKE_UP_ON_STARTUP", "1") == "1"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# In-memory chat sessions untouched for this long are dropped on the next request.
SESSION_IDLE_SECONDS = float(os.getenv("SESSION_IDLE_SECONDS", "3600"))
# Zone whose calendar day "questions today" counts.
LOCAL_TIMEZONE = os.getenv("LOCAL_TIMEZONE", "America/Chicago")

APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8000"))

GREETING_ID = "1"
GREETING_TEXT = (
    "Hello! I'm here to help answer questions about UALR graduate procedures. "
    "What would you like to know?"
)
ERROR_REPLY = "Sorry, I encountered an error processing your request. Please try again."

# Conversation titles are cut to this many characters, then "..." is appended.
TITLE_MAX_CHARS = 50

REPORT_STATUSES = ("pending", "reviewed", "resolved")
