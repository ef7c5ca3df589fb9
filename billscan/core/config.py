import os, json

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
PACKAGE_DIR = os.path.dirname(BASE_DIR)
DATA_DIR = os.path.join(PACKAGE_DIR, "data")

# Prompts, canned assistant texts and the placeholder analysis
CONFIG_PATH = os.getenv("BILLSCAN_CONFIG_PATH", os.path.join(DATA_DIR, "assistant_config.json"))

with open(CONFIG_PATH, "r", encoding="utf-8") as f:
    ASSISTANT_CONFIG = json.load(f)

BRAND = ASSISTANT_CONFIG.get("brand", "Upload Your Bill")
ANALYSIS_CONFIG = ASSISTANT_CONFIG.get("analysis") or {}
CHAT_CONFIG = ASSISTANT_CONFIG.get("chat") or {}

CHAT_APOLOGY = CHAT_CONFIG.get(
    "apology",
    "I'm sorry, I can't answer right now. Please try again in a moment.",
)
CHAT_GREETING = CHAT_CONFIG.get(
    "greeting",
    "Hi! I've analyzed your bill. How can I help you understand your solar options today?",
)

# Logging
LOG_LEVEL = os.getenv("BILLSCAN_LOG_LEVEL", "INFO").upper()

# HTTP
CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("BILLSCAN_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
    if o.strip()
]

# Document store
DOCUMENT_DIR = os.getenv("BILLSCAN_DOCUMENT_DIR", os.path.join("static", "bills"))
PUBLIC_BASE_URL = os.getenv("BILLSCAN_PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
MAX_UPLOAD_MB = int(os.getenv("BILLSCAN_MAX_UPLOAD_MB", "10"))

# Chat context window
CHAT_MAX_TURNS = int(os.getenv("BILLSCAN_CHAT_MAX_TURNS", "20"))
CHAT_MAX_TURN_CHARS = int(os.getenv("BILLSCAN_CHAT_MAX_TURN_CHARS", "2000"))

# Client convergence loop
POLL_INTERVAL = float(os.getenv("BILLSCAN_POLL_INTERVAL", "2.0"))  # seconds

# Gemini (no default key: an empty key puts the app in placeholder mode)
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
).rstrip("/")
