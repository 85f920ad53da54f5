"""Runtime configuration loaded from the environment (and `.env`)."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

COUPANG_ACCESS_KEY = os.getenv("COUPANG_ACCESS_KEY")
COUPANG_SECRET_KEY = os.getenv("COUPANG_SECRET_KEY")
COUPANG_DOMAIN = os.getenv("COUPANG_DOMAIN", "https://api-gateway.coupang.com")

# Admin API is closed when this is unset
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

DATABASE_PATH = Path(os.getenv("DATABASE_PATH", BASE_DIR / "data" / "cooshop.db"))

BACKEND_PORT = int(os.getenv("BACKEND_PORT", "4000"))
FRONTEND_PORT = int(os.getenv("FRONTEND_PORT", os.getenv("PORT", "3000")))
BACKEND_URL = os.getenv("BACKEND_URL", f"http://localhost:{BACKEND_PORT}")
# Address browsers use for the frontend; sent as the Referer of page fetches
FRONTEND_URL = os.getenv("FRONTEND_URL", f"http://localhost:{FRONTEND_PORT}")

IS_PRODUCTION = os.getenv("APP_ENV") == "production" or bool(os.getenv("RENDER"))

# Key rate limits on X-Forwarded-For; only safe when the backend is reachable
# solely through the frontend or another proxy that sets the header
TRUST_PROXY = os.getenv("TRUST_PROXY", "").lower() in ("1", "true", "yes")

_DEFAULT_ORIGINS = (
    "https://cooshop-backend.onrender.com,"
    "http://localhost:3000,http://localhost:3001,http://localhost:5173"
)
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", _DEFAULT_ORIGINS).split(",")
    if origin.strip()
]

SCHEDULER_DELAY_SECONDS = float(os.getenv("SCHEDULER_DELAY_SECONDS", "3"))
