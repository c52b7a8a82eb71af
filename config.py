# /quickpick/config.py

import os
from urllib.parse import quote_plus

from dotenv import load_dotenv

load_dotenv()

APP_NAME = os.getenv("APP_NAME", "QuickPick Marketplace API")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8000"))

# --- Database ---
MONGO_USER = os.getenv("MONGO_USER")
MONGO_PASSWORD = os.getenv("MONGO_PASSWORD")
MONGO_CLUSTER_URL = os.getenv("MONGO_CLUSTER_URL")  # e.g., quickpick.ab12cd.mongodb.net
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "quickpick")


def build_mongo_uri() -> str:
    uri = os.getenv("MONGO_URI")
    if uri:
        return uri
    if MONGO_USER and MONGO_PASSWORD and MONGO_CLUSTER_URL:
        escaped_user = quote_plus(MONGO_USER)
        escaped_password = quote_plus(MONGO_PASSWORD)
        return f"mongodb+srv://{escaped_user}:{escaped_password}@{MONGO_CLUSTER_URL}/?retryWrites=true&w=majority&appName=quickpick"
    return "mongodb://localhost:27017"


MONGO_URI = build_mongo_uri()

# --- Security & JWT ---
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "changeme")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# --- AI recommendation upstream ---
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_API_URL = os.getenv(
    "GEMINI_API_URL",
    "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent",
)

# For production, set CORS_ORIGINS to the frontend's URL(s)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
