# backend/nexuspos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/nexuspos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///nexuspos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Series used for fiscal folios when the caller does not name one
    DEFAULT_FISCAL_SERIES = os.environ.get("NEXUSPOS_DEFAULT_SERIES", "VENTA")

    LOG_LEVEL = os.environ.get("NEXUSPOS_LOG_LEVEL", "INFO")

    # bcrypt cost factor for passwords and PINs
    BCRYPT_ROUNDS = 12

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get("NEXUSPOS_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if origin.strip()
    )
