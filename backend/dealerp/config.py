# backend/dealerp/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/dealerp.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///dealerp.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Absolute lifetime of a bearer token
    SESSION_HOURS = int(os.environ.get("SESSION_HOURS", "12"))

    # Created by `flask system init`; batch sale lines fall back to it
    DEFAULT_LOCATION_NAME = os.environ.get("DEFAULT_LOCATION_NAME", "Main Showroom")

    DEALERSHIP_NAME = os.environ.get("DEALERSHIP_NAME", "Dealership")

    # Post-sale receipt delivery over WhatsApp Cloud API
    NOTIFICATIONS_ENABLED = _env_bool("NOTIFICATIONS_ENABLED", False)
    WHATSAPP_API_URL = os.environ.get("WHATSAPP_API_URL", "https://graph.facebook.com/v23.0")
    WHATSAPP_PHONE_NUMBER_ID = os.environ.get("WHATSAPP_PHONE_NUMBER_ID")
    WHATSAPP_TOKEN = os.environ.get("WHATSAPP_TOKEN")
    WHATSAPP_TEMPLATE = os.environ.get("WHATSAPP_TEMPLATE", "sales_done")
    WHATSAPP_TIMEOUT_SECONDS = float(os.environ.get("WHATSAPP_TIMEOUT_SECONDS", "10"))

    # Browser origins allowed to call the API
    CORS_ORIGINS = tuple(
        o.strip() for o in os.environ.get(
            "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",") if o.strip()
    )
