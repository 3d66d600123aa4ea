# backend/miniclinic/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/miniclinic.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///miniclinic.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # bcrypt cost factor; tests drop this to keep hashing fast
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Browser clients may send the session token as a cookie instead of a bearer header
    AUTH_COOKIE_NAME = os.environ.get("AUTH_COOKIE_NAME", "clinic_session")

    AUDIT_LOG_DEFAULT_LIMIT = int(os.environ.get("AUDIT_LOG_DEFAULT_LIMIT", "100"))

    # Seconds a cached listing stays valid when nothing invalidates it
    CACHE_DEFAULT_TTL = int(os.environ.get("CACHE_DEFAULT_TTL", "300"))

    # Any Flask-Caching backend; use RedisCache or similar when running several workers
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "SimpleCache")

    CURRENCY = os.environ.get("CLINIC_CURRENCY", "GHS")
