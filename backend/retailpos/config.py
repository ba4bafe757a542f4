# backend/retailpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/retailpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///retailpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Human-readable document numbers: PREFIX-YYYYMMDD-NNNN
    TRANSACTION_NUMBER_PREFIX = os.environ.get("TRANSACTION_NUMBER_PREFIX", "TR")
    RETURN_NUMBER_PREFIX = os.environ.get("RETURN_NUMBER_PREFIX", "RTN")
    TRANSFER_NUMBER_PREFIX = os.environ.get("TRANSFER_NUMBER_PREFIX", "TRF")

    # Settlement retries only on transaction-number collisions
    SEQUENCE_RETRY_ATTEMPTS = int(os.environ.get("SEQUENCE_RETRY_ATTEMPTS", "5"))
    SEQUENCE_RETRY_BACKOFF = float(os.environ.get("SEQUENCE_RETRY_BACKOFF", "0.05"))

    # Returns
    RETURN_WINDOW_DAYS = int(os.environ.get("RETURN_WINDOW_DAYS", "30"))
    SIGNIFICANT_RETURN_RATIO = float(os.environ.get("SIGNIFICANT_RETURN_RATIO", "0.5"))
