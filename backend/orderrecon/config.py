from __future__ import annotations
import os


DEFAULT_API_BASE_URL = "http://127.0.0.1:8080/wp-json/ims/v1"


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB holds the local ledgers (movements, transition records, intents)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///orderrecon.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Remote services. All three default to the same REST base.
    RECON_API_BASE_URL = os.environ.get("RECON_API_BASE_URL", DEFAULT_API_BASE_URL)
    RECON_ORDER_SERVICE_URL = os.environ.get("RECON_ORDER_SERVICE_URL") or RECON_API_BASE_URL
    RECON_INVENTORY_SERVICE_URL = os.environ.get("RECON_INVENTORY_SERVICE_URL") or RECON_API_BASE_URL
    RECON_RECEIVABLES_SERVICE_URL = os.environ.get("RECON_RECEIVABLES_SERVICE_URL") or RECON_API_BASE_URL
    RECON_API_TOKEN = os.environ.get("RECON_API_TOKEN")

    # Seconds before a remote call is abandoned with NetworkError
    RECON_HTTP_TIMEOUT = float(os.environ.get("RECON_HTTP_TIMEOUT", "10"))

    # Only idempotent reads are retried; ledger writes never are
    RECON_READ_RETRY_ATTEMPTS = int(os.environ.get("RECON_READ_RETRY_ATTEMPTS", "3"))
    RECON_RETRY_BACKOFF_BASE = float(os.environ.get("RECON_RETRY_BACKOFF_BASE", "0.2"))

    # Batch size for the reconciliation job
    RECON_JOB_BATCH_SIZE = int(os.environ.get("RECON_JOB_BATCH_SIZE", "50"))

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080,http://127.0.0.1:8080",
        ).split(",")
        if origin.strip()
    ]
