import os
from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> list:
    return [x.strip() for x in (value or "").split(",") if x.strip()]


class Settings:
    # Backend API (base URL includes the /api prefix)
    API_BASE_URL: str = os.getenv("API_BASE_URL", "http://localhost:5000/api").rstrip("/")
    REQUEST_TIMEOUT_SEC: float = float(os.getenv("REQUEST_TIMEOUT_SEC", "30"))
    # Additional attempts after the first one, for transient network failures only
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "2"))
    # Linear backoff: RETRY_BACKOFF_SEC * attempt number
    RETRY_BACKOFF_SEC: float = float(os.getenv("RETRY_BACKOFF_SEC", "1.0"))
    # Endpoints whose error bodies may describe partially completed work
    PRESERVE_ERROR_BODY_ENDPOINTS: list = _csv(
        os.getenv("PRESERVE_ERROR_BODY_ENDPOINTS", "/purchase,/recharge/generate")
    )

    # Persisted local state
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "redis").lower()  # redis | memory
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    STORAGE_PREFIX: str = os.getenv("STORAGE_PREFIX", "walletflow:")

    # Legacy credential keys, probed in this order
    CREDENTIAL_KEYS: list = _csv(os.getenv("CREDENTIAL_KEYS", "userToken,authToken,token,access_token"))

    BALANCE_KEY: str = os.getenv("BALANCE_KEY", "userBalance")
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "NGN")

    RECENTS_LIMIT: int = int(os.getenv("RECENTS_LIMIT", "10"))

    # Background reconciliation after an ambiguous purchase outcome
    RECONCILE_DELAY_SEC: float = float(os.getenv("RECONCILE_DELAY_SEC", "2.0"))
    ARTIFACT_SEARCH_MAX_DEPTH: int = int(os.getenv("ARTIFACT_SEARCH_MAX_DEPTH", "6"))

    # Shown when /purchase/pin-status cannot be fetched
    PIN_DEFAULT_ATTEMPTS: int = int(os.getenv("PIN_DEFAULT_ATTEMPTS", "3"))

    ENABLE_LOG_REDACTION: bool = os.getenv("ENABLE_LOG_REDACTION", "true").lower() == "true"

    # Local driver surface (walletflow.main); empty disables the key check
    DRIVER_API_KEY: str = os.getenv("DRIVER_API_KEY", "")
    # Live wizards kept by the driver; finished ones are evicted first
    MAX_LIVE_WIZARDS: int = int(os.getenv("MAX_LIVE_WIZARDS", "100"))
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")


settings = Settings()
