import os


def _normalize_database_url(url: str) -> str:
    # Render/Heroku sometimes provide postgres:// which SQLAlchemy expects as postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


class Config:
    # Base directory of the backend (one level above this `settlement` package)
    BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    INSTANCE_DIR = os.path.join(BACKEND_DIR, "instance")

    ENV = (os.getenv("SETTLEMENT_ENV", "dev") or "dev").strip().lower()
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me")

    _default_sqlite_path = os.path.join(INSTANCE_DIR, "settlement.db").replace("\\", "/")
    _db_url = os.getenv("DATABASE_URL", f"sqlite:///{_default_sqlite_path}")
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(_db_url)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CORS: comma-separated origins for web builds
    ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*")

    # Fees. Rates are fractions (0.01 = 1%).
    CURRENCY = os.getenv("CURRENCY", "GBP")
    PLATFORM_FEE_RATE = os.getenv("PLATFORM_FEE_RATE", "0.01")
    PROCESSOR_FEE_RATE = os.getenv("PROCESSOR_FEE_RATE", "0.029")
    PROCESSOR_FIXED_FEE = os.getenv("PROCESSOR_FIXED_FEE", "0.30")
    # PayPal payout fee; provider fees vary by country so this needs business sign-off.
    BATCH_PAYOUT_FEE_RATE = os.getenv("BATCH_PAYOUT_FEE_RATE", "0.02")

    # Rails
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "").strip()
    STRIPE_API_BASE = os.getenv("STRIPE_API_BASE", "https://api.stripe.com")
    PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID", "").strip()
    PAYPAL_CLIENT_SECRET = os.getenv("PAYPAL_CLIENT_SECRET", "").strip()
    PAYPAL_SANDBOX = _env_bool("PAYPAL_SANDBOX")
    RAIL_TIMEOUT_SECONDS = float(os.getenv("RAIL_TIMEOUT_SECONDS", "20"))

    # Payout scheduling
    AUTO_DISPATCH_PAYOUTS = _env_bool("AUTO_DISPATCH_PAYOUTS")
    MAX_RETRIES_PER_RUN = int(os.getenv("MAX_RETRIES_PER_RUN", "20"))
    MAX_RETRY_AGE_DAYS = int(os.getenv("MAX_RETRY_AGE_DAYS", "30"))
    STUCK_PROCESSING_MINUTES = int(os.getenv("STUCK_PROCESSING_MINUTES", "30"))

    # Optimistic concurrency (refund cap, rating aggregates)
    CONFLICT_MAX_RETRIES = int(os.getenv("CONFLICT_MAX_RETRIES", "5"))
    CONFLICT_BACKOFF_SECONDS = float(os.getenv("CONFLICT_BACKOFF_SECONDS", "0.05"))

    # Notifications (email API). Empty key means log-only.
    NOTIFY_API_URL = os.getenv("NOTIFY_API_URL", "https://api.resend.com/emails")
    NOTIFY_API_KEY = os.getenv("NOTIFY_API_KEY", "").strip()
    NOTIFY_FROM = os.getenv("NOTIFY_FROM", "orders@example.com")
    NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "10"))


class TestConfig(Config):
    TESTING = True
    ENV = "test"
    SECRET_KEY = "test-secret-key-0123456789abcdefghijkl"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    STRIPE_SECRET_KEY = ""
    PAYPAL_CLIENT_ID = ""
    PAYPAL_CLIENT_SECRET = ""
    NOTIFY_API_KEY = ""
    AUTO_DISPATCH_PAYOUTS = False
    CONFLICT_BACKOFF_SECONDS = 0.0
