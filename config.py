import os
import secrets
import warnings

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


class Config:
    _secret_key = os.environ.get("SECRET_KEY")

    if not _secret_key:
        _secret_key = secrets.token_urlsafe(32)
        warnings.warn(
            "SECRET_KEY not set! Using auto-generated key. "
            "Set SECRET_KEY in .env for stable deployments.",
            UserWarning,
        )

    SECRET_KEY = _secret_key

    # Database configuration - built from environment at initialization
    def __init__(self):
        """Initialize configuration with dynamic database URI"""
        self.SQLALCHEMY_DATABASE_URI = self._build_database_uri()
        self.SQLALCHEMY_ENGINE_OPTIONS = self._build_engine_options(self.SQLALCHEMY_DATABASE_URI)

    def _build_database_uri(self):
        """Build database URI from environment variables"""
        database_url = os.environ.get("DATABASE_URL")

        if database_url:
            return database_url

        db_type = os.environ.get("DB_TYPE", "sqlite")

        if db_type.lower() == "postgresql":
            db_host = os.environ.get("DB_HOST") or "localhost"
            db_port = os.environ.get("DB_PORT") or "5432"
            db_name = os.environ.get("DB_NAME") or "pigskin_db"
            db_user = os.environ.get("DB_USER") or "pigskin"
            db_password = os.environ.get("DB_PASSWORD") or "pigskin_password"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        else:
            # Default to SQLite for development
            return "sqlite:///" + os.path.join(basedir, "pigskin.db")

    def _build_engine_options(self, database_uri):
        """Pool and timeout settings for PostgreSQL; SQLite keeps the defaults"""
        if not database_uri.startswith("postgresql"):
            return {}

        statement_timeout_ms = int(os.environ.get("DB_STATEMENT_TIMEOUT_MS") or 30000)
        return {
            "pool_pre_ping": True,
            "pool_size": int(os.environ.get("DB_POOL_SIZE") or 5),
            "max_overflow": int(os.environ.get("DB_MAX_OVERFLOW") or 10),
            "pool_timeout": int(os.environ.get("DB_POOL_TIMEOUT") or 30),
            "pool_recycle": int(os.environ.get("DB_POOL_RECYCLE") or 1800),
            "connect_args": {
                "connect_timeout": int(os.environ.get("DB_CONNECT_TIMEOUT") or 10),
                "options": f"-c statement_timeout={statement_timeout_ms}",
            },
        }

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # League settings
    LEAGUE_TIMEZONE = os.environ.get("LEAGUE_TIMEZONE", "America/Chicago")
    CURRENT_SEASON = int(os.environ.get("CURRENT_SEASON") or 2025)
    BEST_FINISH_START_WEEK = int(os.environ.get("BEST_FINISH_START_WEEK") or 11)
    BEST_FINISH_END_WEEK = int(os.environ.get("BEST_FINISH_END_WEEK") or 14)

    # "double" doubles the whole pick value, "double_bonus" only the margin bonus
    LOCK_SCORING_RULE = os.environ.get("LOCK_SCORING_RULE", "double")

    # Settlement batch limits
    SETTLEMENT_MAX_GAMES_PER_RUN = int(
        os.environ.get("SETTLEMENT_MAX_GAMES_PER_RUN") or 25
    )
    SETTLEMENT_TIME_BUDGET_SECONDS = float(
        os.environ.get("SETTLEMENT_TIME_BUDGET_SECONDS") or 45
    )

    # Score feed configuration
    SCORE_FEED_BASE_URL = (
        os.environ.get("SCORE_FEED_BASE_URL") or "https://api.collegefootballdata.com"
    )
    SCORE_FEED_API_KEY = os.environ.get("SCORE_FEED_API_KEY")
    SCORE_FEED_TIMEOUT = float(os.environ.get("SCORE_FEED_TIMEOUT") or 10)
    SCORE_FEED_CLASSIFICATION = os.environ.get("SCORE_FEED_CLASSIFICATION", "fbs")

    # Scheduler configuration
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "True").lower() == "true"
    LIVE_POLL_SECONDS = int(os.environ.get("LIVE_POLL_SECONDS") or 90)
    IDLE_POLL_SECONDS = int(os.environ.get("IDLE_POLL_SECONDS") or 600)
    GAME_WINDOW_LEAD_MINUTES = int(os.environ.get("GAME_WINDOW_LEAD_MINUTES") or 30)

    # Caching configuration
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "SimpleCache")
    CACHE_DEFAULT_TIMEOUT = int(
        os.environ.get("CACHE_DEFAULT_TIMEOUT", 300)
    )  # 5 minutes
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "pigskin:"

    # Rate limiting for the manual settlement trigger
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_ENABLED = os.environ.get("RATELIMIT_ENABLED", "True").lower() == "true"
    SETTLEMENT_TRIGGER_LIMIT = os.environ.get("SETTLEMENT_TRIGGER_LIMIT", "6 per minute")

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = os.environ.get("LOG_TO_CONSOLE", "True").lower() == "true"
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "True").lower() == "true"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")

    # Environment detection
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "False").lower() == "true"


class ProductionConfig(Config):
    """Production configuration with security focus"""

    DEBUG = False

    # In production, require explicit environment variables
    def __init__(self):
        super().__init__()  # Call parent __init__ to build database URI

        if not os.environ.get("SECRET_KEY"):
            warnings.warn(
                "PRODUCTION WARNING: SECRET_KEY not explicitly set! "
                "Using auto-generated key is not recommended for production.",
                UserWarning,
            )
        if not os.environ.get("SCORE_FEED_API_KEY"):
            warnings.warn(
                "PRODUCTION WARNING: SCORE_FEED_API_KEY not set! "
                "Live score polling will be rejected by the feed.",
                UserWarning,
            )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = False
    SCHEDULER_ENABLED = False
    CACHE_TYPE = "SimpleCache"
    RATELIMIT_ENABLED = False
    LOG_TO_FILE = False
    LOG_TO_CONSOLE = False
    LEAGUE_TIMEZONE = "America/Chicago"
    LOCK_SCORING_RULE = "double"

    def __init__(self):
        super().__init__()
        self.SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
        self.SQLALCHEMY_ENGINE_OPTIONS = self._build_engine_options(self.SQLALCHEMY_DATABASE_URI)


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
