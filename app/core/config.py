from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "Reward System"
    # Application settings
    PORT: int = 3001
    HOST: str = "127.0.0.1"
    VERSION: str = "1.0.0"
    CORS_ORIGINS: List[str] = ["http://localhost:5173"]
    LOG_LEVEL: str = "INFO"

    # SSL settings
    SSL_KEY: str | None = None
    SSL_CERT: str | None = None

    # SQLAlchemy database URL
    DATABASE_URL: str = "sqlite:///./rewards.db"
    AUTO_CREATE_TABLES: bool = True

    # Login configuration
    ENCODE_KEY: str | None = None
    ENCODE_ALGORITHM: str = "HS256"
    SESSION_EXPIRE_DAYS: int = 7
    CHALLENGE_FRESHNESS_SECONDS: int = 300 # 5 minutes
    CHALLENGE_CLOCK_SKEW_SECONDS: int = 30
    NONCE_REPLAY_GUARD: bool = False

    # Reward settings
    REWARD_RATE_PER_HOUR: float = 0.1
    MAX_DAILY_REWARD: float = 2.4
    MIN_CLAIM_INTERVAL_HOURS: int = 24
    MAX_ACCRUAL_HOURS: int = 24
    CLAIM_EXPIRY_SECONDS: int = 600 # 10 minutes
    CLAIM_AMOUNT_TOLERANCE: float = 0.01

    # Settlement ledger (JSON-RPC), status checks are skipped when unset
    SETTLEMENT_RPC_URL: str | None = None
    SETTLEMENT_RPC_TIMEOUT: float = 10.0

    # Redis settings
    REDIS_HOST: str | None = None
    REDIS_PORT: int = 6379
    REDIS_MAX_CONNECTIONS: int = 10
    REDIS_SSL: bool = False
    REDIS_RECHECK_INTERVAL: int = 30 * 60  # 30 minutes in seconds

    # Rate limits (per client IP)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_AUTH: str = "10 per 15 minutes"
    RATE_LIMIT_CLAIM: str = "5 per hour"

    # Debug settings
    DEBUG: bool = False

    class Config:
        env_file = ".env"

# Instantiate the settings
settings = Settings()
