import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./poolplay.db")
SQL_ECHO = _env_bool("SQL_ECHO")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# A `generating` lock older than this is considered abandoned and may be taken over.
GENERATION_LOCK_TIMEOUT_SECONDS = int(os.getenv("GENERATION_LOCK_TIMEOUT_SECONDS", "120"))

STANDINGS_REFRESH_MAX_ATTEMPTS = int(os.getenv("STANDINGS_REFRESH_MAX_ATTEMPTS", "5"))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
