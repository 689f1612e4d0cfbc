"""Runtime configuration for the app, read from the environment (overridable during tests/runtime)."""
import os
from typing import NamedTuple, Optional


class Settings(NamedTuple):
    database_url: str
    jwt_secret: str
    jwt_exp_seconds: int
    admin_email: Optional[str]
    admin_password: Optional[str]
    admin_name: str
    log_level: str
    allow_acting_header: bool


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./foneflow.db"),
        jwt_secret=os.getenv("JWT_SECRET", "dev-secret"),
        jwt_exp_seconds=int(os.getenv("JWT_EXP_SECONDS", str(60 * 60 * 24))),
        admin_email=os.getenv("ADMIN_EMAIL") or None,
        admin_password=os.getenv("ADMIN_PASSWORD") or None,
        admin_name=os.getenv("ADMIN_NAME", "Admin"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        allow_acting_header=os.getenv("ALLOW_ACTING_USER_HEADER", "").lower() in ("1", "true", "yes"),
    )


state = load_settings()


def get_settings() -> Settings:
    return state


def override(**values) -> Settings:
    global state
    state = state._replace(**values)
    return state
