import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from time import time

SECRET_KEY_PATH = Path(".app_secret_key")
AUTH_COOKIE_NAME = "auth_token"
MS_PER_DAY = 24 * 60 * 60 * 1000

AUTH_MODE_SINGLE = "single"
AUTH_MODE_MULTI = "multi"

PUBLIC_PATHS = {
    "/login",
    "/signup",
    "/api/login",
    "/api/token",
    "/api/logout",
    "/api/signup",
    "/api/health",
}


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, fixed at startup and passed explicitly."""

    auth_mode: str = AUTH_MODE_SINGLE
    reference_username: str = ""
    reference_password: str = ""
    db_path: str = "symptoms.db"
    secret_key: str = ""
    token_expiry_days: int = 7
    history_days: int = 14
    max_note_length: int = 1000
    max_symptom_name_length: int = 100
    max_credential_length: int = 100
    # UTF-8 bytes; keeps a token for the longest credentials within max_token_length
    max_credential_bytes: int = 140
    max_token_length: int = 500
    login_failure_delay: float = 0.1

    @property
    def token_expiry_ms(self) -> int:
        return self.token_expiry_days * MS_PER_DAY

    @property
    def cookie_max_age(self) -> int:
        return self.token_expiry_days * 24 * 60 * 60

    @property
    def is_multi_user(self) -> bool:
        return self.auth_mode == AUTH_MODE_MULTI


def now_ms() -> int:
    return int(time() * 1000)


def _load_secret_key() -> str:
    env_key = os.environ.get("APP_SECRET_KEY", "").strip()
    if env_key:
        return env_key
    if SECRET_KEY_PATH.exists():
        return SECRET_KEY_PATH.read_text(encoding="utf-8").strip()
    key = secrets.token_hex(32)
    SECRET_KEY_PATH.write_text(key, encoding="utf-8")
    return key


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def load_settings() -> Settings:
    """Build Settings from the environment."""
    auth_mode = os.environ.get("TRACKME_AUTH_MODE", AUTH_MODE_SINGLE).strip().lower()
    if auth_mode not in (AUTH_MODE_SINGLE, AUTH_MODE_MULTI):
        raise ValueError(f"TRACKME_AUTH_MODE must be 'single' or 'multi', got {auth_mode!r}")
    expiry_days = _env_int("TOKEN_EXPIRY_DAYS", 7)
    if expiry_days < 1:
        raise ValueError("TOKEN_EXPIRY_DAYS must be at least 1")
    reference_username = os.environ.get("TRACKME_USER", "")
    reference_password = os.environ.get("TRACKME_PASSWORD", "")
    for name, value in (("TRACKME_USER", reference_username), ("TRACKME_PASSWORD", reference_password)):
        if len(value.encode("utf-8")) > Settings.max_credential_bytes:
            raise ValueError(f"{name} must be at most {Settings.max_credential_bytes} bytes")
    return Settings(
        auth_mode=auth_mode,
        reference_username=reference_username,
        reference_password=reference_password,
        db_path=os.environ.get("DB_PATH", "symptoms.db"),
        secret_key=_load_secret_key(),
        token_expiry_days=expiry_days,
        login_failure_delay=_env_float("LOGIN_FAILURE_DELAY", 0.1),
    )
