import hashlib
import hmac
import logging
import secrets
import sqlite3
from dataclasses import dataclass
from functools import lru_cache
from time import sleep
from typing import Optional

from fastapi import Request

from config import AUTH_COOKIE_NAME, Settings
from db import get_db
from validation import ValidationError, validate_credentials, validate_id

logger = logging.getLogger(__name__)

_PBKDF2_ITERATIONS = 480_000


class AuthenticationError(Exception):
    """Bad credentials or an invalid, expired or missing token."""

    def __init__(self, message: str = "Invalid credentials"):
        self.message = message
        super().__init__(message)


class AuthorityUnavailable(Exception):
    """The store backing the authority could not be read."""


@dataclass(frozen=True)
class Principal:
    username: str
    id: Optional[int] = None
    created_at: Optional[str] = None
    last_login: Optional[str] = None


def _hash_password(plaintext: str) -> str:
    salt = secrets.token_bytes(32)
    dk = hashlib.pbkdf2_hmac("sha256", plaintext.encode(), salt, _PBKDF2_ITERATIONS)
    return salt.hex() + ":" + dk.hex()


def _verify_password(plaintext: str, stored: str) -> bool:
    try:
        salt_hex, dk_hex = stored.split(":")
        dk = hashlib.pbkdf2_hmac("sha256", plaintext.encode(), bytes.fromhex(salt_hex), _PBKDF2_ITERATIONS)
        return hmac.compare_digest(dk, bytes.fromhex(dk_hex))
    except ValueError:
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return _hash_password(secrets.token_urlsafe(16))


# ---------------------------------------------------------------------------
# Authorities
# ---------------------------------------------------------------------------

class StaticAuthority:
    """A single principal defined by a configured username/password pair."""

    def __init__(self, username: str, password: str):
        self._username = username
        self._password = password

    def check_credentials(self, username: str, password: str) -> Optional[Principal]:
        if not self._username or not self._password:
            return None
        # Compare both fields so timing does not reveal which one differs
        user_ok = hmac.compare_digest(username.encode(), self._username.encode())
        pass_ok = hmac.compare_digest(password.encode(), self._password.encode())
        if user_ok and pass_ok:
            return Principal(username=self._username)
        return None

    def claim_for(self, principal: Principal) -> str:
        return f"{self._username}:{self._password}"

    def resolve_claim(self, claim: str) -> Optional[Principal]:
        if not self._username or not self._password:
            return None
        if hmac.compare_digest(claim.encode(), self.claim_for(Principal(self._username)).encode()):
            return Principal(username=self._username)
        return None

    def token_binding(self, principal: Principal) -> str:
        return ""

    def record_login(self, principal: Principal):
        pass


class UserStoreAuthority:
    """Principals persisted in the users table."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def _fetch_one(self, sql: str, params: tuple):
        try:
            with get_db(self.db_path) as conn:
                return conn.execute(sql, params).fetchone()
        except OverflowError:
            # Parameter outside SQLite INTEGER range: no row can match
            return None
        except sqlite3.Error as exc:
            raise AuthorityUnavailable(str(exc)) from exc

    @staticmethod
    def _principal(row) -> Principal:
        return Principal(
            username=row["username"],
            id=row["id"],
            created_at=row["created_at"],
            last_login=row["last_login"],
        )

    def check_credentials(self, username: str, password: str) -> Optional[Principal]:
        row = self._fetch_one("SELECT * FROM users WHERE username = ?", (username,))
        if not row:
            # Burn the same hashing time as a real check
            _verify_password(password, _dummy_hash())
            return None
        if not _verify_password(password, row["password_hash"]):
            return None
        return self._principal(row)

    def record_login(self, principal: Principal):
        try:
            with get_db(self.db_path) as conn:
                conn.execute(
                    "UPDATE users SET last_login = CURRENT_TIMESTAMP WHERE id = ?",
                    (principal.id,),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise AuthorityUnavailable(str(exc)) from exc

    def claim_for(self, principal: Principal) -> str:
        return f"{principal.id}:{principal.username}"

    def resolve_claim(self, claim: str) -> Optional[Principal]:
        user_id, sep, username = claim.partition(":")
        if not sep:
            return None
        try:
            user_id = validate_id(user_id, "user_id")
        except ValidationError:
            return None
        row = self._fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
        if not row or row["username"] != username:
            return None
        return self._principal(row)

    def token_binding(self, principal: Principal) -> str:
        row = self._fetch_one("SELECT password_hash FROM users WHERE id = ?", (principal.id,))
        if not row:
            raise AuthorityUnavailable(f"user {principal.id} vanished during verification")
        return row["password_hash"]

    def username_taken(self, username: str) -> bool:
        return self._fetch_one("SELECT 1 FROM users WHERE username = ?", (username,)) is not None

    def create_user(self, username: str, password: str) -> Principal:
        pw_hash = _hash_password(password)
        try:
            with get_db(self.db_path) as conn:
                cur = conn.execute(
                    "INSERT INTO users (username, password_hash) VALUES (?, ?)",
                    (username, pw_hash),
                )
                conn.commit()
                row = conn.execute("SELECT * FROM users WHERE id = ?", (cur.lastrowid,)).fetchone()
        except sqlite3.IntegrityError:
            raise ValidationError("username", "Username already taken")
        except sqlite3.Error as exc:
            raise AuthorityUnavailable(str(exc)) from exc
        return self._principal(row)


def build_authority(settings: Settings):
    if settings.is_multi_user:
        return UserStoreAuthority(settings.db_path)
    return StaticAuthority(settings.reference_username, settings.reference_password)


# ---------------------------------------------------------------------------
# Credential gate
# ---------------------------------------------------------------------------

def authenticate(username_raw, password_raw, authority, settings: Settings) -> Optional[Principal]:
    """Check a submitted username/password pair against the authority.

    Returns the Principal on success and None on failure. Every failure path
    sleeps ``settings.login_failure_delay`` first; malformed input re-raises
    the ValidationError after the delay.
    """
    try:
        username, password = validate_credentials(username_raw, password_raw, settings)
    except ValidationError:
        sleep(settings.login_failure_delay)
        raise
    try:
        principal = authority.check_credentials(username, password)
        if principal is not None:
            authority.record_login(principal)
    except AuthorityUnavailable:
        logger.error("Login for %r failed: authority unavailable", username, exc_info=True)
        principal = None
    if principal is None:
        logger.info("Failed login attempt for %r", username)
        sleep(settings.login_failure_delay)
        return None
    return principal


def _allow_all_logins(client_ip: str) -> bool:
    return True


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _is_login_allowed(request: Request) -> bool:
    """Consult the rate-limit hook installed on the app (allows all by default)."""
    guard = getattr(request.app.state, "login_guard", _allow_all_logins)
    return guard(_client_ip(request))


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

def _token_from_request(request: Request) -> str:
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(AUTH_COOKIE_NAME, "")


def _set_auth_cookie(response, token: str, settings: Settings):
    response.set_cookie(
        AUTH_COOKIE_NAME,
        token,
        max_age=settings.cookie_max_age,
        path="/",
        httponly=True,
        secure=True,
        samesite="strict",
    )
    return response


def _clear_auth_cookie(response):
    response.delete_cookie(AUTH_COOKIE_NAME, path="/", secure=True, httponly=True, samesite="strict")
    return response


def require_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise AuthenticationError()
    return principal
