"""
auth/tokens.py -- JWT and password hashing utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the account id as their only identity claim, plus an expiry (7 days
       by default). Nothing is stored server-side; the token is the session.
       Verification returns None on any failure -- the caller decides what
       that means.

  Passwords: bcrypt with a configurable work factor (BCRYPT_ROUNDS, default
       10). The _DUMMY_HASH constant enables timing equalization in
       authenticate() so response time does not reveal whether a login
       exists.

Layer rule: no imports from api/ or engagement/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AccountStore

logger = logging.getLogger("pulsecount.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# bcrypt rejects (5.x) or silently truncates (4.x) anything longer.
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash or over-long password.
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("pulsecount_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(account_id: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for the given account.

    Args:
        account_id:     The account's store id, carried as the "user_id" claim.
        expire_seconds: Token lifetime in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "user_id": account_id,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Expired, tampered and malformed tokens all come back as None.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "user_id" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate(store: AccountStore, login: str, password: str) -> Account | None:
    """Check a login/password pair with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown login: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the Account on success, None on any failure.
    """
    account = store.get_by_login(login)
    if account is None:
        # Equalize timing -- do NOT return early before running bcrypt.
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, account.hashed_password):
        return None
    return account
