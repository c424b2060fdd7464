"""
auth/service.py -- Registration and login.

AuthService is the only entry point the API uses for accounts. It validates
input, enforces login uniqueness, hashes passwords and issues tokens. All
failures are raised as core.errors types; the API layer maps them to status
codes.

Layer rule: no imports from api/ or engagement/.
"""

from __future__ import annotations

import logging
import threading

from auth.models import Account
from auth.store import AccountStore
from auth.tokens import MAX_PASSWORD_BYTES, authenticate, create_access_token, hash_password
from core.errors import AuthError, ConflictError, ValidationError

logger = logging.getLogger("pulsecount.auth")

MIN_LOGIN_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


class AuthService:
    def __init__(self, accounts: AccountStore) -> None:
        self.accounts = accounts
        # Serialises the uniqueness re-check with the insert.
        self._register_lock = threading.Lock()

    def register(
        self,
        login: str | None,
        password: str | None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> Account:
        """Create an account and return it (with its new id).

        Raises ValidationError for missing or short input and ConflictError
        when the login is taken.
        """
        login = (login or "").strip()
        if not login or not password:
            raise ValidationError("Login and password are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        if len(login) < MIN_LOGIN_LENGTH:
            raise ValidationError(f"Login must be at least {MIN_LOGIN_LENGTH} characters")

        if self.accounts.get_by_login(login) is not None:
            raise ConflictError("Login already exists")

        # Hash outside the lock: bcrypt is deliberately slow.
        account = Account(
            login=login,
            hashed_password=hash_password(password),
            first_name=first_name,
            last_name=last_name,
        )
        with self._register_lock:
            if self.accounts.get_by_login(login) is not None:
                raise ConflictError("Login already exists")
            account.id = self.accounts.create(account)

        logger.info("Registered account %s", account.id)
        return account

    def login(self, login: str | None, password: str | None) -> tuple[str, Account]:
        """Verify credentials and return (token, account).

        Unknown login and wrong password raise the same AuthError.
        """
        login = (login or "").strip()
        if not login or not password:
            raise ValidationError("Login and password are required")

        account = authenticate(self.accounts, login, password)
        if account is None:
            raise AuthError("Invalid login or password")
        return create_access_token(account.id), account
