"""
auth/store.py -- Account repository over the shared document store.

Pattern: Repository + Data Mapper (same split as engagement/tracker.py uses
for its documents). AccountStore is the repository; _document_to_account is
the mapper. Service code never touches document dicts directly.

Document shape (collection "users"):
    {"_id", "login", "hashed_password", "first_name", "last_name",
     "created_at", "updated_at"}

Layer rule: no imports from api/ or engagement/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from auth.models import Account
from core.documents import USERS, DocumentStore


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AccountStore:
    """Repository for Account entities.

    Usage:
        accounts = AccountStore(DocumentStore())
        account_id = accounts.create(Account(login="alice", hashed_password=hash_password("secret1")))
        account = accounts.get_by_login("alice")
    """

    def __init__(self, documents: DocumentStore) -> None:
        self.documents = documents

    def create(self, account: Account) -> str:
        """Insert a new account and return its assigned id.

        Uniqueness of login is the caller's responsibility (see
        AuthService.register); the document store has no unique index on it.
        """
        now = _now_iso()
        return self.documents.insert(
            USERS,
            {
                "login": account.login,
                "hashed_password": account.hashed_password,
                "first_name": account.first_name,
                "last_name": account.last_name,
                "created_at": now,
                "updated_at": now,
            },
        )

    def get_by_login(self, login: str) -> Account | None:
        """Look up an account by exact login (case-sensitive). Returns None if not found."""
        document = self.documents.find_one(USERS, {"login": login})
        return _document_to_account(document) if document is not None else None


def _document_to_account(document: dict) -> Account:
    return Account(
        id=document["_id"],
        login=document["login"],
        hashed_password=document["hashed_password"],
        first_name=document.get("first_name"),
        last_name=document.get("last_name"),
        created_at=document.get("created_at"),
        updated_at=document.get("updated_at"),
    )
