"""
auth/models.py -- Domain dataclass for accounts.

Pattern: Data class (pure data container, zero logic). The store maps
documents to and from it; the service does the work.

Layer rule: no imports from api/, core/, or engagement/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Account:
    """A registered identity.

    hashed_password is a bcrypt hash. It never leaves the auth layer: the API
    builds its profile view from the other fields only.

    id is None before the record is written to the store.
    """

    login: str
    hashed_password: str
    first_name: str | None = None
    last_name: str | None = None
    id: str | None = None
    created_at: str | None = None  # ISO 8601, set by store on insert
    updated_at: str | None = None
