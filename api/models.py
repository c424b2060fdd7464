"""
API request and response models for PulseCount REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
engagement/models.py, which own the internal domain representation. Route
handlers map between the two.

The wire format is camelCase (firstName, realtimeVisitors); Python code uses
snake_case field names with aliases. populate_by_name lets handlers build
models with either form, and FastAPI serialises responses by alias.

Request fields are Optional on purpose: a missing login or password is a
400 from the service ("Login and password are required"), not a schema error.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Account
from engagement.models import VisitCounts

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /register."""

    model_config = ConfigDict(populate_by_name=True)

    first_name: Optional[str] = Field(default=None, alias="firstName", max_length=100)
    last_name: Optional[str] = Field(default=None, alias="lastName", max_length=100)
    login: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /login."""

    login: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)


class VoteRequest(BaseModel):
    vote: Optional[str] = None


class TrackVisitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_agent: Optional[str] = Field(default=None, alias="userAgent", max_length=512)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    message: str


class AccountProfile(BaseModel):
    """Public view of an account. Deliberately has no password field."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    login: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountProfile":
        return cls(
            id=account.id,
            first_name=account.first_name,
            last_name=account.last_name,
            login=account.login,
        )


class LoginResponse(BaseModel):
    token: str
    user: AccountProfile


class VoteResponse(BaseModel):
    success: bool


class VoteCounts(BaseModel):
    support: int
    oppose: int


class ResultsResponse(BaseModel):
    votes: VoteCounts
    visitors: int
    message: str


class VisitorCountsResponse(BaseModel):
    """Response for POST /api/visitors/track and GET /api/users/count.

    total_visits is only filled by /api/users/count.
    """

    model_config = ConfigDict(populate_by_name=True)

    users: int
    visitors: int
    realtime_visitors: int = Field(alias="realtimeVisitors")
    total_visits: Optional[int] = Field(default=None, alias="totalVisits")

    @classmethod
    def from_counts(cls, counts: VisitCounts, include_total: bool = False) -> "VisitorCountsResponse":
        return cls(
            users=counts.users,
            visitors=counts.visitors,
            realtime_visitors=counts.realtime_visitors,
            total_visits=counts.total_visits if include_total else None,
        )


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str]


class ErrorResponse(BaseModel):
    """Uniform error envelope. `error` is the human-readable message."""

    error: str
    code: str
