"""
api/routes/engagement.py -- Voting and visitor counting endpoints.

Routes:
  POST /vote                -- one vote per origin; 200 {success}
  GET  /results             -- records a visit; 200 {votes, visitors, message}
  POST /api/visitors/track  -- records a visit; 200 {users, visitors, realtimeVisitors}
  GET  /api/users/count     -- counts only; adds totalVisits

All routes are public. The origin address (see api/origin.py) is the only
identity used for dedup.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request

from api.models import (
    ResultsResponse,
    TrackVisitRequest,
    VisitorCountsResponse,
    VoteCounts,
    VoteRequest,
    VoteResponse,
)
from api.origin import get_origin_address
from engagement.tracker import EngagementTracker

router = APIRouter()


@router.post("/vote", response_model=VoteResponse)
def vote(request: Request, body: VoteRequest) -> VoteResponse:
    tracker: EngagementTracker = request.app.state.tracker
    accepted = tracker.cast_vote(get_origin_address(request), body.vote)
    return VoteResponse(success=accepted)


@router.get("/results", response_model=ResultsResponse)
def results(request: Request) -> ResultsResponse:
    tracker: EngagementTracker = request.app.state.tracker
    outcome = tracker.get_results(get_origin_address(request))
    return ResultsResponse(
        votes=VoteCounts(support=outcome.support, oppose=outcome.oppose),
        visitors=outcome.visitors,
        message=outcome.message,
    )


@router.post("/api/visitors/track", response_model=VisitorCountsResponse, response_model_exclude_none=True)
def track_visitor(request: Request, body: Optional[TrackVisitRequest] = None) -> VisitorCountsResponse:
    """Record the caller as a visitor. The body is optional."""
    tracker: EngagementTracker = request.app.state.tracker
    user_agent = body.user_agent if body is not None else None
    counts = tracker.track_visit(get_origin_address(request), user_agent or request.headers.get("User-Agent"))
    return VisitorCountsResponse.from_counts(counts)


@router.get("/api/users/count", response_model=VisitorCountsResponse)
def user_count(request: Request) -> VisitorCountsResponse:
    tracker: EngagementTracker = request.app.state.tracker
    return VisitorCountsResponse.from_counts(tracker.counts(), include_total=True)
