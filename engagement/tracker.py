"""
engagement/tracker.py -- Vote tally and visitor tracking.

EngagementTracker owns the in-process working copies of the vote tally and
the live visitor set. It is created once per app (lifespan) and stored on
app.state; there are no module-level globals.

State and persistence:
  hydrate() loads both documents once at startup (creating a zero tally if
  none exists). Every mutation then rewrites the affected document in full.
  The working copy is a cache of the store, never a second source of truth:
  if a vote cannot be flushed, the working copy is rolled back.

Concurrency:
  One threading.Lock guards every read-modify-write of the tally and the
  live set, including the store writes and the periodic sweep. FastAPI runs
  the sync route handlers in a thread pool, so without the lock two votes
  could interleave and one increment would be lost.

Visitors:
  There is a single visitor identity: the 24-hour Visit Record in the
  "visits" collection. /results and /api/visitors/track both record through
  _record_visit(). The live set is only a short-window presence indicator
  for the realtime count.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from core.documents import LIVE_VISITORS, TALLY, USERS, VISITS, DocumentStore
from core.errors import DuplicateVoteError, PersistenceError, ValidationError
from engagement.models import VOTE_CHOICES, Results, Tally, VisitCounts
from engagement.snapshot import write_snapshot

logger = logging.getLogger("pulsecount.engagement")

TALLY_ID = "global"
LIVE_ID = "live"

RESULTS_MESSAGE = "Thank you for checking the results!"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    # Fixed precision keeps string order identical to time order in the store.
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


class EngagementTracker:
    """Owner of the tally and live visitor set.

    Args:
        documents:               Shared document store.
        visit_window_seconds:    One Visit Record per origin per this window.
        liveness_window_seconds: Live entries older than this are swept.
        snapshot_path:           Optional JSON snapshot file ("" disables it).
        clock:                   Returns the current time as an aware datetime.
    """

    def __init__(
        self,
        documents: DocumentStore,
        visit_window_seconds: int = 24 * 3600,
        liveness_window_seconds: int = 5 * 60,
        snapshot_path: str = "",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.documents = documents
        self.visit_window = timedelta(seconds=visit_window_seconds)
        self.liveness_window = timedelta(seconds=liveness_window_seconds)
        self.snapshot_path = snapshot_path
        self._clock = clock
        self._lock = threading.Lock()
        self._tally = Tally()
        self._live: dict[str, datetime] = {}

    @classmethod
    def from_settings(cls, documents: DocumentStore, settings) -> EngagementTracker:
        return cls(
            documents,
            visit_window_seconds=settings.visit_window_seconds,
            liveness_window_seconds=settings.liveness_window_seconds,
            snapshot_path=settings.tally_snapshot_path,
        )

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def hydrate(self, create_missing: bool = True) -> None:
        """Load the tally and live set from the store.

        A missing tally is saved as zeros unless create_missing is False, in
        which case hydrate only reads.

        Raises PersistenceError if the store is unreachable: starting with a
        blank tally would overwrite the real one on the first vote.
        """
        with self._lock:
            document = self.documents.find_one(TALLY, {"_id": TALLY_ID})
            if document is None:
                self._tally = Tally()
                if create_missing:
                    self._flush_tally()
            else:
                self._tally = _document_to_tally(document)

            document = self.documents.find_one(LIVE_VISITORS, {"_id": LIVE_ID})
            self._live = _document_to_live(document) if document is not None else {}

        logger.info(
            "Engagement state loaded (support=%d oppose=%d live=%d)",
            self._tally.support,
            self._tally.oppose,
            len(self._live),
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def track_visit(self, origin: str, user_agent: str | None = None) -> VisitCounts:
        """Record a visit and return the current counts.

        Never raises for store failures: they are logged and the counts fall
        back to zero where they could not be read.
        """
        with self._lock:
            self._record_visit(origin, user_agent)
            return self._counts()

    def cast_vote(self, origin: str, choice: str) -> bool:
        """Accept one vote per origin, forever.

        Raises ValidationError for an unknown choice, DuplicateVoteError if
        the origin already voted, PersistenceError if the tally could not be
        saved (the vote is then not counted).
        """
        if choice not in VOTE_CHOICES:
            raise ValidationError("Invalid vote")

        with self._lock:
            if origin in self._tally.voters:
                raise DuplicateVoteError("You already voted.")

            previous = replace(self._tally, voters=set(self._tally.voters))
            setattr(self._tally, choice, getattr(self._tally, choice) + 1)
            self._tally.voters.add(origin)
            try:
                self._flush_tally()
            except PersistenceError:
                self._tally = previous
                raise

        logger.info("Vote accepted (%s)", choice)
        return True

    def get_results(self, origin: str) -> Results:
        """Record the caller as a visitor and return the tally."""
        with self._lock:
            self._record_visit(origin, None)
            return Results(
                support=self._tally.support,
                oppose=self._tally.oppose,
                visitors=self._count_or_zero(VISITS),
                message=RESULTS_MESSAGE,
            )

    def counts(self) -> VisitCounts:
        """Read-only counts. Stale live entries are excluded, not purged."""
        with self._lock:
            return self._counts()

    def sweep_live_visitors(self) -> int:
        """Purge live entries older than the liveness window. Returns how many."""
        with self._lock:
            return self._sweep(self._clock())

    def tally(self) -> Tally:
        """Return a copy of the working tally."""
        with self._lock:
            return replace(self._tally, voters=set(self._tally.voters))

    def live_visitors(self) -> dict[str, datetime]:
        with self._lock:
            return dict(self._live)

    # ------------------------------------------------------------------
    # Internals -- callers hold self._lock
    # ------------------------------------------------------------------

    def _record_visit(self, origin: str, user_agent: str | None) -> None:
        now = self._clock()
        self._sweep(now)

        try:
            cutoff = _iso(now - self.visit_window)
            if self.documents.find_one(VISITS, {"ip": origin, "timestamp": {"$gte": cutoff}}) is None:
                self.documents.insert(VISITS, {"ip": origin, "user_agent": user_agent, "timestamp": _iso(now)})
        except PersistenceError:
            logger.warning("Visit record not stored; analytics will undercount")

        if origin not in self._live:
            self._live[origin] = now
            try:
                self._flush_live()
            except PersistenceError:
                logger.warning("Live visitor set not persisted")

        self._tally.visit_count += 1
        try:
            self._flush_tally()
        except PersistenceError:
            logger.warning("Visit counter not persisted")

    def _sweep(self, now: datetime) -> int:
        stale = [ip for ip, seen in self._live.items() if now - seen > self.liveness_window]
        if not stale:
            return 0
        for ip in stale:
            del self._live[ip]
        try:
            self._flush_live()
        except PersistenceError:
            logger.warning("Pruned live visitor set not persisted")
        logger.debug("Swept %d stale live visitors", len(stale))
        return len(stale)

    def _counts(self) -> VisitCounts:
        now = self._clock()
        realtime = sum(1 for seen in self._live.values() if now - seen <= self.liveness_window)
        return VisitCounts(
            users=self._count_or_zero(USERS),
            visitors=self._count_or_zero(VISITS),
            realtime_visitors=realtime,
            total_visits=self._tally.visit_count,
        )

    def _count_or_zero(self, collection: str) -> int:
        try:
            return self.documents.count(collection)
        except PersistenceError:
            return 0

    def _flush_tally(self) -> None:
        self.documents.update_or_insert(TALLY, {"_id": TALLY_ID}, _tally_to_document(self._tally))
        self._write_snapshot()

    def _flush_live(self) -> None:
        self.documents.update_or_insert(LIVE_VISITORS, {"_id": LIVE_ID}, _live_to_document(self._live))
        self._write_snapshot()

    def _write_snapshot(self) -> None:
        if not self.snapshot_path:
            return
        try:
            write_snapshot(self.snapshot_path, self._tally, self._live)
        except OSError as exc:
            logger.warning("Could not write tally snapshot to %s: %s", self.snapshot_path, exc)


# ---------------------------------------------------------------------------
# Document mappers
# ---------------------------------------------------------------------------


def _tally_to_document(tally: Tally) -> dict:
    return {
        "support": tally.support,
        "oppose": tally.oppose,
        "voters": sorted(tally.voters),
        "visitCount": tally.visit_count,
    }


def _document_to_tally(document: dict) -> Tally:
    return Tally(
        support=int(document.get("support", 0)),
        oppose=int(document.get("oppose", 0)),
        voters=set(document.get("voters", [])),
        visit_count=int(document.get("visitCount", 0)),
    )


def _live_to_document(live: dict[str, datetime]) -> dict:
    return {"visitors": [{"ip": ip, "timestamp": _iso(seen)} for ip, seen in live.items()]}


def _document_to_live(document: dict) -> dict[str, datetime]:
    return {entry["ip"]: datetime.fromisoformat(entry["timestamp"]) for entry in document.get("visitors", [])}
