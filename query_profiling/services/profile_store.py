"""
Thread-safe registry of in-progress query profiles keyed by request ID.
"""
import logging
import threading
from collections import OrderedDict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from ..models.query_profile import ParamValue, QueryProfile, QueryRecord, utcnow

logger = logging.getLogger(__name__)

# Recently finished request IDs remembered so late records are dropped
FINISHED_HISTORY_SIZE = 10000


class _ActiveProfile:
    """Mutable state of a profile that has not finished yet."""

    __slots__ = ("request_id", "start_time", "records")

    def __init__(self, request_id: str):
        self.request_id = request_id
        self.start_time: datetime = utcnow()
        self.records: List[QueryRecord] = []

    def to_profile(self, end_time: Optional[datetime] = None) -> QueryProfile:
        records = list(self.records)
        return QueryProfile(
            request_id=self.request_id,
            queries=records,
            query_count=len(records),
            total_duration=sum(r.duration for r in records),
            start_time=self.start_time,
            end_time=end_time,
        )


class ProfileStore:
    """
    Registry mapping active request IDs to their profiles.

    A single lock guards both the map and every append to a profile's
    record list, so concurrent writers to the same request are safe and
    snapshots never observe a partially appended record.

    Records that arrive after a request finished (background tasks, streamed
    response bodies) are dropped instead of reviving the profile.

    Usage:
        store = ProfileStore()
        store.start("req_1_abc")
        store.record("req_1_abc", "select 1", 3)
        profile = store.finish("req_1_abc")
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._profiles: Dict[str, _ActiveProfile] = {}
        self._finished: "OrderedDict[str, None]" = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._profiles)

    def __contains__(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._profiles

    def _get_or_create(self, request_id: str) -> Tuple[_ActiveProfile, bool]:
        # Caller must hold self._lock
        active = self._profiles.get(request_id)
        if active is not None:
            return active, False
        active = _ActiveProfile(request_id)
        self._profiles[request_id] = active
        return active, True

    def _remember_finished(self, request_id: str) -> None:
        # Caller must hold self._lock
        self._finished[request_id] = None
        while len(self._finished) > FINISHED_HISTORY_SIZE:
            self._finished.popitem(last=False)

    def start(self, request_id: str) -> bool:
        """
        Create an empty profile for a request.

        Calling this for a request that is already being profiled is a no-op.

        Returns:
            bool: True if a new profile was created
        """
        with self._lock:
            self._finished.pop(request_id, None)
            _, created = self._get_or_create(request_id)
        return created

    def get_or_create(self, request_id: str) -> QueryProfile:
        """Return a snapshot of the request's profile, starting it if needed."""
        with self._lock:
            self._finished.pop(request_id, None)
            active, _ = self._get_or_create(request_id)
            return active.to_profile()

    def record(
        self,
        request_id: str,
        query: str,
        duration: int,
        params: Optional[Iterable[ParamValue]] = None,
        stack_trace: Optional[str] = None,
    ) -> Optional[QueryRecord]:
        """
        Append a query to a request's profile, starting the profile if needed.

        The query text is stored as given; callers normalize it first.

        Returns:
            The stored record, or None if the request already finished
        """
        with self._lock:
            if request_id in self._finished:
                return None
            active, created = self._get_or_create(request_id)
            if created:
                logger.debug(f"Auto-started profile for request {request_id}")
            timestamp = utcnow()
            if active.records and timestamp < active.records[-1].timestamp:
                # Wall clock stepped backwards; keep timestamps ordered
                timestamp = active.records[-1].timestamp
            record = QueryRecord(
                query=query,
                duration=duration,
                params=list(params or ()),
                timestamp=timestamp,
                stack_trace=stack_trace,
            )
            active.records.append(record)
        return record

    def get(self, request_id: str) -> Optional[QueryProfile]:
        """Return a snapshot of an active profile, or None if it is unknown."""
        with self._lock:
            active = self._profiles.get(request_id)
            if active is None:
                return None
            return active.to_profile()

    def finish(self, request_id: str) -> Optional[QueryProfile]:
        """
        Remove a request's profile from the store and return it.

        Returns None when the request is unknown, which includes requests
        that already finished.
        """
        with self._lock:
            active = self._profiles.pop(request_id, None)
            if active is not None:
                self._remember_finished(request_id)
        if active is None:
            return None
        # Removed from the map, so no other writer can reach it anymore
        return active.to_profile(end_time=utcnow())

    def clear(self) -> int:
        """
        Drop every active profile.

        Returns:
            int: Number of profiles removed
        """
        with self._lock:
            count = len(self._profiles)
            self._profiles = {}
            self._finished.clear()
        return count

    def active_request_ids(self) -> List[str]:
        with self._lock:
            return list(self._profiles)

    def snapshot_all(self) -> List[QueryProfile]:
        """Return read-only copies of every active profile."""
        with self._lock:
            actives = [(a, list(a.records)) for a in self._profiles.values()]
        return [
            QueryProfile(
                request_id=active.request_id,
                queries=records,
                query_count=len(records),
                total_duration=sum(r.duration for r in records),
                start_time=active.start_time,
            )
            for active, records in actives
        ]
