"""
Consumer-side report cache with stale-while-revalidate.

A ReportConsumer holds one cache slot for one user. A load:

1. resolves the user identity (bounded polling, see identity.py); without a
   real identity it stops at an explicit identity_timeout state and never
   fetches;
2. on a cache hit for the exact current period key, shows the cached report
   at once and refreshes it in the background;
3. on a miss or a period-key mismatch, shows loading, fetches, and only then
   fills the slot under the new key.

Concurrent load() calls share one in-flight fetch. A fetched report replaces
the displayed one only when its id or sent_at differ and it is not older, so
equal refreshes cause no re-render and late stale responses cannot clobber
fresher data. An unexpected fetch failure ends a foreground load in the error
state instead of leaving it loading. After deactivate() no result is applied.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from quotedigest.client.identity import IdentityResolver, ResolvedIdentity
from quotedigest.core.exceptions import IdentityTimeout, ReportNotFound, StorageUnavailable
from quotedigest.database import SessionLocal
from quotedigest.schemas.report import report_to_response
from quotedigest.services.report_service import PeriodReportService, report_service
from quotedigest.utils.periods import PERIOD_WEEK, Period, current_period_key

logger = logging.getLogger(__name__)

STATUS_IDLE = "idle"
STATUS_LOADING = "loading"
STATUS_READY = "ready"
STATUS_NOT_GENERATED = "not_generated"
STATUS_UNAVAILABLE = "unavailable"
STATUS_IDENTITY_TIMEOUT = "identity_timeout"
STATUS_ERROR = "error"

# User-facing messages: "not generated yet", "temporarily unavailable" and
# "could not identify you" must read differently
MESSAGES = {
    STATUS_NOT_GENERATED: "Your report for this period is not ready yet.",
    STATUS_UNAVAILABLE: "Reports are temporarily unavailable. Please try again shortly.",
    STATUS_IDENTITY_TIMEOUT: "We could not identify your account. Reopen the app to see your reports.",
    STATUS_ERROR: "Something went wrong while loading your report.",
}
STALE_MESSAGE = "Showing saved data; reports are temporarily unavailable."

Report = Dict[str, Any]


@dataclass(frozen=True)
class CacheEntry:
    user_id: str
    period_key: str
    report: Report
    fetched_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "period_key": self.period_key,
            "report": self.report,
            "fetched_at": self.fetched_at,
        }


@dataclass(frozen=True)
class ReportViewState:
    status: str = STATUS_IDLE
    report: Optional[Report] = None
    period_key: Optional[str] = None
    stale: bool = False
    message: Optional[str] = None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def should_replace(current: Optional[Report], incoming: Optional[Report]) -> bool:
    """
    Decide whether a fetched report replaces the displayed one.

    Same id and sent_at: keep the current one. Otherwise replace, unless the
    incoming report is older than the one already shown.
    """
    if incoming is None:
        return False
    if current is None:
        return True
    if current.get("id") == incoming.get("id") and current.get("sent_at") == incoming.get("sent_at"):
        return False
    current_ts = _parse_timestamp(current.get("sent_at"))
    incoming_ts = _parse_timestamp(incoming.get("sent_at"))
    if current_ts and incoming_ts:
        try:
            return incoming_ts >= current_ts
        except TypeError:
            # naive vs aware timestamps
            return True
    return True


class ReportCacheSlot:
    """Single-entry cache for one user, optionally persisted to a JSON file."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else None
        self._entry: Optional[CacheEntry] = None
        if self.path and self.path.exists():
            self._entry = self._read_file()

    def _read_file(self) -> Optional[CacheEntry]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return CacheEntry(
                user_id=str(data["user_id"]),
                period_key=data["period_key"],
                report=data["report"],
                fetched_at=float(data.get("fetched_at") or 0),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable report cache {self.path}: {e}")
            return None

    def get(self, user_id: str, period_key: str) -> Optional[CacheEntry]:
        """The cached entry only if it belongs to this user and this exact period key."""
        entry = self._entry
        if entry is None or entry.user_id != str(user_id) or entry.period_key != period_key:
            return None
        return entry

    def put(self, entry: CacheEntry) -> None:
        self._entry = entry
        if self.path:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text(json.dumps(entry.to_dict()), encoding="utf-8")
            except OSError as e:
                logger.warning(f"Could not persist report cache {self.path}: {e}")

    def invalidate(self) -> None:
        self._entry = None
        if self.path and self.path.exists():
            try:
                self.path.unlink()
            except OSError as e:
                logger.warning(f"Could not remove report cache {self.path}: {e}")


class ServiceReportFetcher:
    """Async adapter that reads reports through the synchronous report service."""

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        service: PeriodReportService = report_service,
        generate: bool = False,
    ):
        self.session_factory = session_factory
        self.service = service
        self.generate = generate

    def _fetch_sync(self, user_id: str, period_key: str) -> Report:
        period = Period.parse(period_key)
        db = self.session_factory()
        try:
            if self.generate:
                report = self.service.generate_or_fetch(db, str(user_id), period)
            else:
                report = self.service.get_report(db, str(user_id), period)
            delta = self.service.compute_report_delta(db, report)
            return report_to_response(report, delta).model_dump(mode="json")
        finally:
            db.close()

    async def fetch(self, user_id: str, period_key: str) -> Report:
        return await asyncio.to_thread(self._fetch_sync, user_id, period_key)


class ReportConsumer:
    def __init__(
        self,
        fetcher,
        identity_resolver: IdentityResolver,
        period_key_fn: Optional[Callable[[], str]] = None,
        cache_slot: Optional[ReportCacheSlot] = None,
        on_state: Optional[Callable[[ReportViewState], None]] = None,
    ):
        self.fetcher = fetcher
        self.identity_resolver = identity_resolver
        self.period_key_fn = period_key_fn or (lambda: current_period_key(PERIOD_WEEK))
        self.cache_slot = cache_slot or ReportCacheSlot()
        self.on_state = on_state
        self.state = ReportViewState()
        self.fetch_count = 0
        self._active = True
        self._inflight: Optional[asyncio.Task] = None
        self._refresh: Optional[asyncio.Task] = None
        self._identity: Optional[ResolvedIdentity] = None

    @property
    def active(self) -> bool:
        return self._active

    def deactivate(self) -> None:
        """Stop applying results; fetches already in flight finish but are discarded."""
        self._active = False

    def _apply(self, state: ReportViewState) -> ReportViewState:
        if not self._active:
            return self.state
        if state == self.state:
            return self.state
        self.state = state
        if self.on_state:
            self.on_state(state)
        return state

    async def load(self) -> ReportViewState:
        """Load the report for the current period; concurrent calls share one fetch."""
        if self._inflight is not None and not self._inflight.done():
            return await asyncio.shield(self._inflight)
        self._inflight = asyncio.ensure_future(self._load())
        return await asyncio.shield(self._inflight)

    async def wait_for_refresh(self) -> None:
        if self._refresh is not None:
            await asyncio.shield(self._refresh)

    async def _resolve_identity(self) -> Optional[ResolvedIdentity]:
        if self._identity is None:
            try:
                self._identity = await self.identity_resolver.resolve()
            except IdentityTimeout as e:
                logger.warning(f"Report load skipped: {e}")
                return None
        return self._identity

    async def _load(self) -> ReportViewState:
        identity = await self._resolve_identity()
        if identity is None:
            return self._apply(ReportViewState(
                status=STATUS_IDENTITY_TIMEOUT,
                message=MESSAGES[STATUS_IDENTITY_TIMEOUT],
            ))

        user_id = str(identity.user_id)
        period_key = self.period_key_fn()
        cached = self.cache_slot.get(user_id, period_key)
        if cached is not None:
            current = self.state
            if current.period_key == period_key and current.report == cached.report:
                # Keep the stale marker until a refresh confirms the data
                self._apply(replace(current, status=STATUS_READY))
            else:
                self._apply(ReportViewState(status=STATUS_READY, report=cached.report, period_key=period_key))
            if self._refresh is None or self._refresh.done():
                self._refresh = asyncio.ensure_future(self._fetch(user_id, period_key, background=True))
            return self.state

        self._apply(ReportViewState(status=STATUS_LOADING, period_key=period_key))
        return await self._fetch(user_id, period_key, background=False)

    async def _fetch(self, user_id: str, period_key: str, background: bool) -> ReportViewState:
        self.fetch_count += 1
        try:
            incoming = await self.fetcher.fetch(user_id, period_key)
        except ReportNotFound:
            if background:
                logger.info(f"Background refresh: report {period_key} not found, keeping cached copy")
                return self.state
            return self._apply(ReportViewState(
                status=STATUS_NOT_GENERATED,
                period_key=period_key,
                message=MESSAGES[STATUS_NOT_GENERATED],
            ))
        except StorageUnavailable as e:
            logger.warning(f"Report fetch failed for {period_key}: {e}")
            return self._apply_unavailable(period_key)
        except Exception as e:
            logger.exception(f"Report fetch failed unexpectedly for {period_key}: {e}")
            if background:
                return self.state
            return self._apply(ReportViewState(
                status=STATUS_ERROR,
                period_key=period_key,
                message=MESSAGES[STATUS_ERROR],
            ))

        if not self._active:
            logger.debug(f"Consumer inactive, discarding report {period_key}")
            return self.state
        if self.period_key_fn() != period_key:
            logger.debug(f"Period moved on, discarding report {period_key}")
            return self.state

        shown = self.state.report if self.state.period_key == period_key else None
        if shown is not None and not should_replace(shown, incoming):
            if self.state.stale:
                return self._apply(replace(self.state, stale=False, message=None))
            return self.state

        self.cache_slot.put(CacheEntry(user_id=user_id, period_key=period_key, report=incoming, fetched_at=time.time()))
        return self._apply(ReportViewState(status=STATUS_READY, report=incoming, period_key=period_key))

    def _apply_unavailable(self, period_key: str) -> ReportViewState:
        if self.state.report is not None and self.state.period_key == period_key:
            return self._apply(replace(self.state, status=STATUS_READY, stale=True, message=STALE_MESSAGE))
        return self._apply(ReportViewState(
            status=STATUS_UNAVAILABLE,
            period_key=period_key,
            message=MESSAGES[STATUS_UNAVAILABLE],
        ))
