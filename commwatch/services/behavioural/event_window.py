"""
Event Window Reader
--------------------
Loads the bounded snapshot one detection run works on:

  events        - CommunicationEvents received in [now - window_days, now],
                  newest first, capped at max_events
  trust_records - every ActorTrustScore row of the tenant

Rows are copied into frozen EventRecord / TrustRecord snapshots so detectors
never touch the session. Stored timestamps are naive UTC; snapshots carry
timezone-aware UTC datetimes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.exc import SQLAlchemyError

from commwatch.services.shared.config import DetectionConfig
from commwatch.services.shared.errors import UpstreamReadError
from commwatch.services.shared.models import ActorTrustScore, CommunicationEvent

logger = structlog.get_logger()

BODY_EXCERPT_CHARS = 200
UNKNOWN_SENDER = "unknown"


@dataclass(frozen=True)
class EventRecord:
    id:          str
    sender:      str
    received_at: datetime
    recipient:   Optional[str]   = None
    subject:     Optional[str]   = None
    sentiment:   Optional[float] = None
    body:        Optional[str]   = None
    thread_id:   Optional[str]   = None


@dataclass(frozen=True)
class TrustRecord:
    actor_name:            str
    trust_score:           Optional[float]
    contradictions:        int            = 0
    broken_promises:       int            = 0
    hidden_communications: int            = 0
    actor_email:           Optional[str]  = None
    actor_institution:     Optional[str]  = None


@dataclass(frozen=True)
class EventWindow:
    tenant_id:           str
    events:              tuple[EventRecord, ...]
    trust_records:       tuple[TrustRecord, ...]
    window_start:        datetime
    recent_window_start: datetime
    now:                 datetime

    @property
    def recent_events(self) -> list[EventRecord]:
        return [e for e in self.events if e.received_at >= self.recent_window_start]


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def normalize_sender(sender: Optional[str]) -> str:
    return (sender or "").strip().lower() or UNKNOWN_SENDER


def local_hour_and_day(ts: datetime, tz_name: str = "UTC") -> tuple[int, int]:
    """Hour 0-23 and day-of-week 0-6 (0 = Sunday) of ts in the given zone."""
    local = as_utc(ts).astimezone(ZoneInfo(tz_name))
    return local.hour, local.isoweekday() % 7


def event_detail(event: EventRecord) -> dict:
    """Short, JSON-safe summary of an event for pattern_data and enrichment prompts."""
    body = " ".join((event.body or "").split())
    excerpt = body[:BODY_EXCERPT_CHARS] + ("..." if len(body) > BODY_EXCERPT_CHARS else "")
    return {
        "id":           event.id,
        "sender":       event.sender,
        "subject":      event.subject or "(no subject)",
        "date":         event.received_at.isoformat(),
        "body_excerpt": excerpt,
    }


def _to_event_record(row: CommunicationEvent) -> EventRecord:
    return EventRecord(
        id=str(row.id),
        sender=normalize_sender(row.sender),
        received_at=as_utc(row.received_at),
        recipient=row.recipient,
        subject=row.subject,
        sentiment=row.sentiment,
        body=row.body,
        thread_id=row.thread_id,
    )


def _to_trust_record(row: ActorTrustScore) -> TrustRecord:
    return TrustRecord(
        actor_name=row.actor_name,
        trust_score=row.trust_score,
        contradictions=row.contradictions_count or 0,
        broken_promises=row.promises_broken_count or 0,
        hidden_communications=row.hidden_communications_count or 0,
        actor_email=row.actor_email,
        actor_institution=row.actor_institution,
    )


def fetch_events(
    tenant_id: str,
    db,
    config: DetectionConfig,
    now: datetime,
    capped: bool = True,
) -> list[EventRecord]:
    """
    Newest-first events of the historical window.
    Detection reads are capped at config.max_events; baseline recompute passes
    capped=False and reads the whole window.
    """
    window_start = now - timedelta(days=config.window_days)
    try:
        q = (
            db.query(CommunicationEvent)
              .filter(
                  CommunicationEvent.tenant_id   == tenant_id,
                  CommunicationEvent.received_at >= window_start,
                  CommunicationEvent.received_at <= now,
              )
              .order_by(CommunicationEvent.received_at.desc(), CommunicationEvent.id.desc())
        )
        if capped:
            q = q.limit(config.max_events)
        rows = q.all()
    except SQLAlchemyError as exc:
        logger.error("event_read_failed", tenant_id=tenant_id, error=str(exc))
        raise UpstreamReadError(f"could not read communication events: {exc}") from exc
    return [_to_event_record(r) for r in rows]


def fetch_trust_records(tenant_id: str, db) -> list[TrustRecord]:
    try:
        rows = (
            db.query(ActorTrustScore)
              .filter(ActorTrustScore.tenant_id == tenant_id)
              .order_by(ActorTrustScore.id.asc())
              .all()
        )
    except SQLAlchemyError as exc:
        logger.error("trust_read_failed", tenant_id=tenant_id, error=str(exc))
        raise UpstreamReadError(f"could not read actor trust scores: {exc}") from exc
    return [_to_trust_record(r) for r in rows]


def read_event_window(
    tenant_id: str,
    db,
    config: DetectionConfig,
    now: Optional[datetime] = None,
) -> EventWindow:
    """
    Read the snapshot for one detection run.
    Raises UpstreamReadError if either source cannot be read; no partial windows.
    """
    now = as_utc(now) if now else datetime.now(timezone.utc)
    events = fetch_events(tenant_id, db, config, now)
    trust = fetch_trust_records(tenant_id, db)
    return EventWindow(
        tenant_id=tenant_id,
        events=tuple(events),
        trust_records=tuple(trust),
        window_start=now - timedelta(days=config.window_days),
        recent_window_start=now - timedelta(days=config.recent_days),
        now=now,
    )
