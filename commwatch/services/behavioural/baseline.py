"""
Behavioral Baseline Computation
---------------------------------
Computes rolling statistical baselines for each correspondent ("entity") of a
tenant from the same window a detection run reads, and stores them in the
BehaviorBaseline table keyed by (tenant_id, entity_type, entity_id).

Metrics computed per sender:
  average_events_per_day - count / window_days
  typical_sentiment      - mean of the sentiment values present (0 when none)
  typical_hours          - set of hours-of-day observed (presence only)
  typical_days           - set of days-of-week observed (0 = Sunday)
  sample_size            - number of events used

Entities with fewer than MIN_SAMPLE_SIZE events get no baseline at all.
Detection runs read baselines as of the last recompute and never write them.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from commwatch.services.shared.config import DetectionConfig
from commwatch.services.shared.errors import UpstreamReadError
from commwatch.services.shared.models import BehaviorBaseline, ENTITY_TYPE_SENDER
from commwatch.services.behavioural.event_window import EventRecord, local_hour_and_day

logger = structlog.get_logger()

MIN_SAMPLE_SIZE = 3


@dataclass(frozen=True)
class BaselineSnapshot:
    entity_type:            str
    entity_id:              str
    average_events_per_day: float
    typical_sentiment:      float
    typical_hours:          frozenset[int]
    typical_days:           frozenset[int]
    sample_size:            int
    calculated_at:          Optional[datetime] = None


BaselineIndex = Mapping[tuple[str, str], BaselineSnapshot]


@dataclass(frozen=True)
class SenderStats:
    sender:       str
    count:        int
    sentiments:   tuple[float, ...]
    hours:        frozenset[int]
    days:         frozenset[int]


def _snapshot(row: BehaviorBaseline) -> BaselineSnapshot:
    return BaselineSnapshot(
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        average_events_per_day=row.average_events_per_day,
        typical_sentiment=row.typical_sentiment,
        typical_hours=frozenset(row.typical_hours or []),
        typical_days=frozenset(row.typical_days or []),
        sample_size=row.sample_size,
        calculated_at=row.calculated_at,
    )


def get_baseline(
    tenant_id: str,
    entity_type: str,
    entity_id: str,
    db,
) -> BehaviorBaseline | None:
    """Pure read. Absent means 'no expectation', never a zero baseline."""
    return (
        db.query(BehaviorBaseline)
          .filter_by(tenant_id=tenant_id, entity_type=entity_type, entity_id=entity_id)
          .first()
    )


def load_baselines(tenant_id: str, db) -> BaselineIndex:
    """Read-only index of every stored baseline of a tenant, for one detection run."""
    try:
        rows = db.query(BehaviorBaseline).filter(BehaviorBaseline.tenant_id == tenant_id).all()
    except SQLAlchemyError as exc:
        logger.error("baseline_read_failed", tenant_id=tenant_id, error=str(exc))
        raise UpstreamReadError(f"could not read behavior baselines: {exc}") from exc
    return MappingProxyType({(r.entity_type, r.entity_id): _snapshot(r) for r in rows})


def compute_sender_stats(
    events: Iterable[EventRecord],
    tz_name: str = "UTC",
) -> dict[str, SenderStats]:
    """Group events by sender, preserving first-appearance order."""
    counts:     dict[str, int]             = defaultdict(int)
    sentiments: dict[str, list[float]]     = defaultdict(list)
    hours:      dict[str, set[int]]        = defaultdict(set)
    days:       dict[str, set[int]]        = defaultdict(set)

    for ev in events:
        counts[ev.sender] += 1
        hour, day = local_hour_and_day(ev.received_at, tz_name)
        hours[ev.sender].add(hour)
        days[ev.sender].add(day)
        if ev.sentiment is not None:
            sentiments[ev.sender].append(float(ev.sentiment))

    return {
        sender: SenderStats(
            sender=sender,
            count=count,
            sentiments=tuple(sentiments[sender]),
            hours=frozenset(hours[sender]),
            days=frozenset(days[sender]),
        )
        for sender, count in counts.items()
    }


def _upsert_baseline(
    tenant_id: str,
    stats: SenderStats,
    window_days: int,
    db,
) -> BehaviorBaseline:
    """Create or overwrite the baseline row for one sender (not yet committed)."""
    existing = get_baseline(tenant_id, ENTITY_TYPE_SENDER, stats.sender, db)
    if existing:
        bl = existing
    else:
        bl = BehaviorBaseline(
            tenant_id=tenant_id,
            entity_type=ENTITY_TYPE_SENDER,
            entity_id=stats.sender,
        )
        db.add(bl)

    avg_sentiment = (
        sum(stats.sentiments) / len(stats.sentiments) if stats.sentiments else 0.0
    )

    bl.entity_label           = stats.sender
    bl.average_events_per_day = stats.count / window_days
    bl.typical_sentiment      = avg_sentiment
    bl.typical_hours          = sorted(stats.hours)
    bl.typical_days           = sorted(stats.days)
    bl.sample_size            = stats.count
    bl.calculated_at          = datetime.now(timezone.utc)
    return bl


def recompute_baselines(
    tenant_id: str,
    events: Iterable[EventRecord],
    db,
    config: DetectionConfig = DetectionConfig(),
) -> int:
    """
    Recompute and upsert baselines for every sender with enough history.
    A failed write for one sender is rolled back and skipped; the rest continue.
    Returns the number of baselines written.
    """
    min_sample = max(config.baseline_min_sample, MIN_SAMPLE_SIZE)
    updated = 0
    for stats in compute_sender_stats(events, config.timezone).values():
        if stats.count < min_sample:
            continue
        try:
            _upsert_baseline(tenant_id, stats, config.window_days, db)
            db.commit()
            updated += 1
        except Exception as exc:
            logger.warning(
                "baseline_update_failed",
                tenant_id=tenant_id,
                entity_id=stats.sender,
                error=str(exc),
            )
            db.rollback()
    return updated
