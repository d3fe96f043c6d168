"""
Detector: timing_anomaly
--------------------------
Two independent checks over the recent window, across all senders. Both may
fire in the same run.

  off_hours - events with local hour < 7 or >= 22
              flag at count >= 3; high if count > 10 else medium
              deviation = min(count * 10, 100), confidence 75
  weekend   - events on day-of-week 0 (Sunday) or 6 (Saturday)
              flag at count >= 5; high if count > 15 else medium
              deviation = min(count * 5, 100), confidence 70

Hours and days are taken in the configured timezone.

pattern_data:  check, count, senders, events_details (+ hours for off_hours)
baseline_data: normal_hours (off_hours) / expected_weekend_ratio (weekend)
"""

from commwatch.services.shared.config import DetectionConfig
from commwatch.services.shared.models import AnomalyType
from commwatch.services.behavioural.baseline import BaselineIndex
from commwatch.services.behavioural.event_window import (
    EventRecord, EventWindow, event_detail, local_hour_and_day,
)
from commwatch.services.behavioural.scoring import AnomalyCandidate, bucket_severity

ANOMALY_TYPE = AnomalyType.timing_anomaly

WEEKEND_DAYS = frozenset({0, 6})
EXPECTED_WEEKEND_RATIO = 0.1


def _unique_senders(events: list[EventRecord]) -> list[str]:
    return list(dict.fromkeys(e.sender for e in events))


def _sender_summary(senders: list[str]) -> str:
    return ", ".join(senders[:3]) + ("..." if len(senders) > 3 else "")


def is_off_hours(hour: int, config: DetectionConfig) -> bool:
    return hour < config.off_hours_start or hour >= config.off_hours_end


def _off_hours_candidate(
    window: EventWindow,
    hits: list[tuple[EventRecord, int]],
    config: DetectionConfig,
) -> AnomalyCandidate:
    events = [ev for ev, _ in hits]
    count = len(events)
    senders = _unique_senders(events)
    evidence = events[: config.max_related_events]
    return AnomalyCandidate(
        anomaly_type=ANOMALY_TYPE,
        severity=bucket_severity(count, config.off_hours_high_count),
        title="Communications outside normal hours",
        description=(
            f"{count} messages received outside normal hours "
            f"(before {config.off_hours_start}:00 or after {config.off_hours_end}:00) "
            f"from: {_sender_summary(senders)}"
        ),
        related_event_ids=[e.id for e in evidence],
        pattern_data={
            "check":          "off_hours",
            "count":          count,
            "senders":        senders,
            "hours":          [hour for _, hour in hits],
            "events_details": [event_detail(e) for e in evidence],
        },
        baseline_data={
            "normal_hours": list(range(config.off_hours_start, config.off_hours_end)),
        },
        deviation_score=min(count * 10, 100.0),
        confidence=config.off_hours_confidence,
        time_window_start=window.recent_window_start,
        time_window_end=window.now,
    )


def _weekend_candidate(
    window: EventWindow,
    events: list[EventRecord],
    config: DetectionConfig,
) -> AnomalyCandidate:
    count = len(events)
    senders = _unique_senders(events)
    evidence = events[: config.max_related_events]
    return AnomalyCandidate(
        anomaly_type=ANOMALY_TYPE,
        severity=bucket_severity(count, config.weekend_high_count),
        title="Unusual weekend activity",
        description=f"{count} messages received on the weekend from: {_sender_summary(senders)}",
        related_event_ids=[e.id for e in evidence],
        pattern_data={
            "check":          "weekend",
            "count":          count,
            "senders":        senders,
            "events_details": [event_detail(e) for e in evidence],
        },
        baseline_data={"expected_weekend_ratio": EXPECTED_WEEKEND_RATIO},
        deviation_score=min(count * 5, 100.0),
        confidence=config.weekend_confidence,
        time_window_start=window.recent_window_start,
        time_window_end=window.now,
    )


def detect(
    window: EventWindow,
    baselines: BaselineIndex,
    config: DetectionConfig,
) -> list[AnomalyCandidate]:
    off_hours: list[tuple[EventRecord, int]] = []
    weekend:   list[EventRecord] = []

    for ev in window.recent_events:
        hour, day = local_hour_and_day(ev.received_at, config.timezone)
        if is_off_hours(hour, config):
            off_hours.append((ev, hour))
        if day in WEEKEND_DAYS:
            weekend.append(ev)

    candidates: list[AnomalyCandidate] = []
    if len(off_hours) >= config.off_hours_min_count:
        candidates.append(_off_hours_candidate(window, off_hours, config))
    if len(weekend) >= config.weekend_min_count:
        candidates.append(_weekend_candidate(window, weekend, config))
    return candidates
