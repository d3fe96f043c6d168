"""
Detector: frequency_spike
---------------------------
Flags senders whose volume in the recent window is far above the rate implied
by their whole historical window.

Heuristic:
  expected  = total / window_days * recent_days
  deviation = (recent - expected) / max(expected, 1)

  Flag when recent > 5 AND deviation > 2. Low-volume senders produce noisy
  ratios, so the absolute floor is checked before the ratio is trusted.

Severity: deviation > 5 → high, > 3 → medium, else low.

pattern_data:  sender, recent_count, total_count, events_details
baseline_data: expected_weekly, plus stored_average_per_day / stored_sample_size
               when a baseline exists for the sender
"""

from commwatch.services.shared.config import DetectionConfig
from commwatch.services.shared.models import AnomalyType, ENTITY_TYPE_SENDER
from commwatch.services.behavioural.baseline import BaselineIndex
from commwatch.services.behavioural.event_window import EventRecord, EventWindow, event_detail
from commwatch.services.behavioural.scoring import AnomalyCandidate, bucket_severity

ANOMALY_TYPE = AnomalyType.frequency_spike


def spike_deviation(recent: int, total: int, config: DetectionConfig) -> tuple[float, float]:
    """Return (expected_recent, deviation) for one sender."""
    expected = total / config.window_days * config.recent_days
    if recent <= 0:
        return expected, 0.0
    return expected, (recent - expected) / max(expected, 1.0)


def detect(
    window: EventWindow,
    baselines: BaselineIndex,
    config: DetectionConfig,
) -> list[AnomalyCandidate]:
    totals: dict[str, int] = {}
    recent_events: dict[str, list[EventRecord]] = {}

    for ev in window.events:
        totals[ev.sender] = totals.get(ev.sender, 0) + 1
        recent_events.setdefault(ev.sender, [])
        if ev.received_at >= window.recent_window_start:
            recent_events[ev.sender].append(ev)

    candidates: list[AnomalyCandidate] = []
    for sender, total in totals.items():
        recent = len(recent_events[sender])
        expected, deviation = spike_deviation(recent, total, config)

        if not (recent > config.spike_min_recent and deviation > config.spike_min_deviation):
            continue

        evidence = recent_events[sender][: config.max_related_events]
        baseline_data: dict = {"expected_weekly": round(expected, 3)}
        stored = baselines.get((ENTITY_TYPE_SENDER, sender))
        if stored is not None:
            baseline_data["stored_average_per_day"] = stored.average_events_per_day
            baseline_data["stored_sample_size"] = stored.sample_size

        candidates.append(AnomalyCandidate(
            anomaly_type=ANOMALY_TYPE,
            severity=bucket_severity(
                deviation, config.spike_high_deviation, config.spike_medium_deviation,
            ),
            title=f"Frequency spike: {sender}",
            description=(
                f"{recent} messages from {sender} in the last {config.recent_days} days, "
                f"against {expected:.1f} expected"
            ),
            related_event_ids=[e.id for e in evidence],
            pattern_data={
                "sender":         sender,
                "recent_count":   recent,
                "total_count":    total,
                "events_details": [event_detail(e) for e in evidence],
            },
            baseline_data=baseline_data,
            deviation_score=min(deviation * 20, 100.0),
            confidence=min(70 + recent * 2, 95.0),
            time_window_start=window.recent_window_start,
            time_window_end=window.now,
        ))
    return candidates
