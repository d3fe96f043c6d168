"""
Detector: sentiment_shift
---------------------------
Flags senders whose tone has worsened: the mean sentiment of their recent
messages is well below the mean of their older ones.

  old    = sentiment values received before the recent window
  recent = sentiment values received within it
  shift  = mean(recent) - mean(old)

Requires len(old) >= 3 and len(recent) >= 2; fewer samples are silence, not an error.
Only shift < -0.3 is flagged. Improvements are never reported.

Severity: shift < -0.5 → high, else medium.
deviation = |shift| * 100, confidence = min(60 + len(recent) * 5, 90)

pattern_data:  sender, recent_sentiment, shift, events_details
baseline_data: old_sentiment
"""

from dataclasses import dataclass, field

from commwatch.services.shared.config import DetectionConfig
from commwatch.services.shared.models import AnomalyType, Severity
from commwatch.services.behavioural.baseline import BaselineIndex
from commwatch.services.behavioural.event_window import EventRecord, EventWindow, event_detail
from commwatch.services.behavioural.scoring import AnomalyCandidate

ANOMALY_TYPE = AnomalyType.sentiment_shift


@dataclass
class _SenderSentiment:
    old:           list[float]       = field(default_factory=list)
    recent:        list[float]       = field(default_factory=list)
    recent_events: list[EventRecord] = field(default_factory=list)


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


def detect(
    window: EventWindow,
    baselines: BaselineIndex,
    config: DetectionConfig,
) -> list[AnomalyCandidate]:
    by_sender: dict[str, _SenderSentiment] = {}

    for ev in window.events:
        if ev.sentiment is None:
            continue
        data = by_sender.setdefault(ev.sender, _SenderSentiment())
        if ev.received_at >= window.recent_window_start:
            data.recent.append(float(ev.sentiment))
            data.recent_events.append(ev)
        else:
            data.old.append(float(ev.sentiment))

    candidates: list[AnomalyCandidate] = []
    for sender, data in by_sender.items():
        if len(data.old) < config.sentiment_min_old or len(data.recent) < config.sentiment_min_recent:
            continue

        old_avg    = _mean(data.old)
        recent_avg = _mean(data.recent)
        shift      = recent_avg - old_avg
        if not shift < config.sentiment_shift:
            continue

        evidence = data.recent_events[: config.max_related_events]
        candidates.append(AnomalyCandidate(
            anomaly_type=ANOMALY_TYPE,
            severity=Severity.high if shift < config.sentiment_high_shift else Severity.medium,
            title=f"Negative tone shift: {sender}",
            description=(
                f"Communications from {sender} have become more negative "
                f"({shift * 100:.0f} point drop in average sentiment)"
            ),
            related_event_ids=[e.id for e in evidence],
            pattern_data={
                "sender":           sender,
                "recent_sentiment": recent_avg,
                "shift":            shift,
                "events_details":   [event_detail(e) for e in evidence],
            },
            baseline_data={"old_sentiment": old_avg},
            deviation_score=abs(shift) * 100,
            confidence=min(60 + len(data.recent) * 5, 90.0),
            time_window_start=window.recent_window_start,
            time_window_end=window.now,
        ))
    return candidates
