"""
Detector: conversation_mismatch
---------------------------------
Finds recent conversations that look like one topic split across several
threads (candidates for merging or for closer review).

Heuristic:
  subject key = lower-case subject, leading reply/forward prefixes removed
                (re:, fwd:, fw:, tr:), whitespace collapsed, first 50 chars.
                Keys shorter than 5 chars are ignored.

  A group of >= 3 recent events is flagged when it spans more than one
  distinct thread id AND more than one distinct sender.

Severity: > 10 events → high, else medium.
deviation = min(thread_count * 25, 100), confidence 70

pattern_data:  subject, thread_count, event_count, senders, events_details
baseline_data: expected_threads_per_subject
"""

import re

from commwatch.services.shared.config import DetectionConfig
from commwatch.services.shared.models import AnomalyType
from commwatch.services.behavioural.baseline import BaselineIndex
from commwatch.services.behavioural.event_window import EventRecord, EventWindow, event_detail
from commwatch.services.behavioural.scoring import AnomalyCandidate, bucket_severity

ANOMALY_TYPE = AnomalyType.conversation_mismatch

SUBJECT_KEY_CHARS = 50
MIN_SUBJECT_KEY_CHARS = 5

_REPLY_PREFIX = re.compile(r"^(?:(?:re|fwd|fw|tr)\s*:\s*)+", re.IGNORECASE)


def subject_key(subject: str | None) -> str:
    text = " ".join((subject or "").lower().split())
    text = _REPLY_PREFIX.sub("", text).strip()
    return text[:SUBJECT_KEY_CHARS]


def detect(
    window: EventWindow,
    baselines: BaselineIndex,
    config: DetectionConfig,
) -> list[AnomalyCandidate]:
    groups: dict[str, list[EventRecord]] = {}
    for ev in window.recent_events:
        key = subject_key(ev.subject)
        if len(key) < MIN_SUBJECT_KEY_CHARS:
            continue
        groups.setdefault(key, []).append(ev)

    candidates: list[AnomalyCandidate] = []
    for subject, events in groups.items():
        if len(events) < config.conversation_min_events:
            continue

        threads = list(dict.fromkeys(e.thread_id for e in events if e.thread_id))
        senders = list(dict.fromkeys(e.sender for e in events))
        if len(threads) <= 1 or len(senders) <= 1:
            continue

        evidence = events[: config.max_related_events]
        candidates.append(AnomalyCandidate(
            anomaly_type=ANOMALY_TYPE,
            severity=bucket_severity(len(events), config.conversation_high_events),
            title=f'Possibly related conversations: "{subject[:40]}"',
            description=(
                f"{len(events)} messages with a similar subject span {len(threads)} "
                f"different threads, involving {', '.join(senders[:3])}"
                f"{'...' if len(senders) > 3 else ''}"
            ),
            related_event_ids=[e.id for e in evidence],
            pattern_data={
                "subject":        subject,
                "thread_count":   len(threads),
                "event_count":    len(events),
                "senders":        senders,
                "events_details": [event_detail(e) for e in evidence],
            },
            baseline_data={"expected_threads_per_subject": 1},
            deviation_score=min(len(threads) * 25, 100.0),
            confidence=config.conversation_confidence,
            time_window_start=window.recent_window_start,
            time_window_end=window.now,
        ))
    return candidates
