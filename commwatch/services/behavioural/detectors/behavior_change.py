"""
Detector: behavior_change
---------------------------
Two independent candidate sources:

  trust_degradation - actors from the trust registry with
                      trust_score < 30 AND (contradictions > 2 OR broken_promises > 1)
                      severity critical if trust_score < 20 else high
                      deviation = 100 - trust_score, confidence 85
                      metadata only: no related events are attached

  new_sender        - senders first seen in the window less than 7 days ago
                      with at least 5 events
                      severity high if count > 10 else medium
                      deviation = min(count * 10, 100), confidence 75

pattern_data (trust_degradation): source, actor_name, actor_email, actor_institution,
    trust_score, contradictions, broken_promises, hidden_communications
pattern_data (new_sender): source, sender, count, days_since_first, events_details
"""

from datetime import datetime

from commwatch.services.shared.config import DetectionConfig
from commwatch.services.shared.models import AnomalyType, Severity
from commwatch.services.behavioural.baseline import BaselineIndex
from commwatch.services.behavioural.event_window import (
    EventRecord, EventWindow, TrustRecord, event_detail,
)
from commwatch.services.behavioural.scoring import AnomalyCandidate, bucket_severity

ANOMALY_TYPE = AnomalyType.behavior_change

EXPECTED_TRUST_SCORE = 50
EXPECTED_NEW_SENDER_COUNT = 2
_SECONDS_PER_DAY = 24 * 60 * 60


def is_degraded(actor: TrustRecord, config: DetectionConfig) -> bool:
    if actor.trust_score is None:
        return False
    return actor.trust_score < config.trust_threshold and (
        actor.contradictions > config.trust_max_contradictions
        or actor.broken_promises > config.trust_max_broken_promises
    )


def _trust_candidate(
    window: EventWindow,
    actor: TrustRecord,
    config: DetectionConfig,
) -> AnomalyCandidate:
    trust = float(actor.trust_score)
    severity = Severity.critical if trust < config.trust_critical_threshold else Severity.high
    return AnomalyCandidate(
        anomaly_type=ANOMALY_TYPE,
        severity=severity,
        title=f"Concerning behavior: {actor.actor_name}",
        description=(
            f"{actor.actor_name} has a trust score of {trust:.0f}/100 with "
            f"{actor.contradictions} contradictions and "
            f"{actor.broken_promises} broken promises"
        ),
        related_event_ids=[],
        pattern_data={
            "source":                "trust_degradation",
            "actor_name":            actor.actor_name,
            "actor_email":           actor.actor_email,
            "actor_institution":     actor.actor_institution,
            "trust_score":           trust,
            "contradictions":        actor.contradictions,
            "broken_promises":       actor.broken_promises,
            "hidden_communications": actor.hidden_communications,
        },
        baseline_data={"expected_trust_score": EXPECTED_TRUST_SCORE},
        deviation_score=100 - trust,
        confidence=config.trust_confidence,
        time_window_start=window.recent_window_start,
        time_window_end=window.now,
    )


def _new_sender_candidate(
    window: EventWindow,
    sender: str,
    first_seen: datetime,
    events: list[EventRecord],
    config: DetectionConfig,
) -> AnomalyCandidate:
    count = len(events)
    days_since_first = (window.now - first_seen).total_seconds() / _SECONDS_PER_DAY
    evidence = events[: config.max_related_events]
    return AnomalyCandidate(
        anomaly_type=ANOMALY_TYPE,
        severity=bucket_severity(count, config.new_sender_high_count),
        title=f"Very active new contact: {sender}",
        description=(
            f"{sender} is a new contact (first seen {days_since_first:.0f} days ago) "
            f"with {count} messages"
        ),
        related_event_ids=[e.id for e in evidence],
        pattern_data={
            "source":           "new_sender",
            "sender":           sender,
            "count":            count,
            "days_since_first": days_since_first,
            "events_details":   [event_detail(e) for e in evidence],
        },
        baseline_data={"expected_new_sender_count": EXPECTED_NEW_SENDER_COUNT},
        deviation_score=min(count * 10, 100.0),
        confidence=config.new_sender_confidence,
        time_window_start=first_seen,
        time_window_end=window.now,
    )


def detect(
    window: EventWindow,
    baselines: BaselineIndex,
    config: DetectionConfig,
) -> list[AnomalyCandidate]:
    candidates = [
        _trust_candidate(window, actor, config)
        for actor in window.trust_records
        if is_degraded(actor, config)
    ]

    first_seen: dict[str, datetime] = {}
    by_sender:  dict[str, list[EventRecord]] = {}
    for ev in window.events:
        by_sender.setdefault(ev.sender, []).append(ev)
        if ev.sender not in first_seen or ev.received_at < first_seen[ev.sender]:
            first_seen[ev.sender] = ev.received_at

    max_age = config.new_sender_max_days * _SECONDS_PER_DAY
    for sender, events in by_sender.items():
        age = (window.now - first_seen[sender]).total_seconds()
        if age < max_age and len(events) >= config.new_sender_min_count:
            candidates.append(
                _new_sender_candidate(window, sender, first_seen[sender], events, config)
            )
    return candidates
