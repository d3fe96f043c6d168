"""
Anomaly Scoring & Classification
----------------------------------
Shared candidate type and the scoring helpers every detector uses, so that
score ranges and severity bucketing stay consistent across detectors.

  deviation_score - 0-100 heuristic magnitude of the deviation
  confidence      - 0-100 heuristic amount of evidence (not a p-value)

Severity is bucketed locally by each detector with bucket_severity(); it is
never recomputed globally. The only later change is an enrichment override.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional

from commwatch.services.shared.models import AnomalyType, Severity

SCORE_MIN = 0.0
SCORE_MAX = 100.0
MAX_RELATED_EVENTS = 10


@dataclass
class AnomalyCandidate:
    anomaly_type:       AnomalyType
    severity:           Severity
    title:              str
    description:        str
    deviation_score:    float
    confidence:         float
    time_window_start:  Optional[datetime] = None
    time_window_end:    Optional[datetime] = None
    related_event_ids:  list[str]          = field(default_factory=list)
    pattern_data:       dict[str, Any]     = field(default_factory=dict)
    baseline_data:      dict[str, Any]     = field(default_factory=dict)
    ai_explanation:     str                = ""
    ai_recommendations: list[str]          = field(default_factory=list)

    def __post_init__(self):
        self.deviation_score = clamp_score(self.deviation_score)
        self.confidence = clamp_score(self.confidence)


def clamp_score(value: float) -> float:
    return max(SCORE_MIN, min(float(value), SCORE_MAX))


def bucket_severity(
    value: float,
    high_above: float,
    medium_above: Optional[float] = None,
    default: Severity = Severity.medium,
) -> Severity:
    """
    Map a detector measurement to a severity bucket using strict '>' comparisons.
    With medium_above set, values at or below it fall to `low`.
    """
    if value > high_above:
        return Severity.high
    if medium_above is None:
        return default
    return Severity.medium if value > medium_above else Severity.low


def normalize_candidate(
    candidate: AnomalyCandidate,
    max_related: int = MAX_RELATED_EVENTS,
) -> AnomalyCandidate:
    """Return a copy with scores clamped to [0, 100] and related ids capped."""
    return replace(
        candidate,
        deviation_score=clamp_score(candidate.deviation_score),
        confidence=clamp_score(candidate.confidence),
        related_event_ids=list(candidate.related_event_ids[:max_related]),
    )
