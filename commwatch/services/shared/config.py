"""
CommWatch engine configuration
--------------------------------
All tuning parameters for a detection run, passed explicitly into DetectionEngine.
Nothing below the engine reads the environment; EngineConfig.from_env() is the
single place where env vars are consulted.

Environment variables (all optional):
  ANOMALY_WINDOW_DAYS        default 30   - historical window read per run
  ANOMALY_RECENT_DAYS        default 7    - "recent" window shared by every detector
  ANOMALY_MIN_EVENTS         default 10   - below this a run reports insufficient data
  ANOMALY_MAX_EVENTS         default 500  - newest-first cap on events read per run
  ANOMALY_TIMEZONE           default UTC  - zone used for hour-of-day / day-of-week
  ENRICHMENT_API_KEY         unset        - enrichment is skipped when empty
  ENRICHMENT_BASE_URL        default https://api.openai.com/v1
  ENRICHMENT_MODEL           default gpt-4o-mini
  ENRICHMENT_TIMEOUT_SEC     default 30
  ENRICHMENT_MAX_CANDIDATES  default 5
"""

import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True)
class DetectionConfig:
    """Detector thresholds. Defaults are the tuned reference values."""

    window_days:   int = 30
    recent_days:   int = 7
    min_events:    int = 10
    max_events:    int = 500
    max_related_events: int = 10
    timezone:      str = "UTC"

    # Frequency spike
    spike_min_recent:       int   = 5      # recent must be strictly greater
    spike_min_deviation:    float = 2.0
    spike_high_deviation:   float = 5.0
    spike_medium_deviation: float = 3.0

    # Timing: off-hours (hour < start or hour >= end)
    off_hours_start:     int = 7
    off_hours_end:       int = 22
    off_hours_min_count: int = 3
    off_hours_high_count: int = 10
    off_hours_confidence: float = 75.0

    # Timing: weekend burst
    weekend_min_count:  int = 5
    weekend_high_count: int = 15
    weekend_confidence: float = 70.0

    # Sentiment shift
    sentiment_min_old:     int   = 3
    sentiment_min_recent:  int   = 2
    sentiment_shift:       float = -0.3
    sentiment_high_shift:  float = -0.5

    # Behavior change: trust degradation
    trust_threshold:          float = 30.0
    trust_critical_threshold: float = 20.0
    trust_max_contradictions: int   = 2
    trust_max_broken_promises: int  = 1
    trust_confidence:         float = 85.0

    # Behavior change: new high-volume sender
    new_sender_max_days:   int = 7
    new_sender_min_count:  int = 5
    new_sender_high_count: int = 10
    new_sender_confidence: float = 75.0

    # Conversation mismatch
    conversation_min_events:  int = 3
    conversation_high_events: int = 10
    conversation_confidence:  float = 70.0

    # Baselines
    baseline_min_sample: int = 3

    def __post_init__(self):
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown ANOMALY_TIMEZONE {self.timezone!r}") from exc


@dataclass(frozen=True)
class EnrichmentConfig:
    api_key:        str   = ""
    base_url:       str   = "https://api.openai.com/v1"
    model:          str   = "gpt-4o-mini"
    timeout_sec:    float = 30.0
    max_candidates: int   = 5

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class EngineConfig:
    detection:  DetectionConfig  = field(default_factory=DetectionConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        detection = DetectionConfig(
            window_days=int(os.getenv("ANOMALY_WINDOW_DAYS", "30")),
            recent_days=int(os.getenv("ANOMALY_RECENT_DAYS", "7")),
            min_events=int(os.getenv("ANOMALY_MIN_EVENTS", "10")),
            max_events=int(os.getenv("ANOMALY_MAX_EVENTS", "500")),
            timezone=os.getenv("ANOMALY_TIMEZONE", "UTC"),
        )
        enrichment = EnrichmentConfig(
            api_key=os.getenv("ENRICHMENT_API_KEY", ""),
            base_url=os.getenv("ENRICHMENT_BASE_URL", "https://api.openai.com/v1"),
            model=os.getenv("ENRICHMENT_MODEL", "gpt-4o-mini"),
            timeout_sec=float(os.getenv("ENRICHMENT_TIMEOUT_SEC", "30")),
            max_candidates=int(os.getenv("ENRICHMENT_MAX_CANDIDATES", "5")),
        )
        return cls(detection=detection, enrichment=enrichment)
