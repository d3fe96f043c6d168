"""
Detection Engine
-----------------
Orchestrates one detection run for a tenant:

1. Read the event window (events + trust records) and the stored baselines.
2. Short-circuit with "insufficient data" below the minimum event floor.
3. Run every detector against the immutable snapshot.
4. Normalize candidates (scores clamped to 0-100, related ids capped at 10).
5. Enrich the first candidates through the reasoning service (best-effort).
6. Persist one AnomalyDetection per candidate and return a summary.

Only an upstream read failure is raised to the caller. Enrichment and per-record
persistence failures degrade the summary instead.

Baseline recompute is a separate operation over the same window.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog

from commwatch.services.shared.config import EngineConfig
from commwatch.services.shared.database import SessionLocal
from commwatch.services.shared.models import AnomalyType
from commwatch.services.behavioural import baseline as baseline_store
from commwatch.services.behavioural import repository
from commwatch.services.behavioural.detectors import DETECTORS, Detector, run_detectors
from commwatch.services.behavioural.enrichment import Enricher, apply_enrichment
from commwatch.services.behavioural.event_window import fetch_events, read_event_window, as_utc
from commwatch.services.behavioural.scoring import AnomalyCandidate, normalize_candidate

logger = structlog.get_logger()

INSUFFICIENT_DATA_MESSAGE = "Not enough data to detect anomalies"
INSUFFICIENT_BASELINE_MESSAGE = "Not enough data to compute baselines"


@dataclass
class DetectionSummary:
    anomalies_detected: int
    anomalies_saved:    int
    counts_by_type:     dict[str, int] = field(default_factory=dict)
    anomalies_enriched: int = 0
    message:            Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BaselineSummary:
    baselines_updated: int
    message:           Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _counts_by_type(candidates: Sequence[AnomalyCandidate]) -> dict[str, int]:
    counts = {t.value: 0 for t in AnomalyType}
    for c in candidates:
        counts[c.anomaly_type.value] += 1
    return counts


class DetectionEngine:
    """Stateless between runs; every call works from a fresh snapshot."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        enricher: Optional[Enricher] = None,
        detectors: Optional[Sequence[Detector]] = None,
    ):
        self.config = config or EngineConfig()
        self.enricher = enricher or Enricher(self.config.enrichment)
        self.detectors = list(DETECTORS if detectors is None else detectors)

    # ── Detection ────────────────────────────────────────────────────────────

    def run_detection(
        self,
        tenant_id: str,
        db,
        now: Optional[datetime] = None,
    ) -> DetectionSummary:
        cfg = self.config.detection

        window    = read_event_window(tenant_id, db, cfg, now=now)
        baselines = baseline_store.load_baselines(tenant_id, db)

        if len(window.events) < cfg.min_events:
            logger.info(
                "detection_insufficient_data",
                tenant_id=tenant_id,
                events=len(window.events),
                min_events=cfg.min_events,
            )
            return DetectionSummary(
                anomalies_detected=0,
                anomalies_saved=0,
                counts_by_type=_counts_by_type([]),
                message=INSUFFICIENT_DATA_MESSAGE,
            )

        raw = run_detectors(window, baselines, cfg, self.detectors)
        candidates = [normalize_candidate(c, cfg.max_related_events) for c in raw]

        enriched = 0
        if candidates:
            result = self.enricher.enrich(candidates)
            if result.ok:
                enriched = apply_enrichment(candidates, result)
            else:
                logger.warning("enrichment_skipped", tenant_id=tenant_id, reason=result.reason)

        saved = repository.save_candidates(tenant_id, candidates, db)
        summary = DetectionSummary(
            anomalies_detected=len(candidates),
            anomalies_saved=saved,
            counts_by_type=_counts_by_type(candidates),
            anomalies_enriched=enriched,
        )
        logger.info(
            "detection_run_complete",
            tenant_id=tenant_id,
            events=len(window.events),
            detected=summary.anomalies_detected,
            saved=summary.anomalies_saved,
            enriched=enriched,
        )
        return summary

    # ── Baselines ────────────────────────────────────────────────────────────

    def recompute_baselines(
        self,
        tenant_id: str,
        db,
        now: Optional[datetime] = None,
    ) -> BaselineSummary:
        cfg = self.config.detection
        now = as_utc(now) if now else datetime.now(timezone.utc)
        events = fetch_events(tenant_id, db, cfg, now, capped=False)
        if len(events) < cfg.min_events:
            return BaselineSummary(baselines_updated=0, message=INSUFFICIENT_BASELINE_MESSAGE)

        updated = baseline_store.recompute_baselines(tenant_id, events, db, cfg)
        logger.info("baselines_updated", tenant_id=tenant_id, count=updated)
        return BaselineSummary(baselines_updated=updated)

    # ── Review ───────────────────────────────────────────────────────────────

    def list_anomalies(self, tenant_id: str, db, limit: int = repository.DEFAULT_LIST_LIMIT):
        return repository.list_anomalies(tenant_id, db, limit=limit)

    def get_stats(self, tenant_id: str, db) -> dict:
        return repository.get_stats(tenant_id, db)

    def update_status(
        self,
        anomaly_id: int,
        status: str,
        db,
        notes: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ):
        return repository.update_status(anomaly_id, status, db, notes=notes, tenant_id=tenant_id)


def run_detection(tenant_id: str = "default", config: Optional[EngineConfig] = None) -> DetectionSummary:
    """
    Entry point for schedulers and scripts: one detection run in its own session.
    """
    engine = DetectionEngine(config or EngineConfig.from_env())
    db = SessionLocal()
    try:
        return engine.run_detection(tenant_id, db)
    finally:
        db.close()


def recompute_all_baselines(tenant_id: str = "default", config: Optional[EngineConfig] = None) -> BaselineSummary:
    engine = DetectionEngine(config or EngineConfig.from_env())
    db = SessionLocal()
    try:
        return engine.recompute_baselines(tenant_id, db)
    finally:
        db.close()
