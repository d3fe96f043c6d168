"""
Pydantic request/response schemas for the CommWatch API.
All API responses use these schemas for type safety and documentation.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from commwatch.services.shared.models import AnomalyType, Severity, AnomalyStatus


# ── Anomaly records ───────────────────────────────────────────────────────────

class AnomalyOut(BaseModel):
    id: int
    tenant_id: str
    anomaly_type: AnomalyType
    severity: Severity
    status: AnomalyStatus
    title: str
    description: str
    related_event_ids: list[str] = []
    pattern_data: dict[str, Any] = {}
    baseline_data: dict[str, Any] = {}
    deviation_score: float
    confidence: float
    time_window_start: Optional[datetime] = None
    time_window_end: Optional[datetime] = None
    ai_explanation: str = ""
    ai_recommendations: list[str] = []
    resolution_notes: Optional[str] = None
    detected_at: datetime
    investigated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StatusUpdateRequest(BaseModel):
    # Kept as a plain string so unknown values reach the workflow and are
    # rejected there as InvalidStatusTransition rather than a schema error.
    status: str = Field(..., examples=["resolved"])
    notes: Optional[str] = None


class AnomalyStatsOut(BaseModel):
    total: int
    by_severity: dict[str, int]
    by_type: dict[str, int]
    by_status: dict[str, int]


# ── Runs ──────────────────────────────────────────────────────────────────────

class DetectionRunOut(BaseModel):
    anomalies_detected: int
    anomalies_saved: int
    anomalies_enriched: int = 0
    counts_by_type: dict[str, int]
    message: Optional[str] = None


class BaselineRecomputeOut(BaseModel):
    baselines_updated: int
    message: Optional[str] = None


# ── Baselines ─────────────────────────────────────────────────────────────────

class BaselineOut(BaseModel):
    id: int
    tenant_id: str
    entity_type: str
    entity_id: str
    entity_label: Optional[str] = None
    average_events_per_day: float
    typical_sentiment: float
    typical_hours: list[int]
    typical_days: list[int]
    sample_size: int
    calculated_at: datetime

    class Config:
        from_attributes = True
