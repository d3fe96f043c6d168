"""
CommWatch SQLAlchemy ORM models - all data models in one file.
Uses SQLAlchemy 2.0 Mapped + mapped_column for full type-checker support.

Tables:
  CommunicationEvent  - inbound communication records (read-only to the engine)
  ActorTrustScore     - per-correspondent trust metadata (read-only to the engine)
  BehaviorBaseline    - rolling per-entity profile, written only by baseline recompute
  AnomalyDetection    - persisted anomaly records + review workflow state

Reference invariant:
  related_event_ids and baseline entity_id are plain identifiers, never foreign keys.
  The engine keeps working when a referenced event has since been deleted.
"""

import enum
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    DateTime, Enum as SAEnum, Float, Index, Integer, JSON, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from commwatch.services.shared.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enumerations ──────────────────────────────────────────────────────────────

class AnomalyType(str, enum.Enum):
    frequency_spike       = "frequency_spike"
    timing_anomaly        = "timing_anomaly"
    sentiment_shift       = "sentiment_shift"
    behavior_change       = "behavior_change"
    conversation_mismatch = "conversation_mismatch"


class Severity(str, enum.Enum):
    low      = "low"
    medium   = "medium"
    high     = "high"
    critical = "critical"


class AnomalyStatus(str, enum.Enum):
    new            = "new"
    investigating  = "investigating"
    confirmed      = "confirmed"
    resolved       = "resolved"
    false_positive = "false_positive"


# Statuses hidden from default dashboards. The workflow itself accepts any transition.
TERMINAL_STATUSES = frozenset({
    AnomalyStatus.confirmed, AnomalyStatus.resolved, AnomalyStatus.false_positive,
})

ENTITY_TYPE_SENDER = "sender"


# ── Communication Events ──────────────────────────────────────────────────────

class CommunicationEvent(Base):
    """
    One inbound communication (email, message) owned by a tenant.
    sender is stored normalized (lower-case). sentiment is an optional score in -1..1
    attached by an upstream analysis step.
    """
    __tablename__ = "communication_events"

    id:          Mapped[str]              = mapped_column(String(64), primary_key=True)
    tenant_id:   Mapped[str]              = mapped_column(String(255), nullable=False, index=True)
    sender:      Mapped[str]              = mapped_column(String(512), nullable=False, default="unknown")
    recipient:   Mapped[Optional[str]]    = mapped_column(String(512), nullable=True)
    subject:     Mapped[Optional[str]]    = mapped_column(String(1024), nullable=True)
    body:        Mapped[Optional[str]]    = mapped_column(Text, nullable=True)
    thread_id:   Mapped[Optional[str]]    = mapped_column(String(255), nullable=True)
    sentiment:   Mapped[Optional[float]]  = mapped_column(Float, nullable=True)
    received_at: Mapped[datetime]         = mapped_column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_comm_event_tenant_received", "tenant_id", "received_at"),
    )


# ── Actor Trust Registry ──────────────────────────────────────────────────────

class ActorTrustScore(Base):
    """
    Trust metadata for a correspondent, maintained by the actor registry.
    trust_score is 0..100 (lower = less trusted); counters may be NULL when never scored.
    """
    __tablename__ = "actor_trust_scores"

    id:                          Mapped[int]              = mapped_column(Integer, primary_key=True, index=True)
    tenant_id:                   Mapped[str]              = mapped_column(String(255), nullable=False, index=True)
    actor_name:                  Mapped[str]              = mapped_column(String(255), nullable=False)
    actor_email:                 Mapped[Optional[str]]    = mapped_column(String(512), nullable=True)
    actor_institution:           Mapped[Optional[str]]    = mapped_column(String(255), nullable=True)
    trust_score:                 Mapped[Optional[float]]  = mapped_column(Float, nullable=True)
    contradictions_count:        Mapped[Optional[int]]    = mapped_column(Integer, nullable=True)
    promises_broken_count:       Mapped[Optional[int]]    = mapped_column(Integer, nullable=True)
    hidden_communications_count: Mapped[Optional[int]]    = mapped_column(Integer, nullable=True)
    updated_at:                  Mapped[datetime]         = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


# ── Behavior Baselines ────────────────────────────────────────────────────────

class BehaviorBaseline(Base):
    """
    Rolling statistical profile of one entity (currently always a sender).
    Only written by baseline recompute, and only for entities with sample_size >= 3.
    typical_hours / typical_days are presence sets (0-23 / 0-6 with 0 = Sunday),
    stored as sorted JSON lists.
    """
    __tablename__ = "behavior_baselines"

    id:                     Mapped[int]        = mapped_column(Integer, primary_key=True, index=True)
    tenant_id:              Mapped[str]        = mapped_column(String(255), nullable=False, index=True)
    entity_type:            Mapped[str]        = mapped_column(String(32), nullable=False, default=ENTITY_TYPE_SENDER)
    entity_id:              Mapped[str]        = mapped_column(String(512), nullable=False)
    entity_label:           Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    average_events_per_day: Mapped[float]      = mapped_column(Float, default=0.0)
    typical_sentiment:      Mapped[float]      = mapped_column(Float, default=0.0)
    typical_hours:          Mapped[list[Any]]  = mapped_column(JSON, default=list)
    typical_days:           Mapped[list[Any]]  = mapped_column(JSON, default=list)
    sample_size:            Mapped[int]        = mapped_column(Integer, default=0)
    calculated_at:          Mapped[datetime]   = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "entity_type", "entity_id", name="uq_baseline_tenant_entity"),
    )


# ── Anomaly Detections ────────────────────────────────────────────────────────

class AnomalyDetection(Base):
    """
    A reviewable anomaly produced by a detection run (one row per candidate, no merging).
    status walks the review workflow: new → investigating → confirmed | resolved,
    or new → resolved | false_positive.
    """
    __tablename__ = "anomaly_detections"

    id:                 Mapped[int]                 = mapped_column(Integer, primary_key=True, index=True)
    tenant_id:          Mapped[str]                 = mapped_column(String(255), nullable=False, index=True)
    anomaly_type:       Mapped[AnomalyType]         = mapped_column(SAEnum(AnomalyType), nullable=False, index=True)
    severity:           Mapped[Severity]            = mapped_column(SAEnum(Severity), nullable=False)
    status:             Mapped[AnomalyStatus]       = mapped_column(SAEnum(AnomalyStatus), nullable=False, default=AnomalyStatus.new)
    title:              Mapped[str]                 = mapped_column(String(512), nullable=False)
    description:        Mapped[str]                 = mapped_column(Text, nullable=False)
    related_event_ids:  Mapped[list[Any]]           = mapped_column(JSON, default=list)
    pattern_data:       Mapped[dict[str, Any]]      = mapped_column(JSON, default=dict)
    baseline_data:      Mapped[dict[str, Any]]      = mapped_column(JSON, default=dict)
    deviation_score:    Mapped[float]               = mapped_column(Float, default=0.0)
    confidence:         Mapped[float]               = mapped_column(Float, default=0.0)
    time_window_start:  Mapped[Optional[datetime]]  = mapped_column(DateTime, nullable=True)
    time_window_end:    Mapped[Optional[datetime]]  = mapped_column(DateTime, nullable=True)
    ai_explanation:     Mapped[str]                 = mapped_column(Text, default="")
    ai_recommendations: Mapped[list[Any]]           = mapped_column(JSON, default=list)
    resolution_notes:   Mapped[Optional[str]]       = mapped_column(Text, nullable=True)
    detected_at:        Mapped[datetime]            = mapped_column(DateTime, default=_utcnow, index=True)
    investigated_at:    Mapped[Optional[datetime]]  = mapped_column(DateTime, nullable=True)
    resolved_at:        Mapped[Optional[datetime]]  = mapped_column(DateTime, nullable=True)
    updated_at:         Mapped[datetime]            = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_anomaly_tenant_detected", "tenant_id", "detected_at"),
    )
