"""
Anomaly Repository & Review Workflow
--------------------------------------
Persists candidates as AnomalyDetection rows and drives the review workflow.

  save_candidates  - one new row per candidate (status=new), no deduplication
  list_anomalies   - newest first
  get_stats        - counts by severity, type and status (every value present)
  update_status    - any valid target status is accepted; unknown values are rejected

Workflow stamps:
  investigating             → investigated_at
  resolved / false_positive → resolved_at
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog

from commwatch.services.shared.errors import AnomalyNotFound, InvalidStatusTransition
from commwatch.services.shared.models import (
    AnomalyDetection, AnomalyStatus, AnomalyType, Severity,
)
from commwatch.services.behavioural.scoring import AnomalyCandidate

logger = structlog.get_logger()

DEFAULT_LIST_LIMIT = 50

_RESOLVING_STATUSES = {AnomalyStatus.resolved, AnomalyStatus.false_positive}


def _to_row(tenant_id: str, c: AnomalyCandidate, detected_at: datetime) -> AnomalyDetection:
    return AnomalyDetection(
        tenant_id=tenant_id,
        anomaly_type=c.anomaly_type,
        severity=c.severity,
        status=AnomalyStatus.new,
        title=c.title,
        description=c.description,
        related_event_ids=list(c.related_event_ids),
        pattern_data=c.pattern_data,
        baseline_data=c.baseline_data,
        deviation_score=c.deviation_score,
        confidence=c.confidence,
        time_window_start=c.time_window_start,
        time_window_end=c.time_window_end,
        ai_explanation=c.ai_explanation or "",
        ai_recommendations=list(c.ai_recommendations),
        detected_at=detected_at,
    )


def save_candidates(
    tenant_id: str,
    candidates: Sequence[AnomalyCandidate],
    db,
) -> int:
    """
    Insert one AnomalyDetection per candidate, committing each on its own.
    A failed insert is rolled back and logged; the others are still written.
    Returns the number saved.
    """
    detected_at = datetime.now(timezone.utc)
    saved = 0
    for c in candidates:
        try:
            db.add(_to_row(tenant_id, c, detected_at))
            db.commit()
            saved += 1
        except Exception as exc:
            logger.warning(
                "anomaly_save_failed",
                tenant_id=tenant_id,
                anomaly_type=c.anomaly_type.value,
                title=c.title,
                error=str(exc),
            )
            db.rollback()
    return saved


def list_anomalies(
    tenant_id: str,
    db,
    limit: int = DEFAULT_LIST_LIMIT,
    status: Optional[str] = None,
) -> list[AnomalyDetection]:
    q = db.query(AnomalyDetection).filter(AnomalyDetection.tenant_id == tenant_id)
    if status:
        q = q.filter(AnomalyDetection.status == parse_status(status))
    return (
        q.order_by(AnomalyDetection.detected_at.desc(), AnomalyDetection.id.desc())
         .limit(limit)
         .all()
    )


def get_anomaly(anomaly_id: int, db, tenant_id: Optional[str] = None) -> AnomalyDetection:
    q = db.query(AnomalyDetection).filter(AnomalyDetection.id == anomaly_id)
    if tenant_id is not None:
        q = q.filter(AnomalyDetection.tenant_id == tenant_id)
    row = q.first()
    if row is None:
        raise AnomalyNotFound(anomaly_id)
    return row


def get_stats(tenant_id: str, db) -> dict:
    rows = (
        db.query(AnomalyDetection.severity, AnomalyDetection.anomaly_type, AnomalyDetection.status)
          .filter(AnomalyDetection.tenant_id == tenant_id)
          .all()
    )
    by_severity = Counter(r.severity.value for r in rows)
    by_type     = Counter(r.anomaly_type.value for r in rows)
    by_status   = Counter(r.status.value for r in rows)
    return {
        "total":       len(rows),
        "by_severity": {s.value: by_severity.get(s.value, 0) for s in Severity},
        "by_type":     {t.value: by_type.get(t.value, 0) for t in AnomalyType},
        "by_status":   {s.value: by_status.get(s.value, 0) for s in AnomalyStatus},
    }


def parse_status(status: str) -> AnomalyStatus:
    try:
        return AnomalyStatus(status)
    except ValueError:
        raise InvalidStatusTransition(status) from None


def update_status(
    anomaly_id: int,
    status: str,
    db,
    notes: Optional[str] = None,
    tenant_id: Optional[str] = None,
) -> AnomalyDetection:
    """
    Move an anomaly to `status`. Any enum value is accepted as a target.
    Raises InvalidStatusTransition for unknown values, AnomalyNotFound for unknown ids.
    """
    target = parse_status(status)
    row = get_anomaly(anomaly_id, db, tenant_id=tenant_id)

    now = datetime.now(timezone.utc)
    previous = row.status
    row.status = target
    if target == AnomalyStatus.investigating:
        row.investigated_at = now
    elif target in _RESOLVING_STATUSES:
        row.resolved_at = now
    if notes:
        row.resolution_notes = notes

    db.commit()
    logger.info(
        "anomaly_status_updated",
        anomaly_id=anomaly_id,
        previous=previous.value if previous else None,
        status=target.value,
    )
    return row
