"""
Anomaly API routes.

  POST  /api/anomalies/detect         - run detection for the caller's tenant
  POST  /api/baselines/recompute      - recompute the tenant's sender baselines
  GET   /api/anomalies                - list anomalies, newest first
  GET   /api/anomalies/stats          - counts by severity / type / status
  GET   /api/anomalies/{id}           - single anomaly
  PATCH /api/anomalies/{id}/status    - review workflow transition
  GET   /api/baselines                - stored baselines
"""

from functools import lru_cache
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from commwatch.services.shared.auth import get_tenant
from commwatch.services.shared.config import EngineConfig
from commwatch.services.shared.database import get_db
from commwatch.services.shared.errors import (
    AnomalyNotFound, InvalidStatusTransition, UpstreamReadError,
)
from commwatch.services.shared.models import BehaviorBaseline
from commwatch.services.shared.schemas import (
    AnomalyOut, AnomalyStatsOut, BaselineOut, BaselineRecomputeOut,
    DetectionRunOut, StatusUpdateRequest,
)
from commwatch.services.behavioural import repository
from commwatch.services.behavioural.engine import DetectionEngine

router = APIRouter()
logger = structlog.get_logger()


@lru_cache
def get_engine() -> DetectionEngine:
    """FastAPI dependency: one engine per process, configured from the environment."""
    return DetectionEngine(EngineConfig.from_env())


@router.post("/anomalies/detect", response_model=DetectionRunOut)
def run_detection(
    tenant_id: str = Depends(get_tenant),
    engine: DetectionEngine = Depends(get_engine),
    db=Depends(get_db),
):
    try:
        summary = engine.run_detection(tenant_id, db)
    except UpstreamReadError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return DetectionRunOut(**summary.to_dict())


@router.post("/baselines/recompute", response_model=BaselineRecomputeOut)
def recompute_baselines(
    tenant_id: str = Depends(get_tenant),
    engine: DetectionEngine = Depends(get_engine),
    db=Depends(get_db),
):
    try:
        summary = engine.recompute_baselines(tenant_id, db)
    except UpstreamReadError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return BaselineRecomputeOut(**summary.to_dict())


@router.get("/anomalies", response_model=list[AnomalyOut])
def list_anomalies(
    limit:     int           = Query(repository.DEFAULT_LIST_LIMIT, ge=1, le=500),
    status:    Optional[str] = None,
    tenant_id: str           = Depends(get_tenant),
    db=Depends(get_db),
):
    try:
        rows = repository.list_anomalies(tenant_id, db, limit=limit, status=status)
    except InvalidStatusTransition as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return [AnomalyOut.model_validate(r) for r in rows]


@router.get("/anomalies/stats", response_model=AnomalyStatsOut)
def anomaly_stats(
    tenant_id: str = Depends(get_tenant),
    engine: DetectionEngine = Depends(get_engine),
    db=Depends(get_db),
):
    return AnomalyStatsOut(**engine.get_stats(tenant_id, db))


@router.get("/anomalies/{anomaly_id}", response_model=AnomalyOut)
def get_anomaly(
    anomaly_id: int,
    tenant_id: str = Depends(get_tenant),
    db=Depends(get_db),
):
    try:
        row = repository.get_anomaly(anomaly_id, db, tenant_id=tenant_id)
    except AnomalyNotFound:
        raise HTTPException(status_code=404, detail="Anomaly not found")
    return AnomalyOut.model_validate(row)


@router.patch("/anomalies/{anomaly_id}/status", response_model=AnomalyOut)
def update_anomaly_status(
    anomaly_id: int,
    req: StatusUpdateRequest,
    tenant_id: str = Depends(get_tenant),
    engine: DetectionEngine = Depends(get_engine),
    db=Depends(get_db),
):
    try:
        row = engine.update_status(anomaly_id, req.status, db, notes=req.notes, tenant_id=tenant_id)
    except InvalidStatusTransition as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except AnomalyNotFound:
        raise HTTPException(status_code=404, detail="Anomaly not found")
    return AnomalyOut.model_validate(row)


@router.get("/baselines", response_model=list[BaselineOut])
def list_baselines(
    entity_type: Optional[str] = None,
    limit:       int           = 500,
    tenant_id:   str           = Depends(get_tenant),
    db=Depends(get_db),
):
    q = db.query(BehaviorBaseline).filter(BehaviorBaseline.tenant_id == tenant_id)
    if entity_type:
        q = q.filter(BehaviorBaseline.entity_type == entity_type)
    rows = q.order_by(BehaviorBaseline.sample_size.desc()).limit(limit).all()
    return [BaselineOut.model_validate(r) for r in rows]
