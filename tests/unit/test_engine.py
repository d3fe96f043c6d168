"""
Unit tests for the detection engine orchestration.
Uses SQLite in-memory database; enrichment runs against an httpx.MockTransport.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from commwatch.services.shared.config import EngineConfig, EnrichmentConfig
from commwatch.services.shared.errors import UpstreamReadError
from commwatch.services.shared.models import AnomalyDetection, BehaviorBaseline, Severity


def _spike(add_events, now, n=10, sender="a@x.com"):
    """n messages from one sender within the last two hours of a weekday morning."""
    return add_events([(sender, now - timedelta(minutes=10 * (i + 1))) for i in range(n)])


def _engine(detectors=None, transport=None, api_key=""):
    from commwatch.services.behavioural.engine import DetectionEngine
    from commwatch.services.behavioural.enrichment import Enricher
    config = EngineConfig(enrichment=EnrichmentConfig(api_key=api_key, base_url="https://llm.example.test/v1"))
    return DetectionEngine(config, enricher=Enricher(config.enrichment, transport=transport), detectors=detectors)


def _spy_detector():
    from commwatch.services.behavioural.detectors import frequency_spike
    return MagicMock(side_effect=frequency_spike.detect)


# ── run_detection ──────────────────────────────────────────────────────────────

def test_insufficient_data_skips_detectors(db, add_events, now):
    spy = _spy_detector()
    _spike(add_events, now, n=9)

    summary = _engine(detectors=[spy]).run_detection("test-tenant", db, now=now)

    assert summary.anomalies_detected == 0
    assert summary.anomalies_saved == 0
    assert summary.message == "Not enough data to detect anomalies"
    assert all(v == 0 for v in summary.counts_by_type.values())
    spy.assert_not_called()
    assert db.query(AnomalyDetection).count() == 0


def test_minimum_events_runs_detectors(db, add_events, now):
    spy = _spy_detector()
    _spike(add_events, now, n=10)

    summary = _engine(detectors=[spy]).run_detection("test-tenant", db, now=now)

    spy.assert_called_once()
    assert summary.message is None
    assert summary.anomalies_detected == 1
    assert summary.counts_by_type["frequency_spike"] == 1


def test_full_run_persists_every_candidate(db, add_events, now):
    _spike(add_events, now, n=10)

    summary = _engine().run_detection("test-tenant", db, now=now)

    assert summary.anomalies_detected == 2
    assert summary.anomalies_saved == 2
    assert summary.counts_by_type["frequency_spike"] == 1
    assert summary.counts_by_type["behavior_change"] == 1
    assert summary.anomalies_enriched == 0
    rows = db.query(AnomalyDetection).all()
    assert {r.tenant_id for r in rows} == {"test-tenant"}
    assert all(r.ai_explanation == "" for r in rows)


def test_related_events_truncated_before_persisting(db, add_events, now):
    _spike(add_events, now, n=15)

    _engine().run_detection("test-tenant", db, now=now)

    for row in db.query(AnomalyDetection).all():
        assert len(row.related_event_ids) <= 10


def test_enrichment_failure_still_saves_everything(db, add_events, now):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    _spike(add_events, now, n=10)

    summary = _engine(transport=httpx.MockTransport(handler), api_key="k").run_detection(
        "test-tenant", db, now=now,
    )

    assert summary.anomalies_saved == summary.anomalies_detected == 2
    assert summary.anomalies_enriched == 0
    assert all(r.ai_explanation == "" for r in db.query(AnomalyDetection).all())


def test_enrichment_success_is_persisted(db, add_events, now):
    import json

    def handler(request):
        args = {"analyses": [{
            "index": 1, "explanation": "Burst of invoices",
            "recommendations": ["Verify with accounts"], "adjusted_severity": "high",
        }]}
        return httpx.Response(200, json={"choices": [{"message": {"tool_calls": [
            {"function": {"name": "analyze_anomalies", "arguments": json.dumps(args)}},
        ]}}]})

    spy = _spy_detector()
    _spike(add_events, now, n=10)

    summary = _engine(detectors=[spy], transport=httpx.MockTransport(handler), api_key="k").run_detection(
        "test-tenant", db, now=now,
    )

    assert summary.anomalies_enriched == 1
    row = db.query(AnomalyDetection).one()
    assert row.ai_explanation == "Burst of invoices"
    assert row.ai_recommendations == ["Verify with accounts"]
    assert row.severity == Severity.high


def test_detection_does_not_write_baselines(db, add_events, now):
    _spike(add_events, now, n=12)
    engine = _engine()
    engine.recompute_baselines("test-tenant", db, now=now)
    before = [(b.entity_id, b.calculated_at, b.sample_size) for b in db.query(BehaviorBaseline).all()]

    engine.run_detection("test-tenant", db, now=now)

    after = [(b.entity_id, b.calculated_at, b.sample_size) for b in db.query(BehaviorBaseline).all()]
    assert after == before


def test_read_failure_propagates():
    db = MagicMock()
    db.query.side_effect = OperationalError("SELECT 1", {}, Exception("db down"))

    with pytest.raises(UpstreamReadError):
        _engine().run_detection("test-tenant", db)


def test_summary_to_dict_shape(db, add_events, now):
    _spike(add_events, now, n=3)
    d = _engine().run_detection("test-tenant", db, now=now).to_dict()
    assert set(d) == {"anomalies_detected", "anomalies_saved", "counts_by_type", "anomalies_enriched", "message"}


# ── recompute_baselines ────────────────────────────────────────────────────────

def test_recompute_below_floor_reports_message(db, add_events, now):
    _spike(add_events, now, n=9)

    summary = _engine().recompute_baselines("test-tenant", db, now=now)

    assert summary.baselines_updated == 0
    assert summary.message == "Not enough data to compute baselines"
    assert db.query(BehaviorBaseline).count() == 0


def test_recompute_writes_sender_baselines(db, add_events, now):
    _spike(add_events, now, n=10, sender="a@x.com")
    _spike(add_events, now, n=2, sender="b@x.com")

    summary = _engine().recompute_baselines("test-tenant", db, now=now)

    assert summary.baselines_updated == 1
    bl = db.query(BehaviorBaseline).one()
    assert bl.entity_id == "a@x.com"
    assert bl.sample_size == 10


def test_stored_baseline_reaches_detectors(db, add_events, now):
    _spike(add_events, now, n=10)
    engine = _engine()
    engine.recompute_baselines("test-tenant", db, now=now)

    engine.run_detection("test-tenant", db, now=now)

    spike = db.query(AnomalyDetection).filter_by(title="Frequency spike: a@x.com").one()
    assert spike.baseline_data["stored_sample_size"] == 10


@pytest.mark.parametrize("enrichment", [
    EnrichmentConfig(api_key="sk-’abc", base_url="https://llm.example.test/v1"),
    EnrichmentConfig(api_key="k", base_url="http://[::1/v1"),
])
def test_bad_enrichment_config_still_saves_everything(db, add_events, now, enrichment):
    from commwatch.services.behavioural.engine import DetectionEngine
    _spike(add_events, now, n=10)

    summary = DetectionEngine(EngineConfig(enrichment=enrichment)).run_detection("test-tenant", db, now=now)

    assert summary.anomalies_detected == 2
    assert summary.anomalies_saved == summary.anomalies_detected
    assert summary.anomalies_enriched == 0


def test_recompute_reads_whole_window_past_detection_cap(db, add_events, now):
    """Busy senders past max_events must not crowd out older senders' baselines."""
    add_events([("busy@x.com", now - timedelta(seconds=60 * (i + 1))) for i in range(600)])
    add_events([("quiet@x.com", now - timedelta(days=20, hours=i)) for i in range(5)])

    summary = _engine().recompute_baselines("test-tenant", db, now=now)

    assert summary.baselines_updated == 2
    sizes = {b.entity_id: b.sample_size for b in db.query(BehaviorBaseline).all()}
    assert sizes == {"busy@x.com": 600, "quiet@x.com": 5}
