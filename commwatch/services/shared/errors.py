"""
Domain exceptions for the CommWatch engine.

Only failures the caller must see are exceptions. Insufficient data, enrichment
failures and per-record persistence failures are reported in result objects instead.
"""


class CommWatchError(Exception):
    """Base exception for engine failures."""
    pass


class UpstreamReadError(CommWatchError):
    """The event, baseline or trust source could not be read. Fatal to a run."""
    pass


class InvalidStatusTransition(CommWatchError):
    """A status update named a value outside the AnomalyStatus enum."""

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Unknown anomaly status '{status}'")


class AnomalyNotFound(CommWatchError):
    def __init__(self, anomaly_id: int):
        self.anomaly_id = anomaly_id
        super().__init__(f"Anomaly {anomaly_id} not found")
