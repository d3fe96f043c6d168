"""
Detector pipeline.

Every detector is a pure function detect(window, baselines, config) returning
a list of AnomalyCandidates. Detectors share no state and may run in any order
or concurrently against the same snapshot.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence

from commwatch.services.shared.config import DetectionConfig
from commwatch.services.behavioural.baseline import BaselineIndex
from commwatch.services.behavioural.event_window import EventWindow
from commwatch.services.behavioural.scoring import AnomalyCandidate
from commwatch.services.behavioural.detectors import (
    frequency_spike,
    timing,
    sentiment_shift,
    behavior_change,
    conversation_mismatch,
)

Detector = Callable[[EventWindow, BaselineIndex, DetectionConfig], list[AnomalyCandidate]]

DETECTORS: list[Detector] = [
    frequency_spike.detect,
    timing.detect,
    sentiment_shift.detect,
    behavior_change.detect,
    conversation_mismatch.detect,
]


def run_detectors(
    window: EventWindow,
    baselines: BaselineIndex,
    config: DetectionConfig,
    detectors: Sequence[Detector] = DETECTORS,
) -> list[AnomalyCandidate]:
    """Run detectors in parallel; outputs are concatenated in registration order."""
    if not detectors:
        return []
    with ThreadPoolExecutor(max_workers=len(detectors)) as pool:
        results = pool.map(lambda fn: fn(window, baselines, config), detectors)
        return [candidate for batch in results for candidate in batch]
