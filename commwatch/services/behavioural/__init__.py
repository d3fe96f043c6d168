"""
CommWatch Behavioural Analytics
---------------------------------
Detects anomalies in a tenant's communication history using:
  1. Per-sender statistical baselines (volume, sentiment, typical hours/days)
  2. Independent heuristic detectors over a 30-day / 7-day window split
  3. Optional reasoning-service enrichment of the top candidates

Modules:
  event_window.py  - read the bounded event/trust snapshot for one run
  baseline.py      - compute, store and read per-entity baselines
  detectors/       - frequency, timing, sentiment, behavior and conversation detectors
  scoring.py       - candidate type, score clamping, severity bucketing
  enrichment.py    - best-effort explanation/recommendation adapter
  repository.py    - anomaly persistence, stats and review workflow
  engine.py        - DetectionEngine tying the run together
"""
