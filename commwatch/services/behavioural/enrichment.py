"""
Anomaly Enrichment Adapter
----------------------------
Best-effort call to an OpenAI-compatible chat-completions endpoint that
explains the first few candidates of a run and suggests actions.

One request per run, explicit timeout, no retries. The model is forced to call
the `analyze_anomalies` function, whose arguments carry one analysis per
candidate (1-based index):

  explanation        - what the anomaly means in context
  recommendations    - concrete follow-up actions
  adjusted_severity  - optional severity override (low/medium/high/critical)

Fail-open: a missing or unencodable API key, a bad base URL, a transport error,
a non-200 response or a malformed payload yields EnrichmentResult(ok=False,
reason=...). Items that fail validation are dropped individually so a partial
response still enriches the rest. enrich() never raises.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from commwatch.services.shared.config import EnrichmentConfig
from commwatch.services.shared.models import Severity
from commwatch.services.behavioural.scoring import AnomalyCandidate

logger = structlog.get_logger()

FUNCTION_NAME = "analyze_anomalies"
EXCERPTS_PER_CANDIDATE = 3

SYSTEM_PROMPT = (
    "You are an analyst reviewing anomalies detected in a person's correspondence. "
    "You explain what each anomaly means concretely (who, what, why it matters) and "
    "propose practical, proportionate follow-up actions. Answer through the provided function."
)

_ANALYSES_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "analyses": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "index":       {"type": "number", "description": "Anomaly index (1-based)"},
                    "explanation": {"type": "string", "description": "Explanation naming senders and context"},
                    "recommendations": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "2-3 concrete recommended actions",
                    },
                    "adjusted_severity": {
                        "type": "string",
                        "enum": [s.value for s in Severity],
                        "description": "Severity adjusted after analysis",
                    },
                },
                "required": ["index", "explanation", "recommendations"],
            },
        },
    },
    "required": ["analyses"],
}


class AnomalyAnalysis(BaseModel):
    index:             int
    explanation:       str       = ""
    recommendations:   list[str] = []
    adjusted_severity: Optional[str] = None

    @property
    def severity_override(self) -> Optional[Severity]:
        try:
            return Severity(self.adjusted_severity) if self.adjusted_severity else None
        except ValueError:
            return None


@dataclass
class EnrichmentResult:
    ok:       bool
    analyses: dict[int, AnomalyAnalysis] = field(default_factory=dict)  # 0-based candidate index
    reason:   str = ""

    @classmethod
    def failed(cls, reason: str) -> "EnrichmentResult":
        return cls(ok=False, reason=reason)


def _candidate_block(i: int, c: AnomalyCandidate) -> str:
    details = (c.pattern_data or {}).get("events_details") or []
    excerpts = "\n".join(
        f"  - From: {d.get('sender')}\n"
        f"    Subject: {d.get('subject')}\n"
        f"    Date: {d.get('date')}\n"
        f"    Content: {d.get('body_excerpt')}"
        for d in details[:EXCERPTS_PER_CANDIDATE]
    )
    pattern = {k: v for k, v in (c.pattern_data or {}).items() if k != "events_details"}
    return (
        f"{i}. Type: {c.anomaly_type.value}\n"
        f"   Title: {c.title}\n"
        f"   Description: {c.description}\n"
        f"   Deviation score: {c.deviation_score:.0f}/100\n"
        f"   Pattern: {json.dumps(pattern, default=str)}\n"
        f"   RELATED MESSAGES:\n{excerpts or '   (no details available)'}\n"
    )


def build_prompt(candidates: Sequence[AnomalyCandidate]) -> str:
    blocks = "\n".join(_candidate_block(i, c) for i, c in enumerate(candidates, start=1))
    return (
        "DETECTED ANOMALIES:\n"
        f"{blocks}\n"
        "For each anomaly:\n"
        "1. Explain what it means concretely (who, what, why it is concerning)\n"
        "2. Propose 2-3 concrete follow-up actions\n"
        "3. Adjust the severity only if the context clearly warrants it"
    )


def build_request(candidates: Sequence[AnomalyCandidate], model: str) -> dict[str, Any]:
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user",   "content": build_prompt(candidates)},
        ],
        "tools": [{
            "type": "function",
            "function": {
                "name": FUNCTION_NAME,
                "description": "Explain anomalies and recommend actions",
                "parameters": _ANALYSES_SCHEMA,
            },
        }],
        "tool_choice": {"type": "function", "function": {"name": FUNCTION_NAME}},
    }


def parse_response(body: Any, batch_size: int) -> dict[int, AnomalyAnalysis]:
    """
    Extract analyses from a chat-completions response body.
    Raises ValueError when the envelope itself is unusable; bad items are skipped.
    """
    try:
        arguments = body["choices"][0]["message"]["tool_calls"][0]["function"]["arguments"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ValueError(f"no {FUNCTION_NAME} tool call in response") from exc

    parsed = json.loads(arguments) if isinstance(arguments, str) else arguments
    if not isinstance(parsed, dict) or not isinstance(parsed.get("analyses"), list):
        raise ValueError("tool call arguments carry no analyses list")

    analyses: dict[int, AnomalyAnalysis] = {}
    for raw in parsed["analyses"]:
        try:
            item = AnomalyAnalysis.model_validate(raw)
        except ValidationError:
            logger.debug("enrichment_item_invalid", item=raw)
            continue
        idx = item.index - 1
        if 0 <= idx < batch_size:
            analyses[idx] = item
    return analyses


class Enricher:
    """Single-attempt client for the reasoning service."""

    def __init__(
        self,
        config: EnrichmentConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config
        self._transport = transport

    def enrich(self, candidates: Sequence[AnomalyCandidate]) -> EnrichmentResult:
        if not self.config.enabled:
            return EnrichmentResult.failed("missing_api_key")

        batch = list(candidates[: self.config.max_candidates])
        if not batch:
            return EnrichmentResult(ok=True)

        try:
            with httpx.Client(timeout=self.config.timeout_sec, transport=self._transport) as client:
                resp = client.post(
                    f"{self.config.base_url.rstrip('/')}/chat/completions",
                    json=build_request(batch, self.config.model),
                    headers={"Authorization": f"Bearer {self.config.api_key}"},
                )
        except httpx.HTTPError as exc:
            return EnrichmentResult.failed(f"transport_error: {exc}")
        except (httpx.InvalidURL, ValueError) as exc:
            # bad base URL, or a key that cannot be encoded into a header
            logger.warning("enrichment_config_invalid", error=str(exc))
            return EnrichmentResult.failed(f"invalid_config: {exc}")

        if resp.status_code != 200:
            return EnrichmentResult.failed(f"http_{resp.status_code}")

        try:
            analyses = parse_response(resp.json(), len(batch))
        except ValueError as exc:
            return EnrichmentResult.failed(f"malformed_response: {exc}")

        return EnrichmentResult(ok=True, analyses=analyses)


def apply_enrichment(
    candidates: Sequence[AnomalyCandidate],
    result: EnrichmentResult,
) -> int:
    """Annotate candidates in place from a successful result. Returns how many were enriched."""
    applied = 0
    for idx, analysis in result.analyses.items():
        if idx >= len(candidates):
            continue
        candidate = candidates[idx]
        candidate.ai_explanation = analysis.explanation
        candidate.ai_recommendations = list(analysis.recommendations)
        override = analysis.severity_override
        if override is not None:
            candidate.severity = override
        applied += 1
    return applied
