"""
Portfolio scoring through the language model.

Flow:
1. Truncate the extracted page text to the prompt budget
2. Single LLM call under its own timeout (no retries)
3. Extract the JSON payload from possibly-fenced model output
4. Merge the payload field by field over the configured defaults

Any failure in steps 1-3 yields None; merge_scores turns None (or a partial
payload) into a complete ScoreResult and reports which fields were defaulted.
"""

import json
import math
import re
import logging
from typing import Any, Dict, List, Optional, Tuple

from .config import DefaultScores, PipelineConfig
from .llm_client import LLMError, call_llm, get_api_key
from .schemas import Recommendation, ScoreResult

logger = logging.getLogger(__name__)

SUBSCORE_KEYS = ("uxThinking", "clarity", "storytelling", "professionalism")
PRIORITIES = ("high", "medium", "low")
READINESS_LEVELS = (
    "Ready for interviews",
    "Almost ready",
    "Needs more work",
    "Significant improvements needed",
)


_FENCE_RE = re.compile(r"```[A-Za-z]*[ \t]*\n?(.*?)```", re.DOTALL)
_DECODER = json.JSONDecoder()


def extract_json_payload(text: str) -> Dict[str, Any]:
    """
    Return the first JSON object in model output.

    The body of a ``` fence is preferred when there is one. Prose before or
    after the object is ignored. Raises json.JSONDecodeError when no object
    parses.
    """
    body = (text or "").strip()
    fenced = _FENCE_RE.search(body)
    if fenced:
        body = fenced.group(1)
    else:
        body = body.replace("```json", "").replace("```", "")

    pos = body.find("{")
    while pos != -1:
        try:
            payload, _ = _DECODER.raw_decode(body, pos)
            return payload
        except json.JSONDecodeError:
            pos = body.find("{", pos + 1)
    raise json.JSONDecodeError("no JSON object in model output", body, 0)


async def score_content(
    text: str,
    config: PipelineConfig,
    timeout_s: Optional[float] = None,
) -> Optional[Dict[str, Any]]:
    """Ask the model to rate the portfolio text. Returns the parsed payload or None."""
    if not get_api_key():
        logger.warning("scorer.skipped reason=missing_api_key")
        return None

    user_prompt = f"Analyze this portfolio:\n\n{text[:config.max_prompt_chars]}"
    try:
        response = await call_llm(
            config.prompt_template,
            user_prompt,
            model_name=config.llm_model,
            temperature=config.llm_temperature,
            max_tokens=config.llm_max_tokens,
            timeout_s=config.timeouts.scorer_s if timeout_s is None else timeout_s,
        )
    except LLMError as e:
        logger.warning("scorer.call_failed err=%s", str(e)[:200])
        return None

    try:
        payload = extract_json_payload(response)
    except json.JSONDecodeError as e:
        logger.warning("scorer.invalid_json err=%s raw=%s", e.msg, response[:500])
        return None

    logger.info("scorer.ok keys=%s", sorted(payload.keys()))
    return payload


def _as_score(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return max(0, min(100, int(round(value))))


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_text_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    items = [v.strip() for v in value if isinstance(v, str) and v.strip()]
    return items or None


def _as_recommendations(value: Any) -> Optional[List[Recommendation]]:
    if not isinstance(value, list):
        return None
    recs: List[Recommendation] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        priority = str(item.get("priority", "")).strip().lower()
        text = _as_text(item.get("text"))
        if priority not in PRIORITIES or not text:
            continue
        category = _as_text(item.get("category")) or "General"
        recs.append(Recommendation(priority=priority, category=category, text=text))
    return recs or None


def readiness_for(score: int) -> str:
    if score >= 85:
        return "Ready for interviews"
    if score >= 70:
        return "Almost ready"
    if score >= 55:
        return "Needs more work"
    return "Significant improvements needed"


def merge_scores(
    raw: Optional[Dict[str, Any]],
    defaults: DefaultScores,
) -> Tuple[ScoreResult, List[str]]:
    """
    Build a complete ScoreResult, preferring well-typed model values per field.

    Returns the result and the names of the fields that fell back to defaults.
    """
    raw = raw if isinstance(raw, dict) else {}
    degraded: List[str] = []

    def pick(name: str, value: Any, default: Any) -> Any:
        if value is None:
            degraded.append(name)
            return default
        return value

    overall = pick("overallScore", _as_score(raw.get("overallScore")), defaults.overall_score)

    raw_subscores = raw.get("scores")
    if not isinstance(raw_subscores, dict):
        raw_subscores = raw.get("subscores")
    if not isinstance(raw_subscores, dict):
        raw_subscores = {}
    subscores = {
        key: pick(f"subscores.{key}", _as_score(raw_subscores.get(key)), defaults.subscores[key])
        for key in SUBSCORE_KEYS
    }

    summary = pick("summary", _as_text(raw.get("summary")), defaults.summary)
    strengths = pick("strengths", _as_text_list(raw.get("strengths")), list(defaults.strengths))
    weaknesses = pick("weaknesses", _as_text_list(raw.get("weaknesses")), list(defaults.weaknesses))

    raw_recs = raw.get("topRecommendations")
    if raw_recs is None:
        raw_recs = raw.get("recommendations")
    recommendations = pick(
        "recommendations",
        _as_recommendations(raw_recs),
        [Recommendation(**r) for r in defaults.recommendations],
    )

    readiness = raw.get("interviewReadiness")
    if readiness not in READINESS_LEVELS:
        degraded.append("interviewReadiness")
        readiness = readiness_for(overall)

    standout = pick("standoutFeature", _as_text(raw.get("standoutFeature")), defaults.standout_feature)

    result = ScoreResult(
        overall_score=overall,
        subscores=subscores,
        summary=summary,
        strengths=strengths,
        weaknesses=weaknesses,
        recommendations=recommendations,
        interview_readiness=readiness,
        standout_feature=standout,
    )
    if degraded:
        logger.info("scorer.defaults_applied fields=%s", ",".join(degraded))
    return result, degraded
