"""
Pipeline configuration.

Rationale:
- One versioned object carries every timeout, default score and prompt the
  pipeline uses, so variants differ by configuration rather than by copy.
- Values come from the environment with sensible defaults; the object is
  immutable once built and injected wherever it is needed.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

CONFIG_VERSION = "3.0"

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
SCORING_PROMPT_PATH = os.path.join(BASE_DIR, "prompts", "scoring_system.txt")

ANALYSIS_MODES = ("fast", "standard", "thorough")


@dataclass(frozen=True)
class Timeouts:
    deadline_s: float = 45.0
    page_load_s: float = 12.0
    case_study_load_s: float = 5.0
    scorer_s: float = 12.0
    admission_wait_s: float = 5.0


@dataclass(frozen=True)
class DefaultScores:
    overall_score: int = 72
    subscores: Dict[str, int] = field(default_factory=lambda: {
        "uxThinking": 72,
        "clarity": 70,
        "storytelling": 68,
        "professionalism": 75,
    })
    summary: str = (
        "Portfolio analyzed successfully. Consider adding more detailed case "
        "studies to showcase your UX process."
    )
    strengths: Tuple[str, ...] = (
        "Portfolio accessible",
        "Professional presentation",
        "Clear navigation",
    )
    weaknesses: Tuple[str, ...] = ("Could benefit from more detailed case studies",)
    recommendations: Tuple[Dict[str, str], ...] = (
        {"priority": "high", "category": "UX",
         "text": "Add detailed case study documentation showing your design process"},
        {"priority": "medium", "category": "Clarity",
         "text": "Include project outcomes and measurable results"},
        {"priority": "medium", "category": "Storytelling",
         "text": "Show your design thinking step by step"},
    )
    standout_feature: str = "Professional portfolio design"


@dataclass(frozen=True)
class PipelineConfig:
    version: str = CONFIG_VERSION
    timeouts: Timeouts = field(default_factory=Timeouts)
    default_scores: DefaultScores = field(default_factory=DefaultScores)
    prompt_template: str = ""
    case_study_keywords: Tuple[str, ...] = ("case", "work", "project", "portfolio")
    case_study_limit: int = 3
    max_text_chars: int = 4000
    max_prompt_chars: int = 3000
    require_anchor_text: bool = True
    default_mode: str = "standard"
    max_concurrent_analyses: int = 2
    llm_model: str = "gemini-2.5-flash"
    llm_temperature: float = 0.5
    llm_max_tokens: int = 800
    screenshot_tmp_dir: str = ""


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("config.invalid_float name=%s value=%s default=%s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("config.invalid_int name=%s value=%s default=%s", name, raw, default)
        return default


def _read_prompt(path: str) -> str:
    """Read a prompt text file."""
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _env_keywords(default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv("CASE_STUDY_KEYWORDS")
    if not raw:
        return default
    words: List[str] = [w.strip().lower() for w in raw.split(",") if w.strip()]
    return tuple(words) or default


def load_config() -> PipelineConfig:
    """Build the pipeline configuration from environment variables."""
    timeouts = Timeouts(
        deadline_s=_env_float("ANALYZE_DEADLINE_S", Timeouts.deadline_s),
        page_load_s=_env_float("PAGE_LOAD_TIMEOUT_S", Timeouts.page_load_s),
        case_study_load_s=_env_float("CASE_STUDY_LOAD_TIMEOUT_S", Timeouts.case_study_load_s),
        scorer_s=_env_float("SCORER_TIMEOUT_S", Timeouts.scorer_s),
        admission_wait_s=_env_float("ADMISSION_WAIT_S", Timeouts.admission_wait_s),
    )

    mode = os.getenv("ANALYSIS_MODE", "standard").strip().lower()
    if mode not in ANALYSIS_MODES:
        logger.warning("config.invalid_mode value=%s default=standard", mode)
        mode = "standard"

    config = PipelineConfig(
        timeouts=timeouts,
        prompt_template=_read_prompt(SCORING_PROMPT_PATH),
        case_study_keywords=_env_keywords(PipelineConfig.case_study_keywords),
        case_study_limit=max(1, _env_int("CASE_STUDY_LIMIT", PipelineConfig.case_study_limit)),
        max_text_chars=_env_int("MAX_TEXT_CHARS", PipelineConfig.max_text_chars),
        max_prompt_chars=_env_int("MAX_PROMPT_CHARS", PipelineConfig.max_prompt_chars),
        default_mode=mode,
        max_concurrent_analyses=max(1, _env_int("MAX_CONCURRENT_ANALYSES", PipelineConfig.max_concurrent_analyses)),
        llm_model=os.getenv("GEMINI_MODEL", PipelineConfig.llm_model),
        llm_temperature=_env_float("LLM_TEMPERATURE", PipelineConfig.llm_temperature),
        llm_max_tokens=_env_int("MAX_LLM_TOKENS", PipelineConfig.llm_max_tokens),
        screenshot_tmp_dir=os.getenv("SCREENSHOT_TMP_DIR", ""),
    )
    logger.info(
        "config.loaded version=%s mode=%s deadline_s=%.1f max_concurrent=%d",
        config.version,
        config.default_mode,
        config.timeouts.deadline_s,
        config.max_concurrent_analyses,
    )
    return config
