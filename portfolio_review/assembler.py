"""
Core orchestration / pipeline.

Flow (strictly sequential within one request):
1. LOADING     - open the portfolio URL with fallback wait strategies
2. EXTRACTING  - pull text, title and links; pick case-study candidates
3. CAPTURING   - screenshot the case-study pages (or the homepage) and upload
4. SCORING     - one LLM call on the extracted (or placeholder) text
5. ASSEMBLED   - merge everything over the defaults into an AnalysisReport

A deadline armed at request start races the pipeline. If it fires first the
pipeline task is cancelled (navigation stops, and the browser closes once
any in-flight upload returns) and the default report is returned instead.
Every step degrades on its own; only the deadline short-circuits the request.

Step timeouts are cut to the time left before the deadline, keeping the
scorer's budget in reserve. Page captures stop once too little remains.
"""

import time
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from . import capturer, fetcher, scorer
from .browser import launch_browser
from .capturer import CAPTURE_PLANS, DESKTOP_VIEWPORT, CapturedPage
from .config import PipelineConfig
from .fetcher import ExtractedContent, Link
from .pool import AnalysisPool
from .schemas import AnalysisReport, CaseStudyReport, Screenshots, Section

logger = logging.getLogger(__name__)

HOMEPAGE_TITLE = "Portfolio Homepage"


class Stage(str, Enum):
    INIT = "INIT"
    LOADING = "LOADING"
    EXTRACTING = "EXTRACTING"
    CAPTURING = "CAPTURING"
    SCORING = "SCORING"
    ASSEMBLED = "ASSEMBLED"


# Below this a step is not worth starting
MIN_STEP_S = 0.5


@dataclass
class PipelineRun:
    url: str
    mode: str
    stage: Stage = Stage.INIT
    started: float = field(default_factory=time.monotonic)
    deadline_s: Optional[float] = None

    def advance(self, stage: Stage) -> None:
        logger.info(
            "pipeline.stage url=%s from=%s to=%s elapsed_ms=%d",
            self.url,
            self.stage.value,
            stage.value,
            self.elapsed_ms(),
        )
        self.stage = stage

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)

    def budget(self, step_s: float, reserve_s: float = 0.0) -> float:
        """A step's timeout, cut so that `reserve_s` still fits before the deadline."""
        if self.deadline_s is None:
            return step_s
        remaining = self.deadline_s - (time.monotonic() - self.started) - reserve_s
        return max(0.0, min(step_s, remaining))


@dataclass
class AnalysisOutcome:
    report: AnalysisReport
    deadline_exceeded: bool
    stage: Stage
    elapsed_ms: int


def placeholder_text(url: str) -> str:
    return f"Portfolio URL: {url}. Unable to fully load page content."


def _hostname(url: str) -> str:
    return urlparse(url).hostname or url


def build_report(
    url: str,
    content: ExtractedContent,
    candidates: List[Link],
    captures: Dict[str, CapturedPage],
    raw_score: Optional[Dict[str, Any]],
    config: PipelineConfig,
) -> AnalysisReport:
    """Merge pipeline outputs over the defaults into a fully populated report."""
    score, degraded = scorer.merge_scores(raw_score, config.default_scores)
    top_strengths = score.strengths[:2]
    top_recs = score.recommendations[:2]

    case_studies: List[CaseStudyReport] = []
    for i, link in enumerate(candidates):
        captured = captures.get(link.href)
        case_studies.append(CaseStudyReport(
            url=link.href,
            title=link.anchor_text or (captured.title if captured else "") or f"Case Study {i + 1}",
            word_count=captured.word_count if captured else 0,
            score=score.overall_score,
            subscores=dict(score.subscores),
            screenshots=captured.screenshots if captured else Screenshots(),
            sections=[Section(
                type="overview",
                name="Overview",
                ai_review="Case study detected.",
                score=score.overall_score,
            )],
            summary=f"Case study from {_hostname(link.href)}",
            strengths=top_strengths,
            recommendations=top_recs,
        ))

    if not case_studies:
        captured = captures.get(url)
        case_studies.append(CaseStudyReport(
            url=url,
            title=HOMEPAGE_TITLE,
            word_count=content.word_count,
            score=score.overall_score,
            subscores=dict(score.subscores),
            screenshots=captured.screenshots if captured else Screenshots(),
            sections=[Section(
                type="overview",
                name="Overview",
                ai_review="Portfolio analyzed.",
                score=score.overall_score,
            )],
            summary="Portfolio homepage analysis",
            strengths=top_strengths,
            recommendations=top_recs,
        ))

    return AnalysisReport(
        portfolio_url=url,
        analyzed_at=datetime.now(timezone.utc).isoformat(),
        analysis_version=config.version,
        overall_score=score.overall_score,
        subscores=score.subscores,
        summary=score.summary,
        strengths=score.strengths,
        weaknesses=score.weaknesses,
        interview_readiness=score.interview_readiness,
        standout_feature=score.standout_feature,
        case_studies=case_studies,
        top_recommendations=score.recommendations,
        degraded_fields=degraded,
    )


def default_report(url: str, config: PipelineConfig) -> AnalysisReport:
    """The report returned when nothing at all could be computed."""
    return build_report(url, ExtractedContent.empty(), [], {}, None, config)


async def run_pipeline(run: PipelineRun, config: PipelineConfig) -> AnalysisReport:
    url = run.url
    kinds = CAPTURE_PLANS[run.mode]
    timeouts = config.timeouts
    content = ExtractedContent.empty()
    candidates: List[Link] = []
    captures: Dict[str, CapturedPage] = {}

    async with launch_browser() as browser:
        context = await browser.new_context(viewport=DESKTOP_VIEWPORT)
        page = await context.new_page()
        if run.mode == "fast":
            await fetcher.block_heavy_resources(page)

        run.advance(Stage.LOADING)
        load_budget_s = max(MIN_STEP_S, run.budget(timeouts.page_load_s, reserve_s=timeouts.scorer_s))
        loaded = await fetcher.load_page(page, url, load_budget_s) is not None

        run.advance(Stage.EXTRACTING)
        if loaded:
            content = await fetcher.extract_content(page, config)
            candidates = fetcher.select_case_studies(
                content.links,
                config.case_study_keywords,
                config.case_study_limit,
            )
        logger.info("pipeline.candidates url=%s count=%d", url, len(candidates))

        run.advance(Stage.CAPTURING)
        if kinds and loaded:
            targets = [(link.href, f"case-study-{i + 1}", None) for i, link in enumerate(candidates)]
            if not targets:
                targets = [(url, "homepage", page)]
            for target, prefix, reuse in targets:
                budget_s = run.budget(timeouts.case_study_load_s, reserve_s=timeouts.scorer_s)
                if budget_s < MIN_STEP_S:
                    logger.warning(
                        "pipeline.capture_skipped url=%s target=%s budget_s=%.2f",
                        url,
                        target,
                        budget_s,
                    )
                    break
                captures[target] = await capturer.capture_page(
                    browser, target, kinds, config, prefix=prefix, page=reuse, load_budget_s=budget_s,
                )
    # Browser is closed before the LLM call to free memory early

    run.advance(Stage.SCORING)
    raw_score = await scorer.score_content(
        content.text or placeholder_text(url),
        config,
        timeout_s=max(MIN_STEP_S, run.budget(timeouts.scorer_s)),
    )

    report = build_report(url, content, candidates, captures, raw_score, config)
    run.advance(Stage.ASSEMBLED)
    return report


async def analyze_portfolio(
    url: str,
    mode: str,
    config: PipelineConfig,
    pool: AnalysisPool,
) -> AnalysisOutcome:
    """
    Run the pipeline against the request deadline.

    Raises PoolSaturated when no worker slot frees up in time; any other
    exception escaping the pipeline propagates to the caller.
    """
    deadline_s = config.timeouts.deadline_s
    run = PipelineRun(url=url, mode=mode, deadline_s=deadline_s)

    task = await pool.submit(run_pipeline(run, config))
    remaining = max(0.0, deadline_s - (time.monotonic() - run.started))
    try:
        done, _ = await asyncio.wait({task}, timeout=remaining)
    finally:
        if not task.done():
            task.cancel()

    if task in done:
        return AnalysisOutcome(
            report=task.result(),
            deadline_exceeded=False,
            stage=run.stage,
            elapsed_ms=run.elapsed_ms(),
        )

    logger.warning(
        "analyze.deadline_exceeded url=%s stage=%s deadline_s=%.1f",
        url,
        run.stage.value,
        deadline_s,
    )
    return AnalysisOutcome(
        report=default_report(url, config),
        deadline_exceeded=True,
        stage=run.stage,
        elapsed_ms=run.elapsed_ms(),
    )
