"""
FastAPI entrypoint for the portfolio review service.

Routes:
- POST /analyze : deadline-bounded portfolio analysis report
- POST /review  : legacy single screenshot + audit row
- GET  /healthz : liveness
- GET  /        : service descriptor

Every /analyze request gets exactly one JSON response. Pipeline sub-step
failures are absorbed into defaults; only unexpected errors produce a 500.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv, find_dotenv

# Load environment variables from .env file (optional).
# Some editors save .env as UTF-16; support both UTF-8 and UTF-16.
_dotenv_path = find_dotenv(usecwd=True) or None
if _dotenv_path:
    try:
        load_dotenv(_dotenv_path)
    except UnicodeError:
        load_dotenv(_dotenv_path, encoding="utf-16")
else:
    load_dotenv()

# Configure logging with environment-based level
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import audit, capturer, llm_client
from .assembler import analyze_portfolio
from .config import ANALYSIS_MODES, CONFIG_VERSION, load_config
from .pool import AnalysisPool, PoolSaturated
from .schemas import AnalyzeRequest, ReviewRequest

SERVICE_NAME = "portfolio_review"
REVIEW_LOAD_TIMEOUT_S = float(os.getenv("REVIEW_LOAD_TIMEOUT_S", "30"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = load_config()
    app.state.config = config
    app.state.pool = AnalysisPool(config.max_concurrent_analyses, config.timeouts.admission_wait_s)
    logger.info("service.started version=%s log_level=%s", config.version, LOG_LEVEL)
    yield
    await llm_client.close_clients()


app = FastAPI(title="Portfolio Review Service", version=CONFIG_VERSION, lifespan=lifespan)


def _describe_errors(errors) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in errors
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies get the same 400 envelopes as a missing url."""
    errors = exc.errors()
    url_error = any("url" in err.get("loc", ()) for err in errors)
    logger.info("request.invalid path=%s errors=%s", request.url.path, _describe_errors(errors))

    if request.url.path == "/review":
        content = {"error": "URL is required" if url_error else "Invalid request"}
    elif url_error:
        content = {"success": False, "error": "URL required"}
    else:
        content = {"success": False, "error": "Invalid request", "details": _describe_errors(errors)}
    return JSONResponse(status_code=400, content=content)


@app.get("/")
def root():
    return {
        "service": SERVICE_NAME,
        "version": CONFIG_VERSION,
        "endpoints": ["/analyze", "/review", "/healthz"],
        "note": "Every analysis answers within its deadline, with defaults for anything not computed",
    }


@app.get("/healthz")
def healthz():
    return {"status": "ok", "version": CONFIG_VERSION}


@app.post("/analyze")
async def analyze_endpoint(request: Request, body: Optional[AnalyzeRequest] = None):
    url = ((body.url if body else None) or "").strip()
    if not url:
        return JSONResponse(status_code=400, content={"success": False, "error": "URL required"})

    config = request.app.state.config
    mode = ((body.mode if body else None) or config.default_mode).strip().lower()
    if mode not in ANALYSIS_MODES:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid mode", "details": f"mode must be one of {list(ANALYSIS_MODES)}"},
        )

    logger.info("analyze.request url=%s mode=%s", url, mode)
    try:
        outcome = await analyze_portfolio(url, mode, config, request.app.state.pool)
    except PoolSaturated as e:
        logger.warning("analyze.rejected url=%s err=%s", url, e)
        return JSONResponse(
            status_code=429,
            content={"success": False, "error": "Too many analyses in progress", "details": str(e)},
        )
    except Exception as e:
        logger.error("analyze.failed url=%s", url, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Analysis failed", "details": str(e)},
        )

    logger.info(
        "analyze.response url=%s overall=%d case_studies=%d deadline_exceeded=%s stage=%s elapsed_ms=%d",
        url,
        outcome.report.overall_score,
        len(outcome.report.case_studies),
        outcome.deadline_exceeded,
        outcome.stage.value,
        outcome.elapsed_ms,
    )
    return {
        "success": True,
        "data": outcome.report.model_dump(by_alias=True),
        "timing": {
            "totalMs": outcome.elapsed_ms,
            "deadlineExceeded": outcome.deadline_exceeded,
            "stage": outcome.stage.value,
        },
    }


@app.post("/review")
async def review_endpoint(request: Request, body: Optional[ReviewRequest] = None):
    url = ((body.url if body else None) or "").strip()
    if not url:
        return JSONResponse(status_code=400, content={"error": "URL is required"})
    email = body.email

    logger.info("review.request url=%s", url)
    try:
        task = await request.app.state.pool.submit(
            capturer.capture_review_screenshot(url, request.app.state.config, REVIEW_LOAD_TIMEOUT_S)
        )
        screenshot_url = await task
    except PoolSaturated as e:
        logger.warning("review.rejected url=%s err=%s", url, e)
        return JSONResponse(status_code=429, content={"error": "Too many requests"})
    except Exception:
        logger.error("review.failed url=%s", url, exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Server error"})

    audit.schedule_review_record(email, url, "done", screenshot_url)
    return {"success": True, "screenshot_url": screenshot_url}


def run():
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3001")))


if __name__ == "__main__":
    run()
