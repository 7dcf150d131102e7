"""
Audit rows for the legacy /review flow.

Rows go to a PostgREST-style table endpoint. Writes are fire-and-forget:
failures are logged and never reach the caller, and nothing is retried.

Requires env vars:
  - AUDIT_STORE_URL
  - AUDIT_STORE_KEY
Optional:
  - AUDIT_TABLE (default: portfolio_reviews)
"""

import os
import asyncio
import logging
from typing import Optional, Set

import httpx

logger = logging.getLogger(__name__)

AUDIT_TIMEOUT_S = float(os.getenv("AUDIT_TIMEOUT_S", "10"))

# Strong references so pending writes are not garbage collected
_pending: Set["asyncio.Task[None]"] = set()


class AuditStoreNotConfigured(RuntimeError):
    pass


async def insert_review_record(
    email: Optional[str],
    url: str,
    status: str,
    screenshot_url: Optional[str],
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    base_url = os.getenv("AUDIT_STORE_URL")
    key = os.getenv("AUDIT_STORE_KEY")
    if not base_url or not key:
        raise AuditStoreNotConfigured("AUDIT_STORE_URL and AUDIT_STORE_KEY must be set")

    table = os.getenv("AUDIT_TABLE", "portfolio_reviews")
    endpoint = f"{base_url.rstrip('/')}/rest/v1/{table}"
    row = {"email": email, "url": url, "status": status, "screenshot_url": screenshot_url}

    async with httpx.AsyncClient(timeout=AUDIT_TIMEOUT_S, transport=transport) as client:
        response = await client.post(
            endpoint,
            json=[row],
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Prefer": "return=minimal",
            },
        )
        response.raise_for_status()
    logger.info("audit.inserted table=%s url=%s status=%s", table, url, status)


def _log_outcome(task: "asyncio.Task[None]") -> None:
    _pending.discard(task)
    if task.cancelled():
        logger.warning("audit.insert_cancelled")
        return
    err = task.exception()
    if err is not None:
        logger.warning("audit.insert_failed err=%s", str(err)[:200])


def schedule_review_record(
    email: Optional[str],
    url: str,
    status: str,
    screenshot_url: Optional[str],
) -> "asyncio.Task[None]":
    """Start the insert in the background and return immediately."""
    task = asyncio.ensure_future(insert_review_record(email, url, status, screenshot_url))
    _pending.add(task)
    task.add_done_callback(_log_outcome)
    return task
