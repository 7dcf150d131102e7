"""
Screenshot storage on Cloudinary.

Requires env vars:
  - CLOUDINARY_CLOUD_NAME
  - CLOUDINARY_API_KEY
  - CLOUDINARY_API_SECRET
Optional:
  - CLOUDINARY_SCREENSHOT_FOLDER
  - CLOUDINARY_UPLOAD_TIMEOUT_S (default 20)
"""

import io
import os
import time
import asyncio
import secrets
import logging

import cloudinary
import cloudinary.uploader

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when an upload cannot produce a public URL."""


def screenshot_folder() -> str:
    return os.getenv("CLOUDINARY_SCREENSHOT_FOLDER", "portfolio-screenshots").strip() or "portfolio-screenshots"


def unique_name(prefix: str) -> str:
    """Timestamp plus random suffix so concurrent uploads never collide."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def upload_timeout_s() -> float:
    try:
        return float(os.getenv("CLOUDINARY_UPLOAD_TIMEOUT_S", "20"))
    except ValueError:
        return 20.0


def upload_screenshot(data: bytes, public_id: str) -> str:
    """Upload PNG bytes and return their public secure_url."""
    cloud_name = os.getenv("CLOUDINARY_CLOUD_NAME")
    api_key = os.getenv("CLOUDINARY_API_KEY")
    api_secret = os.getenv("CLOUDINARY_API_SECRET")
    if not cloud_name or not api_key or not api_secret:
        raise StorageError("Cloudinary env vars missing (CLOUDINARY_CLOUD_NAME/API_KEY/API_SECRET)")

    cloudinary.config(
        cloud_name=cloud_name,
        api_key=api_key,
        api_secret=api_secret,
        secure=True,
    )

    try:
        result = cloudinary.uploader.upload(
            io.BytesIO(data),
            resource_type="image",
            folder=screenshot_folder(),
            public_id=public_id,
            overwrite=False,
            use_filename=False,
            unique_filename=False,
            timeout=upload_timeout_s(),
        )
    except Exception as e:
        raise StorageError(f"Cloudinary upload failed: {e}")

    url = result.get("secure_url") or result.get("url")
    if not url:
        raise StorageError("Cloudinary upload succeeded but returned no URL")
    logger.info("storage.uploaded public_id=%s", public_id)
    return str(url)


async def upload_screenshot_async(data: bytes, public_id: str) -> str:
    """
    Run the blocking upload in a worker thread.

    A request already on the wire cannot be aborted. If the caller is
    cancelled, it still waits for the thread to finish (the Cloudinary
    timeout bounds this) and drops the result, so the pool slot stays held
    until no upload is left running.
    """
    upload = asyncio.ensure_future(asyncio.to_thread(upload_screenshot, data, public_id))
    try:
        return await asyncio.shield(upload)
    except asyncio.CancelledError:
        await asyncio.wait({upload})
        if upload.cancelled() or upload.exception() is not None:
            logger.info("storage.upload_abandoned public_id=%s", public_id)
        else:
            logger.info("storage.upload_discarded public_id=%s url=%s", public_id, upload.result())
        raise
