"""
Minimal LLM client wrapper using Google Gemini.

Rationale:
- Use google-genai SDK (supported) for Gemini access, through its async client
  so a timeout really cancels the in-flight request.
- Keep interface tiny: call_llm(system_prompt, user_prompt) -> str.
- No retries / no fallback. Callers decide what a failure means.
"""

import os
import asyncio
from typing import Dict, Optional

try:
    from google import genai
    from google.genai import types
except Exception as e:  # pragma: no cover
    raise RuntimeError(
        "Missing dependency for Gemini client. Install 'google-genai'. "
        "Original import error: " + str(e)
    )


class LLMError(RuntimeError):
    """Raised for any failure to obtain text from the model."""


def get_api_key() -> Optional[str]:
    # Load API key lazily (after main.py sets env vars)
    return os.getenv("GEMINI_API_KEY") or os.getenv("LLM_API_KEY")


# One client per key so its HTTP connection pool is reused across calls
_clients: Dict[str, "genai.Client"] = {}


def _client_for(api_key: str) -> "genai.Client":
    client = _clients.get(api_key)
    if client is None:
        client = _clients[api_key] = genai.Client(api_key=api_key)
    return client


async def close_clients() -> None:
    """Close cached clients on shutdown."""
    while _clients:
        _, client = _clients.popitem()
        # Older SDK releases have no aclose
        aclose = getattr(client.aio, "aclose", None)
        if aclose is not None:
            await aclose()


async def call_llm(
    system_prompt: str,
    user_prompt: str,
    *,
    model_name: str,
    temperature: float = 0.5,
    max_tokens: int = 800,
    timeout_s: float = 12.0,
) -> str:
    """
    Call Gemini with a system instruction and user prompt under a hard timeout.
    """
    api_key = get_api_key()
    if not api_key:
        raise LLMError("GEMINI_API_KEY or LLM_API_KEY must be set in environment")

    client = _client_for(api_key)
    try:
        response = await asyncio.wait_for(
            client.aio.models.generate_content(
                model=model_name,
                contents=user_prompt,
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
            ),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError:
        raise LLMError(f"Gemini call timed out after {timeout_s:.1f}s")
    except Exception as e:
        raise LLMError(f"Gemini API error: {str(e)}")

    # Prefer the SDK's convenience property
    result = getattr(response, "text", None)
    if result:
        return result

    # Fallback: attempt to extract from candidates (SDK shape can vary across versions)
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        raise LLMError("Gemini returned no candidates.")

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) if content else None
    if parts:
        text0 = getattr(parts[0], "text", None)
        if text0:
            return text0

    raise LLMError("Gemini returned empty response")
