"""Shared HTTP plumbing for OpenAI-compatible providers. All failures surface as UpstreamError."""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class UpstreamError(RuntimeError):
    """Completion or embedding call failed (network, timeout, auth, quota, malformed response)."""

    def __init__(self, message: str, *, provider_message: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider_message = provider_message
        self.status_code = status_code


def provider_error_message(resp: httpx.Response) -> str | None:
    """Extract error.message from an OpenAI-style error body. None if absent or not JSON."""
    try:
        data = resp.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    err = data.get("error")
    if isinstance(err, dict):
        msg = err.get("message")
        return str(msg) if msg else None
    if isinstance(err, str) and err:
        return err
    return None


def post_json(
    url: str,
    payload: dict[str, Any],
    *,
    api_key: str | None,
    timeout: float,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, Any]:
    """POST JSON with bearer auth and return the decoded object body."""
    if not api_key:
        raise UpstreamError("OPENAI_API_KEY is not configured")
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            resp = client.post(url, json=payload, headers=headers)
    except httpx.TimeoutException as e:
        raise UpstreamError(f"request to {url} timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        raise UpstreamError(str(e) or f"request to {url} failed") from e

    if resp.status_code >= 400:
        msg = provider_error_message(resp)
        logger.warning("Provider returned HTTP %s for %s: %s", resp.status_code, url, msg)
        raise UpstreamError(
            msg or f"HTTP {resp.status_code}",
            provider_message=msg,
            status_code=resp.status_code,
        )
    try:
        data = resp.json()
    except ValueError as e:
        raise UpstreamError("provider returned invalid JSON") from e
    if not isinstance(data, dict):
        raise UpstreamError("provider returned a non-object JSON body")
    return data
