"""Rate limit handling and error mapping for Google API requests."""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any

import httpx

from syncer.logic.exceptions import ProviderAuthorizationError, ProviderError

logger = logging.getLogger("drivesync-syncer.google_rate_limiter")

# Maximum attempts for a rate-limited request
MAX_RATE_LIMIT_RETRIES = 6

# Default sleep time when Retry-After is not provided
DEFAULT_RETRY_SECONDS = 60

# Buffer to add to retry-after time
RETRY_BUFFER_SECONDS = 3


async def request_with_rate_limit(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str],
    params: dict[str, Any] | None = None,
) -> httpx.Response:
    """Execute a GET request, sleeping and retrying on 429.

    Args:
        client: httpx async client.
        url: Request URL.
        headers: Request headers (must include Authorization).
        params: Query parameters.

    Returns:
        Successful httpx.Response (2xx).

    Raises:
        ProviderAuthorizationError: On 401 and non-quota 403 responses.
        ProviderError: On transport errors, other non-2xx responses, or
            when rate limit retries are exhausted.
    """
    for attempt in range(MAX_RATE_LIMIT_RETRIES):
        try:
            response = await client.get(url, headers=headers, params=params)
        except httpx.HTTPError as e:
            raise ProviderError(f"Request to {url} failed: {e}") from e

        if 200 <= response.status_code < 300:
            return response

        if response.status_code == 429 or (
            response.status_code == 403 and _is_quota_error(response)
        ):
            if attempt >= MAX_RATE_LIMIT_RETRIES - 1:
                break
            await handle_rate_limit(response)
            continue

        if response.status_code in (401, 403):
            raise ProviderAuthorizationError(
                f"Unauthorized ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        raise ProviderError(
            f"HTTP {response.status_code}: {response.text}",
            status_code=response.status_code,
        )

    raise ProviderError("Rate limit retries exhausted", status_code=429)


async def handle_rate_limit(response: httpx.Response) -> None:
    """Sleep for the duration a 429 response asks for.

    Args:
        response: The 429 response from Google API.
    """
    retry_after = response.headers.get("Retry-After")

    if retry_after and retry_after.isdigit():
        sleep_time = int(retry_after)
    else:
        sleep_time = _parse_retry_timestamp(response.text)

    sleep_time += RETRY_BUFFER_SECONDS

    logger.warning(f"⚠️ Rate limited by Google Drive. Sleeping for {sleep_time}s")
    await asyncio.sleep(sleep_time)


def _is_quota_error(response: httpx.Response) -> bool:
    """Drive reports per-user quota exhaustion as 403 rateLimitExceeded."""
    return "rateLimitExceeded" in response.text or "userRateLimitExceeded" in response.text


def _parse_retry_timestamp(error_text: str) -> int:
    """Extract retry delay from a "Retry after <timestamp>" error message.

    Args:
        error_text: The error response body text.

    Returns:
        Seconds to wait, or DEFAULT_RETRY_SECONDS if parsing fails.
    """
    match = re.search(
        r"Retry after (\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z)",
        error_text,
    )
    if match:
        try:
            retry_after_dt = datetime.fromisoformat(
                match.group(1).replace("Z", "+00:00")
            )
            delta = (retry_after_dt - datetime.now(timezone.utc)).total_seconds()
            return max(int(delta), 0)
        except (ValueError, OSError):
            pass

    return DEFAULT_RETRY_SECONDS
