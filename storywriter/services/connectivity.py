"""Backend connectivity check."""

from typing import Optional

import httpx

from storywriter.utils.logging import LogCategory, StructuredLogger


async def check_backend_connectivity(
    base_url: str,
    logger: StructuredLogger,
    http_client: Optional[httpx.AsyncClient] = None,
    timeout: float = 5.0,
) -> bool:
    """
    Test whether the story backend's health endpoint is reachable.

    Args:
        base_url: Backend base URL
        logger: Structured logger
        http_client: Optional httpx.AsyncClient (a short-lived one is used if omitted)
        timeout: Request timeout in seconds

    Returns:
        True if the health check returned a 2xx status, False otherwise
    """
    url = f"{base_url.rstrip('/')}/api/health"
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=timeout)

    try:
        response = await client.get(url, headers={"Accept": "application/json"}, timeout=timeout)
    except httpx.TimeoutException:
        logger.warn(LogCategory.SYSTEM, "Backend connectivity test timed out", {"url": url})
        return False
    except httpx.HTTPError as e:
        logger.warn(
            LogCategory.SYSTEM,
            "Backend connectivity test failed",
            {"url": url, "error": f"{type(e).__name__}: {e}"},
        )
        return False
    finally:
        if owns_client:
            await client.aclose()

    if response.is_success:
        logger.system_event("Backend connectivity test passed", {"url": url}, "✅")
        return True

    logger.warn(
        LogCategory.SYSTEM,
        "Backend health check returned non-success status",
        {"url": url, "status_code": response.status_code},
    )
    return False
