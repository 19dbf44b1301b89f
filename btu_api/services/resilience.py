# btu_api/services/resilience.py
"""
Resilience helpers for external service calls.

Backend SDKs apply their own per-request timeouts; the helper here bounds a
whole multi-step operation so a hung upload cannot hold an HTTP request open.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


class OperationTimeoutError(Exception):
    """Raised when a bounded operation exceeds its timeout."""

    pass


async def with_timeout(coro, timeout_seconds: float, error_message: str = "Operation timed out"):
    """
    Execute a coroutine with a timeout.

    Args:
        coro: The coroutine to execute
        timeout_seconds: Maximum time to wait
        error_message: Error message if timeout occurs

    Raises:
        OperationTimeoutError: If the operation times out
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"{error_message} (timeout: {timeout_seconds}s)")
        raise OperationTimeoutError(f"{error_message} (timeout: {timeout_seconds}s)")
