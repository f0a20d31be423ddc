"""
Retry Logic with Exponential Backoff

Retry policy for calls into external collaborators (tag resolvers).
"""
import asyncio
import logging

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from spendlens.shared.core.config import Settings, get_settings
from spendlens.shared.core.exceptions import TagResolutionError


RETRYABLE_RESOLVER_EXCEPTIONS = (
    TagResolutionError,
    ConnectionError,
    asyncio.TimeoutError,
)

_stdlib_logger = logging.getLogger(__name__)


def resolver_retrying(settings: Settings | None = None) -> AsyncRetrying:
    """
    Build a tenacity AsyncRetrying for one resolver batch.

    Usage:
        async for attempt in resolver_retrying():
            with attempt:
                result = await resolver.resolve(provider, refs)
    """
    settings = settings or get_settings()
    return AsyncRetrying(
        stop=stop_after_attempt(settings.TAG_RESOLVE_MAX_ATTEMPTS),
        wait=wait_exponential(
            multiplier=2.0,
            min=settings.TAG_RESOLVE_MIN_WAIT_SECONDS,
            max=settings.TAG_RESOLVE_MAX_WAIT_SECONDS,
        ),
        retry=retry_if_exception_type(RETRYABLE_RESOLVER_EXCEPTIONS),
        before_sleep=before_sleep_log(_stdlib_logger, logging.WARNING),
        reraise=True,
    )
