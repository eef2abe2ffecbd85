"""Per-request deadline shared by the tenant guard and the route handlers."""
import asyncio
import logging
import os
from contextvars import ContextVar

from .errors import RemoteTimeout

logger = logging.getLogger(__name__)

REQUEST_DEADLINE_SECONDS = float(os.environ.get("REQUEST_DEADLINE_SECONDS", "25"))

_expires_at: ContextVar[float | None] = ContextVar("request_expires_at", default=None)


def start():
    """Open the deadline window for the current request."""
    _expires_at.set(asyncio.get_running_loop().time() + REQUEST_DEADLINE_SECONDS)


def remaining() -> float:
    expires_at = _expires_at.get()
    if expires_at is None:
        return REQUEST_DEADLINE_SECONDS
    return expires_at - asyncio.get_running_loop().time()


async def within_deadline(coro):
    """Race `coro` against whatever is left of the request's deadline."""
    budget = remaining()
    if budget <= 0:
        coro.close()
        logger.warning("Request deadline already spent")
        raise RemoteTimeout("request deadline exceeded")
    try:
        return await asyncio.wait_for(coro, budget)
    except asyncio.TimeoutError:
        logger.warning("Request exceeded %.1fs deadline", REQUEST_DEADLINE_SECONDS)
        raise RemoteTimeout("request deadline exceeded")
