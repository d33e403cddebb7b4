"""
Session Guard

The portal drops APEX sessions without warning and answers every later call
with {"error": "Your session has ended."}. Steps wrapped here get a fresh
session and exactly one more attempt.
"""

import logging
from typing import Any, Awaitable, Callable, TypeVar

from config_schemas import SessionExpiredError

T = TypeVar("T")

SESSION_ENDED_MESSAGE = "Your session has ended."

logger = logging.getLogger(__name__)


def is_session_expired(payload: Any) -> bool:
    return isinstance(payload, dict) and payload.get("error") == SESSION_ENDED_MESSAGE


async def renew_session(client, log=None) -> None:
    """Throw away every stored cookie/token and open a new portal session"""
    log = log or logger
    log.info("🔄 Session expired, renewing session...")
    client.store.clear()
    await client.get_initial_cookies()
    log.info("✅ Session renewed successfully")


async def with_session_retry(client, operation: Callable[[], Awaitable[T]], log=None) -> T:
    """
    Run an operation, renewing the session once if the portal reports it ended.

    Args:
        client: ApexClient whose store and cookies get renewed
        operation: Zero-argument coroutine function
        log: Logger or adapter for the renewal messages

    Raises:
        SessionExpiredError: the session ended again after renewal
    """
    try:
        result = await operation()
    except SessionExpiredError:
        result = None
        expired = True
    else:
        expired = is_session_expired(result)

    if not expired:
        return result

    await renew_session(client, log)
    result = await operation()
    if is_session_expired(result):
        raise SessionExpiredError(result)
    return result
