"""
Connection establishment with exponential backoff.

Every attempt gets a fresh handle from the factory. A handle that failed to
connect is released before the next attempt, and only transient network
errors (name resolution, refused connection, timeout) are retried.
"""

import logging
import socket
import time
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

_TRANSIENT_MARKERS = (
    "could not translate host name",
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo",
    "enotfound",
    "eai_again",
    "connection refused",
    "econnrefused",
    "etimedout",
    "timeout",
    "timed out",
)


class ConnectableHandle(Protocol):
    def connect(self): ...

    def dispose(self): ...


def _iter_causes(err: BaseException):
    seen = set()
    current: Optional[BaseException] = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        # SQLAlchemy DBAPIError keeps the driver exception on .orig
        orig = getattr(current, "orig", None)
        if isinstance(orig, BaseException) and id(orig) not in seen:
            yield orig
            seen.add(id(orig))
        current = current.__cause__ or current.__context__


def is_transient_connect_error(err: BaseException) -> bool:
    for cause in _iter_causes(err):
        if isinstance(cause, (socket.gaierror, ConnectionRefusedError, TimeoutError, socket.timeout)):
            return True
        message = str(cause).lower()
        if any(marker in message for marker in _TRANSIENT_MARKERS):
            return True
    return False


def connect_with_retry(
    factory: Callable[[], ConnectableHandle],
    max_attempts: int = 5,
    initial_delay: float = 3.0,
    sleep: Callable[[float], None] = time.sleep,
):
    """Return ``(handle, connection)`` from the first attempt that connects.

    The delay before attempt ``n + 1`` is ``initial_delay * 2 ** (n - 1)``.
    Non-transient errors and the last transient error are re-raised as-is.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, max_attempts + 1):
        handle = factory()
        try:
            connection = handle.connect()
            return handle, connection
        except Exception as e:
            try:
                handle.dispose()
            except Exception as release_err:
                logger.debug("Releasing failed handle raised: %s", release_err)

            if not is_transient_connect_error(e) or attempt == max_attempts:
                raise

            delay = initial_delay * (2 ** (attempt - 1))
            logger.warning(
                "Database connection failed (%s), attempt %d/%d. Retrying in %.1fs",
                type(e).__name__, attempt, max_attempts, delay,
            )
            sleep(delay)
