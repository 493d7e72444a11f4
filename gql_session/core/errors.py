"""Error taxonomy for the query builder.

Internal code raises these exceptions; the public service boundary turns
them into ``{"error": message}`` result records via :func:`tool_result`.
"""

import functools
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class QueryBuilderError(Exception):
    """Base class for every failure reported to a caller."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(QueryBuilderError):
    """A path, field, argument, type, directive, variable or fragment is missing."""


class SessionNotFoundError(NotFoundError):
    """The session id does not name a live session."""

    def __init__(self, message: str = "Session not found."):
        super().__init__(message)


class InvalidSyntaxError(QueryBuilderError):
    """A name, alias, type string, or input value is malformed."""


class TypeMismatchError(QueryBuilderError):
    """A value or variable is not acceptable for the slot it is bound to."""


class ConflictError(QueryBuilderError):
    """The requested change collides with existing state."""


class ComplexityExceededError(QueryBuilderError):
    """Depth, field count, score, or input-size limits were exceeded."""


class UpstreamError(QueryBuilderError):
    """The GraphQL endpoint or the session store failed."""


class UpstreamTimeoutError(UpstreamError):
    """The GraphQL endpoint did not answer in time."""


def tool_result(
    func: Callable[..., Awaitable[dict[str, Any]]],
) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Wrap a public async operation so it always returns a result record."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> dict[str, Any]:
        try:
            return await func(*args, **kwargs)
        except QueryBuilderError as e:
            logger.debug("%s failed: %s", func.__name__, e.message)
            return {"error": e.message}
        except Exception as e:
            logger.exception("Unexpected failure in %s", func.__name__)
            return {"error": f"{type(e).__name__}: {e}"}

    return wrapper
