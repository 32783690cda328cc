"""Application errors and the FastAPI handlers that render them.

Each error class pins a :class:`ProblemCode` and an HTTP status. Routes
raise them; handlers turn them into RFC 7807 bodies.
"""

from typing import Any, ClassVar

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from app.core.logging import get_logger
from app.core.problem_details import ProblemCode, ProblemDetail, ProblemDetailResponse

logger = get_logger(__name__)


class SalesAnalyticsError(Exception):
    """Base class for errors that map onto a problem response."""

    code: ClassVar[ProblemCode] = ProblemCode.INTERNAL_ERROR
    status_code: ClassVar[int] = 500
    default_message: ClassVar[str] = "Internal error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def retryable(self) -> bool | None:
        """Retry hint surfaced to clients; None when it does not apply."""
        return None

    def problem(self) -> ProblemDetail:
        errors = self.details.get("errors")
        return ProblemDetail.for_code(
            self.code,
            self.status_code,
            detail=self.message,
            errors=[{"message": str(e)} for e in errors] if errors else None,
            retryable=self.retryable,
        )


class NotFoundError(SalesAnalyticsError):
    """A sale, user or group does not exist.

    The analytics core reports these as ``None``; routes raise this.
    """

    code = ProblemCode.NOT_FOUND
    status_code = 404
    default_message = "Resource not found"


class ValidationError(SalesAnalyticsError):
    """Query parameters failed model validation.

    ``details["errors"]`` is rendered as the problem's ``errors`` list.
    """

    code = ProblemCode.VALIDATION_ERROR
    status_code = 422
    default_message = "Validation failed"


class StoreError(SalesAnalyticsError):
    """Failure reported by the persistent store.

    ``retryable`` separates transient failures (pool exhaustion, lost
    connections, statement timeouts) from permanent ones such as
    constraint or programming errors. Callers own the retry policy.
    Transient failures are served as 503.
    """

    default_message = "Persistent store failed"

    def __init__(
        self,
        message: str | None = None,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self._retryable = retryable

    @property
    def code(self) -> ProblemCode:  # type: ignore[override]
        return ProblemCode.STORE_UNAVAILABLE if self._retryable else ProblemCode.DATABASE_ERROR

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return 503 if self._retryable else 500

    @property
    def retryable(self) -> bool:
        return self._retryable


class CacheError(SalesAnalyticsError):
    """Cache operation failure.

    Raised by CacheStore for any internal failure. The analytics service
    logs and swallows these so a broken cache only costs latency.
    """

    code = ProblemCode.CACHE_ERROR
    default_message = "Cache operation failed"


async def sales_analytics_exception_handler(
    _request: Request,
    exc: SalesAnalyticsError,
) -> ProblemDetailResponse:
    """Render an application error; 5xx are logged with traceback."""
    server_side = exc.status_code >= 500
    (logger.error if server_side else logger.warning)(
        "app.error_handled",
        error=exc.message,
        error_type=type(exc).__name__,
        error_code=exc.code.name,
        status_code=exc.status_code,
        details=exc.details,
        exc_info=server_side,
    )
    return ProblemDetailResponse.from_problem(exc.problem())


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> ProblemDetailResponse:
    """Render FastAPI's request validation failures field by field.

    Location prefixes such as ``query`` or ``path`` are dropped, so
    ``("query", "limit")`` is reported as field ``limit``.
    """
    errors = [
        {
            "field": ".".join(
                str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")
            ),
            "message": str(err.get("msg", "Validation failed")),
            "type": str(err.get("type", "unknown")),
        }
        for err in exc.errors()
    ]
    logger.warning(
        "app.validation_error",
        path=request.url.path,
        fields=[e["field"] for e in errors],
    )
    problem = ProblemDetail.for_code(
        ProblemCode.VALIDATION_ERROR,
        422,
        detail=f"{len(errors)} invalid parameter(s); see 'errors'.",
        errors=errors,
    )
    return ProblemDetailResponse.from_problem(problem)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> ProblemDetailResponse:
    logger.error(
        "app.unhandled_error",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        exc_info=True,
    )
    problem = ProblemDetail.for_code(
        ProblemCode.INTERNAL_ERROR,
        500,
        detail="Unexpected server error. Quote the request_id when reporting it.",
    )
    return ProblemDetailResponse.from_problem(problem)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SalesAnalyticsError, sales_analytics_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
