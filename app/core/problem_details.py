"""RFC 7807 problem bodies.

Dashboards branch on ``code`` and ``retryable`` rather than parsing
``detail``; ``request_id`` ties a body to the server log lines of the
request that produced it.

Reference: https://datatracker.ietf.org/doc/html/rfc7807
"""

from enum import Enum
from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.core.logging import request_id_ctx

PROBLEM_TYPE_PREFIX = "/errors"


class ProblemCode(str, Enum):
    """Machine-readable error codes and their problem type slugs."""

    NOT_FOUND = "not-found"
    VALIDATION_ERROR = "validation"
    DATABASE_ERROR = "database"
    STORE_UNAVAILABLE = "store-unavailable"
    CACHE_ERROR = "cache"
    INTERNAL_ERROR = "internal"

    @property
    def type_uri(self) -> str:
        return f"{PROBLEM_TYPE_PREFIX}/{self.value}"


class ProblemDetail(BaseModel):
    """Body of an ``application/problem+json`` response.

    The standard members (type, title, status, detail, instance) are
    extended with ``code``, ``errors``, ``retryable`` and ``request_id``.
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field(default="about:blank", description="Problem type URI.")
    title: str = Field(..., description="Short summary of the problem type.")
    status: int = Field(..., ge=400, le=599, description="HTTP status code.")
    detail: str | None = Field(None, description="Occurrence-specific explanation.")
    instance: str | None = Field(None, description="URI of this occurrence.")
    code: str | None = Field(None, description="Machine-readable error code.")
    errors: list[dict[str, Any]] | None = Field(None, description="Per-field problems.")
    retryable: bool | None = Field(
        None,
        description="Whether retrying the same request later may succeed.",
    )
    request_id: str | None = Field(None, description="Request correlation ID.")

    @classmethod
    def for_code(
        cls,
        code: ProblemCode,
        status: int,
        detail: str | None = None,
        **extensions: Any,
    ) -> "ProblemDetail":
        """Build a problem for ``code`` tagged with the current request ID."""
        request_id = request_id_ctx.get()
        return cls(
            type=code.type_uri,
            title=code.name.replace("_", " ").title(),
            status=status,
            detail=detail,
            instance=f"/requests/{request_id}" if request_id else None,
            code=code.name,
            request_id=request_id,
            **extensions,
        )


class ProblemDetailResponse(JSONResponse):
    """JSON response with the RFC 7807 media type."""

    media_type = "application/problem+json"

    @classmethod
    def from_problem(cls, problem: ProblemDetail) -> "ProblemDetailResponse":
        return cls(status_code=problem.status, content=problem.model_dump(exclude_none=True))
