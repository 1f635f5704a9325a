"""ServiceResult and ServiceError: the contract every service returns.

INVARIANT: Engine exceptions (:class:`~fm2schema.domain.errors.Fm2SchemaError`)
stop at the service layer.  The CLI only ever sees ServiceResult.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from fm2schema.domain.errors import Fm2SchemaError


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: Fm2SchemaError) -> ServiceError:
        """Build the payload for a typed engine failure."""
        return cls(code=str(exc.code), message=exc.message, detail=exc.to_detail())


class ServiceResult(BaseModel):
    """Universal return type for all service operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"process"``).
        data: Operation-specific payload on success.
        warnings: Non-fatal issues (skipped documents, failed rule conversions).
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (timing, telemetry spans).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def failure(
        cls,
        op: str,
        exc: Fm2SchemaError,
        *,
        warnings: list[str] | None = None,
    ) -> ServiceResult:
        return cls(
            ok=False,
            op=op,
            error=ServiceError.from_exception(exc),
            warnings=warnings or [],
        )
