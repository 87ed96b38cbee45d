"""Unified rotation exception taxonomy.

Provides a shared base exception hierarchy for the orchestrator, the
gateway adapters, and the configuration layer. Every domain exception
inherits from ``RotationError`` and carries structured context fields
that enable consistent abort decisions and operator diagnostics.

Taxonomy categories
-------------------
- ``ValidationError``   — input/model violations, never retryable.
- ``TransientError``    — temporary failures (network, throttle).
- ``PermanentError``    — unrecoverable failures, not retryable.

The rotation itself never retries; ``retryable`` only tells the operator
whether re-running the whole rotation is likely to help.

Every exception exposes ``to_error_dict()`` for a stable structured
error payload suitable for the final fatal log line.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class RotationError(Exception):
    """Base exception for all rotation-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Rotation phase where the error occurred
            (e.g. ``"scale_out"``, ``"await_protect"``).
        code: Machine-readable error code (e.g. ``"UPDATE_SUBMIT_FAILED"``).
        retryable: Whether re-running the rotation may succeed.
        correlation_id: Identifier of the rotation run.
    """

    #: Default stage for subclasses (override via class attribute or kwarg).
    default_stage: str = ""
    #: Default code for subclasses (override via class attribute or kwarg).
    default_code: str = ""

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool = False,
        correlation_id: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        self.correlation_id = correlation_id
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class."""
        if isinstance(self, ValidationError):
            return "validation"
        if isinstance(self, TransientError):
            return "transient"
        if isinstance(self, PermanentError):
            return "permanent"
        return "transient" if self.retryable else "permanent"

    def to_error_dict(self) -> dict[str, object]:
        """Return a structured error payload with stable keys."""
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
            "correlation_id": self.correlation_id,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class ValidationError(RotationError):
    """Input or domain-model validation failure. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class TransientError(RotationError):
    """Temporary failure that may succeed if the rotation is re-run."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(RotationError):
    """Unrecoverable failure. Not retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Fan-out failures
# ---------------------------------------------------------------------------


class PartialApplicationError(PermanentError):
    """A fan-out phase finished with at least one failed instance.

    Protection flags may now differ between instances of the scale set.
    Operators should inspect the listed instances and, if required,
    clear protection manually (an UnprotectAll pass).

    Attributes:
        phase: The barrier phase that detected the failure.
        applied: Instance IDs whose update completed successfully.
        failed: Mapping of instance ID to the error that failed it.
    """

    default_code = "PARTIAL_APPLICATION"

    def __init__(
        self,
        phase: str,
        *,
        applied: Sequence[str],
        failed: dict[str, BaseException],
        correlation_id: str = "",
    ) -> None:
        self.phase = phase
        self.applied = list(applied)
        self.failed = dict(failed)
        message = (
            f"{len(self.failed)} instance update(s) failed during {phase} "
            f"({len(self.applied)} applied); protection flags may be inconsistent, "
            "manual cleanup via UnprotectAll may be required"
        )
        super().__init__(message, stage=phase, correlation_id=correlation_id)

    def to_error_dict(self) -> dict[str, object]:
        payload = super().to_error_dict()
        payload["applied"] = sorted(self.applied)
        payload["failed"] = {k: str(v) for k, v in sorted(self.failed.items())}
        return payload
