"""Pydantic rotation report.

The JSON document printed at the end of every rotation run, successful
or not.  It is the audit trail for the run: which capacities were set,
which instances were protected and unprotected, and where it stopped.

The schema is split into nested sections:
- **capacity**: original, scaled-out and final instance counts
- **instances**: instance IDs touched by each fan-out phase
- **error**: structured error payload, present only on abort
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from vmss_rotation.core.constants import LIST_INSTANCES_KEY
from vmss_rotation.core.exceptions import PartialApplicationError, RotationError

if TYPE_CHECKING:
    from vmss_rotation.orchestrators.rotation import RotationOrchestrator, RotationSummary

SCHEMA_VERSION = "vmss-rotation-report-v1"


class CapacityReport(BaseModel):
    """Capacity section of the report.

    Attributes:
        original: Capacity read at the start of the run.
        scaled_out: Capacity after the scale-out phase.
        final: Capacity after the scale-in phase.
    """

    original: int | None = None
    scaled_out: int | None = None
    final: int | None = None


class InstanceReport(BaseModel):
    """Instances touched by the protect / unprotect phases."""

    protected: list[str] = Field(default_factory=list)
    unprotected: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


class RotationReport(BaseModel):
    """Top-level rotation report.

    Attributes:
        schema_version: Schema identifier for forward compatibility.
        run_id: Rotation run identifier (also the error correlation ID).
        scale_set: ``resource_group/name`` of the rotated scale set.
        subscription_id: Subscription of the scale set.
        state: Terminal state (``done`` or ``aborted``).
        failed_phase: Phase in which the run aborted, empty on success.
        history: Every state entered, in order.
        capacity: Capacity section.
        instances: Instance section.
        timestamp: Report creation time (ISO 8601).
        duration_s: Run duration in seconds (0 when aborted).
        error: Structured error payload on abort.
    """

    schema_version: str = Field(default=SCHEMA_VERSION, alias="$schema")
    run_id: str = ""
    scale_set: str = ""
    subscription_id: str = ""
    state: str = "pending"
    failed_phase: str = ""
    history: list[str] = Field(default_factory=list)
    capacity: CapacityReport = Field(default_factory=CapacityReport)
    instances: InstanceReport = Field(default_factory=InstanceReport)
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    duration_s: float = 0.0
    error: dict[str, Any] | None = None

    model_config = {"populate_by_name": True}

    @classmethod
    def from_summary(
        cls,
        orchestrator: RotationOrchestrator,
        summary: RotationSummary,
    ) -> RotationReport:
        """Build the report for a completed rotation."""
        return cls(
            run_id=summary["run_id"],
            scale_set=summary["scale_set"],
            subscription_id=orchestrator.ref.subscription_id,
            state=summary["state"],
            history=[s.value for s in orchestrator.history],
            capacity=CapacityReport(
                original=summary["original_capacity"],
                scaled_out=summary["scaled_out_capacity"],
                final=summary["final_capacity"],
            ),
            instances=InstanceReport(
                protected=sorted(summary["protected"]),
                unprotected=sorted(summary["unprotected"]),
            ),
            duration_s=summary["duration_seconds"],
        )

    @classmethod
    def from_failure(
        cls,
        orchestrator: RotationOrchestrator,
        exc: RotationError,
    ) -> RotationReport:
        """Build the report for an aborted rotation.

        Capacities and instance lists reflect every phase the run
        completed before it stopped.
        """
        instances = InstanceReport(
            protected=sorted(orchestrator.protected),
            unprotected=sorted(orchestrator.unprotected),
        )
        if isinstance(exc, PartialApplicationError):
            applied = sorted(exc.applied)
            if exc.phase == "await_protect":
                instances.protected = applied
            else:
                instances.unprotected = applied
            # The listing failure is not an instance; it stays in ``error``.
            instances.failed = sorted(i for i in exc.failed if i != LIST_INSTANCES_KEY)

        failed_phase = orchestrator.failed_state.value if orchestrator.failed_state else ""
        return cls(
            run_id=orchestrator.run_id,
            scale_set=orchestrator.ref.display,
            subscription_id=orchestrator.ref.subscription_id,
            state=orchestrator.state.value,
            failed_phase=failed_phase,
            history=[s.value for s in orchestrator.history],
            capacity=CapacityReport(
                original=orchestrator.original_capacity,
                scaled_out=orchestrator.scaled_out_capacity,
                final=orchestrator.final_capacity,
            ),
            instances=instances,
            error=exc.to_error_dict(),
        )

    def to_json(self, *, indent: int = 2) -> str:
        """Serialise to a JSON string (``$schema`` alias for the version)."""
        return self.model_dump_json(indent=indent, by_alias=True)

    def to_dict(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)  # type: ignore[return-value]
