"""Data models exchanged between the orchestrator and gateway adapters."""

from vmss_rotation.models.report import RotationReport
from vmss_rotation.models.scale_set import (
    AppliedResult,
    InstanceRecord,
    ModelValidationError,
    OperationOutcome,
    PendingOperation,
    ProtectionPolicy,
    ScaleSetRef,
    ScaleSetSnapshot,
)

__all__ = [
    "AppliedResult",
    "InstanceRecord",
    "ModelValidationError",
    "OperationOutcome",
    "PendingOperation",
    "ProtectionPolicy",
    "RotationReport",
    "ScaleSetRef",
    "ScaleSetSnapshot",
]
