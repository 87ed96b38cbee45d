"""Rotation orchestration.

Manages the blue/green rotation of a scale set:
1. Scale out → protect the new batch
2. Scale in → unprotect the survivors
"""

from vmss_rotation.orchestrators.rotation import (
    RotationOrchestrator,
    RotationState,
    RotationSummary,
    run_rotation,
)

__all__ = [
    "RotationOrchestrator",
    "RotationState",
    "RotationSummary",
    "run_rotation",
]
