"""Typed models for the scale-set gateway layer.

Defines the data structures exchanged between the orchestrator and
gateway adapters:

- ``ScaleSetRef``: Identifies the target scale set
- ``ScaleSetSnapshot``: The provider's current view of a scale set
- ``InstanceRecord``: A single scale-set member
- ``ProtectionPolicy``: Per-instance protection flags
- ``PendingOperation``: Handle to an in-flight asynchronous update
- ``AppliedResult``: Outcome of a completed update
- ``OperationOutcome``: Per-operation result handed to the join barrier

Design notes:
- All models are frozen dataclasses for immutability.
- Capacities are validated as non-negative integers on construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from vmss_rotation.core.exceptions import ValidationError

# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ModelValidationError(ValueError, ValidationError):
    """Raised when a domain model is constructed with invalid field values.

    Attributes:
        model: Name of the model class that failed validation.
        field_name: The field that violated the invariant.
        value: The invalid value.
    """

    default_stage = "model_validation"
    default_code = "MODEL_VALIDATION_FAILED"

    def __init__(self, model: str, field_name: str, value: object, message: str) -> None:
        self.model = model
        self.field_name = field_name
        self.value = value
        formatted = f"{model}.{field_name}={value!r}: {message}"
        ValidationError.__init__(self, formatted)


def check_capacity(model: str, field_name: str, value: object) -> None:
    """Reject anything that is not a non-negative ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ModelValidationError(model, field_name, value, "must be an integer")
    if value < 0:
        raise ModelValidationError(model, field_name, value, "must be >= 0")


def _check_non_empty(model: str, field_name: str, value: str) -> None:
    if not value:
        raise ModelValidationError(model, field_name, value, "must not be empty")


# ---------------------------------------------------------------------------
# Scale set models
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ScaleSetRef:
    """Identifies a target scale set.

    Attributes:
        subscription_id: Azure subscription containing the scale set.
        resource_group: Resource group name.
        name: Scale set name.
    """

    subscription_id: str
    resource_group: str
    name: str

    def __post_init__(self) -> None:
        _check_non_empty("ScaleSetRef", "subscription_id", self.subscription_id)
        _check_non_empty("ScaleSetRef", "resource_group", self.resource_group)
        _check_non_empty("ScaleSetRef", "name", self.name)

    @property
    def display(self) -> str:
        """Short ``resource_group/name`` form for log lines."""
        return f"{self.resource_group}/{self.name}"


@dataclass(frozen=True, slots=True)
class ScaleSetSnapshot:
    """The provider's current view of a scale set.

    Read fresh before every capacity change; never cached across phases.

    Attributes:
        name: Scale set name as reported by the provider.
        sku_name: SKU name (e.g. ``Standard_D2s_v3``).
        sku_tier: SKU tier (e.g. ``Standard``).
        capacity: Current instance count.
    """

    name: str
    sku_name: str
    sku_tier: str
    capacity: int

    def __post_init__(self) -> None:
        check_capacity("ScaleSetSnapshot", "capacity", self.capacity)


@dataclass(frozen=True, slots=True)
class InstanceRecord:
    """A single scale-set member.

    Attributes:
        instance_id: Provider instance identifier (e.g. ``"3"``).
        latest_model_applied: ``True`` when the instance runs the current
            scale-set model, i.e. it belongs to the newly created batch.
        name: Instance resource name (informational).
        protected_from_scale_in: Current scale-in protection flag
            (informational).
    """

    instance_id: str
    latest_model_applied: bool
    name: str = ""
    protected_from_scale_in: bool = False

    def __post_init__(self) -> None:
        _check_non_empty("InstanceRecord", "instance_id", self.instance_id)


@dataclass(frozen=True, slots=True)
class ProtectionPolicy:
    """Per-instance protection flags.

    The rotation never protects instances from scale-set actions; only
    ``protect_from_scale_in`` varies between phases.
    """

    protect_from_scale_in: bool
    protect_from_scale_set_actions: bool = False

    @classmethod
    def protect(cls) -> ProtectionPolicy:
        return cls(protect_from_scale_in=True, protect_from_scale_set_actions=False)

    @classmethod
    def unprotect(cls) -> ProtectionPolicy:
        return cls(protect_from_scale_in=False, protect_from_scale_set_actions=False)


# ---------------------------------------------------------------------------
# Asynchronous operation models
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PendingOperation:
    """Handle to an in-flight asynchronous provider update.

    Attributes:
        description: Human-readable summary for log lines.
        instance_id: Target instance, or empty for scale-set wide updates.
        handle: Opaque provider object (an ``LROPoller`` for Azure).
    """

    description: str
    instance_id: str = ""
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class AppliedResult:
    """Terminal success state of a ``PendingOperation``."""

    resource_name: str
    instance_id: str = ""


@dataclass(frozen=True, slots=True)
class OperationOutcome:
    """Per-operation result returned to the join barrier.

    Exactly one of ``result`` and ``error`` is set.
    """

    operation: PendingOperation
    result: AppliedResult | None = None
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None
