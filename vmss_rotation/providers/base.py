"""ScaleSetGateway abstract base class.

Defines the contract that every scale-set gateway adapter must implement.
The orchestrator interacts exclusively with this interface — it never
knows (or cares) which compute provider or SDK is behind it.

Operations:
    1. ``get_snapshot(ref)``                       — read SKU and capacity.
    2. ``update_capacity(ref, capacity)``          — submit a capacity change.
    3. ``list_instances(ref, filter_expr)``        — lazily enumerate members.
    4. ``set_instance_protection(ref, id, policy)`` — submit a protection change.
    5. ``await_operation(operation)``              — block until terminal state.

Mutating calls return a ``PendingOperation`` immediately; the caller owns
it until it is passed to ``await_operation``.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, ClassVar

from vmss_rotation.core.exceptions import RotationError
from vmss_rotation.models.scale_set import check_capacity

if TYPE_CHECKING:
    from collections.abc import Iterator

    from vmss_rotation.models.scale_set import (
        AppliedResult,
        InstanceRecord,
        PendingOperation,
        ProtectionPolicy,
        ScaleSetRef,
        ScaleSetSnapshot,
    )


class ScaleSetGateway(abc.ABC):
    """Abstract base class for scale-set gateway adapters.

    A gateway is constructed once per invocation and passed explicitly to
    the orchestrator; adapters own their credentials and SDK clients.

    Example usage::

        gateway = get_gateway("azure")
        snapshot = gateway.get_snapshot(ref)
        op = gateway.update_capacity(ref, snapshot.capacity * 2)
        gateway.await_operation(op)
    """

    #: Adapter name used in error messages and the factory registry.
    name: ClassVar[str] = "abstract"

    # ------------------------------------------------------------------
    # Abstract methods: every adapter must implement these
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def get_snapshot(self, ref: ScaleSetRef) -> ScaleSetSnapshot:
        """Return the provider's current view of the scale set.

        Raises:
            ReadError: If the scale set cannot be read.
        """

    @abc.abstractmethod
    def update_capacity(self, ref: ScaleSetRef, new_capacity: int) -> PendingOperation:
        """Submit a capacity change and return its pending operation.

        Implementations should call ``validate_capacity`` first.

        Raises:
            ModelValidationError: If *new_capacity* is not a non-negative integer.
            UpdateSubmitError: If the provider rejects the request.
        """

    @abc.abstractmethod
    def list_instances(self, ref: ScaleSetRef, filter_expr: str = "") -> Iterator[InstanceRecord]:
        """Lazily enumerate scale-set members matching *filter_expr*.

        Each call starts a fresh page cursor.  An empty filter selects
        every member.

        Raises:
            ReadError: From the iterator, if a page cannot be fetched.
        """

    @abc.abstractmethod
    def set_instance_protection(
        self,
        ref: ScaleSetRef,
        instance_id: str,
        policy: ProtectionPolicy,
    ) -> PendingOperation:
        """Submit a protection-policy change for one instance.

        Raises:
            UpdateSubmitError: If the provider rejects the request.
        """

    @abc.abstractmethod
    def await_operation(self, operation: PendingOperation) -> AppliedResult:
        """Block until *operation* reaches a terminal state.

        There is no built-in timeout.

        Raises:
            AwaitError: If the operation ends in a failed state.
        """

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def validate_capacity(self, new_capacity: int) -> None:
        """Raise ``ModelValidationError`` unless *new_capacity* is a non-negative int."""
        check_capacity(type(self).__name__, "new_capacity", new_capacity)


# ---------------------------------------------------------------------------
# Gateway exceptions
# ---------------------------------------------------------------------------


class ProviderError(RotationError):
    """Base exception for gateway adapter errors.

    Attributes:
        provider: Name of the gateway that raised the error.
        message: Human-readable error description.
        retryable: Whether re-running the rotation may succeed.
    """

    default_stage = "provider"
    default_code = "PROVIDER_ERROR"

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        retryable: bool = False,
    ) -> None:
        self.provider = provider
        super().__init__(
            message,
            retryable=retryable,
            code=self.default_code,
            stage=self.default_stage,
        )

    def __str__(self) -> str:
        return f"[{self.provider}] {self.message}"


class ProviderAuthError(ProviderError):
    """Credential resolution or authorisation failure."""

    default_code = "PROVIDER_AUTH_FAILED"

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(provider, message, retryable=False)


class ReadError(ProviderError):
    """The scale set or its instance list could not be read."""

    default_code = "SCALE_SET_READ_FAILED"


class UpdateSubmitError(ProviderError):
    """The provider rejected a capacity or protection update request."""

    default_code = "UPDATE_SUBMIT_FAILED"

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        instance_id: str = "",
        retryable: bool = False,
    ) -> None:
        self.instance_id = instance_id
        super().__init__(provider, message, retryable=retryable)


class AwaitError(ProviderError):
    """An in-flight operation ended in a failed state."""

    default_code = "OPERATION_FAILED"

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        instance_id: str = "",
        retryable: bool = False,
    ) -> None:
        self.instance_id = instance_id
        super().__init__(provider, message, retryable=retryable)
