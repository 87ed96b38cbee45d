"""Azure Compute adapter (Virtual Machine Scale Sets).

Concrete ``ScaleSetGateway`` implementation on top of
``azure-mgmt-compute``.  Mutating calls use the SDK's ``begin_*``
long-running operations and hand back the ``LROPoller`` wrapped in a
``PendingOperation``; ``await_operation`` blocks on ``poller.result()``.

Authentication:
    Defaults to ``AzureCliCredential`` (the identity of ``az login``).
    Any ``TokenCredential`` can be injected instead, e.g.
    ``DefaultAzureCredential`` for managed identities.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.identity import AzureCliCredential
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.compute.models import (
    Sku,
    VirtualMachineScaleSetUpdate,
    VirtualMachineScaleSetVMProtectionPolicy,
)

from vmss_rotation.core.constants import AZURE_GATEWAY
from vmss_rotation.models.scale_set import (
    AppliedResult,
    InstanceRecord,
    PendingOperation,
    ScaleSetSnapshot,
)
from vmss_rotation.providers.base import (
    AwaitError,
    ProviderAuthError,
    ProviderError,
    ReadError,
    ScaleSetGateway,
    UpdateSubmitError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from azure.core.credentials import TokenCredential

    from vmss_rotation.models.scale_set import ProtectionPolicy, ScaleSetRef

logger = logging.getLogger(__name__)


class AzureComputeGateway(ScaleSetGateway):
    """Virtual Machine Scale Set gateway backed by ``ComputeManagementClient``.

    One management client is created lazily per subscription and reused
    for the lifetime of the gateway.  Client creation is guarded by a
    lock because the await barrier calls into the gateway from many
    worker threads.
    """

    name = AZURE_GATEWAY

    def __init__(self, credential: TokenCredential | None = None) -> None:
        self._credential = credential
        self._clients: dict[str, ComputeManagementClient] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Client management
    # ------------------------------------------------------------------

    def _client(self, subscription_id: str) -> ComputeManagementClient:
        with self._lock:
            client = self._clients.get(subscription_id)
            if client is None:
                if self._credential is None:
                    self._credential = AzureCliCredential()
                client = ComputeManagementClient(self._credential, subscription_id)
                self._clients[subscription_id] = client
                logger.debug("Created compute client | subscription=%s", subscription_id)
            return client

    def _translate(
        self,
        exc: AzureError,
        error_cls: type[ProviderError],
        message: str,
        **kwargs: object,
    ) -> ProviderError:
        """Map an SDK exception onto the gateway taxonomy."""
        if isinstance(exc, ClientAuthenticationError):
            return ProviderAuthError(self.name, f"{message}: {exc.message}")
        return error_cls(self.name, f"{message}: {exc.message}", **kwargs)  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Scale set
    # ------------------------------------------------------------------

    def get_snapshot(self, ref: ScaleSetRef) -> ScaleSetSnapshot:
        client = self._client(ref.subscription_id)
        try:
            scale_set = client.virtual_machine_scale_sets.get(ref.resource_group, ref.name)
        except AzureError as exc:
            raise self._translate(exc, ReadError, f"Failed to read scale set {ref.display}") from exc

        sku = scale_set.sku
        if sku is None or sku.capacity is None:
            msg = f"Scale set {ref.display} reports no SKU capacity"
            raise ReadError(self.name, msg)

        return ScaleSetSnapshot(
            name=scale_set.name or ref.name,
            sku_name=sku.name or "",
            sku_tier=sku.tier or "",
            capacity=int(sku.capacity),
        )

    def update_capacity(self, ref: ScaleSetRef, new_capacity: int) -> PendingOperation:
        self.validate_capacity(new_capacity)
        # The SKU name/tier must accompany the capacity, so read them fresh.
        snapshot = self.get_snapshot(ref)
        client = self._client(ref.subscription_id)
        update = VirtualMachineScaleSetUpdate(
            sku=Sku(
                name=snapshot.sku_name or None,
                tier=snapshot.sku_tier or None,
                capacity=new_capacity,
            )
        )
        try:
            poller = client.virtual_machine_scale_sets.begin_update(
                ref.resource_group, ref.name, update
            )
        except AzureError as exc:
            raise self._translate(
                exc, UpdateSubmitError, f"Capacity update of {ref.display} rejected"
            ) from exc

        return PendingOperation(
            description=f"capacity {ref.display} -> {new_capacity}",
            handle=poller,
        )

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def list_instances(self, ref: ScaleSetRef, filter_expr: str = "") -> Iterator[InstanceRecord]:
        client = self._client(ref.subscription_id)
        try:
            pages = client.virtual_machine_scale_set_vms.list(
                ref.resource_group,
                ref.name,
                filter=filter_expr or None,
            )
            for vm in pages:
                policy = vm.protection_policy
                yield InstanceRecord(
                    instance_id=str(vm.instance_id),
                    latest_model_applied=bool(vm.latest_model_applied),
                    name=vm.name or "",
                    protected_from_scale_in=bool(policy and policy.protect_from_scale_in),
                )
        except AzureError as exc:
            raise self._translate(
                exc, ReadError, f"Failed to list instances of {ref.display}"
            ) from exc

    def set_instance_protection(
        self,
        ref: ScaleSetRef,
        instance_id: str,
        policy: ProtectionPolicy,
    ) -> PendingOperation:
        client = self._client(ref.subscription_id)
        try:
            # The update call takes the full instance model.
            vm = client.virtual_machine_scale_set_vms.get(ref.resource_group, ref.name, instance_id)
            vm.protection_policy = VirtualMachineScaleSetVMProtectionPolicy(
                protect_from_scale_in=policy.protect_from_scale_in,
                protect_from_scale_set_actions=policy.protect_from_scale_set_actions,
            )
            poller = client.virtual_machine_scale_set_vms.begin_update(
                ref.resource_group, ref.name, instance_id, vm
            )
        except AzureError as exc:
            raise self._translate(
                exc,
                UpdateSubmitError,
                f"Protection update of instance {instance_id} in {ref.display} rejected",
                instance_id=instance_id,
            ) from exc

        state = "on" if policy.protect_from_scale_in else "off"
        return PendingOperation(
            description=f"scale-in protection {state} for {ref.display}/{instance_id}",
            instance_id=instance_id,
            handle=poller,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def await_operation(self, operation: PendingOperation) -> AppliedResult:
        try:
            resource = operation.handle.result()
        except AzureError as exc:
            raise self._translate(
                exc,
                AwaitError,
                f"Operation failed ({operation.description})",
                instance_id=operation.instance_id,
            ) from exc

        resource_name = getattr(resource, "name", None) or operation.description
        return AppliedResult(resource_name=resource_name, instance_id=operation.instance_id)
