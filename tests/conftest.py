"""Shared pytest fixtures for the VMSS rotation test suite."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import pytest

from vmss_rotation.core.constants import LATEST_MODEL_FILTER
from vmss_rotation.models.scale_set import (
    AppliedResult,
    InstanceRecord,
    PendingOperation,
    ScaleSetRef,
    ScaleSetSnapshot,
)
from vmss_rotation.providers.base import (
    AwaitError,
    ReadError,
    ScaleSetGateway,
    UpdateSubmitError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from vmss_rotation.models.scale_set import ProtectionPolicy

# ---------------------------------------------------------------------------
# In-memory scale set
# ---------------------------------------------------------------------------


@dataclass
class _FakeVM:
    latest_model_applied: bool
    protected: bool = False


class FakeScaleSetGateway(ScaleSetGateway):
    """In-memory scale set that behaves like the provider.

    - Scale-out adds instances running the latest model.
    - Scale-in removes unprotected instances first (lowest ID first), then
      protected ones only if there are not enough unprotected instances.
    - Updates are applied when awaited, never when submitted.

    Failure injection:
        ``fail_snapshot``      — ``get_snapshot`` raises ``ReadError``.
        ``fail_list``          — ``list_instances`` raises after N records.
        ``fail_submit``        — instance IDs whose protection submit is rejected.
        ``fail_await``         — instance IDs whose protection update fails.
        ``fail_unprotect``     — instance IDs whose unprotect update fails.
        ``await_delays``       — per-instance sleep (seconds) before completing.
        ``await_barrier``      — ``threading.Barrier`` every protection await joins.
    """

    name = "fake"

    def __init__(self, capacity: int = 4, *, sku_name: str = "Standard_D2s_v3") -> None:
        self._lock = threading.Lock()
        self._vms: dict[str, _FakeVM] = {}
        self._next_id = 0
        self.sku_name = sku_name
        for _ in range(capacity):
            self._add(latest_model_applied=False)

        self.calls: list[str] = []
        self.capacity_history: list[int] = []
        self.completed: list[str] = []

        self.fail_snapshot = False
        self.fail_list: int | None = None
        self.fail_submit: set[str] = set()
        self.fail_await: set[str] = set()
        self.fail_unprotect: set[str] = set()
        self.await_delays: dict[str, float] = {}
        self.await_barrier: threading.Barrier | None = None

    # -- helpers ---------------------------------------------------------

    def _add(self, *, latest_model_applied: bool) -> str:
        instance_id = str(self._next_id)
        self._next_id += 1
        self._vms[instance_id] = _FakeVM(latest_model_applied=latest_model_applied)
        return instance_id

    def _record(self, call: str) -> None:
        with self._lock:
            self.calls.append(call)

    @property
    def capacity(self) -> int:
        return len(self._vms)

    @property
    def instance_ids(self) -> list[str]:
        return list(self._vms)

    @property
    def protected_ids(self) -> list[str]:
        return [i for i, vm in self._vms.items() if vm.protected]

    @property
    def latest_ids(self) -> list[str]:
        return [i for i, vm in self._vms.items() if vm.latest_model_applied]

    def _resize(self, capacity: int) -> None:
        with self._lock:
            while len(self._vms) < capacity:
                self._add(latest_model_applied=True)
            removable = [i for i, vm in self._vms.items() if not vm.protected]
            removable += [i for i, vm in self._vms.items() if vm.protected]
            for instance_id in removable[: max(0, len(self._vms) - capacity)]:
                del self._vms[instance_id]
            self.capacity_history.append(capacity)

    # -- gateway contract ------------------------------------------------

    def get_snapshot(self, ref: ScaleSetRef) -> ScaleSetSnapshot:
        self._record("get_snapshot")
        if self.fail_snapshot:
            raise ReadError(self.name, f"scale set {ref.display} not found")
        return ScaleSetSnapshot(
            name=ref.name,
            sku_name=self.sku_name,
            sku_tier="Standard",
            capacity=self.capacity,
        )

    def update_capacity(self, ref: ScaleSetRef, new_capacity: int) -> PendingOperation:
        self.validate_capacity(new_capacity)
        self._record(f"update_capacity:{new_capacity}")
        return PendingOperation(
            description=f"capacity {ref.display} -> {new_capacity}",
            handle=("capacity", new_capacity),
        )

    def list_instances(self, ref: ScaleSetRef, filter_expr: str = "") -> Iterator[InstanceRecord]:
        self._record(f"list_instances:{filter_expr}")
        with self._lock:
            members = list(self._vms.items())
        for index, (instance_id, vm) in enumerate(members):
            if self.fail_list is not None and index >= self.fail_list:
                raise ReadError(self.name, f"paging {ref.display} failed")
            if filter_expr == LATEST_MODEL_FILTER and not vm.latest_model_applied:
                continue
            yield InstanceRecord(
                instance_id=instance_id,
                latest_model_applied=vm.latest_model_applied,
                name=f"{ref.name}_{instance_id}",
                protected_from_scale_in=vm.protected,
            )

    def set_instance_protection(
        self,
        ref: ScaleSetRef,
        instance_id: str,
        policy: ProtectionPolicy,
    ) -> PendingOperation:
        self._record(f"set_protection:{instance_id}:{policy.protect_from_scale_in}")
        if instance_id in self.fail_submit:
            raise UpdateSubmitError(self.name, "conflict", instance_id=instance_id)
        return PendingOperation(
            description=f"protection {instance_id}",
            instance_id=instance_id,
            handle=("protect", instance_id, policy),
        )

    def await_operation(self, operation: PendingOperation) -> AppliedResult:
        kind = operation.handle[0]
        if kind == "capacity":
            self._resize(operation.handle[1])
            return AppliedResult(resource_name="vmss-web")

        _, instance_id, policy = operation.handle
        if self.await_barrier is not None:
            self.await_barrier.wait()
        delay = self.await_delays.get(instance_id, 0.0)
        if delay:
            time.sleep(delay)
        with self._lock:
            self.completed.append(instance_id)
            failing = set(self.fail_await)
            if not policy.protect_from_scale_in:
                failing |= self.fail_unprotect
            if instance_id in failing:
                raise AwaitError(self.name, "provisioning failed", instance_id=instance_id)
            self._vms[instance_id].protected = policy.protect_from_scale_in
        return AppliedResult(resource_name=f"vmss-web_{instance_id}", instance_id=instance_id)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def ref() -> ScaleSetRef:
    """A sample scale-set reference."""
    return ScaleSetRef(
        subscription_id="00000000-0000-0000-0000-000000000001",
        resource_group="rg-web",
        name="vmss-web",
    )


@pytest.fixture()
def fake_gateway() -> FakeScaleSetGateway:
    """A four-instance in-memory scale set on the previous model."""
    return FakeScaleSetGateway(capacity=4)


@pytest.fixture()
def gateway_factory() -> type[FakeScaleSetGateway]:
    """The fake gateway class, for tests that need a custom capacity."""
    return FakeScaleSetGateway
