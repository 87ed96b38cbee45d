"""Bounded phase helpers for the rotation orchestrator.

Each helper performs one phase against a ``ScaleSetGateway`` and returns
a typed result contract.  The top-level orchestrator in ``rotation.py``
coordinates these phases sequentially.

Phases
------
1. **Scale** — read the snapshot, submit the new capacity, await it.
2. **Submit protection** — list instances, submit one protection update
   per instance, collect the pending operations without awaiting.
3. **Await** — join barrier over every pending operation, one worker
   thread per operation.
"""

from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, TypedDict

from vmss_rotation.core.constants import LIST_INSTANCES_KEY
from vmss_rotation.core.exceptions import PartialApplicationError
from vmss_rotation.models.scale_set import OperationOutcome

if TYPE_CHECKING:
    from collections.abc import Sequence

    from vmss_rotation.models.scale_set import (
        PendingOperation,
        ProtectionPolicy,
        ScaleSetRef,
    )
    from vmss_rotation.providers.base import ScaleSetGateway

logger = logging.getLogger("vmss_rotation.orchestrators.phases")

# ---------------------------------------------------------------------------
# Phase result contracts
# ---------------------------------------------------------------------------

class ScaleResult(TypedDict):
    """Output contract for a scale phase."""

    previous_capacity: int
    new_capacity: int
    resource_name: str
    clamped: bool

class SubmitResult(TypedDict):
    """Output contract for a protection submit phase."""

    operations: list[PendingOperation]
    failures: dict[str, BaseException]

# ---------------------------------------------------------------------------
# Capacity arithmetic
# ---------------------------------------------------------------------------

def scaled_capacity(capacity: int, factor: float) -> int:
    """Return ``floor(capacity * factor)``.

    Rounding is always downwards, so a scale-out followed by the
    reciprocal scale-in is not guaranteed to return to *capacity* for
    factors other than 2.0 / 0.5 (e.g. ``3 * 1.5 = 4``, ``4 * 0.5 = 2``).
    """
    return math.floor(capacity * factor)

# ---------------------------------------------------------------------------
# Phase: scale out / scale in
# ---------------------------------------------------------------------------

def run_scale_phase(
    gateway: ScaleSetGateway,
    ref: ScaleSetRef,
    factor: float,
    *,
    phase: str,
    min_capacity: int = 0,
    run_id: str = "",
) -> ScaleResult:
    """Scale *ref* by *factor* and wait for the provider to finish.

    The single capacity operation is awaited directly.  Any read, submit,
    or await failure propagates unchanged.

    Args:
        gateway: Scale-set gateway.
        ref: Target scale set.
        factor: Capacity multiplier.
        phase: Phase name for logging (``scale_out`` / ``scale_in``).
        min_capacity: Lower bound for the new capacity.
        run_id: Rotation run identifier for logging.
    """
    phase_start = time.monotonic()

    snapshot = gateway.get_snapshot(ref)
    target = scaled_capacity(snapshot.capacity, factor)
    clamped = target < min_capacity
    if clamped:
        logger.warning(
            "phase=%s clamp | run=%s | scale_set=%s | computed=%d | floor=%d",
            phase,
            run_id,
            ref.display,
            target,
            min_capacity,
        )
        target = min_capacity

    logger.info(
        "phase=%s started | run=%s | scale_set=%s | sku=%s | capacity=%d->%d",
        phase,
        run_id,
        ref.display,
        snapshot.sku_name,
        snapshot.capacity,
        target,
    )

    operation = gateway.update_capacity(ref, target)
    applied = gateway.await_operation(operation)

    logger.info(
        "phase=%s completed | run=%s | scale_set=%s | capacity=%d | duration=%.1fs",
        phase,
        run_id,
        ref.display,
        target,
        time.monotonic() - phase_start,
    )

    return ScaleResult(
        previous_capacity=snapshot.capacity,
        new_capacity=target,
        resource_name=applied.resource_name,
        clamped=clamped,
    )

# ---------------------------------------------------------------------------
# Phase: submit protection updates
# ---------------------------------------------------------------------------

def submit_protection_updates(
    gateway: ScaleSetGateway,
    ref: ScaleSetRef,
    *,
    filter_expr: str,
    policy: ProtectionPolicy,
    phase: str,
    run_id: str = "",
) -> SubmitResult:
    """Submit *policy* to every instance matching *filter_expr*.

    Operations are collected, not awaited.  On the first failed submit
    (or a paging failure) no further updates are issued, but the
    operations already submitted are returned so the caller can still
    await them.
    """
    operations: list[PendingOperation] = []
    failures: dict[str, BaseException] = {}
    current = LIST_INSTANCES_KEY

    try:
        for instance in gateway.list_instances(ref, filter_expr):
            current = instance.instance_id
            operations.append(gateway.set_instance_protection(ref, instance.instance_id, policy))
            current = LIST_INSTANCES_KEY
    except Exception as exc:
        failures[current] = exc
        logger.error(
            "phase=%s submit failed | run=%s | scale_set=%s | instance=%s | error=%s",
            phase,
            run_id,
            ref.display,
            current,
            exc,
        )

    logger.info(
        "phase=%s submitted | run=%s | scale_set=%s | filter=%r | protect=%s | operations=%d",
        phase,
        run_id,
        ref.display,
        filter_expr,
        policy.protect_from_scale_in,
        len(operations),
    )
    return SubmitResult(operations=operations, failures=failures)

# ---------------------------------------------------------------------------
# Phase: join barrier
# ---------------------------------------------------------------------------

def await_operations(
    gateway: ScaleSetGateway,
    operations: Sequence[PendingOperation],
    *,
    phase: str,
    run_id: str = "",
) -> list[OperationOutcome]:
    """Await every operation concurrently and return once all are terminal.

    One worker thread is started per operation.  A failing worker never
    cancels its siblings; its error is returned as an ``OperationOutcome``
    and the decision to abort is left to the caller.

    Returns:
        Outcomes in the same order as *operations*.
    """
    if not operations:
        return []

    phase_start = time.monotonic()
    with ThreadPoolExecutor(
        max_workers=len(operations),
        thread_name_prefix=f"await-{phase}",
    ) as pool:
        futures = [pool.submit(gateway.await_operation, op) for op in operations]
        wait(futures, return_when=ALL_COMPLETED)

    outcomes: list[OperationOutcome] = []
    for operation, future in zip(operations, futures, strict=True):
        error = future.exception()
        if error is not None:
            logger.error(
                "phase=%s operation failed | run=%s | instance=%s | error=%s",
                phase,
                run_id,
                operation.instance_id,
                error,
            )
            outcomes.append(OperationOutcome(operation=operation, error=error))
            continue
        result = future.result()
        logger.info(
            "phase=%s operation applied | run=%s | resource=%s",
            phase,
            run_id,
            result.resource_name,
        )
        outcomes.append(OperationOutcome(operation=operation, result=result))

    failed = sum(1 for o in outcomes if not o.succeeded)
    logger.info(
        "phase=%s completed | run=%s | operations=%d | failed=%d | duration=%.1fs",
        phase,
        run_id,
        len(outcomes),
        failed,
        time.monotonic() - phase_start,
    )
    return outcomes

def check_fan_out(
    phase: str,
    submitted: SubmitResult,
    outcomes: Sequence[OperationOutcome],
    *,
    run_id: str = "",
) -> list[str]:
    """Return the applied instance IDs, or raise if anything failed.

    Raises:
        PartialApplicationError: If any submit or await in the phase failed.
    """
    applied = [o.operation.instance_id for o in outcomes if o.succeeded]
    failed: dict[str, BaseException] = dict(submitted["failures"])
    for outcome in outcomes:
        if outcome.error is not None:
            failed[outcome.operation.instance_id] = outcome.error

    if failed:
        raise PartialApplicationError(
            phase,
            applied=applied,
            failed=failed,
            correlation_id=run_id,
        )
    return applied
