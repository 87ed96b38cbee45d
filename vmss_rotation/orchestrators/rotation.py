"""Blue/green rotation orchestrator.

Drives a ``ScaleSetGateway`` through the rotation sequence:

1. Scale out — multiply capacity (default x2), await the update.
2. Protect new — protect every instance on the latest model from scale-in.
3. Await protect — join barrier over the protection updates.
4. Scale in — multiply capacity (default x0.5); the provider removes the
   unprotected (old) instances first.
5. Unprotect all — clear scale-in protection on every remaining instance.
6. Await unprotect — join barrier over the unprotection updates.

Each phase must finish before the next starts.  Any failure moves the
run to ``ABORTED`` and is re-raised; nothing is retried or rolled back.

Protection is applied only after the scale-out, because the new batch is
identified by ``latestModelApplied``, and removed only after the
scale-in, otherwise the provider could remove the new instances.  The
unprotect pass targets *all* instances rather than only the
ones protected in step 2.
"""

from __future__ import annotations

import enum
import logging
import time
import uuid
from typing import TYPE_CHECKING, TypedDict

from vmss_rotation.core.config import RotationConfig
from vmss_rotation.core.constants import ALL_INSTANCES_FILTER, LATEST_MODEL_FILTER
from vmss_rotation.core.exceptions import RotationError
from vmss_rotation.models.scale_set import ProtectionPolicy
from vmss_rotation.orchestrators.phases import (
    await_operations,
    check_fan_out,
    run_scale_phase,
    submit_protection_updates,
)

if TYPE_CHECKING:
    from vmss_rotation.models.scale_set import ScaleSetRef
    from vmss_rotation.providers.base import ScaleSetGateway

logger = logging.getLogger("vmss_rotation.orchestrators.rotation")


class RotationState(enum.Enum):
    """Lifecycle state of a rotation run, in execution order."""

    PENDING = "pending"
    SCALE_OUT = "scale_out"
    PROTECT_NEW = "protect_new"
    AWAIT_PROTECT = "await_protect"
    SCALE_IN = "scale_in"
    UNPROTECT_ALL = "unprotect_all"
    AWAIT_UNPROTECT = "await_unprotect"
    DONE = "done"
    ABORTED = "aborted"


class RotationSummary(TypedDict):
    """Result of a completed rotation."""

    run_id: str
    scale_set: str
    state: str
    original_capacity: int
    scaled_out_capacity: int
    final_capacity: int
    protected: list[str]
    unprotected: list[str]
    duration_seconds: float


class RotationOrchestrator:
    """Single-use, stateless-between-runs rotation procedure.

    The gateway is constructed by the caller and passed in explicitly;
    the orchestrator never creates provider sessions itself.

    Attributes:
        state: Current ``RotationState``.
        history: Every state entered so far, in order.
        failed_state: State in which the run aborted, if it did.
        original_capacity, scaled_out_capacity, final_capacity: Capacities
            reached so far, ``None`` until the phase completes.
        protected, unprotected: Instance IDs whose fan-out phase completed.
    """

    def __init__(
        self,
        gateway: ScaleSetGateway,
        ref: ScaleSetRef,
        config: RotationConfig | None = None,
        *,
        run_id: str = "",
    ) -> None:
        self._gateway = gateway
        self._ref = ref
        self._config = config or RotationConfig()
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.state = RotationState.PENDING
        self.history: list[RotationState] = [RotationState.PENDING]
        self.failed_state: RotationState | None = None
        # Progress so far, kept for the abort report.
        self.original_capacity: int | None = None
        self.scaled_out_capacity: int | None = None
        self.final_capacity: int | None = None
        self.protected: list[str] = []
        self.unprotected: list[str] = []

    @property
    def ref(self) -> ScaleSetRef:
        return self._ref

    def _transition(self, state: RotationState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug("Rotation state | run=%s | state=%s", self.run_id, state.value)

    def _abort(self, exc: BaseException) -> None:
        self.failed_state = self.state
        if isinstance(exc, RotationError):
            exc.correlation_id = exc.correlation_id or self.run_id
            if exc.stage in ("", "provider"):
                exc.stage = self.state.value
        self._transition(RotationState.ABORTED)
        logger.error(
            "Rotation aborted | run=%s | scale_set=%s | phase=%s | error=%s",
            self.run_id,
            self._ref.display,
            self.failed_state.value,
            exc,
        )

    def run(self) -> RotationSummary:
        """Execute the rotation.

        Returns:
            A ``RotationSummary`` once every phase has completed.

        Raises:
            RotationError: From whichever phase failed; the orchestrator
                is left in ``ABORTED``.
            RuntimeError: If this orchestrator has already been run.
        """
        if self.state is not RotationState.PENDING:
            msg = f"Rotation {self.run_id} already ran (state={self.state.value})"
            raise RuntimeError(msg)

        started = time.monotonic()
        gateway, ref, cfg = self._gateway, self._ref, self._config
        logger.info(
            "Rotation started | run=%s | scale_set=%s | subscription=%s | factors=%.2f/%.2f",
            self.run_id,
            ref.display,
            ref.subscription_id,
            cfg.scale_out_factor,
            cfg.scale_in_factor,
        )

        try:
            self._transition(RotationState.SCALE_OUT)
            scale_out = run_scale_phase(
                gateway,
                ref,
                cfg.scale_out_factor,
                phase=RotationState.SCALE_OUT.value,
                run_id=self.run_id,
            )
            self.original_capacity = scale_out["previous_capacity"]
            self.scaled_out_capacity = scale_out["new_capacity"]
            added = scale_out["new_capacity"] - scale_out["previous_capacity"]

            self._transition(RotationState.PROTECT_NEW)
            protect = submit_protection_updates(
                gateway,
                ref,
                filter_expr=LATEST_MODEL_FILTER,
                policy=ProtectionPolicy.protect(),
                phase=RotationState.PROTECT_NEW.value,
                run_id=self.run_id,
            )
            if not protect["failures"] and len(protect["operations"]) != added:
                logger.warning(
                    "phase=%s | run=%s | expected %d new instance(s), protecting %d",
                    RotationState.PROTECT_NEW.value,
                    self.run_id,
                    added,
                    len(protect["operations"]),
                )

            self._transition(RotationState.AWAIT_PROTECT)
            outcomes = await_operations(
                gateway,
                protect["operations"],
                phase=RotationState.AWAIT_PROTECT.value,
                run_id=self.run_id,
            )
            protected = check_fan_out(
                RotationState.AWAIT_PROTECT.value, protect, outcomes, run_id=self.run_id
            )
            self.protected = protected

            self._transition(RotationState.SCALE_IN)
            scale_in = run_scale_phase(
                gateway,
                ref,
                cfg.scale_in_factor,
                phase=RotationState.SCALE_IN.value,
                min_capacity=scale_out["previous_capacity"],
                run_id=self.run_id,
            )
            self.final_capacity = scale_in["new_capacity"]

            self._transition(RotationState.UNPROTECT_ALL)
            unprotect = submit_protection_updates(
                gateway,
                ref,
                filter_expr=ALL_INSTANCES_FILTER,
                policy=ProtectionPolicy.unprotect(),
                phase=RotationState.UNPROTECT_ALL.value,
                run_id=self.run_id,
            )

            self._transition(RotationState.AWAIT_UNPROTECT)
            outcomes = await_operations(
                gateway,
                unprotect["operations"],
                phase=RotationState.AWAIT_UNPROTECT.value,
                run_id=self.run_id,
            )
            unprotected = check_fan_out(
                RotationState.AWAIT_UNPROTECT.value, unprotect, outcomes, run_id=self.run_id
            )
            self.unprotected = unprotected
        except Exception as exc:
            self._abort(exc)
            raise

        self._transition(RotationState.DONE)
        duration = time.monotonic() - started
        logger.info(
            "Rotation completed | run=%s | scale_set=%s | capacity=%d->%d->%d | "
            "protected=%d | unprotected=%d | duration=%.1fs",
            self.run_id,
            ref.display,
            scale_out["previous_capacity"],
            scale_out["new_capacity"],
            scale_in["new_capacity"],
            len(protected),
            len(unprotected),
            duration,
        )

        return RotationSummary(
            run_id=self.run_id,
            scale_set=ref.display,
            state=self.state.value,
            original_capacity=scale_out["previous_capacity"],
            scaled_out_capacity=scale_out["new_capacity"],
            final_capacity=scale_in["new_capacity"],
            protected=protected,
            unprotected=unprotected,
            duration_seconds=round(duration, 3),
        )


def run_rotation(
    gateway: ScaleSetGateway,
    ref: ScaleSetRef,
    config: RotationConfig | None = None,
) -> RotationSummary:
    """Convenience wrapper: build a ``RotationOrchestrator`` and run it once."""
    return RotationOrchestrator(gateway, ref, config).run()
