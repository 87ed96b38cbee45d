"""Tests for the rotation orchestrator.

End-to-end rotations against the in-memory gateway, the abort policy,
the state machine, and repeated runs.
"""

from __future__ import annotations

import logging

import pytest

from vmss_rotation.core.config import RotationConfig
from vmss_rotation.core.constants import LATEST_MODEL_FILTER
from vmss_rotation.core.exceptions import PartialApplicationError
from vmss_rotation.orchestrators.rotation import (
    RotationOrchestrator,
    RotationState,
    run_rotation,
)
from vmss_rotation.providers.base import ReadError

_FULL_HISTORY = [
    RotationState.PENDING,
    RotationState.SCALE_OUT,
    RotationState.PROTECT_NEW,
    RotationState.AWAIT_PROTECT,
    RotationState.SCALE_IN,
    RotationState.UNPROTECT_ALL,
    RotationState.AWAIT_UNPROTECT,
    RotationState.DONE,
]


class TestEndToEnd:
    """4 -> 8 -> 4 with the original instances replaced."""

    def test_capacity_restored_and_nothing_protected(self, fake_gateway, ref) -> None:
        original = set(fake_gateway.instance_ids)

        summary = RotationOrchestrator(fake_gateway, ref, run_id="run-e2e").run()

        assert fake_gateway.capacity_history == [8, 4]
        assert fake_gateway.capacity == 4
        assert fake_gateway.protected_ids == []
        assert set(fake_gateway.instance_ids).isdisjoint(original)
        assert summary["original_capacity"] == 4
        assert summary["scaled_out_capacity"] == 8
        assert summary["final_capacity"] == 4
        assert summary["state"] == "done"
        assert summary["run_id"] == "run-e2e"
        assert summary["scale_set"] == "rg-web/vmss-web"

    def test_protected_batch_is_exactly_the_new_instances(self, fake_gateway, ref) -> None:
        original = set(fake_gateway.instance_ids)
        summary = RotationOrchestrator(fake_gateway, ref).run()

        assert len(summary["protected"]) == 4
        assert set(summary["protected"]).isdisjoint(original)
        assert sorted(summary["unprotected"]) == sorted(summary["protected"])
        assert sorted(fake_gateway.instance_ids) == sorted(summary["protected"])

    def test_call_sequence(self, fake_gateway, ref) -> None:
        RotationOrchestrator(fake_gateway, ref).run()
        calls = fake_gateway.calls

        assert calls[:3] == [
            "get_snapshot",
            "update_capacity:8",
            f"list_instances:{LATEST_MODEL_FILTER}",
        ]
        scale_in = calls.index("update_capacity:4")
        assert calls[scale_in - 1] == "get_snapshot"
        assert calls[scale_in + 1] == "list_instances:"
        # protection only before the scale-in, unprotection only after it
        assert all(c.endswith(":True") for c in calls[:scale_in] if c.startswith("set_protection"))
        assert all(c.endswith(":False") for c in calls[scale_in:] if c.startswith("set_protection"))

    def test_state_history(self, fake_gateway, ref) -> None:
        orchestrator = RotationOrchestrator(fake_gateway, ref)
        orchestrator.run()
        assert orchestrator.history == _FULL_HISTORY
        assert orchestrator.state is RotationState.DONE
        assert orchestrator.failed_state is None

    @pytest.mark.parametrize("capacity", [1, 3, 5, 7])
    def test_odd_capacity_round_trip(self, gateway_factory, ref, capacity: int) -> None:
        gw = gateway_factory(capacity=capacity)
        run_rotation(gw, ref)
        assert gw.capacity_history == [capacity * 2, capacity]

    def test_empty_scale_set(self, gateway_factory, ref) -> None:
        gw = gateway_factory(capacity=0)
        summary = run_rotation(gw, ref)
        assert summary["final_capacity"] == 0
        assert summary["protected"] == []

    def test_custom_factors_never_shrink_below_original(self, gateway_factory, ref) -> None:
        gw = gateway_factory(capacity=3)
        cfg = RotationConfig(scale_out_factor=1.5, scale_in_factor=0.5)

        summary = run_rotation(gw, ref, cfg)

        assert gw.capacity_history == [4, 3]
        assert summary["final_capacity"] == 3

    def test_phase_boundaries_logged(self, fake_gateway, ref, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="vmss_rotation"):
            RotationOrchestrator(fake_gateway, ref, run_id="run-log").run()
        messages = caplog.text
        for phase in ("scale_out", "await_protect", "scale_in", "await_unprotect"):
            assert f"phase={phase} completed" in messages
        assert "Rotation completed | run=run-log" in messages


class TestNotIdempotent:
    """Running twice compounds: double, halve, double, halve."""

    def test_second_run_doubles_and_halves_again(self, fake_gateway, ref) -> None:
        run_rotation(fake_gateway, ref)
        second = run_rotation(fake_gateway, ref)

        assert fake_gateway.capacity_history == [8, 4, 8, 4]
        assert fake_gateway.capacity == 4
        assert second["original_capacity"] == 4
        assert second["scaled_out_capacity"] == 8

    def test_second_run_protects_every_latest_model_instance(self, fake_gateway, ref) -> None:
        """After one rotation the survivors are on the latest model too."""
        run_rotation(fake_gateway, ref)
        second = run_rotation(fake_gateway, ref)
        assert len(second["protected"]) == 8
        assert fake_gateway.protected_ids == []

    def test_orchestrator_is_single_use(self, fake_gateway, ref) -> None:
        orchestrator = RotationOrchestrator(fake_gateway, ref)
        orchestrator.run()
        with pytest.raises(RuntimeError, match="already ran"):
            orchestrator.run()


class TestAbortPolicy:
    """Any phase failure aborts the run without retries."""

    def test_await_protect_failure_aborts_before_scale_in(self, fake_gateway, ref) -> None:
        fake_gateway.fail_await = {"5"}
        fake_gateway.await_delays = {"4": 0.05, "6": 0.2, "7": 0.1}
        orchestrator = RotationOrchestrator(fake_gateway, ref, run_id="run-abort")

        with pytest.raises(PartialApplicationError) as exc_info:
            orchestrator.run()

        # every sibling was awaited
        assert sorted(fake_gateway.completed) == ["4", "5", "6", "7"]
        # no scale-in
        assert fake_gateway.capacity_history == [8]
        assert "update_capacity:4" not in fake_gateway.calls
        assert orchestrator.state is RotationState.ABORTED
        assert orchestrator.failed_state is RotationState.AWAIT_PROTECT
        assert RotationState.SCALE_IN not in orchestrator.history

        err = exc_info.value
        assert sorted(err.applied) == ["4", "6", "7"]
        assert set(err.failed) == {"5"}
        assert err.correlation_id == "run-abort"
        assert sorted(fake_gateway.protected_ids) == ["4", "6", "7"]

    def test_submit_failure_still_awaits_submitted(self, fake_gateway, ref) -> None:
        fake_gateway.fail_submit = {"6"}
        orchestrator = RotationOrchestrator(fake_gateway, ref)

        with pytest.raises(PartialApplicationError) as exc_info:
            orchestrator.run()

        assert sorted(fake_gateway.completed) == ["4", "5"]
        assert set(exc_info.value.failed) == {"6"}
        assert orchestrator.failed_state is RotationState.AWAIT_PROTECT
        assert fake_gateway.capacity_history == [8]

    def test_read_error_aborts_before_any_mutation(self, fake_gateway, ref) -> None:
        fake_gateway.fail_snapshot = True
        orchestrator = RotationOrchestrator(fake_gateway, ref, run_id="run-read")

        with pytest.raises(ReadError) as exc_info:
            orchestrator.run()

        assert fake_gateway.capacity_history == []
        assert orchestrator.failed_state is RotationState.SCALE_OUT
        assert orchestrator.history[-1] is RotationState.ABORTED
        assert exc_info.value.stage == "scale_out"
        assert exc_info.value.correlation_id == "run-read"

    def test_await_unprotect_failure_reports_partial(self, fake_gateway, ref) -> None:
        fake_gateway.fail_unprotect = {"4"}
        orchestrator = RotationOrchestrator(fake_gateway, ref)

        with pytest.raises(PartialApplicationError) as exc_info:
            orchestrator.run()

        assert exc_info.value.phase == "await_unprotect"
        assert fake_gateway.capacity_history == [8, 4]
        assert fake_gateway.protected_ids == ["4"]
        assert orchestrator.failed_state is RotationState.AWAIT_UNPROTECT

    def test_abort_logged(self, fake_gateway, ref, caplog) -> None:
        fake_gateway.fail_snapshot = True
        with caplog.at_level(logging.ERROR, logger="vmss_rotation"), pytest.raises(ReadError):
            RotationOrchestrator(fake_gateway, ref, run_id="run-x").run()
        assert "Rotation aborted | run=run-x" in caplog.text

    def test_unexpected_submit_error_still_awaits_submitted(self, fake_gateway, ref) -> None:
        submit = fake_gateway.set_instance_protection

        def _submit(ref, instance_id, policy):
            if instance_id == "6":
                raise RuntimeError("unexpected SDK failure")
            return submit(ref, instance_id, policy)

        fake_gateway.set_instance_protection = _submit
        orchestrator = RotationOrchestrator(fake_gateway, ref)

        with pytest.raises(PartialApplicationError) as exc_info:
            orchestrator.run()

        assert sorted(fake_gateway.completed) == ["4", "5"]
        assert sorted(fake_gateway.protected_ids) == ["4", "5"]
        assert set(exc_info.value.failed) == {"6"}
        assert orchestrator.failed_state is RotationState.AWAIT_PROTECT

    def test_progress_recorded_until_abort(self, fake_gateway, ref) -> None:
        fake_gateway.fail_unprotect = {"7"}
        orchestrator = RotationOrchestrator(fake_gateway, ref)

        with pytest.raises(PartialApplicationError):
            orchestrator.run()

        assert orchestrator.original_capacity == 4
        assert orchestrator.scaled_out_capacity == 8
        assert orchestrator.final_capacity == 4
        assert sorted(orchestrator.protected) == ["4", "5", "6", "7"]
        assert orchestrator.unprotected == []
