"""Shared rotation constants — single source of truth.

Centralises the instance filter expressions and scale factors used by
the orchestrator, the gateway adapters, and the configuration layer.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Instance filters
# ---------------------------------------------------------------------------

LATEST_MODEL_FILTER: str = "properties/latestModelApplied eq true"
"""Selects instances created from the current scale-set model (the new batch)."""

ALL_INSTANCES_FILTER: str = ""
"""Empty filter: every current member of the scale set."""

LIST_INSTANCES_KEY: str = "list_instances"
"""Failure key used when enumerating instances fails, not an instance ID."""

# ---------------------------------------------------------------------------
# Scale factors
# ---------------------------------------------------------------------------

DEFAULT_SCALE_OUT_FACTOR: float = 2.0
DEFAULT_SCALE_IN_FACTOR: float = 0.5

# ---------------------------------------------------------------------------
# Gateway names
# ---------------------------------------------------------------------------

AZURE_GATEWAY: str = "azure"
