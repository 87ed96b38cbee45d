"""Gateway factory — selects the active scale-set gateway by name.

The factory maintains a registry of known adapters. New adapters are
registered by adding an entry to ``_ADAPTER_REGISTRY`` or at runtime via
``register_gateway``.

Usage::

    from vmss_rotation.providers.factory import get_gateway

    gateway = get_gateway("azure")
    snapshot = gateway.get_snapshot(ref)

The gateway name is read from the ``ROTATION_GATEWAY`` environment
variable via ``RotationConfig.gateway``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from vmss_rotation.core.constants import AZURE_GATEWAY
from vmss_rotation.providers.base import ProviderError, ScaleSetGateway

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

# Each entry maps a gateway name to a callable that returns the adapter
# *class*, so SDK dependencies are only imported when that adapter is selected.
_ADAPTER_REGISTRY: dict[str, Callable[[], type[ScaleSetGateway]]] = {}


def _register_builtin_adapters() -> None:
    """Register the built-in gateway adapters."""

    def _azure() -> type[ScaleSetGateway]:
        from vmss_rotation.providers.azure_compute import AzureComputeGateway

        return AzureComputeGateway

    _ADAPTER_REGISTRY[AZURE_GATEWAY] = _azure


def _ensure_registry() -> None:
    """Initialise the adapter registry once (idempotent)."""
    if not _ADAPTER_REGISTRY:
        _register_builtin_adapters()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def register_gateway(
    name: str,
    loader: Callable[[], type[ScaleSetGateway]],
) -> None:
    """Register a custom gateway adapter.

    Args:
        name: Gateway name (e.g. ``"simulated"``).
        loader: A zero-argument callable that returns the adapter class.

    Raises:
        ValueError: If the name is empty.
    """
    if not name:
        msg = "Gateway name must be non-empty"
        raise ValueError(msg)
    _ensure_registry()
    _ADAPTER_REGISTRY[name] = loader
    logger.debug("Registered gateway adapter: %s", name)


def unregister_gateway(name: str) -> None:
    """Remove a previously registered adapter (no-op when unknown)."""
    _ADAPTER_REGISTRY.pop(name, None)


def get_gateway(name: str, **kwargs: object) -> ScaleSetGateway:
    """Create and return a gateway instance.

    Args:
        name: Gateway identifier (e.g. ``"azure"``).
        **kwargs: Passed through to the adapter constructor
            (e.g. ``credential=`` for Azure).

    Raises:
        ProviderError: If the named gateway is not registered.
    """
    _ensure_registry()

    loader = _ADAPTER_REGISTRY.get(name)
    if loader is None:
        available = ", ".join(sorted(_ADAPTER_REGISTRY))
        msg = f"Unknown scale-set gateway: {name!r}. Available: {available}"
        raise ProviderError(provider=name, message=msg)

    adapter_cls = loader()
    logger.info("Creating scale-set gateway: %s", name)
    return adapter_cls(**kwargs)


def list_gateways() -> list[str]:
    """Return the names of all registered gateway adapters."""
    _ensure_registry()
    return sorted(_ADAPTER_REGISTRY)
