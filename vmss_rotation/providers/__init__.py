"""Scale-set gateway adapters.

Implements the provider-agnostic adapter pattern:
- ScaleSetGateway: Abstract base class defining the interface
- AzureComputeGateway: Azure Virtual Machine Scale Sets (azure-mgmt-compute)

The active gateway is selected via configuration.
"""

from vmss_rotation.providers.base import (
    AwaitError,
    ProviderAuthError,
    ProviderError,
    ReadError,
    ScaleSetGateway,
    UpdateSubmitError,
)
from vmss_rotation.providers.factory import (
    get_gateway,
    list_gateways,
    register_gateway,
    unregister_gateway,
)

__all__ = [
    "AwaitError",
    "ProviderAuthError",
    "ProviderError",
    "ReadError",
    "ScaleSetGateway",
    "UpdateSubmitError",
    "get_gateway",
    "list_gateways",
    "register_gateway",
    "unregister_gateway",
]
