from .network_injection import NetworkInjectionClient as NetworkInjectionClient
from .resource_manager import EnterprisePolicyClient as EnterprisePolicyClient

__all__ = [
    "EnterprisePolicyClient",
    "NetworkInjectionClient",
]
