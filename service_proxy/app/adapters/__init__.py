"""
Adapters package for the Proxy service.

Contains clients for the collaborators the proxy consumes but does not own:

- MappingStore: slug mappings and access counters in Redis
- BackendClient: the outbound HTTP call to a tenant's backend

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .mapping_store import MappingStore
from .backend_client import BackendClient, BackendResponse

__all__ = [
    "MappingStore",
    "BackendClient",
    "BackendResponse",
]
