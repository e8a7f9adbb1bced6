"""Client library for the Hero Load Balancer (HLB) control plane."""

from hlb_client.client import HLBClient
from hlb_client.errors import (
    BackendError,
    CredentialError,
    CredentialStoreError,
    HLBError,
    LocalError,
    ReconcileError,
    ReconcileTimeoutError,
    ResourceFailedError,
    UnexpectedStateError,
)

__version__ = "0.3.0"

__all__ = [
    "BackendError",
    "CredentialError",
    "CredentialStoreError",
    "HLBClient",
    "HLBError",
    "LocalError",
    "ReconcileError",
    "ReconcileTimeoutError",
    "ResourceFailedError",
    "UnexpectedStateError",
    "__version__",
]
