"""Lifecycle reconciler for Exoscale resources.

Converges declared resources (compute instances, networks, NICs, security
groups and rules, affinity groups, elastic IPs, SSH key pairs, DNS domains
and records) with the state of an Exoscale account.
"""

from .errors import (
    ErrorClass,
    MalformedIdentityError,
    NotFoundError,
    OperationTimeoutError,
    ReconcileError,
    UnsupportedOperationError,
    classify,
)
from .reconciler import LifecycleReconciler
from .state import RecordStatus, ResourceRecord

__version__ = "0.1.0"

__all__ = [
    "ErrorClass",
    "LifecycleReconciler",
    "MalformedIdentityError",
    "NotFoundError",
    "OperationTimeoutError",
    "ReconcileError",
    "RecordStatus",
    "ResourceRecord",
    "UnsupportedOperationError",
    "classify",
]
