"""Exoscale API mock for integration testing.

In-memory implementations of the compute and DNS API protocols, so that
kinds, reconcilers and the plan runner can be exercised end to end without
network access.

Key Features:
- CloudStack-style command dispatch with the real JSON shapes
- 431 parameter errors for unknown IDs, 404 for unknown DNS objects
- Call log for asserting which requests were (or were not) issued
- Error injection per command and latency injection for deadline tests

Usage:
    from exoscale_mock import MockCloud

    cloud = MockCloud()
    kinds = build_kinds(cloud.api)
    ...
    assert cloud.compute.command_count("deployVirtualMachine") == 1
"""

from .cloud import MockCloud
from .compute import MockCall, MockComputeAPI
from .dns import MockDNSAPI

__all__ = [
    "MockCall",
    "MockCloud",
    "MockComputeAPI",
    "MockDNSAPI",
]
