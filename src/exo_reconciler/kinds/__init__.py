"""Resource kinds and their registry."""

from __future__ import annotations

from .affinity import AffinityKind
from .base import CloudAPI, ResourceKind
from .compute import ComputeKind
from .domain import DomainKind
from .domain_record import DomainRecordKind
from .ipaddress import IPAddressKind
from .network import NetworkKind
from .nic import NICKind
from .security_group import SecurityGroupKind
from .security_group_rule import SecurityGroupRuleKind
from .ssh_keypair import SSHKeyPairKind

KIND_REGISTRY: dict[str, type[ResourceKind]] = {
    kind.type_name: kind
    for kind in (
        ComputeKind,
        NetworkKind,
        NICKind,
        SecurityGroupKind,
        SecurityGroupRuleKind,
        AffinityKind,
        IPAddressKind,
        SSHKeyPairKind,
        DomainKind,
        DomainRecordKind,
    )
}


def build_kinds(api: CloudAPI) -> dict[str, ResourceKind]:
    """Instantiate every registered kind against the given API collaborators."""
    return {name: kind_class(api) for name, kind_class in KIND_REGISTRY.items()}


__all__ = [
    "KIND_REGISTRY",
    "AffinityKind",
    "CloudAPI",
    "ComputeKind",
    "DomainKind",
    "DomainRecordKind",
    "IPAddressKind",
    "NICKind",
    "NetworkKind",
    "ResourceKind",
    "SSHKeyPairKind",
    "SecurityGroupKind",
    "SecurityGroupRuleKind",
    "build_kinds",
]
