"""Pydantic models for declared resource specifications.

These models provide:
1. Type-safe parsing of plan entries
2. Validation at the boundary (ranges, enums, formats) before any API call
3. A flat attribute dump comparable with the local record
"""

from __future__ import annotations

import ipaddress
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator, model_validator

SUPPORTED_RECORD_TYPES = frozenset({
    "A", "AAAA", "ALIAS", "CAA", "CNAME",
    "HINFO", "MX", "NAPTR", "NS", "POOL",
    "SPF", "SRV", "SSHFP", "TXT", "URL",
})

SUPPORTED_PROTOCOLS = frozenset({"TCP", "UDP", "ICMP", "ICMPV6", "AH", "ESP", "GRE", "IPIP", "ALL"})

RULE_TYPES = frozenset({"INGRESS", "EGRESS"})

HEALTHCHECK_MODES = frozenset({"tcp", "http"})

DEFAULT_AFFINITY_TYPE = "host anti-affinity"
AFFINITY_TYPES = frozenset({"host anti-affinity"})

# Compute root disk sizes in GB
MIN_DISK_SIZE_GB = 10
MAX_DISK_SIZE_GB = 51200


def _validate_ip(value: str | None, version: int | None = None) -> str | None:
    if value is None:
        return None
    try:
        parsed = ipaddress.ip_address(value)
    except ValueError as e:
        raise ValueError(f"invalid IP address: {value}") from e
    if version is not None and parsed.version != version:
        raise ValueError(f"expected an IPv{version} address: {value}")
    return str(parsed)


# =============================================================================
# Base Models
# =============================================================================


class ResourceSpec(BaseModel):
    """Base specification with common behavior."""

    model_config = {"extra": "forbid"}  # Reject unknown fields

    def declared_attributes(self) -> dict[str, Any]:
        """Flat attribute mapping comparable with a record's attributes."""
        return self.model_dump()


class TaggedSpec(ResourceSpec):
    tags: dict[str, str] = Field(default_factory=dict)


# =============================================================================
# Compute
# =============================================================================


class ComputeSpec(TaggedSpec):
    """Compute instance specification."""

    display_name: Annotated[str, Field(min_length=1, max_length=63)]
    zone: Annotated[str, Field(min_length=1)]
    template: Annotated[str, Field(min_length=1)]
    size: Annotated[str, Field(min_length=1)] = "Medium"
    disk_size: Annotated[int, Field(ge=MIN_DISK_SIZE_GB, le=MAX_DISK_SIZE_GB)]
    key_pair: str | None = None
    user_data: str | None = None
    # None keeps the account default group
    security_groups: list[str] | None = None
    affinity_groups: list[str] = Field(default_factory=list)
    ip6: bool = False

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v: str) -> str:
        # Used as the instance hostname
        if not all(c.isalnum() or c == "-" for c in v) or v.startswith("-") or v.endswith("-"):
            raise ValueError("display_name must be a valid hostname label")
        return v


class NetworkSpec(TaggedSpec):
    """Private network specification.

    start_ip, end_ip and netmask enable the managed DHCP service and must be
    declared together.
    """

    zone: Annotated[str, Field(min_length=1)]
    network_offering: Annotated[str, Field(min_length=1)]
    name: Annotated[str, Field(min_length=1)]
    display_text: str | None = None
    start_ip: str | None = None
    end_ip: str | None = None
    netmask: str | None = None

    @field_validator("start_ip", "end_ip", "netmask")
    @classmethod
    def validate_ipv4(cls, v: str | None) -> str | None:
        return _validate_ip(v, version=4)

    @model_validator(mode="after")
    def validate_managed_range(self) -> NetworkSpec:
        declared = [v is not None for v in (self.start_ip, self.end_ip, self.netmask)]
        if any(declared) and not all(declared):
            raise ValueError("start_ip, end_ip and netmask must be set together")
        return self


class NICSpec(ResourceSpec):
    """Secondary network interface attaching a compute instance to a network."""

    compute_id: Annotated[str, Field(min_length=1)]
    network_id: Annotated[str, Field(min_length=1)]
    ip_address: str | None = None

    @field_validator("ip_address")
    @classmethod
    def validate_ip_address(cls, v: str | None) -> str | None:
        return _validate_ip(v, version=4)


# =============================================================================
# Security groups
# =============================================================================


class SecurityGroupSpec(ResourceSpec):
    name: Annotated[str, Field(min_length=1, max_length=255)]
    description: str | None = None


class SecurityGroupRuleSpec(ResourceSpec):
    """Single ingress or egress rule of a security group.

    Exactly one of security_group_id / security_group designates the parent,
    and exactly one of cidr / user_security_group the peer.
    """

    security_group_id: str | None = None
    security_group: str | None = None
    type: str
    protocol: str = "TCP"
    cidr: str | None = None
    user_security_group: str | None = None
    start_port: Annotated[int, Field(ge=0, le=65535)] | None = None
    end_port: Annotated[int, Field(ge=0, le=65535)] | None = None
    icmp_type: Annotated[int, Field(ge=0, le=255)] | None = None
    icmp_code: Annotated[int, Field(ge=0, le=255)] | None = None
    description: str | None = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        upper = v.upper()
        if upper not in RULE_TYPES:
            raise ValueError(f"type must be one of {sorted(RULE_TYPES)}")
        return upper

    @field_validator("protocol")
    @classmethod
    def validate_protocol(cls, v: str) -> str:
        if v.upper() not in SUPPORTED_PROTOCOLS:
            raise ValueError(f"protocol must be one of {sorted(SUPPORTED_PROTOCOLS)}")
        # ICMPv6 keeps its canonical mixed case
        return "ICMPv6" if v.upper() == "ICMPV6" else v.upper()

    @field_validator("cidr")
    @classmethod
    def validate_cidr(cls, v: str | None) -> str | None:
        if v is None:
            return None
        try:
            return str(ipaddress.ip_network(v, strict=False))
        except ValueError as e:
            raise ValueError(f"cidr must be in CIDR notation: {v}") from e

    @model_validator(mode="after")
    def validate_exclusive_fields(self) -> SecurityGroupRuleSpec:
        if (self.security_group_id is None) == (self.security_group is None):
            raise ValueError("exactly one of security_group_id or security_group is required")
        if (self.cidr is None) == (self.user_security_group is None):
            raise ValueError("exactly one of cidr or user_security_group is required")
        if (
            self.start_port is not None
            and self.end_port is not None
            and self.start_port > self.end_port
        ):
            raise ValueError("start_port must not exceed end_port")
        return self


class AffinitySpec(ResourceSpec):
    name: Annotated[str, Field(min_length=1, max_length=255)]
    description: str | None = None
    type: str = DEFAULT_AFFINITY_TYPE

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in AFFINITY_TYPES:
            raise ValueError(f"type must be one of {sorted(AFFINITY_TYPES)}")
        return v


# =============================================================================
# Elastic IP
# =============================================================================


class HealthcheckSpec(BaseModel):
    """Elastic IP healthcheck, always written as a unit."""

    model_config = {"extra": "forbid"}

    mode: str
    port: Annotated[int, Field(ge=1, le=65535)]
    path: str = ""
    interval: Annotated[int, Field(ge=5, le=300)] = 10
    timeout: Annotated[int, Field(ge=2, le=60)] = 2
    strikes_ok: Annotated[int, Field(ge=1, le=20)] = 1
    strikes_fail: Annotated[int, Field(ge=1, le=20)] = 2

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        lower = v.lower()
        if lower not in HEALTHCHECK_MODES:
            raise ValueError(f"mode must be one of {sorted(HEALTHCHECK_MODES)}")
        return lower

    @model_validator(mode="after")
    def validate_consistency(self) -> HealthcheckSpec:
        if self.mode == "http" and not self.path:
            raise ValueError("path is required for http healthchecks")
        if self.timeout >= self.interval:
            raise ValueError("timeout must be lower than interval")
        return self


class IPAddressSpec(TaggedSpec):
    zone: Annotated[str, Field(min_length=1)]
    description: str | None = None
    healthcheck: HealthcheckSpec | None = None


# =============================================================================
# SSH keys and DNS
# =============================================================================


class SSHKeyPairSpec(ResourceSpec):
    """SSH key pair; omitting public_key lets the API generate the key."""

    name: Annotated[str, Field(min_length=1, max_length=255)]
    public_key: str | None = None


class DomainSpec(ResourceSpec):
    name: Annotated[str, Field(min_length=1, max_length=253)]

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if "." not in v or v.startswith(".") or v.endswith("."):
            raise ValueError("name must be a fully qualified domain name without trailing dot")
        return v.lower()


class DomainRecordSpec(ResourceSpec):
    domain: Annotated[str, Field(min_length=1)]
    record_type: str
    name: str = ""
    content: Annotated[str, Field(min_length=1)]
    ttl: Annotated[int, Field(ge=0)] | None = None
    prio: Annotated[int, Field(ge=0)] | None = None

    @field_validator("record_type")
    @classmethod
    def validate_record_type(cls, v: str) -> str:
        upper = v.upper()
        if upper not in SUPPORTED_RECORD_TYPES:
            raise ValueError(f"record_type must be one of {sorted(SUPPORTED_RECORD_TYPES)}")
        return upper


# =============================================================================
# Spec Registry
# =============================================================================

SPEC_REGISTRY: dict[str, type[ResourceSpec]] = {
    "compute": ComputeSpec,
    "network": NetworkSpec,
    "nic": NICSpec,
    "security_group": SecurityGroupSpec,
    "security_group_rule": SecurityGroupRuleSpec,
    "affinity": AffinitySpec,
    "ipaddress": IPAddressSpec,
    "ssh_keypair": SSHKeyPairSpec,
    "domain": DomainSpec,
    "domain_record": DomainRecordSpec,
}


def get_spec_class(kind: str) -> type[ResourceSpec]:
    """Get the spec class for a resource kind.

    Raises:
        ValueError: If the kind is not recognized.
    """
    spec_class = SPEC_REGISTRY.get(kind)
    if spec_class is None:
        valid_kinds = list(SPEC_REGISTRY.keys())
        raise ValueError(f"Unknown kind '{kind}'. Valid kinds: {valid_kinds}")
    return spec_class
