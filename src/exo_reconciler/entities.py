"""Typed snapshots of remote objects.

Compute entities follow the CloudStack-style JSON of the compute API
(lowercase concatenated keys such as ``displayname`` or ``zoneid``); DNS
entities follow the snake_case JSON of the DNS API. Unknown keys are ignored
so that API additions never break a read.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class Entity(BaseModel):
    """Base class for remote snapshots."""

    model_config = {"extra": "ignore", "populate_by_name": True}


class ResourceTag(Entity):
    key: str
    value: str = ""
    resource_type: str | None = Field(None, alias="resourcetype")


def tags_to_dict(tags: list[ResourceTag]) -> dict[str, str]:
    """Flatten a tag list into a mapping."""
    return {tag.key: tag.value for tag in tags}


# =============================================================================
# Catalog
# =============================================================================


class Zone(Entity):
    id: str
    name: str


class Template(Entity):
    id: str
    name: str
    display_text: str = Field("", alias="displaytext")
    zone_id: str | None = Field(None, alias="zoneid")
    size: int | None = None


class ServiceOffering(Entity):
    id: str
    name: str
    cpu_number: int | None = Field(None, alias="cpunumber")
    memory: int | None = None


class NetworkOffering(Entity):
    id: str
    name: str
    display_text: str = Field("", alias="displaytext")


# =============================================================================
# Compute
# =============================================================================


class Nic(Entity):
    """Network interface attached to a virtual machine."""

    id: str
    network_id: str = Field(alias="networkid")
    virtual_machine_id: str | None = Field(None, alias="virtualmachineid")
    ip_address: str | None = Field(None, alias="ipaddress")
    ip6_address: str | None = Field(None, alias="ip6address")
    mac_address: str | None = Field(None, alias="macaddress")
    netmask: str | None = None
    gateway: str | None = None
    is_default: bool = Field(False, alias="isdefault")


class SecurityGroupRule(Entity):
    """Ingress or egress rule as embedded in a security group."""

    rule_id: str = Field(alias="ruleid")
    protocol: str = ""
    cidr: str | None = None
    start_port: int | None = Field(None, alias="startport")
    end_port: int | None = Field(None, alias="endport")
    icmp_type: int | None = Field(None, alias="icmptype")
    icmp_code: int | None = Field(None, alias="icmpcode")
    security_group_name: str | None = Field(None, alias="securitygroupname")
    account: str | None = None
    description: str = ""


class SecurityGroup(Entity):
    id: str
    name: str
    description: str = ""
    ingress_rules: list[SecurityGroupRule] = Field(default_factory=list, alias="ingressrule")
    egress_rules: list[SecurityGroupRule] = Field(default_factory=list, alias="egressrule")
    virtual_machine_ids: list[str] = Field(default_factory=list, alias="virtualmachineids")

    def find_rule(self, rule_id: str) -> tuple[str, SecurityGroupRule] | None:
        """Locate a rule by ID.

        Returns:
            ("INGRESS" | "EGRESS", rule) or None when absent.
        """
        for rule in self.ingress_rules:
            if rule.rule_id == rule_id:
                return "INGRESS", rule
        for rule in self.egress_rules:
            if rule.rule_id == rule_id:
                return "EGRESS", rule
        return None


class AffinityGroup(Entity):
    id: str
    name: str
    description: str = ""
    type: str = ""
    virtual_machine_ids: list[str] = Field(default_factory=list, alias="virtualmachineIds")


class VirtualMachine(Entity):
    """Compute instance snapshot."""

    id: str
    name: str = ""
    display_name: str = Field("", alias="displayname")
    state: str = ""
    zone_id: str | None = Field(None, alias="zoneid")
    zone_name: str | None = Field(None, alias="zonename")
    template_id: str | None = Field(None, alias="templateid")
    template_name: str | None = Field(None, alias="templatename")
    service_offering_id: str | None = Field(None, alias="serviceofferingid")
    service_offering_name: str | None = Field(None, alias="serviceofferingname")
    key_pair: str | None = Field(None, alias="keypair")
    nics: list[Nic] = Field(default_factory=list, alias="nic")
    security_groups: list[SecurityGroup] = Field(default_factory=list, alias="securitygroup")
    affinity_groups: list[AffinityGroup] = Field(default_factory=list, alias="affinitygroup")
    tags: list[ResourceTag] = Field(default_factory=list)

    # Not part of the listVirtualMachines payload; filled from listVolumes
    root_volume: Volume | None = None

    def default_nic(self) -> Nic | None:
        for nic in self.nics:
            if nic.is_default:
                return nic
        return None

    def find_nic(self, nic_id: str) -> Nic | None:
        for nic in self.nics:
            if nic.id == nic_id:
                return nic
        return None


class Volume(Entity):
    """Root disk of a compute instance."""

    id: str
    size: int = 0  # bytes
    type: str = ""
    virtual_machine_id: str | None = Field(None, alias="virtualmachineid")


class Network(Entity):
    """Private network snapshot."""

    id: str
    name: str = ""
    display_text: str = Field("", alias="displaytext")
    zone_id: str | None = Field(None, alias="zoneid")
    zone_name: str | None = Field(None, alias="zonename")
    network_offering_id: str | None = Field(None, alias="networkofferingid")
    network_offering_name: str | None = Field(None, alias="networkofferingname")
    start_ip: str | None = Field(None, alias="startip")
    end_ip: str | None = Field(None, alias="endip")
    netmask: str | None = None
    tags: list[ResourceTag] = Field(default_factory=list)


class Healthcheck(Entity):
    """Elastic IP healthcheck configuration."""

    mode: str
    port: int
    path: str = ""
    interval: int
    timeout: int
    strikes_ok: int = Field(alias="strikes-ok")
    strikes_fail: int = Field(alias="strikes-fail")


class IPAddress(Entity):
    """Elastic IP address snapshot."""

    id: str
    ip_address: str = Field(alias="ipaddress")
    zone_id: str | None = Field(None, alias="zoneid")
    zone_name: str | None = Field(None, alias="zonename")
    is_elastic: bool = Field(True, alias="iselastic")
    description: str = ""
    healthcheck: Healthcheck | None = None
    tags: list[ResourceTag] = Field(default_factory=list)


class SSHKeyPair(Entity):
    name: str
    fingerprint: str = ""
    private_key: str | None = Field(None, alias="privatekey")


class BoundSecurityGroupRule(Entity):
    """A rule together with its parent group and direction."""

    security_group: SecurityGroup
    type: str
    rule: SecurityGroupRule


class AsyncJob(Entity):
    """Result envelope of queryAsyncJobResult."""

    job_id: str = Field(alias="jobid")
    job_status: int = Field(0, alias="jobstatus")
    job_result_type: str | None = Field(None, alias="jobresulttype")
    job_result: dict[str, Any] | None = Field(None, alias="jobresult")


# =============================================================================
# DNS
# =============================================================================


class DNSDomain(Entity):
    id: int
    name: str
    state: str = ""
    auto_renew: bool = False
    expires_on: str | None = None
    token: str = ""


class DNSRecord(Entity):
    id: int
    domain_id: int | None = None
    # Name of the owning domain, filled in on lookup
    domain: str | None = None
    name: str = ""
    content: str = ""
    record_type: str = ""
    ttl: int = 0
    prio: int | None = None
