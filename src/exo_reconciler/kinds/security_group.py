"""Security groups."""

from __future__ import annotations

from typing import Any

from ..entities import SecurityGroup, SecurityGroupRule
from ..identity import Identity
from ..models import SecurityGroupSpec
from ..state import ResourceRecord, sorted_set
from .base import ResourceKind


def rule_attributes(rule: SecurityGroupRule) -> dict[str, Any]:
    """Flatten an embedded rule for the record."""
    return {
        "rule_id": rule.rule_id,
        "protocol": rule.protocol,
        "cidr": rule.cidr,
        "start_port": rule.start_port,
        "end_port": rule.end_port,
        "icmp_type": rule.icmp_type,
        "icmp_code": rule.icmp_code,
        "user_security_group": rule.security_group_name,
        "description": rule.description,
    }


class SecurityGroupKind(ResourceKind):
    type_name = "security_group"
    spec_class = SecurityGroupSpec
    force_replace = frozenset({"name", "description"})

    def create(self, spec: SecurityGroupSpec, record: ResourceRecord, timeout: float) -> Identity:
        result = self.compute.request(
            "createSecurityGroup",
            {"name": spec.name, "description": spec.description},
            timeout=timeout,
        )
        return Identity(key=SecurityGroup.model_validate(result["securitygroup"]).id)

    def fetch(self, identity: Identity, record: ResourceRecord, timeout: float) -> SecurityGroup:
        return SecurityGroup.model_validate(
            self.list_one(
                "listSecurityGroups",
                {"id": identity.key},
                "securitygroup",
                timeout,
                "security group",
            )
        )

    def apply(self, record: ResourceRecord, entity: SecurityGroup) -> None:
        record.attributes.update({
            "name": entity.name,
            "description": entity.description,
            "virtual_machine_ids": sorted_set(entity.virtual_machine_ids),
            "ingress_rules": [rule_attributes(r) for r in entity.ingress_rules],
            "egress_rules": [rule_attributes(r) for r in entity.egress_rules],
        })

    def delete(self, identity: Identity, record: ResourceRecord, timeout: float) -> None:
        self.compute.request("deleteSecurityGroup", {"id": identity.key}, timeout=timeout)
