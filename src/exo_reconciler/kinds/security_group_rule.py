"""Security group rules.

Rules have no listing of their own: they are read through their parent
group, whose UUID is the identity parent. The parent may be declared by ID
or by name; a name is resolved once at creation and the ID kept afterwards.
"""

from __future__ import annotations

import logging

from ..entities import BoundSecurityGroupRule, SecurityGroup
from ..errors import NotFoundError
from ..identity import Identity, lookup_by_name, parse_uuid
from ..models import SecurityGroupRuleSpec
from ..state import ResourceRecord
from .base import ResourceKind

logger = logging.getLogger(__name__)

AUTHORIZE_COMMANDS = {
    "INGRESS": "authorizeSecurityGroupIngress",
    "EGRESS": "authorizeSecurityGroupEgress",
}
REVOKE_COMMANDS = {
    "INGRESS": "revokeSecurityGroupIngress",
    "EGRESS": "revokeSecurityGroupEgress",
}


class SecurityGroupRuleKind(ResourceKind):
    type_name = "security_group_rule"
    spec_class = SecurityGroupRuleSpec
    parent_attribute = "security_group_id"
    force_replace = frozenset({
        "security_group_id", "security_group", "type", "protocol", "cidr",
        "user_security_group", "start_port", "end_port", "icmp_type", "icmp_code",
        "description",
    })
    optional_computed = frozenset({
        "security_group_id", "security_group", "start_port", "end_port",
        "icmp_type", "icmp_code", "description",
    })

    def _parent_group(self, spec: SecurityGroupRuleSpec, timeout: float) -> SecurityGroup:
        if spec.security_group_id is not None:
            group_id = parse_uuid(spec.security_group_id, self.type_name)
            return SecurityGroup.model_validate(
                self.list_one(
                    "listSecurityGroups",
                    {"id": group_id},
                    "securitygroup",
                    timeout,
                    "security group",
                )
            )
        result = self.compute.request(
            "listSecurityGroups", {"securitygroupname": spec.security_group}, timeout=timeout
        )
        groups = [SecurityGroup.model_validate(g) for g in result.get("securitygroup") or []]
        return lookup_by_name(groups, spec.security_group or "", "security group")

    def create(
        self, spec: SecurityGroupRuleSpec, record: ResourceRecord, timeout: float
    ) -> Identity:
        group = self._parent_group(spec, timeout)
        known = {r.rule_id for r in group.ingress_rules + group.egress_rules}

        params = {
            "securitygroupid": group.id,
            "protocol": spec.protocol,
            "description": spec.description,
            "cidrlist": [spec.cidr] if spec.cidr else None,
            "usersecuritygrouplist": (
                [{"group": spec.user_security_group}] if spec.user_security_group else None
            ),
        }
        if spec.protocol.upper().startswith("ICMP"):
            params["icmptype"] = spec.icmp_type
            params["icmpcode"] = spec.icmp_code
        else:
            params["startport"] = spec.start_port
            params["endport"] = spec.end_port

        result = self.compute.request(AUTHORIZE_COMMANDS[spec.type], params, timeout=timeout)
        updated = SecurityGroup.model_validate(result["securitygroup"])
        rules = updated.ingress_rules if spec.type == "INGRESS" else updated.egress_rules

        created = [r for r in rules if r.rule_id not in known]
        if not created:
            raise NotFoundError(f"no new {spec.type} rule in security group {group.id}")
        if len(created) > 1:
            logger.warning(
                "Authorization produced several rules, keeping the first",
                extra={"security_group_id": group.id, "rule_ids": [r.rule_id for r in created]},
            )
        return Identity(key=created[0].rule_id, parent=group.id)

    def fetch(
        self, identity: Identity, record: ResourceRecord, timeout: float
    ) -> BoundSecurityGroupRule:
        group = SecurityGroup.model_validate(
            self.list_one(
                "listSecurityGroups",
                {"id": identity.parent},
                "securitygroup",
                timeout,
                "security group",
            )
        )
        found = group.find_rule(identity.key)
        if found is None:
            raise NotFoundError(f"rule {identity.key} not found in security group {group.id}")
        rule_type, rule = found
        return BoundSecurityGroupRule(security_group=group, type=rule_type, rule=rule)

    def apply(self, record: ResourceRecord, entity: BoundSecurityGroupRule) -> None:
        rule = entity.rule
        record.attributes.update({
            "security_group_id": entity.security_group.id,
            "security_group": entity.security_group.name,
            "type": entity.type,
            "protocol": rule.protocol,
            "cidr": rule.cidr,
            "user_security_group": rule.security_group_name,
            "start_port": rule.start_port,
            "end_port": rule.end_port,
            "icmp_type": rule.icmp_type,
            "icmp_code": rule.icmp_code,
            "description": rule.description,
        })

    def delete(self, identity: Identity, record: ResourceRecord, timeout: float) -> None:
        bound = self.fetch(identity, record, timeout)
        self.compute.request(REVOKE_COMMANDS[bound.type], {"id": identity.key}, timeout=timeout)
