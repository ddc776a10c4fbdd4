"""Elastic IP addresses and their healthcheck.

The healthcheck is a nested sub-record without an identity of its own. It
is always sent as a whole; declaring none on update clears it remotely by
sending an empty mode.
"""

from __future__ import annotations

from typing import Any

from ..entities import IPAddress, tags_to_dict
from ..identity import Identity
from ..models import HealthcheckSpec, IPAddressSpec
from ..state import ResourceRecord, copy_sub_record
from .base import ResourceKind

TAG_RESOURCE_TYPE = "PublicIpAddress"

HEALTHCHECK_FIELDS = (
    "mode", "port", "path", "interval", "timeout", "strikes_ok", "strikes_fail",
)


def healthcheck_params(healthcheck: HealthcheckSpec | None) -> dict[str, Any]:
    """Request parameters for a healthcheck; None produces the clearing form."""
    if healthcheck is None:
        return {"healthcheckmode": ""}
    return {
        "healthcheckmode": healthcheck.mode,
        "healthcheckport": healthcheck.port,
        "healthcheckpath": healthcheck.path or None,
        "healthcheckinterval": healthcheck.interval,
        "healthchecktimeout": healthcheck.timeout,
        "healthcheckstrikesok": healthcheck.strikes_ok,
        "healthcheckstrikesfail": healthcheck.strikes_fail,
    }


class IPAddressKind(ResourceKind):
    type_name = "ipaddress"
    spec_class = IPAddressSpec
    force_replace = frozenset({"zone"})
    catalog_attributes = {"zone": "zone_id"}
    supports_update = True

    def create(self, spec: IPAddressSpec, record: ResourceRecord, timeout: float) -> Identity:
        zone_id = self.catalog_id("listZones", "zone", spec.zone, timeout, "zone")
        params: dict[str, Any] = {"zoneid": zone_id, "description": spec.description}
        if spec.healthcheck is not None:
            params.update(healthcheck_params(spec.healthcheck))

        result = self.compute.request("associateIpAddress", params, timeout=timeout)
        address = IPAddress.model_validate(result["ipaddress"])

        if spec.tags:
            self.sync_tags(address.id, TAG_RESOURCE_TYPE, spec.tags, {}, timeout)

        return Identity(key=address.id)

    def fetch(self, identity: Identity, record: ResourceRecord, timeout: float) -> IPAddress:
        return IPAddress.model_validate(
            self.list_one(
                "listPublicIpAddresses",
                {"id": identity.key, "iselastic": True},
                "publicipaddress",
                timeout,
                "elastic IP",
            )
        )

    def apply(self, record: ResourceRecord, entity: IPAddress) -> None:
        attrs = record.attributes
        attrs["ip_address"] = entity.ip_address
        attrs["zone"] = entity.zone_name
        attrs["zone_id"] = entity.zone_id
        attrs["description"] = entity.description
        attrs["tags"] = tags_to_dict(entity.tags)
        copy_sub_record(attrs, "healthcheck", entity.healthcheck, HEALTHCHECK_FIELDS)

    def update(
        self,
        identity: Identity,
        spec: IPAddressSpec,
        record: ResourceRecord,
        timeout: float,
    ) -> IPAddress:
        self.sync_tags(
            identity.key,
            TAG_RESOURCE_TYPE,
            spec.tags,
            record.attributes.get("tags") or {},
            timeout,
        )
        result = self.compute.request(
            "updateIpAddress",
            {
                "id": identity.key,
                "description": spec.description or "",
                **healthcheck_params(spec.healthcheck),
            },
            timeout=timeout,
        )
        return IPAddress.model_validate(result["ipaddress"])

    def delete(self, identity: Identity, record: ResourceRecord, timeout: float) -> None:
        self.compute.request("disassociateIpAddress", {"id": identity.key}, timeout=timeout)
