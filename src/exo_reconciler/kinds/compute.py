"""Compute instances."""

from __future__ import annotations

import base64
import logging
from typing import Any

from ..entities import VirtualMachine, Volume, tags_to_dict
from ..errors import UnsupportedOperationError
from ..identity import Identity
from ..models import ComputeSpec
from ..state import ResourceRecord, sorted_set
from .base import ResourceKind

logger = logging.getLogger(__name__)

GIB = 1024**3
TAG_RESOURCE_TYPE = "UserVm"


class ComputeKind(ResourceKind):
    type_name = "compute"
    spec_class = ComputeSpec
    force_replace = frozenset({"zone", "template", "key_pair", "affinity_groups"})
    catalog_attributes = {"zone": "zone_id", "template": "template_id", "size": "size_id"}
    optional_computed = frozenset({"security_groups"})
    supports_update = True

    def create(self, spec: ComputeSpec, record: ResourceRecord, timeout: float) -> Identity:
        zone_id = self.catalog_id("listZones", "zone", spec.zone, timeout, "zone")
        template_id = self.catalog_id(
            "listTemplates",
            "template",
            spec.template,
            timeout,
            "template",
            params={"templatefilter": "featured", "zoneid": zone_id},
        )
        offering_id = self.catalog_id(
            "listServiceOfferings", "serviceoffering", spec.size, timeout, "service offering"
        )

        result = self.compute.request(
            "deployVirtualMachine",
            {
                "zoneid": zone_id,
                "templateid": template_id,
                "serviceofferingid": offering_id,
                "rootdisksize": spec.disk_size,
                "name": spec.display_name,
                "displayname": spec.display_name,
                "keypair": spec.key_pair,
                "userdata": _encode_user_data(spec.user_data),
                "securitygroupnames": spec.security_groups or None,
                "affinitygroupnames": spec.affinity_groups or None,
                "ip6": spec.ip6,
            },
            timeout=timeout,
        )
        vm = VirtualMachine.model_validate(result["virtualmachine"])

        if spec.tags:
            self.sync_tags(vm.id, TAG_RESOURCE_TYPE, spec.tags, {}, timeout)

        return Identity(key=vm.id)

    def fetch(self, identity: Identity, record: ResourceRecord, timeout: float) -> VirtualMachine:
        vm = VirtualMachine.model_validate(
            self.list_one(
                "listVirtualMachines",
                {"id": identity.key},
                "virtualmachine",
                timeout,
                "compute instance",
            )
        )
        volumes = self.compute.request(
            "listVolumes",
            {"virtualmachineid": identity.key, "type": "ROOT"},
            timeout=timeout,
        ).get("volume") or []
        if volumes:
            vm = vm.model_copy(update={"root_volume": Volume.model_validate(volumes[0])})
        return vm

    def apply(self, record: ResourceRecord, entity: VirtualMachine) -> None:
        attrs = record.attributes
        default_nic = entity.default_nic()

        attrs["display_name"] = entity.display_name
        attrs["name"] = entity.name
        attrs["state"] = entity.state
        attrs["zone"] = entity.zone_name
        attrs["template"] = entity.template_name
        attrs["size"] = entity.service_offering_name
        attrs["zone_id"] = entity.zone_id
        attrs["template_id"] = entity.template_id
        attrs["size_id"] = entity.service_offering_id
        attrs["key_pair"] = entity.key_pair
        attrs["security_groups"] = sorted_set(sg.name for sg in entity.security_groups)
        attrs["affinity_groups"] = sorted_set(ag.name for ag in entity.affinity_groups)
        attrs["ip_address"] = default_nic.ip_address if default_nic else None
        attrs["ip6_address"] = default_nic.ip6_address if default_nic else None
        attrs["ip6"] = bool(default_nic and default_nic.ip6_address)
        attrs["tags"] = tags_to_dict(entity.tags)
        if entity.root_volume is not None:
            attrs["disk_size"] = entity.root_volume.size // GIB
        # User data is write-only; the declared value stays on the record
        attrs.setdefault("user_data", None)

    def update(
        self,
        identity: Identity,
        spec: ComputeSpec,
        record: ResourceRecord,
        timeout: float,
    ) -> None:
        attrs = record.attributes

        changes: dict[str, Any] = {}
        if spec.display_name != attrs.get("display_name"):
            changes["displayname"] = spec.display_name
        if (spec.user_data or None) != (attrs.get("user_data") or None):
            changes["userdata"] = _encode_user_data(spec.user_data)
        if spec.security_groups is not None and sorted_set(spec.security_groups) != sorted_set(
            attrs.get("security_groups")
        ):
            changes["securitygroupnames"] = sorted_set(spec.security_groups)
        if changes:
            self.compute.request(
                "updateVirtualMachine", {"id": identity.key, **changes}, timeout=timeout
            )

        if not self.catalog_matches("size", spec.size, attrs):
            offering_id = self.catalog_id(
                "listServiceOfferings", "serviceoffering", spec.size, timeout, "service offering"
            )
            self.compute.request(
                "scaleVirtualMachine",
                {"id": identity.key, "serviceofferingid": offering_id},
                timeout=timeout,
            )

        current_disk = attrs.get("disk_size")
        if current_disk is not None and spec.disk_size != int(current_disk):
            if spec.disk_size < int(current_disk):
                raise UnsupportedOperationError(
                    f"compute disk can only grow ({current_disk} -> {spec.disk_size} GB)"
                )
            volume = self.list_one(
                "listVolumes",
                {"virtualmachineid": identity.key, "type": "ROOT"},
                "volume",
                timeout,
                "root volume",
            )
            self.compute.request(
                "resizeVolume", {"id": volume["id"], "size": spec.disk_size}, timeout=timeout
            )

        if spec.ip6 and not attrs.get("ip6"):
            self.compute.request("activateIp6", {"virtualmachineid": identity.key}, timeout=timeout)
        elif not spec.ip6 and attrs.get("ip6"):
            raise UnsupportedOperationError("IPv6 cannot be disabled on a running instance")

        self.sync_tags(identity.key, TAG_RESOURCE_TYPE, spec.tags, attrs.get("tags") or {}, timeout)

        logger.debug(
            "Compute update issued",
            extra={"compute_id": identity.key, "changed": sorted(changes)},
        )
        return None

    def delete(self, identity: Identity, record: ResourceRecord, timeout: float) -> None:
        self.compute.request(
            "destroyVirtualMachine", {"id": identity.key, "expunge": True}, timeout=timeout
        )


def _encode_user_data(user_data: str | None) -> str | None:
    if not user_data:
        return None
    return base64.b64encode(user_data.encode("utf-8")).decode("ascii")
