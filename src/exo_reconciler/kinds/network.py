"""Private networks."""

from __future__ import annotations

from ..entities import Network, tags_to_dict
from ..identity import Identity
from ..models import NetworkSpec
from ..state import ResourceRecord
from .base import ResourceKind

TAG_RESOURCE_TYPE = "Network"


class NetworkKind(ResourceKind):
    type_name = "network"
    spec_class = NetworkSpec
    force_replace = frozenset({"zone", "network_offering"})
    catalog_attributes = {"zone": "zone_id", "network_offering": "network_offering_id"}
    optional_computed = frozenset({"display_text"})
    supports_update = True

    def create(self, spec: NetworkSpec, record: ResourceRecord, timeout: float) -> Identity:
        zone_id = self.catalog_id("listZones", "zone", spec.zone, timeout, "zone")
        offering_id = self.catalog_id(
            "listNetworkOfferings",
            "networkoffering",
            spec.network_offering,
            timeout,
            "network offering",
            params={"zoneid": zone_id},
        )
        result = self.compute.request(
            "createNetwork",
            {
                "zoneid": zone_id,
                "networkofferingid": offering_id,
                "name": spec.name,
                "displaytext": spec.display_text or spec.name,
                "startip": spec.start_ip,
                "endip": spec.end_ip,
                "netmask": spec.netmask,
            },
            timeout=timeout,
        )
        network = Network.model_validate(result["network"])

        if spec.tags:
            self.sync_tags(network.id, TAG_RESOURCE_TYPE, spec.tags, {}, timeout)

        return Identity(key=network.id)

    def fetch(self, identity: Identity, record: ResourceRecord, timeout: float) -> Network:
        return Network.model_validate(
            self.list_one("listNetworks", {"id": identity.key}, "network", timeout, "network")
        )

    def apply(self, record: ResourceRecord, entity: Network) -> None:
        record.attributes.update({
            "name": entity.name,
            "display_text": entity.display_text,
            "zone": entity.zone_name,
            "network_offering": entity.network_offering_name,
            "zone_id": entity.zone_id,
            "network_offering_id": entity.network_offering_id,
            "start_ip": entity.start_ip,
            "end_ip": entity.end_ip,
            "netmask": entity.netmask,
            "tags": tags_to_dict(entity.tags),
        })

    def update(
        self,
        identity: Identity,
        spec: NetworkSpec,
        record: ResourceRecord,
        timeout: float,
    ) -> Network:
        self.sync_tags(
            identity.key,
            TAG_RESOURCE_TYPE,
            spec.tags,
            record.attributes.get("tags") or {},
            timeout,
        )
        result = self.compute.request(
            "updateNetwork",
            {
                "id": identity.key,
                "name": spec.name,
                "displaytext": spec.display_text or spec.name,
                "startip": spec.start_ip,
                "endip": spec.end_ip,
                "netmask": spec.netmask,
            },
            timeout=timeout,
        )
        return Network.model_validate(result["network"])

    def delete(self, identity: Identity, record: ResourceRecord, timeout: float) -> None:
        self.compute.request("deleteNetwork", {"id": identity.key}, timeout=timeout)
