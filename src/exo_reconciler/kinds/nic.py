"""Secondary network interfaces.

A NIC is addressed by its own UUID but every call also needs the compute
instance it is attached to, carried as the identity parent.
"""

from __future__ import annotations

from ..entities import Nic, VirtualMachine
from ..errors import NotFoundError
from ..identity import Identity, parse_uuid
from ..models import NICSpec
from ..state import ResourceRecord
from .base import ResourceKind


class NICKind(ResourceKind):
    type_name = "nic"
    spec_class = NICSpec
    parent_attribute = "compute_id"
    force_replace = frozenset({"compute_id", "network_id"})
    optional_computed = frozenset({"ip_address"})
    supports_update = True

    def create(self, spec: NICSpec, record: ResourceRecord, timeout: float) -> Identity:
        compute_id = parse_uuid(spec.compute_id, self.type_name)
        network_id = parse_uuid(spec.network_id, self.type_name)

        result = self.compute.request(
            "addNicToVirtualMachine",
            {
                "virtualmachineid": compute_id,
                "networkid": network_id,
                "ipaddress": spec.ip_address,
            },
            timeout=timeout,
        )
        vm = VirtualMachine.model_validate(result["virtualmachine"])
        for nic in vm.nics:
            if nic.network_id == network_id:
                return Identity(key=nic.id, parent=compute_id)
        raise NotFoundError(
            f"no NIC on compute {compute_id} for network {network_id} after attachment"
        )

    def fetch(self, identity: Identity, record: ResourceRecord, timeout: float) -> Nic:
        return Nic.model_validate(
            self.list_one(
                "listNics",
                {"virtualmachineid": identity.parent, "nicid": identity.key},
                "nic",
                timeout,
                "NIC",
            )
        )

    def apply(self, record: ResourceRecord, entity: Nic) -> None:
        attrs = record.attributes
        if entity.virtual_machine_id:
            attrs["compute_id"] = entity.virtual_machine_id
        attrs["network_id"] = entity.network_id
        attrs["ip_address"] = entity.ip_address
        attrs["mac_address"] = entity.mac_address
        attrs["netmask"] = entity.netmask
        attrs["gateway"] = entity.gateway

    def update(
        self,
        identity: Identity,
        spec: NICSpec,
        record: ResourceRecord,
        timeout: float,
    ) -> Nic | None:
        if spec.ip_address is None or spec.ip_address == record.attributes.get("ip_address"):
            return None
        result = self.compute.request(
            "updateVmNicIp",
            {"nicid": identity.key, "ipaddress": spec.ip_address},
            timeout=timeout,
        )
        vm = VirtualMachine.model_validate(result["virtualmachine"])
        return vm.find_nic(identity.key)

    def delete(self, identity: Identity, record: ResourceRecord, timeout: float) -> None:
        self.compute.request(
            "removeNicFromVirtualMachine",
            {"virtualmachineid": identity.parent, "nicid": identity.key},
            timeout=timeout,
        )
