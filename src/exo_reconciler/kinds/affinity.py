"""Affinity groups."""

from __future__ import annotations

from ..entities import AffinityGroup
from ..identity import Identity
from ..models import AffinitySpec
from ..state import ResourceRecord, sorted_set
from .base import ResourceKind


class AffinityKind(ResourceKind):
    type_name = "affinity"
    spec_class = AffinitySpec
    force_replace = frozenset({"name", "description", "type"})

    def create(self, spec: AffinitySpec, record: ResourceRecord, timeout: float) -> Identity:
        result = self.compute.request(
            "createAffinityGroup",
            {"name": spec.name, "description": spec.description, "type": spec.type},
            timeout=timeout,
        )
        return Identity(key=AffinityGroup.model_validate(result["affinitygroup"]).id)

    def fetch(self, identity: Identity, record: ResourceRecord, timeout: float) -> AffinityGroup:
        return AffinityGroup.model_validate(
            self.list_one(
                "listAffinityGroups",
                {"id": identity.key},
                "affinitygroup",
                timeout,
                "affinity group",
            )
        )

    def apply(self, record: ResourceRecord, entity: AffinityGroup) -> None:
        record.attributes.update({
            "name": entity.name,
            "description": entity.description,
            "type": entity.type,
            "virtual_machine_ids": sorted_set(entity.virtual_machine_ids),
        })

    def delete(self, identity: Identity, record: ResourceRecord, timeout: float) -> None:
        self.compute.request("deleteAffinityGroup", {"id": identity.key}, timeout=timeout)
