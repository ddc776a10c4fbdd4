"""Capability set shared by every resource kind.

A kind knows how to turn a validated spec into API calls and a remote
snapshot back into record attributes. It never decides *when* an operation
runs; that is the reconciler's job. All methods are synchronous and receive
the seconds left on the operation deadline so that every request they issue
is bounded.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from ..client import ComputeAPI, DNSAPI
from ..entities import Entity
from ..errors import NotFoundError, UnknownReferenceError, UnsupportedOperationError
from ..identity import UUID_PATTERN, Identity, IdentityStrategy, parse_uuid
from ..models import ResourceSpec
from ..state import ResourceRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CloudAPI:
    """API collaborators handed to every kind."""

    compute: ComputeAPI
    dns: DNSAPI


class ResourceKind(ABC):
    """Per-kind lifecycle capabilities.

    Class attributes:
        type_name: Kind name used in plans and records.
        spec_class: Pydantic model of the declared attributes.
        identity_strategy: DIRECT_ID (UUID) or NATURAL_KEY.
        parent_attribute: Record attribute holding the parent identity.
        force_replace: Attributes that cannot change in place.
        optional_computed: Attributes filled in by the server when undeclared.
        catalog_attributes: Catalog references (declared by name or UUID) mapped
            to the record attribute holding the resolved ID.
        supports_update: Whether update() is implemented.
    """

    type_name: ClassVar[str]
    spec_class: ClassVar[type[ResourceSpec]]
    identity_strategy: ClassVar[IdentityStrategy] = IdentityStrategy.DIRECT_ID
    parent_attribute: ClassVar[str | None] = None
    force_replace: ClassVar[frozenset[str]] = frozenset()
    optional_computed: ClassVar[frozenset[str]] = frozenset()
    catalog_attributes: ClassVar[Mapping[str, str]] = {}
    supports_update: ClassVar[bool] = False

    def __init__(self, api: CloudAPI) -> None:
        self.compute = api.compute
        self.dns = api.dns

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def parse_key(self, value: object) -> str:
        return parse_uuid(value, self.type_name)

    def parse_parent(self, value: object) -> str | None:
        return parse_uuid(value, self.type_name)

    def resolve_identity(self, record: ResourceRecord) -> Identity:
        """Validate the record's identity without touching the network.

        Raises:
            MalformedIdentityError: If the key or the parent is malformed.
        """
        key = self.parse_key(record.id)
        parent = None
        if self.parent_attribute:
            parent = self.parse_parent(record.attributes.get(self.parent_attribute))
        return Identity(key=key, parent=parent)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @abstractmethod
    def create(self, spec: Any, record: ResourceRecord, timeout: float) -> Identity:
        """Create the remote object and return its identity.

        Kinds may store create-only server values (e.g. a generated private
        key) on the record.
        """

    @abstractmethod
    def fetch(self, identity: Identity, record: ResourceRecord, timeout: float) -> Entity:
        """Fetch the remote snapshot; raise a not-found error when absent."""

    @abstractmethod
    def apply(self, record: ResourceRecord, entity: Entity) -> None:
        """Copy a remote snapshot onto the record."""

    def update(
        self,
        identity: Identity,
        spec: Any,
        record: ResourceRecord,
        timeout: float,
    ) -> Entity | None:
        """Update in place; return the post-update snapshot when the API gives one."""
        raise UnsupportedOperationError(f"{self.type_name} does not support in-place update")

    @abstractmethod
    def delete(self, identity: Identity, record: ResourceRecord, timeout: float) -> None:
        """Delete the remote object."""

    def apply_declared(self, record: ResourceRecord, spec: ResourceSpec) -> None:
        """Copy declared attributes onto the record."""
        record.attributes.update(spec.declared_attributes())

    def seed(self, record: ResourceRecord, spec: ResourceSpec, identity: Identity) -> None:
        """Record declared attributes and the parent right after creation."""
        self.apply_declared(record, spec)
        if self.parent_attribute and identity.parent is not None:
            record.attributes[self.parent_attribute] = identity.parent

    # -------------------------------------------------------------------------
    # Compute API helpers
    # -------------------------------------------------------------------------

    def list_one(
        self,
        command: str,
        params: Mapping[str, Any],
        key: str,
        timeout: float,
        what: str,
    ) -> dict[str, Any]:
        """Run a list command expected to match exactly one object.

        Raises:
            NotFoundError: If the listing is empty.
        """
        result = self.compute.request(command, params, timeout=timeout)
        items = result.get(key) or []
        if not items:
            raise NotFoundError(f"{what} not found: {dict(params)}")
        return items[0]

    def catalog_id(
        self,
        command: str,
        key: str,
        name: str,
        timeout: float,
        what: str,
        params: Mapping[str, Any] | None = None,
    ) -> str:
        """Resolve a catalog reference (zone, template, offering...) by name.

        A well-formed UUID is used as-is.

        Raises:
            UnknownReferenceError: If no object carries that name.
        """
        if UUID_PATTERN.match(name):
            return name.lower()
        result = self.compute.request(command, {**(params or {}), "name": name}, timeout=timeout)
        for item in result.get(key) or []:
            if item.get("name") == name or item.get("displaytext") == name:
                return str(item["id"])
        raise UnknownReferenceError(what, name)

    def catalog_matches(
        self, attribute: str, declared: Any, attributes: Mapping[str, Any]
    ) -> bool:
        """Whether a declared catalog reference designates the recorded object.

        A UUID is compared with the recorded ID, anything else with the name.
        """
        if isinstance(declared, str) and UUID_PATTERN.match(declared):
            recorded = attributes.get(self.catalog_attributes[attribute])
            return declared.lower() == str(recorded or "").lower()
        return declared == attributes.get(attribute)

    def comparable_attributes(
        self, declared: Mapping[str, Any], attributes: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Declared attributes with catalog UUIDs replaced by the recorded names."""
        comparable = dict(declared)
        for attribute in self.catalog_attributes:
            value = comparable.get(attribute)
            if value != attributes.get(attribute) and self.catalog_matches(
                attribute, value, attributes
            ):
                comparable[attribute] = attributes.get(attribute)
        return comparable

    def sync_tags(
        self,
        resource_id: str,
        resource_type: str,
        desired: Mapping[str, str],
        current: Mapping[str, str],
        timeout: float,
    ) -> None:
        """Converge resource tags: drop stale or changed keys, then create new values."""
        stale = sorted(k for k, v in current.items() if desired.get(k) != v)
        missing = sorted(k for k, v in desired.items() if current.get(k) != v)
        if stale:
            self.compute.request(
                "deleteTags",
                {
                    "resourceids": [resource_id],
                    "resourcetype": resource_type,
                    "tags": [{"key": k} for k in stale],
                },
                timeout=timeout,
            )
        if missing:
            self.compute.request(
                "createTags",
                {
                    "resourceids": [resource_id],
                    "resourcetype": resource_type,
                    "tags": [{"key": k, "value": desired[k]} for k in missing],
                },
                timeout=timeout,
            )
