"""DNS records.

A record is addressed by its numeric ID. The owning domain is optional in
the identity: imported records may only carry the ID, in which case every
domain of the account is scanned until the record is found.
"""

from __future__ import annotations

from typing import Any

from ..entities import DNSRecord
from ..identity import Identity, IdentityStrategy, ScanResolver, parse_record_id
from ..models import DomainRecordSpec
from ..state import ResourceRecord, derive_hostname
from .base import ResourceKind


class DomainRecordKind(ResourceKind):
    type_name = "domain_record"
    spec_class = DomainRecordSpec
    identity_strategy = IdentityStrategy.NATURAL_KEY
    parent_attribute = "domain"
    force_replace = frozenset({"domain", "record_type"})
    optional_computed = frozenset({"ttl", "prio"})
    supports_update = True

    def parse_key(self, value: object) -> str:
        return str(parse_record_id(value, self.type_name))

    def parse_parent(self, value: object) -> str | None:
        if not value:
            return None
        return str(value)

    def _resolver(self, timeout: float) -> ScanResolver[DNSRecord]:
        return ScanResolver(
            self.type_name,
            lambda domain, key: self.dns.get_record(domain, int(key), timeout=timeout),
            lambda: [d.name for d in self.dns.get_domains(timeout=timeout)],
        )

    def create(self, spec: DomainRecordSpec, record: ResourceRecord, timeout: float) -> Identity:
        created = self.dns.create_record(spec.domain, _payload(spec), timeout=timeout)
        return Identity(key=str(created.id), parent=spec.domain)

    def fetch(self, identity: Identity, record: ResourceRecord, timeout: float) -> DNSRecord:
        domain, found = self._resolver(timeout).resolve(identity.key, identity.parent)
        return found.model_copy(update={"domain": domain})

    def apply(self, record: ResourceRecord, entity: DNSRecord) -> None:
        attrs = record.attributes
        domain = entity.domain or attrs.get("domain") or ""
        record.id = str(entity.id)
        attrs["domain"] = domain
        attrs["name"] = entity.name
        attrs["content"] = entity.content
        attrs["record_type"] = entity.record_type
        attrs["ttl"] = entity.ttl
        attrs["prio"] = entity.prio
        attrs["hostname"] = derive_hostname(entity.name, domain)

    def update(
        self,
        identity: Identity,
        spec: DomainRecordSpec,
        record: ResourceRecord,
        timeout: float,
    ) -> DNSRecord:
        domain = identity.parent or spec.domain
        updated = self.dns.update_record(
            domain, int(identity.key), _payload(spec, include_type=False), timeout=timeout
        )
        return updated.model_copy(update={"domain": domain})

    def delete(self, identity: Identity, record: ResourceRecord, timeout: float) -> None:
        domain = identity.parent
        if domain is None:
            domain, _ = self._resolver(timeout).resolve(identity.key, None)
        self.dns.delete_record(domain, int(identity.key), timeout=timeout)


def _payload(spec: DomainRecordSpec, include_type: bool = True) -> dict[str, Any]:
    payload: dict[str, Any] = {"name": spec.name, "content": spec.content}
    if include_type:
        payload["record_type"] = spec.record_type
    if spec.ttl is not None:
        payload["ttl"] = spec.ttl
    if spec.prio is not None:
        payload["prio"] = spec.prio
    return payload
