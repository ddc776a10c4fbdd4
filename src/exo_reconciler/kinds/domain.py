"""DNS domains, addressed by name."""

from __future__ import annotations

from ..entities import DNSDomain
from ..identity import Identity, IdentityStrategy, require_name
from ..models import DomainSpec
from ..state import ResourceRecord
from .base import ResourceKind


class DomainKind(ResourceKind):
    type_name = "domain"
    spec_class = DomainSpec
    identity_strategy = IdentityStrategy.NATURAL_KEY
    force_replace = frozenset({"name"})

    def parse_key(self, value: object) -> str:
        return require_name(value, self.type_name)

    def create(self, spec: DomainSpec, record: ResourceRecord, timeout: float) -> Identity:
        return Identity(key=self.dns.create_domain(spec.name, timeout=timeout).name)

    def fetch(self, identity: Identity, record: ResourceRecord, timeout: float) -> DNSDomain:
        return self.dns.get_domain(identity.key, timeout=timeout)

    def apply(self, record: ResourceRecord, entity: DNSDomain) -> None:
        record.attributes.update({
            "name": entity.name,
            "state": entity.state,
            "auto_renew": entity.auto_renew,
            "expires_on": entity.expires_on,
            "token": entity.token,
        })

    def delete(self, identity: Identity, record: ResourceRecord, timeout: float) -> None:
        self.dns.delete_domain(identity.key, timeout=timeout)
