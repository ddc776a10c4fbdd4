"""SSH key pairs, addressed by name."""

from __future__ import annotations

from ..entities import SSHKeyPair
from ..identity import Identity, IdentityStrategy, require_name
from ..models import SSHKeyPairSpec
from ..state import ResourceRecord
from .base import ResourceKind


class SSHKeyPairKind(ResourceKind):
    type_name = "ssh_keypair"
    spec_class = SSHKeyPairSpec
    identity_strategy = IdentityStrategy.NATURAL_KEY
    force_replace = frozenset({"name", "public_key"})
    optional_computed = frozenset({"public_key"})

    def parse_key(self, value: object) -> str:
        return require_name(value, self.type_name)

    def create(self, spec: SSHKeyPairSpec, record: ResourceRecord, timeout: float) -> Identity:
        if spec.public_key:
            result = self.compute.request(
                "registerSSHKeyPair",
                {"name": spec.name, "publickey": spec.public_key},
                timeout=timeout,
            )
        else:
            result = self.compute.request("createSSHKeyPair", {"name": spec.name}, timeout=timeout)

        keypair = SSHKeyPair.model_validate(result["keypair"])
        if keypair.private_key:
            # Only returned once, by createSSHKeyPair
            record.attributes["private_key"] = keypair.private_key
        return Identity(key=keypair.name)

    def fetch(self, identity: Identity, record: ResourceRecord, timeout: float) -> SSHKeyPair:
        return SSHKeyPair.model_validate(
            self.list_one(
                "listSSHKeyPairs", {"name": identity.key}, "sshkeypair", timeout, "SSH key pair"
            )
        )

    def apply(self, record: ResourceRecord, entity: SSHKeyPair) -> None:
        record.attributes["name"] = entity.name
        record.attributes["fingerprint"] = entity.fingerprint
        if entity.private_key:
            record.attributes["private_key"] = entity.private_key

    def delete(self, identity: Identity, record: ResourceRecord, timeout: float) -> None:
        self.compute.request("deleteSSHKeyPair", {"name": identity.key}, timeout=timeout)
