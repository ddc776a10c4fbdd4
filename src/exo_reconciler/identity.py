"""Identity resolution for resource instances.

Two strategies exist, chosen per resource kind:

1. DIRECT_ID: the remote system assigns a UUID at creation time. The ID is
   validated locally before any call; a malformed value never reaches the
   network.
2. NATURAL_KEY: the object is addressed by a human key (SSH key pair name,
   DNS domain name, DNS record ID scoped by its domain). Natural keys are
   re-resolved on every call.

DNS records may be imported with only their numeric ID. ScanResolver then
falls back to scanning every domain of the account, which costs one request
per domain in the worst case. Record IDs are globally unique, so the first
match is the only match.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from .errors import MalformedIdentityError, NotFoundError, UnknownReferenceError, is_not_found

logger = logging.getLogger(__name__)

T = TypeVar("T")

UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
MAX_NAME_LENGTH = 255


class IdentityStrategy(str, Enum):
    """How a resource kind addresses its remote object."""

    DIRECT_ID = "direct_id"
    NATURAL_KEY = "natural_key"


@dataclass(frozen=True)
class Identity:
    """Resolved address of a remote object.

    Attributes:
        key: UUID, name, or numeric record ID (as a string).
        parent: Scoping context, e.g. the compute instance of a NIC or the
            domain of a DNS record. None when unknown or not applicable.
    """

    key: str
    parent: str | None = None

    def __str__(self) -> str:
        return f"{self.parent}/{self.key}" if self.parent else self.key


def parse_uuid(value: object, kind: str) -> str:
    """Validate an opaque identifier.

    Args:
        value: Candidate ID.
        kind: Resource kind, for error messages.

    Returns:
        The ID in canonical lowercase form.

    Raises:
        MalformedIdentityError: If the value is not a well-formed UUID.
    """
    if not isinstance(value, str) or not UUID_PATTERN.match(value):
        raise MalformedIdentityError(kind, value, "expected a UUID")
    return value.lower()


def parse_record_id(value: object, kind: str) -> int:
    """Validate a numeric DNS record identifier."""
    if isinstance(value, bool):
        raise MalformedIdentityError(kind, value, "expected a positive integer")
    if isinstance(value, int):
        record_id = value
    elif isinstance(value, str) and value.isdigit():
        record_id = int(value)
    else:
        raise MalformedIdentityError(kind, value, "expected a positive integer")
    if record_id <= 0:
        raise MalformedIdentityError(kind, value, "expected a positive integer")
    return record_id


def require_name(value: object, kind: str) -> str:
    """Validate a natural key (name)."""
    if not isinstance(value, str) or not value.strip():
        raise MalformedIdentityError(kind, value, "expected a non-empty name")
    if len(value) > MAX_NAME_LENGTH:
        raise MalformedIdentityError(kind, value, f"name exceeds {MAX_NAME_LENGTH} characters")
    return value


def lookup_by_name(items: Iterable[T], name: str, what: str, attr: str = "name") -> T:
    """Find the first item whose attribute equals name.

    Used for references declared by name (zone, template, security group).

    Raises:
        UnknownReferenceError: If nothing matches.
    """
    for item in items:
        if getattr(item, attr, None) == name:
            return item
    raise UnknownReferenceError(what, name)


class ScanResolver(Generic[T]):
    """Two-phase resolver: direct lookup in a known scope, exhaustive scan otherwise.

    Args:
        kind: Resource kind, for messages.
        lookup: Callable(scope, key) returning the object or raising a
            not-found error.
        scopes: Callable returning every candidate scope (e.g. all domains).
    """

    def __init__(
        self,
        kind: str,
        lookup: Callable[[str, str], T | None],
        scopes: Callable[[], Iterable[str]],
    ) -> None:
        self._kind = kind
        self._lookup = lookup
        self._scopes = scopes

    def resolve(self, key: str, scope: str | None) -> tuple[str, T]:
        """Resolve a key, scanning scopes when none is given.

        Returns:
            (scope, object) of the first match.

        Raises:
            NotFoundError: If the direct lookup or the whole scan finds nothing.
        """
        if scope:
            found = self._lookup(scope, key)
            if found is None:
                raise NotFoundError(f"{self._kind} {key} not found in {scope}")
            return scope, found

        scanned = 0
        for candidate in self._scopes():
            scanned += 1
            try:
                found = self._lookup(candidate, key)
            except Exception as e:
                if is_not_found(e):
                    continue
                raise
            if found is not None:
                logger.debug(
                    "Resolved identity by scan",
                    extra={"kind": self._kind, "key": key, "scope": candidate, "scanned": scanned},
                )
                return candidate, found

        raise NotFoundError(f"{self._kind} {key} not found in any of {scanned} scope(s)")
