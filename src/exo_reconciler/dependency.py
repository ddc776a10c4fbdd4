"""Dependency ordering glue for plans.

The caller supplies the order: a plan lists resources so that every
dependency comes before its dependents. This module does not compute an
order; it checks the supplied one and resolves references between entries.

Dependencies come from two places:
1. Explicit ``depends_on`` lists
2. References inside a spec, written ``${<name>.<attribute>}``; ``id`` is
   the remote identity, any other attribute is read from the parent's record

EXAMPLE:
```yaml
- name: nic
  kind: nic
  spec:
    compute_id: ${vm.id}
    network_id: ${net.id}
```
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .state import ResourceRecord

if TYPE_CHECKING:
    from .spec_loader import Plan, PlanEntry

logger = logging.getLogger(__name__)

REFERENCE_PATTERN = re.compile(r"\$\{([A-Za-z0-9_\-]+)\.([A-Za-z0-9_]+)\}")


class DependencyError(Exception):
    """Raised when dependency validation fails."""

    pass


class CyclicDependencyError(DependencyError):
    """Raised when a resource depends on itself."""

    pass


class UnsatisfiedDependencyError(DependencyError):
    """Raised when a required dependency is missing, misplaced or not yet reconciled."""

    pass


@dataclass(frozen=True)
class Reference:
    """A ``${name.attribute}`` reference found in a spec."""

    name: str
    attribute: str

    def __str__(self) -> str:
        return f"${{{self.name}.{self.attribute}}}"


def find_references(value: Any) -> list[Reference]:
    """Collect references from a nested spec value, in order of appearance."""
    found: list[Reference] = []
    if isinstance(value, str):
        found.extend(Reference(m.group(1), m.group(2)) for m in REFERENCE_PATTERN.finditer(value))
    elif isinstance(value, Mapping):
        for item in value.values():
            found.extend(find_references(item))
    elif isinstance(value, list | tuple):
        for item in value:
            found.extend(find_references(item))
    return found


def dependencies_of(entry: PlanEntry) -> list[str]:
    """Names an entry depends on, explicit ones first, without duplicates."""
    names = list(entry.depends_on) + [ref.name for ref in find_references(entry.spec)]
    return list(dict.fromkeys(names))


def validate_order(plan: Plan) -> None:
    """Check that every dependency appears before its dependents.

    Raises:
        CyclicDependencyError: If an entry depends on itself.
        UnsatisfiedDependencyError: If a dependency is unknown or listed later.
    """
    all_names = {entry.name for entry in plan.resources}
    placed: set[str] = set()

    for entry in plan.resources:
        for dependency in dependencies_of(entry):
            if dependency == entry.name:
                raise CyclicDependencyError(f"'{entry.name}' depends on itself")
            if dependency not in all_names:
                raise UnsatisfiedDependencyError(
                    f"'{entry.name}' depends on unknown resource '{dependency}'"
                )
            if dependency not in placed:
                raise UnsatisfiedDependencyError(
                    f"'{entry.name}' depends on '{dependency}', which is listed after it"
                )
        placed.add(entry.name)

    logger.debug("Plan order validated", extra={"resources": len(plan.resources)})


def _lookup(reference: Reference, records: Mapping[str, ResourceRecord]) -> Any:
    record = records.get(reference.name)
    if record is None or not record.has_identity:
        raise UnsatisfiedDependencyError(
            f"{reference} cannot be resolved: '{reference.name}' has no identity yet"
        )
    if reference.attribute == "id":
        return record.id
    if reference.attribute not in record.attributes:
        raise UnsatisfiedDependencyError(
            f"{reference} cannot be resolved: '{reference.name}' has no attribute "
            f"'{reference.attribute}'"
        )
    return record.attributes[reference.attribute]


def resolve_references(value: Any, records: Mapping[str, ResourceRecord]) -> Any:
    """Substitute references with reconciled values.

    A string consisting of a single reference takes the referenced value
    as-is (keeping its type); references embedded in longer strings are
    interpolated as text.

    Raises:
        UnsatisfiedDependencyError: If a referenced resource has no identity
            or lacks the attribute.
    """
    if isinstance(value, str):
        whole = REFERENCE_PATTERN.fullmatch(value)
        if whole:
            return _lookup(Reference(whole.group(1), whole.group(2)), records)
        return REFERENCE_PATTERN.sub(
            lambda m: str(_lookup(Reference(m.group(1), m.group(2)), records)), value
        )
    if isinstance(value, Mapping):
        return {key: resolve_references(item, records) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [resolve_references(item, records) for item in value]
    return value


def destroy_order(plan: Plan) -> list[PlanEntry]:
    """Entries in the order they must be deleted (dependents first)."""
    return list(reversed(plan.resources))
