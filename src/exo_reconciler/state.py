"""Local resource records and drift normalization.

A ResourceRecord is the reconciler's view of one declared resource: its
identity, lifecycle status and the normalized attributes observed on the
last successful operation. Remote snapshots are the source of truth; the
helpers here copy them onto the record.

NORMALIZATION RULES (applied when comparing declared vs recorded values):
1. Empty equivalence: "", [], {} and None compare equal
2. Unordered sets: security group names, member VM IDs
3. Case-insensitive enums: protocol, rule type, record type
4. Numeric strings: "12" == 12 (disk size, ports)
5. Whitespace: user data line endings and trailing blanks
"""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class RecordStatus(str, Enum):
    """Lifecycle status of a local record."""

    ABSENT = "absent"
    EXISTING = "existing"
    # Identity is known but the remote object is gone; callers re-create
    VANISHED = "vanished"


@dataclass
class ResourceRecord:
    """Local state of one resource instance.

    Attributes:
        kind: Resource kind (e.g. "compute", "domain_record").
        name: Plan-local name, unique within a plan.
        id: Remote identity (UUID, name or numeric ID), "" when unset.
        status: Lifecycle status.
        attributes: Normalized snapshot of the last observed remote state.
    """

    kind: str
    name: str
    id: str = ""
    status: RecordStatus = RecordStatus.ABSENT
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def address(self) -> str:
        """Stable human-readable address used in logs."""
        return f"{self.kind}.{self.name}"

    @property
    def has_identity(self) -> bool:
        return bool(self.id)

    def set_identity(self, identity: str) -> None:
        self.id = identity
        self.status = RecordStatus.EXISTING

    def clear_identity(self) -> None:
        self.id = ""
        self.status = RecordStatus.ABSENT

    def mark_vanished(self) -> None:
        self.status = RecordStatus.VANISHED

    def to_dict(self) -> dict[str, Any]:
        """Convert to a YAML/JSON-serializable dict."""
        return {
            "kind": self.kind,
            "name": self.name,
            "id": self.id,
            "status": self.status.value,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ResourceRecord:
        """Create from a dict produced by to_dict.

        Raises:
            ValueError: If required keys are missing or the status is unknown.
        """
        try:
            return cls(
                kind=str(data["kind"]),
                name=str(data["name"]),
                id=str(data.get("id") or ""),
                status=RecordStatus(data.get("status", RecordStatus.ABSENT.value)),
                attributes=dict(data.get("attributes") or {}),
            )
        except KeyError as e:
            raise ValueError(f"Record is missing required key {e}") from e


# =============================================================================
# Apply helpers
# =============================================================================


def sorted_set(values: Iterable[Any] | None) -> list[str]:
    """Flatten a collection to a sorted list of unique strings."""
    if not values:
        return []
    return sorted({str(value) for value in values})


def derive_hostname(name: str, domain: str) -> str:
    """Fully qualified name of a DNS record; the apex record maps to the domain."""
    if name:
        return f"{name}.{domain}"
    return domain


def copy_sub_record(
    attributes: dict[str, Any],
    key: str,
    remote: BaseModel | None,
    fields: Iterable[str],
) -> None:
    """Copy a nested sub-record field by field, or clear it when absent remotely."""
    if remote is None:
        attributes[key] = None
        return
    attributes[key] = {name: getattr(remote, name) for name in fields}


# =============================================================================
# Drift normalization
# =============================================================================


class NormalizationType(str, Enum):
    """Types of normalization operations."""

    EMPTY_EQUIVALENCE = "empty_equivalence"
    NUMERIC_STRING = "numeric_string"
    CASE_INSENSITIVE = "case_insensitive"
    WHITESPACE_NORMALIZE = "whitespace_normalize"
    SET_UNORDERED = "set_unordered"


@dataclass(frozen=True)
class NormalizationRule:
    """A single normalization rule.

    Attributes:
        kind: Resource kind to match ("*" for all).
        attribute_pattern: Attribute name pattern, "*" wildcards allowed.
        normalization_type: Type of normalization to apply.
        reason: Human-readable explanation.
    """

    kind: str
    attribute_pattern: str
    normalization_type: NormalizationType
    reason: str = ""

    def matches(self, kind: str, attribute: str) -> bool:
        if self.kind != "*" and self.kind != kind:
            return False
        return fnmatch.fnmatchcase(attribute, self.attribute_pattern)


DEFAULT_NORMALIZATION_RULES: list[NormalizationRule] = [
    NormalizationRule(
        kind="*",
        attribute_pattern="*",
        normalization_type=NormalizationType.EMPTY_EQUIVALENCE,
        reason="Empty string, list, mapping and null are equivalent",
    ),
    NormalizationRule(
        kind="*",
        attribute_pattern="*_ids",
        normalization_type=NormalizationType.SET_UNORDERED,
        reason="Member ID sets have no order",
    ),
    NormalizationRule(
        kind="compute",
        attribute_pattern="security_groups",
        normalization_type=NormalizationType.SET_UNORDERED,
        reason="Security groups are a set",
    ),
    NormalizationRule(
        kind="compute",
        attribute_pattern="affinity_groups",
        normalization_type=NormalizationType.SET_UNORDERED,
        reason="Affinity groups are a set",
    ),
    NormalizationRule(
        kind="compute",
        attribute_pattern="disk_size",
        normalization_type=NormalizationType.NUMERIC_STRING,
        reason="Disk size may be declared as a string",
    ),
    NormalizationRule(
        kind="compute",
        attribute_pattern="user_data",
        normalization_type=NormalizationType.WHITESPACE_NORMALIZE,
        reason="Line endings and trailing whitespace of user data",
    ),
    NormalizationRule(
        kind="security_group_rule",
        attribute_pattern="protocol",
        normalization_type=NormalizationType.CASE_INSENSITIVE,
        reason="Protocol names are case-insensitive",
    ),
    NormalizationRule(
        kind="security_group_rule",
        attribute_pattern="type",
        normalization_type=NormalizationType.CASE_INSENSITIVE,
        reason="Rule direction is case-insensitive",
    ),
    NormalizationRule(
        kind="security_group_rule",
        attribute_pattern="*_port",
        normalization_type=NormalizationType.NUMERIC_STRING,
        reason="Ports may be declared as strings",
    ),
    NormalizationRule(
        kind="domain_record",
        attribute_pattern="record_type",
        normalization_type=NormalizationType.CASE_INSENSITIVE,
        reason="Record types are case-insensitive",
    ),
]


@dataclass(frozen=True)
class AttributeDrift:
    """A declared attribute that differs from the recorded remote value.

    Attributes:
        attribute: Attribute name.
        declared: Declared value.
        recorded: Value observed remotely.
        force_replace: Whether the attribute cannot be changed in place.
    """

    attribute: str
    declared: Any
    recorded: Any
    force_replace: bool = False


class DriftNormalizer:
    """Compares declared attributes with recorded ones under normalization rules."""

    def __init__(
        self,
        rules: list[NormalizationRule] | None = None,
        enable_default_rules: bool = True,
    ) -> None:
        self._rules: list[NormalizationRule] = []
        if enable_default_rules:
            self._rules.extend(DEFAULT_NORMALIZATION_RULES)
        if rules:
            self._rules.extend(rules)

    def normalize_value(self, value: Any, kind: str, attribute: str) -> Any:
        """Normalize a value based on the applicable rules."""
        normalized = value
        for rule in self._rules:
            if rule.matches(kind, attribute):
                normalized = self._apply_normalization(normalized, rule.normalization_type)
        return normalized

    def _apply_normalization(self, value: Any, normalization_type: NormalizationType) -> Any:
        match normalization_type:
            case NormalizationType.EMPTY_EQUIVALENCE:
                return self._normalize_empty(value)
            case NormalizationType.NUMERIC_STRING:
                return self._normalize_numeric_string(value)
            case NormalizationType.CASE_INSENSITIVE:
                return self._normalize_case(value)
            case NormalizationType.WHITESPACE_NORMALIZE:
                return self._normalize_whitespace(value)
            case NormalizationType.SET_UNORDERED:
                return self._normalize_set(value)
            case _:
                return value

    def _normalize_empty(self, value: Any) -> Any:
        if isinstance(value, str | list | tuple | dict) and len(value) == 0:
            return None
        return value

    def _normalize_numeric_string(self, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value)
        return value

    def _normalize_case(self, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower()
        if isinstance(value, dict):
            return {k: self._normalize_case(v) for k, v in value.items()}
        return value

    def _normalize_whitespace(self, value: Any) -> Any:
        if isinstance(value, str):
            value = value.replace("\r\n", "\n").replace("\r", "\n")
            return "\n".join(line.rstrip() for line in value.split("\n")).strip()
        return value

    def _normalize_set(self, value: Any) -> Any:
        if isinstance(value, list | tuple | set | frozenset):
            return tuple(sorted({str(item) for item in value}))
        return value

    def are_equivalent(self, declared: Any, recorded: Any, kind: str, attribute: str) -> bool:
        """Check whether two values are semantically equivalent."""
        return self.normalize_value(declared, kind, attribute) == self.normalize_value(
            recorded, kind, attribute
        )

    def compare(
        self,
        kind: str,
        declared: Mapping[str, Any],
        recorded: Mapping[str, Any],
        force_replace: frozenset[str] = frozenset(),
        optional_computed: frozenset[str] = frozenset(),
    ) -> list[AttributeDrift]:
        """List declared attributes whose recorded value differs.

        Args:
            kind: Resource kind.
            declared: Declared attributes (spec dump).
            recorded: Attributes of the local record.
            force_replace: Attributes that cannot be updated in place.
            optional_computed: Attributes the server fills in when left
                undeclared; a None declaration is not drift.

        Returns:
            Drift entries, in declaration order.
        """
        drifts: list[AttributeDrift] = []
        for attribute, value in declared.items():
            if value is None and attribute in optional_computed:
                continue
            current = recorded.get(attribute)
            if self.are_equivalent(value, current, kind, attribute):
                continue
            drifts.append(
                AttributeDrift(
                    attribute=attribute,
                    declared=value,
                    recorded=current,
                    force_replace=attribute in force_replace,
                )
            )

        if drifts:
            logger.debug(
                "Detected attribute drift",
                extra={"kind": kind, "attributes": [d.attribute for d in drifts]},
            )
        return drifts
