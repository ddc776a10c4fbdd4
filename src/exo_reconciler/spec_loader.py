"""Plan file loading with validation.

A plan is a YAML document listing resources in the order they must be
reconciled:

```yaml
resources:
  - name: web-sg
    kind: security_group
    spec:
      name: web
  - name: web-http
    kind: security_group_rule
    depends_on: [web-sg]
    timeouts:
      create: 120
    spec:
      security_group_id: ${web-sg.id}
      type: INGRESS
      protocol: TCP
      cidr: 0.0.0.0/0
      start_port: 80
      end_port: 80
```

SECURITY: File size is checked before reading. Specs without references
are validated at load time; specs with references are validated again
once the references are resolved.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .config import MAX_PLAN_FILE_SIZE_BYTES, MAX_PLAN_RESOURCES
from .dependency import find_references
from .models import SPEC_REGISTRY, ResourceSpec, get_spec_class
from .timeouts import Operation

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when plan loading or validation fails."""

    pass


TIMEOUT_KEYS = frozenset({op.value for op in Operation} | {"default"})


class PlanEntry(BaseModel):
    """One declared resource in a plan."""

    model_config = {"extra": "forbid"}

    name: Annotated[str, Field(min_length=1, max_length=63, pattern=r"^[A-Za-z0-9_\-]+$")]
    kind: str
    depends_on: list[str] = Field(default_factory=list)
    timeouts: dict[str, float] = Field(default_factory=dict)
    spec: dict[str, Any] = Field(default_factory=dict)

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        if v not in SPEC_REGISTRY:
            raise ValueError(f"kind must be one of {sorted(SPEC_REGISTRY)}")
        return v

    @field_validator("timeouts")
    @classmethod
    def validate_timeouts(cls, v: dict[str, float]) -> dict[str, float]:
        unknown = set(v) - TIMEOUT_KEYS
        if unknown:
            raise ValueError(f"unknown timeout operation(s): {sorted(unknown)}")
        for operation, seconds in v.items():
            if seconds <= 0:
                raise ValueError(f"{operation} timeout must be positive")
        return v

    @property
    def address(self) -> str:
        return f"{self.kind}.{self.name}"

    @property
    def has_references(self) -> bool:
        return bool(find_references(self.spec))

    def build_spec(self, data: dict[str, Any] | None = None) -> ResourceSpec:
        """Validate the (resolved) spec against the kind's model.

        Raises:
            SpecLoadError: If validation fails.
        """
        spec_class = get_spec_class(self.kind)
        try:
            return spec_class.model_validate(self.spec if data is None else data)
        except ValidationError as e:
            raise SpecLoadError(
                f"Validation failed for {self.address}:\n{format_validation_error(e)}"
            ) from e


class Plan(BaseModel):
    """Ordered list of declared resources."""

    model_config = {"extra": "forbid"}

    resources: list[PlanEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_resources(self) -> Plan:
        if len(self.resources) > MAX_PLAN_RESOURCES:
            raise ValueError(f"plan exceeds maximum of {MAX_PLAN_RESOURCES} resources")
        seen: set[str] = set()
        for entry in self.resources:
            if entry.name in seen:
                raise ValueError(f"duplicate resource name '{entry.name}'")
            seen.add(entry.name)
        return self

    def get(self, name: str) -> PlanEntry | None:
        for entry in self.resources:
            if entry.name == name:
                return entry
        return None


def format_validation_error(e: ValidationError) -> str:
    """Format pydantic validation errors, one per line."""
    errors = []
    for error in e.errors():
        loc = ".".join(str(x) for x in error["loc"])
        errors.append(f"  - {loc}: {error['msg']}")
    return "\n".join(errors)


def parse_plan(raw_data: Any, source: str = "<plan>") -> Plan:
    """Validate already-parsed plan data.

    Raises:
        SpecLoadError: If the data is not a valid plan.
    """
    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Plan must be a YAML mapping: {source}")

    try:
        plan = Plan.model_validate(raw_data)
    except ValidationError as e:
        raise SpecLoadError(
            f"Validation failed for {source}:\n{format_validation_error(e)}"
        ) from e

    for entry in plan.resources:
        if not entry.has_references:
            entry.build_spec()

    return plan


def load_plan(path: Path) -> Plan:
    """Load and validate a plan from YAML.

    Args:
        path: Plan file.

    Returns:
        Validated plan.

    Raises:
        SpecLoadError: If the plan cannot be loaded or fails validation.
    """
    if not path.exists():
        raise SpecLoadError(f"Plan file not found: {path}")

    # SECURITY: Check file size before reading
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat plan file {path}: {e}") from e

    if file_size > MAX_PLAN_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Plan file exceeds maximum size of {MAX_PLAN_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read plan file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e

    plan = parse_plan(raw_data, str(path))
    logger.info("Loaded plan with %d resource(s) from %s", len(plan.resources), path)
    return plan
