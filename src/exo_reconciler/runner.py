"""Plan runner: walks a plan in order and drives one reconciler per resource.

APPLY, per entry in plan order:
1. Resolve ``${name.attr}`` references against already reconciled records
2. Validate the resolved spec
3. No identity: Create
4. Identity: Exists (vanished means Create again), then Read
5. Compare declared attributes with the record:
   - a force-replace attribute changed (or the kind cannot update): Delete + Create
   - other drift: Update
   - no drift: nothing to do

DESTROY deletes in reverse plan order. REFRESH reads every recorded entry.

Resources are reconciled one at a time and the run stops at the first
failure; records persisted before the failure (including a fresh identity
from a Create whose read-back failed) stay in the state file.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from .dependency import destroy_order, resolve_references, validate_order
from .errors import NotFoundError
from .kinds.base import ResourceKind
from .reconciler import LifecycleReconciler
from .spec_loader import Plan, PlanEntry
from .state import DriftNormalizer
from .state_store import StateStore
from .timeouts import OperationTimeouts

logger = logging.getLogger(__name__)


class Action(str, Enum):
    """What the runner did to a resource."""

    CREATE = "create"
    RECREATE = "recreate"  # Recorded identity vanished remotely
    REPLACE = "replace"  # Force-replace attribute changed
    UPDATE = "update"
    NOOP = "noop"
    READ = "read"
    DELETE = "delete"
    VANISHED = "vanished"  # Gone remotely during refresh


@dataclass
class ResourceOutcome:
    """Result of reconciling one plan entry."""

    name: str
    kind: str
    action: Action | None = None
    drift: list[str] = field(default_factory=list)
    error: Exception | None = None

    @property
    def address(self) -> str:
        return f"{self.kind}.{self.name}"

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class RunResult:
    """Result of a whole plan run."""

    operation: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    outcomes: list[ResourceOutcome] = field(default_factory=list)
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def failed(self) -> ResourceOutcome | None:
        for outcome in self.outcomes:
            if not outcome.success:
                return outcome
        return None

    def count(self, action: Action) -> int:
        return sum(1 for o in self.outcomes if o.action == action)


class PlanRunner:
    """Drives lifecycle reconcilers over a plan.

    Args:
        kinds: Kind instances keyed by type name (see ``kinds.build_kinds``).
        store: Record store; also receives every applied record.
        timeouts: Base timeouts, overridden per entry by the plan.
        normalizer: Drift normalizer (defaults to the built-in rules).
    """

    def __init__(
        self,
        kinds: Mapping[str, ResourceKind],
        store: StateStore,
        timeouts: OperationTimeouts | None = None,
        normalizer: DriftNormalizer | None = None,
    ) -> None:
        self._kinds = dict(kinds)
        self._store = store
        self._timeouts = timeouts or OperationTimeouts()
        self._normalizer = normalizer or DriftNormalizer()

    def _reconciler(self, entry: PlanEntry) -> LifecycleReconciler:
        kind = self._kinds.get(entry.kind)
        if kind is None:
            raise ValueError(f"No kind registered for '{entry.kind}'")
        return LifecycleReconciler(
            kind,
            timeouts=self._timeouts.merged(entry.timeouts),
            on_apply=self._store.put,
        )

    # =========================================================================
    # Apply
    # =========================================================================

    async def apply(self, plan: Plan) -> RunResult:
        """Converge every plan entry, in plan order."""
        validate_order(plan)
        result = RunResult(operation="apply")

        for entry in plan.resources:
            outcome = ResourceOutcome(name=entry.name, kind=entry.kind)
            result.outcomes.append(outcome)
            try:
                await self._apply_entry(entry, outcome)
            except Exception as e:
                self._fail(result, outcome, e)
                break
            logger.info(
                "Resource reconciled",
                extra={
                    "address": outcome.address,
                    "action": outcome.action.value if outcome.action else None,
                    "drift": outcome.drift,
                },
            )

        return self._finish(result)

    async def _apply_entry(self, entry: PlanEntry, outcome: ResourceOutcome) -> None:
        reconciler = self._reconciler(entry)
        kind = reconciler.kind
        record = self._store.get_or_create(entry.name, entry.kind)

        data = resolve_references(entry.spec, self._store.records())
        spec = entry.build_spec(data)

        if not record.has_identity:
            await reconciler.create(record, spec)
            outcome.action = Action.CREATE
            return

        if not await reconciler.exists(record):
            logger.warning(
                "Recorded resource vanished, creating it again",
                extra={"address": record.address, "id": record.id},
            )
            record.clear_identity()
            record.attributes = {}
            await reconciler.create(record, spec)
            outcome.action = Action.RECREATE
            return

        await reconciler.read(record)
        drifts = self._normalizer.compare(
            kind.type_name,
            kind.comparable_attributes(spec.declared_attributes(), record.attributes),
            record.attributes,
            force_replace=kind.force_replace,
            optional_computed=kind.optional_computed,
        )
        outcome.drift = [d.attribute for d in drifts]
        if not drifts:
            outcome.action = Action.NOOP
            return

        if any(d.force_replace for d in drifts) or not kind.supports_update:
            logger.info(
                "Replacing resource",
                extra={"address": record.address, "attributes": outcome.drift},
            )
            await reconciler.delete(record)
            await reconciler.create(record, spec)
            outcome.action = Action.REPLACE
            return

        await reconciler.update(record, spec)
        outcome.action = Action.UPDATE

    # =========================================================================
    # Destroy / refresh
    # =========================================================================

    async def destroy(self, plan: Plan) -> RunResult:
        """Delete every recorded plan entry, dependents first."""
        result = RunResult(operation="destroy")

        for entry in destroy_order(plan):
            record = self._store.get(entry.name)
            if record is None:
                continue
            outcome = ResourceOutcome(name=entry.name, kind=entry.kind)
            result.outcomes.append(outcome)
            try:
                await self._reconciler(entry).delete(record)
            except Exception as e:
                self._fail(result, outcome, e)
                break
            self._store.remove(entry.name)
            self._store.save()
            outcome.action = Action.DELETE
            logger.info("Resource deleted", extra={"address": outcome.address})

        return self._finish(result)

    async def refresh(self, plan: Plan) -> RunResult:
        """Read every recorded plan entry; mark the ones gone remotely."""
        result = RunResult(operation="refresh")

        for entry in plan.resources:
            record = self._store.get(entry.name)
            if record is None or not record.has_identity:
                continue
            outcome = ResourceOutcome(name=entry.name, kind=entry.kind)
            result.outcomes.append(outcome)
            try:
                await self._reconciler(entry).read(record)
            except NotFoundError:
                self._store.put(record)
                outcome.action = Action.VANISHED
                continue
            except Exception as e:
                self._fail(result, outcome, e)
                break
            outcome.action = Action.READ

        return self._finish(result)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _fail(self, result: RunResult, outcome: ResourceOutcome, error: Exception) -> None:
        outcome.error = error
        result.error = error
        logger.error(
            "Resource reconciliation failed",
            extra={
                "address": outcome.address,
                "operation": result.operation,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )

    def _finish(self, result: RunResult) -> RunResult:
        result.end_time = datetime.now(UTC)
        logger.info(
            "Run finished",
            extra={
                "operation": result.operation,
                "success": result.success,
                "resources": len(result.outcomes),
                "duration_seconds": result.duration_seconds,
            },
        )
        return result
