"""Lifecycle reconciler: Exists, Create, Read, Update, Delete for any kind.

One reconciler instance drives one resource kind. The kind supplies the API
calls; the reconciler owns everything that must behave identically across
kinds:

1. Identity is validated locally before any network call
2. Every call runs under a per-operation Deadline
3. Errors are classified once: NotFound means absence, everything else
   propagates unchanged
4. Remote snapshots are normalized onto the record, then the apply hook fires

LIFECYCLE:
    absent --create--> existing --update*--> existing --delete--> absent
                          |
                          +--read/exists observes NotFound--> vanished

A vanished record keeps its identity so the caller can decide to re-create.
Calls for different records may run concurrently; calls for the same record
must be serialized by the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from .errors import NotFoundError, UnsupportedOperationError, is_not_found
from .kinds.base import ResourceKind
from .models import ResourceSpec
from .state import RecordStatus, ResourceRecord
from .timeouts import Deadline, Operation, OperationTimeouts, run_with_deadline

logger = logging.getLogger(__name__)

ApplyHook = Callable[[ResourceRecord], None]


class LifecycleReconciler:
    """Generic lifecycle driver parameterized by a resource kind.

    Args:
        kind: Capability set of the managed resource kind.
        timeouts: Per-operation timeouts used when no explicit deadline is
            passed to an operation.
        on_apply: Hook called with the record after every successful
            Read/Create/Update and after a confirmed Delete.
    """

    def __init__(
        self,
        kind: ResourceKind,
        timeouts: OperationTimeouts | None = None,
        on_apply: ApplyHook | None = None,
    ) -> None:
        self._kind = kind
        self._timeouts = timeouts or OperationTimeouts()
        self._on_apply = on_apply

    @property
    def kind(self) -> ResourceKind:
        return self._kind

    def _deadline(self, deadline: Deadline | None, operation: Operation) -> Deadline:
        if deadline is not None:
            return deadline
        return Deadline.for_operation(self._timeouts, operation)

    def _coerce_spec(self, spec: ResourceSpec | Mapping[str, Any]) -> ResourceSpec:
        if isinstance(spec, ResourceSpec):
            return spec
        return self._kind.spec_class.model_validate(dict(spec))

    def _applied(self, record: ResourceRecord) -> None:
        if self._on_apply is not None:
            self._on_apply(record)

    async def exists(self, record: ResourceRecord, deadline: Deadline | None = None) -> bool:
        """Check whether the remote object still exists.

        Returns:
            False for an empty identity (no network call) or when the object
            is gone; in the latter case the record is marked vanished.

        Raises:
            MalformedIdentityError: If the identity is malformed.
        """
        if not record.has_identity:
            return False

        identity = self._kind.resolve_identity(record)
        deadline = self._deadline(deadline, Operation.READ)
        try:
            await run_with_deadline(
                deadline, self._kind.fetch, identity, record, deadline.remaining()
            )
        except Exception as e:
            if not is_not_found(e):
                raise
            record.mark_vanished()
            logger.info(
                "Resource no longer exists",
                extra={"address": record.address, "id": record.id},
            )
            return False
        return True

    async def create(
        self,
        record: ResourceRecord,
        spec: ResourceSpec | Mapping[str, Any],
        deadline: Deadline | None = None,
        read_deadline: Deadline | None = None,
    ) -> ResourceRecord:
        """Create the remote object, then read it back.

        No deduplication happens: calling create twice creates two objects.
        If the read-after-write fails, the new identity stays on the record
        and the error propagates.
        """
        spec = self._coerce_spec(spec)
        deadline = self._deadline(deadline, Operation.CREATE)

        logger.debug("Beginning create", extra={"address": record.address})
        identity = await run_with_deadline(
            deadline, self._kind.create, spec, record, deadline.remaining()
        )
        record.set_identity(identity.key)
        self._kind.seed(record, spec, identity)
        self._applied(record)
        logger.debug(
            "Create finished",
            extra={"address": record.address, "id": record.id},
        )

        return await self.read(record, deadline=read_deadline)

    async def read(self, record: ResourceRecord, deadline: Deadline | None = None) -> ResourceRecord:
        """Refresh the record from the remote snapshot.

        Raises:
            MalformedIdentityError: If the identity is malformed.
            NotFoundError: If the object is gone; the record is marked vanished.
        """
        if not record.has_identity:
            raise NotFoundError(f"{record.address} has no identity", address=record.address)

        identity = self._kind.resolve_identity(record)
        deadline = self._deadline(deadline, Operation.READ)

        logger.debug("Beginning read", extra={"address": record.address, "id": record.id})
        try:
            entity = await run_with_deadline(
                deadline, self._kind.fetch, identity, record, deadline.remaining()
            )
        except Exception as e:
            if not is_not_found(e):
                raise
            record.mark_vanished()
            logger.warning(
                "Resource gone",
                extra={"address": record.address, "id": record.id},
            )
            raise NotFoundError(
                f"{record.address} ({record.id}) not found", address=record.address
            ) from e

        self._kind.apply(record, entity)
        record.status = RecordStatus.EXISTING
        self._applied(record)
        logger.debug("Read finished", extra={"address": record.address, "id": record.id})
        return record

    async def update(
        self,
        record: ResourceRecord,
        spec: ResourceSpec | Mapping[str, Any],
        deadline: Deadline | None = None,
    ) -> ResourceRecord:
        """Update the remote object in place.

        When the API returns no post-update snapshot, the declared attributes
        are applied to the record instead.

        Raises:
            UnsupportedOperationError: If the kind cannot update in place.
        """
        if not self._kind.supports_update:
            raise UnsupportedOperationError(
                f"{self._kind.type_name} does not support in-place update"
            )
        spec = self._coerce_spec(spec)
        identity = self._kind.resolve_identity(record)
        deadline = self._deadline(deadline, Operation.UPDATE)

        logger.debug("Beginning update", extra={"address": record.address, "id": record.id})
        entity = await run_with_deadline(
            deadline, self._kind.update, identity, spec, record, deadline.remaining()
        )
        if entity is None:
            self._kind.apply_declared(record, spec)
        else:
            self._kind.apply(record, entity)
        record.status = RecordStatus.EXISTING
        self._applied(record)
        logger.debug("Update finished", extra={"address": record.address, "id": record.id})
        return record

    async def delete(self, record: ResourceRecord, deadline: Deadline | None = None) -> None:
        """Delete the remote object.

        Success and NotFound both clear the identity. Any other failure
        propagates and the identity is kept.
        """
        if not record.has_identity:
            record.clear_identity()
            return

        identity = self._kind.resolve_identity(record)
        deadline = self._deadline(deadline, Operation.DELETE)

        logger.debug("Beginning delete", extra={"address": record.address, "id": record.id})
        try:
            await run_with_deadline(
                deadline, self._kind.delete, identity, record, deadline.remaining()
            )
        except Exception as e:
            if not is_not_found(e):
                raise
            logger.info(
                "Resource already deleted",
                extra={"address": record.address, "id": record.id},
            )

        record.clear_identity()
        record.attributes = {}
        self._applied(record)
        logger.debug("Delete finished", extra={"address": record.address})
