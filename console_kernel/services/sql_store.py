"""
SqlEntityStore -- RemoteStore backed by a SQLAlchemy database.

Responsibility:
    Applies gateway requests to the ``budgets`` and ``user_licenses``
    tables in one transaction each, and records the request's idempotency
    key so a repeated request is acknowledged without being re-applied.

Architecture position:
    Kernel > Services.  Reached only through the ActionGateway.

Failure modes (raised, translated by the gateway):
    - EntityNotFoundError: update/delete/fetch of a missing id.
    - StoreRejectedError: unknown field (UNKNOWN_FIELD), bad value
      (INVALID_VALUE), create of an existing id (ALREADY_EXISTS),
      constraint violation (CONFLICT).
    - StoreUnavailableError: database connectivity failures.
    - StoreConfigurationError: unknown entity type.
"""

from __future__ import annotations

from contextlib import nullcontext
from typing import Any, Mapping

from sqlalchemy import DateTime
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from console_kernel.db.base import TrackedBase
from console_kernel.db.engine import session_scope, write_lock_for
from console_kernel.domain.clock import Clock, SystemClock
from console_kernel.domain.entity import parse_timestamp
from console_kernel.domain.gateway import GatewayAction, GatewayRequest
from console_kernel.exceptions import (
    EntityNotFoundError,
    StoreConfigurationError,
    StoreRejectedError,
    StoreUnavailableError,
)
from console_kernel.logging_config import get_logger
from console_kernel.models.records import (
    BudgetRecord,
    LicenseRecord,
    MutationLogRecord,
    record_to_dict,
)

logger = get_logger("services.sql_store")

DEFAULT_RECORD_TYPES: dict[str, type[TrackedBase]] = {
    "budget": BudgetRecord,
    "license": LicenseRecord,
}

_READ_ONLY_COLUMNS = frozenset({"id", "created_at", "updated_at"})


class SqlEntityStore:
    """Applies requests to ORM records, one session per request.

    On SQLite the requests are applied one at a time.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        record_types: Mapping[str, type[TrackedBase]] | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._record_types = dict(record_types or DEFAULT_RECORD_TYPES)
        self._write_lock = write_lock_for(session_factory.kw.get("bind"))

    def apply(self, request: GatewayRequest) -> Mapping[str, Any] | None:
        model = self._record_types.get(request.entity_type)
        if model is None:
            raise StoreConfigurationError(
                f"No table mapped for entity type '{request.entity_type}'"
            )
        try:
            with self._write_lock or nullcontext(), session_scope(
                self._session_factory
            ) as session:
                if request.action != GatewayAction.FETCH:
                    seen = session.get(MutationLogRecord, request.idempotency_key)
                    if seen is not None:
                        logger.info(
                            "store_request_deduplicated",
                            extra={
                                "entity_type": request.entity_type,
                                "entity_id": request.entity_id,
                                "idempotency_key": request.idempotency_key,
                            },
                        )
                        return {"id": request.entity_id, "deduplicated": True}

                data = self._dispatch(session, model, request)

                if request.action != GatewayAction.FETCH:
                    session.add(
                        MutationLogRecord(
                            id=request.idempotency_key,
                            entity_type=request.entity_type,
                            entity_id=request.entity_id,
                            action=request.action.value,
                            applied_at=self._clock.now(),
                        )
                    )
                return data
        except IntegrityError as exc:
            raise StoreRejectedError("CONFLICT", str(exc.orig)) from exc
        except OperationalError as exc:
            raise StoreUnavailableError(str(exc.orig)) from exc

    def _dispatch(
        self,
        session: Session,
        model: type[TrackedBase],
        request: GatewayRequest,
    ) -> Mapping[str, Any] | None:
        if request.action == GatewayAction.CREATE:
            if session.get(model, request.entity_id) is not None:
                raise StoreRejectedError(
                    "ALREADY_EXISTS",
                    f"{request.entity_type} already exists: {request.entity_id}",
                )
            record = model(id=request.entity_id)
            self._assign(record, request)
            session.add(record)
            session.flush()
            return record_to_dict(record)

        record = session.get(model, request.entity_id)
        if record is None:
            raise EntityNotFoundError(request.entity_type, request.entity_id)

        if request.action == GatewayAction.FETCH:
            return record_to_dict(record)

        if request.action == GatewayAction.DELETE:
            data = record_to_dict(record)
            session.delete(record)
            return data

        self._assign(record, request)
        session.flush()
        return record_to_dict(record)

    def _assign(self, record: TrackedBase, request: GatewayRequest) -> None:
        columns = record.__table__.columns
        for key, value in request.patch.items():
            if key in _READ_ONLY_COLUMNS or key not in columns:
                raise StoreRejectedError(
                    "UNKNOWN_FIELD",
                    f"{request.entity_type} has no writable field '{key}'",
                )
            if isinstance(columns[key].type, DateTime):
                try:
                    value = parse_timestamp(value)
                except ValueError as exc:
                    raise StoreRejectedError(
                        "INVALID_VALUE", f"Field '{key}': {exc}"
                    ) from exc
            setattr(record, key, value)
