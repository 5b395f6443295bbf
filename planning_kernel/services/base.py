"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session contract for every planning kernel
    service.  Services receive a SQLAlchemy ``Session`` and persist through
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back.  The edit orchestrator
      (or a test harness) owns one ``session_scope`` per engine call, which
      is what makes each spread, sweep or recalculation atomic.

Failure modes:
    - A subclass calling ``session.commit()`` would split one engine call
      across several transactions and leave sibling sets half-written on
      failure.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from planning_kernel.db.base import Base
from planning_kernel.domain.catalog import CatalogSnapshot
from planning_kernel.domain.clock import Clock, SystemClock
from planning_kernel.selectors.catalog_selector import CatalogSelector

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def _snapshot(self, snapshot: CatalogSnapshot | None) -> CatalogSnapshot:
        """The caller's snapshot, or a fresh one read through this session."""
        if snapshot is not None:
            return snapshot
        return CatalogSelector(self.session).load_snapshot()
