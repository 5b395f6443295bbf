"""
CellStore -- read and upsert access to the cell fact table.

Responsibility:
    The single shared mutable resource of the planning core.  Every engine
    service reads and writes cells exclusively through this class.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only; the caller owns the
    transaction.

Invariants enforced:
    - Upsert semantics: the first write to a (node, measure, period,
      version) key inserts a row; later writes update it in place.
    - Absent vs null: ``get_many`` omits keys without a row and returns
      None for rows storing null.
    - ``updated_at`` comes from the injected Clock; ``updated_by_id`` is the
      editor id or None for engine-derived writes.

Failure modes:
    - ValueError (from ``to_decimal``) for non-numeric or non-finite values.
    - IntegrityError on a foreign-key violation (unknown node, measure,
      period or version) or when a concurrent writer inserts the same key.
"""

from collections.abc import Iterable
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select

from planning_kernel.domain.dtos import CellAddress, CellUpdate
from planning_kernel.domain.values import to_decimal
from planning_kernel.logging_config import get_logger
from planning_kernel.models.cell import CellValue
from planning_kernel.services.base import BaseService

logger = get_logger("services.cell_store")

_IN_CHUNK = 500


class CellStore(BaseService[CellValue]):
    """
    Cell store over one session.

    Contract:
        get / get_many are plain reads; upsert / upsert_many flush.
    Non-goals:
        - No caching: every read goes to the session.
        - No cell-level locking between concurrent editors.
    """

    def _find(
        self, node_id: UUID, measure_id: UUID, period_id: UUID, version_id: UUID
    ) -> CellValue | None:
        return self.session.scalars(
            select(CellValue).where(
                CellValue.node_id == node_id,
                CellValue.measure_id == measure_id,
                CellValue.time_period_id == period_id,
                CellValue.version_id == version_id,
            )
        ).one_or_none()

    def get(
        self, node_id: UUID, measure_id: UUID, period_id: UUID, version_id: UUID
    ) -> Decimal | None:
        """Stored value, or None when the cell is absent or holds null."""
        cell = self._find(node_id, measure_id, period_id, version_id)
        return cell.value if cell is not None else None

    def exists(
        self, node_id: UUID, measure_id: UUID, period_id: UUID, version_id: UUID
    ) -> bool:
        """True when a row exists for the key, even one storing null."""
        return self._find(node_id, measure_id, period_id, version_id) is not None

    def get_many(
        self,
        node_ids: Iterable[UUID],
        measure_ids: Iterable[UUID],
        period_ids: Iterable[UUID],
        version_id: UUID,
    ) -> dict[CellAddress, Decimal | None]:
        """
        Sparse read of the cross product node_ids x measure_ids x period_ids.

        Keys without a row are missing from the result.
        """
        node_ids = list(dict.fromkeys(node_ids))
        measure_ids = list(dict.fromkeys(measure_ids))
        period_ids = list(dict.fromkeys(period_ids))
        if not node_ids or not measure_ids or not period_ids:
            return {}

        result: dict[CellAddress, Decimal | None] = {}
        for start in range(0, len(node_ids), _IN_CHUNK):
            rows = self.session.execute(
                select(
                    CellValue.node_id,
                    CellValue.measure_id,
                    CellValue.time_period_id,
                    CellValue.value,
                ).where(
                    CellValue.version_id == version_id,
                    CellValue.node_id.in_(node_ids[start:start + _IN_CHUNK]),
                    CellValue.measure_id.in_(measure_ids),
                    CellValue.time_period_id.in_(period_ids),
                )
            )
            for node_id, measure_id, period_id, value in rows:
                result[CellAddress(node_id, measure_id, period_id)] = value
        return result

    def upsert(
        self,
        node_id: UUID,
        measure_id: UUID,
        period_id: UUID,
        version_id: UUID,
        value: Any,
        editor_id: UUID | None = None,
    ) -> CellValue:
        """Insert or update one cell and flush."""
        cell = self._write(node_id, measure_id, period_id, version_id, value, editor_id)
        self.session.flush()
        return cell

    def upsert_many(
        self,
        updates: Iterable[CellUpdate],
        version_id: UUID,
        editor_id: UUID | None = None,
    ) -> int:
        """Apply a batch of raw values with one flush.  Returns the count."""
        count = 0
        for update in updates:
            self._write(
                update.node_id,
                update.measure_id,
                update.period_id,
                version_id,
                update.value,
                editor_id,
            )
            count += 1
        self.session.flush()
        logger.info("cells_upserted", extra={
            "version_id": str(version_id),
            "cell_count": count,
        })
        return count

    def _write(
        self,
        node_id: UUID,
        measure_id: UUID,
        period_id: UUID,
        version_id: UUID,
        value: Any,
        editor_id: UUID | None,
    ) -> CellValue:
        value = to_decimal(value)
        now = self._clock.now()
        # Autoflush makes pending inserts of the same batch visible here.
        cell = self._find(node_id, measure_id, period_id, version_id)
        if cell is None:
            cell = CellValue(
                node_id=node_id,
                measure_id=measure_id,
                time_period_id=period_id,
                version_id=version_id,
                value=value,
                updated_by_id=editor_id,
                created_at=now,
                updated_at=now,
            )
            self.session.add(cell)
        else:
            cell.value = value
            cell.updated_by_id = editor_id
            cell.updated_at = now
        return cell
