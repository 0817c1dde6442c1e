"""Dense integer position index shared by lists-in-board and cards-in-list.

Each ordered table carries an ``order`` column that is expected to hold
``0..n-1`` within its parent scope once an operation commits. Nothing here
takes locks: two transactions appending to the same scope can compute the
same ``max(order)`` and write duplicates. ``renumber`` repairs a scope.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import InstrumentedAttribute, Session

from .schemas import OrderItem

logger = logging.getLogger(__name__)


def max_order(session: Session, column: InstrumentedAttribute, scope_column: InstrumentedAttribute, scope_id: str) -> Optional[int]:
    return session.execute(select(func.max(column)).where(scope_column == scope_id)).scalar()


def next_order(
    session: Session,
    column: InstrumentedAttribute,
    scope_column: InstrumentedAttribute,
    scope_id: str,
    empty: int = 0,
) -> int:
    """Position one past the current last row, or ``empty`` if the scope has no rows."""
    current = max_order(session, column, scope_column, scope_id)
    if current is None:
        return empty
    return current + 1


def apply_order(
    session: Session,
    model,
    items: Iterable[OrderItem],
    scope_column: Optional[InstrumentedAttribute] = None,
    scope_id: Optional[str] = None,
) -> int:
    """Write each ``{id, order[, list_id]}`` independently.

    The batch is trusted as given; density and uniqueness are the caller's
    concern. When ``scope_column`` is set, rows outside ``scope_id`` are left
    untouched. Returns the number of rows written.
    """
    touched = 0
    for item in items:
        values = {"order": item.order}
        if getattr(item, "list_id", None) is not None:
            values["list_id"] = item.list_id
        stmt = update(model).where(model.id == item.id).values(**values)
        if scope_column is not None:
            stmt = stmt.where(scope_column == scope_id)
        result = session.execute(stmt.execution_options(synchronize_session=False))
        touched += result.rowcount
        logger.debug("%s %s -> order %s", model.__tablename__, item.id, item.order)
    return touched


def renumber(session: Session, model, scope_column: InstrumentedAttribute, scope_id: str) -> list[OrderItem]:
    """Reassign ``order = index`` over the siblings of ``scope_id``."""
    rows = session.execute(
        select(model.id)
        .where(scope_column == scope_id)
        .order_by(model.order, model.created_at, model.id)
    ).scalars().all()
    items = [OrderItem(id=row_id, order=index) for index, row_id in enumerate(rows)]
    apply_order(session, model, items, scope_column, scope_id)
    return items
