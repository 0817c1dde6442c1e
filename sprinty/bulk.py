"""Multi-card mutations that run as one all-or-nothing transaction.

Each operation appends one activity row per affected card inside the same
transaction. Non-empty id lists are the caller's concern; an empty
``card_ids`` is answered without touching the database.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from . import activity
from .activity import append_activity
from .db import Card, CardAssignee, CardLabel, delete_cards_cascade, run_logged
from .errors import UnsupportedDialectError
from .positions import next_order
from .schemas import (
    BulkAddLabels,
    BulkArchiveCards,
    BulkAssignUsers,
    BulkDeleteCards,
    BulkMoveCards,
    BulkOperationResponse,
    BulkSetDueDate,
)

logger = logging.getLogger(__name__)

ARCHIVED_STATUS = "archived"

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_or_ignore(session: Session, model, values: dict, conflict_columns: Sequence[str]) -> None:
    """Insert one row unless it would violate the unique ``conflict_columns``."""
    dialect = session.get_bind().dialect.name
    try:
        insert = _INSERT_BY_DIALECT[dialect]
    except KeyError:
        raise UnsupportedDialectError(dialect) from None
    session.execute(insert(model).values(**values).on_conflict_do_nothing(index_elements=list(conflict_columns)))


def _nothing_to_do() -> BulkOperationResponse:
    return BulkOperationResponse(success=True, updated=0, message="No cards to update")


class BulkService:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def move_cards(self, payload: BulkMoveCards, user_id: Optional[str] = None) -> BulkOperationResponse:
        """Append the cards, in input order, to the end of the target list.

        The lists the cards leave are not renumbered.
        """
        card_ids = payload.card_ids
        if not card_ids:
            return _nothing_to_do()
        target = payload.target_list_id

        def run(session: Session) -> None:
            start = next_order(session, Card.order, Card.list_id, target)
            for index, card_id in enumerate(card_ids):
                session.execute(
                    update(Card)
                    .where(Card.id == card_id)
                    .values(list_id=target, order=start + index)
                    .execution_options(synchronize_session=False)
                )
                append_activity(session, card_id, activity.MOVED, f"Moved to list {target}", user_id)

        run_logged(self.session_factory, "bulk move", run)
        logger.info("Moved %d card(s) to list %s", len(card_ids), target)
        return BulkOperationResponse(
            success=True,
            updated=len(card_ids),
            message=f"{len(card_ids)} card(s) moved successfully",
        )

    def assign_users(self, payload: BulkAssignUsers, user_id: Optional[str] = None) -> BulkOperationResponse:
        card_ids, user_ids = payload.card_ids, payload.user_ids
        if not card_ids:
            return _nothing_to_do()

        def run(session: Session) -> int:
            attempted = 0
            for card_id in card_ids:
                for assignee_id in user_ids:
                    insert_or_ignore(
                        session,
                        CardAssignee,
                        {"card_id": card_id, "user_id": assignee_id},
                        ("card_id", "user_id"),
                    )
                    attempted += 1
                append_activity(
                    session, card_id, activity.ASSIGNEE_ADDED, f"Assigned {len(user_ids)} user(s)", user_id
                )
            return attempted

        attempted = run_logged(self.session_factory, "bulk assign", run)
        logger.info("Assigned %d user(s) to %d card(s)", len(user_ids), len(card_ids))
        return BulkOperationResponse(
            success=True,
            updated=attempted,
            message=f"Users assigned to {len(card_ids)} card(s)",
        )

    def add_labels(self, payload: BulkAddLabels, user_id: Optional[str] = None) -> BulkOperationResponse:
        card_ids, label_ids = payload.card_ids, payload.label_ids
        if not card_ids:
            return _nothing_to_do()

        def run(session: Session) -> int:
            attempted = 0
            for card_id in card_ids:
                for label_id in label_ids:
                    insert_or_ignore(
                        session,
                        CardLabel,
                        {"card_id": card_id, "label_id": label_id},
                        ("card_id", "label_id"),
                    )
                    attempted += 1
                append_activity(
                    session, card_id, activity.LABEL_ADDED, f"Added {len(label_ids)} label(s)", user_id
                )
            return attempted

        attempted = run_logged(self.session_factory, "bulk label", run)
        logger.info("Added %d label(s) to %d card(s)", len(label_ids), len(card_ids))
        return BulkOperationResponse(
            success=True,
            updated=attempted,
            message=f"Labels added to {len(card_ids)} card(s)",
        )

    def set_due_date(self, payload: BulkSetDueDate, user_id: Optional[str] = None) -> BulkOperationResponse:
        card_ids, due_date = payload.card_ids, payload.due_date
        if not card_ids:
            return _nothing_to_do()

        if due_date is None:
            action, details = activity.DUE_DATE_REMOVED, "Due date removed"
        else:
            action, details = activity.DUE_DATE_SET, f"Due date set to {due_date.isoformat()}"

        def run(session: Session) -> None:
            session.execute(
                update(Card)
                .where(Card.id.in_(card_ids))
                .values(due_date=due_date)
                .execution_options(synchronize_session=False)
            )
            for card_id in card_ids:
                append_activity(session, card_id, action, details, user_id)

        run_logged(self.session_factory, "bulk due date", run)
        logger.info("Due date %s on %d card(s)", "cleared" if due_date is None else "set", len(card_ids))
        return BulkOperationResponse(
            success=True,
            updated=len(card_ids),
            message=f"Due date {'cleared' if due_date is None else 'set'} on {len(card_ids)} card(s)",
        )

    def archive_cards(self, payload: BulkArchiveCards, user_id: Optional[str] = None) -> BulkOperationResponse:
        card_ids = payload.card_ids
        if not card_ids:
            return _nothing_to_do()

        def run(session: Session) -> None:
            session.execute(
                update(Card)
                .where(Card.id.in_(card_ids))
                .values(status=ARCHIVED_STATUS)
                .execution_options(synchronize_session=False)
            )
            for card_id in card_ids:
                append_activity(session, card_id, activity.ARCHIVED, "Card archived", user_id)

        run_logged(self.session_factory, "bulk archive", run)
        logger.info("Archived %d card(s)", len(card_ids))
        return BulkOperationResponse(
            success=True,
            updated=len(card_ids),
            message=f"{len(card_ids)} card(s) archived successfully",
        )

    def delete_cards(self, payload: BulkDeleteCards, user_id: Optional[str] = None) -> BulkOperationResponse:
        """Delete the cards with every dependent row. Lists are not renumbered."""
        card_ids = payload.card_ids
        if not card_ids:
            return _nothing_to_do()

        def run(session: Session) -> None:
            delete_cards_cascade(session, card_ids)

        run_logged(self.session_factory, "bulk delete", run)
        logger.info("Deleted %d card(s) (requested by %s)", len(card_ids), user_id or "system")
        return BulkOperationResponse(
            success=True,
            updated=len(card_ids),
            message=f"{len(card_ids)} card(s) deleted successfully",
        )
