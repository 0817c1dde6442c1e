from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from . import activity
from .activity import append_activity
from .db import Card, ListModel, delete_cards_cascade, run_logged
from .errors import NotFoundError
from .positions import apply_order, next_order, renumber
from .schemas import (
    CardCreate,
    CardDelete,
    CardDetailsUpdate,
    CardOrderItem,
    CardOut,
    CardTitleUpdate,
    ListCopy,
    ListCreate,
    ListDelete,
    ListOut,
    ListTitleUpdate,
    ListWithCards,
    OrderItem,
)

logger = logging.getLogger(__name__)


def _same_value(stored, submitted) -> bool:
    # SQLite hands back naive datetimes holding the submitted wall-clock time.
    if isinstance(stored, datetime) and isinstance(submitted, datetime):
        if (stored.tzinfo is None) != (submitted.tzinfo is None):
            return stored.replace(tzinfo=None) == submitted.replace(tzinfo=None)
    return stored == submitted


class CardRepository:
    """Cards within a list, kept in a dense ``order`` sequence."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def _get_scoped(self, session: Session, card_id: str, list_id: str) -> Optional[Card]:
        return session.execute(
            select(Card).where(Card.id == card_id, Card.list_id == list_id)
        ).scalar_one_or_none()

    # === Reads ===
    def get_card_by_id(self, card_id: str) -> Optional[CardOut]:
        def run(session: Session) -> Optional[CardOut]:
            card = session.get(Card, card_id)
            return CardOut.model_validate(card) if card else None

        return run_logged(self.session_factory, "get_card_by_id", run)

    def get_cards_by_list_id(self, list_id: str) -> list[CardOut]:
        def run(session: Session) -> list[CardOut]:
            cards = session.execute(
                select(Card).where(Card.list_id == list_id).order_by(Card.order, Card.created_at)
            ).scalars().all()
            return [CardOut.model_validate(c) for c in cards]

        return run_logged(self.session_factory, "get_cards_by_list_id", run)

    # === Writes ===
    def create(self, payload: CardCreate, user_id: Optional[str] = None) -> CardOut:
        def run(session: Session) -> CardOut:
            card = Card(
                list_id=payload.list_id,
                title=payload.title.strip(),
                description=payload.description.strip() if payload.description else None,
                status=payload.status,
                order=next_order(session, Card.order, Card.list_id, payload.list_id),
            )
            session.add(card)
            session.flush()
            append_activity(session, card.id, activity.CREATED, f"Card created in list {card.list_id}", user_id)
            return CardOut.model_validate(card)

        card = run_logged(self.session_factory, "create card", run)
        logger.info("Created card %s in list %s at order %s", card.id, card.list_id, card.order)
        return card

    def update_title(self, payload: CardTitleUpdate, user_id: Optional[str] = None) -> Optional[CardOut]:
        def run(session: Session) -> Optional[CardOut]:
            card = self._get_scoped(session, payload.id, payload.list_id)
            if card is None:
                return None
            card.title = payload.title.strip()
            session.flush()
            append_activity(session, card.id, activity.TITLE_CHANGED, f"Title changed to {card.title}", user_id)
            return CardOut.model_validate(card)

        return run_logged(self.session_factory, "update card title", run)

    def update_details(self, payload: CardDetailsUpdate, user_id: Optional[str] = None) -> Optional[CardOut]:
        """Apply the fields present in ``payload``; absent fields are left alone."""
        changes = payload.model_dump(exclude_unset=True, exclude={"id", "list_id"})
        if "priority" in changes:
            changes["priority"] = changes["priority"].value
        if "title" in changes:
            changes["title"] = changes["title"].strip()

        def run(session: Session) -> Optional[CardOut]:
            card = self._get_scoped(session, payload.id, payload.list_id)
            if card is None:
                return None
            changed = [field for field, value in changes.items() if not _same_value(getattr(card, field), value)]
            if changed:
                for field in changed:
                    setattr(card, field, changes[field])
                session.flush()
                append_activity(session, card.id, activity.UPDATED, f"Updated {', '.join(changed)}", user_id)
            return CardOut.model_validate(card)

        return run_logged(self.session_factory, "update card details", run)

    def update_order(self, items: list[CardOrderItem], user_id: Optional[str] = None) -> list[CardOut]:
        """Write the submitted positions (and list moves) as one batch."""
        ids = [item.id for item in items]

        def run(session: Session) -> list[CardOut]:
            previous = dict(session.execute(select(Card.id, Card.list_id).where(Card.id.in_(ids))).all())
            apply_order(session, Card, items)
            for item in items:
                if item.list_id is not None and item.id in previous and previous[item.id] != item.list_id:
                    append_activity(session, item.id, activity.MOVED, f"Moved to list {item.list_id}", user_id)
            cards = {c.id: c for c in session.execute(select(Card).where(Card.id.in_(ids))).scalars()}
            return [CardOut.model_validate(cards[i]) for i in ids if i in cards]

        updated = run_logged(self.session_factory, "update card order", run)
        logger.info("Reordered %d card(s)", len(updated))
        return updated

    def delete_card(self, payload: CardDelete) -> str:
        """Delete one card and its dependents, then close the gap in its list."""

        def run(session: Session) -> str:
            if self._get_scoped(session, payload.id, payload.list_id) is None:
                raise NotFoundError("Card", payload.id)
            if delete_cards_cascade(session, [payload.id]) == 0:
                raise NotFoundError("Card", payload.id)
            renumber(session, Card, Card.list_id, payload.list_id)
            return payload.id

        deleted = run_logged(self.session_factory, "delete card", run)
        logger.info("Deleted card %s from list %s", deleted, payload.list_id)
        return deleted

    def renumber(self, list_id: str) -> list[CardOut]:
        def run(session: Session) -> list[CardOut]:
            renumber(session, Card, Card.list_id, list_id)
            cards = session.execute(
                select(Card).where(Card.list_id == list_id).order_by(Card.order)
            ).scalars().all()
            return [CardOut.model_validate(c) for c in cards]

        cards = run_logged(self.session_factory, "renumber cards", run)
        logger.info("Renumbered %d card(s) in list %s", len(cards), list_id)
        return cards


class ListRepository:
    """Lists within a board, kept in a dense ``order`` sequence."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def _get_scoped(self, session: Session, list_id: str, board_id: str) -> Optional[ListModel]:
        return session.execute(
            select(ListModel).where(ListModel.id == list_id, ListModel.board_id == board_id)
        ).scalar_one_or_none()

    def _lists_for_board(self, session: Session, board_id: str) -> list[ListOut]:
        rows = session.execute(
            select(ListModel).where(ListModel.board_id == board_id).order_by(ListModel.order)
        ).scalars().all()
        return [ListOut.model_validate(row) for row in rows]

    # === Reads ===
    def get_by_board_id(self, board_id: str) -> list[ListWithCards]:
        def run(session: Session) -> list[ListWithCards]:
            rows = session.execute(
                select(ListModel)
                .options(selectinload(ListModel.cards))
                .where(ListModel.board_id == board_id)
                .order_by(ListModel.order)
            ).scalars().all()
            return [ListWithCards.model_validate(row) for row in rows]

        return run_logged(self.session_factory, "get_by_board_id", run)

    def get_list_by_id(self, list_id: str) -> Optional[ListOut]:
        def run(session: Session) -> Optional[ListOut]:
            row = session.get(ListModel, list_id)
            return ListOut.model_validate(row) if row else None

        return run_logged(self.session_factory, "get_list_by_id", run)

    # === Writes ===
    def create(self, payload: ListCreate) -> ListOut:
        def run(session: Session) -> ListOut:
            row = ListModel(
                board_id=payload.board_id,
                title=payload.title.strip(),
                order=next_order(session, ListModel.order, ListModel.board_id, payload.board_id),
            )
            session.add(row)
            session.flush()
            return ListOut.model_validate(row)

        created = run_logged(self.session_factory, "create list", run)
        logger.info("Created list %s in board %s at order %s", created.id, created.board_id, created.order)
        return created

    def update_title(self, payload: ListTitleUpdate) -> Optional[ListOut]:
        def run(session: Session) -> Optional[ListOut]:
            row = self._get_scoped(session, payload.id, payload.board_id)
            if row is None:
                return None
            row.title = payload.title.strip()
            session.flush()
            return ListOut.model_validate(row)

        return run_logged(self.session_factory, "update list title", run)

    def update_order(self, items: list[OrderItem], board_id: str) -> list[ListOut]:
        def run(session: Session) -> list[ListOut]:
            apply_order(session, ListModel, items, ListModel.board_id, board_id)
            return self._lists_for_board(session, board_id)

        lists = run_logged(self.session_factory, "update list order", run)
        logger.info("Reordered %d list(s) in board %s", len(items), board_id)
        return lists

    def copy_list(self, payload: ListCopy, user_id: Optional[str] = None) -> ListWithCards:
        """Duplicate a list and its cards at the end of the board.

        Only title, description and order are carried over to the new cards;
        assignees, labels, checklists, comments and attachments are not.
        """

        def run(session: Session) -> ListWithCards:
            source = session.execute(
                select(ListModel)
                .options(selectinload(ListModel.cards))
                .where(ListModel.id == payload.id, ListModel.board_id == payload.board_id)
            ).scalar_one_or_none()
            if source is None:
                raise NotFoundError("List", payload.id)

            # An empty board seeds the copy at 1, unlike create() which starts at 0.
            order = next_order(session, ListModel.order, ListModel.board_id, payload.board_id, empty=1)
            copy = ListModel(board_id=payload.board_id, title=f"{source.title} copy", order=order)
            session.add(copy)
            session.flush()

            cards = [
                Card(list_id=copy.id, title=card.title, description=card.description, order=card.order)
                for card in source.cards
            ]
            session.add_all(cards)
            session.flush()
            for card in cards:
                append_activity(session, card.id, activity.CREATED, f"Copied into list {copy.id}", user_id)

            return ListWithCards(
                **ListOut.model_validate(copy).model_dump(),
                cards=[CardOut.model_validate(c) for c in cards],
            )

        copied = run_logged(self.session_factory, "copy list", run)
        logger.info("Copied list %s to %s with %d card(s)", payload.id, copied.id, len(copied.cards))
        return copied

    def delete_list(self, payload: ListDelete) -> ListOut:
        """Delete a list with its cards, then close the gap in its board."""

        def run(session: Session) -> ListOut:
            row = self._get_scoped(session, payload.id, payload.board_id)
            if row is None:
                raise NotFoundError("List", payload.id)
            deleted = ListOut.model_validate(row)

            card_ids = session.execute(select(Card.id).where(Card.list_id == payload.id)).scalars().all()
            if card_ids:
                delete_cards_cascade(session, card_ids)
            session.execute(delete(ListModel).where(ListModel.id == payload.id))
            renumber(session, ListModel, ListModel.board_id, payload.board_id)
            return deleted

        deleted = run_logged(self.session_factory, "delete list", run)
        logger.info("Deleted list %s from board %s", deleted.id, deleted.board_id)
        return deleted

    def renumber(self, board_id: str) -> list[ListOut]:
        def run(session: Session) -> list[ListOut]:
            renumber(session, ListModel, ListModel.board_id, board_id)
            return self._lists_for_board(session, board_id)

        lists = run_logged(self.session_factory, "renumber lists", run)
        logger.info("Renumbered %d list(s) in board %s", len(lists), board_id)
        return lists
