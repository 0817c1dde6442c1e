from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence, TypeVar

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)

from .config import get_config
from .utils import new_uuid, now_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


class Board(Base):
    __tablename__ = "boards"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    organization_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    name: Mapped[str] = mapped_column(String(140))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    lists: Mapped[list[ListModel]] = relationship(
        back_populates="board", order_by="ListModel.order", passive_deletes=True
    )


class ListModel(Base):
    __tablename__ = "lists"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(50))
    order: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    board: Mapped[Board] = relationship(back_populates="lists")
    cards: Mapped[list[Card]] = relationship(
        back_populates="parent_list", order_by="Card.order", passive_deletes=True
    )


class Card(Base):
    __tablename__ = "cards"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    list_id: Mapped[str] = mapped_column(String(36), ForeignKey("lists.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    priority: Mapped[str] = mapped_column(String(16), default="medium")  # low|medium|high|critical
    order: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    parent_list: Mapped[ListModel] = relationship(back_populates="cards")


class Label(Base):
    __tablename__ = "labels"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(50))
    color: Mapped[str] = mapped_column(String(20), default="#3b82f6")


class CardAssignee(Base):
    __tablename__ = "card_assignees"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    card_id: Mapped[str] = mapped_column(String(36), ForeignKey("cards.id", ondelete="CASCADE"))
    user_id: Mapped[str] = mapped_column(String(128))
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    __table_args__ = (
        UniqueConstraint("card_id", "user_id", name="uq_card_assignee"),
    )


class CardLabel(Base):
    __tablename__ = "card_labels"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    card_id: Mapped[str] = mapped_column(String(36), ForeignKey("cards.id", ondelete="CASCADE"))
    label_id: Mapped[str] = mapped_column(String(36), ForeignKey("labels.id", ondelete="CASCADE"))
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    __table_args__ = (
        UniqueConstraint("card_id", "label_id", name="uq_card_label"),
    )


class ChecklistItem(Base):
    __tablename__ = "checklist_items"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    card_id: Mapped[str] = mapped_column(String(36), ForeignKey("cards.id", ondelete="CASCADE"))
    title: Mapped[str] = mapped_column(String(255))
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)


class Comment(Base):
    __tablename__ = "comments"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    card_id: Mapped[str] = mapped_column(String(36), ForeignKey("cards.id", ondelete="CASCADE"))
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)


class Attachment(Base):
    __tablename__ = "attachments"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    card_id: Mapped[str] = mapped_column(String(36), ForeignKey("cards.id", ondelete="CASCADE"))
    filename: Mapped[str] = mapped_column(String(255))
    mime_type: Mapped[str] = mapped_column(String(100))
    file_size: Mapped[int] = mapped_column(Integer)
    storage_path: Mapped[str] = mapped_column(String(500))
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)


class CardActivity(Base):
    __tablename__ = "card_activities"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    card_id: Mapped[str] = mapped_column(String(36), ForeignKey("cards.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    action: Mapped[str] = mapped_column(String(32))
    details: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)


# Rows referencing a card, in the order they are removed before the card itself.
CARD_DEPENDENT_MODELS = (
    CardAssignee,
    CardLabel,
    ChecklistItem,
    Comment,
    Attachment,
    CardActivity,
)


def delete_cards_cascade(session: Session, card_ids: Sequence[str]) -> int:
    """Delete every dependent row of ``card_ids`` and then the cards.

    Returns the number of card rows removed.
    """
    for model in CARD_DEPENDENT_MODELS:
        session.execute(delete(model).where(model.card_id.in_(card_ids)))
    result = session.execute(delete(Card).where(Card.id.in_(card_ids)))
    return result.rowcount


def with_transaction(session_factory: sessionmaker[Session], fn: Callable[[Session], T]) -> T:
    """Run ``fn`` inside a single transaction and return its result.

    The transaction commits when ``fn`` returns and rolls back when it raises;
    the exception is re-raised to the caller.
    """
    with session_factory() as session:
        with session.begin():
            return fn(session)


def run_logged(session_factory: sessionmaker[Session], operation: str, fn: Callable[[Session], T]) -> T:
    """``with_transaction`` that logs the failing operation before re-raising."""
    try:
        return with_transaction(session_factory, fn)
    except SQLAlchemyError:
        logger.exception("%s failed, transaction rolled back", operation)
        raise


def enable_sqlite_foreign_keys(bind: Engine) -> None:
    if bind.dialect.name != "sqlite":
        return

    @event.listens_for(bind, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def make_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)


_config = get_config()

engine = create_engine(
    _config.database.url,
    echo=_config.database.echo,
    connect_args={"check_same_thread": False} if _config.database.url.startswith("sqlite") else {},
)
enable_sqlite_foreign_keys(engine)
SessionLocal = make_session_factory(engine)


def init_db(bind: Engine | None = None) -> None:
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database schema ready")
