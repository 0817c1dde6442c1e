"""Card activity trail.

Rows are appended inside the transaction of the mutation they describe, so
an activity exists only if its mutation committed.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import insert, select
from sqlalchemy.orm import Session, sessionmaker

from .db import CardActivity, with_transaction
from .schemas import ActivityOut

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
MOVED = "moved"
ARCHIVED = "archived"
ASSIGNEE_ADDED = "assignee_added"
LABEL_ADDED = "label_added"
DUE_DATE_SET = "due_date_set"
DUE_DATE_REMOVED = "due_date_removed"
TITLE_CHANGED = "title_changed"


def append_activity(
    session: Session,
    card_id: str,
    action: str,
    details: str,
    user_id: Optional[str] = None,
) -> None:
    session.execute(
        insert(CardActivity).values(
            card_id=card_id,
            action=action,
            details=details,
            user_id=user_id,
        )
    )


class ActivityRepository:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def get_activities_by_card_id(self, card_id: str, limit: int = 50, offset: int = 0) -> list[ActivityOut]:
        def run(session: Session) -> list[ActivityOut]:
            rows = session.execute(
                select(CardActivity)
                .where(CardActivity.card_id == card_id)
                .order_by(CardActivity.created_at.desc(), CardActivity.id)
                .limit(limit)
                .offset(offset)
            ).scalars().all()
            return [ActivityOut.model_validate(row) for row in rows]

        return with_transaction(self.session_factory, run)
