from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CardPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None
    requestId: Optional[str] = None


class Health(BaseModel):
    status: str = "ok"


class Version(BaseModel):
    version: str = "1.0.0"


# === Position index ===


class OrderItem(BaseModel):
    id: str
    order: int


class CardOrderItem(OrderItem):
    list_id: Optional[str] = None


# === Lists ===


class ListCreate(BaseModel):
    board_id: str
    title: str = Field(min_length=3, max_length=50)


class ListTitleUpdate(BaseModel):
    id: str
    board_id: str
    title: str = Field(min_length=3, max_length=50)


class ListCopy(BaseModel):
    id: str
    board_id: str


class ListDelete(BaseModel):
    id: str
    board_id: str


class ListOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    board_id: str
    title: str
    order: int
    created_at: datetime
    updated_at: datetime


# === Cards ===


class CardCreate(BaseModel):
    list_id: str
    title: str = Field(min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, min_length=3, max_length=255)
    status: Optional[str] = None


class CardTitleUpdate(BaseModel):
    id: str
    list_id: str
    title: str = Field(min_length=3, max_length=100)


class CardDetailsUpdate(BaseModel):
    id: str
    list_id: str
    title: Optional[str] = Field(default=None, min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=255)
    status: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: Optional[CardPriority] = None

    # Omitting these leaves them alone; only description, status and due_date can be cleared.
    @field_validator("title", "priority")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class CardDelete(BaseModel):
    id: str
    list_id: str


class CardOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    list_id: str
    title: str
    description: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: CardPriority = CardPriority.MEDIUM
    order: int
    created_at: datetime
    updated_at: datetime


class ListWithCards(ListOut):
    cards: list[CardOut] = Field(default_factory=list)


class ActivityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    card_id: str
    user_id: Optional[str] = None
    action: str
    details: str
    created_at: datetime


# === Bulk operations ===


class BulkMoveCards(BaseModel):
    card_ids: list[str] = Field(default_factory=list)
    target_list_id: str


class BulkAssignUsers(BaseModel):
    card_ids: list[str] = Field(default_factory=list)
    user_ids: list[str] = Field(default_factory=list)


class BulkAddLabels(BaseModel):
    card_ids: list[str] = Field(default_factory=list)
    label_ids: list[str] = Field(default_factory=list)


class BulkSetDueDate(BaseModel):
    card_ids: list[str] = Field(default_factory=list)
    due_date: Optional[datetime] = None


class BulkArchiveCards(BaseModel):
    card_ids: list[str] = Field(default_factory=list)


class BulkDeleteCards(BaseModel):
    card_ids: list[str] = Field(default_factory=list)


class BulkOperationResponse(BaseModel):
    success: bool
    updated: int
    message: str
