import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .activity import ActivityRepository
from .auth import get_current_user
from .bulk import BulkService
from .db import SessionLocal, init_db
from .errors import NotFoundError
from .repositories import CardRepository, ListRepository
from .schemas import (
    ActivityOut,
    BulkAddLabels,
    BulkArchiveCards,
    BulkAssignUsers,
    BulkDeleteCards,
    BulkMoveCards,
    BulkOperationResponse,
    BulkSetDueDate,
    CardCreate,
    CardDelete,
    CardDetailsUpdate,
    CardOrderItem,
    CardOut,
    CardTitleUpdate,
    ErrorEnvelope,
    Health,
    ListCopy,
    ListCreate,
    ListDelete,
    ListOut,
    ListTitleUpdate,
    ListWithCards,
    OrderItem,
    Version,
)
from .utils import setup_logging

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_db()
    yield


app = FastAPI(title="Sprinty API", version=VERSION, lifespan=lifespan)


# === Dependencies ===


def get_session_factory() -> sessionmaker[Session]:
    return SessionLocal


def get_card_repository(factory: sessionmaker = Depends(get_session_factory)) -> CardRepository:
    return CardRepository(factory)


def get_list_repository(factory: sessionmaker = Depends(get_session_factory)) -> ListRepository:
    return ListRepository(factory)


def get_bulk_service(factory: sessionmaker = Depends(get_session_factory)) -> BulkService:
    return BulkService(factory)


def get_activity_repository(factory: sessionmaker = Depends(get_session_factory)) -> ActivityRepository:
    return ActivityRepository(factory)


def require_ids(name: str, values: list[str]) -> None:
    if not values:
        raise HTTPException(status_code=400, detail=f"{name} is required")


# === Error mapping ===


@app.exception_handler(NotFoundError)
def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    body = ErrorEnvelope(code="not_found", message=str(exc), details={"id": exc.entity_id})
    return JSONResponse(status_code=404, content=body.model_dump())


@app.exception_handler(SQLAlchemyError)
def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    body = ErrorEnvelope(code="database_error", message="Internal server error")
    return JSONResponse(status_code=500, content=body.model_dump())


# === Health & metadata ===


@app.get("/v1/health", response_model=Health)
def health() -> Health:
    return Health()


@app.get("/v1/version", response_model=Version)
def version() -> Version:
    return Version(version=VERSION)


# === List endpoints ===


@app.get("/v1/lists/{board_id}", response_model=list[ListWithCards])
def get_lists(
    board_id: str,
    user: str = Depends(get_current_user),
    lists: ListRepository = Depends(get_list_repository),
):
    return lists.get_by_board_id(board_id)


@app.post("/v1/lists", response_model=ListOut, status_code=201)
def create_list(
    payload: ListCreate,
    user: str = Depends(get_current_user),
    lists: ListRepository = Depends(get_list_repository),
):
    return lists.create(payload)


@app.post("/v1/lists/copy", response_model=ListWithCards, status_code=201)
def copy_list(
    payload: ListCopy,
    user: str = Depends(get_current_user),
    lists: ListRepository = Depends(get_list_repository),
):
    return lists.copy_list(payload, user_id=user)


@app.put("/v1/lists/order/{board_id}", response_model=list[ListOut])
def update_list_order(
    board_id: str,
    payload: list[OrderItem],
    user: str = Depends(get_current_user),
    lists: ListRepository = Depends(get_list_repository),
):
    return lists.update_order(payload, board_id)


@app.patch("/v1/lists/update", response_model=ListOut)
def update_list_title(
    payload: ListTitleUpdate,
    user: str = Depends(get_current_user),
    lists: ListRepository = Depends(get_list_repository),
):
    updated = lists.update_title(payload)
    if updated is None:
        raise NotFoundError("List", payload.id)
    return updated


@app.delete("/v1/lists/{list_id}/board/{board_id}", response_model=ListOut)
def delete_list(
    list_id: str,
    board_id: str,
    user: str = Depends(get_current_user),
    lists: ListRepository = Depends(get_list_repository),
):
    return lists.delete_list(ListDelete(id=list_id, board_id=board_id))


# === Card endpoints ===


@app.get("/v1/cards/list/{list_id}", response_model=list[CardOut])
def get_cards_by_list(
    list_id: str,
    user: str = Depends(get_current_user),
    cards: CardRepository = Depends(get_card_repository),
):
    return cards.get_cards_by_list_id(list_id)


@app.get("/v1/cards/{card_id}", response_model=CardOut)
def get_card(
    card_id: str,
    user: str = Depends(get_current_user),
    cards: CardRepository = Depends(get_card_repository),
):
    card = cards.get_card_by_id(card_id)
    if card is None:
        raise NotFoundError("Card", card_id)
    return card


@app.get("/v1/cards/{card_id}/activities", response_model=list[ActivityOut])
def get_card_activities(
    card_id: str,
    limit: int = 50,
    offset: int = 0,
    user: str = Depends(get_current_user),
    activities: ActivityRepository = Depends(get_activity_repository),
):
    return activities.get_activities_by_card_id(card_id, limit=limit, offset=offset)


@app.post("/v1/cards", response_model=CardOut, status_code=201)
def create_card(
    payload: CardCreate,
    user: str = Depends(get_current_user),
    cards: CardRepository = Depends(get_card_repository),
):
    return cards.create(payload, user_id=user)


@app.patch("/v1/cards/update", response_model=CardOut)
def update_card_title(
    payload: CardTitleUpdate,
    user: str = Depends(get_current_user),
    cards: CardRepository = Depends(get_card_repository),
):
    updated = cards.update_title(payload, user_id=user)
    if updated is None:
        raise NotFoundError("Card", payload.id)
    return updated


@app.patch("/v1/cards/details", response_model=CardOut)
def update_card_details(
    payload: CardDetailsUpdate,
    user: str = Depends(get_current_user),
    cards: CardRepository = Depends(get_card_repository),
):
    updated = cards.update_details(payload, user_id=user)
    if updated is None:
        raise NotFoundError("Card", payload.id)
    return updated


@app.put("/v1/cards/order", response_model=list[CardOut])
def update_card_order(
    payload: list[CardOrderItem],
    user: str = Depends(get_current_user),
    cards: CardRepository = Depends(get_card_repository),
):
    return cards.update_order(payload, user_id=user)


@app.delete("/v1/cards/{card_id}/list/{list_id}")
def delete_card(
    card_id: str,
    list_id: str,
    user: str = Depends(get_current_user),
    cards: CardRepository = Depends(get_card_repository),
) -> dict:
    return {"id": cards.delete_card(CardDelete(id=card_id, list_id=list_id))}


# === Bulk endpoints ===


@app.post("/v1/cards/bulk/move", response_model=BulkOperationResponse)
def bulk_move_cards(
    payload: BulkMoveCards,
    user: str = Depends(get_current_user),
    bulk: BulkService = Depends(get_bulk_service),
):
    require_ids("card_ids", payload.card_ids)
    if not payload.target_list_id:
        raise HTTPException(status_code=400, detail="target_list_id is required")
    return bulk.move_cards(payload, user_id=user)


@app.post("/v1/cards/bulk/assign", response_model=BulkOperationResponse)
def bulk_assign_users(
    payload: BulkAssignUsers,
    user: str = Depends(get_current_user),
    bulk: BulkService = Depends(get_bulk_service),
):
    require_ids("card_ids", payload.card_ids)
    require_ids("user_ids", payload.user_ids)
    return bulk.assign_users(payload, user_id=user)


@app.post("/v1/cards/bulk/labels", response_model=BulkOperationResponse)
def bulk_add_labels(
    payload: BulkAddLabels,
    user: str = Depends(get_current_user),
    bulk: BulkService = Depends(get_bulk_service),
):
    require_ids("card_ids", payload.card_ids)
    require_ids("label_ids", payload.label_ids)
    return bulk.add_labels(payload, user_id=user)


@app.post("/v1/cards/bulk/due-date", response_model=BulkOperationResponse)
def bulk_set_due_date(
    payload: BulkSetDueDate,
    user: str = Depends(get_current_user),
    bulk: BulkService = Depends(get_bulk_service),
):
    require_ids("card_ids", payload.card_ids)
    return bulk.set_due_date(payload, user_id=user)


@app.post("/v1/cards/bulk/archive", response_model=BulkOperationResponse)
def bulk_archive_cards(
    payload: BulkArchiveCards,
    user: str = Depends(get_current_user),
    bulk: BulkService = Depends(get_bulk_service),
):
    require_ids("card_ids", payload.card_ids)
    return bulk.archive_cards(payload, user_id=user)


@app.post("/v1/cards/bulk/delete", response_model=BulkOperationResponse)
def bulk_delete_cards(
    payload: BulkDeleteCards,
    user: str = Depends(get_current_user),
    bulk: BulkService = Depends(get_bulk_service),
):
    require_ids("card_ids", payload.card_ids)
    return bulk.delete_cards(payload, user_id=user)
