import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.pool import StaticPool

from sprinty.db import Base, Board, Label, enable_sqlite_foreign_keys, make_session_factory, with_transaction
from sprinty.main import app, get_session_factory
from sprinty.repositories import CardRepository, ListRepository
from sprinty.schemas import CardCreate, ListCreate


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def cards(session_factory):
    return CardRepository(session_factory)


@pytest.fixture
def lists(session_factory):
    return ListRepository(session_factory)


def _add(session_factory, row):
    def run(session):
        session.add(row)
        session.flush()
        return row.id

    return with_transaction(session_factory, run)


@pytest.fixture
def add_row(session_factory):
    """Insert an ORM row and return its id."""
    return lambda row: _add(session_factory, row)


@pytest.fixture
def board_id(add_row):
    return add_row(Board(name="Sprint board"))


@pytest.fixture
def other_board_id(add_row):
    return add_row(Board(name="Other board"))


@pytest.fixture
def label_ids(add_row, board_id):
    return [add_row(Label(board_id=board_id, name=name)) for name in ("bug", "feature")]


@pytest.fixture
def make_list(lists, board_id):
    def factory(title="Backlog", board=None):
        return lists.create(ListCreate(board_id=board or board_id, title=title))

    return factory


@pytest.fixture
def make_card(cards):
    def factory(list_id, title="Write tests", description=None):
        return cards.create(CardCreate(list_id=list_id, title=title, description=description))

    return factory


@pytest.fixture
def count(session_factory):
    """Count rows of ``model`` matching the keyword filters."""

    def counter(model, **filters):
        def run(session):
            stmt = select(func.count()).select_from(model)
            for name, value in filters.items():
                stmt = stmt.where(getattr(model, name) == value)
            return session.execute(stmt).scalar()

        return with_transaction(session_factory, run)

    return counter


@pytest.fixture
def client(session_factory):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer user-1"}
