import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "test"
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from khata.core.context import UserContext  # noqa: E402
from khata.core.database import Base  # noqa: E402
from khata.core.dependencies import get_db, get_user_context  # noqa: E402
from khata.main import app  # noqa: E402
from khata.models.entity import EntityKind  # noqa: E402
from khata.services import entity_service, ledger_service  # noqa: E402
import khata.models  # noqa: E402,F401


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def ctx():
    return UserContext(user_id="user-1")


@pytest.fixture
def other_ctx():
    return UserContext(user_id="user-2")


@pytest.fixture
def client(db, ctx):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_user_context] = lambda: ctx
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_entity(db, ctx):
    def _make(kind=EntityKind.customer, name="Ali Traders", phone=None, user=None):
        return entity_service.create_entity(db, user or ctx, kind, name=name, phone=phone)
    return _make


@pytest.fixture
def add(db, ctx):
    """Shortcut for ledger_service.add_entry with the default user."""
    def _add(entity, kind, date, amount=None, line_items=None, note=None):
        return ledger_service.add_entry(
            db, ctx, entity.id, kind, date, amount=amount, line_items=line_items, note=note
        )
    return _add
