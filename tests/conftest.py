import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.deps import get_generation_client, get_session_factory
from chat_fakes import FakeGenerator
from db.models import AiModel, Base
from db.session import get_db


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def models(db):
    rows = [
        AiModel(name="Pro", provider="google", model_id="gemini-pro", sort_order=2, is_active=True),
        AiModel(name="Flash", provider="google", model_id="gemini-flash", sort_order=1, is_active=True),
        AiModel(name="Old", provider="google", model_id="gemini-old", sort_order=0, is_active=False),
    ]
    db.add_all(rows)
    db.commit()
    return {m.model_id: m.id for m in rows}


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def client(session_factory, generator):
    from api.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_generation_client] = lambda: generator
    yield TestClient(app)
    app.dependency_overrides.clear()
