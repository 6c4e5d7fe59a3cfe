import os

# avant tout import backend : session.py construit l'engine à l'import
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FORMAT", "text")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.api.deps import get_db
from backend.app.db.base import Base
from backend.app.db.models import models_v1  # noqa: F401  (registers tables)
from backend.app.db.models.models_v1 import Client, Supplier
from backend.app.main import app


@pytest.fixture(scope="function")
def engine():
    """
    Base SQLite en mémoire, neuve pour chaque test.

    StaticPool : une seule connexion partagée, sinon chaque connexion
    verrait une base vide (et TestClient appelle depuis un autre thread).
    """
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def supplier(db_session) -> Supplier:
    s = Supplier(name="Acme Wholesale", email="orders@acme.test")
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture
def customer(db_session) -> Client:
    c = Client(name="Corner Shop", email="shop@corner.test")
    db_session.add(c)
    db_session.commit()
    return c
