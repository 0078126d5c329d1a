import os
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("AI_MODE", "mock")

from weeknight.main import app
from weeknight.db import Base, get_db
from weeknight.models import Household, Recipe, RecipeStep, RecipeIngredient
from weeknight import deps
from weeknight.cook.machine import CookSessionMachine

# --- Test Database Setup ---

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, 'sqlite')
def compile_jsonb(element, compiler, **kw):
    return "JSON"


SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool  # in-memory DB shared across sessions/threads
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def cook_machine():
    """Fresh cook machine per test; no Redis mirroring, no real-time ticking."""
    machine = CookSessionMachine(tick_seconds=3600, stop_grace_seconds=3600)
    deps._cook_machine = machine
    yield machine
    machine.shutdown()
    deps._cook_machine = None


@pytest.fixture
def client(cook_machine):
    """Test client with DB override."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def household(db_session):
    hh = Household(id="00000000-0000-0000-0000-000000000001", slug="test-home", name="Test Home")
    db_session.add(hh)
    db_session.commit()
    db_session.refresh(hh)
    return hh


@pytest.fixture
def make_recipe(db_session):
    """Factory for published recipes with ingredients and optional steps."""
    def _make(title, ingredients=(), steps=(), **fields):
        fields.setdefault("status", "published")
        fields.setdefault("slug", title.lower().replace(" ", "-"))
        recipe = Recipe(title=title, **fields)
        db_session.add(recipe)
        db_session.flush()
        for i, name in enumerate(ingredients):
            optional = name.endswith("?")
            db_session.add(RecipeIngredient(
                recipe_id=recipe.id, name=name.rstrip("?"), is_optional=optional, sort_order=i
            ))
        for i, (instruction, timer_sec) in enumerate(steps, start=1):
            db_session.add(RecipeStep(
                recipe_id=recipe.id, step_order=i, instruction=instruction, timer_sec=timer_sec
            ))
        db_session.commit()
        db_session.refresh(recipe)
        return recipe
    return _make


import fakeredis
import fakeredis.aioredis
from weeknight.infra import redis_client


@pytest.fixture(autouse=True)
def mock_redis(monkeypatch):
    server = fakeredis.FakeServer()
    redis_client._redis_async = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
    yield
    redis_client._redis_async = None
