from typing import Optional

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

from app.core import config
from app.core.database.base import Base
from app.core.database.engine import build_engine, build_session_factory, get_db
from app.features.authz import models  # noqa: F401
from app.features.authz.enums import Action, Resource, Role
from app.features.authz.grants import GrantLookupError, GrantStore, StaticGrantStore
from app.features.authz.modules import ModuleLookupError, ModuleRegistry, StaticModuleRegistry
from app.main import app


class FailingGrantStore(GrantStore):
    def __init__(self):
        self.calls = 0

    async def has_grant(self, role, resource, action) -> bool:
        self.calls += 1
        raise GrantLookupError("database unreachable")


class FailingModuleRegistry(ModuleRegistry):
    async def enabled_modules(self, organization_id: str) -> frozenset[str]:
        raise ModuleLookupError("module store unreachable")


@pytest.fixture
def make_token():
    def _make(role: Optional[str] = "ADMIN", org: Optional[str] = "org-1", sub: Optional[str] = "user-1", **claims):
        payload = {"sub": sub, "role": role, "org": org, **claims}
        payload = {k: v for k, v in payload.items() if v is not None}
        return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
    return _make


@pytest.fixture
def auth(make_token):
    def _headers(**kwargs) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(**kwargs)}"}
    return _headers


@pytest.fixture
def grants():
    return StaticGrantStore([
        (Role.ADMIN, Resource.INVOICES, Action.CREATE),
        (Role.ADMIN, Resource.INVOICES, Action.VIEW),
        (Role.ADMIN, Resource.SETTINGS, Action.VIEW),
        (Role.ADMIN, Resource.SETTINGS, Action.EDIT),
        (Role.INVENTORY, Resource.BANKING, Action.VIEW),
        (Role.INVENTORY, Resource.PRODUCTS, Action.VIEW),
        (Role.ACCOUNTANT, Resource.INVOICES, Action.VIEW),
    ])


@pytest.fixture
def modules():
    return StaticModuleRegistry({"org-1": {"sales", "accounting"}})


@pytest.fixture
def failing_grants():
    return FailingGrantStore()


@pytest.fixture
def failing_modules():
    return FailingModuleRegistry()


@pytest.fixture
def db_url(tmp_path):
    """SQLite database with all tables created; returns the async URL."""
    path = tmp_path / "test.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture
def session_factory(db_url):
    return build_session_factory(build_engine(db_url))


@pytest.fixture
def client(grants, modules, session_factory):
    """Test client for the application with in-memory collaborators."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.state.grant_store = grants
    app.state.module_registry = modules
    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
