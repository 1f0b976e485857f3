import time

import jwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app.features.authz.dependencies import (
    AuthorizationDenied,
    authorization_denied_handler,
    decode_actor,
    require_permission,
    require_role,
)
from app.features.authz.engine import Actor, DenyReason
from app.features.authz.enums import Action, Resource, Role
from app.features.authz.guards import (
    FallbackRedirect,
    RouteGuard,
    fallback_redirect_handler,
    guard_view,
)


def build_app(grant_store) -> FastAPI:
    app = FastAPI()
    app.state.grant_store = grant_store
    app.add_exception_handler(AuthorizationDenied, authorization_denied_handler)
    app.add_exception_handler(FallbackRedirect, fallback_redirect_handler)

    @app.post("/invoices")
    async def create_invoice(actor: Actor = Depends(require_permission(Resource.INVOICES, Action.CREATE))):
        return {"created_by": actor.user_id}

    @app.post("/bank/reconcile")
    async def reconcile(actor: Actor = Depends(require_role({Role.ADMIN, Role.ACCOUNTANT}))):
        return {"reconciled": True}

    @app.get("/views/invoices/new")
    async def new_invoice_view(actor: Actor = Depends(guard_view(Resource.INVOICES, Action.CREATE))):
        return {"view": "invoice-form"}

    @app.get("/views/reports")
    async def reports_view(actor: Actor = Depends(guard_view(Resource.REPORTS, Action.VIEW, "/home"))):
        return {"view": "reports"}

    return app


@pytest.fixture
def guarded(grants):
    return TestClient(build_app(grants))


# ============================================================================
# Token parsing
# ============================================================================

def test_decode_actor(make_token):
    actor = decode_actor(make_token(role="accountant", org="org-9", sub="u-9"))

    assert actor == Actor(role=Role.ACCOUNTANT, organization_id="org-9", user_id="u-9")


def test_decode_actor_unknown_role_keeps_actor_without_role(make_token):
    actor = decode_actor(make_token(role="manager"))

    assert actor is not None
    assert actor.role is None


@pytest.mark.parametrize("token", [
    "not-a-token",
    jwt.encode({"sub": "u", "role": "OWNER"}, "wrong-secret", algorithm="HS256"),
])
def test_decode_actor_rejects_bad_tokens(token):
    assert decode_actor(token) is None


def test_decode_actor_rejects_expired_and_subjectless(make_token):
    assert decode_actor(make_token(exp=int(time.time()) - 60)) is None
    assert decode_actor(make_token(sub=None)) is None


# ============================================================================
# Server guards
# ============================================================================

def test_permission_guard_allows(guarded, auth):
    response = guarded.post("/invoices", headers=auth(role="ADMIN", sub="u-1"))

    assert response.status_code == 200
    assert response.json() == {"created_by": "u-1"}


def test_permission_guard_unauthenticated(guarded):
    response = guarded.post("/invoices")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    assert response.headers["www-authenticate"] == "Bearer"


def test_permission_guard_expired_token(guarded, make_token):
    token = make_token(exp=int(time.time()) - 60)

    response = guarded.post("/invoices", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


@pytest.mark.parametrize("role", ["INVENTORY", "ACCOUNTANT", "manager"])
def test_permission_guard_forbidden(guarded, auth, role):
    response = guarded.post("/invoices", headers=auth(role=role))

    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden"}


def test_permission_guard_check_failed(failing_grants, auth):
    client = TestClient(build_app(failing_grants))

    response = client.post("/invoices", headers=auth(role="ADMIN"))

    assert response.status_code == 500
    assert response.json() == {"error": "Authorization check failed"}


def test_permission_guard_owner_passes_failing_store(failing_grants, auth):
    client = TestClient(build_app(failing_grants))

    assert client.post("/invoices", headers=auth(role="owner")).status_code == 200


@pytest.mark.parametrize("role, expected", [
    ("OWNER", 200),
    ("ADMIN", 200),
    ("ACCOUNTANT", 200),
    ("INVENTORY", 403),
    ("manager", 403),
])
def test_role_guard(guarded, auth, role, expected):
    response = guarded.post("/bank/reconcile", headers=auth(role=role))

    assert response.status_code == expected


def test_role_guard_unauthenticated(guarded):
    response = guarded.post("/bank/reconcile")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


# ============================================================================
# Client guards
# ============================================================================

def test_view_guard_allows(guarded, auth):
    response = guarded.get("/views/invoices/new", headers=auth(role="ADMIN"))

    assert response.status_code == 200
    assert response.json() == {"view": "invoice-form"}


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer garbage"}])
def test_view_guard_redirects_anonymous(guarded, headers):
    response = guarded.get("/views/invoices/new", headers=headers, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/dashboard"


def test_view_guard_redirects_forbidden(guarded, auth):
    response = guarded.get("/views/invoices/new", headers=auth(role="INVENTORY"), follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/dashboard"


def test_view_guard_redirects_on_check_failure(failing_grants, auth):
    client = TestClient(build_app(failing_grants))

    response = client.get("/views/invoices/new", headers=auth(role="ADMIN"), follow_redirects=False)

    assert response.status_code == 303


def test_view_guard_custom_fallback(guarded, auth):
    response = guarded.get("/views/reports", headers=auth(role="ADMIN"), follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/home"

    assert guarded.get("/views/reports", headers=auth(role="ACCOUNTANT")).status_code == 200


async def test_route_guard_outcome(grants, failing_grants):
    guard = RouteGuard(Resource.INVOICES, Action.CREATE)

    allowed = await guard.check(Actor(role=Role.ADMIN), grants)
    denied = await guard.check(Actor(role=Role.INVENTORY), grants)
    failed = await guard.check(Actor(role=Role.ADMIN), failing_grants)
    anonymous = await guard.check(None, grants)

    assert allowed.allowed and allowed.redirect_to is None
    assert (denied.allowed, denied.redirect_to, denied.reason) == (False, "/dashboard", DenyReason.FORBIDDEN)
    assert failed.reason is DenyReason.CHECK_FAILED
    assert anonymous.reason is DenyReason.UNAUTHENTICATED


async def test_route_guard_falls_back_on_engine_error(grants, monkeypatch):
    async def broken_evaluate(*args, **kwargs):
        raise RuntimeError("engine bug")

    monkeypatch.setattr("app.features.authz.guards.evaluate", broken_evaluate)

    outcome = await RouteGuard(Resource.INVOICES, Action.VIEW).check(Actor(role=Role.ADMIN), grants)

    assert (outcome.allowed, outcome.redirect_to, outcome.reason) == (False, "/dashboard", DenyReason.CHECK_FAILED)
