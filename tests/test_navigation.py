import pytest


def paths(response):
    return [item["path"] for item in response.json()["items"]]


def test_navigation_requires_token(client):
    response = client.get("/navigation/")

    assert response.status_code == 401


@pytest.mark.parametrize("role, expected", [
    ("ADMIN", ["/invoices", "/invoices/new", "/settings"]),
    ("ACCOUNTANT", ["/invoices", "/banking", "/reports"]),
    # PRODUCTS is granted but the inventory module is off for org-1
    ("INVENTORY", []),
    ("OWNER", ["/clients", "/invoices", "/invoices/new", "/payments", "/banking", "/reports", "/settings"]),
])
def test_navigation_items(client, auth, role, expected):
    response = client.get("/navigation/", headers=auth(role=role, org="org-1"))

    assert response.status_code == 200
    assert response.json()["home"] == "/dashboard"
    assert paths(response) == expected


def test_navigation_without_organization_keeps_ungated_routes(client, auth):
    response = client.get("/navigation/", headers=auth(role="OWNER", org=None))

    assert paths(response) == ["/settings"]


def test_navigation_hides_modules_when_registry_fails(client, auth, failing_modules):
    client.app.state.module_registry = failing_modules

    response = client.get("/navigation/", headers=auth(role="OWNER"))

    assert paths(response) == ["/settings"]


def test_open_allowed_view(client, auth):
    response = client.get("/navigation/open", params={"path": "/invoices/new"}, headers=auth(role="ADMIN"))

    assert response.status_code == 200
    assert response.json() == {
        "path": "/invoices/new",
        "module": "sales",
        "state": "allowed",
        "content": {"resource": "INVOICES", "action": "CREATE"},
    }


def test_open_ungated_view(client, auth):
    response = client.get("/navigation/open", params={"path": "settings"}, headers=auth(role="ADMIN"))

    assert response.json()["state"] == "allowed"
    assert response.json()["module"] is None


def test_open_disabled_module_renders_locked_state(client, auth):
    response = client.get("/navigation/open", params={"path": "/inventory"}, headers=auth(role="INVENTORY"))

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "blocked"
    assert body["content"]["title"] == "Module Not Available"
    assert body["content"]["module"] == "inventory"


def test_open_unknown_module_state(client, auth, failing_modules):
    client.app.state.module_registry = failing_modules

    response = client.get("/navigation/open", params={"path": "/invoices"}, headers=auth(role="ADMIN"))

    assert response.json()["state"] == "unknown"
    assert response.json()["content"]["title"] == "Module Unavailable"


@pytest.mark.parametrize("role, path", [
    ("ADMIN", "/banking"),
    ("INVENTORY", "/invoices/new"),
    ("ADMIN", "/nowhere"),
    ("manager", "/invoices"),
])
def test_open_denied_redirects_to_fallback(client, auth, role, path):
    response = client.get(
        "/navigation/open", params={"path": path}, headers=auth(role=role), follow_redirects=False
    )

    assert response.status_code == 303
    assert response.headers["location"] == "/dashboard"


def test_open_without_token_redirects(client):
    response = client.get("/navigation/open", params={"path": "/invoices"}, follow_redirects=False)

    assert response.status_code == 303


def test_open_redirects_when_check_fails(client, auth, failing_grants):
    client.app.state.grant_store = failing_grants

    response = client.get(
        "/navigation/open", params={"path": "/invoices"}, headers=auth(role="ADMIN"), follow_redirects=False
    )

    assert response.status_code == 303
