import pytest
from fastapi.testclient import TestClient
from jose import jwt

from agencypay.config import settings
from agencypay.main import app


def token(role="agency_admin", agency_id="agency-1", sub="user-1"):
    claims = {"sub": sub, "role": role}
    if agency_id:
        claims["agency_id"] = agency_id
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@pytest.fixture
def client():
    # no context manager: the lifespan (MongoDB) is not started
    return TestClient(app)


def auth(role="agency_admin", **kwargs):
    return {"Authorization": f"Bearer {token(role, **kwargs)}"}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_reports_require_token(client):
    response = client.get("/api/reports/commissions", params={"date_from": "2025-01-01", "date_to": "2025-12-31"})
    assert response.status_code == 401


def test_garbage_token(client):
    response = client.get(
        "/api/reports/commissions",
        params={"date_from": "2025-01-01", "date_to": "2025-12-31"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


def test_token_without_agency(client):
    response = client.get(
        "/api/reports/commissions",
        params={"date_from": "2025-01-01", "date_to": "2025-12-31"},
        headers=auth(agency_id=None),
    )
    assert response.status_code == 403


def test_unknown_role_is_forbidden(client):
    response = client.get(
        "/api/reports/commissions",
        params={"date_from": "2025-01-01", "date_to": "2025-12-31"},
        headers=auth(role="student"),
    )
    assert response.status_code == 403


def test_inverted_date_window(client):
    response = client.get(
        "/api/reports/commissions",
        params={"date_from": "2025-12-31", "date_to": "2025-01-01"},
        headers=auth(),
    )
    assert response.status_code == 400


def test_unknown_sort_metric(client):
    response = client.get(
        "/api/reports/commissions",
        params={"date_from": "2025-01-01", "date_to": "2025-12-31", "sort_by": "college_name"},
        headers=auth(),
    )
    assert response.status_code == 400


@pytest.mark.parametrize(
    "path, params",
    [
        ("/api/dashboard/commission-by-country", {"period": "decade"}),
        ("/api/dashboard/cash-flow-projection", {"group_by": "year"}),
    ],
)
def test_dashboard_rejects_unknown_options(client, path, params):
    response = client.get(path, params=params, headers=auth(role="agency_user"))
    assert response.status_code == 400


def test_cash_flow_horizon_is_bounded(client):
    response = client.get("/api/dashboard/cash-flow-projection", params={"days": 400}, headers=auth())
    assert response.status_code == 422


def test_role_permission_matrix():
    from agencypay.rbac import has_permission

    assert has_permission("agency_user", "payment_plans", "add")
    assert not has_permission("agency_user", "payment_plans", "delete")
    assert not has_permission("agency_user", "reports", "add")
    assert has_permission("agency_admin", "reports", "delete")
    assert not has_permission(None, "reports", "view")
