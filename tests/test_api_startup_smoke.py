from fastapi.testclient import TestClient


REQUIRED_ROUTES = {
    "/api/store/{slug}",
    "/api/store/{slug}/orders",
    "/api/kds/bills",
    "/api/kds/orders/{order_id}/status",
    "/api/kds/bills/close",
    "/api/kds/orders/{order_id}/ticket",
    "/ws/kds/{tenant_id}",
    "/api/admin/inventory/low-stock",
    "/api/admin/finance/dre",
    "/api/admin/customers",
    "/api/admin/coupons",
    "/api/admin/products",
    "/api/admin/settings/print",
    "/api/admin/auth/login",
    "/api/admin/audit",
    "/internal/metrics/kitchen",
}


def test_api_startup_and_router_registration(monkeypatch):
    from app import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/")
        health_response = client.get("/health")
        openapi_response = client.get("/openapi.json")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["X-Request-ID"]
    assert health_response.json() == {"status": "ok"}
    assert openapi_response.status_code == 200

    paths = {route.path for route in main.app.routes}
    assert REQUIRED_ROUTES.issubset(paths)


def test_admin_routes_require_session(monkeypatch):
    from app import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        unauthenticated = client.get("/api/kds/bills")

    assert unauthenticated.status_code == 401
