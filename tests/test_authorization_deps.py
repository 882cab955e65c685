from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from app.deps import require_role


def _build_request(path: str = "/api/resource", method: str = "GET") -> Request:
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": b"",
        "headers": [],
        "path_params": {},
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
        "scheme": "http",
    }
    return Request(scope)


@pytest.mark.parametrize("role", ["owner", "admin", " Admin "])
def test_owner_and_admin_are_interchangeable(role):
    user = SimpleNamespace(id=10, tenant_id=1, role=role)
    dependency = require_role(["admin"])

    assert dependency(request=_build_request(), user=user) is user


def test_kitchen_role_reaches_kds_only():
    user = SimpleNamespace(id=11, tenant_id=1, role="cozinha")

    assert require_role(["admin", "cozinha", "caixa"])(request=_build_request("/api/kds/bills"), user=user) is user

    with pytest.raises(HTTPException) as exc:
        require_role(["admin", "caixa"])(request=_build_request("/api/kds/orders/1", "DELETE"), user=user)

    assert exc.value.status_code == 403
    assert exc.value.detail == "Permissão insuficiente"


def test_missing_role_is_denied():
    user = SimpleNamespace(id=12, tenant_id=3, role=None)

    with pytest.raises(HTTPException) as exc:
        require_role(["admin"])(request=_build_request("/api/admin/finance/dre"), user=user)

    assert exc.value.status_code == 403
