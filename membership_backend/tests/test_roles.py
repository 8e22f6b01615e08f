from datetime import datetime

import pytest

from src.api.auth import role_allows
from src.api.models import User


@pytest.mark.parametrize("role,required,allowed", [
    ("superadmin", "superadmin", True),
    ("superadmin", "admin", True),
    ("superadmin", "vendor", True),
    ("admin", "admin", True),
    ("admin", "vendor", True),
    ("admin", "superadmin", False),
    ("vendor", "vendor", True),
    ("vendor", "admin", False),
    ("agent", "agent", True),
    ("agent", "vendor", False),
    ("user", "vendor", False),
    ("member", "agent", False),
])
def test_role_allows(role, required, allowed):
    assert role_allows(role, required) is allowed


def test_vendor_forbidden_on_admin_route(client, make_user, headers):
    vendor = make_user(role="vendor")
    resp = client.get("/api/admin/users", headers=headers(vendor))
    assert resp.status_code == 403
    assert resp.json() == {"status": "fail", "message": "Insufficient permissions"}


def test_admin_reaches_vendor_route(client, make_user, headers):
    admin = make_user(role="admin")
    resp = client.get("/api/agent", headers=headers(admin))
    assert resp.status_code == 200


def test_superadmin_reaches_admin_route(client, make_user, headers):
    root = make_user(role="superadmin")
    resp = client.get("/api/admin/counts", headers=headers(root))
    assert resp.status_code == 200


def test_agent_forbidden_on_vendor_route(client, make_user, headers):
    vendor = make_user(role="vendor")
    agent = make_user(role="agent", vendor_id=vendor.id)
    resp = client.get("/api/agent", headers=headers(agent))
    assert resp.status_code == 403


def test_gated_route_requires_token(client):
    resp = client.get("/api/admin/users")
    assert resp.status_code == 401


def test_gate_refreshes_last_login(client, db, make_user, headers):
    vendor = make_user(role="vendor")
    vendor.last_login = datetime(2020, 1, 1)
    db.commit()

    resp = client.get("/api/agent", headers=headers(vendor))
    assert resp.status_code == 200

    db.expire_all()
    assert db.get(User, vendor.id).last_login > datetime(2020, 1, 1)
