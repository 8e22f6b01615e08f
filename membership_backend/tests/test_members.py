import re

from src.api.membership import calculate_age, next_welin_id
from src.api.models import LoanCover, Member

WELIN_ID = re.compile(r"^WELIN-(\d{4})-(\d{5})$")


def member_payload(**overrides):
    payload = {
        "member_name": "Ravi Kumar",
        "contact_no": "6123456789",
        "email": "ravi.kumar@welin.in",
        "dob": "1990-05-15",
        "gender": "male",
        "address": {"street": "12 MG Road", "city": "Pune", "state": "MH", "pincode": "411001"},
        "nominee": {"name": "Sita Kumar", "relation": "spouse", "contact_no": "6123456788"},
        "documents": [{"type": "aadhaar", "url": "https://files.welin.in/a.pdf"}],
    }
    payload.update(overrides)
    return payload


def loan_terms(**overrides):
    terms = {
        "amount": 100000,
        "start_date": "2026-01-01",
        "end_date": "2029-01-01",
        "base_premium": 1000,
        "gst": 180,
        "total_premium": 1180,
    }
    terms.update(overrides)
    return terms


def test_next_welin_id_is_sequential(db):
    first = next_welin_id(db, year=2026)
    second = next_welin_id(db, year=2026)
    db.commit()
    assert first == "WELIN-2026-00001"
    assert second == "WELIN-2026-00002"
    assert next_welin_id(db, year=2027) == "WELIN-2027-00001"


def test_calculate_age():
    from datetime import date
    assert calculate_age(date(1990, 5, 15), today=date(2026, 5, 14)) == 35
    assert calculate_age(date(1990, 5, 15), today=date(2026, 5, 15)) == 36


def test_vendor_creates_member(client, make_user, headers):
    vendor = make_user(role="vendor")
    resp = client.post("/api/member", headers=headers(vendor), json=member_payload())
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert WELIN_ID.match(data["welin_id"])
    assert data["vendor_id"] == vendor.id
    assert data["address"]["city"] == "Pune"
    assert data["nominee"]["relation"] == "spouse"
    assert data["age"] >= 35
    assert data["loan_cover"] is None

    resp = client.post("/api/member", headers=headers(vendor), json=member_payload(
        contact_no="6123456700", email="second@welin.in",
    ))
    second = resp.json()["data"]["welin_id"]
    assert int(WELIN_ID.match(second).group(2)) == int(WELIN_ID.match(data["welin_id"]).group(2)) + 1


def test_agent_creates_member_under_its_vendor(client, make_user, headers):
    vendor = make_user(role="vendor")
    agent = make_user(role="agent", vendor_id=vendor.id)
    resp = client.post("/api/member", headers=headers(agent), json=member_payload())
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["vendor_id"] == vendor.id
    assert data["agent_id"] == agent.id

    resp = client.get(f"/api/member/agent/{agent.id}", headers=headers(vendor))
    assert [m["id"] for m in resp.json()["data"]] == [data["id"]]


def test_admin_cannot_create_member(client, make_user, headers):
    admin = make_user(role="admin")
    resp = client.post("/api/member", headers=headers(admin), json=member_payload())
    assert resp.status_code == 403


def test_member_contact_must_be_unique(client, make_user, headers):
    vendor = make_user(role="vendor")
    resp = client.post("/api/member", headers=headers(vendor), json=member_payload(contact_no=vendor.mobile))
    assert resp.status_code == 400
    assert resp.json()["message"] == "User with this mobile number already exists"


def test_create_member_with_loan(client, db, make_user, headers):
    vendor = make_user(role="vendor")
    resp = client.post("/api/member", headers=headers(vendor), json=member_payload(loan_flag=True, loan=loan_terms()))
    assert resp.status_code == 201
    data = resp.json()["data"]
    cover = data["loan_cover"]
    assert cover["total_premium"] == 1180
    assert cover["term"] == 3
    assert cover["payment_status"] == "pending"
    assert data["products"] == [{"product_type": "loneCover", "product_id": cover["id"], "payment_status": False}]

    resp = client.get(f"/api/member/{data['id']}/products", headers=headers(vendor))
    products = resp.json()["data"]
    assert products[0]["type"] == "loneCover"
    assert products[0]["details"]["id"] == cover["id"]


def test_create_member_with_bad_premium_writes_nothing(client, db, make_user, headers):
    vendor = make_user(role="vendor")
    resp = client.post("/api/member", headers=headers(vendor), json=member_payload(loan=loan_terms(total_premium=1200)))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Total premium must equal base premium plus GST"
    assert db.query(Member).count() == 0
    assert db.query(LoanCover).count() == 0


def test_member_lookups(client, make_user, make_member, headers):
    vendor = make_user(role="vendor")
    member = make_member(vendor)

    resp = client.get(f"/api/member/welin/{member.welin_id}", headers=headers(vendor))
    assert resp.json()["data"]["id"] == member.id

    resp = client.get(f"/api/member/vendor/{vendor.id}", headers=headers(vendor))
    assert [m["id"] for m in resp.json()["data"]] == [member.id]

    resp = client.get("/api/member", headers=headers(vendor))
    assert len(resp.json()["data"]) == 1

    assert client.get("/api/member/welin/WELIN-1999-00001", headers=headers(vendor)).status_code == 404
    assert client.get(f"/api/member/agent/{vendor.id}", headers=headers(vendor)).status_code == 404


def test_vendor_lookup_requires_vendor(client, make_user, headers):
    vendor = make_user(role="vendor")
    admin = make_user(role="admin")
    resp = client.get(f"/api/member/vendor/{admin.id}", headers=headers(vendor))
    assert resp.status_code == 404


def test_update_member(client, make_user, make_member, headers):
    vendor = make_user(role="vendor")
    member = make_member(vendor)
    other = make_member(vendor)

    resp = client.put(f"/api/member/{member.id}", headers=headers(vendor), json={
        "member_name": "Updated Name",
        "address": {"city": "Mumbai"},
        "role": "admin",
        "is_active": False,
    })
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["member_name"] == "Updated Name"
    assert data["address"]["city"] == "Mumbai"
    assert data["role"] == "user"
    assert data["is_active"] is True

    resp = client.put(f"/api/member/{member.id}", headers=headers(vendor), json={"welin_id": other.welin_id})
    assert resp.status_code == 400

    resp = client.put(f"/api/member/{member.id}", headers=headers(vendor), json={"vendor_id": 9999})
    assert resp.status_code == 400

    resp = client.put(f"/api/member/{member.id}", headers=headers(vendor), json={"contact_no": other.contact_no})
    assert resp.status_code == 400


def test_delete_member(client, db, make_user, make_member, headers):
    vendor = make_user(role="vendor")
    member_id = make_member(vendor).id
    resp = client.delete(f"/api/member/{member_id}", headers=headers(vendor))
    assert resp.status_code == 200
    db.expire_all()
    assert db.get(Member, member_id) is None
    assert client.delete(f"/api/member/{member_id}", headers=headers(vendor)).status_code == 404
