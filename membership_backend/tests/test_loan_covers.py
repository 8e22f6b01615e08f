from datetime import date

import pytest

from src.api.errors import InvalidInputError, InvalidPremiumError
from src.api.loan_covers import PRODUCT_RESOLVERS, create_loan_cover, resolve_member_products, validate_premium
from src.api.models import LoanCover, MemberProduct, ProductType


def cover_payload(member_id, **overrides):
    payload = {
        "member_id": member_id,
        "loan_amount": 250000,
        "coverage_start_date": "2026-02-01",
        "coverage_end_date": "2031-02-01",
        "base_premium": 2500.5,
        "gst": 450.09,
        "total_premium": 2950.59,
    }
    payload.update(overrides)
    return payload


def test_validate_premium_to_the_paisa():
    validate_premium(0.1, 0.2, 0.3)
    with pytest.raises(InvalidPremiumError):
        validate_premium(1000, 180, 1180.01)


def test_every_product_type_has_a_resolver():
    assert set(PRODUCT_RESOLVERS) == set(ProductType)


def test_create_cover_endpoint(client, db, make_user, make_member, headers):
    vendor = make_user(role="vendor")
    member = make_member(vendor)

    resp = client.post("/api/loan-cover", headers=headers(vendor), json=cover_payload(member.id))
    assert resp.status_code == 201
    cover = resp.json()["data"]
    assert cover["vendor_id"] == vendor.id
    assert cover["status"] == "active"
    assert cover["payment_status"] == "pending"
    assert cover["term"] == 5

    refs = db.query(MemberProduct).filter(MemberProduct.member_id == member.id).all()
    assert [(r.product_type, r.product_id, r.payment_status) for r in refs] == [
        (ProductType.loan_cover, cover["id"], False)
    ]


def test_create_cover_is_idempotent_per_member(client, db, make_user, make_member, headers):
    vendor = make_user(role="vendor")
    member = make_member(vendor)

    first = client.post("/api/loan-cover", headers=headers(vendor), json=cover_payload(member.id))
    second = client.post("/api/loan-cover", headers=headers(vendor), json=cover_payload(member.id, loan_amount=1))
    assert second.status_code == 200
    assert second.json()["data"]["id"] == first.json()["data"]["id"]
    assert second.json()["data"]["loan_amount"] == 250000
    assert db.query(LoanCover).count() == 1
    assert db.query(MemberProduct).count() == 1


def test_create_cover_rejects_bad_premium(client, db, make_user, make_member, headers):
    vendor = make_user(role="vendor")
    member = make_member(vendor)
    resp = client.post("/api/loan-cover", headers=headers(vendor), json=cover_payload(member.id, total_premium=3000))
    assert resp.status_code == 400
    assert db.query(LoanCover).count() == 0


def test_create_cover_rejects_inverted_dates(db, make_user, make_member):
    member = make_member(make_user(role="vendor"))
    with pytest.raises(InvalidInputError):
        create_loan_cover(db, member, None, 1000, date(2027, 1, 1), date(2026, 1, 1), 100, 18, 118)


def test_create_cover_unknown_member(client, make_user, headers):
    vendor = make_user(role="vendor")
    resp = client.post("/api/loan-cover", headers=headers(vendor), json=cover_payload(9999))
    assert resp.status_code == 404


def test_agent_cannot_create_cover(client, make_user, make_member, headers):
    vendor = make_user(role="vendor")
    agent = make_user(role="agent", vendor_id=vendor.id)
    member = make_member(vendor)
    resp = client.post("/api/loan-cover", headers=headers(agent), json=cover_payload(member.id))
    assert resp.status_code == 403


def test_cover_queries(client, make_user, make_member, headers):
    vendor = make_user(role="vendor")
    member = make_member(vendor)
    cover_id = client.post("/api/loan-cover", headers=headers(vendor), json=cover_payload(member.id)).json()["data"]["id"]

    assert client.get(f"/api/loan-cover/{cover_id}", headers=headers(vendor)).json()["data"]["member_id"] == member.id
    by_member = client.get(f"/api/loan-cover/member/{member.id}", headers=headers(vendor)).json()["data"]
    by_vendor = client.get(f"/api/loan-cover/vendor/{vendor.id}", headers=headers(vendor)).json()["data"]
    assert [c["id"] for c in by_member] == [c["id"] for c in by_vendor] == [cover_id]
    assert client.get("/api/loan-cover/9999", headers=headers(vendor)).status_code == 404


def test_manual_payment_update_mirrors_product_ref(client, db, make_user, make_member, headers):
    vendor = make_user(role="vendor")
    member = make_member(vendor)
    cover_id = client.post("/api/loan-cover", headers=headers(vendor), json=cover_payload(member.id)).json()["data"]["id"]

    resp = client.patch(f"/api/loan-cover/{cover_id}/payment", headers=headers(vendor), json={
        "status": "paid", "transaction_id": "BANK-REF-1",
    })
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["payment_status"] == "paid"
    assert data["payment_transaction_id"] == "BANK-REF-1"
    assert data["payment_date"] is not None

    ref = db.query(MemberProduct).filter(MemberProduct.product_id == cover_id).one()
    assert ref.payment_status is True


def test_resolve_member_products(db, make_user, make_member):
    member = make_member(make_user(role="vendor"))
    cover, created = create_loan_cover(db, member, None, 50000, date(2026, 1, 1), date(2027, 1, 1), 500, 90, 590)
    assert created
    member.products.append(MemberProduct(product_type=ProductType.health_cover, product_id=42, payment_status=False))
    db.commit()

    details = resolve_member_products(db, member)
    assert [d.type for d in details] == [ProductType.loan_cover, ProductType.health_cover]
    assert details[0].details.id == cover.id
    assert details[0].details.term == 1
    assert details[1].details is None
