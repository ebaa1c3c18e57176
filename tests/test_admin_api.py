from tests.factories import admin_header, emis_of, make_customer, make_retailer, retailer_header


# ----------------------------
# Retailers
# ----------------------------
def test_retailer_crud(client, db):
    res = client.post(
        "/retailers",
        json={"auth_user_id": "auth-77", "name": "City Mobiles", "username": "CityMobiles", "retail_pin": "4321"},
        headers=admin_header(),
    )
    assert res.status_code == 201, res.text
    created = res.json()
    assert created["username"] == "citymobiles"
    assert created["has_pin"] is True
    assert "retail_pin" not in created

    dup = client.post(
        "/retailers",
        json={"auth_user_id": "auth-77", "name": "Again", "username": "again"},
        headers=admin_header(),
    )
    assert dup.status_code == 409

    padded = client.post(
        "/retailers",
        json={"auth_user_id": " auth-77 ", "name": "  Again  ", "username": "again"},
        headers=admin_header(),
    )
    assert padded.status_code == 409

    res = client.patch(
        f"/retailers/{created['retailer_id']}", json={"is_active": False}, headers=admin_header()
    )
    assert res.json()["is_active"] is False

    assert client.patch(
        f"/retailers/{created['retailer_id']}", json={"retail_pin": "12"}, headers=admin_header()
    ).status_code == 422

    names = [r["name"] for r in client.get("/retailers", headers=admin_header()).json()]
    assert names == ["City Mobiles"]

    assert client.delete(f"/retailers/{created['retailer_id']}", headers=admin_header()).status_code == 204
    assert client.get("/retailers", headers=admin_header()).json() == []


def test_retailer_login_and_name_are_stored_trimmed(client, db):
    res = client.post(
        "/retailers",
        json={"auth_user_id": "  auth-88 ", "name": " Galaxy Point ", "username": "galaxy"},
        headers=admin_header(),
    )
    assert res.status_code == 201, res.text
    assert res.json()["name"] == "Galaxy Point"

    again = client.post(
        "/retailers",
        json={"auth_user_id": "auth-88", "name": "Other", "username": "other"},
        headers=admin_header(),
    )
    assert again.status_code == 409

    blank = client.post(
        "/retailers",
        json={"auth_user_id": "   ", "name": "Blank", "username": "blank"},
        headers=admin_header(),
    )
    assert blank.status_code == 422


def test_retailer_with_customers_cannot_be_deleted(client, db):
    retailer = make_retailer(db)
    make_customer(db, retailer)

    res = client.delete(f"/retailers/{retailer.retailer_id}", headers=admin_header())

    assert res.status_code == 409


def test_retailer_profile(client, db):
    retailer = make_retailer(db)

    res = client.get("/retailers/me", headers=retailer_header(retailer))

    assert res.status_code == 200
    assert res.json()["retailer_id"] == retailer.retailer_id
    assert client.get("/retailers", headers=retailer_header(retailer)).status_code == 403


# ----------------------------
# Fine settings / EMI admin
# ----------------------------
def test_fine_settings(client, db):
    assert client.get("/settings/fines", headers=admin_header()).json()["default_fine_amount"] == 450.0

    res = client.patch("/settings/fines", json={"default_fine_amount": 300}, headers=admin_header())
    assert res.status_code == 200
    assert res.json()["default_fine_amount"] == 300.0

    assert client.patch("/settings/fines", json={"default_fine_amount": -1}, headers=admin_header()).status_code == 422


def test_emi_waive_and_override(client, db):
    retailer = make_retailer(db)
    customer = make_customer(db, retailer)
    first = emis_of(db, customer.customer_id)[0]

    res = client.post("/emis/accrue-fines", json={"as_on": "2025-03-10"}, headers=admin_header())
    assert res.json() == {"as_on": "2025-03-10", "rows_updated": 2}

    res = client.post(f"/emis/{first.emi_id}/waive-fine", headers=admin_header())
    assert res.status_code == 200
    assert res.json()["fine_amount"] == 0
    assert res.json()["fine_waived"] is True

    res = client.patch(f"/emis/{first.emi_id}", json={"fine_amount": 100}, headers=admin_header())
    assert res.json()["fine_amount"] == 100.0
    assert res.json()["fine_waived"] is False

    assert client.post(f"/emis/{first.emi_id}/waive-fine", headers=retailer_header(retailer)).status_code == 403
    assert client.post("/emis/99999/waive-fine", headers=admin_header()).status_code == 404


# ----------------------------
# Reports
# ----------------------------
def test_reports(client, db):
    retailer = make_retailer(db)
    customer = make_customer(db, retailer)
    emis = emis_of(db, customer.customer_id)
    client.post(
        "/payments/approve-direct",
        json={"customer_id": customer.customer_id, "emi_ids": [emis[0].emi_id], "mode": "CASH"},
        headers=admin_header(),
    )
    client.post("/emis/accrue-fines", json={"as_on": "2025-04-10"}, headers=admin_header())

    upcoming = client.get("/reports/upcoming?days=31&as_on=2025-03-01", headers=admin_header()).json()
    assert [r["emi_no"] for r in upcoming] == [2]

    overdue = client.get("/reports/overdue?months=0&as_on=2025-04-10", headers=admin_header()).json()
    assert [r["emi_no"] for r in overdue] == [2, 3]

    fines = client.get("/reports/fines", headers=admin_header()).json()
    assert {r["emi_no"] for r in fines} == {2, 3}
    assert all(r["fine_amount"] == 450.0 for r in fines)

    collections = client.get("/reports/collections", headers=admin_header()).json()
    assert collections[0]["retailer_id"] == retailer.retailer_id
    assert collections[0]["total_collected"] == 1200.0

    assert client.get("/reports/fines", headers=retailer_header(retailer)).status_code == 403
