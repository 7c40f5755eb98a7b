from conftest import auth_headers, make_user


def _borrow(client, reader, copies):
    response = client.post(
        "/api/borrow-requests",
        json={"book_copy_ids": [copy.copy_id for copy in copies]},
        headers=auth_headers(reader),
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/api/health").json() == {"status": "healthy", "notifications": "disabled"}


def test_signup_and_login(client, db):
    payload = {
        "user_fname": "An",
        "user_lname": "Nguyen",
        "user_email": "an@example.com",
        "password": "secret123",
    }
    response = client.post("/api/auth/signup", json=payload)
    assert response.status_code == 201
    assert response.json()["user"]["role"] == "reader"

    assert client.post("/api/auth/signup", json=payload).status_code == 400

    login = client.post("/api/auth/login", json={"user_email": "an@example.com", "password": "secret123"})
    assert login.status_code == 200
    token = login.json()["access_token"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["email"] == "an@example.com"

    bad = client.post("/api/auth/login", json={"user_email": "an@example.com", "password": "wrong"})
    assert bad.status_code == 401


def test_requires_authentication(client):
    assert client.get("/api/borrow-requests/my").status_code == 401


def test_full_circulation_flow(client, reader, librarian, card, copies):
    created = _borrow(client, reader, copies[:2])
    assert created["status"] == "pending"
    assert len(created["details"]) == 2
    request_id = created["id"]
    staff = auth_headers(librarian)

    approved = client.put(f"/api/borrow-requests/{request_id}/approve", headers=staff)
    assert approved.json()["status"] == "approved"
    issued = client.put(f"/api/borrow-requests/{request_id}/issue", headers=staff)
    assert issued.json()["status"] == "borrowed"
    assert issued.json()["borrowDate"] is not None

    preview = client.post(
        f"/api/borrow-requests/{request_id}/fine-preview",
        json={"returns": [{"book_copy_id": copies[0].copy_id, "return_condition": "damaged"}]},
        headers=staff,
    )
    assert preview.json()[0]["amount"] == 50000.0

    returned = client.put(
        f"/api/borrow-requests/{request_id}/return",
        json={"returns": [
            {"book_copy_id": copies[0].copy_id, "return_condition": "damaged"},
            {"book_copy_id": copies[1].copy_id},
        ]},
        headers=staff,
    )
    assert returned.status_code == 200, returned.text
    body = returned.json()
    assert body["status"] == "returned"
    assert body["allReturned"] is True
    assert body["totalFine"] == 50000.0
    assert [item["success"] for item in body["items"]] == [True, True]

    my_fines = client.get("/api/fines/my", headers=auth_headers(reader)).json()
    assert my_fines["summary"] == {"count": 1, "unpaid": 50000.0, "paid": 0.0}

    fine_id = body["fines"][0]["id"]
    paid = client.put(f"/api/fines/{fine_id}/pay", headers=staff)
    assert paid.json()["status"] == "paid"
    assert client.put(f"/api/fines/{fine_id}/pay", headers=staff).status_code == 409


def test_returning_again_reports_item_failure(client, reader, librarian, card, copies):
    request_id = _borrow(client, reader, copies[:1])["id"]
    staff = auth_headers(librarian)
    client.put(f"/api/borrow-requests/{request_id}/approve", headers=staff)
    client.put(f"/api/borrow-requests/{request_id}/issue", headers=staff)
    payload = {"returns": [{"book_copy_id": copies[0].copy_id}]}
    client.put(f"/api/borrow-requests/{request_id}/return", json=payload, headers=staff)

    again = client.put(f"/api/borrow-requests/{request_id}/return", json=payload, headers=staff)
    assert again.status_code == 200
    item = again.json()["items"][0]
    assert item["success"] is False
    assert item["error"] == "Book copy has already been returned"


def test_illegal_transition_is_conflict(client, reader, librarian, card, copies):
    request_id = _borrow(client, reader, copies[:1])["id"]
    response = client.put(f"/api/borrow-requests/{request_id}/issue", headers=auth_headers(librarian))
    assert response.status_code == 409
    assert "detail" in response.json()


def test_validation_errors_are_listed(client, reader, card):
    response = client.post("/api/borrow-requests", json={"book_copy_ids": []}, headers=auth_headers(reader))
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "book_copy_ids"


def test_unknown_request_is_not_found(client, librarian):
    assert client.get("/api/borrow-requests/9999", headers=auth_headers(librarian)).status_code == 404


def test_readers_cannot_use_staff_routes(client, reader, card, copies):
    request_id = _borrow(client, reader, copies[:1])["id"]
    headers = auth_headers(reader)
    assert client.put(f"/api/borrow-requests/{request_id}/approve", headers=headers).status_code == 403
    assert client.get("/api/borrow-requests", headers=headers).status_code == 403


def test_reader_sees_only_own_requests(client, db, reader, card, copies):
    request_id = _borrow(client, reader, copies[:1])["id"]
    stranger = make_user(db, "reader", email="stranger@example.com")
    response = client.get(f"/api/borrow-requests/{request_id}", headers=auth_headers(stranger))
    assert response.status_code == 403

    mine = client.get("/api/borrow-requests/my", headers=auth_headers(reader)).json()
    assert [r["id"] for r in mine] == [request_id]


def test_reader_cancels_pending_request(client, reader, card, copies):
    request_id = _borrow(client, reader, copies[:1])["id"]
    headers = auth_headers(reader)
    response = client.put(f"/api/borrow-requests/{request_id}/cancel", headers=headers)
    assert response.json()["status"] == "cancelled"
    assert client.put(f"/api/borrow-requests/{request_id}/cancel", headers=headers).status_code == 409


def test_system_settings(client, reader, admin, librarian):
    current = client.get("/api/system/settings", headers=auth_headers(reader)).json()
    assert current["max_borrow_days"] == 14

    forbidden = client.put("/api/system/settings", json={"max_borrow_days": 21}, headers=auth_headers(librarian))
    assert forbidden.status_code == 403

    updated = client.put("/api/system/settings", json={"max_borrow_days": 21}, headers=auth_headers(admin))
    assert updated.status_code == 200
    assert updated.json()["max_borrow_days"] == 21

    invalid = client.put("/api/system/settings", json={"fine_rate_percent": "abc"}, headers=auth_headers(admin))
    assert invalid.status_code == 400
    assert invalid.json()["errors"][0]["field"] == "fine_rate_percent"


def test_me_includes_library_card(client, reader, card):
    me = client.get("/api/auth/me", headers=auth_headers(reader)).json()
    assert me["isStaff"] is False
    assert me["libraryCardId"] == str(card.library_card_id)
    assert me["cardNumber"] == card.card_number


def test_only_admins_create_staff(client, admin, librarian):
    payload = {
        "user_fname": "Lan",
        "user_lname": "Tran",
        "user_email": "lan@example.com",
        "password": "secret123",
        "user_role": "librarian",
    }
    assert client.post("/api/auth/staff", json=payload, headers=auth_headers(librarian)).status_code == 403

    response = client.post("/api/auth/staff", json=payload, headers=auth_headers(admin))
    assert response.status_code == 201
    assert response.json()["role"] == "librarian"
    assert response.json()["isStaff"] is True

    payload["user_email"] = "other@example.com"
    payload["user_role"] = "reader"
    assert client.post("/api/auth/staff", json=payload, headers=auth_headers(admin)).status_code == 422


def test_catalog_management(client, librarian, reader):
    staff = auth_headers(librarian)
    book = {"code": "C100", "title": "Dune", "author": "Frank Herbert", "category": "Sci-Fi"}
    assert client.post("/api/library/books", json=book, headers=auth_headers(reader)).status_code == 403

    book_id = client.post("/api/library/books", json=book, headers=staff).json()["id"]
    assert client.post("/api/library/books", json=book, headers=staff).status_code == 400

    edition = client.post("/api/library/editions", json={"book_id": int(book_id), "publish_year": 1965}, headers=staff)
    assert edition.status_code == 201
    edition_id = int(edition.json()["id"])

    copy = {"edition_id": edition_id, "copy_number": 1, "price": 120000}
    assert client.post("/api/library/copies", json=copy, headers=staff).status_code == 201
    assert client.post("/api/library/copies", json=copy, headers=staff).status_code == 400

    copies = client.get(f"/api/library/books/{book_id}/copies").json()
    assert copies[0]["price"] == 120000.0
    assert copies[0]["book"]["title"] == "Dune"
    assert [b["code"] for b in client.get("/api/library/books", params={"search": "dune"}).json()] == ["C100"]


def test_issue_library_card(client, db, librarian):
    reader = make_user(db, "reader", email="newreader@example.com")
    staff = auth_headers(librarian)
    payload = {"user_id": reader.user_id, "card_number": "TV90001", "expiry_date": "2099-12-31", "deposit_amount": 200000}

    response = client.post("/api/library/cards", json=payload, headers=staff)
    assert response.status_code == 201
    assert response.json()["status"] == "active"
    assert response.json()["user"]["email"] == "newreader@example.com"

    assert client.post("/api/library/cards", json=payload, headers=staff).status_code == 400
    mine = client.get("/api/library/cards/me", headers=auth_headers(reader))
    assert mine.json()["cardNumber"] == "TV90001"

    payload["user_id"] = librarian.user_id
    payload["card_number"] = "TV90002"
    assert client.post("/api/library/cards", json=payload, headers=staff).status_code == 404


def test_deposit_history_endpoints(client, reader, librarian, card):
    staff = auth_headers(librarian)
    payload = {"library_card_id": card.library_card_id, "amount": 50000}
    assert client.post("/api/deposits", json=payload, headers=staff).status_code == 201
    payload["amount"] = 10000
    assert client.post("/api/deposits/refund", json=payload, headers=staff).status_code == 201

    history = client.get("/api/deposits", params={"library_card_id": card.library_card_id}, headers=staff).json()
    assert [d["type"] for d in history] == ["refund", "deposit"]
    refunds = client.get("/api/deposits", params={"type": "refund"}, headers=staff).json()
    assert [d["amount"] for d in refunds] == [10000.0]
    assert client.get("/api/deposits", headers=auth_headers(reader)).status_code == 403

    mine = client.get("/api/deposits/my", headers=auth_headers(reader)).json()
    assert mine["balance"] == 240000.0
    assert len(mine["data"]) == 2


def test_card_lock_unlock_and_renew(client, reader, librarian, card, copies):
    staff = auth_headers(librarian)
    card_url = f"/api/library/cards/{card.library_card_id}"

    assert client.put(f"{card_url}/lock", headers=auth_headers(reader)).status_code == 403
    assert client.put(f"{card_url}/lock", headers=staff).json()["status"] == "locked"
    assert client.put(f"{card_url}/lock", headers=staff).status_code == 409

    blocked = client.post(
        "/api/borrow-requests", json={"book_copy_ids": [copies[0].copy_id]}, headers=auth_headers(reader)
    )
    assert blocked.status_code == 400
    assert client.put(f"{card_url}/renew", json={"new_expiry_date": "2099-01-01"}, headers=staff).status_code == 409

    assert client.put(f"{card_url}/unlock", headers=staff).json()["status"] == "active"
    renewed = client.put(f"{card_url}/renew", json={"new_expiry_date": "2099-01-01"}, headers=staff)
    assert renewed.status_code == 200
    assert renewed.json()["expiryDate"] == "2099-01-01"
    assert client.put(f"{card_url}/renew", json={"new_expiry_date": "2000-01-01"}, headers=staff).status_code == 400
    assert client.put("/api/library/cards/999/unlock", headers=staff).status_code == 404
