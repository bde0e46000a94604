PHONE_CASE = "prod-case"
USB_CABLE = "prod-cable"
MAIN_WAREHOUSE = "loc-main"
BRANCH = "loc-branch"

API = "/api/v1/inventory"


def _create(client, product_id=PHONE_CASE, location_id=MAIN_WAREHOUSE, quantity=100, **extra):
    payload = {"product_id": product_id, "location_id": location_id, "quantity": quantity, **extra}
    response = client.post(API, json=payload, headers={"X-Actor": "alice"})
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_and_get_inventory(client):
    created = _create(client, location="A-01", zone="Front")

    assert created["quantity"] == 100
    assert created["available_quantity"] == 100
    assert created["status"] == "in_stock"
    assert created["warehouse_location"] == "A-01"
    assert created["product"]["sku"] == "CASE-001"
    assert created["location"]["location_code"] == "WH-01"

    fetched = client.get(f"{API}/{created['id']}").json()
    assert fetched["id"] == created["id"]
    assert fetched["version"] == created["version"]


def test_create_duplicate_returns_409(client):
    _create(client)
    response = client.post(API, json={"product_id": PHONE_CASE, "location_id": MAIN_WAREHOUSE})
    assert response.status_code == 409
    assert response.json()["code"] == "ALREADY_EXISTS"


def test_unknown_record_returns_404(client):
    response = client.get(f"{API}/does-not-exist")
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_adjust_records_movement_with_actor(client):
    record = _create(client)

    response = client.post(
        f"{API}/{record['id']}/adjust",
        json={"quantity": 30, "movement_type": "OUT", "notes": "Counter sale"},
        headers={"X-Actor": "bob"},
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["inventory"]["quantity"] == 70
    assert body["movement"]["quantity_before"] == 100
    assert body["movement"]["quantity_after"] == 70
    assert body["movement"]["direction"] == -1
    assert body["movement"]["created_by"] == "bob"
    assert body["replayed"] is False


def test_adjust_errors(client):
    record = _create(client, quantity=10)
    url = f"{API}/{record['id']}/adjust"

    response = client.post(url, json={"quantity": 11, "movement_type": "OUT"})
    assert response.status_code == 400
    assert response.json()["code"] == "INSUFFICIENT_STOCK"

    response = client.post(url, json={"quantity": 0, "movement_type": "IN"})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_QUANTITY"

    response = client.post(url, json={"quantity": 1, "movement_type": "TELEPORT"})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_MOVEMENT_TYPE"


def test_adjust_by_product_and_location_is_idempotent(client):
    _create(client)
    payload = {
        "product_id": PHONE_CASE,
        "location_id": MAIN_WAREHOUSE,
        "quantity": 4,
        "movement_type": "SALE",
        "reference_id": "SO-55",
        "reference_type": "SALES_ORDER",
    }

    first = client.post(f"{API}/adjust", json=payload).json()
    second = client.post(f"{API}/adjust", json=payload).json()

    assert first["inventory"]["quantity"] == 96
    assert second["replayed"] is True
    assert second["inventory"]["quantity"] == 96
    assert second["movement"]["id"] == first["movement"]["id"]


def test_transfer_endpoint(client):
    _create(client)

    response = client.post(
        f"{API}/transfer",
        json={
            "product_id": PHONE_CASE,
            "from_location_id": MAIN_WAREHOUSE,
            "to_location_id": BRANCH,
            "quantity": 25,
            "reference_id": "TR-1",
        },
        headers={"X-Actor": "planner"},
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["transfer_id"] == "TR-1"
    assert body["source"]["quantity"] == 75
    assert body["destination"]["quantity"] == 25
    assert body["destination"]["location_id"] == BRANCH
    assert body["out_movement"]["created_by"] == "planner"

    movements = client.get(f"{API}/movements", params={"reference_id": "TR-1"}).json()
    assert movements["pagination"]["total"] == 2
    assert {m["movement_type"] for m in movements["data"]} == {"TRANSFER_OUT", "TRANSFER_IN"}


def test_transfer_history_and_stats(client):
    _create(client)
    for reference_id, source, destination, quantity in (
        ("TR-1", MAIN_WAREHOUSE, BRANCH, 10),
        ("TR-2", MAIN_WAREHOUSE, BRANCH, 5),
        ("TR-3", BRANCH, MAIN_WAREHOUSE, 3),
    ):
        response = client.post(
            f"{API}/transfer",
            json={
                "product_id": PHONE_CASE,
                "from_location_id": source,
                "to_location_id": destination,
                "quantity": quantity,
                "reference_id": reference_id,
            },
        )
        assert response.status_code == 201, response.text

    body = client.get(f"{API}/transfers", params={"to_location_id": BRANCH}).json()
    assert body["pagination"]["total"] == 2
    assert [t["transfer_id"] for t in body["data"]] == ["TR-2", "TR-1"]
    latest = body["data"][0]
    assert latest["from_location_id"] == MAIN_WAREHOUSE
    assert latest["quantity"] == 5
    assert latest["out_movement"]["movement_type"] == "TRANSFER_OUT"
    assert latest["in_movement"]["location_id"] == BRANCH

    body = client.get(f"{API}/transfers", params={"sort_order": "asc", "limit": 1}).json()
    assert body["pagination"]["total"] == 3
    assert [t["transfer_id"] for t in body["data"]] == ["TR-1"]

    assert client.get(f"{API}/transfers", params={"sort_order": "sideways"}).status_code == 422

    stats = client.get(f"{API}/transfers/stats", params={"product_id": PHONE_CASE}).json()
    assert stats == {"total_transfers": 3, "total_items_transferred": 18}


def test_movements_date_range(client):
    created = _create(client)
    opening = client.get(f"{API}/{created['id']}/movements").json()["data"][0]

    body = client.get(
        f"{API}/movements",
        params={"start_date": opening["created_at"], "end_date": opening["created_at"]},
    ).json()
    assert body["pagination"]["total"] == 1
    assert body["data"][0]["id"] == opening["id"]

    body = client.get(f"{API}/movements", params={"start_date": "2999-01-01T00:00:00"}).json()
    assert body["pagination"]["total"] == 0


def test_transfer_errors(client):
    _create(client, quantity=5)
    base = {"product_id": PHONE_CASE, "from_location_id": MAIN_WAREHOUSE, "to_location_id": BRANCH}

    response = client.post(f"{API}/transfer", json={**base, "to_location_id": MAIN_WAREHOUSE, "quantity": 1})
    assert response.status_code == 400
    assert response.json()["code"] == "SAME_LOCATION"

    response = client.post(f"{API}/transfer", json={**base, "quantity": 6})
    assert response.status_code == 400
    assert response.json()["code"] == "INSUFFICIENT_STOCK"

    response = client.post(f"{API}/transfer", json={**base, "to_location_id": "loc-closed", "quantity": 1})
    assert response.status_code == 404
    assert response.json()["code"] == "LOCATION_NOT_FOUND"


def test_list_and_filters(client):
    _create(client, quantity=100)
    _create(client, location_id=BRANCH, quantity=2)
    _create(client, product_id=USB_CABLE, quantity=0)

    page = client.get(API, params={"limit": 2}).json()
    assert page["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}
    assert len(page["data"]) == 2

    low = client.get(API, params={"low_stock": True}).json()
    assert {r["status"] for r in low["data"]} == {"low_stock", "out_of_stock"}

    out = client.get(API, params={"status": "out_of_stock"}).json()
    assert [r["product_id"] for r in out["data"]] == [USB_CABLE]

    low_stock = client.get(f"{API}/low-stock", params={"location_id": BRANCH}).json()
    assert [r["quantity"] for r in low_stock] == [2]

    stats = client.get(f"{API}/stats").json()
    assert stats["total_items"] == 3
    assert stats["total_quantity"] == 102


def test_update_and_delete(client):
    record = _create(client, quantity=3)
    url = f"{API}/{record['id']}"

    response = client.put(url, json={"min_stock_level": 10})
    assert response.status_code == 200
    assert response.json()["status"] == "low_stock"
    assert response.json()["quantity"] == 3

    response = client.delete(url)
    assert response.status_code == 409

    client.post(f"{url}/stock-check", json={"counted_quantity": 0})
    assert client.delete(url).json() == {"ok": True}
    assert client.get(url).status_code == 404


def test_reserve_release_and_history(client):
    record = _create(client, quantity=20)
    url = f"{API}/{record['id']}"

    reserved = client.post(f"{url}/reserve", json={"quantity": 15}).json()
    assert reserved["available_quantity"] == 5

    response = client.post(f"{url}/reserve", json={"quantity": 6})
    assert response.status_code == 400

    released = client.post(f"{url}/release", json={"quantity": 15}).json()
    assert released["reserved_quantity"] == 0

    client.post(f"{url}/adjust", json={"quantity": 5, "movement_type": "IN"})
    history = client.get(f"{url}/movements").json()
    assert history["pagination"]["total"] == 2
    assert history["data"][0]["quantity_after"] == 25
    assert history["data"][0]["created_by"] == "system"
