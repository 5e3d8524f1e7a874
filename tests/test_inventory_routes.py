from dms.models import Notification, Vehicle


def _vehicle(session, stock_number="AL-1", **values):
    vehicle = Vehicle(stock_number=stock_number, make="BMW", model="X5", sales_status="Stock", **values)
    session.add(vehicle)
    session.commit()
    return vehicle.id


async def _customer(client, headers):
    response = await client.post("/api/customers", json={"first_name": "Jane", "last_name": "Doe"}, headers=headers)
    assert response.status_code == 201
    return (await response.get_json())["id"]


# Customer purchases

async def test_record_and_list_customer_purchases(client, sales_user, sales_headers, db_session):
    vehicle_id = _vehicle(db_session)
    customer_id = await _customer(client, sales_headers)

    response = await client.post(f"/api/customers/{customer_id}/purchases", json={
        "vehicle_id": vehicle_id, "purchase_date": "2024-06-01", "purchase_price": "18,500",
    }, headers=sales_headers)

    assert response.status_code == 201, await response.get_data(as_text=True)
    purchase = await response.get_json()
    assert purchase["salesperson_id"] == sales_user.id
    assert purchase["purchase_price"] == 18500.0
    assert purchase["vehicle"]["stock_number"] == "AL-1"

    listing = await (await client.get(f"/api/customers/{customer_id}/purchases", headers=sales_headers)).get_json()
    assert [p["id"] for p in listing] == [purchase["id"]]

    missing = await client.post(f"/api/customers/{customer_id}/purchases", json={
        "vehicle_id": 999, "purchase_date": "2024-06-01", "purchase_price": "1",
    }, headers=sales_headers)
    assert missing.status_code == 404


async def test_edit_and_remove_customer_purchase(client, sales_headers, manager_headers, db_session):
    vehicle_id = _vehicle(db_session)
    customer_id = await _customer(client, sales_headers)
    created = await client.post(f"/api/customers/{customer_id}/purchases", json={
        "vehicle_id": vehicle_id, "purchase_date": "2024-06-01", "purchase_price": "18500",
    }, headers=sales_headers)
    purchase_id = (await created.get_json())["id"]

    cleared = await client.put(f"/api/customer-purchases/{purchase_id}", json={"purchase_price": None},
                               headers=sales_headers)
    assert cleared.status_code == 400

    updated = await client.put(f"/api/customer-purchases/{purchase_id}", json={"finance_amount": "5000"},
                               headers=sales_headers)
    assert (await updated.get_json())["finance_amount"] == 5000.0

    assert (await client.delete(f"/api/customer-purchases/{purchase_id}", headers=sales_headers)).status_code == 403
    assert (await client.delete(f"/api/customer-purchases/{purchase_id}", headers=manager_headers)).status_code == 200

    # With the purchase gone the vehicle can be deleted
    assert (await client.delete(f"/api/vehicles/{vehicle_id}", headers=manager_headers)).status_code == 200


# Bought vehicles

async def test_bought_vehicles_lifecycle_and_stats(client, admin_headers, manager_user, sales_headers, db_session):
    first = await client.post("/api/bought-vehicles", json={
        "stock_number": "BV-1", "make": "Ford", "model": "Focus", "retail_price_1": "9995",
    }, headers=admin_headers)
    assert first.status_code == 201, await first.get_data(as_text=True)
    assert (await first.get_json())["status"] == "AWAITING"

    second = await client.post("/api/bought-vehicles", json={
        "stock_number": "BV-2", "make": "Kia", "model": "Ceed", "retail_price_1": "5000",
    }, headers=admin_headers)
    second_id = (await second.get_json())["id"]

    recipients = {n.recipient_user_id for n in db_session.query(Notification).filter_by(event_type="vehicle.bought")}
    assert recipients == {manager_user.id}

    processed = await client.put(f"/api/bought-vehicles/{second_id}", json={"status": "processed", "make": None},
                                 headers=admin_headers)
    body = await processed.get_json()
    assert body["status"] == "PROCESSED"
    assert body["make"] == "Kia"

    stats = await (await client.get("/api/bought-vehicles/stats", headers=sales_headers)).get_json()
    assert stats["total"] == 2
    assert stats["byStatus"] == {"AWAITING": 1, "ARRIVED": 0, "PROCESSED": 1}
    assert stats["totalRetailPrice1"] == 9995.0

    found = await (await client.get("/api/bought-vehicles?q=focus", headers=sales_headers)).get_json()
    assert [v["stock_number"] for v in found] == ["BV-1"]

    denied = await client.post("/api/bought-vehicles", json={"stock_number": "BV-3", "make": "A", "model": "B"},
                               headers=sales_headers)
    assert denied.status_code == 403

    assert (await client.delete(f"/api/bought-vehicles/{second_id}", headers=admin_headers)).status_code == 200
    assert (await client.get(f"/api/bought-vehicles/{second_id}", headers=admin_headers)).status_code == 404


# Staff schedules and logistics

async def test_staff_schedules_filter_by_user_and_range(client, admin_headers, sales_user, sales_headers):
    response = await client.post("/api/staff-schedules", json={
        "user_id": sales_user.id, "schedule_date": "2024-06-03",
        "shift_start_time": "09:00", "shift_end_time": "17:30",
    }, headers=admin_headers)
    assert response.status_code == 201, await response.get_data(as_text=True)

    await client.post("/api/staff-schedules", json={
        "user_id": sales_user.id, "schedule_date": "2024-07-03", "schedule_type": "training",
    }, headers=admin_headers)

    june = await (await client.get("/api/staff-schedules", query_string={
        "user_id": sales_user.id, "start": "2024-06-01", "end": "2024-06-30",
    }, headers=sales_headers)).get_json()
    assert [s["shift_start_time"] for s in june] == ["09:00"]

    bad_time = await client.post("/api/staff-schedules", json={
        "user_id": sales_user.id, "schedule_date": "2024-06-04", "shift_start_time": "25:00",
    }, headers=admin_headers)
    assert bad_time.status_code == 400

    bad_filter = await client.get("/api/staff-schedules?start=someday", headers=sales_headers)
    assert bad_filter.status_code == 400

    denied = await client.post("/api/staff-schedules", json={"user_id": sales_user.id, "schedule_date": "2024-06-05"},
                               headers=sales_headers)
    assert denied.status_code == 403


async def test_vehicle_logistics_records_block_vehicle_delete(client, sales_headers, manager_headers, db_session):
    vehicle_id = _vehicle(db_session)

    response = await client.post("/api/vehicle-logistics", json={
        "vehicle_id": vehicle_id, "logistics_status": "in_transit", "driver_name": "Dan",
    }, headers=sales_headers)
    assert response.status_code == 201, await response.get_data(as_text=True)
    record_id = (await response.get_json())["id"]

    bad_status = await client.post("/api/vehicle-logistics", json={"vehicle_id": vehicle_id, "logistics_status": "lost"},
                                   headers=sales_headers)
    assert bad_status.status_code == 400
    missing = await client.post("/api/vehicle-logistics", json={"vehicle_id": 999}, headers=sales_headers)
    assert missing.status_code == 404

    listing = await (await client.get(f"/api/vehicle-logistics?vehicle_id={vehicle_id}",
                                      headers=sales_headers)).get_json()
    assert [r["id"] for r in listing] == [record_id]
    assert (await client.get("/api/vehicle-logistics?vehicle_id=abc", headers=sales_headers)).status_code == 400

    blocked = await client.delete(f"/api/vehicles/{vehicle_id}", headers=manager_headers)
    assert blocked.status_code == 409


# Makes and models

async def test_makes_with_models(client, admin_headers, sales_headers):
    created = await client.post("/api/vehicle-makes", json={"name": "BMW"}, headers=admin_headers)
    assert created.status_code == 201
    make_id = (await created.get_json())["id"]

    duplicate = await client.post("/api/vehicle-makes", json={"name": "bmw"}, headers=admin_headers)
    assert duplicate.status_code == 409

    for name in ("X5", "3 Series"):
        added = await client.post(f"/api/vehicle-makes/{make_id}/models", json={"name": name}, headers=admin_headers)
        assert added.status_code == 201
    again = await client.post(f"/api/vehicle-makes/{make_id}/models", json={"name": "X5"}, headers=admin_headers)
    assert again.status_code == 409

    makes = await (await client.get("/api/vehicle-makes?include_models=true", headers=sales_headers)).get_json()
    assert makes == [{"id": make_id, "name": "BMW", "models": [
        {"id": makes[0]["models"][0]["id"], "name": "3 Series"},
        {"id": makes[0]["models"][1]["id"], "name": "X5"},
    ]}]

    assert (await client.delete(f"/api/vehicle-makes/{make_id}", headers=sales_headers)).status_code == 403
    assert (await client.delete(f"/api/vehicle-makes/{make_id}", headers=admin_headers)).status_code == 200
    assert (await client.get(f"/api/vehicle-makes/{make_id}/models", headers=admin_headers)).status_code == 404
