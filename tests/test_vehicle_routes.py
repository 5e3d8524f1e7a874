from dms.models import ActivityLog, Notification, Vehicle
from dms.services.realtime import VEHICLE_UPDATES, hub


async def _create(client, headers, **values):
    response = await client.post("/api/vehicles", json=values, headers=headers)
    assert response.status_code == 201, await response.get_data(as_text=True)
    return await response.get_json()


async def test_create_vehicle_computes_totals_and_broadcasts(client, admin_user, admin_headers, manager_user,
                                                             db_session):
    connection = hub.register(manager_user.id, manager_user.username, manager_user.role)

    vehicle = await _create(
        client, admin_headers,
        stock_number="SN-100", registration="AB12 CDE", make="BMW", sales_status="stock",
        purchase_cash="£10,000", vat="2000", purchase_price_total="1",
    )

    assert vehicle["sales_status"] == "Stock"
    assert vehicle["purchase_price_total"] == 12000.0
    assert vehicle["total_gp"] == 0.0

    events = []
    while not connection.queue.empty():
        payload = connection.queue.get_nowait()
        events.append((payload["event"], payload["room"]))
    assert ("vehicle:created", VEHICLE_UPDATES) in events
    assert any(event == "notification:created" for event, _ in events)

    assert db_session.query(Notification).filter_by(event_type="vehicle.added").count() == 1
    assert db_session.query(ActivityLog).filter_by(entity_type="vehicle").count() == 1


async def test_duplicate_stock_number_conflicts(client, admin_headers):
    await _create(client, admin_headers, stock_number="DUP-1")

    response = await client.post("/api/vehicles", json={"stock_number": "DUP-1"}, headers=admin_headers)

    assert response.status_code == 409


async def test_invalid_money_is_a_validation_error(client, admin_headers):
    response = await client.post("/api/vehicles", json={"purchase_cash": "lots"}, headers=admin_headers)
    assert response.status_code == 400


async def test_status_change_to_sold_recomputes_gp(client, admin_headers, sales_user, db_session):
    vehicle = await _create(client, admin_headers, stock_number="SN-200", sales_status="Stock",
                            purchase_cash="8000", bank_payment="9500")

    response = await client.patch(f"/api/vehicles/{vehicle['id']}/status", json={"sales_status": "SOLD"},
                                  headers=admin_headers)

    assert response.status_code == 200
    body = await response.get_json()
    assert body["sales_status"] == "Sold"
    assert body["total_gp"] == 1500.0
    sold = db_session.query(Notification).filter_by(event_type="vehicle.sold",
                                                    recipient_user_id=sales_user.id).one()
    assert "SN-200" in sold.body


async def test_list_filters_and_paginates(client, admin_headers):
    for n, (make, status) in enumerate([("BMW", "Stock"), ("Audi", "Stock"), ("BMW", "Sold")]):
        await _create(client, admin_headers, stock_number=f"L-{n}", make=make, sales_status=status)

    stock = await (await client.get("/api/vehicles/stock", headers=admin_headers)).get_json()
    assert stock["total"] == 2

    bmw = await (await client.get("/api/vehicles?make=bmw&per_page=1", headers=admin_headers)).get_json()
    assert bmw["total"] == 2
    assert len(bmw["vehicles"]) == 1

    search = await (await client.get("/api/vehicles?q=L-2", headers=admin_headers)).get_json()
    assert [v["stock_number"] for v in search["vehicles"]] == ["L-2"]


async def test_get_missing_vehicle(client, admin_headers):
    response = await client.get("/api/vehicles/999", headers=admin_headers)
    assert response.status_code == 404
    assert (await response.get_json())["error"] == "Vehicle not found"


async def test_delete_vehicle_requires_manager(client, admin_headers, sales_headers, db_session):
    vehicle = await _create(client, admin_headers, stock_number="DEL-1")

    assert (await client.delete(f"/api/vehicles/{vehicle['id']}", headers=sales_headers)).status_code == 403
    assert (await client.delete(f"/api/vehicles/{vehicle['id']}", headers=admin_headers)).status_code == 200
    assert db_session.get(Vehicle, vehicle["id"]) is None


async def test_csv_import_and_export(client, admin_headers):
    csv_text = "Stock No.,Make,Sales Status,Purchase Cash\nIMP-1,Ford,stock,\"£5,000\"\nIMP-2,Kia,sold,100\n"

    response = await client.post("/api/vehicles/import/csv", data=csv_text,
                                 headers={**admin_headers, "Content-Type": "text/csv"})

    assert response.status_code == 200, await response.get_data(as_text=True)
    result = await response.get_json()
    assert result["imported"] == 2

    export = await client.get("/api/vehicles/export", headers=admin_headers)
    text = await export.get_data(as_text=True)
    assert export.headers["Content-Disposition"].startswith("attachment")
    assert "IMP-1" in text and "IMP-2" in text


async def test_csv_import_notifies_when_a_vehicle_becomes_sold(client, admin_headers, manager_user, db_session):
    db_session.add(Vehicle(stock_number="AL1", sales_status="Stock", registration="AB12CDE"))
    db_session.add(Vehicle(stock_number="AL2", sales_status="Sold", registration="CD34EFG"))
    db_session.commit()
    csv_text = "Stock No.,Sales Status,Registration,Bank Payment\nAL1,Sold,AB12CDE,1000\nAL2,Sold,CD34EFG,2000\n"

    response = await client.post("/api/vehicles/import/csv", data=csv_text,
                                 headers={**admin_headers, "Content-Type": "text/csv"})

    assert (await response.get_json())["updated"] == 2
    sold = db_session.query(Notification).filter_by(event_type="vehicle.sold").all()
    assert [n.recipient_user_id for n in sold] == [manager_user.id]
    assert "AB12CDE" in sold[0].body
    assert "1,000.00" in sold[0].body
