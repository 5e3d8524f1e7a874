from dms.models import Customer, Interaction, Lead, Notification, Vehicle


async def _lead(client, headers, **values):
    body = {"first_name": "Jane", "last_name": "Doe", "lead_source": "Website", **values}
    response = await client.post("/api/leads", json=body, headers=headers)
    assert response.status_code == 201, await response.get_data(as_text=True)
    return await response.get_json()


async def test_create_lead_notifies_sales_staff(client, admin_headers, manager_user, sales_user, db_session):
    lead = await _lead(client, admin_headers, email="Jane@Example.COM")

    assert lead["pipeline_stage"] == "new"
    assert lead["full_name"] == "Jane Doe"
    assert lead["email"] == "jane@example.com"

    recipients = {n.recipient_user_id for n in db_session.query(Notification).filter_by(event_type="lead.created")}
    assert recipients == {manager_user.id, sales_user.id}


async def test_create_lead_requires_source(client, admin_headers):
    response = await client.post("/api/leads", json={"first_name": "A", "last_name": "B"}, headers=admin_headers)

    assert response.status_code == 400
    fields = [detail["loc"][-1] for detail in (await response.get_json())["details"]]
    assert "lead_source" in fields


async def test_list_leads_filters_by_stage_and_search(client, admin_headers):
    await _lead(client, admin_headers, first_name="Alan", pipeline_stage="qualified")
    await _lead(client, admin_headers, first_name="Beth")

    qualified = await (await client.get("/api/leads?stage=qualified", headers=admin_headers)).get_json()
    assert [l["first_name"] for l in qualified["leads"]] == ["Alan"]

    found = await (await client.get("/api/leads?q=beth doe", headers=admin_headers)).get_json()
    assert found["total"] == 1


async def test_interaction_updates_lead_contact_tracking(client, admin_headers, db_session):
    lead = await _lead(client, admin_headers)

    response = await client.post("/api/interactions", json={
        "lead_id": lead["id"],
        "interaction_type": "phone_call",
        "interaction_direction": "outbound",
        "interaction_notes": "Called about the BMW",
        "follow_up_date": "2030-01-05T10:00:00Z",
    }, headers=admin_headers)

    assert response.status_code == 201, await response.get_data(as_text=True)
    stored = db_session.get(Lead, lead["id"])
    assert stored.contact_attempts == 1
    assert stored.last_contact_date is not None
    assert stored.next_follow_up_date.year == 2030

    listing = await (await client.get(f"/api/leads/{lead['id']}/interactions", headers=admin_headers)).get_json()
    assert listing["total"] == 1
    assert listing["interactions"][0]["user"]["username"] == "admin"


async def test_interaction_needs_a_lead_or_customer(client, admin_headers):
    response = await client.post("/api/interactions", json={
        "interaction_type": "email", "interaction_direction": "inbound", "interaction_notes": "hi",
    }, headers=admin_headers)
    assert response.status_code == 400


async def test_stage_patch_refuses_conversion(client, admin_headers):
    lead = await _lead(client, admin_headers)

    response = await client.patch(f"/api/leads/{lead['id']}/stage", json={"pipeline_stage": "converted"},
                                  headers=admin_headers)
    assert response.status_code == 400

    response = await client.patch(f"/api/leads/{lead['id']}/stage", json={"pipeline_stage": "contacted"},
                                  headers=admin_headers)
    assert response.status_code == 200
    assert (await response.get_json())["pipeline_stage"] == "contacted"


async def test_convert_lead_creates_customer_once(client, admin_headers, db_session):
    lead = await _lead(client, admin_headers, primary_phone="07700 900123")

    response = await client.post(f"/api/leads/{lead['id']}/convert", json={"postcode": "LS1 1AA"},
                                 headers=admin_headers)

    assert response.status_code == 201
    body = await response.get_json()
    assert body["lead"]["pipeline_stage"] == "converted"
    assert body["lead"]["converted_customer_id"] == body["customer"]["id"]
    customer = db_session.get(Customer, body["customer"]["id"])
    assert customer.phone == "07700 900123"
    assert customer.postcode == "LS1 1AA"

    again = await client.post(f"/api/leads/{lead['id']}/convert", headers=admin_headers)
    assert again.status_code == 409

    stats = await (await client.get("/api/leads/stats", headers=admin_headers)).get_json()
    assert stats["totalLeads"] == 0
    assert stats["conversionRate"] == 100.0


async def test_delete_lead_keeps_interactions(client, admin_headers, sales_headers, db_session):
    lead = await _lead(client, admin_headers)
    await client.post("/api/interactions", json={
        "lead_id": lead["id"], "interaction_type": "sms", "interaction_direction": "outbound",
        "interaction_notes": "Texted",
    }, headers=admin_headers)

    assert (await client.delete(f"/api/leads/{lead['id']}", headers=sales_headers)).status_code == 403
    assert (await client.delete(f"/api/leads/{lead['id']}", headers=admin_headers)).status_code == 200

    db_session.expire_all()
    assert db_session.get(Lead, lead["id"]) is None
    assert db_session.query(Interaction).one().lead_id is None


async def test_appointments_by_day_and_month(client, admin_headers):
    lead = await _lead(client, admin_headers, email="jane@example.com")
    for day, time in [("2024-06-12", "10:00"), ("2024-06-12", "09:30"), ("2024-07-01", "12:00")]:
        response = await client.post("/api/appointments", json={
            "appointment_date": day, "appointment_time": time,
            "appointment_type": "test_drive", "lead_id": lead["id"],
        }, headers=admin_headers)
        assert response.status_code == 201, await response.get_data(as_text=True)

    day = await (await client.get("/api/appointments/date/2024-06-12", headers=admin_headers)).get_json()
    assert [a["appointment_time"] for a in day] == ["09:30", "10:00"]
    assert day[0]["customer_name"] == "Jane Doe"
    assert day[0]["duration_minutes"] == 60

    june = await (await client.get("/api/appointments/month/2024/6", headers=admin_headers)).get_json()
    assert len(june) == 2

    assert (await client.get("/api/appointments/date/12-06-2024", headers=admin_headers)).status_code == 400
    assert (await client.get("/api/appointments/month/2024/13", headers=admin_headers)).status_code == 400


async def test_appointment_rejects_bad_time(client, admin_headers):
    response = await client.post("/api/appointments", json={
        "appointment_date": "2024-06-12", "appointment_time": "25:00", "appointment_type": "viewing",
    }, headers=admin_headers)
    assert response.status_code == 400


async def test_leads_by_stage_groups_pipeline_columns(client, admin_headers):
    await _lead(client, admin_headers, first_name="Alan", pipeline_stage="qualified")
    await _lead(client, admin_headers, first_name="Beth")

    board = await (await client.get("/api/leads/by-stage", headers=admin_headers)).get_json()
    assert [l["first_name"] for l in board["qualified"]] == ["Alan"]
    assert [l["first_name"] for l in board["new"]] == ["Beth"]
    assert board["lost"] == []

    single = await (await client.get("/api/leads/by-stage?stage=new", headers=admin_headers)).get_json()
    assert list(single) == ["new"]

    bad = await client.get("/api/leads/by-stage?stage=maybe", headers=admin_headers)
    assert bad.status_code == 400


async def test_assign_vehicle_links_and_clears(client, admin_headers, db_session):
    vehicle = Vehicle(stock_number="AL-9", registration="AB12CDE", make="BMW", model="X5", sales_status="Stock")
    db_session.add(vehicle)
    db_session.commit()
    lead = await _lead(client, admin_headers)

    linked = await client.patch(f"/api/leads/{lead['id']}/assign-vehicle",
                                json={"assigned_vehicle_id": vehicle.id}, headers=admin_headers)
    assert (await linked.get_json())["assigned_vehicle"]["registration"] == "AB12CDE"

    missing = await client.patch(f"/api/leads/{lead['id']}/assign-vehicle",
                                 json={"assigned_vehicle_id": 999}, headers=admin_headers)
    assert missing.status_code == 404

    cleared = await client.patch(f"/api/leads/{lead['id']}/assign-vehicle",
                                 json={"assigned_vehicle_id": None}, headers=admin_headers)
    assert (await cleared.get_json())["assigned_vehicle"] is None


async def test_convert_lead_rejects_non_object_body(client, admin_headers, db_session):
    lead = await _lead(client, admin_headers)

    response = await client.post(f"/api/leads/{lead['id']}/convert", json=["postcode"], headers=admin_headers)

    assert response.status_code == 400
    assert db_session.query(Customer).count() == 0


async def test_validated_routes_reject_non_object_body(client, admin_headers):
    response = await client.post("/api/leads", json=[{"first_name": "Jane"}], headers=admin_headers)

    assert response.status_code == 400
    assert (await response.get_json())["error"] == "Validation failed"
