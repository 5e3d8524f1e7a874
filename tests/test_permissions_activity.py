from dms.constants import DEFAULT_PAGES


async def _seed_pages(client, admin_headers):
    response = await client.post("/api/permissions/pages/initialize", headers=admin_headers)
    assert response.status_code == 200
    return (await response.get_json())["created"]


async def test_initialize_pages_is_idempotent(client, admin_headers, sales_headers):
    assert await _seed_pages(client, admin_headers) == len(DEFAULT_PAGES)
    assert await _seed_pages(client, admin_headers) == 0

    denied = await client.post("/api/permissions/pages/initialize", headers=sales_headers)
    assert denied.status_code == 403


async def test_hidden_pages_drop_out_of_my_permissions(client, admin_headers, sales_user, sales_headers):
    await _seed_pages(client, admin_headers)

    response = await client.put(f"/api/permissions/users/{sales_user.id}", json={"permissions": [
        {"page_key": "stock-age", "permission_level": "hidden"},
        {"page_key": "leads", "permission_level": "full_access", "can_create": True, "can_edit": True},
    ]}, headers=admin_headers)
    assert response.status_code == 200
    assert (await response.get_json())["count"] == 2

    pages = (await (await client.get("/api/permissions/me", headers=sales_headers)).get_json())["pages"]
    by_key = {p["page_key"]: p for p in pages}
    assert "stock-age" not in by_key
    assert by_key["leads"]["can_create"] is True
    assert by_key["dashboard"]["permission_level"] == "view_only"
    assert len(pages) == len(DEFAULT_PAGES) - 1

    admin_pages = (await (await client.get("/api/permissions/me", headers=admin_headers)).get_json())["pages"]
    assert all(p["permission_level"] == "full_access" for p in admin_pages)


async def test_replace_permissions_validates_pages_and_levels(client, admin_headers, sales_user):
    await _seed_pages(client, admin_headers)

    unknown = await client.put(f"/api/permissions/users/{sales_user.id}",
                               json={"permissions": [{"page_key": "secret-page"}]}, headers=admin_headers)
    assert unknown.status_code == 400
    assert "secret-page" in (await unknown.get_json())["error"]

    bad_level = await client.put(f"/api/permissions/users/{sales_user.id}",
                                 json={"permissions": [{"page_key": "leads", "permission_level": "godmode"}]},
                                 headers=admin_headers)
    assert bad_level.status_code == 400

    missing = await client.get("/api/permissions/users/999", headers=admin_headers)
    assert missing.status_code == 404


async def test_customer_activity_feeds_recent_and_history(client, sales_user, sales_headers):
    created = await client.post("/api/customers", json={"first_name": "Jane", "last_name": "Doe"},
                                headers=sales_headers)
    assert created.status_code == 201
    customer_id = (await created.get_json())["id"]

    await client.get(f"/api/customers/{customer_id}", headers=sales_headers)

    recent = await (await client.get("/api/activity/recent", headers=sales_headers)).get_json()
    assert recent == [{
        "entity_type": "customer",
        "entity_id": customer_id,
        "name": "Jane Doe",
        "last_touched": recent[0]["last_touched"],
        "profile_link": "/customers",
    }]

    history = await (await client.get(f"/api/activity/entity/customer/{customer_id}",
                                      headers=sales_headers)).get_json()
    assert {entry["action"] for entry in history} == {"created", "viewed"}
    assert history[0]["user"]["id"] == sales_user.id


async def test_dashboard_is_open_but_stock_age_is_restricted(client, sales_headers, manager_headers):
    dashboard = await client.get("/api/dashboard/stats", headers=sales_headers)
    assert dashboard.status_code == 200
    assert dashboard.headers["Cache-Control"] == "no-store"
    assert (await dashboard.get_json())["stockSummary"]["totalVehicles"] == 0

    assert (await client.get("/api/stock-age/analytics", headers=sales_headers)).status_code == 403

    analytics = await (await client.get("/api/stock-age/analytics", headers=manager_headers)).get_json()
    assert analytics["stockAgeSummary"]["totalStockVehicles"] == 0
    assert analytics["stockDetails"] == []
