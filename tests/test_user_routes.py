from dms.models import NotificationPreference, User
from dms.utils.auth_utils import generate_reset_token


async def _login(client, username, password):
    return await client.post("/api/login", json={"username": username, "password": password})


async def test_create_user_seeds_role_preferences(client, admin_headers, db_session):
    response = await client.post("/api/users", json={
        "username": "Bob.Smith", "password": "longenough", "email": "Bob@Example.com", "role": "manager",
    }, headers=admin_headers)

    assert response.status_code == 201, await response.get_data(as_text=True)
    user = await response.get_json()
    assert user["username"] == "bob.smith"
    assert user["email"] == "bob@example.com"
    assert "password_hash" not in user

    prefs = db_session.query(NotificationPreference).filter_by(user_id=user["id"]).one()
    assert prefs.vehicle_updated_enabled is False
    assert prefs.vehicle_added_enabled is True

    duplicate = await client.post("/api/users", json={
        "username": "someone", "password": "longenough", "email": "BOB@example.com",
    }, headers=admin_headers)
    assert duplicate.status_code == 409


async def test_create_user_validates_role_and_is_admin_only(client, admin_headers, manager_headers):
    bad_role = await client.post("/api/users", json={
        "username": "carol", "password": "longenough", "role": "overlord",
    }, headers=admin_headers)
    assert bad_role.status_code == 400

    denied = await client.post("/api/users", json={"username": "carol", "password": "longenough"},
                               headers=manager_headers)
    assert denied.status_code == 403


async def test_toggle_active_locks_the_account(client, admin_user, admin_headers, sales_user, sales_headers):
    assert (await client.get("/api/me", headers=sales_headers)).status_code == 200

    response = await client.patch(f"/api/users/{sales_user.id}/toggle-active", headers=admin_headers)
    assert (await response.get_json()) == {"id": sales_user.id, "is_active": False}
    assert (await client.get("/api/me", headers=sales_headers)).status_code == 401

    own = await client.patch(f"/api/users/{admin_user.id}/toggle-active", headers=admin_headers)
    assert own.status_code == 400


async def test_admin_password_reset(client, admin_headers, sales_user):
    short = await client.post(f"/api/users/{sales_user.id}/reset-password",
                              json={"new_password": "short"}, headers=admin_headers)
    assert short.status_code == 400

    response = await client.post(f"/api/users/{sales_user.id}/reset-password",
                                 json={"new_password": "BrandNew123"}, headers=admin_headers)
    assert response.status_code == 200
    assert (await _login(client, "sally", "BrandNew123")).status_code == 200


async def test_delete_user_but_not_yourself(client, admin_user, admin_headers, sales_user):
    own = await client.delete(f"/api/users/{admin_user.id}", headers=admin_headers)
    assert own.status_code == 400

    response = await client.delete(f"/api/users/{sales_user.id}", headers=admin_headers)
    assert response.status_code == 200
    assert (await client.get(f"/api/users/{sales_user.id}", headers=admin_headers)).status_code == 404
    assert (await client.delete(f"/api/users/{sales_user.id}", headers=admin_headers)).status_code == 404


async def test_update_user_refuses_taken_username(client, admin_headers, manager_user, sales_user):
    response = await client.put(f"/api/users/{sales_user.id}", json={"username": "Manager"}, headers=admin_headers)
    assert response.status_code == 409

    renamed = await client.put(f"/api/users/{sales_user.id}", json={"first_name": "Sal"}, headers=admin_headers)
    assert (await renamed.get_json())["first_name"] == "Sal"


async def test_forgot_password_answers_the_same_for_unknown_email(client, sales_user):
    known = await client.post("/api/forgot-password", json={"email": sales_user.email})
    unknown = await client.post("/api/forgot-password", json={"email": "nobody@autolab.test"})

    assert known.status_code == unknown.status_code == 200
    assert await known.get_json() == await unknown.get_json()


async def test_reset_password_with_token(client, sales_user, password):
    bad = await client.post("/api/reset-password", json={"token": "nonsense", "new_password": "BrandNew123"})
    assert bad.status_code == 400

    token = generate_reset_token(sales_user.email)
    response = await client.post("/api/reset-password", json={"token": token, "password": "BrandNew123"})
    assert response.status_code == 200

    assert (await _login(client, "sally", password)).status_code == 401
    assert (await _login(client, "sally", "BrandNew123")).status_code == 200


async def test_reset_password_rejects_non_object_body(client):
    response = await client.post("/api/reset-password", json=["token", "BrandNew123"])
    assert response.status_code == 400


async def test_change_password_checks_current(client, sales_headers, password, db_session, sales_user):
    wrong = await client.post("/api/change-password", json={
        "current_password": "guess", "new_password": "BrandNew123",
    }, headers=sales_headers)
    assert wrong.status_code == 403

    response = await client.post("/api/change-password", json={
        "current_password": password, "new_password": "BrandNew123",
    }, headers=sales_headers)
    assert response.status_code == 200
    assert (await _login(client, "sally", "BrandNew123")).status_code == 200
    assert db_session.get(User, sales_user.id) is not None


async def test_log_error_accepts_objects_only(client, sales_headers):
    logged = await client.post("/api/log-error", json={"message": "boom", "context": "checkout"},
                               headers=sales_headers)
    assert (await logged.get_json()) == {"status": "logged"}

    rejected = await client.post("/api/log-error", json=["boom"], headers=sales_headers)
    assert rejected.status_code == 400


async def test_realtime_status_reports_offline_user(client, sales_headers):
    response = await client.get("/api/realtime/status", headers=sales_headers)

    assert (await response.get_json()) == {"connections": 0, "users": 0, "rooms": {}, "user_online": False}
