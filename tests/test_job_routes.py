import re

from dms.models import Job, JobProgress, Notification


async def _job(client, headers, **values):
    response = await client.post("/api/jobs", json={"job_type": "delivery", **values}, headers=headers)
    assert response.status_code == 201, await response.get_data(as_text=True)
    return await response.get_json()


async def test_create_job_numbers_and_notifies(client, admin_headers, manager_user, db_session):
    job = await _job(client, admin_headers, scheduled_date="2024-06-12T09:00:00")

    assert re.fullmatch(r"DEL-\d{6}", job["job_number"])
    assert job["job_status"] == "pending"
    assert job["job_category"] == "logistics"
    note = db_session.query(Notification).filter_by(event_type="job.booked").one()
    assert note.recipient_user_id == manager_user.id
    assert note.body == "User admin booked a new job: delivery"


async def test_assigned_job_starts_as_assigned(client, admin_headers, sales_user):
    job = await _job(client, admin_headers, assigned_to_id=sales_user.id)

    assert job["job_status"] == "assigned"
    assert job["assigned_to"]["id"] == sales_user.id


async def test_create_job_validates_type_and_links(client, admin_headers):
    bad_type = await client.post("/api/jobs", json={"job_type": "teleport"}, headers=admin_headers)
    assert bad_type.status_code == 400

    missing = await client.post("/api/jobs", json={"job_type": "delivery", "vehicle_id": 404},
                                headers=admin_headers)
    assert missing.status_code == 404
    assert (await missing.get_json())["error"] == "Vehicle not found"


async def test_progress_moves_job_through_its_lifecycle(client, admin_headers, db_session):
    job = await _job(client, admin_headers)

    first = await client.post(f"/api/jobs/{job['id']}/progress", json={"progress_stage": "started"},
                              headers=admin_headers)
    assert first.status_code == 201
    db_session.expire_all()
    stored = db_session.get(Job, job["id"])
    assert stored.job_status == "in_progress"
    assert stored.actual_start_date is not None

    done = await client.post(f"/api/jobs/{job['id']}/progress",
                             json={"progress_stage": "completed", "stage_status": "completed"},
                             headers=admin_headers)
    assert done.status_code == 201
    db_session.expire_all()
    stored = db_session.get(Job, job["id"])
    assert stored.job_status == "completed"
    assert stored.actual_end_date is not None

    entries = await (await client.get(f"/api/jobs/{job['id']}/progress", headers=admin_headers)).get_json()
    assert [e["progress_stage"] for e in entries] == ["started", "completed"]
    assert db_session.query(JobProgress).count() == 2


async def test_progress_rejects_unknown_stage(client, admin_headers):
    job = await _job(client, admin_headers)
    response = await client.post(f"/api/jobs/{job['id']}/progress", json={"progress_stage": "flying"},
                                 headers=admin_headers)
    assert response.status_code == 400


async def test_status_patch_and_stats(client, admin_headers):
    job = await _job(client, admin_headers, job_type="collection")
    await _job(client, admin_headers)

    response = await client.patch(f"/api/jobs/{job['id']}/status",
                                  json={"job_status": "completed", "completion_notes": "Done"},
                                  headers=admin_headers)
    assert response.status_code == 200
    assert (await response.get_json())["completion_notes"] == "Done"

    stats = await (await client.get("/api/jobs/stats", headers=admin_headers)).get_json()
    assert stats["totalJobs"] == 2
    assert stats["pendingJobs"] == 1


async def test_create_job_from_template(client, admin_headers, sales_headers):
    denied = await client.post("/api/job-templates", json={"template_name": "x", "job_type": "valuation"},
                               headers=sales_headers)
    assert denied.status_code == 403

    response = await client.post("/api/job-templates", json={
        "template_name": "Standard valuation",
        "job_type": "valuation",
        "default_priority": "high",
        "instructions": "Check service history",
    }, headers=admin_headers)
    assert response.status_code == 201
    template = await response.get_json()

    created = await client.post(f"/api/jobs/from-template/{template['id']}", json={"notes": "Blue car"},
                                headers=admin_headers)
    assert created.status_code == 201
    job = await created.get_json()
    assert job["job_number"].startswith("VAL-")
    assert job["job_priority"] == "high"
    assert job["notes"] == "Check service history\n\nBlue car"

    missing = await client.post("/api/jobs/from-template/999", headers=admin_headers)
    assert missing.status_code == 404


async def test_calendar_validates_range(client, admin_headers):
    await _job(client, admin_headers, scheduled_date="2024-06-12T09:00:00")
    await _job(client, admin_headers, scheduled_date="2024-08-01T09:00:00")

    june = await client.get("/api/jobs/calendar?start=2024-06-01&end=2024-06-30", headers=admin_headers)
    assert len(await june.get_json()) == 1

    backwards = await client.get("/api/jobs/calendar?start=2024-06-30&end=2024-06-01", headers=admin_headers)
    assert backwards.status_code == 400
