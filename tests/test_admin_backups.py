from datetime import datetime, timedelta

from dms.config import BACKUP_RETENTION_DAYS
from dms.models import Backup
from dms.routes import admin_backups
from dms.workers import backup_jobs
from dms.workers.backup_jobs import backup_filename, backup_storage_key, cleanup_old_backups


class FakeJob:
    def __init__(self, job_id):
        self.id = job_id


class FakeQueue:
    def __init__(self):
        self.calls = []

    def enqueue(self, func, *args, **kwargs):
        self.calls.append((func, args, kwargs))
        return FakeJob(f"job-{len(self.calls)}")


class FakeBucket:
    def __init__(self, fail=False):
        self.deleted = []
        self.fail = fail

    def delete_file(self, key):
        if self.fail:
            return False
        self.deleted.append(key)
        return True


def test_backup_names_and_keys():
    now = datetime(2024, 3, 9, 7, 5, 1)
    name = backup_filename("scheduled", now)

    assert name == "backup_scheduled_20240309_070501.sql.gz"
    assert backup_storage_key(name, now) == "backups/2024/03/" + name


async def test_manual_backup_needs_a_queue(client, admin_headers, monkeypatch):
    monkeypatch.setattr(admin_backups, "backup_queue", None)

    response = await client.post("/api/admin/backups", headers=admin_headers)

    assert response.status_code == 503


async def test_manual_backup_is_recorded_and_enqueued(client, admin_headers, db_session, monkeypatch):
    queue = FakeQueue()
    monkeypatch.setattr(admin_backups, "backup_queue", queue)

    response = await client.post("/api/admin/backups", headers=admin_headers)

    assert response.status_code == 201
    body = await response.get_json()
    assert body["job_id"] == "job-1"
    assert body["backup"]["status"] == "pending"
    assert body["backup"]["filename"].startswith("backup_manual_")
    func, _, kwargs = queue.calls[0]
    assert func is backup_jobs.run_backup_job
    assert kwargs["backup_id"] == body["backup"]["id"]
    assert db_session.get(Backup, body["backup"]["id"]).job_id == "job-1"


async def test_backups_are_admin_only(client, manager_headers):
    assert (await client.get("/api/admin/backups", headers=manager_headers)).status_code == 403


async def test_running_backup_cannot_be_deleted(client, admin_user, admin_headers, db_session, monkeypatch):
    bucket = FakeBucket()
    monkeypatch.setattr(admin_backups, "get_backup_storage", lambda: bucket)
    running = Backup(filename="a.sql.gz", backup_type="manual", status="in_progress", created_by=admin_user.id)
    done = Backup(filename="b.sql.gz", backup_type="manual", status="completed", created_by=admin_user.id,
                  storage_key="backups/2024/01/b.sql.gz")
    db_session.add_all([running, done])
    db_session.commit()
    running_id, done_id = running.id, done.id

    assert (await client.delete(f"/api/admin/backups/{running_id}", headers=admin_headers)).status_code == 409
    assert (await client.delete(f"/api/admin/backups/{done_id}", headers=admin_headers)).status_code == 200
    assert bucket.deleted == ["backups/2024/01/b.sql.gz"]

    listing = await (await client.get("/api/admin/backups?status=in_progress", headers=admin_headers)).get_json()
    assert listing["total"] == 1


async def test_maintenance_endpoint_enqueues(client, admin_headers, monkeypatch):
    queue = FakeQueue()
    monkeypatch.setattr(admin_backups, "maintenance_queue", queue)

    response = await client.post("/api/admin/backups/maintenance", headers=admin_headers)

    assert response.status_code == 202
    assert queue.calls[0][0] is admin_backups.run_maintenance


def test_cleanup_keeps_records_when_bucket_delete_fails(db_session, admin_user, monkeypatch):
    now = datetime(2024, 6, 1)
    db_session.add(Backup(filename="old.sql.gz", backup_type="scheduled", status="completed",
                          created_by=admin_user.id, storage_key="backups/old.sql.gz",
                          created_at=now - timedelta(days=BACKUP_RETENTION_DAYS + 1)))
    db_session.commit()

    monkeypatch.setattr(backup_jobs, "get_backup_storage", lambda: FakeBucket(fail=True))
    assert cleanup_old_backups(now=now) == 0

    monkeypatch.setattr(backup_jobs, "get_backup_storage", lambda: FakeBucket())
    assert cleanup_old_backups(now=now) == 1
    assert db_session.query(Backup).count() == 0
