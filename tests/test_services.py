from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from dms.models import Job, Vehicle
from dms.services.analytics import build_dashboard_stats, build_stock_age_analytics, depreciation_risk
from dms.services.invoices import compute_invoice_totals, content_type_for, document_type, item_amount
from dms.services.jobs import apply_status, generate_job_number, job_number_base, job_stats


# Jobs

def test_job_number_base_uses_type_prefix_and_clock_digits():
    assert job_number_base("delivery", now_ms=1700000123456) == "DEL-123456"
    assert job_number_base(None, now_ms=42) == "JOB-42"


def test_generate_job_number_appends_suffix_on_collision():
    taken = {"COL-654321", "COL-654321-1"}

    number = generate_job_number(None, "collection", now_ms=9654321, exists=taken.__contains__)

    assert number == "COL-654321-2"


def test_generate_job_number_gives_up_eventually():
    with pytest.raises(RuntimeError):
        generate_job_number(None, "valuation", now_ms=1, exists=lambda number: True)


def test_apply_status_stamps_start_and_duration():
    job = Job(job_status="pending")
    start = datetime(2024, 6, 1, 9, 0)

    apply_status(job, "in_progress", now=start)
    apply_status(job, "in_progress", now=start + timedelta(hours=1))
    assert job.actual_start_date == start

    apply_status(job, "completed", now=start + timedelta(hours=2, minutes=30))
    assert job.actual_end_date == start + timedelta(hours=2, minutes=30)
    assert job.actual_duration_hours == Decimal("2.5")


def test_job_stats_counts_overdue_open_jobs(db_session, admin_user):
    now = datetime(2024, 6, 12, 12, 0)  # a Wednesday
    rows = [
        ("JOB-1", "delivery", "pending", now - timedelta(days=1), None),
        ("JOB-2", "delivery", "in_progress", now + timedelta(days=1), None),
        ("JOB-3", "collection", "completed", now - timedelta(days=5), now - timedelta(days=1)),
        ("JOB-4", "collection", "cancelled", now - timedelta(days=5), None),
    ]
    for number, job_type, status, scheduled, ended in rows:
        db_session.add(Job(
            job_number=number, job_type=job_type, job_category="logistics", job_status=status,
            scheduled_date=scheduled, actual_end_date=ended, created_by_id=admin_user.id,
            actual_duration_hours=Decimal("3.00") if status == "completed" else None,
        ))
    db_session.commit()

    stats = job_stats(db_session, now=now)

    assert stats["totalJobs"] == 4
    assert stats["pendingJobs"] == 1
    assert stats["inProgressJobs"] == 1
    assert stats["overdueJobs"] == 1
    assert stats["completedThisWeek"] == 1
    assert stats["averageCompletionHours"] == 3.0
    assert {"jobType": "collection", "count": 2} in stats["jobsByType"]


# Invoices

def test_item_amount_prefers_actual_price():
    assert item_amount({"qty": 2, "unit_price": "10.50"}) == Decimal("21.00")
    assert item_amount({"qty": 2, "unit_price": "10.50", "actual_price": "15"}) == Decimal("15")


def test_compute_invoice_totals_fills_missing_figures():
    items = [{"qty": 1, "unit_price": "100"}, {"qty": 3, "unit_price": "£50.00"}]

    totals = compute_invoice_totals(items, {"deposit_paid": "60"})

    assert totals == {
        "sub_total": Decimal("250.00"),
        "vat_at_20": Decimal("50.00"),
        "total": Decimal("300.00"),
        "balance_due": Decimal("240.00"),
    }


def test_compute_invoice_totals_respects_supplied_values():
    totals = compute_invoice_totals([{"qty": 1, "unit_price": "100"}], {"vat_at_20": 0, "total": "90"})

    assert totals["vat_at_20"] == Decimal("0.00")
    assert totals["total"] == Decimal("90.00")
    assert totals["balance_due"] == Decimal("90.00")


def test_document_type_checks_extension():
    assert document_type("Invoice.PDF") == "pdf"
    assert document_type("scan.jpeg") == "jpeg"
    assert document_type("payload.exe") is None
    assert document_type(None) is None
    assert content_type_for("pdf") == "application/pdf"
    assert content_type_for("zzz") == "application/octet-stream"


# Dashboard and stock age

def _vehicle(session, **values):
    vehicle = Vehicle(**values)
    session.add(vehicle)
    return vehicle


def test_dashboard_stats_summarises_stock_and_sales(db_session):
    now = datetime(2024, 6, 12, 12, 0)  # Wednesday; week starts Sunday 9 June
    _vehicle(db_session, stock_number="S1", make="BMW", sales_status="Stock",
             purchase_price_total=Decimal("10000"), collection_status="AWD",
             purchase_invoice_date=datetime(2024, 6, 3), department="AL",
             dfc_outstanding_amount=Decimal("6000"))
    _vehicle(db_session, stock_number="S2", make="Audi", sales_status="stock",
             purchase_price_total=Decimal("5000"), purchase_invoice_date=datetime(2024, 5, 20))
    _vehicle(db_session, stock_number="S3", make="BMW", sales_status="Sold",
             sale_date=datetime(2024, 6, 10), total_sale_price=Decimal("15000"),
             total_gp=Decimal("2000"), finance_payment=Decimal("8000"))
    _vehicle(db_session, stock_number="S4", make="Ford", sales_status="Sold",
             sale_date=datetime(2024, 6, 4), total_sale_price=Decimal("7000"), total_gp=Decimal("500"))
    db_session.commit()

    stats = build_dashboard_stats(db_session, now=now)

    assert stats["stockSummary"] == {"totalValue": 15000.0, "totalVehicles": 2, "totalMakes": 2}
    assert stats["weeklySales"]["thisWeek"] == 1
    assert stats["weeklySales"]["lastWeek"] == 1
    assert stats["weeklySales"]["lastWeekValue"] == 7000.0
    assert stats["monthlySales"]["thisMonth"] == 2
    assert stats["monthlySales"]["grossProfit"] == 2500.0
    assert stats["boughtSummary"]["monthlyBought"] == 1
    assert stats["carsIncoming"]["awdVehicles"] == 1
    assert stats["financeSales"] == {"monthlyFinanceAmount": 1, "monthlyFinanceValue": 8000.0}
    assert stats["dfFunded"]["totalOutstanding"] == 6000.0
    assert stats["dfFunded"]["totalUtilisation"] == 0.2
    assert stats["recentPurchases"][0]["date"] == "2024-06-03T00:00:00Z"


@pytest.mark.parametrize("days, risk", [(10, "low"), (61, "medium"), (91, "high"), (181, "critical")])
def test_depreciation_risk_bands(days, risk):
    assert depreciation_risk(days) == risk


def test_stock_age_analytics_buckets_dated_stock_only(db_session):
    now = datetime(2024, 6, 30)
    _vehicle(db_session, stock_number="A", make="BMW", sales_status="Stock",
             purchase_invoice_date=now - timedelta(days=10), purchase_price_total=Decimal("10000"))
    _vehicle(db_session, stock_number="B", make="BMW", sales_status="Stock",
             purchase_invoice_date=now - timedelta(days=120), purchase_price_total=Decimal("20000"))
    _vehicle(db_session, stock_number="C", make="Ford", sales_status="Stock")
    _vehicle(db_session, stock_number="D", make="Ford", sales_status="Sold",
             purchase_invoice_date=now - timedelta(days=300))
    db_session.commit()

    report = build_stock_age_analytics(db_session, now=now)

    summary = report["stockAgeSummary"]
    assert summary["totalStockVehicles"] == 2
    assert summary["slowMovingStock"] == 1
    assert summary["fastMovingStock"] == 1
    assert summary["averageAgeInStock"] == 65

    buckets = {row["ageRange"]: row["count"] for row in report["ageDistribution"]}
    assert buckets["0-30 days"] == 1
    assert buckets["91-180 days"] == 1

    oldest = report["stockDetails"][0]
    assert oldest["stock_number"] == "B"
    assert oldest["carrying_cost_daily"] == 16.0
    assert oldest["total_carrying_cost"] == 1920.0
    assert oldest["depreciation_risk"] == "high"
