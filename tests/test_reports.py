from datetime import datetime
from decimal import Decimal

import pytest

from dms.models import Lead, Vehicle
from dms.services import reports

NOW = datetime(2024, 6, 15, 12, 0)


@pytest.fixture
def forecourt(db_session):
    """Two June sales and two stock vehicles, one of them undated."""
    db_session.add_all([
        Vehicle(
            stock_number="AL-100", department="AL", make="BMW", model="X5", sales_status="Sold",
            buyer="Alex", purchase_invoice_date=datetime(2024, 5, 4, 12, 0), sale_date=datetime(2024, 6, 3, 12, 0),
            purchase_price_total=Decimal("20000"), purchase_cash=Decimal("20000"),
            total_sale_price=Decimal("25000"), cash_payment=Decimal("5000"), finance_payment=Decimal("20000"),
            total_gp=Decimal("5000"), adj_gp=Decimal("4000"), warranty_costs=Decimal("500"),
            parts_cost=Decimal("250"), alloy_insurance=Decimal("100"),
        ),
        Vehicle(
            stock_number="MSR-7", department="msr", make="Audi", model="A3", sales_status="SOLD",
            buyer="Alex", purchase_invoice_date=datetime(2024, 4, 11, 12, 0), sale_date=datetime(2024, 6, 10, 12, 0),
            purchase_price_total=Decimal("10000"), purchase_bank_transfer=Decimal("10000"),
            total_sale_price=Decimal("11000"), cash_payment=Decimal("11000"),
            total_gp=Decimal("1000"), adj_gp=Decimal("800"),
        ),
        Vehicle(
            stock_number="AL-200", department="AL", make="BMW", model="X1", sales_status="Stock",
            purchase_invoice_date=datetime(2024, 3, 17, 12, 0), purchase_price_total=Decimal("30000"),
            dfc_outstanding_amount=Decimal("27000"),
        ),
        Vehicle(
            stock_number="ALS-1", department="ALS", make="Ford", model="Fiesta", sales_status="Stock",
            purchase_price_total=Decimal("5000"),
        ),
    ])
    db_session.add_all([
        Lead(first_name="New", last_name="Lead", lead_source="AutoTrader", pipeline_stage="new",
             created_at=datetime(2024, 6, 5, 12, 0)),
        Lead(first_name="Close", last_name="Deal", lead_source="AutoTrader", pipeline_stage="negotiating",
             budget_max=Decimal("20000"), created_at=datetime(2024, 6, 1, 12, 0)),
        Lead(first_name="Won", last_name="Over", lead_source="Website", pipeline_stage="converted",
             created_at=datetime(2024, 6, 2, 12, 0)),
    ])
    db_session.commit()
    return db_session


def test_financial_year_runs_april_to_march():
    assert reports.financial_year(datetime(2024, 3, 31)) == (datetime(2023, 4, 1), datetime(2024, 4, 1))
    assert reports.financial_year(datetime(2024, 4, 1)) == (datetime(2024, 4, 1), datetime(2025, 4, 1))


@pytest.mark.parametrize("value", ["2024-13", "June", "2024/06", ""])
def test_parse_year_month_rejects_malformed_months(value):
    with pytest.raises(ValueError):
        reports.parse_year_month(value)


def test_monthly_data_summarises_the_month(forecourt):
    data = reports.build_monthly_data(forecourt, 2024, 6, now=NOW)

    assert data["sales_summary"] == {
        "total_revenue": 36000.0,
        "total_units_sold": 2,
        "gross_profit": 6000.0,
        "net_profit": 4800.0,
        "avg_selling_price": 18000.0,
        "profit_margin": 16.67,
    }
    assert [row["make"] for row in data["sales_by_make"]] == ["BMW", "Audi"]
    assert {row["department"] for row in data["sales_by_department"]} == {"AL", "MSR"}
    assert data["monthly_trends"] == [
        {"day": 3, "revenue": 25000.0, "units": 1},
        {"day": 10, "revenue": 11000.0, "units": 1},
    ]
    assert data["finance_breakdown"] == {
        "finance_units": 1,
        "finance_value": 20000.0,
        "warranty_count": 1,
        "alloy_insurance_count": 1,
        "gap_insurance_count": 0,
    }
    # 35k of stock at 2% a month over a 90 day average, the undated car adds value but no age
    assert data["cost_breakdown"] == {
        "purchase_costs": 30000.0,
        "operational_costs": 750.0,
        "holding_costs": 2100,
        "total_costs": 32850,
    }
    assert data["performance_metrics"]["revenue_vs_target"] == 1.8
    assert data["performance_metrics"]["inventory_turnover"] == 4.06


def test_monthly_data_for_a_quiet_month_is_all_zero(forecourt):
    data = reports.build_monthly_data(forecourt, 2023, 1, now=NOW)

    assert data["month"] == "2023-01"
    assert data["sales_summary"]["total_units_sold"] == 0
    assert data["sales_summary"]["avg_selling_price"] == 0
    assert data["sales_by_make"] == []
    assert data["monthly_trends"] == []


def test_inventory_analytics_splits_departments_and_facility(forecourt):
    data = reports.build_inventory_analytics(forecourt, now=NOW)

    by_name = {row["name"]: row for row in data["departments"]}
    assert by_name["AL Department"]["stockCount"] == 1
    assert by_name["AL Department"]["stockValue"] == 30000.0
    assert by_name["AL Department"]["soldCount"] == 1
    assert by_name["MSR Department"]["soldCount"] == 1
    assert by_name["Autolab Select"]["stockValue"] == 5000.0

    al, msr, als, group = data["df_funded"]
    assert al == {
        "department_name": "AL Department",
        "budget_amount": 2700000.0,
        "dfc_outstanding_amount": 27000.0,
        "remaining_facility": 2673000.0,
        "facility_utilisation": 1.0,
    }
    assert als["facility_utilisation"] == 0
    assert group["department_name"] == "Group Utilisation"
    assert group["facility_utilisation"] == 0.9

    shares = {row["make"]: row["percentage"] for row in data["composition"]}
    assert shares == {"BMW": 85.71, "Ford": 14.29}

    counts = {row["ageRange"]: row["count"] for row in data["agingAnalysis"]}
    assert counts == {"0-30 days": 1, "31-60 days": 0, "61-90 days": 1, "90+ days": 0}


def test_vehicle_performance_ranks_makes_by_days_to_sell(forecourt):
    data = reports.build_vehicle_performance(forecourt, now=NOW)

    turnover = data["turnover_metrics"]
    assert turnover["average_days_to_sell"] == 45
    assert [row["make"] for row in turnover["fastest_selling_makes"]] == ["BMW", "Audi"]
    assert [row["make"] for row in turnover["slowest_selling_makes"]] == ["Audi", "BMW"]
    assert turnover["stock_turnover_rate"] == 12.0

    pricing = data["pricing_metrics"]
    assert pricing["average_markup"] == 17.5
    assert {row["range"] for row in pricing["discount_analysis"]} == {"10-20%", "20-30%"}
    assert data["quality_metrics"] == {"warranty_cost_ratio": 1.0, "parts_cost_ratio": 0.5}


def test_financial_audit_covers_the_financial_year(forecourt):
    data = reports.build_financial_audit(forecourt, now=NOW)

    assert data["period"] == {"start": "2024-04-01", "end": "2025-03-31"}
    revenue = data["revenue_analysis"]
    assert revenue["total_revenue"] == 36000.0
    assert revenue["cash_revenue"] == 16000.0
    assert revenue["finance_revenue"] == 20000.0

    costs = data["cost_analysis"]
    assert costs["total_purchase_cost"] == 65000.0
    assert costs["holding_costs"] == 2100
    assert costs["average_cost_per_vehicle"] == 32500

    margins = {row["department"]: row["margin"] for row in data["profitability_analysis"]["profit_by_department"]}
    assert margins == {"AL": 20.0, "MSR": 9.09}
    assert data["cash_flow_analysis"] == {"cash_inflow": 36000.0, "cash_outflow": 30000.0, "net_cash_flow": 6000.0}


def test_sales_management_tracks_pipeline_and_target(forecourt):
    data = reports.build_sales_management(forecourt, now=NOW)

    assert data["sales_team_performance"] == [{
        "salesperson": "Alex",
        "total_sales": 2,
        "revenue_generated": 36000.0,
        "average_deal_size": 18000,
    }]
    pipeline = data["sales_pipeline_analysis"]
    assert pipeline["leads_in_pipeline"] == 2
    assert pipeline["pipeline_value"] == 20000.0
    assert {row["stage"]: row["avg_days"] for row in pipeline["bottlenecks"]} == {"new": 10, "negotiating": 14}

    target = data["target_achievement"]
    assert target["achievement_percentage"] == 1.8
    assert target["projected_month_end"] == 72000.0


def test_trends_and_quarters_bucket_by_calendar(forecourt):
    trends = reports.build_sales_trends(forecourt, 2024)
    assert trends["salesData"][5] == {"period": "Jun", "units": 2, "revenue": 36000.0, "avgPrice": 18000.0}
    assert trends["conversionRates"][5] == {"month": "Jun", "leads": 3, "conversions": 1, "rate": 33.33}

    quarters = reports.build_quarterly_overview(forecourt, 2024)["quarters"]
    assert quarters[1] == {"quarter": "Q2", "revenue": 36000.0, "profit": 6000.0, "unitsSold": 2, "profitMargin": 16.67}

    performance = reports.build_financial_performance(forecourt, 2024)
    assert performance["revenue"][5] == {"period": "Jun 2024", "value": 36000.0}
    assert performance["expenses"][2] == {"period": "Mar 2024", "value": 30000.0}


def test_executive_dashboard_sizes_inventory_needs(forecourt):
    data = reports.build_executive_dashboard(forecourt, now=NOW)

    assert data["key_metrics"]["total_inventory_value"] == 35000.0
    assert data["key_metrics"]["monthly_profit"] == 6000.0
    needs = {row["make"]: row for row in data["forecast"]["inventory_needs"]}
    assert needs["BMW"] == {"make": "BMW", "recommended_stock": 1, "current_stock": 1}
    assert needs["Audi"]["current_stock"] == 0


def test_overview_flags_thin_margins(forecourt):
    forecourt.add(Vehicle(
        stock_number="AL-300", department="AL", make="Kia", sales_status="Sold",
        sale_date=datetime(2024, 6, 14, 9, 0), total_sale_price=Decimal("100000"), total_gp=Decimal("0"),
    ))
    forecourt.commit()

    data = reports.build_overview(forecourt, now=NOW)

    assert data["kpiMetrics"]["totalRevenue"] == 136000.0
    assert data["performanceIndicators"]["stockTurnover"] == 4.06
    assert [alert["type"] for alert in data["alerts"]] == ["financial"]


async def test_reports_are_for_managers(client, sales_headers, manager_headers):
    denied = await client.get("/api/business-intelligence/overview", headers=sales_headers)
    assert denied.status_code == 403

    response = await client.get("/api/business-intelligence/inventory-analytics", headers=manager_headers)
    assert response.status_code == 200
    assert response.headers["Cache-Control"] == "no-store"
    assert len((await response.get_json())["df_funded"]) == 4


async def test_report_routes_reject_bad_periods(client, admin_headers):
    bad_month = await client.get("/api/business-intelligence/monthly-data/2024-13", headers=admin_headers)
    assert bad_month.status_code == 400

    bad_year = await client.get("/api/business-intelligence/sales-trends",
                                query_string={"year": "soon"}, headers=admin_headers)
    assert bad_year.status_code == 400

    month = await client.get("/api/business-intelligence/monthly-data/2024-06", headers=admin_headers)
    assert (await month.get_json())["month"] == "2024-06"
