"""
Business intelligence reports built from the vehicle master, the lead
pipeline, jobs and staff.

Sales figures are bucketed by ``sale_date`` and purchase costs by
``purchase_invoice_date``. The financial year runs April to March. Every
window is half open, ``start <= date < end``.
"""
import math
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy import case, func

from dms.config import (
    DF_DEPARTMENT_BUDGETS,
    DF_FACILITY_BUDGET,
    MONTHLY_PROFIT_TARGET,
    MONTHLY_REVENUE_TARGET,
    MONTHLY_UNITS_TARGET,
)
from dms.constants import DEPARTMENT_NAMES, DF_DEPARTMENTS
from dms.models import Customer, CustomerPurchase, Lead, User, Vehicle
from dms.services.analytics import _is_sold, _is_stock, _num, build_dashboard_stats
from dms.services.jobs import job_stats
from dms.utils.logging_utils import timing_logger

# 2% of stock value per month in stock
HOLDING_COST_RATE = 0.02
INVENTORY_BUFFER = 1.2
CLOSED_LEAD_STAGES = ("converted", "lost")

INVENTORY_AGE_BANDS = [
    ("0-30 days", 30),
    ("31-60 days", 60),
    ("61-90 days", 90),
    ("90+ days", None),
]

MARKUP_BANDS = [
    ("0-10%", 10),
    ("10-20%", 20),
    ("20-30%", 30),
    ("30%+", None),
]


def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0


def _growth(current: float, previous: float) -> float:
    return round((current - previous) / previous * 100, 2) if previous else 0


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0


def _total(vehicles: Iterable[Vehicle], field: str) -> float:
    return round(sum(_num(getattr(v, field)) for v in vehicles), 2)


def _label(value: Optional[str]) -> str:
    return value or "Unknown"


def financial_year(now: datetime) -> Tuple[datetime, datetime]:
    """April 1st of the running financial year and April 1st of the next."""
    start_year = now.year if now.month >= 4 else now.year - 1
    start = datetime(start_year, 4, 1)
    return start, start + relativedelta(years=1)


def month_window(year: int, month: int) -> Tuple[datetime, datetime]:
    start = datetime(year, month, 1)
    return start, start + relativedelta(months=1)


def parse_year_month(value: str) -> Tuple[int, int]:
    """Split ``YYYY-MM``; raises ValueError for anything else."""
    parsed = datetime.strptime(value, "%Y-%m")
    return parsed.year, parsed.month


def sold_between(session, start: datetime, end: datetime) -> List[Vehicle]:
    return session.query(Vehicle).filter(
        _is_sold(), Vehicle.sale_date >= start, Vehicle.sale_date < end
    ).all()


def stock_ages(session, now: datetime) -> List[Tuple[Optional[int], float]]:
    """(days in stock, purchase value) per stock vehicle, days is None when undated."""
    rows = session.query(Vehicle.purchase_invoice_date, Vehicle.purchase_price_total).filter(_is_stock()).all()
    return [
        (max((now - purchased).days, 0) if purchased else None, _num(value))
        for purchased, value in rows
    ]


def mean_stock_age(ages: List[Tuple[Optional[int], float]]) -> float:
    return _mean([days for days, _ in ages if days is not None])


def holding_cost(ages: List[Tuple[Optional[int], float]]) -> float:
    stock_value = sum(value for _, value in ages)
    return stock_value * HOLDING_COST_RATE * (mean_stock_age(ages) / 30)


def _grouped(vehicles: Iterable[Vehicle], key) -> Dict[str, List[Vehicle]]:
    groups = defaultdict(list)
    for vehicle in vehicles:
        groups[key(vehicle)].append(vehicle)
    return groups


def _department(vehicle: Vehicle) -> str:
    return (vehicle.department or "").upper() or "Unknown"


def repeat_customer_rate(session) -> float:
    """Share of buying customers with more than one recorded purchase."""
    counts = [
        n for _, n in session.query(
            CustomerPurchase.customer_id, func.count(CustomerPurchase.id)
        ).group_by(CustomerPurchase.customer_id).all()
    ]
    return _pct(sum(1 for n in counts if n > 1), len(counts))


def _new_customers(session, since: datetime) -> int:
    return session.query(func.count(Customer.id)).filter(Customer.created_at >= since).scalar()


@timing_logger("bi_overview")
def build_overview(session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    stats = build_dashboard_stats(session, now)
    average_age = mean_stock_age(stock_ages(session, now))

    revenue = stats["monthlySales"]["thisMonthValue"]
    profit = stats["monthlySales"]["grossProfit"]
    weekly = stats["weeklySales"]
    margin = _pct(profit, revenue)

    alerts = []
    if average_age > 90:
        alerts.append({"type": "inventory", "message": "High average stock age detected", "severity": "warning"})
    if revenue and margin < 10:
        alerts.append({"type": "financial", "message": "Low profit margin", "severity": "critical"})

    return {
        "kpiMetrics": {
            "totalRevenue": revenue,
            "totalProfit": profit,
            "inventoryValue": stats["stockSummary"]["totalValue"],
            "customerCount": session.query(func.count(Customer.id)).scalar(),
        },
        "performanceIndicators": {
            "salesGrowth": _growth(weekly["thisWeekValue"], weekly["lastWeekValue"]),
            "profitMargin": margin,
            "stockTurnover": round(365 / average_age, 2) if average_age else 0,
            "customerRetention": repeat_customer_rate(session),
        },
        "alerts": alerts,
    }


@timing_logger("bi_financial_performance")
def build_financial_performance(session, year: int) -> dict:
    periods = []
    for month in range(1, 13):
        start, end = month_window(year, month)
        revenue = _num(session.query(func.sum(Vehicle.total_sale_price)).filter(
            Vehicle.sale_date >= start, Vehicle.sale_date < end
        ).scalar())
        expenses = _num(session.query(func.sum(Vehicle.purchase_price_total)).filter(
            Vehicle.purchase_invoice_date >= start, Vehicle.purchase_invoice_date < end
        ).scalar())
        periods.append((start.strftime("%b %Y"), revenue, expenses))

    return {
        "revenue": [{"period": p, "value": r} for p, r, _ in periods],
        "expenses": [{"period": p, "value": e} for p, _, e in periods],
        "profit": [{"period": p, "value": round(r - e, 2)} for p, r, e in periods],
        "margins": [{"period": p, "margin": _pct(r - e, r)} for p, r, e in periods],
    }


@timing_logger("bi_quarterly_overview")
def build_quarterly_overview(session, year: int) -> dict:
    quarters = []
    for quarter in range(1, 5):
        start = datetime(year, (quarter - 1) * 3 + 1, 1)
        sold = session.query(Vehicle).filter(
            Vehicle.sale_date >= start, Vehicle.sale_date < start + relativedelta(months=3)
        ).all()
        revenue = _total(sold, "total_sale_price")
        profit = round(revenue - _total(sold, "purchase_price_total"), 2)
        quarters.append({
            "quarter": f"Q{quarter}",
            "revenue": revenue,
            "profit": profit,
            "unitsSold": len(sold),
            "profitMargin": _pct(profit, revenue),
        })
    return {"quarters": quarters}


def _facility_row(name: str, budget: float, outstanding: float) -> dict:
    return {
        "department_name": name,
        "budget_amount": budget,
        "dfc_outstanding_amount": round(outstanding, 2),
        "remaining_facility": round(budget - outstanding, 2),
        "facility_utilisation": _pct(outstanding, budget),
    }


@timing_logger("bi_inventory_analytics")
def build_inventory_analytics(session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    department = func.upper(Vehicle.department)
    totals = {code: {"stockCount": 0, "stockValue": 0.0, "soldCount": 0, "dfc_outstanding_total": 0.0}
              for code in DF_DEPARTMENTS}

    for code, status, count, value, outstanding in session.query(
        department,
        func.lower(Vehicle.sales_status),
        func.count(Vehicle.id),
        func.sum(Vehicle.purchase_price_total),
        func.sum(Vehicle.dfc_outstanding_amount),
    ).filter(department.in_(DF_DEPARTMENTS)).group_by(department, func.lower(Vehicle.sales_status)).all():
        row = totals[code]
        if status == "stock":
            row["stockCount"] += count
            row["stockValue"] += _num(value)
            row["dfc_outstanding_total"] += _num(outstanding)
        elif status == "sold":
            row["soldCount"] += count

    departments = [{"name": DEPARTMENT_NAMES[code], **totals[code]} for code in DF_DEPARTMENTS]
    df_funded = [
        _facility_row(DEPARTMENT_NAMES[code], DF_DEPARTMENT_BUDGETS.get(code, 0.0),
                      totals[code]["dfc_outstanding_total"])
        for code in DF_DEPARTMENTS
    ]
    df_funded.append(_facility_row(
        "Group Utilisation", DF_FACILITY_BUDGET,
        sum(row["dfc_outstanding_total"] for row in totals.values()),
    ))

    make_name = func.coalesce(Vehicle.make, "Unknown")
    by_make = session.query(make_name, func.count(Vehicle.id), func.sum(Vehicle.purchase_price_total)) \
        .filter(_is_stock()).group_by(make_name).order_by(func.count(Vehicle.id).desc()).all()
    stock_value = sum(_num(value) for _, _, value in by_make)

    aging = [{"ageRange": label, "count": 0, "value": 0.0} for label, _ in INVENTORY_AGE_BANDS]
    for days, value in stock_ages(session, now):
        days = days or 0
        band = next(i for i, (_, upper) in enumerate(INVENTORY_AGE_BANDS) if upper is None or days <= upper)
        aging[band]["count"] += 1
        aging[band]["value"] += value

    return {
        "departments": departments,
        "df_funded": df_funded,
        "composition": [
            {"make": make, "count": count, "value": _num(value), "percentage": _pct(_num(value), stock_value)}
            for make, count, value in by_make
        ],
        "agingAnalysis": aging,
    }


@timing_logger("bi_sales_trends")
def build_sales_trends(session, year: int) -> dict:
    sales, conversions = [], []
    for month in range(1, 13):
        start, end = month_window(year, month)
        units, revenue = session.query(func.count(Vehicle.id), func.sum(Vehicle.total_sale_price)).filter(
            Vehicle.sale_date >= start, Vehicle.sale_date < end
        ).one()
        revenue = _num(revenue)
        sales.append({
            "period": start.strftime("%b"),
            "units": units,
            "revenue": revenue,
            "avgPrice": round(revenue / units, 2) if units else 0,
        })

        leads, converted = session.query(
            func.count(Lead.id), func.coalesce(func.sum(case((Lead.pipeline_stage == "converted", 1), else_=0)), 0)
        ).filter(Lead.created_at >= start, Lead.created_at < end).one()
        conversions.append({
            "month": start.strftime("%b"),
            "leads": leads,
            "conversions": converted,
            "rate": _pct(converted, leads),
        })

    top = session.query(
        Vehicle.make, Vehicle.model, func.count(Vehicle.id), func.sum(Vehicle.total_sale_price)
    ).filter(Vehicle.sale_date.isnot(None)).group_by(Vehicle.make, Vehicle.model) \
        .order_by(func.count(Vehicle.id).desc()).limit(5).all()

    return {
        "salesData": sales,
        "topPerformers": [
            {"make": _label(make), "model": _label(model), "unitsSold": count, "revenue": _num(revenue)}
            for make, model, count, revenue in top
        ],
        "conversionRates": conversions,
    }


@timing_logger("bi_operational_metrics")
def build_operational_metrics(session, now: Optional[datetime] = None) -> dict:
    jobs = job_stats(session, now)
    total_staff = session.query(func.count(User.id)).scalar()
    active_staff = session.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar()
    return {
        "jobMetrics": {
            "totalJobs": jobs["totalJobs"],
            "completedJobs": jobs["completedJobs"],
            "averageDuration": jobs["averageCompletionHours"],
            "completionRate": _pct(jobs["completedJobs"], jobs["totalJobs"]),
        },
        "staffMetrics": {
            "totalStaff": total_staff,
            "activeStaff": active_staff,
            "utilizationRate": _pct(active_staff, total_staff),
        },
    }


@timing_logger("bi_performance_indicators")
def build_performance_indicators(session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    stats = build_dashboard_stats(session, now)
    weekly = stats["weeklySales"]
    month_start, month_end = month_window(now.year, now.month)
    sold = sold_between(session, month_start, month_end)
    revenue = _total(sold, "total_sale_price")

    return {
        "financial": {
            "revenueGrowth": _growth(weekly["thisWeekValue"], weekly["lastWeekValue"]),
            "profitMargin": _pct(stats["monthlySales"]["grossProfit"], stats["monthlySales"]["thisMonthValue"]),
            "costRatio": round(_total(sold, "purchase_price_total") / revenue, 4) if revenue else 0,
        },
        "customer": {
            "retention": repeat_customer_rate(session),
            "acquisition": _new_customers(session, month_start),
        },
    }


def _revenue_share(groups: Dict[str, List[Vehicle]], key: str, total: float) -> List[dict]:
    rows = [{key: name, "revenue": _total(group, "total_sale_price")} for name, group in groups.items()]
    for row in rows:
        row["percentage"] = _pct(row["revenue"], total)
    return sorted(rows, key=lambda row: row["revenue"], reverse=True)


def _profit_share(groups: Dict[str, List[Vehicle]], key: str) -> List[dict]:
    rows = []
    for name, group in groups.items():
        profit = _total(group, "total_gp")
        rows.append({key: name, "profit": profit, "margin": _pct(profit, _total(group, "total_sale_price"))})
    return sorted(rows, key=lambda row: row["profit"], reverse=True)


def _operational_cost(vehicles: Iterable[Vehicle]) -> float:
    return round(sum(
        _num(v.parts_cost) + _num(v.paint_labour_costs) + _num(v.warranty_costs) for v in vehicles
    ), 2)


@timing_logger("bi_financial_audit")
def build_financial_audit(session, now: Optional[datetime] = None) -> dict:
    """Revenue, cost, profit and cash flow for the running financial year."""
    now = now or datetime.utcnow()
    start, end = financial_year(now)
    sold = sold_between(session, start, end)
    total_revenue = _total(sold, "total_sale_price")
    by_make = _grouped(sold, lambda v: _label(v.make))
    by_department = _grouped(sold, _department)

    every_vehicle = session.query(Vehicle).all()
    total_cost = _total(every_vehicle, "purchase_price_total")
    cost_by_department = [
        {"department": name, "cost": _total(group, "purchase_price_total")}
        for name, group in _grouped(every_vehicle, _department).items()
    ]
    for row in cost_by_department:
        row["percentage"] = _pct(row["cost"], total_cost)

    ages = stock_ages(session, now)
    gross_profit = _total(sold, "total_gp")
    cash_in = round(sum(
        _num(v.cash_payment) + _num(v.bank_payment) + _num(v.finance_payment) for v in sold
    ), 2)
    cash_out = round(sum(_num(v.purchase_cash) + _num(v.purchase_bank_transfer) for v in sold), 2)

    return {
        "period": {"start": start.date().isoformat(), "end": (end - relativedelta(days=1)).date().isoformat()},
        "revenue_analysis": {
            "total_revenue": total_revenue,
            "cash_revenue": round(_total(sold, "cash_payment") + _total(sold, "bank_payment"), 2),
            "finance_revenue": round(_total(sold, "finance_payment") + _total(sold, "finance_settlement"), 2),
            "revenue_by_make": _revenue_share(by_make, "make", total_revenue),
            "revenue_by_department": _revenue_share(by_department, "department", total_revenue),
        },
        "cost_analysis": {
            "total_purchase_cost": total_cost,
            "total_operational_cost": _operational_cost(every_vehicle),
            "cost_by_department": sorted(cost_by_department, key=lambda row: row["cost"], reverse=True),
            "holding_costs": round(holding_cost(ages)),
            "average_cost_per_vehicle": round(total_cost / len(ages)) if ages else 0,
        },
        "profitability_analysis": {
            "gross_profit": gross_profit,
            "net_profit": _total(sold, "adj_gp"),
            "profit_margin": _pct(gross_profit, total_revenue),
            "profit_by_make": _profit_share(by_make, "make"),
            "profit_by_department": _profit_share(by_department, "department"),
        },
        "cash_flow_analysis": {
            "cash_inflow": cash_in,
            "cash_outflow": cash_out,
            "net_cash_flow": round(cash_in - cash_out, 2),
        },
    }


def _markup(vehicle: Vehicle) -> float:
    cost = _num(vehicle.purchase_price_total)
    return (_num(vehicle.total_sale_price) - cost) / cost * 100


@timing_logger("bi_vehicle_performance")
def build_vehicle_performance(session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    start, end = financial_year(now)
    sold = sold_between(session, start, end)

    timed = [v for v in sold if v.purchase_invoice_date is not None]
    days_by_make = defaultdict(list)
    for vehicle in timed:
        days_by_make[_label(vehicle.make)].append((vehicle.sale_date - vehicle.purchase_invoice_date).days)
    speed = sorted(
        ({"make": make, "avg_days": round(_mean(days)), "count": len(days)} for make, days in days_by_make.items()),
        key=lambda row: row["avg_days"],
    )
    stock_count = session.query(func.count(Vehicle.id)).filter(_is_stock()).scalar()

    priced = [v for v in sold if _num(v.purchase_price_total) > 0]
    bands = [{"range": label, "markups": []} for label, _ in MARKUP_BANDS]
    for vehicle in priced:
        if _num(vehicle.total_sale_price) <= 0:
            continue
        markup = _markup(vehicle)
        band = next(i for i, (_, upper) in enumerate(MARKUP_BANDS) if upper is None or markup < upper)
        bands[band]["markups"].append(markup)

    with_price = [v for v in sold if _num(v.total_sale_price) > 0]

    def cost_ratio(field):
        return round(_mean([_num(getattr(v, field)) / _num(v.total_sale_price) * 100 for v in with_price]), 1)

    return {
        "turnover_metrics": {
            "average_days_to_sell": round(_mean([d for days in days_by_make.values() for d in days])),
            "fastest_selling_makes": speed[:5],
            "slowest_selling_makes": list(reversed(speed[-5:])),
            "stock_turnover_rate": round(len(timed) / stock_count * 12, 2) if stock_count else 0,
        },
        "pricing_metrics": {
            "average_markup": round(_mean([_markup(v) for v in priced]), 1),
            "discount_analysis": [
                {"range": band["range"], "count": len(band["markups"]), "avg_discount": round(_mean(band["markups"]), 1)}
                for band in bands if band["markups"]
            ],
        },
        "quality_metrics": {
            "warranty_cost_ratio": cost_ratio("warranty_costs"),
            "parts_cost_ratio": cost_ratio("parts_cost"),
        },
    }


@timing_logger("bi_sales_management")
def build_sales_management(session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    start, end = financial_year(now)
    team = []
    for buyer, group in _grouped(
        (v for v in sold_between(session, start, end) if v.buyer), lambda v: v.buyer
    ).items():
        revenue = _total(group, "total_sale_price")
        team.append({
            "salesperson": buyer,
            "total_sales": len(group),
            "revenue_generated": revenue,
            "average_deal_size": round(revenue / len(group)),
        })
    team = sorted(team, key=lambda row: row["revenue_generated"], reverse=True)[:10]

    open_leads = session.query(Lead).filter(Lead.pipeline_stage.notin_(CLOSED_LEAD_STAGES)).all()
    by_stage = _grouped(open_leads, lambda lead: lead.pipeline_stage)

    month_start, month_end = month_window(now.year, now.month)
    revenue = _total(sold_between(session, month_start, month_end), "total_sale_price")
    days_in_month = (month_end - month_start).days

    return {
        "sales_team_performance": team,
        "sales_pipeline_analysis": {
            "leads_in_pipeline": len(open_leads),
            "pipeline_value": _total(open_leads, "budget_max"),
            "bottlenecks": [
                {
                    "stage": stage,
                    "stuck_count": len(leads),
                    "avg_days": round(_mean([(now - lead.created_at).days for lead in leads])),
                }
                for stage, leads in sorted(by_stage.items(), key=lambda item: len(item[1]), reverse=True)
            ],
        },
        "target_achievement": {
            "monthly_target": MONTHLY_REVENUE_TARGET,
            "current_achievement": revenue,
            "achievement_percentage": _pct(revenue, MONTHLY_REVENUE_TARGET),
            "projected_month_end": round(revenue / now.day * days_in_month, 2),
            "top_performers": [
                {"name": row["salesperson"], "achievement": row["revenue_generated"]} for row in team[:5]
            ],
        },
    }


@timing_logger("bi_executive_dashboard")
def build_executive_dashboard(session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    month_start, month_end = month_window(now.year, now.month)
    this_month = sold_between(session, month_start, month_end)
    last_year = _total(sold_between(session, now - relativedelta(years=1), now), "total_sale_price")
    year_before = _total(
        sold_between(session, now - relativedelta(years=2), now - relativedelta(years=1)), "total_sale_price"
    )

    recent = sold_between(session, now - relativedelta(months=3), now)
    sold_by_make = defaultdict(int)
    for vehicle in recent:
        sold_by_make[_label(vehicle.make)] += 1
    make_name = func.coalesce(Vehicle.make, "Unknown")
    stock_by_make = dict(
        session.query(make_name, func.count(Vehicle.id)).filter(_is_stock()).group_by(make_name).all()
    )

    return {
        "key_metrics": {
            "total_inventory_value": _num(
                session.query(func.sum(Vehicle.purchase_price_total)).filter(_is_stock()).scalar()
            ),
            "monthly_revenue": _total(this_month, "total_sale_price"),
            "monthly_profit": _total(this_month, "total_gp"),
            "yoy_growth": _growth(last_year, year_before),
        },
        "forecast": {
            "revenue_forecast_3m": _total(recent, "total_sale_price"),
            "profit_forecast_3m": _total(recent, "total_gp"),
            "inventory_needs": [
                {
                    "make": make,
                    "recommended_stock": math.ceil(count / 3 * INVENTORY_BUFFER),
                    "current_stock": stock_by_make.get(make, 0),
                }
                for make, count in sorted(sold_by_make.items(), key=lambda item: item[1], reverse=True)
            ],
        },
    }


@timing_logger("bi_monthly_data")
def build_monthly_data(session, year: int, month: int, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    start, end = month_window(year, month)
    sold = sold_between(session, start, end)

    revenue = _total(sold, "total_sale_price")
    units = len(sold)
    gross_profit = _total(sold, "total_gp")

    by_make = []
    for make, group in _grouped(sold, lambda v: _label(v.make)).items():
        make_revenue = _total(group, "total_sale_price")
        by_make.append({"make": make, "revenue": make_revenue, "units": len(group),
                        "avg_price": round(make_revenue / len(group), 2)})

    daily = defaultdict(list)
    for vehicle in sold:
        daily[vehicle.sale_date.day].append(vehicle)

    ages = stock_ages(session, now)
    average_age = mean_stock_age(ages)
    purchase_costs = _total(sold, "purchase_price_total")
    operational_costs = _operational_cost(sold)
    holding = holding_cost(ages)

    def counted(field):
        return sum(1 for v in sold if _num(getattr(v, field)) > 0)

    return {
        "month": start.strftime("%Y-%m"),
        "sales_summary": {
            "total_revenue": revenue,
            "total_units_sold": units,
            "gross_profit": gross_profit,
            "net_profit": _total(sold, "adj_gp"),
            "avg_selling_price": round(revenue / units, 2) if units else 0,
            "profit_margin": _pct(gross_profit, revenue),
        },
        "sales_by_make": sorted(by_make, key=lambda row: row["revenue"], reverse=True),
        "sales_by_department": [
            {"department": name, "revenue": _total(group, "total_sale_price"), "units": len(group)}
            for name, group in _grouped(sold, _department).items()
        ],
        "monthly_trends": [
            {"day": day, "revenue": _total(daily[day], "total_sale_price"), "units": len(daily[day])}
            for day in sorted(daily)
        ],
        "finance_breakdown": {
            "finance_units": counted("finance_payment"),
            "finance_value": _total(sold, "finance_payment"),
            "warranty_count": counted("warranty_costs"),
            "alloy_insurance_count": counted("alloy_insurance"),
            "gap_insurance_count": counted("gap_insurance"),
        },
        "cost_breakdown": {
            "purchase_costs": purchase_costs,
            "operational_costs": operational_costs,
            "holding_costs": round(holding),
            "total_costs": round(purchase_costs + operational_costs + holding),
        },
        "performance_metrics": {
            "vehicles_sold_vs_target": _pct(units, MONTHLY_UNITS_TARGET),
            "revenue_vs_target": _pct(revenue, MONTHLY_REVENUE_TARGET),
            "profit_vs_target": _pct(gross_profit, MONTHLY_PROFIT_TARGET),
            "inventory_turnover": round(365 / average_age, 2) if average_age else 0,
        },
    }
