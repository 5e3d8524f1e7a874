"""
Dashboard and stock age reporting over the vehicle master.
"""
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, desc

from dms.config import DF_FACILITY_BUDGET
from dms.constants import DF_DEPARTMENTS
from dms.models import Vehicle
from dms.utils.logging_utils import timing_logger

# 0.08% of purchase price per day, roughly 30% a year
DAILY_CARRYING_COST_RATE = 0.0008
SAVINGS_FACTOR = 0.3

AGE_RANGES = [
    ("0-30 days", 0, 30),
    ("31-60 days", 31, 60),
    ("61-90 days", 61, 90),
    ("91-180 days", 91, 180),
    ("180+ days", 181, None),
]


def _num(value) -> float:
    return float(value or 0)


def _sum(column):
    return func.coalesce(func.sum(column), 0)


def _is_stock():
    return func.lower(Vehicle.sales_status) == "stock"


def _is_sold():
    return func.lower(Vehicle.sales_status) == "sold"


def period_starts(now: datetime):
    """Start of this week (Sunday), last week, and this month, all at midnight."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    this_week = midnight - timedelta(days=(now.weekday() + 1) % 7)
    last_week = this_week - timedelta(days=7)
    this_month = midnight.replace(day=1)
    return this_week, last_week, this_month


def df_funded_summary(session, budget: float = DF_FACILITY_BUDGET) -> dict:
    """Dealer finance facility use by stock vehicles in the funded departments."""
    outstanding = session.query(_sum(Vehicle.dfc_outstanding_amount)).filter(
        func.upper(Vehicle.sales_status) == "STOCK",
        func.upper(Vehicle.department).in_(DF_DEPARTMENTS),
        Vehicle.dfc_outstanding_amount > 0,
    ).scalar()
    total_outstanding = _num(outstanding)

    return {
        "totalBudget": budget,
        "totalOutstanding": round(total_outstanding, 2),
        "totalUtilisation": round(total_outstanding / budget * 100, 2) if budget > 0 else 0,
        "remainingFacility": round(budget - total_outstanding, 2),
    }


@timing_logger("dashboard_stats")
def build_dashboard_stats(session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    this_week, last_week, this_month = period_starts(now)

    stock_value, stock_count = session.query(
        _sum(Vehicle.purchase_price_total), func.count(Vehicle.id)
    ).filter(_is_stock()).one()
    stock_makes = session.query(func.count(func.distinct(Vehicle.make))).filter(_is_stock()).scalar()

    def sales_between(start, end=None, inclusive_end=True):
        query = session.query(func.count(Vehicle.id), _sum(Vehicle.total_sale_price)).filter(
            Vehicle.sale_date >= start
        )
        if end is not None:
            query = query.filter(Vehicle.sale_date <= end if inclusive_end else Vehicle.sale_date < end)
        return query.one()

    this_week_count, this_week_value = sales_between(this_week, now)
    last_week_count, last_week_value = sales_between(last_week, this_week, inclusive_end=False)

    month_count, month_value, month_gp = session.query(
        func.count(Vehicle.id), _sum(Vehicle.total_sale_price), _sum(Vehicle.total_gp)
    ).filter(Vehicle.sale_date >= this_month).one()

    bought_count, bought_value, bought_px = session.query(
        func.count(Vehicle.id), _sum(Vehicle.purchase_price_total), _sum(Vehicle.purchase_px_value)
    ).filter(Vehicle.purchase_invoice_date >= this_month).one()

    awd_count, awd_value = session.query(
        func.count(Vehicle.id), _sum(Vehicle.purchase_price_total)
    ).filter(func.upper(Vehicle.collection_status) == "AWD").one()

    finance_count, finance_value = session.query(
        func.count(Vehicle.id), _sum(Vehicle.finance_payment)
    ).filter(
        Vehicle.sale_date >= this_month,
        _is_sold(),
        Vehicle.finance_payment > 0,
    ).one()

    make_name = func.coalesce(Vehicle.make, "Unknown")
    stock_by_make = session.query(
        make_name, func.count(Vehicle.id), _sum(Vehicle.purchase_price_total)
    ).filter(_is_stock()).group_by(make_name).order_by(desc(func.count(Vehicle.id))).all()

    sales_by_make = session.query(
        make_name, func.count(Vehicle.id)
    ).filter(_is_sold()).group_by(make_name).order_by(desc(func.count(Vehicle.id))).all()

    recent = session.query(Vehicle).filter(
        Vehicle.purchase_invoice_date.isnot(None)
    ).order_by(Vehicle.purchase_invoice_date.desc()).limit(10).all()

    return {
        "stockSummary": {
            "totalValue": _num(stock_value),
            "totalVehicles": stock_count,
            "totalMakes": stock_makes or 0,
        },
        "weeklySales": {
            "thisWeek": this_week_count,
            "thisWeekValue": _num(this_week_value),
            "lastWeek": last_week_count,
            "lastWeekValue": _num(last_week_value),
        },
        "monthlySales": {
            "thisMonth": month_count,
            "thisMonthValue": _num(month_value),
            "grossProfit": _num(month_gp),
        },
        "boughtSummary": {
            "monthlyBought": bought_count,
            "monthlyBoughtValue": _num(bought_value),
            "monthlyPxValue": _num(bought_px),
        },
        "carsIncoming": {
            "awdVehicles": awd_count,
            "awdTotalValue": _num(awd_value),
        },
        "financeSales": {
            "monthlyFinanceAmount": finance_count,
            "monthlyFinanceValue": _num(finance_value),
        },
        "dfFunded": df_funded_summary(session),
        "stockByMake": [
            {"makeName": make, "count": count, "value": _num(value)}
            for make, count, value in stock_by_make
        ],
        "recentPurchases": [
            {
                "id": v.id,
                "vehicleName": f"{v.make or ''} {v.model or ''}".strip(),
                "price": _num(v.purchase_price_total),
                "date": v.purchase_invoice_date.isoformat() + "Z",
            }
            for v in recent
        ],
        "salesByMake": [
            {"makeName": make, "soldCount": count} for make, count in sales_by_make
        ],
    }


def depreciation_risk(days_in_stock: int) -> str:
    if days_in_stock > 180:
        return "critical"
    if days_in_stock > 90:
        return "high"
    if days_in_stock > 60:
        return "medium"
    return "low"


@timing_logger("stock_age_analytics")
def build_stock_age_analytics(session, now: Optional[datetime] = None) -> dict:
    """Age, carrying cost and depreciation risk for every dated stock vehicle."""
    now = now or datetime.utcnow()
    vehicles = session.query(Vehicle).filter(
        _is_stock(), Vehicle.purchase_invoice_date.isnot(None)
    ).all()

    details = []
    for vehicle in vehicles:
        days = max((now - vehicle.purchase_invoice_date).days, 0)
        price = _num(vehicle.purchase_price_total)
        daily_cost = price * DAILY_CARRYING_COST_RATE
        details.append({
            "id": vehicle.id,
            "stock_number": vehicle.stock_number or "",
            "registration": vehicle.registration or "",
            "make": vehicle.make or "",
            "model": vehicle.model or "",
            "derivative": vehicle.derivative or "",
            "colour": vehicle.colour or "",
            "year": vehicle.year or 0,
            "mileage": vehicle.mileage or 0,
            "purchase_invoice_date": vehicle.purchase_invoice_date.date().isoformat(),
            "purchase_price_total": price,
            "days_in_stock": days,
            "carrying_cost_daily": round(daily_cost, 2),
            "total_carrying_cost": round(daily_cost * days, 2),
            "depreciation_risk": depreciation_risk(days),
        })

    total = len(details)
    total_value = sum(d["purchase_price_total"] for d in details)

    distribution = []
    for label, low, high in AGE_RANGES:
        in_range = [
            d for d in details
            if d["days_in_stock"] >= low and (high is None or d["days_in_stock"] <= high)
        ]
        distribution.append({
            "ageRange": label,
            "count": len(in_range),
            "totalValue": round(sum(d["purchase_price_total"] for d in in_range), 2),
            "percentage": round(len(in_range) / total * 100, 1) if total else 0,
        })

    by_make = defaultdict(list)
    for d in details:
        by_make[d["make"] or "Unknown"].append(d)
    make_performance = sorted(
        (
            {
                "make": make,
                "totalVehicles": len(group),
                "averageAge": round(sum(d["days_in_stock"] for d in group) / len(group)),
                "totalValue": round(sum(d["purchase_price_total"] for d in group), 2),
                "slowMovingCount": sum(1 for d in group if d["days_in_stock"] > 90),
            }
            for make, group in by_make.items()
        ),
        key=lambda row: row["totalVehicles"],
        reverse=True,
    )

    high_risk = [d for d in details if d["depreciation_risk"] in ("high", "critical")]

    return {
        "stockAgeSummary": {
            "totalStockVehicles": total,
            "totalStockValue": round(total_value, 2),
            "averageAgeInStock": round(sum(d["days_in_stock"] for d in details) / total) if total else 0,
            "slowMovingStock": sum(1 for d in details if d["days_in_stock"] > 90),
            "fastMovingStock": sum(1 for d in details if d["days_in_stock"] < 30),
        },
        "ageDistribution": distribution,
        "stockDetails": sorted(details, key=lambda d: d["days_in_stock"], reverse=True),
        "makePerformance": make_performance,
        "costAnalysis": {
            "totalCarryingCost": round(sum(d["total_carrying_cost"] for d in details), 2),
            "dailyCarryingCost": round(sum(d["carrying_cost_daily"] for d in details), 2),
            "potentialSavings": round(sum(d["total_carrying_cost"] for d in high_risk) * SAVINGS_FACTOR, 2),
            "highRiskValue": round(sum(d["purchase_price_total"] for d in high_risk), 2),
        },
    }
