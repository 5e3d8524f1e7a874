from dms.routes.auth import auth_bp
from dms.routes.users import users_bp
from dms.routes.permissions import permissions_bp
from dms.routes.activity import activity_bp
from dms.routes.vehicles import vehicles_bp
from dms.routes.vehicle_makes import vehicle_makes_bp
from dms.routes.customers import customers_bp, customer_purchases_bp
from dms.routes.leads import leads_bp
from dms.routes.interactions import interactions_bp
from dms.routes.appointments import appointments_bp
from dms.routes.jobs import jobs_bp
from dms.routes.logistics import staff_schedules_bp, vehicle_logistics_bp, job_templates_bp
from dms.routes.bought_vehicles import bought_vehicles_bp
from dms.routes.invoices import invoices_bp
from dms.routes.documents import purchase_invoices_bp, sales_invoices_bp
from dms.routes.notifications import notifications_bp
from dms.routes.pins import pins_bp
from dms.routes.dashboard import dashboard_bp, stock_age_bp
from dms.routes.reports import reports_bp
from dms.routes.utils import utils_bp, health_bp
from dms.routes.admin_backups import admin_backups_bp
from dms.routes.realtime import realtime_bp

BLUEPRINTS = [
    auth_bp,
    users_bp,
    permissions_bp,
    activity_bp,
    vehicles_bp,
    vehicle_makes_bp,
    customers_bp,
    customer_purchases_bp,
    leads_bp,
    interactions_bp,
    appointments_bp,
    jobs_bp,
    staff_schedules_bp,
    vehicle_logistics_bp,
    job_templates_bp,
    bought_vehicles_bp,
    invoices_bp,
    purchase_invoices_bp,
    sales_invoices_bp,
    notifications_bp,
    pins_bp,
    dashboard_bp,
    stock_age_bp,
    reports_bp,
    utils_bp,
    health_bp,
    admin_backups_bp,
    realtime_bp,
]


def register_blueprints(app):
    for bp in BLUEPRINTS:
        app.register_blueprint(bp)
