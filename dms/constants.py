# User roles
ROLE_OPTIONS = ["admin", "manager", "salesperson", "office_staff", "marketing", "showroom_staff"]

# Vehicle statuses
SALES_STATUS_OPTIONS = ["Stock", "Sold", "Autolab"]
COLLECTION_STATUS_OPTIONS = ["On Site", "AWD"]

# Departments on the dealer finance facility
DF_DEPARTMENTS = ["AL", "MSR", "ALS"]
DEPARTMENT_NAMES = {"AL": "AL Department", "MSR": "MSR Department", "ALS": "Autolab Select"}

# Lead pipeline
PIPELINE_STAGES = [
    "new",
    "contacted",
    "qualified",
    "test_drive_booked",
    "test_drive_completed",
    "negotiating",
    "deposit_taken",
    "finance_pending",
    "converted",
    "lost",
]

LEAD_QUALITY_OPTIONS = ["unqualified", "cold", "warm", "hot"]

PRIORITY_OPTIONS = ["low", "medium", "high", "urgent"]

LEAD_SOURCE_OPTIONS = [
    "AutoTrader",
    "Facebook Marketplace",
    "Website",
    "Walk-in",
    "Referral",
    "Phone Inquiry",
    "Other",
]

LOST_REASON_OPTIONS = [
    "price",
    "financing",
    "vehicle_not_suitable",
    "bought_elsewhere",
    "not_ready",
    "no_response",
]

FINANCE_PREFERENCE_OPTIONS = ["HP", "PCP", "Cash", "Combination"]

# Interactions
INTERACTION_TYPES = [
    "phone_call",
    "email",
    "sms",
    "in_person",
    "test_drive",
    "viewing",
    "follow_up",
    "quote_sent",
    "finance_discussion",
    "objection_handling",
    "closing_attempt",
]
INTERACTION_DIRECTIONS = ["inbound", "outbound"]
INTERACTION_OUTCOMES = [
    "positive",
    "neutral",
    "negative",
    "no_answer",
    "callback_requested",
    "appointment_scheduled",
    "sale_progressed",
    "lost_lead",
]

# Appointments
APPOINTMENT_TYPES = ["viewing", "test_drive", "collection", "drop_off", "other"]
APPOINTMENT_STATUS_OPTIONS = ["scheduled", "completed", "cancelled", "no_show"]

# Jobs
JOB_TYPES = [
    "delivery",
    "collection",
    "valuation",
    "inspection",
    "repair",
    "service",
    "mot",
    "preparation",
    "photography",
    "transport",
]
JOB_CATEGORIES = ["logistics", "workshop", "admin", "external"]
JOB_PRIORITY_OPTIONS = ["low", "medium", "high", "urgent", "critical"]
JOB_STATUS_OPTIONS = ["pending", "assigned", "in_progress", "on_hold", "completed", "cancelled", "failed"]
OPEN_JOB_STATUSES = ["pending", "assigned", "in_progress", "on_hold"]

SCHEDULE_TYPES = ["regular_shift", "overtime", "holiday", "sick_leave", "training", "meeting"]
AVAILABILITY_STATUS_OPTIONS = ["available", "busy", "unavailable", "on_job", "on_break"]

PROGRESS_STAGES = ["started", "in_transit", "arrived", "working", "paused", "quality_check", "completed"]
STAGE_STATUS_OPTIONS = ["pending", "in_progress", "completed", "failed", "skipped"]

LOGISTICS_STATUS_OPTIONS = ["pending", "scheduled", "in_transit", "delivered", "collected", "storage"]

# Bought vehicles
BOUGHT_VEHICLE_STATUS_OPTIONS = ["AWAITING", "ARRIVED", "PROCESSED"]

# Invoice documents
DOCUMENT_STATUS_OPTIONS = ["active", "archived", "deleted"]
ALLOWED_DOCUMENT_TYPES = ["pdf", "doc", "docx", "xls", "xlsx", "jpg", "jpeg", "png"]
SELLER_TYPES = ["private", "dealer", "trade", "auction", "lease_return"]

# Pin board
PIN_PRIORITY_OPTIONS = ["low", "normal", "high", "urgent"]
PIN_COLOR_OPTIONS = ["yellow", "blue", "green", "red", "purple"]

# Page permissions
PERMISSION_LEVELS = ["hidden", "view_only", "full_access"]

DEFAULT_PAGES = [
    ("dashboard", "Dashboard", "main", True),
    ("vehicle-master", "Vehicle Master", "main", False),
    ("sold-stock", "Sold Stock", "main", False),
    ("current-stock", "Current Stock", "main", False),
    ("stock-age", "Stock Age", "reports", False),
    ("bought-vehicles", "Bought Vehicles", "main", False),
    ("customers", "Customers", "main", False),
    ("leads", "Leads", "main", False),
    ("appointments", "Appointments", "main", False),
    ("calendar", "Calendar", "main", False),
    ("schedule", "Schedule", "management", False),
    ("job-history", "Job History", "management", False),
    ("purchase-invoice", "Purchase Invoices", "management", False),
    ("sales-invoice", "Sales Invoices", "management", False),
    ("reports", "Reports", "reports", False),
    ("notifications", "Notifications", "main", True),
    ("user-management", "User Management", "admin", False),
    ("settings", "Settings", "admin", False),
]

# Notifications
NOTIFICATION_STATUS_OPTIONS = ["pending", "delivered", "read", "dismissed"]
