from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, ForeignKey, Boolean, BigInteger
from sqlalchemy.orm import relationship
from datetime import datetime
from dms.database import Base
from sqlalchemy import Enum, Index, UniqueConstraint, JSON
import enum


class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True)
    username = Column(String(80), unique=True, nullable=False, index=True)
    email = Column(String(120), unique=True, nullable=True, index=True)
    password_hash = Column(String(128), nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    profile_image_url = Column(String(1024))
    # admin, manager, salesperson, office_staff, marketing, showroom_staff
    role = Column(String(30), nullable=False, default="salesperson", index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    permissions = relationship("UserPermission", back_populates="user", cascade="all, delete-orphan")
    notification_preference = relationship(
        "NotificationPreference", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index('idx_users_active_role', 'is_active', 'role'),
    )

    @property
    def full_name(self):
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.username

    def __repr__(self):
        return f"<User {self.username}>"


class PageDefinition(Base):
    __tablename__ = 'page_definitions'
    id = Column(Integer, primary_key=True)
    page_key = Column(String(100), unique=True, nullable=False)
    page_name = Column(String(255), nullable=False)
    page_description = Column(Text)
    page_category = Column(String(50), nullable=False)  # main, management, reports, admin
    is_system_page = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<PageDefinition {self.page_key}>"


class UserPermission(Base):
    __tablename__ = 'user_permissions'
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete="CASCADE"), nullable=False, index=True)
    page_key = Column(String(100), ForeignKey('page_definitions.page_key', ondelete="CASCADE"),
                      nullable=False, index=True)
    permission_level = Column(String(20), nullable=False)  # hidden, view_only, full_access
    can_create = Column(Boolean, default=False, nullable=False)
    can_edit = Column(Boolean, default=False, nullable=False)
    can_delete = Column(Boolean, default=False, nullable=False)
    can_export = Column(Boolean, default=False, nullable=False)
    custom_restrictions = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="permissions")

    __table_args__ = (
        UniqueConstraint('user_id', 'page_key', name='uq_user_permission_page'),
    )


class VehicleMake(Base):
    __tablename__ = 'vehicle_makes'
    id = Column(Integer, primary_key=True)
    name = Column(String(100), unique=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    models = relationship("VehicleModel", back_populates="make", cascade="all, delete-orphan")


class VehicleModel(Base):
    __tablename__ = 'vehicle_models'
    id = Column(Integer, primary_key=True)
    make_id = Column(Integer, ForeignKey('vehicle_makes.id'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    make = relationship("VehicleMake", back_populates="models")


# Money fields shared by vehicle create/update/import and the financial calculator
VEHICLE_MONEY_FIELDS = [
    "purchase_px_value", "purchase_cash", "purchase_fees", "purchase_finance_settlement",
    "purchase_bank_transfer", "vat", "purchase_price_total",
    "bank_payment", "finance_payment", "finance_settlement", "px_value", "vat_payment",
    "cash_payment", "total_sale_price", "cash_o_b", "px_o_r_value", "road_tax", "dvla",
    "alloy_insurance", "paint_insurance", "gap_insurance", "parts_cost",
    "paint_labour_costs", "warranty_costs", "total_gp", "adj_gp", "dfc_outstanding_amount",
]

VEHICLE_DATE_FIELDS = ["date_of_registration", "purchase_invoice_date", "sale_date"]


class Vehicle(Base):
    """Vehicle master record. Column layout mirrors the stock book CSV."""
    __tablename__ = 'vehicles'

    id = Column(Integer, primary_key=True)
    stock_number = Column(String(50), unique=True, nullable=True)
    department = Column(String(50), index=True)
    buyer = Column(String(100))
    sales_status = Column(String(30), index=True)
    collection_status = Column(String(30), index=True)
    registration = Column(String(20), index=True)
    make = Column(String(100), index=True)
    model = Column(String(100))
    derivative = Column(String(255))
    colour = Column(String(50))
    mileage = Column(Integer)
    year = Column(Integer)
    date_of_registration = Column(DateTime)
    chassis_number = Column(String(50))

    # Purchase side
    purchase_invoice_date = Column(DateTime, index=True)
    purchase_px_value = Column(Numeric(10, 2))
    purchase_cash = Column(Numeric(10, 2))
    purchase_fees = Column(Numeric(10, 2))
    purchase_finance_settlement = Column(Numeric(10, 2))
    purchase_bank_transfer = Column(Numeric(10, 2))
    vat = Column(Numeric(10, 2))
    purchase_price_total = Column(Numeric(10, 2))

    # Sale side
    sale_date = Column(DateTime, index=True)
    bank_payment = Column(Numeric(10, 2))
    finance_payment = Column(Numeric(10, 2))
    finance_settlement = Column(Numeric(10, 2))
    px_value = Column(Numeric(10, 2))
    vat_payment = Column(Numeric(10, 2))
    cash_payment = Column(Numeric(10, 2))
    total_sale_price = Column(Numeric(10, 2))
    cash_o_b = Column(Numeric(10, 2))
    px_o_r_value = Column(Numeric(10, 2))
    road_tax = Column(Numeric(10, 2))
    dvla = Column(Numeric(10, 2))
    alloy_insurance = Column(Numeric(10, 2))
    paint_insurance = Column(Numeric(10, 2))
    gap_insurance = Column(Numeric(10, 2))

    # Costs and profit
    parts_cost = Column(Numeric(10, 2))
    paint_labour_costs = Column(Numeric(10, 2))
    warranty_costs = Column(Numeric(10, 2))
    total_gp = Column(Numeric(10, 2))
    adj_gp = Column(Numeric(10, 2))
    dfc_outstanding_amount = Column(Numeric(10, 2))

    payment_notes = Column(Text)
    customer_first_name = Column(String(100))
    customer_surname = Column(String(100))

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_vehicles_status_make', 'sales_status', 'make'),
        Index('idx_vehicles_status_date', 'sales_status', 'sale_date'),
    )

    def __repr__(self):
        return f"<Vehicle {self.stock_number} {self.registration}>"


class Customer(Base):
    __tablename__ = 'customers'
    id = Column(Integer, primary_key=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(120), index=True)
    phone = Column(String(30), index=True)
    mobile = Column(String(30))
    address = Column(String(255))
    city = Column(String(100))
    county = Column(String(100))
    postcode = Column(String(20), index=True)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    purchases = relationship("CustomerPurchase", back_populates="customer", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_customers_name_search', 'first_name', 'last_name'),
    )

    def __repr__(self):
        return f"<Customer {self.first_name} {self.last_name}>"


class CustomerPurchase(Base):
    __tablename__ = 'customer_purchases'
    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey('customers.id', ondelete="CASCADE"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=False)
    salesperson_id = Column(Integer, ForeignKey('users.id'))
    purchase_date = Column(DateTime, nullable=False)
    purchase_price = Column(Numeric(10, 2), nullable=False)
    finance_amount = Column(Numeric(10, 2))
    deposit_amount = Column(Numeric(10, 2))
    trade_in_value = Column(Numeric(10, 2))
    finance_provider = Column(String(100))
    finance_type = Column(String(50))  # HP, PCP, Personal Loan, Cash
    payment_method = Column(String(50))  # Cash, Finance, Part Exchange, Combination
    warranty_included = Column(Boolean, default=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="purchases")
    vehicle = relationship("Vehicle")


class Lead(Base):
    __tablename__ = 'leads'
    id = Column(Integer, primary_key=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(120))
    primary_phone = Column(String(30))
    secondary_phone = Column(String(30))

    assigned_vehicle_id = Column(Integer, ForeignKey('vehicles.id'))
    vehicle_interests = Column(Text)
    budget_min = Column(Numeric(10, 2))
    budget_max = Column(Numeric(10, 2))
    finance_required = Column(Boolean, default=False)
    trade_in_vehicle = Column(String(255))
    trade_in_value = Column(Numeric(10, 2))
    part_exchange_registration = Column(String(20))
    part_exchange_mileage = Column(String(20))
    part_exchange_damage = Column(Text)
    part_exchange_colour = Column(String(50))
    finance_preference_type = Column(String(20))

    lead_source = Column(String(50), nullable=False, index=True)
    pipeline_stage = Column(String(30), nullable=False, default="new", index=True)
    lead_quality = Column(String(20), default="unqualified", index=True)
    priority = Column(String(20), default="medium")

    assigned_salesperson_id = Column(Integer, ForeignKey('users.id'), index=True)
    converted_customer_id = Column(Integer, ForeignKey('customers.id'))
    lost_reason = Column(String(50))

    last_contact_date = Column(DateTime)
    next_follow_up_date = Column(DateTime)
    contact_attempts = Column(Integer, default=0)

    notes = Column(Text)
    internal_notes = Column(Text)
    marketing_consent = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assigned_salesperson = relationship("User", foreign_keys=[assigned_salesperson_id])
    assigned_vehicle = relationship("Vehicle", foreign_keys=[assigned_vehicle_id])

    def __repr__(self):
        return f"<Lead {self.first_name} {self.last_name} [{self.pipeline_stage}]>"


class Appointment(Base):
    __tablename__ = 'appointments'
    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey('customers.id'))
    lead_id = Column(Integer, ForeignKey('leads.id'))
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'))
    assigned_to_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    appointment_date = Column(DateTime, nullable=False, index=True)
    appointment_time = Column(String(5), nullable=False)  # HH:MM
    appointment_type = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default="scheduled")
    customer_name = Column(String(200))
    customer_phone = Column(String(30))
    customer_email = Column(String(120))
    notes = Column(Text)
    duration_minutes = Column(Integer, default=60)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assigned_to = relationship("User", foreign_keys=[assigned_to_id])


class Interaction(Base):
    __tablename__ = 'interactions'
    id = Column(Integer, primary_key=True)
    lead_id = Column(Integer, ForeignKey('leads.id'), index=True)
    customer_id = Column(Integer, ForeignKey('customers.id'), index=True)
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'))
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    interaction_type = Column(String(30), nullable=False)
    interaction_direction = Column(String(10), nullable=False)
    interaction_outcome = Column(String(30))
    interaction_subject = Column(String(255))
    interaction_notes = Column(Text, nullable=False)
    follow_up_required = Column(Boolean, default=False)
    follow_up_date = Column(DateTime)
    follow_up_priority = Column(String(20), default="medium")
    follow_up_notes = Column(Text)
    duration_minutes = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")


class Job(Base):
    __tablename__ = 'jobs'
    id = Column(Integer, primary_key=True)
    job_number = Column(String(30), unique=True, nullable=False)
    job_type = Column(String(30), nullable=False, index=True)
    job_category = Column(String(30), nullable=False)
    job_priority = Column(String(20), nullable=False, default="medium")
    job_status = Column(String(20), nullable=False, default="pending", index=True)

    vehicle_id = Column(Integer, ForeignKey('vehicles.id'))
    customer_id = Column(Integer, ForeignKey('customers.id'))
    lead_id = Column(Integer, ForeignKey('leads.id'))

    assigned_to_id = Column(Integer, ForeignKey('users.id'), index=True)
    created_by_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    supervisor_id = Column(Integer, ForeignKey('users.id'))

    scheduled_date = Column(DateTime, index=True)
    actual_start_date = Column(DateTime)
    actual_end_date = Column(DateTime)
    estimated_duration_hours = Column(Numeric(5, 2))
    actual_duration_hours = Column(Numeric(5, 2))

    address_line_1 = Column(String(255))
    address_line_2 = Column(String(255))
    city = Column(String(100))
    county = Column(String(100))
    postcode = Column(String(20))
    contact_name = Column(String(200))
    contact_phone = Column(String(30))

    notes = Column(Text)
    equipment_required = Column(JSON)
    skills_required = Column(JSON)

    estimated_cost = Column(Numeric(10, 2))
    actual_cost = Column(Numeric(10, 2))
    hourly_rate = Column(Numeric(10, 2))
    material_costs = Column(Numeric(10, 2))
    external_costs = Column(Numeric(10, 2))
    total_cost = Column(Numeric(10, 2))

    quality_check_required = Column(Boolean, default=False)
    quality_check_completed = Column(Boolean, default=False)
    quality_check_by_id = Column(Integer, ForeignKey('users.id'))
    quality_rating = Column(Integer)
    customer_satisfaction_rating = Column(Integer)

    completion_notes = Column(Text)
    issues_encountered = Column(Text)
    photos_taken = Column(JSON)
    documents_generated = Column(JSON)

    parent_job_id = Column(Integer, ForeignKey('jobs.id'))
    recurring_job_id = Column(Integer)
    external_reference = Column(String(100))

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    vehicle = relationship("Vehicle", foreign_keys=[vehicle_id])
    progress_entries = relationship("JobProgress", back_populates="job", cascade="all, delete-orphan",
                                    order_by="JobProgress.created_at")

    def __repr__(self):
        return f"<Job {self.job_number} [{self.job_status}]>"


class StaffSchedule(Base):
    __tablename__ = 'staff_schedules'
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    schedule_date = Column(DateTime, nullable=False, index=True)
    schedule_type = Column(String(30), nullable=False)
    shift_start_time = Column(String(5))
    shift_end_time = Column(String(5))
    break_duration_minutes = Column(Integer, default=60)
    location = Column(String(50))
    availability_status = Column(String(20), nullable=False, default="available")
    notes = Column(Text)
    is_recurring = Column(Boolean, default=False)
    recurring_pattern = Column(String(20))
    recurring_end_date = Column(DateTime)
    created_by_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class JobProgress(Base):
    __tablename__ = 'job_progress'
    id = Column(Integer, primary_key=True)
    job_id = Column(Integer, ForeignKey('jobs.id'), nullable=False, index=True)
    progress_stage = Column(String(30), nullable=False)
    stage_status = Column(String(20), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    stage_start_time = Column(DateTime, default=datetime.utcnow)
    stage_end_time = Column(DateTime)
    duration_minutes = Column(Integer)
    location_latitude = Column(Numeric(10, 8))
    location_longitude = Column(Numeric(11, 8))
    progress_notes = Column(Text)
    issues_encountered = Column(Text)
    photos_uploaded = Column(JSON)
    signature_required = Column(Boolean, default=False)
    signature_captured = Column(Boolean, default=False)
    signature_name = Column(String(200))
    signature_data = Column(Text)
    next_stage = Column(String(30))
    created_at = Column(DateTime, default=datetime.utcnow)

    job = relationship("Job", back_populates="progress_entries")


class VehicleLogistics(Base):
    __tablename__ = 'vehicle_logistics'
    id = Column(Integer, primary_key=True)
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=False, index=True)
    logistics_status = Column(String(20), nullable=False, default="pending")
    current_location = Column(String(255))
    current_location_address = Column(Text)
    destination_location = Column(String(255))
    destination_address = Column(Text)
    transport_method = Column(String(30))
    transport_company = Column(String(100))
    transport_reference = Column(String(100))
    driver_name = Column(String(200))
    driver_phone = Column(String(30))
    keys_location = Column(String(100))
    fuel_level = Column(String(20))
    condition_on_arrival = Column(Text)
    condition_on_departure = Column(Text)
    mileage_on_arrival = Column(Integer)
    mileage_on_departure = Column(Integer)
    service_book_present = Column(Boolean, default=False)
    spare_keys_count = Column(Integer, default=0)
    v5_document_present = Column(Boolean, default=False)
    mot_certificate_present = Column(Boolean, default=False)
    insurance_documents_present = Column(Boolean, default=False)
    logistics_notes = Column(Text)
    photos_on_arrival = Column(JSON)
    photos_on_departure = Column(JSON)
    assigned_to_id = Column(Integer, ForeignKey('users.id'))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class JobTemplate(Base):
    __tablename__ = 'job_templates'
    id = Column(Integer, primary_key=True)
    template_name = Column(String(200), nullable=False)
    template_category = Column(String(30), nullable=False)
    job_type = Column(String(30), nullable=False)
    estimated_duration_hours = Column(Numeric(5, 2))
    default_priority = Column(String(20), default="medium")
    required_skills = Column(JSON)
    required_equipment = Column(JSON)
    checklist_items = Column(JSON)
    instructions = Column(Text)
    quality_checks = Column(JSON)
    is_active = Column(Boolean, default=True)
    created_by_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BoughtVehicle(Base):
    """Vehicles bought but not yet processed into the vehicle master."""
    __tablename__ = 'bought_vehicles'
    id = Column(Integer, primary_key=True)
    stock_number = Column(String(50), nullable=False)
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    derivative = Column(String(255))
    colour = Column(String(50))
    mileage = Column(Integer)
    year = Column(Integer)
    registration = Column(String(20))
    location = Column(String(255))
    due_in = Column(DateTime)
    retail_price_1 = Column(Numeric(10, 2))
    retail_price_2 = Column(Numeric(10, 2))
    things_to_do = Column(Text)
    vehicle_images = Column(JSON)
    status = Column(String(20), default="AWAITING", index=True)  # AWAITING, ARRIVED, PROCESSED
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PurchaseInvoice(Base):
    """Uploaded purchase invoice document plus searchable metadata."""
    __tablename__ = 'purchase_invoices'
    id = Column(Integer, primary_key=True)
    buyer_name = Column(String(200), nullable=False)
    description = Column(Text)
    registration = Column(String(20), index=True)
    purchase_date = Column(DateTime)
    make = Column(String(100))
    model = Column(String(100))
    seller_type = Column(String(30))
    estimated_collection_date = Column(DateTime)
    outstanding_finance = Column(Boolean, default=False)
    part_exchange = Column(Boolean, default=False)
    document_filename = Column(String(255), nullable=False)
    document_path = Column(String(1024), nullable=False)
    document_size = Column(Integer)
    document_type = Column(String(10), nullable=False)
    upload_date = Column(DateTime, default=datetime.utcnow)
    tags = Column(JSON)
    status = Column(String(20), default="active", index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SalesInvoice(Base):
    """Uploaded sales invoice document plus searchable metadata."""
    __tablename__ = 'sales_invoices'
    id = Column(Integer, primary_key=True)
    seller_name = Column(String(200), nullable=False)
    registration = Column(String(20), index=True)
    date_of_sale = Column(DateTime)
    delivery_collection = Column(String(20))
    make = Column(String(100))
    model = Column(String(100))
    customer_name = Column(String(200), nullable=False)
    notes = Column(Text)
    paid_in_full = Column(Boolean, default=False)
    finance = Column(Boolean, default=False)
    part_exchange = Column(Boolean, default=False)
    documents_to_sign = Column(Boolean, default=False)
    document_filename = Column(String(255), nullable=False)
    document_path = Column(String(1024), nullable=False)
    document_size = Column(Integer)
    document_type = Column(String(10), nullable=False)
    upload_date = Column(DateTime, default=datetime.utcnow)
    tags = Column(JSON)
    status = Column(String(20), default="active", index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Invoice(Base):
    __tablename__ = 'invoices'
    id = Column(Integer, primary_key=True)
    invoice_no = Column(String(50), unique=True, nullable=False)
    tax_point = Column(String(50))
    check_no = Column(String(50))
    invoice_name_address = Column(Text)
    collection_address = Column(Text)
    issued_by = Column(String(200))
    invoiced_by = Column(String(200))
    inspection_image_url = Column(String(1024))

    make = Column(String(100))
    model = Column(String(100))
    chassis_no = Column(String(50))
    registration = Column(String(20), index=True)
    purchased_by = Column(String(200))
    mot_end = Column(DateTime)
    mileage = Column(Integer)
    dor = Column(String(20))
    colour = Column(String(50))
    interior_colour = Column(String(50))
    purchase_date = Column(DateTime)
    collection_date = Column(DateTime)

    bank_name = Column(String(100))
    account_number = Column(String(20))
    sort_code = Column(String(10))
    ref = Column(String(100))
    acc_name = Column(String(200))

    sub_total = Column(Numeric(14, 2))
    vat_at_20 = Column(Numeric(14, 2))
    total = Column(Numeric(14, 2))
    deposit_paid = Column(Numeric(14, 2))
    balance_due = Column(Numeric(14, 2))

    description_of_goods = Column(Text)
    notes = Column(Text)
    upload_date = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan",
                         order_by="InvoiceItem.id")
    condition = relationship("VehicleCondition", back_populates="invoice", uselist=False,
                             cascade="all, delete-orphan")


class InvoiceItem(Base):
    __tablename__ = 'invoice_items'
    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id'), nullable=False, index=True)
    description = Column(Text, nullable=False)
    qty = Column(Integer)
    unit_price = Column(Numeric(14, 2))
    actual_price = Column(Numeric(14, 2))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="items")


# Panel ratings on the inspection sheet, each 0-5
CONDITION_RATING_FIELDS = [
    f"{panel}_{aspect}"
    for panel in ("front", "rear", "left", "right", "top")
    for aspect in ("paint", "rust_dust", "dent")
] + ["wheels_front_left", "wheels_front_right", "wheels_rear_left", "wheels_rear_right"]


class VehicleCondition(Base):
    __tablename__ = 'vehicle_conditions'
    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id'), unique=True, nullable=False)
    front_paint = Column(Integer, default=0)
    front_rust_dust = Column(Integer, default=0)
    front_dent = Column(Integer, default=0)
    rear_paint = Column(Integer, default=0)
    rear_rust_dust = Column(Integer, default=0)
    rear_dent = Column(Integer, default=0)
    left_paint = Column(Integer, default=0)
    left_rust_dust = Column(Integer, default=0)
    left_dent = Column(Integer, default=0)
    right_paint = Column(Integer, default=0)
    right_rust_dust = Column(Integer, default=0)
    right_dent = Column(Integer, default=0)
    top_paint = Column(Integer, default=0)
    top_rust_dust = Column(Integer, default=0)
    top_dent = Column(Integer, default=0)
    wheels_front_left = Column(Integer, default=0)
    wheels_front_right = Column(Integer, default=0)
    wheels_rear_left = Column(Integer, default=0)
    wheels_rear_right = Column(Integer, default=0)
    windscreen_chipped = Column(Boolean, default=False)
    additional_comments = Column(Text)
    inspection_snapshot = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="condition")


class NotificationStatus(enum.Enum):
    pending = "pending"
    delivered = "delivered"
    read = "read"
    dismissed = "dismissed"


class Notification(Base):
    __tablename__ = 'notifications'
    id = Column(Integer, primary_key=True)
    recipient_user_id = Column(Integer, ForeignKey('users.id', ondelete="CASCADE"), nullable=False, index=True)
    notification_type = Column(String(30), nullable=False)  # inventory, sales, customer, staff, system
    event_type = Column(String(50), index=True)
    priority_level = Column(String(20), nullable=False, default="medium")
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    action_url = Column(String(255))
    related_entity_type = Column(String(30))
    related_entity_id = Column(Integer)
    status = Column(Enum(NotificationStatus), nullable=False, default=NotificationStatus.pending, index=True)
    delivered_at = Column(DateTime)
    read_at = Column(DateTime)
    dismissed_at = Column(DateTime)
    action_data = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_notifications_recipient_status', 'recipient_user_id', 'status'),
    )

    def __repr__(self):
        return f"<Notification {self.event_type} -> {self.recipient_user_id} [{self.status.value}]>"


class NotificationPreference(Base):
    __tablename__ = 'notification_preferences'
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete="CASCADE"), unique=True, nullable=False)

    notifications_enabled = Column(Boolean, default=True)
    push_notifications_enabled = Column(Boolean, default=True)
    email_notifications_enabled = Column(Boolean, default=True)
    sms_notifications_enabled = Column(Boolean, default=True)
    in_app_notifications_enabled = Column(Boolean, default=True)

    # Category preferences
    sales_notifications = Column(Boolean, default=True)
    inventory_notifications = Column(Boolean, default=True)
    customer_notifications = Column(Boolean, default=True)
    financial_notifications = Column(Boolean, default=True)
    system_notifications = Column(Boolean, default=True)
    staff_notifications = Column(Boolean, default=True)

    # Priority preferences
    urgent_notifications = Column(Boolean, default=True)
    high_notifications = Column(Boolean, default=True)
    medium_notifications = Column(Boolean, default=True)
    low_notifications = Column(Boolean, default=False)

    sound_enabled = Column(Boolean, default=True)
    vibration_enabled = Column(Boolean, default=True)
    quiet_hours_enabled = Column(Boolean, default=False)
    quiet_hours_start = Column(String(5), default="22:00")
    quiet_hours_end = Column(String(5), default="06:00")

    # Per-event switches
    vehicle_updated_enabled = Column(Boolean, default=True)
    vehicle_added_enabled = Column(Boolean, default=True)
    vehicle_sold_enabled = Column(Boolean, default=True)
    vehicle_bought_enabled = Column(Boolean, default=True)
    lead_created_enabled = Column(Boolean, default=True)
    appointment_booked_enabled = Column(Boolean, default=True)
    job_booked_enabled = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="notification_preference")


class PinnedMessage(Base):
    __tablename__ = 'pinned_messages'
    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    author_id = Column(Integer, ForeignKey('users.id', ondelete="CASCADE"), nullable=False, index=True)
    is_public = Column(Boolean, nullable=False, default=True)
    target_user_ids = Column(JSON)  # user ids that may see a non-public message
    priority = Column(String(10), nullable=False, default="normal")
    color_theme = Column(String(10), default="yellow")
    is_pinned = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    author = relationship("User")


class ActivityType(enum.Enum):
    viewed = "viewed"
    created = "created"
    edited = "edited"
    deleted = "deleted"


class ActivityLog(Base):
    __tablename__ = 'activity_logs'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    action = Column(Enum(ActivityType), nullable=False)
    entity_type = Column(String(50), nullable=False)  # "vehicle", "lead", "customer", "job"
    entity_id = Column(Integer, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)
    description = Column(Text)

    user = relationship("User")

    __table_args__ = (
        Index('idx_activity_entity', 'entity_type', 'entity_id'),
    )

    def __repr__(self):
        return f"<ActivityLog {self.action.value} {self.entity_type} {self.entity_id}>"


class Backup(Base):
    __tablename__ = "backups"

    id = Column(Integer, primary_key=True)

    # Backup metadata
    filename = Column(String(255), nullable=False, index=True)
    backup_type = Column(String(20), default="manual", nullable=False)  # manual|scheduled
    status = Column(String(20), default="pending", nullable=False, index=True)  # pending|in_progress|completed|failed

    # Storage location
    storage_key = Column(String(1024), nullable=True)
    size_bytes = Column(BigInteger, nullable=True)
    checksum = Column(String(64), nullable=True)  # SHA-256 of the compressed dump

    database_name = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # RQ job ID
    job_id = Column(String(100), nullable=True, index=True)

    error_message = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey('users.id'), nullable=True)

    def __repr__(self):
        return f"<Backup {self.filename} [{self.status}]>"
