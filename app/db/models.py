"""
SQLAlchemy ORM models for database tables.

All primary keys are string UUIDs generated in Python so rows can be
referenced (e.g. in audit records) before the session is flushed.
"""
from sqlalchemy import (
    Column, String, Text, DateTime, Index, ForeignKey, Boolean, Integer, Float, Enum, JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, declarative_base
from datetime import datetime, timezone
import enum
import uuid

Base = declarative_base()


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; DateTime columns store UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================
# Enums
# ============================================

class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    PARTICIPANT = "PARTICIPANT"


class RegistrationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    WAITLISTED = "WAITLISTED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentProvider(str, enum.Enum):
    STRIPE = "STRIPE"
    PAYPAL = "PAYPAL"
    MANUAL = "MANUAL"


class FieldType(str, enum.Enum):
    """Data types for custom camping option fields"""
    STRING = "STRING"
    MULTILINE_STRING = "MULTILINE_STRING"
    INTEGER = "INTEGER"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"


class DayOfWeek(str, enum.Enum):
    """Event days, in calendar order"""
    PRE_OPENING = "PRE_OPENING"
    OPENING_SUNDAY = "OPENING_SUNDAY"
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    CLOSING_SUNDAY = "CLOSING_SUNDAY"
    POST_EVENT = "POST_EVENT"


class NotificationType(str, enum.Enum):
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    EMAIL_AUTHENTICATION = "EMAIL_AUTHENTICATION"
    EMAIL_CHANGE = "EMAIL_CHANGE"
    PASSWORD_RESET = "PASSWORD_RESET"
    REGISTRATION_CONFIRMATION = "REGISTRATION_CONFIRMATION"
    REGISTRATION_ERROR = "REGISTRATION_ERROR"
    PAYMENT_CONFIRMATION = "PAYMENT_CONFIRMATION"
    SHIFT_REMINDER = "SHIFT_REMINDER"
    EMAIL_TEST = "EMAIL_TEST"


class NotificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class EmailAuditStatus(str, enum.Enum):
    SENT = "SENT"
    FAILED = "FAILED"
    DISABLED = "DISABLED"


class PaypalMode(str, enum.Enum):
    SANDBOX = "SANDBOX"
    LIVE = "LIVE"


class AdminAuditActionType(str, enum.Enum):
    REGISTRATION_EDIT = "REGISTRATION_EDIT"
    REGISTRATION_CANCEL = "REGISTRATION_CANCEL"
    PAYMENT_REFUND = "PAYMENT_REFUND"
    WORK_SHIFT_ADD = "WORK_SHIFT_ADD"
    WORK_SHIFT_REMOVE = "WORK_SHIFT_REMOVE"
    WORK_SHIFT_MODIFY = "WORK_SHIFT_MODIFY"
    CAMPING_OPTION_ADD = "CAMPING_OPTION_ADD"
    CAMPING_OPTION_REMOVE = "CAMPING_OPTION_REMOVE"
    CAMPING_OPTION_MODIFY = "CAMPING_OPTION_MODIFY"


class AdminAuditTargetType(str, enum.Enum):
    REGISTRATION = "REGISTRATION"
    USER = "USER"
    PAYMENT = "PAYMENT"
    WORK_SHIFT = "WORK_SHIFT"
    CAMPING_OPTION = "CAMPING_OPTION"


# ============================================
# Users
# ============================================

class User(Base):
    """
    Users table - participants, staff and admins.

    password is nullable: users created through the login-code flow
    never set one.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=False)
    password = Column(String(255), nullable=True)  # bcrypt hash
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    playa_name = Column(String(100), nullable=True)
    profile_picture = Column(String(500), nullable=True)
    phone = Column(String(50), nullable=True)
    city = Column(String(100), nullable=True)
    state_province = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    emergency_contact = Column(Text, nullable=True)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.PARTICIPANT)

    # Email verification and password reset
    is_email_verified = Column(Boolean, nullable=False, default=False)
    verification_token = Column(String(100), nullable=True)
    reset_token = Column(String(100), nullable=True)
    reset_token_expiry = Column(DateTime, nullable=True)

    # Passwordless login
    login_code = Column(String(10), nullable=True)
    login_code_expiry = Column(DateTime, nullable=True)

    # Per-user registration permissions
    allow_registration = Column(Boolean, nullable=False, default=True)
    allow_early_registration = Column(Boolean, nullable=False, default=False)
    allow_deferred_dues_payment = Column(Boolean, nullable=False, default=False)
    allow_no_job = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    registrations = relationship("Registration", back_populates="user", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="user", cascade="all, delete-orphan")
    camping_option_registrations = relationship(
        "CampingOptionRegistration", back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index('idx_users_role', 'role'),
    )


class UserNote(Base):
    """Staff notes attached to a user"""
    __tablename__ = "user_notes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    note = Column(Text, nullable=False)
    created_by_id = Column(String(36), ForeignKey('users.id'), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    created_by = relationship("User", foreign_keys=[created_by_id])

    __table_args__ = (
        Index('idx_user_notes_user_id', 'user_id'),
    )


# ============================================
# Site configuration
# ============================================

class CoreConfig(Base):
    """Single-row site configuration editable by admins"""
    __tablename__ = "core_config"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    camp_name = Column(String(200), nullable=False)
    camp_description = Column(Text, nullable=True)
    home_page_blurb = Column(Text, nullable=True)
    camp_banner_url = Column(String(500), nullable=True)
    camp_banner_alt_text = Column(String(500), nullable=True)
    camp_icon_url = Column(String(500), nullable=True)
    camp_icon_alt_text = Column(String(500), nullable=True)

    registration_year = Column(Integer, nullable=False)
    early_registration_open = Column(Boolean, nullable=False, default=False)
    registration_open = Column(Boolean, nullable=False, default=False)
    registration_terms = Column(Text, nullable=True)
    allow_deferred_dues_payment = Column(Boolean, nullable=False, default=False)

    stripe_enabled = Column(Boolean, nullable=False, default=False)
    stripe_public_key = Column(String(255), nullable=True)
    stripe_api_key = Column(String(255), nullable=True)
    stripe_webhook_secret = Column(String(255), nullable=True)

    paypal_enabled = Column(Boolean, nullable=False, default=False)
    paypal_client_id = Column(String(255), nullable=True)
    paypal_client_secret = Column(String(255), nullable=True)
    paypal_mode = Column(Enum(PaypalMode), nullable=False, default=PaypalMode.SANDBOX)

    email_enabled = Column(Boolean, nullable=False, default=False)
    smtp_host = Column(String(255), nullable=True)
    smtp_port = Column(Integer, nullable=True)
    smtp_username = Column(String(255), nullable=True)
    smtp_password = Column(String(255), nullable=True)
    smtp_use_ssl = Column(Boolean, nullable=False, default=False)
    sender_email = Column(String(255), nullable=True)
    sender_name = Column(String(255), nullable=True)
    reply_to_email = Column(String(255), nullable=True)

    time_zone = Column(String(64), nullable=False, default="UTC")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# ============================================
# Jobs and shifts
# ============================================

class JobCategory(Base):
    __tablename__ = "job_categories"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(200), nullable=True)
    staff_only = Column(Boolean, nullable=False, default=False)
    always_required = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    jobs = relationship("Job", back_populates="category")


class Shift(Base):
    """
    A time slot on one event day. start_time/end_time are wall-clock
    strings ("09:00") because the event calendar is expressed in days,
    not dates.
    """
    __tablename__ = "shifts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(String(10), nullable=False)
    end_time = Column(String(10), nullable=False)
    day_of_week = Column(Enum(DayOfWeek), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    jobs = relationship("Job", back_populates="shift")


class Job(Base):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(100), nullable=False)
    location = Column(String(200), nullable=False)
    category_id = Column(String(36), ForeignKey('job_categories.id'), nullable=False)
    shift_id = Column(String(36), ForeignKey('shifts.id'), nullable=False)
    max_registrations = Column(Integer, nullable=False, default=10)
    always_required = Column(Boolean, nullable=False, default=False)
    staff_only = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    category = relationship("JobCategory", back_populates="jobs")
    shift = relationship("Shift", back_populates="jobs")
    registrations = relationship("RegistrationJob", back_populates="job")

    __table_args__ = (
        Index('idx_jobs_category_id', 'category_id'),
        Index('idx_jobs_shift_id', 'shift_id'),
    )


# ============================================
# Registrations
# ============================================

class Registration(Base):
    """A user's sign-up for one event year"""
    __tablename__ = "registrations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    year = Column(Integer, nullable=False)
    status = Column(Enum(RegistrationStatus), nullable=False, default=RegistrationStatus.PENDING)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="registrations")
    jobs = relationship("RegistrationJob", back_populates="registration", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="registration")

    __table_args__ = (
        UniqueConstraint('user_id', 'year', name='uq_registrations_user_year'),
        Index('idx_registrations_status', 'status'),
        Index('idx_registrations_created_at', 'created_at'),
    )


class RegistrationJob(Base):
    """Join row: a work shift (job) held by a registration"""
    __tablename__ = "registration_jobs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    registration_id = Column(String(36), ForeignKey('registrations.id', ondelete='CASCADE'), nullable=False)
    job_id = Column(String(36), ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    registration = relationship("Registration", back_populates="jobs")
    job = relationship("Job", back_populates="registrations")

    __table_args__ = (
        UniqueConstraint('registration_id', 'job_id', name='uq_registration_jobs_pair'),
    )


# ============================================
# Camping options
# ============================================

class CampingOption(Base):
    __tablename__ = "camping_options"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    work_shifts_required = Column(Integer, nullable=False, default=0)
    participant_dues = Column(Float, nullable=False, default=0.0)
    staff_dues = Column(Float, nullable=False, default=0.0)
    max_signups = Column(Integer, nullable=False, default=0)  # 0 = unlimited
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    fields = relationship(
        "CampingOptionField",
        back_populates="camping_option",
        cascade="all, delete-orphan",
        order_by="CampingOptionField.order",
    )
    job_categories = relationship(
        "CampingOptionJobCategory", back_populates="camping_option", cascade="all, delete-orphan"
    )
    registrations = relationship("CampingOptionRegistration", back_populates="camping_option")


class CampingOptionJobCategory(Base):
    """Job categories whose shifts count toward a camping option's requirement"""
    __tablename__ = "camping_option_job_categories"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    camping_option_id = Column(String(36), ForeignKey('camping_options.id', ondelete='CASCADE'), nullable=False)
    job_category_id = Column(String(36), ForeignKey('job_categories.id', ondelete='CASCADE'), nullable=False)

    camping_option = relationship("CampingOption", back_populates="job_categories")
    job_category = relationship("JobCategory")

    __table_args__ = (
        UniqueConstraint('camping_option_id', 'job_category_id', name='uq_camping_option_job_category'),
    )


class CampingOptionField(Base):
    """Custom registration question attached to a camping option"""
    __tablename__ = "camping_option_fields"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    display_name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    data_type = Column(Enum(FieldType), nullable=False)
    required = Column(Boolean, nullable=False, default=False)
    max_length = Column(Integer, nullable=True)
    min_length = Column(Integer, nullable=True)
    min_value = Column(Float, nullable=True)
    max_value = Column(Float, nullable=True)
    order = Column(Integer, nullable=False, default=0)
    camping_option_id = Column(String(36), ForeignKey('camping_options.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    camping_option = relationship("CampingOption", back_populates="fields")


class CampingOptionRegistration(Base):
    """A user's sign-up for a camping option"""
    __tablename__ = "camping_option_registrations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    camping_option_id = Column(String(36), ForeignKey('camping_options.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="camping_option_registrations")
    camping_option = relationship("CampingOption", back_populates="registrations")
    field_values = relationship(
        "CampingOptionFieldValue", back_populates="registration", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index('idx_camping_option_registrations_user_id', 'user_id'),
        Index('idx_camping_option_registrations_option_id', 'camping_option_id'),
    )


class CampingOptionFieldValue(Base):
    """Answer to a custom field, stored as text"""
    __tablename__ = "camping_option_field_values"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    value = Column(Text, nullable=False)
    field_id = Column(String(36), ForeignKey('camping_option_fields.id', ondelete='CASCADE'), nullable=False)
    registration_id = Column(
        String(36), ForeignKey('camping_option_registrations.id', ondelete='CASCADE'), nullable=False
    )
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    field = relationship("CampingOptionField")
    registration = relationship("CampingOptionRegistration", back_populates="field_values")


# ============================================
# Payments
# ============================================

class Payment(Base):
    """
    Payments table - one row per charge attempt.

    provider_ref_id holds the Stripe checkout session / payment intent id,
    the PayPal order or capture id, or "manual:<reference>".
    """
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    provider = Column(Enum(PaymentProvider), nullable=False)
    provider_ref_id = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    registration_id = Column(String(36), ForeignKey('registrations.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="payments")
    registration = relationship("Registration", back_populates="payments")

    __table_args__ = (
        Index('idx_payments_user_id', 'user_id'),
        Index('idx_payments_provider_ref_id', 'provider_ref_id'),
        Index('idx_payments_status', 'status'),
    )


# ============================================
# Notifications and audit trails
# ============================================

class Notification(Base):
    """Rendered notification and its delivery state"""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    recipient = Column(String(255), nullable=False)
    type = Column(Enum(NotificationType), nullable=False)
    status = Column(Enum(NotificationStatus), nullable=False, default=NotificationStatus.PENDING)
    subject = Column(String(500), nullable=False)
    content = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('idx_notifications_user_id', 'user_id'),
    )


class EmailAudit(Base):
    """Every email send attempt, including ones skipped because email is disabled"""
    __tablename__ = "email_audit"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    recipient_email = Column(String(255), nullable=False)
    cc_emails = Column(Text, nullable=True)  # comma-separated
    bcc_emails = Column(Text, nullable=True)  # comma-separated
    subject = Column(String(500), nullable=False)
    notification_type = Column(Enum(NotificationType), nullable=False)
    status = Column(Enum(EmailAuditStatus), nullable=False)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index('idx_email_audit_created_at', 'created_at'),
        Index('idx_email_audit_status', 'status'),
    )


class AdminAudit(Base):
    """
    Administrative mutation log.

    Records written by one admin operation share a transaction_id so the
    whole edit/cancel can be reconstructed.
    """
    __tablename__ = "admin_audit"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    admin_user_id = Column(String(36), ForeignKey('users.id'), nullable=False)
    action_type = Column(Enum(AdminAuditActionType), nullable=False)
    target_record_type = Column(Enum(AdminAuditTargetType), nullable=False)
    target_record_id = Column(String(36), nullable=False)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)
    transaction_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    admin_user = relationship("User")

    __table_args__ = (
        Index('idx_admin_audit_target', 'target_record_type', 'target_record_id'),
        Index('idx_admin_audit_admin_user_id', 'admin_user_id'),
        Index('idx_admin_audit_transaction_id', 'transaction_id'),
        Index('idx_admin_audit_created_at', 'created_at'),
    )
