"""
Technical Services Project Workflow – Domain Models

Aggregate root:
- Project (status state machine, progress, team, completion dates)

1:1 satellite documents keyed by project:
- Estimation (materials / labour / terms lines, two-stage review)
- Quotation (items + VAT, single-stage approval)
- Lpo (client purchase order, items + uploaded documents)
- Expense (material / miscellaneous / labour costs)
- WorkCompletion (completion certificate + site pictures)

Append-only:
- Comment (activity log entry for every gated transition)

IMPORTANT:
- Totals are derived. Every document exposes recalc_totals(), and the workflow
  calls it before each write. Stored totals are never taken from the request.
"""

from __future__ import annotations

import enum
from datetime import datetime

from flask_login import UserMixin
from sqlalchemy.ext.orderinglist import ordering_list
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db
from .rollup import (
    ExpenseTotals,
    EstimationTotals,
    QuotationTotals,
    estimation_totals,
    expense_totals,
    line_total,
    lpo_total,
    money,
    quotation_totals,
)
from .status import ProjectStatus


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _iso(value):
    return value.isoformat() if value is not None else None


class Role(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    ENGINEER = "engineer"
    FINANCE = "finance"
    WORKER = "worker"
    DRIVER = "driver"


ADMIN_ROLES = (Role.SUPER_ADMIN.value, Role.ADMIN.value)


class ActivityType(str, enum.Enum):
    APPROVAL = "approval"
    REJECTION = "rejection"
    CHECK = "check"
    GENERAL = "general"
    PROGRESS_UPDATE = "progress_update"


# ---------------------------------------------------------------------
# Users & clients
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """System login user. Role drives team assignment and notifications."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(120), nullable=False, default="")
    last_name = db.Column(db.String(120), nullable=False, default="")

    role = db.Column(db.String(20), nullable=False, default=Role.ENGINEER.value, index=True)

    # Used by the expense labour rollup
    daily_salary = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.username

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "daily_salary": money(self.daily_salary),
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"


class Client(db.Model):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)

    client_name = db.Column(db.String(255), nullable=False, index=True)
    email = db.Column(db.String(255))
    client_address = db.Column(db.String(255))
    mobile_number = db.Column(db.String(50))
    trn_number = db.Column(db.String(50))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_name": self.client_name,
            "email": self.email,
            "client_address": self.client_address,
            "mobile_number": self.mobile_number,
            "trn_number": self.trn_number,
        }

    def __repr__(self):
        return f"<Client {self.client_name}>"


# ---------------------------------------------------------------------
# Project (aggregate root)
# ---------------------------------------------------------------------
project_workers = db.Table(
    "project_workers",
    db.Column("project_id", db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)

    project_number = db.Column(db.String(30), nullable=False, unique=True, index=True)
    project_name = db.Column(db.String(100), nullable=False, index=True)
    project_description = db.Column(db.String(500))

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    location = db.Column(db.String(255), nullable=False)
    building = db.Column(db.String(255), nullable=False)
    apartment_number = db.Column(db.String(50), nullable=False)

    status = db.Column(db.String(30), nullable=False, default=ProjectStatus.DRAFT.value, index=True)
    progress = db.Column(db.Integer, nullable=False, default=0, index=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Engineer in charge
    assigned_to_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_driver_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    work_start_date = db.Column(db.Date)
    work_end_date = db.Column(db.Date)
    completion_date = db.Column(db.Date)
    handover_date = db.Column(db.Date)
    acceptance_date = db.Column(db.Date)

    # For some customers
    grn_number = db.Column(db.String(100))

    invoice_date = db.Column(db.Date)
    invoice_remarks = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = db.relationship("Client", backref=db.backref("projects", lazy=True))
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    updated_by = db.relationship("User", foreign_keys=[updated_by_id])
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_id])
    assigned_driver = db.relationship("User", foreign_keys=[assigned_driver_id])
    assigned_workers = db.relationship("User", secondary=project_workers, lazy="selectin")

    estimation = db.relationship("Estimation", back_populates="project", uselist=False, cascade="all, delete-orphan")
    quotation = db.relationship("Quotation", back_populates="project", uselist=False, cascade="all, delete-orphan")
    lpo = db.relationship("Lpo", back_populates="project", uselist=False, cascade="all, delete-orphan")
    expense = db.relationship("Expense", back_populates="project", uselist=False, cascade="all, delete-orphan")
    work_completion = db.relationship(
        "WorkCompletion", back_populates="project", uselist=False, cascade="all, delete-orphan"
    )
    comments = db.relationship(
        "Comment",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Comment.created_at.desc()",
    )

    @property
    def status_enum(self) -> ProjectStatus:
        return ProjectStatus(self.status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_number": self.project_number,
            "project_name": self.project_name,
            "project_description": self.project_description,
            "client": self.client.to_dict() if self.client else None,
            "location": self.location,
            "building": self.building,
            "apartment_number": self.apartment_number,
            "status": self.status,
            "progress": self.progress,
            "assigned_to": self.assigned_to.to_dict() if self.assigned_to else None,
            "assigned_workers": [w.to_dict() for w in self.assigned_workers],
            "assigned_driver": self.assigned_driver.to_dict() if self.assigned_driver else None,
            "work_start_date": _iso(self.work_start_date),
            "work_end_date": _iso(self.work_end_date),
            "completion_date": _iso(self.completion_date),
            "handover_date": _iso(self.handover_date),
            "acceptance_date": _iso(self.acceptance_date),
            "grn_number": self.grn_number,
            "invoice_date": _iso(self.invoice_date),
            "invoice_remarks": self.invoice_remarks,
            "created_by_id": self.created_by_id,
            "updated_by_id": self.updated_by_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Project {self.project_number} [{self.status}]>"


# ---------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------
class Estimation(db.Model):
    __tablename__ = "estimations"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    estimation_number = db.Column(db.String(30), nullable=False, index=True)

    work_start_date = db.Column(db.Date)
    work_end_date = db.Column(db.Date)
    work_days = db.Column(db.Integer, nullable=False, default=0)
    daily_start_time = db.Column(db.String(5), nullable=False, default="09:00")
    daily_end_time = db.Column(db.String(5), nullable=False, default="18:00")
    valid_until = db.Column(db.Date, nullable=False)
    payment_due_by = db.Column(db.Integer, nullable=False, default=0)
    subject = db.Column(db.String(255))

    estimated_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    quotation_amount = db.Column(db.Numeric(12, 2))
    commission_amount = db.Column(db.Numeric(12, 2))
    profit = db.Column(db.Numeric(12, 2))

    prepared_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    checked_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    approved_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))

    is_checked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    is_approved = db.Column(db.Boolean, nullable=False, default=False, index=True)
    approval_comment = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship("Project", back_populates="estimation")
    prepared_by = db.relationship("User", foreign_keys=[prepared_by_id])
    checked_by = db.relationship("User", foreign_keys=[checked_by_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_id])

    materials = db.relationship(
        "EstimationMaterial",
        order_by="EstimationMaterial.line_no",
        collection_class=ordering_list("line_no"),
        cascade="all, delete-orphan",
    )
    labour = db.relationship(
        "EstimationLabour",
        order_by="EstimationLabour.line_no",
        collection_class=ordering_list("line_no"),
        cascade="all, delete-orphan",
    )
    terms = db.relationship(
        "EstimationTerm",
        order_by="EstimationTerm.line_no",
        collection_class=ordering_list("line_no"),
        cascade="all, delete-orphan",
    )

    def recalc_totals(self) -> EstimationTotals:
        for line in self.materials:
            line.total = line_total(line.quantity, line.unit_price)
        for line in self.labour:
            line.total = line_total(line.days, line.price)
        for line in self.terms:
            line.total = line_total(line.quantity, line.unit_price)

        totals = estimation_totals(
            self.materials,
            self.labour,
            self.terms,
            quotation_amount=self.quotation_amount,
            commission_amount=self.commission_amount,
        )
        self.estimated_amount = totals.estimated_amount
        self.profit = totals.profit
        return totals

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "estimation_number": self.estimation_number,
            "work_start_date": _iso(self.work_start_date),
            "work_end_date": _iso(self.work_end_date),
            "work_days": self.work_days,
            "daily_start_time": self.daily_start_time,
            "daily_end_time": self.daily_end_time,
            "valid_until": _iso(self.valid_until),
            "payment_due_by": self.payment_due_by,
            "subject": self.subject,
            "materials": [m.to_dict() for m in self.materials],
            "labour": [l.to_dict() for l in self.labour],
            "terms_and_conditions": [t.to_dict() for t in self.terms],
            "estimated_amount": money(self.estimated_amount),
            "quotation_amount": money(self.quotation_amount) if self.quotation_amount is not None else None,
            "commission_amount": money(self.commission_amount) if self.commission_amount is not None else None,
            "profit": money(self.profit) if self.profit is not None else None,
            "prepared_by_id": self.prepared_by_id,
            "checked_by_id": self.checked_by_id,
            "approved_by_id": self.approved_by_id,
            "is_checked": self.is_checked,
            "is_approved": self.is_approved,
            "approval_comment": self.approval_comment,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class EstimationMaterial(db.Model):
    __tablename__ = "estimation_materials"

    id = db.Column(db.Integer, primary_key=True)
    estimation_id = db.Column(
        db.Integer, db.ForeignKey("estimations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_no = db.Column(db.Integer)

    description = db.Column(db.Text, nullable=False)
    uom = db.Column(db.String(50), nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "uom": self.uom,
            "quantity": money(self.quantity),
            "unit_price": money(self.unit_price),
            "total": money(self.total),
        }


class EstimationLabour(db.Model):
    __tablename__ = "estimation_labour"

    id = db.Column(db.Integer, primary_key=True)
    estimation_id = db.Column(
        db.Integer, db.ForeignKey("estimations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_no = db.Column(db.Integer)

    designation = db.Column(db.String(255), nullable=False)
    days = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "designation": self.designation,
            "days": money(self.days),
            "price": money(self.price),
            "total": money(self.total),
        }


class EstimationTerm(db.Model):
    __tablename__ = "estimation_terms"

    id = db.Column(db.Integer, primary_key=True)
    estimation_id = db.Column(
        db.Integer, db.ForeignKey("estimations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_no = db.Column(db.Integer)

    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "quantity": money(self.quantity),
            "unit_price": money(self.unit_price),
            "total": money(self.total),
        }


# ---------------------------------------------------------------------
# Quotation
# ---------------------------------------------------------------------
class Quotation(db.Model):
    __tablename__ = "quotations"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    estimation_id = db.Column(
        db.Integer, db.ForeignKey("estimations.id", ondelete="SET NULL"), nullable=True, index=True
    )

    quotation_number = db.Column(db.String(30), nullable=False, unique=True)
    date = db.Column(db.Date, nullable=False, default=lambda: datetime.utcnow().date())
    valid_until = db.Column(db.Date, nullable=False)

    scope_of_work = db.Column(db.JSON, nullable=False, default=list)
    terms_and_conditions = db.Column(db.JSON, nullable=False, default=list)

    vat_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=5)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    vat_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    net_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    prepared_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    approved_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    is_approved = db.Column(db.Boolean, nullable=False, default=False, index=True)
    approval_comment = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship("Project", back_populates="quotation")
    estimation = db.relationship("Estimation")
    prepared_by = db.relationship("User", foreign_keys=[prepared_by_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_id])

    items = db.relationship(
        "QuotationItem",
        order_by="QuotationItem.line_no",
        collection_class=ordering_list("line_no"),
        cascade="all, delete-orphan",
    )

    def recalc_totals(self) -> QuotationTotals:
        for item in self.items:
            item.total_price = line_total(item.quantity, item.unit_price)

        totals = quotation_totals(self.items, self.vat_percentage)
        self.subtotal = totals.subtotal
        self.vat_amount = totals.vat_amount
        self.net_amount = totals.net_amount
        return totals

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "estimation_id": self.estimation_id,
            "quotation_number": self.quotation_number,
            "date": _iso(self.date),
            "valid_until": _iso(self.valid_until),
            "scope_of_work": list(self.scope_of_work or []),
            "terms_and_conditions": list(self.terms_and_conditions or []),
            "items": [i.to_dict() for i in self.items],
            "vat_percentage": money(self.vat_percentage),
            "subtotal": money(self.subtotal),
            "vat_amount": money(self.vat_amount),
            "net_amount": money(self.net_amount),
            "prepared_by_id": self.prepared_by_id,
            "approved_by_id": self.approved_by_id,
            "is_approved": self.is_approved,
            "approval_comment": self.approval_comment,
        }


class QuotationItem(db.Model):
    __tablename__ = "quotation_items"

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(
        db.Integer, db.ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_no = db.Column(db.Integer)

    description = db.Column(db.Text, nullable=False)
    uom = db.Column(db.String(50), nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    image_key = db.Column(db.String(500))
    image_url = db.Column(db.String(500))

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "uom": self.uom,
            "quantity": money(self.quantity),
            "unit_price": money(self.unit_price),
            "total_price": money(self.total_price),
            "image": {"key": self.image_key, "url": self.image_url} if self.image_key else None,
        }


# ---------------------------------------------------------------------
# LPO (client purchase order)
# ---------------------------------------------------------------------
class Lpo(db.Model):
    __tablename__ = "lpos"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    lpo_number = db.Column(db.String(100), nullable=False, index=True)
    lpo_date = db.Column(db.Date, nullable=False, index=True)
    supplier = db.Column(db.String(255), nullable=False, index=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship("Project", back_populates="lpo")
    created_by = db.relationship("User")

    items = db.relationship(
        "LpoItem",
        order_by="LpoItem.line_no",
        collection_class=ordering_list("line_no"),
        cascade="all, delete-orphan",
    )
    documents = db.relationship("LpoDocument", cascade="all, delete-orphan")

    def recalc_totals(self):
        for item in self.items:
            item.total_price = line_total(item.quantity, item.unit_price)
        self.total_amount = lpo_total(self.items)
        return self.total_amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "lpo_number": self.lpo_number,
            "lpo_date": _iso(self.lpo_date),
            "supplier": self.supplier,
            "items": [i.to_dict() for i in self.items],
            "documents": [d.to_dict() for d in self.documents],
            "total_amount": money(self.total_amount),
            "created_by_id": self.created_by_id,
        }


class LpoItem(db.Model):
    __tablename__ = "lpo_items"

    id = db.Column(db.Integer, primary_key=True)
    lpo_id = db.Column(db.Integer, db.ForeignKey("lpos.id", ondelete="CASCADE"), nullable=False, index=True)
    line_no = db.Column(db.Integer)

    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "quantity": money(self.quantity),
            "unit_price": money(self.unit_price),
            "total_price": money(self.total_price),
        }


class LpoDocument(db.Model):
    __tablename__ = "lpo_documents"

    id = db.Column(db.Integer, primary_key=True)
    lpo_id = db.Column(db.Integer, db.ForeignKey("lpos.id", ondelete="CASCADE"), nullable=False, index=True)

    key = db.Column(db.String(500), nullable=False)
    url = db.Column(db.String(500), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    mimetype = db.Column(db.String(120), nullable=False)
    size = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "url": self.url,
            "name": self.name,
            "mimetype": self.mimetype,
            "size": self.size,
        }


# ---------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------
class Expense(db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    total_material_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_miscellaneous_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_labor_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship("Project", back_populates="expense")
    created_by = db.relationship("User")

    materials = db.relationship(
        "ExpenseMaterial",
        order_by="ExpenseMaterial.line_no",
        collection_class=ordering_list("line_no"),
        cascade="all, delete-orphan",
    )
    miscellaneous = db.relationship(
        "ExpenseMiscellaneous",
        order_by="ExpenseMiscellaneous.line_no",
        collection_class=ordering_list("line_no"),
        cascade="all, delete-orphan",
    )
    labor = db.relationship("ExpenseLabor", cascade="all, delete-orphan")

    @property
    def total_cost(self):
        return money(
            money(self.total_material_cost) + money(self.total_miscellaneous_cost) + money(self.total_labor_cost)
        )

    def recalc_totals(self) -> ExpenseTotals:
        for line in self.miscellaneous:
            line.total = line_total(line.quantity, line.unit_price)
        for row in self.labor:
            row.total_salary = line_total(row.days_present, row.daily_salary)

        totals = expense_totals(self.materials, self.miscellaneous, self.labor)
        self.total_material_cost = totals.material
        self.total_miscellaneous_cost = totals.miscellaneous
        self.total_labor_cost = totals.labor
        return totals

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "materials": [m.to_dict() for m in self.materials],
            "total_material_cost": money(self.total_material_cost),
            "miscellaneous": [m.to_dict() for m in self.miscellaneous],
            "total_miscellaneous_cost": money(self.total_miscellaneous_cost),
            "labor_details": {
                "workers": [r.to_dict() for r in self.labor if r.role == Role.WORKER.value],
                "drivers": [r.to_dict() for r in self.labor if r.role == Role.DRIVER.value],
                "total_labor_cost": money(self.total_labor_cost),
            },
            "total_cost": self.total_cost,
            "created_by_id": self.created_by_id,
        }


class ExpenseMaterial(db.Model):
    __tablename__ = "expense_materials"

    id = db.Column(db.Integer, primary_key=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    line_no = db.Column(db.Integer)

    description = db.Column(db.Text, nullable=False)
    date = db.Column(db.Date)
    invoice_no = db.Column(db.String(100), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    supplier_name = db.Column(db.String(255))
    supplier_mobile = db.Column(db.String(50))
    supplier_email = db.Column(db.String(255))

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "date": _iso(self.date),
            "invoice_no": self.invoice_no,
            "amount": money(self.amount),
            "supplier_name": self.supplier_name,
            "supplier_mobile": self.supplier_mobile,
            "supplier_email": self.supplier_email,
        }


class ExpenseMiscellaneous(db.Model):
    __tablename__ = "expense_miscellaneous"

    id = db.Column(db.Integer, primary_key=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    line_no = db.Column(db.Integer)

    description = db.Column(db.Text, nullable=False)
    date = db.Column(db.Date)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "date": _iso(self.date),
            "quantity": money(self.quantity),
            "unit_price": money(self.unit_price),
            "total": money(self.total),
        }


class ExpenseLabor(db.Model):
    __tablename__ = "expense_labor"

    id = db.Column(db.Integer, primary_key=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    role = db.Column(db.String(20), nullable=False)
    days_present = db.Column(db.Integer, nullable=False, default=0)
    daily_salary = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_salary = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "name": self.user.full_name() if self.user else None,
            "days_present": self.days_present,
            "daily_salary": money(self.daily_salary),
            "total_salary": money(self.total_salary),
        }


class Attendance(db.Model):
    """Daily presence record (maintained by the attendance module)."""

    __tablename__ = "attendance"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    present = db.Column(db.Boolean, nullable=False, default=True)

    marked_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (db.UniqueConstraint("project_id", "user_id", "date", name="uq_attendance_day"),)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "date": _iso(self.date),
            "present": self.present,
        }


# ---------------------------------------------------------------------
# Work completion
# ---------------------------------------------------------------------
class WorkCompletion(db.Model):
    __tablename__ = "work_completions"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    completion_number = db.Column(db.String(30), nullable=False)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship("Project", back_populates="work_completion")
    created_by = db.relationship("User")
    images = db.relationship("WorkCompletionImage", cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "completion_number": self.completion_number,
            "images": [i.to_dict() for i in self.images],
            "created_by_id": self.created_by_id,
            "created_at": _iso(self.created_at),
        }


class WorkCompletionImage(db.Model):
    __tablename__ = "work_completion_images"

    id = db.Column(db.Integer, primary_key=True)
    work_completion_id = db.Column(
        db.Integer, db.ForeignKey("work_completions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    image_key = db.Column(db.String(500), nullable=False)
    image_url = db.Column(db.String(500), nullable=False)

    uploaded_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "url": self.image_url,
            "key": self.image_key,
        }


# ---------------------------------------------------------------------
# Activity log & sequences
# ---------------------------------------------------------------------
class Comment(db.Model):
    """Append-only activity entry. Never updated or deleted by the application."""

    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    content = db.Column(db.Text, nullable=False)
    action_type = db.Column(db.String(20), nullable=False, index=True)
    progress = db.Column(db.Integer)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    project = db.relationship("Project", back_populates="comments")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user": (
                {"id": self.user.id, "first_name": self.user.first_name, "last_name": self.user.last_name}
                if self.user
                else None
            ),
            "content": self.content,
            "action_type": self.action_type,
            "progress": self.progress,
            "created_at": _iso(self.created_at),
        }


class DocumentCounter(db.Model):
    """Named monotonically increasing sequence (row-locked on reservation)."""

    __tablename__ = "document_counters"

    key = db.Column(db.String(50), primary_key=True)
    value = db.Column(db.Integer, nullable=False, default=0)
