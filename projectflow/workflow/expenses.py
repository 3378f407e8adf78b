"""
projectflow/workflow/expenses.py

Project expense operations.

Labour cost is never taken from the request: on every create/update it is
rebuilt from the project's assigned team, their daily salary and the
attendance records (daily rate x days present).

- Worker days: present attendance records of that worker on the project.
- Driver days: distinct dates with any present record on the project.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..activity import log_activity
from ..errors import Conflict, ValidationError
from ..extensions import db
from ..models import (
    ActivityType,
    Attendance,
    Expense,
    ExpenseLabor,
    ExpenseMaterial,
    ExpenseMiscellaneous,
    Project,
    Role,
    User,
)
from ..rollup import LaborRow, ZERO, labor_cost_rows, money, project_profit, sum_totals
from ..utils import get_or_404, optional_text, parse_date, parse_list, require_decimal, require_text
from . import flush_or_conflict, transactional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# Labour
# ---------------------------------------------------------------------
def worker_days_present(project_id: int, workers: List[User]) -> Dict[int, int]:
    if not workers:
        return {}
    rows = (
        db.session.query(Attendance.user_id, db.func.count(Attendance.id))
        .filter(
            Attendance.project_id == project_id,
            Attendance.present.is_(True),
            Attendance.user_id.in_([w.id for w in workers]),
        )
        .group_by(Attendance.user_id)
        .all()
    )
    return {user_id: count for user_id, count in rows}


def project_days_worked(project_id: int) -> int:
    return (
        db.session.query(db.func.count(db.distinct(Attendance.date)))
        .filter(Attendance.project_id == project_id, Attendance.present.is_(True))
        .scalar()
        or 0
    )


def labor_rows(project: Project) -> List[LaborRow]:
    """Current labour cost table of the project's team."""
    workers = list(project.assigned_workers)
    rows = labor_cost_rows(workers, worker_days_present(project.id, workers), Role.WORKER.value)

    driver = project.assigned_driver
    if driver is not None:
        rows += labor_cost_rows([driver], {driver.id: project_days_worked(project.id)}, Role.DRIVER.value)
    return rows


def _labor_row_dict(row: LaborRow, users: Dict[int, User]) -> Dict[str, Any]:
    user = users.get(row.user_id)
    return {
        "user_id": row.user_id,
        "name": user.full_name() if user else None,
        "days_present": row.days_present,
        "daily_salary": row.daily_salary,
        "total_salary": row.total_salary,
    }


def labor_data(project_id: int) -> Dict[str, Any]:
    """Preview of the labour block an expense would get right now."""
    project = get_or_404(Project, project_id, "Project")
    rows = labor_rows(project)

    users = {u.id: u for u in project.assigned_workers}
    if project.assigned_driver is not None:
        users[project.assigned_driver.id] = project.assigned_driver

    drivers = [_labor_row_dict(r, users) for r in rows if r.role == Role.DRIVER.value]
    return {
        "workers": [_labor_row_dict(r, users) for r in rows if r.role == Role.WORKER.value],
        "driver": drivers[0] if drivers else None,
        "total_labor_cost": sum_totals(rows, "total_salary"),
    }


def _refresh_labor(expense: Expense, project: Project) -> None:
    expense.labor = [
        ExpenseLabor(
            user_id=row.user_id,
            role=row.role,
            days_present=row.days_present,
            daily_salary=row.daily_salary,
            total_salary=row.total_salary,
        )
        for row in labor_rows(project)
    ]


# ---------------------------------------------------------------------
# Input parsing
# ---------------------------------------------------------------------
def _materials(raw: Any) -> List[ExpenseMaterial]:
    lines = []
    for i, row in enumerate(parse_list(raw, "materials")):
        if not isinstance(row, dict):
            raise ValidationError(f"materials[{i}] must be an object")
        lines.append(
            ExpenseMaterial(
                description=require_text(row.get("description"), f"materials[{i}].description"),
                date=parse_date(row.get("date"), f"materials[{i}].date"),
                invoice_no=require_text(row.get("invoice_no"), f"materials[{i}].invoice_no"),
                amount=require_decimal(row.get("amount"), f"materials[{i}].amount"),
                supplier_name=optional_text(row.get("supplier_name")),
                supplier_mobile=optional_text(row.get("supplier_mobile")),
                supplier_email=optional_text(row.get("supplier_email")),
            )
        )
    return lines


def _miscellaneous(raw: Any) -> List[ExpenseMiscellaneous]:
    lines = []
    for i, row in enumerate(parse_list(raw, "miscellaneous")):
        if not isinstance(row, dict):
            raise ValidationError(f"miscellaneous[{i}] must be an object")
        lines.append(
            ExpenseMiscellaneous(
                description=require_text(row.get("description"), f"miscellaneous[{i}].description"),
                date=parse_date(row.get("date"), f"miscellaneous[{i}].date"),
                quantity=require_decimal(row.get("quantity"), f"miscellaneous[{i}].quantity"),
                unit_price=require_decimal(row.get("unit_price"), f"miscellaneous[{i}].unit_price"),
            )
        )
    return lines


# ---------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------
@transactional
def create_expense(project_id: int, payload: Dict[str, Any], actor: User) -> Expense:
    if "materials" not in payload or "miscellaneous" not in payload:
        raise ValidationError("Materials and miscellaneous data are required")
    materials = _materials(payload.get("materials"))
    miscellaneous = _miscellaneous(payload.get("miscellaneous"))

    project = get_or_404(Project, project_id, "Project")
    if project.expense is not None:
        raise Conflict("Project already has an expense record. Update the existing one instead.")

    with db.session.no_autoflush:
        expense = Expense(project=project, created_by_id=actor.id)
        expense.materials = materials
        expense.miscellaneous = miscellaneous
        _refresh_labor(expense, project)
        totals = expense.recalc_totals()

    db.session.add(expense)
    flush_or_conflict("Project already has an expense record")

    log_activity(project, actor, ActivityType.GENERAL, f"Expense report recorded (total {totals.total})")
    db.session.commit()
    return expense


def get_expense(expense_id: int) -> Expense:
    return get_or_404(Expense, expense_id, "Expense")


def list_project_expenses(project_id: int) -> List[Expense]:
    get_or_404(Project, project_id, "Project")
    return Expense.query.filter_by(project_id=project_id).order_by(Expense.created_at.desc()).all()


@transactional
def update_expense(expense_id: int, payload: Dict[str, Any], actor: User) -> Expense:
    """Replace material / miscellaneous lines; labour is always rebuilt."""
    expense = get_or_404(Expense, expense_id, "Expense")
    materials = _materials(payload["materials"]) if "materials" in payload else None
    miscellaneous = _miscellaneous(payload["miscellaneous"]) if "miscellaneous" in payload else None

    if materials is not None:
        expense.materials = materials
    if miscellaneous is not None:
        expense.miscellaneous = miscellaneous
    _refresh_labor(expense, expense.project)
    totals = expense.recalc_totals()
    db.session.flush()

    log_activity(expense.project, actor, ActivityType.GENERAL, f"Expense report updated (total {totals.total})")
    db.session.commit()
    return expense


@transactional
def delete_expense(expense_id: int, actor: User) -> None:
    expense = get_or_404(Expense, expense_id, "Expense")
    log_activity(expense.project, actor, ActivityType.GENERAL, "Expense report deleted")
    db.session.delete(expense)
    db.session.commit()


def expense_summary(project_id: int) -> Dict[str, Any]:
    """
    Cost totals plus realised profit:
    quotation subtotal - total expenses - commission.
    Profit is None until the project has a quotation.
    """
    project = get_or_404(Project, project_id, "Project")
    expense = project.expense

    material = money(expense.total_material_cost) if expense else ZERO
    miscellaneous = money(expense.total_miscellaneous_cost) if expense else ZERO
    labor = money(expense.total_labor_cost) if expense else ZERO
    labor_lines = list(expense.labor) if expense else []

    estimation = project.estimation
    commission = money(estimation.commission_amount) if estimation and estimation.commission_amount else ZERO
    total_expenses = money(material + miscellaneous + labor)

    quotation = project.quotation
    revenue: Optional[Any] = money(quotation.subtotal) if quotation else None

    return {
        "total_material_cost": material,
        "total_miscellaneous_cost": miscellaneous,
        "total_labor_cost": labor,
        "workers_cost": sum_totals((r for r in labor_lines if r.role == Role.WORKER.value), "total_salary"),
        "driver_cost": sum_totals((r for r in labor_lines if r.role == Role.DRIVER.value), "total_salary"),
        "commission_amount": commission,
        "total_expenses": total_expenses,
        "quotation_amount": revenue,
        "profit": project_profit(revenue, total_expenses, commission) if revenue is not None else None,
    }
