"""
Expense routes (finance and admins write; any authenticated user reads).
"""

from flask import Blueprint
from flask_login import login_required

from ...models import Role
from ...security import acting_user, roles_required
from ...utils import api_response, json_payload
from ...workflow import expenses as ops

expenses_bp = Blueprint("expenses", __name__, url_prefix="/expenses")


@expenses_bp.route("/project/<int:project_id>", methods=["POST"])
@login_required
@roles_required(Role.FINANCE, Role.ENGINEER)
def create_expense(project_id: int):
    expense = ops.create_expense(project_id, json_payload(), acting_user())
    return api_response(expense.to_dict(), "Expense created", 201)


@expenses_bp.route("/project/<int:project_id>", methods=["GET"])
@login_required
def list_project_expenses(project_id: int):
    return api_response([e.to_dict() for e in ops.list_project_expenses(project_id)])


@expenses_bp.route("/project/<int:project_id>/labor", methods=["GET"])
@login_required
@roles_required(Role.FINANCE, Role.ENGINEER)
def labor_data(project_id: int):
    return api_response(ops.labor_data(project_id))


@expenses_bp.route("/project/<int:project_id>/summary", methods=["GET"])
@login_required
@roles_required(Role.FINANCE, Role.ENGINEER)
def expense_summary(project_id: int):
    return api_response(ops.expense_summary(project_id))


@expenses_bp.route("/<int:expense_id>", methods=["GET"])
@login_required
def get_expense(expense_id: int):
    return api_response(ops.get_expense(expense_id).to_dict())


@expenses_bp.route("/<int:expense_id>", methods=["PUT"])
@login_required
@roles_required(Role.FINANCE, Role.ENGINEER)
def update_expense(expense_id: int):
    expense = ops.update_expense(expense_id, json_payload(), acting_user())
    return api_response(expense.to_dict(), "Expense updated")


@expenses_bp.route("/<int:expense_id>", methods=["DELETE"])
@login_required
@roles_required(Role.FINANCE)
def delete_expense(expense_id: int):
    ops.delete_expense(expense_id, acting_user())
    return api_response(message="Expense deleted")
