"""
Service tests for expenses: labour rollup from attendance and realised profit.
"""

from decimal import Decimal

import pytest

from projectflow.errors import Conflict, ValidationError
from projectflow.workflow import estimations, expenses, projects

MATERIALS = [{"description": "Paint", "date": "2030-04-02", "invoice_no": "INV-1", "amount": "120.00"}]
MISC = [{"description": "Parking", "quantity": 2, "unit_price": 15}]


@pytest.fixture
def staffed_project(project, flow, worker, driver):
    """Project with a team and three attendance records."""
    flow.team_assigned(project, [worker], driver)
    for day in ("2030-04-01", "2030-04-02", "2030-04-03"):
        projects.mark_attendance(project.id, {"user_id": worker.id, "date": day}, flow.engineer)
    projects.mark_attendance(project.id, {"user_id": worker.id, "date": "2030-04-04", "present": False}, flow.engineer)
    return project


class TestLaborData:
    def test_labor_from_attendance(self, staffed_project, worker, driver):
        data = expenses.labor_data(staffed_project.id)

        assert data["workers"][0]["days_present"] == 3
        assert data["workers"][0]["total_salary"] == Decimal("300.00")
        # Driver is paid for every day someone was present
        assert data["driver"]["days_present"] == 3
        assert data["driver"]["total_salary"] == Decimal("240.00")
        assert data["total_labor_cost"] == Decimal("540.00")

    def test_no_team(self, project):
        data = expenses.labor_data(project.id)
        assert data == {"workers": [], "driver": None, "total_labor_cost": Decimal("0.00")}


class TestExpenseCrud:
    def test_create(self, staffed_project, finance):
        expense = expenses.create_expense(
            staffed_project.id, {"materials": MATERIALS, "miscellaneous": MISC}, finance
        )

        assert expense.total_material_cost == Decimal("120.00")
        assert expense.total_miscellaneous_cost == Decimal("30.00")
        assert expense.total_labor_cost == Decimal("540.00")
        assert expense.total_cost == Decimal("690.00")

    def test_labor_in_request_is_ignored(self, staffed_project, finance):
        expense = expenses.create_expense(
            staffed_project.id,
            {"materials": [], "miscellaneous": [], "labor": [{"total_salary": 99999}]},
            finance,
        )
        assert expense.total_labor_cost == Decimal("540.00")

    def test_requires_sections(self, staffed_project, finance):
        with pytest.raises(ValidationError):
            expenses.create_expense(staffed_project.id, {"materials": MATERIALS}, finance)

    def test_one_per_project(self, staffed_project, finance):
        expenses.create_expense(staffed_project.id, {"materials": [], "miscellaneous": []}, finance)
        with pytest.raises(Conflict):
            expenses.create_expense(staffed_project.id, {"materials": [], "miscellaneous": []}, finance)

    def test_update_rebuilds_labor(self, staffed_project, finance, worker, flow):
        expense = expenses.create_expense(staffed_project.id, {"materials": [], "miscellaneous": []}, finance)
        projects.mark_attendance(staffed_project.id, {"user_id": worker.id, "date": "2030-04-05"}, flow.engineer)

        expenses.update_expense(expense.id, {"materials": MATERIALS}, finance)

        assert expense.total_material_cost == Decimal("120.00")
        assert expense.total_labor_cost == Decimal("720.00")

    def test_delete(self, staffed_project, finance):
        expense = expenses.create_expense(staffed_project.id, {"materials": [], "miscellaneous": []}, finance)
        expenses.delete_expense(expense.id, finance)
        assert expenses.list_project_expenses(staffed_project.id) == []


class TestSummary:
    def test_profit(self, staffed_project, finance, flow):
        estimation = staffed_project.estimation
        estimations.update_estimation(estimation.id, {"commission_amount": 20}, flow.engineer)
        expenses.create_expense(staffed_project.id, {"materials": [], "miscellaneous": MISC}, finance)

        summary = expenses.expense_summary(staffed_project.id)

        assert summary["quotation_amount"] == Decimal("300.00")
        assert summary["total_expenses"] == Decimal("570.00")
        assert summary["workers_cost"] == Decimal("300.00")
        assert summary["driver_cost"] == Decimal("240.00")
        assert summary["commission_amount"] == Decimal("20.00")
        assert summary["profit"] == Decimal("-290.00")

    def test_profit_needs_quotation(self, project):
        summary = expenses.expense_summary(project.id)
        assert summary["profit"] is None
        assert summary["total_expenses"] == Decimal("0.00")
