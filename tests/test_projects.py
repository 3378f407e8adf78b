"""
Service tests for project operations: status, team, progress, dates,
invoice data, comments and attendance.
"""

from decimal import Decimal

import pytest

from projectflow.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    PreconditionFailed,
    Unauthorized,
    ValidationError,
)
from projectflow.models import ActivityType, Attendance, Comment, Role
from projectflow.workflow import estimations, projects


class TestProjectCrud:
    def test_update_fields(self, project, engineer):
        projects.update_project(project.id, {"project_name": "Villa repaint phase 2"}, engineer)
        assert project.project_name == "Villa repaint phase 2"
        assert project.updated_by_id == engineer.id

    def test_update_status_through_graph(self, project, engineer):
        with pytest.raises(InvalidTransition):
            projects.update_project(project.id, {"status": "in_progress"}, engineer)
        assert project.status == "draft"

    def test_update_status_logs_and_notifies(self, project, admin, mailer):
        projects.update_status(project.id, "cancelled", admin)

        assert project.status == "cancelled"
        assert Comment.query.filter(Comment.content.like("Status changed%")).count() == 1
        assert f"Project Status Updated: {project.project_name}" in mailer.subjects

    def test_unknown_status(self, project, admin):
        with pytest.raises(ValidationError):
            projects.update_status(project.id, "archived", admin)

    def test_delete_only_draft(self, project, flow, admin):
        flow.approved_estimation(project)
        with pytest.raises(PreconditionFailed):
            projects.delete_project(project.id, admin)

    def test_delete_draft(self, project, admin):
        project_id = project.id
        projects.delete_project(project_id, admin)
        with pytest.raises(NotFound):
            projects.get_team(project_id)

    def test_list_filters(self, project, admin):
        assert projects.list_projects(status="draft") == [project]
        assert projects.list_projects(status="in_progress") == []
        assert projects.list_projects(search="villa") == [project]

    def test_missing_client(self, admin):
        with pytest.raises(NotFound):
            projects.create_project(
                {"project_name": "X", "client_id": 99, "location": "A", "building": "B", "apartment_number": "C"},
                admin,
            )


class TestAssignment:
    def test_assign_engineer_notifies_engineer_only(self, project, admin, engineer, mailer):
        projects.assign_engineer(project.id, engineer.id, admin)

        assert project.assigned_to_id == engineer.id
        assert mailer.sent[-1]["bcc"] == ["eng@example.com"]

    def test_assign_engineer_role_checked(self, project, admin, worker):
        with pytest.raises(ValidationError):
            projects.assign_engineer(project.id, worker.id, admin)

    def test_assign_team(self, project, flow, worker, driver):
        flow.team_assigned(project, [worker], driver)

        assert project.status == "team_assigned"
        assert projects.get_team(project.id)["driver"]["id"] == driver.id

    def test_team_requires_lpo_received(self, project, engineer, worker, driver):
        with pytest.raises(PreconditionFailed):
            projects.assign_team(project.id, [worker.id], driver.id, engineer)

    def test_team_roles_checked(self, project, flow, engineer, driver):
        flow.lpo_received(project)
        with pytest.raises(ValidationError):
            projects.assign_team(project.id, [engineer.id], driver.id, engineer)
        assert project.status == "lpo_received"

    def test_unknown_worker(self, project, flow, driver):
        flow.lpo_received(project)
        with pytest.raises(NotFound):
            projects.assign_team(project.id, [404], driver.id, flow.engineer)

    def test_update_team_keeps_status(self, project, flow, worker, driver, factory):
        flow.team_assigned(project, [worker], driver)
        second = factory.user("worker2", Role.WORKER)

        projects.update_team(project.id, [worker.id, second.id], None, flow.engineer)

        assert project.status == "team_assigned"
        assert {w.id for w in project.assigned_workers} == {worker.id, second.id}

    def test_update_team_requires_team(self, project, engineer, worker):
        with pytest.raises(PreconditionFailed):
            projects.update_team(project.id, [worker.id], None, engineer)


class TestProgress:
    def test_progress_moves_status(self, project, flow, worker, driver):
        flow.team_assigned(project, [worker], driver)

        projects.update_progress(project.id, 0, flow.engineer)
        assert project.status == "work_started"

        projects.update_progress(project.id, 40, flow.engineer, "Walls primed")
        assert project.status == "in_progress"

        projects.update_progress(project.id, 100, flow.engineer)
        assert project.status == "work_completed"
        assert project.progress == 100

    def test_progress_updates_logged(self, project, flow, worker, driver, mailer):
        flow.team_assigned(project, [worker], driver)
        projects.update_progress(project.id, 40, flow.engineer, "Walls primed")

        updates = projects.progress_updates(project.id)
        assert [(u.content, u.progress) for u in updates] == [("Walls primed", 40)]
        assert any(s.startswith("Progress Update:") for s in mailer.subjects)

    def test_progress_range(self, project, flow, worker, driver):
        flow.team_assigned(project, [worker], driver)
        with pytest.raises(ValidationError):
            projects.update_progress(project.id, 101, flow.engineer)
        assert project.progress == 0

    def test_progress_before_team(self, project, engineer):
        with pytest.raises(PreconditionFailed):
            projects.update_progress(project.id, 10, engineer)

    def test_unchanged_progress_without_comment_is_silent(self, project, flow, worker, driver):
        flow.team_assigned(project, [worker], driver)
        projects.update_progress(project.id, 10, flow.engineer)
        before = Comment.query.filter_by(action_type=ActivityType.PROGRESS_UPDATE.value).count()

        projects.update_progress(project.id, 10, flow.engineer)

        after = Comment.query.filter_by(action_type=ActivityType.PROGRESS_UPDATE.value).count()
        assert after == before


class TestDatesAndInvoice:
    def test_set_dates(self, project, engineer):
        projects.set_dates(project.id, {"work_start_date": "2030-04-01", "work_end_date": "2030-04-10"}, engineer)
        assert project.work_end_date.isoformat() == "2030-04-10"

    def test_end_before_start(self, project, engineer):
        with pytest.raises(ValidationError):
            projects.set_dates(project.id, {"work_start_date": "2030-04-10", "work_end_date": "2030-04-01"}, engineer)

    def test_acceptance_before_handover(self, project, engineer):
        with pytest.raises(ValidationError):
            projects.set_dates(project.id, {"handover_date": "2030-05-10", "acceptance_date": "2030-05-01"}, engineer)

    def test_amount_in_words(self):
        assert projects.amount_in_words(Decimal("315.00")) == "Three Hundred Fifteen UAE Dirhams"
        assert projects.amount_in_words("1250.50") == "One Thousand Two Hundred Fifty UAE Dirhams and Fifty Fils"

    def test_invoice_data(self, project, flow, finance):
        flow.lpo_received(project)
        projects.set_grn_number(project.id, "GRN-11", finance)
        projects.set_invoice_details(project.id, {"invoice_date": "2030-06-01", "invoice_remarks": "Net 30"}, finance)

        data = projects.invoice_data(project.id)

        assert data["invoice_number"] == "INV" + project.project_number[3:]
        assert data["order_number"] == "PO-7781"
        assert data["grn_number"] == "GRN-11"
        assert data["date"] == "2030-06-01"
        assert data["summary"]["total_receivable"] == Decimal("315.00")
        assert data["products"][0]["sno"] == 1

    def test_invoice_requires_quotation(self, project):
        with pytest.raises(NotFound):
            projects.invoice_data(project.id)

    def test_invoice_requires_lpo(self, project, flow):
        flow.sent_quotation(project)
        with pytest.raises(NotFound, match="LPO"):
            projects.invoice_data(project.id)

    def test_clear_invoice_details(self, project, finance):
        projects.set_invoice_details(project.id, {"invoice_date": "2030-06-01"}, finance)
        projects.clear_invoice_details(project.id, finance)
        assert project.invoice_date is None


class TestCommentsAndAttendance:
    def test_add_comment(self, project, worker):
        projects.add_comment(project.id, "Site access from the back gate", worker)
        entries = projects.list_activity(project.id)
        assert entries[0].content == "Site access from the back gate"
        assert entries[0].action_type == "general"

    def test_empty_comment(self, project, worker):
        with pytest.raises(ValidationError):
            projects.add_comment(project.id, "   ", worker)

    def test_attendance_upsert(self, project, flow, worker, driver):
        flow.team_assigned(project, [worker], driver)
        payload = {"user_id": worker.id, "date": "2030-04-01", "present": True}

        projects.mark_attendance(project.id, payload, worker)
        projects.mark_attendance(project.id, dict(payload, present=False), flow.engineer)

        records = Attendance.query.filter_by(project_id=project.id).all()
        assert len(records) == 1
        assert records[0].present is False

    def test_worker_marks_only_self(self, project, flow, worker, driver, factory):
        other = factory.user("worker2", Role.WORKER)
        flow.team_assigned(project, [worker, other], driver)
        with pytest.raises(Forbidden):
            projects.mark_attendance(project.id, {"user_id": other.id, "date": "2030-04-01"}, worker)

    def test_attendance_team_only(self, project, flow, worker, driver, factory):
        outsider = factory.user("outsider", Role.WORKER)
        flow.team_assigned(project, [worker], driver)
        with pytest.raises(ValidationError):
            projects.mark_attendance(project.id, {"user_id": outsider.id, "date": "2030-04-01"}, flow.engineer)

    def test_driver_marks_only_self(self, project, flow, worker, driver):
        flow.team_assigned(project, [worker], driver)

        record = projects.mark_attendance(project.id, {"user_id": driver.id, "date": "2030-04-01"}, driver)
        assert record.user_id == driver.id

        with pytest.raises(Forbidden):
            projects.mark_attendance(project.id, {"user_id": worker.id, "date": "2030-04-01"}, driver)

    def test_outside_driver_cannot_add_paid_days(self, project, flow, worker, driver, factory):
        outsider = factory.user("driver2", Role.DRIVER)
        flow.team_assigned(project, [worker], driver)

        with pytest.raises(Forbidden):
            projects.mark_attendance(project.id, {"user_id": worker.id, "date": "2030-04-01"}, outsider)
        assert Attendance.query.filter_by(project_id=project.id).count() == 0


class TestActorRequired:
    def test_status_change_without_actor(self, project):
        with pytest.raises(Unauthorized):
            projects.update_status(project.id, "cancelled", None)
        assert project.status == "draft"

    def test_keyword_actor_none(self, project, factory):
        with pytest.raises(Unauthorized):
            estimations.create_estimation(factory.estimation_payload(project.id), actor=None)
        assert project.estimation is None
