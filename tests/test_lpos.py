"""
Service tests for client purchase orders (LPO).
"""

from decimal import Decimal
from pathlib import Path

import pytest

from projectflow.errors import Conflict, InternalError, PreconditionFailed, ValidationError
from projectflow.extensions import storage
from projectflow.models import Lpo
from projectflow.workflow import lpos


class TestCreateLpo:
    def test_lpo_on_draft_project_fails(self, project, engineer, factory):
        with pytest.raises(PreconditionFailed):
            lpos.create_lpo(factory.lpo_payload(project.id), [factory.upload()], engineer)

        assert project.status == "draft"
        assert Lpo.query.count() == 0

    def test_create(self, app, project, flow, mailer):
        lpo = flow.lpo_received(project)

        assert project.status == "lpo_received"
        assert lpo.total_amount == Decimal("300.00")
        assert len(lpo.documents) == 1
        assert (Path(app.config["UPLOAD_FOLDER"]) / lpo.documents[0].key).exists()
        assert f"LPO Received: {project.project_name}" in mailer.subjects

    def test_requires_document(self, project, flow, factory):
        flow.sent_quotation(project)
        with pytest.raises(ValidationError, match="document"):
            lpos.create_lpo(factory.lpo_payload(project.id), [], flow.engineer)
        assert project.status == "quotation_sent"

    def test_requires_items(self, project, flow, factory):
        flow.sent_quotation(project)
        with pytest.raises(ValidationError):
            lpos.create_lpo(factory.lpo_payload(project.id, items=[]), [factory.upload()], flow.engineer)

    def test_items_as_json_string(self, project, flow, factory):
        flow.sent_quotation(project)
        payload = factory.lpo_payload(project.id, items='[{"description": "Paint", "quantity": "2", "unit_price": "12.5"}]')

        lpo = lpos.create_lpo(payload, [factory.upload()], flow.engineer)
        assert lpo.total_amount == Decimal("25.00")

    def test_only_from_quotation_sent(self, project, flow, factory):
        lpo = flow.lpo_received(project)
        with pytest.raises(PreconditionFailed):
            lpos.create_lpo(factory.lpo_payload(project.id), [factory.upload()], flow.engineer)
        assert Lpo.query.count() == 1
        assert lpo.project_id == project.id

    def test_document_upload_failure_rolls_back(self, project, flow, factory, monkeypatch):
        flow.sent_quotation(project)

        def broken_upload(file, folder):
            raise OSError("disk full")

        monkeypatch.setattr(storage, "upload", broken_upload)
        with pytest.raises(InternalError):
            lpos.create_lpo(factory.lpo_payload(project.id), [factory.upload()], flow.engineer)

        assert project.status == "quotation_sent"
        assert Lpo.query.count() == 0


class TestUpdateDelete:
    def test_update_keeps_listed_documents(self, app, project, flow, factory):
        lpo = flow.lpo_received(project)
        old_key = lpo.documents[0].key

        payload = factory.lpo_payload(project.id, lpo_number="PO-7781-R1", existing_documents=[])
        lpos.update_lpo(lpo.id, payload, [factory.upload("revised.pdf")], flow.engineer)

        assert lpo.lpo_number == "PO-7781-R1"
        assert [d.name for d in lpo.documents] == ["revised.pdf"]
        assert not (Path(app.config["UPLOAD_FOLDER"]) / old_key).exists()

    def test_update_needs_a_document(self, project, flow, factory):
        lpo = flow.lpo_received(project)
        with pytest.raises(ValidationError):
            lpos.update_lpo(lpo.id, factory.lpo_payload(project.id, existing_documents=[]), [], flow.engineer)

    def test_delete_reverts_status(self, project, flow):
        lpo = flow.lpo_received(project)
        lpos.delete_lpo(lpo.id, flow.engineer)

        assert project.status == "quotation_sent"
        assert lpos.get_project_lpos(project.id) == []

    def test_delete_after_team_assignment_fails(self, project, flow, worker, driver):
        flow.team_assigned(project, [worker], driver)
        with pytest.raises(PreconditionFailed):
            lpos.delete_lpo(project.lpo.id, flow.engineer)


class TestSingleLpo:
    def test_second_lpo_conflicts(self, project, flow, factory):
        flow.lpo_received(project)
        # Force the status back so only the uniqueness rule applies
        project.status = "quotation_sent"
        with pytest.raises(Conflict):
            lpos.create_lpo(factory.lpo_payload(project.id), [factory.upload()], flow.engineer)
