"""
Service tests for quotations.
"""

import warnings
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy.exc import SAWarning

from projectflow.errors import Conflict, InternalError, NotFound, PreconditionFailed
from projectflow.extensions import storage
from projectflow.models import Quotation
from projectflow.workflow import estimations, quotations


class TestCreateQuotation:
    def test_totals_and_status(self, project, flow):
        quotation = flow.sent_quotation(project)

        assert quotation.subtotal == Decimal("300.00")
        assert quotation.vat_amount == Decimal("15.00")
        assert quotation.net_amount == Decimal("315.00")
        assert quotation.quotation_number == "QTN" + project.project_number[6:]
        assert quotation.scope_of_work == ["Repaint walls"]
        assert project.status == "quotation_sent"

    def test_estimation_profit_follows_subtotal(self, project, flow):
        quotation = flow.sent_quotation(project)
        estimation = quotation.estimation

        assert estimation.quotation_amount == Decimal("300.00")
        assert estimation.profit == Decimal("200.00")

    def test_default_vat(self, project, flow, factory):
        flow.approved_estimation(project)
        payload = factory.quotation_payload(project.id)
        del payload["vat_percentage"]

        quotation = quotations.create_quotation(payload, flow.engineer)
        assert quotation.vat_percentage == Decimal("5")

    def test_requires_estimation(self, project, engineer, factory):
        with pytest.raises(NotFound):
            quotations.create_quotation(factory.quotation_payload(project.id), engineer)

    def test_requires_approved_estimation(self, project, engineer, factory):
        estimations.create_estimation(factory.estimation_payload(project.id), engineer)
        with pytest.raises(PreconditionFailed):
            quotations.create_quotation(factory.quotation_payload(project.id), engineer)
        assert project.status == "estimation_prepared"

    def test_one_per_project(self, project, flow, factory):
        flow.sent_quotation(project)
        with pytest.raises(Conflict):
            quotations.create_quotation(factory.quotation_payload(project.id), flow.engineer)

    def test_item_image_stored(self, app, project, flow, factory):
        flow.approved_estimation(project)
        image = factory.upload("photo.png", b"\x89PNG", "image/png")

        quotation = quotations.create_quotation(factory.quotation_payload(project.id), flow.engineer, {0: image})

        item = quotation.items[0]
        assert item.image_key.startswith("quotation-items/")
        assert (Path(app.config["UPLOAD_FOLDER"]) / item.image_key).exists()

    def test_create_without_session_warnings(self, project, flow, factory):
        flow.approved_estimation(project)
        with warnings.catch_warnings():
            warnings.simplefilter("error", SAWarning)
            quotation = quotations.create_quotation(factory.quotation_payload(project.id), flow.engineer)
        assert quotation.id is not None


class TestFailedWrite:
    def test_upload_failure_rolls_back(self, project, flow, factory, monkeypatch):
        """A storage failure mid-operation leaves status, rows and totals untouched."""
        estimation = flow.approved_estimation(project)
        profit_before = estimation.profit

        def broken_upload(file, folder):
            raise OSError("disk full")

        monkeypatch.setattr(storage, "upload", broken_upload)
        image = factory.upload("photo.png", b"\x89PNG", "image/png")

        with pytest.raises(InternalError):
            quotations.create_quotation(factory.quotation_payload(project.id), flow.engineer, {0: image})

        assert project.status == "estimation_prepared"
        assert Quotation.query.count() == 0
        assert estimation.quotation_amount is None
        assert estimation.profit == profit_before


class TestApproval:
    def test_approve(self, project, flow, mailer):
        quotation = flow.sent_quotation(project)

        quotations.approve_quotation(quotation.id, True, flow.admin)

        assert quotation.is_approved
        assert project.status == "quotation_approved"
        assert f"Quotation Approved: {quotation.quotation_number}" in mailer.subjects

    def test_reject_then_resend(self, project, flow):
        quotation = flow.sent_quotation(project)

        quotations.approve_quotation(quotation.id, False, flow.admin, "Discount needed")
        assert project.status == "quotation_rejected"
        assert quotation.approval_comment == "Discount needed"

        quotations.update_quotation(
            quotation.id,
            {"items": [{"description": "Painting", "uom": "lot", "quantity": 3, "unit_price": 90}]},
            flow.engineer,
        )
        assert project.status == "quotation_sent"
        assert quotation.net_amount == Decimal("283.50")

    def test_reapprove_fails(self, project, flow):
        quotation = flow.sent_quotation(project)
        quotations.approve_quotation(quotation.id, True, flow.admin)
        with pytest.raises(PreconditionFailed):
            quotations.approve_quotation(quotation.id, True, flow.admin)


class TestUpdateDelete:
    def test_approved_quotation_is_locked(self, project, flow):
        quotation = flow.sent_quotation(project)
        quotations.approve_quotation(quotation.id, True, flow.admin)

        with pytest.raises(PreconditionFailed):
            quotations.update_quotation(quotation.id, {"vat_percentage": 0}, flow.engineer)
        with pytest.raises(PreconditionFailed):
            quotations.delete_quotation(quotation.id, flow.engineer)

    def test_update_vat(self, project, flow):
        quotation = flow.sent_quotation(project)
        quotations.update_quotation(quotation.id, {"vat_percentage": 0}, flow.engineer)
        assert quotation.net_amount == Decimal("300.00")

    def test_delete_returns_to_estimation_prepared(self, app, project, flow, factory):
        flow.approved_estimation(project)
        image = factory.upload("photo.png", b"\x89PNG", "image/png")
        quotation = quotations.create_quotation(factory.quotation_payload(project.id), flow.engineer, {0: image})
        stored = Path(app.config["UPLOAD_FOLDER"]) / quotation.items[0].image_key

        quotations.delete_quotation(quotation.id, flow.engineer)

        assert project.status == "estimation_prepared"
        assert quotations.get_project_quotation(project.id) is None
        assert not stored.exists()
