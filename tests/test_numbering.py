"""
Tests for document numbering.
"""

from datetime import datetime

import pytest

from projectflow.errors import NotFound, ValidationError
from projectflow.extensions import db
from projectflow.models import DocumentCounter
from projectflow.numbering import (
    ESTIMATION_PREFIX,
    QUOTATION_PREFIX,
    WORK_COMPLETION_PREFIX,
    derive_number,
    format_project_number,
    invoice_number,
    next_project_number,
    number_suffix,
    related_document_number,
)


class TestFormatting:
    def test_project_number(self):
        assert format_project_number(2025, 7) == "PRJAGA250007"
        assert format_project_number(2031, 12345) == "PRJAGA3112345"

    def test_negative_sequence(self):
        with pytest.raises(ValueError):
            format_project_number(2025, -1)

    def test_derived_numbers_share_suffix(self):
        number = "PRJAGA250007"
        assert derive_number(number, ESTIMATION_PREFIX) == "ESTAGA250007"
        assert derive_number(number, QUOTATION_PREFIX) == "QTN250007"
        assert derive_number(number, WORK_COMPLETION_PREFIX) == "WCPAGA250007"
        assert invoice_number(number) == "INVAGA250007"

    def test_malformed_project_number(self):
        with pytest.raises(ValidationError):
            derive_number("XYZ001", ESTIMATION_PREFIX)

    @pytest.mark.parametrize("number", ["PRJAGA250007", "ESTAGA250007", "QTN250007", "WCPAGA250007", "INVAGA250007"])
    def test_number_suffix(self, number):
        assert number_suffix(number) == "250007"

    def test_unknown_suffix(self):
        with pytest.raises(ValueError):
            number_suffix("ABC123")


class TestSequence:
    """Sequence reservation through the DocumentCounter row"""

    def test_numbers_increase(self, ctx):
        now = datetime(2025, 6, 1)
        assert next_project_number(now) == "PRJAGA250001"
        assert next_project_number(now) == "PRJAGA250002"
        assert db.session.get(DocumentCounter, "project").value == 2

    def test_counter_seeded_from_existing_projects(self, project):
        # The fixture project consumed the first value
        assert project.project_number.endswith("0001")
        assert next_project_number().endswith("0002")

    def test_related_number(self, project):
        number = related_document_number(project.id, ESTIMATION_PREFIX)
        assert number == "ESTAGA" + project.project_number[len("PRJAGA"):]

    def test_related_number_missing_project(self, ctx):
        with pytest.raises(NotFound):
            related_document_number(999, QUOTATION_PREFIX)
