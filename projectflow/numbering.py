"""
projectflow/numbering.py

Document numbering.

Every document number of a project is derived from the project number by
swapping its fixed ``PRJAGA`` segment for the document prefix, so all numbers
of one project share the same ``<YY><seq>`` suffix:

    PRJAGA250007 -> ESTAGA250007 (estimation)
                 -> QTN250007    (quotation)
                 -> WCPAGA250007 (work completion)
                 -> INVAGA250007 (invoice: "INV" + number without "PRJ")

The running sequence comes from a DocumentCounter row that is locked and
incremented inside the caller's transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .errors import NotFound, ValidationError
from .extensions import db
from .models import DocumentCounter, Project

PROJECT_PREFIX = "PRJAGA"
ESTIMATION_PREFIX = "ESTAGA"
QUOTATION_PREFIX = "QTN"
WORK_COMPLETION_PREFIX = "WCPAGA"
INVOICE_PREFIX = "INV"

PROJECT_COUNTER_KEY = "project"


def format_project_number(year: int, seq: int) -> str:
    if seq < 0:
        raise ValueError("Sequence must be non-negative")
    return f"{PROJECT_PREFIX}{year % 100:02d}{seq:04d}"


def reserve_sequence(key: str, *, start_from: Optional[int] = None) -> int:
    """
    Lock the counter row and return its next value.

    The row is created the first time with ``start_from`` (default 0) as the
    last used value. Must run inside the caller's transaction; the value is
    only consumed when that transaction commits.
    """
    counter = DocumentCounter.query.filter_by(key=key).with_for_update().first()
    if counter is None:
        counter = DocumentCounter(key=key, value=start_from or 0)
        db.session.add(counter)

    counter.value = (counter.value or 0) + 1
    return counter.value


def next_project_number(now: Optional[datetime] = None) -> str:
    """Reserve the next ``PRJAGA<YY><seq:04>`` number."""
    seq = reserve_sequence(PROJECT_COUNTER_KEY, start_from=Project.query.count())
    year = (now or datetime.utcnow()).year
    return format_project_number(year, seq)


def derive_number(project_number: str, prefix: str) -> str:
    """Replace the PRJAGA segment of ``project_number`` with ``prefix``."""
    if not project_number or not project_number.startswith(PROJECT_PREFIX):
        raise ValidationError(f"Malformed project number: {project_number!r}")
    return prefix + project_number[len(PROJECT_PREFIX):]


def related_document_number(project_id: int, prefix: str) -> str:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFound("Project not found")
    if not project.project_number:
        raise NotFound("Project number not found")
    return derive_number(project.project_number, prefix)


def invoice_number(project_number: str) -> str:
    """``INV`` + project number without its leading ``PRJ``."""
    if not project_number:
        raise NotFound("Project number not found")
    return INVOICE_PREFIX + project_number[3:]


def number_suffix(number: str) -> str:
    """The shared ``<YY><seq>`` part of any related document number."""
    for prefix in (PROJECT_PREFIX, ESTIMATION_PREFIX, WORK_COMPLETION_PREFIX, QUOTATION_PREFIX):
        if number.startswith(prefix):
            return number[len(prefix):]
    if number.startswith(INVOICE_PREFIX + "AGA"):
        return number[len(INVOICE_PREFIX + "AGA"):]
    raise ValueError(f"Unknown document number prefix: {number!r}")
