"""
projectflow/status.py

Project status state machine.

The transition graph is a fixed, closed set of edges. It is built once by the
app factory (``build_default_graph()``) and shared by reference through
``app.extensions["transitions"]``. Every operation that changes
``Project.status`` must call ``TransitionGraph.require()`` before mutating.
"""

from __future__ import annotations

import enum
from types import MappingProxyType
from typing import Iterable, Mapping, Union

from flask import current_app

from .errors import InvalidTransition, ValidationError


class ProjectStatus(str, enum.Enum):
    # Declaration order matches the lifecycle order.
    DRAFT = "draft"
    ESTIMATION_PREPARED = "estimation_prepared"
    QUOTATION_SENT = "quotation_sent"
    QUOTATION_APPROVED = "quotation_approved"
    QUOTATION_REJECTED = "quotation_rejected"
    LPO_RECEIVED = "lpo_received"
    TEAM_ASSIGNED = "team_assigned"
    WORK_STARTED = "work_started"
    IN_PROGRESS = "in_progress"
    WORK_COMPLETED = "work_completed"
    QUALITY_CHECK = "quality_check"
    CLIENT_HANDOVER = "client_handover"
    FINAL_INVOICE_SENT = "final_invoice_sent"
    PAYMENT_RECEIVED = "payment_received"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"
    PROJECT_CLOSED = "project_closed"

    @classmethod
    def parse(cls, value: Union[str, "ProjectStatus", None]) -> "ProjectStatus":
        """Parse client input; unknown values are a ValidationError."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip())
        except ValueError:
            raise ValidationError(f"Unknown project status: {value!r}") from None


StatusLike = Union[str, ProjectStatus]


class TransitionGraph:
    """Immutable adjacency list over ProjectStatus."""

    def __init__(self, edges: Mapping[ProjectStatus, Iterable[ProjectStatus]]):
        frozen = {status: frozenset() for status in ProjectStatus}
        for source, targets in edges.items():
            frozen[ProjectStatus(source)] = frozenset(ProjectStatus(t) for t in targets)
        self._edges = MappingProxyType(frozen)

    @property
    def edges(self) -> Mapping[ProjectStatus, frozenset]:
        return self._edges

    def targets(self, current: StatusLike) -> frozenset:
        return self._edges[ProjectStatus(current)]

    def can_transition(self, current: StatusLike, requested: StatusLike) -> bool:
        return ProjectStatus(requested) in self._edges[ProjectStatus(current)]

    def is_terminal(self, status: StatusLike) -> bool:
        return not self._edges[ProjectStatus(status)]

    def require(self, current: StatusLike, requested: StatusLike) -> ProjectStatus:
        """
        Validate the edge (current -> requested) and return the requested status.

        Staying in the same status is not a transition and is always allowed.
        """
        current = ProjectStatus(current)
        requested = ProjectStatus(requested)
        if current == requested:
            return requested
        if requested not in self._edges[current]:
            raise InvalidTransition(current.value, requested.value)
        return requested


def build_default_graph() -> TransitionGraph:
    S = ProjectStatus
    return TransitionGraph(
        {
            S.DRAFT: [S.ESTIMATION_PREPARED, S.CANCELLED],
            S.ESTIMATION_PREPARED: [S.QUOTATION_SENT, S.DRAFT, S.ON_HOLD, S.CANCELLED],
            S.QUOTATION_SENT: [
                S.QUOTATION_APPROVED,
                S.QUOTATION_REJECTED,
                S.LPO_RECEIVED,
                S.ESTIMATION_PREPARED,
                S.ON_HOLD,
                S.CANCELLED,
            ],
            S.QUOTATION_APPROVED: [S.LPO_RECEIVED, S.ESTIMATION_PREPARED, S.ON_HOLD, S.CANCELLED],
            S.QUOTATION_REJECTED: [S.QUOTATION_SENT, S.ESTIMATION_PREPARED, S.CANCELLED],
            S.LPO_RECEIVED: [S.TEAM_ASSIGNED, S.QUOTATION_SENT, S.ON_HOLD, S.CANCELLED],
            S.TEAM_ASSIGNED: [S.WORK_STARTED, S.ON_HOLD, S.CANCELLED],
            S.WORK_STARTED: [S.IN_PROGRESS, S.ON_HOLD, S.CANCELLED],
            S.IN_PROGRESS: [S.WORK_COMPLETED, S.ON_HOLD, S.CANCELLED],
            S.WORK_COMPLETED: [S.QUALITY_CHECK, S.ON_HOLD],
            S.QUALITY_CHECK: [S.CLIENT_HANDOVER, S.WORK_COMPLETED],
            S.CLIENT_HANDOVER: [S.FINAL_INVOICE_SENT, S.ON_HOLD],
            S.FINAL_INVOICE_SENT: [S.PAYMENT_RECEIVED, S.ON_HOLD],
            S.PAYMENT_RECEIVED: [S.PROJECT_CLOSED],
            S.ON_HOLD: [S.IN_PROGRESS, S.WORK_STARTED, S.CANCELLED],
            S.CANCELLED: [],
            S.PROJECT_CLOSED: [],
        }
    )


def transitions() -> TransitionGraph:
    """Return the graph installed on the running application."""
    return current_app.extensions["transitions"]
