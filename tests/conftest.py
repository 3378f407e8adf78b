"""
Shared fixtures.

- ``app``: application built from TestConfig (in-memory SQLite, CSRF off)
  with uploads in a temporary folder and a recording mailer.
- ``ctx``: pushed application context for service-level tests.
- user / client / project fixtures and a ``flow`` helper that walks a
  project through the lifecycle.
"""

import io
from types import SimpleNamespace

import pytest
from werkzeug.datastructures import FileStorage

from projectflow import create_app
from projectflow.extensions import db, storage
from projectflow.mailer import MailDeliveryError
from projectflow.models import Client, Role, User
from projectflow.workflow import estimations, lpos, projects, quotations

PASSWORD = "secret123"


class RecordingMailer:
    """Mailer double: keeps every message, optionally fails."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, *, to, subject, html=None, text=None, bcc=()):
        if self.fail:
            raise MailDeliveryError("SMTP unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text, "bcc": list(bcc)})

    @property
    def subjects(self):
        return [m["subject"] for m in self.sent]


@pytest.fixture
def app(tmp_path):
    app = create_app("config.TestConfig")
    app.config["UPLOAD_FOLDER"] = str(tmp_path / "uploads")
    storage.init_app(app)
    app.extensions["mailer"] = RecordingMailer()

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def mailer(app):
    return app.extensions["mailer"]


@pytest.fixture
def http(app):
    return app.test_client()


# ---------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------
def make_user(username, role, *, email=None, daily_salary=0, first_name="", last_name=""):
    user = User(
        username=username,
        email=email,
        role=Role(role).value,
        daily_salary=daily_salary,
        first_name=first_name or username.capitalize(),
        last_name=last_name,
        is_active=True,
    )
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


def make_client(name="Acme Facilities"):
    client = Client(client_name=name, email="client@acme.test", client_address="Dubai")
    db.session.add(client)
    db.session.commit()
    return client


def upload(name="file.pdf", content=b"%PDF-1.4 test", mimetype="application/pdf"):
    return FileStorage(stream=io.BytesIO(content), filename=name, content_type=mimetype)


@pytest.fixture
def admin(ctx):
    return make_user("admin", Role.ADMIN, email="admin@example.com", first_name="Ada")


@pytest.fixture
def engineer(ctx):
    return make_user("engineer", Role.ENGINEER, email="eng@example.com", first_name="Eli")


@pytest.fixture
def finance(ctx):
    return make_user("finance", Role.FINANCE, email="fin@example.com")


@pytest.fixture
def worker(ctx):
    return make_user("worker", Role.WORKER, daily_salary=100)


@pytest.fixture
def driver(ctx):
    return make_user("driver", Role.DRIVER, daily_salary=80)


@pytest.fixture
def client_record(ctx):
    return make_client()


@pytest.fixture
def project(ctx, admin, client_record):
    return projects.create_project(
        {
            "project_name": "Villa repaint",
            "project_description": "Repaint villa interior",
            "client_id": client_record.id,
            "location": "Jumeirah",
            "building": "Villa 12",
            "apartment_number": "1",
        },
        admin,
    )


# ---------------------------------------------------------------------
# Lifecycle helper
# ---------------------------------------------------------------------
def estimation_payload(project_id, **overrides):
    payload = {
        "project_id": project_id,
        "valid_until": "2030-01-31",
        "payment_due_by": 30,
        "subject": "Interior repaint",
        "materials": [{"description": "Paint", "uom": "L", "quantity": 2, "unit_price": 50}],
    }
    payload.update(overrides)
    return payload


def quotation_payload(project_id, **overrides):
    payload = {
        "project_id": project_id,
        "valid_until": "2030-02-28",
        "scope_of_work": ["Repaint walls"],
        "terms_and_conditions": ["50% advance"],
        "vat_percentage": 5,
        "items": [{"description": "Painting", "uom": "lot", "quantity": 3, "unit_price": 100}],
    }
    payload.update(overrides)
    return payload


def lpo_payload(project_id, **overrides):
    payload = {
        "project_id": project_id,
        "lpo_number": "PO-7781",
        "lpo_date": "2030-03-01",
        "supplier": "Acme Facilities",
        "items": [{"description": "Painting", "quantity": 3, "unit_price": 100}],
    }
    payload.update(overrides)
    return payload


class Flow:
    """Moves a project forward through the standard path."""

    def __init__(self, engineer, admin):
        self.engineer = engineer
        self.admin = admin

    def approved_estimation(self, project, **overrides):
        estimation = estimations.create_estimation(estimation_payload(project.id, **overrides), self.engineer)
        estimations.check_estimation(estimation.id, True, self.engineer)
        return estimations.approve_estimation(estimation.id, True, self.admin)

    def sent_quotation(self, project, **overrides):
        self.approved_estimation(project)
        return quotations.create_quotation(quotation_payload(project.id, **overrides), self.engineer)

    def lpo_received(self, project):
        self.sent_quotation(project)
        return lpos.create_lpo(lpo_payload(project.id), [upload()], self.engineer)

    def team_assigned(self, project, workers, driver):
        self.lpo_received(project)
        return projects.assign_team(project.id, [w.id for w in workers], driver.id, self.engineer)

    def work_completed(self, project, workers, driver):
        self.team_assigned(project, workers, driver)
        return projects.update_progress(project.id, 100, self.engineer)


@pytest.fixture
def flow(engineer, admin):
    return Flow(engineer, admin)


@pytest.fixture
def factory():
    """Builders for tests that need more than the default fixtures (call inside an app context)."""
    return SimpleNamespace(
        password=PASSWORD,
        user=make_user,
        client=make_client,
        upload=upload,
        estimation_payload=estimation_payload,
        quotation_payload=quotation_payload,
        lpo_payload=lpo_payload,
    )
