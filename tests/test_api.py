"""
HTTP tests through the Flask test client: envelopes, authentication,
role rules and multipart uploads.
"""

import io
import json

import pytest

from projectflow.extensions import db
from projectflow.models import Role


@pytest.fixture
def ids(app, factory):
    """Users and a client created outside any request; returns their ids."""
    with app.app_context():
        users = {
            "admin": factory.user("admin", Role.ADMIN, email="admin@example.com"),
            "engineer": factory.user("engineer", Role.ENGINEER, email="eng@example.com"),
            "worker": factory.user("worker", Role.WORKER, daily_salary=100),
            "driver": factory.user("driver", Role.DRIVER, daily_salary=80),
        }
        result = {name: user.id for name, user in users.items()}
        result["client"] = factory.client().id
        db.session.remove()
    return result


def login(http, username, password="secret123"):
    response = http.post("/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.get_json()
    return response


def create_project(http, client_id):
    response = http.post(
        "/projects",
        json={
            "project_name": "Office fit-out",
            "client_id": client_id,
            "location": "Business Bay",
            "building": "Tower A",
            "apartment_number": "1203",
        },
    )
    assert response.status_code == 201, response.get_json()
    return response.get_json()["data"]


class TestAuth:
    def test_requires_login(self, http, ids):
        response = http.get("/projects")
        assert response.status_code == 401
        assert response.get_json() == {
            "success": False,
            "error": "unauthorized",
            "message": "Authentication required",
        }

    def test_bad_password(self, http, ids):
        response = http.post("/auth/login", json={"username": "admin", "password": "nope"})
        assert response.status_code == 401
        assert response.get_json()["success"] is False

    def test_login_and_me(self, http, ids):
        login(http, "engineer")
        response = http.get("/auth/me")
        assert response.get_json()["data"]["role"] == "engineer"

    def test_csrf_token(self, http):
        response = http.get("/auth/csrf-token")
        assert response.status_code == 200
        assert response.get_json()["data"]["csrf_token"]

    def test_health(self, http):
        assert http.get("/health").get_json()["success"] is True


class TestProjectsApi:
    def test_create_and_get(self, http, ids):
        login(http, "admin")
        project = create_project(http, ids["client"])

        assert project["status"] == "draft"
        response = http.get(f"/projects/{project['id']}")
        assert response.get_json()["data"]["project_number"] == project["project_number"]

    def test_engineer_cannot_create(self, http, ids):
        login(http, "engineer")
        response = http.post("/projects", json={})
        assert response.status_code == 403
        assert response.get_json()["error"] == "forbidden"

    def test_validation_envelope(self, http, ids):
        login(http, "admin")
        response = http.post("/projects", json={"client_id": ids["client"]})
        assert response.status_code == 400
        assert response.get_json()["error"] == "validation"

    def test_invalid_transition_is_412(self, http, ids):
        login(http, "admin")
        project = create_project(http, ids["client"])

        response = http.patch(f"/projects/{project['id']}/status", json={"status": "in_progress"})

        assert response.status_code == 412
        body = response.get_json()
        assert body["error"] == "precondition_failed"
        assert body["details"] == {"current": "draft", "requested": "in_progress"}

    def test_not_found(self, http, ids):
        login(http, "admin")
        response = http.get("/projects/999")
        assert response.status_code == 404
        assert response.get_json()["error"] == "not_found"


class TestFieldRoles:
    def test_worker_is_read_only(self, http, ids):
        login(http, "worker")
        response = http.patch("/projects/1/status", json={"status": "cancelled"})
        assert response.status_code == 403

    def test_worker_may_comment(self, app, ids):
        admin = app.test_client()
        login(admin, "admin")
        project = create_project(admin, ids["client"])

        worker = app.test_client()
        login(worker, "worker")
        response = worker.post(f"/projects/{project['id']}/comments", json={"content": "Arrived on site"})

        assert response.status_code == 201
        assert response.get_json()["data"]["action_type"] == "general"


class TestEstimationFlowApi:
    def test_scenario_review_order(self, http, ids):
        login(http, "admin")
        project = create_project(http, ids["client"])

        response = http.post(
            "/estimations",
            json={
                "project_id": project["id"],
                "valid_until": "2030-01-31",
                "payment_due_by": 30,
                "materials": [{"description": "Cable", "uom": "m", "quantity": 2, "unit_price": 50}],
            },
        )
        assert response.status_code == 201
        estimation = response.get_json()["data"]
        assert estimation["estimated_amount"] == "100.00"

        response = http.post(f"/estimations/{estimation['id']}/approve", json={"is_approved": True})
        assert response.status_code == 412

        assert http.post(f"/estimations/{estimation['id']}/check", json={"is_checked": True}).status_code == 200
        assert http.post(f"/estimations/{estimation['id']}/approve", json={"is_approved": True}).status_code == 200

        response = http.get(f"/projects/{project['id']}")
        assert response.get_json()["data"]["status"] == "estimation_prepared"

    def test_quotation_multipart_with_image(self, app, http, ids):
        login(http, "admin")
        project = create_project(http, ids["client"])
        estimation = http.post(
            "/estimations",
            json={
                "project_id": project["id"],
                "valid_until": "2030-01-31",
                "payment_due_by": 30,
                "materials": [{"description": "Cable", "uom": "m", "quantity": 2, "unit_price": 50}],
            },
        ).get_json()["data"]
        http.post(f"/estimations/{estimation['id']}/check", json={"is_checked": True})
        http.post(f"/estimations/{estimation['id']}/approve", json={"is_approved": True})

        data = {
            "project_id": project["id"],
            "valid_until": "2030-02-28",
            "items": [{"description": "Install", "uom": "lot", "quantity": 3, "unit_price": 100}],
        }
        response = http.post(
            "/quotations",
            data={"data": json.dumps(data), "items[0][image]": (io.BytesIO(b"\x89PNG"), "site.png")},
            content_type="multipart/form-data",
        )

        assert response.status_code == 201, response.get_json()
        quotation = response.get_json()["data"]
        assert quotation["net_amount"] == "315.00"
        assert quotation["items"][0]["image"]["url"].startswith("/uploads/quotation-items/")

        url = quotation["items"][0]["image"]["url"]
        download = http.get(url)
        assert download.status_code == 200
        assert download.data == b"\x89PNG"
        assert http.get("/uploads/quotation-items/missing.png").status_code == 404
        assert app.test_client().get(url).status_code == 401

        lpo = http.post(
            "/lpos",
            data={
                "project_id": str(project["id"]),
                "lpo_number": "PO-1",
                "lpo_date": "2030-03-01",
                "supplier": "Client LLC",
                "items": json.dumps([{"description": "Install", "quantity": 3, "unit_price": 100}]),
                "documents": [(io.BytesIO(b"%PDF"), "po.pdf")],
            },
            content_type="multipart/form-data",
        )
        assert lpo.status_code == 201, lpo.get_json()
        assert lpo.get_json()["data"]["total_amount"] == "300.00"
