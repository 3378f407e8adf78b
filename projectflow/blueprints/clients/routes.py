"""
Client directory.

Any authenticated user may read clients; admins, engineers and finance
may register new ones.
"""

from flask import Blueprint, request
from flask_login import login_required

from ...extensions import db
from ...models import Client, Role
from ...security import roles_required
from ...utils import api_response, json_payload, optional_text, require_text

clients_bp = Blueprint("clients", __name__, url_prefix="/clients")


@clients_bp.route("", methods=["GET"])
@login_required
def list_clients():
    query = Client.query
    search = (request.args.get("search") or "").strip()
    if search:
        query = query.filter(Client.client_name.ilike(f"%{search}%"))
    return api_response([c.to_dict() for c in query.order_by(Client.client_name.asc()).all()])


@clients_bp.route("", methods=["POST"])
@login_required
@roles_required(Role.ENGINEER, Role.FINANCE)
def create_client():
    payload = json_payload()
    client = Client(
        client_name=require_text(payload.get("client_name"), "client_name", max_length=255),
        email=optional_text(payload.get("email")),
        client_address=optional_text(payload.get("client_address")),
        mobile_number=optional_text(payload.get("mobile_number")),
        trn_number=optional_text(payload.get("trn_number")),
    )
    db.session.add(client)
    db.session.commit()
    return api_response(client.to_dict(), "Client created", 201)
