# Overview: Flask API routes for clients operations; parses input and returns JSON responses.

from flask import Blueprint, request

from ..models import Client
from ..services import client_service
from ..services.client_service import ClientNotFoundError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_client,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_permission

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address"},
    required_on_create={"name"},
)

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("")
@require_auth
@require_permission("VIEW_CLIENTS")
def list_clients_route():
    """
    List clients ordered by name.

    Query params:
    - search: str (optional) - matches name, email or phone
    """
    clients = client_service.list_clients(search=request.args.get("search"))
    return {"items": [c.to_dict() for c in clients], "count": len(clients)}


@clients_bp.get("/<int:client_id>")
@require_auth
@require_permission("VIEW_CLIENTS")
def get_client_route(client_id: int):
    try:
        client = client_service.get_client(client_id)
    except ClientNotFoundError as e:
        return {"error": str(e)}, 404
    return client.to_dict()


@clients_bp.post("")
@require_auth
@require_permission("MANAGE_CLIENTS")
def create_client_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=False)
        enforce_rules_client(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    client = client_service.create_client(patch=patch)
    return client.to_dict(), 201


@clients_bp.patch("/<int:client_id>")
@clients_bp.put("/<int:client_id>")
@require_auth
@require_permission("MANAGE_CLIENTS")
def update_client_route(client_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=True)
        enforce_rules_client(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        client = client_service.update_client(client_id, patch=patch)
    except ClientNotFoundError as e:
        return {"error": str(e)}, 404

    return client.to_dict()


@clients_bp.delete("/<int:client_id>")
@require_auth
@require_permission("MANAGE_CLIENTS")
def delete_client_route(client_id: int):
    try:
        client_service.delete_client(client_id)
    except ClientNotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return "", 204
