# Overview: Client CRUD and search.

from __future__ import annotations

from ..extensions import db
from ..models import Client, Sale
from ..validation import ConflictError

CLIENT_MUTABLE_FIELDS = {"name", "phone", "email", "address"}


class ClientNotFoundError(LookupError):
    pass


def get_client(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if not client:
        raise ClientNotFoundError("Client not found")
    return client


def list_clients(search: str | None = None) -> list[Client]:
    """Clients ordered by name, optionally filtered by name, email or phone."""
    query = db.session.query(Client)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Client.name.ilike(pattern),
            Client.email.ilike(pattern),
            Client.phone.ilike(pattern),
        ))

    return query.order_by(Client.name.asc(), Client.id.asc()).all()


def count_clients() -> int:
    return db.session.query(Client).count()


def create_client(*, patch: dict) -> Client:
    client = Client()
    for k, v in patch.items():
        if k in CLIENT_MUTABLE_FIELDS:
            setattr(client, k, v)

    db.session.add(client)
    db.session.commit()
    return client


def update_client(client_id: int, *, patch: dict) -> Client:
    client = get_client(client_id)
    for k, v in patch.items():
        if k in CLIENT_MUTABLE_FIELDS:
            setattr(client, k, v)

    db.session.commit()
    return client


def delete_client(client_id: int) -> None:
    """
    Delete a client.

    Sales reference clients without owning them, so a client that already
    bought something is kept.
    """
    client = get_client(client_id)

    has_sales = db.session.query(Sale.id).filter_by(client_id=client_id).first() is not None
    if has_sales:
        raise ConflictError("Client has sales and cannot be deleted")

    db.session.delete(client)
    db.session.commit()
