"""
Clients

Routes:
- GET    /api/clients                  list (filter / sort / paginate)
- GET    /api/clients/search?q=        quick search (all-digit term tries exact code first)
- GET    /api/clients/<id>             read
- POST   /api/clients                  create (admin)
- PUT    /api/clients/<id>             update (admin or owner representative)
- DELETE /api/clients/<id>             deactivate (admin)
- GET    /api/clients/<id>/history     timeline
- GET    /api/clients/<id>/orders      orders of a client
- POST   /api/clients/assign           assign clients to a representative (admin)
- POST   /api/clients/import           commit normalized CSV rows

Rules:
- Representatives see and edit ONLY their own clients.
- Representatives cannot reassign a client to somebody else.
- CNPJ is stored as 14 digits and must be unique; so must the code.
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from ...audit import log_action, record_client_history, serialize_model
from ...errors import APIError, not_found
from ...extensions import db
from ...importers import generate_client_code, import_clients, normalize_cnpj
from ...models import Client, ClientHistory, Order, Region, User
from ...security import admin_required, api_login_required, ensure_client_access, is_admin, scope_representative_id
from ...utils import apply_sort, apply_text_search, clean_str, json_body, paginate, parse_bool, parse_optional_int

logger = logging.getLogger(__name__)

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")

EDITABLE_FIELDS = ("name", "address", "city", "state", "phone", "email")
SORTABLE_FIELDS = ("name", "code", "city", "state", "cnpj", "created_at", "updated_at")
SEARCH_COLUMNS = (Client.name, Client.cnpj, Client.code, Client.phone, Client.city, Client.email)
SEARCH_LIMIT = 20


def _get_client_or_404(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if not client:
        raise not_found("Cliente não encontrado.")
    ensure_client_access(client)
    return client


def _scoped_query():
    q = Client.query
    rep_id = scope_representative_id()
    if rep_id is not None:
        q = q.filter(Client.representative_id == rep_id)
    return q


def _validated_representative_id(value) -> int | None:
    rep_id = parse_optional_int(value)
    if rep_id is None:
        return None
    rep = db.session.get(User, rep_id)
    if not rep or not rep.is_representative:
        raise APIError("Representante não encontrado.", code="validation_error")
    return rep_id


def _validated_region_id(value) -> int | None:
    region_id = parse_optional_int(value)
    if region_id is not None and not db.session.get(Region, region_id):
        raise APIError("Região não encontrada.", code="validation_error")
    return region_id


def _check_unique(client: Client | None, cnpj: str | None, code: str | None):
    """Explicit uniqueness checks so the user gets a field-specific message."""
    own_id = client.id if client else None
    if cnpj:
        clash = Client.query.filter(Client.cnpj == cnpj, Client.id != own_id).first()
        if clash:
            raise APIError(f"Já existe um cliente com este CNPJ ({clash.code}).", status_code=409, code="conflict")
    if code:
        clash = Client.query.filter(Client.code == code, Client.id != own_id).first()
        if clash:
            raise APIError("Já existe um cliente com este código.", status_code=409, code="conflict")


# ---------------------------------------------------------------------
# LIST / SEARCH
# ---------------------------------------------------------------------

@clients_bp.route("")
@api_login_required
def list_clients():
    """
    Query params:
      q, active, city, region_id, representative_id, sort (+/-field), page, per_page
    """
    q = _scoped_query()
    q = apply_text_search(q, SEARCH_COLUMNS, request.args.get("q"))

    active = parse_bool(request.args.get("active"))
    if active is not None:
        q = q.filter(Client.active.is_(active))

    city = clean_str(request.args.get("city"))
    if city:
        q = q.filter(Client.city.ilike(city))

    region_id = parse_optional_int(request.args.get("region_id"))
    if region_id is not None:
        q = q.filter(Client.region_id == region_id)

    rep_id = parse_optional_int(request.args.get("representative_id"))
    if rep_id is not None and is_admin():
        q = q.filter(Client.representative_id == rep_id)

    q = apply_sort(q, Client, SORTABLE_FIELDS, default="name")
    return jsonify(paginate(q, lambda c: c.to_dict()))


@clients_bp.route("/search")
@api_login_required
def search_clients():
    """
    Quick search for order forms.

    An all-digit term is tried as an exact client code first.
    """
    term = (request.args.get("q") or "").strip()
    if not term:
        return jsonify([])

    q = _scoped_query().filter(Client.active.is_(True))

    if term.isdigit():
        exact = q.filter(Client.code == term).first()
        if exact:
            return jsonify([exact.to_dict()])

    results = apply_text_search(q, SEARCH_COLUMNS, term).order_by(Client.name.asc()).limit(SEARCH_LIMIT).all()
    return jsonify([c.to_dict() for c in results])


# ---------------------------------------------------------------------
# READ / CREATE / UPDATE / DEACTIVATE
# ---------------------------------------------------------------------

@clients_bp.route("/<int:client_id>")
@api_login_required
def get_client(client_id: int):
    return jsonify(_get_client_or_404(client_id).to_dict())


@clients_bp.route("", methods=["POST"])
@admin_required
def create_client():
    """
    Create a client.

    Required: name, cnpj. Code is generated when missing.
    """
    data = json_body()

    name = clean_str(data.get("name"))
    if not name:
        raise APIError("Nome é obrigatório.", code="validation_error")

    cnpj = normalize_cnpj(data.get("cnpj"))
    if not cnpj:
        raise APIError("CNPJ inválido.", code="validation_error")

    code = clean_str(data.get("code")) or generate_client_code()
    _check_unique(None, cnpj, code)

    client = Client(
        cnpj=cnpj,
        code=code,
        active=parse_bool(data.get("active"), default=True),
        representative_id=_validated_representative_id(data.get("representative_id")),
        region_id=_validated_region_id(data.get("region_id")),
        **{field: clean_str(data.get(field)) for field in EDITABLE_FIELDS},
    )
    client.name = name

    db.session.add(client)
    db.session.flush()
    record_client_history(client, "created", {"representative_id": client.representative_id})
    log_action(client, "CREATE", after=serialize_model(client))
    db.session.commit()

    return jsonify(client.to_dict()), 201


@clients_bp.route("/<int:client_id>", methods=["PUT", "PATCH"])
@api_login_required
def update_client(client_id: int):
    """
    Update a client.

    Representatives may edit their own clients but never reassign them.
    """
    client = _get_client_or_404(client_id)
    data = json_body()
    before = serialize_model(client)
    changed = []

    if "representative_id" in data:
        new_rep = _validated_representative_id(data.get("representative_id"))
        if new_rep != client.representative_id:
            if not is_admin():
                raise APIError(
                    "Representantes não podem transferir clientes.",
                    status_code=403,
                    code="forbidden",
                )
            client.representative_id = new_rep
            changed.append("representative_id")

    if "name" in data:
        name = clean_str(data.get("name"))
        if not name:
            raise APIError("Nome é obrigatório.", code="validation_error")

    cnpj = None
    if "cnpj" in data:
        cnpj = normalize_cnpj(data.get("cnpj"))
        if not cnpj:
            raise APIError("CNPJ inválido.", code="validation_error")

    code = clean_str(data.get("code")) if "code" in data else None
    _check_unique(client, cnpj, code)

    for field in EDITABLE_FIELDS:
        if field in data:
            value = clean_str(data.get(field))
            if getattr(client, field) != value:
                setattr(client, field, value)
                changed.append(field)

    if cnpj and cnpj != client.cnpj:
        client.cnpj = cnpj
        changed.append("cnpj")
    if code and code != client.code:
        client.code = code
        changed.append("code")

    if "region_id" in data:
        region_id = _validated_region_id(data.get("region_id"))
        if region_id != client.region_id:
            client.region_id = region_id
            changed.append("region_id")

    if "active" in data and is_admin():
        active = bool(parse_bool(data.get("active"), default=client.active))
        if active != client.active:
            client.active = active
            changed.append("active")

    db.session.flush()
    if changed:
        record_client_history(client, "updated", {"changed_fields": changed})
        log_action(client, "UPDATE", before=before, after=serialize_model(client))
    db.session.commit()

    return jsonify(client.to_dict())


@clients_bp.route("/<int:client_id>", methods=["DELETE"])
@admin_required
def deactivate_client(client_id: int):
    """Soft delete."""
    client = _get_client_or_404(client_id)
    before = serialize_model(client)

    client.active = False
    db.session.flush()
    record_client_history(client, "deactivated")
    log_action(client, "DEACTIVATE", before=before, after=serialize_model(client))
    db.session.commit()

    return jsonify({"message": "Cliente desativado.", "client": client.to_dict()})


# ---------------------------------------------------------------------
# HISTORY / ORDERS
# ---------------------------------------------------------------------

@clients_bp.route("/<int:client_id>/history")
@api_login_required
def client_history(client_id: int):
    client = _get_client_or_404(client_id)
    entries = (
        ClientHistory.query
        .filter_by(client_id=client.id)
        .order_by(ClientHistory.created_at.desc(), ClientHistory.id.desc())
        .all()
    )
    return jsonify([e.to_dict() for e in entries])


@clients_bp.route("/<int:client_id>/orders")
@api_login_required
def client_orders(client_id: int):
    client = _get_client_or_404(client_id)
    q = Order.query.filter(Order.client_id == client.id)

    rep_id = scope_representative_id()
    if rep_id is not None:
        q = q.filter(Order.representative_id == rep_id)

    orders = q.order_by(Order.created_at.desc(), Order.id.desc()).all()
    return jsonify([o.to_dict() for o in orders])


# ---------------------------------------------------------------------
# ASSIGN / IMPORT
# ---------------------------------------------------------------------

@clients_bp.route("/assign", methods=["POST"])
@admin_required
def assign_clients():
    """
    Body: {representative_id, client_ids: [...]}

    Every id must exist; otherwise nothing is changed.
    """
    data = json_body()
    rep_id = _validated_representative_id(data.get("representative_id"))
    if rep_id is None:
        raise APIError("Representante é obrigatório.", code="validation_error")

    raw_ids = data.get("client_ids")
    if not isinstance(raw_ids, list) or not raw_ids:
        raise APIError("Lista de clientes é obrigatória.", code="validation_error")

    client_ids = {parse_optional_int(v) for v in raw_ids}
    client_ids.discard(None)

    clients = Client.query.filter(Client.id.in_(client_ids)).all() if client_ids else []
    missing = sorted(client_ids - {c.id for c in clients})
    if missing or not clients:
        raise APIError("Clientes não encontrados.", status_code=404, code="not_found", payload={"missing": missing})

    rep = db.session.get(User, rep_id)
    for client in clients:
        previous = client.representative_id
        if previous == rep_id:
            continue
        before = serialize_model(client)
        client.representative_id = rep_id
        db.session.flush()
        record_client_history(
            client,
            "assigned",
            {"from_representative_id": previous, "representative_id": rep_id, "representative_name": rep.name},
        )
        log_action(client, "UPDATE", before=before, after=serialize_model(client))

    db.session.commit()
    logger.info("Clients assigned to representative %s: %s", rep_id, sorted(c.id for c in clients))

    return jsonify({"message": f"{len(clients)} cliente(s) associados a {rep.name}.", "assigned": len(clients)})


@clients_bp.route("/import", methods=["POST"])
@api_login_required
def import_clients_route():
    """
    Commit previewed rows.

    Body: {clients: [normalized rows], representative_id?}
    All-or-nothing: one invalid row rejects the batch (422 with per-row errors).
    """
    data = json_body()
    try:
        result = import_clients(
            data.get("clients"),
            current_user,
            representative_id=parse_optional_int(data.get("representative_id")),
        )
    except APIError:
        db.session.rollback()
        raise

    db.session.commit()

    result["message"] = f"{result['created']} clientes criados e {result['updated']} atualizados."
    return jsonify(result), 201
