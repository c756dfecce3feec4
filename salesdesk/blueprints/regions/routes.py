"""
Regions (sales territories).

- Any authenticated user can list regions (dropdowns).
- Only admins create, update or deactivate them; DELETE deactivates.
"""

from flask import Blueprint, jsonify, request

from ...audit import log_action, serialize_model
from ...errors import APIError
from ...extensions import db
from ...models import Region
from ...security import admin_required, api_login_required
from ...utils import clean_str, json_body, parse_bool


regions_bp = Blueprint("regions", __name__, url_prefix="/api/regions")


def _clean_name(data) -> str:
    name = clean_str(data.get("name"))
    if not name:
        raise APIError("Nome da região é obrigatório.", code="validation_error")
    return name


@regions_bp.route("")
@api_login_required
def list_regions():
    """List regions. Inactive ones only with ?active=false or ?all=1."""
    q = Region.query
    if not parse_bool(request.args.get("all"), default=False):
        active = parse_bool(request.args.get("active"), default=True)
        q = q.filter(Region.active.is_(active))
    return jsonify([r.to_dict() for r in q.order_by(Region.name.asc()).all()])


@regions_bp.route("/<int:region_id>")
@api_login_required
def get_region(region_id: int):
    region = db.get_or_404(Region, region_id, description="Região não encontrada.")
    return jsonify(region.to_dict())


@regions_bp.route("", methods=["POST"])
@admin_required
def create_region():
    data = json_body()
    region = Region(name=_clean_name(data), active=parse_bool(data.get("active"), default=True))

    db.session.add(region)
    db.session.flush()
    log_action(region, "CREATE", after=serialize_model(region))
    db.session.commit()

    return jsonify(region.to_dict()), 201


@regions_bp.route("/<int:region_id>", methods=["PUT", "PATCH"])
@admin_required
def update_region(region_id: int):
    region = db.get_or_404(Region, region_id, description="Região não encontrada.")
    data = json_body()
    before = serialize_model(region)

    if "name" in data:
        region.name = _clean_name(data)
    if "active" in data:
        region.active = bool(parse_bool(data.get("active"), default=region.active))

    db.session.flush()
    log_action(region, "UPDATE", before=before, after=serialize_model(region))
    db.session.commit()

    return jsonify(region.to_dict())


@regions_bp.route("/<int:region_id>", methods=["DELETE"])
@admin_required
def deactivate_region(region_id: int):
    region = db.get_or_404(Region, region_id, description="Região não encontrada.")
    before = serialize_model(region)

    region.active = False
    db.session.flush()
    log_action(region, "DEACTIVATE", before=before, after=serialize_model(region))
    db.session.commit()

    return jsonify({"message": "Região desativada.", "region": region.to_dict()})
