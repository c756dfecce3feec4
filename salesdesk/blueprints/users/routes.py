"""
User Management (Admin Only, except the representatives list).

Rules enforced:
- Only admins create, approve, update or deactivate users.
- Users are never hard-deleted; DELETE deactivates.
- An admin cannot deactivate their own account.
- UI never trusted: we validate server-side.

Audit:
- CREATE / UPDATE / APPROVE / DEACTIVATE logged
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user

from ...audit import log_action, serialize_model
from ...errors import APIError, not_found
from ...extensions import db
from ...models import ROLE_REPRESENTATIVE, USER_ROLES, Region, User
from ...security import admin_required, api_login_required
from ...utils import clean_str, json_body, parse_bool, parse_optional_int
from ..auth.routes import MIN_PASSWORD_LENGTH, validate_credentials


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise not_found("Usuário não encontrado.")
    return user


def _validated_region_id(value) -> int | None:
    region_id = parse_optional_int(value)
    if region_id is not None and not db.session.get(Region, region_id):
        raise APIError("Região não encontrada.", code="validation_error")
    return region_id


# ---------------------------------------------------------------------
# LIST USERS
# ---------------------------------------------------------------------

@users_bp.route("")
@admin_required
def list_users():
    """Admin view: list all users (optional ?role= and ?active=)."""
    q = User.query

    role = request.args.get("role")
    if role in USER_ROLES:
        q = q.filter(User.role == role)

    active = parse_bool(request.args.get("active"))
    if active is not None:
        q = q.filter(User.active.is_(active))

    users = q.order_by(User.name.asc()).all()
    return jsonify([u.to_dict() for u in users])


@users_bp.route("/pending")
@admin_required
def pending_users():
    """Representatives waiting for approval."""
    users = (
        User.query
        .filter(User.role == ROLE_REPRESENTATIVE, User.approved.is_(False))
        .order_by(User.created_at.asc())
        .all()
    )
    return jsonify([u.to_dict() for u in users])


@users_bp.route("/representatives")
@api_login_required
def list_representatives():
    """Active, approved representatives (for dropdowns; any user)."""
    reps = (
        User.query
        .filter(
            User.role == ROLE_REPRESENTATIVE,
            User.active.is_(True),
            User.approved.is_(True),
        )
        .order_by(User.name.asc())
        .all()
    )
    return jsonify([{"id": r.id, "name": r.name, "email": r.email, "region_id": r.region_id} for r in reps])


# ---------------------------------------------------------------------
# APPROVE
# ---------------------------------------------------------------------

@users_bp.route("/<int:user_id>/approve", methods=["POST", "PUT"])
@admin_required
def approve_user(user_id: int):
    """Approve a pending representative."""
    user = _get_user_or_404(user_id)
    before = serialize_model(user)

    user.approved = True
    db.session.flush()
    log_action(user, "APPROVE", before=before, after=serialize_model(user))
    db.session.commit()

    return jsonify(user.to_dict())


# ---------------------------------------------------------------------
# CREATE USER
# ---------------------------------------------------------------------

@users_bp.route("", methods=["POST"])
@admin_required
def create_user():
    """
    Create a new system user.

    Required:
    - email
    - password
    - name
    Users created by an admin are approved right away.
    """
    data = json_body()
    email = (clean_str(data.get("email")) or "").lower()
    password = data.get("password") or ""
    name = clean_str(data.get("name"))
    role = data.get("role") or ROLE_REPRESENTATIVE

    validate_credentials(email, password, name, require_name=True)

    if role not in USER_ROLES:
        raise APIError("Perfil inválido.", code="validation_error")

    if User.query.filter_by(email=email).first():
        raise APIError("Este email já está em uso.", code="email_taken")

    user = User(
        email=email,
        name=name,
        role=role,
        active=parse_bool(data.get("active"), default=True),
        approved=parse_bool(data.get("approved"), default=True),
        region_id=_validated_region_id(data.get("region_id")),
    )
    user.set_password(password)

    db.session.add(user)
    db.session.flush()
    log_action(user, "CREATE", after=serialize_model(user))
    db.session.commit()

    return jsonify(user.to_dict()), 201


# ---------------------------------------------------------------------
# READ / UPDATE USER
# ---------------------------------------------------------------------

@users_bp.route("/<int:user_id>")
@admin_required
def get_user(user_id: int):
    return jsonify(_get_user_or_404(user_id).to_dict())


@users_bp.route("/<int:user_id>", methods=["PUT", "PATCH"])
@admin_required
def update_user(user_id: int):
    """
    Update user fields.

    A non-empty `password` resets the password.
    """
    user = _get_user_or_404(user_id)
    data = json_body()
    before = serialize_model(user)

    if "email" in data:
        email = (clean_str(data.get("email")) or "").lower()
        if not email or "@" not in email:
            raise APIError("Email inválido.", code="validation_error")
        clash = User.query.filter(User.email == email, User.id != user.id).first()
        if clash:
            raise APIError("Este email já está em uso.", code="email_taken")
        user.email = email

    if "name" in data:
        name = clean_str(data.get("name"))
        if not name or len(name) < 2:
            raise APIError("Nome deve ter pelo menos 2 caracteres.", code="validation_error")
        user.name = name

    if "role" in data:
        if data["role"] not in USER_ROLES:
            raise APIError("Perfil inválido.", code="validation_error")
        if user.id == current_user.id and data["role"] != user.role:
            raise APIError("Você não pode alterar o seu próprio perfil.", code="validation_error")
        user.role = data["role"]

    if "region_id" in data:
        user.region_id = _validated_region_id(data.get("region_id"))

    if "approved" in data:
        user.approved = bool(parse_bool(data.get("approved"), default=user.approved))

    if "active" in data:
        active = parse_bool(data.get("active"), default=user.active)
        if not active and user.id == current_user.id:
            raise APIError("Você não pode desativar a sua própria conta.", code="validation_error")
        user.active = bool(active)

    if "theme" in data:
        user.theme = clean_str(data.get("theme")) or "default"

    password = data.get("password") or ""
    if password:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise APIError(
                f"A senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres.",
                code="validation_error",
            )
        user.set_password(password)

    db.session.flush()
    log_action(user, "UPDATE", before=before, after=serialize_model(user))
    db.session.commit()

    return jsonify(user.to_dict())


# ---------------------------------------------------------------------
# TOGGLE / DEACTIVATE
# ---------------------------------------------------------------------

def _set_active(user: User, active: bool):
    if not active and user.id == current_user.id:
        raise APIError("Você não pode desativar a sua própria conta.", code="validation_error")

    before = serialize_model(user)
    user.active = active
    db.session.flush()
    log_action(user, "UPDATE" if active else "DEACTIVATE", before=before, after=serialize_model(user))
    db.session.commit()


@users_bp.route("/<int:user_id>/toggle", methods=["POST"])
@admin_required
def toggle_user(user_id: int):
    user = _get_user_or_404(user_id)
    _set_active(user, not user.active)
    return jsonify(user.to_dict())


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@admin_required
def deactivate_user(user_id: int):
    """Soft delete: the account is deactivated, history is kept."""
    user = _get_user_or_404(user_id)
    _set_active(user, False)
    return jsonify({"message": "Usuário desativado.", "user": user.to_dict()})
