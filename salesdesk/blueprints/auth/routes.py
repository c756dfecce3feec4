"""
Authentication Routes

Provides:
- /api/auth/register   (self-registration, pending admin approval)
- /api/auth/login
- /api/auth/logout
- /api/auth/me
- /api/auth/csrf-token
- /api/auth/seed-admin (first system bootstrap)

Rules:
- Self-registration ALWAYS creates an unapproved representative.
- Representatives cannot log in until an admin approves them.
- Deactivated accounts cannot log in, whatever their role.
"""

import logging

from flask import Blueprint, jsonify
from flask_login import current_user, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...audit import log_action, serialize_model
from ...errors import APIError
from ...extensions import db
from ...models import ROLE_REPRESENTATIVE, Region, User
from ...security import api_login_required
from ...seed import create_admin
from ...utils import clean_str, json_body, parse_bool

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

MIN_PASSWORD_LENGTH = 6


def validate_credentials(email: str | None, password: str | None, name: str | None = None, require_name: bool = False):
    """Shared validation for register / seed-admin / user creation."""
    if not email or "@" not in email:
        raise APIError("Email inválido.", code="validation_error")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise APIError(
            f"A senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres.",
            code="validation_error",
        )
    if require_name and (not name or len(name) < 2):
        raise APIError("Nome deve ter pelo menos 2 caracteres.", code="validation_error")


# ============================================================
# REGISTER
# ============================================================

@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Self-registration.

    Body: {email, password, name, create_region?}
    The new account is a representative, active but NOT approved.
    """
    data = json_body()
    email = (clean_str(data.get("email")) or "").lower()
    password = data.get("password") or ""
    name = clean_str(data.get("name"))

    validate_credentials(email, password, name, require_name=True)

    if User.query.filter_by(email=email).first():
        raise APIError("Este email já está em uso.", code="email_taken")

    user = User(
        email=email,
        name=name,
        role=ROLE_REPRESENTATIVE,
        active=True,
        approved=False,
    )
    user.set_password(password)

    if parse_bool(data.get("create_region"), default=False):
        region = Region(name=name, active=True)
        db.session.add(region)
        db.session.flush()
        user.region_id = region.id

    db.session.add(user)
    db.session.flush()
    log_action(user, "CREATE", after=serialize_model(user), user=user)
    db.session.commit()

    logger.info("Representative registered, awaiting approval", extra={"user_id": user.id})

    return jsonify(
        {
            "message": "Cadastro realizado com sucesso. Aguarde a aprovação do administrador para acessar o sistema.",
            "user": user.to_dict(),
        }
    ), 201


# ============================================================
# LOGIN / LOGOUT
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate a user.

    Logic:
    - Credentials validated via password hash
    - Only active users may log in
    - Representatives must be approved
    """
    data = json_body()
    email = (clean_str(data.get("email")) or "").lower()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()

    if not user or not user.check_password(password):
        logger.warning("Failed login for %s", email)
        raise APIError("Email ou senha inválidos.", status_code=401, code="invalid_credentials")

    if not user.active:
        raise APIError(
            "Conta desativada. Entre em contato com o administrador.",
            status_code=403,
            code="account_inactive",
        )

    if not user.can_login():
        raise APIError(
            "Sua conta ainda não foi aprovada pelo administrador. Tente novamente mais tarde.",
            status_code=403,
            code="account_pending",
        )

    login_user(user, remember=bool(data.get("remember")))
    logger.info("User logged in", extra={"user_id": user.id})

    return jsonify({"message": "Bem-vindo!", "user": user.to_dict()})


@auth_bp.route("/logout", methods=["POST"])
@api_login_required
def logout():
    """Log out the current user."""
    logout_user()
    return jsonify({"message": "Sessão encerrada."})


@auth_bp.route("/me")
@api_login_required
def me():
    """Current session user."""
    return jsonify(current_user.to_dict())


@auth_bp.route("/csrf-token")
def csrf_token():
    """CSRF token for the SPA (sent back in the X-CSRFToken header)."""
    return jsonify({"csrf_token": generate_csrf()})


# ============================================================
# SEED FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-admin", methods=["POST"])
def seed_admin():
    """
    Bootstrap the FIRST admin of the system.

    Safety Rules:
    - If ANY user already exists -> block
    """
    if User.query.count() > 0:
        raise APIError("Já existe usuário no sistema.", status_code=409, code="already_seeded")

    data = json_body()
    email = (clean_str(data.get("email")) or "").lower()
    password = data.get("password") or ""
    name = clean_str(data.get("name")) or "Administrador"

    validate_credentials(email, password)

    user = create_admin(email, password, name=name)
    log_action(user, "CREATE", after=serialize_model(user), user=user)
    db.session.commit()

    return jsonify({"message": "Administrador criado. Faça login.", "user": user.to_dict()}), 201
