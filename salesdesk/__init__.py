"""
salesdesk/__init__.py

Flask application factory for SalesDesk, the order desk for automotive filter distributors.

Requirements:
- JSON API under /api for the SPA front-end, plus a server-rendered print view.
- SQLite for dev (SQLAlchemy + migrations), any SQLAlchemy URL in production.
- UI is never trusted; server-side access control is enforced in every route.
"""

from __future__ import annotations

import click
from flask import Flask, jsonify
from flask_login import current_user

from .errors import APIError, register_error_handlers
from .extensions import csrf, db, login_manager, migrate
from .logs import configure_logging
from .models import User

# Blueprint imports kept inside create_app() where possible to reduce import side effects.


def create_app(config_object: str | object = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        raise APIError("Não autenticado.", status_code=401, code="unauthorized")

    register_error_handlers(app)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.users import users_bp
    from .blueprints.regions import regions_bp
    from .blueprints.clients import clients_bp
    from .blueprints.products import products_bp
    from .blueprints.discounts import discounts_bp
    from .blueprints.orders import orders_bp, print_bp
    from .blueprints.stats import stats_bp
    from .blueprints.imports import imports_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(regions_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(discounts_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(print_bp)
    app.register_blueprint(stats_bp)
    app.register_blueprint(imports_bp)

    # ----------------------------------------------------------------------
    # Template globals (print view)
    # ----------------------------------------------------------------------
    @app.context_processor
    def inject_globals():
        from .pricing import format_money

        return {"config": app.config, "format_money": format_money}

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    register_cli(app)

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """API entry point: app name and whether a session is active."""
        return jsonify(
            {
                "app": app.config.get("APP_NAME"),
                "authenticated": bool(current_user.is_authenticated),
            }
        )

    return app


def register_cli(app: Flask) -> None:
    """Attach the `flask` CLI commands."""

    @app.cli.command("seed-discounts")
    def seed_discounts_command():
        """Seed the default discount / commission tiers."""
        from .seed import seed_default_discounts

        created = seed_default_discounts()
        click.echo(f"Default discount tiers seeded ({created} new).")

    @app.cli.command("create-admin")
    @click.option("--email", prompt=True)
    @click.option("--name", default="Administrador", show_default=True)
    @click.password_option()
    def create_admin_command(email: str, name: str, password: str):
        """Create an approved admin user."""
        from .seed import create_admin

        if User.query.filter_by(email=email.strip().lower()).first():
            raise click.ClickException("Este email já está em uso.")
        if len(password) < 6:
            raise click.ClickException("A senha deve ter pelo menos 6 caracteres.")

        user = create_admin(email, password, name=name)
        db.session.commit()
        click.echo(f"Admin {user.email} criado.")

    @app.cli.command("import-csv")
    @click.argument("kind", type=click.Choice(["clients", "products"]))
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    @click.option("--as-user", "as_user", required=True, help="Email of the importing user.")
    @click.option("--representative-id", type=int, default=None, help="Owner of imported clients.")
    @click.option("--dry-run", is_flag=True, help="Only parse and show the preview.")
    def import_csv_command(kind: str, path: str, as_user: str, representative_id: int | None, dry_run: bool):
        """Import clients or products from a CSV file (all-or-nothing)."""
        from .csv_import import CsvImportError, parse_csv
        from .importers import import_clients, import_products

        user = User.query.filter_by(email=as_user.strip().lower()).first()
        if not user:
            raise click.ClickException(f"Usuário {as_user} não encontrado.")

        with open(path, "rb") as fh:
            data = fh.read()

        try:
            parsed = parse_csv(data, kind, preview_rows=app.config["IMPORT_PREVIEW_ROWS"])
        except CsvImportError as exc:
            raise click.ClickException(f"[{exc.code}] {exc.message}") from exc

        click.echo(f"Colunas: {', '.join(parsed['columns'])}")
        click.echo(f"Registros: {parsed['total']}")
        for row in parsed["preview"]:
            click.echo(f"  {row}")

        if dry_run:
            return

        try:
            if kind == "clients":
                result = import_clients(parsed["rows"], user, representative_id=representative_id)
            else:
                result = import_products(parsed["rows"], user)
        except APIError as exc:
            db.session.rollback()
            for err in exc.payload.get("errors", []):
                click.echo(f"  linha {err['row']}: {err['error']}", err=True)
            raise click.ClickException(exc.message) from exc

        db.session.commit()
        click.echo(f"Importação concluída: {result['created']} criados, {result.get('updated', 0)} atualizados.")
