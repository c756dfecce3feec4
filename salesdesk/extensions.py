"""
salesdesk/extensions.py

Extension singletons, bound to the app in create_app():

- db            Flask-SQLAlchemy, every model lives in salesdesk.models
- migrate       Alembic migrations (`flask db ...`)
- login_manager session auth for the API; anonymous calls get a 401 JSON body
                from the unauthorized handler registered in create_app()
- csrf          CSRF check on mutating requests (token: /api/auth/csrf-token)
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
