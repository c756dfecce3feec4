"""
salesdesk/errors.py

API error type and JSON error handlers.

Every failure leaving the API is a JSON body of the form:

    {"message": "...", "code": "..."}

plus optional extra keys (e.g. per-row import errors).

Routes and services raise APIError for domain rule violations. Database
unique-key conflicts that slip past explicit checks surface as IntegrityError
and are reported per request with a 409.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from flask import Flask, jsonify
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from .extensions import db

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Raised when a request violates a business rule or references missing data."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        code: str = "bad_request",
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        body = dict(self.payload)
        body["message"] = self.message
        body["code"] = self.code
        return body


def not_found(message: str = "Registro não encontrado.") -> APIError:
    return APIError(message, status_code=404, code="not_found")


def forbidden(message: str = "Não autorizado.") -> APIError:
    return APIError(message, status_code=403, code="forbidden")


# Unique columns and the message reported when the database rejects a duplicate.
_UNIQUE_MESSAGES = (
    ("cnpj", "Já existe um cliente com este CNPJ."),
    ("code", "Já existe um registro com este código."),
    ("email", "Este email já está em uso."),
    ("name", "Já existe um registro com este nome."),
)


def integrity_message(error: IntegrityError) -> str:
    """Best-effort human message for a unique constraint failure."""
    raw = str(getattr(error, "orig", error)).lower()
    for column, message in _UNIQUE_MESSAGES:
        if column in raw:
            return message
    return "Violação de integridade dos dados."


def register_error_handlers(app: Flask) -> None:
    """Attach JSON error handlers to the app."""

    @app.errorhandler(APIError)
    def _handle_api_error(error: APIError):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(IntegrityError)
    def _handle_integrity_error(error: IntegrityError):
        db.session.rollback()
        logger.warning("Integrity error: %s", error.orig)
        return jsonify({"message": integrity_message(error), "code": "conflict"}), 409

    @app.errorhandler(HTTPException)
    def _handle_http_exception(error: HTTPException):
        return (
            jsonify({"message": error.description, "code": error.name.lower().replace(" ", "_")}),
            error.code,
        )

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        db.session.rollback()
        logger.error("Unhandled exception: %s", error, exc_info=True)
        return jsonify({"message": "Erro interno do servidor.", "code": "server_error"}), 500
