"""
CSV import preview.

Flow:
1) POST /api/imports/preview (multipart: file, kind=clients|products)
   -> {columns, header_map, preview, total, rows}; nothing is written.
2) The user checks the preview and commits the rows with
   POST /api/clients/import or POST /api/products/import.

Product imports are admin-only, at preview time too.
"""

import logging

from flask import Blueprint, Response, current_app, jsonify, request

from ...csv_import import IMPORT_KINDS, KIND_PRODUCTS, CsvImportError, parse_csv, template_csv
from ...errors import APIError, forbidden
from ...security import api_login_required, is_admin

logger = logging.getLogger(__name__)

imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")


def _check_kind(kind: str | None) -> str:
    if kind not in IMPORT_KINDS:
        raise APIError(
            f"Tipo de importação inválido. Use: {', '.join(IMPORT_KINDS)}.",
            code="validation_error",
        )
    if kind == KIND_PRODUCTS and not is_admin():
        raise forbidden("Somente administradores importam produtos.")
    return kind


@imports_bp.route("/preview", methods=["POST"])
@api_login_required
def preview():
    kind = _check_kind(request.form.get("kind") or request.args.get("kind"))

    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise APIError("Arquivo CSV é obrigatório.", code="validation_error")

    try:
        parsed = parse_csv(upload.read(), kind, preview_rows=current_app.config["IMPORT_PREVIEW_ROWS"])
    except CsvImportError as exc:
        logger.warning("CSV preview rejected (%s): %s", exc.code, exc.message)
        raise APIError(exc.message, code=exc.code) from exc

    logger.info("CSV preview: %s %s rows from %s", parsed["total"], kind, upload.filename)
    return jsonify(parsed)


@imports_bp.route("/template/<kind>")
@api_login_required
def template(kind: str):
    """Header-only CSV to fill in."""
    _check_kind(kind)
    return Response(
        template_csv(kind),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename=modelo_{kind}.csv"},
    )
