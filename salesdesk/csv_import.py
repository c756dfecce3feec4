"""
salesdesk/csv_import.py

CSV import: header normalization, parsing and preview.

Uploaded client/product spreadsheets come with human-written headers
("Código do Cliente", "Nome", "WhatsApp", "Preço R$" ...). Each header is
lower-cased, trimmed and matched against an ordered list of keyword rules;
the first rule that matches gives the canonical field name. Headers that
match nothing pass through unchanged and become extra keys on the row.

Rule order is significant: some keywords are substrings of others
("código de barras" vs "código", "marca conversão" vs "conversão").

Failure model (nothing is persisted here):
- empty file / no data rows          -> CsvImportError(code="empty_file")
- malformed CSV or wrong field count -> CsvImportError(code="parse_error"), first error only
- no `name` nor `code` column        -> CsvImportError(code="missing_fields")
"""

from __future__ import annotations

import csv
import io
from typing import Any, Dict, Iterable, List, NamedTuple, Sequence

KIND_CLIENTS = "clients"
KIND_PRODUCTS = "products"
IMPORT_KINDS = (KIND_CLIENTS, KIND_PRODUCTS)

MINIMUM_FIELDS = ("name", "code")
DEFAULT_PREVIEW_ROWS = 5

EMPTY_FILE_MESSAGE = "O arquivo está vazio."
NO_ROWS_MESSAGE = "O arquivo não contém registros."


class CsvImportError(Exception):
    """Import rejected before preview."""

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.message = message
        self.code = code


class HeaderRule(NamedTuple):
    field: str
    contains: tuple = ()
    exact: tuple = ()

    def matches(self, header: str) -> bool:
        if header in self.exact:
            return True
        return any(keyword in header for keyword in self.contains)


CLIENT_HEADER_RULES: Sequence[HeaderRule] = (
    HeaderRule("email", contains=("e-mail", "email")),
    HeaderRule("address", contains=("endereço", "endereco", "logradouro", "address")),
    HeaderRule("code", contains=("código", "codigo", "cod", "code")),
    HeaderRule("cnpj", contains=("cnpj", "cpf")),
    HeaderRule("phone", contains=("whatsapp", "telefone", "fone", "celular", "phone")),
    HeaderRule("city", contains=("cidade", "município", "municipio", "city")),
    HeaderRule("state", contains=("estado", "state"), exact=("uf",)),
    HeaderRule("region", contains=("região", "regiao", "region")),
    HeaderRule("representative", contains=("representante", "vendedor")),
    HeaderRule("name", contains=("razão social", "razao social", "nome", "name", "cliente")),
)

PRODUCT_HEADER_RULES: Sequence[HeaderRule] = (
    HeaderRule(
        "barcode",
        contains=("código de barras", "codigo de barras", "codigobarras", "barras", "barcode", "gtin"),
        exact=("ean",),
    ),
    HeaderRule(
        "conversion_brand",
        contains=("marca conversão", "marca conversao", "marcaconversao", "marca da conversão", "conversion_brand"),
    ),
    HeaderRule("equivalent_brands", contains=("equivalente", "equivalent")),
    HeaderRule("conversion", contains=("conversão", "conversao", "referência", "referencia", "conversion")),
    HeaderRule("code", contains=("idproduto", "id produto", "código", "codigo", "cod", "sku", "code")),
    HeaderRule("description", contains=("descrição", "descricao", "description")),
    HeaderRule("price", contains=("preço", "preco", "valor", "price")),
    HeaderRule("stock_quantity", contains=("estoque", "quantidade", "qtd", "stock")),
    HeaderRule("category", contains=("categoria", "grupo", "linha", "category")),
    HeaderRule("brand", contains=("fabricante", "marca do produto", "marca produto"), exact=("marca", "brand")),
    HeaderRule("active", contains=("ativo", "situação", "situacao", "status", "active")),
    HeaderRule("name", contains=("nome", "produto", "name")),
)

HEADER_RULES = {
    KIND_CLIENTS: CLIENT_HEADER_RULES,
    KIND_PRODUCTS: PRODUCT_HEADER_RULES,
}

# Columns offered in the downloadable template per kind.
TEMPLATE_FIELDS = {
    KIND_CLIENTS: ("code", "name", "cnpj", "city", "state", "phone", "email", "address"),
    KIND_PRODUCTS: ("code", "name", "description", "barcode", "category", "brand", "price", "stock_quantity", "active"),
}


def _rules_for(kind: str) -> Sequence[HeaderRule]:
    try:
        return HEADER_RULES[kind]
    except KeyError:
        raise ValueError(f"Unknown import kind: {kind!r}") from None


def normalize_header(header: str, kind: str = KIND_CLIENTS) -> str:
    """Canonical field for a raw header, or the raw header itself when nothing matches."""
    key = (header or "").strip().lower()
    if key:
        for rule in _rules_for(kind):
            if rule.matches(key):
                return rule.field
    return header


def map_headers(headers: Iterable[str], kind: str = KIND_CLIENTS) -> List[str]:
    """
    Map a header row to row keys.

    A canonical field is given to the first column that claims it; later
    columns matching the same field keep their raw header, suffixed with
    the column number when that raw header is taken as well.
    """
    keys: List[str] = []
    taken = set()
    for position, header in enumerate(headers, start=1):
        key = normalize_header(header, kind)
        if key in taken:
            key = header
        if key in taken:
            key = f"{header}_{position}"
        taken.add(key)
        keys.append(key)
    return keys


def normalize_row(row: Dict[str, Any], kind: str = KIND_CLIENTS) -> Dict[str, Any]:
    """Re-key one already-parsed row (raw header -> value) by canonical fields."""
    raw_headers = list(row.keys())
    return dict(zip(map_headers(raw_headers, kind), (row[h] for h in raw_headers)))


def has_minimum_fields(keys: Iterable[str]) -> bool:
    keys = set(keys)
    return any(field in keys for field in MINIMUM_FIELDS)


def _decode(data: bytes | str) -> str:
    if isinstance(data, str):
        return data.lstrip("\ufeff")
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Spreadsheets exported by Excel on Windows
        return data.decode("cp1252", errors="replace")


def _detect_delimiter(text: str) -> str:
    first_line = text.lstrip().splitlines()[0] if text.strip() else ""
    counts = {d: first_line.count(d) for d in (",", ";", "\t")}
    best = max(counts, key=counts.get)
    return best if counts[best] else ","


def _is_blank(row: Sequence[str]) -> bool:
    return all(not (cell or "").strip() for cell in row)


def parse_csv(data: bytes | str, kind: str = KIND_CLIENTS, preview_rows: int = DEFAULT_PREVIEW_ROWS) -> Dict[str, Any]:
    """
    Parse and normalize an uploaded CSV.

    Returns:
      {
        "kind": kind,
        "columns": [row keys in column order],
        "header_map": {raw header: row key},
        "rows": [row dicts],
        "preview": first `preview_rows` rows,
        "total": len(rows),
      }
    """
    _rules_for(kind)

    text = _decode(data)
    if not text.strip():
        raise CsvImportError(EMPTY_FILE_MESSAGE, "empty_file")

    reader = csv.reader(io.StringIO(text, newline=""), delimiter=_detect_delimiter(text), strict=True)

    headers: List[str] | None = None
    keys: List[str] = []
    rows: List[Dict[str, Any]] = []

    try:
        for raw in reader:
            if _is_blank(raw):
                continue

            if headers is None:
                headers = raw
                keys = map_headers(headers, kind)
                continue

            if len(raw) > len(headers) and _is_blank(raw[len(headers):]):
                raw = raw[: len(headers)]

            if len(raw) != len(headers):
                raise CsvImportError(
                    f"Linha {reader.line_num}: esperados {len(headers)} campos, encontrados {len(raw)}.",
                    "parse_error",
                )

            rows.append({key: value for key, value, header in zip(keys, raw, headers) if header.strip()})
    except csv.Error as exc:
        raise CsvImportError(f"Linha {reader.line_num}: {exc}", "parse_error") from exc

    if headers is None or not rows:
        raise CsvImportError(NO_ROWS_MESSAGE, "empty_file")

    columns = [key for key, header in zip(keys, headers) if header.strip()]

    if not has_minimum_fields(columns):
        raise CsvImportError(
            "Campos obrigatórios não encontrados: o arquivo precisa de uma coluna de nome ou de código. "
            f"Colunas lidas: {', '.join(h for h in headers if h.strip())}",
            "missing_fields",
        )

    return {
        "kind": kind,
        "columns": columns,
        "header_map": {header: key for header, key in zip(headers, keys) if header.strip()},
        "rows": rows,
        "preview": rows[:preview_rows],
        "total": len(rows),
    }


def template_csv(kind: str) -> str:
    """Header-only CSV offered as a download template."""
    _rules_for(kind)
    return ",".join(TEMPLATE_FIELDS[kind]) + "\n"
