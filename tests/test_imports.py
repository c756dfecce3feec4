"""
Tests for the CSV preview and template endpoints, and the preview -> commit flow.
"""

import io
import unittest

from salesdesk.models import Client

from .base import BaseTestCase

CLIENTS_CSV = (
    "Código do Cliente;Nome do Cliente;CNPJ;WhatsApp;Cidade\n"
    "10;Auto Peças Norte;12.345.678/0001-90;11 99999-0001;Campinas\n"
    "11;Filtros Leste;98.765.432/0001-10;11 99999-0002;Sorocaba\n"
).encode("utf-8")


class TestImportPreview(BaseTestCase):

    def upload(self, data, kind="clients", filename="clientes.csv"):
        return self.client.post(
            "/api/imports/preview",
            data={"kind": kind, "file": (io.BytesIO(data), filename)},
            content_type="multipart/form-data",
        )

    def test_preview_then_commit(self):
        self.login_rep()
        response = self.upload(CLIENTS_CSV)
        self.assertEqual(response.status_code, 200, response.get_json())

        parsed = response.get_json()
        self.assertEqual(parsed["columns"], ["code", "name", "cnpj", "phone", "city"])
        self.assertEqual(parsed["total"], 2)
        self.assertEqual(self.count(Client), 0)

        committed = self.client.post("/api/clients/import", json={"clients": parsed["rows"]})
        self.assertEqual(committed.status_code, 201, committed.get_json())
        self.assertEqual(committed.get_json()["created"], 2)

        with self.app.app_context():
            client = Client.query.filter_by(code="10").one()
            self.assertEqual(client.cnpj, "12345678000190")
            self.assertEqual(client.representative_id, self.rep_id)

    def test_empty_file(self):
        self.login_rep()
        response = self.upload(b"")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["code"], "empty_file")

    def test_parse_error(self):
        self.login_rep()
        response = self.upload(b"Codigo,Nome\n1,Acme,Extra\n")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["code"], "parse_error")

    def test_missing_file(self):
        self.login_rep()
        response = self.client.post("/api/imports/preview", data={"kind": "clients"})
        self.assertEqual(response.status_code, 400)

    def test_unknown_kind(self):
        self.login_admin()
        response = self.upload(CLIENTS_CSV, kind="suppliers")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["code"], "validation_error")

    def test_product_preview_is_admin_only(self):
        data = "Código;Descrição;Preço\nP1;Filtro;10,00\n".encode("utf-8")

        self.login_rep()
        self.assertEqual(self.upload(data, kind="products").status_code, 403)
        self.logout()

        self.login_admin()
        response = self.upload(data, kind="products")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["preview"], [{"code": "P1", "description": "Filtro", "price": "10,00"}])

    def test_template(self):
        self.login_rep()
        response = self.client.get("/api/imports/template/clients")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.mimetype, "text/csv")
        self.assertIn("attachment", response.headers["Content-Disposition"])
        self.assertTrue(response.get_data(as_text=True).startswith("code,name,cnpj"))


if __name__ == "__main__":
    unittest.main()
