"""
Tests for the `flask` CLI commands.
"""

import os
import tempfile
import unittest

from salesdesk.models import Client, Discount, User

from .base import BaseTestCase


class TestCli(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.runner = self.app.test_cli_runner()

    def write_csv(self, text):
        fd, path = tempfile.mkstemp(suffix=".csv")
        with os.fdopen(fd, "wb") as fh:
            fh.write(text.encode("utf-8"))
        self.addCleanup(os.remove, path)
        return path

    def test_seed_discounts_is_idempotent(self):
        result = self.runner.invoke(args=["seed-discounts"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("0 new", result.output)
        self.assertEqual(self.count(Discount), 8)

    def test_create_admin(self):
        result = self.runner.invoke(
            args=["create-admin", "--email", "Boss@Example.com", "--password", "secret123"]
        )
        self.assertEqual(result.exit_code, 0, result.output)
        with self.app.app_context():
            user = User.query.filter_by(email="boss@example.com").one()
            self.assertTrue(user.is_admin)
            self.assertTrue(user.approved)

    def test_create_admin_duplicate(self):
        result = self.runner.invoke(
            args=["create-admin", "--email", "admin@example.com", "--password", "secret123"]
        )
        self.assertNotEqual(result.exit_code, 0)

    def test_import_clients(self):
        path = self.write_csv("Codigo;Nome;CNPJ\n10;Auto Peças Norte;12345678000190\n11;Filtros Leste;98765432000110\n")
        result = self.runner.invoke(args=["import-csv", "clients", path, "--as-user", "rep@example.com"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("2 criados", result.output)
        with self.app.app_context():
            self.assertEqual(Client.query.filter_by(representative_id=self.rep_id).count(), 2)

    def test_import_dry_run(self):
        path = self.write_csv("Codigo;Nome;CNPJ\n10;Auto Peças Norte;12345678000190\n")
        result = self.runner.invoke(args=["import-csv", "clients", path, "--as-user", "admin@example.com", "--dry-run"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Registros: 1", result.output)
        self.assertEqual(self.count(Client), 0)

    def test_import_rejected(self):
        path = self.write_csv("Codigo;Nome;CNPJ\n10;Sem CNPJ;\n11;Filtros Leste;98765432000110\n")
        result = self.runner.invoke(args=["import-csv", "clients", path, "--as-user", "admin@example.com"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("linha 1", result.output)
        self.assertEqual(self.count(Client), 0)

    def test_import_unknown_user(self):
        path = self.write_csv("Codigo;Nome\n10;X\n")
        result = self.runner.invoke(args=["import-csv", "clients", path, "--as-user", "ghost@example.com"])
        self.assertEqual(result.exit_code, 1)


if __name__ == "__main__":
    unittest.main()
