"""
Tests for sales regions.
"""

import unittest

from .base import BaseTestCase


class TestRegions(BaseTestCase):

    def test_crud(self):
        self.login_admin()
        created = self.client.post("/api/regions", json={"name": "Interior SP"})
        self.assertEqual(created.status_code, 201)
        region_id = created.get_json()["id"]

        renamed = self.client.put(f"/api/regions/{region_id}", json={"name": "Interior Paulista"})
        self.assertEqual(renamed.get_json()["name"], "Interior Paulista")

        self.client.delete(f"/api/regions/{region_id}")
        self.assertEqual(self.client.get("/api/regions").get_json(), [])
        self.assertEqual(len(self.client.get("/api/regions?all=1").get_json()), 1)
        self.assertEqual(len(self.client.get("/api/regions?active=false").get_json()), 1)

    def test_name_required(self):
        self.login_admin()
        response = self.client.post("/api/regions", json={"name": "  "})
        self.assertEqual(response.status_code, 400)

    def test_representative_reads_only(self):
        self.login_rep()
        self.assertEqual(self.client.get("/api/regions").status_code, 200)
        self.assertEqual(self.client.post("/api/regions", json={"name": "Sul"}).status_code, 403)
        self.assertEqual(self.client.get("/api/regions/999").status_code, 404)


if __name__ == "__main__":
    unittest.main()
