"""
Tests for the product catalog, client references, the price calculator and import.
"""

import unittest

from salesdesk.models import AuditLog, Discount, Product

from .base import BaseTestCase


class TestProductLookups(BaseTestCase):
    """Lookups used by the order form"""

    def setUp(self):
        super().setUp()
        self.oil_id = self.create_product("PSL55", name="Filtro de Óleo PSL55", conversion="W712")
        self.air_id = self.create_product("ARL4", name="Filtro de Ar ARL4", brand="Wega")
        self.old_id = self.create_product("OLD1", name="Descontinuado", active=False)

    def test_by_code(self):
        self.login_rep()
        response = self.client.get("/api/products/by-code/PSL55")
        self.assertEqual(response.get_json()["id"], self.oil_id)

    def test_by_code_falls_back_to_name(self):
        self.login_rep()
        response = self.client.get("/api/products/by-code/filtro%20de%20ar%20arl4")
        self.assertEqual(response.get_json()["id"], self.air_id)

    def test_by_code_not_found(self):
        self.login_rep()
        self.assertEqual(self.client.get("/api/products/by-code/NOPE").status_code, 404)

    def test_search_skips_inactive(self):
        self.login_rep()
        results = self.client.get("/api/products/search?q=ARL").get_json()
        self.assertEqual([p["code"] for p in results], ["ARL4"])
        self.assertEqual(self.client.get("/api/products/search?q=OLD1").get_json(), [])

    def test_by_client_ref(self):
        self.login_rep()
        response = self.client.get("/api/products/by-client-ref/W712")
        self.assertEqual(response.get_json()["code"], "PSL55")
        self.assertEqual(self.client.get("/api/products/by-client-ref/X999").status_code, 404)

    def test_list_filters(self):
        self.login_rep()
        by_brand = self.client.get("/api/products?brand=wega").get_json()
        self.assertEqual([p["code"] for p in by_brand["items"]], ["ARL4"])

        active = self.client.get("/api/products?active=true&sort=code").get_json()
        self.assertEqual([p["code"] for p in active["items"]], ["ARL4", "PSL55"])


class TestConversion(BaseTestCase):
    """Linking client references"""

    def test_link_reference(self):
        product_id = self.create_product("P1")
        self.login_admin()
        response = self.client.post(
            f"/api/products/{product_id}/conversion",
            json={"client_ref": "REF-1", "conversion_brand": "Mann"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["conversion"], "REF-1")
        self.assertEqual(response.get_json()["conversion_brand"], "Mann")

    def test_reference_already_linked(self):
        self.create_product("P1", conversion="REF-1")
        other_id = self.create_product("P2")
        self.login_admin()
        response = self.client.post(f"/api/products/{other_id}/conversion", json={"client_ref": "REF-1"})
        self.assertEqual(response.status_code, 409)
        self.assertIsNone(self.db_get(Product, other_id).conversion)

    def test_representative_cannot_link(self):
        product_id = self.create_product("P1")
        self.login_rep()
        response = self.client.post(f"/api/products/{product_id}/conversion", json={"client_ref": "REF-1"})
        self.assertEqual(response.status_code, 403)


class TestPriceCalculator(BaseTestCase):

    def test_price_with_tier(self):
        product_id = self.create_product("P1", price="100.00")
        self.login_rep()

        response = self.client.get(f"/api/products/{product_id}/price?discount_id={self.discount_id('4*5')}")
        data = response.get_json()

        self.assertEqual(data["unit_price"], "100.00")
        self.assertEqual(data["discounted_unit_price"], "81.46")
        self.assertEqual(data["subtotal"], "81.46")
        self.assertEqual(data["commission_amount"], "4.07")
        self.assertEqual(data["discount"]["name"], "4*5")

    def test_price_without_tier(self):
        product_id = self.create_product("P1", price="59.90")
        self.login_rep()
        data = self.client.get(f"/api/products/{product_id}/price?quantity=3").get_json()
        self.assertEqual(data["subtotal"], "179.70")
        self.assertIsNone(data["discount"])

    def test_unknown_tier(self):
        product_id = self.create_product("P1")
        self.login_rep()
        response = self.client.get(f"/api/products/{product_id}/price?discount_id=999")
        self.assertEqual(response.status_code, 404)


class TestProductCrud(BaseTestCase):
    """Admin-only catalog maintenance"""

    def test_create_update_deactivate(self):
        self.login_admin()
        created = self.client.post(
            "/api/products",
            json={"name": "Filtro de Combustível", "price": "45,90", "equivalent_brands": "Mann, Fram"},
        )
        self.assertEqual(created.status_code, 201)
        data = created.get_json()
        self.assertTrue(data["code"].startswith("PROD"))
        self.assertEqual(data["price"], "45.90")
        self.assertEqual(data["equivalent_brands"], ["Mann", "Fram"])

        updated = self.client.put(f"/api/products/{data['id']}", json={"stock_quantity": 12, "brand": "Tecfil"})
        self.assertEqual(updated.get_json()["stock_quantity"], 12)

        deleted = self.client.delete(f"/api/products/{data['id']}")
        self.assertEqual(deleted.status_code, 200)
        self.assertFalse(self.db_get(Product, data["id"]).active)

        with self.app.app_context():
            actions = [a.action for a in AuditLog.query.filter_by(entity_type="Product").order_by(AuditLog.id)]
            self.assertEqual(actions, ["CREATE", "UPDATE", "DEACTIVATE"])

    def test_invalid_price(self):
        self.login_admin()
        response = self.client.post("/api/products", json={"name": "X", "price": "-1"})
        self.assertEqual(response.status_code, 400)

    def test_duplicate_code(self):
        self.create_product("P1")
        self.login_admin()
        response = self.client.post("/api/products", json={"name": "Outro", "code": "P1"})
        self.assertEqual(response.status_code, 409)

    def test_representative_cannot_create(self):
        self.login_rep()
        response = self.client.post("/api/products", json={"name": "X"})
        self.assertEqual(response.status_code, 403)


class TestProductImport(BaseTestCase):
    """Committing normalized product rows"""

    def test_defaults(self):
        self.login_admin()
        response = self.client.post(
            "/api/products/import",
            json={
                "products": [
                    {"code": "A1", "price": "abc", "stock_quantity": "x", "active": ""},
                    {"name": "Sem código", "price": "12,50", "active": "não", "equivalent_brands": "Mann; Fram / Wega"},
                ]
            },
        )
        self.assertEqual(response.status_code, 201, response.get_json())
        first, second = response.get_json()["products"]

        self.assertEqual(first["name"], "Produto A1")
        self.assertEqual(first["price"], "0.00")
        self.assertEqual(first["stock_quantity"], 0)
        self.assertTrue(first["active"])

        self.assertTrue(second["code"].startswith("PROD"))
        self.assertEqual(second["price"], "12.50")
        self.assertFalse(second["active"])
        self.assertEqual(second["equivalent_brands"], ["Mann", "Fram", "Wega"])

    def test_non_finite_price_becomes_zero(self):
        self.login_admin()
        response = self.client.post(
            "/api/products/import",
            json={"products": [{"code": "N1", "name": "F", "price": "NaN"}, {"code": "N2", "name": "G", "price": "Infinity"}]},
        )
        self.assertEqual(response.status_code, 201, response.get_json())
        self.assertEqual([p["price"] for p in response.get_json()["products"]], ["0.00", "0.00"])

    def test_bare_list_body(self):
        self.login_admin()
        response = self.client.post("/api/products/import", json=[{"code": "B1", "name": "Filtro B1"}])
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()["created"], 1)

    def test_existing_code_rejects_the_batch(self):
        self.create_product("A1")
        self.login_admin()
        response = self.client.post(
            "/api/products/import",
            json={"products": [{"code": "NEW1", "name": "Novo"}, {"code": "A1", "name": "Repetido"}]},
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual([e["row"] for e in response.get_json()["errors"]], [2])
        self.assertEqual(self.count(Product), 1)

    def test_duplicate_reference_in_file(self):
        self.login_admin()
        response = self.client.post(
            "/api/products/import",
            json={"products": [{"code": "R1", "conversion": "W712"}, {"code": "R2", "conversion": "W712"}]},
        )
        self.assertEqual(response.status_code, 422)

    def test_representative_cannot_import(self):
        self.login_rep()
        response = self.client.post("/api/products/import", json={"products": [{"code": "Z"}]})
        self.assertEqual(response.status_code, 403)


class TestDiscounts(BaseTestCase):
    """Discount tiers"""

    def test_default_tiers_are_listed(self):
        self.login_rep()
        tiers = self.client.get("/api/discounts").get_json()
        self.assertEqual(len(tiers), 8)
        self.assertEqual(tiers[0], {"id": tiers[0]["id"], "name": "2*5", "percentage": "9.75", "commission": "7.00"})

    def test_admin_creates_tier(self):
        self.login_admin()
        response = self.client.post("/api/discounts", json={"name": "10*5", "percentage": "40.13", "commission": "1"})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(self.count(Discount), 9)

    def test_percent_out_of_range(self):
        self.login_admin()
        response = self.client.post("/api/discounts", json={"name": "X", "percentage": "120", "commission": "1"})
        self.assertEqual(response.status_code, 400)

    def test_duplicate_name(self):
        self.login_admin()
        response = self.client.post("/api/discounts", json={"name": "2*5", "percentage": "1", "commission": "1"})
        self.assertEqual(response.status_code, 409)

    def test_missing_tier(self):
        self.login_rep()
        response = self.client.get("/api/discounts/999")
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
